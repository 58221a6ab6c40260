"""Typer command-line interface for the assessment engine."""
