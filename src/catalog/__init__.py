"""
Catalog Module - Read-only view of course modules and their grading configuration.
"""

from src.catalog.course_catalog import CourseCatalog, ModuleDefinition

__all__ = ["CourseCatalog", "ModuleDefinition"]
