"""
Typer CLI for the harmony assessment engine.

Commands:
    harmony db init                    - Initialize database tables
    harmony db prune-events            - Drop old processed-event markers
    harmony catalog add-module C M     - Register a weighted course module
    harmony quiz grade FILE            - Grade a JSON quiz submission
    harmony grades course USER COURSE  - Calculate a learner's weighted course grade
    harmony grades history USER MODULE - Show a module's grade history
    harmony remediation list           - List pending remediation requests
    harmony remediation approve ID     - Approve a remediation request
    harmony remediation deny ID        - Deny a remediation request
    harmony review list                - List enrollments awaiting instructor review
    harmony audit tail                 - Show recent audit entries

Usage:
    harmony --help
    harmony quiz grade submission.json --json
    harmony remediation approve 3f2a... --actor-id inst-1 --actor-name "Dr. Lee"
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from config import get_settings
from src.core.errors import AssessmentError
from src.core.identity import Caller, Role
from src.core.log_setup import configure_logging

app = typer.Typer(
    help="harmony: assessment, weighted grading and remediation for staff training",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback() -> None:
    """Configure logging for every command."""
    configure_logging(get_settings())


def _engine():
    from src.assessment.engine import AssessmentEngine
    from src.db.database import create_session_factory

    settings = get_settings()
    return AssessmentEngine(create_session_factory(settings.database_url), settings)


def _operator(actor_id: str, actor_name: str, role: Role) -> Caller:
    return Caller(uid=actor_id, display_name=actor_name, role=role)


def _fail(exc: AssessmentError) -> None:
    rprint(f"[red]✗[/red] {escape(str(exc))}")
    raise typer.Exit(code=1)


# ========================================
# Database Commands
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from src.db.database import create_db_engine, init_db

    logger.info("Initializing database tables...")
    init_db(create_db_engine(get_settings().database_url))
    rprint("[green]✓[/green] Database initialized!")


@db_app.command("prune-events")
def db_prune_events(
    days: int | None = typer.Option(None, "--days", "-d", min=1, help="Keep markers newer than this many days"),
) -> None:
    """Delete processed change-event markers past the retention window."""
    from datetime import timedelta

    from src.db.models.base import utcnow

    before = utcnow() - timedelta(days=days) if days else None
    removed = _engine().bus.prune_processed(before)
    rprint(f"[green]✓[/green] Pruned {removed} processed-event markers")


# ========================================
# Catalog Commands
# ========================================

catalog_app = typer.Typer(help="Course module catalog")
app.add_typer(catalog_app, name="catalog")


@catalog_app.command("add-module")
def catalog_add_module(
    course_id: str = typer.Argument(..., help="Course id"),
    module_id: str = typer.Argument(..., help="Module id"),
    weight: float = typer.Option(..., "--weight", "-w", help="Weight in the course grade (0-100)"),
    critical: bool = typer.Option(False, "--critical", help="Module must be passed to pass the course"),
    passing_score: float = typer.Option(80.0, "--passing-score", "-p", help="Module passing score"),
    title: str = typer.Option("", "--title", "-t", help="Display title"),
    order: int = typer.Option(0, "--order", help="Position within the course"),
) -> None:
    """Register a weighted module in a course."""
    from src.catalog import ModuleDefinition

    module = ModuleDefinition(
        id=module_id,
        course_id=course_id,
        weight=weight,
        is_critical=critical,
        passing_score=passing_score,
        title=title,
        order=order,
    )
    try:
        _engine().add_module(module)
    except AssessmentError as exc:
        _fail(exc)
    marker = " [bold](critical)[/bold]" if critical else ""
    rprint(f"[green]✓[/green] Added {module_id} to {course_id} at {weight:g}%{marker}")


# ========================================
# Quiz Commands
# ========================================

quiz_app = typer.Typer(help="Quiz grading")
app.add_typer(quiz_app, name="quiz")


@quiz_app.command("grade")
def quiz_grade(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with questions and answers"),
    passing_score: float | None = typer.Option(None, "--passing-score", "-p", help="Override the passing score"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """
    Grade a quiz submission without recording it.

    The file holds {"questions": [...], "answers": [...], "passingScore": 80}.
    """
    from src.grading import grade_quiz_block

    payload = json.loads(file.read_text(encoding="utf-8"))
    if passing_score is not None:
        payload["passingScore"] = passing_score

    try:
        result = grade_quiz_block(payload, payload.get("answers", []))
    except AssessmentError as exc:
        _fail(exc)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    table = Table(title="Question Results", show_header=True)
    table.add_column("Question", style="cyan")
    table.add_column("Type")
    table.add_column("Correct", justify="center")
    table.add_column("Review", justify="center")
    table.add_column("Points", justify="right")
    for r in result.results:
        table.add_row(
            r.question_id,
            r.question_type,
            "[green]✓[/green]" if r.is_correct else "[red]✗[/red]",
            "[yellow]yes[/yellow]" if r.needs_manual_review else "",
            f"{r.earned_points:g}/{r.max_points:g}",
        )
    console.print(table)

    status = "[green]PASSED[/green]" if result.passed else "[red]FAILED[/red]"
    rprint(f"\nScore: [bold]{result.score}%[/bold] {status}")
    if result.needs_review:
        rprint("[yellow]⚠[/yellow] Contains answers that need instructor review")


# ========================================
# Grade Commands
# ========================================

grades_app = typer.Typer(help="Grade ledger and course grades")
app.add_typer(grades_app, name="grades")


@grades_app.command("course")
def grades_course(
    user_id: str = typer.Argument(..., help="Learner id"),
    course_id: str = typer.Argument(..., help="Course id"),
    actor_id: str = typer.Option("operator", "--actor-id", help="Operator id recorded in the audit log"),
    actor_name: str = typer.Option("Operator", "--actor-name", help="Operator display name"),
) -> None:
    """Calculate and store a learner's weighted course grade."""
    engine = _engine()
    try:
        result = engine.calculate_course_grade(_operator(actor_id, actor_name, Role.ADMIN), user_id, course_id)
    except AssessmentError as exc:
        _fail(exc)

    table = Table(title=f"Course Grade: {course_id}", show_header=True)
    table.add_column("Module", style="cyan")
    table.add_column("Weight", justify="right")
    table.add_column("Critical", justify="center")
    table.add_column("Score", justify="right")
    table.add_column("Weighted", justify="right")
    table.add_column("Passed", justify="center")
    for m in result.module_breakdown:
        table.add_row(
            m.module_title or m.module_id,
            f"{m.weight:g}%",
            "★" if m.is_critical else "",
            "-" if m.score is None else f"{m.score:g}%",
            "-" if m.weighted_score is None else f"{m.weighted_score:.1f}",
            "-" if m.passed is None else ("[green]✓[/green]" if m.passed else "[red]✗[/red]"),
        )
    console.print(table)

    status = "[green]PASSED[/green]" if result.overall_passed else "[red]NOT PASSED[/red]"
    rprint(f"\nOverall: [bold]{result.overall_score}%[/bold] {status}")
    rprint(f"  Critical modules passed: {result.critical_modules_passed}/{result.total_critical_modules}")
    rprint(f"  Graded: {result.graded_modules}/{result.total_modules} ({result.completion_percent}%)")


@grades_app.command("history")
def grades_history(
    user_id: str = typer.Argument(..., help="Learner id"),
    module_id: str = typer.Argument(..., help="Module id"),
) -> None:
    """Show every grade record for a module, oldest first."""
    history = _engine().get_grade_history(user_id, module_id)
    if not history:
        rprint(f"[yellow]No grades for {user_id} on {module_id}[/yellow]")
        return

    table = Table(title=f"Grade History: {module_id}", show_header=True)
    table.add_column("Grade", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Passed", justify="center")
    table.add_column("Graded By")
    table.add_column("Correction Of", style="dim")
    table.add_column("Current", justify="center")
    for g in history:
        table.add_row(
            g.id,
            f"{g.score:g}%",
            "[green]✓[/green]" if g.passed else "[red]✗[/red]",
            g.graded_by_name or g.graded_by,
            g.correction_of or "",
            "[green]●[/green]" if g.is_current else "",
        )
    console.print(table)


# ========================================
# Remediation Commands
# ========================================

remediation_app = typer.Typer(help="Remediation queue")
app.add_typer(remediation_app, name="remediation")


@remediation_app.command("list")
def remediation_list(
    course_id: str | None = typer.Option(None, "--course", "-c", help="Only this course"),
) -> None:
    """List pending remediation requests."""
    pending = _engine().pending_remediations(course_id)
    if not pending:
        rprint("[green]✓[/green] No pending remediation requests")
        return

    table = Table(title=f"Pending Remediation ({len(pending)})", show_header=True)
    table.add_column("Request", style="dim")
    table.add_column("Learner", style="cyan")
    table.add_column("Module")
    table.add_column("Attempts", justify="right")
    table.add_column("Reason")
    for r in pending:
        table.add_row(r.id, r.user_id, r.module_id, str(r.attempt_count), r.reason)
    console.print(table)


@remediation_app.command("approve")
def remediation_approve(
    request_id: str = typer.Argument(..., help="Remediation request id"),
    actor_id: str = typer.Option(..., "--actor-id", help="Instructor id"),
    actor_name: str = typer.Option("", "--actor-name", help="Instructor display name"),
    role: Role = typer.Option(Role.INSTRUCTOR, "--role", help="Role of the acting user"),
    notes: str | None = typer.Option(None, "--notes", help="Resolution notes"),
) -> None:
    """Approve a request: reset the module's progress and reopen the enrollment."""
    try:
        request = _engine().approve_remediation(_operator(actor_id, actor_name, role), request_id, notes)
    except AssessmentError as exc:
        _fail(exc)
    rprint(f"[green]✓[/green] Approved remediation for {request.user_id} on {request.module_id}")


@remediation_app.command("deny")
def remediation_deny(
    request_id: str = typer.Argument(..., help="Remediation request id"),
    actor_id: str = typer.Option(..., "--actor-id", help="Instructor id"),
    actor_name: str = typer.Option("", "--actor-name", help="Instructor display name"),
    role: Role = typer.Option(Role.INSTRUCTOR, "--role", help="Role of the acting user"),
    notes: str | None = typer.Option(None, "--notes", help="Resolution notes"),
) -> None:
    """Deny a request; the enrollment stays failed."""
    try:
        request = _engine().deny_remediation(_operator(actor_id, actor_name, role), request_id, notes)
    except AssessmentError as exc:
        _fail(exc)
    rprint(f"[yellow]✓[/yellow] Denied remediation for {request.user_id} on {request.module_id}")


# ========================================
# Review Commands
# ========================================

review_app = typer.Typer(help="Manual review queue")
app.add_typer(review_app, name="review")


@review_app.command("list")
def review_list(
    course_id: str | None = typer.Option(None, "--course", "-c", help="Only this course"),
) -> None:
    """List enrollments awaiting instructor review."""
    queue = _engine().review_queue(course_id)
    if not queue:
        rprint("[green]✓[/green] Nothing awaiting review")
        return

    table = Table(title=f"Awaiting Review ({len(queue)})", show_header=True)
    table.add_column("Enrollment", style="dim")
    table.add_column("Learner", style="cyan")
    table.add_column("Course")
    table.add_column("Modules")
    for e in queue:
        table.add_row(e.id, e.user_id, e.course_id, ", ".join(sorted(e.quiz_answers or {})))
    console.print(table)


# ========================================
# Audit Commands
# ========================================

audit_app = typer.Typer(help="Audit log")
app.add_typer(audit_app, name="audit")


@audit_app.command("tail")
def audit_tail(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of entries"),
    actor_id: str | None = typer.Option(None, "--actor", help="Filter by actor id"),
    action_type: str | None = typer.Option(None, "--action", help="Filter by action type"),
    target_id: str | None = typer.Option(None, "--target", help="Filter by target id"),
) -> None:
    """Show the most recent audit entries, newest first."""
    entries = _engine().recent_audit(limit, actor_id=actor_id, action_type=action_type, target_id=target_id)
    if not entries:
        rprint("[yellow]No audit entries[/yellow]")
        return

    table = Table(title="Audit Log", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Actor", style="cyan")
    table.add_column("Action")
    table.add_column("Target", style="dim")
    table.add_column("Details")
    for e in entries:
        table.add_row(e.timestamp.strftime("%Y-%m-%d %H:%M:%S"), e.actor_name, e.action_type, e.target_id, escape(e.details))
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
