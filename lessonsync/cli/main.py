"""Command-line access to the lesson data layer."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, cast

import typer
from rich.console import Console
from rich.table import Table

from lesson_store.remote import RemoteNotConfiguredError
from lessonsync import service
from lessonsync.context import LessonContext, bootstrap
from lessonsync.core.journal import ChangeEvent
from lessonsync.ingest import read_csv_table

app = typer.Typer(help="Import, inspect and renumber lessons for each class.")
console = Console()

T = TypeVar("T")

ConfigOption = typer.Option(None, "--config", "-c", help="Path to lessonsync.yaml (default: config/lessonsync.yaml).")
CacheOption = typer.Option(None, "--cache", help="Override the SQLite cache path.")
ClassOption = typer.Option(None, "--class", help="Class to operate on (default: default_class from config).")
JsonOption = typer.Option(False, "--json", help="Emit JSON instead of a table.")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run(
    action: Callable[[LessonContext], Awaitable[T]],
    *,
    config: Optional[Path],
    cache: Optional[Path],
    class_name: Optional[str],
    cleared: bool = False,
) -> T:
    async def _session() -> T:
        ctx = bootstrap(config, cache_path=cache, class_name=class_name, cleared=cleared)
        try:
            await service.load_class(ctx)
            return await action(ctx)
        finally:
            await ctx.aclose()

    return asyncio.run(_session())


def _print_table(headers: list[str], rows: List[dict], keys: list[str]) -> None:
    table = Table(*headers)
    for row in rows:
        table.add_row(*[str(row.get(key, "")) for key in keys])
    console.print(table)


def _emit(rows: List[Dict[str, Any]], as_json: bool, headers: list[str], keys: list[str]) -> None:
    if as_json:
        typer.echo(json.dumps(rows, indent=2, ensure_ascii=False, default=str))
        return
    _print_table(headers, rows, keys)


@app.command("import")
def import_command(
    table: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV lesson table to import."),
    config: Optional[Path] = ConfigOption,
    cache: Optional[Path] = CacheOption,
    class_name: Optional[str] = ClassOption,
) -> None:
    """Replace a class's lessons with the contents of a CSV table."""

    rows = read_csv_table(table)

    async def action(ctx: LessonContext) -> Dict[str, Any]:
        normalized = service.import_table(ctx, rows)
        return {
            "class": ctx.class_name,
            "activities": len(normalized.activities),
            "lessons": len(ctx.snapshot.lessons),
            "skipped_rows": normalized.skipped_rows,
        }

    summary = _run(action, config=config, cache=cache, class_name=class_name)
    console.print(
        f"[green]Imported[/green] {summary['activities']} activities into "
        f"{summary['lessons']} lessons for {summary['class']} "
        f"({summary['skipped_rows']} rows skipped)"
    )


@app.command()
def lessons(
    query: str = typer.Option("", "--query", "-q", help="Match lesson number, title or activity text."),
    half_term: Optional[str] = typer.Option(None, "--half-term", help="Only lessons in this half-term id."),
    sort_by: str = typer.Option("number", "--sort", help="number, title, activities or time."),
    descending: bool = typer.Option(False, "--desc", help="Reverse the sort order."),
    cleared: bool = typer.Option(False, "--cleared", help="Treat stored data as cleared."),
    config: Optional[Path] = ConfigOption,
    cache: Optional[Path] = CacheOption,
    class_name: Optional[str] = ClassOption,
    as_json: bool = JsonOption,
) -> None:
    """List the lessons of a class."""

    if sort_by not in ("number", "title", "activities", "time"):
        raise typer.BadParameter(f"Unknown sort key: {sort_by}", param_hint="--sort")

    async def action(ctx: LessonContext) -> List[Dict[str, Any]]:
        numbers = service.search_lessons(
            ctx, query, half_term=half_term, sort_by=cast(service.SortKey, sort_by), descending=descending
        )
        snapshot = ctx.snapshot
        return [
            {
                "number": number,
                "title": snapshot.lessons[number].title,
                "activities": snapshot.lessons[number].activity_count,
                "minutes": snapshot.lessons[number].total_minutes,
                "categories": snapshot.lessons[number].category_order,
                "half_term": snapshot.half_term_for(number),
            }
            for number in numbers
        ]

    rows = _run(action, config=config, cache=cache, class_name=class_name, cleared=cleared)
    _emit(
        rows,
        as_json,
        ["Lesson", "Title", "Activities", "Minutes", "Half-term"],
        ["number", "title", "activities", "minutes", "half_term"],
    )


@app.command()
def plans(
    config: Optional[Path] = ConfigOption,
    cache: Optional[Path] = CacheOption,
    class_name: Optional[str] = ClassOption,
    as_json: bool = JsonOption,
) -> None:
    """List the lesson plans of a class."""

    async def action(ctx: LessonContext) -> List[Dict[str, Any]]:
        return [
            {
                "id": plan.id,
                "date": plan.date.date().isoformat(),
                "lesson_number": plan.lesson_number,
                "title": plan.title,
                "status": plan.status,
            }
            for plan in ctx.snapshot.class_plans()
        ]

    rows = _run(action, config=config, cache=cache, class_name=class_name)
    _emit(rows, as_json, ["Plan", "Date", "Lesson", "Title", "Status"], ["id", "date", "lesson_number", "title", "status"])


@app.command("delete-plan")
def delete_plan(
    plan_id: str = typer.Argument(..., help="Lesson plan id."),
    config: Optional[Path] = ConfigOption,
    cache: Optional[Path] = CacheOption,
    class_name: Optional[str] = ClassOption,
) -> None:
    """Delete a lesson plan and renumber the class's remaining lessons."""

    async def action(ctx: LessonContext) -> service.RenumberResult:
        return await service.delete_lesson_plan(ctx, plan_id)

    try:
        result = _run(action, config=config, cache=cache, class_name=class_name)
    except service.PlanNotFoundError:
        console.print(f"[red]No lesson plan with id {plan_id}[/red]")
        raise typer.Exit(code=1)
    if not result.changed:
        console.print(f"[red]Deleting lesson plan {plan_id} failed; see the log for details[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Deleted[/green] lesson plan {plan_id}")
    for old, new in sorted(result.mapping.items(), key=lambda item: int(item[1])):
        console.print(f"  lesson {old} -> {new}")


@app.command("delete-lesson")
def delete_lesson(
    lesson_number: str = typer.Argument(..., help="Lesson number to remove."),
    config: Optional[Path] = ConfigOption,
    cache: Optional[Path] = CacheOption,
    class_name: Optional[str] = ClassOption,
) -> None:
    """Remove one lesson and every reference to it (no renumbering)."""

    async def action(ctx: LessonContext) -> List[str]:
        service.delete_lesson(ctx, lesson_number)
        return ctx.snapshot.lesson_numbers

    try:
        remaining = _run(action, config=config, cache=cache, class_name=class_name)
    except service.LessonNotFoundError:
        console.print(f"[red]No lesson numbered {lesson_number}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Deleted[/green] lesson {lesson_number}; remaining: {', '.join(remaining) or 'none'}")


@app.command()
def activities(
    category: Optional[str] = typer.Option(None, "--category", help="Only activities in this category."),
    config: Optional[Path] = ConfigOption,
    cache: Optional[Path] = CacheOption,
    class_name: Optional[str] = ClassOption,
    as_json: bool = JsonOption,
) -> None:
    """List the activity catalogue."""

    async def action(ctx: LessonContext) -> List[Dict[str, Any]]:
        return [
            {
                "id": activity.id,
                "name": activity.name,
                "category": activity.category,
                "lesson_number": activity.lesson_number,
                "minutes": activity.duration_minutes,
            }
            for activity in ctx.snapshot.activities
            if category is None or activity.category == category
        ]

    rows = _run(action, config=config, cache=cache, class_name=class_name)
    _emit(
        rows,
        as_json,
        ["Name", "Category", "Lesson", "Minutes"],
        ["name", "category", "lesson_number", "minutes"],
    )


@app.command()
def units(
    config: Optional[Path] = ConfigOption,
    cache: Optional[Path] = CacheOption,
    class_name: Optional[str] = ClassOption,
    as_json: bool = JsonOption,
) -> None:
    """List the teaching units of a class."""

    async def action(ctx: LessonContext) -> List[Dict[str, Any]]:
        return [
            {"id": unit.id, "name": unit.name, "lessons": unit.lesson_numbers, "term": unit.term}
            for unit in ctx.snapshot.units
        ]

    rows = _run(action, config=config, cache=cache, class_name=class_name)
    _emit(rows, as_json, ["Unit", "Name", "Lessons", "Term"], ["id", "name", "lessons", "term"])


@app.command("half-terms")
def half_terms(
    config: Optional[Path] = ConfigOption,
    cache: Optional[Path] = CacheOption,
    class_name: Optional[str] = ClassOption,
    as_json: bool = JsonOption,
) -> None:
    """List the six half-terms and the lessons assigned to each."""

    async def action(ctx: LessonContext) -> List[Dict[str, Any]]:
        return [
            {
                "id": term.id,
                "name": term.name,
                "months": term.months,
                "lessons": term.lessons,
                "complete": term.is_complete,
            }
            for term in ctx.snapshot.half_terms
        ]

    rows = _run(action, config=config, cache=cache, class_name=class_name)
    _emit(
        rows,
        as_json,
        ["Id", "Name", "Months", "Lessons", "Complete"],
        ["id", "name", "months", "lessons", "complete"],
    )


@app.command()
def history(
    all_classes: bool = typer.Option(False, "--all", help="Include changes to every class."),
    config: Optional[Path] = ConfigOption,
    cache: Optional[Path] = CacheOption,
    class_name: Optional[str] = ClassOption,
    as_json: bool = JsonOption,
) -> None:
    """Show the change journal for a class."""

    async def action(ctx: LessonContext) -> Optional[List[ChangeEvent]]:
        if ctx.journal.output_path is None:
            return None
        return ctx.journal.events(class_name=None if all_classes else ctx.class_name)

    events = _run(action, config=config, cache=cache, class_name=class_name)
    if events is None:
        console.print("[yellow]No journal_path configured; nothing is recorded.[/yellow]")
        raise typer.Exit(code=1)
    rows = [
        {
            "timestamp": event.timestamp.isoformat(timespec="seconds"),
            "stage": event.stage,
            "class_name": event.class_name or "",
            "message": event.message,
        }
        for event in events
    ]
    _emit(rows, as_json, ["When", "Stage", "Class", "Change"], ["timestamp", "stage", "class_name", "message"])


@app.command()
def export(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the snapshot to this JSON file."),
    config: Optional[Path] = ConfigOption,
    cache: Optional[Path] = CacheOption,
) -> None:
    """Dump every remote collection (requires a configured remote store)."""

    async def action(ctx: LessonContext) -> Dict[str, Any]:
        return await service.export_remote_snapshot(ctx)

    try:
        snapshot = _run(action, config=config, cache=cache, class_name=None)
    except RemoteNotConfiguredError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    payload = json.dumps(snapshot, indent=2, ensure_ascii=False)
    if output is None:
        typer.echo(payload)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(payload + "\n", encoding="utf-8")
    console.print(f"[green]Wrote[/green] remote snapshot to {output}")


if __name__ == "__main__":
    app()
