"""Main CLI entry point using Typer."""

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from taskhero import __version__
from taskhero.core.config import Settings, get_settings
from taskhero.core.errors import TaskHeroError
from taskhero.core.logging import configure_logging
from taskhero.scheduling.cascade import StatusCascade
from taskhero.scheduling.complexity import ComplexityScorer
from taskhero.scheduling.selector import NextItemSelector
from taskhero.scheduling.storage import InMemoryTaskRepository, JsonTaskRepository

app = typer.Typer(
    name="taskhero",
    help="TaskHero - task scheduling and dependency resolution",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()

STATUS_COLORS = {
    "pending": "yellow",
    "in-progress": "cyan",
    "done": "green",
    "completed": "green",
    "review": "magenta",
    "blocked": "red",
    "deferred": "dim",
    "cancelled": "dim",
    "archived": "dim",
}

PRIORITY_COLORS = {"high": "red", "medium": "yellow", "low": "green"}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]TaskHero[/bold blue] version {__version__}")
        raise typer.Exit()


def load_settings(project_path: Path | None) -> Settings:
    """Resolve settings, overriding the project root when given."""
    settings = get_settings()
    if project_path is not None:
        settings = settings.model_copy(update={"project_root": project_path})
    configure_logging(settings)
    return settings


def fail(error: Exception) -> None:
    """Print an error and exit with status 1."""
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(code=1)


def colored(value: str, colors: dict[str, str]) -> str:
    color = colors.get(value, "white")
    return f"[{color}]{value}[/{color}]"


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    TaskHero - pick the next task, score complexity, keep PRDs in sync.
    """
    pass


@app.command("next")
def next_item(
    project_path: Path | None = typer.Option(
        None,
        "--project",
        "-p",
        help="Path to project directory",
    ),
) -> None:
    """
    Show the next work item to pick up.

    Example:
        taskhero next -p ./my-project
    """
    settings = load_settings(project_path)
    repository = JsonTaskRepository(settings)

    try:
        items = repository.load_work_items()
        item = NextItemSelector().select(items, repository.load_complexity_report())
    except TaskHeroError as e:
        fail(e)
        return

    if item is None:
        console.print("[yellow]No eligible tasks found[/yellow]")
        console.print(
            "[dim]All pending tasks are blocked by dependencies, or everything is done.[/dim]"
        )
        return

    deps = ", ".join(str(dep) for dep in item.dependencies) or "None"
    body = (
        f"[bold]Title:[/bold]        {item.title}\n"
        f"[bold]Status:[/bold]       {colored(item.status.value, STATUS_COLORS)}\n"
        f"[bold]Priority:[/bold]     {colored(item.effective_priority.value, PRIORITY_COLORS)}\n"
        f"[bold]Dependencies:[/bold] {deps}"
    )
    if item.complexity_score is not None:
        body += f"\n[bold]Complexity:[/bold]   {item.complexity_score:g}/10"
    if item.description:
        body += f"\n\n{item.description}"

    kind = "Subtask" if item.is_subtask else "Task"
    console.print(
        Panel(
            body,
            title=f"[bold blue]Next {kind}: #{item.item_id}[/bold blue]",
            border_style="blue",
        )
    )


@app.command()
def complexity(
    item_id: int | None = typer.Option(
        None,
        "--id",
        "-i",
        help="Show the full breakdown for one task",
    ),
    threshold: int | None = typer.Option(
        None,
        "--threshold",
        "-t",
        help="Override the complexity threshold (0-100)",
    ),
    project_path: Path | None = typer.Option(
        None,
        "--project",
        "-p",
        help="Path to project directory",
    ),
) -> None:
    """
    Score tasks for complexity and show which would be expanded.

    Example:
        taskhero complexity
        taskhero complexity --id 4 --threshold 50
    """
    settings = load_settings(project_path)
    if threshold is not None:
        settings = settings.model_copy(update={"complexity_threshold": threshold})

    repository = JsonTaskRepository(settings)
    scorer = ComplexityScorer.from_settings(settings)
    items = repository.load_work_items()
    report = repository.load_complexity_report()

    if item_id is not None:
        item = next((t for t in items if t.id == item_id), None)
        if item is None:
            fail(TaskHeroError(f"Task {item_id} not found"))
            return

        analysis = scorer.score(item)
        table = Table(title=f"Complexity of task #{item.id}: {item.title}")
        table.add_column("Criterion", style="cyan")
        table.add_column("Score", justify="right")
        table.add_column("Weight", justify="right")
        weights = scorer.config.weights.model_dump()
        for name, value in analysis.breakdown.model_dump().items():
            table.add_row(name, str(value), f"{weights[name]}%")
        table.add_row("[bold]total[/bold]", f"[bold]{analysis.score}[/bold]", "")
        console.print(table)

        for reason in analysis.reasons:
            console.print(f"  - {reason}")
        verdict = "[green]complex[/green]" if scorer.is_complex(analysis) else "[dim]simple[/dim]"
        console.print(
            f"\nVerdict: {verdict} "
            f"(threshold {scorer.config.threshold}, "
            f"recommended subtasks {scorer.recommended_subtasks(analysis.score)})"
        )
        return

    table = Table(title="Complexity Assessment")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Method")
    table.add_column("Score", justify="right")
    table.add_column("Complex")
    table.add_column("Subtasks", justify="right")

    for item in items:
        assessment = scorer.assess(item, report)
        title = item.title[:40] + "..." if len(item.title) > 40 else item.title
        table.add_row(
            str(item.item_id),
            title,
            assessment.method.value,
            assessment.score_display,
            "[green]yes[/green]" if assessment.is_complex else "[dim]no[/dim]",
            str(assessment.recommended_subtasks),
        )

    console.print(table)


@app.command()
def cascade(
    item_ids: list[str] = typer.Option(
        ...,
        "--id",
        "-i",
        help="Task or subtask id whose status changed (repeatable)",
    ),
    status: str = typer.Option(
        ...,
        "--status",
        "-s",
        help="New status of the given items",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show the requirement changes without saving anything",
    ),
    project_path: Path | None = typer.Option(
        None,
        "--project",
        "-p",
        help="Path to project directory",
    ),
) -> None:
    """
    Set item statuses and update the linked requirement documents.

    Example:
        taskhero cascade --id 3 --id 5.2 --status done
    """
    settings = load_settings(project_path)
    json_repository = JsonTaskRepository(settings)

    try:
        if dry_run:
            repository = InMemoryTaskRepository(
                json_repository.load_work_items(),
                json_repository.load_requirements(),
            )
        else:
            repository = json_repository

        repository.set_status(item_ids, status)
        status_cascade = StatusCascade(
            repository,
            trigger_statuses=settings.cascade_trigger_statuses,
        )
        changes = status_cascade.cascade(item_ids, status, repository.load_work_items())
    except (TaskHeroError, ValueError) as e:
        fail(e)
        return

    prefix = "[yellow](dry run)[/yellow] " if dry_run else ""
    console.print(f"{prefix}Set {', '.join(item_ids)} to {colored(status, STATUS_COLORS)}")

    if not changes:
        console.print("[dim]No requirement status changes[/dim]")
        return

    table = Table(title="Requirement Status Changes")
    table.add_column("Requirement", style="cyan")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Linked Tasks", justify="right")
    for change in changes:
        table.add_row(
            change.requirement_id,
            colored(change.previous_status.value, STATUS_COLORS),
            colored(change.new_status.value, STATUS_COLORS),
            str(change.linked_tasks),
        )
    console.print(table)


if __name__ == "__main__":
    app()
