"""Additional CLI commands for TaskHero."""

from pathlib import Path

import typer
from rich.table import Table

from taskhero.cli.main import (
    PRIORITY_COLORS,
    STATUS_COLORS,
    app,
    colored,
    console,
    fail,
    load_settings,
)
from taskhero.core.errors import TaskHeroError
from taskhero.scheduling.cascade import requirement_stats
from taskhero.scheduling.graph import DependencyGraph
from taskhero.scheduling.selector import NextItemSelector
from taskhero.scheduling.storage import JsonTaskRepository


@app.command()
def ready(
    project_path: Path | None = typer.Option(
        None,
        "--project",
        "-p",
        help="Path to project directory",
    ),
) -> None:
    """
    List every eligible work item in selection order.
    """
    settings = load_settings(project_path)
    items = JsonTaskRepository(settings).load_work_items()

    try:
        graph = DependencyGraph(items)
        graph.validate()
        selector = NextItemSelector()
        candidates = selector.subtask_candidates(graph) + selector.top_level_candidates(graph)
    except TaskHeroError as e:
        fail(e)
        return

    if not candidates:
        console.print("[dim]No eligible tasks[/dim]")
        return

    table = Table(title="Ready Work Items")
    table.add_column("#", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("Dependencies")

    for rank, item in enumerate(candidates, start=1):
        deps = ", ".join(str(dep) for dep in item.dependencies) or "-"
        table.add_row(
            str(rank),
            str(item.item_id),
            item.title,
            colored(item.status.value, STATUS_COLORS),
            colored(item.effective_priority.value, PRIORITY_COLORS),
            deps[:30] + "..." if len(deps) > 30 else deps,
        )

    console.print(table)


@app.command()
def validate(
    project_path: Path | None = typer.Option(
        None,
        "--project",
        "-p",
        help="Path to project directory",
    ),
) -> None:
    """
    Check that every dependency reference resolves.
    """
    settings = load_settings(project_path)
    items = JsonTaskRepository(settings).load_work_items()

    try:
        problems = DependencyGraph(items).find_problems()
    except TaskHeroError as e:
        fail(e)
        return

    if not problems:
        console.print("[green]All dependencies are valid[/green]")
        return

    console.print(f"[bold red]Found {len(problems)} invalid dependencies:[/bold red]")
    for problem in problems:
        console.print(f"  - {problem}")
    raise typer.Exit(code=1)


@app.command()
def prds(
    project_path: Path | None = typer.Option(
        None,
        "--project",
        "-p",
        help="Path to project directory",
    ),
) -> None:
    """
    Show requirement documents with live task statistics.
    """
    settings = load_settings(project_path)
    repository = JsonTaskRepository(settings)
    items = repository.load_work_items()
    requirements = repository.load_requirements()

    if not requirements:
        console.print("[dim]No requirement documents found[/dim]")
        return

    table = Table(title="Requirement Documents")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="bold")
    table.add_column("Status")
    table.add_column("Tasks", justify="right")
    table.add_column("Done", justify="right")
    table.add_column("Progress", justify="right")

    for requirement in requirements:
        stats = requirement_stats(requirement, items)
        table.add_row(
            requirement.id,
            requirement.title,
            colored(requirement.status.value, STATUS_COLORS),
            str(stats.total_tasks),
            str(stats.completed_tasks),
            f"{stats.completion_percentage}%",
        )

    console.print(table)


@app.command()
def config(
    show: bool = typer.Option(
        False,
        "--show",
        help="Show current configuration",
    ),
) -> None:
    """
    View TaskHero configuration.
    """
    if not show:
        console.print("Use --show to view configuration")
        return

    settings = load_settings(None)

    table = Table(title="Current Configuration")
    table.add_column("Setting")
    table.add_column("Value")

    table.add_row("Log Level", settings.log_level)
    table.add_row("Debug Mode", str(settings.debug))
    table.add_row("Project Root", str(settings.project_root))
    table.add_row("Tasks File", str(settings.tasks_path))
    table.add_row("Requirements File", str(settings.requirements_path))
    table.add_row("Complexity Report", str(settings.complexity_report_path))
    table.add_row("Complexity Threshold", str(settings.complexity_threshold))
    table.add_row("Analysis Threshold", f"{settings.analysis_threshold:g}/10")
    table.add_row("Default Subtasks", str(settings.default_subtasks))
    table.add_row("Auto Expand", str(settings.auto_expand))
    table.add_row("Analysis Timeout", f"{settings.analysis_timeout:g}s")
    table.add_row("Expansion Timeout", f"{settings.expansion_timeout:g}s")
    table.add_row("Cascade Triggers", ", ".join(settings.cascade_trigger_statuses))

    console.print(table)
