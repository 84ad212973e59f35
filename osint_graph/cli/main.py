"""Interactive CLI for incremental entity graph extraction using Typer and Rich."""

import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from osint_graph import __version__
from osint_graph.config.logging import configure_logging, get_logger
from osint_graph.config.settings import settings
from osint_graph.data_management.graph_stats import compute_graph_stats
from osint_graph.data_management.schemas import AnalysisTask, ExtractionResult, TaskStatus
from osint_graph.pipelines.analysis_pipeline import AnalysisPipeline

app = typer.Typer(
    help="OSINT entity graph CLI - sequential, context-aware entity extraction",
    add_completion=False,
)

console = Console()

logger = get_logger("cli")

STATUS_STYLES = {
    TaskStatus.PENDING: "yellow",
    TaskStatus.PROCESSING: "cyan",
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
    TaskStatus.CANCELLED: "dim",
}


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
) -> None:
    """Configure logging before any command runs."""
    configure_logging(level=log_level)


@app.command()
def status() -> None:
    """
    Display configuration.

    Shows the extraction backend, model parameters and logging settings.
    """
    logger.info("Displaying system status")

    table = Table(title="OSINT Graph Status", show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan", width=20)
    table.add_column("Status", style="green", width=15)
    table.add_column("Details", style="yellow")

    python_version = f"Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    table.add_row("Environment", "✓ Ready", python_version)

    if settings.extraction_backend == "gemini":
        configured = bool(settings.gemini_api_key)
        details = settings.gemini_model
    else:
        configured = bool(settings.extraction_api_url)
        details = settings.extraction_api_url
    backend_status = "✓ Configured" if configured else "⚠ Not Configured"
    table.add_row(f"Backend ({settings.extraction_backend})", backend_status, details)

    table.add_row(
        "Extraction",
        "✓ Active",
        f"{settings.extraction_model} (temperature: {settings.extraction_temperature}, "
        f"max tokens: {settings.extraction_max_tokens:,}, max text: {settings.max_text_length:,})",
    )
    table.add_row("Logging", "✓ Active", f"Level: {settings.log_level}, Format: {settings.log_format}")

    console.print(table)


@app.command()
def analyze(
    texts: Optional[List[str]] = typer.Argument(None, help="Text passages, analyzed in order"),
    documents: Optional[List[Path]] = typer.Option(
        None, "--document", "-d", exists=True, dir_okay=False, help="Document to analyze"
    ),
    images: Optional[List[Path]] = typer.Option(
        None, "--image", "-i", exists=True, dir_okay=False, help="Image to analyze"
    ),
    json_out: Optional[Path] = typer.Option(None, "--json-out", help="Write the cumulative graph as JSON"),
    show_stats: bool = typer.Option(False, "--stats", help="Show entity rankings"),
) -> None:
    """
    Queue every input, wait for the queue to drain and print the graph.

    Texts run first, then documents, then images. Each task sees the
    entities extracted by all tasks before it.
    """
    if not (texts or documents or images):
        console.print("[red]✗[/red] Nothing to analyze: pass text, --document or --image")
        raise typer.Exit(2)

    tasks, result = asyncio.run(_run_analysis(texts or [], documents or [], images or []))

    console.print(_tasks_table(tasks))
    console.print(_entities_table(result))
    console.print(_relationships_table(result))
    if show_stats:
        console.print(_stats_panel(result))

    if json_out:
        json_out.write_text(_dump(result), encoding="utf-8")
        console.print(f"[green]✓[/green] Graph written to {json_out}")

    failed = [task for task in tasks if task.status == TaskStatus.FAILED]
    if failed:
        logger.warning("Analysis finished with failures", failed=len(failed))
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Display version information."""
    console.print("[bold]OSINT Entity Graph[/bold]")
    console.print(f"Version: {__version__}")


async def _run_analysis(
    texts: List[str],
    documents: List[Path],
    images: List[Path],
) -> tuple[List[AnalysisTask], ExtractionResult]:
    async with AnalysisPipeline() as pipeline:
        for text in texts:
            pipeline.queue_text_analysis(text)
        for document in documents:
            pipeline.queue_document_analysis(document)
        for image in images:
            pipeline.queue_image_analysis(image)

        with console.status("[dim]Analyzing...[/dim]"):
            await pipeline.wait_until_idle()

        logger.info("Queue drained", **pipeline.queue.get_statistics())
        # Oldest first reads better in a terminal
        tasks = list(reversed(pipeline.queue.get_tasks()))
        return tasks, pipeline.queue.get_previous_results()


def _tasks_table(tasks: List[AnalysisTask]) -> Table:
    table = Table(title="Tasks", show_header=True, header_style="bold magenta")
    table.add_column("Task", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Input")
    table.add_column("Status")
    table.add_column("Details", style="yellow")
    for task in tasks:
        style = STATUS_STYLES[task.status]
        if task.result is not None:
            details = f"{len(task.result.entities)} entities, {len(task.result.relationships)} relationships"
        else:
            details = task.error or ""
        table.add_row(
            task.id,
            task.type.value,
            task.describe(),
            f"[{style}]{task.status.value}[/{style}]",
            details,
        )
    return table


def _entities_table(result: ExtractionResult) -> Table:
    table = Table(title=f"Entities ({len(result.entities)})", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Aliases")
    table.add_column("Summary", style="yellow")
    for entity in result.entities:
        table.add_row(
            entity.id,
            entity.name,
            entity.type.value,
            ", ".join(entity.aliases),
            entity.summary or "",
        )
    return table


def _relationships_table(result: ExtractionResult) -> Table:
    table = Table(
        title=f"Relationships ({len(result.relationships)})",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("Source", style="cyan")
    table.add_column("Target", style="cyan")
    table.add_column("Strength", justify="right", style="green")
    names = {entity.id: entity.name for entity in result.entities}
    for rel in result.relationships:
        table.add_row(
            names.get(rel.source, rel.source),
            names.get(rel.target, rel.target),
            f"{rel.strength:g}",
        )
    return table


def _stats_panel(result: ExtractionResult) -> Panel:
    stats = compute_graph_stats(result)
    lines = [
        "Types: " + ", ".join(f"{name}={count}" for name, count in stats.by_type.items()),
        "",
        "[bold]Strongest[/bold]",
    ]
    lines += [f"  {score.name} ({score.type.value}): {score.value:g}" for score in stats.strongest]
    lines += ["", "[bold]Most connected[/bold]"]
    lines += [f"  {score.name} ({score.type.value}): {score.value:g}" for score in stats.most_connected]
    return Panel("\n".join(lines), title="Graph Statistics", border_style="green")


def _dump(result: ExtractionResult) -> str:
    return json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False)


if __name__ == "__main__":
    app()
