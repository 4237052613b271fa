"""CLI entry point for reporank."""

import json
import logging
from datetime import datetime
from pathlib import Path

# Load .env file if it exists
from dotenv import load_dotenv
load_dotenv()

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from reporank.config import default_config, load_config
from reporank.engine.pipeline import RankingPipeline
from reporank.errors import ConfigurationError, RunTimedOut
from reporank.models.enums import FilterStatus, RunStatus
from reporank.models.schemas import RunResult, ensure_utc
from reporank.store.artifacts import ArtifactStore
from reporank.store.records import SourceRecordStore, read_input_file

app = typer.Typer(help="Multi-source repository scoring and ranking.")

console = Console()

RECORDS_FILE = "records.jsonl"

DATA_DIR_OPTION = typer.Option(
    Path("data"), "--data-dir", "-d", envvar="REPORANK_DATA_DIR", help="Data directory"
)

STATUS_STYLES = {
    FilterStatus.PASSED: "green",
    FilterStatus.WARNING: "yellow",
    FilterStatus.FAILED: "red",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config_or_exit(path: Path | None):
    try:
        return load_config(path) if path else default_config()
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _load_categories(path: Path) -> dict[str, str]:
    """Read the repository -> category map (JSON or YAML)."""
    text = path.read_text()
    data = yaml.safe_load(text) if path.suffix.lower() in (".yaml", ".yml") else json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping of repository to category")
    return {str(repo_id): str(category) for repo_id, category in data.items()}


@app.command()
def ingest(
    input_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON Lines or JSON file"),
    data_dir: Path = DATA_DIR_OPTION,
) -> None:
    """Append source records or observations to the record store."""
    try:
        records = read_input_file(input_file)
    except (ValueError, KeyError) as e:
        console.print(f"[red]Cannot read {input_file}: {e}[/red]")
        raise typer.Exit(1)

    store = SourceRecordStore(path=data_dir / RECORDS_FILE)
    added = store.add_many(records)
    repos = len({r.repository_id for r in records})
    console.print(f"[green]Ingested {added} records[/green] for {repos} repositories into {store.path}")


@app.command()
def run(
    categories: Path = typer.Option(
        ..., "--categories", "-c", exists=True, dir_okay=False, help="Repository -> category map"
    ),
    config_file: Path | None = typer.Option(
        None, "--config", envvar="REPORANK_CONFIG", help="Config file (JSON or YAML)"
    ),
    data_dir: Path = DATA_DIR_OPTION,
    workers: int | None = typer.Option(
        None, "--workers", "-w", envvar="REPORANK_WORKERS", min=1, help="Worker threads"
    ),
    budget: float | None = typer.Option(None, "--budget", min=0.0, help="Time budget in seconds"),
    as_of: datetime | None = typer.Option(None, "--as-of", help="Reference time for freshness"),
    top: int = typer.Option(20, "--top", "-n", help="Shortlist rows to show"),
) -> None:
    """Aggregate, score, filter and rank every known repository."""
    config = _load_config_or_exit(config_file)
    try:
        category_map = _load_categories(categories)
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Cannot read categories: {e}[/red]")
        raise typer.Exit(1)

    store = SourceRecordStore(path=data_dir / RECORDS_FILE)
    store.load()
    if len(store) == 0:
        console.print(f"[yellow]No source records in {store.path}[/yellow]")

    pipeline = RankingPipeline(config, data_dir=data_dir, max_workers=workers, time_budget=budget)
    pipeline.install_signal_handlers()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Ranking {len(store.repository_ids())} repositories...", total=None)
        try:
            result = pipeline.run(
                store.snapshot(),
                category_map,
                as_of=ensure_utc(as_of) if as_of else None,
            )
        except RunTimedOut as e:
            result = e.partial

    if result is None:
        raise typer.Exit(2)

    _print_result(result, top)
    console.print()
    console.print(f"[dim]Results saved to {data_dir / 'runs' / result.run_id}[/dim]")

    if result.status != RunStatus.COMPLETED:
        raise typer.Exit(2)


@app.command()
def show(
    run_id: str | None = typer.Argument(None, help="Run id (defaults to the latest run)"),
    data_dir: Path = DATA_DIR_OPTION,
    top: int = typer.Option(20, "--top", "-n", help="Shortlist rows to show"),
) -> None:
    """Show a stored run."""
    artifacts = ArtifactStore(data_dir)
    if run_id is None:
        runs = artifacts.list_runs()
        if not runs:
            console.print(f"[yellow]No runs in {artifacts.runs_dir}[/yellow]")
            raise typer.Exit(1)
        run_id = runs[-1]

    try:
        result = artifacts.load_run(run_id)
    except FileNotFoundError:
        console.print(f"[red]Run not found: {run_id}[/red]")
        raise typer.Exit(1)

    _print_result(result, top)


@app.command("validate-config")
def validate_config(
    config_file: Path = typer.Argument(..., help="Config file (JSON or YAML)"),
) -> None:
    """Validate a configuration file."""
    config = _load_config_or_exit(config_file)
    console.print(
        f"[green]✓ Valid[/green]: {len(config.categories)} categories, "
        f"ranking {config.ranking.value} ({config.ranking_scope.value})"
    )


def _print_result(result: RunResult, top: int) -> None:
    """Print run summary, shortlist and manifest."""
    quality = result.data_quality
    status_color = "green" if result.status == RunStatus.COMPLETED else "yellow"

    console.print()
    console.print(f"[bold]Run {result.run_id}[/bold] [{status_color}]{result.status.value}[/{status_color}]")
    console.print(
        f"  {quality.aggregated}/{quality.repositories} aggregated, "
        f"[red]{quality.failed}[/red] failed, algorithm {result.algorithm.value}"
    )
    if quality.mean_completeness is not None:
        console.print(
            f"  completeness {quality.mean_completeness:.2f}, "
            f"consistency {quality.mean_consistency:.2f}, "
            f"freshness {quality.mean_freshness:.2f}"
        )
    if result.incomplete:
        console.print(f"  [yellow]Incomplete:[/yellow] {', '.join(result.incomplete[:10])}")

    for selection in result.selections:
        table = Table(title=f"Shortlist ({selection.scope})")
        table.add_column("Rank", style="dim", width=5)
        table.add_column("Repository", style="cyan")
        table.add_column("Category")
        table.add_column("Overall", justify="right")
        table.add_column("Grade", justify="center")
        table.add_column("Status")
        table.add_column("Bucket")

        for entry in selection.selected[:top]:
            style = STATUS_STYLES[entry.status]
            table.add_row(
                str(entry.rank),
                entry.repository_id,
                entry.category,
                f"{entry.scores.overall:.3f}",
                entry.scores.grade,
                f"[{style}]{entry.status.value}[/{style}]",
                entry.bucket or "-",
            )

        console.print()
        console.print(table)
        counts = ", ".join(f"{name} {count}" for name, count in selection.bucket_counts.items())
        console.print(f"  [dim]Buckets: {counts}; {len(selection.excluded)} excluded[/dim]")

    if result.manifest:
        console.print()
        console.print(f"[bold]Manifest:[/bold] {len(result.errors)} errors, {len(result.warnings)} warnings")
        for entry in result.errors[:10]:
            console.print(f"  [red]x[/red] {entry.repository_id} ({entry.stage}) {entry.error_type}: {entry.message}")
        if len(result.errors) > 10:
            console.print(f"  [dim]... and {len(result.errors) - 10} more[/dim]")


@app.command()
def monitor(
    data_dir: Path = DATA_DIR_OPTION,
    interval: float = typer.Option(2.0, "--interval", "-i", help="Refresh interval in seconds"),
) -> None:
    """Launch the run monitoring dashboard.

    Opens an interactive TUI dashboard that displays metrics of the
    current or last run. Use this to watch a run from another terminal.

    Controls:
      q - quit
      r - manual refresh
    """
    from reporank.monitoring import run_dashboard

    run_dashboard(metrics_file=data_dir / ".metrics.json", refresh_interval=interval)


@app.command()
def version() -> None:
    """Show version information."""
    from reporank import __version__

    console.print(f"reporank v{__version__}")


if __name__ == "__main__":
    app()
