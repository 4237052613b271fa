"""TUI dashboard for monitoring reporank runs."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import Footer, Header, Static

from .metrics import MetricsCollector, RunMetrics

STAGES = [
    ("aggregate", "Aggregate"),
    ("score", "Score"),
    ("filter", "Filter"),
    ("rank", "Rank"),
    ("select", "Select"),
    ("save", "Save"),
]


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


def format_time(dt: datetime | None) -> str:
    if dt is None:
        return "--:--:--"
    return dt.strftime("%H:%M:%S")


def progress_text(metrics: RunMetrics) -> str:
    pct = metrics.progress_percent
    bar_width = 30
    filled = int(pct / 100 * bar_width)
    bar = "━" * filled + "╺" + "─" * max(0, bar_width - filled - 1)

    eta = format_duration(metrics.eta_seconds) if metrics.eta_seconds is not None else "--:--"
    if metrics.is_running:
        state = "[green]RUNNING[/green]"
    else:
        state = f"[yellow]{(metrics.status or 'idle').upper()}[/yellow]"

    return f"""[bold]PROGRESS[/bold]  {state}
[cyan]{bar}[/cyan] {pct:.0f}%
{metrics.completed_repositories}/{metrics.total_repositories} repositories

[bold]Run:[/bold]     {metrics.run_id or '-'}
[bold]Elapsed:[/bold] {format_duration(metrics.elapsed_seconds)}
[bold]ETA:[/bold]     {eta}"""


def results_text(metrics: RunMetrics) -> str:
    avg = f"{metrics.average_score:.3f}" if metrics.average_score is not None else "-"
    grades = metrics.grade_distribution
    grade_line = "  ".join(f"{g}:{grades.get(g, 0)}" for g in ["A", "B", "C", "D", "F"])

    return f"""[bold]RESULTS[/bold]

[green]✓ Passed:[/green]  {metrics.passed_count}
[yellow]⚠ Warning:[/yellow] {metrics.warning_count}
[red]✗ Failed:[/red]  {metrics.failed_count}   [red]Errors:[/red] {metrics.error_count}

[bold]Avg overall:[/bold] {avg}   [bold]Shortlist:[/bold] {metrics.shortlist_size}
[bold]Grades:[/bold] {grade_line}"""


def timing_text(metrics: RunMetrics) -> str:
    timings = metrics.stage_timings
    max_time = max(timings.values()) if timings else 1.0

    lines = ["[bold]STAGE TIMING[/bold] (avg)", ""]
    for key, name in STAGES:
        if key not in timings:
            lines.append(f"{name:10}       - [dim]{'░' * 12}[/dim]")
            continue
        t = timings[key]
        filled = int(t / max_time * 12) if max_time > 0 else 0
        bar = "█" * filled + "░" * (12 - filled)
        color = "green" if t < 0.1 else "yellow" if t < 1.0 else "red"
        lines.append(f"{name:10} {t * 1000:6.1f}ms [{color}]{bar}[/{color}]")
    return "\n".join(lines)


def errors_text(metrics: RunMetrics) -> str:
    lines = ["[bold]RECENT ERRORS[/bold]", ""]
    if not metrics.recent_errors:
        lines.append("[dim]No errors[/dim]")
    for error in list(metrics.recent_errors)[-5:]:
        msg = error.message[:50] + "..." if len(error.message) > 50 else error.message
        lines.append(
            f"[dim]{format_time(error.timestamp)}[/dim] [cyan]{error.repository:24}[/cyan] "
            f"[red]{error.error_type}[/red]: {msg}"
        )
    return "\n".join(lines)


def activity_text(metrics: RunMetrics) -> str:
    icons = {
        "passed": "[green]✓[/green]",
        "warning": "[yellow]⚠[/yellow]",
        "failed": "[red]✗[/red]",
    }
    lines = ["[bold]ACTIVITY LOG[/bold]", ""]
    if not metrics.activity_log:
        lines.append("[dim]No activity yet[/dim]")
    for entry in list(metrics.activity_log)[-10:]:
        icon = icons.get(entry.status, "[red]![/red]")
        if entry.score is not None:
            details = f"(overall: {entry.score:.3f}, grade: {entry.grade or '-'})"
        else:
            details = f"({entry.message[:30]})" if entry.message else "(error)"
        lines.append(
            f"[dim]{format_time(entry.timestamp)}[/dim]  {icon} [cyan]{entry.repository:28}[/cyan] {details}"
        )
    return "\n".join(lines)


class Panel(Static):
    """A text panel rendered from run metrics."""

    def __init__(self, formatter, **kwargs):
        super().__init__(**kwargs)
        self.formatter = formatter

    def update_metrics(self, metrics: RunMetrics) -> None:
        self.update(self.formatter(metrics))


class RunDashboard(App):
    """TUI dashboard for monitoring reporank runs."""

    CSS = """
    Screen {
        layout: vertical;
    }

    #top-row {
        height: 9;
        layout: horizontal;
    }

    #progress-panel {
        width: 1fr;
        border: solid green;
        padding: 0 1;
    }

    #results-panel {
        width: 1fr;
        border: solid cyan;
        padding: 0 1;
    }

    #timing-panel {
        height: 10;
        border: solid magenta;
        padding: 0 1;
    }

    #errors-panel {
        height: 8;
        border: solid red;
        padding: 0 1;
    }

    #activity-panel {
        height: 1fr;
        border: solid white;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
    ]

    def __init__(self, metrics_file: Path | None = None, refresh_interval: float = 2.0):
        super().__init__()
        self.collector = MetricsCollector(metrics_file or Path("data/.metrics.json"))
        self.refresh_interval = refresh_interval

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="top-row"):
            yield Panel(progress_text, id="progress-panel")
            yield Panel(results_text, id="results-panel")
        yield Panel(timing_text, id="timing-panel")
        yield Panel(errors_text, id="errors-panel")
        yield Panel(activity_text, id="activity-panel")
        yield Footer()

    def on_mount(self) -> None:
        self.refresh_metrics()
        self.set_interval(self.refresh_interval, self.refresh_metrics)

    def refresh_metrics(self) -> None:
        """Load metrics from file and update all panels."""
        metrics = self.collector.load()
        for panel in self.query(Panel):
            panel.update_metrics(metrics)

    def action_refresh(self) -> None:
        self.refresh_metrics()


def run_dashboard(metrics_file: Path | None = None, refresh_interval: float = 2.0) -> None:
    """Run the dashboard app."""
    RunDashboard(metrics_file=metrics_file, refresh_interval=refresh_interval).run()
