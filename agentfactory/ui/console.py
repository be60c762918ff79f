"""Rich console output for factory runs."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from agentfactory import __version__
from agentfactory.deadline import Phase

if TYPE_CHECKING:
    from agentfactory.planning.models import Plan

LEVEL_STYLES: dict[str, tuple[str, str]] = {
    "debug": ("dim", "·"),
    "info": ("cyan", "ℹ"),
    "warn": ("yellow", "⚠"),
    "error": ("red", "✗"),
}

STATUS_STYLES: dict[str, str] = {
    "pending": "white",
    "implementation": "yellow",
    "verification": "magenta",
    "completed": "green",
    "failed": "red",
}


class ConsoleUI:
    """Rich-powered console output for factory runs."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def header(self, goal: str | None, model: str, workspace: Path) -> None:
        self.console.print(
            Panel(
                f"[bold white]{escape(goal or 'Resume existing plan')}[/bold white]\n"
                f"Model: [cyan]{escape(model)}[/cyan]\n"
                f"Workspace: [cyan]{escape(str(workspace))}[/cyan]",
                title=f"[bold blue]agentfactory[/bold blue] v{__version__}",
                border_style="blue",
            )
        )

    def phase_banner(self, phase: Phase, message: str, remaining: str) -> None:
        colors = {
            Phase.DETECT: "blue",
            Phase.PLAN: "cyan",
            Phase.EXECUTE: "green",
            Phase.SHUTDOWN: "red",
        }
        color = colors.get(phase, "white")
        self.console.print(
            f"\n[{color} bold]▶ [{phase.value}][/{color} bold] {escape(message)} "
            f"[dim]({remaining} remaining)[/dim]"
        )

    def log_event(
        self,
        level: str,
        summary: str,
        data: dict[str, Any] | None = None,
        duration_ms: int | None = None,
        show_data: bool = False,
    ) -> None:
        """Render one event line: time, level icon, message, duration."""
        style, icon = LEVEL_STYLES.get(level, ("white", "•"))
        line = (
            f"[dim]{datetime.now().strftime('%H:%M:%S')}[/dim] "
            f"[{style}]{icon} {escape(summary)}[/{style}]"
        )
        if duration_ms is not None:
            line += f" [dim]({_format_ms(duration_ms)})[/dim]"
        if show_data and data:
            line += f" [dim]{escape(json.dumps(data, default=str))}[/dim]"
        self.console.print(line, highlight=False)

    def plan_table(self, plan: Plan, title: str = "Plan") -> None:
        table = Table(title=f"{title}: {plan.project.name}", show_header=True, header_style="bold")
        table.add_column("ID", style="cyan")
        table.add_column("Title")
        table.add_column("Depends on", style="dim")
        table.add_column("Status", justify="center")
        table.add_column("Passes", justify="center")

        for task in plan.tasks:
            style = STATUS_STYLES.get(task.status.value, "white")
            table.add_row(
                escape(task.id),
                escape(task.title),
                escape(", ".join(task.dependencies)) or "-",
                f"[{style}]{task.status.value}[/{style}]",
                "[green]✓[/green]" if task.passes else "[dim]·[/dim]",
            )

        self.console.print(table)

    def dependency_warnings(self, issues: list[str]) -> None:
        for issue in issues:
            self.console.print(f"  [yellow]⚠[/yellow] {escape(issue)}")

    def final_summary(
        self,
        exit_code: int,
        outcome: str,
        plan: Plan | None,
        workspace: Path,
        run_dir: Path,
        elapsed: str,
        input_tokens: int,
        output_tokens: int,
        cost_usd: float,
    ) -> None:
        """Show the run summary. Always displayed."""
        border = "green" if exit_code == 0 else "red"
        status = (
            f"[bold green]{escape(outcome)}[/bold green]"
            if exit_code == 0
            else f"[bold red]{escape(outcome)}[/bold red]"
        )

        lines = [f"  Status:      {status}"]
        if plan is not None:
            done = sum(1 for t in plan.tasks if t.passes)
            lines.append(f"  Project:     [bold]{escape(plan.project.name)}[/bold]")
            lines.append(f"  Tasks:       {done}/{len(plan.tasks)} passing")
        lines.append(f"  Elapsed:     {elapsed}")
        lines.append(f"  Tokens:      {input_tokens:,} in / {output_tokens:,} out (${cost_usd:.4f})")
        lines.append("")
        lines.append(f"  Workspace:   [cyan]{escape(str(workspace))}[/cyan]")
        lines.append(f"  Event log:   [cyan]{escape(str(run_dir / 'events.jsonl'))}[/cyan]")

        self.console.print(
            Panel(
                "\n".join(lines),
                title=f"[bold]agentfactory[/bold] exit {exit_code}",
                border_style=border,
                padding=(1, 2),
            )
        )


def _format_ms(ms: int) -> str:
    if ms < 1000:
        return f"{ms}ms"
    return f"{round(ms / 100) / 10}s"
