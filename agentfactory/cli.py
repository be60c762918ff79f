"""CLI entry point using Typer."""

from __future__ import annotations

import asyncio
import os
import shutil
import sys
from enum import StrEnum
from pathlib import Path

import typer
from rich.console import Console

from agentfactory import __version__
from agentfactory.workspace import Scenario

app = typer.Typer(
    name="agentfactory",
    help="Plan and build software projects by orchestrating a coding agent",
    no_args_is_help=True,
)
console = Console()


class LogLevelOption(StrEnum):
    debug = "debug"
    info = "info"
    warn = "warn"
    error = "error"


@app.command()
def run(
    goal: str = typer.Argument(None, help="What to build. Omit to resume the existing plan."),
    model: str = typer.Option(None, "--model", "-m", help="Agent model id"),
    base_url: str = typer.Option(None, "--base-url", help="OpenAI-compatible API base URL"),
    backend: str = typer.Option(None, "--backend", "-b", help="Agent backend (opencode|openai|anthropic)"),
    planning_cycles: int = typer.Option(None, "--planning-cycles", help="Max architect/critic cycles"),
    verify_cycles: int = typer.Option(None, "--verify-cycles", help="Max verification cycles per task"),
    worker_iters: int = typer.Option(None, "--worker-iters", help="Max worker iterations per cycle"),
    timeout: int = typer.Option(None, "--timeout", "-t", help="Global timeout in seconds (0 disables)"),
    max_cost: float = typer.Option(None, "--max-cost", help="Stop once estimated cost reaches this USD amount"),
    project_dir: Path = typer.Option(None, "--project-dir", "-d", help="Workspace for the generated project"),
    prompts_dir: Path = typer.Option(None, "--prompts-dir", help="Directory with prompt templates"),
    log_file: Path = typer.Option(None, "--log-file", help="Write the JSONL event log here"),
    log_level: LogLevelOption = typer.Option(None, "--log-level", "-l", help="Minimum log level"),
    scenario: Scenario = typer.Option(None, "--scenario", help="Override scenario detection"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would run, invoke no agent"),
    plan_only: bool = typer.Option(False, "--plan", help="Stop after the plan is approved"),
    mock_llm: bool = typer.Option(False, "--mock-llm", help="Use a canned agent response (testing)"),
    verbose_planning: bool = typer.Option(False, "--verbose-planning", help="Log raw planning output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="No console output except the summary"),
) -> None:
    """Plan a goal with the architect and critic, then implement it task by task."""
    from agentfactory.config.settings import load_settings

    try:
        settings = load_settings(
            model=model,
            base_url=base_url,
            backend=backend,
            planning_cycles=planning_cycles,
            verification_cycles=verify_cycles,
            worker_iterations=worker_iters,
            timeout=timeout,
            max_cost=max_cost,
            project_dir=str(project_dir) if project_dir else None,
            prompts_dir=str(prompts_dir) if prompts_dir else None,
            log_file=str(log_file) if log_file else None,
            log_level=log_level.value if log_level else None,
            force_scenario=scenario,
            # Unset flags fall through to the environment
            dry_run=dry_run or None,
            plan_only=plan_only or None,
            mock_llm=mock_llm or None,
            verbose_planning=verbose_planning or None,
            quiet=quiet or None,
        )
    except ValueError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1) from None

    from agentfactory.orchestrator import Orchestrator

    orchestrator = Orchestrator(settings, console=console)
    exit_code = asyncio.run(orchestrator.run(goal or None))
    raise typer.Exit(exit_code)


@app.command()
def status(
    project_dir: Path = typer.Option(None, "--project-dir", "-d", help="Workspace to inspect"),
) -> None:
    """Show the persisted plan and task progress."""
    from agentfactory.config.settings import load_settings
    from agentfactory.planning.models import PlanValidationError
    from agentfactory.planning.scheduler import dependency_issues, select_next_task
    from agentfactory.planning.store import PlanStore
    from agentfactory.ui.console import ConsoleUI

    if project_dir is None:
        try:
            project_dir = Path(load_settings().project_dir)
        except ValueError as e:
            console.print(f"[red]Configuration error:[/red] {e}")
            raise typer.Exit(1) from None

    store = PlanStore(project_dir)
    if not store.exists():
        console.print(f"[yellow]No plan found at {store.path}[/yellow]")
        raise typer.Exit(1)

    validation = store.load()
    if isinstance(validation, PlanValidationError):
        console.print(f"[red]Invalid plan file {store.path}:[/red]")
        for error in validation.errors:
            console.print(f"  • {error}")
        raise typer.Exit(1)

    plan = validation.plan
    ui = ConsoleUI(console)
    ui.plan_table(plan)
    ui.dependency_warnings(dependency_issues(plan))

    done = sum(1 for t in plan.tasks if t.passes)
    next_task = select_next_task(plan)
    console.print(f"\n  {done}/{len(plan.tasks)} tasks passing")
    if next_task is not None:
        console.print(f"  Next: [cyan]{next_task.id}[/cyan] {next_task.title}")


@app.command()
def init(
    prompts_dir: Path = typer.Option(Path("prompts"), "--prompts-dir", help="Where to put the templates"),
) -> None:
    """Copy the default prompt templates for customization."""
    from agentfactory.prompts import install_templates

    written = install_templates(prompts_dir)
    for path in written:
        console.print(f"[green]Created {path}[/green]")
    if not written:
        console.print(f"[dim]All templates already exist in {prompts_dir}[/dim]")


@app.command()
def doctor() -> None:
    """Check environment for agentfactory requirements."""
    console.print(f"[bold]agentfactory doctor[/bold] v{__version__}\n")

    checks = []

    # Python version
    v = sys.version_info
    ok = v >= (3, 12)
    checks.append(("Python ≥ 3.12", ok, f"{v.major}.{v.minor}.{v.micro}"))

    # Git
    git_ok = shutil.which("git") is not None
    checks.append(("git", git_ok, shutil.which("git") or "not found"))

    # opencode, the default backend
    from dotenv import load_dotenv

    load_dotenv()
    binary = os.environ.get("FACTORY_OPENCODE_BINARY", "opencode")
    opencode_path = shutil.which(binary)
    checks.append(("opencode (default backend)", opencode_path is not None, opencode_path or "not found"))

    # API keys, check env vars and .env file
    has_openai = bool(os.environ.get("FACTORY_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY"))
    has_anthropic = bool(
        os.environ.get("FACTORY_ANTHROPIC_API_KEY") or os.environ.get("ANTHROPIC_API_KEY")
    )
    checks.append(("OpenAI API key (optional)", has_openai, "set" if has_openai else "not set"))
    checks.append(("Anthropic API key (optional)", has_anthropic, "set" if has_anthropic else "not set"))

    for name, ok, detail in checks:
        icon = "[green]✓[/green]" if ok else "[red]✗[/red]"
        detail_str = f" ({detail})" if detail else ""
        console.print(f"  {icon} {name}{detail_str}")

    all_ok = all(ok for name, ok, _ in checks if "optional" not in name)
    console.print()
    if all_ok:
        console.print("[green]All checks passed![/green]")
    else:
        console.print("[yellow]Some checks failed. Fix the issues above.[/yellow]")


def main() -> None:
    app()
