"""Main orchestrator: wires all phases together and owns the run lifecycle."""

from __future__ import annotations

import json
import signal
from pathlib import Path
from typing import Any

from rich.console import Console

from agentfactory.config.settings import FactorySettings
from agentfactory.deadline import Deadline, Phase, format_duration
from agentfactory.errors import FactoryError, PersistenceError, RunCancelled
from agentfactory.llm import create_runner
from agentfactory.llm.base import AgentRunner
from agentfactory.logging.events import EventLog, RunDir
from agentfactory.logging.redaction import Redactor
from agentfactory.phases import ExecutePhase, PlanPhase
from agentfactory.planning.store import PlanStore
from agentfactory.prompts import PromptLibrary
from agentfactory.runtime import RunContext, TokenTracker
from agentfactory.shutdown import CancellationToken, ShutdownController
from agentfactory.ui.console import ConsoleUI
from agentfactory.workspace import detect_scenario, prepare_workspace


class Orchestrator:
    """Orchestrates the full factory run lifecycle."""

    def __init__(
        self,
        settings: FactorySettings,
        console: Console | None = None,
        runner: AgentRunner | None = None,
    ) -> None:
        self.settings = settings
        self.ui = ConsoleUI(console)
        self._runner = runner
        self.token = CancellationToken()

    async def run(self, goal: str | None = None) -> int:
        """Execute a run. Returns the process exit code."""
        settings = self.settings
        workspace = Path(settings.project_dir).resolve()
        store = PlanStore(workspace)

        run_dir = RunDir(Path(settings.runs_dir))
        event_log = EventLog(
            run_dir,
            path=Path(settings.log_file) if settings.log_file else None,
            level=settings.log_level,
            ui=self.ui,
            quiet=settings.quiet,
            redactor=Redactor(settings.secrets()),
        )
        deadline = Deadline(settings.timeout)
        ctx = RunContext(
            settings=settings,
            workspace=workspace,
            store=store,
            runner=self._runner or create_runner(settings),
            prompts=PromptLibrary(Path(settings.prompts_dir)),
            event_log=event_log,
            token=self.token,
            deadline=deadline,
            ui=self.ui,
            tokens=TokenTracker(settings.model),
        )

        if not settings.quiet:
            self.ui.header(goal, settings.model, workspace)
        event_log.emit(
            phase=Phase.INIT.value,
            event_type="run.start",
            summary=f"Factory started: {goal or 'Resume'}",
            data={
                "goal": goal,
                "model": settings.model,
                "backend": "mock" if settings.mock_llm else settings.backend,
                "workspace": str(workspace),
                "timeout": settings.timeout,
            },
        )

        def on_signal(signum: signal.Signals) -> None:
            event_log.emit(
                phase=deadline.current_phase.value,
                event_type="run.signal",
                summary=f"Received {signum.name}; stopping at the next checkpoint",
                level="warn",
            )

        outcome = "Completed"
        exit_code = 0
        with ShutdownController(self.token, on_signal=on_signal):
            try:
                outcome = await self._run_phases(ctx, goal)
            except RunCancelled as e:
                exit_code = e.exit_code
                outcome = f"Stopped ({e.reason.value})"
                event_log.emit(
                    phase=Phase.SHUTDOWN.value,
                    event_type="run.cancelled",
                    summary=str(e),
                    data={"reason": e.reason.value},
                    level="info" if exit_code == 0 else "error",
                )
                if not self._flush(ctx):
                    exit_code = 1
            except PersistenceError as e:
                # The plan on disk may be inconsistent; do not write it again.
                exit_code = e.exit_code
                outcome = "Persistence failure"
                event_log.emit(
                    phase=Phase.SHUTDOWN.value,
                    event_type="run.persistence_error",
                    summary=f"Failed to persist plan: {e}",
                    level="error",
                )
            except FactoryError as e:
                exit_code = e.exit_code
                outcome = type(e).__name__
                event_log.emit(
                    phase=Phase.SHUTDOWN.value,
                    event_type="run.failed",
                    summary=str(e),
                    data={"type": type(e).__name__},
                    level="error",
                )
                if not self._flush(ctx):
                    exit_code = 1
            except Exception as e:
                exit_code = 1
                outcome = "Fatal error"
                event_log.emit(
                    phase=Phase.SHUTDOWN.value,
                    event_type="run.error",
                    summary=f"Fatal error: {e}",
                    data={"error": str(e), "type": type(e).__name__},
                    level="error",
                )
                if not self._flush(ctx):
                    exit_code = 1

        deadline.advance_phase(Phase.DONE)
        self._write_summary(ctx, run_dir, goal, exit_code, outcome)
        event_log.emit(
            phase=Phase.DONE.value,
            event_type="run.complete",
            summary=f"Run finished: {outcome}",
            data={
                "exit_code": exit_code,
                "run_dir": str(run_dir.path),
                "input_tokens": ctx.tokens.input_tokens,
                "output_tokens": ctx.tokens.output_tokens,
            },
        )
        event_log.close()

        # Show final summary, always
        self.ui.final_summary(
            exit_code=exit_code,
            outcome=outcome,
            plan=ctx.plan,
            workspace=workspace,
            run_dir=run_dir.path,
            elapsed=format_duration(deadline.elapsed()),
            input_tokens=ctx.tokens.input_tokens,
            output_tokens=ctx.tokens.output_tokens,
            cost_usd=ctx.tokens.cost_usd,
        )
        return exit_code

    async def _run_phases(self, ctx: RunContext, goal: str | None) -> str:
        settings = ctx.settings
        event_log = ctx.event_log

        # 1. DETECT
        ctx.deadline.advance_phase(Phase.DETECT)
        scenario = detect_scenario(
            ctx.workspace,
            has_goal=bool(goal),
            plan_path=ctx.store.path,
            force=settings.force_scenario,
        )
        event_log.emit(
            phase=Phase.DETECT.value,
            event_type="scenario.detected",
            summary=f"Scenario: {scenario.value}",
            data={"scenario": scenario.value, "forced": settings.force_scenario is not None},
        )

        if settings.dry_run:
            event_log.emit(
                phase=Phase.DETECT.value,
                event_type="run.dry_run",
                summary="Dry run; no agent will be invoked",
                data={
                    "model": settings.model,
                    "goal": goal,
                    "planning_cycles": settings.planning_cycles,
                    "verification_cycles": settings.verification_cycles,
                    "worker_iterations": settings.worker_iterations,
                    "timeout": settings.timeout,
                },
            )
            return "Dry run"

        error = await prepare_workspace(ctx.workspace)
        if error:
            event_log.emit(
                phase=Phase.DETECT.value,
                event_type="workspace.git_failed",
                summary=error,
                level="warn",
            )

        # 2. PLAN
        if goal:
            self._banner(ctx, Phase.PLAN, "Negotiating plan...")
            await PlanPhase().run(ctx, goal, scenario)
            if ctx.plan is not None and not settings.quiet:
                self.ui.plan_table(ctx.plan, title="Approved plan")
            if settings.plan_only:
                event_log.emit(
                    phase=Phase.PLAN.value,
                    event_type="run.plan_only",
                    summary="Plan-only mode; skipping execution",
                )
                return "Plan approved"

        # 3. EXECUTE
        self._banner(ctx, Phase.EXECUTE, "Executing tasks...")
        plan = await ExecutePhase().run(ctx)
        if plan is not None and any(not t.passes for t in plan.tasks):
            return "Stalled"
        return "Completed"

    def _banner(self, ctx: RunContext, phase: Phase, message: str) -> None:
        if not ctx.settings.quiet:
            self.ui.phase_banner(phase, message, ctx.deadline.format_remaining())

    def _flush(self, ctx: RunContext) -> bool:
        """Persist the last known plan snapshot on the way out. False on failure."""
        if ctx.plan is None:
            return True
        ctx.deadline.advance_phase(Phase.SHUTDOWN)
        try:
            ctx.store.save(ctx.plan)
        except PersistenceError as e:
            ctx.event_log.emit(
                phase=Phase.SHUTDOWN.value,
                event_type="plan.save_failed",
                summary=f"Failed to save state: {e}",
                level="error",
            )
            return False
        ctx.event_log.emit(
            phase=Phase.SHUTDOWN.value,
            event_type="plan.saved",
            summary=f"State saved to {ctx.store.path.name}",
        )
        return True

    def _write_summary(
        self,
        ctx: RunContext,
        run_dir: RunDir,
        goal: str | None,
        exit_code: int,
        outcome: str,
    ) -> None:
        plan = ctx.plan
        summary: dict[str, Any] = {
            "run_id": run_dir.run_id,
            "goal": goal,
            "exit_code": exit_code,
            "outcome": outcome,
            "elapsed_seconds": round(ctx.deadline.elapsed(), 3),
            "input_tokens": ctx.tokens.input_tokens,
            "output_tokens": ctx.tokens.output_tokens,
            "estimated_cost_usd": round(ctx.tokens.cost_usd, 6),
            "tasks_total": len(plan.tasks) if plan else 0,
            "tasks_passing": sum(1 for t in plan.tasks if t.passes) if plan else 0,
        }
        run_dir.summary_path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
