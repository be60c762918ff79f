"""Run phases: PLAN (negotiate the plan) and EXECUTE (work through tasks)."""

from __future__ import annotations

from agentfactory.agents import VerificationLoop
from agentfactory.deadline import Phase
from agentfactory.errors import InvalidPlanError, VerificationExhausted
from agentfactory.planning.models import Plan, PlanValidationError, TaskStatus
from agentfactory.planning.negotiator import PlanNegotiator
from agentfactory.planning.scheduler import dependency_issues, select_next_task, stalled_tasks
from agentfactory.runtime import RunContext
from agentfactory.workspace import Scenario, architect_mode


class PlanPhase:
    """Negotiate a plan for the goal, or fall back to the existing plan."""

    async def run(self, ctx: RunContext, goal: str, scenario: Scenario) -> Plan | None:
        ctx.event_log.emit(
            phase=Phase.PLAN.value,
            event_type="phase.start",
            summary="Starting PLAN phase",
            data={"scenario": scenario.value},
        )
        ctx.deadline.advance_phase(Phase.PLAN)
        stop = ctx.event_log.timer(Phase.PLAN.value, "Planning phase")

        if ctx.settings.planning_cycles == 0:
            ctx.event_log.emit(
                phase=Phase.PLAN.value,
                event_type="phase.skipped",
                summary="Planning disabled (0 cycles); using existing plan",
            )
            validation = ctx.store.load()
            if isinstance(validation, PlanValidationError):
                return None
            ctx.plan = validation.plan
            return ctx.plan

        mode = architect_mode(ctx.store.path)
        plan = await PlanNegotiator(ctx).negotiate(goal, mode, scenario)
        stop()

        ctx.event_log.emit(
            phase=Phase.PLAN.value,
            event_type="phase.complete",
            summary=f"Plan approved: {len(plan.tasks)} tasks",
            data={"task_count": len(plan.tasks), "project": plan.project.name},
        )
        return plan


class ExecutePhase:
    """Schedule eligible tasks one at a time until none remain.

    The plan file is re-read before every scheduling decision so edits made
    by the agent or the user between tasks are picked up.
    """

    def __init__(self, verifier: VerificationLoop | None = None) -> None:
        self._verifier = verifier

    def _load(self, ctx: RunContext) -> Plan | None:
        if not ctx.store.exists():
            return None
        validation = ctx.store.load()
        if isinstance(validation, PlanValidationError):
            ctx.event_log.emit(
                phase=Phase.EXECUTE.value,
                event_type="plan.invalid",
                summary="Invalid plan file",
                data={"errors": validation.errors},
                level="error",
            )
            raise InvalidPlanError(validation.errors)
        return validation.plan

    async def run(self, ctx: RunContext) -> Plan | None:
        ctx.event_log.emit(
            phase=Phase.EXECUTE.value,
            event_type="phase.start",
            summary="Starting EXECUTE phase",
        )
        ctx.deadline.advance_phase(Phase.EXECUTE)
        verifier = self._verifier or VerificationLoop(ctx)
        warned: set[str] = set()

        while True:
            ctx.checkpoint()
            plan = self._load(ctx)
            if plan is None:
                ctx.event_log.emit(
                    phase=Phase.EXECUTE.value,
                    event_type="plan.missing",
                    summary="No plan file; nothing to execute",
                    level="warn",
                )
                return ctx.plan
            ctx.plan = plan

            issues = [i for i in dependency_issues(plan) if i not in warned]
            for issue in issues:
                ctx.event_log.emit(
                    phase=Phase.EXECUTE.value,
                    event_type="plan.dependency_warning",
                    summary=issue,
                    level="warn",
                )
            warned.update(issues)

            task = select_next_task(plan)
            if task is None:
                stalled = stalled_tasks(plan)
                if stalled:
                    ctx.event_log.emit(
                        phase=Phase.EXECUTE.value,
                        event_type="execute.stalled",
                        summary=f"{len(stalled)} task(s) can never become eligible",
                        data={"task_ids": [t.id for t in stalled]},
                        level="warn",
                    )
                else:
                    ctx.event_log.emit(
                        phase=Phase.EXECUTE.value,
                        event_type="execute.complete",
                        summary="All tasks completed",
                        data={"tasks": len(plan.tasks)},
                    )
                return plan

            ctx.event_log.emit(
                phase=Phase.EXECUTE.value,
                event_type="task.start",
                summary=f"Task #{task.id}: {task.title}",
                data={"task_id": task.id},
            )
            task.status = TaskStatus.IMPLEMENTATION
            ctx.store.save(plan)

            stop = ctx.event_log.timer(Phase.EXECUTE.value, f"Task {task.id}")
            result = await verifier.run(plan, task)
            stop()
            if not result.passed:
                ctx.event_log.emit(
                    phase=Phase.EXECUTE.value,
                    event_type="task.failed",
                    summary="Task failed verification limit. Stopping.",
                    data={"task_id": task.id, "cycles": result.cycles},
                    level="error",
                )
                raise VerificationExhausted(task.id, result.cycles)
