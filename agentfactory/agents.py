"""Worker and verification loops that drive the coding agent on one task."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass

from agentfactory.deadline import Phase
from agentfactory.llm.base import COMPLETION_MARKER, PASS_SENTINEL, AgentError
from agentfactory.planning.models import Plan, Task, TaskMetrics, TaskStatus
from agentfactory.runtime import RunContext

FIX_REQUEST_PREFIX = "\n\nFIX REQUEST: "


@dataclass
class WorkerResult:
    completed: bool
    iterations: int
    duration: float


@dataclass
class VerificationResult:
    passed: bool
    cycles: int
    feedback: str = ""


def quality_gate_text(plan: Plan) -> str:
    gate = plan.project.quality_gate
    commands = gate.commands() if gate else {}
    if not commands:
        return "none configured"
    return "; ".join(f"{name}: `{cmd}`" for name, cmd in commands.items())


class WorkerLoop:
    """Re-invokes the agent with the same prompt until it reports completion.

    A non-completion is not an error; the verifier has the final say.
    """

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    async def run(self, prompt: str, task_id: str = "") -> WorkerResult:
        ctx = self.ctx
        max_iterations = ctx.settings.worker_iterations
        start = time.monotonic()
        iterations = 0

        for iteration in range(1, max_iterations + 1):
            ctx.checkpoint()
            iterations = iteration
            ctx.event_log.emit(
                Phase.EXECUTE.value,
                "worker.iteration",
                f"Worker iteration {iteration}/{max_iterations}",
                data={"task_id": task_id, "iteration": iteration},
                level="debug",
            )
            try:
                result = await ctx.invoke(prompt)
            except AgentError as e:
                ctx.event_log.emit(
                    Phase.EXECUTE.value,
                    "worker.error",
                    f"Worker iteration {iteration} failed: {e}",
                    data={"task_id": task_id, "iteration": iteration, "error": str(e)},
                    level="warn",
                )
                continue

            if COMPLETION_MARKER in result.output:
                return WorkerResult(True, iteration, time.monotonic() - start)

        return WorkerResult(False, iterations, time.monotonic() - start)


class VerificationLoop:
    """Alternates worker runs and independent verification for one task.

    ``task`` must belong to ``plan``; every status change is persisted
    before the next agent call.
    """

    def __init__(self, ctx: RunContext, worker: WorkerLoop | None = None) -> None:
        self.ctx = ctx
        self.worker = worker or WorkerLoop(ctx)

    def _set_status(self, plan: Plan, task: Task, status: TaskStatus) -> None:
        task.status = status
        self.ctx.store.save(plan)

    async def run(self, plan: Plan, task: Task) -> VerificationResult:
        ctx = self.ctx
        max_cycles = ctx.settings.verification_cycles
        criteria = json.dumps(task.acceptance_criteria)
        test_command = plan.project.test_command or "(no test command configured)"
        gate = quality_gate_text(plan)

        feedback = ""
        start = time.monotonic()
        tokens_before = ctx.tokens.total
        cost_before = ctx.tokens.cost_usd

        for cycle in range(1, max_cycles + 1):
            ctx.checkpoint()
            self._set_status(plan, task, TaskStatus.IMPLEMENTATION)

            # 1. Worker
            ctx.event_log.emit(
                Phase.EXECUTE.value,
                "worker.start",
                f"Worker loop (attempt {cycle}/{max_cycles})",
                data={"task_id": task.id, "cycle": cycle},
            )
            description = task.description
            if feedback:
                description += FIX_REQUEST_PREFIX + feedback
            prompt = ctx.prompts.render(
                "worker",
                {
                    "TASK_ID": task.id,
                    "TASK_TITLE": task.title,
                    "TASK_DESCRIPTION": description,
                    "TASK_CRITERIA": criteria,
                    "TEST_COMMAND": test_command,
                    "QUALITY_GATE": gate,
                },
            )
            worker = await self.worker.run(prompt, task_id=task.id)
            if not worker.completed:
                ctx.event_log.emit(
                    Phase.EXECUTE.value,
                    "worker.incomplete",
                    "Worker did not complete task within iterations",
                    data={"task_id": task.id, "iterations": worker.iterations},
                    level="warn",
                    duration_ms=int(worker.duration * 1000),
                )

            # 2. Verifier
            ctx.checkpoint()
            self._set_status(plan, task, TaskStatus.VERIFICATION)
            prompt = ctx.prompts.render(
                "verifier",
                {
                    "TASK_ID": task.id,
                    "TASK_TITLE": task.title,
                    "TASK_CRITERIA": criteria,
                    "TEST_COMMAND": test_command,
                    "QUALITY_GATE": gate,
                },
            )
            stop = ctx.event_log.timer(Phase.EXECUTE.value, "Verifier agent")
            try:
                verdict = await ctx.invoke(prompt)
            except AgentError as e:
                stop()
                ctx.event_log.emit(
                    Phase.EXECUTE.value,
                    "verifier.error",
                    f"Verifier failed: {e}",
                    data={"task_id": task.id, "cycle": cycle},
                    level="warn",
                )
                continue
            duration_ms = stop()

            if PASS_SENTINEL in verdict.output:
                task.passes = True
                task.status = TaskStatus.COMPLETED
                task.metrics = TaskMetrics(
                    tokens_used=ctx.tokens.total - tokens_before,
                    estimated_cost_usd=round(ctx.tokens.cost_usd - cost_before, 6),
                    duration_seconds=round(time.monotonic() - start, 3),
                )
                error = ctx.store.backup()
                if error:
                    ctx.event_log.emit(
                        Phase.EXECUTE.value,
                        "plan.backup_failed",
                        f"Plan backup failed: {error}",
                        level="warn",
                    )
                ctx.store.save(plan)
                ctx.event_log.emit(
                    Phase.EXECUTE.value,
                    "verify.passed",
                    f"Task {task.id} verified",
                    data={"task_id": task.id, "cycle": cycle},
                    duration_ms=duration_ms,
                )
                return VerificationResult(True, cycle)

            ctx.event_log.emit(
                Phase.EXECUTE.value,
                "verify.failed",
                f"Verification failed for task {task.id}",
                data={"task_id": task.id, "cycle": cycle},
                level="warn",
                duration_ms=duration_ms,
            )
            feedback = verdict.output

        self._set_status(plan, task, TaskStatus.FAILED)
        return VerificationResult(False, max_cycles, feedback)
