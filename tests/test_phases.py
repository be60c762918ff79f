"""Tests for the PLAN and EXECUTE phases."""

from __future__ import annotations

import json
from collections.abc import Callable

import pytest
from conftest import RoleRunner, ScriptedRunner, plan_data, task_data

from agentfactory.errors import InvalidPlanError, VerificationExhausted
from agentfactory.llm.base import COMPLETION_MARKER, PASS_SENTINEL
from agentfactory.planning.models import Plan, TaskStatus, ValidPlan
from agentfactory.phases import ExecutePhase, PlanPhase
from agentfactory.runtime import RunContext
from agentfactory.workspace import Scenario

DONE = f"Done.\n{COMPLETION_MARKER}"


def _events(ctx: RunContext, event_type: str) -> list[dict]:
    lines = ctx.event_log.path.read_text().strip().split("\n")
    events = [json.loads(line) for line in lines if line]
    return [e for e in events if e["type"] == event_type]


def _task_ids(prompts: list[str]) -> list[str]:
    ids = []
    for prompt in prompts:
        for task_id in ("T1", "T2", "T3"):
            if f"Implement task **{task_id}:" in prompt:
                ids.append(task_id)
    return ids


@pytest.mark.asyncio
class TestExecutePhase:
    async def test_runs_tasks_in_dependency_order(
        self, make_ctx: Callable[..., RunContext]
    ) -> None:
        plan = Plan.model_validate(
            plan_data(task_data("T3", ["T2"]), task_data("T2", ["T1"]), task_data("T1"))
        )
        runner = RoleRunner(worker=DONE, verifier=PASS_SENTINEL)
        ctx = make_ctx(runner, plan=plan)

        result = await ExecutePhase().run(ctx)

        assert result is not None
        assert all(t.passes for t in result.tasks)
        assert _task_ids(runner.runners["worker"].prompts) == ["T1", "T2", "T3"]
        assert len(_events(ctx, "execute.complete")) == 1

    async def test_resume_skips_passing_tasks(self, make_ctx: Callable[..., RunContext]) -> None:
        plan = Plan.model_validate(
            plan_data(task_data("T1", passes=True), task_data("T2", ["T1"]))
        )
        runner = RoleRunner(worker=DONE, verifier=PASS_SENTINEL)
        ctx = make_ctx(runner, plan=plan)

        await ExecutePhase().run(ctx)

        assert _task_ids(runner.runners["worker"].prompts) == ["T2"]

    async def test_invalid_plan_raises(self, make_ctx: Callable[..., RunContext]) -> None:
        runner = ScriptedRunner(default=DONE)
        ctx = make_ctx(runner)
        ctx.store.path.write_text('{"project": {}, "tasks": "nope"}')

        with pytest.raises(InvalidPlanError):
            await ExecutePhase().run(ctx)
        assert runner.prompts == []

    async def test_missing_plan_is_a_no_op(self, make_ctx: Callable[..., RunContext]) -> None:
        runner = ScriptedRunner(default=DONE)
        ctx = make_ctx(runner)

        result = await ExecutePhase().run(ctx)

        assert result is None
        assert runner.prompts == []
        assert _events(ctx, "plan.missing")[0]["level"] == "warn"

    async def test_exhaustion_stops_the_run(
        self, make_ctx: Callable[..., RunContext], sample_plan: Plan
    ) -> None:
        runner = RoleRunner(worker=DONE, verifier="Tests fail")
        ctx = make_ctx(runner, plan=sample_plan, verification_cycles=2)

        with pytest.raises(VerificationExhausted) as exc_info:
            await ExecutePhase().run(ctx)

        assert exc_info.value.task_id == "T1"
        assert exc_info.value.cycles == 2
        on_disk = ctx.store.load()
        assert isinstance(on_disk, ValidPlan)
        statuses = [t.status for t in on_disk.plan.tasks]
        assert statuses == [TaskStatus.FAILED, TaskStatus.PENDING, TaskStatus.PENDING]

    async def test_stalls_on_unsatisfiable_dependencies(
        self, make_ctx: Callable[..., RunContext]
    ) -> None:
        plan = Plan.model_validate(
            plan_data(
                task_data("T1"),
                task_data("T2", ["T9"]),
                task_data("T3", ["T4"]),
                task_data("T4", ["T3"]),
            )
        )
        runner = RoleRunner(worker=DONE, verifier=PASS_SENTINEL)
        ctx = make_ctx(runner, plan=plan)

        result = await ExecutePhase().run(ctx)

        assert result is not None
        assert [t.id for t in result.tasks if t.passes] == ["T1"]
        warnings = _events(ctx, "plan.dependency_warning")
        assert len(warnings) == 2
        stalled = _events(ctx, "execute.stalled")
        assert stalled[0]["data"]["task_ids"] == ["T2", "T3", "T4"]
        assert _events(ctx, "execute.complete") == []


@pytest.mark.asyncio
class TestPlanPhase:
    async def test_negotiates_new_plan(self, make_ctx: Callable[..., RunContext]) -> None:
        draft = json.dumps(plan_data(task_data("T1")))
        runner = RoleRunner(architect=f"```json\n{draft}\n```", critic="NO_CRITICAL_ISSUES")
        ctx = make_ctx(runner)

        plan = await PlanPhase().run(ctx, "Build it", Scenario.NEW_PROJECT)

        assert plan is not None
        assert [t.id for t in plan.tasks] == ["T1"]
        assert "Mode: NEW_PROJECT" in runner.runners["architect"].prompts[0]
        assert len(_events(ctx, "phase.complete")) == 1

    async def test_zero_cycles_uses_existing_plan(
        self, make_ctx: Callable[..., RunContext], sample_plan: Plan
    ) -> None:
        runner = ScriptedRunner()
        ctx = make_ctx(runner, plan=sample_plan, planning_cycles=0)
        ctx.plan = None

        plan = await PlanPhase().run(ctx, "Build it", Scenario.RESUME)

        assert plan == sample_plan
        assert ctx.plan == sample_plan
        assert runner.prompts == []

    async def test_zero_cycles_without_plan(self, make_ctx: Callable[..., RunContext]) -> None:
        runner = ScriptedRunner()
        ctx = make_ctx(runner, planning_cycles=0)

        assert await PlanPhase().run(ctx, "Build it", Scenario.NEW_PROJECT) is None
        assert runner.prompts == []
