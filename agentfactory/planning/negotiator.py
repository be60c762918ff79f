"""Architect / Critic negotiation of the project plan."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from agentfactory.deadline import Phase
from agentfactory.errors import PlanningExhausted
from agentfactory.llm.base import APPROVAL_SENTINEL, AgentError
from agentfactory.planning.extraction import extract_json
from agentfactory.planning.models import Plan, PlanValidationError, parse_plan
from agentfactory.runtime import RunContext
from agentfactory.workspace import Scenario, detect_test_files, scan_file_tree

if TYPE_CHECKING:
    from agentfactory.config.settings import LogLevel

FEEDBACK_PREFIX = "\n\nCRITIC FEEDBACK: "
MAX_LOGGED_ERRORS = 5

_NUMBERED_ISSUE = re.compile(r"\d+\.\s+")


def count_issues(critique: str) -> int:
    """Number of numbered items (``1. ``, ``2. `` ...) in a critique."""
    return len(_NUMBERED_ISSUE.findall(critique))


class PlanNegotiator:
    """Drafts a plan with the architect and iterates until the critic approves.

    Every valid draft is persisted before it is critiqued, so an interrupted
    or exhausted negotiation leaves the latest draft on disk.
    """

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def _emit(
        self,
        event_type: str,
        summary: str,
        level: LogLevel = "info",
        data: dict[str, Any] | None = None,
        duration_ms: int | None = None,
    ) -> None:
        self.ctx.event_log.emit(
            Phase.PLAN.value, event_type, summary, data=data, level=level, duration_ms=duration_ms
        )

    async def negotiate(self, goal: str, mode: str, scenario: Scenario) -> Plan:
        """Return the approved plan, or raise PlanningExhausted."""
        ctx = self.ctx
        cycles = ctx.settings.planning_cycles
        verbose = ctx.settings.verbose_planning
        current_text = ctx.store.read_text() or "{}"
        feedback = ""

        file_tree = scan_file_tree(ctx.workspace) or "(empty)"
        test_files = "\n".join(detect_test_files(ctx.workspace)) or "(none)"

        for cycle in range(1, cycles + 1):
            ctx.checkpoint()
            self._emit(
                "plan.cycle",
                f"Planning cycle {cycle}/{cycles}",
                data={"cycle": cycle, "mode": mode},
            )

            # 1. Architect
            prompt = ctx.prompts.render(
                "architect",
                {
                    "GOAL": goal + (FEEDBACK_PREFIX + feedback if feedback else ""),
                    "CURRENT_PLAN": current_text,
                    "MODE": mode,
                    "SCENARIO": scenario.value,
                    "FILE_TREE": file_tree,
                    "TEST_FILES": test_files,
                },
            )
            # The architect may rewrite the plan file itself; keep the pre-cycle text.
            previous = ctx.store.read_text()
            stop = ctx.event_log.timer(Phase.PLAN.value, "Architect agent")
            try:
                result = await ctx.invoke(prompt)
            except AgentError as e:
                stop()
                self._emit(
                    "architect.error",
                    f"Architect failed: {e}",
                    level="warn",
                    data={"cycle": cycle, "exit_code": e.exit_code},
                )
                continue
            duration_ms = stop()
            if verbose:
                self._emit(
                    "architect.output", "Architect output", level="debug", data={"output": result.output}
                )

            extraction = extract_json(result.output, ctx.store.path)
            if verbose:
                self._emit(
                    "plan.extract",
                    f"Extracted plan JSON via {extraction.strategy}",
                    data={"strategy": extraction.strategy, "tool_call": extraction.tool_call_detected},
                )

            validation = parse_plan(extraction.json)
            if isinstance(validation, PlanValidationError):
                self._emit(
                    "plan.invalid",
                    "Invalid plan from architect, retrying",
                    level="error",
                    data={"errors": validation.errors[:MAX_LOGGED_ERRORS]},
                    duration_ms=duration_ms,
                )
                continue

            draft = validation.plan
            if previous is not None:
                error = ctx.store.backup(previous=previous)
                if error:
                    self._emit("plan.backup_failed", f"Plan backup failed: {error}", level="warn")
            ctx.store.save(draft)
            ctx.plan = draft
            current_text = draft.to_json()
            self._emit(
                "plan.draft",
                f"Architect drafted {len(draft.tasks)} task(s)",
                data={"tasks": len(draft.tasks)},
                duration_ms=duration_ms,
            )

            # 2. Critic
            ctx.checkpoint()
            prompt = ctx.prompts.render("critic", {"PLAN_CONTENT": current_text})
            stop = ctx.event_log.timer(Phase.PLAN.value, "Critic agent")
            try:
                critique = await ctx.invoke(prompt)
            except AgentError as e:
                stop()
                self._emit(
                    "critic.error",
                    f"Critic failed: {e}",
                    level="warn",
                    data={"cycle": cycle, "exit_code": e.exit_code},
                )
                continue
            duration_ms = stop()
            if verbose:
                self._emit(
                    "critic.output", "Critic output", level="debug", data={"output": critique.output}
                )

            if APPROVAL_SENTINEL in critique.output:
                self._emit("plan.approved", "Plan approved", data={"cycle": cycle}, duration_ms=duration_ms)
                return draft

            issues = count_issues(critique.output)
            self._emit(
                "plan.critique",
                f"Critic found {issues or 'some'} issue(s), refining",
                data={"issues": issues},
                duration_ms=duration_ms,
            )
            feedback = critique.output

        self._emit(
            "plan.exhausted",
            f"Failed to approve plan after {cycles} cycle(s)",
            level="error",
        )
        raise PlanningExhausted(cycles)
