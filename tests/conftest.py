"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from agentfactory.config.settings import FactorySettings
from agentfactory.deadline import Deadline
from agentfactory.llm.base import AgentResult, Usage
from agentfactory.logging.events import EventLog, RunDir
from agentfactory.planning.models import Plan
from agentfactory.planning.store import PlanStore
from agentfactory.prompts import PromptLibrary
from agentfactory.runtime import RunContext, TokenTracker
from agentfactory.shutdown import CancellationToken

Response = str | Exception | Callable[[str], str]


class ScriptedRunner:
    """Fake agent runner that replays canned responses in order.

    An Exception in the script is raised instead of returned. Once the
    script is exhausted ``default`` is returned.
    """

    def __init__(self, responses: list[Response] | None = None, default: str = "") -> None:
        self.model = "scripted"
        self._responses = list(responses or [])
        self.default = default
        self.prompts: list[str] = []
        self.cwds: list[Path] = []

    async def run(self, prompt: str, cwd: Path) -> AgentResult:
        self.prompts.append(prompt)
        self.cwds.append(cwd)
        item = self._responses.pop(0) if self._responses else self.default
        if isinstance(item, Exception):
            raise item
        if callable(item):
            item = item(prompt)
        return AgentResult(output=item, usage=Usage(input_tokens=10, output_tokens=5))


class RoleRunner:
    """Fake runner that answers according to which prompt template it receives."""

    ROLES = {
        "architect": "# Role: Software Architect",
        "critic": "# Role: Plan Critic",
        "worker": "# Role: Software Engineer",
        "verifier": "# Role: QA Verifier",
    }

    def __init__(self, **scripts: list[Response] | str) -> None:
        self.model = "scripted"
        self.runners = {
            role: ScriptedRunner(script) if isinstance(script, list) else ScriptedRunner(default=script)
            for role, script in scripts.items()
        }
        self.calls: list[str] = []
        self.on_call: Callable[[str], None] | None = None

    async def run(self, prompt: str, cwd: Path) -> AgentResult:
        for role, marker in self.ROLES.items():
            if marker in prompt:
                self.calls.append(role)
                if self.on_call is not None:
                    self.on_call(role)
                return await self.runners[role].run(prompt, cwd)
        raise AssertionError("Prompt did not match any template")


def plan_data(*tasks: dict[str, Any], name: str = "Demo") -> dict[str, Any]:
    return {
        "project": {"name": name, "description": "A demo", "test_command": "pytest -q"},
        "tasks": list(tasks),
    }


def task_data(task_id: str, deps: list[str] | None = None, passes: bool = False) -> dict[str, Any]:
    return {
        "id": task_id,
        "title": f"Task {task_id}",
        "description": f"Implement {task_id}",
        "acceptance_criteria": [f"{task_id} works"],
        "dependencies": deps or [],
        "status": "completed" if passes else "pending",
        "passes": passes,
    }


@pytest.fixture
def tmp_workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace directory."""
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def run_dir(tmp_path: Path) -> RunDir:
    """Create a temporary run directory."""
    return RunDir(base=tmp_path / "runs")


@pytest.fixture
def event_log(run_dir: RunDir) -> EventLog:
    """Create an event log in a temporary run directory."""
    log = EventLog(run_dir, level="debug")
    yield log
    log.close()


@pytest.fixture
def settings(tmp_path: Path, tmp_workspace: Path) -> FactorySettings:
    """Settings isolated from the user's environment and .env file."""
    return FactorySettings(
        _env_file=None,  # type: ignore[call-arg]
        mock_llm=True,
        project_dir=str(tmp_workspace),
        runs_dir=str(tmp_path / "runs"),
        prompts_dir=str(tmp_path / "prompts"),
        timeout=0,
        quiet=True,
    )


@pytest.fixture
def sample_plan() -> Plan:
    """Three tasks in a chain: T1 <- T2 <- T3."""
    return Plan.model_validate(
        plan_data(task_data("T1"), task_data("T2", ["T1"]), task_data("T3", ["T2"]))
    )


@pytest.fixture
def make_ctx(
    tmp_workspace: Path, event_log: EventLog, settings: FactorySettings
) -> Callable[..., RunContext]:
    """Build a RunContext around a fake runner; overrides patch settings."""

    def _make(runner: Any, plan: Plan | None = None, **overrides: Any) -> RunContext:
        store = PlanStore(tmp_workspace)
        if plan is not None:
            store.save(plan)
        run_settings = settings.model_copy(update=overrides)
        return RunContext(
            settings=run_settings,
            workspace=tmp_workspace,
            store=store,
            runner=runner,
            prompts=PromptLibrary(None),
            event_log=event_log,
            token=CancellationToken(),
            deadline=Deadline(0),
            tokens=TokenTracker(run_settings.model),
            plan=plan,
        )

    return _make
