"""Tests for plan models and tolerant validation."""

from __future__ import annotations

import json

from agentfactory.planning.models import (
    Plan,
    PlanValidationError,
    QualityGate,
    TaskStatus,
    ValidPlan,
    parse_plan,
    validate_plan,
)


def _minimal(**task_fields: object) -> dict:
    return {"project": {"name": "Demo"}, "tasks": [{"id": "T1", "title": "First", **task_fields}]}


class TestTolerantDefaults:
    def test_missing_optional_fields_default(self) -> None:
        result = validate_plan(_minimal())
        assert isinstance(result, ValidPlan)
        task = result.plan.tasks[0]
        assert task.description == ""
        assert task.acceptance_criteria == []
        assert task.dependencies == []
        assert task.status is TaskStatus.PENDING
        assert task.passes is False
        assert result.plan.project.tech_stack == []

    def test_unknown_status_coerces_to_pending(self) -> None:
        result = validate_plan(_minimal(status="in_progress"))
        assert isinstance(result, ValidPlan)
        assert result.plan.tasks[0].status is TaskStatus.PENDING

    def test_status_is_case_insensitive(self) -> None:
        result = validate_plan(_minimal(status="Completed"))
        assert isinstance(result, ValidPlan)
        assert result.plan.tasks[0].status is TaskStatus.COMPLETED

    def test_null_values_tolerated(self) -> None:
        result = validate_plan(
            _minimal(description=None, dependencies=None, passes=None, status=None)
        )
        assert isinstance(result, ValidPlan)
        task = result.plan.tasks[0]
        assert task.dependencies == []
        assert task.passes is False
        assert task.status is TaskStatus.PENDING

    def test_integer_ids_become_strings(self) -> None:
        data = {
            "project": {"name": "Demo"},
            "tasks": [
                {"id": 1, "title": "First"},
                {"id": 2, "title": "Second", "dependencies": [1]},
            ],
        }
        result = validate_plan(data)
        assert isinstance(result, ValidPlan)
        assert result.plan.tasks[1].id == "2"
        assert result.plan.tasks[1].dependencies == ["1"]

    def test_missing_tasks_is_empty_plan(self) -> None:
        result = validate_plan({"project": {"name": "Demo"}})
        assert isinstance(result, ValidPlan)
        assert result.plan.tasks == []


class TestLegacyKey:
    def test_user_stories_accepted(self) -> None:
        data = {"project": {"name": "Demo"}, "user_stories": [{"id": "US-1", "title": "Story"}]}
        result = validate_plan(data)
        assert isinstance(result, ValidPlan)
        assert result.plan.tasks[0].id == "US-1"

    def test_writer_emits_tasks(self) -> None:
        data = {"project": {"name": "Demo"}, "user_stories": [{"id": "US-1", "title": "Story"}]}
        result = validate_plan(data)
        assert isinstance(result, ValidPlan)
        written = json.loads(result.plan.to_json())
        assert "tasks" in written
        assert "user_stories" not in written


class TestValidationErrors:
    def test_missing_project_name(self) -> None:
        result = validate_plan({"project": {}, "tasks": []})
        assert isinstance(result, PlanValidationError)
        assert any(e.startswith("project.name") for e in result.errors)

    def test_missing_project(self) -> None:
        result = validate_plan({"tasks": []})
        assert isinstance(result, PlanValidationError)
        assert any("project" in e for e in result.errors)

    def test_missing_task_title(self) -> None:
        result = validate_plan({"project": {"name": "Demo"}, "tasks": [{"id": "T1"}]})
        assert isinstance(result, PlanValidationError)
        assert any("title" in e for e in result.errors)

    def test_duplicate_ids_rejected(self) -> None:
        data = {
            "project": {"name": "Demo"},
            "tasks": [{"id": "T1", "title": "A"}, {"id": "T1", "title": "B"}],
        }
        result = validate_plan(data)
        assert isinstance(result, PlanValidationError)
        assert any("duplicate" in e and "T1" in e for e in result.errors)

    def test_non_object_root(self) -> None:
        result = validate_plan([1, 2, 3])
        assert isinstance(result, PlanValidationError)
        assert result.errors == ["root: expected a JSON object"]

    def test_parse_plan_bad_json(self) -> None:
        result = parse_plan("{not json")
        assert isinstance(result, PlanValidationError)
        assert result.errors[0].startswith("json:")

    def test_parse_plan_never_raises_on_none(self) -> None:
        result = parse_plan(None)  # type: ignore[arg-type]
        assert isinstance(result, PlanValidationError)


class TestPlanHelpers:
    def test_get_task(self, sample_plan: Plan) -> None:
        assert sample_plan.get_task("T2") is sample_plan.tasks[1]
        assert sample_plan.get_task("missing") is None

    def test_to_json_trailing_newline_and_omits_none(self, sample_plan: Plan) -> None:
        text = sample_plan.to_json()
        assert text.endswith("\n")
        assert "metrics" not in text
        assert "quality_gate" not in text

    def test_quality_gate_commands_skip_empty(self) -> None:
        gate = QualityGate(lint_command="ruff check .", type_check=None, security_scan="")
        assert gate.commands() == {"lint_command": "ruff check ."}
