"""Plan models and tolerant validation.

The plan file is written by an external agent, so validation coerces and
defaults where it can (unknown statuses become ``pending``, missing arrays
become empty) instead of rejecting the whole document on the first anomaly.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator, model_validator


class TaskStatus(StrEnum):
    PENDING = "pending"
    IMPLEMENTATION = "implementation"
    VERIFICATION = "verification"
    COMPLETED = "completed"
    FAILED = "failed"


class QualityGate(BaseModel):
    """Optional extra commands the verifier is told to run."""

    lint_command: str | None = None
    type_check: str | None = None
    security_scan: str | None = None

    def commands(self) -> dict[str, str]:
        return {k: v for k, v in self.model_dump().items() if v}


class Project(BaseModel):
    name: str
    description: str = ""
    tech_stack: list[str] = []
    test_command: str = ""
    quality_gate: QualityGate | None = None

    @field_validator("description", "test_command", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("tech_stack", mode="before")
    @classmethod
    def _stack_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class TaskMetrics(BaseModel):
    tokens_used: int = 0
    estimated_cost_usd: float = 0.0
    duration_seconds: float = 0.0


class Task(BaseModel):
    id: str
    title: str
    description: str = ""
    acceptance_criteria: list[str] = []
    dependencies: list[str] = []
    status: TaskStatus = TaskStatus.PENDING
    passes: bool = False
    metrics: TaskMetrics | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("acceptance_criteria", "dependencies", mode="before")
    @classmethod
    def _str_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if isinstance(v, list):
            return [str(item) if isinstance(item, int) else item for item in v]
        return v

    @field_validator("status", mode="before")
    @classmethod
    def _tolerant_status(cls, v: Any) -> TaskStatus:
        try:
            return TaskStatus(str(v).strip().lower())
        except ValueError:
            return TaskStatus.PENDING

    @field_validator("passes", mode="before")
    @classmethod
    def _passes(cls, v: Any) -> Any:
        return False if v is None else v


class Plan(BaseModel):
    """The persisted unit of truth: project metadata plus the ordered task list."""

    project: Project
    tasks: list[Task] = Field(
        default_factory=list,
        validation_alias=AliasChoices("tasks", "user_stories"),
    )

    @field_validator("tasks", mode="before")
    @classmethod
    def _tasks_list(cls, v: Any) -> Any:
        return [] if v is None else v

    @model_validator(mode="after")
    def _unique_ids(self) -> Plan:
        seen: set[str] = set()
        dupes: list[str] = []
        for task in self.tasks:
            if task.id in seen:
                dupes.append(task.id)
            seen.add(task.id)
        if dupes:
            raise ValueError(f"duplicate task id(s): {', '.join(sorted(set(dupes)))}")
        return self

    def get_task(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json", exclude_none=True), indent=2) + "\n"


@dataclass(frozen=True)
class ValidPlan:
    plan: Plan


@dataclass(frozen=True)
class PlanValidationError:
    errors: list[str]


PlanValidation = ValidPlan | PlanValidationError


def format_errors(exc: ValidationError) -> list[str]:
    """Render pydantic errors as ``path: message`` lines."""
    lines: list[str] = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err["loc"]) or "root"
        lines.append(f"{path}: {err['msg']}")
    return lines


def validate_plan(data: Any) -> PlanValidation:
    """Validate already-decoded JSON. Never raises."""
    if not isinstance(data, dict):
        return PlanValidationError(["root: expected a JSON object"])
    try:
        return ValidPlan(Plan.model_validate(data))
    except ValidationError as e:
        return PlanValidationError(format_errors(e))


def parse_plan(text: str) -> PlanValidation:
    """Decode and validate plan JSON text. Never raises."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        return PlanValidationError([f"json: {e}"])
    return validate_plan(data)
