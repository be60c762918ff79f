"""Durable plan storage: atomic rewrite, best-effort backup, validated reads."""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from agentfactory.errors import PersistenceError
from agentfactory.planning.models import Plan, PlanValidation, PlanValidationError, parse_plan

PLAN_FILENAME = "plan.json"


def atomic_write(path: Path, data: str) -> None:
    """Write ``data`` to ``path`` via a temp file and rename.

    Protects against a process kill leaving a half-written file; there is
    only ever one writer.
    """
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        raise PersistenceError(f"Failed to write {path}: {e}") from e


class PlanStore:
    """Owns the on-disk plan file and its ``.bak`` companion."""

    def __init__(self, workspace: Path, filename: str = PLAN_FILENAME) -> None:
        self.workspace = workspace
        self.path = workspace / filename

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".bak")

    def exists(self) -> bool:
        return self.path.is_file()

    def read_text(self) -> str | None:
        """Raw plan text, or None if there is no readable plan file."""
        try:
            return self.path.read_text(encoding="utf-8")
        except (FileNotFoundError, IsADirectoryError):
            return None

    def load(self) -> PlanValidation:
        text = self.read_text()
        if text is None:
            return PlanValidationError([f"{self.path}: plan file not found"])
        return parse_plan(text)

    def save(self, plan: Plan) -> None:
        """Atomically persist ``plan``. Raises PersistenceError on failure."""
        self.write_text(plan.to_json())

    def write_text(self, text: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create {self.path.parent}: {e}") from e
        atomic_write(self.path, text)

    def backup(self, previous: str | None = None) -> str | None:
        """Preserve the pre-mutation plan in the ``.bak`` file.

        ``previous`` is written when given, otherwise the current file is
        copied. Returns an error message on failure instead of raising;
        backups are best-effort.
        """
        try:
            if previous is not None:
                atomic_write(self.backup_path, previous)
            elif self.exists():
                shutil.copyfile(self.path, self.backup_path)
        except (OSError, PersistenceError) as e:
            return str(e)
        return None
