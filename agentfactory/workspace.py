"""Workspace inspection (scenario, file scans) and first-run setup."""

from __future__ import annotations

import asyncio
import os
import re
from enum import StrEnum
from pathlib import Path


class Scenario(StrEnum):
    NEW_PROJECT = "NEW_PROJECT"
    BROWNFIELD = "BROWNFIELD"
    UPDATE_PROJECT = "UPDATE_PROJECT"
    RESUME = "RESUME"


SCAN_IGNORE = frozenset(
    {
        "node_modules",
        ".git",
        ".DS_Store",
        "dist",
        "build",
        "out",
        "vendor",
        ".idea",
        ".vscode",
        "coverage",
        ".next",
        ".nuxt",
        "target",
        "__pycache__",
        ".venv",
    }
)

# Entries that do not make a directory an existing project: docs and
# package-manager metadata. Manifests such as package.json are real content.
TRIVIAL_ENTRIES = frozenset(
    {
        "README.md",
        "LICENSE",
        "node_modules",
        "package-lock.json",
        "npm-shrinkwrap.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "bun.lockb",
        "bun.lock",
        "poetry.lock",
        "uv.lock",
        "Pipfile.lock",
        "Cargo.lock",
        "go.sum",
        "composer.lock",
        "Gemfile.lock",
    }
)

TEST_FILE_PATTERN = re.compile(
    r"((spec|test)\.(ts|js|jsx|tsx|mjs|cjs)$)"
    r"|(_test\.go$)"
    r"|(^test_.*\.py$)|(_test\.py$)"
    r"|((Test|Spec|Tests)\.(java|kt|scala|cs|swift|php)$)"
    r"|(_(test|spec)\.(rb|rs|exs)$)"
    r"|(_test\.(dart|c|cpp|h|hpp)$)",
    re.IGNORECASE,
)


def has_significant_files(workspace: Path) -> bool:
    """True if the directory holds anything besides hidden files and scaffolding."""
    try:
        names = os.listdir(workspace)
    except (FileNotFoundError, NotADirectoryError):
        return False
    return any(not n.startswith(".") and n not in TRIVIAL_ENTRIES for n in names)


def detect_scenario(
    workspace: Path,
    has_goal: bool,
    plan_path: Path,
    force: Scenario | None = None,
) -> Scenario:
    """Classify the run. Advisory only; it never blocks execution."""
    if force is not None:
        return force
    if plan_path.is_file():
        return Scenario.UPDATE_PROJECT if has_goal else Scenario.RESUME
    if has_significant_files(workspace):
        return Scenario.BROWNFIELD
    return Scenario.NEW_PROJECT


def architect_mode(plan_path: Path) -> str:
    """Plan-load mode handed to the architect prompt."""
    return Scenario.UPDATE_PROJECT.value if plan_path.is_file() else Scenario.NEW_PROJECT.value


def scan_file_tree(root: Path, max_files: int = 100) -> str:
    """Sorted relative file paths, one per line, skipping junk directories."""
    files: list[str] = []

    def walk(directory: Path, prefix: str) -> None:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError:
            return
        for entry in entries:
            if len(files) >= max_files:
                return
            if entry.name in SCAN_IGNORE:
                continue
            rel = f"{prefix}{entry.name}"
            if entry.is_dir(follow_symlinks=False):
                walk(Path(entry.path), rel + "/")
            else:
                files.append(rel)

    walk(root, "")
    return "\n".join(files)


def detect_test_files(root: Path, limit: int = 1000) -> list[str]:
    """Relative paths of files that look like tests, scanning at most ``limit`` entries."""
    found: list[str] = []
    scanned = 0

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SCAN_IGNORE)
        rel_dir = Path(dirpath).relative_to(root)
        for name in sorted(filenames):
            if scanned >= limit:
                return found
            scanned += 1
            if name in SCAN_IGNORE:
                continue
            if TEST_FILE_PATTERN.search(name):
                found.append((rel_dir / name).as_posix())
    return found


async def _run_git(args: list[str], cwd: Path, timeout: float = 30) -> tuple[int, str, str]:
    """Run a git command and return (exit_code, stdout, stderr)."""
    proc = await asyncio.create_subprocess_exec(
        "git",
        *args,
        cwd=str(cwd),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        proc.kill()
        await proc.wait()
        raise
    return (
        proc.returncode or 0,
        stdout_bytes.decode("utf-8", errors="replace"),
        stderr_bytes.decode("utf-8", errors="replace"),
    )


async def prepare_workspace(workspace: Path) -> str | None:
    """Create the workspace and initialize git in it if it did not exist.

    Returns an error message when ``git init`` could not run; the workspace
    itself is always created.
    """
    if workspace.exists():
        return None
    workspace.mkdir(parents=True, exist_ok=True)
    try:
        code, _, stderr = await _run_git(["init"], workspace)
    except (OSError, TimeoutError) as e:
        return f"git init failed: {e}"
    if code != 0:
        return f"git init failed: {stderr.strip()}"
    return None
