"""Prompt template loading and ``{{PLACEHOLDER}}`` substitution.

Templates are Markdown files with optional YAML frontmatter. A
``placeholders:`` list in the frontmatter declares the values a template
requires; rendering fails if one of them is not supplied.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path

import frontmatter

from agentfactory.errors import PromptError

TEMPLATE_NAMES = ("architect", "critic", "worker", "verifier")

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass
class PromptTemplate:
    name: str
    body: str
    placeholders: list[str] = field(default_factory=list)
    source: Path | None = None

    def render(self, values: dict[str, str]) -> str:
        """Replace every ``{{NAME}}`` occurrence with its value.

        Unknown placeholders in the body are left untouched.
        """
        missing = [p for p in self.placeholders if p not in values]
        if missing:
            raise PromptError(
                f"Template {self.name!r} is missing values for: {', '.join(missing)}"
            )
        # Single pass, so substituted values are never rescanned.
        return _PLACEHOLDER.sub(lambda m: values.get(m[1], m[0]), self.body)


def bundled_dir() -> Path:
    """Directory holding the default templates shipped with the package."""
    return Path(str(resources.files("agentfactory.prompts") / "templates"))


def parse_template(name: str, text: str, source: Path | None = None) -> PromptTemplate:
    post = frontmatter.loads(text)
    declared = post.metadata.get("placeholders", [])
    if not isinstance(declared, list):
        raise PromptError(f"Template {name!r}: 'placeholders' must be a list")
    return PromptTemplate(
        name=name,
        body=post.content,
        placeholders=[str(p) for p in declared],
        source=source,
    )


class PromptLibrary:
    """Resolves templates from a prompts directory, then the bundled copies."""

    def __init__(self, prompts_dir: Path | None = None) -> None:
        self.prompts_dir = prompts_dir
        self._cache: dict[str, PromptTemplate] = {}

    def find(self, name: str) -> Path | None:
        candidates = []
        if self.prompts_dir is not None:
            candidates.append(self.prompts_dir / f"{name}.md")
        candidates.append(bundled_dir() / f"{name}.md")
        for path in candidates:
            if path.is_file():
                return path
        return None

    def get(self, name: str) -> PromptTemplate:
        if name not in self._cache:
            path = self.find(name)
            if path is None:
                raise PromptError(f"Prompt template not found: {name}.md")
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as e:
                raise PromptError(f"Cannot read prompt template {path}: {e}") from e
            self._cache[name] = parse_template(name, text, source=path)
        return self._cache[name]

    def render(self, name: str, values: dict[str, str]) -> str:
        return self.get(name).render(values)


def install_templates(target: Path) -> list[Path]:
    """Copy the bundled templates into ``target``, keeping existing files.

    Returns the paths that were written.
    """
    target.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for name in TEMPLATE_NAMES:
        dest = target / f"{name}.md"
        if dest.exists():
            continue
        dest.write_text((bundled_dir() / f"{name}.md").read_text(encoding="utf-8"), encoding="utf-8")
        written.append(dest)
    return written
