"""Pull a JSON payload out of free-form architect output.

Agents sometimes narrate a file write ("Wrote file: plan.json") instead of
returning the JSON inline. When that happens and the plan file exists, the
file on disk wins over anything in the text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

Strategy = Literal["file_read", "json_block", "any_block", "json_braces", "raw_text"]

_TOOL_CALL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^\s*\|\s*(?:Write|Edit)\b", re.MULTILINE),
    re.compile(r"\b(?:Wrote|Created|Updated|Edited) file:", re.IGNORECASE),
    re.compile(r"\b(?:Writing|Wrote) to\s+\S*\.json\b", re.IGNORECASE),
    re.compile(r"\bSaved to\s+\S*\.json\b", re.IGNORECASE),
)

_JSON_BLOCK = re.compile(r"```[ \t]*json[^\n]*\n(.*?)```", re.IGNORECASE | re.DOTALL)
_ANY_BLOCK = re.compile(r"```[^\n]*\n(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class ExtractionResult:
    json: str
    strategy: Strategy
    tool_call_detected: bool = False


def detect_tool_calls(text: str) -> bool:
    """True if the text reads like the agent wrote a file itself."""
    return any(p.search(text) for p in _TOOL_CALL_PATTERNS)


def extract_json(text: str, plan_path: Path | None = None) -> ExtractionResult:
    """Extract a JSON string from agent output. Never raises."""
    text = text or ""
    tool_call = detect_tool_calls(text)

    if tool_call and plan_path is not None:
        try:
            content = plan_path.read_text(encoding="utf-8")
        except OSError:
            content = None
        if content is not None and content.strip():
            return ExtractionResult(content.strip(), "file_read", True)

    match = _JSON_BLOCK.search(text)
    if match:
        return ExtractionResult(match.group(1).strip(), "json_block", tool_call)

    match = _ANY_BLOCK.search(text)
    if match:
        return ExtractionResult(match.group(1).strip(), "any_block", tool_call)

    braces = largest_brace_object(text)
    if braces is not None:
        return ExtractionResult(braces, "json_braces", tool_call)

    return ExtractionResult(text.strip(), "raw_text", tool_call)


def largest_brace_object(text: str) -> str | None:
    """Return the longest balanced ``{...}`` span, skipping braces inside strings."""
    best: tuple[int, int] | None = None
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0 and (best is None or i + 1 - start > best[1] - best[0]):
                best = (start, i + 1)

    if best is None:
        return None
    return text[best[0] : best[1]]
