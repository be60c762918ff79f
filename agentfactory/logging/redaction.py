"""Secret redaction for agent transcripts and event payloads."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

# Keep assignment key names while redacting the value.
_SENSITIVE_ASSIGNMENT = re.compile(
    r"""(?ix)
    (\b(?:[a-z0-9_]*api[_-]?key|secret|token|password|credential(?:s)?)\b\s*[:=]\s*)
    (?:"[^"\n]*"|'[^'\n]*'|[^\s,;]+)
    """
)

_AUTH_HEADER = re.compile(
    r"""(?ix)
    (\b(?:authorization|x-api-key)\b\s*[:=]\s*)
    (?:bearer\s+)?[^\s,;]+
    """
)

# Credentials embedded in endpoint URLs, e.g. a custom base URL.
_URL_USERINFO = re.compile(r"(?i)(\b[a-z][a-z0-9+.-]*://)[^/\s:@]+:[^/\s@]+@")

_TOKEN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bsk-ant-[A-Za-z0-9\-_]{20,}"),
    re.compile(r"\bsk-(?:proj-)?[A-Za-z0-9\-_]{20,}"),
    re.compile(r"\bghp_[A-Za-z0-9]{36}\b"),
    re.compile(r"\bgithub_pat_[A-Za-z0-9_]{40,}\b"),
    re.compile(r"\bAIza[0-9A-Za-z\-_]{35}\b"),
)

_PRIVATE_KEY_BLOCK = re.compile(
    r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]+?-----END [A-Z ]*PRIVATE KEY-----"
)

AUTO = "[REDACTED:auto]"


def redact_known(text: str, secrets: Mapping[str, str]) -> str:
    """Replace known secret values in text with ``[REDACTED:<name>]``."""
    # Longest values first so a secret that contains another is not split.
    ordered = sorted(
        ((name, value) for name, value in secrets.items() if value),
        key=lambda item: len(item[1]),
        reverse=True,
    )
    for name, value in ordered:
        text = text.replace(value, f"[REDACTED:{name}]")
    return text


def redact_patterns(text: str) -> str:
    """Redact common token, assignment, URL-credential and private-key patterns."""
    text = _PRIVATE_KEY_BLOCK.sub(AUTO, text)
    text = _URL_USERINFO.sub(rf"\1{AUTO}@", text)
    text = _SENSITIVE_ASSIGNMENT.sub(rf"\1{AUTO}", text)
    text = _AUTH_HEADER.sub(rf"\1{AUTO}", text)
    for pattern in _TOKEN_PATTERNS:
        text = pattern.sub(AUTO, text)
    return text


class Redactor:
    """Applies known-value and pattern redaction to text and nested payloads."""

    def __init__(self, secrets: Mapping[str, str] | None = None) -> None:
        self._secrets = dict(secrets or {})

    def text(self, value: str) -> str:
        return redact_patterns(redact_known(value, self._secrets))

    def structured(self, data: Any) -> Any:
        if isinstance(data, str):
            return self.text(data)
        if isinstance(data, Mapping):
            return {k: self.structured(v) for k, v in data.items()}
        if isinstance(data, list | tuple):
            return type(data)(self.structured(item) for item in data)
        return data
