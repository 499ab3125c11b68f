"""Codec for inline UI directive tags embedded in script prompts.

Prompts may carry presentation hints such as::

    Let's get your details. [UI: uiTrigger=OPEN_CLIENT_PORTAL; portalTab=TAB_1]

Tags are removed from the text shown to the user and returned as a flat
``key -> value`` mapping. Older scripts also use ``[TRIGGER: X]`` and
``[POPUP: X]``; these map to ``uiTrigger`` and ``popup`` unless a ``[UI: ...]``
tag already set the key. Nothing outside this module should handle tag syntax.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_TAG = re.compile(r"\s*\[(UI|TRIGGER|POPUP)\s*:([^\]]*)\]\s*", re.IGNORECASE)
_SPACES = re.compile(r"\s{2,}")
_LEGACY_KEYS = {"trigger": "uiTrigger", "popup": "popup"}


@dataclass(frozen=True, slots=True)
class ParsedPrompt:
    clean_text: str
    directives: dict[str, str] = field(default_factory=dict)


def parse(prompt_text: str | None) -> ParsedPrompt:
    """Split prompt text into display text and directive values."""

    raw = str(prompt_text or "")
    matches = list(_TAG.finditer(raw))
    if not matches:
        return ParsedPrompt(clean_text=raw)

    directives: dict[str, str] = {}
    legacy: dict[str, str] = {}
    for match in matches:
        kind = match.group(1).lower()
        body = match.group(2).strip()
        if kind == "ui":
            for part in re.split(r"[;,]", body):
                key, sep, value = part.partition("=")
                key, value = key.strip(), value.strip()
                if key and sep and value:
                    directives[key] = value
        elif body:
            legacy.setdefault(_LEGACY_KEYS[kind], body)

    for key, value in legacy.items():
        directives.setdefault(key, value)

    clean = _SPACES.sub(" ", _TAG.sub(" ", raw)).strip()
    return ParsedPrompt(clean_text=clean, directives=directives)


def strip(prompt_text: str | None) -> str:
    return parse(prompt_text).clean_text
