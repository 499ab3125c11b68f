"""Script store: immutable conversation steps and FAQ knowledge base."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from debt_advisor.core.errors import ScriptConfigError
from debt_advisor.dialogue import directives
from debt_advisor.dialogue.directives import ParsedPrompt
from debt_advisor.dialogue.text import normalise, strip_punctuation, time_greeting
from debt_advisor.dialogue.types import SlotKind, Step

logger = logging.getLogger("advisor.script")

FALLBACK_INTRO = "Hello! My name’s Mark."
FALLBACK_OPENING = "Hello! My name’s Mark. What prompted you to seek help with your debts today?"
DEFAULT_CLOSING = (
    "That’s everything I need for now. An adviser will review your details and be in touch shortly."
)

_PLACEHOLDER = re.compile(r"\{(greeting|name)\}")


@dataclass(frozen=True, slots=True)
class FaqEntry:
    question: str
    answer: str
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class Script:
    """Ordered, read-only script shared by every session in the process."""

    steps: tuple[Step, ...]
    intro: str = ""
    agent_name: str = "Mark"
    closing: str = DEFAULT_CLOSING
    faqs: tuple[FaqEntry, ...] = ()
    is_fallback: bool = False

    @property
    def last_index(self) -> int:
        return len(self.steps) - 1

    def step(self, index: int) -> Step:
        return self.steps[max(0, min(index, self.last_index))]

    def first_step_of_kind(self, kind: SlotKind) -> int | None:
        for step in self.steps:
            if step.expects is kind:
                return step.index
        return None

    def render(
        self,
        step: Step,
        *,
        name: str | None = None,
        now: datetime | None = None,
        keep_intro: bool = False,
    ) -> ParsedPrompt:
        """Return the display text and directives for a step's prompt."""

        return self.render_text(step.prompt, name=name, now=now, keep_intro=keep_intro)

    def render_text(
        self,
        prompt: str,
        *,
        name: str | None = None,
        now: datetime | None = None,
        keep_intro: bool = False,
    ) -> ParsedPrompt:
        parsed = directives.parse(prompt)
        text = parsed.clean_text
        if not keep_intro:
            text = self.strip_intro(text)
        text = _PLACEHOLDER.sub(
            lambda m: time_greeting(now or datetime.now()) if m.group(1) == "greeting" else (name or "there"),
            text,
        )
        return ParsedPrompt(clean_text=" ".join(text.split()), directives=parsed.directives)

    @property
    def opening_line(self) -> ParsedPrompt:
        return self.render(self.steps[0], keep_intro=True)

    def strip_intro(self, text: str) -> str:
        if not self.intro:
            return text
        stripped = text.strip()
        if normalise(stripped).startswith(normalise(self.intro)):
            remainder = stripped[len(self.intro):].strip()
            return remainder or stripped
        return stripped

    def needles(self, text: str, length: int) -> list[str]:
        """Fingerprint needles for a piece of prompt text.

        Placeholders are rendered differently per session, so only the first
        placeholder-free segment long enough to be distinctive is used.
        """

        cleaned = self.strip_intro(directives.strip(text))
        needles: list[str] = []
        for segment in _PLACEHOLDER.split(cleaned):
            if segment in ("greeting", "name"):
                continue
            needle = normalise(strip_punctuation(segment))[:length].strip()
            if len(needle) >= 12:
                needles.append(needle)
                break
        return needles

    def step_needles(self, step: Step, length: int) -> list[str]:
        found: list[str] = []
        for text in (step.prompt, *step.reprompts):
            found.extend(self.needles(text, length))
        return found


def read_json(path: Path) -> Any:
    """Read JSON, tolerating wrapper text around the outermost object or array."""

    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ScriptConfigError(f"cannot read {path}: {exc}") from exc

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        trimmed = raw.strip()
        for opener, closer in (("{", "}"), ("[", "]")):
            start, end = trimmed.find(opener), trimmed.rfind(closer)
            if start != -1 and end > start:
                try:
                    return json.loads(trimmed[start : end + 1])
                except json.JSONDecodeError:
                    continue
        raise ScriptConfigError(f"{path} does not contain valid JSON")


def _strings(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item).strip() for item in value if str(item).strip())


def parse_step(index: int, raw: Mapping[str, Any]) -> Step:
    prompt = raw.get("prompt", raw.get("promptTemplate"))
    if not isinstance(prompt, str) or not prompt.strip():
        raise ScriptConfigError(f"step {index} has no prompt")

    unlock_at = raw.get("unlockAt", raw.get("unlock_at"))
    if unlock_at is not None and (not isinstance(unlock_at, int) or isinstance(unlock_at, bool) or unlock_at < 0):
        raise ScriptConfigError(f"step {index} has an invalid unlockAt value")

    return Step(
        index=index,
        prompt=prompt.strip(),
        expects=SlotKind.parse(raw.get("expects", raw.get("expectedSlot"))),
        key=str(raw.get("key") or raw.get("name") or f"step_{index}"),
        keyword_hints=_strings(raw.get("keywords", raw.get("keywordHints"))),
        reprompts=_strings(raw.get("reprompts")),
        unlock_at=unlock_at,
    )


def parse_faqs(payload: Any) -> tuple[FaqEntry, ...]:
    items = payload.get("faqs") if isinstance(payload, Mapping) else payload
    if not isinstance(items, list):
        raise ScriptConfigError("FAQ data must be a list or an object with a 'faqs' list")

    entries: list[FaqEntry] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        question = str(item.get("q", item.get("question", ""))).strip()
        answer = str(item.get("a", item.get("answer", ""))).strip()
        if question and answer:
            entries.append(FaqEntry(question=question, answer=answer, tags=_strings(item.get("tags"))))
    return tuple(entries)


def parse_script(payload: Any, faqs: tuple[FaqEntry, ...] = ()) -> Script:
    if not isinstance(payload, Mapping):
        raise ScriptConfigError("script must be a JSON object")
    raw_steps = payload.get("steps")
    if not isinstance(raw_steps, list) or not raw_steps:
        raise ScriptConfigError("script has no steps")

    steps = []
    for index, raw in enumerate(raw_steps):
        if not isinstance(raw, Mapping):
            raise ScriptConfigError(f"step {index} is not an object")
        steps.append(parse_step(index, raw))

    return Script(
        steps=tuple(steps),
        intro=str(payload.get("intro") or "").strip(),
        agent_name=str(payload.get("agentName") or "Mark").strip(),
        closing=str(payload.get("closing") or DEFAULT_CLOSING).strip(),
        faqs=faqs,
    )


def fallback_script(faqs: tuple[FaqEntry, ...] = ()) -> Script:
    step = Step(index=0, prompt=FALLBACK_OPENING, expects=SlotKind.CONCERN, key="concern")
    return Script(steps=(step,), intro=FALLBACK_INTRO, faqs=faqs, is_fallback=True)


def load_faqs(path: Path | None) -> tuple[FaqEntry, ...]:
    if path is None:
        return ()
    try:
        return parse_faqs(read_json(path))
    except ScriptConfigError as exc:
        logger.warning("FAQ knowledge base unavailable, continuing without it: %s", exc)
        return ()


def load_script(script_path: Path, faq_path: Path | None = None) -> Script:
    """Load the script once per process, falling back to the opening line only."""

    faqs = load_faqs(faq_path)
    try:
        script = parse_script(read_json(script_path), faqs)
    except ScriptConfigError as exc:
        logger.error("Script configuration invalid, using fallback script: %s", exc)
        return fallback_script(faqs)

    logger.info("Loaded %d script steps and %d FAQs from %s", len(script.steps), len(faqs), script_path)
    return script
