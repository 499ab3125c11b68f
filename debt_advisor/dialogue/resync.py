"""Step resynchronizer: derive the authoritative step from the transcript."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Sequence

from debt_advisor.dialogue import directives
from debt_advisor.dialogue.interrupts import is_reset_command
from debt_advisor.dialogue.script import Script
from debt_advisor.dialogue.text import normalise, strip_punctuation
from debt_advisor.dialogue.types import ASSISTANT, USER, SlotKind, Step
from debt_advisor.memory.models import MessageTurn

logger = logging.getLogger("advisor.resync")

# Coarse wording cues used when no step prompt can be recognised.
_KIND_CUES: tuple[tuple[SlotKind, re.Pattern[str]], ...] = (
    (SlotKind.NAME, re.compile(r"\b(your name|first name|who i'm speaking|call you)\b")),
    (SlotKind.AMOUNTS, re.compile(r"\b(how much|afford|monthly payment|each month|per month|pay towards)\b")),
    (SlotKind.URGENCY, re.compile(r"\b(urgent|bailiff|court|enforcement|priority)\b")),
    (SlotKind.CONSENT, re.compile(r"\b(consent|permission|portal|happy for us)\b")),
    (SlotKind.ACKNOWLEDGEMENT, re.compile(r"\b(shall we continue|ready to continue|does that make sense|happy to continue)\b")),
    (SlotKind.ISSUE, re.compile(r"\b(main issue|biggest issue|what's causing|what is causing)\b")),
    (SlotKind.CONCERN, re.compile(r"\b(prompted you|brought you here|seek help)\b")),
)


@dataclass(frozen=True, slots=True)
class ResyncResult:
    step_index: int
    matched_step: int | None
    source: str
    window: tuple[MessageTurn, ...]


def _clean(text: str) -> str:
    return normalise(strip_punctuation(directives.strip(text)))


class StepResynchronizer:
    """Reconciles a declared step with what the assistant actually asked."""

    def __init__(self, script: Script, *, window: int = 10, needle_length: int = 45) -> None:
        self.script = script
        self.window_size = window
        self.needle_length = needle_length
        self._closing = tuple(script.needles(script.closing, needle_length))
        self._needles: tuple[tuple[Step, tuple[str, ...]], ...] = tuple(
            (step, tuple(script.step_needles(step, needle_length)))
            for step in script.steps
        )
        # The closing message only ever follows the last step.
        last_step, last_needles = self._needles[-1]
        self._needles = (*self._needles[:-1], (last_step, (*last_needles, *self._closing)))

    def window(self, transcript: Sequence[MessageTurn]) -> tuple[MessageTurn, ...]:
        """Trailing turns after the most recent reset command."""

        start = 0
        for position in range(len(transcript) - 1, -1, -1):
            turn = transcript[position]
            if turn.role == USER and is_reset_command(turn.content):
                start = position + 1
                break
        return tuple(transcript[start:])[-self.window_size:]

    def match_step(self, text: str) -> int | None:
        """Highest script step whose prompt or re-ask appears in the text."""

        cleaned = _clean(text)
        found: int | None = None
        for step, needles in self._needles:
            if any(needle in cleaned for needle in needles):
                found = step.index
        return found

    def is_complete(self, window: Sequence[MessageTurn]) -> bool:
        """True when the latest assistant turn delivered the closing message."""

        for turn in reversed(window):
            if turn.role == ASSISTANT:
                cleaned = _clean(turn.content)
                return any(needle in cleaned for needle in self._closing)
        return False

    def infer_kind(self, text: str) -> SlotKind | None:
        cleaned = normalise(directives.strip(text))
        for kind, pattern in _KIND_CUES:
            if pattern.search(cleaned):
                return kind
        return None

    def resync(self, transcript: Sequence[MessageTurn], declared_step: int | None = None) -> ResyncResult:
        window = self.window(transcript)
        declared = max(0, min(declared_step or 0, self.script.last_index))
        assistant_turns = [turn for turn in window if turn.role == ASSISTANT]

        matched: int | None = None
        for turn in assistant_turns:
            index = self.match_step(turn.content)
            if index is not None and (matched is None or index > matched):
                matched = index

        source = "transcript"
        if matched is None and assistant_turns:
            kind = self.infer_kind(assistant_turns[-1].content)
            matched = self.script.first_step_of_kind(kind) if kind else None
            source = "heuristic"
        if matched is None:
            return ResyncResult(step_index=declared, matched_step=None, source="declared", window=window)

        step_index = max(declared, matched)
        if step_index != declared:
            logger.debug("Resynchronised step %s -> %s (%s)", declared_step, step_index, source)
        return ResyncResult(step_index=step_index, matched_step=matched, source=source, window=window)

    def count_reasks(self, window: Sequence[MessageTurn], step: Step, extra: Sequence[str] = ()) -> int:
        """Re-ask variants of ``step`` emitted since its prompt was first shown.

        ``extra`` holds built-in re-ask phrasings used when the script defines none.
        """

        prompt_needles = self.script.needles(step.prompt, self.needle_length)
        reask_needles = [
            needle
            for text in (*step.reprompts, *extra)
            for needle in self.script.needles(text, self.needle_length)
            if needle not in prompt_needles
        ]
        if not reask_needles:
            return 0
        count = 0
        for turn in reversed(window):
            if turn.role != ASSISTANT:
                continue
            other = self.match_step(turn.content)
            if other is not None and other != step.index:
                break
            cleaned = _clean(turn.content)
            if any(needle in cleaned for needle in reask_needles):
                count += 1
            if any(needle in cleaned for needle in prompt_needles):
                break
        return count
