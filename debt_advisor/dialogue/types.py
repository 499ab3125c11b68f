"""Dialogue enums and data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

from debt_advisor.memory.models import MessageTurn, SlotState

USER = "user"
ASSISTANT = "assistant"


class SlotKind(str, Enum):
    """What a script step expects the user to supply."""

    NAME = "name"
    CONCERN = "concern"
    ISSUE = "issue"
    AMOUNTS = "amounts"
    URGENCY = "urgency"
    ACKNOWLEDGEMENT = "acknowledgement"
    CONSENT = "consent"
    FREE_TEXT = "free-text"
    PROFILE = "profile"

    @classmethod
    def parse(cls, value: Any) -> "SlotKind":
        raw = str(value or "").strip().lower().replace("_", "-")
        aliases = {"free": cls.FREE_TEXT, "freetext": cls.FREE_TEXT, "ack": cls.ACKNOWLEDGEMENT, "amount": cls.AMOUNTS}
        if raw in aliases:
            return aliases[raw]
        try:
            return cls(raw)
        except ValueError:
            return cls.FREE_TEXT


# Slot keys a kind must fill before its step counts as answered.
SLOT_KEYS: dict[SlotKind, tuple[str, ...]] = {
    SlotKind.NAME: ("name",),
    SlotKind.CONCERN: ("concern",),
    SlotKind.ISSUE: ("issue",),
    SlotKind.AMOUNTS: ("paying_amount", "affordable_amount"),
    SlotKind.URGENCY: ("urgency_flag",),
    SlotKind.ACKNOWLEDGEMENT: ("acknowledged",),
    SlotKind.CONSENT: ("consent_given",),
    SlotKind.FREE_TEXT: (),
    SlotKind.PROFILE: ("profile",),
}


class Outcome(str, Enum):
    """How a turn was resolved."""

    OPENING = "opening"
    RESET = "reset"
    ACKNOWLEDGEMENT = "acknowledgement"
    SMALL_TALK = "small_talk"
    OFF_TOPIC = "off_topic"
    FAQ = "faq"
    NAME_CAPTURED = "name_captured"
    EVENT = "event"
    ADVANCED = "advanced"
    REASK = "reask"
    GENERATED = "generated"
    DEGRADED = "degraded"
    TERMINAL = "terminal"


@dataclass(frozen=True, slots=True)
class Step:
    """One immutable position in the script."""

    index: int
    prompt: str
    expects: SlotKind
    key: str
    keyword_hints: tuple[str, ...] = ()
    reprompts: tuple[str, ...] = ()
    unlock_at: int | None = None


_TEXT_SLOTS = ("name", "concern", "issue", "urgency_flag", "acknowledged", "consent_given")
_NUMBER_SLOTS = ("paying_amount", "affordable_amount", "total_debt")


def sanitize_slots(raw: Mapping[str, Any] | None) -> SlotState:
    """Keep only known slot keys with values of the expected shape."""

    slots: SlotState = SlotState()
    if not isinstance(raw, Mapping):
        return slots

    for key in _TEXT_SLOTS:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            slots[key] = value.strip()  # type: ignore[literal-required]
    for key in _NUMBER_SLOTS:
        value = raw.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
            slots[key] = value  # type: ignore[literal-required]

    markers = raw.get("urgency_markers")
    if isinstance(markers, list):
        slots["urgency_markers"] = [str(item) for item in markers if isinstance(item, str)]
    profile = raw.get("profile")
    if isinstance(profile, Mapping):
        slots["profile"] = dict(profile)
    responses = raw.get("responses")
    if isinstance(responses, Mapping):
        slots["responses"] = {str(k): str(v) for k, v in responses.items() if isinstance(v, str)}
    return slots


def merge_slots(slots: Mapping[str, Any], updates: Mapping[str, Any]) -> SlotState:
    merged: SlotState = SlotState(**slots)  # type: ignore[typeddict-item]
    for key, value in updates.items():
        if value is None:
            continue
        if key in ("responses", "profile") and isinstance(value, Mapping):
            combined = dict(merged.get(key) or {})  # type: ignore[arg-type]
            combined.update(value)
            merged[key] = combined  # type: ignore[literal-required]
        else:
            merged[key] = value  # type: ignore[literal-required]
    return merged


@dataclass(slots=True)
class ConversationState:
    """Caller-owned state, reconciled against the transcript every turn."""

    step_index: int = 0
    slots: SlotState = field(default_factory=SlotState)
    retry_counters: dict[str, int] = field(default_factory=dict)
    last_prompt_fingerprint: str | None = None

    def retries(self, kind: SlotKind) -> int:
        return self.retry_counters.get(kind.value, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_index": self.step_index,
            "slots": dict(self.slots),
            "retry_counters": dict(self.retry_counters),
            "last_prompt_fingerprint": self.last_prompt_fingerprint,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "ConversationState":
        if not isinstance(payload, Mapping):
            return cls()
        step = payload.get("step_index", payload.get("step", 0))
        counters = payload.get("retry_counters")
        fingerprint = payload.get("last_prompt_fingerprint")
        return cls(
            step_index=step if isinstance(step, int) and not isinstance(step, bool) and step >= 0 else 0,
            slots=sanitize_slots(payload.get("slots")),
            retry_counters=_sanitize_counters(counters),
            last_prompt_fingerprint=fingerprint if isinstance(fingerprint, str) else None,
        )


def _sanitize_counters(raw: Any) -> dict[str, int]:
    if not isinstance(raw, Mapping):
        return {}
    return {
        str(kind): count
        for kind, count in raw.items()
        if isinstance(count, int) and not isinstance(count, bool) and count >= 0
    }


@dataclass(slots=True)
class TurnRequest:
    """Inputs for one engine turn."""

    utterance: str
    transcript: Sequence[MessageTurn] = ()
    declared_step: int | None = None
    declared_slots: Mapping[str, Any] | None = None
    retry_counters: Mapping[str, int] | None = None
    last_prompt_fingerprint: str | None = None

    @classmethod
    def from_state(
        cls,
        utterance: str,
        transcript: Sequence[MessageTurn],
        state: Mapping[str, Any] | None,
    ) -> "TurnRequest":
        if not isinstance(state, Mapping):
            return cls(utterance=utterance, transcript=transcript)
        declared = ConversationState.from_dict(state)
        has_step = any(key in state for key in ("step_index", "step"))
        return cls(
            utterance=utterance,
            transcript=transcript,
            declared_step=declared.step_index if has_step else None,
            declared_slots=declared.slots,
            retry_counters=declared.retry_counters,
            last_prompt_fingerprint=declared.last_prompt_fingerprint,
        )


@dataclass(slots=True)
class TurnResponse:
    """Engine output for one turn."""

    reply: str
    next_step: int
    slots: SlotState
    directives: dict[str, str]
    state: ConversationState
    outcome: Outcome
    display_name: str | None = None
    complete: bool = False


@dataclass(slots=True)
class ExtractionContext:
    """Read-only inputs an extractor may consult besides the utterance."""

    step: Step
    retry_count: int = 0
    slots: Mapping[str, Any] = field(default_factory=dict)
    min_answer_length: int = 3


@dataclass(slots=True)
class ExtractionResult:
    """Either extracted slot values or a hint describing why nothing matched."""

    satisfied: bool
    values: dict[str, Any] = field(default_factory=dict)
    hint: str | None = None

    @classmethod
    def matched(cls, **values: Any) -> "ExtractionResult":
        return cls(satisfied=True, values=values)

    @classmethod
    def unmatched(cls, hint: str) -> "ExtractionResult":
        return cls(satisfied=False, hint=hint)


@dataclass(slots=True)
class InterruptResult:
    """A detour reply that leaves the pending step unconsumed."""

    outcome: Outcome
    head: str = ""
    reset: bool = False
    slot_updates: dict[str, Any] = field(default_factory=dict)
    display_name: str | None = None
