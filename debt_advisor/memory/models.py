"""Dataclasses representing conversation turns and slot state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypedDict


class SlotState(TypedDict, total=False):
    """Structured facts extracted from a conversation."""

    name: str
    concern: str
    issue: str
    paying_amount: float
    affordable_amount: float
    urgency_flag: str
    urgency_markers: list[str]
    acknowledged: str
    consent_given: str
    total_debt: float
    profile: dict[str, Any]
    responses: dict[str, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class MessageTurn:
    """Single conversational turn; insertion order is the source of truth."""

    conversation_id: str
    role: str
    content: str
    created_at: datetime = field(default_factory=_utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ConversationSnapshot:
    """Ordered transcript plus the last state handed back to the caller."""

    conversation_id: str
    turns: list[MessageTurn]
    state: dict[str, Any] | None = None
