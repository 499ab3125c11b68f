"""Widget event markers sent by the chat front end instead of typed text.

The widget posts messages such as ``__PROFILE_SUBMIT__ {"fullName": "Ann Lee"}``
when the user completes a form or moves a slider. They are state updates, not
answers to the pending question.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    PROFILE_SUBMIT = "__PROFILE_SUBMIT__"
    PROFILE_SKIP = "__PROFILE_SKIP__"
    DEBT_TOTAL = "__DEBT_TOTAL__"
    MONTHLY_PAY = "__MONTHLY_PAY__"


@dataclass(frozen=True, slots=True)
class WidgetEvent:
    kind: EventKind
    payload: dict[str, Any] = field(default_factory=dict)


def parse_event(utterance: str | None) -> WidgetEvent | None:
    """Return the event carried by an utterance, or ``None``.

    A marker followed by invalid JSON yields ``None`` so the text is handled
    like any other message.
    """

    text = (utterance or "").strip()
    for kind in EventKind:
        if not text.startswith(kind.value):
            continue
        raw = text[len(kind.value):].strip()
        if not raw:
            return WidgetEvent(kind=kind)
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return None
        if not isinstance(payload, dict):
            return None
        return WidgetEvent(kind=kind, payload=payload)
    return None


def amount_field(payload: dict[str, Any], key: str) -> float | int | None:
    value = payload.get(key, 0)
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number < 0:
        return None
    return int(number) if number.is_integer() else round(number, 2)


def first_name(payload: dict[str, Any]) -> str | None:
    parts = str(payload.get("fullName") or "").split()
    return parts[0] if parts else None


def debt_total_remark(total: float) -> str:
    if total <= 3000:
        return (
            "Thanks. Luckily it’s not too much debt to deal with, and we can definitely point you "
            "in the right direction and get you the help that’s needed to get this all sorted."
        )
    if total <= 10000:
        return (
            "You have quite a lot of unsecured debt outstanding. It must be very difficult to deal "
            "with, but don’t worry, we can help you to get this all sorted today."
        )
    return (
        "That is a large amount of debt, it must be very difficult for you to deal with all this. "
        "We’ll do everything we can today to take the pressure off and get this debt consolidated for you."
    )


def monthly_pay_remark(amount: float) -> str:
    if amount <= 200:
        return "It looks like we can help you with this. Let’s try and help you save some money today."
    if amount <= 500:
        return "You are paying a lot to your creditors every month. Let’s see how much money we can save you today."
    return (
        "You are paying a huge sum of money out to your creditors each month. "
        "Let’s see how much money we can save you today."
    )
