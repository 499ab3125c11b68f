"""Slot extractors: one pure function per expected slot kind."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping

from debt_advisor.dialogue.text import (
    contains_profanity,
    has_debt_content,
    normalise,
    strip_punctuation,
    title_case_name,
    tokens,
)
from debt_advisor.dialogue.types import ExtractionContext, ExtractionResult, SlotKind

NAME_BLOCKLIST = frozenset(
    {
        "yes", "yeah", "yep", "ok", "okay", "sure", "alright", "right", "no", "nah",
        "hello", "hi", "hey", "good", "morning", "afternoon", "evening", "thanks",
        "please", "mate", "pal", "bro", "bruv", "sir", "madam", "mr", "mrs", "ms", "miss",
        "i", "im", "i'm", "me", "my", "mine", "so", "and", "or", "but", "because", "well",
        "just", "like", "basically", "how", "what", "why", "reset", "you", "are", "your",
        "today", "doing", "was", "were", "been", "being", "not", "the", "a", "an", "in",
        "on", "at", "with", "from", "about", "really", "very", "sorry", "fine", "help",
        "unsure", "sure", "maybe", "anonymous", "nobody", "none", "nothing",
    }
)

# Words that follow "I'm"/"it's" far more often than a name does.
COMMON_NOT_NAMES = frozenset(
    {
        "am", "is", "be", "have", "has", "had", "do", "does", "did", "struggling",
        "debt", "debts", "now", "here", "worried", "stressed", "behind", "unable",
        "currently", "looking", "going", "having", "trying", "after", "afraid",
        "scared", "broke", "skint", "desperate", "tired", "confused", "single",
        "married", "unemployed", "retired", "self", "employed", "paying", "calling",
        "working", "waiting", "wondering", "thinking", "getting", "coping", "managing",
        "feeling", "asking", "hoping", "owing", "renting", "borrowing", "drowning",
        "sinking", "panicking", "something", "everything", "anything", "ringing",
    }
)

TAIL_FILLERS = frozenset({"here", "speaking", "mate", "pal", "bro", "bruv", "thanks", "thank", "you"})

_NAME_TOKEN = r"([A-Za-z][A-Za-z'\-]{1,})"
_LEAD_IN = re.compile(
    r"\b(?:my name is|name is|this is|i am|i'?m|it'?s|it is|call me)\s+" + _NAME_TOKEN + r"(?:\s+" + _NAME_TOKEN + r")?",
    re.IGNORECASE,
)
_NAME_SHAPE = re.compile(r"^[A-Za-z][A-Za-z'\-]*$")


@dataclass(frozen=True, slots=True)
class NameMatch:
    ok: bool
    name: str | None = None
    reason: str = "no_match"


def _name_like(word: str) -> bool:
    lowered = word.lower()
    return (
        len(lowered) >= 2
        and _NAME_SHAPE.match(word) is not None
        and lowered not in NAME_BLOCKLIST
        and lowered not in COMMON_NOT_NAMES
        and lowered not in TAIL_FILLERS
        and not has_debt_content(lowered)
    )


def extract_name(text: str, *, allow_loose_scan: bool) -> NameMatch:
    """Find a first (and optional last) name in a reply.

    Explicit lead-ins ("my name is", "call me", "I'm") are always honoured.
    A bare short reply is only accepted when ``allow_loose_scan`` is set,
    i.e. the current step is actually asking for a name.
    """

    raw = (text or "").strip()
    if not raw:
        return NameMatch(ok=False, reason="empty")
    if contains_profanity(raw):
        return NameMatch(ok=False, reason="profanity")

    cleaned = strip_punctuation(raw)

    match = _LEAD_IN.search(cleaned)
    if match:
        first, second = match.group(1), match.group(2)
        if not _name_like(first):
            return NameMatch(ok=False, reason="not_a_name")
        parts = [first]
        if second and _name_like(second):
            parts.append(second)
        return NameMatch(ok=True, name=title_case_name(" ".join(parts)), reason="lead_in")

    if allow_loose_scan:
        words = cleaned.split()
        if 1 <= len(words) <= 3 and all(_name_like(word) for word in words):
            return NameMatch(ok=True, name=title_case_name(" ".join(words)), reason="short_reply")
        return NameMatch(ok=False, reason="not_a_name")

    return NameMatch(ok=False)


_CURRENCY_AMOUNT = re.compile(r"[£$€]\s*(\d+(?:\.\d+)?)\s*(k\b)?", re.IGNORECASE)
_BARE_AMOUNT = re.compile(r"\b(\d{2,7}(?:\.\d+)?)\s*(k\b)?", re.IGNORECASE)


def _to_number(digits: str, thousands: str | None) -> float | int:
    value = float(digits) * (1000 if thousands else 1)
    return int(value) if value.is_integer() else round(value, 2)


def extract_amounts(text: str) -> list[float | int]:
    """Return monetary amounts in order of appearance.

    Currency-prefixed amounts win; bare numbers (two or more digits) are only
    used when no amount carries a currency symbol.
    """

    cleaned = (text or "").replace(",", "")
    prefixed = [_to_number(m.group(1), m.group(2)) for m in _CURRENCY_AMOUNT.finditer(cleaned)]
    if prefixed:
        return prefixed
    return [_to_number(m.group(1), m.group(2)) for m in _BARE_AMOUNT.finditer(cleaned)]


_AFFORD_WORDS = ("afford", "could pay", "can pay", "could manage", "can manage", "could offer", "can offer")
_PAYING_WORDS = ("paying", "pay ", "currently", "each month", "per month", "a month", "spend")

URGENCY_MARKERS = (
    "bailiff",
    "enforcement",
    "court",
    "ccj",
    "default",
    "missed payment",
    "missed a payment",
    "missing payments",
    "behind on",
    "eviction",
    "evicted",
    "repossess",
    "disconnect",
    "cut off",
    "final demand",
    "warrant",
    "summons",
    "charging order",
    "attachment of earnings",
    "magistrates",
    "council tax",
    "rent arrears",
    "mortgage arrears",
    "priority bill",
)
_NEGATIVE_LEADS = frozenset({"no", "none", "nothing", "nope", "nah"})
_NOTHING_URGENT = re.compile(
    r"^(not really|not at the moment|not right now|not at all)\b|\bnothing urgent\b"
)

_AFFIRMATIVE_LEAD = re.compile(r"^(yes|yeah|yep|yup|sure|ok|okay|alright|of course|absolutely|definitely)\b")
_AFFIRMATIVE = re.compile(
    r"\b(yes|yeah|yep|yup|sure|ok|okay|alright|fine|happy to|go ahead|go on|continue|carry on|"
    r"proceed|please do|i agree|agreed|of course|absolutely|definitely|sounds good|ready|let'?s|"
    r"don'?t mind|do not mind|don'?t see why not|no problem)\b"
)
_NEGATIVE = re.compile(
    r"^(no|nope|nah)\b|\b(not now|not yet|rather not|don'?t|do not|decline|not happy|no thanks|"
    r"not ready|maybe later|not interested)\b"
)
# Negative-looking phrases that agree.
_MILD_NEGATIVE = re.compile(r"\b(don'?t|do not) (mind|see why not|worry)\b|^no (problem|worries)\b")


class Extractor(ABC):
    """Maps an utterance to slot values for one slot kind."""

    kind: SlotKind

    @abstractmethod
    def extract(self, utterance: str, context: ExtractionContext) -> ExtractionResult:
        """Return extracted values, or a hint describing what was missing."""


class NameExtractor(Extractor):
    """Short name-only replies or explicit introductions."""

    kind = SlotKind.NAME

    def extract(self, utterance: str, context: ExtractionContext) -> ExtractionResult:
        match = extract_name(utterance, allow_loose_scan=True)
        if match.ok and match.name:
            return ExtractionResult.matched(name=match.name)
        return ExtractionResult.unmatched(match.reason)


class TextAnswerExtractor(Extractor):
    """Any non-trivial answer, optionally required to mention a keyword hint."""

    def __init__(self, kind: SlotKind) -> None:
        self.kind = kind

    def extract(self, utterance: str, context: ExtractionContext) -> ExtractionResult:
        answer = (utterance or "").strip()
        if len(answer) < context.min_answer_length:
            return ExtractionResult.unmatched("too_short")

        hints = context.step.keyword_hints
        if hints:
            lowered = normalise(answer)
            if not any(normalise(hint) in lowered for hint in hints):
                return ExtractionResult.unmatched("no_keyword")

        if self.kind is SlotKind.FREE_TEXT:
            return ExtractionResult.matched(responses={context.step.key: answer})
        return ExtractionResult.matched(**{self.kind.value: answer})


class AmountsExtractor(Extractor):
    """Current monthly payment and affordable payment, first two amounts in order."""

    kind = SlotKind.AMOUNTS

    def extract(self, utterance: str, context: ExtractionContext) -> ExtractionResult:
        amounts = extract_amounts(utterance)
        if len(amounts) >= 2:
            return ExtractionResult.matched(paying_amount=amounts[0], affordable_amount=amounts[1])
        if not amounts:
            return ExtractionResult.unmatched("no_amount")

        lowered = normalise(utterance) + " "
        if any(word in lowered for word in _AFFORD_WORDS):
            return ExtractionResult.matched(affordable_amount=amounts[0])
        if any(word in lowered for word in _PAYING_WORDS):
            return ExtractionResult.matched(paying_amount=amounts[0])
        if context.slots.get("paying_amount") is not None:
            return ExtractionResult.matched(affordable_amount=amounts[0])
        return ExtractionResult.matched(paying_amount=amounts[0])


class UrgencyExtractor(Extractor):
    """Urgent enforcement or priority-bill markers, or an explicit 'nothing urgent'."""

    kind = SlotKind.URGENCY

    def extract(self, utterance: str, context: ExtractionContext) -> ExtractionResult:
        lowered = normalise(utterance)
        markers = [marker for marker in URGENCY_MARKERS if marker in lowered]
        if markers:
            return ExtractionResult.matched(urgency_flag="urgent", urgency_markers=markers)

        words = tokens(utterance)
        if words and (words[0] in _NEGATIVE_LEADS or _NOTHING_URGENT.search(lowered)):
            return ExtractionResult.matched(urgency_flag="none", urgency_markers=[])
        return ExtractionResult.unmatched("no_urgency_signal")


class AgreementExtractor(Extractor):
    """Affirmative or declining answers; declining still completes the step."""

    def __init__(self, kind: SlotKind, slot: str, accepted: str) -> None:
        self.kind = kind
        self.slot = slot
        self.accepted = accepted

    def extract(self, utterance: str, context: ExtractionContext) -> ExtractionResult:
        lowered = normalise(strip_punctuation(utterance))
        if _AFFIRMATIVE_LEAD.match(lowered):
            return ExtractionResult.matched(**{self.slot: self.accepted})
        if _NEGATIVE.search(_MILD_NEGATIVE.sub(" ", lowered)):
            return ExtractionResult.matched(**{self.slot: "declined"})
        if _AFFIRMATIVE.search(lowered):
            return ExtractionResult.matched(**{self.slot: self.accepted})
        return ExtractionResult.unmatched("no_answer")


class ProfileExtractor(Extractor):
    """Fact-find profiles only arrive through widget events, never as chat text."""

    kind = SlotKind.PROFILE

    def extract(self, utterance: str, context: ExtractionContext) -> ExtractionResult:
        return ExtractionResult.unmatched("awaiting_profile")


class ExtractorRegistry:
    """Dispatch slot kinds to their extractor."""

    def __init__(self, extractors: Mapping[SlotKind, Extractor]) -> None:
        self._extractors = dict(extractors)

    @classmethod
    def default(cls) -> "ExtractorRegistry":
        return cls(
            {
                SlotKind.NAME: NameExtractor(),
                SlotKind.CONCERN: TextAnswerExtractor(SlotKind.CONCERN),
                SlotKind.ISSUE: TextAnswerExtractor(SlotKind.ISSUE),
                SlotKind.FREE_TEXT: TextAnswerExtractor(SlotKind.FREE_TEXT),
                SlotKind.AMOUNTS: AmountsExtractor(),
                SlotKind.URGENCY: UrgencyExtractor(),
                SlotKind.ACKNOWLEDGEMENT: AgreementExtractor(SlotKind.ACKNOWLEDGEMENT, "acknowledged", "accepted"),
                SlotKind.CONSENT: AgreementExtractor(SlotKind.CONSENT, "consent_given", "given"),
                SlotKind.PROFILE: ProfileExtractor(),
            }
        )

    def get(self, kind: SlotKind) -> Extractor:
        return self._extractors.get(kind) or self._extractors[SlotKind.FREE_TEXT]

    def extract(self, kind: SlotKind, utterance: str, context: ExtractionContext) -> ExtractionResult:
        return self.get(kind).extract(utterance, context)


PLACEHOLDER_NAME = "there"

# Re-ask phrasings used when a step declares no reprompts of its own.
DEFAULT_REPROMPTS: dict[SlotKind, tuple[str, ...]] = {
    SlotKind.NAME: (
        "Can you let me know who I’m speaking with? A first name is perfect.",
        "Sorry, what first name would you like me to use?",
        "No worries. Just pop a first name and we’ll carry on.",
    ),
    SlotKind.CONCERN: (
        "Could you tell me a little more about what’s worrying you with your debts?",
        "In a few words, what made you reach out about your debts today?",
    ),
    SlotKind.ISSUE: (
        "What would you say is the main problem with the debts right now?",
        "For example, is it missed payments, letters from creditors, or the payments being too high?",
    ),
    SlotKind.AMOUNTS: (
        "Roughly how much do you pay towards your debts each month, and how much could you afford? Two numbers is fine, e.g. £300 and £150.",
        "Sorry, I didn’t catch the amounts. What do you pay each month now, and what could you comfortably afford?",
    ),
    SlotKind.URGENCY: (
        "Is anything urgent happening, like bailiffs, court letters or missed priority bills? If not, just say no.",
        "Just so I know, are there any bailiff, court or enforcement issues right now? A simple no is fine.",
    ),
    SlotKind.ACKNOWLEDGEMENT: (
        "Are you happy for us to carry on? A simple yes or no is fine.",
    ),
    SlotKind.CONSENT: (
        "Before we go on, are you happy to give consent for us to continue? Yes or no is fine.",
    ),
    SlotKind.FREE_TEXT: (
        "Could you tell me a little more about that?",
    ),
    SlotKind.PROFILE: (
        "When you’re ready, fill in your details in the form, or let me know if you’d rather skip it.",
    ),
}

# Values recorded when the re-ask cap is hit and the step is forced forward.
DEGRADED_VALUES: dict[SlotKind, dict[str, object]] = {
    SlotKind.NAME: {"name": PLACEHOLDER_NAME},
    SlotKind.CONCERN: {"concern": "unspecified"},
    SlotKind.ISSUE: {"issue": "unspecified"},
    SlotKind.URGENCY: {"urgency_flag": "unknown"},
    SlotKind.ACKNOWLEDGEMENT: {"acknowledged": "no_response"},
    SlotKind.CONSENT: {"consent_given": "no_response"},
    SlotKind.PROFILE: {"profile": {"status": "skipped"}},
}


def degraded_values(kind: SlotKind, step_key: str) -> dict[str, object]:
    """Placeholder slot values for a force-advanced step.

    Amounts keep whatever partial values were already captured.
    """

    if kind is SlotKind.FREE_TEXT:
        return {"responses": {step_key: "unspecified"}}
    return dict(DEGRADED_VALUES.get(kind, {}))
