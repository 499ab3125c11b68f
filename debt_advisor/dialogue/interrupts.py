"""Interrupt classifiers: detours that answer the user without consuming the pending step."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from debt_advisor.dialogue.extractors import extract_name
from debt_advisor.dialogue.script import FaqEntry
from debt_advisor.dialogue.text import (
    has_debt_content,
    normalise,
    strip_punctuation,
    time_greeting,
    tokens,
)
from debt_advisor.dialogue.types import InterruptResult, Outcome, SlotKind, Step

RESET_PHRASES = frozenset({"reset", "restart", "start again", "start over", "start from the beginning"})

ACK_PHRASES = frozenset(
    {
        "ok", "okay", "kk", "k", "alright", "right", "cool", "nice", "thanks", "thank you",
        "thanks a lot", "cheers", "yep", "yeah", "yes", "no worries", "got it", "fine", "great",
        "ok thanks", "okay thanks", "ok cool", "sounds good",
    }
)

_GREETING = re.compile(r"^(hello|hi|hiya|hey|howdy|good (morning|afternoon|evening))\b")
_HOW_ARE_YOU = re.compile(r"\b(how are you|how're you|how are things|how's it going|how is it going|you ok|you alright)\b")
_TIME = re.compile(r"\b(what time is it|what's the time|what is the time|time is it)\b")
_JOKE = re.compile(r"\b(joke|make me laugh|something funny)\b")
_COURTESY = re.compile(r"\b(nice|pleased|good|lovely) to meet you\b")

_SMALL_TALK_FILLER = frozenset(
    {
        "hello", "hi", "hiya", "hey", "howdy", "good", "morning", "afternoon", "evening", "there",
        "how", "are", "you", "doing", "today", "things", "it", "going", "is", "what", "time",
        "the", "tell", "me", "a", "joke", "nice", "pleased", "lovely", "to", "meet", "too",
        "thanks", "please", "mate", "i'm", "im", "i", "am", "my", "name", "call", "this",
        "fine", "ok", "okay", "and", "well", "make", "laugh", "something", "funny", "you're",
    }
)

JOKE = "Why did the scarecrow win an award? Because he was outstanding in his field."

_OFF_TOPIC_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"\b(are you (a |an )?(bot|robot|human|real|ai|person|computer)|am i talking to a)\b"),
        "I’m an online assistant, but I’m here to help in a clear, practical way and keep things simple.",
    ),
    (
        re.compile(r"\b(who are you|what are you|what'?s your name|what is your name)\b"),
        "I’m {agent}, your debt-advice assistant. I’ll ask a few quick questions so we can work out the best options for you.",
    ),
    (
        re.compile(r"\b(what can you do|what do you do|how can you help|how do you help|what can you help)\b"),
        "I can explain your options, help you organise the situation, and guide you through the next steps based on what you tell me.",
    ),
    (
        re.compile(r"\b(what is this|what'?s this|what is this chat|where am i)\b"),
        "This is a quick debt help chat. I’ll ask a couple of questions and then explain the options available.",
    ),
    (
        re.compile(r"\b(why (are|do) you (asking|need|want)|why does that matter|why do i need to)\b"),
        "I’m here to help you work out the best way forward with your debts{name}.",
    ),
)

_QUESTION_WORDS = frozenset(
    {
        "what", "how", "can", "could", "will", "would", "is", "are", "do", "does", "should",
        "why", "when", "where", "who", "which", "am", "may", "shall",
    }
)


def is_reset_command(utterance: str | None) -> bool:
    return normalise(strip_punctuation(utterance)) in RESET_PHRASES


def is_acknowledgement(utterance: str | None) -> bool:
    return normalise(strip_punctuation(utterance)) in ACK_PHRASES


def is_question(utterance: str | None) -> bool:
    words = tokens(utterance)
    return "?" in (utterance or "") or bool(words and words[0] in _QUESTION_WORDS)


def _contains_phrase(haystack: str, phrase: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(phrase)}(?![a-z0-9])", haystack) is not None


def score_faq(utterance: str, entry: FaqEntry) -> int:
    """Score an utterance against one FAQ entry.

    +100 for an exact match, +60 when either text contains the other (the
    contained side must be at least 12 characters), +10 per tag mentioned and
    +1 per shared token of three or more characters.
    """

    query = normalise(strip_punctuation(utterance))
    question = normalise(strip_punctuation(entry.question))
    if not query or not question:
        return 0

    score = 0
    if query == question:
        score += 100
    elif (len(question) >= 12 and question in query) or (len(query) >= 12 and query in question):
        score += 60

    for tag in entry.tags:
        if _contains_phrase(query, normalise(tag)):
            score += 10

    shared = {word for word in query.split() if len(word) >= 3} & {word for word in question.split() if len(word) >= 3}
    return score + len(shared)


def best_faq_match(utterance: str, faqs: Iterable[FaqEntry], threshold: int) -> tuple[FaqEntry, int] | None:
    best: tuple[FaqEntry, int] | None = None
    for entry in faqs:
        score = score_faq(utterance, entry)
        if best is None or score > best[1]:
            best = (entry, score)
    if best is None or best[1] < threshold:
        return None
    return best


@dataclass(slots=True)
class InterruptContext:
    """What the classifiers may consult about the pending step."""

    step: Step
    slots: Mapping[str, Any] = field(default_factory=dict)
    agent_name: str = "Mark"
    faqs: Sequence[FaqEntry] = ()
    faq_threshold: int = 18
    now: datetime = field(default_factory=datetime.now)


class InterruptClassifier(ABC):
    """Either answers the utterance as a detour or passes it through."""

    name: str = "interrupt"

    @abstractmethod
    def classify(self, utterance: str, context: InterruptContext) -> InterruptResult | None:
        """Return a detour result, or ``None`` to let the next classifier run."""


class ResetClassifier(InterruptClassifier):
    name = "reset"

    def classify(self, utterance: str, context: InterruptContext) -> InterruptResult | None:
        if is_reset_command(utterance):
            return InterruptResult(outcome=Outcome.RESET, reset=True)
        return None


class AcknowledgementClassifier(InterruptClassifier):
    """Bare 'ok'/'thanks' replies; on agreement steps those words are the answer."""

    name = "acknowledgement"

    def classify(self, utterance: str, context: InterruptContext) -> InterruptResult | None:
        if not (utterance or "").strip():
            return InterruptResult(outcome=Outcome.ACKNOWLEDGEMENT)
        if context.step.expects in (SlotKind.ACKNOWLEDGEMENT, SlotKind.CONSENT):
            return None
        if is_acknowledgement(utterance):
            return InterruptResult(outcome=Outcome.ACKNOWLEDGEMENT)
        return None


def off_topic_reply(lowered: str, context: InterruptContext) -> str | None:
    name = context.slots.get("name")
    for pattern, reply in _OFF_TOPIC_RULES:
        if pattern.search(lowered):
            return reply.format(agent=context.agent_name, name=f", {name}" if name else "")
    return None


class SmallTalkClassifier(InterruptClassifier):
    """Greetings, time, jokes and pleasantries that carry no debt information."""

    name = "small_talk"

    def classify(self, utterance: str, context: InterruptContext) -> InterruptResult | None:
        if has_debt_content(utterance):
            return None

        lowered = normalise(utterance)
        greeting = _GREETING.search(lowered)
        how_are_you = _HOW_ARE_YOU.search(lowered)
        asks_time = _TIME.search(lowered)
        joke = _JOKE.search(lowered)
        courtesy = _COURTESY.search(lowered)
        if not (greeting or how_are_you or asks_time or joke or courtesy):
            return None

        captured: str | None = None
        if not context.slots.get("name"):
            match = extract_name(utterance, allow_loose_scan=False)
            if match.ok and match.name:
                if context.step.expects is SlotKind.NAME:
                    # The name extractor answers the pending question itself.
                    return None
                captured = match.name

        if self._residual_words(lowered, captured) > 3:
            return None

        name = captured or context.slots.get("name")
        parts: list[str] = []
        if greeting:
            parts.append(f"{time_greeting(context.now)}{', ' + name if name else ''}!")
        if captured:
            parts.append(f"Nice to meet you, {captured}.")
        elif courtesy:
            parts.append("Nice to meet you too.")
        if how_are_you:
            parts.append("I’m doing well, thanks for asking.")
        if asks_time:
            parts.append(f"It’s {context.now:%H:%M} right now.")
        if joke:
            parts.append(JOKE)

        deflection = off_topic_reply(lowered, context)
        if deflection:
            parts.append(deflection)

        return InterruptResult(
            outcome=Outcome.SMALL_TALK,
            head=" ".join(parts),
            slot_updates={"name": captured} if captured else {},
            display_name=captured,
        )

    @staticmethod
    def _residual_words(lowered: str, captured: str | None) -> int:
        skip = set(_SMALL_TALK_FILLER)
        if captured:
            skip.update(captured.lower().split())
        return sum(1 for word in tokens(lowered) if word not in skip)


class OffTopicClassifier(InterruptClassifier):
    """Questions about the assistant itself rather than the user's debts."""

    name = "off_topic"

    def classify(self, utterance: str, context: InterruptContext) -> InterruptResult | None:
        if has_debt_content(utterance):
            return None
        reply = off_topic_reply(normalise(utterance), context)
        if reply is None:
            return None
        return InterruptResult(outcome=Outcome.OFF_TOPIC, head=reply)


class FaqClassifier(InterruptClassifier):
    """Answers from the FAQ knowledge base when a question scores above threshold."""

    name = "faq"

    def classify(self, utterance: str, context: InterruptContext) -> InterruptResult | None:
        if not context.faqs or not is_question(utterance):
            return None
        match = best_faq_match(utterance, context.faqs, context.faq_threshold)
        if match is None:
            return None
        entry, _score = match
        return InterruptResult(outcome=Outcome.FAQ, head=entry.answer)


class InterruptChain:
    """Runs classifiers in priority order; the first to answer wins."""

    def __init__(self, classifiers: Sequence[InterruptClassifier]) -> None:
        self.classifiers = tuple(classifiers)

    @classmethod
    def default(cls) -> "InterruptChain":
        return cls(
            [
                ResetClassifier(),
                AcknowledgementClassifier(),
                SmallTalkClassifier(),
                OffTopicClassifier(),
                FaqClassifier(),
            ]
        )

    def classify(self, utterance: str, context: InterruptContext) -> InterruptResult | None:
        for classifier in self.classifiers:
            result = classifier.classify(utterance, context)
            if result is not None:
                return result
        return None
