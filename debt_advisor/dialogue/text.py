"""Text normalisation and vocabulary helpers shared by the dialogue components."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime

_QUOTES = str.maketrans({"’": "'", "‘": "'", "“": '"', "”": '"', "—": "-", "–": "-"})
_NON_WORD = re.compile(r"[^\w\s'-]", re.UNICODE)
_SPACES = re.compile(r"\s+")


def normalise(text: str | None) -> str:
    """Lower-case, unify quotes and collapse whitespace."""

    return _SPACES.sub(" ", (text or "").translate(_QUOTES)).strip().lower()


def strip_punctuation(text: str | None) -> str:
    cleaned = _NON_WORD.sub(" ", (text or "").translate(_QUOTES)).replace("_", " ")
    return _SPACES.sub(" ", cleaned).strip()


def tokens(text: str | None) -> list[str]:
    return normalise(strip_punctuation(text)).split()


def title_case_name(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:].lower() for word in strip_punctuation(text).split())


def fingerprint(text: str | None) -> str:
    """Stable short hash of a prompt, insensitive to case, spacing and punctuation."""

    key = normalise(strip_punctuation(text))[:120]
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]


def time_greeting(now: datetime) -> str:
    if now.hour < 12:
        return "Good morning"
    if now.hour < 18:
        return "Good afternoon"
    return "Good evening"


_DEBT_PATTERN = re.compile(
    r"\b(debt|debts|loan|loans|credit|credit cards?|overdraft|catalogue|catalog|klarna|ccj|ccjs|"
    r"county court|bailiff|bailiffs|enforcement|parking fines?|parking tickets?|pcn|council tax|rent|"
    r"mortgage|arrears|utility bills?|(?:energy|gas|electric|electricity|water) bills?|"
    r"(?:court|magistrates|speeding) fines?|magistrates|attachment of earnings|charging order)\b"
)

DEBT_TERMS = (
    "administration order",
    "adverse credit",
    "bad debt",
    "bankruptcy",
    "bankrupt",
    "buy now pay later",
    "car finance",
    "cash advance",
    "charge-off",
    "consolidation",
    "consolidating",
    "creditor",
    "creditors",
    "debt collection agency",
    "debt management plan",
    "debt relief order",
    "default notice",
    "defaults",
    "direct debit",
    "dmp",
    "dro",
    "dwp",
    "eviction",
    "final demand",
    "garnishment",
    "hmrc",
    "insolvency",
    "insolvent",
    "interest rate",
    "invoice",
    "iva",
    "liability order",
    "logbook loan",
    "missed payment",
    "owing",
    "payday",
    "repossession",
    "statutory demand",
    "store card",
    "summons",
    "unsecured",
    "warrant of execution",
    "winding-up",
    "write-off",
)

_SHORT_TERMS = tuple(
    re.compile(rf"\b{re.escape(term)}\b") for term in DEBT_TERMS if len(term) <= 4
)
_LONG_TERMS = tuple(term for term in DEBT_TERMS if len(term) > 4)


def has_debt_content(text: str | None) -> bool:
    """Return True when the text mentions debt-domain vocabulary."""

    lowered = normalise(text)
    if not lowered:
        return False
    if _DEBT_PATTERN.search(lowered):
        return True
    if any(pattern.search(lowered) for pattern in _SHORT_TERMS):
        return True
    return any(term in lowered for term in _LONG_TERMS)


PROFANITY = (
    "arse",
    "arsehole",
    "ass",
    "asshole",
    "bastard",
    "bitch",
    "bloody",
    "bollocks",
    "bugger",
    "bullshit",
    "cock",
    "cocksucker",
    "crap",
    "cunt",
    "dammit",
    "damn",
    "dick",
    "dickhead",
    "dumbass",
    "fag",
    "faggot",
    "fuck",
    "fucked",
    "fucker",
    "fucking",
    "fuck off",
    "goddamn",
    "horseshit",
    "jackass",
    "motherfucker",
    "nigga",
    "nigger",
    "piss",
    "prick",
    "pussy",
    "shit",
    "shite",
    "slut",
    "son of a bitch",
    "spastic",
    "tranny",
    "turd",
    "twat",
    "wank",
    "wanker",
    "whore",
)

_PROFANITY_PATTERN = re.compile(
    r"(?<![a-z])(" + "|".join(re.escape(word) for word in sorted(PROFANITY, key=len, reverse=True)) + r")(?![a-z])"
)


def contains_profanity(text: str | None) -> bool:
    return bool(_PROFANITY_PATTERN.search(normalise(text)))


def join_paragraphs(*parts: str) -> str:
    return "\n\n".join(part.strip() for part in parts if part and part.strip())
