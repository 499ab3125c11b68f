import pytest

from debt_advisor.dialogue.extractors import (
    AmountsExtractor,
    ExtractorRegistry,
    degraded_values,
    extract_amounts,
    extract_name,
)
from debt_advisor.dialogue.types import ExtractionContext, SlotKind, Step


def context(kind: SlotKind, *, hints=(), slots=None, key="answer"):
    step = Step(index=0, prompt="Question?", expects=kind, key=key, keyword_hints=tuple(hints))
    return ExtractionContext(step=step, slots=slots or {}, min_answer_length=3)


registry = ExtractorRegistry.default()


def run(kind: SlotKind, utterance: str, **kwargs):
    return registry.extract(kind, utterance, context(kind, **kwargs))


def test_name_rejects_struggling_sentence():
    result = run(SlotKind.NAME, "I've been struggling with debt")

    assert result.satisfied is False
    assert "name" not in result.values


def test_name_accepts_short_full_name():
    result = run(SlotKind.NAME, "Bob Smith")

    assert result.satisfied is True
    assert result.values == {"name": "Bob Smith"}


@pytest.mark.parametrize(
    ("utterance", "expected"),
    [
        ("my name is sarah jones", "Sarah Jones"),
        ("call me Dave thanks", "Dave"),
        ("It's Priya here", "Priya"),
        ("i'm o'neill", "O'neill"),
    ],
)
def test_name_lead_in_phrases(utterance, expected):
    match = extract_name(utterance, allow_loose_scan=False)

    assert match.ok is True
    assert match.name == expected


@pytest.mark.parametrize(
    "utterance",
    ["I'm worried", "I'm struggling", "I'm waiting", "loan", "yes", "shit", "I don't want to say that now"],
)
def test_name_rejects_non_names(utterance):
    assert extract_name(utterance, allow_loose_scan=True).ok is False


@pytest.mark.parametrize("utterance", ["Ming", "Sterling", "King"])
def test_name_accepts_names_ending_in_ing(utterance):
    assert extract_name(utterance, allow_loose_scan=True).name == utterance


def test_name_requires_loose_scan_for_bare_replies():
    assert extract_name("Bob", allow_loose_scan=False).ok is False
    assert extract_name("Bob", allow_loose_scan=True).name == "Bob"


def test_profane_name_reports_reason():
    match = extract_name("call me twat", allow_loose_scan=True)

    assert match.ok is False
    assert match.reason == "profanity"


def test_amounts_first_two_numbers_in_order():
    result = run(SlotKind.AMOUNTS, "I pay £600 and could afford £200")

    assert result.satisfied is True
    assert result.values == {"paying_amount": 600, "affordable_amount": 200}


def test_amounts_prefer_currency_prefixed_numbers():
    assert extract_amounts("For 12 months I've paid £1,250.50, now £300") == [1250.5, 300]
    assert extract_amounts("about 450 and 100") == [450, 100]
    assert extract_amounts("roughly £1.5k") == [1500]


def test_single_amount_uses_context_words():
    assert run(SlotKind.AMOUNTS, "I could afford 150").values == {"affordable_amount": 150}
    assert run(SlotKind.AMOUNTS, "I'm paying 420 at the moment").values == {"paying_amount": 420}


def test_single_amount_fills_remaining_slot():
    extractor = AmountsExtractor()
    result = extractor.extract("maybe 250", context(SlotKind.AMOUNTS, slots={"paying_amount": 600}))

    assert result.values == {"affordable_amount": 250}


def test_amounts_without_numbers_are_unsatisfied():
    result = run(SlotKind.AMOUNTS, "not sure really")

    assert result.satisfied is False
    assert result.hint == "no_amount"


def test_urgency_markers_and_negatives():
    urgent = run(SlotKind.URGENCY, "Bailiffs came round and I've had a court letter")
    assert urgent.values["urgency_flag"] == "urgent"
    assert "bailiff" in urgent.values["urgency_markers"]
    assert "court" in urgent.values["urgency_markers"]

    assert run(SlotKind.URGENCY, "no").values == {"urgency_flag": "none", "urgency_markers": []}
    assert run(SlotKind.URGENCY, "Nothing urgent at all").values["urgency_flag"] == "none"
    assert run(SlotKind.URGENCY, "hmm").satisfied is False
    assert run(SlotKind.URGENCY, "not sure").satisfied is False
    assert run(SlotKind.URGENCY, "not that I know of, maybe").satisfied is False
    assert run(SlotKind.URGENCY, "Not really").values["urgency_flag"] == "none"


def test_consent_and_acknowledgement_answers():
    assert run(SlotKind.CONSENT, "Yes, go ahead").values == {"consent_given": "given"}
    assert run(SlotKind.CONSENT, "no thanks").values == {"consent_given": "declined"}
    assert run(SlotKind.CONSENT, "Yes, I don't mind").values == {"consent_given": "given"}
    assert run(SlotKind.CONSENT, "yes, don't worry").values == {"consent_given": "given"}
    assert run(SlotKind.CONSENT, "I don't mind").values == {"consent_given": "given"}
    assert run(SlotKind.CONSENT, "I don't want to").values == {"consent_given": "declined"}
    assert run(SlotKind.ACKNOWLEDGEMENT, "ok").values == {"acknowledged": "accepted"}
    assert run(SlotKind.ACKNOWLEDGEMENT, "maybe").satisfied is False


def test_text_answers_respect_threshold_and_hints():
    assert run(SlotKind.CONCERN, "ok").satisfied is False
    assert run(SlotKind.CONCERN, "rent").values == {"concern": "rent"}
    assert run(SlotKind.FREE_TEXT, "nothing", hints=["letter", "upload"]).hint == "no_keyword"

    result = run(SlotKind.FREE_TEXT, "I have a Letter from the council", hints=["letter"], key="uploads")
    assert result.values == {"responses": {"uploads": "I have a Letter from the council"}}


def test_profile_is_never_satisfied_by_text():
    assert run(SlotKind.PROFILE, "here are my details").satisfied is False


def test_degraded_values_per_kind():
    assert degraded_values(SlotKind.NAME, "name") == {"name": "there"}
    assert degraded_values(SlotKind.AMOUNTS, "amounts") == {}
    assert degraded_values(SlotKind.FREE_TEXT, "notes") == {"responses": {"notes": "unspecified"}}
