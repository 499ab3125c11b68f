from datetime import datetime

import pytest

from debt_advisor.dialogue.interrupts import (
    JOKE,
    InterruptChain,
    InterruptContext,
    best_faq_match,
    is_question,
    score_faq,
)
from debt_advisor.dialogue.script import FaqEntry
from debt_advisor.dialogue.types import Outcome, SlotKind, Step

NOW = datetime(2024, 3, 4, 15, 5)
chain = InterruptChain.default()


def classify(utterance, *, kind=SlotKind.CONCERN, slots=None, faqs=()):
    step = Step(index=2, prompt="What prompted you to seek help?", expects=kind, key="k")
    ctx = InterruptContext(step=step, slots=slots or {}, faqs=faqs, now=NOW)
    return chain.classify(utterance, ctx)


@pytest.mark.parametrize("utterance", ["reset", "Restart", "start again!", "Start over."])
def test_reset_phrases(utterance):
    result = classify(utterance)

    assert result.outcome is Outcome.RESET
    assert result.reset is True


def test_reset_needs_exact_phrase():
    assert classify("I want to reset my payments") is None


@pytest.mark.parametrize("utterance", ["ok", "Okay!", "thanks", "no worries", "cheers", ""])
def test_acknowledgement_only(utterance):
    assert classify(utterance).outcome is Outcome.ACKNOWLEDGEMENT


def test_acknowledgement_is_the_answer_on_consent_steps():
    assert classify("yes", kind=SlotKind.CONSENT) is None
    assert classify("ok", kind=SlotKind.ACKNOWLEDGEMENT) is None
    assert classify("", kind=SlotKind.CONSENT).outcome is Outcome.ACKNOWLEDGEMENT


def test_greeting_uses_time_of_day():
    result = classify("Good afternoon")

    assert result.outcome is Outcome.SMALL_TALK
    assert result.head == "Good afternoon!"


def test_small_talk_time_and_joke():
    assert "It’s 15:05 right now." in classify("what time is it?").head
    assert classify("tell me a joke").head == JOKE
    assert "I’m doing well" in classify("hi, how are you?").head


def test_small_talk_captures_volunteered_name():
    result = classify("hi, I'm Sam")

    assert result.slot_updates == {"name": "Sam"}
    assert result.display_name == "Sam"
    assert "Nice to meet you, Sam." in result.head


def test_small_talk_leaves_names_to_the_name_step():
    assert classify("hi, I'm Sam", kind=SlotKind.NAME) is None


def test_small_talk_courtesy():
    result = classify("nice to meet you", slots={"name": "Sam"})

    assert result.head == "Nice to meet you too."
    assert result.slot_updates == {}


def test_debt_content_is_never_small_talk():
    assert classify("hi, I have rent arrears") is None
    assert classify("hello, I lost my job and everything is piling up") is None


def test_off_topic_questions_about_the_assistant():
    result = classify("are you a bot?")

    assert result.outcome is Outcome.OFF_TOPIC
    assert result.head.startswith("I’m an online assistant")
    assert "Mark" in classify("what's your name?").head
    assert classify("why do you need to know", slots={"name": "Ann"}).head.endswith("with your debts, Ann.")


FAQS = (
    FaqEntry(question="What is an IVA?", answer="An IVA is a formal agreement.", tags=("iva",)),
    FaqEntry(question="Can bailiffs enter my home?", answer="Usually not on a first visit.", tags=("bailiffs",)),
)


def test_faq_scoring_weights():
    assert score_faq("What is an IVA?", FAQS[0]) == 100 + 10 + 2
    assert score_faq("So, what is an iva exactly", FAQS[0]) == 60 + 10 + 2
    assert score_faq("iva", FAQS[0]) == 10 + 1


def test_faq_threshold():
    assert best_faq_match("What is an IVA?", FAQS, 18)[0] is FAQS[0]
    assert best_faq_match("what about my iva", FAQS, 18) is None


def test_faq_answers_questions_only():
    result = classify("Can bailiffs enter my home?", faqs=FAQS)

    assert result.outcome is Outcome.FAQ
    assert result.head == "Usually not on a first visit."
    assert classify("bailiffs enter my home", faqs=FAQS) is None


def test_question_shape():
    assert is_question("is it free")
    assert is_question("I was wondering?")
    assert not is_question("I pay £600")
