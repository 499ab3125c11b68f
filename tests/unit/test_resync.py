from debt_advisor.dialogue.extractors import DEFAULT_REPROMPTS
from debt_advisor.dialogue.resync import StepResynchronizer
from debt_advisor.dialogue.types import ASSISTANT, USER, SlotKind
from debt_advisor.memory.models import MessageTurn


def assistant(content):
    return MessageTurn(conversation_id="conv-1", role=ASSISTANT, content=content)


def user(content):
    return MessageTurn(conversation_id="conv-1", role=USER, content=content)


def test_match_step_picks_highest_prompt(script):
    resync = StepResynchronizer(script)
    text = f"{script.steps[2].prompt} {script.steps[3].prompt}"

    assert resync.match_step(text) == 3
    assert resync.match_step("Nice to meet you, Bob. " + script.steps[2].prompt) == 2
    assert resync.match_step("Something unrelated entirely.") is None


def test_resync_moves_forward_only(script):
    resync = StepResynchronizer(script)
    transcript = [assistant(script.opening_line.clean_text), user("rent"), assistant(script.steps[3].prompt)]

    behind = resync.resync(transcript, declared_step=1)
    assert behind.step_index == 3
    assert behind.source == "transcript"

    ahead = resync.resync(transcript, declared_step=5)
    assert ahead.step_index == 5


def test_resync_ignores_turns_before_reset(script):
    resync = StepResynchronizer(script)
    transcript = [
        assistant(script.opening_line.clean_text),
        user("rent arrears"),
        assistant(script.steps[3].prompt),
        user("start again"),
        assistant(script.opening_line.clean_text),
    ]

    result = resync.resync(transcript)

    assert result.step_index == 0
    assert len(result.window) == 1


def test_resync_window_is_bounded(script):
    resync = StepResynchronizer(script, window=2)
    transcript = [assistant(script.steps[4].prompt), user("no"), assistant("ok"), user("ok")]

    assert resync.window(transcript) == tuple(transcript[-2:])


def test_resync_falls_back_to_wording_cues(script):
    resync = StepResynchronizer(script)
    transcript = [assistant("Sorry, could you remind me of your first name?")]

    result = resync.resync(transcript)

    assert result.step_index == 1
    assert result.source == "heuristic"


def test_resync_keeps_declared_step_without_assistant_turns(script):
    result = StepResynchronizer(script).resync([user("hello")], declared_step=4)

    assert result.step_index == 4
    assert result.source == "declared"


def test_completion_is_detected_from_closing(script):
    resync = StepResynchronizer(script)

    assert resync.is_complete([assistant(f"Thanks, Ann. {script.closing}"), user("thanks")])
    assert not resync.is_complete([assistant(script.steps[8].prompt)])
    assert resync.match_step(script.closing) == script.last_index


def test_count_reasks_since_prompt(script):
    resync = StepResynchronizer(script)
    name_step = script.steps[1]
    variants = DEFAULT_REPROMPTS[SlotKind.NAME]
    transcript = [
        assistant(script.steps[0].reprompts[0]),
        user("rent"),
        assistant(name_step.prompt),
        user("I would rather not say that"),
        assistant(variants[0]),
        user("I would rather not say that"),
        assistant(variants[1]),
    ]

    assert resync.count_reasks(transcript, name_step, variants) == 2
    assert resync.count_reasks(transcript[:3], name_step, variants) == 0


def test_count_reasks_stops_at_another_step(script):
    resync = StepResynchronizer(script)
    issue_step = script.steps[2]
    transcript = [
        assistant(issue_step.reprompts[0]),
        user("hmm"),
        assistant(script.steps[1].prompt),
        user("Bob"),
        assistant(issue_step.reprompts[0]),
    ]

    assert resync.count_reasks(transcript, issue_step) == 1


def test_resync_is_idempotent_over_reasks_and_detours(script):
    resync = StepResynchronizer(script)
    transcript = [
        assistant(script.opening_line.clean_text),
        user("Council tax arrears"),
        assistant(script.steps[1].prompt),
        user("what time is it?"),
        assistant(f"It’s 09:00 right now.\n\n{script.steps[1].prompt}"),
        user("I would rather not say that"),
        assistant(DEFAULT_REPROMPTS[SlotKind.NAME][0]),
    ]

    first = resync.resync(transcript)
    second = resync.resync(transcript, declared_step=first.step_index)

    assert first.step_index == 1
    assert second.step_index == first.step_index
    assert second.matched_step == first.matched_step
    assert second.window == first.window
