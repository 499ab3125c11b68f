"""Dialogue progression engine.

One call to :meth:`DialogueEngine.respond` handles one user utterance:

1. resynchronise the step from the transcript (the caller's step is only a hint)
2. widget events from the chat front end
3. interrupt classifiers (reset, acknowledgement, small talk, off-topic, FAQ)
4. the slot extractor for the current step
5. advance by one step, re-ask, or force-advance with a placeholder value
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Sequence

from debt_advisor.core.config import Settings
from debt_advisor.dialogue import directives
from debt_advisor.dialogue.directives import ParsedPrompt
from debt_advisor.dialogue.events import (
    EventKind,
    WidgetEvent,
    amount_field,
    debt_total_remark,
    first_name,
    monthly_pay_remark,
    parse_event,
)
from debt_advisor.dialogue.extractors import (
    DEFAULT_REPROMPTS,
    PLACEHOLDER_NAME,
    ExtractorRegistry,
    degraded_values,
    extract_name,
)
from debt_advisor.dialogue.generator import HISTORY_TURNS, ReplyGenerator
from debt_advisor.dialogue.interrupts import InterruptChain, InterruptContext
from debt_advisor.dialogue.resync import StepResynchronizer
from debt_advisor.dialogue.script import Script
from debt_advisor.dialogue.text import (
    fingerprint,
    has_debt_content,
    join_paragraphs,
    normalise,
    tokens,
)
from debt_advisor.dialogue.types import (
    ASSISTANT,
    SLOT_KEYS,
    ConversationState,
    ExtractionContext,
    Outcome,
    SlotKind,
    Step,
    TurnRequest,
    TurnResponse,
    merge_slots,
    sanitize_slots,
)
from debt_advisor.memory.models import MessageTurn, SlotState

logger = logging.getLogger("advisor.engine")

PROFILE_DIRECTIVES = {"uiTrigger": "OPEN_FACT_FIND_POPUP", "popup": "FACT_FIND_CLIENT_INFORMATION"}
PORTAL_DIRECTIVES = {"uiTrigger": "OPEN_CLIENT_PORTAL"}

TAKE_YOUR_TIME = "No problem, take your time."
CARRY_ON = "When you’re ready, we can carry on from where we left off."
OPENING_ALTERNATE = "When you’re ready, tell me what’s brought you here about your debts today."
DEGRADED_ACK = "No problem, we can come back to that later."
DEGRADED_NAME_ACK = "That’s fine. I’ll just call you ‘there’ for now."
RESTART_HINT = "If you’d like to start again, just type reset."

AMOUNT_FOLLOW_UPS = {
    "affordable_amount": "Thanks. And how much could you realistically afford to pay towards your debts each month?",
    "paying_amount": "Thanks. And roughly how much are you paying towards your debts each month at the moment?",
}

_THANKS_PREFIX = re.compile(r"^(thanks|thank you|cheers)[\s,.!-]*", re.IGNORECASE)
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
_COURTESY = re.compile(r"\b(nice|pleased|good|lovely) to meet you\b")
_INTRO_WORDS = frozenset(
    {"my", "name", "name's", "is", "i'm", "im", "i", "am", "call", "me", "it's", "its", "it", "this",
     "hi", "hello", "hey", "there", "by", "the", "way", "btw", "and", "oh"}
)


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Engine tunables, decoupled from the environment."""

    max_reask_attempts: int = 3
    min_answer_length: int = 3
    resync_window: int = 10
    resync_needle_length: int = 45
    faq_score_threshold: int = 18

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        return cls(
            max_reask_attempts=settings.max_reask_attempts,
            min_answer_length=settings.min_answer_length,
            resync_window=settings.resync_window,
            resync_needle_length=settings.resync_needle_length,
            faq_score_threshold=settings.faq_score_threshold,
        )


def join_acknowledgement(ack: str, prompt: str) -> str:
    """Prefix a prompt with an acknowledgement without thanking the user twice."""

    ack, prompt = ack.strip(), prompt.strip()
    if not ack:
        return prompt
    if not prompt:
        return ack
    if _THANKS_PREFIX.match(prompt):
        sentences = _SENTENCE_BREAK.split(ack)
        ack = " ".join(sentence for sentence in sentences if not _THANKS_PREFIX.match(sentence))
    return f"{ack} {prompt}".strip()


def name_greeting(name: str, agent_name: str) -> str:
    if name.lower() == agent_name.lower():
        return f"Nice to meet you, {agent_name}. Nice to meet a fellow {agent_name}."
    return f"Nice to meet you, {name}."


class DialogueEngine:
    """Stateless per-turn orchestrator. Safe to share across sessions."""

    def __init__(
        self,
        script: Script,
        *,
        config: EngineConfig | None = None,
        extractors: ExtractorRegistry | None = None,
        interrupts: InterruptChain | None = None,
        generator: ReplyGenerator | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.script = script
        self.config = config or EngineConfig()
        self.extractors = extractors or ExtractorRegistry.default()
        self.interrupts = interrupts or InterruptChain.default()
        self.generator = generator
        self.resynchronizer = StepResynchronizer(
            script,
            window=self.config.resync_window,
            needle_length=self.config.resync_needle_length,
        )
        self._clock = clock or datetime.now

    # -- public API -------------------------------------------------------------------

    def respond(self, request: TurnRequest) -> TurnResponse:
        now = self._clock()
        transcript = list(request.transcript)
        utterance = (request.utterance or "").strip()

        if not any(turn.role == ASSISTANT for turn in transcript):
            return self._opening(Outcome.OPENING, now)

        resync = self.resynchronizer.resync(transcript, request.declared_step)
        step_index = self._gate(resync.step_index)
        declared = max(0, min(request.declared_step or 0, self.script.last_index))

        counters = dict(request.retry_counters or {})
        if request.declared_step is None or step_index != declared:
            counters = {}

        state = ConversationState(
            step_index=step_index,
            slots=sanitize_slots(request.declared_slots),
            retry_counters=counters,
            last_prompt_fingerprint=request.last_prompt_fingerprint
            or self._last_fingerprint(resync.window),
        )
        step = self.script.step(step_index)

        seen = self.resynchronizer.count_reasks(resync.window, step, self._reask_texts(step))
        if seen > state.retries(step.expects):
            state.retry_counters[step.expects.value] = seen

        last_text = self._last_assistant_text(resync.window)
        completed = step.index == self.script.last_index and self.resynchronizer.is_complete(resync.window)

        event = parse_event(utterance)
        if event is not None:
            return self._handle_event(event, state, step, now, last_text)

        detour = self.interrupts.classify(
            utterance,
            InterruptContext(
                step=step,
                slots=state.slots,
                agent_name=self.script.agent_name,
                faqs=self.script.faqs,
                faq_threshold=self.config.faq_score_threshold,
                now=now,
            ),
        )
        if detour is not None:
            if detour.reset:
                logger.debug("Reset requested at step %s", step.index)
                return self._opening(Outcome.RESET, now)
            state.slots = merge_slots(state.slots, detour.slot_updates)
            if completed:
                return self._completed(state, head=detour.head, outcome=detour.outcome)
            if detour.outcome is Outcome.ACKNOWLEDGEMENT:
                return self._re_emit(state, step, now, last_text)
            prompt = self._varied_prompt(step, state, now, last_text)
            return self._reply(
                state,
                join_paragraphs(detour.head, prompt),
                detour.outcome,
                prompt=prompt,
                directives=self._step_defaults(step),
                display_name=detour.display_name,
            )

        if completed:
            return self._completed(state)

        if step.expects in (SlotKind.CONCERN, SlotKind.ISSUE, SlotKind.FREE_TEXT):
            volunteered = self._bare_introduction(utterance)
            if volunteered:
                state.slots = merge_slots(state.slots, {"name": volunteered})
                prompt = self._varied_prompt(step, state, now, last_text)
                return self._reply(
                    state,
                    join_paragraphs(name_greeting(volunteered, self.script.agent_name), prompt),
                    Outcome.NAME_CAPTURED,
                    prompt=prompt,
                    display_name=volunteered,
                )

        retries = state.retries(step.expects)
        result = self.extractors.extract(
            step.expects,
            utterance,
            ExtractionContext(
                step=step,
                retry_count=retries,
                slots=state.slots,
                min_answer_length=self.config.min_answer_length,
            ),
        )
        if result.values:
            state.slots = merge_slots(state.slots, result.values)
        satisfied = result.satisfied and all(
            state.slots.get(key) is not None for key in SLOT_KEYS[step.expects]
        )

        if satisfied:
            captured = result.values.get("name") if step.expects is SlotKind.NAME else None
            if captured:
                ack = name_greeting(captured, self.script.agent_name)
                outcome = Outcome.NAME_CAPTURED
            else:
                ack = self._acknowledgement(utterance, state.slots)
                outcome = Outcome.ADVANCED
            return self._advance(state, step, now, ack, outcome, display_name=captured)

        if retries < self.config.max_reask_attempts:
            state.retry_counters[step.expects.value] = retries + 1
            logger.debug(
                "Step %s (%s) not satisfied (%s), re-ask %s",
                step.index,
                step.expects.value,
                result.hint,
                retries + 1,
            )
            return self._reask(state, step, utterance, transcript, now, last_text, retries + 1)

        logger.warning(
            "Forcing progression past step %s (%s) after %s re-asks",
            step.index,
            step.expects.value,
            retries,
        )
        state.slots = merge_slots(state.slots, degraded_values(step.expects, step.key))
        ack = DEGRADED_NAME_ACK if step.expects is SlotKind.NAME else DEGRADED_ACK
        return self._advance(state, step, now, ack, Outcome.DEGRADED)

    # -- transitions ------------------------------------------------------------------

    def _gate(self, index: int) -> int:
        """Clamp forward past steps that are not yet unlocked at ``index``."""

        index = max(0, min(index, self.script.last_index))
        for _ in range(len(self.script.steps)):
            floor = self.script.steps[index].unlock_at
            if floor is None or index >= floor:
                break
            logger.debug("Step %s unlocks at %s, clamping forward", index, floor)
            index = min(floor, self.script.last_index)
        return index

    def _advance(
        self,
        state: ConversationState,
        step: Step,
        now: datetime,
        ack: str,
        outcome: Outcome,
        *,
        display_name: str | None = None,
    ) -> TurnResponse:
        state.retry_counters.pop(step.expects.value, None)

        if step.index >= self.script.last_index:
            reply = join_acknowledgement(ack, self.script.closing)
            state.step_index = step.index
            state.last_prompt_fingerprint = fingerprint(self.script.closing)
            logger.debug("Script complete at step %s", step.index)
            return self._response(state, reply, {}, Outcome.TERMINAL, display_name=display_name, complete=True)

        next_index = self._gate(step.index + 1)
        next_step = self.script.step(next_index)
        rendered = self._render(next_step, state, now)
        state.step_index = next_index
        state.last_prompt_fingerprint = fingerprint(rendered.clean_text)
        logger.debug("Advanced %s -> %s (%s)", step.index, next_index, outcome.value)
        return self._response(
            state,
            join_acknowledgement(ack, rendered.clean_text),
            {**self._step_defaults(next_step), **rendered.directives},
            outcome,
            display_name=display_name,
        )

    def _reask(
        self,
        state: ConversationState,
        step: Step,
        utterance: str,
        transcript: Sequence[MessageTurn],
        now: datetime,
        last_text: str,
        attempt: int,
    ) -> TurnResponse:
        if self.generator is not None and step.expects is not SlotKind.PROFILE:
            hint = self._render(step, state, now).clean_text
            generated = self.generator.generate(
                utterance,
                transcript[-HISTORY_TURNS:],
                hint,
                name=self._known_name(state.slots),
            )
            cleaned = directives.strip(generated) if generated else ""
            if cleaned and not self._repeats(cleaned, state, last_text):
                return self._reply(state, cleaned, Outcome.GENERATED, prompt=cleaned)

        if step.expects is SlotKind.AMOUNTS:
            missing = [key for key in SLOT_KEYS[SlotKind.AMOUNTS] if state.slots.get(key) is None]
            if len(missing) == 1:
                follow_up = AMOUNT_FOLLOW_UPS[missing[0]]
                if not self._repeats(follow_up, state, last_text):
                    return self._reply(state, follow_up, Outcome.REASK, prompt=follow_up)

        variants = [self._render_text(text, state, now) for text in self._reask_texts(step)]
        if variants:
            start = (attempt - 1) % len(variants)
            variants = variants[start:] + variants[:start]
        prompt = self._first_fresh([*variants, *self._prompt_candidates(step, state, now)], state, last_text)
        return self._reply(state, prompt, Outcome.REASK, prompt=prompt, directives=self._step_defaults(step))

    def _re_emit(self, state: ConversationState, step: Step, now: datetime, last_text: str) -> TurnResponse:
        rendered = self._render(step, state, now)
        prompt = rendered.clean_text
        reply = prompt
        if self._repeats(prompt, state, last_text):
            reply = join_paragraphs(TAKE_YOUR_TIME, prompt)
        return self._reply(
            state,
            reply,
            Outcome.ACKNOWLEDGEMENT,
            prompt=prompt,
            directives={**self._step_defaults(step), **rendered.directives},
        )

    def _completed(self, state: ConversationState, *, head: str = "", outcome: Outcome = Outcome.TERMINAL) -> TurnResponse:
        tail = f"{self.script.closing} {RESTART_HINT}"
        state.last_prompt_fingerprint = fingerprint(self.script.closing)
        return self._response(state, join_paragraphs(head, tail), {}, outcome, complete=True)

    def _handle_event(
        self,
        event: WidgetEvent,
        state: ConversationState,
        step: Step,
        now: datetime,
        last_text: str,
    ) -> TurnResponse:
        logger.debug("Widget event %s at step %s", event.kind.value, step.index)

        if event.kind is EventKind.PROFILE_SUBMIT:
            name = first_name(event.payload)
            updates: dict[str, Any] = {"profile": event.payload}
            if name:
                updates["name"] = name
            state.slots = merge_slots(state.slots, updates)
            response = self._advance(state, step, now, "", Outcome.EVENT, display_name=name)
            response.directives = {**response.directives, **PORTAL_DIRECTIVES}
            return response

        if event.kind is EventKind.PROFILE_SKIP:
            if step.expects is SlotKind.PROFILE:
                state.slots = merge_slots(state.slots, degraded_values(SlotKind.PROFILE, step.key))
                return self._advance(state, step, now, "", Outcome.EVENT)
            return self._re_emit(state, step, now, last_text)

        if event.kind is EventKind.DEBT_TOTAL:
            total = amount_field(event.payload, "totalDebt")
            if total is None:
                return self._re_emit(state, step, now, last_text)
            state.slots = merge_slots(state.slots, {"total_debt": total, "profile": {"totalDebt": total}})
            remark = debt_total_remark(total)
        else:
            monthly = amount_field(event.payload, "monthlyPay")
            if monthly is None:
                return self._re_emit(state, step, now, last_text)
            state.slots = merge_slots(state.slots, {"paying_amount": monthly, "profile": {"monthlyPay": monthly}})
            remark = monthly_pay_remark(monthly)

        prompt = self._varied_prompt(step, state, now, last_text)
        return self._reply(state, join_paragraphs(remark, prompt), Outcome.EVENT, prompt=prompt)

    def _opening(self, outcome: Outcome, now: datetime) -> TurnResponse:
        opening = self.script.render(self.script.steps[0], now=now, keep_intro=True)
        state = ConversationState(step_index=0, last_prompt_fingerprint=fingerprint(opening.clean_text))
        return self._response(
            state,
            opening.clean_text,
            {**self._step_defaults(self.script.steps[0]), **opening.directives},
            outcome,
        )

    # -- reply composition ------------------------------------------------------------

    def _reply(
        self,
        state: ConversationState,
        reply: str,
        outcome: Outcome,
        *,
        prompt: str,
        directives: dict[str, str] | None = None,
        display_name: str | None = None,
    ) -> TurnResponse:
        state.last_prompt_fingerprint = fingerprint(prompt)
        return self._response(state, reply, directives or {}, outcome, display_name=display_name)

    def _response(
        self,
        state: ConversationState,
        reply: str,
        directive_map: dict[str, str],
        outcome: Outcome,
        *,
        display_name: str | None = None,
        complete: bool = False,
    ) -> TurnResponse:
        return TurnResponse(
            reply=reply,
            next_step=state.step_index,
            slots=state.slots,
            directives=dict(directive_map),
            state=state,
            outcome=outcome,
            display_name=display_name,
            complete=complete,
        )

    def _acknowledgement(self, utterance: str, slots: SlotState) -> str:
        name = self._known_name(slots)
        courtesy = "Nice to meet you too." if _COURTESY.search(normalise(utterance)) else ""
        if has_debt_content(utterance):
            base = f"Thanks, {name}, got it." if name else "Thanks, got it."
        elif courtesy:
            return courtesy
        else:
            base = f"Thanks, {name}." if name else "Thanks."
        return f"{courtesy} {base}".strip()

    def _bare_introduction(self, utterance: str) -> str | None:
        """A name volunteered on its own, e.g. "my name is Ali"."""

        if has_debt_content(utterance):
            return None
        match = extract_name(utterance, allow_loose_scan=False)
        if not match.ok or not match.name:
            return None
        name_words = set(match.name.lower().split())
        leftover = [word for word in tokens(utterance) if word not in _INTRO_WORDS and word not in name_words]
        return match.name if not leftover else None

    def _varied_prompt(self, step: Step, state: ConversationState, now: datetime, last_text: str) -> str:
        return self._first_fresh(self._prompt_candidates(step, state, now), state, last_text)

    def _prompt_candidates(self, step: Step, state: ConversationState, now: datetime) -> list[str]:
        prompt = self._render(step, state, now).clean_text
        candidates = [prompt]
        candidates.extend(self._render_text(text, state, now) for text in step.reprompts)
        if step.index == 0:
            candidates.append(OPENING_ALTERNATE)
        candidates.append(f"{CARRY_ON} {prompt}")
        return candidates

    def _first_fresh(self, candidates: Sequence[str], state: ConversationState, last_text: str) -> str:
        for candidate in candidates:
            if candidate and not self._repeats(candidate, state, last_text):
                return candidate
        return join_paragraphs(TAKE_YOUR_TIME, candidates[-1])

    def _repeats(self, candidate: str, state: ConversationState, last_text: str) -> bool:
        if state.last_prompt_fingerprint and fingerprint(candidate) == state.last_prompt_fingerprint:
            return True
        return bool(last_text) and normalise(candidate) in normalise(last_text)

    def _reask_texts(self, step: Step) -> tuple[str, ...]:
        texts = step.reprompts or DEFAULT_REPROMPTS.get(step.expects, ())
        if step.expects is SlotKind.AMOUNTS:
            texts = (*texts, *AMOUNT_FOLLOW_UPS.values())
        return tuple(texts)

    def _render(self, step: Step, state: ConversationState, now: datetime) -> ParsedPrompt:
        return self.script.render(step, name=self._known_name(state.slots), now=now)

    def _render_text(self, text: str, state: ConversationState, now: datetime) -> str:
        return self.script.render_text(text, name=self._known_name(state.slots), now=now).clean_text

    def _step_defaults(self, step: Step) -> dict[str, str]:
        return dict(PROFILE_DIRECTIVES) if step.expects is SlotKind.PROFILE else {}

    @staticmethod
    def _known_name(slots: SlotState) -> str | None:
        name = slots.get("name")
        return name if name and name != PLACEHOLDER_NAME else None

    @staticmethod
    def _last_assistant_text(window: Sequence[MessageTurn]) -> str:
        for turn in reversed(window):
            if turn.role == ASSISTANT:
                return turn.content
        return ""

    def _last_fingerprint(self, window: Sequence[MessageTurn]) -> str | None:
        text = self._last_assistant_text(window)
        return fingerprint(text) if text else None
