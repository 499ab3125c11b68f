"""Optional LLM reply generator used when a slot answer is not recognised."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Sequence

import httpx

from debt_advisor.core.config import Settings
from debt_advisor.dialogue.types import USER
from debt_advisor.memory.models import MessageTurn

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
HISTORY_TURNS = 10

_COMPLEX_TOPICS = re.compile(
    r"bankrupt|\biva\b|\bdmp\b|\bdro\b|court|bailiff|enforcement|council tax|\bccj|credit rating|interest",
    re.IGNORECASE,
)

SYSTEM_PROMPT = """You are a professional, friendly UK debt-advice assistant.
Goals:
- Sound human, calm, empathetic, and professional (avoid em dashes).
- Always respond to what the user just said (acknowledge it properly).
- If the user asks a side question, answer briefly, then return to the current step naturally.
- Follow the current script step without looping or asking the same question again.
- Never show internal markers or tags.
Current known name: {name}.
Current step prompt: {prompt}"""


class ReplyGenerator(ABC):
    """Best-effort free-form reply source. ``None`` means unavailable."""

    @abstractmethod
    def generate(
        self,
        utterance: str,
        history: Sequence[MessageTurn],
        prompt_hint: str,
        *,
        name: str | None = None,
    ) -> str | None:
        """Return a reply or ``None``; must not raise."""


def is_complex(utterance: str) -> bool:
    return len(utterance) > 140 or bool(_COMPLEX_TOPICS.search(utterance))


class OpenRouterGenerator(ReplyGenerator):
    """Chat-completions call to OpenRouter with a hard timeout."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "openai/gpt-4o-mini",
        complex_model: str = "openai/gpt-4o",
        referer: str | None = None,
        title: str | None = None,
        timeout: float = 8.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._complex_model = complex_model
        self._referer = referer
        self._title = title
        self._timeout = timeout
        self._transport = transport
        self._logger = logging.getLogger("advisor.generator")

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self._referer:
            headers["HTTP-Referer"] = self._referer
        if self._title:
            headers["X-Title"] = self._title
        return headers

    def build_payload(
        self,
        utterance: str,
        history: Sequence[MessageTurn],
        prompt_hint: str,
        name: str | None = None,
    ) -> dict[str, Any]:
        messages: list[dict[str, str]] = [
            {"role": "system", "content": SYSTEM_PROMPT.format(name=name or "unknown", prompt=prompt_hint)}
        ]
        for turn in list(history)[-HISTORY_TURNS:]:
            messages.append({"role": "user" if turn.role == USER else "assistant", "content": turn.content})
        messages.append({"role": "user", "content": utterance})
        return {
            "model": self._complex_model if is_complex(utterance) else self._model,
            "messages": messages,
            "temperature": 0.4,
        }

    def generate(
        self,
        utterance: str,
        history: Sequence[MessageTurn],
        prompt_hint: str,
        *,
        name: str | None = None,
    ) -> str | None:
        payload = self.build_payload(utterance, history, prompt_hint, name)
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(OPENROUTER_URL, headers=self._headers(), json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.warning("OpenRouter reply failed: %s", exc)
            return None

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            self._logger.warning("OpenRouter reply had an unexpected shape")
            return None
        if not isinstance(content, str) or not content.strip():
            return None
        return content.strip()


def build_generator(settings: Settings) -> ReplyGenerator | None:
    if not settings.generator_enabled or not settings.openrouter_api_key:
        return None
    return OpenRouterGenerator(
        settings.openrouter_api_key,
        model=settings.openrouter_model,
        complex_model=settings.openrouter_complex_model,
        referer=settings.openrouter_referer,
        title=settings.openrouter_title,
        timeout=settings.generator_timeout_seconds,
    )
