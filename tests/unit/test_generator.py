import json

import httpx

from debt_advisor.core.config import Settings
from debt_advisor.dialogue.generator import (
    HISTORY_TURNS,
    OpenRouterGenerator,
    build_generator,
    is_complex,
)
from debt_advisor.memory.models import MessageTurn


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def make_generator(handler):
    return OpenRouterGenerator(
        "test-key",
        model="small-model",
        complex_model="large-model",
        referer="https://advice.example.com",
        transport=httpx.MockTransport(handler),
    )


def test_generate_returns_stripped_content():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["referer"] = request.headers.get("HTTP-Referer")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=completion("  Could you share a first name?  "))

    history = [MessageTurn(conversation_id="c", role="assistant", content="What is your first name?")]
    reply = make_generator(handler).generate("dunno", history, "What is your first name?", name=None)

    assert reply == "Could you share a first name?"
    assert seen["auth"] == "Bearer test-key"
    assert seen["referer"] == "https://advice.example.com"
    assert seen["body"]["model"] == "small-model"
    messages = seen["body"]["messages"]
    assert messages[0]["role"] == "system"
    assert "What is your first name?" in messages[0]["content"]
    assert messages[1] == {"role": "assistant", "content": "What is your first name?"}
    assert messages[-1] == {"role": "user", "content": "dunno"}


def test_complex_messages_use_the_larger_model():
    generator = make_generator(lambda request: httpx.Response(200, json=completion("ok")))

    payload = generator.build_payload("Should I consider an IVA or bankruptcy?", [], "hint")

    assert payload["model"] == "large-model"
    assert is_complex("x" * 141)
    assert not is_complex("I pay 300 a month")


def test_history_is_trimmed():
    generator = make_generator(lambda request: httpx.Response(200, json=completion("ok")))
    history = [MessageTurn(conversation_id="c", role="user", content=f"turn {i}") for i in range(25)]

    payload = generator.build_payload("latest", history, "hint")

    assert len(payload["messages"]) == HISTORY_TURNS + 2
    assert payload["messages"][1]["content"] == "turn 15"


def test_http_error_returns_none():
    generator = make_generator(lambda request: httpx.Response(500, json={"error": "boom"}))

    assert generator.generate("hi", [], "hint") is None


def test_bad_payloads_return_none():
    assert make_generator(lambda request: httpx.Response(200, text="not json")).generate("hi", [], "hint") is None
    assert make_generator(lambda request: httpx.Response(200, json={"choices": []})).generate("hi", [], "hint") is None
    assert make_generator(lambda request: httpx.Response(200, json=completion("   "))).generate("hi", [], "hint") is None


def test_transport_failure_returns_none():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    assert make_generator(handler).generate("hi", [], "hint") is None


def test_build_generator_requires_api_key():
    assert build_generator(Settings(openrouter_api_key="")) is None
    assert isinstance(build_generator(Settings(openrouter_api_key="sk-test")), OpenRouterGenerator)
