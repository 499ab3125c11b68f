"""Pytest unit test fixtures."""

from datetime import datetime

import pytest

from debt_advisor.core.config import DATA_DIR
from debt_advisor.dialogue.engine import DialogueEngine
from debt_advisor.dialogue.script import load_script
from debt_advisor.dialogue.types import ASSISTANT, USER, TurnRequest
from debt_advisor.memory.models import MessageTurn
from debt_advisor.memory.store import SQLiteMemoryStore

MORNING = datetime(2024, 3, 4, 10, 30)


class Session:
    """Drives an engine the way the HTTP layer does, keeping transcript and state."""

    def __init__(self, engine: DialogueEngine, *, stateless: bool = False) -> None:
        self.engine = engine
        self.stateless = stateless
        self.turns: list[MessageTurn] = []
        self.state: dict | None = None

    def say(self, text: str):
        request = TurnRequest.from_state(text, list(self.turns), None if self.stateless else self.state)
        response = self.engine.respond(request)
        if text.strip():
            self.turns.append(MessageTurn(conversation_id="conv-test", role=USER, content=text))
        self.turns.append(MessageTurn(conversation_id="conv-test", role=ASSISTANT, content=response.reply))
        self.state = response.state.to_dict()
        return response


@pytest.fixture()
def memory_store(tmp_path):
    db_path = tmp_path / "memory.db"
    return SQLiteMemoryStore(db_path)


@pytest.fixture(scope="session")
def script():
    return load_script(DATA_DIR / "script.json", DATA_DIR / "faqs.json")


@pytest.fixture(scope="session")
def gated_script(fixtures_dir):
    return load_script(fixtures_dir / "gated_script.json")


@pytest.fixture()
def engine(script):
    return DialogueEngine(script, clock=lambda: MORNING)


@pytest.fixture()
def session(engine):
    chat = Session(engine)
    chat.say("")
    return chat


@pytest.fixture()
def make_session():
    def factory(engine: DialogueEngine, *, stateless: bool = False) -> Session:
        chat = Session(engine, stateless=stateless)
        chat.say("")
        return chat

    return factory
