"""FastAPI application entry point for the debt advice assistant."""

import logging
import sqlite3
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from debt_advisor.api.conversations import create_conversations_router
from debt_advisor.core.config import get_settings
from debt_advisor.core.errors import unhandled_exception_handler, validation_exception_handler
from debt_advisor.core.logging import configure_logging, request_id_middleware
from debt_advisor.core.metrics import MetricsCollector
from debt_advisor.dialogue.engine import DialogueEngine, EngineConfig
from debt_advisor.dialogue.generator import build_generator
from debt_advisor.dialogue.script import load_script
from debt_advisor.dialogue.types import ASSISTANT, USER, TurnRequest, TurnResponse
from debt_advisor.memory.models import MessageTurn
from debt_advisor.memory.store import MemoryStore, SQLiteMemoryStore

settings = get_settings()
logger = logging.getLogger("advisor.app")

memory_store = SQLiteMemoryStore(settings.sqlite_path)
script = load_script(settings.script_path, settings.faq_path)
engine = DialogueEngine(
    script,
    config=EngineConfig.from_settings(settings),
    generator=build_generator(settings),
)
metrics = MetricsCollector()

app = FastAPI(title=settings.app_name, version="0.1.0", docs_url="/docs")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(request_id_middleware)

app.include_router(create_conversations_router(memory_store))


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Return basic service status for monitoring."""

    return {"status": "ok"}


@app.get("/ready", tags=["health"])
async def readiness_probe() -> dict[str, Any]:
    """Readiness endpoint that verifies critical dependencies.

    Checks:
    - Conversations SQLite DB reachable and has expected tables.
    - Script loaded from configuration rather than the built-in fallback.
    """

    components: dict[str, dict[str, Any]] = {}

    conv_ok = False
    conv_error: str | None = None
    try:
        conv_path = Path(settings.sqlite_path)
        conv_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(conv_path) as conn:
            row = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name IN ('messages','states','conversations')"
            ).fetchone()
            conv_ok = row is not None
    except sqlite3.Error as exc:
        conv_error = str(exc)
    components["conversations_db"] = {
        "path": str(settings.sqlite_path),
        "ok": conv_ok,
        **({"error": conv_error} if conv_error else {}),
    }

    components["script"] = {
        "path": str(settings.script_path),
        "ok": not script.is_fallback,
        "steps": len(script.steps),
        "faqs": len(script.faqs),
    }

    overall = (
        "ok"
        if conv_ok and components["script"]["ok"]
        else ("degraded" if conv_ok else "fail")
    )

    return {
        "status": overall,
        "environment": settings.environment,
        "generator_enabled": settings.generator_enabled,
        "components": components,
    }


def get_memory_store() -> MemoryStore:
    """Dependency injector for the memory store."""

    return memory_store


def get_engine() -> DialogueEngine:
    return engine


@app.post("/chat", tags=["chat"])
async def chat(
    message: dict,
    store: MemoryStore = Depends(get_memory_store),
    dialogue: DialogueEngine = Depends(get_engine),
) -> dict:
    """Run one scripted dialogue turn against the stored transcript."""

    conversation_id = message.get("conversation_id")
    content = message.get("content") or ""
    declared_state = message.get("state")

    if not conversation_id or not isinstance(conversation_id, str):
        raise HTTPException(status_code=400, detail="conversation_id is required")
    if not isinstance(content, str):
        raise HTTPException(status_code=400, detail="content must be a string")
    if declared_state is not None and not isinstance(declared_state, dict):
        raise HTTPException(status_code=400, detail="state must be an object")

    snapshot = store.load_snapshot(conversation_id)
    request = TurnRequest.from_state(
        content,
        snapshot.turns,
        declared_state if declared_state is not None else snapshot.state,
    )
    response: TurnResponse = await run_in_threadpool(dialogue.respond, request)

    if content.strip():
        store.append_turn(MessageTurn(conversation_id=conversation_id, role=USER, content=content.strip()))
    store.append_turn(
        MessageTurn(
            conversation_id=conversation_id,
            role=ASSISTANT,
            content=response.reply,
            metadata={
                "step": response.next_step,
                "outcome": response.outcome.value,
                "directives": response.directives,
            },
        )
    )
    state = response.state.to_dict()
    store.save_state(conversation_id, state)

    metrics.record_turn(response.outcome.value, response.next_step)

    return {
        "conversation_id": conversation_id,
        "message": response.reply,
        "step": response.next_step,
        "slots": dict(response.slots),
        "directives": response.directives,
        "display_name": response.display_name,
        "complete": response.complete,
        "outcome": response.outcome.value,
        "state": state,
    }


@app.on_event("startup")
async def startup_logging() -> None:
    level = configure_logging(settings.log_level)
    logger.info("Logging configured at %s level for %s environment", logging.getLevelName(level), settings.environment)
    if script.is_fallback:
        logger.warning("Serving the built-in fallback script; check SCRIPT_PATH")


app.add_exception_handler(Exception, unhandled_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)


@app.get("/metrics", tags=["metrics"])
async def metrics_endpoint() -> dict:
    snapshot = metrics.snapshot()
    return {
        "total_turns": snapshot.total_turns,
        "outcomes": snapshot.outcomes,
        "steps": snapshot.steps,
    }
