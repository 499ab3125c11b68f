"""Transcript store abstractions and SQLite implementation."""

from __future__ import annotations

import json
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

from .models import ConversationSnapshot, MessageTurn


class MemoryStore(ABC):
    """Abstract interface for reading and writing conversation transcripts."""

    @abstractmethod
    def append_turn(self, turn: MessageTurn) -> None:
        """Persist a single conversational turn."""

    @abstractmethod
    def fetch_turns(self, conversation_id: str) -> Sequence[MessageTurn]:
        """Return the full ordered history, oldest first."""

    @abstractmethod
    def fetch_recent_turns(self, conversation_id: str, limit: int = 10) -> Sequence[MessageTurn]:
        """Return the most recent turns for a conversation, oldest first."""

    @abstractmethod
    def load_state(self, conversation_id: str) -> dict[str, Any] | None:
        """Return the last saved conversation state, if any."""

    @abstractmethod
    def save_state(self, conversation_id: str, state: dict[str, Any]) -> None:
        """Persist the latest conversation state."""

    @abstractmethod
    def reset(self, conversation_id: str) -> None:
        """Clear stored turns and state for a conversation."""

    @abstractmethod
    def iter_conversations(self) -> Iterable[str]:
        """Iterate over known conversation identifiers."""

    def load_snapshot(self, conversation_id: str) -> ConversationSnapshot:
        return ConversationSnapshot(
            conversation_id=conversation_id,
            turns=list(self.fetch_turns(conversation_id)),
            state=self.load_state(conversation_id),
        )


class SQLiteMemoryStore(MemoryStore):
    """SQLite-backed transcript store."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        """Create required tables if they do not exist."""

        with self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS conversations (
                    conversation_id TEXT PRIMARY KEY
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    metadata TEXT,
                    FOREIGN KEY (conversation_id) REFERENCES conversations (conversation_id)
                        ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS states (
                    conversation_id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (conversation_id) REFERENCES conversations (conversation_id)
                        ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_messages_conversation_id
                    ON messages (conversation_id, id);
                """
            )

    def append_turn(self, turn: MessageTurn) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO conversations(conversation_id) VALUES (?)",
                (turn.conversation_id,),
            )
            conn.execute(
                """
                INSERT INTO messages (conversation_id, role, content, created_at, metadata)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    turn.conversation_id,
                    turn.role,
                    turn.content,
                    turn.created_at.isoformat(),
                    json.dumps(turn.metadata, separators=(",", ":")),
                ),
            )

    def fetch_turns(self, conversation_id: str) -> Sequence[MessageTurn]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT conversation_id, role, content, created_at, metadata
                FROM messages
                WHERE conversation_id = ?
                ORDER BY id ASC
                """,
                (conversation_id,),
            ).fetchall()
        return [_row_to_turn(row) for row in rows]

    def fetch_recent_turns(self, conversation_id: str, limit: int = 10) -> Sequence[MessageTurn]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT conversation_id, role, content, created_at, metadata
                FROM messages
                WHERE conversation_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (conversation_id, limit),
            ).fetchall()

        turns = [_row_to_turn(row) for row in rows]
        turns.reverse()
        return turns

    def load_state(self, conversation_id: str) -> dict[str, Any] | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT payload FROM states WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
        if row is None:
            return None
        return json.loads(row["payload"])

    def save_state(self, conversation_id: str, state: dict[str, Any]) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO conversations(conversation_id) VALUES (?)",
                (conversation_id,),
            )
            conn.execute(
                """
                INSERT INTO states (conversation_id, payload, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(conversation_id) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (conversation_id, json.dumps(state, separators=(",", ":")), datetime.now().isoformat()),
            )

    def reset(self, conversation_id: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
            conn.execute("DELETE FROM states WHERE conversation_id = ?", (conversation_id,))
            conn.execute("DELETE FROM conversations WHERE conversation_id = ?", (conversation_id,))

    def iter_conversations(self) -> Iterable[str]:
        with self._connection() as conn:
            rows = conn.execute("SELECT conversation_id FROM conversations ORDER BY conversation_id")
            return [row["conversation_id"] for row in rows]


def _row_to_turn(row: sqlite3.Row) -> MessageTurn:
    return MessageTurn(
        conversation_id=row["conversation_id"],
        role=row["role"],
        content=row["content"],
        created_at=datetime.fromisoformat(row["created_at"]),
        metadata=json.loads(row["metadata"] or "{}"),
    )
