"""API routes for inspecting and clearing stored conversations."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from debt_advisor.memory.store import MemoryStore


def create_conversations_router(store: MemoryStore) -> APIRouter:
    router = APIRouter(prefix="/conversations", tags=["conversations"])

    @router.get("")
    async def list_conversations() -> list[str]:
        """List known conversation identifiers (development helper)."""

        return list(store.iter_conversations())

    @router.get("/{conversation_id}/transcript")
    async def transcript(conversation_id: str) -> dict:
        turns = store.fetch_turns(conversation_id)
        if not turns:
            raise HTTPException(status_code=404, detail="conversation not found")
        return {
            "conversation_id": conversation_id,
            "turns": [
                {
                    "role": turn.role,
                    "content": turn.content,
                    "created_at": turn.created_at.isoformat(),
                    "metadata": turn.metadata,
                }
                for turn in turns
            ],
            "state": store.load_state(conversation_id),
        }

    @router.delete("/{conversation_id}")
    async def delete_conversation(conversation_id: str) -> dict:
        store.reset(conversation_id)
        return {"conversation_id": conversation_id, "deleted": True}

    return router
