"""Conversation turns fed to adapters as history."""

from __future__ import annotations

import json
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"


@dataclass(frozen=True)
class ChatTurn:
    """One message in a conversation."""

    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in (USER_ROLE, ASSISTANT_ROLE):
            raise ValueError(f"Unsupported turn role: {self.role}")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


def truncate_history(history: Optional[Sequence[ChatTurn]], window: int) -> List[ChatTurn]:
    """Keep the most recent ``window`` turns; older turns are dropped."""
    if not history or window <= 0:
        return []
    return list(history[-window:])


@runtime_checkable
class ConversationStore(Protocol):
    async def get_recent_turns(self, conversation_id: str, limit: int) -> List[ChatTurn]:  # pragma: no cover - interface
        ...

    async def append_turns(self, conversation_id: str, turns: Sequence[ChatTurn]) -> None:  # pragma: no cover - interface
        ...


class InMemoryConversationStore:
    def __init__(self, max_turns: int = 50) -> None:
        self.max_turns = max_turns
        self._turns: Dict[str, List[ChatTurn]] = defaultdict(list)

    async def get_recent_turns(self, conversation_id: str, limit: int) -> List[ChatTurn]:
        return truncate_history(self._turns.get(conversation_id, []), limit)

    async def append_turns(self, conversation_id: str, turns: Sequence[ChatTurn]) -> None:
        stored = self._turns[conversation_id]
        stored.extend(turns)
        del stored[: max(len(stored) - self.max_turns, 0)]


class RedisConversationStore:
    """Turns kept in a capped Redis list, oldest first."""

    def __init__(self, redis_client, namespace: str = "conversation", max_turns: int = 50) -> None:
        self.redis_client = redis_client
        self.namespace = namespace
        self.max_turns = max_turns

    def _key(self, conversation_id: str) -> str:
        return f"{self.namespace}:{conversation_id}:turns"

    async def get_recent_turns(self, conversation_id: str, limit: int) -> List[ChatTurn]:
        if limit <= 0:
            return []
        raw_turns = await self.redis_client.lrange(self._key(conversation_id), -limit, -1)
        return [ChatTurn(**json.loads(raw)) for raw in raw_turns]

    async def append_turns(self, conversation_id: str, turns: Sequence[ChatTurn]) -> None:
        if not turns:
            return
        key = self._key(conversation_id)
        async with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.rpush(key, *(json.dumps(turn.to_dict(), ensure_ascii=False) for turn in turns))
            pipe.ltrim(key, -self.max_turns, -1)
            await pipe.execute()
