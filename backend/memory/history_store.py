from __future__ import annotations

from collections import defaultdict, deque
from typing import Any


class ChatHistoryStore:
    """Most recent outbound envelopes per user, as sent on the wire."""

    def __init__(self, limit: int = 50) -> None:
        self._limit = max(1, limit)
        self._items: defaultdict[str, deque[dict[str, Any]]] = defaultdict(lambda: deque(maxlen=self._limit))

    def append(self, user_id: str, envelope: dict[str, Any]) -> None:
        self._items[user_id].append(dict(envelope))

    def recent(self, user_id: str, limit: int | None = None) -> list[dict[str, Any]]:
        items = list(self._items.get(user_id, ()))
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return [dict(item) for item in items]

    def clear(self, user_id: str) -> None:
        self._items.pop(user_id, None)
