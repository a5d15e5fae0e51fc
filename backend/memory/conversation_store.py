from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Callable

import structlog

from triage_engine.models import ConversationState

from .database import SQLiteMemoryDB
from .time_utils import parse_iso, to_iso, utc_now

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]

_STATE_FIELDS = {f.name for f in fields(ConversationState)}
_MAX_SWEEP_INTERVAL = timedelta(seconds=60)


def _json_dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _merge(state: ConversationState, updates: dict[str, Any]) -> ConversationState:
    unknown = set(updates) - _STATE_FIELDS
    if unknown:
        raise ValueError(f"Unknown conversation state fields: {', '.join(sorted(unknown))}")
    values = {name: getattr(state, name) for name in _STATE_FIELDS}
    values.update(updates)
    values["symptoms"] = list(values.get("symptoms") or [])
    return ConversationState(**values)


class _UserLocks:
    """One ``asyncio.Lock`` per user id so turns for a user run one at a time.

    A lock lives only while some turn holds or waits for it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        self._users[user_id] = self._users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[user_id] -= 1
            if not self._users[user_id]:
                del self._users[user_id]
                del self._locks[user_id]

    def __len__(self) -> int:
        return len(self._locks)


class _Sweeper:
    """Rate limit for full expiry scans."""

    def __init__(self, ttl: timedelta | None, clock: Clock) -> None:
        self._interval = min(ttl, _MAX_SWEEP_INTERVAL) if ttl is not None else None
        self._clock = clock
        self._next_at = clock()

    def due(self) -> bool:
        if self._interval is None:
            return False
        now = self._clock()
        if now < self._next_at:
            return False
        self._next_at = now + self._interval
        return True


@dataclass
class _Entry:
    state: ConversationState
    touched_at: datetime


class ConversationStateStore:
    """In-process keyed state with idle TTL eviction."""

    def __init__(self, *, ttl_seconds: float = 1800, clock: Clock = utc_now) -> None:
        self._entries: dict[str, _Entry] = {}
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds > 0 else None
        self._clock = clock
        self._locks = _UserLocks()
        self._sweeper = _Sweeper(self._ttl, clock)

    def _expired(self, entry: _Entry) -> bool:
        return self._ttl is not None and self._clock() - entry.touched_at > self._ttl

    def purge_expired(self) -> int:
        expired = [user_id for user_id, entry in self._entries.items() if self._expired(entry)]
        for user_id in expired:
            del self._entries[user_id]
        if expired:
            logger.info("conversation_states_purged", count=len(expired))
        return len(expired)

    def _maybe_sweep(self) -> None:
        if self._sweeper.due():
            self.purge_expired()

    def get_or_create(self, user_id: str) -> ConversationState:
        self._maybe_sweep()
        entry = self._entries.get(user_id)
        if entry is None or self._expired(entry):
            if entry is not None:
                logger.info("conversation_state_expired", user_id=user_id, step=entry.state.step)
            entry = _Entry(state=ConversationState(), touched_at=self._clock())
            self._entries[user_id] = entry
        return entry.state

    def update(self, user_id: str, **updates: Any) -> ConversationState:
        merged = _merge(self.get_or_create(user_id), updates)
        self._entries[user_id] = _Entry(state=merged, touched_at=self._clock())
        return merged

    def reset(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def commit(self, user_id: str, state: ConversationState) -> None:
        if state.is_default:
            self.reset(user_id)
        else:
            self.update(user_id, **{name: getattr(state, name) for name in _STATE_FIELDS})
        self._maybe_sweep()

    async def aget_or_create(self, user_id: str) -> ConversationState:
        return self.get_or_create(user_id)

    async def acommit(self, user_id: str, state: ConversationState) -> None:
        self.commit(user_id, state)

    def lock(self, user_id: str):
        return self._locks.hold(user_id)

    @property
    def active_locks(self) -> int:
        return len(self._locks)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteConversationStateStore:
    """Externalized variant: one JSON row per user, TTL applied on read.

    The ``a``-prefixed methods run the blocking SQLite work in a worker thread.
    """

    def __init__(self, db: SQLiteMemoryDB, *, ttl_seconds: float = 1800, clock: Clock = utc_now) -> None:
        self._db = db
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds > 0 else None
        self._clock = clock
        self._locks = _UserLocks()
        self._sweeper = _Sweeper(self._ttl, clock)

    def _load(self, user_id: str) -> ConversationState | None:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT state_json, updated_at
                FROM conversation_state
                WHERE user_id = ?
                LIMIT 1
                """,
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        updated_at = parse_iso(row["updated_at"])
        if self._ttl is not None and updated_at and self._clock() - updated_at > self._ttl:
            logger.info("conversation_state_expired", user_id=user_id)
            self.reset(user_id)
            return None
        return ConversationState.from_dict(json.loads(row["state_json"]))

    def _save(self, user_id: str, state: ConversationState) -> None:
        now = to_iso(self._clock())
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO conversation_state (user_id, state_json, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                  state_json = excluded.state_json,
                  updated_at = excluded.updated_at
                """,
                (user_id, _json_dumps(state.to_dict()), now, now),
            )

    def purge_expired(self) -> int:
        if self._ttl is None:
            return 0
        cutoff = to_iso(self._clock() - self._ttl)
        with self._db.connection() as conn:
            cursor = conn.execute("DELETE FROM conversation_state WHERE updated_at < ?", (cutoff,))
            purged = cursor.rowcount
        if purged:
            logger.info("conversation_states_purged", count=purged)
        return purged

    def get_or_create(self, user_id: str) -> ConversationState:
        state = self._load(user_id)
        if state is None:
            state = ConversationState()
            self._save(user_id, state)
        return state

    def update(self, user_id: str, **updates: Any) -> ConversationState:
        merged = _merge(self.get_or_create(user_id), updates)
        self._save(user_id, merged)
        return merged

    def reset(self, user_id: str) -> None:
        with self._db.connection() as conn:
            conn.execute("DELETE FROM conversation_state WHERE user_id = ?", (user_id,))

    def commit(self, user_id: str, state: ConversationState) -> None:
        if state.is_default:
            self.reset(user_id)
        else:
            self._save(user_id, state)
        if self._sweeper.due():
            self.purge_expired()

    async def aget_or_create(self, user_id: str) -> ConversationState:
        return await asyncio.to_thread(self.get_or_create, user_id)

    async def acommit(self, user_id: str, state: ConversationState) -> None:
        await asyncio.to_thread(self.commit, user_id, state)

    def lock(self, user_id: str):
        return self._locks.hold(user_id)

    @property
    def active_locks(self) -> int:
        return len(self._locks)

    def __contains__(self, user_id: object) -> bool:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM conversation_state WHERE user_id = ? LIMIT 1",
                (user_id,),
            ).fetchone()
        return row is not None
