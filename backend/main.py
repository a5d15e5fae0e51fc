from __future__ import annotations

import os
import random
import re
from pathlib import Path
from typing import Any

import structlog
from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from chat_protocol import (
    InboundEnvelope,
    MissingEncryptionError,
    ProtocolSettings,
    ResponseAssembler,
    TransportBoundary,
)
from memory import ChatHistoryStore, ConversationStateStore, SQLiteConversationStateStore, SQLiteMemoryDB
from observability import setup_logging
from triage_crypto import AesGcmCodec, DecryptionError, EncryptionFailure, UnknownKeyError
from triage_engine import DialogueEngine, SimulatedWeatherLookup

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def _bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    for candidate in (repo_root / ".env", repo_root / "backend/.env"):
        if candidate.exists():
            _load_local_env_file(candidate)


_bootstrap_local_env()

DECRYPTION_FAILED_MESSAGE = (
    "Unable to decrypt incoming data. This could indicate a security issue. "
    "Please try again or contact support if the issue persists."
)
ENCRYPTION_FAILED_MESSAGE = "Unable to encrypt the response securely."


class TriageChatApp:
    def __init__(self, settings: ProtocolSettings) -> None:
        self.settings = settings
        self.keys = settings.build_key_ring()
        self.codec = AesGcmCodec()
        rng = random.Random(settings.random_seed)
        self.engine = DialogueEngine(
            rng=rng,
            weather=SimulatedWeatherLookup(rng, latency_seconds=settings.simulated_latency_ms / 1000),
        )
        if settings.state_db_path:
            self.store = SQLiteConversationStateStore(
                SQLiteMemoryDB(settings.state_db_path),
                ttl_seconds=settings.state_ttl_seconds,
            )
        else:
            self.store = ConversationStateStore(ttl_seconds=settings.state_ttl_seconds)
        self.history = ChatHistoryStore(limit=settings.history_limit)
        self.boundary = TransportBoundary(
            codec=self.codec,
            engine=self.engine,
            store=self.store,
            assembler=ResponseAssembler(
                self.codec,
                allow_plaintext_fallback=settings.allow_plaintext_fallback,
            ),
            history=self.history,
            turn_timeout_seconds=settings.turn_timeout_seconds or None,
        )


settings = ProtocolSettings.from_env()
setup_logging(settings.log_level, settings.log_format)
logger = structlog.get_logger("main")

container = TriageChatApp(settings)
logger.info(
    "triage_chat_started",
    key_id=container.keys.default_id,
    state_backend="sqlite" if settings.state_db_path else "memory",
    plaintext_fallback=settings.allow_plaintext_fallback,
)
app = FastAPI(title="Triage Chat Backend")

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in allowed_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_TRUSTED_USER_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:@-]{1,63}$")


def _validated_user_id(user_id: str) -> str:
    candidate = user_id.strip()
    if not candidate:
        return "demo"
    if not _TRUSTED_USER_ID_RE.fullmatch(candidate):
        raise HTTPException(status_code=400, detail="Invalid userId")
    return candidate


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "codec_ok": container.codec.self_test(),
        "key_id": container.keys.default_id,
    }


@app.post("/chat/message")
async def chat_message(payload: InboundEnvelope, x_key_id: str | None = Header(default=None)):
    payload.user_id = _validated_user_id(payload.user_id)
    try:
        key = container.keys.resolve(x_key_id)
    except UnknownKeyError:
        raise HTTPException(status_code=401, detail="Unknown encryption key.")
    try:
        outbound = await container.boundary.submit_turn(payload, key)
    except MissingEncryptionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except DecryptionError:
        raise HTTPException(status_code=400, detail=DECRYPTION_FAILED_MESSAGE)
    except EncryptionFailure:
        raise HTTPException(status_code=500, detail=ENCRYPTION_FAILED_MESSAGE)
    return outbound.to_wire()


@app.get("/chat/history")
def chat_history(
    user_id: str = Query(default="demo", alias="userId"),
    limit: int = Query(default=50, ge=1, le=500),
):
    resolved = _validated_user_id(user_id)
    return {"user_id": resolved, "items": container.history.recent(resolved, limit)}
