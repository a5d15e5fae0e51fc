from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass
from typing import Mapping

import structlog

from triage_crypto import EncryptionKey, KeyRing, derive_key, generate_key

logger = structlog.get_logger(__name__)

_TRUTHY = {"1", "true", "yes"}


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be numeric, got {raw!r}") from exc


@dataclass(frozen=True)
class ProtocolSettings:
    shared_key: str | None = None
    key_id: str | None = None
    key_passphrase: str | None = None
    key_salt: str | None = None
    allow_plaintext_fallback: bool = False
    turn_timeout_seconds: float = 10.0
    simulated_latency_ms: float = 0.0
    state_ttl_seconds: float = 1800.0
    state_db_path: str | None = None
    history_limit: int = 50
    random_seed: int | None = None
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "ProtocolSettings":
        env = os.environ if env is None else env
        seed = env.get("TRIAGE_RANDOM_SEED")
        return cls(
            shared_key=env.get("TRIAGE_SHARED_KEY") or None,
            key_id=env.get("TRIAGE_KEY_ID") or None,
            key_passphrase=env.get("TRIAGE_KEY_PASSPHRASE") or None,
            key_salt=env.get("TRIAGE_KEY_SALT") or None,
            allow_plaintext_fallback=_flag(env, "TRIAGE_ALLOW_PLAINTEXT_FALLBACK", False),
            turn_timeout_seconds=_number(env, "TRIAGE_TURN_TIMEOUT_SECONDS", 10.0),
            simulated_latency_ms=_number(env, "TRIAGE_SIMULATED_LATENCY_MS", 0.0),
            state_ttl_seconds=_number(env, "TRIAGE_STATE_TTL_SECONDS", 1800.0),
            state_db_path=env.get("TRIAGE_STATE_DB_PATH") or None,
            history_limit=int(_number(env, "TRIAGE_HISTORY_LIMIT", 50)),
            random_seed=int(seed) if seed and seed.strip() else None,
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
        )

    def load_shared_key(self) -> EncryptionKey:
        if self.shared_key:
            return EncryptionKey.from_base64(self.shared_key, key_id=self.key_id)
        if self.key_passphrase:
            if not self.key_salt:
                raise ValueError("TRIAGE_KEY_SALT is required with TRIAGE_KEY_PASSPHRASE")
            try:
                salt = base64.b64decode(self.key_salt, validate=True)
            except binascii.Error as exc:
                raise ValueError("TRIAGE_KEY_SALT is not valid base64") from exc
            return derive_key(self.key_passphrase, salt, key_id=self.key_id)
        key = generate_key(key_id=self.key_id)
        logger.warning("ephemeral_key_generated", key_id=key.key_id)
        return key

    def build_key_ring(self) -> KeyRing:
        return KeyRing(default=self.load_shared_key())
