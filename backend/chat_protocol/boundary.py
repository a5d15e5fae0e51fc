from __future__ import annotations

import asyncio
from typing import Any, Protocol

import structlog

from memory.history_store import ChatHistoryStore
from triage_crypto import AesGcmCodec, DecryptionError, EncryptionKey
from triage_engine import ConversationState, DialogueEngine, TextResponse, TurnResult

from .assembler import ResponseAssembler
from .envelopes import InboundEnvelope, MissingEncryptionError, OutboundEnvelope

logger = structlog.get_logger(__name__)

TURN_TIMEOUT_MESSAGE = (
    "I'm taking longer than expected to process your message. Please try again in a moment."
)
DEFAULT_USER_ID = "demo"


class StateStore(Protocol):
    async def aget_or_create(self, user_id: str) -> ConversationState: ...

    async def acommit(self, user_id: str, state: ConversationState) -> None: ...

    def lock(self, user_id: str) -> Any: ...


class TransportBoundary:
    """Validates an inbound envelope and runs decrypt -> dialogue -> encrypt.

    Conversation state is read and written under a per-user lock and only
    after the inbound message decrypted successfully.
    """

    def __init__(
        self,
        *,
        codec: AesGcmCodec,
        engine: DialogueEngine,
        store: StateStore,
        assembler: ResponseAssembler,
        history: ChatHistoryStore | None = None,
        turn_timeout_seconds: float | None = 10.0,
    ) -> None:
        self.codec = codec
        self.engine = engine
        self.store = store
        self.assembler = assembler
        self.history = history
        self.turn_timeout_seconds = turn_timeout_seconds

    async def submit_turn(
        self,
        envelope: InboundEnvelope | dict[str, Any],
        key: EncryptionKey,
    ) -> OutboundEnvelope:
        if not isinstance(envelope, InboundEnvelope):
            envelope = InboundEnvelope.model_validate(envelope)
        user_id = envelope.user_id.strip() or DEFAULT_USER_ID

        try:
            envelope.require_encryption()
        except MissingEncryptionError:
            logger.error("inbound_envelope_rejected", user_id=user_id, reason="missing_encryption")
            raise

        logger.info(
            "inbound_envelope_received",
            user_id=user_id,
            encrypted_data_length=len(envelope.encrypted_data),
            iv_length=len(envelope.iv),
            key_id=key.key_id,
        )
        try:
            message = self.codec.open(envelope.encrypted_data, envelope.iv, key)
        except DecryptionError as exc:
            logger.error(
                "inbound_decryption_failed",
                user_id=user_id,
                key_id=key.key_id,
                error=type(exc).__name__,
            )
            raise

        async with self.store.lock(user_id):
            state = await self.store.aget_or_create(user_id)
            result = await self._run_engine(user_id, state, message)
            outbound = self.assembler.assemble(result.response, key)
            await self.store.acommit(user_id, result.state)

        if self.history is not None:
            self.history.append(user_id, outbound.to_wire())
        return outbound

    async def _run_engine(self, user_id: str, state: ConversationState, message: str) -> TurnResult:
        try:
            return await asyncio.wait_for(
                self.engine.handle_turn(state, message),
                timeout=self.turn_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("dialogue_turn_timeout", user_id=user_id, timeout=self.turn_timeout_seconds)
            return TurnResult(state=state, response=TextResponse(message_text=TURN_TIMEOUT_MESSAGE), rule="timeout")
