from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from memory.time_utils import to_iso, utc_now
from triage_crypto import AesGcmCodec, EncryptionKey

from .envelopes import InboundEnvelope, OutboundEnvelope

SEND_MESSAGE_PATH = "/chat/message"
HISTORY_PATH = "/chat/history"


def seal_message(text: str, key: EncryptionKey, user_id: str, codec: AesGcmCodec | None = None) -> InboundEnvelope:
    codec = codec or AesGcmCodec()
    encrypted_data, iv = codec.seal(text, key)
    return InboundEnvelope(
        encrypted_data=encrypted_data,
        iv=iv,
        user_id=user_id,
        timestamp=to_iso(utc_now()),
        encrypted=True,
    )


def open_envelope(
    envelope: OutboundEnvelope | dict[str, Any],
    key: EncryptionKey,
    codec: AesGcmCodec | None = None,
) -> str:
    if not isinstance(envelope, OutboundEnvelope):
        envelope = OutboundEnvelope.model_validate(envelope)
    if not envelope.encrypted:
        return envelope.message or ""
    codec = codec or AesGcmCodec()
    return codec.open(envelope.encrypted_data or "", envelope.iv or "", key)


@dataclass
class ChatReply:
    text: str
    envelope: OutboundEnvelope

    @property
    def option_values(self) -> list[str]:
        if self.envelope.question_data is None:
            return []
        return [option.value for option in self.envelope.question_data.options]


@dataclass
class EncryptedChatClient:
    """Client half of the protocol: seals each utterance, posts it and opens the reply."""

    http: httpx.Client
    key: EncryptionKey
    user_id: str
    codec: AesGcmCodec = field(default_factory=AesGcmCodec)
    send_key_id: bool = True

    def _headers(self) -> dict[str, str]:
        return {"X-Key-Id": self.key.key_id} if self.send_key_id else {}

    def send(self, text: str) -> ChatReply:
        envelope = seal_message(text, self.key, self.user_id, self.codec)
        response = self.http.post(SEND_MESSAGE_PATH, json=envelope.to_wire(), headers=self._headers())
        response.raise_for_status()
        outbound = OutboundEnvelope.model_validate(response.json())
        return ChatReply(text=open_envelope(outbound, self.key, self.codec), envelope=outbound)

    def history(self, limit: int = 50) -> list[OutboundEnvelope]:
        response = self.http.get(HISTORY_PATH, params={"userId": self.user_id, "limit": limit})
        response.raise_for_status()
        return [OutboundEnvelope.model_validate(item) for item in response.json()["items"]]
