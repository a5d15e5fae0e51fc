from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable

import structlog

from memory.time_utils import to_iso, utc_now
from triage_crypto import AesGcmCodec, EncryptionFailure, EncryptionKey
from triage_engine.models import ComponentResponse, QuestionResponse, ResponseDescriptor, TextResponse

from .envelopes import OutboundEnvelope, PaymentRequestModel, QuestionDataModel

logger = structlog.get_logger(__name__)


def _structured_fields(descriptor: ResponseDescriptor) -> dict:
    if isinstance(descriptor, QuestionResponse):
        return {"question_data": QuestionDataModel.model_validate(descriptor.question_data.to_dict())}
    if isinstance(descriptor, ComponentResponse):
        return {"component_type": descriptor.component_type}
    if isinstance(descriptor, TextResponse):
        fields: dict = {}
        if descriptor.show_medicines:
            fields["show_medicines"] = True
        if descriptor.payment_request is not None:
            fields["payment_request"] = PaymentRequestModel(**descriptor.payment_request.to_dict())
        return fields
    raise TypeError(f"Unsupported response descriptor: {type(descriptor).__name__}")


class ResponseAssembler:
    """Turns a response descriptor into an outbound envelope.

    Only ``message_text`` is encrypted. With ``allow_plaintext_fallback`` an
    encryption failure returns the text in clear with ``encrypted=False``;
    otherwise ``EncryptionFailure`` propagates and the turn fails.
    """

    def __init__(
        self,
        codec: AesGcmCodec,
        *,
        allow_plaintext_fallback: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._codec = codec
        self._allow_plaintext_fallback = allow_plaintext_fallback
        self._clock = clock

    def assemble(self, descriptor: ResponseDescriptor, key: EncryptionKey) -> OutboundEnvelope:
        response_id = uuid.uuid4().hex
        common = {
            "id": response_id,
            "timestamp": to_iso(self._clock()),
            "message_type": descriptor.message_type,
            **_structured_fields(descriptor),
        }
        try:
            encrypted_data, iv = self._codec.seal(descriptor.message_text, key)
        except EncryptionFailure as exc:
            logger.error(
                "response_encryption_failed",
                response_id=response_id,
                key_id=key.key_id,
                error=str(exc),
            )
            if not self._allow_plaintext_fallback:
                raise
            logger.warning("response_plaintext_fallback", response_id=response_id, key_id=key.key_id)
            return OutboundEnvelope(encrypted=False, message=descriptor.message_text, **common)

        logger.info(
            "response_encrypted",
            response_id=response_id,
            descriptor_id=descriptor.id,
            message_type=descriptor.message_type,
            message_length=len(descriptor.message_text),
            key_id=key.key_id,
        )
        return OutboundEnvelope(encrypted_data=encrypted_data, iv=iv, encrypted=True, **common)
