from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from memory.time_utils import to_iso, utc_now

MISSING_ENCRYPTION_MESSAGE = "End-to-end encryption is required. Message must include encrypted data and IV."


class MissingEncryptionError(ValueError):
    def __init__(self, message: str = MISSING_ENCRYPTION_MESSAGE) -> None:
        super().__init__(message)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class InboundEnvelope(_WireModel):
    # Optional so a missing or null field reaches ``require_encryption``
    # instead of failing model validation.
    encrypted_data: str | None = Field(default=None, alias="encryptedData")
    iv: str | None = None
    user_id: str = Field(default="", alias="userId")
    timestamp: str = Field(default_factory=lambda: to_iso(utc_now()))
    encrypted: bool = True

    def require_encryption(self) -> None:
        if not (self.encrypted_data or "").strip() or not (self.iv or "").strip():
            raise MissingEncryptionError()


class QuestionOptionModel(_WireModel):
    label: str
    value: str
    icon: str | None = None
    color: str | None = None


class QuestionDataModel(_WireModel):
    text: str
    options: list[QuestionOptionModel] = Field(default_factory=list)
    question_type: Literal["single_choice", "multiple_choice", "text_input"] | None = Field(
        default=None, alias="questionType"
    )
    placeholder: str | None = None
    required: bool | None = None
    context: dict[str, Any] | None = None


class PaymentRequestModel(_WireModel):
    amount: int
    reason: str


class OutboundEnvelope(_WireModel):
    """Server reply. Only ``message`` text is confidential; the structured
    fields travel in clear so the client can render widgets."""

    id: str
    encrypted_data: str | None = Field(default=None, alias="encryptedData")
    iv: str | None = None
    sender: Literal["ai"] = "ai"
    timestamp: str
    message_type: Literal["text", "question", "component"] = Field(default="text", alias="messageType")
    encrypted: bool = True
    # Present only on a degraded (unencrypted) response.
    message: str | None = None
    question_data: QuestionDataModel | None = Field(default=None, alias="questionData")
    show_medicines: bool | None = Field(default=None, alias="showMedicines")
    component_type: Literal["doctors", "medicines", "location"] | None = Field(default=None, alias="componentType")
    payment_request: PaymentRequestModel | None = Field(default=None, alias="paymentRequest")
