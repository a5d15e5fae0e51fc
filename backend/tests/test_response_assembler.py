from __future__ import annotations

from datetime import datetime, timezone

import pytest

from chat_protocol import ResponseAssembler, open_envelope
from chat_protocol import assembler as assembler_module
from log_utils import RecordingLogger
from triage_crypto import AesGcmCodec, EncryptionFailure
from triage_engine import (
    ComponentResponse,
    PaymentRequest,
    QuestionData,
    QuestionOption,
    QuestionResponse,
    TextResponse,
)


class FailingCodec(AesGcmCodec):
    def seal(self, plaintext, key):
        raise EncryptionFailure("cipher unavailable")


def _fixed_clock() -> datetime:
    return datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def assembler() -> ResponseAssembler:
    return ResponseAssembler(AesGcmCodec(), clock=_fixed_clock)


def test_text_response_encrypts_message_only(assembler, shared_key):
    envelope = assembler.assemble(TextResponse(message_text="Stay hydrated."), shared_key)
    wire = envelope.to_wire()

    assert wire["sender"] == "ai"
    assert wire["messageType"] == "text"
    assert wire["encrypted"] is True
    assert wire["timestamp"] == "2025-03-01T09:30:00Z"
    assert "message" not in wire
    assert "Stay hydrated." not in repr(wire)
    assert open_envelope(wire, shared_key) == "Stay hydrated."


def test_question_fields_travel_in_clear(assembler, shared_key):
    descriptor = QuestionResponse(
        message_text="How long?",
        question_data=QuestionData(
            text="How long have you been experiencing this?",
            options=(QuestionOption("< 1 hour", "less_than_1hr", icon="⏰"),),
            context={"location": "Kolkata, India", "temperature": 27},
        ),
    )
    wire = assembler.assemble(descriptor, shared_key).to_wire()

    assert wire["messageType"] == "question"
    assert wire["questionData"]["questionType"] == "single_choice"
    assert wire["questionData"]["options"] == [{"label": "< 1 hour", "value": "less_than_1hr", "icon": "⏰"}]
    assert wire["questionData"]["context"] == {"location": "Kolkata, India", "temperature": 27}
    assert open_envelope(wire, shared_key) == "How long?"


def test_payment_and_component_fields(assembler, shared_key):
    payment = assembler.assemble(
        TextResponse(message_text="Pay", payment_request=PaymentRequest(amount=250)),
        shared_key,
    ).to_wire()
    component = assembler.assemble(
        ComponentResponse(message_text="Doctors", component_type="doctors"),
        shared_key,
    ).to_wire()
    medicines = assembler.assemble(TextResponse(message_text="Meds", show_medicines=True), shared_key).to_wire()

    assert payment["paymentRequest"] == {"amount": 250, "reason": "Chat Payment"}
    assert "showMedicines" not in payment
    assert component["messageType"] == "component"
    assert component["componentType"] == "doctors"
    assert medicines["showMedicines"] is True


def test_each_envelope_gets_fresh_id_and_iv(assembler, shared_key):
    descriptor = TextResponse(message_text="same")
    first = assembler.assemble(descriptor, shared_key)
    second = assembler.assemble(descriptor, shared_key)

    assert first.id != second.id
    assert first.iv != second.iv
    assert first.encrypted_data != second.encrypted_data


def test_encryption_failure_propagates_by_default(shared_key):
    assembler = ResponseAssembler(FailingCodec())
    with pytest.raises(EncryptionFailure):
        assembler.assemble(TextResponse(message_text="secret"), shared_key)


def test_plaintext_fallback_is_explicit_and_logged(monkeypatch, shared_key):
    recorder = RecordingLogger()
    monkeypatch.setattr(assembler_module, "logger", recorder)
    assembler = ResponseAssembler(FailingCodec(), allow_plaintext_fallback=True)

    envelope = assembler.assemble(
        ComponentResponse(message_text="Hospitals near you", component_type="location"),
        shared_key,
    )
    wire = envelope.to_wire()

    assert wire["encrypted"] is False
    assert wire["message"] == "Hospitals near you"
    assert "encryptedData" not in wire
    assert wire["componentType"] == "location"
    assert recorder.named("response_encryption_failed")[0]["level"] == "error"
    assert recorder.named("response_plaintext_fallback")[0]["level"] == "warning"
    assert open_envelope(wire, shared_key) == "Hospitals near you"
