from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

import structlog

from .models import ComponentResponse, PaymentRequest, ResponseDescriptor, TextResponse

logger = structlog.get_logger(__name__)

DEFAULT_PAYMENT_AMOUNT = 100

IntentHandler = Callable[[str], ResponseDescriptor]


@dataclass(frozen=True)
class IntentDetector:
    name: str
    pattern: re.Pattern[str]
    build: IntentHandler

    def detect(self, message: str) -> ResponseDescriptor | None:
        if not self.pattern.search(message or ""):
            return None
        logger.info("intent_detected", intent=self.name, message_length=len(message))
        return self.build(message)


_AMOUNT_RE = re.compile(r"\d+")


def extract_amount(message: str) -> int:
    match = _AMOUNT_RE.search(message or "")
    if match:
        return int(match.group(0))
    return DEFAULT_PAYMENT_AMOUNT


def _payment_response(message: str) -> ResponseDescriptor:
    amount = extract_amount(message)
    return TextResponse(
        message_text=(
            f"I'll help you process a payment of ₹{amount}. "
            "Please click the button below to proceed with the payment."
        ),
        payment_request=PaymentRequest(amount=amount),
    )


def _doctor_response(_message: str) -> ResponseDescriptor:
    return ComponentResponse(
        message_text="Here are some recommended doctors who can help with your condition:",
        component_type="doctors",
    )


def _medicine_response(_message: str) -> ResponseDescriptor:
    return TextResponse(
        message_text=(
            "Here are some recommended medications that might help with your condition. "
            "Please consult with a healthcare provider before taking any medication:"
        ),
        show_medicines=True,
    )


def _hospital_response(_message: str) -> ResponseDescriptor:
    return ComponentResponse(
        message_text="I've found some hospitals near your location:",
        component_type="location",
    )


# Evaluated in order; the first detector that matches answers the turn.
DEFAULT_DETECTORS: tuple[IntentDetector, ...] = (
    IntentDetector("payment", re.compile(r"pay|payment|transaction", re.IGNORECASE), _payment_response),
    IntentDetector(
        "doctor",
        re.compile(r"doctor|specialist|physician|consultation", re.IGNORECASE),
        _doctor_response,
    ),
    IntentDetector(
        "medicine",
        re.compile(r"medicine|medication|drug|pill|prescription", re.IGNORECASE),
        _medicine_response,
    ),
    IntentDetector(
        "hospital",
        re.compile(r"hospital|location|nearby|directions|emergency", re.IGNORECASE),
        _hospital_response,
    ),
)


def detect_intent(
    message: str,
    detectors: tuple[IntentDetector, ...] = DEFAULT_DETECTORS,
) -> tuple[str, ResponseDescriptor] | None:
    for detector in detectors:
        response = detector.detect(message)
        if response is not None:
            return detector.name, response
    return None
