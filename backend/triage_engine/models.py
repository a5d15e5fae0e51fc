from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Literal, Union

MAX_STEP = 4

# Allowed step changes. 1 is reachable from anywhere because a symptom keyword
# restarts the flow, 0 because any step may reset.
STEP_TRANSITIONS: dict[int, set[int]] = {
    0: {0, 1},
    1: {0, 1, 2},
    2: {0, 1, 3},
    3: {0, 1, 4},
    4: {0, 1},
}


class InvalidTransition(Exception):
    pass


@dataclass
class ConversationState:
    step: int = 0
    symptoms: list[str] = field(default_factory=list)
    duration: str | None = None
    cold_type: str | None = None
    location: str | None = None
    temperature: int | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.step <= MAX_STEP:
            raise ValueError(f"step must be between 0 and {MAX_STEP}")

    @property
    def is_default(self) -> bool:
        return self == ConversationState()

    def _check_transition(self, next_step: int) -> None:
        if next_step not in STEP_TRANSITIONS[self.step]:
            raise InvalidTransition(f"step {self.step} -> {next_step} is not allowed")

    def advance(self, **changes: Any) -> "ConversationState":
        self._check_transition(changes.get("step", self.step))
        values: dict[str, Any] = {"symptoms": list(self.symptoms)}
        values.update(changes)
        return replace(self, **values)

    def restart(self, symptom: str) -> "ConversationState":
        self._check_transition(1)
        return ConversationState(step=1, symptoms=[symptom])

    def cleared(self) -> "ConversationState":
        self._check_transition(0)
        return ConversationState()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"step": self.step, "symptoms": list(self.symptoms)}
        optional = {
            "duration": self.duration,
            "type": self.cold_type,
            "location": self.location,
            "temperature": self.temperature,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationState":
        return cls(
            step=int(data.get("step", 0)),
            symptoms=list(data.get("symptoms") or []),
            duration=data.get("duration"),
            cold_type=data.get("type", data.get("cold_type")),
            location=data.get("location"),
            temperature=data.get("temperature"),
        )


@dataclass(frozen=True)
class QuestionOption:
    label: str
    value: str
    icon: str | None = None
    color: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {"label": self.label, "value": self.value}
        if self.icon:
            data["icon"] = self.icon
        if self.color:
            data["color"] = self.color
        return data


QuestionType = Literal["single_choice", "multiple_choice", "text_input"]


@dataclass(frozen=True)
class QuestionData:
    text: str
    options: tuple[QuestionOption, ...] = ()
    question_type: QuestionType = "single_choice"
    placeholder: str | None = None
    required: bool | None = None
    context: dict[str, Any] | None = None

    def option_values(self) -> list[str]:
        return [option.value for option in self.options]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "text": self.text,
            "options": [option.to_dict() for option in self.options],
            "questionType": self.question_type,
        }
        if self.placeholder is not None:
            data["placeholder"] = self.placeholder
        if self.required is not None:
            data["required"] = self.required
        if self.context is not None:
            data["context"] = dict(self.context)
        return data


@dataclass(frozen=True)
class PaymentRequest:
    amount: int
    reason: str = "Chat Payment"

    def to_dict(self) -> dict[str, Any]:
        return {"amount": self.amount, "reason": self.reason}


ComponentType = Literal["doctors", "medicines", "location"]


def _new_response_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class TextResponse:
    message_text: str
    show_medicines: bool = False
    payment_request: PaymentRequest | None = None
    id: str = field(default_factory=_new_response_id)
    message_type: Literal["text"] = field(default="text", init=False)


@dataclass(frozen=True)
class QuestionResponse:
    message_text: str
    question_data: QuestionData
    id: str = field(default_factory=_new_response_id)
    message_type: Literal["question"] = field(default="question", init=False)


@dataclass(frozen=True)
class ComponentResponse:
    message_text: str
    component_type: ComponentType
    id: str = field(default_factory=_new_response_id)
    message_type: Literal["component"] = field(default="component", init=False)


ResponseDescriptor = Union[TextResponse, QuestionResponse, ComponentResponse]


@dataclass(frozen=True)
class TurnResult:
    state: ConversationState
    response: ResponseDescriptor
    rule: str
