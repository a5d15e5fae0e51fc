from .engine import DialogueEngine
from .models import (
    ComponentResponse,
    ConversationState,
    InvalidTransition,
    PaymentRequest,
    QuestionData,
    QuestionOption,
    QuestionResponse,
    ResponseDescriptor,
    TextResponse,
    TurnResult,
)
from .weather import MOCK_WEATHER, SimulatedWeatherLookup, WeatherReport

__all__ = [
    "MOCK_WEATHER",
    "ComponentResponse",
    "ConversationState",
    "DialogueEngine",
    "InvalidTransition",
    "PaymentRequest",
    "QuestionData",
    "QuestionOption",
    "QuestionResponse",
    "ResponseDescriptor",
    "SimulatedWeatherLookup",
    "TextResponse",
    "TurnResult",
    "WeatherReport",
]
