from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from .models import (
    ConversationState,
    QuestionData,
    QuestionOption,
    QuestionResponse,
    ResponseDescriptor,
    TextResponse,
)
from .weather import SimulatedWeatherLookup

logger = structlog.get_logger(__name__)

# Priority order when several symptoms are mentioned in one message.
SYMPTOM_KEYWORDS = ("cold", "fever", "cough", "headache")
# Substring match, except next to "_" so option values such as "dry_cold" do
# not restart the flow.
_SYMPTOM_PATTERNS = {
    symptom: re.compile(rf"(?<!_){symptom}(?!_)", re.IGNORECASE) for symptom in SYMPTOM_KEYWORDS
}

DURATION_OPTIONS = (
    QuestionOption("< 1 hour", "less_than_1hr", icon="⏰"),
    QuestionOption("1-5 hours", "1_5_hrs", icon="🕐"),
    QuestionOption("6-18 hours", "6_18_hrs", icon="🕕"),
    QuestionOption("> 1 day", "more_than_1day", icon="📅"),
)
DURATION_CODES = frozenset(option.value for option in DURATION_OPTIONS)

COLD_TYPE_OPTIONS = (
    QuestionOption("Dry Cold", "dry_cold", icon="🌵", color="orange"),
    QuestionOption("Wet Cold", "wet_cold", icon="💧", color="blue"),
)
COLD_TYPES = frozenset(option.value for option in COLD_TYPE_OPTIONS)

MEDICINE_STATUS_OPTIONS = (
    QuestionOption("Already Taken", "taken", icon="💊", color="green"),
    QuestionOption("Suggest Medicine", "suggest", icon="🔍", color="blue"),
)

CLOSING_ADVICE = (
    "Thank you for the information. Based on your symptoms and the medicine you've taken, here are some "
    "additional recommendations:\n\n"
    "1. Stay hydrated\n"
    "2. Get plenty of rest\n"
    "3. Monitor your symptoms\n"
    "4. If symptoms worsen or persist for more than 3 days, please consult a healthcare provider.\n\n"
    "Feel better soon!"
)


@dataclass(frozen=True)
class FlowOutcome:
    state: ConversationState
    response: ResponseDescriptor | None = None
    rule: str = ""


def match_symptom(message: str) -> str | None:
    for symptom in SYMPTOM_KEYWORDS:
        if _SYMPTOM_PATTERNS[symptom].search(message or ""):
            return symptom
    return None


def _humanize(code: str | None) -> str:
    return (code or "").replace("_", " ")


class SymptomFlow:
    """Multi-step cold/fever/cough/headache triage.

    ``step`` meanings: 0 awaiting symptom, 1 awaiting duration, 2 awaiting cold
    sub-type, 3 awaiting medicine status, 4 awaiting medicine detail.
    ``resolve`` returns ``None`` when no transition applies so the caller can
    fall through to the stateless detectors.
    """

    def __init__(self, weather: SimulatedWeatherLookup) -> None:
        self._weather = weather

    async def resolve(self, state: ConversationState, message: str) -> FlowOutcome | None:
        symptom = match_symptom(message)
        if symptom:
            return self._start(state, symptom)

        answer = (message or "").strip()
        if state.step == 1 and answer in DURATION_CODES:
            return self._on_duration(state, answer)
        if state.step == 2 and answer in COLD_TYPES:
            return await self._on_cold_type(state, answer)
        if state.step == 3 and answer == "taken":
            return self._on_taken(state)
        if state.step == 3 and answer == "suggest":
            return self._on_suggest(state)
        if state.step == 4:
            return FlowOutcome(
                state=state.cleared(),
                response=TextResponse(message_text=CLOSING_ADVICE),
                rule="symptom_flow.closing",
            )
        return None

    def _start(self, state: ConversationState, symptom: str) -> FlowOutcome:
        return FlowOutcome(
            state=state.restart(symptom),
            response=QuestionResponse(
                message_text=(
                    f"I understand you're experiencing {symptom}. Let me ask you a few questions to better "
                    "understand your condition."
                ),
                question_data=QuestionData(
                    text="How long have you been experiencing this?",
                    options=DURATION_OPTIONS,
                ),
            ),
            rule="symptom_flow.start",
        )

    def _on_duration(self, state: ConversationState, duration: str) -> FlowOutcome:
        symptom = state.symptoms[0] if state.symptoms else None
        if symptom != "cold":
            # Only the cold branch has a follow-up question; keep the duration
            # and let the turn fall through.
            logger.info("symptom_flow_no_followup", symptom=symptom, duration=duration)
            return FlowOutcome(
                state=state.advance(duration=duration),
                rule="symptom_flow.duration_recorded",
            )
        return FlowOutcome(
            state=state.advance(step=2, duration=duration),
            response=QuestionResponse(
                message_text="Thank you. Now I need to understand the type of cold you're experiencing.",
                question_data=QuestionData(text="Is it a dry cold or wet cold?", options=COLD_TYPE_OPTIONS),
            ),
            rule="symptom_flow.duration",
        )

    async def _on_cold_type(self, state: ConversationState, cold_type: str) -> FlowOutcome:
        report = await self._weather.lookup()
        return FlowOutcome(
            state=state.advance(
                step=3,
                cold_type=cold_type,
                location=report.location,
                temperature=report.temperature,
            ),
            response=QuestionResponse(
                message_text=f"I see you have a {_humanize(cold_type)}. Let me check the weather in your area.",
                question_data=QuestionData(
                    text="Did you take any medicine or should I suggest one?",
                    options=MEDICINE_STATUS_OPTIONS,
                    context={"location": report.location, "temperature": report.temperature},
                ),
            ),
            rule="symptom_flow.cold_type",
        )

    def _on_taken(self, state: ConversationState) -> FlowOutcome:
        return FlowOutcome(
            state=state.advance(step=4),
            response=QuestionResponse(
                message_text="Which medicine did you take and when?",
                question_data=QuestionData(
                    text="Please tell me the medicine name and when you took it:",
                    question_type="text_input",
                    placeholder="e.g., Paracetamol 2 hours ago",
                    required=True,
                ),
            ),
            rule="symptom_flow.taken",
        )

    def _on_suggest(self, state: ConversationState) -> FlowOutcome:
        return FlowOutcome(
            state=state.cleared(),
            response=TextResponse(
                message_text=(
                    f"Based on your {_humanize(state.cold_type)} and the current temperature of "
                    f"{state.temperature}°C in {state.location}, I recommend the following medicines. "
                    "Please consult with a healthcare provider before taking any medication."
                ),
                show_medicines=True,
            ),
            rule="symptom_flow.suggest",
        )
