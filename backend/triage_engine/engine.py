from __future__ import annotations

import random

import structlog

from .fallback import fallback_text
from .intents import DEFAULT_DETECTORS, IntentDetector, detect_intent
from .models import ConversationState, TextResponse, TurnResult
from .symptom_flow import SymptomFlow
from .weather import SimulatedWeatherLookup

logger = structlog.get_logger(__name__)


class DialogueEngine:
    """Maps ``(state, decrypted input)`` to ``(next state, response)``.

    Resolution order, first match wins:

    1. symptom keyword (re)starts the triage flow,
    2. step-conditioned transitions of the active flow,
    3. stateless intent detectors (payment, doctor, medicine, hospital),
    4. generic fallback.

    The engine never mutates the state it is given; callers commit
    ``TurnResult.state`` once the turn has succeeded. Randomness only picks
    fallback sentences and simulated weather, never transitions.
    """

    def __init__(
        self,
        *,
        rng: random.Random | None = None,
        weather: SimulatedWeatherLookup | None = None,
        detectors: tuple[IntentDetector, ...] = DEFAULT_DETECTORS,
    ) -> None:
        self._rng = rng or random.Random()
        self._flow = SymptomFlow(weather or SimulatedWeatherLookup(self._rng))
        self._detectors = detectors

    async def handle_turn(self, state: ConversationState, message: str) -> TurnResult:
        next_state = state
        outcome = await self._flow.resolve(state, message)
        if outcome is not None:
            next_state = outcome.state
            if outcome.response is not None:
                logger.info(
                    "dialogue_transition",
                    rule=outcome.rule,
                    from_step=state.step,
                    to_step=next_state.step,
                )
                return TurnResult(state=next_state, response=outcome.response, rule=outcome.rule)

        detected = detect_intent(message, self._detectors)
        if detected is not None:
            name, response = detected
            return TurnResult(state=next_state, response=response, rule=f"intent.{name}")

        if state.step:
            logger.info("dialogue_flow_unmatched", step=state.step)
        return TurnResult(
            state=next_state,
            response=TextResponse(message_text=fallback_text(message, self._rng)),
            rule="fallback",
        )
