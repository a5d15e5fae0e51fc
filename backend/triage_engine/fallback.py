from __future__ import annotations

import random

GENERIC_RESPONSES: tuple[str, ...] = (
    "I understand your concern. Based on your symptoms, I'd recommend consulting with a healthcare "
    "professional for a proper diagnosis.",
    "Thank you for sharing that information. Let me help you find the best treatment options available.",
    "I've found some relevant information that might help. Would you like me to show you nearby specialists?",
    "Based on your medical history, here are some recommendations that might be helpful.",
    "That's a great question about your health. Let me provide you with some evidence-based information.",
    "I can help you understand your symptoms better. Here's what you should know about this condition.",
    "For your safety, I recommend discussing this with a qualified healthcare provider who can examine "
    "you properly.",
    "Here are some general wellness tips that might be beneficial for your situation.",
)

PAIN_RESPONSE = (
    "I understand you're experiencing pain. While I can provide general information, it's important to "
    "consult with a healthcare professional for proper pain management and diagnosis."
)
FEVER_RESPONSE = (
    "Fever can be a sign of various conditions. Please monitor your temperature and consider consulting a "
    "healthcare provider if it persists or is accompanied by other concerning symptoms."
)
MEDICATION_RESPONSE = (
    "When it comes to medications, it's crucial to consult with a pharmacist or healthcare provider. They "
    "can provide proper guidance on dosage, interactions, and side effects."
)

# First match wins.
KEYWORD_OVERRIDES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("pain", "hurt"), PAIN_RESPONSE),
    (("fever", "temperature"), FEVER_RESPONSE),
    (("medication", "medicine"), MEDICATION_RESPONSE),
)


def fallback_text(message: str, rng: random.Random) -> str:
    lowered = message.lower()
    for keywords, reply in KEYWORD_OVERRIDES:
        if any(keyword in lowered for keyword in keywords):
            return reply
    return rng.choice(GENERIC_RESPONSES)
