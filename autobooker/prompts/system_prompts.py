"""
Prompts sent to a language model when one is plugged in as intent classifier.

Business-specific values are injected from configuration, not hardcoded.
"""

from autobooker.config import settings

_biz = settings.business

INTENT_LABELS = (
    "book", "modify", "cancel", "service_info", "hours_info", "greeting", "other",
)

INTENT_CLASSIFICATION_PROMPT = f"""
You detect intents for the booking assistant of {_biz.name}.
Read the user's latest message (earlier turns are given for context only)
and pick exactly one intent:

- book: the user wants to make an appointment
- modify: the user wants to move or change an existing appointment
- cancel: the user wants to cancel an appointment
- service_info: the user asks which services are offered
- hours_info: the user asks about opening hours
- greeting: a greeting or courtesy message
- other: none of the above

Also list the entities you find. Entity types: date, time, service.
Keep dates and times as the user wrote them ("demain", "vendredi", "14h30").

Answer with JSON only, no prose, in this shape:
{{"type": "book", "confidence": 0.95, "entities": [{{"type": "date", "value": "demain", "confidence": 0.9}}]}}
"""


def build_classification_input(message: str, history: list[tuple[str, str]]) -> str:
    """Assemble the prompt body: recent turns followed by the message to label."""
    lines = [INTENT_CLASSIFICATION_PROMPT.strip(), ""]
    if history:
        lines.append("Conversation so far:")
        for role, content in history:
            lines.append(f"{role}: {content}")
        lines.append("")
    lines.append(f"Message to classify: {message}")
    return "\n".join(lines)
