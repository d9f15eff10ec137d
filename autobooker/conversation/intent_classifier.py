"""
Intent classification behind a single pluggable interface.

``RuleBasedIntentClassifier`` uses French and English keyword tables and
regex entity extraction. ``LLMIntentClassifier`` delegates to any text
completion callable. Both satisfy ``IntentClassifier`` and never raise:
a classifier that cannot decide returns ``other`` at low confidence.
"""

import json
import logging
import re
from typing import Callable, Optional, Protocol, Sequence, runtime_checkable

from pydantic import ValidationError

from autobooker.prompts.system_prompts import build_classification_input
from autobooker.schemas.conversation_schema import ChatMessage, Entity, Intent, IntentType
from autobooker.tools.services import match_service

logger = logging.getLogger(__name__)

MAX_HISTORY_TURNS = 6


@runtime_checkable
class IntentClassifier(Protocol):
    def classify(self, text: str, history: Sequence[ChatMessage] = ()) -> Intent:
        ...


def _keyword_pattern(keywords: Sequence[str]) -> re.Pattern:
    alternatives = sorted(keywords, key=len, reverse=True)
    return re.compile(r"\b(?:" + "|".join(re.escape(k) for k in alternatives) + r")\b")


# Checked in order: cancel and modify before book, since "annuler mon rdv"
# also mentions an appointment. Greeting last so "bonjour, un rdv" is a booking.
INTENT_RULES: list[tuple[IntentType, float, re.Pattern]] = [
    (IntentType.CANCEL, 0.9, _keyword_pattern([
        "annuler", "annulation", "supprimer", "cancel", "cancellation",
    ])),
    (IntentType.MODIFY, 0.85, _keyword_pattern([
        "modifier", "changer", "déplacer", "deplacer", "reporter", "décaler", "decaler",
        "reschedule", "move my", "change my",
    ])),
    (IntentType.BOOK, 0.9, _keyword_pattern([
        "rdv", "rendez-vous", "rendez vous", "réserver", "reserver", "réservation",
        "reservation", "prendre", "disponibilité", "disponibilités", "créneau",
        "book", "booking", "appointment", "schedule", "reserve",
    ])),
    (IntentType.HOURS_INFO, 0.8, _keyword_pattern([
        "horaire", "horaires", "ouvert", "ouverts", "ouverte", "ouverture", "ferme",
        "fermé", "fermés", "opening hours", "open", "closed", "hours",
    ])),
    (IntentType.SERVICE_INFO, 0.8, _keyword_pattern([
        "service", "services", "prestation", "prestations", "tarif", "tarifs", "prix",
        "quels soins", "what do you offer", "price", "prices",
    ])),
    (IntentType.GREETING, 0.95, _keyword_pattern([
        "bonjour", "salut", "bonsoir", "coucou", "hello", "hi", "hey", "good morning",
    ])),
]

_ISO_DATE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
_NUMERIC_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b")
_RELATIVE_DATES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\b(?:après-demain|apres-demain|après demain|day after tomorrow)\b"), "après-demain"),
    (re.compile(r"\b(?:demain|tomorrow)\b"), "demain"),
    (re.compile(r"\b(?:aujourd'hui|aujourd’hui|today)\b"), "aujourd'hui"),
]
WEEKDAY_WORDS: dict[str, int] = {
    "lundi": 0, "mardi": 1, "mercredi": 2, "jeudi": 3, "vendredi": 4, "samedi": 5, "dimanche": 6,
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3, "friday": 4,
    "saturday": 5, "sunday": 6,
}
_WEEKDAY = _keyword_pattern(list(WEEKDAY_WORDS))

_CLOCK_TIME = re.compile(r"\b([01]?\d|2[0-3])\s*(?:h|:)\s*([0-5]\d)?\b")
_HOURS_WORD = re.compile(r"\b([01]?\d|2[0-3])\s*heures?\b")
_MERIDIEM_TIME = re.compile(r"\b(1[0-2]|0?[1-9])(?::([0-5]\d))?\s*(am|pm)\b")
_NOON = re.compile(r"\b(?:midi|noon)\b")


def extract_date_entities(text: str) -> list[Entity]:
    """Date mentions, most explicit first. Values are kept as written."""
    lower = text.lower()
    entities = [Entity(type="date", value=m.group(1), confidence=0.95) for m in _ISO_DATE.finditer(lower)]
    entities += [
        Entity(type="date", value=m.group(0), confidence=0.9)
        for m in _NUMERIC_DATE.finditer(lower)
    ]
    for pattern, value in _RELATIVE_DATES:
        if pattern.search(lower):
            entities.append(Entity(type="date", value=value, confidence=0.9))
            break
    entities += [
        Entity(type="date", value=m.group(0), confidence=0.8) for m in _WEEKDAY.finditer(lower)
    ]
    return entities


def extract_time_entities(text: str) -> list[Entity]:
    """Clock times normalised to ``HH:MM``."""
    lower = text.lower()
    found: list[tuple[int, str]] = []
    for m in _MERIDIEM_TIME.finditer(lower):
        hour = int(m.group(1)) % 12 + (12 if m.group(3) == "pm" else 0)
        found.append((m.start(), f"{hour:02d}:{m.group(2) or '00'}"))
    for pattern in (_CLOCK_TIME, _HOURS_WORD):
        for m in pattern.finditer(lower):
            if any(start == m.start() for start, _ in found):
                continue
            minute = m.group(2) if pattern is _CLOCK_TIME and m.group(2) else "00"
            found.append((m.start(), f"{int(m.group(1)):02d}:{minute}"))
    for m in _NOON.finditer(lower):
        found.append((m.start(), "12:00"))
    return [Entity(type="time", value=value, confidence=0.85) for _, value in sorted(found)]


def extract_entities(text: str) -> list[Entity]:
    entities = extract_date_entities(text) + extract_time_entities(text)
    service = match_service(text)
    if service:
        entities.append(Entity(type="service", value=service, confidence=0.8))
    return entities


class RuleBasedIntentClassifier:
    """Keyword classifier with regex entity extraction. Deterministic."""

    def __init__(self, rules: Optional[list[tuple[IntentType, float, re.Pattern]]] = None) -> None:
        self._rules = rules or INTENT_RULES

    def classify(self, text: str, history: Sequence[ChatMessage] = ()) -> Intent:
        lower = text.lower()
        entities = extract_entities(text)
        for intent_type, confidence, pattern in self._rules:
            if pattern.search(lower):
                return Intent(type=intent_type, confidence=confidence, entities=entities)
        return Intent(type=IntentType.OTHER, confidence=0.5, entities=entities)


_LEGACY_LABELS = {
    "prise_rdv": IntentType.BOOK,
    "modifier_rdv": IntentType.MODIFY,
    "annuler_rdv": IntentType.CANCEL,
    "info_service": IntentType.SERVICE_INFO,
    "heures_ouverture": IntentType.HOURS_INFO,
    "salutation": IntentType.GREETING,
    "autre": IntentType.OTHER,
}
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class LLMIntentClassifier:
    """Classifier backed by a text-completion callable.

    ``complete`` receives the full prompt and returns the model's raw text.
    Any failure (transport error, non-JSON answer, unknown label) degrades
    to ``other`` at confidence 0.1 instead of propagating.
    """

    def __init__(self, complete: Callable[[str], str], max_history: int = MAX_HISTORY_TURNS) -> None:
        self._complete = complete
        self._max_history = max_history

    def classify(self, text: str, history: Sequence[ChatMessage] = ()) -> Intent:
        recent = [(m.role.value, m.content) for m in list(history)[-self._max_history:]]
        prompt = build_classification_input(text, recent)
        try:
            raw = self._complete(prompt)
        except Exception:
            logger.exception("Intent model call failed")
            return Intent.fallback()
        return self.parse(raw)

    @staticmethod
    def parse(raw: str) -> Intent:
        """Parse the model's JSON answer into an Intent."""
        match = _JSON_OBJECT.search(raw or "")
        if not match:
            logger.warning("Intent model returned no JSON: %r", (raw or "")[:200])
            return Intent.fallback()
        try:
            payload = json.loads(match.group(0))
            label = str(payload.get("type", "")).lower().strip()
            payload["type"] = _LEGACY_LABELS.get(label, label)
            return Intent.model_validate(payload)
        except (json.JSONDecodeError, AttributeError, ValidationError) as exc:
            logger.warning("Unusable intent model answer: %s", exc)
            return Intent.fallback()
