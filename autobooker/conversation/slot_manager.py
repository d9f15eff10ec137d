"""
Slot extraction and required-slot policy for the booking flow.

Slots come from two sources each turn: the classifier's entities (dates,
times, service) and direct pattern matching on the message for structured
fields (email, phone, duration, client name). Relative dates are resolved
against the caller-supplied ``today``.

Usage:
    manager = SlotManager()
    update = manager.extract("RDV demain à 14h", intent, today=date(2026, 10, 15))
    slots = current.merged(update)
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Optional

from autobooker.conversation.intent_classifier import WEEKDAY_WORDS, extract_entities
from autobooker.schemas.conversation_schema import Intent, Slots
from autobooker.tools.services import SERVICE_CATALOG, match_service
from autobooker.utils import format_hhmm, normalize_phone, parse_hhmm

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 15
MAX_DURATION_MINUTES = 480

EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.[a-zA-Z]{2,}")
PHONE_PATTERN = re.compile(r"(?:\+33\s?|0)[1-9](?:[\s.-]?\d{2}){4}|\+\d{1,3}(?:[\s.-]?\d{2,4}){3,5}")
DURATION_PATTERN = re.compile(r"\b(\d{2,3})\s*(?:minutes?|mins?|mn)\b", re.IGNORECASE)
NAME_PATTERN = re.compile(
    r"(?i:je m'appelle|je m’appelle|mon nom est|my name is)\s+"
    r"([^\W\d_][\w'’-]*(?:\s+[A-ZÀ-Þ][\w'’-]*){0,2})"
)


def _validate_date(value: str) -> bool:
    """Validate date is in YYYY-MM-DD format."""
    try:
        date.fromisoformat(value.strip())
        return True
    except ValueError:
        return False


def _validate_time(value: str) -> bool:
    """Validate time is in HH:MM format."""
    try:
        parse_hhmm(value)
        return True
    except ValueError:
        return False


def _validate_phone(value: str) -> bool:
    digits = re.sub(r"[^\d]", "", value)
    return MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS


def _validate_email(value: str) -> bool:
    return EMAIL_PATTERN.fullmatch(value.strip()) is not None


def _validate_service(value: str) -> bool:
    return value in SERVICE_CATALOG


def resolve_date(value: str, today: date) -> Optional[str]:
    """Turn a date mention into ``YYYY-MM-DD``, or None if it cannot be read.

    Weekday names resolve to the next such day strictly after ``today``.
    A day/month without a year that has already passed rolls to next year.
    """
    text = value.strip().lower()
    if text in ("aujourd'hui", "aujourd’hui", "today"):
        return today.isoformat()
    if text in ("demain", "tomorrow"):
        return (today + timedelta(days=1)).isoformat()
    if text in ("après-demain", "apres-demain", "après demain", "day after tomorrow"):
        return (today + timedelta(days=2)).isoformat()
    if text in WEEKDAY_WORDS:
        ahead = (WEEKDAY_WORDS[text] - today.weekday()) % 7 or 7
        return (today + timedelta(days=ahead)).isoformat()

    if _validate_date(text):
        return text

    match = re.fullmatch(r"(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?", text)
    if not match:
        return None
    day, month = int(match.group(1)), int(match.group(2))
    year = int(match.group(3)) if match.group(3) else today.year
    if year < 100:
        year += 2000
    try:
        resolved = date(year, month, day)
    except ValueError:
        return None
    if not match.group(3) and resolved < today:
        try:
            resolved = resolved.replace(year=year + 1)
        except ValueError:
            return None
    return resolved.isoformat()


@dataclass(frozen=True)
class SlotDefinition:
    """Schema for a single slot to collect."""

    name: str
    required: bool = False
    validator: Optional[Callable[[str], bool]] = None


class SlotManager:
    """
    Extracts, validates and merges booking slots.

    Only ``date`` and ``time`` are required; everything else refines the
    booking when present. Date is always asked before time.
    """

    SLOT_DEFINITIONS: list[SlotDefinition] = [
        SlotDefinition(name="date", required=True, validator=_validate_date),
        SlotDefinition(name="time", required=True, validator=_validate_time),
        SlotDefinition(name="service_type", validator=_validate_service),
        SlotDefinition(name="duration_minutes"),
        SlotDefinition(name="client_name"),
        SlotDefinition(name="client_email", validator=_validate_email),
        SlotDefinition(name="client_phone", validator=_validate_phone),
        SlotDefinition(name="location"),
        SlotDefinition(name="notes"),
    ]

    def extract(self, text: str, intent: Optional[Intent], today: date) -> Slots:
        """Slots mentioned in this message alone; merge into context separately."""
        entities = intent.entities if intent and intent.entities else extract_entities(text)
        found: dict = {}

        for entity in entities:
            if entity.type == "date" and "date" not in found:
                resolved = resolve_date(entity.value, today)
                if resolved:
                    found["date"] = resolved
            elif entity.type == "time" and "time" not in found:
                if _validate_time(entity.value):
                    found["time"] = format_hhmm(parse_hhmm(entity.value))
            elif entity.type == "service" and "service_type" not in found:
                if _validate_service(entity.value):
                    found["service_type"] = entity.value

        if "service_type" not in found:
            service = match_service(text)
            if service:
                found["service_type"] = service

        email = EMAIL_PATTERN.search(text)
        if email:
            found["client_email"] = email.group(0).lower()
        phone = PHONE_PATTERN.search(text)
        if phone and _validate_phone(phone.group(0)):
            found["client_phone"] = normalize_phone(phone.group(0))
        duration = DURATION_PATTERN.search(text)
        if duration and 0 < int(duration.group(1)) <= MAX_DURATION_MINUTES:
            found["duration_minutes"] = int(duration.group(1))
        name = NAME_PATTERN.search(text)
        if name:
            found["client_name"] = name.group(1).strip().title()

        if found:
            logger.debug("Slots extracted: %s", sorted(found))
        return Slots(**found)

    def validate(self, slots: Slots) -> dict[str, str]:
        """Return ``{slot_name: value}`` for every present value that fails its validator."""
        invalid = {}
        for defn in self.SLOT_DEFINITIONS:
            value = getattr(slots, defn.name)
            if value is None or defn.validator is None:
                continue
            if not defn.validator(str(value)):
                invalid[defn.name] = str(value)
        return invalid

    def get_missing_slots(self, slots: Slots) -> list[SlotDefinition]:
        """Required slots still empty, in asking order."""
        return [d for d in self.SLOT_DEFINITIONS if d.required and not getattr(slots, d.name)]

    def get_next_empty_slot(self, slots: Slots) -> Optional[SlotDefinition]:
        missing = self.get_missing_slots(slots)
        return missing[0] if missing else None

    def all_required_filled(self, slots: Slots) -> bool:
        return not self.get_missing_slots(slots)
