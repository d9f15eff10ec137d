"""Service catalog with default durations and recognised aliases."""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

SERVICE_CATALOG: dict[str, dict] = {
    "consultation": {
        "name": "Consultation standard",
        "name_en": "Standard consultation",
        "duration": 60,
    },
    "consultation_longue": {
        "name": "Consultation approfondie",
        "name_en": "Extended consultation",
        "duration": 90,
    },
    "suivi": {
        "name": "Rendez-vous de suivi",
        "name_en": "Follow-up appointment",
        "duration": 30,
    },
    "urgence": {
        "name": "Consultation urgente",
        "name_en": "Urgent consultation",
        "duration": 45,
    },
    "teleconsultation": {
        "name": "Téléconsultation",
        "name_en": "Video consultation",
        "duration": 30,
    },
}

# Longer phrases first so "consultation approfondie" wins over "consultation"
SERVICE_ALIASES: dict[str, str] = {
    "consultation approfondie": "consultation_longue",
    "consultation longue": "consultation_longue",
    "extended consultation": "consultation_longue",
    "long consultation": "consultation_longue",
    "téléconsultation": "teleconsultation",
    "teleconsultation": "teleconsultation",
    "visio": "teleconsultation",
    "video": "teleconsultation",
    "en ligne": "teleconsultation",
    "online": "teleconsultation",
    "suivi": "suivi",
    "follow-up": "suivi",
    "follow up": "suivi",
    "contrôle": "suivi",
    "urgence": "urgence",
    "urgent": "urgence",
    "emergency": "urgence",
    "consultation": "consultation",
}


def get_all_services() -> list[dict]:
    """Return all services with basic info, in catalog order."""
    return [
        {"id": sid, "name": info["name"], "name_en": info["name_en"], "duration": info["duration"]}
        for sid, info in SERVICE_CATALOG.items()
    ]


def get_service_duration(service_id: Optional[str], default: int = 60) -> int:
    """Default appointment length for a service, or ``default`` when unknown."""
    if not service_id:
        return default
    info = SERVICE_CATALOG.get(service_id)
    if info is None:
        logger.debug("Unknown service %r, using default duration", service_id)
        return default
    return info["duration"]


def match_service(query: str) -> Optional[str]:
    """Match free text to a service ID. Returns None if nothing matches."""
    normalized = query.lower().strip()
    for alias, service_id in SERVICE_ALIASES.items():
        if alias in normalized:
            return service_id
    for sid in SERVICE_CATALOG:
        if sid in normalized:
            return sid
    return None
