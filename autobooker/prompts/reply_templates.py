"""Reply text for the conversation engine, in French and English.

Plain templates live in ``REPLIES``; anything built from configuration or
the service catalog has a ``build_*`` function. Unknown languages fall back
to French, the business default.
"""

from datetime import date
from typing import Optional, Sequence

from autobooker.schemas.calendar_schema import WEEKDAYS, CalendarConfig
from autobooker.schemas.conversation_schema import ProposedSlot
from autobooker.tools.services import get_all_services

DEFAULT_LANGUAGE = "fr"

DAY_NAMES = {
    "fr": ("lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche"),
    "en": ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"),
}
MONTH_NAMES = {
    "fr": ("janvier", "février", "mars", "avril", "mai", "juin", "juillet",
           "août", "septembre", "octobre", "novembre", "décembre"),
    "en": ("January", "February", "March", "April", "May", "June", "July",
           "August", "September", "October", "November", "December"),
}

REPLIES: dict[str, dict[str, str]] = {
    "fr": {
        "welcome": (
            "Bonjour ! Je suis {assistant}, l'assistant de {business}. Je peux vous aider "
            "à prendre, modifier ou annuler un rendez-vous. Comment puis-je vous aider ?"
        ),
        "ask_date": (
            "Pour quel jour souhaitez-vous prendre rendez-vous ? Vous pouvez me dire par "
            "exemple \"demain\", \"vendredi\" ou une date précise."
        ),
        "ask_time": "À quelle heure préféreriez-vous le {day} ? Par exemple \"14h30\".",
        "fallback": (
            "Je ne suis pas sûr de comprendre. Souhaitez-vous prendre un rendez-vous, "
            "connaître nos horaires ou nos services ?"
        ),
        "confirm_slot": (
            "Le {day} à {time} est disponible pour une {service} ({duration} min). "
            "Je confirme ce rendez-vous ?"
        ),
        "proposals_intro": "Le créneau demandé n'est pas disponible. Voici les créneaux libres :",
        "proposals_outro": "Quel créneau vous convient ? Répondez par le numéro ou l'heure.",
        "no_availability": (
            "Désolé, aucun créneau n'est disponible autour du {day}. "
            "Pouvez-vous choisir une autre date ?"
        ),
        "too_soon": (
            "Les rendez-vous doivent être pris au moins {days} jour(s) à l'avance. "
            "Quelle autre date vous conviendrait ?"
        ),
        "too_far": (
            "Nous ne prenons pas de rendez-vous à plus de {days} jours. "
            "Quelle autre date vous conviendrait ?"
        ),
        "closed_day": "Nous sommes fermés le {day}. Quel autre jour vous conviendrait ?",
        "out_of_hours": (
            "Le {day}, nous recevons de {open} à {close}. À quelle heure souhaitez-vous venir ?"
        ),
        "invalid_request": "Je n'ai pas pu lire la date ou l'heure. Pouvez-vous la reformuler ?",
        "provider_failure": (
            "Désolé, je n'arrive pas à consulter l'agenda pour le moment. "
            "Vos informations sont conservées, pouvez-vous réessayer dans un instant ?"
        ),
        "booking_requested": "Parfait, j'enregistre votre rendez-vous du {day} à {time}.",
        "booking_success": "Votre rendez-vous du {day} à {time} est confirmé. À bientôt !",
        "confirmation_sent": " Une confirmation vous sera envoyée à {recipient}.",
        "confirmation_declined": "Très bien. À quelle autre heure souhaitez-vous venir le {day} ?",
        "confirm_prompt": "Souhaitez-vous que je confirme le rendez-vous du {day} à {time} ? (oui / non)",
        "invalid_selection": "Je n'ai pas trouvé ce créneau. Répondez par un numéro entre 1 et {count}.",
        "cancel_requested": "C'est noté, j'annule votre rendez-vous.",
        "cancel_success": "Votre rendez-vous a bien été annulé.",
        "cancel_failed": (
            "Je n'ai pas pu annuler ce rendez-vous pour le moment. Pouvez-vous réessayer ?"
        ),
        "no_booking": (
            "Je ne trouve pas de rendez-vous à annuler dans notre conversation. "
            "Pouvez-vous contacter le cabinet directement ?"
        ),
        "reschedule_start": "D'accord, déplaçons votre rendez-vous. ",
        "modify_no_booking": "Je ne trouve pas de rendez-vous existant, prenons-en un nouveau. ",
        "hours_intro": "Nos horaires d'ouverture :",
        "hours_outro": "Souhaitez-vous prendre un rendez-vous ?",
        "closed": "fermé",
        "services_intro": "Voici nos services :",
        "services_outro": "Quel type de rendez-vous souhaitez-vous ?",
    },
    "en": {
        "welcome": (
            "Hello! I'm {assistant}, the assistant for {business}. I can help you book, "
            "change or cancel an appointment. How can I help?"
        ),
        "ask_date": (
            "Which day would you like to come in? You can say \"tomorrow\", \"Friday\" "
            "or a specific date."
        ),
        "ask_time": "What time would suit you on {day}? For example \"2pm\" or \"14:30\".",
        "fallback": (
            "I'm not sure I understood. Would you like to book an appointment, "
            "or hear about our opening hours or services?"
        ),
        "confirm_slot": (
            "{day} at {time} is available for a {service} ({duration} min). "
            "Shall I confirm it?"
        ),
        "proposals_intro": "That time is not available. Here are the open slots:",
        "proposals_outro": "Which one suits you? Reply with the number or the time.",
        "no_availability": "Sorry, nothing is available around {day}. Could you pick another date?",
        "too_soon": (
            "Appointments must be booked at least {days} day(s) in advance. "
            "Which other date would suit you?"
        ),
        "too_far": (
            "We don't take bookings more than {days} days ahead. Which other date would suit you?"
        ),
        "closed_day": "We are closed on {day}. Which other day would suit you?",
        "out_of_hours": "On {day} we are open from {open} to {close}. What time would you like?",
        "invalid_request": "I couldn't read that date or time. Could you rephrase it?",
        "provider_failure": (
            "Sorry, I can't reach the calendar right now. Your details are saved, "
            "could you try again in a moment?"
        ),
        "booking_requested": "Great, I'm booking your appointment on {day} at {time}.",
        "booking_success": "Your appointment on {day} at {time} is confirmed. See you soon!",
        "confirmation_sent": " A confirmation will be sent to {recipient}.",
        "confirmation_declined": "No problem. What other time would suit you on {day}?",
        "confirm_prompt": "Would you like me to confirm the appointment on {day} at {time}? (yes / no)",
        "invalid_selection": "I couldn't find that slot. Please reply with a number from 1 to {count}.",
        "cancel_requested": "Understood, I'm cancelling your appointment.",
        "cancel_success": "Your appointment has been cancelled.",
        "cancel_failed": "I couldn't cancel that appointment right now. Could you try again?",
        "no_booking": (
            "I can't find an appointment to cancel in our conversation. "
            "Could you contact the office directly?"
        ),
        "reschedule_start": "Sure, let's move your appointment. ",
        "modify_no_booking": "I can't find an existing appointment, let's book a new one. ",
        "hours_intro": "Our opening hours:",
        "hours_outro": "Would you like to book an appointment?",
        "closed": "closed",
        "services_intro": "Here are our services:",
        "services_outro": "Which type of appointment would you like?",
    },
}


def _lang(language: Optional[str]) -> str:
    return language if language in REPLIES else DEFAULT_LANGUAGE


def render(key: str, language: Optional[str] = None, **values) -> str:
    """Format the template ``key`` in the given language."""
    return REPLIES[_lang(language)][key].format(**values)


def format_day(value: str, language: Optional[str] = None) -> str:
    """``2026-10-16`` -> ``vendredi 16 octobre`` / ``Friday 16 October``."""
    lang = _lang(language)
    try:
        day = date.fromisoformat(value)
    except ValueError:
        return value
    return f"{DAY_NAMES[lang][day.weekday()]} {day.day} {MONTH_NAMES[lang][day.month - 1]}"


def build_hours_reply(config: CalendarConfig, language: Optional[str] = None) -> str:
    """Opening hours listing built from the active calendar configuration."""
    lang = _lang(language)
    lines = [render("hours_intro", lang), ""]
    for index, weekday in enumerate(WEEKDAYS):
        hours = config.business_hours.get(weekday)
        if hours is not None and hours.is_open:
            span = f"{hours.open} - {hours.close}"
        else:
            span = render("closed", lang)
        lines.append(f"- {DAY_NAMES[lang][index].capitalize()} : {span}")
    lines += ["", render("hours_outro", lang)]
    return "\n".join(lines)


def build_services_reply(language: Optional[str] = None) -> str:
    """Service catalog listing with default durations."""
    lang = _lang(language)
    name_key = "name" if lang == "fr" else "name_en"
    lines = [render("services_intro", lang), ""]
    for service in get_all_services():
        lines.append(f"- {service[name_key]} ({service['duration']} min)")
    lines += ["", render("services_outro", lang)]
    return "\n".join(lines)


def build_proposals_reply(
    proposals: Sequence[ProposedSlot], language: Optional[str] = None
) -> str:
    """Numbered list of proposed slots, numbering from 1."""
    lang = _lang(language)
    lines = [render("proposals_intro", lang), ""]
    for index, slot in enumerate(proposals, start=1):
        lines.append(f"{index}. {format_day(slot.date, lang)} - {slot.time}")
    lines += ["", render("proposals_outro", lang)]
    return "\n".join(lines)


def service_label(service_id: Optional[str], language: Optional[str] = None) -> str:
    """Display name of a catalog service, lower-cased for use mid-sentence."""
    lang = _lang(language)
    for service in get_all_services():
        if service["id"] == service_id:
            return (service["name"] if lang == "fr" else service["name_en"]).lower()
    return service_id or ""
