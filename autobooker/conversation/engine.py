"""
Conversation engine: one user message in, one reply and a list of actions out.

The engine never performs side effects itself. Bookings, confirmations and
cancellations are emitted as declarative ``Action`` values; the host runs
them and feeds booking outcomes back through ``apply_booking_result``.

Per turn:
1. Guardrails reject empty or oversized input before anything else.
2. The injected classifier labels the message; failures fall back to ``other``.
3. Slots are extracted and merged into the context.
4. Pending confirmation or proposals are resolved, otherwise the booking
   flow advances by one step (ask date, ask time, check the slot).
5. The stage is derived again and the reply appended to the history.
"""

import re
from datetime import timedelta
from typing import Optional

from autobooker.availability.availability_service import AvailabilityService
from autobooker.config import AppConfig, settings as default_settings
from autobooker.conversation.guardrails import MessageGuardrailPipeline
from autobooker.conversation.intent_classifier import IntentClassifier
from autobooker.conversation.slot_manager import SlotManager
from autobooker.conversation.state_machine import (
    StageInputs,
    derive_stage,
    is_in_booking_flow,
    record_stage,
)
from autobooker.logging_context import get_session_logger
from autobooker.prompts import reply_templates as replies
from autobooker.schemas.calendar_schema import (
    BookingError,
    BookingErrorKind,
    BookingRequest,
    BookingResult,
)
from autobooker.schemas.conversation_schema import (
    Action,
    ActionType,
    ChatMessage,
    ConversationContext,
    ConversationStage,
    Intent,
    IntentType,
    ProposedSlot,
    Role,
    Slots,
    TurnResult,
    UserPreferences,
)
from autobooker.tools.notifications import NotificationChannel
from autobooker.tools.services import get_service_duration

logger = get_session_logger(__name__)

AFFIRMATIVE = re.compile(
    r"\b(?:oui|ouais|yes|yep|yeah|ok|okay|d'accord|d’accord|daccord|parfait|"
    r"je confirme|confirme|confirmer|confirm|c'est bon|volontiers|sure|go ahead|vas-y)\b"
)
NEGATIVE = re.compile(r"\b(?:non|no|nope|pas ça|pas celui-là|not that one)\b")
SELECTION = re.compile(
    r"^\s*(?:le\s+|la\s+|option\s+|choix\s+|numéro\s+|numero\s+|n°\s*|number\s+|#)?"
    r"(\d{1,2})\s*[.!)]?\s*$"
)

EN_MARKERS = frozenset({
    "hello", "hi", "hey", "book", "appointment", "tomorrow", "today", "please",
    "want", "would", "like", "cancel", "hours", "what", "when", "thanks", "the",
})
FR_MARKERS = frozenset({
    "bonjour", "salut", "rdv", "rendez-vous", "demain", "je", "voudrais", "veux",
    "pour", "merci", "annuler", "horaires", "le", "la", "un", "une", "est",
})

_INFO_INTENTS = frozenset({IntentType.HOURS_INFO, IntentType.SERVICE_INFO, IntentType.GREETING})


def detect_language(text: str, default: str = "fr") -> str:
    """Guess fr/en from common words; ties go to ``default``."""
    words = re.findall(r"[\w'-]+", text.lower())
    en = sum(1 for w in words if w in EN_MARKERS)
    fr = sum(1 for w in words if w in FR_MARKERS)
    if en > fr:
        return "en"
    if fr > en:
        return "fr"
    return default


class ConversationEngine:
    """Turns chat messages into replies and booking actions."""

    def __init__(
        self,
        classifier: IntentClassifier,
        availability: AvailabilityService,
        settings: Optional[AppConfig] = None,
        slot_manager: Optional[SlotManager] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.classifier = classifier
        self.availability = availability
        self.slot_manager = slot_manager or SlotManager()
        self.guardrails = MessageGuardrailPipeline(self.settings.conversation.max_message_length)

    # ------------------------------------------------------------------ #
    # Turn processing
    # ------------------------------------------------------------------ #

    async def process_message(self, context: ConversationContext, text: str) -> TurnResult:
        """
        Process one user message.

        The given context is not mutated; the updated copy is returned in the
        result.

        Raises:
            MessageValidationError: If the message is empty or too long.
        """
        text = self.guardrails.enforce(text)
        context = context.model_copy(deep=True)
        if context.user_preferences is None:
            context.user_preferences = UserPreferences(
                language=detect_language(text, self.settings.business.default_language)
            )

        history = context.history()
        context.messages.append(ChatMessage(role=Role.USER, content=text))
        intent = self._classify(text, history)
        context.current_intent = intent
        logger.info("Intent %s (%.2f)", intent.type.value, intent.confidence)

        previous_stage = context.conversation_stage
        update = self.slot_manager.extract(text, intent, self.availability.now().date())
        lower = text.lower()
        actions: list[Action] = []
        in_flow = intent.type in (IntentType.BOOK, IntentType.MODIFY) or is_in_booking_flow(
            previous_stage
        )

        if intent.type == IntentType.CANCEL:
            reply = self._request_cancellation(context, actions)
            in_flow = False
        elif (
            context.awaiting_confirmation
            and not self._changes_date_or_time(context.extracted_slots, update)
            and not NEGATIVE.search(lower)
            and AFFIRMATIVE.search(lower)
        ):
            reply = self._confirm_booking(context, actions)
            in_flow = False
        else:
            reply, in_flow = await self._continue(context, intent, update, lower, previous_stage, in_flow)

        record_stage(context, derive_stage(StageInputs.from_context(context, in_flow)))
        context.messages.append(ChatMessage(role=Role.ASSISTANT, content=reply))
        return TurnResult(reply=reply, context=context, actions=actions)

    async def _continue(
        self,
        context: ConversationContext,
        intent: Intent,
        update: Slots,
        lower: str,
        previous_stage: ConversationStage,
        in_flow: bool,
    ) -> tuple[str, bool]:
        """Everything except cancellation and an accepted confirmation."""
        lang = context.language
        prefix = ""
        declined = False

        if context.awaiting_confirmation and NEGATIVE.search(lower):
            context.extracted_slots = context.extracted_slots.model_copy(update={"time": None})
            context.awaiting_confirmation = False
            declined = True

        # inside an active booking flow a change request is an ordinary slot update
        if intent.type == IntentType.MODIFY and not is_in_booking_flow(previous_stage):
            prefix = self._start_reschedule(context)
        elif intent.type == IntentType.BOOK and previous_stage == ConversationStage.COMPLETION:
            self._clear_request(context, date=True)

        selected = self._select_proposal(context, update, lower)
        if selected is not None:
            update = update.model_copy(update={"date": selected.date, "time": selected.time})
            context.proposed_slots = []
            in_flow = True

        if self._changes_date_or_time(context.extracted_slots, update):
            context.proposed_slots = []
            context.awaiting_confirmation = False
        context.extracted_slots = context.extracted_slots.merged(update)

        asks_info = intent.type in _INFO_INTENTS and update.date is None and update.time is None
        if not in_flow or asks_info:
            return self._info_reply(context, intent), in_flow

        if context.proposed_slots:
            return replies.render(
                "invalid_selection", lang, count=len(context.proposed_slots)
            ), True
        if declined and not context.extracted_slots.time:
            return replies.render(
                "confirmation_declined", lang,
                day=replies.format_day(context.extracted_slots.date or "", lang),
            ), True
        if context.awaiting_confirmation:
            # neither yes nor no, and the requested slot is unchanged
            slots = context.extracted_slots
            return replies.render(
                "confirm_prompt", lang, day=replies.format_day(slots.date, lang), time=slots.time
            ), True
        return prefix + await self._advance_booking(context), True

    def _classify(self, text: str, history: list[ChatMessage]) -> Intent:
        try:
            return self.classifier.classify(text, history)
        except Exception:
            logger.exception("Intent classifier failed, falling back to 'other'")
            return Intent.fallback()

    @staticmethod
    def _changes_date_or_time(current: Slots, update: Slots) -> bool:
        return bool(
            (update.date and update.date != current.date)
            or (update.time and update.time != current.time)
        )

    @staticmethod
    def _clear_request(context: ConversationContext, date: bool = False) -> None:
        """Drop the requested time (and optionally date) with anything pending on it."""
        changes = {"time": None}
        if date:
            changes["date"] = None
        context.extracted_slots = context.extracted_slots.model_copy(update=changes)
        context.proposed_slots = []
        context.awaiting_confirmation = False

    # ------------------------------------------------------------------ #
    # Replies outside the booking flow
    # ------------------------------------------------------------------ #

    def _info_reply(self, context: ConversationContext, intent: Intent) -> str:
        lang = context.language
        if intent.type == IntentType.GREETING:
            return replies.render(
                "welcome", lang,
                assistant=self.settings.assistant_name,
                business=self.settings.business.name,
            )
        if intent.type == IntentType.HOURS_INFO:
            return replies.build_hours_reply(self.availability.get_config(), lang)
        if intent.type == IntentType.SERVICE_INFO:
            return replies.build_services_reply(lang)
        return replies.render("fallback", lang)

    # ------------------------------------------------------------------ #
    # Booking flow
    # ------------------------------------------------------------------ #

    def _booking_request(self, slots: Slots) -> BookingRequest:
        service = slots.service_type or self.settings.conversation.default_service
        duration = slots.duration_minutes or get_service_duration(
            service, self.settings.calendar.default_duration_minutes
        )
        return BookingRequest(
            date=slots.date or "",
            time=slots.time or "",
            duration_minutes=duration,
            title=replies.service_label(service).capitalize() or "Consultation",
            service_type=service,
            client_name=slots.client_name,
            client_email=slots.client_email,
            client_phone=slots.client_phone,
            notes=slots.notes,
        )

    async def _advance_booking(self, context: ConversationContext) -> str:
        """Ask for the next missing slot, or check the requested one."""
        lang = context.language
        slots = context.extracted_slots
        next_slot = self.slot_manager.get_next_empty_slot(slots)
        if next_slot is not None and next_slot.name == "date":
            return replies.render("ask_date", lang)
        if next_slot is not None:
            return replies.render("ask_time", lang, day=replies.format_day(slots.date, lang))

        request = self._booking_request(slots)
        error = await self.availability.check_request(request)
        if error is None:
            context.awaiting_confirmation = True
            return replies.render(
                "confirm_slot", lang,
                day=replies.format_day(request.date, lang),
                time=request.time,
                service=replies.service_label(request.service_type, lang),
                duration=request.duration_minutes,
            )
        if error.kind == BookingErrorKind.CONFLICT:
            return await self._propose_alternatives(context, request)
        if error.kind == BookingErrorKind.PROVIDER_FAILURE:
            return replies.render("provider_failure", lang)
        return self._clarify(context, request, error)

    async def _propose_alternatives(
        self, context: ConversationContext, request: BookingRequest
    ) -> str:
        """Offer the next free slots from the requested date onward."""
        lang = context.language
        result = await self.availability.find_alternatives(
            request.date,
            request.duration_minutes,
            limit=self.settings.conversation.max_proposals,
        )
        if result.error is not None and not result.slots:
            return replies.render("provider_failure", lang)

        context.proposed_slots = [
            ProposedSlot(date=slot.start.date().isoformat(), time=slot.time)
            for slot in result.slots
        ]
        context.awaiting_confirmation = False
        if not context.proposed_slots:
            day = replies.format_day(request.date, lang)
            self._clear_request(context, date=True)
            return replies.render("no_availability", lang, day=day)
        context.extracted_slots = context.extracted_slots.model_copy(update={"time": None})
        logger.info("Proposed %d alternative slot(s)", len(context.proposed_slots))
        return replies.build_proposals_reply(context.proposed_slots, lang)

    def _clarify(
        self, context: ConversationContext, request: BookingRequest, error: BookingError
    ) -> str:
        """Explain a policy violation and clear the slots that caused it."""
        lang = context.language
        config = self.availability.get_config()
        logger.info("Requested slot rejected (%s): %s", error.kind.value, error.message)

        if error.kind == BookingErrorKind.INVALID_WINDOW:
            self._clear_request(context, date=True)
            earliest = self.availability.now() + timedelta(days=config.advance_booking_days)
            if request.start_at(config.tzinfo) < earliest:
                return replies.render("too_soon", lang, days=config.advance_booking_days)
            return replies.render("too_far", lang, days=config.max_booking_days)

        if error.kind == BookingErrorKind.OUT_OF_HOURS:
            day = replies.format_day(request.date, lang)
            hours = config.hours_for(request.parsed_date())
            if not hours.is_open:
                self._clear_request(context, date=True)
                return replies.render("closed_day", lang, day=day)
            self._clear_request(context)
            return replies.render(
                "out_of_hours", lang, day=day, open=hours.open, close=hours.close
            )

        self._clear_request(context, date=True)
        return replies.render("invalid_request", lang)

    def _select_proposal(
        self, context: ConversationContext, update: Slots, lower: str
    ) -> Optional[ProposedSlot]:
        """Match a reply to a pending proposal by its number or its time."""
        proposals = context.proposed_slots
        if not proposals:
            return None
        match = SELECTION.match(lower)
        if match:
            index = int(match.group(1)) - 1
            return proposals[index] if 0 <= index < len(proposals) else None
        if update.time:
            for slot in proposals:
                if slot.time == update.time and update.date in (None, slot.date):
                    return slot
        return None

    def _start_reschedule(self, context: ConversationContext) -> str:
        lang = context.language
        self._clear_request(context, date=True)
        context.booking_requested = False
        if context.booking_event_id:
            context.reschedule_event_id = context.booking_event_id
            logger.info("Rescheduling booking %s", context.booking_event_id)
            return replies.render("reschedule_start", lang)
        return replies.render("modify_no_booking", lang)

    def _confirm_booking(self, context: ConversationContext, actions: list[Action]) -> str:
        """Emit the booking action (and confirmation when a contact is known)."""
        lang = context.language
        request = self._booking_request(context.extracted_slots)
        booking = request.model_dump(exclude={"title"})
        data = dict(booking)
        if context.reschedule_event_id:
            data["reschedule_event_id"] = context.reschedule_event_id
        actions.append(Action(type=ActionType.CREATE_BOOKING, data=data))

        reply = replies.render(
            "booking_requested", lang,
            day=replies.format_day(request.date, lang),
            time=request.time,
        )
        contact = self._contact(request)
        if contact is not None:
            channel, recipient = contact
            actions.append(Action(
                type=ActionType.SEND_CONFIRMATION,
                data={"channel": channel.value, "recipient": recipient, "booking": booking},
            ))
            reply += replies.render("confirmation_sent", lang, recipient=recipient)

        context.awaiting_confirmation = False
        context.booking_requested = True
        logger.info("Booking confirmed by user for %s %s", request.date, request.time)
        return reply

    @staticmethod
    def _contact(request: BookingRequest) -> Optional[tuple[NotificationChannel, str]]:
        if request.client_email:
            return NotificationChannel.EMAIL, request.client_email
        if request.client_phone:
            return NotificationChannel.SMS, request.client_phone
        return None

    def _request_cancellation(self, context: ConversationContext, actions: list[Action]) -> str:
        lang = context.language
        context.proposed_slots = []
        context.awaiting_confirmation = False
        context.booking_requested = False
        if not context.booking_event_id:
            return replies.render("no_booking", lang)
        actions.append(Action(
            type=ActionType.CANCEL_BOOKING, data={"event_id": context.booking_event_id}
        ))
        return replies.render("cancel_requested", lang)

    # ------------------------------------------------------------------ #
    # Host feedback
    # ------------------------------------------------------------------ #

    async def apply_booking_result(
        self, context: ConversationContext, result: BookingResult
    ) -> str:
        """
        Fold the outcome of a ``create_booking`` action back into the context.

        Mutates ``context`` in place and appends the returned text to its
        history as an assistant message.
        """
        lang = context.language
        slots = context.extracted_slots
        context.booking_requested = False

        if result.success:
            context.booking_event_id = result.event_id
            context.booking_provider = result.provider
            context.reschedule_event_id = None
            reply = replies.render(
                "booking_success", lang,
                day=replies.format_day(slots.date or "", lang),
                time=slots.time,
            )
            record_stage(context, ConversationStage.COMPLETION)
        else:
            error = result.error or BookingError(
                kind=BookingErrorKind.PROVIDER_FAILURE, message="unknown failure"
            )
            request = self._booking_request(slots)
            if error.kind == BookingErrorKind.CONFLICT:
                reply = await self._propose_alternatives(context, request)
            elif error.kind == BookingErrorKind.PROVIDER_FAILURE:
                # Slots are kept; answering "oui" again retries the booking.
                context.awaiting_confirmation = True
                reply = replies.render("provider_failure", lang)
            else:
                reply = self._clarify(context, request, error)
            record_stage(context, derive_stage(StageInputs.from_context(context, True)))

        context.messages.append(ChatMessage(role=Role.ASSISTANT, content=reply))
        return reply

    def apply_cancellation_result(
        self, context: ConversationContext, result: BookingResult
    ) -> str:
        """Fold the outcome of a ``cancel_booking`` action back into the context."""
        lang = context.language
        if result.success:
            context.booking_event_id = None
            context.booking_provider = None
            reply = replies.render("cancel_success", lang)
        else:
            reply = replies.render("cancel_failed", lang)
        record_stage(context, derive_stage(StageInputs.from_context(context, False)))
        context.messages.append(ChatMessage(role=Role.ASSISTANT, content=reply))
        return reply
