"""
Host-facing booking assistant.

Loads the session, runs one engine turn, executes the resulting actions
against the availability service and the notifier, feeds booking outcomes
back to the engine, and saves the session.

Usage:
    assistant = build_assistant()
    response = await assistant.process_message("Je voudrais un RDV demain à 14h")
    response = await assistant.process_message("oui", session_id=response.session_id)
"""

import uuid
from datetime import timedelta
from typing import Callable, Optional

from autobooker import registry
from autobooker.availability.availability_service import AvailabilityService
from autobooker.config import AppConfig, settings as default_settings
from autobooker.conversation.engine import ConversationEngine
from autobooker.conversation.session_store import InMemorySessionStore
from autobooker.errors import ConfigurationError, MessageValidationError, ProviderError
from autobooker.logging_context import get_session_logger, session_scope
from autobooker.schemas.calendar_schema import (
    BookingErrorKind,
    BookingRequest,
    BookingResult,
    CalendarConfig,
)
from autobooker.schemas.chat_schema import ActionResult, ChatResponse, SlotView
from autobooker.schemas.conversation_schema import Action, ActionType, ConversationContext
from autobooker.tools.notifications import (
    NotificationChannel,
    NotificationRequest,
    NotificationTemplate,
    Notifier,
)
from autobooker.utils import KeyedLocks

logger = get_session_logger(__name__)


def _new_session_id() -> str:
    return f"sess_{uuid.uuid4().hex[:16]}"


class BookingAssistant:
    """Chat entry point: one call per user message."""

    def __init__(
        self,
        availability: AvailabilityService,
        engine: ConversationEngine,
        store: InMemorySessionStore,
        notifier: Notifier,
        settings: Optional[AppConfig] = None,
    ) -> None:
        self.availability = availability
        self.engine = engine
        self.store = store
        self.notifier = notifier
        self.settings = settings or default_settings
        self._session_locks = KeyedLocks()

    async def process_message(
        self,
        text: str,
        session_id: Optional[str] = None,
        context: Optional[ConversationContext] = None,
    ) -> ChatResponse:
        """
        Handle one user message.

        A stored session takes precedence over a caller-supplied ``context``;
        an unknown or expired session id starts a fresh conversation.

        Raises:
            MessageValidationError: If the message is empty or too long.
        """
        session_id = session_id or (context.session_id if context else None) or _new_session_id()
        with session_scope(session_id):
            return await self._process_turn(text, session_id, context)

    async def _process_turn(
        self, text: str, session_id: str, context: Optional[ConversationContext]
    ) -> ChatResponse:
        async with self._session_locks.hold(session_id):
            current = self.store.get(session_id)
            if current is None:
                if context is not None:
                    current = context.model_copy(update={"session_id": session_id}, deep=True)
                else:
                    current = ConversationContext(session_id=session_id)
                    logger.info("New session started")

            try:
                turn = await self.engine.process_message(current, text)
            except MessageValidationError:
                raise
            except Exception:
                logger.exception("Turn processing failed")
                raise

            updated = turn.context
            feedback: list[str] = []
            results = await self._execute_actions(updated, turn.actions, feedback)
            self.store.put(session_id, updated)

        reply = "\n\n".join([turn.reply] + feedback)
        return ChatResponse(
            reply=reply,
            session_id=session_id,
            context=updated.model_dump(mode="json"),
            actions=results,
        )

    # ------------------------------------------------------------------ #
    # Action execution
    # ------------------------------------------------------------------ #

    async def _execute_actions(
        self,
        context: ConversationContext,
        actions: list[Action],
        feedback: list[str],
    ) -> list[ActionResult]:
        results: list[ActionResult] = []
        booking: Optional[BookingResult] = None
        for action in actions:
            if action.type == ActionType.CREATE_BOOKING:
                booking, result = await self._create_booking(context, action, feedback)
            elif action.type == ActionType.SEND_CONFIRMATION:
                result = await self._send_confirmation(action, booking)
            elif action.type == ActionType.CANCEL_BOOKING:
                result = await self._cancel_booking(context, action, feedback)
            else:
                result = ActionResult(type=action.type.value, status="skipped")
            logger.info("Action %s: %s", result.type, result.status)
            results.append(result)
        return results

    async def _create_booking(
        self, context: ConversationContext, action: Action, feedback: list[str]
    ) -> tuple[BookingResult, ActionResult]:
        request = BookingRequest.model_validate(action.data)
        booking = await self.availability.create_booking(request)
        feedback.append(await self.engine.apply_booking_result(context, booking))

        data: dict = {"date": request.date, "time": request.time}
        if booking.success:
            data.update(event_id=booking.event_id, provider=booking.provider)
            previous = action.data.get("reschedule_event_id")
            if previous:
                cancelled = await self.availability.cancel_booking(previous)
                data["rescheduled_from"] = previous
                if not cancelled.success:
                    logger.warning("Old booking %s was not cancelled after reschedule", previous)
            return booking, ActionResult(type=action.type.value, status="success", data=data)

        error = booking.error
        data["error"] = error.kind.value if error else BookingErrorKind.PROVIDER_FAILURE.value
        if error and error.conflict_ids:
            data["conflict_ids"] = error.conflict_ids
        return booking, ActionResult(type=action.type.value, status="failed", data=data)

    async def _send_confirmation(
        self, action: Action, booking: Optional[BookingResult]
    ) -> ActionResult:
        """Send only after a successful booking. Delivery problems never fail the turn."""
        if booking is None or not booking.success:
            return ActionResult(type=action.type.value, status="skipped")
        request = NotificationRequest(
            channel=NotificationChannel(action.data["channel"]),
            recipient=action.data["recipient"],
            template=NotificationTemplate.BOOKING_CONFIRMATION,
            booking_details={**action.data.get("booking", {}), "event_id": booking.event_id},
        )
        try:
            sent = await self.notifier.send(request)
        except Exception:
            logger.exception("Notifier raised while sending confirmation")
            return ActionResult(type=action.type.value, status="failed")
        if not sent.success:
            return ActionResult(
                type=action.type.value, status="failed", data={"error": sent.error}
            )
        return ActionResult(
            type=action.type.value,
            status="success",
            data={"channel": sent.channel.value, "message_id": sent.message_id},
        )

    async def _cancel_booking(
        self, context: ConversationContext, action: Action, feedback: list[str]
    ) -> ActionResult:
        event_id = action.data["event_id"]
        result = await self.availability.cancel_booking(event_id)
        feedback.append(self.engine.apply_cancellation_result(context, result))
        status = "success" if result.success else "failed"
        return ActionResult(type=action.type.value, status=status, data={"event_id": event_id})

    # ------------------------------------------------------------------ #
    # Direct queries and lifecycle
    # ------------------------------------------------------------------ #

    async def get_available_slots(
        self, day: str, duration: Optional[int] = None
    ) -> list[SlotView]:
        """Free slots for ``day``; unavailable slots are filtered out here.

        Raises:
            ValueError: If the date or duration is invalid.
            ProviderError: If the calendar could not be read.
        """
        result = await self.availability.get_available_slots(day, duration)
        if result.error is not None:
            if result.error.kind == BookingErrorKind.PROVIDER_FAILURE:
                raise ProviderError("calendar", result.error.message)
            raise ValueError(result.error.message)
        return [
            SlotView(start=slot.start, end=slot.end, available=slot.available)
            for slot in result.available_slots
        ]

    def start(self) -> None:
        """Begin background session sweeping. Needs a running event loop."""
        self.store.start_sweeper(self.settings.session.sweep_interval_sec)

    async def close(self) -> None:
        await self.store.stop_sweeper()

    async def __aenter__(self) -> "BookingAssistant":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


def build_assistant(
    settings: Optional[AppConfig] = None,
    complete: Optional[Callable[[str], str]] = None,
) -> BookingAssistant:
    """Wire an assistant from configuration through the component registry.

    ``complete`` is the text-completion callable handed to the ``llm``
    intent classifier; it is ignored by the rule-based classifier.

    Raises:
        ConfigurationError: If a configured component name is unknown, or the
            ``llm`` classifier is selected without a completion callable.
    """
    settings = settings or default_settings
    cal = settings.calendar
    config = CalendarConfig(
        business_hours=settings.business.hours,
        timezone=settings.business.timezone,
        buffer_minutes=cal.buffer_minutes,
        advance_booking_days=cal.advance_booking_days,
        max_booking_days=cal.max_booking_days,
    )

    providers = []
    for name in cal.providers:
        if name == "demo":
            providers.append(registry.create(registry.EVENT_SOURCE, name, timezone=config.timezone))
        else:
            providers.append(registry.create(registry.EVENT_SOURCE, name))
    availability = AvailabilityService(
        config=config,
        providers=providers,
        provider_timeout=cal.provider_timeout_sec,
        slot_interval=cal.slot_interval_minutes,
        default_duration=cal.default_duration_minutes,
    )

    classifier_name = settings.conversation.intent_classifier
    if classifier_name == "llm":
        if complete is None:
            raise ConfigurationError("INTENT_CLASSIFIER=llm needs a completion callable")
        classifier = registry.create(registry.INTENT_CLASSIFIER, classifier_name, complete=complete)
    else:
        classifier = registry.create(registry.INTENT_CLASSIFIER, classifier_name)

    engine = ConversationEngine(classifier, availability, settings=settings)
    store = InMemorySessionStore(
        absolute_ttl=timedelta(hours=settings.session.ttl_hours),
        inactivity_ttl=timedelta(hours=settings.session.max_inactive_hours),
    )
    notifier = registry.create(registry.NOTIFIER, settings.conversation.notifier)
    logger.info(
        "Assistant ready: providers=%s classifier=%s notifier=%s",
        [p.name for p in providers], classifier_name, settings.conversation.notifier,
    )
    return BookingAssistant(availability, engine, store, notifier, settings=settings)
