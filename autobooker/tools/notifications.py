"""
Notification capability consumed by the host.

The assistant only decides that a confirmation should go out and to whom.
Delivery (Resend, Twilio, WhatsApp) lives behind ``Notifier`` and is not
implemented here; ``RecordingNotifier`` logs and keeps what it was asked
to send, which is enough for the console demo and tests.
"""

import logging
import uuid
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class NotificationChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"


class NotificationTemplate(str, Enum):
    BOOKING_CONFIRMATION = "booking_confirmation"
    BOOKING_CANCELLATION = "booking_cancellation"
    REMINDER = "reminder"


class NotificationRequest(BaseModel):
    channel: NotificationChannel
    recipient: str
    template: NotificationTemplate = NotificationTemplate.BOOKING_CONFIRMATION
    booking_details: dict[str, Any] = Field(default_factory=dict)


class NotificationResult(BaseModel):
    success: bool
    channel: NotificationChannel
    message_id: Optional[str] = None
    error: Optional[str] = None


@runtime_checkable
class Notifier(Protocol):
    async def send(self, request: NotificationRequest) -> NotificationResult:
        ...


class RecordingNotifier:
    """Notifier that records requests instead of delivering them."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[NotificationRequest] = []

    async def send(self, request: NotificationRequest) -> NotificationResult:
        if self.fail:
            logger.warning("Notification to %s via %s failed", request.recipient, request.channel.value)
            return NotificationResult(
                success=False, channel=request.channel, error="delivery disabled"
            )
        self.sent.append(request)
        message_id = f"msg_{uuid.uuid4().hex[:10]}"
        logger.info(
            "Notification %s queued: %s via %s",
            message_id, request.template.value, request.channel.value,
        )
        return NotificationResult(success=True, channel=request.channel, message_id=message_id)

    def reset(self) -> None:
        """Forget recorded notifications. Used by test fixtures for isolation."""
        self.sent.clear()
