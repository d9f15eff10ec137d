"""
Inbound message guardrails.

Checks run before a message enters the conversation engine:
1. EmptyMessageGuardrail: rejects blank input
2. LengthGuardrail: rejects input over the configured maximum

Composed into a MessageGuardrailPipeline whose ``enforce`` raises
``MessageValidationError`` on the first failed check.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from autobooker.config import settings
from autobooker.errors import MessageValidationError

logger = logging.getLogger(__name__)


@dataclass
class GuardrailResult:
    """Outcome of a single guardrail check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None


class EmptyMessageGuardrail:
    def check(self, text: str) -> GuardrailResult:
        if not text or not text.strip():
            return GuardrailResult(
                passed=False, violation_type="empty", message="Message is empty."
            )
        return GuardrailResult(passed=True)


class LengthGuardrail:
    """Caps message length; the limit counts characters, not bytes."""

    def __init__(self, max_length: Optional[int] = None) -> None:
        self.max_length = max_length or settings.conversation.max_message_length

    def check(self, text: str) -> GuardrailResult:
        if len(text) > self.max_length:
            return GuardrailResult(
                passed=False,
                violation_type="too_long",
                message=f"Message exceeds {self.max_length} characters ({len(text)}).",
            )
        return GuardrailResult(passed=True)


class MessageGuardrailPipeline:
    """Runs every inbound check in order."""

    def __init__(self, max_length: Optional[int] = None) -> None:
        self.empty = EmptyMessageGuardrail()
        self.length = LengthGuardrail(max_length)

    def check(self, text: Optional[str]) -> list[GuardrailResult]:
        """Return the failed checks, empty when the message is acceptable."""
        text = text or ""
        results = [self.empty.check(text), self.length.check(text)]
        return [r for r in results if not r.passed]

    def enforce(self, text: Optional[str]) -> str:
        """Return the stripped message or raise on the first violation.

        Raises:
            MessageValidationError: If the message is empty or too long.
        """
        failures = self.check(text)
        if failures:
            first = failures[0]
            logger.info("Inbound message rejected: %s", first.violation_type)
            raise MessageValidationError(first.violation_type, first.message)
        return text.strip()
