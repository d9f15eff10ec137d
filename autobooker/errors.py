"""Exception types raised across the host-facing API.

Expected booking failures (policy violations, conflicts, provider outages)
are returned as ``BookingError`` values, not raised. The exceptions here
cover malformed input, bad wiring, and failures inside event sources.
"""


class AutoBookerError(Exception):
    """Base class for all assistant errors."""


class MessageValidationError(AutoBookerError):
    """Raised when an inbound chat message is rejected before processing."""

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class ConfigurationError(AutoBookerError):
    """Raised for invalid wiring, such as an unknown registry name."""


class ProviderError(AutoBookerError):
    """Raised by an event source that cannot serve a request."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
