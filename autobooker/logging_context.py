"""Per-turn session tagging for log records.

The host enters ``session_scope`` around each chat turn. Records logged
inside the scope carry ``session_id`` and a ready-to-print ``session_tag``
(``"[sess_ab12] "``, empty outside a turn), so concurrent conversations can
be told apart in one log stream.

Usage:
    from autobooker.logging_context import get_session_logger, session_scope

    logger = get_session_logger(__name__)
    with session_scope("sess_ab12"):
        logger.info("Intent book (0.90)")  # [sess_ab12] Intent book (0.90)
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_session_id: ContextVar[Optional[str]] = ContextVar("session_id", default=None)


@contextmanager
def session_scope(session_id: str) -> Iterator[None]:
    """Tag records with ``session_id`` until the block exits."""
    token = _session_id.set(session_id)
    try:
        yield
    finally:
        _session_id.reset(token)


def get_session_id() -> Optional[str]:
    return _session_id.get()


class SessionIdFilter(logging.Filter):
    """Adds ``session_id`` and ``session_tag`` to every record it sees."""

    def filter(self, record: logging.LogRecord) -> bool:
        session_id = _session_id.get()
        record.session_id = session_id  # type: ignore[attr-defined]
        record.session_tag = f"[{session_id}] " if session_id else ""  # type: ignore[attr-defined]
        return True


def install_session_filter(logger: Optional[logging.Logger] = None) -> None:
    """Attach the filter to the handlers of ``logger`` (root by default).

    Handler-level filters also see records from third-party loggers, so a
    format string may use ``%(session_tag)s`` safely.
    """
    for handler in (logger or logging.getLogger()).handlers:
        if not any(isinstance(f, SessionIdFilter) for f in handler.filters):
            handler.addFilter(SessionIdFilter())


def get_session_logger(name: str) -> logging.Logger:
    """Module logger whose records always carry the session fields."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, SessionIdFilter) for f in logger.filters):
        logger.addFilter(SessionIdFilter())
    return logger
