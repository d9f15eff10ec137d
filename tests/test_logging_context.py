"""Tests for session tagging of log records."""

import asyncio
import logging

from autobooker.logging_context import (
    SessionIdFilter,
    get_session_id,
    get_session_logger,
    install_session_filter,
    session_scope,
)


def make_record() -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)


class TestSessionScope:
    def test_scope_sets_and_restores(self):
        assert get_session_id() is None
        with session_scope("sess_a"):
            assert get_session_id() == "sess_a"
            with session_scope("sess_b"):
                assert get_session_id() == "sess_b"
            assert get_session_id() == "sess_a"
        assert get_session_id() is None

    def test_concurrent_tasks_keep_their_own_id(self):
        async def tagged(session_id):
            with session_scope(session_id):
                await asyncio.sleep(0.01)
                return get_session_id()

        async def run():
            return await asyncio.gather(tagged("one"), tagged("two"))

        assert asyncio.run(run()) == ["one", "two"]


class TestSessionIdFilter:
    def test_tag_inside_scope(self):
        record = make_record()
        with session_scope("sess_ab12"):
            SessionIdFilter().filter(record)
        assert record.session_id == "sess_ab12"
        assert record.session_tag == "[sess_ab12] "

    def test_empty_tag_outside_scope(self):
        record = make_record()
        assert SessionIdFilter().filter(record) is True
        assert record.session_id is None
        assert record.session_tag == ""

    def test_logger_filter_attached_once(self):
        first = get_session_logger("autobooker.tests.once")
        second = get_session_logger("autobooker.tests.once")
        assert first is second
        assert sum(isinstance(f, SessionIdFilter) for f in first.filters) == 1

    def test_install_on_handlers(self):
        logger = logging.getLogger("autobooker.tests.handlers")
        handler = logging.StreamHandler()
        logger.addHandler(handler)
        try:
            install_session_filter(logger)
            install_session_filter(logger)
            assert sum(isinstance(f, SessionIdFilter) for f in handler.filters) == 1
        finally:
            logger.removeHandler(handler)
