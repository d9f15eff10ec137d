"""Tests for session storage and expiry."""

import asyncio
from datetime import timedelta

from autobooker.conversation.session_store import InMemorySessionStore
from tests.conftest import FakeClock, make_context


class TestSessionStore:
    def test_put_then_get(self, store):
        store.put("s1", make_context("s1"))
        assert store.get("s1").session_id == "s1"
        assert len(store) == 1

    def test_unknown_session(self, store):
        assert store.get("missing") is None

    def test_returned_context_is_a_copy(self, store):
        store.put("s1", make_context("s1"))
        first = store.get("s1")
        first.booking_event_id = "changed"
        assert store.get("s1").booking_event_id is None

    def test_delete(self, store):
        store.put("s1", make_context("s1"))
        assert store.delete("s1") is True
        assert store.delete("s1") is False
        assert store.get("s1") is None


class TestExpiry:
    def test_inactivity_expiry_without_sweep(self, store, clock):
        store.put("s1", make_context("s1"))
        clock.advance(hours=4, minutes=1)
        assert store.get("s1") is None
        assert len(store) == 0

    def test_activity_keeps_session_alive(self, store, clock):
        store.put("s1", make_context("s1"))
        for _ in range(5):
            clock.advance(hours=3)
            store.put("s1", store.get("s1"))
        assert store.get("s1") is not None

    def test_absolute_lifetime_is_kept_across_updates(self, store, clock):
        store.put("s1", make_context("s1"))
        for _ in range(8):
            clock.advance(hours=3)
            context = store.get("s1")
            assert context is not None
            store.put("s1", context)
        # 24h after creation, however active
        clock.advance(hours=1)
        assert store.get("s1") is None

    def test_put_after_expiry_starts_new_lifetime(self, store, clock):
        store.put("s1", make_context("s1"))
        clock.advance(hours=25)
        store.put("s1", make_context("s1"))
        clock.advance(hours=3)
        assert store.get("s1") is not None

    def test_sweep_removes_expired_only(self, store, clock):
        store.put("old", make_context("old"))
        clock.advance(hours=3)
        store.put("fresh", make_context("fresh"))
        clock.advance(hours=2)
        assert store.sweep() == 1
        assert store.get("fresh") is not None
        assert store.get("old") is None

    def test_custom_lifetimes(self):
        clock = FakeClock()
        store = InMemorySessionStore(
            absolute_ttl=timedelta(minutes=30), inactivity_ttl=timedelta(minutes=10), clock=clock
        )
        store.put("s1", make_context("s1"))
        clock.advance(minutes=11)
        assert store.get("s1") is None


class TestSweeper:
    def test_background_sweep(self, store, clock):
        store.put("s1", make_context("s1"))
        clock.advance(hours=5)

        async def run():
            store.start_sweeper(interval=0.01)
            await asyncio.sleep(0.05)
            await store.stop_sweeper()

        asyncio.run(run())
        assert len(store) == 0

    def test_start_is_idempotent(self, store):
        async def run():
            first = store.start_sweeper(interval=10)
            second = store.start_sweeper(interval=10)
            same = first is second
            await store.stop_sweeper()
            return same

        assert asyncio.run(run()) is True

    def test_stop_without_start(self, store):
        asyncio.run(store.stop_sweeper())
