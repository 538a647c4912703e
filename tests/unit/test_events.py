"""
tests/unit/test_events.py - EventBus and RecentSet tests.
"""

import pytest

from core.constants import EventKind
from ingestion.events import EventBus
from ingestion.recency import RecentSet


class TestEventBus:

    def test_emit_in_subscription_order(self):
        bus = EventBus()
        calls = []
        bus.subscribe(EventKind.NEW_BLOCK, lambda p: calls.append(("a", p)))
        bus.subscribe(EventKind.NEW_BLOCK, lambda p: calls.append(("b", p)))

        assert bus.emit(EventKind.NEW_BLOCK, 1) == 2
        assert calls == [("a", 1), ("b", 1)]

    def test_kinds_are_separate(self):
        bus = EventBus()
        calls = []
        bus.subscribe(EventKind.NEW_TRANSACTION, calls.append)

        bus.emit(EventKind.NEW_BLOCK, 1)

        assert calls == []

    def test_subscribe_by_name(self):
        bus = EventBus()
        bus.subscribe("error", lambda p: None)
        assert bus.listener_count(EventKind.ERROR) == 1

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError):
            EventBus().subscribe("reorg", lambda p: None)

    def test_unsubscribe(self):
        bus = EventBus()
        calls = []
        subscription = bus.subscribe(EventKind.NEW_BLOCK, calls.append)

        assert bus.unsubscribe(subscription) is True
        assert bus.unsubscribe(subscription) is False
        bus.emit(EventKind.NEW_BLOCK, 1)
        assert calls == []

    def test_handler_exception_isolated(self):
        bus = EventBus()
        calls = []

        def broken(payload):
            raise RuntimeError("boom")

        bus.subscribe(EventKind.NEW_BLOCK, broken)
        bus.subscribe(EventKind.NEW_BLOCK, calls.append)

        assert bus.emit(EventKind.NEW_BLOCK, 9) == 1
        assert calls == [9]

    def test_handler_may_unsubscribe_itself(self):
        bus = EventBus()
        calls = []
        holder = {}

        def once(payload):
            calls.append(payload)
            bus.unsubscribe(holder["sub"])

        holder["sub"] = bus.subscribe(EventKind.NEW_BLOCK, once)
        bus.emit(EventKind.NEW_BLOCK, 1)
        bus.emit(EventKind.NEW_BLOCK, 2)

        assert calls == [1]

    def test_clear(self):
        bus = EventBus()
        for kind in EventKind:
            bus.subscribe(kind, lambda p: None)

        bus.clear()

        assert all(bus.listener_count(kind) == 0 for kind in EventKind)


class TestRecentSet:

    def test_add_reports_novelty(self):
        recent = RecentSet(3)
        assert recent.add("a") is True
        assert recent.add("a") is False
        assert "a" in recent

    def test_evicts_oldest(self):
        recent = RecentSet(2)
        for item in ("a", "b", "c"):
            recent.add(item)

        assert list(recent) == ["b", "c"]
        assert len(recent) == 2
        assert "a" not in recent

    def test_evicted_item_is_new_again(self):
        recent = RecentSet(1)
        recent.add(1)
        recent.add(2)
        assert recent.add(1) is True

    def test_invalid_maxlen(self):
        with pytest.raises(ValueError):
            RecentSet(0)
