"""Tests for listener broadcast."""

from __future__ import annotations

from solguard.broadcast import Broadcaster
from solguard.models import SecurityScanResult


def _report() -> SecurityScanResult:
    return SecurityScanResult(issues=(), overall_score=100, fingerprint="f")


class TestBroadcaster:
    def test_delivers_in_subscription_order(self):
        b = Broadcaster()
        seen = []
        b.subscribe(lambda r: seen.append("first"))
        b.subscribe(lambda r: seen.append("second"))
        b.subscribe(lambda r: seen.append("third"))
        b.publish(_report())
        assert seen == ["first", "second", "third"]

    def test_raising_listener_does_not_stop_others(self):
        b = Broadcaster()
        seen = []

        def boom(report):
            raise RuntimeError("listener bug")

        b.subscribe(boom)
        b.subscribe(seen.append)
        report = _report()
        b.publish(report)
        assert seen == [report]

    def test_publish_none_for_cleared_results(self):
        b = Broadcaster()
        seen = []
        b.subscribe(seen.append)
        b.publish(None)
        assert seen == [None]

    def test_unsubscribe(self):
        b = Broadcaster()
        seen = []
        token = b.subscribe(seen.append)
        assert b.unsubscribe(token) is True
        assert b.unsubscribe(token) is False
        b.publish(_report())
        assert seen == []

    def test_no_leak_after_many_subscriptions(self):
        b = Broadcaster()
        tokens = [b.subscribe(lambda r: None) for _ in range(100)]
        for token in tokens:
            b.unsubscribe(token)
        assert len(b) == 0

    def test_tokens_are_unique(self):
        b = Broadcaster()
        assert b.subscribe(print) != b.subscribe(print)

    def test_clear(self):
        b = Broadcaster()
        b.subscribe(print)
        b.clear()
        assert len(b) == 0
