"""Tests for the URL correlation tracker."""

from voyagerscope.ingest.correlation import CorrelationTracker

from conftest import MESSAGING_ADDRESS, TRACKING_ADDRESS, FakeClock

FEED_UPDATES = "https://www.linkedin.com/voyager/api/feed/updates?q=x"


def _tracker(tables, clock, **kwargs) -> CorrelationTracker:
    return CorrelationTracker(tables.is_relevant_address, 10.0, now_fn=clock, **kwargs)


def test_most_recent_relevant_wins(tables):
    clock = FakeClock()
    tracker = _tracker(tables, clock)
    tracker.record(FEED_UPDATES)
    clock.advance(1.0)
    tracker.record(MESSAGING_ADDRESS)

    assert tracker.most_recent_relevant_address() == MESSAGING_ADDRESS


def test_irrelevant_addresses_are_skipped(tables):
    clock = FakeClock()
    tracker = _tracker(tables, clock)
    tracker.record(MESSAGING_ADDRESS)
    clock.advance(0.5)
    tracker.record(TRACKING_ADDRESS)
    tracker.record("https://static.licdn.com/app.js")

    assert tracker.most_recent_relevant_address() == MESSAGING_ADDRESS


def test_expired_entries_are_ignored(tables):
    clock = FakeClock()
    tracker = _tracker(tables, clock)
    tracker.record(MESSAGING_ADDRESS)
    clock.advance(11.0)

    assert tracker.most_recent_relevant_address() is None


def test_eviction_happens_on_write(tables):
    clock = FakeClock()
    tracker = _tracker(tables, clock)
    tracker.record(MESSAGING_ADDRESS)
    clock.advance(11.0)
    tracker.record(FEED_UPDATES)

    assert len(tracker) == 1


def test_rerecording_refreshes_recency(tables):
    clock = FakeClock()
    tracker = _tracker(tables, clock)
    tracker.record(MESSAGING_ADDRESS)
    clock.advance(1.0)
    tracker.record(FEED_UPDATES)
    clock.advance(1.0)
    tracker.record(MESSAGING_ADDRESS)

    assert tracker.most_recent_relevant_address() == MESSAGING_ADDRESS
    assert len(tracker) == 2


def test_size_is_bounded(tables):
    clock = FakeClock()
    tracker = _tracker(tables, clock, max_records=3)
    for index in range(5):
        tracker.record(f"https://www.linkedin.com/voyager/api/feed/updates?start={index}")
        clock.advance(0.01)

    assert len(tracker) == 3
    assert tracker.most_recent_relevant_address().endswith("start=4")
