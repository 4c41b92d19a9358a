"""Pytest fixtures for VoyagerScope tests."""

from typing import Any

import pytest

from voyagerscope.classify.tables import ClassifierTables, default_tables
from voyagerscope.ingest.events import CaptureEvent, EventBus
from voyagerscope.ingest.pipeline import CapturePipeline

FEED_ADDRESS = "https://www.linkedin.com/voyager/api/graphql?variables=(start:0)&queryId=voyagerFeedDashMainFeed.abc123"
MESSAGING_ADDRESS = "https://www.linkedin.com/voyager/api/messaging/conversations"
TRACKING_ADDRESS = "https://www.linkedin.com/voyager/api/thirdpartyidsync?nc=1"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def tables() -> ClassifierTables:
    return default_tables()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def published() -> list[CaptureEvent]:
    return []


@pytest.fixture
def pipeline(tables: ClassifierTables, clock: FakeClock, published: list[CaptureEvent]) -> CapturePipeline:
    bus = EventBus()
    bus.subscribe(published.append)
    return CapturePipeline(tables, bus=bus, now_fn=clock)


@pytest.fixture
def feed_payload() -> dict[str, Any]:
    """One actor and one update pointing at it through a reference field."""
    return {
        "data": {
            "feedDashMainFeedByMainFeed": {
                "*elements": ["urn:li:fsd_update:(urn:li:activity:7001,MAIN_FEED)"],
                "paging": {"start": 0, "count": 10},
            }
        },
        "included": [
            {
                "$type": "com.linkedin.voyager.dash.identity.profile.Profile",
                "entityUrn": "urn:li:fsd_profile:ACoAA1",
                "firstName": "Ada",
                "lastName": "Lovelace",
                "headline": "Analyst",
                "publicIdentifier": "ada-lovelace",
            },
            {
                "$type": "com.linkedin.voyager.dash.feed.Update",
                "entityUrn": "urn:li:fsd_update:(urn:li:activity:7001,MAIN_FEED)",
                "*actor": "urn:li:fsd_profile:ACoAA1",
                "commentary": {"text": {"text": "Shipping the engine today #python #release"}},
                "*socialDetail": "urn:li:fsd_socialDetail:7001",
                "content": {"imageComponent": {"images": []}},
            },
            {
                "$type": "com.linkedin.voyager.dash.feed.SocialDetail",
                "entityUrn": "urn:li:fsd_socialDetail:7001",
                "*totalSocialActivityCounts": "urn:li:fsd_socialActivityCounts:7001",
            },
            {
                "$type": "com.linkedin.voyager.dash.feed.SocialActivityCounts",
                "entityUrn": "urn:li:fsd_socialActivityCounts:7001",
                "numLikes": 10,
                "numComments": 2,
                "numShares": 1,
            },
        ],
    }


@pytest.fixture
def messaging_payload() -> dict[str, Any]:
    return {
        "data": {"paging": {"count": 1}},
        "included": [
            {
                "$type": "com.linkedin.messenger.Conversation",
                "entityUrn": "urn:li:msg_conversation:1",
                "unreadCount": 2,
            }
        ],
    }
