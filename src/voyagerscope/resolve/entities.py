"""Domain entities produced by the resolver."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class MediaKind(Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    ARTICLE = "article"
    DOCUMENT = "document"
    CAROUSEL = "carousel"
    RESHARE = "reshare"


class ConnectionKind(Enum):
    CONNECTION = "connection"
    FOLLOWER = "follower"
    FOLLOWING = "following"
    INVITATION_RECEIVED = "invitation-received"
    INVITATION_SENT = "invitation-sent"


@dataclass(frozen=True)
class Actor:
    """A person or organization record; also the Profile entity."""

    identity: str | None
    first_name: str | None = None
    last_name: str | None = None
    display_name: str | None = None
    headline: str | None = None
    picture_url: str | None = None
    public_handle: str | None = None

    @property
    def name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part).strip()
        return full or (self.display_name or "")

    @property
    def profile_url(self) -> str | None:
        if not self.public_handle:
            return None
        return f"https://www.linkedin.com/in/{self.public_handle}"


@dataclass(frozen=True)
class Engagement:
    likes: int = 0
    comments: int = 0
    shares: int = 0

    @property
    def score(self) -> int:
        return self.likes + self.comments * 3 + self.shares * 5

    @property
    def total(self) -> int:
        return self.likes + self.comments + self.shares


@dataclass(frozen=True)
class Post:
    identity: str | None
    author_ref: str | None
    author: Actor | None
    text: str
    engagement: Engagement = field(default_factory=Engagement)
    media_kind: MediaKind = MediaKind.TEXT
    published_at: datetime | None = None
    hashtags: tuple[str, ...] = ()
    is_own: bool = False
    impressions: int | None = None
    engagement_rate: float | None = None

    @property
    def engagement_score(self) -> int:
        return self.engagement.score

    @property
    def url(self) -> str | None:
        if not self.identity:
            return None
        return f"https://www.linkedin.com/feed/update/{self.identity}"


@dataclass(frozen=True)
class Comment:
    identity: str | None
    author_ref: str | None
    author: Actor | None
    text: str
    parent_ref: str | None = None
    like_count: int = 0
    created_at: datetime | None = None


@dataclass(frozen=True)
class ConnectionRecord:
    identity: str | None
    kind: ConnectionKind
    member_ref: str | None
    member: Actor | None = None
    connected_at: datetime | None = None


@dataclass(frozen=True)
class AnalyticsFigure:
    metric_name: str
    value: float
    period_label: str | None = None
    # Post or record the figure belongs to, when it is not account-wide.
    subject_ref: str | None = None


Entity = Post | Comment | Actor | ConnectionRecord | AnalyticsFigure


def entity_kind(entity: Entity) -> str:
    if isinstance(entity, Actor):
        return "profile"
    if isinstance(entity, Post):
        return "post"
    if isinstance(entity, Comment):
        return "comment"
    if isinstance(entity, ConnectionRecord):
        return "connection"
    return "analytics"


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def entity_to_dict(entity: Entity) -> dict[str, Any]:
    """Return a JSON-ready dict including derived fields."""
    data = _jsonable(asdict(entity))
    if isinstance(entity, ConnectionRecord):
        data["relation"] = data.pop("kind")
    data["kind"] = entity_kind(entity)
    if isinstance(entity, Actor):
        data["name"] = entity.name
        data["profile_url"] = entity.profile_url
    elif isinstance(entity, Post):
        data["engagement_score"] = entity.engagement_score
        data["url"] = entity.url
    if isinstance(entity, (Post, Comment)) and entity.author is not None:
        data["author"]["name"] = entity.author.name
    return data
