"""Field extraction strategies for graph records.

Each extractor tries an ordered list of candidate locations and takes the
first that yields a value. References are followed through the pool.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from voyagerscope.resolve.entities import Actor, Engagement, MediaKind
from voyagerscope.resolve.pool import EntityPool, dig, field, record_identity, reference_key

HASHTAG_RE = re.compile(r"#(\w+)")

# Epoch values above this are milliseconds.
EPOCH_MS_THRESHOLD = 100_000_000_000

POST_TEXT_PATHS: tuple[tuple[str, ...], ...] = (
    ("commentary", "text"),
    ("commentary", "shareCommentary", "text"),
    ("commentary", "attributedText"),
    ("content", "text"),
    ("updateContent", "text"),
    ("shareText",),
    ("resharedUpdate", "commentary", "text"),
    ("summary",),
    ("title",),
    ("text",),
)

COMMENT_TEXT_PATHS: tuple[tuple[str, ...], ...] = (
    ("comment",),
    ("commentText",),
    ("commentary",),
    ("text",),
    ("message",),
)

POST_IDENTITY_PATHS: tuple[tuple[str, ...], ...] = (
    ("entityUrn",),
    ("activityUrn",),
    ("urn",),
    ("updateMetadata", "urn"),
    ("metadata", "backendUrn"),
    ("objectUrn",),
)

PICTURE_KEYS = ("profilePicture", "picture", "image", "logo")
HEADLINE_KEYS = ("occupation", "headline", "description", "subtitle")
DISPLAY_NAME_KEYS = ("name", "title", "localizedName")
NESTED_ACTOR_REFS = ("miniProfile", "profile", "member", "company")

# (component key suffix, media kind), checked in order.
MEDIA_COMPONENTS: tuple[tuple[str, MediaKind], ...] = (
    ("ArticleComponent", MediaKind.ARTICLE),
    ("ImageComponent", MediaKind.IMAGE),
    ("VideoComponent", MediaKind.VIDEO),
    ("DocumentComponent", MediaKind.DOCUMENT),
    ("CarouselComponent", MediaKind.CAROUSEL),
)

LIKE_KEYS = ("numLikes", "likeCount", "reactionCount")
COMMENT_KEYS = ("numComments", "commentCount")
SHARE_KEYS = ("numShares", "shareCount", "repostCount")


def as_text(value: Any) -> str:
    """Flatten a text node (plain string, ``{"text": ...}`` or a list of them)."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, Mapping):
        if "text" in value:
            return as_text(value["text"])
        return ""
    if isinstance(value, list):
        parts = [as_text(item) for item in value]
        return " ".join(part for part in parts if part)
    return ""


def first_text(record: Any, paths: Sequence[Sequence[str]], pool: EntityPool | None = None) -> str:
    for path in paths:
        text = as_text(dig(record, path, pool))
        if text:
            return text
    return ""


def first_string(record: Any, paths: Sequence[Sequence[str]], pool: EntityPool | None = None) -> str | None:
    for path in paths:
        value = dig(record, path, pool)
        if isinstance(value, str) and value:
            return value
    return None


def as_count(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        return int(value) if value >= 0 else None
    return None


def as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", "").rstrip("%"))
        except ValueError:
            return None
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """Epoch seconds or milliseconds, ISO-8601 text, or a ``{"time": ...}`` node, as UTC."""
    if isinstance(value, Mapping):
        return parse_timestamp(value.get("time"))
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value:
        if value.isdigit():
            return parse_timestamp(int(value))
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    return None


def first_timestamp(record: Any, keys: Sequence[str]) -> datetime | None:
    if not isinstance(record, Mapping):
        return None
    for key in keys:
        parsed = parse_timestamp(record.get(key))
        if parsed is not None:
            return parsed
    return None


def extract_hashtags(text: str) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for tag in HASHTAG_RE.findall(text or ""):
        seen.setdefault(tag, None)
    return tuple(seen)


def _find_vector_image(node: Any, depth: int = 5) -> Mapping[str, Any] | None:
    if depth < 0:
        return None
    if isinstance(node, Mapping):
        if isinstance(node.get("rootUrl"), str) and "artifacts" in node:
            return node
        for value in node.values():
            found = _find_vector_image(value, depth - 1)
            if found is not None:
                return found
    elif isinstance(node, list):
        for item in node:
            found = _find_vector_image(item, depth - 1)
            if found is not None:
                return found
    return None


def picture_url(record: Any) -> str | None:
    """Largest rendition of the first picture found on a record."""
    if not isinstance(record, Mapping):
        return None
    for key in PICTURE_KEYS:
        node = record.get(key)
        if isinstance(node, str) and node.startswith("http"):
            return node
        vector = _find_vector_image(node)
        if vector is None:
            continue
        artifacts = [a for a in vector.get("artifacts") or [] if isinstance(a, Mapping)]
        if artifacts:
            largest = max(artifacts, key=lambda a: as_count(a.get("width")) or 0)
            segment = largest.get("fileIdentifyingUrlPathSegment") or ""
            return f"{vector['rootUrl']}{segment}"
        return vector["rootUrl"]
    for key in ("profilePictureUrl", "pictureUrl", "displayImageUrl"):
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def build_actor(record: Mapping[str, Any], identity: str | None = None) -> Actor:
    display_name = ""
    for key in DISPLAY_NAME_KEYS:
        display_name = as_text(record.get(key))
        if display_name:
            break
    headline = ""
    for key in HEADLINE_KEYS:
        headline = as_text(record.get(key))
        if headline:
            break
    handle = record.get("publicIdentifier") or record.get("vanityName")
    return Actor(
        identity=identity or record_identity(record) or _str_or_none(record.get("backendUrn")),
        first_name=as_text(record.get("firstName")) or None,
        last_name=as_text(record.get("lastName")) or None,
        display_name=display_name or None,
        headline=headline or None,
        picture_url=picture_url(record),
        public_handle=handle if isinstance(handle, str) and handle else None,
    )


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _expand_actor(record: Mapping[str, Any], pool: EntityPool) -> tuple[str | None, Mapping[str, Any]]:
    """Merge an actor component with the profile it points at, if pooled."""
    for key in NESTED_ACTOR_REFS:
        ref = record.get(reference_key(key))
        if isinstance(ref, str):
            target = pool.get(ref)
            if target is not None:
                return ref, {**record, **target}
            return ref, record
        inline = record.get(key)
        if isinstance(inline, Mapping) and ("firstName" in inline or "lastName" in inline):
            return record_identity(inline), {**record, **inline}
    return record_identity(record), record


def resolve_actor(
    record: Any,
    pool: EntityPool,
    keys: Sequence[str] = ("actor", "author"),
) -> tuple[str | None, Actor | None]:
    """Find the actor behind a record: ``(reference, Actor or None)``."""
    if not isinstance(record, Mapping):
        return None, None
    dangling: str | None = None
    for key in keys:
        ref = record.get(reference_key(key))
        if isinstance(ref, str):
            target = pool.get(ref)
            if target is None:
                dangling = dangling or ref
                continue
            _nested_ref, merged = _expand_actor(target, pool)
            return ref, build_actor(merged, identity=ref)
        inline = record.get(key)
        if isinstance(inline, str) and inline:
            target = pool.get(inline)
            if target is not None:
                return inline, build_actor(target, identity=inline)
            dangling = dangling or inline
        elif isinstance(inline, Mapping):
            nested_ref, merged = _expand_actor(inline, pool)
            actor = build_actor(merged, identity=nested_ref)
            if actor.identity or actor.name:
                return actor.identity, actor
    return dangling, None


def resolve_engagement(record: Any, pool: EntityPool) -> Engagement:
    social = field(record, "socialDetail", pool)
    sources: list[Any] = [
        dig(social, ("totalSocialActivityCounts",), pool),
        social,
        dig(record, ("totalSocialActivityCounts",), pool),
        record,
    ]
    likes = _first_count(sources, LIKE_KEYS)
    if likes is None:
        likes = as_count(dig(social, ("likes", "paging", "total"), pool))
    comments = _first_count(sources, COMMENT_KEYS)
    if comments is None:
        comments = as_count(dig(social, ("comments", "paging", "total"), pool))
    shares = _first_count(sources, SHARE_KEYS)
    return Engagement(likes=likes or 0, comments=comments or 0, shares=shares or 0)


def _first_count(sources: Sequence[Any], keys: Sequence[str]) -> int | None:
    for source in sources:
        if not isinstance(source, Mapping):
            continue
        for key in keys:
            count = as_count(source.get(key))
            if count is not None:
                return count
    return None


def media_kind(record: Any, pool: EntityPool) -> MediaKind:
    content = field(record, "content", pool)
    if isinstance(content, Mapping):
        for key in content:
            if not isinstance(key, str):
                continue
            lowered = key.lower()
            for suffix, kind in MEDIA_COMPONENTS:
                if lowered.endswith(suffix.lower()):
                    return kind
    if isinstance(record, Mapping) and (
        record.get("resharedUpdate") is not None or record.get(reference_key("resharedUpdate")) is not None
    ):
        return MediaKind.RESHARE
    return MediaKind.TEXT
