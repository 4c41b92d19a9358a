"""Turn a classified payload into domain entities.

Resolution is a pure function of ``(payload, category, address)``: the same
inputs always produce the same entities. A malformed root record is logged
and skipped; the rest of the payload still resolves.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any

import structlog

from voyagerscope.classify.categories import Category
from voyagerscope.resolve.entities import (
    Actor,
    AnalyticsFigure,
    Comment,
    ConnectionKind,
    ConnectionRecord,
    Entity,
    Post,
)
from voyagerscope.resolve.fields import (
    COMMENT_TEXT_PATHS,
    POST_IDENTITY_PATHS,
    POST_TEXT_PATHS,
    as_count,
    as_number,
    as_text,
    build_actor,
    extract_hashtags,
    first_string,
    first_text,
    first_timestamp,
    media_kind,
    resolve_actor,
    resolve_engagement,
)
from voyagerscope.resolve.pool import (
    EntityPool,
    field,
    record_identity,
    record_type_name,
    reference_key,
)

logger = structlog.get_logger()

POST_TYPE_WORDS = ("Update", "Activity", "Share", "Post", "Commentary")
COMMENT_TYPE_WORDS = ("Comment",)
PROFILE_TYPE_WORDS = ("Profile",)
# Type names containing these are supporting records, never roots.
SUPPORTING_TYPE_WORDS = ("Social", "Counts", "Analytics", "Reaction", "Metadata")

POST_MARKER_KEYS = ("actor", "author", "commentary", "updateMetadata", "resharedUpdate")
COMMENT_MARKER_KEYS = ("commenter", "comment", "commentary", "commentText")
PROFILE_MARKER_KEYS = ("firstName", "lastName")

POST_TIME_KEYS = ("publishedAt", "createdAt", "created", "createdTime", "postedAt")
COMMENT_TIME_KEYS = ("createdAt", "created", "createdTime")
CONNECTION_TIME_KEYS = ("createdAt", "connectedAt", "created")
COMMENT_PARENT_KEYS = ("threadUrn", "parentUrn", "parentCommentUrn", "*activity", "*parentComment")

IMPRESSION_KEYS = ("impressionCount", "numImpressions", "totalImpressions", "views", "numViews")

# Summary counts that appear alongside network listings.
NETWORK_SUMMARY_FIELDS: tuple[tuple[str, str], ...] = (
    ("numConnections", "connections"),
    ("connectionsCount", "connections"),
    ("followerCount", "followers"),
    ("numFollowers", "followers"),
    ("followingCount", "following"),
    ("numFollowing", "following"),
)

INVITATION_SUMMARY_FIELDS: tuple[tuple[str, str], ...] = (
    ("numPendingInvitations", "pending_invitations"),
    ("pendingInvitationsCount", "pending_invitations"),
    ("numSentInvitations", "sent_invitations"),
    ("sentInvitationsCount", "sent_invitations"),
    ("numNewInvitations", "new_invitations"),
)

REACTION_SUBJECT_KEYS = ("threadUrn", "activityUrn", "parentUrn", "*activity", "*thread")
REACTOR_KEYS = ("reactor", "actor", "reactorLockup")
INVITATION_TIME_KEYS = ("sentTime", "createdAt", "created")
INVITER_KEYS = ("inviter", "fromMember", "genericInviter")
INVITEE_KEYS = ("invitee", "toMember")

# Named numeric fields found in analytics payloads.
ANALYTICS_FIELDS: tuple[tuple[str, str], ...] = (
    ("profileViews", "profile_views"),
    ("numProfileViews", "profile_views"),
    ("postImpressions", "post_impressions"),
    ("impressionCount", "impressions"),
    ("uniqueImpressionCount", "unique_impressions"),
    ("membersReached", "members_reached"),
    ("searchAppearances", "search_appearances"),
    ("engagements", "engagements"),
    ("clickCount", "clicks"),
    ("newFollowers", "new_followers"),
    ("followerCount", "followers"),
    ("engagementRate", "engagement_rate"),
)

PERIOD_KEYS = ("periodLabel", "timeRange", "period", "timePeriod", "dateRange")


def _type_matches(record: Any, words: tuple[str, ...]) -> bool:
    name = record_type_name(record)
    if not name or any(word in name for word in SUPPORTING_TYPE_WORDS):
        return False
    return any(word in name for word in words)


def _has_any(record: Mapping[str, Any], keys: tuple[str, ...]) -> bool:
    return any(record.get(key) is not None or record.get(reference_key(key)) is not None for key in keys)


def nested_results(payload: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
    """Result containers under ``data`` or ``data.data`` carrying an element list."""
    data = payload.get("data")
    containers = [data]
    if isinstance(data, Mapping):
        containers.append(data.get("data"))
    for container in containers:
        if not isinstance(container, Mapping):
            continue
        if "elements" in container or reference_key("elements") in container:
            yield container
        for key, value in container.items():
            if key in ("data", "included"):
                continue
            if isinstance(value, Mapping) and ("elements" in value or reference_key("elements") in value):
                yield value


def element_records(payload: Any, pool: EntityPool) -> list[Mapping[str, Any]]:
    """Explicit result elements, inline or referenced, in payload order."""
    if not isinstance(payload, Mapping):
        return []
    sources: list[Any] = [payload.get("elements")]
    for result in nested_results(payload):
        sources.append(result.get("elements"))
        sources.append(result.get(reference_key("elements")))

    records: list[Mapping[str, Any]] = []
    for source in sources:
        if not isinstance(source, list):
            continue
        for item in source:
            resolved = pool.resolve(item) if isinstance(item, str) else item
            if isinstance(resolved, Mapping):
                records.append(resolved)
    return records


class EntityResolver:
    """Route a payload to the extractor for its category."""

    def __init__(self) -> None:
        self._routes: dict[Category, Callable[[Any, EntityPool, str | None], list[Entity]]] = {
            Category.FEED: self._resolve_posts,
            Category.AUTHORED_CONTENT: self._resolve_own_posts,
            Category.COMMENTS: self._resolve_comments,
            Category.REACTIONS: self._resolve_reactions,
            Category.PROFILE: self._resolve_profiles,
            Category.NETWORK: self._resolve_network,
            Category.INVITATIONS: self._resolve_invitations,
            Category.ANALYTICS: self._resolve_analytics,
        }

    def supports(self, category: Category) -> bool:
        return category in self._routes

    def resolve(self, payload: Any, category: Category, address: str | None = None) -> list[Entity]:
        route = self._routes.get(category)
        if route is None or not isinstance(payload, Mapping):
            return []
        pool = EntityPool.from_payload(payload)
        entities = route(payload, pool, address)
        return _unique(entities)

    # Posts

    def _post_roots(self, payload: Mapping[str, Any], pool: EntityPool) -> list[Mapping[str, Any]]:
        elements = [
            record for record in element_records(payload, pool) if _has_any(record, POST_MARKER_KEYS)
        ]
        candidates = [
            record
            for record in pool
            if _type_matches(record, POST_TYPE_WORDS) and _has_any(record, POST_MARKER_KEYS + ("text",))
        ]
        # A post referenced by another post (a reshare, its commentary) is not a root.
        referenced = pool.referenced_identities(candidates, ignore=(reference_key("elements"),))
        pooled = [record for record in candidates if record_identity(record) not in referenced]
        roots = elements + [record for record in pooled if record not in elements]
        if roots:
            return roots
        # Fall back to every identified post-like record.
        return [record for record in pool if _type_matches(record, POST_TYPE_WORDS) and record_identity(record)]

    def _resolve_posts(self, payload: Any, pool: EntityPool, address: str | None) -> list[Entity]:
        return list(self._each_root(self._post_roots(payload, pool), lambda r: self._build_post(r, pool), "post"))

    def _resolve_own_posts(self, payload: Any, pool: EntityPool, address: str | None) -> list[Entity]:
        analytics = self._post_analytics(pool)
        return list(
            self._each_root(
                self._post_roots(payload, pool),
                lambda r: self._build_post(r, pool, own=True, analytics=analytics),
                "post",
            )
        )

    def _post_analytics(self, pool: EntityPool) -> dict[str, Mapping[str, Any]]:
        by_post: dict[str, Mapping[str, Any]] = {}
        for record in pool:
            if "Analytics" not in record_type_name(record) and not _has_any(record, IMPRESSION_KEYS):
                continue
            ref = record.get(reference_key("activity")) or record.get("activityUrn") or record.get("updateUrn")
            if isinstance(ref, str):
                by_post.setdefault(ref, record)
        return by_post

    def _build_post(
        self,
        record: Mapping[str, Any],
        pool: EntityPool,
        *,
        own: bool = False,
        analytics: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> Post | None:
        identity = first_string(record, POST_IDENTITY_PATHS, pool)
        text = first_text(record, POST_TEXT_PATHS, pool)
        if not identity and not text:
            return None
        author_ref, author = resolve_actor(record, pool)
        engagement = resolve_engagement(record, pool)

        impressions: int | None = None
        rate: float | None = None
        if own:
            stats = (analytics or {}).get(identity or "") or field(record, "analytics", pool)
            if isinstance(stats, Mapping):
                impressions = next(
                    (count for count in (as_count(stats.get(key)) for key in IMPRESSION_KEYS) if count is not None),
                    None,
                )
                rate = as_number(stats.get("engagementRate"))
            if rate is None and impressions:
                rate = round(engagement.total / impressions * 100, 2)

        return Post(
            identity=identity,
            author_ref=author_ref,
            author=author,
            text=text,
            engagement=engagement,
            media_kind=media_kind(record, pool),
            published_at=first_timestamp(record, POST_TIME_KEYS),
            hashtags=extract_hashtags(text),
            is_own=own,
            impressions=impressions,
            engagement_rate=rate,
        )

    # Comments

    def _resolve_comments(self, payload: Any, pool: EntityPool, address: str | None) -> list[Entity]:
        elements = [r for r in element_records(payload, pool) if _has_any(r, COMMENT_MARKER_KEYS)]
        pooled = [r for r in pool if _type_matches(r, COMMENT_TYPE_WORDS) and r not in elements]
        return list(self._each_root(elements + pooled, lambda r: self._build_comment(r, pool), "comment"))

    def _build_comment(self, record: Mapping[str, Any], pool: EntityPool) -> Comment | None:
        identity = record_identity(record)
        text = first_text(record, COMMENT_TEXT_PATHS, pool)
        if not identity and not text:
            return None
        author_ref, author = resolve_actor(record, pool, keys=("commenter", "author", "actor"))
        parent_ref = None
        for key in COMMENT_PARENT_KEYS:
            value = record.get(key)
            if isinstance(value, str) and value:
                parent_ref = value
                break
        return Comment(
            identity=identity,
            author_ref=author_ref,
            author=author,
            text=text,
            parent_ref=parent_ref,
            like_count=resolve_engagement(record, pool).likes,
            created_at=first_timestamp(record, COMMENT_TIME_KEYS),
        )

    # Profiles

    def _resolve_profiles(self, payload: Any, pool: EntityPool, address: str | None) -> list[Entity]:
        roots: list[Mapping[str, Any]] = []
        data = payload.get("data")
        for candidate in (payload, data):
            if isinstance(candidate, Mapping) and _has_any(candidate, PROFILE_MARKER_KEYS):
                roots.append(candidate)
        roots.extend(r for r in element_records(payload, pool) if _has_any(r, PROFILE_MARKER_KEYS))
        roots.extend(
            r
            for r in pool
            if (_type_matches(r, PROFILE_TYPE_WORDS) or _has_any(r, PROFILE_MARKER_KEYS)) and r not in roots
        )
        return list(self._each_root(roots, self._build_profile, "profile"))

    def _build_profile(self, record: Mapping[str, Any]) -> Actor | None:
        actor = build_actor(record)
        if not actor.identity and not actor.name:
            return None
        return actor

    # Network

    def _resolve_network(self, payload: Any, pool: EntityPool, address: str | None) -> list[Entity]:
        default_kind = _kind_from_address(address)
        roots = element_records(payload, pool)
        roots.extend(r for r in pool if _type_matches(r, ("Connection", "Follower")) and r not in roots)
        if default_kind is not ConnectionKind.CONNECTION:
            # Follower listings may carry bare profile records in the pool.
            referenced = pool.referenced_identities(roots)
            roots.extend(
                r
                for r in pool
                if _has_any(r, PROFILE_MARKER_KEYS) and r not in roots and record_identity(r) not in referenced
            )
        entities: list[Entity] = list(
            self._each_root(roots, lambda r: self._build_connection(r, pool, default_kind), "connection")
        )
        entities.extend(self._summary_figures(payload, pool, NETWORK_SUMMARY_FIELDS))
        return entities

    def _build_connection(
        self,
        record: Mapping[str, Any],
        pool: EntityPool,
        default_kind: ConnectionKind,
    ) -> ConnectionRecord | None:
        relations = (
            (ConnectionKind.CONNECTION, ("connectedMember", "connectedMemberResolutionResult")),
            (ConnectionKind.FOLLOWER, ("follower",)),
            (ConnectionKind.FOLLOWING, ("followee", "followedEntity", "following")),
        )
        for kind, keys in relations:
            member_ref, member = resolve_actor(record, pool, keys=keys)
            if member_ref or member:
                break
        else:
            if not _has_any(record, PROFILE_MARKER_KEYS):
                return None
            kind = default_kind
            member = build_actor(record)
            member_ref = member.identity

        identity = record_identity(record) or member_ref
        if not identity and not (member and member.name):
            return None
        return ConnectionRecord(
            identity=identity,
            kind=kind,
            member_ref=member_ref,
            member=member,
            connected_at=first_timestamp(record, CONNECTION_TIME_KEYS),
        )

    # Reactions

    def _resolve_reactions(self, payload: Any, pool: EntityPool, address: str | None) -> list[Entity]:
        elements = element_records(payload, pool)
        records = elements + [r for r in pool if r not in elements]
        entities: list[Entity] = []
        for record in records:
            entities.extend(self._reaction_figures(record, pool))
        reactors = [
            r
            for r in records
            if "Reaction" in record_type_name(r) or "Reactor" in record_type_name(r) or _has_any(r, REACTOR_KEYS)
        ]
        entities.extend(self._each_root(reactors, lambda r: self._build_reactor(r, pool), "reactor"))
        return entities

    def _reaction_figures(self, record: Mapping[str, Any], pool: EntityPool) -> list[AnalyticsFigure]:
        subject = _reaction_subject(record)
        counts = field(record, "reactionTypeCounts", pool)
        if isinstance(counts, list):
            subject = subject or record_identity(record)
            items = [item for item in counts if isinstance(item, Mapping)]
        elif record.get("reactionType") and record.get("count") is not None:
            items = [record]
        else:
            return []
        figures: list[AnalyticsFigure] = []
        for item in items:
            reaction = as_text(item.get("reactionType")) or "LIKE"
            value = as_number(item.get("count"))
            if value is not None:
                figures.append(
                    AnalyticsFigure(
                        metric_name=f"reactions_{_metric_name(reaction)}",
                        value=value,
                        subject_ref=subject,
                    )
                )
        return figures

    def _build_reactor(self, record: Mapping[str, Any], pool: EntityPool) -> Actor | None:
        if _has_any(record, PROFILE_MARKER_KEYS):
            return self._build_profile(record)
        _ref, actor = resolve_actor(record, pool, keys=REACTOR_KEYS)
        return actor

    # Invitations

    def _resolve_invitations(self, payload: Any, pool: EntityPool, address: str | None) -> list[Entity]:
        roots: list[tuple[Mapping[str, Any], ConnectionKind]] = []
        elements = element_records(payload, pool)
        for record in elements:
            invitation = field(record, "invitation", pool)
            target = invitation if isinstance(invitation, Mapping) else record
            if isinstance(invitation, Mapping) or _has_any(record, INVITER_KEYS + INVITEE_KEYS):
                roots.append((target, _invitation_kind(target, ConnectionKind.INVITATION_RECEIVED)))
        seen = elements + [target for target, _kind in roots]
        for record in pool:
            name = record_type_name(record)
            if "Invitation" in name and "Summary" not in name and record not in seen:
                roots.append((record, _invitation_kind(record, ConnectionKind.INVITATION_SENT)))

        entities: list[Entity] = []
        for record, kind in roots:
            entities.extend(
                self._each_root([record], lambda r, kind=kind: self._build_invitation(r, pool, kind), "invitation")
            )
        entities.extend(self._summary_figures(payload, pool, INVITATION_SUMMARY_FIELDS))
        return entities

    def _build_invitation(
        self,
        record: Mapping[str, Any],
        pool: EntityPool,
        kind: ConnectionKind,
    ) -> ConnectionRecord | None:
        if kind is ConnectionKind.INVITATION_RECEIVED:
            keys = INVITER_KEYS + INVITEE_KEYS
        else:
            keys = INVITEE_KEYS + INVITER_KEYS
        member_ref, member = resolve_actor(record, pool, keys=keys)
        identity = record_identity(record)
        if not identity and not member_ref and not (member and member.name):
            return None
        return ConnectionRecord(
            identity=identity or member_ref,
            kind=kind,
            member_ref=member_ref,
            member=member,
            connected_at=first_timestamp(record, INVITATION_TIME_KEYS),
        )

    # Analytics

    def _resolve_analytics(self, payload: Any, pool: EntityPool, address: str | None) -> list[Entity]:
        figures: list[Entity] = []
        for record in element_records(payload, pool):
            figure = self._card_figure(record)
            if figure is not None:
                figures.append(figure)
        for record in pool:
            figure = self._card_figure(record)
            if figure is not None:
                figures.append(figure)
        figures.extend(self._summary_figures(payload, pool, ANALYTICS_FIELDS))
        return figures

    def _card_figure(self, record: Mapping[str, Any]) -> AnalyticsFigure | None:
        name = record.get("cardType") or as_text(record.get("metricName")) or as_text(record.get("metric"))
        if not isinstance(name, str) or not name:
            return None
        value = as_number(record.get("value"))
        if value is None:
            value = as_number(record.get("count"))
        if value is None:
            return None
        return AnalyticsFigure(metric_name=_metric_name(name), value=value, period_label=_period_label(record))

    def _summary_figures(
        self,
        payload: Mapping[str, Any],
        pool: EntityPool,
        fields: tuple[tuple[str, str], ...],
    ) -> list[AnalyticsFigure]:
        candidates: list[Any] = [payload, payload.get("data")]
        data = payload.get("data")
        if isinstance(data, Mapping):
            candidates.append(data.get("data"))
        candidates.extend(nested_results(payload))
        candidates.extend(pool)
        figures: list[AnalyticsFigure] = []
        for record in candidates:
            if not isinstance(record, Mapping):
                continue
            period = _period_label(record)
            for key, metric in fields:
                value = as_number(record.get(key))
                if value is not None and not isinstance(record.get(key), str):
                    figures.append(AnalyticsFigure(metric_name=metric, value=value, period_label=period))
        return figures

    def _each_root(
        self,
        roots: list[Mapping[str, Any]],
        build: Callable[[Mapping[str, Any]], Entity | None],
        kind: str,
    ) -> Iterator[Entity]:
        for root in roots:
            try:
                entity = build(root)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "Skipping unresolvable record",
                    kind=kind,
                    identity=record_identity(root),
                    error=str(exc),
                )
                continue
            if entity is not None:
                yield entity


def _kind_from_address(address: str | None) -> ConnectionKind:
    lowered = (address or "").lower()
    if "follower" in lowered:
        return ConnectionKind.FOLLOWER
    if "following" in lowered or "followee" in lowered:
        return ConnectionKind.FOLLOWING
    return ConnectionKind.CONNECTION


def _reaction_subject(record: Mapping[str, Any]) -> str | None:
    for key in REACTION_SUBJECT_KEYS:
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _invitation_kind(record: Mapping[str, Any], default: ConnectionKind) -> ConnectionKind:
    direction = str(record.get("direction") or "").upper()
    if direction in ("INCOMING", "RECEIVED") or record.get("isReceived") or "Received" in record_type_name(record):
        return ConnectionKind.INVITATION_RECEIVED
    if direction in ("OUTGOING", "SENT") or "Sent" in record_type_name(record):
        return ConnectionKind.INVITATION_SENT
    return default


def _metric_name(name: str) -> str:
    out: list[str] = []
    for index, char in enumerate(name.strip()):
        if char.isupper() and index and not name[index - 1].isupper() and name[index - 1] != "_":
            out.append("_")
        out.append("_" if char in " -" else char.lower())
    return "".join(out)


def _period_label(record: Mapping[str, Any]) -> str | None:
    for key in PERIOD_KEYS:
        label = as_text(record.get(key))
        if label:
            return label
    return None


def _entity_key(entity: Entity) -> tuple[Any, ...] | None:
    if isinstance(entity, AnalyticsFigure):
        return ("analytics", entity.metric_name, entity.period_label, entity.subject_ref)
    if entity.identity is None:
        return None
    return (type(entity).__name__, entity.identity)


def _unique(entities: list[Entity]) -> list[Entity]:
    """Drop repeated identities within one pass (first occurrence wins)."""
    seen: set[tuple[Any, ...]] = set()
    unique: list[Entity] = []
    for entity in entities:
        key = _entity_key(entity)
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        unique.append(entity)
    return unique


def resolve_entities(payload: Any, category: Category, address: str | None = None) -> list[Entity]:
    return EntityResolver().resolve(payload, category, address)
