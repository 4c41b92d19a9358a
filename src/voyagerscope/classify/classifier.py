"""Precedence-ordered payload classification.

Stages, first match wins:
1. Identifier: the per-call ``queryId`` embedded in the address.
2. Exclusion: administrative traffic (telemetry, flags, onboarding). Authoritative.
3. Address heuristic: path fragments, most specific first.
4. Shape heuristic: structural fingerprints of the payload itself.

No signal from any stage yields ``unclassified``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse

from voyagerscope.classify.categories import UNCLASSIFIED, Category, Classification, MatchedBy
from voyagerscope.classify.tables import ClassifierTables

QUERY_ID_RE = re.compile(r"queryId=([A-Za-z0-9_]+)")

# Nested result keys under ``data`` that identify a category on their own.
NESTED_RESULT_KEYS: dict[str, Category] = {
    "feedDashMainFeedByMainFeed": Category.FEED,
    "feedDashRecommendedFeedByRecommendedFeed": Category.FEED,
    "feedDashProfileUpdatesByMemberProfileUpdates": Category.AUTHORED_CONTENT,
    "feedDashMemberActivityFeedByMemberActivityFeed": Category.AUTHORED_CONTENT,
    "messengerConversationsBySyncToken": Category.MESSAGING,
    "messengerConversationsByCategory": Category.MESSAGING,
    "messengerMailboxCounts": Category.MESSAGING,
    "socialDashCommentsBySocialDetail": Category.COMMENTS,
}

# Type-tag keyword -> category, checked against the first pool records.
TYPE_TAG_KEYWORDS: tuple[tuple[tuple[str, ...], Category], ...] = (
    (("feed", "update"), Category.FEED),
    (("message", "conversation"), Category.MESSAGING),
    (("profile", "member"), Category.PROFILE),
    (("comment",), Category.COMMENTS),
    (("connection", "relationship"), Category.NETWORK),
)

TYPE_TAG_KEYS = ("$type", "_type", "$recipeType")
POOL_SAMPLE_SIZE = 20


def extract_query_id(address: str | None) -> str | None:
    """Return the opaque per-call identifier embedded in the address, if any."""
    if not address:
        return None
    match = QUERY_ID_RE.search(address)
    return match.group(1) if match else None


def _address_path(address: str) -> str:
    try:
        path = urlparse(address).path
    except ValueError:
        path = address
    return (path or address).lower()


def type_tag(record: Mapping[str, Any]) -> str:
    for key in TYPE_TAG_KEYS:
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def classify_by_shape(payload: Any) -> Category | None:
    """Fingerprint a payload by its nested structure."""
    if not isinstance(payload, Mapping):
        return None

    for container in (payload.get("data"), _nested_data(payload)):
        if isinstance(container, Mapping):
            for key, category in NESTED_RESULT_KEYS.items():
                if container.get(key):
                    return category

    included = payload.get("included")
    if isinstance(included, list) and included:
        found: set[Category] = set()
        for item in included[:POOL_SAMPLE_SIZE]:
            if not isinstance(item, Mapping):
                continue
            tag = type_tag(item).lower()
            if not tag:
                continue
            for keywords, category in TYPE_TAG_KEYWORDS:
                if any(keyword in tag for keyword in keywords):
                    found.add(category)
        for _keywords, category in TYPE_TAG_KEYWORDS:
            if category in found:
                return category

    elements = payload.get("elements")
    if isinstance(elements, list) and elements and isinstance(elements[0], Mapping):
        first = elements[0]
        if first.get("actor") or first.get("commentary") or first.get("socialDetail"):
            return Category.FEED
        if first.get("conversationParticipants") or first.get("messages"):
            return Category.MESSAGING
        if first.get("firstName") or first.get("lastName") or first.get("headline"):
            return Category.PROFILE

    return None


def _nested_data(payload: Mapping[str, Any]) -> Any:
    data = payload.get("data")
    if isinstance(data, Mapping):
        return data.get("data")
    return None


class Classifier:
    """Map an address and payload to exactly one Classification."""

    def __init__(self, tables: ClassifierTables) -> None:
        self._tables = tables

    @property
    def tables(self) -> ClassifierTables:
        return self._tables

    def classify(self, address: str | None, payload: Any) -> Classification:
        by_identifier = self.classify_by_identifier(address)
        if by_identifier is not None:
            return Classification(category=by_identifier, matched_by=MatchedBy.IDENTIFIER)

        if self._tables.matching_exclusion(address) is not None:
            return Classification(category=Category.EXCLUDED, matched_by=MatchedBy.EXCLUSION)

        by_address = self.classify_by_address(address)
        if by_address is not None:
            return Classification(category=by_address, matched_by=MatchedBy.ADDRESS_HEURISTIC)

        by_shape = classify_by_shape(payload)
        if by_shape is not None:
            return Classification(category=by_shape, matched_by=MatchedBy.SHAPE_HEURISTIC)

        return UNCLASSIFIED

    def classify_by_identifier(self, address: str | None) -> Category | None:
        query_id = extract_query_id(address)
        if not query_id:
            return None
        lowered = query_id.lower()
        for rule in self._tables.identifiers:
            if rule.pattern.lower() in lowered:
                return rule.category
        return None

    def classify_by_address(self, address: str | None) -> Category | None:
        if not address:
            return None
        path = _address_path(address)
        for rule in self._tables.fragments:
            if rule.fragment.lower() in path:
                return rule.category
        return None
