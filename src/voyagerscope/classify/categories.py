"""Classification result types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Category(Enum):
    FEED = "feed"
    AUTHORED_CONTENT = "authored-content"
    COMMENTS = "comments"
    REACTIONS = "reactions"
    MESSAGING = "messaging"
    PROFILE = "profile"
    NETWORK = "network"
    ANALYTICS = "analytics"
    NOTIFICATIONS = "notifications"
    INVITATIONS = "invitations"
    SEARCH = "search"
    JOBS = "jobs"
    ORGANIZATION = "organization"
    LEARNING = "learning"
    EVENTS = "events"
    EXCLUDED = "excluded"
    UNCLASSIFIED = "unclassified"


class MatchedBy(Enum):
    IDENTIFIER = "identifier"
    EXCLUSION = "exclusion"
    ADDRESS_HEURISTIC = "address-heuristic"
    SHAPE_HEURISTIC = "shape-heuristic"


@dataclass(frozen=True)
class Classification:
    category: Category
    matched_by: MatchedBy | None

    @property
    def is_excluded(self) -> bool:
        return self.category is Category.EXCLUDED

    @property
    def is_classified(self) -> bool:
        return self.category not in (Category.EXCLUDED, Category.UNCLASSIFIED)


UNCLASSIFIED = Classification(category=Category.UNCLASSIFIED, matched_by=None)
