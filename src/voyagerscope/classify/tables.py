"""Classifier tables: the pure-data configuration surface of the classifier."""

from __future__ import annotations

from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, ValidationError

from voyagerscope.classify.categories import Category
from voyagerscope.errors import TablesError


class IdentifierRule(BaseModel):
    pattern: str
    category: Category


class FragmentRule(BaseModel):
    fragment: str
    category: Category


class ClassifierTables(BaseModel):
    capture_patterns: list[str] = Field(default_factory=list)
    identifiers: list[IdentifierRule] = Field(default_factory=list)
    exclusions: list[str] = Field(default_factory=list)
    fragments: list[FragmentRule] = Field(default_factory=list)

    def is_capture_address(self, address: str | None) -> bool:
        """Return True if the address belongs to the observed application's data API."""
        if not address:
            return False
        lowered = address.lower()
        return any(pattern.lower() in lowered for pattern in self.capture_patterns)

    def matching_exclusion(self, address: str | None) -> str | None:
        if not address:
            return None
        lowered = address.lower()
        for substring in self.exclusions:
            if substring.lower() in lowered:
                return substring
        return None

    def is_relevant_address(self, address: str | None) -> bool:
        return self.is_capture_address(address) and self.matching_exclusion(address) is None


def _rules(category: Category, patterns: list[str]) -> list[dict]:
    return [{"pattern": pattern, "category": category.value} for pattern in patterns]


def _fragments(category: Category, fragments: list[str]) -> list[dict]:
    return [{"fragment": fragment, "category": category.value} for fragment in fragments]


DEFAULT_TABLES: dict = {
    "capture_patterns": ["/voyager/api/", "/voyagerMessagingGraphQL/", "/li/track"],
    "identifiers": [
        *_rules(
            Category.AUTHORED_CONTENT,
            ["voyagerFeedDashProfileUpdates", "voyagerFeedDashMemberActivityFeed", "voyagerContentDashPostAnalytics"],
        ),
        *_rules(
            Category.FEED,
            ["voyagerFeedDashMainFeed", "voyagerFeedDashFeedUpdate", "voyagerFeedDashRecommendedFeed"],
        ),
        *_rules(
            Category.COMMENTS,
            ["voyagerSocialDashComments", "voyagerSocialDashReplies", "voyagerSocialDashSocialDetail"],
        ),
        *_rules(
            Category.REACTIONS,
            ["voyagerSocialDashReactions", "voyagerSocialDashReactors", "voyagerSocialDashSocialCounts"],
        ),
        *_rules(Category.MESSAGING, ["messengerMailboxCounts", "messengerConversations", "messengerMessages"]),
        *_rules(
            Category.PROFILE,
            ["voyagerIdentityDashProfiles", "voyagerIdentityDashProfileCards", "voyagerIdentityDashSkills"],
        ),
        *_rules(
            Category.INVITATIONS,
            ["voyagerRelationshipsDashInvitations", "invitationsSummary", "invitationsReceived"],
        ),
        *_rules(Category.NETWORK, ["voyagerRelationshipsDashConnections", "voyagerRelationshipsDashFollowers"]),
        *_rules(
            Category.ANALYTICS,
            ["voyagerCreatorDashAnalytics", "voyagerContentDashAnalytics", "voyagerIdentityDashWvmp"],
        ),
        *_rules(Category.NOTIFICATIONS, ["voyagerNotificationsDash", "notificationCards", "notificationsSeen"]),
        *_rules(Category.SEARCH, ["voyagerSearchDash", "searchBlendedResults", "searchHistory"]),
        *_rules(Category.JOBS, ["voyagerJobsDash", "jobPostings", "jobApplications"]),
        *_rules(Category.ORGANIZATION, ["voyagerOrganizationDash", "companyInsights", "companySuggestions"]),
        *_rules(Category.LEARNING, ["voyagerLearningDash", "learningCourses"]),
        *_rules(Category.EVENTS, ["voyagerEventsDash", "eventDetails"]),
    ],
    # "onboarding" and "experiment" also show up in a few data endpoints; they stay
    # listed because the exclusion result is authoritative.
    "exclusions": [
        "thirdpartyidsync",
        "/li/track",
        "/lix",
        "lixtreatment",
        "featureaccess",
        "onboarding",
        "telemetry",
        "sensortracking",
        "connectivitytracking",
        "/tracking",
        "clientsensor",
        "/psettings",
        "abtest",
        "experiment",
    ],
    # Order matters: more specific fragments first.
    "fragments": [
        *_fragments(
            Category.AUTHORED_CONTENT,
            [
                "/identity/profileupdates",
                "/identity/dash/profileupdates",
                "/memberactivityfeed",
                "/activityfeed",
                "/creatordashboard",
                "/voyagercontentdash",
            ],
        ),
        *_fragments(
            Category.COMMENTS,
            ["/feed/comments", "/voyagersocialdashcomments", "/updatecomments", "/commentsv2", "/comments", "/socialdetail"],
        ),
        *_fragments(Category.REACTIONS, ["/voyagersocialdashreactions", "/reactions"]),
        *_fragments(Category.INVITATIONS, ["/relationships/invitationssummary", "/invitations"]),
        *_fragments(
            Category.NETWORK,
            [
                "/relationships/connections",
                "/relationships/followerssummary",
                "/identity/dash/followers",
                "/followersview",
                "/followingview",
                "/networkinfo",
                "/mynetwork",
                "/relationships",
                "/connections",
                "/followers",
            ],
        ),
        *_fragments(
            Category.ANALYTICS,
            ["/identity/wvmpcards", "/profileanalytics", "/contentanalytics", "/postanalytics", "/analytics", "/wvmp"],
        ),
        *_fragments(Category.MESSAGING, ["/voyagermessaging", "/messaging", "/messenger"]),
        *_fragments(Category.NOTIFICATIONS, ["/notifications"]),
        *_fragments(Category.SEARCH, ["/search/", "/typeahead"]),
        *_fragments(Category.JOBS, ["/jobpostings", "/jobs"]),
        *_fragments(Category.ORGANIZATION, ["/organization", "/company"]),
        *_fragments(Category.LEARNING, ["/learning"]),
        *_fragments(Category.EVENTS, ["/events"]),
        *_fragments(
            Category.FEED,
            ["/feed/updates", "/feed/dash", "/feedupdates", "/voyagerfeeddash", "/contentcreation", "/feed"],
        ),
        *_fragments(
            Category.PROFILE,
            ["/identity/dash/profiles", "/identity/profiles", "/profileview", "/identity", "/profile", "/api/me"],
        ),
    ],
}


def default_tables() -> ClassifierTables:
    return ClassifierTables.model_validate(DEFAULT_TABLES)


def load_tables(path: str | None = None) -> ClassifierTables:
    """Load classifier tables from YAML, falling back to the built-in defaults."""
    if not path:
        return default_tables()
    p = Path(path).expanduser()
    if not p.exists():
        return default_tables()
    try:
        return ClassifierTables.model_validate(yaml.safe_load(p.read_text()) or {})
    except (yaml.YAMLError, ValidationError) as exc:
        raise TablesError(f"Invalid classifier tables in {path}: {exc}") from exc


def save_tables(tables: ClassifierTables, path: str) -> None:
    payload = tables.model_dump(mode="json")
    Path(path).expanduser().write_text(yaml.safe_dump(payload, sort_keys=False))
