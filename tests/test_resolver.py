"""Tests for entity resolution from normalized graph payloads."""

from datetime import UTC, datetime

from voyagerscope.classify.categories import Category
from voyagerscope.resolve import resolver as resolver_module
from voyagerscope.resolve.entities import (
    Actor,
    AnalyticsFigure,
    Comment,
    ConnectionKind,
    ConnectionRecord,
    MediaKind,
    Post,
    entity_to_dict,
)
from voyagerscope.resolve.fields import parse_timestamp, picture_url
from voyagerscope.resolve.pool import EntityPool, dig
from voyagerscope.resolve.resolver import EntityResolver, resolve_entities

UPDATE_URN = "urn:li:fsd_update:(urn:li:activity:7001,MAIN_FEED)"


class TestFeed:
    def test_post_with_referenced_author(self, feed_payload):
        entities = resolve_entities(feed_payload, Category.FEED)

        assert len(entities) == 1
        post = entities[0]
        assert isinstance(post, Post)
        assert post.identity == UPDATE_URN
        assert post.author is not None
        assert post.author.name == "Ada Lovelace"
        assert post.author_ref == "urn:li:fsd_profile:ACoAA1"
        assert post.text == "Shipping the engine today #python #release"

    def test_derived_fields(self, feed_payload):
        post = resolve_entities(feed_payload, Category.FEED)[0]

        assert (post.engagement.likes, post.engagement.comments, post.engagement.shares) == (10, 2, 1)
        assert post.engagement_score == 10 + 2 * 3 + 1 * 5
        assert post.media_kind is MediaKind.IMAGE
        assert post.hashtags == ("python", "release")
        assert post.url == f"https://www.linkedin.com/feed/update/{UPDATE_URN}"
        assert post.is_own is False

    def test_missing_reference_leaves_author_absent(self):
        payload = {
            "included": [
                {
                    "$type": "com.linkedin.voyager.dash.feed.Update",
                    "entityUrn": "urn:li:fsd_update:1",
                    "*actor": "urn:li:fsd_profile:missing",
                    "commentary": {"text": "hello"},
                }
            ]
        }
        post = resolve_entities(payload, Category.FEED)[0]
        assert post.author is None
        assert post.author_ref == "urn:li:fsd_profile:missing"
        assert post.engagement.score == 0

    def test_inline_elements_and_duplicates(self):
        element = {
            "urn": "urn:li:activity:1",
            "actor": {"name": {"text": "Grace Hopper"}, "description": {"text": "Admiral"}},
            "commentary": {"text": {"text": "Compilers"}},
            "resharedUpdate": {"commentary": {"text": "original"}},
            "socialDetail": {"totalSocialActivityCounts": {"numLikes": 3}},
            "createdAt": 1700000000000,
        }
        entities = resolve_entities({"elements": [element, dict(element)]}, Category.FEED)

        assert len(entities) == 1
        post = entities[0]
        assert post.author.display_name == "Grace Hopper"
        assert post.author.headline == "Admiral"
        assert post.media_kind is MediaKind.RESHARE
        assert post.engagement.likes == 3
        assert post.published_at == datetime.fromtimestamp(1700000000, tz=UTC)

    def test_records_without_identity_or_text_are_dropped(self):
        payload = {"elements": [{"actor": {"name": "Nobody"}}]}
        assert resolve_entities(payload, Category.FEED) == []

    def test_failing_root_is_skipped(self, monkeypatch):
        original = resolver_module.media_kind

        def flaky(record, pool):
            if record.get("entityUrn") == "urn:li:fsd_update:bad":
                raise TypeError("unexpected content")
            return original(record, pool)

        monkeypatch.setattr(resolver_module, "media_kind", flaky)
        payload = {
            "elements": [
                {"entityUrn": "urn:li:fsd_update:bad", "commentary": {"text": "one"}},
                {"entityUrn": "urn:li:fsd_update:good", "commentary": {"text": "two"}},
            ]
        }
        entities = resolve_entities(payload, Category.FEED)
        assert [post.identity for post in entities] == ["urn:li:fsd_update:good"]

    def test_idempotent(self, feed_payload):
        resolver = EntityResolver()
        first = resolver.resolve(feed_payload, Category.FEED)
        second = resolver.resolve(feed_payload, Category.FEED)
        assert first == second

    def test_nested_data_results(self, feed_payload):
        wrapped = {"data": {"data": feed_payload["data"]}, "included": feed_payload["included"]}
        entities = resolve_entities(wrapped, Category.FEED)
        assert [post.identity for post in entities] == [UPDATE_URN]


class TestAuthoredContent:
    def test_own_posts_join_analytics(self):
        payload = {
            "included": [
                {
                    "$type": "com.linkedin.voyager.dash.feed.Update",
                    "entityUrn": "urn:li:activity:9",
                    "commentary": {"text": "My launch"},
                    "socialDetail": {"totalSocialActivityCounts": {"numLikes": 8, "numComments": 1, "numShares": 1}},
                },
                {
                    "$type": "com.linkedin.voyager.dash.analytics.PostAnalytics",
                    "entityUrn": "urn:li:fsd_postAnalytics:9",
                    "*activity": "urn:li:activity:9",
                    "impressionCount": 500,
                },
            ]
        }
        posts = resolve_entities(payload, Category.AUTHORED_CONTENT)

        assert len(posts) == 1
        post = posts[0]
        assert post.is_own is True
        assert post.impressions == 500
        assert post.engagement_rate == 2.0


class TestComments:
    def test_comment_with_commenter_reference(self):
        payload = {
            "included": [
                {
                    "$type": "com.linkedin.voyager.dash.identity.profile.Profile",
                    "entityUrn": "urn:li:fsd_profile:B",
                    "firstName": "Alan",
                    "lastName": "Turing",
                },
                {
                    "$type": "com.linkedin.voyager.dash.social.Comment",
                    "entityUrn": "urn:li:fsd_comment:(1,urn:li:activity:7001)",
                    "*commenter": "urn:li:fsd_profile:B",
                    "commentary": {"text": "Great post"},
                    "threadUrn": "urn:li:activity:7001",
                    "createdAt": "2024-05-01T12:00:00Z",
                    "numLikes": 4,
                },
            ]
        }
        comments = resolve_entities(payload, Category.COMMENTS)

        assert len(comments) == 1
        comment = comments[0]
        assert isinstance(comment, Comment)
        assert comment.author.name == "Alan Turing"
        assert comment.text == "Great post"
        assert comment.parent_ref == "urn:li:activity:7001"
        assert comment.like_count == 4
        assert comment.created_at == datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def test_social_detail_is_not_a_parent(self):
        payload = {
            "included": [
                {
                    "$type": "com.linkedin.voyager.dash.social.Comment",
                    "entityUrn": "urn:li:fsd_comment:(2,urn:li:activity:7001)",
                    "commentary": {"text": "Agreed"},
                    "*socialDetail": "urn:li:fsd_socialDetail:(urn:li:fsd_comment:2)",
                }
            ]
        }
        comment = resolve_entities(payload, Category.COMMENTS)[0]

        assert comment.text == "Agreed"
        assert comment.parent_ref is None


class TestProfiles:
    def test_profile_with_picture(self):
        payload = {
            "included": [
                {
                    "$type": "com.linkedin.voyager.dash.identity.profile.Profile",
                    "entityUrn": "urn:li:fsd_profile:C",
                    "firstName": "Katherine",
                    "lastName": "Johnson",
                    "headline": "Mathematician",
                    "publicIdentifier": "kjohnson",
                    "profilePicture": {
                        "displayImageReference": {
                            "vectorImage": {
                                "rootUrl": "https://media.licdn.com/dms/image/",
                                "artifacts": [
                                    {"width": 100, "fileIdentifyingUrlPathSegment": "small.jpg"},
                                    {"width": 800, "fileIdentifyingUrlPathSegment": "large.jpg"},
                                ],
                            }
                        }
                    },
                }
            ]
        }
        profiles = resolve_entities(payload, Category.PROFILE)

        assert len(profiles) == 1
        actor = profiles[0]
        assert isinstance(actor, Actor)
        assert actor.name == "Katherine Johnson"
        assert actor.picture_url == "https://media.licdn.com/dms/image/large.jpg"
        assert actor.profile_url == "https://www.linkedin.com/in/kjohnson"

    def test_legacy_vector_image_wrapper(self):
        record = {
            "picture": {
                "com.linkedin.common.VectorImage": {
                    "rootUrl": "https://media.licdn.com/",
                    "artifacts": [{"width": 200, "fileIdentifyingUrlPathSegment": "p.jpg"}],
                }
            }
        }
        assert picture_url(record) == "https://media.licdn.com/p.jpg"


class TestNetwork:
    def test_connections_and_summary(self):
        payload = {
            "elements": [
                {
                    "entityUrn": "urn:li:fsd_connection:1",
                    "*connectedMember": "urn:li:fsd_profile:D",
                    "createdAt": 1600000000000,
                },
                {"entityUrn": "urn:li:fsd_connection:2", "connectedMember": "urn:li:fsd_profile:unknown"},
            ],
            "included": [
                {
                    "$type": "com.linkedin.voyager.dash.identity.profile.Profile",
                    "entityUrn": "urn:li:fsd_profile:D",
                    "firstName": "Edsger",
                    "lastName": "Dijkstra",
                }
            ],
            "paging": {"total": 2},
            "numConnections": 2,
        }
        entities = resolve_entities(payload, Category.NETWORK)

        connections = [e for e in entities if isinstance(e, ConnectionRecord)]
        figures = [e for e in entities if isinstance(e, AnalyticsFigure)]
        assert [c.identity for c in connections] == ["urn:li:fsd_connection:1", "urn:li:fsd_connection:2"]
        assert connections[0].kind is ConnectionKind.CONNECTION
        assert connections[0].member.name == "Edsger Dijkstra"
        assert connections[0].connected_at == datetime.fromtimestamp(1600000000, tz=UTC)
        assert connections[1].member is None
        assert connections[1].member_ref == "urn:li:fsd_profile:unknown"
        assert AnalyticsFigure(metric_name="connections", value=2.0) in figures

    def test_follower_listing_uses_address(self):
        payload = {"elements": [{"entityUrn": "urn:li:fsd_profile:E", "firstName": "Barbara", "lastName": "Liskov"}]}
        entities = resolve_entities(payload, Category.NETWORK, "https://www.linkedin.com/voyager/api/followers")
        assert entities[0].kind is ConnectionKind.FOLLOWER

    def test_follower_listing_includes_pooled_profiles(self):
        payload = {
            "elements": [{"entityUrn": "urn:li:fsd_followerEdge:1", "*follower": "urn:li:fsd_profile:H"}],
            "included": [
                {"entityUrn": "urn:li:fsd_profile:H", "firstName": "Grace", "lastName": "Hopper"},
                {"entityUrn": "urn:li:fsd_profile:I", "firstName": "Alan", "lastName": "Kay"},
            ],
            "followerCount": 2,
        }
        entities = resolve_entities(payload, Category.NETWORK, "https://www.linkedin.com/voyager/api/feed/followers")

        followers = [e for e in entities if isinstance(e, ConnectionRecord)]
        assert [f.identity for f in followers] == ["urn:li:fsd_followerEdge:1", "urn:li:fsd_profile:I"]
        assert {f.kind for f in followers} == {ConnectionKind.FOLLOWER}
        assert [f.member.name for f in followers] == ["Grace Hopper", "Alan Kay"]
        assert AnalyticsFigure(metric_name="followers", value=2.0) in entities


class TestReactions:
    def test_counts_by_post_and_reactors(self):
        payload = {
            "data": {
                "socialDashReactionsByReactionType": {
                    "*elements": ["urn:li:fsd_reaction:(urn:li:fsd_profile:ACoAA1,urn:li:activity:7001,LIKE)"]
                }
            },
            "included": [
                {
                    "$type": "com.linkedin.voyager.dash.identity.profile.Profile",
                    "entityUrn": "urn:li:fsd_profile:ACoAA1",
                    "firstName": "Ada",
                    "lastName": "Lovelace",
                },
                {
                    "$type": "com.linkedin.voyager.dash.social.Reaction",
                    "entityUrn": "urn:li:fsd_reaction:(urn:li:fsd_profile:ACoAA1,urn:li:activity:7001,LIKE)",
                    "reactionType": "LIKE",
                    "*reactor": "urn:li:fsd_profile:ACoAA1",
                },
                {
                    "$type": "com.linkedin.voyager.dash.feed.SocialActivityCounts",
                    "entityUrn": "urn:li:fsd_socialActivityCounts:urn:li:activity:7001",
                    "threadUrn": "urn:li:activity:7001",
                    "reactionTypeCounts": [
                        {"reactionType": "LIKE", "count": 10},
                        {"reactionType": "PRAISE", "count": 3},
                    ],
                },
            ],
        }
        entities = resolve_entities(payload, Category.REACTIONS)

        figures = [e for e in entities if isinstance(e, AnalyticsFigure)]
        assert figures == [
            AnalyticsFigure(metric_name="reactions_like", value=10.0, subject_ref="urn:li:activity:7001"),
            AnalyticsFigure(metric_name="reactions_praise", value=3.0, subject_ref="urn:li:activity:7001"),
        ]
        reactors = [e for e in entities if isinstance(e, Actor)]
        assert len(reactors) == 1
        assert reactors[0].identity == "urn:li:fsd_profile:ACoAA1"
        assert reactors[0].name == "Ada Lovelace"

    def test_counts_for_different_posts_are_kept_apart(self):
        payload = {
            "elements": [
                {"threadUrn": "urn:li:activity:1", "reactionTypeCounts": [{"reactionType": "LIKE", "count": 5}]},
                {"threadUrn": "urn:li:activity:2", "reactionTypeCounts": [{"reactionType": "LIKE", "count": 7}]},
            ]
        }
        figures = resolve_entities(payload, Category.REACTIONS)

        assert [(f.subject_ref, f.value) for f in figures] == [("urn:li:activity:1", 5.0), ("urn:li:activity:2", 7.0)]


class TestInvitations:
    def test_received_and_sent_invitations_with_summary(self):
        payload = {
            "data": {
                "invitationsDashInvitationViewsByReceived": {
                    "*elements": ["urn:li:fsd_invitationView:1"],
                    "numPendingInvitations": 4,
                }
            },
            "included": [
                {
                    "$type": "com.linkedin.voyager.dash.identity.profile.Profile",
                    "entityUrn": "urn:li:fsd_profile:F",
                    "firstName": "Grace",
                    "lastName": "Hopper",
                },
                {
                    "$type": "com.linkedin.voyager.dash.relationships.invitation.InvitationView",
                    "entityUrn": "urn:li:fsd_invitationView:1",
                    "*invitation": "urn:li:fsd_invitation:1",
                },
                {
                    "$type": "com.linkedin.voyager.dash.relationships.invitation.Invitation",
                    "entityUrn": "urn:li:fsd_invitation:1",
                    "*genericInviter": "urn:li:fsd_profile:F",
                    "sentTime": 1700000000000,
                },
                {
                    "$type": "com.linkedin.voyager.dash.relationships.invitation.Invitation",
                    "entityUrn": "urn:li:fsd_invitation:2",
                    "*invitee": "urn:li:fsd_profile:G",
                },
            ],
        }
        entities = resolve_entities(payload, Category.INVITATIONS)

        invitations = [e for e in entities if isinstance(e, ConnectionRecord)]
        assert [(i.identity, i.kind) for i in invitations] == [
            ("urn:li:fsd_invitation:1", ConnectionKind.INVITATION_RECEIVED),
            ("urn:li:fsd_invitation:2", ConnectionKind.INVITATION_SENT),
        ]
        assert invitations[0].member.name == "Grace Hopper"
        assert invitations[0].connected_at == datetime.fromtimestamp(1700000000, tz=UTC)
        assert invitations[1].member is None
        assert invitations[1].member_ref == "urn:li:fsd_profile:G"
        assert [e for e in entities if isinstance(e, AnalyticsFigure)] == [
            AnalyticsFigure(metric_name="pending_invitations", value=4.0)
        ]

    def test_direction_overrides_default(self):
        payload = {"elements": [{"entityUrn": "urn:li:fsd_invitation:3", "direction": "OUTGOING", "invitee": "urn:li:fsd_profile:J"}]}
        invitation = resolve_entities(payload, Category.INVITATIONS)[0]

        assert invitation.kind is ConnectionKind.INVITATION_SENT
        assert invitation.member_ref == "urn:li:fsd_profile:J"


class TestAnalytics:
    def test_cards_and_named_fields(self):
        payload = {
            "elements": [
                {"cardType": "PROFILE_VIEWS", "value": 42, "timeRange": "Past 90 days"},
                {"cardType": "SEARCH_APPEARANCES", "value": "1,204"},
            ],
            "data": {"postImpressions": 900},
        }
        figures = resolve_entities(payload, Category.ANALYTICS)

        assert AnalyticsFigure("profile_views", 42.0, "Past 90 days") in figures
        assert AnalyticsFigure("search_appearances", 1204.0, None) in figures
        assert AnalyticsFigure("post_impressions", 900.0, None) in figures


class TestHelpers:
    def test_other_categories_resolve_nothing(self, messaging_payload):
        assert resolve_entities(messaging_payload, Category.MESSAGING) == []
        assert resolve_entities("not a mapping", Category.FEED) == []

    def test_dig_follows_references(self, feed_payload):
        pool = EntityPool.from_payload(feed_payload)
        update = pool.get(UPDATE_URN)
        assert dig(update, ("socialDetail", "totalSocialActivityCounts", "numLikes"), pool) == 10

    def test_parse_timestamp_variants(self):
        assert parse_timestamp(1700000000) == datetime.fromtimestamp(1700000000, tz=UTC)
        assert parse_timestamp({"time": 1700000000000}) == datetime.fromtimestamp(1700000000, tz=UTC)
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None

    def test_entity_to_dict(self, feed_payload):
        data = entity_to_dict(resolve_entities(feed_payload, Category.FEED)[0])
        assert data["kind"] == "post"
        assert data["media_kind"] == "image"
        assert data["author"]["name"] == "Ada Lovelace"
        assert data["engagement_score"] == 21
