"""Tests for the precedence-ordered classifier and its tables."""

import pytest

from voyagerscope.classify.categories import Category, MatchedBy
from voyagerscope.classify.classifier import Classifier, classify_by_shape, extract_query_id
from voyagerscope.classify.tables import ClassifierTables, load_tables, save_tables
from voyagerscope.errors import TablesError

from conftest import FEED_ADDRESS, MESSAGING_ADDRESS, TRACKING_ADDRESS


class TestQueryId:
    def test_extracts_name_before_hash_suffix(self):
        assert extract_query_id(FEED_ADDRESS) == "voyagerFeedDashMainFeed"

    def test_missing_identifier(self):
        assert extract_query_id("https://www.linkedin.com/voyager/api/me") is None
        assert extract_query_id(None) is None


class TestPrecedence:
    """Identifier beats exclusion beats address beats shape."""

    def test_identifier_match(self, tables, feed_payload):
        result = Classifier(tables).classify(FEED_ADDRESS, feed_payload)
        assert result.category is Category.FEED
        assert result.matched_by is MatchedBy.IDENTIFIER

    def test_identifier_wins_over_exclusion(self, tables):
        address = "https://www.linkedin.com/voyager/api/telemetry/graphql?queryId=voyagerFeedDashMainFeed.1"
        result = Classifier(tables).classify(address, {})
        assert result.matched_by is MatchedBy.IDENTIFIER

    def test_exclusion_is_authoritative_over_shape(self, tables, feed_payload):
        """A data-shaped payload from excluded traffic stays excluded."""
        result = Classifier(tables).classify(TRACKING_ADDRESS, feed_payload)
        assert result.category is Category.EXCLUDED
        assert result.matched_by is MatchedBy.EXCLUSION
        assert result.is_excluded

    def test_address_heuristic(self, tables):
        result = Classifier(tables).classify(MESSAGING_ADDRESS, {})
        assert result.category is Category.MESSAGING
        assert result.matched_by is MatchedBy.ADDRESS_HEURISTIC

    def test_specific_fragment_before_generic(self, tables):
        classifier = Classifier(tables)
        own = classifier.classify("https://www.linkedin.com/voyager/api/identity/profileUpdatesV2?q=x", {})
        assert own.category is Category.AUTHORED_CONTENT
        comments = classifier.classify("https://www.linkedin.com/voyager/api/feed/comments?q=x", {})
        assert comments.category is Category.COMMENTS
        profile = classifier.classify("https://www.linkedin.com/voyager/api/identity/profiles/abc", {})
        assert profile.category is Category.PROFILE

    def test_shape_fallback_without_address(self, tables, feed_payload):
        result = Classifier(tables).classify(None, feed_payload)
        assert result.category is Category.FEED
        assert result.matched_by is MatchedBy.SHAPE_HEURISTIC

    def test_no_signal_is_unclassified(self, tables):
        result = Classifier(tables).classify("https://example.com/unknown", {"hello": "world"})
        assert result.category is Category.UNCLASSIFIED
        assert result.matched_by is None
        assert not result.is_classified

    def test_deterministic(self, tables, feed_payload):
        classifier = Classifier(tables)
        assert classifier.classify(None, feed_payload) == classifier.classify(None, feed_payload)


class TestShape:
    def test_nested_result_key(self):
        payload = {"data": {"data": {"messengerConversationsBySyncToken": {"elements": []}}}}
        assert classify_by_shape(payload) is Category.MESSAGING

    def test_type_tag_priority(self):
        payload = {
            "included": [
                {"$type": "com.linkedin.voyager.dash.identity.profile.Profile"},
                {"$type": "com.linkedin.messenger.Message"},
            ]
        }
        assert classify_by_shape(payload) is Category.MESSAGING

    def test_first_element_fields(self):
        assert classify_by_shape({"elements": [{"firstName": "Ada"}]}) is Category.PROFILE
        assert classify_by_shape({"elements": [{"commentary": {"text": "hi"}}]}) is Category.FEED

    def test_non_mapping(self):
        assert classify_by_shape(["a", "b"]) is None


class TestTables:
    def test_relevance_requires_capture_and_no_exclusion(self, tables):
        assert tables.is_relevant_address(MESSAGING_ADDRESS)
        assert not tables.is_relevant_address(TRACKING_ADDRESS)
        assert not tables.is_relevant_address("https://example.com/api/feed")

    def test_foreign_graphql_endpoint_is_not_captured(self, tables):
        assert not tables.is_capture_address("https://api.example.com/graphql")
        assert not tables.is_capture_address("https://shop.example.org/graphql?query=cart")
        assert tables.is_capture_address("https://www.linkedin.com/voyager/api/graphql?queryId=voyagerFeedDashMainFeed.1")
        assert tables.is_capture_address("https://www.linkedin.com/voyagerMessagingGraphQL/graphql?queryId=m.1")

    def test_missing_file_uses_defaults(self, tmp_path):
        loaded = load_tables(str(tmp_path / "absent.yaml"))
        assert loaded.capture_patterns

    def test_round_trip(self, tmp_path, tables):
        path = tmp_path / "tables.yaml"
        save_tables(tables, str(path))
        assert load_tables(str(path)) == tables

    def test_custom_fragment(self, tmp_path):
        path = tmp_path / "tables.yaml"
        path.write_text("fragments:\n  - fragment: /premium\n    category: analytics\n")
        loaded = load_tables(str(path))
        assert isinstance(loaded, ClassifierTables)
        result = Classifier(loaded).classify("https://x.test/premium/insights", {})
        assert result.category is Category.ANALYTICS

    def test_invalid_file_raises(self, tmp_path):
        path = tmp_path / "tables.yaml"
        path.write_text("identifiers:\n  - pattern: x\n    category: not-a-category\n")
        with pytest.raises(TablesError):
            load_tables(str(path))
