"""Tests for post models and timestamp helpers."""

import math
from datetime import datetime, timezone

import pytest

from skyfeed.models import (
    Author,
    Post,
    ScrollAnchorState,
    format_post_date,
    parse_post_url,
    parse_timestamp_ms,
    post_web_url,
)

NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class TestParseTimestamp:
    """Tests for parse_timestamp_ms."""

    def test_utc_z_suffix(self):
        assert parse_timestamp_ms("2024-01-15T12:00:00Z") == 1705320000000

    def test_fractional_seconds(self):
        assert parse_timestamp_ms("2024-01-15T12:00:00.250Z") == 1705320000250

    def test_long_fraction(self):
        assert parse_timestamp_ms("2024-01-15T12:00:00.123456789Z") == pytest.approx(1705320000123.456)

    def test_offset(self):
        assert parse_timestamp_ms("2024-01-15T07:00:00-05:00") == 1705320000000

    def test_naive_is_utc(self):
        assert parse_timestamp_ms("2024-01-15T12:00:00") == 1705320000000

    @pytest.mark.parametrize("value", [None, "", "yesterday", "2024-13-45T99:00:00Z", 12345])
    def test_invalid_is_nan(self, value):
        assert math.isnan(parse_timestamp_ms(value))


class TestFormatPostDate:
    """Tests for format_post_date."""

    def test_minutes(self):
        assert format_post_date("2024-01-15T11:30:00Z", now=NOW) == "30m"

    def test_hours(self):
        assert format_post_date("2024-01-15T09:00:00Z", now=NOW) == "3h"

    def test_days(self):
        assert format_post_date("2024-01-13T12:00:00Z", now=NOW) == "2d"

    def test_exactly_one_day(self):
        assert format_post_date("2024-01-14T12:00:00Z", now=NOW) == "1d"

    def test_older_posts_show_date(self):
        assert format_post_date("2023-11-01T12:00:00Z", now=NOW) == "11/1/2023"

    def test_invalid(self):
        assert format_post_date("garbage", now=NOW) == ""


class TestPostUrls:
    """Tests for converting between AT URIs and bsky.app links."""

    def test_parse_post_url(self):
        url = "https://bsky.app/profile/alice.bsky.social/post/3kabc123"
        assert parse_post_url(url) == "at://alice.bsky.social/app.bsky.feed.post/3kabc123"

    def test_parse_post_url_with_query(self):
        url = "https://bsky.app/profile/did:plc:abc/post/xyz?ref=share"
        assert parse_post_url(url) == "at://did:plc:abc/app.bsky.feed.post/xyz"

    def test_at_uri_passthrough(self):
        uri = "at://did:plc:abc/app.bsky.feed.post/xyz"
        assert parse_post_url(uri) == uri

    def test_parse_post_url_rejects_other_links(self):
        assert parse_post_url("https://example.com/post/1") is None

    def test_post_web_url(self):
        post = {
            "uri": "at://did:plc:abc123/app.bsky.feed.post/xyz789",
            "author": {"handle": "testuser.bsky.social"},
        }
        assert post_web_url(post) == "https://bsky.app/profile/testuser.bsky.social/post/xyz789"

    @pytest.mark.parametrize("uri", [
        "invalid-uri",
        "at://not-a-did/app.bsky.feed.post/xyz789",
        "at://did:plc:abc123",
    ])
    def test_post_web_url_rejects_malformed_uri(self, uri):
        post = {"uri": uri, "author": {"handle": "testuser.bsky.social"}}
        assert post_web_url(post) is None

    def test_post_web_url_requires_author(self):
        assert post_web_url({"uri": "at://did:plc:abc123/app.bsky.feed.post/xyz789"}) is None
        assert post_web_url(None) is None


class TestPost:
    """Tests for Post.from_dict."""

    def test_from_dict(self):
        data = {
            "uri": "at://did:plc:abc/app.bsky.feed.post/xyz",
            "cid": "bafy",
            "author": {"did": "did:plc:abc", "handle": "alice.bsky.social", "displayName": "Alice"},
            "record": {"text": "hello", "createdAt": "2024-01-15T12:00:00Z"},
            "likeCount": 3,
            "viewer": {"like": "at://did:plc:me/app.bsky.feed.like/1"},
        }
        post = Post.from_dict(data)
        assert post.author.name == "Alice"
        assert post.text == "hello"
        assert post.like_count == 3
        assert post.repost_count == 0
        assert post.is_liked_by_me
        assert post.web_url == "https://bsky.app/profile/alice.bsky.social/post/xyz"
        assert post.raw is data

    def test_from_sparse_dict(self):
        post = Post.from_dict({})
        assert post.text == ""
        assert post.facets == []
        assert post.web_url is None

    def test_author_name_falls_back_to_handle(self):
        assert Author.from_dict({"did": "did:plc:x", "handle": "x.bsky.social"}).name == "x.bsky.social"


class TestScrollAnchorState:
    """Tests for ScrollAnchorState."""

    def test_is_empty(self):
        assert ScrollAnchorState().is_empty
        assert not ScrollAnchorState(timestamp_ms=0).is_empty
        assert not ScrollAnchorState(legacy_uri="at://x").is_empty
