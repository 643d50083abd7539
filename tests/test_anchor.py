"""Tests for restoring the timeline scroll position."""

import shutil
import tempfile
from pathlib import Path

from skyfeed.anchor import (
    LEGACY_URI_KEY,
    TIMESTAMP_KEY,
    AnchorStore,
    find_by_uri,
    find_closest_post,
    find_closest_with_distance,
    resolve_anchor,
)
from skyfeed.models import ScrollAnchorState

NOON_MS = 1705320000000  # 2024-01-15T12:00:00Z


def make_item(uri: str, created_at: str | None) -> dict:
    return {"post": {"uri": uri, "record": {"createdAt": created_at}}}


class TestFindClosestPost:
    """Tests for nearest-timestamp lookup."""

    def test_exact_match(self):
        items = [
            make_item("post1", "2024-01-15T11:00:00Z"),
            make_item("post2", "2024-01-15T12:00:00Z"),
            make_item("post3", "2024-01-15T13:00:00Z"),
        ]
        closest, distance = find_closest_with_distance(items, NOON_MS)
        assert closest["post"]["uri"] == "post2"
        assert distance == 0

    def test_nearest_when_no_exact_match(self):
        items = [
            make_item("post1", "2024-01-15T11:00:00Z"),
            make_item("post2", "2024-01-15T11:55:00Z"),
            make_item("post3", "2024-01-15T13:00:00Z"),
        ]
        closest, distance = find_closest_with_distance(items, NOON_MS)
        assert closest["post"]["uri"] == "post2"
        assert distance == 300000  # 5 minutes

    def test_tie_goes_to_first_item(self):
        items = [
            make_item("post1", "2024-01-15T11:50:00Z"),
            make_item("post2", "2024-01-15T12:10:00Z"),
        ]
        closest, distance = find_closest_with_distance(items, NOON_MS)
        assert closest["post"]["uri"] == "post1"
        assert distance == 600000  # 10 minutes

    def test_tie_order_dependent(self):
        items = [
            make_item("post2", "2024-01-15T12:10:00Z"),
            make_item("post1", "2024-01-15T11:50:00Z"),
        ]
        assert find_closest_post(items, NOON_MS)["post"]["uri"] == "post2"

    def test_empty_items(self):
        assert find_closest_post([], NOON_MS) is None

    def test_invalid_timestamps_never_selected(self):
        items = [
            make_item("bad", "yesterday"),
            make_item("missing", None),
            make_item("good", "2024-01-15T18:00:00Z"),
        ]
        assert find_closest_post(items, NOON_MS)["post"]["uri"] == "good"

    def test_all_invalid_returns_none(self):
        items = [make_item("bad", "yesterday"), make_item("missing", None)]
        assert find_closest_post(items, NOON_MS) is None

    def test_future_and_past_are_symmetric(self):
        items = [
            make_item("past", "2024-01-15T11:00:00Z"),
            make_item("future", "2024-01-15T13:00:00Z"),
        ]
        _, distance = find_closest_with_distance(items, NOON_MS)
        assert distance == 3600000


class TestResolveAnchor:
    """Tests for choosing between timestamp and legacy URI anchors."""

    def setup_method(self):
        self.items = [
            make_item("at://did:plc:a/app.bsky.feed.post/1", "2024-01-15T13:00:00Z"),
            make_item("at://did:plc:a/app.bsky.feed.post/2", "2024-01-15T12:01:00Z"),
            make_item("at://did:plc:a/app.bsky.feed.post/3", "2024-01-15T11:00:00Z"),
        ]

    def test_timestamp_preferred_over_uri(self):
        state = ScrollAnchorState(
            timestamp_ms=NOON_MS,
            legacy_uri="at://did:plc:a/app.bsky.feed.post/3",
        )
        assert resolve_anchor(self.items, state) is self.items[1]

    def test_legacy_uri_fallback(self):
        state = ScrollAnchorState(legacy_uri="at://did:plc:a/app.bsky.feed.post/3")
        assert resolve_anchor(self.items, state) is self.items[2]

    def test_legacy_uri_must_match_exactly(self):
        state = ScrollAnchorState(legacy_uri="at://did:plc:a/app.bsky.feed.post/9")
        assert resolve_anchor(self.items, state) is None

    def test_empty_state(self):
        assert resolve_anchor(self.items, ScrollAnchorState()) is None

    def test_find_by_uri_none(self):
        assert find_by_uri(self.items, None) is None


class TestAnchorStore:
    """Tests for AnchorStore persistence."""

    def setup_method(self):
        """Create a temporary database for each test."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.temp_dir) / "test_session.db"
        self.store = AnchorStore(db_path=self.db_path)

    def teardown_method(self):
        """Clean up temporary files."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_db_initialization(self):
        assert self.db_path.exists()
        assert self.store.load_state().is_empty

    def test_set_and_get(self):
        self.store.set("key", "value")
        assert self.store.get("key") == "value"
        self.store.set("key", "other")
        assert self.store.get("key") == "other"

    def test_get_missing(self):
        assert self.store.get("nothing") is None

    def test_save_post_stores_timestamp(self):
        post = {"uri": "at://x/y/z", "record": {"createdAt": "2024-01-15T12:00:00Z"}}
        assert self.store.save_post(post)
        assert self.store.get(TIMESTAMP_KEY) == str(NOON_MS)
        assert self.store.load_state().timestamp_ms == NOON_MS

    def test_save_post_replaces_legacy_uri(self):
        self.store.set(LEGACY_URI_KEY, "at://did:plc:xyz/app.bsky.feed.post/abc123")
        self.store.save_post({"uri": "at://x/y/z", "record": {"createdAt": "2024-01-15T12:00:00Z"}})
        state = self.store.load_state()
        assert state.timestamp_ms == NOON_MS
        assert state.legacy_uri is None

    def test_save_post_without_timestamp(self):
        assert not self.store.save_post({"uri": "at://x/y/z", "record": {}})
        assert self.store.get(TIMESTAMP_KEY) is None

    def test_legacy_uri_detected(self):
        legacy = "at://did:plc:xyz/app.bsky.feed.post/abc123"
        self.store.set(LEGACY_URI_KEY, legacy)
        state = self.store.load_state()
        assert state.timestamp_ms is None
        assert state.legacy_uri == legacy
        assert not state.is_empty

    def test_invalid_stored_timestamp_ignored(self):
        self.store.set(TIMESTAMP_KEY, "not-a-number")
        assert self.store.load_state().timestamp_ms is None

    def test_clear(self):
        self.store.set(TIMESTAMP_KEY, str(NOON_MS))
        self.store.set(LEGACY_URI_KEY, "at://did:plc:xyz/app.bsky.feed.post/abc123")
        self.store.clear()
        assert self.store.load_state().is_empty

    def test_persists_across_instances(self):
        self.store.set(TIMESTAMP_KEY, str(NOON_MS))
        reopened = AnchorStore(db_path=self.db_path)
        assert reopened.load_state().timestamp_ms == NOON_MS
