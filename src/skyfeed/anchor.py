"""Scroll anchor - remember and restore the last viewed timeline position."""

import logging
import math
import sqlite3
from pathlib import Path

from skyfeed.config import CONFIG_DIR, ensure_config_dir
from skyfeed.models import ScrollAnchorState, dig, parse_timestamp_ms

logger = logging.getLogger(__name__)

DB_FILE = CONFIG_DIR / "session.db"

TIMESTAMP_KEY = "last_viewed_post_timestamp"
LEGACY_URI_KEY = "last_viewed_post_uri"


def find_closest_with_distance(items: list[dict], target_ms: float) -> tuple[dict | None, float]:
    """
    Find the feed item whose createdAt is nearest to target_ms.

    The first item at the minimum distance wins. Items with unparseable
    timestamps are never selected.

    Returns:
        (item, distance in ms), or (None, inf) when nothing qualifies
    """
    closest = None
    min_diff = math.inf

    for item in items:
        post_ms = parse_timestamp_ms(dig(item, "post", "record", "createdAt"))
        if math.isnan(post_ms):
            continue

        diff = abs(post_ms - target_ms)
        if diff < min_diff:
            min_diff = diff
            closest = item

        if diff == 0:
            break

    return closest, min_diff


def find_closest_post(items: list[dict], target_ms: float) -> dict | None:
    """Find the feed item nearest to a stored timestamp, or None."""
    closest, _ = find_closest_with_distance(items, target_ms)
    return closest


def find_by_uri(items: list[dict], uri: str | None) -> dict | None:
    """Find the feed item whose post has exactly this URI."""
    if not uri:
        return None
    for item in items:
        if dig(item, "post", "uri") == uri:
            return item
    return None


def resolve_anchor(items: list[dict], state: ScrollAnchorState) -> dict | None:
    """Pick the item to scroll back to.

    A stored timestamp always wins. The legacy URI is only consulted when
    no timestamp was saved.
    """
    if state.timestamp_ms is not None:
        return find_closest_post(items, state.timestamp_ms)
    if state.legacy_uri:
        return find_by_uri(items, state.legacy_uri)
    return None


class AnchorStore:
    """SQLite key-value storage for the scroll anchor."""

    def __init__(self, db_path: Path | None = None):
        ensure_config_dir()
        self.db_path = db_path or DB_FILE
        self._init_db()

    def _init_db(self) -> None:
        """Initialize session_state table if needed."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS session_state (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    def get(self, key: str) -> str | None:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT value FROM session_state WHERE key = ?", (key,)
            ).fetchone()
            return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO session_state (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
            """,
                (key, value),
            )
            conn.commit()

    def delete(self, key: str) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM session_state WHERE key = ?", (key,))
            conn.commit()

    def load_state(self) -> ScrollAnchorState:
        """Read both anchor keys. A non-numeric stored timestamp is ignored."""
        raw_timestamp = self.get(TIMESTAMP_KEY)
        timestamp_ms = None
        if raw_timestamp:
            try:
                timestamp_ms = int(raw_timestamp)
            except ValueError:
                logger.warning("Ignoring invalid stored anchor timestamp %r", raw_timestamp)

        return ScrollAnchorState(
            timestamp_ms=timestamp_ms,
            legacy_uri=self.get(LEGACY_URI_KEY) or None,
        )

    def save_post(self, post: dict) -> bool:
        """Remember a viewed post by its createdAt timestamp.

        Replaces any legacy URI entry. Returns False if the post has no
        usable timestamp.
        """
        post_ms = parse_timestamp_ms(dig(post, "record", "createdAt"))
        if math.isnan(post_ms):
            logger.debug("Not saving anchor for %s: no valid createdAt", post.get("uri"))
            return False

        self.set(TIMESTAMP_KEY, str(int(post_ms)))
        self.delete(LEGACY_URI_KEY)
        return True

    def clear(self) -> None:
        """Forget the anchor (on logout)."""
        self.delete(TIMESTAMP_KEY)
        self.delete(LEGACY_URI_KEY)


# Module-level singleton
_anchor_store: AnchorStore | None = None


def get_anchor_store() -> AnchorStore:
    """Get the singleton AnchorStore instance."""
    global _anchor_store
    if _anchor_store is None:
        _anchor_store = AnchorStore()
    return _anchor_store
