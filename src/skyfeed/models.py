"""Data models for SkyFeed."""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# Rich text feature types, matched verbatim against a feature's $type
LINK_FEATURE = "app.bsky.richtext.facet#link"
MENTION_FEATURE = "app.bsky.richtext.facet#mention"

WEB_BASE_URL = "https://bsky.app"

# at://<did>/<collection>/<rkey>
AT_URI_PATTERN = re.compile(r"^at://(did:[a-z0-9]+:[^/]+)/([^/]+)/([^/]+)$", re.IGNORECASE)
FRACTION_PATTERN = re.compile(r"\.(\d+)")
POST_URL_PATTERN = re.compile(
    r"^https?://(?:www\.)?bsky\.app/profile/([^/]+)/post/([^/?#]+)", re.IGNORECASE
)


def dig(data: Any, *keys: str) -> Any:
    """Walk nested dicts, returning None as soon as a key is missing."""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def parse_timestamp_ms(value: str | None) -> float:
    """Parse an ISO-8601 timestamp into epoch milliseconds.

    Returns NaN when the value is missing or unparseable. Timestamps
    without an offset are treated as UTC.
    """
    if not value or not isinstance(value, str):
        return math.nan

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat wants exactly 3 or 6 fractional digits on older Pythons
    text = FRACTION_PATTERN.sub(lambda m: "." + (m.group(1) + "000000")[:6], text, count=1)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return math.nan

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp() * 1000


def format_post_date(created_at: str | None, now: datetime | None = None) -> str:
    """Return a compact relative date: 30m, 3h, 2d, or M/D/YYYY for older posts."""
    post_ms = parse_timestamp_ms(created_at)
    if math.isnan(post_ms):
        return ""

    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    diff_ms = now.timestamp() * 1000 - post_ms
    minutes = math.floor(diff_ms / 60_000)
    hours = math.floor(diff_ms / 3_600_000)
    days = math.floor(diff_ms / 86_400_000)

    if minutes < 60:
        return f"{minutes}m"
    elif hours < 24:
        return f"{hours}h"
    elif days <= 31:
        return f"{days}d"
    else:
        posted = datetime.fromtimestamp(post_ms / 1000, tz=timezone.utc)
        return f"{posted.month}/{posted.day}/{posted.year}"


def parse_post_url(url: str) -> str | None:
    """Convert a bsky.app post permalink into an AT URI.

    AT URIs are passed through unchanged. Returns None for anything else.
    """
    url = url.strip()
    if url.startswith("at://"):
        return url

    match = POST_URL_PATTERN.match(url)
    if not match:
        return None

    actor, rkey = match.groups()
    return f"at://{actor}/app.bsky.feed.post/{rkey}"


def post_web_url(post: dict | None) -> str | None:
    """Build the bsky.app permalink for a post view.

    Returns None when the post has no valid AT URI or no author handle.
    """
    if not post:
        return None

    handle = dig(post, "author", "handle")
    uri = post.get("uri") or ""
    match = AT_URI_PATTERN.match(uri)
    if not handle or not match:
        return None

    rkey = match.group(3)
    return f"{WEB_BASE_URL}/profile/{handle}/post/{rkey}"


class ThreadGroupType(Enum):
    """Display units emitted by the feed grouper."""
    POST = "post"
    THREAD_GROUP = "threadGroup"


@dataclass
class Author:
    """Represents the author of a post."""

    did: str
    handle: str
    display_name: str | None = None

    @property
    def name(self) -> str:
        """Display name, falling back to the handle."""
        return self.display_name or self.handle

    @classmethod
    def from_dict(cls, data: dict | None) -> "Author":
        data = data or {}
        return cls(
            did=data.get("did", ""),
            handle=data.get("handle", ""),
            display_name=data.get("displayName") or None,
        )


@dataclass
class Post:
    """Read-only view over an app.bsky.feed.defs#postView dict."""

    uri: str
    cid: str
    author: Author
    text: str
    created_at: str
    facets: list[dict] = field(default_factory=list)
    like_count: int = 0
    repost_count: int = 0
    reply_count: int = 0
    viewer: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> "Post":
        record = data.get("record") or {}
        return cls(
            uri=data.get("uri", ""),
            cid=data.get("cid", ""),
            author=Author.from_dict(data.get("author")),
            text=record.get("text") or "",
            created_at=record.get("createdAt") or "",
            facets=record.get("facets") or [],
            like_count=data.get("likeCount") or 0,
            repost_count=data.get("repostCount") or 0,
            reply_count=data.get("replyCount") or 0,
            viewer=data.get("viewer") or {},
            raw=data,
        )

    @property
    def web_url(self) -> str | None:
        return post_web_url(self.raw)

    @property
    def is_liked_by_me(self) -> bool:
        return bool(self.viewer.get("like"))

    @property
    def formatted_time(self) -> str:
        """Return human-readable time difference."""
        return format_post_date(self.created_at)


@dataclass
class ScrollAnchorState:
    """Last viewed position in the timeline.

    The timestamp is the primary key; the URI is left over from older
    sessions that stored the viewed post directly.
    """

    timestamp_ms: int | None = None
    legacy_uri: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.timestamp_ms is None and not self.legacy_uri
