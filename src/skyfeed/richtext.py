"""Rich text rendering - turn post text and facets into safe HTML."""

import logging
import re

from skyfeed.models import LINK_FEATURE, MENTION_FEATURE, dig

logger = logging.getLogger(__name__)

EXTERNAL_URL_PATTERN = re.compile(r"^(https?:)?//", re.IGNORECASE)

LINK_CLASS = "text-blue-400 hover:underline"
MENTION_CLASS = "text-blue-400 hover:underline cursor-pointer"

LINE_BREAK = "<br>"


def is_external_url(url: str | None) -> bool:
    """True for http(s) and protocol-relative URLs."""
    return isinstance(url, str) and bool(EXTERNAL_URL_PATTERN.match(url))


def escape_html(unsafe: str | None) -> str:
    """Escape the five HTML-significant characters.

    Ampersands go first so the entities added afterwards are not touched.
    Applying this twice double-escapes.
    """
    if not unsafe or not isinstance(unsafe, str):
        return ""
    return (
        unsafe.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#039;")
    )


def _decode(data: bytes) -> str:
    # Facet boundaries can land inside a multi-byte character on bad input
    return data.decode("utf-8", errors="replace")


def _find_feature(features: list | None, feature_type: str) -> dict | None:
    if not isinstance(features, list):
        return None
    for feature in features:
        if isinstance(feature, dict) and feature.get("$type") == feature_type:
            return feature
    return None


def _facet_bounds(facet: dict, cursor: int, length: int) -> tuple[int, int] | None:
    """Clamp a facet's byte range to [cursor, length].

    Returns None when the facet has no usable range: non-numeric offsets,
    or an empty span once clamped (including spans entirely covered by an
    earlier facet).
    """
    try:
        start = int(dig(facet, "index", "byteStart"))
        end = int(dig(facet, "index", "byteEnd"))
    except (TypeError, ValueError, OverflowError):
        return None

    start = min(max(start, cursor), length)
    end = min(max(end, 0), length)
    if end <= start:
        return None
    return start, end


def _sort_key(facet: dict) -> int:
    start = dig(facet, "index", "byteStart")
    try:
        return int(start)
    except (TypeError, ValueError, OverflowError):
        return 0


def _render_facet(facet: dict, facet_text: str) -> str:
    features = facet.get("features")
    link = _find_feature(features, LINK_FEATURE)
    mention = _find_feature(features, MENTION_FEATURE)

    uri = link.get("uri") if link else None
    did = mention.get("did") if mention else None

    if is_external_url(uri):
        return (
            f'<a href="{escape_html(uri)}" target="_blank" '
            f'rel="noopener noreferrer" class="{LINK_CLASS}">{escape_html(facet_text)}</a>'
        )
    elif isinstance(did, str) and did:
        return (
            f'<span class="{MENTION_CLASS}" data-mention-did="{escape_html(did)}" '
            f'role="button" tabindex="0">{escape_html(facet_text)}</span>'
        )
    return escape_html(facet_text)


def render_text_with_links(text: str | None, facets: list[dict] | None = None) -> str:
    """
    Render post text with link and mention facets as HTML.

    Facet offsets index the UTF-8 encoding of the text, so slicing happens
    on bytes and every fragment is decoded and escaped on its own. The
    result is safe to inject directly into a page.

    Args:
        text: The post's record.text
        facets: The post's record.facets (app.bsky.richtext.facet dicts)

    Returns:
        HTML string with newlines turned into <br>
    """
    if not text:
        return ""
    if not facets or not isinstance(facets, list):
        return escape_html(text).replace("\n", LINE_BREAK)

    data = text.encode("utf-8")
    length = len(data)

    # sorted() is stable, so facets sharing a start keep their input order
    sorted_facets = sorted(
        (facet for facet in facets if isinstance(facet, dict)),
        key=_sort_key,
    )

    parts: list[str] = []
    last_byte = 0

    for facet in sorted_facets:
        bounds = _facet_bounds(facet, last_byte, length)
        if bounds is None:
            logger.debug("Skipping unusable facet %r", facet.get("index"))
            continue
        start, end = bounds

        if start > last_byte:
            parts.append(escape_html(_decode(data[last_byte:start])))

        parts.append(_render_facet(facet, _decode(data[start:end])))
        last_byte = end

    if last_byte < length:
        parts.append(escape_html(_decode(data[last_byte:])))

    return "".join(parts).replace("\n", LINE_BREAK)


def render_post_text(post: dict | None) -> str:
    """Render a post view's record text and facets."""
    record = dig(post, "record") or {}
    return render_text_with_links(record.get("text"), record.get("facets"))
