"""Thread flattening - turn a getPostThread tree into a linear conversation."""

import math

from skyfeed.models import dig, parse_timestamp_ms


def _reply_sort_key(node: dict) -> tuple[bool, float]:
    # Unparseable timestamps sort after everything else
    ts = parse_timestamp_ms(dig(node, "post", "record", "createdAt"))
    if math.isnan(ts):
        return True, 0.0
    return False, ts


def _ancestor_chain(thread: dict) -> list[dict]:
    """Return the node and its parents, oldest ancestor first."""
    chain = []
    node = thread
    while isinstance(node, dict):
        chain.append(node)
        node = node.get("parent")
    chain.reverse()
    return chain


def _self_replies(node: dict) -> list[dict]:
    """Direct replies by the node's own author, oldest first."""
    post = node.get("post")
    replies = node.get("replies") or []
    if not post or not replies:
        return []

    author = dig(post, "author", "did")
    items = []
    for reply in sorted((r for r in replies if isinstance(r, dict)), key=_reply_sort_key):
        reply_post = reply.get("post")
        if not reply_post or dig(reply_post, "author", "did") != author:
            continue
        items.append({"post": reply_post, "reply": {"parent": post}})
    return items


def flatten_thread(thread: dict | None) -> list[dict]:
    """
    Flatten a thread tree into feed items for display.

    Ancestors come first, then the subject post, then the subject author's
    own direct replies in chronological order. Replies by anyone else are
    left out, and replies to replies are not followed.

    Nodes without a post (not found, blocked) produce no item but the
    walk continues past them. An empty or missing thread gives [].

    Args:
        thread: A threadViewPost dict with optional "parent" and "replies"

    Returns:
        List of {"post": ..., "reply": {"parent": ...}} dicts
    """
    if not thread:
        return []

    items: list[dict] = []
    for node in _ancestor_chain(thread):
        post = node.get("post")
        if post:
            item = {"post": post}
            parent = node.get("parent")
            if parent is not None:
                item["reply"] = {"parent": dig(parent, "post")}
            items.append(item)

        items.extend(_self_replies(node))

    return items


def flatten_thread_response(response: dict | None) -> list[dict]:
    """Flatten a full getPostThread response, which may carry thread: null."""
    return flatten_thread(dig(response, "thread"))
