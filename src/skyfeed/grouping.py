"""Timeline grouping - collapse self-reply chains into thread groups."""

from skyfeed.models import ThreadGroupType, dig


def _continues_thread(previous: dict, candidate: dict) -> bool:
    """True when `previous` is a same-author reply directly to `candidate`."""
    author = dig(previous, "post", "author", "did")
    if not author or author != dig(candidate, "post", "author", "did"):
        return False

    parent_uri = dig(previous, "reply", "parent", "uri")
    return bool(parent_uri) and parent_uri == dig(candidate, "post", "uri")


def process_feed(items: list[dict]) -> list[dict]:
    """
    Group a flat timeline into single posts and thread groups.

    Feeds arrive newest first, so a self-thread shows up as a run where
    each item replies to the one after it. Runs are collected greedily from
    left to right and never re-sorted; the output depends only on the order
    the feed was delivered in.

    Args:
        items: feedViewPost dicts ({"post": ..., "reply": {"parent": ...}})

    Returns:
        List of {"type": "threadGroup", "items": [...]} or
        {"type": "post", "item": ...} dicts
    """
    groups: list[dict] = []
    i = 0

    while i < len(items):
        run = [items[i]]
        j = i + 1

        while j < len(items) and _continues_thread(run[-1], items[j]):
            run.append(items[j])
            j += 1

        if len(run) > 1:
            groups.append({"type": ThreadGroupType.THREAD_GROUP.value, "items": run})
            i = j
        else:
            groups.append({"type": ThreadGroupType.POST.value, "item": items[i]})
            i += 1

    return groups
