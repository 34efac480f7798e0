"""
Read-path merge of the runtime cache and a durable store snapshot.
"""

from __future__ import annotations

from typing import Collection, Iterable, Optional

from newsdesk.db import Item, created_at_sort_key

DEFAULT_LIST_LIMIT = 200


def merge_items(
    cached: Iterable[Item],
    durable: Iterable[Item],
    *,
    hidden_ids: Collection[str] = (),
    limit: Optional[int] = DEFAULT_LIST_LIMIT,
) -> list[Item]:
    """
    Return one deduplicated list, newest first.

    Cache items are walked before durable ones, so when both tiers hold the
    same id the cached copy wins. Ties on createdAt keep that walk order.
    """
    seen: set[str] = set()
    merged: list[Item] = []
    for source in (cached, durable):
        for item in source:
            if item.id in seen or item.id in hidden_ids:
                continue
            seen.add(item.id)
            merged.append(item)

    merged.sort(key=created_at_sort_key, reverse=True)
    if limit:
        return merged[:limit]
    return merged
