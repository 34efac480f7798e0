"""
Process-lifetime cache of items, used to mask durable write failures.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Optional

from newsdesk.db import Item


class RuntimeCache:
    """
    Mapping of item id -> Item for one running process.

    Items are kept newest-inserted first. Ids whose durable delete could not
    be recorded are remembered as hidden so the merged view keeps them out.
    There is no eviction.
    """

    def __init__(self):
        self._items: "OrderedDict[str, Item]" = OrderedDict()
        self._hidden: set[str] = set()
        self._lock = threading.Lock()

    def insert_front(self, item: Item) -> None:
        with self._lock:
            self._items[item.id] = item
            self._items.move_to_end(item.id, last=False)
            self._hidden.discard(item.id)

    def remove(self, item_id: str) -> Optional[Item]:
        with self._lock:
            return self._items.pop(item_id, None)

    def get(self, item_id: str) -> Optional[Item]:
        with self._lock:
            return self._items.get(item_id)

    def items(self) -> list[Item]:
        with self._lock:
            return list(self._items.values())

    def hide(self, item_id: str) -> None:
        with self._lock:
            self._hidden.add(item_id)

    def hidden_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._hidden)

    def __len__(self) -> int:
        return len(self._items)

    def clear_hidden(self) -> None:
        with self._lock:
            self._hidden.clear()
