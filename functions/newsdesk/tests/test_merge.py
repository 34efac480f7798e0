import unittest

from newsdesk.cache import RuntimeCache
from newsdesk.db import Item
from newsdesk.merge import merge_items


def item(item_id: str, created_at: str, title: str = "") -> Item:
    return Item(id=item_id, title=title or item_id, created_at=created_at)


class MergeItemsTests(unittest.TestCase):
    def test_cache_copy_takes_precedence(self):
        cached = [item("x", "2024-01-01T00:00:00.000Z", "cached")]
        durable = [item("x", "2024-06-01T00:00:00.000Z", "durable")]
        merged = merge_items(cached, durable)
        self.assertEqual(merged, cached)

    def test_sorted_newest_first_without_duplicates(self):
        cached = [item("b", "2024-01-02T00:00:00.000Z")]
        durable = [
            item("a", "2024-01-01T00:00:00.000Z"),
            item("b", "2024-01-02T00:00:00.000Z"),
            item("c", "2024-01-03T00:00:00.000Z"),
        ]
        self.assertEqual([i.id for i in merge_items(cached, durable)], ["c", "b", "a"])

    def test_ties_keep_cache_then_store_order(self):
        same = "2024-01-01T00:00:00.000Z"
        cached = [item("c2", same), item("c1", same)]
        durable = [item("d1", same)]
        self.assertEqual(
            [i.id for i in merge_items(cached, durable)], ["c2", "c1", "d1"]
        )

    def test_mixed_timestamp_formats_sort_together(self):
        durable = [
            Item.from_dict({"id": "old", "title": "t", "createdAt": 1704067200000}),
            item("new", "2024-02-01T00:00:00Z"),
            item("unknown", "not a date"),
        ]
        self.assertEqual(
            [i.id for i in merge_items([], durable)], ["new", "old", "unknown"]
        )

    def test_hidden_ids_and_limit(self):
        durable = [item(str(n), f"2024-01-{n:02d}T00:00:00.000Z") for n in range(1, 10)]
        merged = merge_items([], durable, hidden_ids={"9", "8"}, limit=3)
        self.assertEqual([i.id for i in merged], ["7", "6", "5"])
        self.assertEqual(len(merge_items([], durable, limit=None)), 9)


class RuntimeCacheTests(unittest.TestCase):
    def test_insert_front_and_remove(self):
        cache = RuntimeCache()
        cache.insert_front(item("a", "2024-01-01T00:00:00.000Z"))
        cache.insert_front(item("b", "2024-01-02T00:00:00.000Z"))
        self.assertEqual([i.id for i in cache.items()], ["b", "a"])

        self.assertEqual(cache.remove("a").id, "a")
        self.assertIsNone(cache.remove("a"))
        self.assertEqual(len(cache), 1)

    def test_reinsert_clears_hidden_flag(self):
        cache = RuntimeCache()
        cache.hide("a")
        self.assertIn("a", cache.hidden_ids())
        cache.insert_front(item("a", "2024-01-01T00:00:00.000Z"))
        self.assertNotIn("a", cache.hidden_ids())


if __name__ == "__main__":
    unittest.main()
