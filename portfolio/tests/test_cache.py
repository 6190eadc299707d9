import json
import unittest
from unittest.mock import MagicMock, patch

from redis import exceptions as redis_exceptions

from portfolio.cache import (
    ITEM_KEY_PREFIX,
    LIST_KEY_PREFIX,
    InMemoryCache,
    NullCache,
    RedisCache,
    make_item_key,
    make_list_key,
)


class CacheKeyTests(unittest.TestCase):
    def test_list_key_is_deterministic(self):
        a = make_list_key(page=1, limit=10, featured=True, category="web")
        b = make_list_key(category="web", featured=True, limit=10, page=1)
        self.assertEqual(a, b)
        self.assertTrue(a.startswith(LIST_KEY_PREFIX))

    def test_list_key_differs_per_filter(self):
        base = dict(page=1, limit=10, featured=None, category=None)
        keys = {
            make_list_key(**base),
            make_list_key(**{**base, "page": 2}),
            make_list_key(**{**base, "limit": 20}),
            make_list_key(**{**base, "featured": False}),
            make_list_key(**{**base, "category": "ai"}),
            make_list_key(**base, search="robot"),
        }
        self.assertEqual(len(keys), 6)

    def test_search_whitespace_and_case_do_not_change_key(self):
        self.assertEqual(
            make_list_key(page=1, limit=10, search="  Robot   Arm "),
            make_list_key(page=1, limit=10, search="robot arm"),
        )

    def test_item_key(self):
        self.assertEqual(make_item_key("abc"), f"{ITEM_KEY_PREFIX}abc")


class InMemoryCacheTests(unittest.TestCase):
    def test_set_get_and_expiry(self):
        cache = InMemoryCache()
        with patch("portfolio.cache.time.time", return_value=1000.0):
            cache.set("k", {"a": 1}, ttl=60)
            self.assertEqual(cache.get("k"), {"a": 1})
        with patch("portfolio.cache.time.time", return_value=1060.0):
            self.assertIsNone(cache.get("k"))

    def test_values_are_copies(self):
        cache = InMemoryCache()
        value = {"data": [1, 2]}
        cache.set("k", value)
        value["data"].append(3)
        self.assertEqual(cache.get("k"), {"data": [1, 2]})

    def test_delete_prefix(self):
        cache = InMemoryCache()
        cache.set(f"{LIST_KEY_PREFIX}1", {})
        cache.set(f"{LIST_KEY_PREFIX}2", {})
        cache.set(make_item_key("x"), {})
        cache.delete_prefix(LIST_KEY_PREFIX)
        self.assertEqual(list(cache.entries), [make_item_key("x")])

    def test_null_cache_always_misses(self):
        cache = NullCache()
        self.assertFalse(cache.set("k", {"a": 1}))
        self.assertIsNone(cache.get("k"))
        self.assertFalse(cache.ping())


class RedisCacheTests(unittest.TestCase):
    def setUp(self):
        self.cache = RedisCache(url="redis://localhost:6379/0")
        self.cache.client = MagicMock()

    def test_set_uses_setex_with_ttl(self):
        self.assertTrue(self.cache.set("k", {"a": 1}, ttl=60))
        self.cache.client.setex.assert_called_once_with(
            "k", 60, json.dumps({"a": 1}, separators=(",", ":"))
        )

    def test_zero_ttl_sets_without_expiry(self):
        self.cache.set("k", {"a": 1}, ttl=0)
        self.cache.client.set.assert_called_once()
        self.cache.client.setex.assert_not_called()

    def test_get_decodes_json(self):
        self.cache.client.get.return_value = '{"a": 1}'
        self.assertEqual(self.cache.get("k"), {"a": 1})

    def test_corrupt_payload_is_a_miss(self):
        self.cache.client.get.return_value = "{not json"
        self.assertIsNone(self.cache.get("k"))

    def test_connection_errors_degrade_to_miss(self):
        down = redis_exceptions.ConnectionError("refused")
        self.cache.client.get.side_effect = down
        self.cache.client.setex.side_effect = down
        self.cache.client.delete.side_effect = down
        self.cache.client.scan_iter.side_effect = down
        self.cache.client.ping.side_effect = down

        self.assertIsNone(self.cache.get("k"))
        self.assertFalse(self.cache.set("k", {"a": 1}))
        self.cache.delete("k")
        self.cache.delete_prefix(LIST_KEY_PREFIX)
        self.assertFalse(self.cache.ping())

    def test_unserializable_value_is_not_cached(self):
        self.assertFalse(self.cache.set("k", {"blob": b"bytes"}))
        self.cache.client.setex.assert_not_called()

    def test_delete_prefix_scans_and_deletes(self):
        self.cache.client.scan_iter.return_value = iter(["p:1", "p:2"])
        self.cache.delete_prefix("p:")
        self.cache.client.scan_iter.assert_called_once_with(match="p:*", count=500)
        self.cache.client.delete.assert_called_once_with("p:1", "p:2")

    def test_unconnected_client_is_a_miss(self):
        cache = RedisCache(url="redis://localhost:6379/0")
        self.assertIsNone(cache.get("k"))
        self.assertFalse(cache.set("k", {}))

    @patch("portfolio.cache.redis.Redis.from_url")
    def test_connect_tolerates_unreachable_server(self, mock_from_url):
        client = MagicMock()
        client.ping.side_effect = redis_exceptions.ConnectionError("refused")
        mock_from_url.return_value = client
        cache = RedisCache(url="redis://localhost:6379/0")
        cache.connect()
        self.assertIs(cache.client, client)
        cache.close()
        client.close.assert_called_once()
        self.assertIsNone(cache.client)


if __name__ == "__main__":
    unittest.main()
