"""Unit tests for the search index backends and the global client."""

import json

import pytest
from unittest.mock import AsyncMock, patch
from redis.exceptions import ConnectionError as RedisConnectionError

import rulebook.search as search
from rulebook.config import Settings
from rulebook.search import InMemorySearchIndex, RedisSearchIndex, create_search_index


class TestInMemorySearchIndex:
    @pytest.mark.asyncio
    async def test_upsert_replaces_document(self):
        index = InMemorySearchIndex()
        await index.upsert("rules", "1", {"key": "java:S1", "tags": ["a"]})
        await index.upsert("rules", "1", {"key": "java:S1"})

        assert await index.get("rules", "1") == {"key": "java:S1"}
        assert await index.count("rules") == 1

    @pytest.mark.asyncio
    async def test_documents_are_copied(self):
        index = InMemorySearchIndex()
        document = {"tags": ["a"]}
        await index.upsert("rules", "1", document)
        document["tags"].append("b")

        fetched = await index.get("rules", "1")
        fetched["tags"].append("c")

        assert (await index.get("rules", "1"))["tags"] == ["a"]

    @pytest.mark.asyncio
    async def test_search_matches_list_membership(self):
        index = InMemorySearchIndex()
        await index.upsert("rules", "1", {"language": "java", "tags": ["a", "b"]})
        await index.upsert("rules", "2", {"language": "java", "tags": ["c"]})
        await index.upsert("rules", "3", {"language": "py", "tags": ["a"]})

        hits = await index.search("rules", language="java", tags="a")

        assert hits == [{"language": "java", "tags": ["a", "b"]}]

    @pytest.mark.asyncio
    async def test_delete_and_delete_by(self):
        index = InMemorySearchIndex()
        await index.upsert("ext", "1|o1", {"rule_id": "1"})
        await index.upsert("ext", "1|o2", {"rule_id": "1"})
        await index.upsert("ext", "2|o1", {"rule_id": "2"})

        assert await index.delete_by("ext", rule_id="1") == 2
        assert await index.delete("ext", "2|o1") is True
        assert await index.delete("ext", "2|o1") is False
        assert await index.count("ext") == 0

    @pytest.mark.asyncio
    async def test_clear(self):
        index = InMemorySearchIndex()
        await index.upsert("a", "1", {})
        await index.upsert("b", "1", {})

        await index.clear("a")
        assert await index.count("a") == 0
        assert await index.count("b") == 1

        await index.clear()
        assert await index.count("b") == 0


class TestSearchIndexLifecycle:
    @pytest.mark.asyncio
    async def test_global_client(self, monkeypatch):
        monkeypatch.setattr(search, "_search_index", None)

        await search.init_search_index()
        first = search.get_search_index()
        assert first is search.get_search_index()

        await search.close_search_index()
        assert search._search_index is None
        assert search.get_search_index() is not first

    @pytest.mark.asyncio
    async def test_unreachable_redis_falls_back_to_memory(self, monkeypatch):
        unreachable = RedisSearchIndex(AsyncMock())
        unreachable._redis.ping.side_effect = RedisConnectionError("refused")
        monkeypatch.setattr(search, "_search_index", unreachable)

        await search.init_search_index()

        assert isinstance(search.get_search_index(), InMemorySearchIndex)
        unreachable._redis.aclose.assert_awaited_once()
        await search.close_search_index()


class TestCreateSearchIndex:
    def test_memory_without_redis_url(self):
        index = create_search_index(Settings())

        assert isinstance(index, InMemorySearchIndex)
        assert index.is_shared is False

    def test_redis_with_url(self):
        with patch("rulebook.search.redis.from_url") as from_url:
            index = create_search_index(
                Settings(search_redis_url="redis://cache:6379/1", search_key_prefix="rb")
            )

        assert isinstance(index, RedisSearchIndex)
        assert index.is_shared is True
        from_url.assert_called_once()
        assert from_url.call_args.args == ("redis://cache:6379/1",)


class TestRedisSearchIndex:
    """Command mapping, checked against a mocked redis client."""

    @pytest.fixture
    def client(self):
        return AsyncMock()

    @pytest.fixture
    def index(self, client):
        return RedisSearchIndex(client, prefix="rb")

    @pytest.mark.asyncio
    async def test_upsert_writes_json_into_index_hash(self, index, client):
        await index.upsert("rules", "r1", {"key": "java:S1", "tags": ["a"]})

        client.hset.assert_awaited_once_with("rb:rules", "r1", json.dumps({"key": "java:S1", "tags": ["a"]}, sort_keys=True))

    @pytest.mark.asyncio
    async def test_get_missing_document(self, index, client):
        client.hget.return_value = None

        assert await index.get("rules", "r1") is None

    @pytest.mark.asyncio
    async def test_search_filters_and_orders_by_id(self, index, client):
        client.hgetall.return_value = {
            "r2": json.dumps({"language": "java", "tags": ["a"]}),
            "r1": json.dumps({"language": "java", "tags": ["a", "b"]}),
            "r3": json.dumps({"language": "py", "tags": ["a"]}),
        }

        found = await index.search("rules", language="java", tags="a")

        assert found == [{"language": "java", "tags": ["a", "b"]}, {"language": "java", "tags": ["a"]}]
        client.hgetall.assert_awaited_once_with("rb:rules")

    @pytest.mark.asyncio
    async def test_delete_by_removes_matching_ids(self, index, client):
        client.hgetall.return_value = {
            "e1": json.dumps({"rule_id": "x"}),
            "e2": json.dumps({"rule_id": "y"}),
            "e3": json.dumps({"rule_id": "x"}),
        }

        assert await index.delete_by("rule_extensions", rule_id="x") == 2
        client.hdel.assert_awaited_once_with("rb:rule_extensions", "e1", "e3")

    @pytest.mark.asyncio
    async def test_delete_by_without_match_sends_nothing(self, index, client):
        client.hgetall.return_value = {}

        assert await index.delete_by("rules", rule_id="x") == 0
        client.hdel.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_reports_existence(self, index, client):
        client.hdel.return_value = 0

        assert await index.delete("rules", "r1") is False

    @pytest.mark.asyncio
    async def test_clear_single_index(self, index, client):
        await index.clear("rules")

        client.delete.assert_awaited_once_with("rb:rules")
