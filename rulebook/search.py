"""Search index client for rule lookup.

The index is a query-optimized mirror of the record store. It is updated by
explicit, idempotent indexing calls made after a commit and may lag behind the
database in between.
"""

import abc
import copy
import json
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from rulebook.config import Settings, get_settings
from rulebook.logging_config import get_logger

logger = get_logger(__name__)

RULE_INDEX = "rules"
RULE_EXTENSION_INDEX = "rule_extensions"
ACTIVE_RULE_INDEX = "active_rules"

# Global search index client
_search_index: Optional["SearchIndex"] = None


class SearchIndex(abc.ABC):
    """Document store keyed by (index name, document id).

    Every write replaces the whole document.
    """

    @abc.abstractmethod
    async def upsert(self, index: str, doc_id: str, document: dict[str, Any]) -> None:
        """Insert or fully replace a document."""

    @abc.abstractmethod
    async def get(self, index: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Fetch a document, or None."""

    @abc.abstractmethod
    async def delete(self, index: str, doc_id: str) -> bool:
        """Delete a document. Returns True if it existed."""

    @abc.abstractmethod
    async def delete_by(self, index: str, **filters: Any) -> int:
        """Delete every document matching the term filters."""

    @abc.abstractmethod
    async def search(self, index: str, **filters: Any) -> list[dict[str, Any]]:
        """Documents whose fields equal every filter value.

        A filter on a list field matches when the list contains the value.
        """

    @abc.abstractmethod
    async def count(self, index: str) -> int:
        """Number of documents in an index."""

    @abc.abstractmethod
    async def clear(self, index: Optional[str] = None) -> None:
        """Drop one index, or all of them."""

    @property
    def is_shared(self) -> bool:
        """Whether other processes see the documents written here."""
        return False

    async def ping(self) -> None:
        """Fail if the backing store is unreachable."""

    async def close(self) -> None:
        """Release the connection to the backing store."""


class InMemorySearchIndex(SearchIndex):
    """Process-local index used for development and tests."""

    def __init__(self) -> None:
        self._indexes: dict[str, dict[str, dict[str, Any]]] = {}

    async def upsert(self, index: str, doc_id: str, document: dict[str, Any]) -> None:
        self._indexes.setdefault(index, {})[doc_id] = copy.deepcopy(document)

    async def get(self, index: str, doc_id: str) -> Optional[dict[str, Any]]:
        document = self._indexes.get(index, {}).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def delete(self, index: str, doc_id: str) -> bool:
        return self._indexes.get(index, {}).pop(doc_id, None) is not None

    async def delete_by(self, index: str, **filters: Any) -> int:
        documents = self._indexes.get(index, {})
        doomed = [doc_id for doc_id, doc in documents.items() if _matches(doc, filters)]
        for doc_id in doomed:
            del documents[doc_id]
        return len(doomed)

    async def search(self, index: str, **filters: Any) -> list[dict[str, Any]]:
        documents = self._indexes.get(index, {})
        return [
            copy.deepcopy(documents[doc_id])
            for doc_id in sorted(documents)
            if _matches(documents[doc_id], filters)
        ]

    async def count(self, index: str) -> int:
        return len(self._indexes.get(index, {}))

    async def clear(self, index: Optional[str] = None) -> None:
        if index is None:
            self._indexes.clear()
        else:
            self._indexes.pop(index, None)

    async def close(self) -> None:
        self._indexes.clear()


class RedisSearchIndex(SearchIndex):
    """Index shared by every server and CLI process through Redis.

    Each index is one Redis hash under ``<prefix>:<index>`` mapping document
    ids to JSON documents. Term filters are applied client side.
    """

    def __init__(self, client: redis.Redis, prefix: str = "rulebook:index"):
        self._redis = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "rulebook:index") -> "RedisSearchIndex":
        client = redis.from_url(url, encoding="utf-8", decode_responses=True, socket_connect_timeout=5)
        return cls(client, prefix)

    def _key(self, index: str) -> str:
        return f"{self._prefix}:{index}"

    @property
    def is_shared(self) -> bool:
        return True

    async def ping(self) -> None:
        await self._redis.ping()

    async def upsert(self, index: str, doc_id: str, document: dict[str, Any]) -> None:
        await self._redis.hset(self._key(index), doc_id, json.dumps(document, sort_keys=True))

    async def get(self, index: str, doc_id: str) -> Optional[dict[str, Any]]:
        raw = await self._redis.hget(self._key(index), doc_id)
        return json.loads(raw) if raw is not None else None

    async def delete(self, index: str, doc_id: str) -> bool:
        return await self._redis.hdel(self._key(index), doc_id) > 0

    async def delete_by(self, index: str, **filters: Any) -> int:
        documents = await self._load(index)
        doomed = [doc_id for doc_id, doc in documents.items() if _matches(doc, filters)]
        if doomed:
            await self._redis.hdel(self._key(index), *doomed)
        return len(doomed)

    async def search(self, index: str, **filters: Any) -> list[dict[str, Any]]:
        documents = await self._load(index)
        return [documents[doc_id] for doc_id in sorted(documents) if _matches(documents[doc_id], filters)]

    async def count(self, index: str) -> int:
        return await self._redis.hlen(self._key(index))

    async def clear(self, index: Optional[str] = None) -> None:
        if index is not None:
            await self._redis.delete(self._key(index))
            return
        keys = [key async for key in self._redis.scan_iter(match=f"{self._prefix}:*")]
        if keys:
            await self._redis.delete(*keys)

    async def close(self) -> None:
        await self._redis.aclose()

    async def _load(self, index: str) -> dict[str, dict[str, Any]]:
        raw = await self._redis.hgetall(self._key(index))
        return {doc_id: json.loads(value) for doc_id, value in raw.items()}


def _matches(document: dict[str, Any], filters: dict[str, Any]) -> bool:
    for name, expected in filters.items():
        actual = document.get(name)
        if isinstance(actual, (list, tuple, set)):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


def create_search_index(settings: Settings) -> SearchIndex:
    """Redis-backed index when a URL is configured, process-local otherwise."""
    if settings.search_redis_url:
        return RedisSearchIndex.from_url(settings.search_redis_url, settings.search_key_prefix)
    return InMemorySearchIndex()


def get_search_index() -> SearchIndex:
    """Get the global search index client."""
    global _search_index
    if _search_index is None:
        _search_index = create_search_index(get_settings())
    return _search_index


async def init_search_index() -> None:
    """Connect the search index client.

    An unreachable Redis is logged and replaced by a process-local index.
    """
    global _search_index
    index = get_search_index()
    try:
        await index.ping()
    except RedisError as e:
        logger.warning("Search index unreachable, using in-memory index", error=str(e))
        await index.close()
        index = _search_index = InMemorySearchIndex()
    logger.info("Search index initialized", backend=type(index).__name__, shared=index.is_shared)


async def close_search_index() -> None:
    """Release the search index client."""
    global _search_index
    if _search_index is not None:
        await _search_index.close()
        _search_index = None
        logger.info("Search index closed")
