# Redis-backed record store

import json
import redis.asyncio as redis
from redis.exceptions import RedisError as RedisClientError, WatchError
from typing import Optional, Dict, Any, Type
from datetime import datetime, timezone

from core.config.settings import Settings
from core.logging import get_database_logger_safe
from core.trading.interfaces import ModelT, RecordStore
from core.utils.exceptions import (
    ConcurrentUpdateError,
    RecordExistsError,
    RecordNotFoundError,
    StoreError,
)


class RedisRecordStore(RecordStore[ModelT]):
    """
    Record store keeping one JSON document per Redis key.

    Provides:
    - Connection management with automatic initialization
    - Namespace-based key generation (``{namespace}:{collection}:{document_id}``)
    - Optimistic concurrency via WATCH/MULTI/EXEC for compare-and-swap
    - Consistent error handling with structured exceptions
    """

    def __init__(self, model_type: Type[ModelT], settings: Settings, redis_client=None):
        super().__init__(model_type)
        self.settings = settings
        self.redis_client = redis_client
        self.namespace = settings.redis.namespace
        self.logger = get_database_logger_safe("redis_record_store")

    async def initialize(self, namespace: str = None):
        """Initialize Redis client connection with optional namespace"""
        try:
            if not self.redis_client:
                self.redis_client = redis.from_url(self.settings.redis.url, decode_responses=True)
            if namespace:
                self.namespace = namespace
        except Exception as e:
            raise StoreError(f"Failed to initialize Redis connection: {e}", operation="initialize")

    def _get_key(self, collection: str, document_id: str) -> str:
        base_key = f"{collection}:{document_id}"
        if self.namespace:
            return f"{self.namespace}:{base_key}"
        return base_key

    async def _client(self):
        if not self.redis_client:
            await self.initialize()
        return self.redis_client

    async def get(self, collection: str, document_id: str) -> Optional[ModelT]:
        key = self._get_key(collection, document_id)
        try:
            client = await self._client()
            raw = await client.get(key)
        except RedisClientError as e:
            raise StoreError(f"Failed to get key {key}: {e}", operation="get",
                             collection=collection, document_id=document_id)
        if raw is None:
            return None
        try:
            return self._load(json.loads(raw))
        except (TypeError, ValueError) as e:
            raise StoreError(f"Failed to deserialize document {key}: {e}", operation="get",
                             collection=collection, document_id=document_id)

    async def create(self, collection: str, document_id: str, record: ModelT) -> None:
        key = self._get_key(collection, document_id)
        payload = json.dumps(self._dump(record, 1))
        try:
            client = await self._client()
            created = await client.set(key, payload, nx=True)
        except RedisClientError as e:
            raise StoreError(f"Failed to create key {key}: {e}", operation="create",
                             collection=collection, document_id=document_id)
        if not created:
            raise RecordExistsError(f"Document {key} already exists",
                                    collection=collection, document_id=document_id)

    async def update(self, collection: str, document_id: str, partial: Dict[str, Any],
                     max_attempts: int = 5) -> None:
        key = self._get_key(collection, document_id)
        try:
            client = await self._client()
            async with client.pipeline(transaction=True) as pipe:
                for _ in range(max_attempts):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            await pipe.unwatch()
                            raise RecordNotFoundError(f"Document {key} does not exist",
                                                      collection=collection, document_id=document_id)
                        merged = self._merge(json.loads(raw), partial)
                        pipe.multi()
                        pipe.set(key, json.dumps(merged))
                        await pipe.execute()
                        return
                    except WatchError:
                        self.logger.debug("Concurrent write during update, retrying", key=key)
            raise ConcurrentUpdateError(
                f"Gave up updating {key} after {max_attempts} conflicting attempts",
                collection=collection, document_id=document_id,
                attempts=max_attempts, operation="update")
        except RedisClientError as e:
            raise StoreError(f"Failed to update key {key}: {e}", operation="update",
                             collection=collection, document_id=document_id)

    async def compare_and_swap(self, collection: str, document_id: str,
                               expected_version: Optional[int], record: ModelT) -> bool:
        key = self._get_key(collection, document_id)
        payload = json.dumps(self._dump(record, (expected_version or 0) + 1))
        try:
            client = await self._client()
            async with client.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    stored_version = None if raw is None else json.loads(raw).get("version", 0)
                    if stored_version != expected_version:
                        await pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.set(key, payload)
                    await pipe.execute()
                    return True
                except WatchError:
                    return False
        except RedisClientError as e:
            raise StoreError(f"Failed compare-and-swap on key {key}: {e}", operation="compare_and_swap",
                             collection=collection, document_id=document_id)

    async def close(self):
        """Close Redis connection"""
        try:
            if self.redis_client:
                await self.redis_client.aclose()
        except Exception as e:
            raise StoreError(f"Failed to close Redis connection: {e}", operation="close")

    async def health_check(self) -> Dict[str, Any]:
        """Perform health check on Redis connection"""
        try:
            client = await self._client()
            await client.ping()
            return {
                "redis_connected": True,
                "namespace": self.namespace,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        except Exception as e:
            return {
                "redis_connected": False,
                "error": str(e),
                "namespace": self.namespace,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }


def create_redis_record_store(model_type: Type[ModelT], settings: Settings,
                              redis_client=None) -> RedisRecordStore:
    """Create a Redis record store for the given record model"""
    return RedisRecordStore(model_type, settings, redis_client)
