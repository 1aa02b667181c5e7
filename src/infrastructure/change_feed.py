"""
Redis pub/sub change feed.

Every write to the document store publishes the full document on two
channels: one per document (``docs:<collection>:<id>``) and one per
collection (``docs:<collection>``) for list queries.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.domain.exceptions import StoreUnavailableError

from .store import Document, LostCallback, Subscription

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[None]]


class RedisChangeFeed:
    def __init__(self, client: aioredis.Redis, prefix: str = "docs"):
        self.redis = client
        self.prefix = prefix

    def document_channel(self, collection: str, doc_id: str) -> str:
        return f"{self.prefix}:{collection}:{doc_id}"

    def collection_channel(self, collection: str) -> str:
        return f"{self.prefix}:{collection}"

    async def publish(self, collection: str, doc_id: str, data: Document) -> None:
        payload = json.dumps({"id": doc_id, "data": data}, default=str)
        try:
            await self.redis.publish(self.document_channel(collection, doc_id), payload)
            await self.redis.publish(self.collection_channel(collection), payload)
        except RedisError as exc:
            raise StoreUnavailableError(
                f"Could not publish change for {collection}/{doc_id}"
            ) from exc

    async def listen(
        self, channel: str, handler: Handler, on_lost: Optional[LostCallback] = None
    ) -> Subscription:
        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(channel)
        except RedisError as exc:
            raise StoreUnavailableError(f"Could not subscribe to {channel}") from exc

        task = asyncio.create_task(self._pump(pubsub, channel, handler, on_lost))

        async def close() -> None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Change feed pump on %s failed", channel)
            finally:
                with contextlib.suppress(RedisError):
                    await pubsub.unsubscribe(channel)
                with contextlib.suppress(RedisError):
                    await pubsub.aclose()

        return Subscription(channel, close)

    async def _pump(
        self, pubsub, channel: str, handler: Handler, on_lost: Optional[LostCallback]
    ) -> None:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    payload = json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning("Discarding malformed message on %s", channel)
                    continue
                try:
                    await handler(payload)
                except Exception:
                    logger.exception("Change handler failed on %s", channel)
        except RedisError as exc:
            logger.error("Change feed on %s lost: %s", channel, exc)
            if on_lost is not None:
                await on_lost(
                    StoreUnavailableError(f"Live updates on {channel} were interrupted")
                )
