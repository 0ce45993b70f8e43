import asyncio
import logging
from typing import AsyncIterator, Dict, Set

import redis.asyncio as redis

from journeylog.config import settings

logger = logging.getLogger(__name__)


def inbox_channel(user_id: str) -> str:
    return f"inbox:{user_id}"


class Subscription:
    """Iterate to receive published messages; ``cancel()`` stops delivery."""

    def __aiter__(self) -> AsyncIterator[str]:
        return self.messages()

    def messages(self) -> AsyncIterator[str]:
        raise NotImplementedError

    async def cancel(self) -> None:
        raise NotImplementedError


class LocalBus:
    """In-process fanout used when Redis is not configured (single worker only)."""

    enabled = False

    def __init__(self) -> None:
        self._channels: Dict[str, Set[asyncio.Queue]] = {}

    async def publish(self, channel: str, message: str) -> None:
        for queue in list(self._channels.get(channel, ())):
            queue.put_nowait(message)

    async def subscribe(self, channel: str) -> Subscription:
        queue: asyncio.Queue = asyncio.Queue()
        self._channels.setdefault(channel, set()).add(queue)
        bus = self

        class _Sub(Subscription):
            _running = True

            async def messages(self_inner) -> AsyncIterator[str]:
                while self_inner._running:
                    message = await queue.get()
                    if message is None:
                        return
                    yield message

            async def cancel(self_inner) -> None:
                if not self_inner._running:
                    return
                self_inner._running = False
                subscribers = bus._channels.get(channel)
                if subscribers is not None:
                    subscribers.discard(queue)
                    if not subscribers:
                        del bus._channels[channel]
                queue.put_nowait(None)

        return _Sub()

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def close(self) -> None:
        for subscribers in self._channels.values():
            for queue in subscribers:
                queue.put_nowait(None)
        self._channels.clear()


class RedisBus:

    enabled = True

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str) -> Subscription:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)

        class _Sub(Subscription):
            _running = True

            async def messages(self_inner) -> AsyncIterator[str]:
                # connection errors propagate and end the subscription
                while self_inner._running:
                    msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                    if msg and msg.get("type") == "message":
                        data = msg.get("data")
                        if isinstance(data, bytes):
                            data = data.decode("utf-8")
                        yield data

            async def cancel(self_inner) -> None:
                if not self_inner._running:
                    return
                self_inner._running = False
                try:
                    await pubsub.unsubscribe(channel)
                finally:
                    await pubsub.aclose()

        return _Sub()

    async def close(self) -> None:
        await self._redis.aclose()


_bus = None


async def get_bus():
    global _bus
    if _bus is not None:
        return _bus
    if settings.realtime_enabled:
        _bus = RedisBus(settings.redis_url)
        logger.info("Realtime bus: redis")
    else:
        _bus = LocalBus()
        logger.info("Realtime bus: in-process")
    return _bus


async def close_bus() -> None:
    global _bus
    if _bus is not None:
        await _bus.close()
        _bus = None
