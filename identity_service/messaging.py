"""Message bus contract and its Redis stream implementation."""

from __future__ import annotations

import logging
from typing import Protocol

from redis import Redis
from redis.exceptions import RedisError

from .context import RequestContext
from .errors import DeliveryError

logger = logging.getLogger(__name__)


class MessageBus(Protocol):
    """Fire-and-forget publish; no acknowledgement and no retry."""

    def publish(self, topic: str, payload: str, *, ctx: RequestContext | None = None) -> None:
        ...


class RedisMessageBus:
    """Appends events to a Redis stream named after the topic.

    Every call issues exactly one ``XADD``; a failure is reported as
    ``DeliveryError`` and never retried.
    """

    def __init__(self, client: Redis, *, maxlen: int | None = None) -> None:
        self._client = client
        self._maxlen = maxlen

    def publish(self, topic: str, payload: str, *, ctx: RequestContext | None = None) -> None:
        try:
            message_id = self._client.xadd(
                topic,
                {"payload": payload},
                maxlen=self._maxlen,
                approximate=True,
            )
        except RedisError as exc:
            logger.error("publish to %s failed: %s", topic, exc)
            raise DeliveryError(str(exc)) from exc
        logger.debug("published to %s: id=%s", topic, message_id)
