"""Outbound publishers for enriched profiles and failure notifications."""

from __future__ import annotations

import threading
from concurrent.futures import Executor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from amqp.exceptions import MessageNacked
from kombu import Connection, Exchange
from kombu.pools import producers

from ..errors import PublishError, PublishErrorCode
from ..logging import get_logger
from ..schemas import WireModel
from ..util.concurrency import run_blocking

logger = get_logger(__name__)


@dataclass(frozen=True)
class PublishedMessage:
    channel: str
    payload: Dict[str, Any]


@dataclass
class InMemoryResultPublisher:
    """Keeps published events in memory; ``accept=False`` simulates a broker refusal."""

    accept: bool = True
    messages: List[PublishedMessage] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    async def publish(self, channel: str, event: WireModel) -> bool:
        if not self.accept:
            logger.warning("publish.refused", channel=channel)
            return False
        payload = event.model_dump(mode="json", by_alias=True)
        with self._lock:
            self.messages.append(PublishedMessage(channel=channel, payload=payload))
        return True

    def on(self, channel: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [message.payload for message in self.messages if message.channel == channel]

    def close(self) -> None:
        return None


class KombuResultPublisher:
    """Publishes JSON events to a topic exchange with publisher confirms.

    Logical channels are mapped to routing keys. A broker nack is reported
    as ``False``; connection failures raise ``PublishError(Unavailable)``.
    """

    def __init__(
        self,
        *,
        broker_url: Optional[str] = None,
        connection: Optional[Connection] = None,
        exchange: str = "cv.events",
        routing_keys: Mapping[str, str],
        confirm_timeout_seconds: float = 10.0,
        executor: Optional[Executor] = None,
    ) -> None:
        if connection is None:
            if not broker_url:
                raise ValueError("broker_url or connection is required")
            connection = Connection(broker_url, transport_options={"confirm_publish": True})
        self._connection = connection
        self._exchange = Exchange(exchange, type="topic", durable=True)
        self._routing_keys = dict(routing_keys)
        self._confirm_timeout = confirm_timeout_seconds
        self._executor = executor

    def routing_key_for(self, channel: str) -> str:
        try:
            return self._routing_keys[channel]
        except KeyError as exc:
            raise PublishError(
                PublishErrorCode.UNROUTABLE, f"No routing key configured for channel '{channel}'"
            ) from exc

    async def publish(self, channel: str, event: WireModel) -> bool:
        routing_key = self.routing_key_for(channel)
        payload = event.model_dump(mode="json", by_alias=True)
        return await run_blocking(self._executor, self._publish_sync, routing_key, payload)

    def _publish_sync(self, routing_key: str, payload: Dict[str, Any]) -> bool:
        try:
            with producers[self._connection].acquire(
                block=True, timeout=self._confirm_timeout
            ) as producer:
                producer.publish(
                    payload,
                    exchange=self._exchange,
                    routing_key=routing_key,
                    declare=[self._exchange],
                    serializer="json",
                    delivery_mode=2,
                    retry=True,
                    retry_policy={"max_retries": 3, "interval_start": 0.5, "interval_step": 1},
                    timeout=self._confirm_timeout,
                )
        except MessageNacked:
            logger.error("publish.nacked", routingKey=routing_key)
            return False
        except self._connection.connection_errors as exc:
            raise PublishError(
                PublishErrorCode.UNAVAILABLE,
                "Message broker unavailable",
                details={"routingKey": routing_key, "error": str(exc)},
            ) from exc
        logger.info("publish.confirmed", routingKey=routing_key)
        return True

    def close(self) -> None:
        self._connection.release()


__all__ = ["InMemoryResultPublisher", "KombuResultPublisher", "PublishedMessage"]
