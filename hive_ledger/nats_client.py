from __future__ import annotations

import asyncio
from typing import Optional

from nats.aio.client import Client as NATS
from nats.errors import TimeoutError
from nats.js import JetStreamContext
from nats.js.api import DiscardPolicy, RetentionPolicy, StorageType, StreamConfig

from .config import Settings, settings as default_settings
from .events import ChainEvent
from .logging_setup import get_logger
from .metrics import events_published_total, nats_connected, publish_errors_total


log = get_logger(__name__)


class NatsEventPublisher:
    """Publishes normalized chain events to ``{subject}.{event_type}`` on JetStream."""

    def __init__(
        self,
        url: Optional[str] = None,
        stream: Optional[str] = None,
        subject: Optional[str] = None,
        max_retries: Optional[int] = None,
        config: Settings = default_settings,
    ):
        self.url = url or config.nats_url
        self.stream = stream or config.nats_stream
        self.subject = subject or config.nats_subject
        self.max_retries = config.max_retries if max_retries is None else max_retries
        self.stream_num_replicas = config.num_stream_replicas

        self.nc: Optional[NATS] = None
        self.js: Optional[JetStreamContext] = None

        # Statistics
        self.publish_count = 0
        self.error_count = 0

    @property
    def connected(self) -> bool:
        return self.nc is not None and self.nc.is_connected

    async def connect(self) -> None:
        self.nc = NATS()
        await self.nc.connect(servers=[self.url])
        nats_connected.set(1)
        self.js = self.nc.jetstream()

        # Ensure stream exists
        try:
            await self.js.stream_info(self.stream)
            log.info("stream_exists", stream=self.stream)
        except Exception as e:
            log.info("stream_not_found", stream=self.stream, error=str(e))
            stream_config = StreamConfig(
                name=self.stream,
                subjects=[f"{self.subject}.>"],
                retention=RetentionPolicy.LIMITS,
                discard=DiscardPolicy.OLD,
                max_msgs_per_subject=-1,
                max_msgs=-1,
                max_bytes=-1,
                max_age=0,
                storage=StorageType.FILE,
                num_replicas=self.stream_num_replicas,
            )
            await self.js.add_stream(config=stream_config)
            log.info("stream_created", stream=self.stream)

    async def close(self) -> None:
        try:
            nats_connected.set(0)
            if self.nc and self.nc.is_connected:
                await self.nc.drain()
                await self.nc.close()
        finally:
            self.nc = None
            self.js = None

    async def publish_event(self, event: ChainEvent) -> None:
        payload = event.model_dump_json().encode("utf-8")
        await self.publish_json(event.type, payload)

    async def publish_json(self, subject_suffix: str, payload: bytes) -> None:
        if self.js is None:
            raise RuntimeError("NATS publisher is not connected")
        subject = f"{self.subject}.{subject_suffix}" if subject_suffix else self.subject
        attempt = 0
        while True:
            try:
                ack = await self.js.publish(subject, payload, timeout=2.0)
                if ack and ack.stream == self.stream:
                    self.publish_count += 1
                    events_published_total.inc()
                return
            except TimeoutError:
                self.error_count += 1
                publish_errors_total.inc()
                attempt += 1
                if attempt > self.max_retries:
                    log.error("publish_timeout", subject=subject, attempts=attempt)
                    raise
                await asyncio.sleep(0.1 * attempt)

    def get_stats(self) -> dict:
        return {
            "connected": self.connected,
            "stream": self.stream,
            "subject": self.subject,
            "publish_count": self.publish_count,
            "error_count": self.error_count,
        }
