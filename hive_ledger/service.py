import asyncio
import signal
import time
from typing import Any, Dict, Optional

import uvicorn

from .block_stream import BlockStreamSession
from .config import settings
from .cursor_store import BlockCursorStore
from .events import ChainEvent
from .filters import EventFilter
from .health import create_health_api
from .logging_setup import configure_logging, get_logger
from .metrics import events_dropped_total
from .nats_client import NatsEventPublisher
from .realtime import RealtimeMonitor
from .rpc_client import NodeClient


log = get_logger(__name__)


class Service:
    """Runs the realtime monitor and fans its events out to NATS.

    Callbacks run on the monitor's dispatch path, so the publisher callback only
    enqueues; a background task drains the queue into JetStream.
    """

    def __init__(self) -> None:
        log.info("service_start", service=settings.service_name)

        # Shared queue between the monitor callback and the publisher loop
        self.events_queue: asyncio.Queue[ChainEvent] = asyncio.Queue(maxsize=10000)

        self.node = NodeClient()
        self.nats = NatsEventPublisher()
        self.cursor_store: Optional[BlockCursorStore] = None

        # Session and monitor are created after loading the cursor
        self.session: Optional[BlockStreamSession] = None
        self.monitor: Optional[RealtimeMonitor] = None
        self.event_filter = EventFilter()

        # Web server
        app = create_health_api(self)
        config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=settings.health_check_port,
            log_level=settings.log_level.lower(),
            access_log=False,
        )
        self.server = uvicorn.Server(config)

        # Lifecycle primitives
        self.stop_event = asyncio.Event()
        self.loop = asyncio.get_running_loop()
        self.running = False
        self.started_at = time.time()

        # Publisher metrics
        self.last_published_count = 0
        self._last_stats_time = time.monotonic()

        # Bookkeeping for cursor saves; a failed publish pins the cursor for the rest of the run
        self._since_save = 0
        self._unpublished = 0

        # Background tasks
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Connect NATS, restore the cursor, start the monitor and background loops."""
        await self.nats.connect()
        self.cursor_store = BlockCursorStore(self.nats.js)
        await self.cursor_store.initialize()
        cursor = await self.cursor_store.load_cursor()

        self.session = BlockStreamSession(self.node, cursor=cursor)
        self.monitor = RealtimeMonitor(self.session, event_filter=self.event_filter)
        self.monitor.add_callback(self._enqueue)
        await self.monitor.start(process_history=settings.process_history)

        for sig in (signal.SIGINT, signal.SIGTERM):
            self.loop.add_signal_handler(sig, self._handle_signal)

        self._tasks = [
            asyncio.create_task(self._publish_events()),
            asyncio.create_task(self._run_server()),
            asyncio.create_task(self._periodic_stats_logger()),
        ]
        self.running = True

    def _handle_signal(self) -> None:
        self.stop_event.set()

    def _enqueue(self, event: ChainEvent) -> None:
        try:
            self.events_queue.put_nowait(event)
        except asyncio.QueueFull:
            # Backpressure: drop if overloaded
            self._unpublished += 1
            events_dropped_total.labels(feed=event.type, reason="queue_full").inc()

    async def _run_server(self) -> None:
        await self.server.serve()

    async def _publish_events(self) -> None:
        """Drain the queue into JetStream and persist the block cursor periodically."""
        while not self.stop_event.is_set():
            try:
                event = await asyncio.wait_for(self.events_queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue

            if not await self._publish_one(event):
                continue
            # only persist once everything read so far has been handed to NATS
            if self._since_save >= settings.cursor_save_interval and self.events_queue.empty():
                self._since_save = 0
                await self._save_cursor()

    async def _publish_one(self, event: ChainEvent) -> bool:
        try:
            await self.nats.publish_event(event)
        except Exception as e:
            self._unpublished += 1
            log.error("publish_failed", event_type=event.type, error=str(e))
            return False
        self.last_published_count += 1
        self._since_save += 1
        return True

    async def _drain_queue(self) -> None:
        """Publish whatever the monitor enqueued before it stopped."""
        drained = 0
        while not self.events_queue.empty():
            if await self._publish_one(self.events_queue.get_nowait()):
                drained += 1
        if drained:
            log.info("queue_drained", published=drained)

    async def _save_cursor(self) -> None:
        if self.cursor_store is None or self.session is None or self.session.cursor is None:
            return
        if self._unpublished or not self.events_queue.empty():
            # resuming from an older cursor replays these events instead of skipping them
            log.warning(
                "cursor_save_skipped",
                unpublished=self._unpublished,
                queued=self.events_queue.qsize(),
            )
            return
        await self.cursor_store.save_cursor(self.session.cursor)

    async def _periodic_stats_logger(self) -> None:
        # Log every 20 seconds
        while not self.stop_event.is_set():
            await asyncio.sleep(20)
            try:
                now = time.monotonic()
                elapsed = max(now - self._last_stats_time, 1e-6)
                published_rate = round(self.last_published_count / elapsed, 2)
                self.last_published_count = 0
                self._last_stats_time = now

                status = self.monitor.get_status() if self.monitor else {}
                log.info(
                    "monitor stats",
                    cursor=self.session.cursor if self.session else None,
                    queue_size=self.events_queue.qsize(),
                    published_per_second=published_rate,
                    events_dispatched=status.get("events_dispatched"),
                    events_dropped=status.get("events_dropped"),
                    callback_errors=status.get("callback_errors"),
                )
            except Exception as e:
                log.warning("stats_log_failed", error=str(e))

    def is_ready(self) -> bool:
        return bool(
            self.running
            and self.nats.connected
            and self.monitor is not None
            and self.monitor.is_running
            and self.session is not None
            and self.session.running
        )

    def get_health_status(self) -> Dict[str, Any]:
        monitor_status = self.monitor.get_status() if self.monitor else {"state": "stopped"}
        nats_stats = self.nats.get_stats()
        healthy = self.running and nats_stats["connected"] and monitor_status["state"] == "running"
        return {
            "status": "healthy" if healthy else "unhealthy",
            "service": settings.service_name,
            "uptime_seconds": round(time.time() - self.started_at, 1),
            "components": {
                "monitor": monitor_status,
                "block_stream": self.session.get_stats() if self.session else None,
                "nats": nats_stats,
            },
            "queue_size": self.events_queue.qsize(),
        }

    async def run(self) -> None:
        """Start the service and wait until stop signal; then perform a graceful shutdown."""
        await self.start()
        await self.stop_event.wait()
        await self.shutdown()

    async def shutdown(self) -> None:
        """Stop the monitor, flush queued events, then persist the cursor."""
        self.stop_event.set()
        self.running = False

        if self.monitor is not None:
            await self.monitor.stop()

        # the publisher loop exits on stop_event; the rest are cancelled
        self.server.should_exit = True
        for t in self._tasks[1:]:
            t.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

        await self._drain_queue()

        try:
            await self._save_cursor()
        except Exception as e:
            log.warning("final_cursor_save_failed", error=str(e))

        await self.nats.close()
        await self.node.close()
        log.info("service_stop")


async def _run() -> None:
    service = Service()
    await service.run()


def main() -> None:
    configure_logging(settings.log_level, settings.log_format)
    asyncio.run(_run())
