"""Realtime monitor: one streaming session, one subscription per feed, and
fan-out of normalized chain events to registered callbacks."""

from __future__ import annotations

import asyncio
import enum
import time
from typing import Any, Dict, List, Optional, Sequence

from .config import Settings, settings as default_settings
from .events import NORMALIZERS, ChainEvent, EventCallback, MalformedPayload
from .filters import EventFilter
from .interfaces import StreamingSession, Subscription
from .logging_setup import get_logger
from .metrics import callback_errors_total, events_dispatched_total, events_dropped_total, monitor_running

log = get_logger(__name__)

FEEDS = ("posts", "votes", "comments")


class MonitorState(str, enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class _FeedObserver:
    def __init__(self, monitor: "RealtimeMonitor", feed: str):
        self.monitor = monitor
        self.feed = feed

    def on_event(self, data: Any) -> None:
        self.monitor._handle_raw(self.feed, data)

    def on_error(self, error: BaseException) -> None:
        log.error("feed_error", feed=self.feed, error=str(error))


class RealtimeMonitor:
    """Owns exactly one subscription per feed for as long as it is running.

    ``start`` and ``stop`` are serialized by an internal lock so overlapping
    lifecycle calls can neither double-subscribe nor double-unsubscribe.

    Every event a feed delivers reaches every callback; the post feed's tag
    subscription is the only tag rule. An optional ``event_filter`` applies
    account moderation on top.
    """

    def __init__(
        self,
        session: StreamingSession,
        event_filter: Optional[EventFilter] = None,
        config: Settings = default_settings,
    ):
        self.session = session
        self.config = config
        self.event_filter = event_filter
        self.state = MonitorState.STOPPED
        self._callbacks: List[EventCallback] = []
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = asyncio.Lock()

        # Statistics
        self.events_dispatched = 0
        self.events_dropped = 0
        self.callback_errors = 0
        self.last_event_at: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self.state is MonitorState.RUNNING

    async def start(
        self,
        process_history: bool = False,
        tags: Optional[Sequence[str]] = None,
        account: Optional[str] = None,
    ) -> None:
        async with self._lock:
            if self.state is not MonitorState.STOPPED:
                log.info("monitor_already_running", state=self.state.value)
                return

            self.state = MonitorState.STARTING
            tags = list(dict.fromkeys(tags or [self.config.community_id, *self.config.community_tags]))
            try:
                await self.session.start(process_history=process_history)
                observe = self.session.observe
                channels = {
                    "posts": observe.on_posts_with_tags(tags),
                    "votes": observe.on_votes(),
                    "comments": observe.on_comments(account),
                }
                for feed, channel in channels.items():
                    self._subscriptions[feed] = channel.subscribe(_FeedObserver(self, feed))
            except Exception:
                log.exception("monitor_start_failed")
                await self._release()
                self.state = MonitorState.STOPPED
                raise

            self.state = MonitorState.RUNNING
            monitor_running.set(1)
            log.info("monitor_started", tags=tags, account=account, process_history=process_history)

    async def stop(self) -> None:
        async with self._lock:
            if self.state is not MonitorState.RUNNING:
                log.info("monitor_not_running", state=self.state.value)
                return

            self.state = MonitorState.STOPPING
            await self._release()
            self.state = MonitorState.STOPPED
            monitor_running.set(0)
            log.info("monitor_stopped")

    async def _release(self) -> None:
        # Every feed is detached before the shared session is torn down.
        for feed, subscription in list(self._subscriptions.items()):
            try:
                subscription.unsubscribe()
            except Exception as e:
                log.warning("unsubscribe_failed", feed=feed, error=str(e))
        self._subscriptions.clear()

        try:
            await self.session.stop()
        except Exception as e:
            log.warning("session_stop_failed", error=str(e))

    def add_callback(self, callback: EventCallback) -> None:
        self._callbacks.append(callback)

    def remove_callback(self, callback: EventCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _handle_raw(self, feed: str, data: Any) -> None:
        if self.state in (MonitorState.STOPPED, MonitorState.STOPPING):
            return

        try:
            event = NORMALIZERS[feed](data)
        except MalformedPayload as e:
            self.events_dropped += 1
            events_dropped_total.labels(feed=feed, reason="malformed").inc()
            log.warning("malformed_payload_dropped", feed=feed, error=str(e))
            return

        if self.event_filter is not None and not self.event_filter.should_include(event):
            self.events_dropped += 1
            events_dropped_total.labels(feed=feed, reason="filtered").inc()
            return

        self._emit(event)

    def _emit(self, event: ChainEvent) -> None:
        self.last_event_at = time.time()
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception:
                self.callback_errors += 1
                callback_errors_total.inc()
                log.exception("callback_failed", event_type=event.type)
        self.events_dispatched += 1
        events_dispatched_total.labels(event_type=event.type).inc()

    def get_status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "is_running": self.is_running,
            "callback_count": len(self._callbacks),
            "subscriptions": sorted(self._subscriptions),
            "events_dispatched": self.events_dispatched,
            "events_dropped": self.events_dropped,
            "callback_errors": self.callback_errors,
            "last_event_at": self.last_event_at,
            "filter": self.event_filter.get_stats() if self.event_filter is not None else None,
        }
