"""Block-following streaming session over the node's JSON-RPC API.

One asyncio task polls the head block and walks every new block in order,
handing ``comment`` and ``vote`` operations to the observers subscribed on
the session's feeds.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .config import Settings, settings as default_settings
from .interfaces import FeedObserver, NodeReader
from .logging_setup import get_logger
from .metrics import last_block_number
from .operations import parse_json_metadata

log = get_logger(__name__)

Predicate = Callable[[Dict[str, Any]], bool]


def _iter_operations(block: Dict[str, Any]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """Yield ``(name, body)`` for each operation in ``block``.

    ``block_api`` returns ``{"type": "vote_operation", "value": {...}}`` while
    condenser-style blocks carry ``["vote", {...}]`` pairs; both are accepted.
    """
    for trx in block.get("transactions") or []:
        for op in trx.get("operations") or []:
            if isinstance(op, (list, tuple)) and len(op) == 2:
                yield str(op[0]), op[1] or {}
            elif isinstance(op, dict) and "type" in op:
                name = str(op["type"])
                if name.endswith("_operation"):
                    name = name[: -len("_operation")]
                yield name, op.get("value") or {}


def _post_has_tags(tags: Sequence[str]) -> Predicate:
    wanted = set(tags)

    def predicate(body: Dict[str, Any]) -> bool:
        if not wanted:
            return True
        metadata = parse_json_metadata(body.get("json_metadata"))
        post_tags = metadata.get("tags") if isinstance(metadata.get("tags"), list) else []
        # the category (parent_permlink) of a top-level post is its community or first tag
        return bool(wanted.intersection([body.get("parent_permlink"), *post_tags]))

    return predicate


def _involves_account(account: Optional[str]) -> Predicate:
    def predicate(body: Dict[str, Any]) -> bool:
        return account is None or account in (body.get("author"), body.get("parent_author"))

    return predicate


class _Subscription:
    def __init__(self, session: "BlockStreamSession", key: int):
        self._session = session
        self._key = key

    def unsubscribe(self) -> None:
        self._session._observers.pop(self._key, None)


class _Channel:
    def __init__(self, session: "BlockStreamSession", feed: str, predicate: Predicate):
        self._session = session
        self.feed = feed
        self.predicate = predicate

    def subscribe(self, observer: FeedObserver) -> _Subscription:
        key = next(self._session._keys)
        self._session._observers[key] = (self.feed, self.predicate, observer)
        log.debug("feed_subscribed", feed=self.feed, key=key)
        return _Subscription(self._session, key)


class _Observe:
    def __init__(self, session: "BlockStreamSession"):
        self._session = session

    def on_posts_with_tags(self, tags: Sequence[str]) -> _Channel:
        return _Channel(self._session, "posts", _post_has_tags(tags))

    def on_votes(self) -> _Channel:
        return _Channel(self._session, "votes", lambda body: True)

    def on_comments(self, account: Optional[str] = None) -> _Channel:
        return _Channel(self._session, "comments", _involves_account(account))


class BlockStreamSession:
    def __init__(self, node: NodeReader, config: Settings = default_settings, cursor: Optional[int] = None):
        self.node = node
        self.config = config
        self.observe = _Observe(self)

        # last fully processed block
        self.cursor: Optional[int] = cursor
        self._next_block: Optional[int] = None
        self._observers: Dict[int, Tuple[str, Predicate, FeedObserver]] = {}
        self._keys = itertools.count(1)
        self._task: Optional[asyncio.Task] = None

        # Statistics
        self.blocks_processed = 0
        self.operations_delivered = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    async def start(self, process_history: bool = False) -> None:
        if self.running:
            return

        head = await self._head_block()
        if self.cursor is not None:
            self._next_block = self.cursor + 1
        elif process_history:
            self._next_block = max(1, head - self.config.history_blocks + 1)
        else:
            self._next_block = head + 1

        log.info("block_stream_starting", head=head, next_block=self._next_block, process_history=process_history)
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        log.info("block_stream_stopped", cursor=self.cursor)

    async def _head_block(self) -> int:
        props = await self.node.call("condenser_api.get_dynamic_global_properties")
        return int(props["head_block_number"])

    async def _run(self) -> None:
        while True:
            try:
                head = await self._head_block()
                while self._next_block is not None and self._next_block <= head:
                    response = await self.node.call("block_api.get_block", {"block_num": self._next_block})
                    block = (response or {}).get("block")
                    if not block:
                        # not yet available on this node
                        break
                    self.process_block(self._next_block, block)
                    self._next_block += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.warning("block_stream_poll_failed", next_block=self._next_block, error=str(e))
                self._notify_error(e)

            await asyncio.sleep(self.config.block_poll_interval)

    def process_block(self, block_num: int, block: Dict[str, Any]) -> None:
        """Deliver the operations of one block and advance the cursor."""
        timestamp = block.get("timestamp")
        for name, body in _iter_operations(block):
            if name == "comment":
                if body.get("parent_author"):
                    self._deliver("comments", body, {"comment": {**body, "created": timestamp}, "block_num": block_num})
                else:
                    self._deliver("posts", body, {"post": {**body, "created": timestamp}, "block_num": block_num})
            elif name == "vote":
                self._deliver("votes", body, {"vote": {**body, "timestamp": timestamp}, "block_num": block_num})

        self.cursor = block_num
        self.blocks_processed += 1
        last_block_number.set(block_num)

    def _deliver(self, feed: str, body: Dict[str, Any], payload: Dict[str, Any]) -> None:
        targets: List[FeedObserver] = [
            observer for f, predicate, observer in list(self._observers.values())
            if f == feed and predicate(body)
        ]
        for observer in targets:
            try:
                observer.on_event(payload)
                self.operations_delivered += 1
            except Exception as e:
                log.error("observer_failed", feed=feed, error=str(e))

    def _notify_error(self, error: BaseException) -> None:
        for _, _, observer in list(self._observers.values()):
            try:
                observer.on_error(error)
            except Exception as e:
                log.error("observer_error_handler_failed", error=str(e))

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "cursor": self.cursor,
            "next_block": self._next_block,
            "observers": self.observer_count,
            "blocks_processed": self.blocks_processed,
            "operations_delivered": self.operations_delivered,
        }
