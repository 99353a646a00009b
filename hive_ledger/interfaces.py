from __future__ import annotations

from typing import Any, Protocol, Sequence

from .models import BroadcastResult, KeyScope, LedgerOperation


class SigningProvider(Protocol):
    """Signs the operations as one transaction and submits it to the network."""

    async def submit(self, operations: Sequence[LedgerOperation], key_scope: KeyScope) -> BroadcastResult: ...


class NodeReader(Protocol):
    async def call(self, method: str, params: Any = None) -> Any: ...


class FeedObserver(Protocol):
    def on_event(self, data: Any) -> None: ...

    def on_error(self, error: BaseException) -> None: ...


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class FeedChannel(Protocol):
    def subscribe(self, observer: FeedObserver) -> Subscription: ...


class Observe(Protocol):
    def on_posts_with_tags(self, tags: Sequence[str]) -> FeedChannel: ...

    def on_votes(self) -> FeedChannel: ...

    def on_comments(self, account: str | None = None) -> FeedChannel: ...


class StreamingSession(Protocol):
    """One shared connection to the node's event stream."""

    observe: Observe

    async def start(self, process_history: bool = False) -> None: ...

    async def stop(self) -> None: ...
