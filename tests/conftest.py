import pytest

from hive_ledger.config import Settings
from hive_ledger.models import BroadcastResult

NOW = 1_700_000_000.0


class Sequenced:
    """Responses handed out one per call; the last one repeats."""

    def __init__(self, *items):
        self.items = list(items)

    def next(self):
        return self.items.pop(0) if len(self.items) > 1 else self.items[0]


class FakeNode:
    """NodeReader double: answers per method, records every call.

    A response may be a value, an exception instance (raised), or a
    :class:`Sequenced` of those.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    async def call(self, method, params=None):
        self.calls.append((method, params))
        response = self.responses.get(method)
        if isinstance(response, Sequenced):
            response = response.next()
        if isinstance(response, BaseException):
            raise response
        return response

    def methods(self):
        return [method for method, _ in self.calls]


class FakeProvider:
    def __init__(self, result=None, error=None):
        self.result = result or BroadcastResult(success=True, transaction_id="abc123")
        self.error = error
        self.calls = []

    async def submit(self, operations, key_scope):
        self.calls.append((list(operations), key_scope))
        if self.error is not None:
            raise self.error
        return self.result


class FakeSubscription:
    def __init__(self, channel, observer):
        self.channel = channel
        self.observer = observer
        self.unsubscribe_count = 0

    def unsubscribe(self):
        self.unsubscribe_count += 1
        self.channel.session.log.append(("unsubscribe", self.channel.feed))
        if self.observer in self.channel.observers:
            self.channel.observers.remove(self.observer)


class FakeChannel:
    def __init__(self, session, feed):
        self.session = session
        self.feed = feed
        self.observers = []
        self.subscriptions = []
        self.fail = False

    def subscribe(self, observer):
        if self.fail:
            raise RuntimeError(f"cannot subscribe to {self.feed}")
        self.session.log.append(("subscribe", self.feed))
        self.observers.append(observer)
        subscription = FakeSubscription(self, observer)
        self.subscriptions.append(subscription)
        return subscription


class FakeObserve:
    def __init__(self, session):
        self.session = session
        self.posts = FakeChannel(session, "posts")
        self.votes = FakeChannel(session, "votes")
        self.comments = FakeChannel(session, "comments")
        self.requested_tags = None
        self.requested_account = "unset"

    def on_posts_with_tags(self, tags):
        self.requested_tags = list(tags)
        return self.posts

    def on_votes(self):
        return self.votes

    def on_comments(self, account=None):
        self.requested_account = account
        return self.comments


class FakeSession:
    def __init__(self):
        self.log = []
        self.observe = FakeObserve(self)
        self.start_calls = 0
        self.stop_calls = 0

    async def start(self, process_history=False):
        self.start_calls += 1
        self.log.append(("start", process_history))

    async def stop(self):
        self.stop_calls += 1
        self.log.append(("stop", None))

    def push(self, feed, data):
        for observer in list(getattr(self.observe, feed).observers):
            observer.on_event(data)


def vote_entry(voter, percent, time="2023-11-14T12:00:00", rshares="1000"):
    return {
        "voter": voter,
        "weight": abs(percent) // 10,
        "rshares": rshares,
        "percent": percent,
        "reputation": "100000",
        "time": time,
    }


@pytest.fixture
def config():
    return Settings(
        hive_nodes=["https://node-a.test", "https://node-b.test"],
        muted_authors=[],
        confirmation_timeout=5.0,
        confirmation_poll_interval=0.0,
        block_poll_interval=0.01,
        history_blocks=100,
    )


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def session():
    return FakeSession()
