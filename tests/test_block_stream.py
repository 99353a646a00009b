import asyncio
import json

import pytest

from conftest import FakeNode
from hive_ledger.block_stream import BlockStreamSession


class Recorder:
    def __init__(self):
        self.events = []
        self.errors = []

    def on_event(self, data):
        self.events.append(data)

    def on_error(self, error):
        self.errors.append(error)


def _block(*operations, timestamp="2023-11-14T12:00:00"):
    return {"timestamp": timestamp, "transactions": [{"operations": list(operations)}]}


def _post_op(author, tags, parent_permlink="hive-115814"):
    return {
        "type": "comment_operation",
        "value": {
            "parent_author": "",
            "parent_permlink": parent_permlink,
            "author": author,
            "permlink": f"{author}-post",
            "title": "Title",
            "body": "Body",
            "json_metadata": json.dumps({"tags": tags}),
        },
    }


def _reply_op(author, parent_author):
    return ["comment", {
        "parent_author": parent_author,
        "parent_permlink": "some-post",
        "author": author,
        "permlink": f"re-{parent_author}",
        "title": "",
        "body": "reply",
        "json_metadata": "{}",
    }]


def _vote_op(voter):
    return {"type": "vote_operation", "value": {"voter": voter, "author": "bob", "permlink": "p", "weight": 5000}}


def test_process_block_routes_operations_to_feeds(config):
    session = BlockStreamSession(FakeNode(), config)
    posts, votes, comments = Recorder(), Recorder(), Recorder()
    session.observe.on_posts_with_tags(["sportsblock"]).subscribe(posts)
    session.observe.on_votes().subscribe(votes)
    session.observe.on_comments("bob").subscribe(comments)

    session.process_block(500, _block(
        _post_op("alice", ["sportsblock"], parent_permlink="football"),
        _post_op("mallory", ["cooking"], parent_permlink="cooking"),
        _reply_op("carol", "bob"),
        _reply_op("dave", "erin"),
        _vote_op("frank"),
    ))

    assert [e["post"]["author"] for e in posts.events] == ["alice"]
    assert posts.events[0]["block_num"] == 500
    assert posts.events[0]["post"]["created"] == "2023-11-14T12:00:00"
    assert [e["comment"]["author"] for e in comments.events] == ["carol"]
    assert [e["vote"]["voter"] for e in votes.events] == ["frank"]
    assert session.cursor == 500


def test_community_category_matches_without_tag(config):
    session = BlockStreamSession(FakeNode(), config)
    posts = Recorder()
    session.observe.on_posts_with_tags(["hive-115814"]).subscribe(posts)

    session.process_block(1, _block(_post_op("alice", ["football"])))

    assert len(posts.events) == 1


def test_unsubscribe_stops_delivery(config):
    session = BlockStreamSession(FakeNode(), config)
    votes = Recorder()
    subscription = session.observe.on_votes().subscribe(votes)

    subscription.unsubscribe()
    subscription.unsubscribe()
    session.process_block(1, _block(_vote_op("frank")))

    assert votes.events == []
    assert session.observer_count == 0


def test_failing_observer_does_not_block_others(config):
    session = BlockStreamSession(FakeNode(), config)

    class Broken(Recorder):
        def on_event(self, data):
            raise RuntimeError("boom")

    broken, healthy = Broken(), Recorder()
    session.observe.on_votes().subscribe(broken)
    session.observe.on_votes().subscribe(healthy)

    session.process_block(1, _block(_vote_op("frank")))

    assert len(healthy.events) == 1


@pytest.mark.asyncio
async def test_start_positions(config):
    node = FakeNode({"condenser_api.get_dynamic_global_properties": {"head_block_number": 1000}})

    live = BlockStreamSession(node, config)
    await live.start()
    history = BlockStreamSession(node, config)
    await history.start(process_history=True)
    resumed = BlockStreamSession(node, config, cursor=500)
    await resumed.start(process_history=True)

    try:
        assert live.get_stats()["next_block"] == 1001
        assert history.get_stats()["next_block"] == 901
        assert resumed.get_stats()["next_block"] == 501
    finally:
        for session in (live, history, resumed):
            await session.stop()


@pytest.mark.asyncio
async def test_follows_new_blocks_until_stopped(config):
    blocks = {
        11: {"block": _block(_vote_op("frank"))},
        12: {"block": _block(_vote_op("grace"))},
    }

    class ChainNode(FakeNode):
        async def call(self, method, params=None):
            self.calls.append((method, params))
            if method == "condenser_api.get_dynamic_global_properties":
                return {"head_block_number": 12}
            return blocks.get(params["block_num"])

    session = BlockStreamSession(ChainNode(), config, cursor=10)
    votes = Recorder()
    session.observe.on_votes().subscribe(votes)

    await session.start()
    for _ in range(50):
        if session.cursor == 12:
            break
        await asyncio.sleep(0.01)
    await session.stop()

    assert [e["vote"]["voter"] for e in votes.events] == ["frank", "grace"]
    assert session.cursor == 12
    assert not session.running


@pytest.mark.asyncio
async def test_poll_errors_reach_observers(config):
    class FlakyNode(FakeNode):
        def __init__(self):
            super().__init__()
            self.head_calls = 0

        async def call(self, method, params=None):
            self.head_calls += 1
            if self.head_calls == 1:
                return {"head_block_number": 5}
            raise ConnectionError("node down")

    session = BlockStreamSession(FlakyNode(), config)
    recorder = Recorder()
    session.observe.on_votes().subscribe(recorder)

    await session.start()
    for _ in range(50):
        if recorder.errors:
            break
        await asyncio.sleep(0.01)
    await session.stop()

    assert isinstance(recorder.errors[0], ConnectionError)
