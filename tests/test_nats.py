import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from nats.errors import TimeoutError

from hive_ledger.cursor_store import BlockCursorStore
from hive_ledger.events import NewVote
from hive_ledger.nats_client import NatsEventPublisher


def _publisher(config, ack_stream="hive-events"):
    publisher = NatsEventPublisher(config=config, max_retries=2)
    publisher.js = AsyncMock()
    publisher.js.publish.return_value = MagicMock(stream=ack_stream)
    return publisher


@pytest.mark.asyncio
async def test_publish_event_uses_event_type_subject(config):
    publisher = _publisher(config)
    vote = NewVote(voter="alice", author="bob", permlink="p", weight=5000, timestamp="2023-11-14T12:00:00")

    await publisher.publish_event(vote)

    subject, payload = publisher.js.publish.call_args.args
    assert subject == "hive.events.new_vote"
    assert json.loads(payload)["voter"] == "alice"
    assert publisher.publish_count == 1


@pytest.mark.asyncio
async def test_publish_retries_timeouts_then_raises(config):
    publisher = _publisher(config)
    publisher.js.publish.side_effect = TimeoutError()

    with pytest.raises(TimeoutError):
        await publisher.publish_json("new_vote", b"{}")

    assert publisher.js.publish.call_count == 3
    assert publisher.error_count == 3


@pytest.mark.asyncio
async def test_publish_requires_connection(config):
    publisher = NatsEventPublisher(config=config)

    with pytest.raises(RuntimeError):
        await publisher.publish_json("new_vote", b"{}")
    assert publisher.connected is False


@pytest.mark.asyncio
async def test_cursor_round_trip_through_kv(config):
    stored = {}
    kv = AsyncMock()

    async def put(key, value):
        stored[key] = value

    async def get(key):
        return MagicMock(value=stored[key])

    kv.put.side_effect = put
    kv.get.side_effect = get
    js = AsyncMock()
    js.key_value.return_value = kv

    store = BlockCursorStore(js, config)
    await store.initialize()

    assert await store.save_cursor(81234567) is True
    assert await store.load_cursor() == 81234567
    assert list(stored) == ["hive-ledger-monitor.cursor"]


@pytest.mark.asyncio
async def test_cursor_store_creates_bucket_and_handles_missing_key(config):
    kv = AsyncMock()
    kv.get.side_effect = KeyError("no key")
    js = AsyncMock()
    js.key_value.side_effect = Exception("bucket not found")
    js.create_key_value.return_value = kv

    store = BlockCursorStore(js, config)
    await store.initialize()

    js.create_key_value.assert_awaited_once()
    assert await store.load_cursor() is None


@pytest.mark.asyncio
async def test_cursor_store_ignores_unreadable_value(config):
    kv = AsyncMock()
    kv.get.return_value = MagicMock(value=b"not json")
    js = AsyncMock()
    js.key_value.return_value = kv

    store = BlockCursorStore(js, config)
    await store.initialize()

    assert await store.load_cursor() is None
