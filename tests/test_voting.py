from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from conftest import NOW, FakeNode, FakeProvider, vote_entry
from hive_ledger.errors import ErrorKind, RpcTransportError
from hive_ledger.models import BroadcastResult, KeyScope, VoteIntent, VoteRecord
from hive_ledger.voting import VoteBroadcaster, get_hivesigner_vote_url, reconcile_vote, weight_for_power


def _accounts(voting_power):
    return [{"name": "alice", "voting_power": voting_power}]


def _broadcaster(node, config, clock, provider=None):
    return VoteBroadcaster(node, provider=provider, config=config, clock=clock)


@pytest.mark.parametrize("power,expected", [(85, 100), (70, 80), (50, 60), (30, 40), (10, 20)])
@pytest.mark.asyncio
async def test_optimal_weight_staircase_after_recent_vote(config, clock, power, expected):
    """With no regeneration time the staircase maps power straight to weight."""
    node = FakeNode({"condenser_api.get_accounts": _accounts(power * 100)})
    broadcaster = _broadcaster(node, config, clock)
    just_now = datetime.fromtimestamp(NOW, tz=timezone.utc)

    assert await broadcaster.calculate_optimal_vote_weight("alice", last_vote_time=just_now) == expected


@pytest.mark.asyncio
async def test_optimal_weight_floor_when_lookup_fails(config, clock):
    """A failed lookup reads as 0% power; 24h of regeneration lands on 20."""
    node = FakeNode({"condenser_api.get_accounts": RpcTransportError("down")})
    broadcaster = _broadcaster(node, config, clock)
    day_ago = datetime.fromtimestamp(NOW, tz=timezone.utc) - timedelta(hours=24)

    assert await broadcaster.calculate_optimal_vote_weight("alice", last_vote_time=day_ago) == 20
    assert await broadcaster.calculate_optimal_vote_weight("alice") == 20


def test_weight_for_power_boundaries():
    assert weight_for_power(100) == 100
    assert weight_for_power(80) == 80
    assert weight_for_power(20) == 20
    assert weight_for_power(0) == 20


@pytest.mark.asyncio
async def test_cast_vote_converts_to_basis_points(config, clock, provider):
    broadcaster = _broadcaster(FakeNode(), config, clock, provider)

    result = await broadcaster.cast_vote(VoteIntent("alice", "bob", "my-post", 33.33))

    assert result.success
    assert result.transaction_id == "abc123"
    operations, key_scope = provider.calls[0]
    assert key_scope is KeyScope.POSTING
    assert operations[0].name == "vote"
    assert operations[0].body == {"voter": "alice", "author": "bob", "permlink": "my-post", "weight": 3333}


@pytest.mark.asyncio
async def test_cast_vote_rejects_out_of_range_weight(config, clock, provider):
    broadcaster = _broadcaster(FakeNode(), config, clock, provider)

    result = await broadcaster.cast_vote(VoteIntent("alice", "bob", "my-post", 150))

    assert not result.success
    assert result.error_kind is ErrorKind.VALIDATION
    assert provider.calls == []


@pytest.mark.asyncio
async def test_cast_vote_without_provider_is_auth_unavailable(config, clock):
    broadcaster = _broadcaster(FakeNode(), config, clock)

    result = await broadcaster.cast_vote(VoteIntent("alice", "bob", "my-post", 50))

    assert not result.success
    assert result.error_kind is ErrorKind.AUTH_UNAVAILABLE


@pytest.mark.asyncio
async def test_remove_vote_sends_zero_weight(config, clock, provider):
    broadcaster = _broadcaster(FakeNode(), config, clock, provider)

    await broadcaster.remove_vote("alice", "bob", "my-post")

    operations, _ = provider.calls[0]
    assert operations[0].body["weight"] == 0


@pytest.mark.asyncio
async def test_provider_exception_is_classified(config, clock):
    provider = FakeProvider(error=RuntimeError("User cancelled the request"))
    broadcaster = _broadcaster(FakeNode(), config, clock, provider)

    result = await broadcaster.cast_vote(VoteIntent("alice", "bob", "my-post", 50))

    assert not result.success
    assert result.error == "User cancelled the request"
    assert result.error_kind is ErrorKind.USER_CANCELLED


@pytest.mark.asyncio
async def test_batch_vote_is_one_transaction_with_shared_outcome(config, clock):
    """Every intent gets the same error when the single transaction fails."""
    provider = FakeProvider(result=BroadcastResult(success=False, error="Transaction rejected"))
    broadcaster = _broadcaster(FakeNode(), config, clock, provider)
    intents = [VoteIntent("alice", author, "post", 50) for author in ("bob", "carol", "dave")]

    results = await broadcaster.batch_vote(intents)

    assert len(provider.calls) == 1
    assert len(provider.calls[0][0]) == 3
    assert len(results) == 3
    assert all(not r.success for r in results)
    assert {r.error for r in results} == {"Transaction rejected"}


@pytest.mark.asyncio
async def test_batch_vote_empty_is_noop(config, clock, provider):
    broadcaster = _broadcaster(FakeNode(), config, clock, provider)

    assert await broadcaster.batch_vote([]) == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_star_vote_returns_provisional_record(config, clock, provider):
    broadcaster = _broadcaster(FakeNode(), config, clock, provider)

    result, provisional = await broadcaster.star_vote("alice", "bob", "my-post", 3)

    assert result.success
    assert provider.calls[0][0][0].body["weight"] == 6000
    assert provisional is not None
    assert provisional.provisional is True
    assert provisional.percent == 6000
    assert provisional.percent_weight == 60


@pytest.mark.asyncio
async def test_star_vote_rejects_out_of_range(config, clock, provider):
    broadcaster = _broadcaster(FakeNode(), config, clock, provider)

    result, provisional = await broadcaster.star_vote("alice", "bob", "my-post", 6)

    assert result.error_kind is ErrorKind.VALIDATION
    assert provisional is None
    assert provider.calls == []


@pytest.mark.asyncio
async def test_provisional_vote_is_replaced_by_authoritative_read(config, clock, provider):
    node = FakeNode({
        "condenser_api.get_content": {"author": "bob", "active_votes": [vote_entry("alice", 5000)]},
    })
    broadcaster = _broadcaster(node, config, clock, provider)
    _, provisional = await broadcaster.star_vote("alice", "bob", "my-post", 3)

    authoritative = await broadcaster.check_user_vote("bob", "my-post", "alice")
    reconciled = reconcile_vote(provisional, authoritative)

    assert isinstance(reconciled, VoteRecord)
    assert reconciled.provisional is False
    assert reconciled.percent == 5000
    assert reconcile_vote(provisional, None) is None


@pytest.mark.asyncio
async def test_check_user_vote_is_none_on_read_failure(config, clock):
    node = FakeNode({"condenser_api.get_content": RpcTransportError("down")})
    broadcaster = _broadcaster(node, config, clock)

    assert await broadcaster.check_user_vote("bob", "my-post", "alice") is None


@pytest.mark.asyncio
async def test_check_user_vote_missing_post(config, clock):
    node = FakeNode({"condenser_api.get_content": {"author": "", "permlink": ""}})
    broadcaster = _broadcaster(node, config, clock)

    assert await broadcaster.check_user_vote("bob", "my-post", "alice") is None


@pytest.mark.asyncio
async def test_can_user_vote(config, clock):
    broadcaster = _broadcaster(FakeNode({"condenser_api.get_accounts": _accounts(50)}), config, clock)

    eligibility = await broadcaster.can_user_vote("alice")

    assert not eligibility.can_vote
    assert eligibility.voting_power == 0.5
    assert eligibility.reason == "Insufficient voting power (less than 1%)"

    broadcaster = _broadcaster(FakeNode({"condenser_api.get_accounts": _accounts(9000)}), config, clock)
    eligibility = await broadcaster.can_user_vote("alice")
    assert eligibility.can_vote
    assert eligibility.voting_power == 90


@pytest.mark.asyncio
async def test_vote_history_and_stats(config, clock):
    node = FakeNode({
        "condenser_api.get_content": {
            "author": "bob",
            "net_votes": 1,
            "pending_payout_value": "1.250 HBD",
            "active_votes": [
                vote_entry("alice", 10000, time="2023-11-14T10:00:00"),
                vote_entry("carol", 5000, time="2023-11-14T12:00:00"),
                vote_entry("dave", -2000, time="2023-11-14T11:00:00"),
            ],
        },
    })
    broadcaster = _broadcaster(node, config, clock)

    history = await broadcaster.get_vote_history("bob", "my-post", limit=2)
    stats = await broadcaster.get_vote_stats("bob", "my-post")

    assert [v.voter for v in history] == ["carol", "dave"]
    assert stats.total_votes == 3
    assert stats.upvotes == 2
    assert stats.downvotes == 1
    assert stats.net_votes == 1
    assert stats.pending_payout == 1.25


def test_hivesigner_vote_url_uses_basis_points(config):
    url = get_hivesigner_vote_url(VoteIntent("alice", "bob", "my-post", 75), config)

    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://hivesigner.com/sign/vote"
    assert parse_qs(parsed.query) == {
        "author": ["bob"],
        "permlink": ["my-post"],
        "voter": ["alice"],
        "weight": ["7500"],
    }
