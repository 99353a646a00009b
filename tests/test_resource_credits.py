import pytest

from conftest import NOW, FakeNode
from hive_ledger.errors import RpcError, RpcTransportError
from hive_ledger.resource_credits import (
    INSUFFICIENT_RC_MESSAGE,
    RC_CHECK_FAILED_MESSAGE,
    ResourceCreditGuard,
    current_mana,
    get_estimated_rc_cost,
    manabar_percentage,
)


def _rc_account(current_mana, max_rc=1_000_000, seconds_ago=0):
    return {
        "account": "alice",
        "rc_manabar": {"current_mana": str(current_mana), "last_update_time": int(NOW) - seconds_ago},
        "max_rc": str(max_rc),
    }


def test_current_mana_regenerates_linearly_and_caps():
    assert current_mana(0, 1_000_000, 0, 216_000, 432_000) == 500_000
    assert current_mana(900_000, 1_000_000, 0, 432_000, 432_000) == 1_000_000
    assert current_mana(100, 1_000_000, 50, 10, 432_000) == 100


def test_manabar_percentage_two_decimals():
    assert manabar_percentage(123_456, 1_000_000) == 12.34
    assert manabar_percentage(1, 0) == 0.0


def test_estimated_rc_cost_has_floor():
    assert get_estimated_rc_cost(10) == 1000
    assert get_estimated_rc_cost(10_000) == 12_000


@pytest.mark.asyncio
async def test_fails_closed_when_every_read_fails(config, clock):
    """No readable RC status means posting is not allowed."""
    node = FakeNode({
        "rc_api.find_rc_accounts": RpcTransportError("down"),
        "condenser_api.get_accounts": RpcTransportError("down"),
    })
    guard = ResourceCreditGuard(node, config, clock)

    status = await guard.can_user_post("alice")

    assert status.can_post is False
    assert status.rc_percentage == 0.0
    assert status.message == RC_CHECK_FAILED_MESSAGE


@pytest.mark.asyncio
async def test_below_threshold_blocks_posting(config, clock):
    node = FakeNode({"rc_api.find_rc_accounts": {"rc_accounts": [_rc_account(50_000)]}})
    guard = ResourceCreditGuard(node, config, clock)

    status = await guard.can_user_post("alice")

    assert not status.can_post
    assert status.rc_percentage == 5.0
    assert status.message == INSUFFICIENT_RC_MESSAGE
    assert (await guard.require_post_budget("alice")) == status


@pytest.mark.asyncio
async def test_regenerated_mana_counts(config, clock):
    node = FakeNode({"rc_api.find_rc_accounts": {"rc_accounts": [_rc_account(0, seconds_ago=216_000)]}})
    guard = ResourceCreditGuard(node, config, clock)

    status = await guard.can_user_post("alice")

    assert status.can_post
    assert status.rc_percentage == 50.0
    assert await guard.require_post_budget("alice") is None


@pytest.mark.asyncio
async def test_falls_back_to_account_api(config, clock):
    node = FakeNode({
        "rc_api.find_rc_accounts": RpcError("API error: method not found", code=-32601),
        "condenser_api.get_accounts": [_rc_account(800_000)],
    })
    guard = ResourceCreditGuard(node, config, clock)

    status = await guard.can_user_post("alice")

    assert status.can_post
    assert status.rc_percentage == 80.0
    assert node.methods() == ["rc_api.find_rc_accounts", "condenser_api.get_accounts"]


@pytest.mark.asyncio
async def test_unknown_account_does_not_fall_back(config, clock):
    node = FakeNode({"rc_api.find_rc_accounts": {"rc_accounts": []}})
    guard = ResourceCreditGuard(node, config, clock)

    status = await guard.can_user_post("ghost")

    assert not status.can_post
    assert status.message == "Account not found"
    assert node.methods() == ["rc_api.find_rc_accounts"]


@pytest.mark.asyncio
async def test_missing_manabar(config, clock):
    node = FakeNode({"rc_api.find_rc_accounts": {"rc_accounts": [{"account": "alice"}]}})
    guard = ResourceCreditGuard(node, config, clock)

    status = await guard.can_user_post("alice")

    assert not status.can_post
    assert status.message == "Resource Credits information not available"
