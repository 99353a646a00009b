"""Type definitions for raw node payloads."""

from typing import TypedDict, List, Optional


class RawVote(TypedDict, total=False):
    """Entry of a post's ``active_votes`` list."""
    voter: str
    weight: int
    rshares: str
    percent: int
    reputation: str
    time: str  # ISO 8601 timestamp without zone


class RawContent(TypedDict, total=False):
    """Subset of ``condenser_api.get_content`` used by the broadcasters."""
    author: str
    permlink: str
    parent_author: str
    parent_permlink: str
    title: str
    body: str
    json_metadata: str  # JSON encoded object
    created: str
    net_votes: int
    pending_payout_value: str  # e.g. "1.234 HBD"
    active_votes: List[RawVote]


class RawManabar(TypedDict):
    current_mana: str
    last_update_time: int


class RawRcAccount(TypedDict):
    account: str
    rc_manabar: RawManabar
    max_rc: str


class RawTransactionStatus(TypedDict, total=False):
    """Result of ``transaction_status_api.find_transaction``."""
    status: str
    block_num: Optional[int]
    rc_cost: Optional[int]
