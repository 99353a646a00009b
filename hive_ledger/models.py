"""Intents, results and read projections exchanged with callers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional

from .errors import ErrorKind
from .types import RawVote


class KeyScope(str, enum.Enum):
    POSTING = "posting"
    ACTIVE = "active"


class LedgerOperation(NamedTuple):
    """``[name, body]`` pair destined for a single signed transaction."""
    name: str
    body: Dict[str, Any]


@dataclass(frozen=True)
class VoteIntent:
    voter: str
    author: str
    permlink: str
    weight: float  # percent, -100..100; 0 removes the vote


@dataclass(frozen=True)
class Beneficiary:
    account: str
    weight: int  # basis points, 1..10000


@dataclass(frozen=True)
class SubCommunity:
    id: str
    slug: str
    name: str


@dataclass
class PostIntent:
    title: str
    body: str
    author: str
    tags: List[str] = field(default_factory=list)
    parent_author: Optional[str] = None
    parent_permlink: Optional[str] = None
    sub_community: Optional[SubCommunity] = None
    beneficiaries: Optional[List[Beneficiary]] = None
    sport_category: Optional[str] = None
    featured_image: Optional[str] = None
    json_metadata: Optional[Dict[str, Any]] = None


@dataclass
class CommentIntent:
    author: str
    body: str
    parent_author: str
    parent_permlink: str
    json_metadata: Optional[Dict[str, Any]] = None


@dataclass
class UpdateIntent:
    author: str
    permlink: str
    title: Optional[str] = None
    body: Optional[str] = None
    json_metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class DeleteIntent:
    author: str
    permlink: str


@dataclass(frozen=True)
class ConfirmationResult:
    confirmed: bool
    block_number: Optional[int] = None
    timed_out: bool = False


@dataclass
class BroadcastResult:
    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    confirmation: Optional[ConfirmationResult] = None

    @classmethod
    def failed(cls, error: str, kind: ErrorKind) -> "BroadcastResult":
        return cls(success=False, error=error, error_kind=kind)


@dataclass
class PublishResult(BroadcastResult):
    author: Optional[str] = None
    permlink: Optional[str] = None
    url: Optional[str] = None
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: List[str]


@dataclass(frozen=True)
class ResourceCreditStatus:
    can_post: bool
    rc_percentage: float
    message: Optional[str] = None


@dataclass(frozen=True)
class VoteEligibility:
    can_vote: bool
    voting_power: float
    reason: Optional[str] = None


@dataclass(frozen=True)
class VoteRecord:
    """Authoritative vote as read from the chain."""
    voter: str
    weight: int
    rshares: str
    percent: int
    reputation: str
    time: str
    provisional: bool = field(default=False, init=False)

    @property
    def percent_weight(self) -> float:
        """Vote strength as a -100..100 percentage."""
        return self.percent / 100

    @classmethod
    def from_raw(cls, raw: RawVote) -> "VoteRecord":
        return cls(
            voter=raw["voter"],
            weight=int(raw.get("weight", 0)),
            rshares=str(raw.get("rshares", "0")),
            percent=int(raw.get("percent", 0)),
            reputation=str(raw.get("reputation", "")),
            time=str(raw.get("time", "")),
        )


@dataclass(frozen=True)
class ProvisionalVoteRecord:
    """Locally synthesized vote shown until the chain read path catches up."""
    voter: str
    weight: int
    rshares: str
    percent: int
    reputation: str
    time: str
    provisional: bool = field(default=True, init=False)

    @property
    def percent_weight(self) -> float:
        return self.percent / 100


@dataclass(frozen=True)
class VoteStats:
    total_votes: int = 0
    upvotes: int = 0
    downvotes: int = 0
    net_votes: int = 0
    total_weight: int = 0
    average_weight: float = 0.0
    pending_payout: float = 0.0
