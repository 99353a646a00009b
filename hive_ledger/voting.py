"""Vote casting, weight calculation and vote introspection."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from .broadcast import submit_operations
from .config import Settings, settings as default_settings
from .confirmation import TransactionConfirmationPoller
from .errors import ErrorKind, ValidationError
from .hivesigner import get_hivesigner_vote_url
from .interfaces import NodeReader, SigningProvider
from .logging_setup import get_logger
from .models import (
    BroadcastResult,
    KeyScope,
    ProvisionalVoteRecord,
    VoteEligibility,
    VoteIntent,
    VoteRecord,
    VoteStats,
)
from .operations import create_vote_operation
from .types import RawContent

log = get_logger(__name__)

# Voting power regenerates 20% per day.
REGENERATION_PERCENT_PER_HOUR = 20 / 24
DEFAULT_HOURS_SINCE_VOTE = 24.0

# (power strictly above threshold, recommended weight), checked top down.
WEIGHT_TIERS: Tuple[Tuple[float, int], ...] = ((80, 100), (60, 80), (40, 60), (20, 40))
MIN_WEIGHT_TIER = 20

MAX_STARS = 5
PERCENT_PER_STAR = 20

AnyVoteRecord = Union[VoteRecord, ProvisionalVoteRecord]


def weight_for_power(power: float) -> int:
    """Staircase from voting power to recommended vote weight."""
    for threshold, weight in WEIGHT_TIERS:
        if power > threshold:
            return weight
    return MIN_WEIGHT_TIER


def reconcile_vote(local: Optional[AnyVoteRecord], authoritative: Optional[VoteRecord]) -> Optional[VoteRecord]:
    """Replace whatever the caller holds with the authoritative read.

    Provisional records are never merged into chain data.
    """
    if local is not None and local.provisional:
        log.debug("provisional_vote_replaced", voter=local.voter, found=authoritative is not None)
    return authoritative


class VoteBroadcaster:
    def __init__(
        self,
        node: NodeReader,
        provider: Optional[SigningProvider] = None,
        poller: Optional[TransactionConfirmationPoller] = None,
        config: Settings = default_settings,
        clock: Callable[[], float] = time.time,
    ):
        self.node = node
        self.provider = provider
        self.poller = poller
        self.config = config
        self.clock = clock

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #
    async def cast_vote(self, intent: VoteIntent, wait_for_confirmation: bool = False) -> BroadcastResult:
        """Broadcast a single vote; does not wait for inclusion unless asked."""
        try:
            operation = create_vote_operation(intent.voter, intent.author, intent.permlink, intent.weight)
        except ValidationError as e:
            return BroadcastResult.failed(str(e), ErrorKind.VALIDATION)

        log.debug("vote_operation_created", voter=intent.voter, author=intent.author,
                  permlink=intent.permlink, weight=operation.body["weight"])
        return await submit_operations(
            self.provider,
            [operation],
            label="vote",
            key_scope=KeyScope.POSTING,
            poller=self.poller,
            wait_for_confirmation=wait_for_confirmation,
        )

    async def remove_vote(self, voter: str, author: str, permlink: str) -> BroadcastResult:
        return await self.cast_vote(VoteIntent(voter=voter, author=author, permlink=permlink, weight=0))

    async def batch_vote(self, intents: Sequence[VoteIntent]) -> List[BroadcastResult]:
        """All votes in one transaction: every intent shares the outcome."""
        if not intents:
            return []

        try:
            operations = [
                create_vote_operation(v.voter, v.author, v.permlink, v.weight) for v in intents
            ]
        except ValidationError as e:
            return [BroadcastResult.failed(str(e), ErrorKind.VALIDATION) for _ in intents]

        log.info("batch_vote_submitting", count=len(operations))
        result = await submit_operations(self.provider, operations, label="batch_vote")
        return [
            BroadcastResult(
                success=result.success,
                transaction_id=result.transaction_id,
                error=result.error,
                error_kind=result.error_kind,
            )
            for _ in intents
        ]

    async def star_vote(
        self, voter: str, author: str, permlink: str, stars: int
    ) -> Tuple[BroadcastResult, Optional[ProvisionalVoteRecord]]:
        """Vote with 0-5 stars (20% per star).

        On success a provisional record is returned for immediate display; it
        must be replaced by the next :meth:`check_user_vote` read.
        """
        if stars < 0 or stars > MAX_STARS:
            return BroadcastResult.failed("Stars must be between 0 and 5", ErrorKind.VALIDATION), None

        percent = stars * PERCENT_PER_STAR
        result = await self.cast_vote(VoteIntent(voter=voter, author=author, permlink=permlink, weight=percent))
        if not result.success or stars == 0:
            return result, None

        provisional = ProvisionalVoteRecord(
            voter=voter,
            weight=0,
            rshares="0",
            percent=percent * 100,
            reputation="",
            time=datetime.fromtimestamp(self.clock(), tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S"),
        )
        return result, provisional

    def get_hivesigner_vote_url(self, intent: VoteIntent) -> str:
        return get_hivesigner_vote_url(intent, self.config)

    # ------------------------------------------------------------------ #
    # Advisory reads
    # ------------------------------------------------------------------ #
    async def get_user_voting_power(self, username: str) -> float:
        """Voting power as 0-100; 0 when it cannot be read."""
        try:
            accounts = await self.node.call("condenser_api.get_accounts", [[username]])
        except Exception as e:
            log.error("voting_power_read_failed", username=username, error=str(e))
            return 0.0

        if not accounts or not accounts[0].get("voting_power"):
            return 0.0
        return accounts[0]["voting_power"] / 100

    async def calculate_optimal_vote_weight(self, username: str, last_vote_time: Optional[datetime] = None) -> int:
        power = await self.get_user_voting_power(username)

        if last_vote_time is not None:
            now = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
            if last_vote_time.tzinfo is None:
                last_vote_time = last_vote_time.replace(tzinfo=timezone.utc)
            hours = max(0.0, (now - last_vote_time).total_seconds() / 3600)
        else:
            hours = DEFAULT_HOURS_SINCE_VOTE

        regenerated = min(100.0, round(power + hours * REGENERATION_PERCENT_PER_HOUR, 2))
        weight = weight_for_power(regenerated)
        log.debug("optimal_vote_weight", username=username, voting_power=power,
                  regenerated=regenerated, weight=weight)
        return weight

    async def can_user_vote(self, username: str) -> VoteEligibility:
        power = await self.get_user_voting_power(username)
        if power < self.config.min_voting_power:
            return VoteEligibility(
                can_vote=False,
                voting_power=power,
                reason=f"Insufficient voting power (less than {self.config.min_voting_power:g}%)",
            )
        return VoteEligibility(can_vote=True, voting_power=power)

    async def _read_content(self, author: str, permlink: str) -> Optional[RawContent]:
        post = await self.node.call("condenser_api.get_content", [author, permlink])
        # get_content returns an empty shell (author == "") for missing posts
        if not post or not post.get("author"):
            return None
        return post

    async def check_user_vote(self, author: str, permlink: str, voter: str) -> Optional[VoteRecord]:
        try:
            post = await self._read_content(author, permlink)
        except Exception as e:
            log.error("check_user_vote_failed", author=author, permlink=permlink, voter=voter, error=str(e))
            return None

        for raw in (post or {}).get("active_votes") or []:
            if raw.get("voter") == voter:
                return VoteRecord.from_raw(raw)
        return None

    async def get_post_votes(self, author: str, permlink: str) -> List[VoteRecord]:
        try:
            post = await self._read_content(author, permlink)
        except Exception as e:
            log.error("post_votes_read_failed", author=author, permlink=permlink, error=str(e))
            return []
        return [VoteRecord.from_raw(raw) for raw in (post or {}).get("active_votes") or []]

    async def get_vote_history(self, author: str, permlink: str, limit: int = 50) -> List[VoteRecord]:
        votes = await self.get_post_votes(author, permlink)
        # ISO timestamps sort chronologically as strings
        return sorted(votes, key=lambda v: v.time, reverse=True)[:limit]

    async def get_vote_stats(self, author: str, permlink: str) -> VoteStats:
        try:
            post = await self._read_content(author, permlink)
        except Exception as e:
            log.error("vote_stats_read_failed", author=author, permlink=permlink, error=str(e))
            return VoteStats()
        if post is None:
            return VoteStats()

        votes = post.get("active_votes") or []
        total_weight = sum(abs(int(v.get("weight", 0))) for v in votes)
        return VoteStats(
            total_votes=len(votes),
            upvotes=sum(1 for v in votes if int(v.get("percent", v.get("weight", 0))) > 0),
            downvotes=sum(1 for v in votes if int(v.get("percent", v.get("weight", 0))) < 0),
            net_votes=int(post.get("net_votes") or 0),
            total_weight=total_weight,
            average_weight=total_weight / len(votes) if votes else 0.0,
            pending_payout=_parse_amount(post.get("pending_payout_value")),
        )


def _parse_amount(value: Any) -> float:
    try:
        return float(str(value or "0").split()[0])
    except (ValueError, IndexError):
        return 0.0
