"""Hive ledger core: voting, publishing, confirmation and realtime monitoring."""

from .block_stream import BlockStreamSession
from .confirmation import TransactionConfirmationPoller
from .errors import ErrorKind, HiveLedgerError, classify_error
from .hivesigner import HiveSignerProvider, get_hivesigner_vote_url
from .posting import PostBroadcaster
from .realtime import RealtimeMonitor
from .resource_credits import ResourceCreditGuard
from .rpc_client import NodeClient
from .voting import VoteBroadcaster

__all__ = [
    "BlockStreamSession",
    "ErrorKind",
    "HiveLedgerError",
    "HiveSignerProvider",
    "NodeClient",
    "PostBroadcaster",
    "RealtimeMonitor",
    "ResourceCreditGuard",
    "TransactionConfirmationPoller",
    "VoteBroadcaster",
    "classify_error",
    "get_hivesigner_vote_url",
]
