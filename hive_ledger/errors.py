"""Error taxonomy for ledger mutations and reads.

Mutation paths never raise these to their callers; they are converted into
``BroadcastResult`` objects carrying an :class:`ErrorKind`. The exceptions are
raised internally and by the lower-level adapters (RPC client, poller).
"""

from __future__ import annotations

import enum
from typing import Any, List, Optional


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    AUTH_UNAVAILABLE = "auth_unavailable"
    INSUFFICIENT_RESOURCE_CREDITS = "insufficient_resource_credits"
    BROADCAST_FAILURE = "broadcast_failure"
    USER_CANCELLED = "user_cancelled"
    NETWORK = "network"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    TRANSACTION_EXPIRED = "transaction_expired"
    READ_FAILURE = "read_failure"


class HiveLedgerError(Exception):
    kind: ErrorKind = ErrorKind.BROADCAST_FAILURE


class ValidationError(HiveLedgerError):
    kind = ErrorKind.VALIDATION

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class AuthUnavailableError(HiveLedgerError):
    kind = ErrorKind.AUTH_UNAVAILABLE


class InsufficientResourceCreditsError(HiveLedgerError):
    kind = ErrorKind.INSUFFICIENT_RESOURCE_CREDITS


class BroadcastError(HiveLedgerError):
    kind = ErrorKind.BROADCAST_FAILURE


class ConfirmationTimeoutError(HiveLedgerError):
    kind = ErrorKind.CONFIRMATION_TIMEOUT


class TransactionExpiredError(HiveLedgerError):
    kind = ErrorKind.TRANSACTION_EXPIRED

    def __init__(self, transaction_id: str, status: str):
        self.transaction_id = transaction_id
        self.status = status
        super().__init__(f"Transaction {transaction_id} was not included ({status})")


class ReadFailureError(HiveLedgerError):
    kind = ErrorKind.READ_FAILURE


class RpcError(ReadFailureError):
    """JSON-RPC error object returned by a node."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(message)


class RpcTransportError(ReadFailureError):
    """No node could be reached."""
    kind = ErrorKind.NETWORK


# Provider error codes understood without looking at the message text.
_PROVIDER_CODES = {
    "validation": ErrorKind.VALIDATION,
    "unauthorized": ErrorKind.AUTH_UNAVAILABLE,
    "auth_required": ErrorKind.AUTH_UNAVAILABLE,
    "invalid_grant": ErrorKind.AUTH_UNAVAILABLE,
    "unauthorized_access": ErrorKind.AUTH_UNAVAILABLE,
    "insufficient_rc": ErrorKind.INSUFFICIENT_RESOURCE_CREDITS,
    "user_cancel": ErrorKind.USER_CANCELLED,
    "network": ErrorKind.NETWORK,
    "timeout": ErrorKind.NETWORK,
}

# Last resort for unstructured upstream messages. Checked in order.
# TODO: reverify these fragments against current hived / keychain messages.
_MESSAGE_FRAGMENTS = (
    (ErrorKind.INSUFFICIENT_RESOURCE_CREDITS, ("insufficient", "rc mana", "resource credit", "bandwidth")),
    (ErrorKind.USER_CANCELLED, ("cancel", "denied", "rejected by user", "user rejected")),
    (ErrorKind.AUTH_UNAVAILABLE, ("not available", "log in again", "authentication required", "missing authority")),
    (ErrorKind.NETWORK, ("network", "fetch", "timeout", "timed out", "connection")),
)


def classify_error(error: Any, code: Optional[str] = None) -> ErrorKind:
    """Map an exception, message or provider code to an :class:`ErrorKind`."""
    if isinstance(error, ErrorKind):
        return error
    if isinstance(error, HiveLedgerError):
        return error.kind

    if code is None:
        code = getattr(error, "code", None)
    if isinstance(code, str) and code.lower() in _PROVIDER_CODES:
        return _PROVIDER_CODES[code.lower()]

    message = str(error or "").lower()
    for kind, fragments in _MESSAGE_FRAGMENTS:
        if any(fragment in message for fragment in fragments):
            return kind
    return ErrorKind.BROADCAST_FAILURE
