"""Submission path shared by the vote and post broadcasters."""

from __future__ import annotations

from typing import Optional, Sequence

from .confirmation import TransactionConfirmationPoller
from .errors import ErrorKind, HiveLedgerError, classify_error
from .interfaces import SigningProvider
from .logging_setup import get_logger
from .metrics import broadcast_errors_total, broadcasts_total
from .models import BroadcastResult, KeyScope, LedgerOperation

log = get_logger(__name__)

AUTH_UNAVAILABLE_MESSAGE = "Signing provider is not available. Please log in again and retry."


async def submit_operations(
    provider: Optional[SigningProvider],
    operations: Sequence[LedgerOperation],
    *,
    label: str,
    key_scope: KeyScope = KeyScope.POSTING,
    poller: Optional[TransactionConfirmationPoller] = None,
    wait_for_confirmation: bool = False,
) -> BroadcastResult:
    """Submit ``operations`` as one transaction and report a structured result.

    Provider errors are passed through verbatim in ``error``; nothing here
    retries a broadcast.
    """
    if provider is None:
        broadcast_errors_total.labels(operation=label, kind=ErrorKind.AUTH_UNAVAILABLE.value).inc()
        log.warning("broadcast_without_provider", operation=label)
        return BroadcastResult.failed(AUTH_UNAVAILABLE_MESSAGE, ErrorKind.AUTH_UNAVAILABLE)

    broadcasts_total.labels(operation=label).inc()
    log.debug("broadcast_submitting", operation=label, op_count=len(operations), key_scope=key_scope.value)

    try:
        result = await provider.submit(list(operations), key_scope)
    except Exception as e:
        kind = classify_error(e)
        broadcast_errors_total.labels(operation=label, kind=kind.value).inc()
        log.error("broadcast_failed", operation=label, error=str(e), kind=kind.value)
        return BroadcastResult.failed(str(e), kind)

    if not result.success:
        kind = result.error_kind or classify_error(result.error)
        broadcast_errors_total.labels(operation=label, kind=kind.value).inc()
        log.error("broadcast_rejected", operation=label, error=result.error, kind=kind.value)
        return BroadcastResult.failed(result.error or "Transaction failed: Unknown error", kind)

    transaction_id = result.transaction_id or "unknown"
    log.info("broadcast_accepted", operation=label, tx_id=transaction_id)
    accepted = BroadcastResult(success=True, transaction_id=transaction_id)

    if wait_for_confirmation and poller is not None and transaction_id != "unknown":
        try:
            accepted.confirmation = await poller.wait_for_transaction(transaction_id)
        except HiveLedgerError as e:
            accepted.error = str(e)
            accepted.error_kind = e.kind
            if e.kind is ErrorKind.TRANSACTION_EXPIRED:
                accepted.success = False
        if accepted.confirmation is not None and accepted.confirmation.timed_out:
            accepted.error_kind = ErrorKind.CONFIRMATION_TIMEOUT

    return accepted
