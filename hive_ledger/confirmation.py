"""Post-broadcast confirmation: a relay node accepting a transaction is not
proof that it was included in a block."""

from __future__ import annotations

import asyncio
from typing import Optional

from .config import Settings, settings as default_settings
from .errors import RpcTransportError, TransactionExpiredError
from .interfaces import NodeReader
from .logging_setup import get_logger
from .metrics import confirmations_total
from .models import ConfirmationResult
from .types import RawTransactionStatus

log = get_logger(__name__)

INCLUDED_STATUSES = frozenset({"within_reversible_block", "within_irreversible_block"})
PENDING_STATUSES = frozenset({"unknown", "within_mempool"})
EXPIRED_STATUSES = frozenset({"expired_reversible", "expired_irreversible", "too_old"})


class TransactionConfirmationPoller:
    def __init__(self, node: NodeReader, config: Settings = default_settings):
        self.node = node
        self.config = config

    async def wait_for_transaction(
        self,
        transaction_id: str,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> ConfirmationResult:
        """Poll until the transaction is in a block or ``timeout`` seconds pass.

        Cancelling the awaiting task stops polling; it has no effect on the
        broadcast itself. Raises :class:`TransactionExpiredError` when the node
        reports that the transaction can no longer be included, and lets node
        JSON-RPC errors propagate. Unreachable nodes are retried until the
        deadline.
        """
        if not transaction_id or transaction_id == "unknown":
            raise ValueError("A transaction id is required for confirmation")

        timeout = self.config.confirmation_timeout if timeout is None else timeout
        poll_interval = self.config.confirmation_poll_interval if poll_interval is None else poll_interval

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        polls = 0

        while True:
            polls += 1
            try:
                status: Optional[RawTransactionStatus] = await self.node.call(
                    "transaction_status_api.find_transaction", {"transaction_id": transaction_id}
                )
            except RpcTransportError as e:
                log.warning("confirmation_poll_failed", tx_id=transaction_id, error=str(e))
                status = None

            state = (status or {}).get("status", "unknown")
            if state in INCLUDED_STATUSES:
                block_number = status.get("block_num")
                confirmations_total.labels(outcome="confirmed").inc()
                log.info("transaction_confirmed", tx_id=transaction_id, block_num=block_number, polls=polls)
                return ConfirmationResult(confirmed=True, block_number=block_number)

            if state in EXPIRED_STATUSES:
                confirmations_total.labels(outcome="expired").inc()
                log.warning("transaction_expired", tx_id=transaction_id, status=state)
                raise TransactionExpiredError(transaction_id, state)

            if state not in PENDING_STATUSES:
                log.debug("transaction_status_unrecognized", tx_id=transaction_id, status=state)

            remaining = deadline - loop.time()
            if remaining <= 0:
                confirmations_total.labels(outcome="timeout").inc()
                log.warning("confirmation_timed_out", tx_id=transaction_id, timeout=timeout, polls=polls)
                return ConfirmationResult(confirmed=False, timed_out=True)

            await asyncio.sleep(min(poll_interval, remaining))
