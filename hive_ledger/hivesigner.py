"""
HiveSigner signing provider.

HiveSigner holds the user's posting authority behind an OAuth access token;
operations are POSTed to its broadcast endpoint and it signs and relays the
transaction.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlencode

import httpx

from .config import Settings, settings as default_settings
from .errors import ErrorKind, classify_error
from .logging_setup import get_logger
from .models import BroadcastResult, KeyScope, LedgerOperation, VoteIntent
from .operations import to_basis_points

log = get_logger(__name__)


def get_hivesigner_vote_url(intent: VoteIntent, config: Settings = default_settings) -> str:
    """Deep link for signing a vote through HiveSigner when no wallet is present."""
    params = urlencode({
        "author": intent.author,
        "permlink": intent.permlink,
        "voter": intent.voter,
        "weight": str(to_basis_points(intent.weight)),
    })
    return f"{config.hivesigner_vote_url}?{params}"


class HiveSignerProvider:
    def __init__(
        self,
        access_token: Optional[str],
        http_client: Optional[httpx.AsyncClient] = None,
        config: Settings = default_settings,
    ):
        self.access_token = access_token
        self.config = config
        self._client = http_client or httpx.AsyncClient(timeout=config.rpc_timeout)

    # ────────────────────────────────────────────────────────
    # Public API
    # ────────────────────────────────────────────────────────
    async def submit(
        self, operations: Sequence[LedgerOperation], key_scope: KeyScope = KeyScope.POSTING
    ) -> BroadcastResult:
        if not self.access_token:
            return BroadcastResult.failed(
                "HiveSigner session not available. Please log in again.", ErrorKind.AUTH_UNAVAILABLE
            )
        if key_scope is KeyScope.ACTIVE:
            return BroadcastResult.failed(
                "HiveSigner tokens only carry posting authority", ErrorKind.AUTH_UNAVAILABLE
            )

        payload = {"operations": [[op.name, op.body] for op in operations]}
        try:
            response = await self._client.post(
                self.config.hivesigner_api_url,
                json=payload,
                headers={"Authorization": self.access_token, "Accept": "application/json"},
            )
            data: Dict[str, Any] = response.json()
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
        except httpx.HTTPError as e:
            log.error("hivesigner_request_failed", error=str(e))
            return BroadcastResult.failed(f"HiveSigner request failed: {e}", ErrorKind.NETWORK)
        except ValueError:
            return BroadcastResult.failed(
                f"HiveSigner returned an unexpected response (HTTP {response.status_code})",
                ErrorKind.BROADCAST_FAILURE,
            )

        if response.is_error or data.get("error"):
            message = data.get("error_description") or data.get("error") or f"HTTP {response.status_code}"
            log.warning("hivesigner_rejected", status=response.status_code, error=message)
            code = data.get("error") if isinstance(data.get("error"), str) else None
            return BroadcastResult.failed(str(message), classify_error(str(message), code=code))

        result = data.get("result") if isinstance(data.get("result"), dict) else {}
        transaction_id = result.get("id") or data.get("id") or "unknown"
        log.info("hivesigner_broadcast_ok", tx_id=transaction_id, op_count=len(operations))
        return BroadcastResult(success=True, transaction_id=transaction_id)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HiveSignerProvider":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
