"""
JSON-RPC client for Hive API nodes with ordered failover.
"""

from __future__ import annotations

import itertools
from typing import Any, List, Optional, Sequence

import backoff
import httpx

from .config import settings
from .errors import RpcError, RpcTransportError
from .logging_setup import get_logger
from .metrics import rpc_calls_total, rpc_failovers_total

log = get_logger(__name__)


class NodeClient:
    """
    Minimal wrapper around httpx.AsyncClient that walks the node list.

    Transport failures and non-2xx responses move on to the next node; a
    JSON-RPC ``error`` object is the node's answer and is raised as
    :class:`RpcError` without trying further nodes.
    """

    def __init__(
        self,
        nodes: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.nodes: List[str] = list(dict.fromkeys(settings.hive_nodes if nodes is None else nodes))
        if not self.nodes:
            raise ValueError("At least one Hive node URL is required")
        self.timeout = timeout or settings.rpc_timeout
        self._client = http_client or httpx.AsyncClient(timeout=self.timeout)
        self._ids = itertools.count(1)

    # ────────────────────────────────────────────────────────
    # Public API
    # ────────────────────────────────────────────────────────
    async def call(self, method: str, params: Any = None) -> Any:
        """Call ``api.method`` (e.g. ``condenser_api.get_content``)."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": [] if params is None else params,
            "id": next(self._ids),
        }

        last_error: Optional[Exception] = None
        for index, node in enumerate(self.nodes):
            if index:
                rpc_failovers_total.inc()
            try:
                body = await self._post(node, payload)
            except (httpx.HTTPError, ValueError) as e:
                log.warning("rpc_node_failed", node=node, method=method, error=str(e))
                last_error = e
                continue

            if body.get("error"):
                error = body["error"]
                rpc_calls_total.labels(method=method, outcome="error").inc()
                raise RpcError(
                    f"API error from {node}: {error.get('message', 'unknown error')}",
                    code=error.get("code"),
                    data=error.get("data"),
                )

            rpc_calls_total.labels(method=method, outcome="ok").inc()
            log.debug("rpc_call_ok", node=node, method=method)
            return body.get("result")

        rpc_calls_total.labels(method=method, outcome="unreachable").inc()
        raise RpcTransportError(f"All Hive API nodes failed. Last error: {last_error}")

    @backoff.on_exception(
        backoff.expo, httpx.TransportError, max_tries=2, jitter=None, factor=0.1
    )
    async def _post(self, node: str, payload: dict) -> dict:
        response = await self._client.post(node, json=payload)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Expected JSON object from {node}")
        return data

    # ────────────────────────────────────────────────────────
    # Context manager helpers
    # ────────────────────────────────────────────────────────
    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "NodeClient":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()
