from __future__ import annotations

from prometheus_client import Counter, Gauge


broadcasts_total = Counter(
    "hive_ledger_broadcasts_total",
    "Transactions handed to the signing provider",
    ["operation"],
)

broadcast_errors_total = Counter(
    "hive_ledger_broadcast_errors_total",
    "Failed broadcast attempts by error kind",
    ["operation", "kind"],
)

confirmations_total = Counter(
    "hive_ledger_confirmations_total",
    "Transaction confirmation outcomes",
    ["outcome"],
)

rpc_calls_total = Counter(
    "hive_ledger_rpc_calls_total",
    "JSON-RPC calls by outcome",
    ["method", "outcome"],
)

rpc_failovers_total = Counter(
    "hive_ledger_rpc_failovers_total",
    "Node failovers after transport errors",
)

events_dispatched_total = Counter(
    "hive_ledger_events_dispatched_total",
    "Chain events delivered to callbacks",
    ["event_type"],
)

events_dropped_total = Counter(
    "hive_ledger_events_dropped_total",
    "Raw feed payloads dropped before dispatch",
    ["feed", "reason"],
)

callback_errors_total = Counter(
    "hive_ledger_callback_errors_total",
    "Exceptions raised by event callbacks",
)

events_published_total = Counter(
    "hive_ledger_events_published_total",
    "Chain events published to NATS",
)

publish_errors_total = Counter(
    "hive_ledger_publish_errors_total",
    "Total NATS publish errors",
)

monitor_running = Gauge(
    "hive_ledger_monitor_running",
    "Realtime monitor state (1=running, 0=stopped)",
)

nats_connected = Gauge(
    "nats_connected",
    "NATS connection status (1=connected, 0=disconnected)",
)

last_block_number = Gauge(
    "hive_ledger_last_block_number",
    "Latest block processed by the block stream",
)
