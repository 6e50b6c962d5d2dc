"""
Observability module: Prometheus metrics and structured JSON logging.

- Reconciliation metrics (Counters, Gauges, Histogram)
- Optional standalone /metrics HTTP endpoint
- JSON structured logging via python-json-logger
"""

import logging
import sys

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger("printer-manager")

# =============================================================================
# Prometheus Custom Metrics
# =============================================================================

SYNC_RUNS = Counter(
    "printer_manager_sync_runs_total",
    "Number of reconciliation runs by trigger and outcome",
    ["trigger", "outcome"],
)

SYNC_DURATION = Histogram(
    "printer_manager_sync_duration_seconds",
    "Latency of a full reconciliation run",
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)

SPOOLER_MUTATIONS = Counter(
    "printer_manager_spooler_mutations_total",
    "Spooler changes issued by the reconciler",
    ["operation"],
)

ERRORED_PRINTERS = Gauge(
    "printer_manager_errored_printers",
    "Number of desired printers that failed to register in the last run",
)

CACHE_ENTRIES = Gauge(
    "printer_manager_cache_entries",
    "Number of printer ids tracked in the expiring cache",
)

RETRIES_TOTAL = Counter(
    "printer_manager_retries_total",
    "Retried calls to the spooler or directory service",
    ["name"],
)

CONTROL_COMMANDS = Counter(
    "printer_manager_control_commands_total",
    "Control commands processed by the dispatcher",
    ["type"],
)


# =============================================================================
# Metrics Endpoint
# =============================================================================

def start_metrics_server(port: int) -> None:
    """Expose the default Prometheus registry on ``port`` (all interfaces)."""
    start_http_server(port)
    logger.info("Prometheus metrics exposed on port %d", port)


# =============================================================================
# JSON Structured Logging
# =============================================================================

def setup_json_logging(level: str = "INFO") -> None:
    """
    Configure the root logger with JSON structured output.

    Uses python-json-logger's JsonFormatter on stderr so that journald
    (or any collector) receives one JSON document per record.
    """
    from pythonjsonlogger.json import JsonFormatter

    handler = logging.StreamHandler(sys.stderr)
    formatter = JsonFormatter(
        fmt="%(timestamp)s %(name)s %(levelname)s %(message)s",
        rename_fields={"levelname": "level", "asctime": "timestamp"},
        timestamp=True,
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
