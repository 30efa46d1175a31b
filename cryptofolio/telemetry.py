"""OpenTelemetry metrics and logs for the portfolio tracker."""

import logging
import os

from opentelemetry import metrics
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from cryptofolio._version import VERSION


# Module-level state
_initialized = False
_meter = None
_log_handler = None

# Counters (cumulative)
_price_cache_hits_total = None
_price_cache_misses_total = None
_upstream_fetches_total = None
_upstream_failures_total = None
_chart_cache_hits_total = None
_chart_cache_misses_total = None
_transactions_mutated_total = None


def setup_telemetry() -> bool:
    """Initialize OpenTelemetry metrics and log export.

    Returns True if telemetry was initialized, False if disabled.
    """
    global _initialized, _meter, _log_handler
    global _price_cache_hits_total, _price_cache_misses_total
    global _upstream_fetches_total, _upstream_failures_total
    global _chart_cache_hits_total, _chart_cache_misses_total
    global _transactions_mutated_total

    if _initialized:
        return True

    # Check if telemetry is enabled
    if os.getenv("OTLP_ENABLED", "true").lower() == "false":
        return False

    # Get configuration from environment
    otlp_endpoint = os.getenv("OTLP_ENDPOINT", "http://localhost:4318/v1/metrics")
    export_interval = int(os.getenv("OTLP_EXPORT_INTERVAL", "5000"))

    resource = Resource.create({
        "service.name": "cryptofolio",
        "service.version": VERSION,
    })

    exporter = OTLPMetricExporter(endpoint=otlp_endpoint)
    reader = PeriodicExportingMetricReader(
        exporter,
        export_interval_millis=export_interval,
    )
    provider = MeterProvider(resource=resource, metric_readers=[reader])
    metrics.set_meter_provider(provider)

    _meter = metrics.get_meter("cryptofolio", VERSION)

    _price_cache_hits_total = _meter.create_counter(
        "price_cache_hits_total",
        description="Price lookups answered from the cache",
        unit="1",
    )
    _price_cache_misses_total = _meter.create_counter(
        "price_cache_misses_total",
        description="Price lookups that were missing or stale",
        unit="1",
    )
    _upstream_fetches_total = _meter.create_counter(
        "price_upstream_fetches_total",
        description="Requests made to the upstream price API",
        unit="1",
    )
    _upstream_failures_total = _meter.create_counter(
        "price_upstream_failures_total",
        description="Failed requests to the upstream price API",
        unit="1",
    )
    _chart_cache_hits_total = _meter.create_counter(
        "chart_cache_hits_total",
        description="Chart requests served from the snapshot cache",
        unit="1",
    )
    _chart_cache_misses_total = _meter.create_counter(
        "chart_cache_misses_total",
        description="Chart requests that recomputed snapshots",
        unit="1",
    )
    _transactions_mutated_total = _meter.create_counter(
        "transactions_mutated_total",
        description="Transactions created, updated or deleted",
        unit="1",
    )

    # === LOGS ===
    logs_endpoint = otlp_endpoint.replace("/v1/metrics", "/v1/logs")
    log_exporter = OTLPLogExporter(endpoint=logs_endpoint)
    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(log_exporter))
    set_logger_provider(logger_provider)

    _log_handler = LoggingHandler(
        level=logging.INFO,
        logger_provider=logger_provider,
    )

    _initialized = True
    return True


def get_log_handler() -> LoggingHandler | None:
    """Get the OTLP logging handler to attach to Python loggers."""
    return _log_handler


def is_enabled() -> bool:
    """Check if telemetry is initialized and enabled."""
    return _initialized


# --- Counter update functions ---

def record_price_cache(hits: int, misses: int, kind: str = "current") -> None:
    """Record the outcome of a batch price cache lookup."""
    if not _initialized:
        return

    attributes = {"kind": kind}
    if hits:
        _price_cache_hits_total.add(hits, attributes)
    if misses:
        _price_cache_misses_total.add(misses, attributes)


def record_upstream_fetch() -> None:
    if not _initialized:
        return
    _upstream_fetches_total.add(1)


def record_upstream_failure() -> None:
    if not _initialized:
        return
    _upstream_failures_total.add(1)


def record_chart_cache(hit: bool, interval: str) -> None:
    """Record a chart cache hit or miss."""
    if not _initialized:
        return

    attributes = {"interval": interval}
    if hit:
        _chart_cache_hits_total.add(1, attributes)
    else:
        _chart_cache_misses_total.add(1, attributes)


def record_transaction_mutation(action: str, count: int = 1) -> None:
    """Record transactions being created, updated or deleted."""
    if not _initialized:
        return

    _transactions_mutated_total.add(count, {"action": action})
