"""
Observability module with structured logging and Prometheus metrics.
Provides logging setup and data-store/edge-function metrics collection.
"""
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST
from pythonjsonlogger.json import JsonFormatter

from lumist_analytics.core.config import settings


class CustomJsonFormatter(JsonFormatter):
    """
    JSON formatter with service-wide fields
    """

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any]
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.now(timezone.utc).isoformat()

        if log_record.get('level'):
            log_record['level'] = log_record['level'].upper()
        else:
            log_record['level'] = record.levelname

        log_record['service'] = 'lumist-analytics'
        log_record['environment'] = settings.environment
        log_record['logger'] = record.name


def setup_logging(
    level: Optional[str] = None,
    json_format: Optional[bool] = None
) -> None:
    """
    Configure application logging

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use JSON format (defaults to settings.log_format == "json")
    """
    log_level = (level or settings.log_level or "INFO").upper()
    if json_format is None:
        json_format = settings.log_format.lower() == "json"

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    if json_format:
        formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Set log levels for third-party libraries
    logging.getLogger('uvicorn').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={"log_level": log_level, "json_format": json_format}
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)


# Prometheus metrics registry
registry = CollectorRegistry()

store_queries_total = Counter(
    "analytics_store_queries_total",
    "Total number of data store queries",
    ["table", "status"],
    registry=registry
)

store_query_latency_ms = Histogram(
    "analytics_store_query_latency_ms",
    "Data store query latency in milliseconds",
    ["table"],
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000],
    registry=registry
)

exchange_rate_loads_total = Counter(
    "analytics_exchange_rate_loads_total",
    "Exchange rate table loads by source",
    ["source"],
    registry=registry
)

missing_exchange_rate_total = Counter(
    "analytics_missing_exchange_rate_total",
    "Conversions that fell back to the unconverted amount",
    ["currency"],
    registry=registry
)

edge_function_calls_total = Counter(
    "analytics_edge_function_calls_total",
    "Total number of edge function invocations",
    ["function", "status"],
    registry=registry
)


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics in text exposition format.

    Returns:
        bytes: Metrics in Prometheus exposition format
    """
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


logger = get_logger(__name__)


def log_query(table: str, status: str, duration_ms: float, rows: int = 0) -> None:
    """Log a data store query and record its metrics."""
    logger.debug(
        f"store_query - table={table}, status={status}, rows={rows}, duration_ms={duration_ms:.1f}"
    )
    store_queries_total.labels(table=table, status=status).inc()
    store_query_latency_ms.labels(table=table).observe(duration_ms)


def log_edge_function(function_name: str, status: str) -> None:
    """Log an edge function invocation."""
    logger.info(f"edge_function_call - function={function_name}, status={status}")
    edge_function_calls_total.labels(function=function_name, status=status).inc()
