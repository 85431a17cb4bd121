# querypilot/monitoring.py
"""
Centralized monitoring: Prometheus metrics, structured JSON logging, optional Sentry.

The logger is usable at import time with env-derived defaults; configure()
re-applies level/format and initializes Sentry from an explicit Settings object.
"""

import os
import logging
import time
from typing import Tuple

import sentry_sdk
from prometheus_client import (
    Counter, Histogram, Gauge,
    generate_latest, CONTENT_TYPE_LATEST, REGISTRY,
)
from pythonjsonlogger.json import JsonFormatter

from querypilot.settings import Settings

LOGGER_NAME = "querypilot"
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


# --- Logger setup
def setup_logger(name: str = LOGGER_NAME, level: str = None, as_json: bool = None) -> logging.Logger:
    level = os.getenv("LOG_LEVEL", "INFO") if level is None else level
    if as_json is None:
        as_json = os.getenv("LOG_AS_JSON", "true").lower() in ("1", "true", "yes")
    logger = logging.getLogger(name)
    logger.setLevel(logging.getLevelName(level.upper()))
    if not logger.handlers:
        logger.addHandler(logging.StreamHandler())
    for handler in logger.handlers:
        if as_json:
            handler.setFormatter(JsonFormatter(_LOG_FORMAT))
        else:
            handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    return logger


logger = setup_logger()


def configure(settings: Settings) -> None:
    """Apply logging settings and start Sentry if a DSN is configured."""
    setup_logger(level=settings.log_level, as_json=settings.log_as_json)
    if settings.sentry_dsn:
        sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.environment)
        logger.info("Sentry initialized", extra={"environment": settings.environment})


# --- Prometheus metrics
REQUEST_COUNT = Counter(
    "querypilot_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "querypilot_request_latency_seconds",
    "Request latency in seconds",
    ["endpoint"],
)

LLM_CALLS = Counter(
    "querypilot_llm_calls_total",
    "LLM calls by workflow role",
    ["role", "outcome"],
)

LLM_LATENCY = Histogram(
    "querypilot_llm_latency_seconds",
    "LLM call latency",
    ["role"],
)

WAREHOUSE_CALLS = Counter(
    "querypilot_warehouse_calls_total",
    "Warehouse calls by operation",
    ["operation", "outcome"],
)

SQL_REPAIRS = Counter(
    "querypilot_sql_repairs_total",
    "Automatic repair attempts after a failed dry run",
    ["outcome"],
)

LAST_RESULT_ROWS = Gauge(
    "querypilot_last_result_rows",
    "Rows returned by the last READ execution",
)


# --- Helper wrappers (never crash the app)
def observe_request(start_ts: float, endpoint: str, method: str, status: str):
    try:
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(time.time() - start_ts)
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status=status).inc()
    except Exception:
        pass


def observe_llm_call(start_ts: float, role: str, outcome: str):
    try:
        LLM_LATENCY.labels(role=role).observe(time.time() - start_ts)
        LLM_CALLS.labels(role=role, outcome=outcome).inc()
    except Exception:
        pass


def inc_warehouse_call(operation: str, outcome: str):
    try:
        WAREHOUSE_CALLS.labels(operation=operation, outcome=outcome).inc()
    except Exception:
        pass


def inc_sql_repair(outcome: str):
    try:
        SQL_REPAIRS.labels(outcome=outcome).inc()
    except Exception:
        pass


def set_last_result_rows(n: int):
    try:
        LAST_RESULT_ROWS.set(n)
    except Exception:
        pass


def prometheus_metrics_response() -> Tuple[bytes, str]:
    """Return (body_bytes, content_type) for Prometheus scrape."""
    try:
        return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
    except Exception:
        return b"", CONTENT_TYPE_LATEST
