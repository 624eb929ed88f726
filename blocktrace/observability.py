"""
Observability Module - Logging, Metrics, and Health

Provides:
- Structured JSON logging with request IDs
- Request/response logging middleware
- Metrics collection (append latency, rejections, snapshots)
- Health check utilities

Configuration:
- BLOCKTRACE_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- BLOCKTRACE_LOG_FORMAT: json, text (default: json in production)
- BLOCKTRACE_PRODUCTION: Enable production mode

Usage:
    from blocktrace.observability import get_logger

    logger = get_logger(__name__)
    logger.info("Step added", product_id=step.product_id)
"""

import json
import logging
import os
import sys
import time
import uuid
from collections import deque
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Iterator, Optional, Tuple

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

# Context variable for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

SERVICE_NAME = "blocktrace"

# Latency samples kept per histogram
MAX_SAMPLES = 1000


# ============================================================
# CONFIGURATION
# ============================================================

def _is_production() -> bool:
    return os.environ.get("BLOCKTRACE_PRODUCTION", "").lower() in ("1", "true", "yes")


def _get_log_level() -> int:
    name = os.environ.get("BLOCKTRACE_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    # getLevelName returns "Level X" for unknown names
    return level if isinstance(level, int) else logging.INFO


def _use_json_logging() -> bool:
    fmt = os.environ.get("BLOCKTRACE_LOG_FORMAT", "").lower()
    if fmt in ("json", "text"):
        return fmt == "json"
    return _is_production()


# ============================================================
# STRUCTURED LOGGING
# ============================================================

# Standard LogRecord attributes, never copied as extra fields
_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "levelname", "levelno",
    "pathname", "filename", "module", "lineno", "funcName",
    "exc_info", "exc_text", "stack_info", "message", "msecs",
    "relativeCreated", "thread", "threadName", "processName",
    "process", "taskName",
))


def _extra_fields(record: logging.LogRecord) -> Iterator[Tuple[str, Any]]:
    """Fields attached through ContextLogger keyword arguments."""
    for key, value in record.__dict__.items():
        if key not in _RESERVED_ATTRS and not key.startswith("_"):
            yield key, value


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.000Z",
        "level": "INFO",
        "service": "blocktrace",
        "logger": "blocktrace.core.ledger",
        "message": "Step added",
        "request_id": "abc-123",
        "product_id": "P1",
        ...extra fields...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            payload["request_id"] = request_id

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for key, value in _extra_fields(record):
            payload[key] = value

        # Anything json can't encode is logged as its str()
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Structured fields are appended as key=value pairs:
        2024-01-15 10:30:00 INFO     blocktrace.core.ledger: Step added product_id=P1
    """

    def format(self, record: logging.LogRecord) -> str:
        when = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        request_id = request_id_var.get()
        prefix = f"[{request_id[:8]}] " if request_id else ""

        fields = " ".join(f"{key}={value}" for key, value in _extra_fields(record))
        line = f"{when} {record.levelname:8} {prefix}{record.name}: {record.getMessage()}"
        if fields:
            line = f"{line} {fields}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that turns keyword arguments into structured fields.

    Usage:
        logger = get_logger(__name__)
        logger.info("Ledger restored from snapshot", product_count=3)
    """

    _PASSTHROUGH = ("exc_info", "stack_info", "stacklevel", "extra")

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        fields = dict(kwargs.pop("extra", None) or {})
        for key in [k for k in kwargs if k not in self._PASSTHROUGH]:
            fields[key] = kwargs.pop(key)
        kwargs["extra"] = fields
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """Structured logger for a module (pass __name__)."""
    return ContextLogger(logging.getLogger(name), {})


def setup_logging(level: Optional[int] = None, json_format: Optional[bool] = None) -> None:
    """
    Configure the root logger.

    Call once per process. Arguments override the environment;
    the CLI uses this to keep its own output readable.

    Args:
        level: Log level. If None, BLOCKTRACE_LOG_LEVEL.
        json_format: JSON or text. If None, BLOCKTRACE_LOG_FORMAT / production mode.
    """
    level = _get_log_level() if level is None else level
    json_format = _use_json_logging() if json_format is None else json_format

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if json_format else TextFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    # Suppress noisy loggers
    for noisy in ("uvicorn.access", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ============================================================
# REQUEST CONTEXT MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an ID and logs it with timing.

    - Uses X-Request-ID if provided, otherwise generates one
    - Rejected steps (4xx) log at WARNING, server faults at ERROR
    - Echoes the request ID in the response headers
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        token = request_id_var.set(request_id)

        logger = get_logger("blocktrace.request")
        route = f"{request.method} {request.url.path}"
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            get_metrics().record_request(elapsed_ms, success=False)
            logger.exception(
                f"{route} -> 500",
                method=request.method,
                path=request.url.path,
                duration_ms=round(elapsed_ms, 2),
                error=str(e),
            )
            raise
        finally:
            request_id_var.reset(token)

        elapsed_ms = (time.perf_counter() - started) * 1000
        get_metrics().record_request(elapsed_ms, success=response.status_code < 500)

        logger.log(
            logging.INFO if response.status_code < 400 else logging.WARNING,
            f"{route} -> {response.status_code}",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(elapsed_ms, 2),
            request_id=request_id,
        )

        response.headers["X-Request-ID"] = request_id
        return response


# ============================================================
# METRICS
# ============================================================

def _percentile(samples, p: float) -> Optional[float]:
    if not samples:
        return None
    ordered = sorted(samples)
    return ordered[min(int(len(ordered) * p), len(ordered) - 1)]


@dataclass
class MetricsCollector:
    """
    In-process counters and latency samples.

    Shared by request threads, so every update takes the lock.
    """

    steps_appended: int = 0
    steps_rejected: int = 0
    snapshots_taken: int = 0
    restores: int = 0
    requests_total: int = 0
    requests_failed: int = 0

    append_latencies_ms: deque = field(default_factory=lambda: deque(maxlen=MAX_SAMPLES))
    request_latencies_ms: deque = field(default_factory=lambda: deque(maxlen=MAX_SAMPLES))

    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def record_append(self, latency_ms: float) -> None:
        with self._lock:
            self.steps_appended += 1
            self.append_latencies_ms.append(latency_ms)

    def record_rejection(self) -> None:
        with self._lock:
            self.steps_rejected += 1

    def record_snapshot(self) -> None:
        with self._lock:
            self.snapshots_taken += 1

    def record_restore(self) -> None:
        with self._lock:
            self.restores += 1

    def record_request(self, latency_ms: float, success: bool) -> None:
        with self._lock:
            self.requests_total += 1
            if not success:
                self.requests_failed += 1
            self.request_latencies_ms.append(latency_ms)

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            appends = list(self.append_latencies_ms)
            requests = list(self.request_latencies_ms)
            summary = {
                "steps_appended": self.steps_appended,
                "steps_rejected": self.steps_rejected,
                "snapshots_taken": self.snapshots_taken,
                "restores": self.restores,
                "requests_total": self.requests_total,
                "requests_failed": self.requests_failed,
            }

        summary.update({
            "append_latency_p50_ms": _percentile(appends, 0.5),
            "append_latency_p95_ms": _percentile(appends, 0.95),
            "append_latency_p99_ms": _percentile(appends, 0.99),
            "request_latency_p50_ms": _percentile(requests, 0.5),
            "request_latency_p95_ms": _percentile(requests, 0.95),
        })
        return summary


# Global metrics instance
_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return _metrics


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    """Health check result."""
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


def _check_ledger(ledger) -> Dict[str, Any]:
    products = ledger.list_products()
    total = ledger.total_step_count()
    # Totals come from a scan; they must agree with the histories
    summed = sum(len(ledger.get_history(p)) for p in products)
    return {
        "status": "healthy" if summed == total else "unhealthy",
        "product_count": len(products),
        "total_steps": total,
        "consistent": summed == total,
    }


def check_health(ledger=None, snapshot_store=None) -> HealthStatus:
    """
    Run all health checks.

    Args:
        ledger: LedgerService instance
        snapshot_store: SnapshotStore instance

    Returns:
        HealthStatus with all check results
    """
    started = time.perf_counter()
    checks: Dict[str, Dict[str, Any]] = {"liveness": {"status": "healthy"}}

    if ledger is not None:
        try:
            checks["ledger"] = _check_ledger(ledger)
        except Exception as e:
            checks["ledger"] = {"status": "unhealthy", "error": str(e)}

    if snapshot_store is not None:
        try:
            checks["snapshot_store"] = {
                "status": "healthy",
                "backend": snapshot_store.describe(),
            }
        except Exception as e:
            checks["snapshot_store"] = {"status": "unhealthy", "error": str(e)}

    return HealthStatus(
        healthy=all(check["status"] == "healthy" for check in checks.values()),
        checks=checks,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
