"""
Production monitoring and metrics collection.

Tracks webhook processing, extraction branches, store writes and RAG
queries. Metrics are kept in memory for the JSON summary and mirrored to
Prometheus collectors for scraping.
"""

import logging
import time
from collections import defaultdict
from datetime import datetime
from functools import wraps
from typing import Any, Dict

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

logger = logging.getLogger(__name__)

# In-memory metrics
_metrics: Dict[str, Any] = {
    "webhooks": defaultdict(int),
    "extraction_methods": defaultdict(int),
    "store_writes": defaultdict(lambda: {"success": 0, "failure": 0}),
    "rag_count": 0,
    "rag_success": 0,
    "rag_failures": 0,
    "webhook_latencies": [],
    "rag_latencies": [],
}

webhook_counter = Counter("truthtable_webhooks_total", "Webhooks received", ["status"])
webhook_latency = Histogram("truthtable_webhook_duration_seconds", "Webhook processing latency in seconds")
extraction_counter = Counter("truthtable_extractions_total", "Fact extractions", ["method"])
store_write_counter = Counter("truthtable_store_writes_total", "Store write attempts", ["store", "status"])
rag_counter = Counter("truthtable_rag_queries_total", "RAG queries", ["status"])
rag_latency = Histogram("truthtable_rag_duration_seconds", "RAG query latency in seconds")
error_counter = Counter("truthtable_errors_total", "Total errors", ["error_type"])

CONTENT_TYPE = CONTENT_TYPE_LATEST


def _trim(key: str, limit: int) -> None:
    if len(_metrics[key]) > limit:
        _metrics[key] = _metrics[key][-limit:]


def track_webhook(status: str, latency: float) -> None:
    """Record one webhook outcome: processed, skipped, rejected or failed."""
    _metrics["webhooks"][status] += 1
    _metrics["webhook_latencies"].append(latency)
    webhook_counter.labels(status=status).inc()
    webhook_latency.observe(latency)
    _trim("webhook_latencies", 1000)


def track_extraction(method: str) -> None:
    _metrics["extraction_methods"][method] += 1
    extraction_counter.labels(method=method).inc()


def track_store_write(store: str, success: bool) -> None:
    status = "success" if success else "failure"
    _metrics["store_writes"][store][status] += 1
    store_write_counter.labels(store=store, status=status).inc()


def track_rag_query(func):
    """Decorator to track RAG query latency and success."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        success = False

        try:
            result = func(*args, **kwargs)
            success = True
            return result
        except Exception as e:
            logger.error(f"RAG query failed: {e}")
            _metrics["rag_failures"] += 1
            error_counter.labels(error_type=type(e).__name__).inc()
            raise
        finally:
            latency = time.time() - start_time
            _metrics["rag_count"] += 1
            _metrics["rag_latencies"].append(latency)
            if success:
                _metrics["rag_success"] += 1
            rag_counter.labels(status="success" if success else "failure").inc()
            rag_latency.observe(latency)
            _trim("rag_latencies", 1000)

    return wrapper


def _p95(values):
    return sorted(values)[int(len(values) * 0.95)] if values else 0.0


def get_metrics_summary() -> Dict[str, Any]:
    """Get summary of all collected metrics."""
    webhook_lats = _metrics["webhook_latencies"]
    rag_lats = _metrics["rag_latencies"]

    return {
        "webhooks": {
            "by_status": dict(_metrics["webhooks"]),
            "avg_latency_seconds": sum(webhook_lats) / len(webhook_lats) if webhook_lats else 0.0,
            "p95_latency_seconds": _p95(webhook_lats),
        },
        "extraction_methods": dict(_metrics["extraction_methods"]),
        "store_writes": {store: dict(counts) for store, counts in _metrics["store_writes"].items()},
        "rag": {
            "total": _metrics["rag_count"],
            "success": _metrics["rag_success"],
            "failures": _metrics["rag_failures"],
            "success_rate": (
                _metrics["rag_success"] / _metrics["rag_count"] if _metrics["rag_count"] > 0 else 0.0
            ),
            "avg_latency_seconds": sum(rag_lats) / len(rag_lats) if rag_lats else 0.0,
            "p95_latency_seconds": _p95(rag_lats),
        },
        "timestamp": datetime.now().isoformat(),
    }


def get_prometheus_metrics() -> bytes:
    """Get Prometheus metrics in text format."""
    return generate_latest()


def reset_metrics() -> None:
    """Clear in-memory metrics. Prometheus collectors are cumulative and untouched."""
    _metrics["webhooks"].clear()
    _metrics["extraction_methods"].clear()
    _metrics["store_writes"].clear()
    _metrics["rag_count"] = 0
    _metrics["rag_success"] = 0
    _metrics["rag_failures"] = 0
    _metrics["webhook_latencies"] = []
    _metrics["rag_latencies"] = []
