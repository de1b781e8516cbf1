"""
Tests for metrics collection.
"""

import pytest

from truthtable import monitoring


@pytest.fixture(autouse=True)
def clean_metrics():
    monitoring.reset_metrics()
    yield
    monitoring.reset_metrics()


class TestMonitoring:
    """Tests for in-memory and Prometheus metrics."""

    def test_webhook_tracking(self):
        """Test webhook counts and latency aggregation."""
        print("\n📊 Testing webhook metrics...")
        monitoring.track_webhook("processed", 0.2)
        monitoring.track_webhook("processed", 0.4)
        monitoring.track_webhook("rejected", 0.0)

        summary = monitoring.get_metrics_summary()
        assert summary["webhooks"]["by_status"] == {"processed": 2, "rejected": 1}
        assert summary["webhooks"]["avg_latency_seconds"] == pytest.approx(0.2)
        print("   ✅ Webhook metrics tracked!")

    def test_extraction_and_store_writes(self):
        monitoring.track_extraction("llm")
        monitoring.track_extraction("fallback")
        monitoring.track_extraction("fallback")
        monitoring.track_store_write("raw", success=True)
        monitoring.track_store_write("raw", success=False)

        summary = monitoring.get_metrics_summary()
        assert summary["extraction_methods"] == {"llm": 1, "fallback": 2}
        assert summary["store_writes"]["raw"] == {"success": 1, "failure": 1}

    def test_rag_decorator(self):
        """Test that the decorator counts successes and failures and re-raises."""
        @monitoring.track_rag_query
        def ok():
            return "answer"

        @monitoring.track_rag_query
        def broken():
            raise RuntimeError("boom")

        assert ok() == "answer"
        with pytest.raises(RuntimeError):
            broken()

        rag = monitoring.get_metrics_summary()["rag"]
        assert rag["total"] == 2
        assert rag["success"] == 1
        assert rag["failures"] == 1
        assert rag["success_rate"] == 0.5

    def test_empty_summary(self):
        summary = monitoring.get_metrics_summary()
        assert summary["rag"]["success_rate"] == 0.0
        assert summary["webhooks"]["p95_latency_seconds"] == 0.0

    def test_prometheus_output(self):
        monitoring.track_extraction("llm")
        output = monitoring.get_prometheus_metrics().decode("utf-8")
        assert "truthtable_extractions_total" in output
        assert 'method="llm"' in output
