"""Tests for the CloudWatch metrics client."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from receptionist.services.metrics import NAMESPACE, MetricsClient


def _make_client(*, enabled: bool = False) -> MetricsClient:
    with patch.dict("os.environ", {"METRICS_ENABLED": str(enabled).lower()}):
        if enabled:
            with patch.object(MetricsClient, "_start_flush_thread"):
                return MetricsClient()
        return MetricsClient()


def _dims(datum) -> dict[str, str]:
    return {d["Name"]: d["Value"] for d in datum["Dimensions"]}


class TestMetricsRecording:
    def test_record_success_buffers_count_and_latency(self):
        client = _make_client()
        client.record_success("google_calendar", "POST /freeBusy", latency_ms=88.0)
        names = [m["MetricName"] for m in client._buffer]
        assert names == ["ExternalCall/Count", "ExternalCall/Latency"]
        assert _dims(client._buffer[0]) == {"Service": "google_calendar", "Status": "success"}

    def test_record_failure_without_latency(self):
        client = _make_client()
        client.record_failure("anthropic", "agent_turn", error_type="APITimeoutError")
        names = {m["MetricName"] for m in client._buffer}
        assert names == {"ExternalCall/Count", "ExternalCall/Errors"}

    def test_record_failure_with_latency(self):
        client = _make_client()
        client.record_failure("google_calendar", "POST /freeBusy", error_type="503", latency_ms=500.0)
        assert len(client._buffer) == 3
        error = next(m for m in client._buffer if m["MetricName"] == "ExternalCall/Errors")
        assert _dims(error)["ErrorType"] == "503"

    def test_record_outcome(self):
        client = _make_client()
        client.record_outcome("booked")
        (datum,) = client._buffer
        assert datum["MetricName"] == "Calls/Resolved"
        assert _dims(datum) == {"Status": "booked"}


class TestMetricsFlush:
    def test_flush_when_disabled_sends_nothing_and_clears(self):
        client = _make_client()
        client.record_success("google_calendar", "POST /freeBusy", latency_ms=100.0)
        assert client.flush() == 0
        assert client._buffer == []

    def test_flush_when_enabled_calls_put_metric_data(self):
        client = _make_client(enabled=True)
        mock_cw = MagicMock()
        client._cw_client = mock_cw

        client.record_success("google_calendar", "POST /freeBusy", latency_ms=100.0)
        client.record_outcome("failed")
        sent = client.flush()

        assert sent == 3
        kwargs = mock_cw.put_metric_data.call_args.kwargs
        assert kwargs["Namespace"] == NAMESPACE == "AiReceptionist"
        assert len(kwargs["MetricData"]) == 3

    def test_flush_swallows_cloudwatch_errors(self):
        client = _make_client(enabled=True)
        client._cw_client = MagicMock()
        client._cw_client.put_metric_data.side_effect = RuntimeError("throttled")
        client.record_outcome("booked")
        assert client.flush() == 0

    def test_flush_empty_buffer_returns_zero(self):
        assert _make_client(enabled=True).flush() == 0
