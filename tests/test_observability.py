"""
Tests for logging, tracing and metrics setup.
"""

from opentelemetry import trace

from action_kb.core.observability import (
    LogLevel,
    ObservabilityConfig,
    ObservabilityManager,
    Timer,
    kb_span,
    record_metric,
)


class TestObservabilityConfig:
    def test_level_is_case_insensitive(self):
        assert ObservabilityConfig(log_level="debug").log_level is LogLevel.DEBUG

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ACTION_KB_LOG_LEVEL", "warning")
        monkeypatch.setenv("ACTION_KB_JSON_LOGS", "true")
        config = ObservabilityConfig.from_env()
        assert config.log_level is LogLevel.WARNING
        assert config.json_logs is True


class TestWithoutManager:
    """Everything is a no-op until the manager is initialized."""

    def test_span_is_invalid(self):
        with kb_span("kb.test", {"a": 1}) as current:
            assert current is trace.INVALID_SPAN

    def test_record_metric_does_not_raise(self):
        record_metric("kb_anything_total", 1)
        assert ObservabilityManager.get_instance() is None


class TestManager:
    def test_initialize_is_idempotent(self):
        first = ObservabilityManager.initialize(ObservabilityConfig(log_level="ERROR"))
        second = ObservabilityManager.initialize(ObservabilityConfig(log_level="DEBUG"))
        assert first is second
        assert second.config.log_level is LogLevel.ERROR

    def test_span_records_attributes(self):
        ObservabilityManager.initialize(ObservabilityConfig(log_level="ERROR"))
        with kb_span("kb.test", {"query": "tap play", "skipped": None}) as current:
            assert current.is_recording()
            assert current.attributes["query"] == "tap play"
            assert "skipped" not in current.attributes

    def test_counters_and_histograms(self):
        manager = ObservabilityManager.initialize(ObservabilityConfig(log_level="ERROR"))

        record_metric("kb_things_total", 2, {"kind": "a"})
        record_metric("kb_things_total", 3, {"kind": "b"})
        with Timer("kb_block") as timer:
            pass

        snapshot = manager.metric_snapshot()
        assert snapshot["kb_things_total"] == 5
        assert snapshot["kb_block_duration_ms"] == timer.elapsed_ms

    def test_metrics_disabled(self):
        manager = ObservabilityManager.initialize(
            ObservabilityConfig(log_level="ERROR", metrics=False, tracing=False)
        )
        record_metric("kb_things_total", 1)
        assert manager.metric_snapshot() == {}
        with kb_span("kb.test") as current:
            assert current is trace.INVALID_SPAN
