"""Unit tests for tracker logging and observability.

This module tests the logging infrastructure, performance monitoring,
and observability hooks.
"""

import json
import logging
import sys
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from agentos_tracker.tracker_logging import (
    JsonFormatter,
    ObservabilityHooks,
    PerformanceMonitor,
    log_error_with_context,
    log_operation,
    log_performance,
    log_status_change,
    observability_hooks,
    performance_monitor,
    setup_logging,
)


@pytest.fixture(autouse=True)
def reset_monitor():
    performance_monitor.clear()
    yield
    performance_monitor.clear()


class TestJsonFormatter:
    """Test cases for JsonFormatter."""

    def test_json_formatter_basic(self):
        """Test basic JSON formatting."""
        formatter = JsonFormatter()
        record = logging.getLogger("test").makeRecord("test", logging.INFO, __file__, 10, "Test message", (), None)

        data = json.loads(formatter.format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        for key in ("timestamp", "module", "function", "line"):
            assert key in data

    def test_json_formatter_with_exception(self):
        """Test JSON formatting with exception info."""
        formatter = JsonFormatter()
        try:
            raise ValueError("Test exception")
        except ValueError:
            record = logging.getLogger("test").makeRecord(
                "test", logging.ERROR, __file__, 10, "Test message", (), sys.exc_info()
            )

        data = json.loads(formatter.format(record))

        assert data["level"] == "ERROR"
        assert "ValueError" in data["exception"]

    def test_json_formatter_with_extra_fields(self):
        """Test JSON formatting with extra fields."""
        formatter = JsonFormatter()
        record = logging.getLogger("test").makeRecord("test", logging.INFO, __file__, 10, "Test message", (), None)
        record.extra_fields = {"spec_id": "2026-01-01-auth"}

        data = json.loads(formatter.format(record))

        assert data["spec_id"] == "2026-01-01-auth"


class TestPerformanceMonitor:
    """Test cases for PerformanceMonitor."""

    def test_record_metric(self):
        monitor = PerformanceMonitor()
        monitor.record_metric("save_duration", 42, {"tag": "test"})

        metrics = monitor.get_metrics("save_duration")

        assert metrics["save_duration"][0]["value"] == 42
        assert metrics["save_duration"][0]["tags"]["tag"] == "test"
        assert "timestamp" in metrics["save_duration"][0]

    def test_get_all_metrics_and_clear(self):
        monitor = PerformanceMonitor()
        monitor.record_metric("metric1", 1)
        monitor.record_metric("metric2", 2)
        monitor.record_metric("metric1", 3)

        all_metrics = monitor.get_metrics()
        assert len(all_metrics["metric1"]) == 2
        assert len(all_metrics["metric2"]) == 1

        monitor.clear()
        assert monitor.get_metrics() == {}


class TestLogPerformance:
    """Test cases for the log_performance decorator."""

    def test_success_records_metric(self):
        @log_performance("unit_operation")
        def operation():
            return "result"

        assert operation() == "result"
        metrics = performance_monitor.get_metrics("unit_operation_duration")["unit_operation_duration"]
        assert len(metrics) == 1
        assert metrics[0]["tags"]["status"] == "success"

    def test_exception_records_error_and_reraises(self):
        @log_performance("unit_operation")
        def operation():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            operation()

        metrics = performance_monitor.get_metrics("unit_operation_duration")["unit_operation_duration"]
        assert metrics[0]["tags"]["status"] == "error"
        assert metrics[0]["tags"]["error_type"] == "ValueError"


class TestLogOperation:
    """Test cases for the log_operation context manager."""

    def test_log_operation_success(self):
        with patch("agentos_tracker.tracker_logging.std_logging.getLogger") as mock_logger:
            mock_logger.return_value = MagicMock()

            with log_operation("save_roadmap", revision=3):
                pass

            assert mock_logger.return_value.info.called
            assert not mock_logger.return_value.warning.called

    def test_log_operation_with_exception(self):
        with patch("agentos_tracker.tracker_logging.std_logging.getLogger") as mock_logger:
            mock_logger.return_value = MagicMock()

            with pytest.raises(ValueError):
                with log_operation("save_roadmap"):
                    raise ValueError("Test error")

            assert mock_logger.return_value.warning.called
            assert "Test error" in str(mock_logger.return_value.warning.call_args)


class TestObservabilityHooks:
    """Test cases for ObservabilityHooks."""

    def test_register_and_trigger_hooks(self):
        hooks = ObservabilityHooks()
        received = []
        hooks.register_hook("spec_created", lambda **data: received.append(data))

        hooks.log_workflow_event("spec_created", spec_id="auth", roadmap_item_id="roadmap-001")

        assert received[0]["spec_id"] == "auth"
        assert received[0]["roadmap_item_id"] == "roadmap-001"
        assert "event_type" not in received[0]

    def test_unregister_hook(self):
        hooks = ObservabilityHooks()
        received = []

        def callback(**data):
            received.append(data)

        hooks.register_hook("spec_created", callback)
        hooks.unregister_hook("spec_created", callback)
        hooks.trigger_hooks("spec_created", spec_id="auth")

        assert received == []

    def test_hook_failure_does_not_propagate(self):
        hooks = ObservabilityHooks()

        def failing_callback(**data):
            raise ValueError("Hook failed")

        hooks.register_hook("spec_created", failing_callback)
        hooks.trigger_hooks("spec_created", spec_id="auth")


class TestLoggingFunctions:
    """Test cases for logging convenience functions."""

    def test_log_status_change(self):
        with patch("agentos_tracker.tracker_logging.observability_hooks") as mock_hooks:
            log_status_change("spec", "auth", "drafting", "shaped", spec_id="auth")

            mock_hooks.log_workflow_event.assert_called_once()
            args, kwargs = mock_hooks.log_workflow_event.call_args
            assert args[0] == "spec_status_changed"
            assert kwargs["entity_id"] == "auth"
            assert kwargs["old_status"] == "drafting"
            assert kwargs["new_status"] == "shaped"

    def test_log_error_with_context(self):
        with patch("agentos_tracker.tracker_logging.std_logging.getLogger") as mock_logger:
            log_error_with_context(ValueError("Test error"), {"operation": "save_tasks"}, path="tasks.json")

            call_args = mock_logger.return_value.error.call_args
            assert "Test error" in str(call_args)
            extra = call_args[1]["extra"]["extra_fields"]
            assert extra["context"]["operation"] == "save_tasks"
            assert extra["path"] == "tasks.json"
            assert extra["error_type"] == "ValueError"


class TestLoggingIntegration:
    """Integration tests for logging functionality."""

    def test_setup_logging_writes_json_lines(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_file = Path(temp_dir) / "tracker.log"
            setup_logging(log_level=logging.DEBUG, log_file=log_file)
            try:
                logging.getLogger("agentos.test").info("Test message")
                observability_hooks.log_workflow_event("finding_recorded", finding_id="finding-001")
                performance_monitor.record_metric("test_metric", 42)

                content = log_file.read_text()
                assert "Test message" in content
                assert "finding_recorded" in content
                assert "Metric recorded: test_metric=42" in content
                for line in content.strip().splitlines():
                    json.loads(line)
            finally:
                root = logging.getLogger("agentos")
                for handler in list(root.handlers):
                    handler.close()
                    root.removeHandler(handler)
