"""Tests for the observability module.

Tests for metrics collection, operation tracing and logging configuration.
"""
import json
import logging
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from notura.exceptions import NoteNotFoundError
from notura.observability import (
    MetricsCollector,
    configure_logging,
    metrics,
    timed_operation,
    traced,
)


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    @pytest.fixture
    def metrics_collector(self, tmp_path):
        return MetricsCollector(metrics_file=tmp_path / "metrics.json")

    def test_record_successful_operation(self, metrics_collector):
        """Test recording a successful operation."""
        metrics_collector.record_operation("test_op", 100.0, True)

        snapshot = metrics_collector.get_metrics()
        assert snapshot["test_op"]["count"] == 1
        assert snapshot["test_op"]["success_count"] == 1
        assert snapshot["test_op"]["error_count"] == 0
        assert snapshot["test_op"]["avg_duration_ms"] == 100.0

    def test_record_failed_operation(self, metrics_collector):
        """Test recording a failed operation with error."""
        metrics_collector.record_operation("test_op", 50.0, False, "Test error")

        snapshot = metrics_collector.get_metrics()
        assert snapshot["test_op"]["error_count"] == 1
        assert snapshot["test_op"]["last_error"] == "Test error"
        assert snapshot["test_op"]["last_error_time"] is not None

    def test_multiple_operations_aggregated(self, metrics_collector):
        """Test that multiple operations are aggregated correctly."""
        metrics_collector.record_operation("test_op", 100.0, True)
        metrics_collector.record_operation("test_op", 200.0, True)
        metrics_collector.record_operation("test_op", 300.0, False, "Error")

        snapshot = metrics_collector.get_metrics()
        assert snapshot["test_op"]["count"] == 3
        assert snapshot["test_op"]["avg_duration_ms"] == 200.0
        assert snapshot["test_op"]["min_duration_ms"] == 100.0
        assert snapshot["test_op"]["max_duration_ms"] == 300.0

    def test_save_metrics(self, metrics_collector, tmp_path):
        metrics_collector.record_operation("op1", 100.0, True)
        assert metrics_collector.save_metrics() is True

        data = json.loads((tmp_path / "metrics.json").read_text())
        assert data["operations"]["op1"]["count"] == 1
        assert not (tmp_path / "metrics.tmp").exists()

    def test_save_without_file_is_noop(self):
        assert MetricsCollector().save_metrics() is False

    def test_reset_metrics(self, metrics_collector):
        metrics_collector.record_operation("test_op", 100.0, True)
        metrics_collector.reset()
        assert metrics_collector.get_metrics() == {}


class TestTracing:
    """Tests for timed_operation and traced."""

    def test_timed_operation_records_success(self):
        collector = MetricsCollector()
        with patch("notura.observability.metrics", collector):
            with timed_operation("test_op") as op:
                time.sleep(0.01)
                op["custom_data"] = "value"

        snapshot = collector.get_metrics()
        assert snapshot["test_op"]["success_count"] == 1
        assert snapshot["test_op"]["avg_duration_ms"] >= 10

    def test_timed_operation_records_failure(self):
        collector = MetricsCollector()
        with patch("notura.observability.metrics", collector):
            with pytest.raises(ValueError):
                with timed_operation("test_op"):
                    raise ValueError("Test error")

        assert "Test error" in collector.get_metrics()["test_op"]["last_error"]

    def test_traced_decorator(self):
        collector = MetricsCollector()

        @traced("listing")
        def listing(count):
            return list(range(count))

        with patch("notura.observability.metrics", collector):
            assert listing(3) == [0, 1, 2]
        assert collector.get_metrics()["listing"]["success_count"] == 1

    def test_service_operations_are_recorded(self, service):
        """NoturaService operations feed the global collector."""
        note = service.create_note("T", "c")
        with pytest.raises(NoteNotFoundError):
            service.update_note("missing", "x")
        service.update_note(note.id, "y")

        snapshot = metrics.get_metrics()
        assert snapshot["create_note"]["success_count"] == 1
        assert snapshot["update_note"]["count"] == 2
        assert snapshot["update_note"]["error_count"] == 1

    def test_positional_id_is_logged(self, service, caplog):
        note = service.create_note("Positional", "c")
        caplog.set_level(logging.DEBUG, logger="notura.observability")

        service.delete_note(note.id)

        start = next(r.getMessage() for r in caplog.records if "START delete_note" in r.getMessage())
        assert f"id={note.id}" in start

    def test_list_results_log_count(self, service, caplog):
        service.create_note("One", "c")
        service.create_note("Two", "c")
        caplog.set_level(logging.DEBUG, logger="notura.observability")

        service.list_notes()

        end = next(r.getMessage() for r in caplog.records if "END list_notes" in r.getMessage())
        assert "result_count=2" in end


class TestConfigureLogging:
    """Tests for configure_logging function."""

    @pytest.fixture(autouse=True)
    def _restore_handlers(self):
        logger = logging.getLogger("notura")
        handlers, level = list(logger.handlers), logger.level
        yield
        for handler in logger.handlers:
            if handler not in handlers:
                handler.close()
        logger.handlers = handlers
        logger.setLevel(level)

    def test_creates_directory_and_file(self, tmp_path):
        log_dir = tmp_path / "logs"
        result = configure_logging(log_dir=log_dir, console=False)

        assert result == log_dir
        assert (log_dir / "notura.log").exists()

    def test_sets_level(self, tmp_path):
        configure_logging(log_dir=tmp_path, level=logging.DEBUG, console=False)
        assert logging.getLogger("notura").level == logging.DEBUG

    def test_messages_reach_file(self, tmp_path):
        configure_logging(log_dir=tmp_path, console=False)
        logging.getLogger("notura.tests").info("hello from test")
        for handler in logging.getLogger("notura").handlers:
            handler.flush()
        assert "hello from test" in Path(tmp_path / "notura.log").read_text()
