"""Tests for the observability module.

Tests for diagnostics, metrics collection, tracing, and logging configuration.
"""
import logging
from logging.handlers import RotatingFileHandler

import pytest

from pkm_vault.exceptions import ErrorCode, StorageError
from pkm_vault.observability import (
    MetricsCollector,
    VaultDiagnostics,
    configure_logging,
    timed_operation,
    traced,
)


class TestVaultDiagnostics:
    """Tests for the diagnostics channel."""

    def test_report_and_recent(self):
        diagnostics = VaultDiagnostics()
        issue = diagnostics.report(
            ErrorCode.INDEX_STALE_ENTRY, "gone", operation="load", path="a.md"
        )
        assert diagnostics.recent() == [issue]
        assert issue.to_dict()["code_name"] == "INDEX_STALE_ENTRY"
        assert issue.to_dict()["path"] == "a.md"

    def test_report_logs_warning(self, caplog):
        diagnostics = VaultDiagnostics()
        with caplog.at_level(logging.WARNING, logger="pkm_vault"):
            diagnostics.report(ErrorCode.NOTE_UNREADABLE, "bad bytes", operation="load")
        assert "NOTE_UNREADABLE" in caplog.text

    def test_bounded(self):
        diagnostics = VaultDiagnostics(max_issues=3)
        for i in range(5):
            diagnostics.report(ErrorCode.NOTE_ENTRY_SKIPPED, f"#{i}")
        assert [issue.message for issue in diagnostics.recent()] == ["#2", "#3", "#4"]

    def test_drain_clears(self):
        diagnostics = VaultDiagnostics()
        diagnostics.report(ErrorCode.NOTE_ENTRY_SKIPPED, "x")
        assert len(diagnostics.drain()) == 1
        assert len(diagnostics) == 0

    def test_report_error_keeps_code_and_path(self):
        diagnostics = VaultDiagnostics()
        error = StorageError(
            "nope", path="a.md", code=ErrorCode.STORAGE_DELETE_FAILED
        )
        issue = diagnostics.report_error(error, operation="save")
        assert (issue.code, issue.path, issue.operation) == (
            ErrorCode.STORAGE_DELETE_FAILED,
            "a.md",
            "save",
        )


class TestMetricsCollector:
    def test_records_success_and_failure(self):
        collector = MetricsCollector()
        collector.record_operation("save", 10.0, True)
        collector.record_operation("save", 30.0, False, error="disk full")

        save = collector.get_metrics()["save"]
        assert save["count"] == 2
        assert save["error_count"] == 1
        assert save["avg_duration_ms"] == 20.0
        assert save["max_duration_ms"] == 30.0
        assert save["last_error"] == "disk full"

    def test_summary_and_reset(self):
        collector = MetricsCollector()
        collector.record_operation("load", 1.0, True)
        assert collector.get_summary()["total_operations"] == 1
        collector.reset()
        assert collector.get_metrics() == {}


class TestTracing:
    def test_timed_operation_records_failure(self, clean_metrics):
        with pytest.raises(ValueError):
            with timed_operation("explode"):
                raise ValueError("bad")
        assert clean_metrics.get_metrics()["explode"]["error_count"] == 1

    def test_traced_decorator(self, clean_metrics):
        @traced("double")
        def double(x):
            return x * 2

        assert double(4) == 8
        assert clean_metrics.get_metrics()["double"]["success_count"] == 1


class TestConfigureLogging:
    def test_adds_rotating_handler_once(self, tmp_path):
        logger = logging.getLogger("pkm_vault")
        before = list(logger.handlers)
        level = logger.level
        try:
            configure_logging(tmp_path, console=False)
            configure_logging(tmp_path, console=False)
            rotating = [
                h for h in logger.handlers
                if isinstance(h, RotatingFileHandler) and h not in before
            ]
            assert len(rotating) == 1
            assert (tmp_path / "pkm-vault.log").exists()
        finally:
            for handler in list(logger.handlers):
                if handler not in before:
                    logger.removeHandler(handler)
                    handler.close()
            logger.setLevel(level)
