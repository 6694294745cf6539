"""
Unit tests for the Logfire monitoring module.

This test suite covers:
- Environment variable parsing
- Logfire initialization and its feature flags
- Error and message reports, with and without Logfire
"""

import importlib
import logging
import os
import sys
from unittest.mock import MagicMock, patch

import pytest

from fiscal_ledger.core import monitoring
from fiscal_ledger.core.monitoring import HandlerType, report_error, report_message


@pytest.fixture
def logfire_mock():
    """Install a fake logfire module for the imports done at call time."""
    fake = MagicMock()
    with patch.dict(sys.modules, {"logfire": fake}):
        yield fake


@pytest.fixture
def logfire_enabled(monkeypatch):
    monkeypatch.setattr(monitoring, "LOGFIRE_ENABLED", True)
    monkeypatch.setattr(monitoring, "LOGFIRE_TOKEN", "test-token")
    monkeypatch.setattr(monitoring, "_logfire_initialized", False)
    return monkeypatch


class TestLogfireEnvironmentConfiguration:
    """Test environment variable configuration for Logfire."""

    @pytest.fixture(autouse=True)
    def _reload_after(self):
        yield
        importlib.reload(monitoring)

    def test_logfire_disabled_by_default(self):
        with patch.dict(os.environ, {}, clear=True):
            importlib.reload(monitoring)
            assert monitoring.LOGFIRE_ENABLED is False
            assert monitoring.LOGFIRE_SERVICE_NAME == "fiscal-ledger"
            assert monitoring.LOGFIRE_TRACE_SQLALCHEMY is True

    @pytest.mark.parametrize("value", ["true", "1", "yes", "TRUE"])
    def test_logfire_enabled(self, value):
        with patch.dict(os.environ, {"LOGFIRE_ENABLED": value}):
            importlib.reload(monitoring)
            assert monitoring.LOGFIRE_ENABLED is True

    def test_feature_flags(self):
        with patch.dict(os.environ, {"LOGFIRE_TRACE_HTTPX": "false", "LOGFIRE_ENVIRONMENT": "production"}):
            importlib.reload(monitoring)
            assert monitoring.LOGFIRE_TRACE_HTTPX is False
            assert monitoring.LOGFIRE_ENVIRONMENT == "production"


class TestInitializeLogfire:
    def test_disabled(self, logfire_mock, monkeypatch):
        monkeypatch.setattr(monitoring, "LOGFIRE_ENABLED", False)
        monitoring.initialize_logfire()
        logfire_mock.configure.assert_not_called()

    def test_enabled_without_token(self, logfire_mock, logfire_enabled):
        logfire_enabled.setattr(monitoring, "LOGFIRE_TOKEN", "")
        monitoring.initialize_logfire()
        logfire_mock.configure.assert_not_called()
        assert monitoring._logfire_initialized is False

    def test_instruments_everything(self, logfire_mock, logfire_enabled):
        app = MagicMock()
        monitoring.initialize_logfire(app)

        logfire_mock.configure.assert_called_once()
        assert logfire_mock.configure.call_args.kwargs["token"] == "test-token"
        logfire_mock.instrument_sqlalchemy.assert_called_once()
        logfire_mock.instrument_httpx.assert_called_once()
        logfire_mock.instrument_fastapi.assert_called_once_with(app=app)
        assert monitoring._logfire_initialized is True

    def test_feature_flags_skip_instrumentation(self, logfire_mock, logfire_enabled):
        logfire_enabled.setattr(monitoring, "LOGFIRE_TRACE_SQLALCHEMY", False)
        monitoring.initialize_logfire()

        logfire_mock.instrument_sqlalchemy.assert_not_called()
        # No app given
        logfire_mock.instrument_fastapi.assert_not_called()

    def test_instrumentation_failure_is_tolerated(self, logfire_mock, logfire_enabled):
        logfire_mock.instrument_httpx.side_effect = RuntimeError("not installed")
        monitoring.initialize_logfire()
        assert monitoring._logfire_initialized is True

    def test_configure_failure(self, logfire_mock, logfire_enabled):
        logfire_mock.configure.side_effect = RuntimeError("bad token")
        monitoring.initialize_logfire()
        assert monitoring._logfire_initialized is False


class TestReports:
    def test_report_error_logs_context(self, caplog):
        error = ValueError("bad payload")
        with caplog.at_level(logging.ERROR, logger="fiscal_ledger.core.monitoring"):
            report_error(error, handler=HandlerType.SEARCH_SYNC_JOB, extra={"table": "transactions"})

        (record,) = caplog.records
        assert record.getMessage() == "ValueError: bad payload"
        assert record.report == {"table": "transactions", "handler": "SEARCH_SYNC_JOB"}
        assert record.exc_info[1] is error

    def test_report_message_level(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="fiscal_ledger.core.monitoring"):
            report_message("Bulk errors", severity="error")
            report_message("Odd severity", severity="loud")

        assert [r.levelno for r in caplog.records] == [logging.ERROR, logging.WARNING]
        assert caplog.records[0].report == {}

    def test_reports_are_forwarded_to_logfire(self, logfire_mock, monkeypatch):
        monkeypatch.setattr(monitoring, "_logfire_initialized", True)
        error = RuntimeError("boom")

        report_error(error, handler=HandlerType.HOST_SETTLEMENT, extra={"host_id": 10})
        report_message("Slow batch", severity="info", extra={"took": 12})

        logfire_mock.exception.assert_called_once_with(
            "RuntimeError: boom", _exc_info=error, host_id=10, handler="HOST_SETTLEMENT"
        )
        logfire_mock.info.assert_called_once_with("Slow batch", took=12)

    def test_reports_are_not_forwarded_when_not_initialized(self, logfire_mock, monkeypatch):
        monkeypatch.setattr(monitoring, "_logfire_initialized", False)
        report_error(RuntimeError("boom"))
        logfire_mock.exception.assert_not_called()
