"""Unit tests for Settings, the error hierarchy and logging setup."""

from __future__ import annotations

import pydantic
import pytest
import structlog

from rca_dashboard.config.settings import Settings
from rca_dashboard.utils.errors import (
    ConfigurationError,
    NotFoundError,
    RcaDashboardError,
    TransportError,
    ValidationError,
)
from rca_dashboard.utils.logging import configure_logging, get_logger


# ======================================================================
# Settings
# ======================================================================


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("RCA_API_BASE_URL", "POLL_INTERVAL_SECONDS", "POLL_MAX_RETRIES"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.rca_api_base_url == "http://localhost:8080/api"
        assert settings.poll_interval_seconds == 2.0
        assert settings.poll_max_retries == 2
        assert settings.request_timeout_seconds == 30.0

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RCA_API_BASE_URL", "http://rca:8080/api")
        monkeypatch.setenv("POLL_INTERVAL_SECONDS", "0.5")
        settings = Settings(_env_file=None)
        assert settings.rca_api_base_url == "http://rca:8080/api"
        assert settings.poll_interval_seconds == 0.5

    @pytest.mark.parametrize(
        "overrides",
        [
            {"poll_interval_seconds": 0},
            {"request_timeout_seconds": -1},
            {"poll_max_retries": -1},
            {"poll_retry_backoff_seconds": -0.5},
        ],
    )
    def test_invalid_values_rejected(self, overrides: dict) -> None:
        with pytest.raises(pydantic.ValidationError):
            Settings(_env_file=None, **overrides)

    def test_cors_origins_default_to_wildcard(self) -> None:
        assert Settings(_env_file=None, cors_allowed_origins="").get_cors_origins() == ["*"]

    def test_cors_origins_split(self) -> None:
        settings = Settings(
            _env_file=None, cors_allowed_origins="http://a.test, http://b.test,"
        )
        assert settings.get_cors_origins() == ["http://a.test", "http://b.test"]


# ======================================================================
# Errors
# ======================================================================


class TestErrors:
    def test_str_prefixes_provider(self) -> None:
        exc = TransportError("Connection refused", provider_name="ingestion", status_code=503)
        assert str(exc) == "[ingestion] Connection refused"
        assert exc.message == "Connection refused"
        assert exc.status_code == 503

    def test_str_without_provider(self) -> None:
        assert str(NotFoundError("Sync not found")) == "Sync not found"

    @pytest.mark.parametrize(
        "error_cls", [TransportError, ValidationError, NotFoundError, ConfigurationError]
    )
    def test_hierarchy(self, error_cls: type[RcaDashboardError]) -> None:
        exc = error_cls()
        assert isinstance(exc, RcaDashboardError)
        assert exc.message
        assert exc.provider_name is None


# ======================================================================
# Logging
# ======================================================================


class TestLogging:
    def test_configure_logging_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("INFO", json_output=True)
        get_logger("test").info("sync_tracked", sync_id="abc123")
        out = capsys.readouterr().out
        assert '"event": "sync_tracked"' in out
        assert '"sync_id": "abc123"' in out

    def test_level_filtering(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("WARNING", json_output=True)
        get_logger("test").info("hidden_event")
        assert "hidden_event" not in capsys.readouterr().out
        structlog.reset_defaults()
