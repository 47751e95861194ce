"""
Unit tests for settings, the user .env writer, logging setup and errors.

Run with: pytest tests/test_config.py -v
"""

import logging
import sys

import pytest
from pydantic import ValidationError

from core.config import AppSettings, get_user_config_dir, get_user_env_file, write_user_env_vars
from core.errors import TransportError
from core.logging_config import configure_logging, reset_logging
from core.services.bulk_orchestrator import BulkPolicy


class TestAppSettings:
    def test_defaults(self):
        settings = AppSettings(_env_file=None)

        assert settings.environment == "sandbox"
        assert settings.api_token is None
        assert settings.bulk_max_concurrency == 1
        assert settings.stream_read_timeout_seconds is None

    def test_environment_variables(self, monkeypatch):
        """BULKPAYOUT_* variables override defaults."""
        monkeypatch.setenv("BULKPAYOUT_ENVIRONMENT", "production")
        monkeypatch.setenv("BULKPAYOUT_BULK_MAX_BATCH_SIZE", "5")

        settings = AppSettings(_env_file=None)

        assert settings.environment == "production"
        assert BulkPolicy.from_settings(settings).max_batch_size == 5

    def test_env_file(self, tmp_path):
        env_file = tmp_path / "custom.env"
        env_file.write_text("BULKPAYOUT_API_TOKEN=abc\n", encoding="utf-8")

        assert AppSettings(_env_file=env_file).api_token == "abc"

    def test_invalid_environment(self):
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None, environment="staging")

    def test_invalid_concurrency(self):
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None, bulk_max_concurrency=0)


class TestUserEnvFile:
    def test_write_merges_and_sorts(self, tmp_path):
        """Existing keys survive; new values win; output is sorted."""
        env_path = tmp_path / "cfg" / ".env"
        write_user_env_vars({"BULKPAYOUT_API_TOKEN": "old", "BULKPAYOUT_ENVIRONMENT": "sandbox"}, env_path=env_path)

        write_user_env_vars({"BULKPAYOUT_API_TOKEN": "new"}, env_path=env_path)

        assert env_path.read_text(encoding="utf-8").splitlines() == [
            "# BulkPayout user config (.env)",
            "BULKPAYOUT_API_TOKEN=new",
            "BULKPAYOUT_ENVIRONMENT=sandbox",
        ]

    @pytest.mark.skipif(not sys.platform.startswith("linux"), reason="XDG layout")
    def test_xdg_location(self, tmp_path):
        assert get_user_config_dir() == tmp_path / "xdg" / "bulkpayout"
        assert get_user_env_file().name == ".env"


class TestLogging:
    def test_configure_is_idempotent(self):
        try:
            configure_logging("DEBUG")
            configure_logging("WARNING")

            names = [h.get_name() for h in logging.getLogger().handlers]
            assert names.count("bulkpayout-rich") == 1
            assert logging.getLogger().level == logging.WARNING
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            reset_logging()

        assert "bulkpayout-rich" not in [h.get_name() for h in logging.getLogger().handlers]

    def test_httpx_requests_only_in_debug(self):
        """httpx request lines show at DEBUG and stay hidden at INFO."""
        try:
            configure_logging("DEBUG")
            assert logging.getLogger("httpx").level == logging.DEBUG

            configure_logging("INFO")
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            reset_logging()

    def test_unknown_level_falls_back_to_info(self):
        try:
            configure_logging("LOUD")
            assert logging.getLogger().level == logging.INFO
        finally:
            reset_logging()


class TestTransportError:
    @pytest.mark.parametrize(
        "status, retryable",
        [(None, True), (429, True), (500, True), (503, True), (400, False), (401, False), (404, False)],
    )
    def test_retryable(self, status, retryable):
        assert TransportError("boom", status_code=status).retryable is retryable
