"""Tests for settings, logging setup and service wiring."""

import logging

import pytest

from handshake_core.config import DEFAULT_BROADCAST_WORKERS, Settings
from handshake_core.logging_config import setup_logging
from handshake_core.services import build_services


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.table_name == "handshake-table"
        assert settings.connection_ttl_seconds == 1800
        assert settings.broadcast_workers == DEFAULT_BROADCAST_WORKERS
        assert settings.websocket_endpoint is None

    def test_from_environment(self):
        settings = Settings.from_env(
            {
                "HANDSHAKE_TABLE": "prod-table",
                "AWS_REGION": "eu-central-1",
                "WEBSOCKET_ENDPOINT": "https://ws.example.com/prod",
                "CONNECTION_TTL_SECONDS": "600",
                "BROADCAST_WORKERS": "4",
                "LOG_VERBOSITY": "0",
            }
        )
        assert settings.table_name == "prod-table"
        assert settings.region == "eu-central-1"
        assert settings.connection_ttl_seconds == 600
        assert settings.broadcast_workers == 4
        assert settings.log_verbosity == 0

    @pytest.mark.parametrize("value", ["abc", "0", "-5"])
    def test_bad_numbers_rejected(self, value):
        with pytest.raises(ValueError):
            Settings.from_env({"CONNECTION_TTL_SECONDS": value})

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("HANDSHAKE_TABLE", "env-table")
        assert Settings.from_env().table_name == "env-table"


class TestLogging:
    @pytest.mark.parametrize(
        "verbose,level", [(0, logging.WARNING), (1, logging.INFO), (2, logging.DEBUG)]
    )
    def test_levels(self, verbose, level):
        setup_logging(verbose)
        assert logging.getLogger().level == level
        assert logging.getLogger("botocore").level == logging.WARNING

    def test_aws_logging_at_trace(self):
        setup_logging(3)
        assert logging.getLogger("botocore").level == logging.DEBUG


def test_build_services_requires_websocket_endpoint():
    with pytest.raises(ValueError):
        build_services(Settings())
