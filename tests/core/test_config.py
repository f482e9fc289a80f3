"""
Tests for shared settings and logging setup.
"""

import argparse
import logging
from unittest.mock import patch

import structlog

from src.core.config import PostgresSettings, add_postgres_arguments, postgres_settings_from_args
from src.core.logger import level_from_env, setup_logging


class TestPostgresSettings:
    """Tests for PostgresSettings."""

    def test_defaults(self):
        """Test default connection settings."""
        settings = PostgresSettings()

        assert settings.host == "localhost"
        assert settings.port == 5432
        assert settings.database == "analytics_db"

    def test_from_env(self, monkeypatch):
        """Test settings are read from POSTGRES_* variables."""
        monkeypatch.setenv("POSTGRES_HOST", "db.internal")
        monkeypatch.setenv("POSTGRES_PORT", "6543")
        monkeypatch.setenv("POSTGRES_DB", "events")
        monkeypatch.setenv("POSTGRES_USER", "reader")
        monkeypatch.setenv("POSTGRES_PASSWORD", "secret")

        settings = PostgresSettings.from_env()

        assert settings == PostgresSettings(
            host="db.internal", port=6543, database="events", user="reader", password="secret"
        )

    def test_arguments_round_trip_to_settings(self, monkeypatch):
        """Test CLI flags override environment defaults."""
        monkeypatch.setenv("POSTGRES_HOST", "from-env")
        parser = argparse.ArgumentParser()
        add_postgres_arguments(parser)

        args = parser.parse_args(["--postgres-port", "5433", "--postgres-db", "other"])
        settings = postgres_settings_from_args(args)

        assert settings.host == "from-env"
        assert settings.port == 5433
        assert settings.database == "other"


class TestLogging:
    """Tests for logging helpers."""

    def test_level_from_env(self, monkeypatch):
        """Test LOG_LEVEL resolution, falling back to INFO for unknown names."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert level_from_env() == logging.DEBUG

        monkeypatch.setenv("LOG_LEVEL", "verbose")
        assert level_from_env() == logging.INFO

    def test_setup_logging_json_renderer(self):
        """Test JSON logs end the processor chain with JSONRenderer."""
        with patch("src.core.logger.structlog.configure") as configure:
            setup_logging(level=logging.WARNING, json_logs=True)

        processors = configure.call_args.kwargs["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_setup_logging_console_renderer(self):
        """Test console logs end the processor chain with ConsoleRenderer."""
        with patch("src.core.logger.structlog.configure") as configure:
            setup_logging()

        processors = configure.call_args.kwargs["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
