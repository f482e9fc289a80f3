"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from src.analytics.models import DetectionConfig, TimeSeriesPoint
from src.core.config import PostgresSettings

SAMPLE_EVENT_TYPES = ["page_view", "signup", "purchase"]
SAMPLE_REGIONS = ["us-east", "eu-west", "ap-south"]


def build_sample_csv(rows: int = 25) -> str:
    """Hourly events over ~6 hours, three event types, integer values only"""
    start = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)
    lines = ["timestamp,event_type,user_id,value,region"]
    for i in range(rows):
        ts = start + timedelta(minutes=15 * i)
        lines.append(
            f"{ts.strftime('%Y-%m-%dT%H:%M:%SZ')},"
            f"{SAMPLE_EVENT_TYPES[i % 3]},"
            f"user_{i % 7:03d},"
            f"{(i % 5 + 1) * 10},"
            f"{SAMPLE_REGIONS[i % 3]}"
        )
    return "\n".join(lines) + "\n"


def make_series(values, start=None, step=timedelta(hours=1), count=1):
    """Build an hourly TimeSeriesPoint series from plain values"""
    start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        TimeSeriesPoint(timestamp=start + step * i, value=float(v), count=count)
        for i, v in enumerate(values)
    ]


# Database fixtures
@pytest.fixture
def postgres_settings():
    """PostgreSQL settings pointing at a test database."""
    return PostgresSettings(
        host="localhost",
        port=5432,
        database="test_db",
        user="test_user",
        password="test_password",
    )


@pytest.fixture
def mock_connect():
    """Patch psycopg2.connect and hand back the mocked connection and cursor."""
    with patch("src.core.database.psycopg2.connect") as connect:
        connection = MagicMock()
        cursor = MagicMock()
        connection.cursor.return_value = cursor
        connect.return_value = connection
        yield connect, connection, cursor


# Ingestion fixtures
@pytest.fixture
def sample_csv():
    """The 25-row sample upload."""
    return build_sample_csv()


# Analytics fixtures
@pytest.fixture
def detection_config():
    """Default detection thresholds."""
    return DetectionConfig()


@pytest.fixture
def series_factory():
    """Factory for hourly time series."""
    return make_series
