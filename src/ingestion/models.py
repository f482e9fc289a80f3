"""
Data models and configuration for CSV ingestion.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.core.config import PostgresSettings

from .validation import RowError

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@dataclass
class IngestionConfig:
    """Configuration for the upload pipeline"""

    postgres: PostgresSettings = field(default_factory=PostgresSettings)

    # Checked before the file is decoded or parsed
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    allowed_extensions: tuple[str, ...] = (".csv",)


@dataclass
class AnalyticsEvent:
    """One normalized event, ready for insertion. Never updated once stored."""

    tenant_id: str
    file_id: str | None
    event_type: str
    event_timestamp: datetime
    metric_value: float | None
    dimensions: dict[str, Any] = field(default_factory=dict)
    raw_data: dict[str, Any] | None = None

    def to_db_dict(self) -> dict:
        """Convert to dict for database insertion"""
        raw_data = None
        if self.raw_data is not None:
            raw_data = json.dumps(self.raw_data, default=_json_default)

        return {
            "tenant_id": self.tenant_id,
            "file_id": self.file_id,
            "event_type": self.event_type,
            "event_timestamp": self.event_timestamp,
            "metric_value": self.metric_value,
            "dimensions": json.dumps(self.dimensions, default=_json_default),
            "raw_data": raw_data,
        }


@dataclass
class IngestionResult:
    """Outcome of one upload; rejections are reported here rather than raised"""

    success: bool
    file_id: str | None = None
    row_count: int = 0
    columns: list[str] = field(default_factory=list)
    error: str | None = None
    validation_errors: list[RowError] = field(default_factory=list)
