"""
Data models and configuration for aggregation and anomaly detection.
"""

import json
import math
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from src.core.config import PostgresSettings


class AggregationPeriod(Enum):
    """Calendar-aligned bucket widths"""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @classmethod
    def parse(cls, value: "AggregationPeriod | str") -> "AggregationPeriod":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            available = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown aggregation period '{value}'. Available: {available}") from None


class AnomalyType(Enum):
    SPIKE = "spike"
    DROP = "drop"
    OUTLIER = "outlier"


class Severity(Enum):
    """Four-level ordinal classification of how extreme an anomaly is"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class MergePolicy(Enum):
    """How to pick one finding when both detection passes flag the same timestamp"""

    # The trend pass runs second, so its finding replaces the outlier one
    LAST_WRITER = "last_writer"
    HIGHEST_SEVERITY = "highest_severity"


@dataclass
class DetectionConfig:
    """Thresholds for one anomaly detection run"""

    sensitivity_level: int = 3  # 1-5, higher flags more
    min_data_points: int = 10
    stddev_threshold: float = 2.5
    merge_policy: MergePolicy = MergePolicy.LAST_WRITER

    def __post_init__(self):
        if not 1 <= self.sensitivity_level <= 5:
            raise ValueError(f"sensitivity_level must be between 1 and 5, got {self.sensitivity_level}")
        if self.min_data_points < 1:
            raise ValueError(f"min_data_points must be positive, got {self.min_data_points}")
        if self.stddev_threshold <= 0:
            raise ValueError(f"stddev_threshold must be positive, got {self.stddev_threshold}")
        self.merge_policy = MergePolicy(self.merge_policy)

    @classmethod
    def from_env(cls) -> "DetectionConfig":
        return cls(
            sensitivity_level=int(os.getenv("ANOMALY_DETECTION_SENSITIVITY", "3")),
            min_data_points=int(os.getenv("ANOMALY_MIN_DATA_POINTS", "10")),
            stddev_threshold=float(os.getenv("ANOMALY_STDDEV_THRESHOLD", "2.5")),
            merge_policy=os.getenv("ANOMALY_MERGE_POLICY", MergePolicy.LAST_WRITER.value),
        )


@dataclass
class AnalyticsConfig:
    """Configuration for the aggregation / detection entry point"""

    postgres: PostgresSettings = field(default_factory=PostgresSettings)
    detection: DetectionConfig = field(default_factory=DetectionConfig)


@dataclass
class TimeSeriesPoint:
    """One bucket of a time series: bucket start, average metric value, event count"""

    timestamp: datetime
    value: float
    count: int


@dataclass
class EventTypeStats:
    event_type: str
    total_events: int
    unique_dates: int
    avg_value: float | None
    min_value: float | None
    max_value: float | None
    first_event_date: datetime | None
    last_event_date: datetime | None

    @classmethod
    def from_db_row(cls, row: dict) -> "EventTypeStats":
        return cls(
            event_type=row["event_type"],
            total_events=int(row["total_events"] or 0),
            unique_dates=int(row["unique_dates"] or 0),
            avg_value=_optional_float(row.get("avg_value")),
            min_value=_optional_float(row.get("min_value")),
            max_value=_optional_float(row.get("max_value")),
            first_event_date=row.get("first_event_date"),
            last_event_date=row.get("last_event_date"),
        )


@dataclass
class AggregatedMetric:
    """Stored statistics for one bucket, keyed by tenant, type, period, start and dimensions"""

    tenant_id: str
    event_type: str
    aggregation_period: AggregationPeriod
    period_start: datetime
    period_end: datetime
    count_events: int
    sum_value: float | None
    avg_value: float | None
    min_value: float | None
    max_value: float | None
    stddev_value: float | None
    dimensions: dict[str, Any] = field(default_factory=dict)

    def to_db_dict(self) -> dict:
        """Convert to dict for database upsert"""
        return {
            "tenant_id": self.tenant_id,
            "event_type": self.event_type,
            "aggregation_period": self.aggregation_period.value,
            "period_start": self.period_start,
            "period_end": self.period_end,
            "count_events": self.count_events,
            "sum_value": self.sum_value,
            "avg_value": self.avg_value,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "stddev_value": self.stddev_value,
            "dimensions": json.dumps(self.dimensions, sort_keys=True),
        }


@dataclass
class AnomalyRecord:
    """A detected anomaly. Only the acknowledgement fields change after creation."""

    tenant_id: str
    event_type: str
    detected_at: datetime
    anomaly_type: AnomalyType
    severity: Severity
    metric_value: float
    expected_value: float | None
    deviation_percentage: float | None
    threshold_used: float | None
    metadata: dict = field(default_factory=dict)
    acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    id: str | None = None

    def to_db_dict(self) -> dict:
        """Convert to dict for database insertion"""
        return {
            "tenant_id": self.tenant_id,
            "event_type": self.event_type,
            "detected_at": self.detected_at,
            "anomaly_type": self.anomaly_type.value,
            "severity": self.severity.value,
            "metric_value": self.metric_value,
            "expected_value": self.expected_value,
            "deviation_percentage": self.deviation_percentage,
            "threshold_used": self.threshold_used,
            "metadata": json.dumps(self.metadata),
            # Part of the duplicate check, not a column
            "aggregation_period": self.metadata.get("aggregation_period"),
        }

    @classmethod
    def from_db_row(cls, row: dict) -> "AnomalyRecord":
        metadata = row.get("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            tenant_id=str(row["tenant_id"]),
            event_type=row["event_type"],
            detected_at=row["detected_at"],
            anomaly_type=AnomalyType(row["anomaly_type"]),
            severity=Severity(row["severity"]),
            metric_value=float(row["metric_value"]),
            expected_value=_optional_float(row.get("expected_value")),
            deviation_percentage=_optional_float(row.get("deviation_percentage")),
            threshold_used=_optional_float(row.get("threshold_used")),
            metadata=metadata,
            acknowledged=bool(row.get("acknowledged", False)),
            acknowledged_by=str(row["acknowledged_by"]) if row.get("acknowledged_by") else None,
            acknowledged_at=row.get("acknowledged_at"),
        )

    @staticmethod
    def calculate_severity(deviation_percentage: float | None, sensitivity_level: int) -> Severity:
        """Calculate severity level from a deviation percentage

        The bands scale with sensitivity: at level 3 they sit at 33%, 67% and 100%.
        An undefined deviation (zero baseline) is critical.
        """
        if deviation_percentage is None:
            return Severity.CRITICAL

        adjusted_threshold = 100 / sensitivity_level

        if deviation_percentage >= adjusted_threshold * 3:
            return Severity.CRITICAL
        elif deviation_percentage >= adjusted_threshold * 2:
            return Severity.HIGH
        elif deviation_percentage >= adjusted_threshold:
            return Severity.MEDIUM
        else:
            return Severity.LOW


@dataclass
class AnomalySummary:
    total_anomalies: int = 0
    critical_count: int = 0
    high_count: int = 0
    spikes_count: int = 0
    drops_count: int = 0
    recent_anomalies: int = 0


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    number = float(value)
    return None if math.isnan(number) else number
