"""
Tests for analytics data models and configuration.
"""

import json
from datetime import datetime, timezone

import pytest

from src.analytics.models import (
    AggregatedMetric,
    AggregationPeriod,
    AnomalyRecord,
    AnomalyType,
    DetectionConfig,
    EventTypeStats,
    MergePolicy,
    Severity,
)

DETECTED_AT = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)


class TestAggregationPeriod:
    """Tests for AggregationPeriod parsing."""

    @pytest.mark.parametrize("value", ["hour", "DAY", AggregationPeriod.WEEK, "month"])
    def test_parse(self, value):
        """Test names and members are accepted."""
        assert isinstance(AggregationPeriod.parse(value), AggregationPeriod)

    def test_parse_unknown(self):
        """Test unknown periods raise with the available options."""
        with pytest.raises(ValueError, match="Available: hour, day, week, month"):
            AggregationPeriod.parse("quarter")


class TestDetectionConfig:
    """Tests for DetectionConfig."""

    def test_defaults(self):
        """Test default thresholds."""
        config = DetectionConfig()

        assert config.sensitivity_level == 3
        assert config.min_data_points == 10
        assert config.stddev_threshold == 2.5
        assert config.merge_policy is MergePolicy.LAST_WRITER

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"sensitivity_level": 0},
            {"sensitivity_level": 6},
            {"min_data_points": 0},
            {"stddev_threshold": 0},
            {"merge_policy": "random"},
        ],
    )
    def test_invalid_values(self, kwargs):
        """Test out-of-range values are rejected at construction."""
        with pytest.raises(ValueError):
            DetectionConfig(**kwargs)

    def test_merge_policy_from_string(self):
        """Test the merge policy may be given by name."""
        assert DetectionConfig(merge_policy="highest_severity").merge_policy is (
            MergePolicy.HIGHEST_SEVERITY
        )

    def test_from_env(self, monkeypatch):
        """Test environment overrides."""
        monkeypatch.setenv("ANOMALY_DETECTION_SENSITIVITY", "5")
        monkeypatch.setenv("ANOMALY_MIN_DATA_POINTS", "20")
        monkeypatch.setenv("ANOMALY_STDDEV_THRESHOLD", "3")
        monkeypatch.setenv("ANOMALY_MERGE_POLICY", "highest_severity")

        config = DetectionConfig.from_env()

        assert config == DetectionConfig(
            sensitivity_level=5,
            min_data_points=20,
            stddev_threshold=3.0,
            merge_policy=MergePolicy.HIGHEST_SEVERITY,
        )


class TestCalculateSeverity:
    """Tests for AnomalyRecord.calculate_severity."""

    @pytest.mark.parametrize(
        "deviation,expected",
        [
            (0.0, Severity.LOW),
            (33.0, Severity.LOW),
            (34.0, Severity.MEDIUM),
            (67.0, Severity.HIGH),
            (101.0, Severity.CRITICAL),
            (276.0, Severity.CRITICAL),
            (-50.0, Severity.LOW),
        ],
    )
    def test_default_sensitivity(self, deviation, expected):
        """Test the bands at sensitivity 3."""
        assert AnomalyRecord.calculate_severity(deviation, 3) is expected

    def test_bands_scale_with_sensitivity(self):
        """Test lower sensitivity needs larger deviations."""
        assert AnomalyRecord.calculate_severity(100.0, 1) is Severity.MEDIUM
        assert AnomalyRecord.calculate_severity(100.0, 5) is Severity.CRITICAL

    def test_undefined_deviation_is_critical(self):
        """Test a zero baseline yields critical."""
        assert AnomalyRecord.calculate_severity(None, 3) is Severity.CRITICAL

    def test_severity_rank_ordering(self):
        """Test severity ranks are ordinal."""
        ranks = [s.rank for s in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)]

        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 4


class TestAnomalyRecord:
    """Tests for AnomalyRecord serialization."""

    def make_record(self, **overrides):
        fields = {
            "tenant_id": "tenant-1",
            "event_type": "purchase",
            "detected_at": DETECTED_AT,
            "anomaly_type": AnomalyType.SPIKE,
            "severity": Severity.HIGH,
            "metric_value": 500.0,
            "expected_value": 133.3,
            "deviation_percentage": 275.0,
            "threshold_used": 2.5,
            "metadata": {"count": 4, "detection_method": "statistical"},
        }
        fields.update(overrides)
        return AnomalyRecord(**fields)

    def test_new_record_not_acknowledged(self):
        """Test records start unacknowledged."""
        record = self.make_record()

        assert record.acknowledged is False
        assert record.acknowledged_by is None
        assert record.acknowledged_at is None

    def test_to_db_dict(self):
        """Test enums become their values and metadata becomes JSON."""
        data = self.make_record().to_db_dict()

        assert data["anomaly_type"] == "spike"
        assert data["severity"] == "high"
        assert json.loads(data["metadata"]) == {"count": 4, "detection_method": "statistical"}
        assert "acknowledged" not in data
        assert data["aggregation_period"] is None

    def test_from_db_row(self):
        """Test rows from the store round into records."""
        row = {
            "id": "a1",
            "tenant_id": "tenant-1",
            "event_type": "purchase",
            "detected_at": DETECTED_AT,
            "anomaly_type": "drop",
            "severity": "critical",
            "metric_value": "5.0",
            "expected_value": None,
            "deviation_percentage": "80.5",
            "threshold_used": "2.5",
            "metadata": '{"count": 1}',
            "acknowledged": True,
            "acknowledged_by": "user-9",
            "acknowledged_at": DETECTED_AT,
        }

        record = AnomalyRecord.from_db_row(row)

        assert record.id == "a1"
        assert record.anomaly_type is AnomalyType.DROP
        assert record.severity is Severity.CRITICAL
        assert record.metric_value == 5.0
        assert record.expected_value is None
        assert record.deviation_percentage == 80.5
        assert record.metadata == {"count": 1}
        assert record.acknowledged is True
        assert record.acknowledged_by == "user-9"


class TestOtherModels:
    """Tests for AggregatedMetric and EventTypeStats."""

    def test_aggregated_metric_to_db_dict(self):
        """Test period and dimensions are serialized for the unique key."""
        metric = AggregatedMetric(
            tenant_id="tenant-1",
            event_type="signup",
            aggregation_period=AggregationPeriod.HOUR,
            period_start=DETECTED_AT,
            period_end=DETECTED_AT,
            count_events=3,
            sum_value=6.0,
            avg_value=2.0,
            min_value=1.0,
            max_value=3.0,
            stddev_value=0.8165,
        )

        data = metric.to_db_dict()

        assert data["aggregation_period"] == "hour"
        assert data["dimensions"] == "{}"

    def test_event_type_stats_from_db_row(self):
        """Test numeric strings and NULLs are converted."""
        stats = EventTypeStats.from_db_row(
            {
                "event_type": "signup",
                "total_events": 12,
                "unique_dates": 3,
                "avg_value": "2.5",
                "min_value": None,
                "max_value": 4,
                "first_event_date": DETECTED_AT,
                "last_event_date": DETECTED_AT,
            }
        )

        assert stats.total_events == 12
        assert stats.avg_value == 2.5
        assert stats.min_value is None
        assert stats.max_value == 4.0
