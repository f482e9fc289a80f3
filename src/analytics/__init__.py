"""
Time-series aggregation and statistical anomaly detection.
"""

from .aggregation import Aggregator, compute_bucket_statistics
from .database import AnalyticsDatabase
from .detector import AnomalyDetector, find_anomalies, merge_findings, summarize_anomalies
from .methods import DetectionMethod, Finding, get_method, list_methods
from .models import (
    AggregatedMetric,
    AggregationPeriod,
    AnalyticsConfig,
    AnomalyRecord,
    AnomalySummary,
    AnomalyType,
    DetectionConfig,
    EventTypeStats,
    MergePolicy,
    Severity,
    TimeSeriesPoint,
)

__all__ = [
    "AggregatedMetric",
    "AggregationPeriod",
    "Aggregator",
    "AnalyticsConfig",
    "AnalyticsDatabase",
    "AnomalyDetector",
    "AnomalyRecord",
    "AnomalySummary",
    "AnomalyType",
    "DetectionConfig",
    "DetectionMethod",
    "EventTypeStats",
    "Finding",
    "MergePolicy",
    "Severity",
    "TimeSeriesPoint",
    "compute_bucket_statistics",
    "find_anomalies",
    "get_method",
    "list_methods",
    "merge_findings",
    "summarize_anomalies",
]
