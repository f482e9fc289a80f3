"""
Anomaly detection over aggregated time series.

Workflow:
1. Run every registered pass (outlier, then trend) over the same series
2. Merge the findings, keeping one per timestamp according to the merge policy
3. Turn each surviving finding into an AnomalyRecord and store the batch
"""

from datetime import datetime, timedelta, timezone

import structlog

from .database import AnalyticsDatabase
from .methods import Finding, get_method, list_methods
from .models import (
    AggregationPeriod,
    AnomalyRecord,
    AnomalySummary,
    AnomalyType,
    DetectionConfig,
    MergePolicy,
    Severity,
    TimeSeriesPoint,
)

logger = structlog.get_logger(__name__)

DETECTION_METHOD = "statistical"


def merge_findings(findings: list[Finding], policy: MergePolicy) -> list[Finding]:
    """Keep one finding per timestamp

    ``findings`` must be in pass order. LAST_WRITER keeps the finding seen last
    for a timestamp; HIGHEST_SEVERITY keeps the most severe one, and on a tie
    the one seen first. The result keeps the order in which each timestamp
    first appeared.
    """
    merged: dict[datetime, Finding] = {}

    for finding in findings:
        key = finding.point.timestamp
        current = merged.get(key)
        if current is None or policy is MergePolicy.LAST_WRITER:
            merged[key] = finding
        elif finding.severity.rank > current.severity.rank:
            merged[key] = finding

    return list(merged.values())


def find_anomalies(series: list[TimeSeriesPoint], config: DetectionConfig) -> list[Finding]:
    """Run all passes and merge their findings without touching storage"""
    if len(series) < config.min_data_points:
        return []

    findings: list[Finding] = []
    for method_name in list_methods():
        findings.extend(get_method(method_name).detect(series, config))

    return merge_findings(findings, config.merge_policy)


def summarize_anomalies(records: list[AnomalyRecord], now: datetime | None = None) -> AnomalySummary:
    """Dashboard counters over a list of anomalies"""
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(hours=24)

    return AnomalySummary(
        total_anomalies=len(records),
        critical_count=sum(1 for r in records if r.severity is Severity.CRITICAL),
        high_count=sum(1 for r in records if r.severity is Severity.HIGH),
        spikes_count=sum(1 for r in records if r.anomaly_type is AnomalyType.SPIKE),
        drops_count=sum(1 for r in records if r.anomaly_type is AnomalyType.DROP),
        recent_anomalies=sum(1 for r in records if r.detected_at >= since),
    )


class AnomalyDetector:
    """Detects, stores and acknowledges anomalies for a tenant's event types"""

    def __init__(self, db: AnalyticsDatabase):
        self.db = db

    def detect_anomalies(
        self,
        tenant_id: str,
        event_type: str,
        series: list[TimeSeriesPoint],
        config: DetectionConfig | None = None,
        period: AggregationPeriod | str | None = None,
    ) -> list[AnomalyRecord]:
        """Detect anomalies in a series and store them

        ``period`` is the bucket size the series was aggregated with. It is
        kept in the metadata so findings from different periods that share a
        bucket start are stored separately.

        Returns:
            The records found (empty when nothing was flagged); records that
            were already stored keep ``id`` None
        """
        config = config or DetectionConfig()
        period = AggregationPeriod.parse(period) if period is not None else None

        if len(series) < config.min_data_points:
            logger.debug(
                "Series too short for detection",
                tenant_id=tenant_id,
                event_type=event_type,
                points=len(series),
                min_data_points=config.min_data_points,
            )
            return []

        records = [
            AnomalyRecord(
                tenant_id=tenant_id,
                event_type=event_type,
                detected_at=finding.point.timestamp,
                anomaly_type=finding.anomaly_type,
                severity=finding.severity,
                metric_value=finding.point.value,
                expected_value=finding.expected_value,
                deviation_percentage=finding.deviation_percentage,
                threshold_used=config.stddev_threshold,
                metadata={
                    "count": finding.point.count,
                    "detection_method": DETECTION_METHOD,
                    "detection_pass": finding.detection_pass,
                    "sensitivity_level": config.sensitivity_level,
                },
            )
            for finding in find_anomalies(series, config)
        ]

        if period is not None:
            for record in records:
                record.metadata["aggregation_period"] = period.value

        stored = self.db.insert_anomalies(records) if records else 0

        logger.info(
            "Anomaly detection complete",
            tenant_id=tenant_id,
            event_type=event_type,
            points=len(series),
            anomalies=len(records),
            stored=stored,
            critical=sum(1 for r in records if r.severity is Severity.CRITICAL),
        )
        return records

    def acknowledge(
        self,
        anomaly_id: str,
        actor_user_id: str,
        acknowledged_at: datetime | None = None,
    ) -> None:
        """Mark an anomaly acknowledged; acknowledging again overwrites actor and time"""
        acknowledged_at = acknowledged_at or datetime.now(timezone.utc)
        self.db.acknowledge_anomaly(anomaly_id, actor_user_id, acknowledged_at)
        logger.info("Anomaly acknowledged", anomaly_id=anomaly_id, acknowledged_by=actor_user_id)

    def list_anomalies(
        self,
        tenant_id: str,
        event_type: str | None = None,
        since: datetime | None = None,
        acknowledged: bool | None = False,
        limit: int = 100,
    ) -> list[AnomalyRecord]:
        rows = self.db.get_anomalies(
            tenant_id,
            event_type=event_type,
            since=since,
            acknowledged=acknowledged,
            limit=limit,
        )
        return [AnomalyRecord.from_db_row(row) for row in rows]
