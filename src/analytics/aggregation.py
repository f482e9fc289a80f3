"""
Time-series aggregation of stored analytics events.

Both call shapes, the on-demand series used for charting and the persisted
per-bucket statistics, go through compute_bucket_statistics so that bucket
boundaries and statistics are defined in one place.
"""

from datetime import datetime, timedelta, timezone

import pandas as pd
import structlog

from .database import AnalyticsDatabase
from .models import AggregatedMetric, AggregationPeriod, EventTypeStats, TimeSeriesPoint, _optional_float

logger = structlog.get_logger(__name__)

BUCKET_COLUMNS = [
    "period_start",
    "period_end",
    "count_events",
    "sum_value",
    "avg_value",
    "min_value",
    "max_value",
    "stddev_value",
]


def bucket_start(timestamps: pd.Series, period: AggregationPeriod) -> pd.Series:
    """Truncate UTC timestamps to the start of their bucket

    Weeks start on Monday and months on the first day, both at midnight UTC.
    """
    if period is AggregationPeriod.HOUR:
        return timestamps.dt.floor("h")

    day = timestamps.dt.floor("D")
    if period is AggregationPeriod.DAY:
        return day
    if period is AggregationPeriod.WEEK:
        return day - pd.to_timedelta(day.dt.weekday, unit="D")
    return day - pd.to_timedelta(day.dt.day - 1, unit="D")


def bucket_end(starts: pd.Series, period: AggregationPeriod) -> pd.Series:
    """Exclusive end of each bucket"""
    if period is AggregationPeriod.HOUR:
        return starts + pd.Timedelta(hours=1)
    if period is AggregationPeriod.DAY:
        return starts + pd.Timedelta(days=1)
    if period is AggregationPeriod.WEEK:
        return starts + pd.Timedelta(days=7)
    return starts + pd.DateOffset(months=1)


def compute_bucket_statistics(events: pd.DataFrame, period: AggregationPeriod) -> pd.DataFrame:
    """Group events into buckets and compute per-bucket statistics

    Args:
        events: DataFrame with columns ['event_timestamp', 'metric_value']
        period: Bucket width

    Returns:
        DataFrame with BUCKET_COLUMNS, one row per non-empty bucket, ordered by
        period_start. count_events counts every event; the value statistics only
        use non-null metric values and stddev is the population stddev.
    """
    if events.empty:
        return pd.DataFrame(columns=BUCKET_COLUMNS)

    timestamps = pd.to_datetime(events["event_timestamp"], utc=True)
    values = pd.to_numeric(events["metric_value"], errors="coerce").astype(float)

    frame = pd.DataFrame(
        {"period_start": bucket_start(timestamps, period), "value": values.to_numpy()}
    )
    grouped = frame.groupby("period_start", sort=True)["value"]

    stats = pd.DataFrame(
        {
            "count_events": grouped.size(),
            "sum_value": grouped.sum(min_count=1),
            "avg_value": grouped.mean(),
            "min_value": grouped.min(),
            "max_value": grouped.max(),
            "stddev_value": grouped.std(ddof=0),
        }
    ).reset_index()
    stats["period_end"] = bucket_end(stats["period_start"], period)

    return stats[BUCKET_COLUMNS]


class Aggregator:
    """Aggregates a tenant's events for one event type into time buckets"""

    def __init__(self, db: AnalyticsDatabase):
        self.db = db

    def _bucket(
        self,
        tenant_id: str,
        event_type: str,
        start: datetime,
        end: datetime,
        period: AggregationPeriod | str,
    ) -> tuple[AggregationPeriod, pd.DataFrame]:
        period = AggregationPeriod.parse(period)
        events = self.db.query_events(tenant_id, event_type, start, end)
        return period, compute_bucket_statistics(events, period)

    def aggregate(
        self,
        tenant_id: str,
        event_type: str,
        start: datetime,
        end: datetime,
        period: AggregationPeriod | str = AggregationPeriod.DAY,
    ) -> list[TimeSeriesPoint]:
        """Build the chart series for [start, end]

        Buckets without events are omitted. A bucket whose events all lack a
        metric value reports a value of 0.
        """
        period, stats = self._bucket(tenant_id, event_type, start, end, period)

        series = [
            TimeSeriesPoint(
                timestamp=row.period_start.to_pydatetime(),
                value=_optional_float(row.avg_value) or 0.0,
                count=int(row.count_events),
            )
            for row in stats.itertuples(index=False)
        ]

        logger.debug(
            "Aggregated time series",
            tenant_id=tenant_id,
            event_type=event_type,
            period=period.value,
            points=len(series),
        )
        return series

    def compute_and_persist(
        self,
        tenant_id: str,
        event_type: str,
        period: AggregationPeriod | str,
        start: datetime,
        end: datetime,
    ) -> int:
        """Compute full bucket statistics for [start, end] and upsert them

        Re-running over the same window overwrites the stored buckets in place.

        Returns:
            Number of buckets written
        """
        period, stats = self._bucket(tenant_id, event_type, start, end, period)

        metrics = [
            AggregatedMetric(
                tenant_id=tenant_id,
                event_type=event_type,
                aggregation_period=period,
                period_start=row.period_start.to_pydatetime(),
                period_end=row.period_end.to_pydatetime(),
                count_events=int(row.count_events),
                sum_value=_optional_float(row.sum_value),
                avg_value=_optional_float(row.avg_value),
                min_value=_optional_float(row.min_value),
                max_value=_optional_float(row.max_value),
                stddev_value=_optional_float(row.stddev_value),
            )
            for row in stats.itertuples(index=False)
        ]

        if not metrics:
            logger.info(
                "No events to aggregate",
                tenant_id=tenant_id,
                event_type=event_type,
                period=period.value,
            )
            return 0

        written = self.db.upsert_aggregated_metrics(metrics)

        logger.info(
            "Aggregates persisted",
            tenant_id=tenant_id,
            event_type=event_type,
            period=period.value,
            buckets=written,
        )
        return written

    def recent_metrics(
        self,
        tenant_id: str,
        event_type: str,
        hours: int = 24,
        now: datetime | None = None,
    ) -> list[TimeSeriesPoint]:
        """Series for the last `hours` hours: hourly up to a day, daily beyond"""
        end = now or datetime.now(timezone.utc)
        start = end - timedelta(hours=hours)
        period = AggregationPeriod.HOUR if hours <= 24 else AggregationPeriod.DAY
        return self.aggregate(tenant_id, event_type, start, end, period)

    def event_type_stats(self, tenant_id: str) -> list[EventTypeStats]:
        """Per event type totals for a tenant, busiest first"""
        return [EventTypeStats.from_db_row(row) for row in self.db.get_event_type_stats(tenant_id)]
