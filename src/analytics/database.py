"""
PostgreSQL operations for aggregation and anomaly detection.

Handles:
- Querying a tenant's events for one type and time range
- Upserting per-bucket aggregates
- Inserting, listing and acknowledging anomalies
"""

from datetime import datetime

import pandas as pd
import psycopg2.extras
import structlog

from src.core.database import PostgresConnection

from .models import AggregatedMetric, AggregationPeriod, AnomalyRecord

logger = structlog.get_logger(__name__)

EVENT_COLUMNS = ["event_timestamp", "metric_value"]


class AnalyticsDatabase(PostgresConnection):
    """Database operations for analytics"""

    def query_events(
        self,
        tenant_id: str,
        event_type: str,
        start: datetime,
        end: datetime,
    ) -> pd.DataFrame:
        """Query the events of one type within [start, end]

        Returns:
            DataFrame with columns ['event_timestamp', 'metric_value'], oldest first
        """
        query = """
            SELECT event_timestamp, metric_value
            FROM analytics_events
            WHERE tenant_id = %s
              AND event_type = %s
              AND event_timestamp >= %s
              AND event_timestamp <= %s
            ORDER BY event_timestamp
        """

        try:
            with self.get_cursor() as cursor:
                cursor.execute(query, (tenant_id, event_type, start, end))
                rows = cursor.fetchall()
        except Exception as e:
            logger.error(
                "Failed to query events",
                tenant_id=tenant_id,
                event_type=event_type,
                error=str(e),
            )
            raise

        df = pd.DataFrame(rows, columns=EVENT_COLUMNS)
        logger.debug(
            "Queried events",
            tenant_id=tenant_id,
            event_type=event_type,
            rows=len(df),
        )
        return df

    def get_event_types(self, tenant_id: str) -> list[str]:
        """Distinct event types a tenant has stored"""
        query = """
            SELECT DISTINCT event_type
            FROM analytics_events
            WHERE tenant_id = %s
            ORDER BY event_type
        """
        return [row["event_type"] for row in self.fetch_dicts(query, (tenant_id,))]

    def get_event_type_stats(self, tenant_id: str) -> list[dict]:
        query = """
            SELECT
                event_type,
                COUNT(*) AS total_events,
                COUNT(DISTINCT DATE(event_timestamp)) AS unique_dates,
                AVG(metric_value) AS avg_value,
                MIN(metric_value) AS min_value,
                MAX(metric_value) AS max_value,
                MIN(event_timestamp) AS first_event_date,
                MAX(event_timestamp) AS last_event_date
            FROM analytics_events
            WHERE tenant_id = %s
            GROUP BY event_type
            ORDER BY total_events DESC
        """
        return self.fetch_dicts(query, (tenant_id,))

    def get_dashboard_summary(self, tenant_id: str) -> dict:
        """Total events, distinct event types and time of the last upload"""
        events_query = """
            SELECT
                COUNT(*) AS total_events,
                COUNT(DISTINCT event_type) AS distinct_event_types
            FROM analytics_events
            WHERE tenant_id = %s
        """
        upload_query = """
            SELECT created_at
            FROM uploaded_files
            WHERE tenant_id = %s
            ORDER BY created_at DESC
            LIMIT 1
        """

        with self.get_cursor() as cursor:
            cursor.execute(events_query, (tenant_id,))
            total_events, distinct_event_types = cursor.fetchone()
            cursor.execute(upload_query, (tenant_id,))
            last_upload = cursor.fetchone()

        return {
            "total_events": int(total_events or 0),
            "distinct_event_types": int(distinct_event_types or 0),
            "last_upload_at": last_upload[0] if last_upload else None,
        }

    def upsert_aggregated_metrics(self, metrics: list[AggregatedMetric]) -> int:
        """Insert or overwrite buckets on (tenant, type, period, start, dimensions)"""
        if not metrics:
            return 0

        query = """
            INSERT INTO aggregated_metrics (
                tenant_id, event_type, aggregation_period, period_start, period_end,
                count_events, sum_value, avg_value, min_value, max_value,
                stddev_value, dimensions
            ) VALUES (
                %(tenant_id)s, %(event_type)s, %(aggregation_period)s, %(period_start)s,
                %(period_end)s, %(count_events)s, %(sum_value)s, %(avg_value)s,
                %(min_value)s, %(max_value)s, %(stddev_value)s, %(dimensions)s
            )
            ON CONFLICT (tenant_id, event_type, aggregation_period, period_start, dimensions)
            DO UPDATE SET
                period_end = EXCLUDED.period_end,
                count_events = EXCLUDED.count_events,
                sum_value = EXCLUDED.sum_value,
                avg_value = EXCLUDED.avg_value,
                min_value = EXCLUDED.min_value,
                max_value = EXCLUDED.max_value,
                stddev_value = EXCLUDED.stddev_value,
                computed_at = NOW()
        """

        try:
            with self.get_cursor() as cursor:
                psycopg2.extras.execute_batch(
                    cursor, query, [metric.to_db_dict() for metric in metrics], page_size=500
                )
        except Exception as e:
            logger.error("Failed to upsert aggregated metrics", count=len(metrics), error=str(e))
            raise

        return len(metrics)

    def get_aggregated_metrics(
        self,
        tenant_id: str,
        event_type: str,
        period: AggregationPeriod | str,
        start: datetime,
        end: datetime,
    ) -> list[dict]:
        query = """
            SELECT *
            FROM aggregated_metrics
            WHERE tenant_id = %s
              AND event_type = %s
              AND aggregation_period = %s
              AND period_start >= %s
              AND period_start <= %s
            ORDER BY period_start ASC
        """
        period = AggregationPeriod.parse(period)
        return self.fetch_dicts(query, (tenant_id, event_type, period.value, start, end))

    def insert_anomalies(self, records: list[AnomalyRecord]) -> int:
        """Insert anomalies in one transaction

        A record is skipped when one with the same tenant, event type,
        detected_at and aggregation period is already stored, so re-running
        detection over the same window adds nothing. Inserted records get
        their database id.

        Returns:
            Number of rows actually inserted
        """
        if not records:
            return 0

        query = """
            INSERT INTO anomaly_results (
                tenant_id, event_type, detected_at, anomaly_type, severity,
                metric_value, expected_value, deviation_percentage, threshold_used, metadata
            )
            SELECT
                %(tenant_id)s, %(event_type)s, %(detected_at)s, %(anomaly_type)s, %(severity)s,
                %(metric_value)s, %(expected_value)s, %(deviation_percentage)s,
                %(threshold_used)s, %(metadata)s
            WHERE NOT EXISTS (
                SELECT 1 FROM anomaly_results
                WHERE tenant_id = %(tenant_id)s
                  AND event_type = %(event_type)s
                  AND detected_at = %(detected_at)s
                  AND metadata->>'aggregation_period' IS NOT DISTINCT FROM %(aggregation_period)s
            )
            RETURNING id
        """

        inserted = 0
        try:
            with self.get_cursor() as cursor:
                for record in records:
                    cursor.execute(query, record.to_db_dict())
                    row = cursor.fetchone()
                    if row is not None:
                        record.id = str(row[0])
                        inserted += 1
        except Exception as e:
            logger.error("Failed to insert anomalies", count=len(records), error=str(e))
            raise

        logger.debug("Anomalies stored", count=inserted, skipped=len(records) - inserted)
        return inserted

    def get_anomalies(
        self,
        tenant_id: str,
        event_type: str | None = None,
        since: datetime | None = None,
        acknowledged: bool | None = False,
        limit: int = 100,
    ) -> list[dict]:
        """List anomalies, newest and most severe first

        ``acknowledged=None`` returns both acknowledged and open anomalies.
        """
        clauses = ["tenant_id = %s"]
        params: list = [tenant_id]

        if acknowledged is not None:
            clauses.append("acknowledged = %s")
            params.append(acknowledged)
        if event_type:
            clauses.append("event_type = %s")
            params.append(event_type)
        if since:
            clauses.append("detected_at >= %s")
            params.append(since)

        query = f"""
            SELECT *
            FROM anomaly_results
            WHERE {" AND ".join(clauses)}
            ORDER BY
                detected_at DESC,
                CASE severity
                    WHEN 'critical' THEN 3
                    WHEN 'high' THEN 2
                    WHEN 'medium' THEN 1
                    ELSE 0
                END DESC
            LIMIT %s
        """
        params.append(limit)
        return self.fetch_dicts(query, tuple(params))

    def acknowledge_anomaly(
        self, anomaly_id: str, actor_user_id: str, acknowledged_at: datetime
    ) -> None:
        """Set acknowledged, overwriting any earlier actor and time"""
        query = """
            UPDATE anomaly_results
            SET acknowledged = true,
                acknowledged_by = %s,
                acknowledged_at = %s
            WHERE id = %s
        """
        try:
            with self.get_cursor() as cursor:
                cursor.execute(query, (actor_user_id, acknowledged_at, anomaly_id))
        except Exception as e:
            logger.error("Failed to acknowledge anomaly", anomaly_id=anomaly_id, error=str(e))
            raise
