"""
CLI for aggregating a tenant's events and running anomaly detection.

Usage:
    python -m src.analytics.detect --tenant-id <uuid> [options]
"""

import argparse
import os
import sys
from datetime import datetime, timedelta, timezone

import structlog

from src.core.config import add_postgres_arguments, postgres_settings_from_args
from src.core.logger import LOG_LEVELS, level_from_env, setup_logging

from .aggregation import Aggregator
from .database import AnalyticsDatabase
from .detector import AnomalyDetector, summarize_anomalies
from .models import AggregationPeriod, AnalyticsConfig, DetectionConfig, MergePolicy

logger = structlog.get_logger(__name__)


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    env_detection = DetectionConfig.from_env()

    parser = argparse.ArgumentParser(
        description="Aggregate events and detect anomalies for one tenant",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Daily buckets over the last 30 days, every event type
        python -m src.analytics.detect --tenant-id $TENANT

        # Hourly buckets for one event type, storing the aggregates too
        python -m src.analytics.detect --tenant-id $TENANT \\
            --event-type purchase --period hour --days 2 --persist

        # More sensitive run, keeping the most severe finding per timestamp
        python -m src.analytics.detect --tenant-id $TENANT \\
            --sensitivity 5 --merge-policy highest_severity
        """,
    )

    parser.add_argument("--tenant-id", required=True, help="Tenant to analyse")
    parser.add_argument(
        "--event-type",
        action="append",
        dest="event_types",
        help="Event type to analyse; repeatable (default: every stored type)",
    )

    # Window
    parser.add_argument(
        "--period",
        choices=[p.value for p in AggregationPeriod],
        default=AggregationPeriod.DAY.value,
        help="Bucket width (default: day)",
    )
    parser.add_argument(
        "--start",
        type=_parse_datetime,
        help="Window start, ISO-8601 (default: --days before --end)",
    )
    parser.add_argument(
        "--end",
        type=_parse_datetime,
        help="Window end, ISO-8601 (default: now)",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=30,
        help="Window length when --start is omitted (default: 30)",
    )
    parser.add_argument(
        "--persist",
        action="store_true",
        help="Also upsert the bucket statistics into aggregated_metrics",
    )

    # Detection thresholds
    parser.add_argument(
        "--sensitivity",
        type=int,
        choices=range(1, 6),
        default=env_detection.sensitivity_level,
        help="Sensitivity 1-5 (default: 3 or ANOMALY_DETECTION_SENSITIVITY env var)",
    )
    parser.add_argument(
        "--min-data-points",
        type=int,
        default=env_detection.min_data_points,
        help="Shortest series to analyse (default: 10 or ANOMALY_MIN_DATA_POINTS env var)",
    )
    parser.add_argument(
        "--stddev-threshold",
        type=float,
        default=env_detection.stddev_threshold,
        help="Outlier bound in standard deviations (default: 2.5 or ANOMALY_STDDEV_THRESHOLD env var)",
    )
    parser.add_argument(
        "--merge-policy",
        choices=[p.value for p in MergePolicy],
        default=env_detection.merge_policy.value,
        help="Which finding survives when both passes flag a timestamp (default: last_writer)",
    )

    add_postgres_arguments(parser)

    # Logging
    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        type=str.upper,
        default=None,
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    return parser.parse_args(argv)


def build_config(args) -> AnalyticsConfig:
    """Build configuration from arguments"""
    return AnalyticsConfig(
        postgres=postgres_settings_from_args(args),
        detection=DetectionConfig(
            sensitivity_level=args.sensitivity,
            min_data_points=args.min_data_points,
            stddev_threshold=args.stddev_threshold,
            merge_policy=MergePolicy(args.merge_policy),
        ),
    )


def resolve_window(args) -> tuple[datetime, datetime]:
    end = args.end or datetime.now(timezone.utc)
    start = args.start or end - timedelta(days=args.days)
    if start >= end:
        raise ValueError(f"Window start {start.isoformat()} is not before end {end.isoformat()}")
    return start, end


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    level = LOG_LEVELS[args.log_level] if args.log_level else level_from_env()
    setup_logging(level=level, json_logs=args.json_logs)

    db = None
    try:
        config = build_config(args)
        start, end = resolve_window(args)

        db = AnalyticsDatabase(config.postgres)
        aggregator = Aggregator(db)
        detector = AnomalyDetector(db)

        event_types = args.event_types or db.get_event_types(args.tenant_id)
        if not event_types:
            logger.warning("Tenant has no events", tenant_id=args.tenant_id)
            return 0

        logger.info(
            "Starting anomaly detection",
            tenant_id=args.tenant_id,
            event_types=event_types,
            period=args.period,
            start=start.isoformat(),
            end=end.isoformat(),
        )

        records = []
        for event_type in event_types:
            if args.persist:
                aggregator.compute_and_persist(args.tenant_id, event_type, args.period, start, end)

            series = aggregator.aggregate(args.tenant_id, event_type, start, end, args.period)
            records.extend(
                detector.detect_anomalies(
                    args.tenant_id, event_type, series, config.detection, period=args.period
                )
            )

        summary = summarize_anomalies(records, now=end)
        dashboard = db.get_dashboard_summary(args.tenant_id)

        print(
            f"Tenant {args.tenant_id}: {dashboard['total_events']} events across "
            f"{dashboard['distinct_event_types']} event types"
        )
        print(
            f"Anomalies: {summary.total_anomalies} total, {summary.critical_count} critical, "
            f"{summary.high_count} high, {summary.spikes_count} spikes, "
            f"{summary.drops_count} drops, {summary.recent_anomalies} in the last 24h"
        )
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Anomaly detection failed", error=str(e), exc_info=True)
        return 1

    finally:
        if db is not None:
            db.close()


if __name__ == "__main__":
    sys.exit(main())
