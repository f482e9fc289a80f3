"""
CLI for ingesting a CSV file of events for one tenant.

Usage:
    python -m src.ingestion.upload --tenant-id <uuid> --uploaded-by <uuid> events.csv
"""

import argparse
import os
import sys
from pathlib import Path

import structlog

from src.core.config import add_postgres_arguments, postgres_settings_from_args
from src.core.logger import LOG_LEVELS, level_from_env, setup_logging

from .database import IngestionDatabase
from .models import DEFAULT_MAX_UPLOAD_BYTES, IngestionConfig
from .pipeline import CSVIngestor

logger = structlog.get_logger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Ingest a CSV file of analytics events",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Basic usage
        python -m src.ingestion.upload --tenant-id $TENANT --uploaded-by $USER events.csv

        # Allow larger files
        python -m src.ingestion.upload --tenant-id $TENANT --uploaded-by $USER \\
            --max-upload-bytes 52428800 big.csv
        """,
    )

    parser.add_argument("file", type=Path, help="CSV file to ingest")
    parser.add_argument("--tenant-id", required=True, help="Tenant that owns the events")
    parser.add_argument("--uploaded-by", required=True, help="User id recorded as uploader")
    parser.add_argument(
        "--max-upload-bytes",
        type=int,
        default=int(os.getenv("MAX_FILE_SIZE_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))),
        help="Reject files larger than this (default: 10MB or MAX_FILE_SIZE_BYTES env var)",
    )

    add_postgres_arguments(parser)

    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        type=str.upper,
        default=None,
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    return parser.parse_args(argv)


def build_config(args) -> IngestionConfig:
    """Build an IngestionConfig from command-line arguments"""
    return IngestionConfig(
        postgres=postgres_settings_from_args(args),
        max_upload_bytes=args.max_upload_bytes,
    )


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    level = LOG_LEVELS[args.log_level] if args.log_level else level_from_env()
    setup_logging(level=level, json_logs=args.json_logs)

    if not args.file.is_file():
        logger.error("File not found", path=str(args.file))
        return 1

    db = None
    try:
        config = build_config(args)
        db = IngestionDatabase(config.postgres)
        if not db.check_health():
            raise RuntimeError("Database health check failed")

        ingestor = CSVIngestor(db, config)
        result = ingestor.ingest(
            tenant_id=args.tenant_id,
            uploaded_by=args.uploaded_by,
            filename=args.file.name,
            content=args.file.read_bytes(),
        )

        if not result.success:
            print(result.error, file=sys.stderr)
            return 2

        logger.info("Ingestion completed", file_id=result.file_id, rows=result.row_count)
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Ingestion failed", error=str(e), exc_info=True)
        return 1

    finally:
        if db is not None:
            db.close()


if __name__ == "__main__":
    sys.exit(main())
