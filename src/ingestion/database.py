"""
PostgreSQL operations for the upload pipeline.
Handles upload bookkeeping and bulk event insertion.
"""

import json

import psycopg2.extras
import structlog

from src.core.database import PostgresConnection

from .models import AnalyticsEvent

logger = structlog.get_logger(__name__)


class IngestionDatabase(PostgresConnection):
    """Database operations for CSV ingestion"""

    def create_uploaded_file(
        self,
        tenant_id: str,
        uploaded_by: str,
        filename: str,
        file_size_bytes: int,
        columns: list[str],
    ) -> str:
        """Register an upload in 'processing' state and return its id"""
        query = """
            INSERT INTO uploaded_files (
                tenant_id, uploaded_by, filename, file_size_bytes, columns
            ) VALUES (
                %(tenant_id)s, %(uploaded_by)s, %(filename)s, %(file_size_bytes)s, %(columns)s
            )
            RETURNING id
        """
        params = {
            "tenant_id": tenant_id,
            "uploaded_by": uploaded_by,
            "filename": filename,
            "file_size_bytes": file_size_bytes,
            "columns": json.dumps(columns),
        }
        try:
            with self.get_cursor() as cursor:
                cursor.execute(query, params)
                file_id = str(cursor.fetchone()[0])
        except Exception as e:
            logger.error("Failed to create uploaded file", tenant_id=tenant_id, error=str(e))
            raise

        logger.debug("Uploaded file registered", tenant_id=tenant_id, file_id=file_id)
        return file_id

    def update_file_status(
        self,
        file_id: str,
        status: str,
        row_count: int | None = None,
        schema: dict[str, str] | None = None,
        error_message: str | None = None,
    ) -> None:
        """Mark an upload 'completed' or 'failed'"""
        query = """
            UPDATE uploaded_files
            SET
                upload_status = %(status)s,
                row_count = COALESCE(%(row_count)s, row_count),
                schema_inferred = COALESCE(%(schema)s, schema_inferred),
                error_message = %(error_message)s,
                processed_at = NOW()
            WHERE id = %(file_id)s
        """
        params = {
            "file_id": file_id,
            "status": status,
            "row_count": row_count,
            "schema": json.dumps(schema) if schema else None,
            "error_message": error_message,
        }
        try:
            with self.get_cursor() as cursor:
                cursor.execute(query, params)
        except Exception as e:
            logger.error("Failed to update file status", file_id=file_id, error=str(e))
            raise

    def insert_events(self, events: list[AnalyticsEvent]) -> int:
        """Insert a whole validated batch in one transaction

        Either every event is stored or none is; failures are re-raised.
        """
        if not events:
            return 0

        query = """
            INSERT INTO analytics_events (
                tenant_id, file_id, event_type, event_timestamp,
                metric_value, dimensions, raw_data
            ) VALUES (
                %(tenant_id)s, %(file_id)s, %(event_type)s, %(event_timestamp)s,
                %(metric_value)s, %(dimensions)s, %(raw_data)s
            )
        """
        try:
            with self.get_cursor() as cursor:
                psycopg2.extras.execute_batch(
                    cursor, query, [event.to_db_dict() for event in events], page_size=500
                )
        except Exception as e:
            logger.error("Failed to batch insert events", count=len(events), error=str(e))
            raise

        return len(events)
