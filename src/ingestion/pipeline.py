"""
CSV upload pipeline: raw file -> validated rows -> stored analytics events.

Workflow:
1. Reject oversized files and unsupported extensions before decoding
2. Parse the CSV and infer the column schema
3. Validate every row; a single invalid row rejects the whole file
4. Register the upload, map columns to event roles and build events
5. Insert all events in one transaction and mark the upload completed
"""

import structlog

from .database import IngestionDatabase
from .mapping import DEFAULT_EVENT_TYPE, EventFieldMapping, detect_field_mapping
from .models import AnalyticsEvent, IngestionConfig, IngestionResult
from .parser import CSVParseError, SemanticType, normalize_value, parse_csv
from .validation import ValidatedRow, format_validation_errors, validate_rows

logger = structlog.get_logger(__name__)

# Event type for rows whose mapped event type cell is empty
UNKNOWN_EVENT_TYPE = "unknown"


def build_events(
    tenant_id: str,
    file_id: str | None,
    rows: list[ValidatedRow],
    mapping: EventFieldMapping,
    schema: dict[str, SemanticType],
) -> list[AnalyticsEvent]:
    """Turn validated rows into events using the detected field mapping

    Validation only decides whether the file is accepted; event fields are
    read from the columns the mapping picked. Without an event type column
    every event gets DEFAULT_EVENT_TYPE, and without a metric column the
    metric value is None. The validated timestamp stands in when the mapping
    has no timestamp column or the mapped cell does not parse.
    """
    role_columns = set(mapping.role_columns())
    dimension_columns = [c for c in mapping.dimension_columns if c not in role_columns]
    events = []

    for row in rows:
        raw = row.raw

        if mapping.has_event_type_column:
            cell = raw.get(mapping.event_type_column)
            event_type = str(cell) if cell not in (None, "") else UNKNOWN_EVENT_TYPE
        else:
            event_type = DEFAULT_EVENT_TYPE

        event_timestamp = None
        if mapping.timestamp_column is not None:
            event_timestamp = normalize_value(
                raw.get(mapping.timestamp_column), SemanticType.TIMESTAMP
            )

        metric_value = None
        if mapping.metric_value_column is not None:
            metric_value = normalize_value(
                raw.get(mapping.metric_value_column),
                schema.get(mapping.metric_value_column, SemanticType.NUMBER),
            )

        dimensions = {
            column: normalize_value(raw.get(column), schema.get(column, SemanticType.STRING))
            for column in dimension_columns
        }
        events.append(
            AnalyticsEvent(
                tenant_id=tenant_id,
                file_id=file_id,
                event_type=event_type,
                event_timestamp=event_timestamp or row.timestamp,
                metric_value=metric_value,
                dimensions=dimensions,
                raw_data=raw,
            )
        )

    return events


class CSVIngestor:
    """Ingests uploaded CSV files for a tenant

    The tenant and uploader are trusted as given; permission checks happen
    before the ingestor is called.
    """

    def __init__(self, db: IngestionDatabase, config: IngestionConfig | None = None):
        self.db = db
        self.config = config or IngestionConfig()

    def _reject(self, error: str, **context) -> IngestionResult:
        logger.info("Upload rejected", error=error.splitlines()[0], **context)
        return IngestionResult(success=False, error=error)

    def ingest(
        self,
        tenant_id: str,
        uploaded_by: str,
        filename: str,
        content: bytes | str,
    ) -> IngestionResult:
        """Ingest one file

        Returns a failed IngestionResult for rejected files. Storage errors
        are re-raised after the upload has been marked failed.
        """
        raw = content.encode("utf-8") if isinstance(content, str) else content
        size = len(raw)

        if size > self.config.max_upload_bytes:
            limit_mb = self.config.max_upload_bytes / 1024 / 1024
            return self._reject(
                f"File size exceeds maximum limit of {limit_mb:g}MB",
                tenant_id=tenant_id,
                size=size,
            )

        if not filename.lower().endswith(self.config.allowed_extensions):
            return self._reject("Only CSV files are supported", tenant_id=tenant_id, filename=filename)

        try:
            parsed = parse_csv(raw.decode("utf-8-sig"))
        except UnicodeDecodeError:
            return self._reject("File is not valid UTF-8 text", tenant_id=tenant_id)
        except CSVParseError as e:
            return self._reject(str(e), tenant_id=tenant_id, filename=filename)

        validation = validate_rows(parsed.rows, parsed.columns)
        if not validation.valid:
            result = self._reject(
                format_validation_errors(validation),
                tenant_id=tenant_id,
                filename=filename,
                invalid_rows=validation.summary.invalid_row_count,
            )
            result.validation_errors = validation.errors
            return result

        file_id = self.db.create_uploaded_file(
            tenant_id, uploaded_by, filename, size, parsed.columns
        )

        try:
            mapping = detect_field_mapping(parsed.columns, parsed.schema)
            events = build_events(
                tenant_id, file_id, validation.valid_rows, mapping, parsed.schema
            )
            inserted = self.db.insert_events(events)
            self.db.update_file_status(
                file_id, "completed", row_count=parsed.row_count, schema=parsed.schema
            )
        except Exception as e:
            logger.error("Upload failed", tenant_id=tenant_id, file_id=file_id, error=str(e))
            try:
                self.db.update_file_status(file_id, "failed", error_message=str(e))
            except Exception as status_error:
                logger.error(
                    "Could not mark upload as failed", file_id=file_id, error=str(status_error)
                )
            raise

        logger.info(
            "Upload ingested",
            tenant_id=tenant_id,
            file_id=file_id,
            events=inserted,
            timestamp_column=mapping.timestamp_column,
            event_type_column=mapping.event_type_column,
            metric_value_column=mapping.metric_value_column,
            dimensions=mapping.dimension_columns,
        )

        return IngestionResult(
            success=True,
            file_id=file_id,
            row_count=parsed.row_count,
            columns=parsed.columns,
        )
