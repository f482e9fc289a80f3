"""
CSV ingestion: schema inference, field mapping, row validation and bulk storage.
"""

from .mapping import DEFAULT_EVENT_TYPE, EventFieldMapping, detect_field_mapping
from .models import AnalyticsEvent, IngestionConfig, IngestionResult
from .parser import (
    CSVParseError,
    ParsedCSV,
    SemanticType,
    infer_data_type,
    infer_schema,
    normalize_value,
    parse_csv,
)
from .pipeline import CSVIngestor, build_events
from .validation import (
    RowError,
    ValidatedRow,
    ValidationResult,
    format_validation_errors,
    validate_rows,
)

__all__ = [
    "AnalyticsEvent",
    "CSVIngestor",
    "CSVParseError",
    "DEFAULT_EVENT_TYPE",
    "EventFieldMapping",
    "IngestionConfig",
    "IngestionResult",
    "ParsedCSV",
    "RowError",
    "SemanticType",
    "ValidatedRow",
    "ValidationResult",
    "build_events",
    "detect_field_mapping",
    "format_validation_errors",
    "infer_data_type",
    "infer_schema",
    "normalize_value",
    "parse_csv",
    "validate_rows",
]
