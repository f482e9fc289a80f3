"""
Row validation for uploaded event files.

A file is accepted only when it has a timestamp, an event type and a value
column and every row satisfies the EventRow contract. Diagnostics are
reported per row and per field, but acceptance is all-or-nothing.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from .parser import parse_number, parse_timestamp

logger = structlog.get_logger(__name__)

MAX_REPORTED_ERRORS = 10

# Data rows start on line 2, after the header
HEADER_OFFSET = 2

REQUIRED_COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "timestamp": ("timestamp", "time", "date", "created_at", "event_time"),
    "event_type": ("event_type", "type", "event", "action"),
    "value": ("value", "amount", "count", "metric", "metric_value"),
}


class EventRow(BaseModel):
    """Minimal contract a CSV row must satisfy to become an event"""

    timestamp: datetime
    event_type: str
    value: float

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime:
        parsed = parse_timestamp(value)
        if parsed is None:
            raise PydanticCustomError(
                "timestamp_format",
                "Invalid timestamp format. Expected ISO string or parseable date.",
            )
        return parsed

    @field_validator("event_type", mode="before")
    @classmethod
    def _require_event_type(cls, value: Any) -> str:
        if not isinstance(value, str) or value == "":
            raise PydanticCustomError("event_type_required", "event_type is required")
        return value

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, value: Any) -> float:
        number = parse_number(value)
        if number is None:
            raise PydanticCustomError("value_not_numeric", "value must be a valid number")
        return number


@dataclass
class RowError:
    """One failing field on one row; row 0 marks file-level entries"""

    row: int
    field: str
    message: str


@dataclass
class ValidatedRow:
    """A raw row that passed validation, with its normalized payload and source columns"""

    raw: dict[str, Any]
    timestamp: datetime
    event_type: str
    value: float
    timestamp_column: str
    event_type_column: str
    value_column: str

    @property
    def source_columns(self) -> tuple[str, str, str]:
        return (self.timestamp_column, self.event_type_column, self.value_column)


@dataclass
class ValidationSummary:
    total_rows: int
    valid_row_count: int
    invalid_row_count: int


@dataclass
class ValidationResult:
    valid: bool
    valid_rows: list[ValidatedRow]
    errors: list[RowError]
    summary: ValidationSummary


def find_required_columns(columns: list[str]) -> dict[str, str | None]:
    """Return the first column matching each required role's aliases (case-insensitive)"""
    found: dict[str, str | None] = {}
    for role, aliases in REQUIRED_COLUMN_ALIASES.items():
        found[role] = next((c for c in columns if c.lower() in aliases), None)
    return found


def _cap_errors(errors: list[RowError]) -> list[RowError]:
    displayed = errors[:MAX_REPORTED_ERRORS]
    if len(errors) > MAX_REPORTED_ERRORS:
        displayed.append(
            RowError(
                row=0,
                field="summary",
                message=f"... and {len(errors) - MAX_REPORTED_ERRORS} more validation errors",
            )
        )
    return displayed


def validate_rows(rows: list[dict[str, Any]], columns: list[str]) -> ValidationResult:
    """Validate every row of a file against the EventRow contract

    Never raises. When a required column is missing no row is examined and a
    single schema-level error is returned.
    """
    required = find_required_columns(columns)
    missing = [role for role, column in required.items() if column is None]

    if missing:
        logger.info("Upload is missing required columns", missing=missing)
        return ValidationResult(
            valid=False,
            valid_rows=[],
            errors=[
                RowError(
                    row=0,
                    field="schema",
                    message=f"Missing required columns: {', '.join(missing)}. "
                    "Expected: timestamp (or time/date), event_type (or type/event), "
                    "value (or amount/metric).",
                )
            ],
            summary=ValidationSummary(
                total_rows=len(rows), valid_row_count=0, invalid_row_count=len(rows)
            ),
        )

    timestamp_col, event_type_col, value_col = (
        required["timestamp"],
        required["event_type"],
        required["value"],
    )

    errors: list[RowError] = []
    valid_rows: list[ValidatedRow] = []

    for index, row in enumerate(rows):
        try:
            event = EventRow.model_validate(
                {
                    "timestamp": row.get(timestamp_col),
                    "event_type": row.get(event_type_col),
                    "value": row.get(value_col),
                }
            )
        except ValidationError as e:
            for issue in e.errors():
                errors.append(
                    RowError(
                        row=index + HEADER_OFFSET,
                        field=".".join(str(part) for part in issue["loc"]) or "unknown",
                        message=issue["msg"],
                    )
                )
            continue

        valid_rows.append(
            ValidatedRow(
                raw=row,
                timestamp=event.timestamp,
                event_type=event.event_type,
                value=event.value,
                timestamp_column=timestamp_col,
                event_type_column=event_type_col,
                value_column=value_col,
            )
        )

    result = ValidationResult(
        valid=not errors,
        valid_rows=valid_rows,
        errors=_cap_errors(errors),
        summary=ValidationSummary(
            total_rows=len(rows),
            valid_row_count=len(valid_rows),
            invalid_row_count=len(rows) - len(valid_rows),
        ),
    )

    logger.debug(
        "Rows validated",
        total_rows=len(rows),
        valid_rows=len(valid_rows),
        error_count=len(errors),
    )

    return result


def format_validation_errors(result: ValidationResult) -> str:
    """Render a failed validation result as a short report for the uploader"""
    if result.valid:
        return ""

    lines = [
        f"CSV Validation Failed: {result.summary.invalid_row_count} of "
        f"{result.summary.total_rows} rows are invalid.",
        "",
    ]
    for error in result.errors:
        if error.row == 0:
            lines.append(f"  - {error.message}")
        else:
            lines.append(f"  - Row {error.row}: {error.field} - {error.message}")

    return "\n".join(lines)
