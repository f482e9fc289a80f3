"""
Tests for row validation.
"""

from datetime import datetime, timezone

import pytest

from src.ingestion.parser import parse_csv
from src.ingestion.validation import (
    MAX_REPORTED_ERRORS,
    EventRow,
    find_required_columns,
    format_validation_errors,
    validate_rows,
)

COLUMNS = ["timestamp", "event_type", "value"]


def row(timestamp="2024-01-15T10:00:00Z", event_type="signup", value="1"):
    return {"timestamp": timestamp, "event_type": event_type, "value": value}


class TestFindRequiredColumns:
    """Tests for alias-based role detection."""

    def test_aliases(self):
        """Test each role accepts its aliases, case-insensitive."""
        found = find_required_columns(["Created_At", "Action", "Amount", "region"])

        assert found == {"timestamp": "Created_At", "event_type": "Action", "value": "Amount"}

    def test_missing(self):
        """Test a role without a matching alias maps to None."""
        found = find_required_columns(["time", "type"])

        assert found["value"] is None


class TestValidateRows:
    """Tests for validate_rows."""

    def test_valid_sample(self, sample_csv):
        """Test every sample row validates and is normalized."""
        parsed = parse_csv(sample_csv)

        result = validate_rows(parsed.rows, parsed.columns)

        assert result.valid is True
        assert result.errors == []
        assert result.summary.total_rows == 25
        assert result.summary.valid_row_count == 25
        assert result.summary.invalid_row_count == 0

        first = result.valid_rows[0]
        assert first.timestamp == datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)
        assert first.event_type == "page_view"
        assert first.value == 10.0
        assert first.source_columns == ("timestamp", "event_type", "value")
        assert first.raw is parsed.rows[0]

    def test_missing_value_column(self):
        """Test a file without a value-like column fails at schema level."""
        rows = [{"timestamp": "2024-01-15", "event_type": "signup", "region": "eu"}] * 30

        result = validate_rows(rows, ["timestamp", "event_type", "region"])

        assert result.valid is False
        assert result.valid_rows == []
        assert len(result.errors) == 1
        assert result.errors[0].row == 0
        assert result.errors[0].field == "schema"
        assert "Missing required columns: value" in result.errors[0].message
        assert result.summary.valid_row_count == 0
        assert result.summary.invalid_row_count == 30

    def test_missing_several_columns(self):
        """Test every missing role is listed in the single schema error."""
        result = validate_rows([{"foo": "1"}], ["foo"])

        assert len(result.errors) == 1
        assert "Missing required columns: timestamp, event_type, value" in result.errors[0].message

    def test_schema_error_without_rows(self):
        """Test the schema check does not depend on row count."""
        result = validate_rows([], ["region"])

        assert result.valid is False
        assert len(result.errors) == 1

    def test_invalid_fields(self):
        """Test each failing field produces one entry with a header-offset row number."""
        rows = [
            row(),
            row(timestamp="yesterday-ish"),
            row(event_type="", value="abc"),
        ]

        result = validate_rows(rows, COLUMNS)

        assert result.valid is False
        assert [(e.row, e.field) for e in result.errors] == [
            (3, "timestamp"),
            (4, "event_type"),
            (4, "value"),
        ]
        assert result.errors[0].message == (
            "Invalid timestamp format. Expected ISO string or parseable date."
        )
        assert result.errors[1].message == "event_type is required"
        assert result.errors[2].message == "value must be a valid number"
        assert result.summary.valid_row_count == 1
        assert result.summary.invalid_row_count == 2
        assert len(result.valid_rows) == 1

    def test_day_first_date_rejected(self):
        """Test a DD/MM/YYYY date with a day above 12 is not a valid timestamp."""
        result = validate_rows([row(timestamp="13/01/2024"), row(timestamp="01/13/2024")], COLUMNS)

        assert [(e.row, e.field) for e in result.errors] == [(2, "timestamp")]
        assert result.valid_rows[0].timestamp == datetime(2024, 1, 13, tzinfo=timezone.utc)

    def test_empty_value_rejected(self):
        """Test an empty value cell is not coerced to zero."""
        result = validate_rows([row(value="")], COLUMNS)

        assert result.valid is False
        assert result.errors[0].field == "value"

    def test_numeric_value_coerced_to_float(self):
        """Test integer literals become floats."""
        result = validate_rows([row(value="42")], COLUMNS)

        assert result.valid_rows[0].value == 42.0
        assert isinstance(result.valid_rows[0].value, float)

    def test_errors_capped(self):
        """Test only the first errors are kept plus a remainder marker."""
        rows = [row(value="x")] * 15

        result = validate_rows(rows, COLUMNS)

        assert len(result.errors) == MAX_REPORTED_ERRORS + 1
        assert result.errors[0].row == 2
        assert result.errors[MAX_REPORTED_ERRORS - 1].row == MAX_REPORTED_ERRORS + 1
        assert result.errors[-1].row == 0
        assert result.errors[-1].field == "summary"
        assert result.errors[-1].message == "... and 5 more validation errors"
        assert result.summary.invalid_row_count == 15

    def test_exactly_ten_errors_no_marker(self):
        """Test no marker is appended when nothing was dropped."""
        result = validate_rows([row(value="x")] * MAX_REPORTED_ERRORS, COLUMNS)

        assert len(result.errors) == MAX_REPORTED_ERRORS
        assert all(e.field == "value" for e in result.errors)

    def test_alias_columns(self):
        """Test rows are read from whichever alias columns are present."""
        rows = [{"date": "2024-02-01", "action": "click", "metric": "2.5"}]

        result = validate_rows(rows, ["date", "action", "metric"])

        assert result.valid is True
        assert result.valid_rows[0].source_columns == ("date", "action", "metric")
        assert result.valid_rows[0].value == 2.5


class TestEventRow:
    """Tests for the EventRow model."""

    def test_accepts_datetime_and_number(self):
        """Test already-typed values pass through."""
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc)

        event = EventRow(timestamp=ts, event_type="view", value=3)

        assert event.timestamp == ts
        assert event.value == 3.0

    @pytest.mark.parametrize("value", [None, "", "1,000", "ten"])
    def test_rejects_non_numeric(self, value):
        """Test non-numeric values are rejected."""
        with pytest.raises(ValueError):
            EventRow(timestamp="2024-01-01", event_type="view", value=value)


class TestFormatValidationErrors:
    """Tests for the uploader-facing report."""

    def test_valid_result_is_empty(self):
        """Test a valid result renders nothing."""
        assert format_validation_errors(validate_rows([row()], COLUMNS)) == ""

    def test_report(self):
        """Test header, row lines and file-level lines."""
        result = validate_rows([row(value="x")] * 12, COLUMNS)

        report = format_validation_errors(result)
        lines = report.splitlines()

        assert lines[0] == "CSV Validation Failed: 12 of 12 rows are invalid."
        assert lines[1] == ""
        assert lines[2] == "  - Row 2: value - value must be a valid number"
        assert lines[-1] == "  - ... and 2 more validation errors"

    def test_schema_report(self):
        """Test schema errors print only their message."""
        result = validate_rows([{"a": "1"}], ["a"])

        report = format_validation_errors(result)

        assert report.splitlines()[2].startswith("  - Missing required columns:")
