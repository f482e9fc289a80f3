"""
CSV parsing and column type inference.

Every cell is read as text; semantic types are inferred afterwards by
majority vote over a bounded sample so that a handful of dirty cells do not
change the type of a whole column.
"""

import io
import math
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import pandas as pd
import structlog

logger = structlog.get_logger(__name__)

SCHEMA_SAMPLE_SIZE = 100

US_DATE_PATTERN = re.compile(r"^\d{2}/\d{2}/\d{4}$")
US_DATE_FORMAT = "%m/%d/%Y"

DATE_PATTERNS = (
    re.compile(r"^\d{4}-\d{2}-\d{2}$"),
    US_DATE_PATTERN,
    re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}"),
)

TRUTHY_LITERALS = {"true", "1", "yes"}


class SemanticType(str, Enum):
    """Semantic type of a CSV column"""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    TIMESTAMP = "timestamp"
    BOOLEAN = "boolean"


class CSVParseError(ValueError):
    """Raised when CSV text cannot be turned into rows"""


@dataclass
class ParsedCSV:
    """Rows of an uploaded file plus the schema inferred from them"""

    rows: list[dict[str, str]]
    columns: list[str]
    schema: dict[str, SemanticType]

    @property
    def row_count(self) -> int:
        return len(self.rows)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def parse_number(value: Any) -> float | None:
    """Parse a decimal numeric literal, returning None when the value is not a number

    Infinities, NaN and hex literals are not numbers here.
    """
    if _is_empty(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    text = str(value).strip()
    # float() accepts digit separators, plain numeric literals do not
    if "_" in text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a date or timestamp literal into a UTC-aware datetime

    Slash dates are read as MM/DD/YYYY, everything else as ISO 8601. Naive
    values are taken to be UTC. Returns None when the literal is not a real
    calendar date.
    """
    if _is_empty(value):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    text = str(value).strip()
    # Explicit formats keep pandas from guessing day-first for slash dates
    date_format = US_DATE_FORMAT if US_DATE_PATTERN.match(text) else "ISO8601"
    try:
        parsed = pd.to_datetime(text, format=date_format, utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def infer_data_type(value: Any) -> SemanticType:
    """Classify a single cell"""
    if _is_empty(value):
        return SemanticType.STRING

    text = str(value).strip()

    if parse_number(text) is not None:
        return SemanticType.NUMBER if "." in text else SemanticType.INTEGER

    if any(pattern.match(text) for pattern in DATE_PATTERNS) and parse_timestamp(text):
        return SemanticType.TIMESTAMP

    if text.lower() in ("true", "false"):
        return SemanticType.BOOLEAN

    return SemanticType.STRING


def infer_schema(rows: list[dict[str, Any]], columns: list[str]) -> dict[str, SemanticType]:
    """Infer the dominant semantic type of every column

    Only the first SCHEMA_SAMPLE_SIZE rows are inspected. Ties go to the type
    seen first; a column with no sampled cells is a string column.
    """
    sample = rows[:SCHEMA_SAMPLE_SIZE]
    schema: dict[str, SemanticType] = {}

    for column in columns:
        counts = Counter(infer_data_type(row.get(column)) for row in sample)
        # max() keeps the first of equal counts and Counter preserves insertion order
        schema[column] = max(counts, key=counts.get) if counts else SemanticType.STRING

    return schema


def normalize_value(value: Any, semantic_type: SemanticType | str) -> Any:
    """Convert a raw cell to the Python value for its column type

    Empty cells, malformed numbers and malformed dates become None.
    """
    if _is_empty(value):
        return None

    semantic_type = SemanticType(semantic_type)

    if semantic_type in (SemanticType.NUMBER, SemanticType.INTEGER):
        number = parse_number(value)
        if number is None:
            return None
        if semantic_type is SemanticType.INTEGER and number.is_integer():
            return int(number)
        return number

    if semantic_type is SemanticType.TIMESTAMP:
        return parse_timestamp(value)

    if semantic_type is SemanticType.BOOLEAN:
        return str(value).strip().lower() in TRUTHY_LITERALS

    return str(value)


def parse_csv(text: str) -> ParsedCSV:
    """Parse CSV text with a header row into raw rows and an inferred schema

    Raises:
        CSVParseError: if the text is malformed or holds no columns or no data rows
    """
    try:
        df = pd.read_csv(
            io.StringIO(text.lstrip("\ufeff")),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError as e:
        raise CSVParseError("CSV file is empty or has no valid columns") from e
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise CSVParseError(f"CSV parsing errors: {e}") from e

    columns = [str(column) for column in df.columns]
    if not columns or df.empty:
        raise CSVParseError("CSV file is empty or has no valid columns")

    # With NA detection off for text cells, NaN only appears for missing trailing fields
    short_rows = df.index[df.isna().any(axis=1)]
    if len(short_rows) > 0:
        raise CSVParseError(
            f"CSV parsing errors: too few fields on row(s) {', '.join(str(i + 2) for i in short_rows[:5])}"
        )

    df.columns = columns
    rows = df.to_dict(orient="records")
    schema = infer_schema(rows, columns)

    logger.debug("CSV parsed", rows=len(rows), columns=len(columns))

    return ParsedCSV(rows=rows, columns=columns, schema=schema)
