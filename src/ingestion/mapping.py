"""
Heuristic mapping of CSV columns to event roles.

Each role is a rule evaluated in order against every column; the first rule
a column satisfies claims it, otherwise the column becomes a dimension.
"""

from dataclasses import dataclass, field

from .parser import SemanticType

DEFAULT_EVENT_TYPE = "default_event"


@dataclass(frozen=True)
class MappingRule:
    """A column role, the column types it accepts and the name fragments that identify it"""

    role: str
    types: tuple[SemanticType, ...]
    name_fragments: tuple[str, ...]

    def matches(self, column: str, semantic_type: SemanticType | str | None) -> bool:
        if semantic_type not in self.types:
            return False
        lowered = column.lower()
        return any(fragment in lowered for fragment in self.name_fragments)


MAPPING_RULES: tuple[MappingRule, ...] = (
    MappingRule(
        role="timestamp_column",
        types=(SemanticType.TIMESTAMP,),
        name_fragments=("timestamp", "time", "date", "created", "occurred", "event_time"),
    ),
    MappingRule(
        role="event_type_column",
        types=(SemanticType.STRING,),
        name_fragments=("type", "event_type", "event", "action", "category"),
    ),
    MappingRule(
        role="metric_value_column",
        types=(SemanticType.INTEGER, SemanticType.NUMBER),
        name_fragments=("value", "amount", "count", "metric", "score", "revenue", "total"),
    ),
)


@dataclass
class EventFieldMapping:
    """Which columns feed the timestamp, event type and metric value of an event

    ``event_type_column`` may hold DEFAULT_EVENT_TYPE, a literal rather than a
    column name; use ``has_event_type_column`` before looking it up in a row.
    """

    timestamp_column: str | None = None
    event_type_column: str | None = None
    metric_value_column: str | None = None
    dimension_columns: list[str] = field(default_factory=list)

    @property
    def has_event_type_column(self) -> bool:
        return self.event_type_column is not None and self.event_type_column != DEFAULT_EVENT_TYPE

    def role_columns(self) -> list[str]:
        """Real columns claimed by a role, sentinel excluded"""
        columns = [self.timestamp_column, self.metric_value_column]
        if self.has_event_type_column:
            columns.insert(1, self.event_type_column)
        return [column for column in columns if column is not None]


def detect_field_mapping(
    columns: list[str], schema: dict[str, SemanticType | str]
) -> EventFieldMapping:
    """Assign columns to event roles in a single greedy pass"""
    mapping = EventFieldMapping()

    for column in columns:
        for rule in MAPPING_RULES:
            if getattr(mapping, rule.role) is None and rule.matches(column, schema.get(column)):
                setattr(mapping, rule.role, column)
                break
        else:
            mapping.dimension_columns.append(column)

    if mapping.timestamp_column is None:
        fallback = next(
            (column for column in columns if schema.get(column) == SemanticType.TIMESTAMP), None
        )
        if fallback is not None:
            mapping.timestamp_column = fallback
            mapping.dimension_columns = [c for c in mapping.dimension_columns if c != fallback]

    if mapping.event_type_column is None:
        mapping.event_type_column = DEFAULT_EVENT_TYPE

    return mapping
