"""Conversions between stored graph values and the domain models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from .models import GoodWork

# Fixed-width UTC so that stored timestamps order correctly as strings
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# GoodWork attributes stored on the node itself; the rest are derived on read
GOOD_WORK_NODE_FIELDS = [
    "name",
    "description",
    "detailed_description",
    "latitude",
    "longitude",
    "address",
    "start_time",
    "end_time",
    "estimated_duration",
    "effort_level",
    "is_accessible",
    "is_virtual",
    "max_participants",
    "current_participants",
    "minimum_age",
    "family_friendly",
    "is_recurring",
    "recurrence_pattern",
    "recurrence_end_date",
    "organization_name",
    "organization_website",
    "parking_available",
    "public_transit_accessible",
    "special_instructions",
    "what_to_bring",
    "impact_description",
    "estimated_people_helped",
    "status",
    "outdoor_activity",
    "weather_dependent",
    "created_date",
    "created_by",
    "last_modified_date",
]


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime in the stored form. Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_property_value(value: Any) -> Any:
    """Convert a model attribute to the value written into a graph property."""
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Enum):
        return value.value
    return value


def good_work_properties(work: GoodWork) -> Dict[str, Any]:
    """Node properties for a GoodWork, without the derived neighbourhood fields."""
    return {
        field: to_property_value(getattr(work, field)) for field in GOOD_WORK_NODE_FIELDS
    }


class RecordProjection:
    """Reads typed fields from a record with a flat-column-then-node fallback.

    Query shapes differ: some return each attribute as its own column, others
    return the raw node. For every field the projection tries the flat column
    first, then the property of the node column, then the type default, so a
    single mapper serves both shapes.
    """

    def __init__(self, record: Mapping[str, Any], node_column: Optional[str] = None):
        self.record = record
        self.node_column = node_column

    def value(self, field: str, default: Any = None, column: Optional[str] = None) -> Any:
        column = column or field
        flat = self.record.get(column)
        if flat is not None:
            return flat
        if self.node_column:
            node = self.record.get(self.node_column)
            if isinstance(node, dict) and node.get(field) is not None:
                return node[field]
        return default

    def text(self, field: str, column: Optional[str] = None) -> str:
        value = self.value(field, "", column)
        return value if isinstance(value, str) else str(value)

    def boolean(self, field: str, column: Optional[str] = None) -> bool:
        return bool(self.value(field, False, column))

    def integer(self, field: str, column: Optional[str] = None) -> int:
        return int(self.value(field, 0, column))

    def optional_integer(self, field: str, column: Optional[str] = None) -> Optional[int]:
        value = self.value(field, None, column)
        return None if value is None else int(value)

    def number(self, field: str, column: Optional[str] = None) -> float:
        return float(self.value(field, 0.0, column))

    def optional_number(self, field: str, column: Optional[str] = None) -> Optional[float]:
        value = self.value(field, None, column)
        return None if value is None else float(value)

    def timestamp(self, field: str, column: Optional[str] = None) -> Optional[datetime]:
        return parse_timestamp(self.value(field, None, column))

    def strings(self, field: str, column: Optional[str] = None) -> List[str]:
        value = self.value(field, [], column)
        if isinstance(value, str):
            value = [value]
        return [str(item) for item in value if item not in (None, "")]


def good_work_from_record(record: Mapping[str, Any], node_column: str = "g") -> GoodWork:
    """Rebuild a GoodWork from a query row."""
    p = RecordProjection(record, node_column)
    return GoodWork(
        id=p.value("id"),
        name=p.text("name"),
        description=p.text("description"),
        detailed_description=p.text("detailed_description"),
        category=p.text("category"),
        sub_category=p.text("sub_category"),
        tags=p.strings("tags"),
        required_skills=p.strings("required_skills"),
        contact_name=p.text("contact_name"),
        contact_email=p.text("contact_email"),
        contact_phone=p.text("contact_phone"),
        latitude=p.number("latitude"),
        longitude=p.number("longitude"),
        address=p.text("address"),
        city=p.text("city"),
        state=p.text("state"),
        country=p.text("country"),
        zip=p.text("zip"),
        start_time=p.timestamp("start_time"),
        end_time=p.timestamp("end_time"),
        estimated_duration=p.integer("estimated_duration"),
        effort_level=p.text("effort_level"),
        is_accessible=p.boolean("is_accessible"),
        is_virtual=p.boolean("is_virtual"),
        max_participants=p.optional_integer("max_participants"),
        current_participants=max(p.integer("current_participants"), 0),
        minimum_age=p.integer("minimum_age"),
        family_friendly=p.boolean("family_friendly"),
        is_recurring=p.boolean("is_recurring"),
        recurrence_pattern=p.text("recurrence_pattern"),
        recurrence_end_date=p.timestamp("recurrence_end_date"),
        organization_id=p.value("organization_id"),
        organization_name=p.text("organization_name"),
        organization_website=p.text("organization_website"),
        parking_available=p.boolean("parking_available"),
        public_transit_accessible=p.boolean("public_transit_accessible"),
        special_instructions=p.text("special_instructions"),
        what_to_bring=p.strings("what_to_bring"),
        impact_description=p.text("impact_description"),
        estimated_people_helped=p.integer("estimated_people_helped"),
        status=p.text("status"),
        outdoor_activity=p.boolean("outdoor_activity"),
        weather_dependent=p.boolean("weather_dependent"),
        created_date=p.timestamp("created_date"),
        created_by=p.text("created_by"),
        last_modified_date=p.timestamp("last_modified_date"),
        interested_count=p.integer("interested_count"),
        signed_up_count=p.integer("signed_up_count"),
        is_user_interested=p.boolean("is_user_interested"),
        is_user_signed_up=p.boolean("is_user_signed_up"),
    )
