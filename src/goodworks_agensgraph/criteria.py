"""Translate GoodWork search criteria into a parameterized Cypher filter.

Criteria become an ordered list of :class:`Predicate` objects first and are
only rendered to Cypher when the fragment is compiled, so every value reaches
the database as a query parameter.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from psycopg.types.json import Jsonb

from .mapping import format_timestamp
from .models import GoodWorkSearchCriteria, GoodWorkStatus

MILES_PER_DEGREE_LATITUDE = 69.0

DEFAULT_RESULT_LIMIT = 100

COMPARISONS_TO_NATIVE = {
    "$eq": "=",
    "$ne": "<>",
    "$lt": "<",
    "$lte": "<=",
    "$gt": ">",
    "$gte": ">=",
}

SPECIAL_CASED_OPERATORS = {
    "$between",
    "$in",
    "$has_capacity",
    "$icontains_any",
}

SUPPORTED_OPERATORS = set(COMPARISONS_TO_NATIVE).union(SPECIAL_CASED_OPERATORS)

# Criteria on names of neighbouring nodes: field -> (relationship type, label)
RELATED_FIELDS = {
    "category": ("BELONGS_TO", "Category"),
    "sub_category": ("HAS_SUBCATEGORY", "SubCategory"),
    "tags": ("TAGGED_WITH", "Tag"),
    "required_skills": ("REQUIRES_SKILL", "Skill"),
}

# Properties searched by free text; contact_email lives on the Contact node
TEXT_SEARCH_FIELDS = ["name", "description", "detailed_description", "contact_email"]


@dataclass(frozen=True)
class Predicate:
    """One typed filter condition, e.g. ``Predicate("start_time", "$gte", "...")``."""

    field: str
    operator: str
    value: Any = None


@dataclass
class QueryFragment:
    """Ordered predicates plus the parameters they bind, ANDed together on compile."""

    predicates: List[Predicate] = field(default_factory=list)

    def add(self, predicate: Predicate) -> "QueryFragment":
        if predicate.operator not in SUPPORTED_OPERATORS:
            raise ValueError(
                f"Invalid operator: {predicate.operator}. Expected one of {SUPPORTED_OPERATORS}"
            )
        self.predicates.append(predicate)
        return self

    def compile(self, node: str = "g") -> Tuple[str, Dict[str, Any]]:
        """Render the Cypher that follows ``MATCH (<node>:"GoodWork")``.

        Property predicates form the WHERE clause of that MATCH. Predicates on
        neighbouring nodes add their own MATCH clauses and the block ends with
        ``WITH DISTINCT <node>`` so each GoodWork appears once.
        """
        conditions = []
        pattern_clauses = []
        params: Dict[str, Any] = {}

        for index, predicate in enumerate(self.predicates):
            snippet, param = _handle_predicate(predicate, node, index)
            params.update(param)
            if predicate.field in RELATED_FIELDS or predicate.operator == "$icontains_any":
                pattern_clauses.append(snippet)
            else:
                conditions.append(snippet)

        parts = []
        if conditions:
            parts.append("WHERE " + " AND ".join(conditions))
        parts.extend(pattern_clauses)
        if pattern_clauses:
            parts.append(f"WITH DISTINCT {node}")
        return "\n".join(parts), params


def _handle_predicate(
    predicate: Predicate, node: str, param_number: int
) -> Tuple[str, Dict[str, Any]]:
    """Create the Cypher snippet and parameters for a single predicate."""
    field_name = predicate.field
    operator = predicate.operator
    value = predicate.value

    if not field_name.isidentifier():
        raise ValueError(f"Invalid field name: {field_name}. Expected a valid identifier.")

    param = f"param_{param_number}"

    if field_name in RELATED_FIELDS:
        rel_type, label = RELATED_FIELDS[field_name]
        alias = f"f{param_number}"
        if operator == "$eq":
            condition = f"{alias}.name = %({param})s"
        elif operator == "$in":
            condition = f"{alias}.name <@ %({param})s"
        else:
            raise NotImplementedError(f"Unsupported operator {operator} for {field_name}")
        snippet = (
            f'MATCH ({node})-[:"{rel_type}"]->({alias}:"{label}")\n'
            f"WHERE {condition}"
        )
        return snippet, {param: Jsonb(value)}

    if operator in COMPARISONS_TO_NATIVE:
        native = COMPARISONS_TO_NATIVE[operator]
        return f"{node}.{field_name} {native} %({param})s", {param: Jsonb(value)}

    if operator == "$between":
        low, high = value
        snippet = (
            f"%({param}_low)s <= {node}.{field_name} AND {node}.{field_name} <= %({param}_high)s"
        )
        return snippet, {f"{param}_low": Jsonb(low), f"{param}_high": Jsonb(high)}

    if operator == "$in":
        return f"{node}.{field_name} <@ %({param})s", {param: Jsonb(list(value))}

    if operator == "$has_capacity":
        snippet = (
            f"({node}.max_participants IS NULL OR "
            f"{node}.current_participants < {node}.max_participants)"
        )
        return snippet, {}

    if operator == "$icontains_any":
        fields = value["fields"]
        alias = f"f{param_number}"
        terms = []
        for name in fields:
            if name == "contact_email":
                terms.append(f"toLower({alias}.email) CONTAINS %({param})s")
            else:
                terms.append(f"toLower({node}.{name}) CONTAINS %({param})s")
        snippet = (
            f'OPTIONAL MATCH ({node})-[:"HAS_CONTACT"]->({alias}:"Contact")\n'
            f"WITH {node}, {alias}\n"
            f"WHERE ({' OR '.join(terms)})"
        )
        return snippet, {param: Jsonb(value["text"].lower())}

    raise NotImplementedError(f"Unsupported operator: {operator}")


def bounding_box(
    latitude: float, longitude: float, radius_miles: float
) -> Tuple[float, float, float, float]:
    """Axis-aligned box around a centre point.

    Returns ``(min_lat, max_lat, min_lng, max_lng)``. The box circumscribes the
    radius circle, so corner points farther than the radius are included.
    """
    lat_delta = radius_miles / MILES_PER_DEGREE_LATITUDE
    lng_delta = radius_miles / (
        MILES_PER_DEGREE_LATITUDE * math.cos(latitude * math.pi / 180)
    )
    return (
        latitude - lat_delta,
        latitude + lat_delta,
        longitude - lng_delta,
        longitude + lng_delta,
    )


def build_search_fragment(criteria: Optional[GoodWorkSearchCriteria]) -> QueryFragment:
    """Build the filter for a GoodWork search.

    The Active status predicate always comes first; each populated criterion
    appends one predicate (two for the radius box).
    """
    fragment = QueryFragment()
    fragment.add(Predicate("status", "$eq", GoodWorkStatus.ACTIVE.value))

    if criteria is None:
        return fragment

    if criteria.category:
        fragment.add(Predicate("category", "$eq", criteria.category))
    if criteria.sub_category:
        fragment.add(Predicate("sub_category", "$eq", criteria.sub_category))
    if criteria.tags:
        fragment.add(Predicate("tags", "$in", list(criteria.tags)))
    if criteria.required_skills:
        fragment.add(Predicate("required_skills", "$in", list(criteria.required_skills)))

    if (
        criteria.center_latitude is not None
        and criteria.center_longitude is not None
        and criteria.radius_miles
    ):
        min_lat, max_lat, min_lng, max_lng = bounding_box(
            criteria.center_latitude, criteria.center_longitude, criteria.radius_miles
        )
        fragment.add(Predicate("latitude", "$between", (min_lat, max_lat)))
        fragment.add(Predicate("longitude", "$between", (min_lng, max_lng)))

    if criteria.start_date_from is not None:
        fragment.add(
            Predicate("start_time", "$gte", format_timestamp(criteria.start_date_from))
        )
    if criteria.start_date_to is not None:
        fragment.add(
            Predicate("start_time", "$lte", format_timestamp(criteria.start_date_to))
        )

    if criteria.effort_level is not None:
        fragment.add(Predicate("effort_level", "$eq", criteria.effort_level.value))
    if criteria.is_virtual is not None:
        fragment.add(Predicate("is_virtual", "$eq", criteria.is_virtual))
    if criteria.is_accessible is not None:
        fragment.add(Predicate("is_accessible", "$eq", criteria.is_accessible))
    if criteria.family_friendly is not None:
        fragment.add(Predicate("family_friendly", "$eq", criteria.family_friendly))
    if criteria.has_available_spots:
        fragment.add(Predicate("max_participants", "$has_capacity"))

    if criteria.search_text and criteria.search_text.strip():
        fragment.add(
            Predicate(
                "search_text",
                "$icontains_any",
                {"text": criteria.search_text.strip(), "fields": TEXT_SEARCH_FIELDS},
            )
        )

    return fragment
