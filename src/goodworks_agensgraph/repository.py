"""GoodWork persistence on AgensGraph.

Every public coroutine runs as one graph transaction: reads in read-only mode,
multi-statement writes so that a GoodWork and its Contact, Category,
Location, Tag and Skill links commit together or not at all.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from psycopg.types.json import Jsonb

from .criteria import DEFAULT_RESULT_LIMIT, Predicate, QueryFragment, build_search_fragment
from .exceptions import ValidationError
from .geocoding import GoogleGeocoder
from .graph import AgensGraphClient, GraphTransaction
from .mapping import (
    RecordProjection,
    format_timestamp,
    good_work_from_record,
    good_work_properties,
    utc_now,
)
from .models import (
    GoodWork,
    GoodWorkSearchCriteria,
    GoodWorkStatus,
    ListKind,
    Participant,
    Volunteer,
)
from .similarity import DEFAULT_SIMILAR_LIMIT, SimilarityCandidate, rank_similar
from .skills import display_skill_name, normalize_skill_name

logger = logging.getLogger("goodworks_agensgraph")
logger.setLevel(logging.INFO)

GRAPH_ID_PATTERN = re.compile(r"^\d+\.\d+$")

REQUIRED_FIELDS = ["name", "description", "category", "contact_name", "contact_email"]

# Properties an update never overwrites
PRESERVED_ON_UPDATE = {"created_by", "created_date", "current_participants"}

MATCH_BY_ID = """
    MATCH (g:"GoodWork")
    WHERE toString(id(g)) = %(id)s
"""

# Outgoing links rewritten on update
NEIGHBOUR_LINKS = [
    "HAS_CONTACT",
    "BELONGS_TO",
    "HAS_SUBCATEGORY",
    "LOCATED_IN",
    "TAGGED_WITH",
    "REQUIRES_SKILL",
    "POSTED_BY",
]

# Relationship type -> label of the neighbour shared by similar works
SIMILARITY_LINKS = {
    "BELONGS_TO": "Category",
    "TAGGED_WITH": "Tag",
    "REQUIRES_SKILL": "Skill",
    "LOCATED_IN": "Location",
}


def validate_graph_id(value: str, name: str = "id") -> str:
    """Reject identifiers that are not in '<label id>.<local id>' form."""
    if not isinstance(value, str) or not GRAPH_ID_PATTERN.match(value.strip()):
        raise ValidationError(f"Invalid {name}: {value!r}. Expected a graph id such as '3.1'.")
    return value.strip()


def _validate_limit(limit: int) -> int:
    if not isinstance(limit, int) or isinstance(limit, bool) or limit < 0:
        raise ValidationError(f"Invalid limit: {limit!r}")
    return limit


def _require_fields(work: GoodWork) -> None:
    missing = [name for name in REQUIRED_FIELDS if not getattr(work, name)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    if work.organization_id:
        validate_graph_id(work.organization_id, "organization_id")


def _projection(viewer: bool) -> str:
    """Neighbourhood aggregation appended after a block that binds ``g``.

    Produces one row per GoodWork with the derived fields as flat columns and
    the node itself under ``g``.
    """
    query = """
    OPTIONAL MATCH (g)-[:"BELONGS_TO"]->(cat:"Category")
    OPTIONAL MATCH (g)-[:"HAS_SUBCATEGORY"]->(sub:"SubCategory")
    OPTIONAL MATCH (g)-[:"HAS_CONTACT"]->(con:"Contact")
    OPTIONAL MATCH (g)-[:"LOCATED_IN"]->(loc:"Location")
    OPTIONAL MATCH (g)-[:"TAGGED_WITH"]->(tag:"Tag")
    OPTIONAL MATCH (g)-[:"REQUIRES_SKILL"]->(skill:"Skill")
    OPTIONAL MATCH (g)-[:"POSTED_BY"]->(org:"Organization")
    WITH g, cat, sub, con, loc, org,
         collect(DISTINCT tag.name) AS tags,
         collect(DISTINCT skill.name) AS required_skills
    OPTIONAL MATCH (iu:"User")-[:"INTERESTED_IN"]->(g)
    WITH g, cat, sub, con, loc, org, tags, required_skills,
         count(DISTINCT iu) AS interested_count
    OPTIONAL MATCH (su:"User")-[:"SIGNED_UP_FOR"]->(g)
    WITH g, cat, sub, con, loc, org, tags, required_skills, interested_count,
         count(DISTINCT su) AS signed_up_count
    """
    if viewer:
        query += """
    OPTIONAL MATCH (vi:"User" {user_id: %(viewer_id)s})-[:"INTERESTED_IN"]->(g)
    WITH g, cat, sub, con, loc, org, tags, required_skills, interested_count, signed_up_count,
         count(vi) > 0 AS is_user_interested
    OPTIONAL MATCH (vs:"User" {user_id: %(viewer_id)s})-[:"SIGNED_UP_FOR"]->(g)
    WITH g, cat, sub, con, loc, org, tags, required_skills, interested_count, signed_up_count,
         is_user_interested, count(vs) > 0 AS is_user_signed_up
    """
    else:
        query += """
    WITH g, cat, sub, con, loc, org, tags, required_skills, interested_count, signed_up_count,
         false AS is_user_interested, false AS is_user_signed_up
    """
    query += """
    RETURN toString(id(g)) AS id, g,
           cat.name AS category, sub.name AS sub_category,
           tags, required_skills,
           con.name AS contact_name, con.email AS contact_email, con.phone AS contact_phone,
           loc.city AS city, loc.state AS state, loc.country AS country, loc.zip AS zip,
           CASE WHEN org IS NULL THEN NULL ELSE toString(id(org)) END AS organization_id,
           interested_count, signed_up_count, is_user_interested, is_user_signed_up
    """
    return query


class GoodWorkRepository:
    """CRUD, search, similarity and engagement operations for GoodWorks.

    Args:
        client: Initialized AgensGraphClient.
        geocoder: Optional reverse geocoder. When set, create and update
            resolve city, state, country and zip from the coordinates before
            the write transaction opens; otherwise the fields on the model are
            used as given.
    """

    def __init__(self, client: AgensGraphClient, geocoder: Optional[GoogleGeocoder] = None):
        self.client = client
        self.geocoder = geocoder

    async def _resolve_location(self, work: GoodWork) -> GoodWork:
        if self.geocoder is None or work.is_virtual:
            return work
        details = await self.geocoder.resolve(work.latitude, work.longitude)
        return work.model_copy(
            update={
                "city": details.city,
                "state": details.state,
                "country": details.country,
                "zip": details.zip,
            }
        )

    async def _link_neighbours(self, tx: GraphTransaction, work_id: str, work: GoodWork) -> None:
        """Merge Contact, Category, Location, SubCategory, Tags and Skills and link them."""
        await tx.run(
            MATCH_BY_ID
            + """
            MERGE (c:"Contact" {email: %(contact_email)s})
            ON CREATE SET c.name = %(contact_name)s, c.phone = %(contact_phone)s
            MERGE (g)-[:"HAS_CONTACT"]->(c)
            MERGE (cat:"Category" {name: %(category)s})
            MERGE (g)-[:"BELONGS_TO"]->(cat)
            MERGE (l:"Location" {city: %(city)s, state: %(state)s, country: %(country)s, zip: %(zip)s})
            MERGE (g)-[:"LOCATED_IN"]->(l)
            """,
            {
                "id": Jsonb(work_id),
                "contact_email": Jsonb(work.contact_email),
                "contact_name": Jsonb(work.contact_name),
                "contact_phone": Jsonb(work.contact_phone),
                "category": Jsonb(work.category),
                "city": Jsonb(work.city),
                "state": Jsonb(work.state),
                "country": Jsonb(work.country),
                "zip": Jsonb(work.zip),
            },
        )

        if work.sub_category:
            await tx.run(
                MATCH_BY_ID
                + """
                MERGE (s:"SubCategory" {name: %(name)s})
                MERGE (g)-[:"HAS_SUBCATEGORY"]->(s)
                """,
                {"id": Jsonb(work_id), "name": Jsonb(work.sub_category)},
            )

        for tag in dict.fromkeys(work.tags):
            await tx.run(
                MATCH_BY_ID
                + """
                MERGE (t:"Tag" {name: %(name)s})
                MERGE (g)-[:"TAGGED_WITH"]->(t)
                """,
                {"id": Jsonb(work_id), "name": Jsonb(tag)},
            )

        created_date = format_timestamp(utc_now())
        for skill in dict.fromkeys(work.required_skills):
            normalized = normalize_skill_name(skill)
            if not normalized:
                continue
            rows = await tx.run(
                """
                MATCH (s:"Skill")
                WHERE toLower(s.name) = %(normalized)s
                RETURN s.name AS name
                LIMIT 1
                """,
                {"normalized": Jsonb(normalized)},
            )
            await tx.run(
                MATCH_BY_ID
                + """
                MERGE (s:"Skill" {name: %(name)s})
                ON CREATE SET s.category = %(empty)s, s.description = %(empty)s,
                              s.created_date = %(created_date)s
                MERGE (g)-[:"REQUIRES_SKILL"]->(s)
                """,
                {
                    "id": Jsonb(work_id),
                    "name": Jsonb(rows[0]["name"] if rows else display_skill_name(skill)),
                    "empty": Jsonb(""),
                    "created_date": Jsonb(created_date),
                },
            )

        if work.organization_id:
            await tx.run(
                MATCH_BY_ID
                + """
                MATCH (o:"Organization")
                WHERE toString(id(o)) = %(organization_id)s
                MERGE (g)-[:"POSTED_BY"]->(o)
                """,
                {"id": Jsonb(work_id), "organization_id": Jsonb(work.organization_id)},
            )

    async def create_good_work(self, work: GoodWork, creator_id: str) -> str:
        """Store a new GoodWork with all of its links and return its graph id."""
        _require_fields(work)

        logger.info(f"Creating GoodWork '{work.name}' for {creator_id}")
        work = await self._resolve_location(work)

        now = utc_now()
        properties = {
            key: value for key, value in good_work_properties(work).items() if value is not None
        }
        properties.update(
            {
                "created_by": creator_id,
                "created_date": format_timestamp(work.created_date or now),
                "last_modified_date": format_timestamp(now),
                "current_participants": max(work.current_participants, 0),
            }
        )

        async with self.client.transaction() as tx:
            rows = await tx.run(
                """
                CREATE (g:"GoodWork")
                SET g += %(props)s
                RETURN toString(id(g)) AS id
                """,
                {"props": Jsonb(properties)},
            )
            work_id = rows[0]["id"]
            await self._link_neighbours(tx, work_id, work)

        logger.info(f"Created GoodWork {work_id}")
        return work_id

    async def get_good_work_by_id(
        self, work_id: str, viewer_id: Optional[str] = None
    ) -> Optional[GoodWork]:
        """Fetch one GoodWork with aggregates and viewer flags, or ``None``."""
        work_id = validate_graph_id(work_id)
        async with self.client.transaction(read_only=True) as tx:
            return await self._fetch_by_id(tx, work_id, viewer_id)

    async def _fetch_by_id(
        self, tx: GraphTransaction, work_id: str, viewer_id: Optional[str]
    ) -> Optional[GoodWork]:
        params: Dict[str, Any] = {"id": Jsonb(work_id)}
        if viewer_id:
            params["viewer_id"] = Jsonb(viewer_id)
        rows = await tx.run(MATCH_BY_ID + _projection(bool(viewer_id)), params)
        if not rows:
            return None
        return good_work_from_record(rows[0])

    async def search_good_works(
        self,
        criteria: Optional[GoodWorkSearchCriteria] = None,
        viewer_id: Optional[str] = None,
        limit: int = DEFAULT_RESULT_LIMIT,
    ) -> List[GoodWork]:
        """Active GoodWorks matching the criteria, earliest start first."""
        limit = _validate_limit(limit)
        filter_clause, params = build_search_fragment(criteria).compile("g")
        if viewer_id:
            params["viewer_id"] = Jsonb(viewer_id)

        query = (
            'MATCH (g:"GoodWork")\n'
            + filter_clause
            + _projection(bool(viewer_id))
            + f"ORDER BY g.start_time ASC\nLIMIT {limit}"
        )
        logger.info("Searching GoodWorks")
        async with self.client.transaction(read_only=True) as tx:
            rows = await tx.run(query, params)
        return [good_work_from_record(row) for row in rows]

    async def get_similar_good_works(
        self,
        work_id: str,
        viewer_id: Optional[str] = None,
        limit: int = DEFAULT_SIMILAR_LIMIT,
    ) -> List[GoodWork]:
        """Active GoodWorks sharing the most neighbours with ``work_id``."""
        work_id = validate_graph_id(work_id)
        limit = _validate_limit(limit)

        async with self.client.transaction(read_only=True) as tx:
            reference = await self._fetch_by_id(tx, work_id, viewer_id)
            if reference is None:
                return []

            overlaps: Dict[str, Dict[str, int]] = {}
            for rel_type, label in SIMILARITY_LINKS.items():
                rows = await tx.run(
                    f"""
                    MATCH (src:"GoodWork")-[:"{rel_type}"]->(shared:"{label}")<-[:"{rel_type}"]-(c:"GoodWork")
                    WHERE toString(id(src)) = %(id)s
                      AND toString(id(c)) <> %(id)s
                      AND c.status = %(status)s
                    RETURN toString(id(c)) AS id, count(DISTINCT shared) AS overlap
                    """,
                    {"id": Jsonb(work_id), "status": Jsonb(GoodWorkStatus.ACTIVE.value)},
                )
                for row in rows:
                    overlaps.setdefault(row["id"], {})[rel_type] = int(row["overlap"])

            rows = await tx.run(
                """
                MATCH (c:"GoodWork")
                WHERE c.effort_level = %(effort_level)s
                  AND c.status = %(status)s
                  AND toString(id(c)) <> %(id)s
                RETURN toString(id(c)) AS id
                """,
                {
                    "id": Jsonb(work_id),
                    "effort_level": Jsonb(reference.effort_level.value),
                    "status": Jsonb(GoodWorkStatus.ACTIVE.value),
                },
            )
            for row in rows:
                overlaps.setdefault(row["id"], {})["EFFORT"] = 1

            if not overlaps:
                return []

            params: Dict[str, Any] = {"ids": Jsonb(list(overlaps))}
            if viewer_id:
                params["viewer_id"] = Jsonb(viewer_id)
            rows = await tx.run(
                """
                MATCH (g:"GoodWork")
                WHERE toString(id(g)) <@ %(ids)s
                """
                + _projection(bool(viewer_id)),
                params,
            )

        candidates = []
        for row in rows:
            work = good_work_from_record(row)
            counts = overlaps.get(work.id, {})
            candidates.append(
                SimilarityCandidate(
                    work=work,
                    category_match=counts.get("BELONGS_TO", 0) > 0,
                    tag_overlap=counts.get("TAGGED_WITH", 0),
                    skill_overlap=counts.get("REQUIRES_SKILL", 0),
                    location_match=counts.get("LOCATED_IN", 0) > 0,
                    effort_match=counts.get("EFFORT", 0) > 0,
                )
            )
        return rank_similar(reference, candidates, limit)

    async def update_good_work(self, work_id: str, work: GoodWork, owner_id: str) -> bool:
        """Overwrite a GoodWork owned by ``owner_id`` and re-point its links.

        Returns ``False`` without touching anything when the id does not exist
        or belongs to someone else.
        """
        work_id = validate_graph_id(work_id)
        _require_fields(work)
        logger.info(f"Updating GoodWork {work_id} for {owner_id}")
        work = await self._resolve_location(work)

        properties = {
            key: value
            for key, value in good_work_properties(work).items()
            if key not in PRESERVED_ON_UPDATE
        }
        properties["last_modified_date"] = format_timestamp(utc_now())
        # unset values are removed, never stored as null
        cleared = sorted(key for key, value in properties.items() if value is None)
        properties = {key: value for key, value in properties.items() if value is not None}
        remove_clause = ("REMOVE " + ", ".join(f"g.{key}" for key in cleared)) if cleared else ""

        async with self.client.transaction() as tx:
            rows = await tx.run(
                MATCH_BY_ID
                + f"""
                  AND g.created_by = %(owner_id)s
                SET g += %(props)s
                {remove_clause}
                RETURN toString(id(g)) AS id
                """,
                {
                    "id": Jsonb(work_id),
                    "owner_id": Jsonb(owner_id),
                    "props": Jsonb(properties),
                },
            )
            if not rows:
                logger.info(f"GoodWork {work_id} not updated: missing or not owned by {owner_id}")
                return False

            for rel_type in NEIGHBOUR_LINKS:
                await tx.run(
                    MATCH_BY_ID
                    + f"""
                    MATCH (g)-[r:"{rel_type}"]->()
                    DELETE r
                    """,
                    {"id": Jsonb(work_id)},
                )
            await self._link_neighbours(tx, work_id, work)

        return True

    async def delete_good_work(self, work_id: str, owner_id: str) -> bool:
        """Delete a GoodWork owned by ``owner_id``; ``False`` when nothing matched."""
        work_id = validate_graph_id(work_id)
        params = {"id": Jsonb(work_id), "owner_id": Jsonb(owner_id)}
        owned = MATCH_BY_ID + "  AND g.created_by = %(owner_id)s\n"

        async with self.client.transaction() as tx:
            rows = await tx.run(owned + "RETURN count(g) AS matched", params)
            if not rows or int(rows[0]["matched"]) == 0:
                logger.info(f"GoodWork {work_id} not deleted: missing or not owned by {owner_id}")
                return False
            await tx.run(owned + "DETACH DELETE g", params)

        logger.info(f"Deleted GoodWork {work_id}")
        return True

    async def _has_engagement(
        self, tx: GraphTransaction, rel_type: str, user_id: str, work_id: str
    ) -> bool:
        rows = await tx.run(
            f"""
            MATCH (u:"User" {{user_id: %(user_id)s}})-[r:"{rel_type}"]->(g:"GoodWork")
            WHERE toString(id(g)) = %(id)s
            RETURN count(r) AS existing
            """,
            {"user_id": Jsonb(user_id), "id": Jsonb(work_id)},
        )
        return bool(rows) and int(rows[0]["existing"]) > 0

    async def _link_user(
        self, tx: GraphTransaction, rel_type: str, user_id: str, work_id: str
    ) -> None:
        await tx.run(
            MATCH_BY_ID
            + f"""
            MERGE (u:"User" {{user_id: %(user_id)s}})
            MERGE (u)-[r:"{rel_type}"]->(g)
            ON CREATE SET r.created_date = %(now)s
            """,
            {
                "id": Jsonb(work_id),
                "user_id": Jsonb(user_id),
                "now": Jsonb(format_timestamp(utc_now())),
            },
        )

    async def _unlink_user(
        self, tx: GraphTransaction, rel_type: str, user_id: str, work_id: str
    ) -> None:
        await tx.run(
            f"""
            MATCH (u:"User" {{user_id: %(user_id)s}})-[r:"{rel_type}"]->(g:"GoodWork")
            WHERE toString(id(g)) = %(id)s
            DELETE r
            """,
            {"user_id": Jsonb(user_id), "id": Jsonb(work_id)},
        )

    async def set_interested(self, user_id: str, work_id: str, on: bool) -> None:
        """Mark or unmark interest. Re-asserting keeps the first timestamp."""
        work_id = validate_graph_id(work_id)
        async with self.client.transaction() as tx:
            if on:
                await self._link_user(tx, "INTERESTED_IN", user_id, work_id)
            else:
                await self._unlink_user(tx, "INTERESTED_IN", user_id, work_id)

    async def set_signed_up(self, user_id: str, work_id: str, on: bool) -> None:
        """Sign a user up or withdraw them, adjusting ``current_participants``.

        The count moves only when a relationship is actually created or
        removed and never drops below zero. Capacity is not enforced here.
        """
        work_id = validate_graph_id(work_id)
        async with self.client.transaction() as tx:
            existing = await self._has_engagement(tx, "SIGNED_UP_FOR", user_id, work_id)
            if on and not existing:
                await self._link_user(tx, "SIGNED_UP_FOR", user_id, work_id)
                await tx.run(
                    MATCH_BY_ID
                    + "SET g.current_participants = coalesce(g.current_participants, 0) + 1",
                    {"id": Jsonb(work_id)},
                )
            elif not on and existing:
                await self._unlink_user(tx, "SIGNED_UP_FOR", user_id, work_id)
                await tx.run(
                    MATCH_BY_ID
                    + """
                    SET g.current_participants = CASE
                        WHEN coalesce(g.current_participants, 0) > 0
                        THEN g.current_participants - 1
                        ELSE 0
                    END
                    """,
                    {"id": Jsonb(work_id)},
                )

    async def list_by_user(self, user_id: str, kind: ListKind) -> List[GoodWork]:
        """GoodWorks a user created, is interested in, or signed up for."""
        kind = ListKind(kind)
        if kind == ListKind.CREATED:
            match = 'MATCH (g:"GoodWork")\nWHERE g.created_by = %(user_id)s\n'
        elif kind == ListKind.INTERESTED:
            match = 'MATCH (:"User" {user_id: %(user_id)s})-[:"INTERESTED_IN"]->(g:"GoodWork")\n'
        else:
            match = 'MATCH (:"User" {user_id: %(user_id)s})-[:"SIGNED_UP_FOR"]->(g:"GoodWork")\n'

        params = {"user_id": Jsonb(user_id), "viewer_id": Jsonb(user_id)}
        async with self.client.transaction(read_only=True) as tx:
            rows = await tx.run(
                match + _projection(True) + "ORDER BY g.start_time ASC", params
            )
        return [good_work_from_record(row) for row in rows]

    async def _list(self, match: str, params: Dict[str, Any]) -> List[GoodWork]:
        async with self.client.transaction(read_only=True) as tx:
            rows = await tx.run(match + _projection(False) + "ORDER BY g.start_time ASC", params)
        return [good_work_from_record(row) for row in rows]

    async def get_good_works_by_category(self, category: str) -> List[GoodWork]:
        return await self._list(
            'MATCH (g:"GoodWork")-[:"BELONGS_TO"]->(:"Category" {name: %(category)s})\n',
            {"category": Jsonb(category)},
        )

    async def get_good_works_by_zip(self, zip_code: str) -> List[GoodWork]:
        return await self._list(
            'MATCH (g:"GoodWork")-[:"LOCATED_IN"]->(:"Location" {zip: %(zip)s})\n',
            {"zip": Jsonb(zip_code)},
        )

    async def get_good_works_by_location(
        self, city: str, state: str, country: str
    ) -> List[GoodWork]:
        return await self._list(
            'MATCH (g:"GoodWork")-[:"LOCATED_IN"]->'
            '(:"Location" {city: %(city)s, state: %(state)s, country: %(country)s})\n',
            {"city": Jsonb(city), "state": Jsonb(state), "country": Jsonb(country)},
        )

    async def get_good_works_in_bounds(
        self, min_lat: float, max_lat: float, min_lng: float, max_lng: float
    ) -> List[GoodWork]:
        """GoodWorks whose coordinates fall inside the box, bounds inclusive."""
        fragment = QueryFragment()
        fragment.add(Predicate("latitude", "$between", (min_lat, max_lat)))
        fragment.add(Predicate("longitude", "$between", (min_lng, max_lng)))
        filter_clause, params = fragment.compile("g")
        return await self._list('MATCH (g:"GoodWork")\n' + filter_clause, params)

    async def get_all_good_works_with_relationships(self) -> List[GoodWork]:
        """Every linked GoodWork, folded from one row per relationship.

        Contact, Category and Location rows fill the matching fields; the
        Location also yields an ``address`` of "city, state, country, zip".
        """
        async with self.client.transaction(read_only=True) as tx:
            rows = await tx.run(
                """
                MATCH (g:"GoodWork")-[r]-(n)
                RETURN toString(id(g)) AS id, g, n AS related_node, type(r) AS relationship_type
                """
            )

        works: Dict[str, GoodWork] = {}
        for row in rows:
            work = works.get(row["id"])
            if work is None:
                work = good_work_from_record(row)
                works[row["id"]] = work

            related = RecordProjection(row, "related_node")
            relationship_type = row.get("relationship_type")
            if relationship_type == "HAS_CONTACT":
                work.contact_name = related.text("name", column="contact_name")
                work.contact_email = related.text("email", column="contact_email")
                work.contact_phone = related.text("phone", column="contact_phone")
            elif relationship_type == "LOCATED_IN":
                work.city = related.text("city", column="city")
                work.state = related.text("state", column="state")
                work.country = related.text("country", column="country")
                work.zip = related.text("zip", column="zip")
                work.address = f"{work.city}, {work.state}, {work.country}, {work.zip}"
            elif relationship_type == "BELONGS_TO":
                work.category = related.text("name", column="category")

        return list(works.values())

    async def get_participants(self, work_id: str) -> List[Participant]:
        """Users interested in or signed up for a GoodWork, newest first."""
        work_id = validate_graph_id(work_id)
        async with self.client.transaction(read_only=True) as tx:
            rows = await tx.run(
                MATCH_BY_ID
                + """
                MATCH (u:"User")-[r]->(g)
                WHERE type(r) = 'INTERESTED_IN' OR type(r) = 'SIGNED_UP_FOR'
                RETURN u.user_id AS user_id, u.name AS name, u.email AS email,
                       type(r) AS relationship_type, r.created_date AS engagement_date
                ORDER BY r.created_date DESC
                """,
                {"id": Jsonb(work_id)},
            )

        participants = []
        for row in rows:
            p = RecordProjection(row)
            participants.append(
                Participant(
                    user_id=p.text("user_id"),
                    name=p.text("name"),
                    email=p.text("email"),
                    relationship_type=p.text("relationship_type"),
                    engagement_date=p.timestamp("engagement_date"),
                )
            )
        return participants

    async def get_top_volunteers(self, limit: int = 10) -> List[Volunteer]:
        """Users ranked by how many GoodWorks they signed up for."""
        limit = _validate_limit(limit)
        async with self.client.transaction(read_only=True) as tx:
            rows = await tx.run(
                f"""
                MATCH (u:"User")-[:"SIGNED_UP_FOR"]->(g:"GoodWork")
                RETURN u.user_id AS user_id, u.name AS name, count(g) AS signed_up_count
                ORDER BY signed_up_count DESC, user_id ASC
                LIMIT {limit}
                """
            )
        volunteers = []
        for row in rows:
            p = RecordProjection(row)
            volunteers.append(
                Volunteer(
                    user_id=p.text("user_id"),
                    name=p.text("name"),
                    signed_up_count=p.integer("signed_up_count"),
                )
            )
        return volunteers

    async def count_by_tag(self, tag: str) -> int:
        async with self.client.transaction(read_only=True) as tx:
            rows = await tx.run(
                """
                MATCH (g:"GoodWork")-[:"TAGGED_WITH"]->(:"Tag" {name: %(tag)s})
                RETURN count(DISTINCT g) AS count
                """,
                {"tag": Jsonb(tag)},
            )
        return int(rows[0]["count"]) if rows else 0

    async def delete_by_tag(self, tag: str) -> int:
        """Delete every GoodWork carrying ``tag`` and return how many went."""
        params = {"tag": Jsonb(tag)}
        async with self.client.transaction() as tx:
            rows = await tx.run(
                """
                MATCH (g:"GoodWork")-[:"TAGGED_WITH"]->(:"Tag" {name: %(tag)s})
                RETURN count(DISTINCT g) AS count
                """,
                params,
            )
            count = int(rows[0]["count"]) if rows else 0
            if count:
                await tx.run(
                    """
                    MATCH (g:"GoodWork")-[:"TAGGED_WITH"]->(:"Tag" {name: %(tag)s})
                    DETACH DELETE g
                    """,
                    params,
                )
        logger.info(f"Deleted {count} GoodWorks tagged '{tag}'")
        return count
