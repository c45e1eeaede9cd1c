"""Organizations that post GoodWorks, and their admins and members."""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from psycopg.types.json import Jsonb

from .exceptions import ConflictError, ValidationError
from .graph import AgensGraphClient, GraphTransaction
from .mapping import RecordProjection, format_timestamp, to_property_value, utc_now
from .models import (
    MemberRole,
    Organization,
    OrganizationMember,
    OrganizationStatus,
    UserOrganization,
)
from .repository import validate_graph_id

logger = logging.getLogger("goodworks_agensgraph")
logger.setLevel(logging.INFO)

MAX_SLUG_ATTEMPTS = 100
DEFAULT_PAGE_SIZE = 20

ORGANIZATION_NODE_FIELDS = [
    "name",
    "slug",
    "description",
    "mission",
    "vision",
    "contact_email",
    "contact_phone",
    "website",
    "address",
    "city",
    "state",
    "country",
    "zip_code",
    "latitude",
    "longitude",
    "organization_type",
    "tax_id",
    "founded_date",
    "logo_url",
    "cover_image_url",
    "facebook_url",
    "twitter_url",
    "instagram_url",
    "linkedin_url",
    "focus_areas",
    "tags",
    "created_by",
    "created_date",
    "last_modified_date",
    "status",
    "is_verified",
]

# Set once at creation; update_organization leaves them alone
FIXED_ON_UPDATE = {"slug", "created_by", "created_date", "status", "is_verified"}

MATCH_ORG_BY_ID = """
    MATCH (o:"Organization")
    WHERE toString(id(o)) = %(org_id)s
"""

ACTIVE_FILTER = "WHERE o.status = %(status)s\n"

SEARCH_FILTER = """WHERE o.status = %(status)s
  AND (toLower(o.name) CONTAINS %(search_term)s
       OR toLower(o.description) CONTAINS %(search_term)s
       OR toLower(o.city) CONTAINS %(search_term)s)
"""


def _organization_counts(carry: str = "") -> str:
    """Member, event and volunteer counts for every bound ``o``.

    ``carry`` names extra variables kept through each WITH.
    """
    keep = f"o, {carry}, " if carry else "o, "
    return f"""
    OPTIONAL MATCH (admin:"User")-[:"ADMIN_OF"]->(o)
    WITH {keep}count(DISTINCT admin) AS admin_count
    OPTIONAL MATCH (member:"User")-[:"MEMBER_OF"]->(o)
    WITH {keep}admin_count, count(DISTINCT member) AS plain_member_count
    OPTIONAL MATCH (gw:"GoodWork")-[:"POSTED_BY"]->(o)
    WITH {keep}admin_count + plain_member_count AS member_count, count(DISTINCT gw) AS event_count
    OPTIONAL MATCH (volunteer:"User")-[:"SIGNED_UP_FOR"]->(:"GoodWork")-[:"POSTED_BY"]->(o)
    WITH {keep}member_count, event_count, count(DISTINCT volunteer) AS volunteer_count
    """


def generate_slug(name: str) -> str:
    """URL-safe slug: lower case, letters, digits and single hyphens.

    >>> generate_slug("River Walk  Cleanup!")
    'river-walk-cleanup'
    """
    slug = (name or "").lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug


def organization_properties(org: Organization) -> Dict[str, Any]:
    return {field: to_property_value(getattr(org, field)) for field in ORGANIZATION_NODE_FIELDS}


def organization_from_record(record: Mapping[str, Any], node_column: str = "o") -> Organization:
    p = RecordProjection(record, node_column)
    return Organization(
        id=p.value("id"),
        name=p.text("name"),
        slug=p.text("slug"),
        description=p.text("description"),
        mission=p.text("mission"),
        vision=p.text("vision"),
        contact_email=p.text("contact_email"),
        contact_phone=p.text("contact_phone"),
        website=p.text("website"),
        address=p.text("address"),
        city=p.text("city"),
        state=p.text("state"),
        country=p.text("country"),
        zip_code=p.text("zip_code"),
        latitude=p.optional_number("latitude"),
        longitude=p.optional_number("longitude"),
        organization_type=p.text("organization_type"),
        tax_id=p.text("tax_id"),
        founded_date=p.timestamp("founded_date"),
        logo_url=p.text("logo_url"),
        cover_image_url=p.text("cover_image_url"),
        facebook_url=p.text("facebook_url"),
        twitter_url=p.text("twitter_url"),
        instagram_url=p.text("instagram_url"),
        linkedin_url=p.text("linkedin_url"),
        focus_areas=p.strings("focus_areas"),
        tags=p.strings("tags"),
        created_by=p.text("created_by"),
        created_date=p.timestamp("created_date"),
        last_modified_date=p.timestamp("last_modified_date"),
        status=p.text("status"),
        is_verified=p.boolean("is_verified"),
        member_count=p.integer("member_count"),
        event_count=p.integer("event_count"),
        volunteer_count=p.integer("volunteer_count"),
    )


def _search_params(search_term: Optional[str]) -> Dict[str, Any]:
    params: Dict[str, Any] = {"status": Jsonb(OrganizationStatus.ACTIVE.value)}
    if search_term and search_term.strip():
        params["search_term"] = Jsonb(search_term.strip().lower())
    return params


class OrganizationService:
    """Create, read and administer Organizations.

    Organizations are addressed by graph id for writes and by slug for public
    reads. Deleting an organization only marks it ``Inactive``.
    """

    def __init__(self, client: AgensGraphClient):
        self.client = client

    async def is_slug_available(self, slug: str, exclude_id: Optional[str] = None) -> bool:
        """True when no Organization other than ``exclude_id`` uses ``slug``."""
        query = 'MATCH (o:"Organization" {slug: %(slug)s})\n'
        params: Dict[str, Any] = {"slug": Jsonb(slug)}
        if exclude_id is not None:
            query += "WHERE toString(id(o)) <> %(exclude_id)s\n"
            params["exclude_id"] = Jsonb(validate_graph_id(exclude_id, "exclude_id"))
        query += "RETURN count(o) AS count"

        rows = await self.client.read(query, params)
        return not rows or int(rows[0]["count"]) == 0

    async def _unique_slug(self, name: str) -> str:
        base = generate_slug(name)
        if not base:
            raise ValidationError(f"Cannot derive a slug from organization name {name!r}")

        slug = base
        for counter in range(1, MAX_SLUG_ATTEMPTS + 1):
            if await self.is_slug_available(slug):
                return slug
            slug = f"{base}-{counter}"
        raise ConflictError(f"No free slug for '{base}' after {MAX_SLUG_ATTEMPTS} attempts")

    async def create_organization(self, org: Organization, user_id: str) -> Organization:
        """Store a new Active organization and make ``user_id`` its admin.

        Without an explicit slug one is derived from the name, suffixed with
        ``-1``, ``-2`` and so on until it is free. The availability check and
        the create are separate round trips, so two concurrent creates can
        still collide.
        """
        if not org.name.strip():
            raise ValidationError("Organization name is required")

        if org.slug:
            if not await self.is_slug_available(org.slug):
                raise ConflictError(f"Slug '{org.slug}' is already in use")
            slug = org.slug
        else:
            slug = await self._unique_slug(org.name)

        now = utc_now()
        org = org.model_copy(
            update={
                "slug": slug,
                "created_by": user_id,
                "created_date": now,
                "last_modified_date": None,
                "status": OrganizationStatus.ACTIVE,
            }
        )
        logger.info(f"Creating organization '{org.name}' ({slug}) for {user_id}")

        async with self.client.transaction() as tx:
            rows = await tx.run(
                """
                CREATE (o:"Organization")
                SET o += %(props)s
                RETURN toString(id(o)) AS id
                """,
                {"props": Jsonb(organization_properties(org))},
            )
            org_id = rows[0]["id"]
            await tx.run(
                MATCH_ORG_BY_ID
                + """
                MERGE (u:"User" {user_id: %(user_id)s})
                MERGE (u)-[r:"ADMIN_OF"]->(o)
                ON CREATE SET r.since = %(now)s
                """,
                {
                    "org_id": Jsonb(org_id),
                    "user_id": Jsonb(user_id),
                    "now": Jsonb(format_timestamp(now)),
                },
            )

        logger.info(f"Created organization {org_id}")
        return org.model_copy(update={"id": org_id})

    async def get_organization_by_slug(
        self, slug: str, viewer_id: Optional[str] = None
    ) -> Optional[Organization]:
        """Organization with member, event and volunteer counts, or ``None``.

        With ``viewer_id`` the ``is_user_admin`` and ``is_user_member`` flags
        are filled in from a second query in the same transaction.
        """
        params: Dict[str, Any] = {"slug": Jsonb(slug)}
        async with self.client.transaction(read_only=True) as tx:
            rows = await tx.run(
                'MATCH (o:"Organization" {slug: %(slug)s})\n'
                + _organization_counts()
                + "RETURN toString(id(o)) AS id, o, member_count, event_count, volunteer_count",
                params,
            )
            if not rows:
                return None
            org = organization_from_record(rows[0])

            if viewer_id:
                org.is_user_admin, org.is_user_member = await self._viewer_roles(
                    tx, slug, viewer_id
                )

        return org

    async def _viewer_roles(self, tx: GraphTransaction, slug: str, viewer_id: str):
        rows = await tx.run(
            """
            MATCH (o:"Organization" {slug: %(slug)s})
            OPTIONAL MATCH (a:"User" {user_id: %(viewer_id)s})-[:"ADMIN_OF"]->(o)
            WITH o, count(a) AS admin_links
            OPTIONAL MATCH (m:"User" {user_id: %(viewer_id)s})-[:"MEMBER_OF"]->(o)
            RETURN admin_links, count(m) AS member_links
            """,
            {"slug": Jsonb(slug), "viewer_id": Jsonb(viewer_id)},
        )
        if not rows:
            return False, False
        is_admin = int(rows[0]["admin_links"]) > 0
        is_member = is_admin or int(rows[0]["member_links"]) > 0
        return is_admin, is_member

    async def get_organizations(
        self,
        skip: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
        search_term: Optional[str] = None,
    ) -> List[Organization]:
        """A page of Active organizations, newest first.

        ``search_term`` matches case-insensitively against name, description
        and city.
        """
        for name, value in (("skip", skip), ("limit", limit)):
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationError(f"Invalid {name}: {value!r}")

        params = _search_params(search_term)
        where = SEARCH_FILTER if "search_term" in params else ACTIVE_FILTER
        rows = await self.client.read(
            'MATCH (o:"Organization")\n'
            + where
            + _organization_counts()
            + "RETURN toString(id(o)) AS id, o, member_count, event_count, volunteer_count\n"
            + f"ORDER BY o.created_date DESC\nSKIP {skip}\nLIMIT {limit}",
            params,
        )
        return [organization_from_record(row) for row in rows]

    async def count_organizations(self, search_term: Optional[str] = None) -> int:
        params = _search_params(search_term)
        where = SEARCH_FILTER if "search_term" in params else ACTIVE_FILTER
        rows = await self.client.read(
            'MATCH (o:"Organization")\n' + where + "RETURN count(o) AS total", params
        )
        return int(rows[0]["total"]) if rows else 0

    async def get_user_organizations(self, user_id: str) -> List[UserOrganization]:
        """Active organizations the user administers or belongs to, by name."""
        rows = await self.client.read(
            """
            MATCH (u:"User" {user_id: %(user_id)s})-[r]->(o:"Organization")
            WHERE (type(r) = 'ADMIN_OF' OR type(r) = 'MEMBER_OF')
              AND o.status = %(status)s
            WITH o, type(r) AS relationship
            """
            + _organization_counts("relationship")
            + """
            RETURN toString(id(o)) AS id, o, relationship,
                   member_count, event_count, volunteer_count
            ORDER BY o.name ASC
            """,
            {
                "user_id": Jsonb(user_id),
                "status": Jsonb(OrganizationStatus.ACTIVE.value),
            },
        )

        memberships = []
        for row in rows:
            org = organization_from_record(row)
            is_admin = row.get("relationship") == "ADMIN_OF"
            org.is_user_admin = is_admin
            org.is_user_member = True
            role = MemberRole.ADMIN if is_admin else MemberRole.MEMBER
            memberships.append(UserOrganization(organization=org, role=role.value))
        return memberships

    async def add_member(
        self, org_id: str, user_id: str, role: MemberRole = MemberRole.MEMBER
    ) -> bool:
        """Link a user to an organization. ``False`` when the organization is unknown.

        The ``Admin`` role is granted through an ADMIN_OF link, every other
        role through MEMBER_OF carrying the role name.
        """
        org_id = validate_graph_id(org_id, "org_id")
        role = MemberRole(role)
        if role == MemberRole.ADMIN:
            return await self.promote_to_admin(org_id, user_id)

        rows = await self.client.write(
            MATCH_ORG_BY_ID
            + """
            MERGE (u:"User" {user_id: %(user_id)s})
            MERGE (u)-[r:"MEMBER_OF"]->(o)
            ON CREATE SET r.joined_date = %(now)s
            SET r.role = %(role)s
            RETURN toString(id(o)) AS id
            """,
            {
                "org_id": Jsonb(org_id),
                "user_id": Jsonb(user_id),
                "role": Jsonb(role.value),
                "now": Jsonb(format_timestamp(utc_now())),
            },
        )
        logger.info(f"Added {user_id} to organization {org_id} as {role.value}")
        return bool(rows)

    async def remove_member(self, org_id: str, user_id: str) -> bool:
        """Drop a MEMBER_OF link; admins are not affected."""
        org_id = validate_graph_id(org_id, "org_id")
        match = """
            MATCH (u:"User" {user_id: %(user_id)s})-[r:"MEMBER_OF"]->(o:"Organization")
            WHERE toString(id(o)) = %(org_id)s
        """
        params = {"org_id": Jsonb(org_id), "user_id": Jsonb(user_id)}

        async with self.client.transaction() as tx:
            rows = await tx.run(match + "RETURN count(r) AS existing", params)
            if not rows or int(rows[0]["existing"]) == 0:
                return False
            await tx.run(match + "DELETE r", params)

        logger.info(f"Removed {user_id} from organization {org_id}")
        return True

    async def get_organization_members(self, org_id: str) -> List[OrganizationMember]:
        """Admins and members with their join date and GoodWorks they posted for the org."""
        org_id = validate_graph_id(org_id, "org_id")
        rows = await self.client.read(
            """
            MATCH (u:"User")-[r]->(o:"Organization")
            WHERE toString(id(o)) = %(org_id)s
              AND (type(r) = 'ADMIN_OF' OR type(r) = 'MEMBER_OF')
            OPTIONAL MATCH (gw:"GoodWork")-[:"POSTED_BY"]->(o)
            WHERE gw.created_by = u.user_id
            WITH u, r, count(DISTINCT gw) AS contributed_events
            RETURN u.user_id AS user_id, u.name AS name, u.email AS email,
                   type(r) AS relationship,
                   CASE WHEN type(r) = 'ADMIN_OF' THEN r.since ELSE r.joined_date END AS joined_date,
                   CASE WHEN type(r) = 'ADMIN_OF' THEN 'Admin' ELSE coalesce(r.role, 'Member') END AS role,
                   contributed_events
            ORDER BY relationship ASC, joined_date ASC
            """,
            {"org_id": Jsonb(org_id)},
        )

        members = []
        for row in rows:
            p = RecordProjection(row)
            members.append(
                OrganizationMember(
                    user_id=p.text("user_id"),
                    name=p.text("name"),
                    email=p.text("email"),
                    role=p.text("role") or MemberRole.MEMBER.value,
                    joined_date=p.timestamp("joined_date"),
                    contributed_events=p.integer("contributed_events"),
                )
            )
        return members

    async def update_organization(self, org: Organization) -> bool:
        """Overwrite the editable fields of ``org``. ``False`` when its id is unknown."""
        if not org.id:
            raise ValidationError("Organization id is required for update")
        org_id = validate_graph_id(org.id)

        properties = {
            key: value
            for key, value in organization_properties(org).items()
            if key not in FIXED_ON_UPDATE
        }
        properties["last_modified_date"] = format_timestamp(utc_now())

        rows = await self.client.write(
            MATCH_ORG_BY_ID
            + """
            SET o += %(props)s
            RETURN toString(id(o)) AS id
            """,
            {"org_id": Jsonb(org_id), "props": Jsonb(properties)},
        )
        logger.info(f"Updated organization {org_id}: {bool(rows)}")
        return bool(rows)

    async def delete_organization(self, org_id: str) -> bool:
        """Mark an organization Inactive; its links and GoodWorks stay."""
        org_id = validate_graph_id(org_id, "org_id")
        rows = await self.client.write(
            MATCH_ORG_BY_ID
            + """
            SET o.status = %(status)s, o.last_modified_date = %(now)s
            RETURN toString(id(o)) AS id
            """,
            {
                "org_id": Jsonb(org_id),
                "status": Jsonb(OrganizationStatus.INACTIVE.value),
                "now": Jsonb(format_timestamp(utc_now())),
            },
        )
        logger.info(f"Deactivated organization {org_id}: {bool(rows)}")
        return bool(rows)

    async def is_user_admin(self, org_id: str, user_id: str) -> bool:
        org_id = validate_graph_id(org_id, "org_id")
        rows = await self.client.read(
            """
            MATCH (u:"User" {user_id: %(user_id)s})-[r:"ADMIN_OF"]->(o:"Organization")
            WHERE toString(id(o)) = %(org_id)s
            RETURN count(r) AS admin_links
            """,
            {"org_id": Jsonb(org_id), "user_id": Jsonb(user_id)},
        )
        return bool(rows) and int(rows[0]["admin_links"]) > 0

    async def promote_to_admin(self, org_id: str, user_id: str) -> bool:
        """Replace a user's MEMBER_OF link with ADMIN_OF. ``False`` for an unknown org."""
        org_id = validate_graph_id(org_id, "org_id")
        params = {
            "org_id": Jsonb(org_id),
            "user_id": Jsonb(user_id),
            "now": Jsonb(format_timestamp(utc_now())),
        }
        async with self.client.transaction() as tx:
            await tx.run(
                """
                MATCH (u:"User" {user_id: %(user_id)s})-[r:"MEMBER_OF"]->(o:"Organization")
                WHERE toString(id(o)) = %(org_id)s
                DELETE r
                """,
                params,
            )
            rows = await tx.run(
                MATCH_ORG_BY_ID
                + """
                MERGE (u:"User" {user_id: %(user_id)s})
                MERGE (u)-[r:"ADMIN_OF"]->(o)
                ON CREATE SET r.since = %(now)s
                RETURN toString(id(o)) AS id
                """,
                params,
            )

        logger.info(f"Promoted {user_id} to admin of organization {org_id}: {bool(rows)}")
        return bool(rows)
