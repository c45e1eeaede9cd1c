import json
import logging
import sys
from datetime import datetime
from typing import Any, Literal, Optional

from psycopg_pool import AsyncConnectionPool
from pydantic import BaseModel, Field
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from fastmcp.server import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools.tool import ToolResult
from mcp.types import TextContent
from mcp.types import ToolAnnotations

from .explorer import GraphExplorer
from .geocoding import GoogleGeocoder
from .graph import AgensGraphClient
from .models import (
    GoodWork,
    GoodWorkSearchCriteria,
    ListKind,
    MemberRole,
    Organization,
)
from .organizations import OrganizationService
from .recurrence import expand_instances, format_pattern, upcoming_occurrences
from .repository import GoodWorkRepository
from .seed import SeedDataService
from .skills import SkillService
from .utils import build_connection_url, format_namespace

logger = logging.getLogger("goodworks_agensgraph")
logger.setLevel(logging.INFO)


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _tool_result(value: Any) -> ToolResult:
    """Text plus structured content; anything that is not an object goes under ``result``."""
    payload = _jsonable(value)
    structured = payload if isinstance(payload, dict) else {"result": payload}
    return ToolResult(
        content=[TextContent(type="text", text=json.dumps(payload))],
        structured_content=structured,
    )


def _annotations(title: str, read_only: bool, destructive: bool = False, idempotent: bool = True) -> ToolAnnotations:
    return ToolAnnotations(
        title=title,
        readOnlyHint=read_only,
        destructiveHint=destructive,
        idempotentHint=idempotent,
        openWorldHint=True,
    )


def create_mcp_server(
    repository: GoodWorkRepository,
    organizations: OrganizationService,
    skills: SkillService,
    seed_data: SeedDataService,
    client: AgensGraphClient,
    explorer: GraphExplorer,
    namespace: str = "",
) -> FastMCP:
    """Create an MCP server exposing the GoodWorks operations as tools."""

    namespace_prefix = format_namespace(namespace)
    mcp: FastMCP = FastMCP("goodworks-agensgraph")

    # GoodWorks

    @mcp.tool(
        name=namespace_prefix + "create_good_work",
        annotations=_annotations("Create GoodWork", read_only=False, idempotent=False),
    )
    async def create_good_work(
        work: GoodWork = Field(..., description="The GoodWork to store; id is ignored"),
        creator_id: str = Field(..., description="User id recorded as created_by"),
    ) -> ToolResult:
        """Create a volunteer opportunity with its contact, category, location, tags and skills.

        Name, description, category, contact_name and contact_email are required.
        When geocoding is configured, city, state, country and zip are resolved
        from latitude and longitude for non-virtual GoodWorks.

        Returns:
            dict: {"id": "<graph id>"}

        Example call:
        {
            "work": {
                "name": "River Walk Cleanup",
                "description": "Pick up litter along the river trail",
                "category": "Environment",
                "tags": ["outdoors"],
                "contact_name": "Dana Reyes",
                "contact_email": "dana@example.org",
                "latitude": 30.26, "longitude": -97.74,
                "start_time": "2026-11-07T14:00:00Z"
            },
            "creator_id": "user-123"
        }
        """
        logger.info(f"MCP tool: create_good_work ('{work.name}')")
        try:
            work_id = await repository.create_good_work(GoodWork.model_validate(work), creator_id)
            return _tool_result({"id": work_id})
        except Exception as e:
            logger.error(f"Error creating GoodWork: {e}")
            raise ToolError(f"Error creating GoodWork: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_good_work",
        annotations=_annotations("Get GoodWork", read_only=True),
    )
    async def get_good_work(
        work_id: str = Field(..., description="Graph id of the GoodWork, e.g. '3.1'"),
        viewer_id: Optional[str] = Field(None, description="User id used for the is_user_* flags"),
    ) -> ToolResult:
        """Fetch one GoodWork with participant counts and the viewer's engagement flags.

        Returns:
            GoodWork | null
        """
        logger.info(f"MCP tool: get_good_work ({work_id})")
        try:
            return _tool_result(await repository.get_good_work_by_id(work_id, viewer_id))
        except Exception as e:
            logger.error(f"Error reading GoodWork: {e}")
            raise ToolError(f"Error reading GoodWork: {e}")

    @mcp.tool(
        name=namespace_prefix + "search_good_works",
        annotations=_annotations("Search GoodWorks", read_only=True),
    )
    async def search_good_works(
        criteria: Optional[GoodWorkSearchCriteria] = Field(
            None, description="Search filters; unset fields are ignored"
        ),
        viewer_id: Optional[str] = Field(None, description="User id used for the is_user_* flags"),
        limit: int = Field(100, description="Maximum number of results"),
    ) -> ToolResult:
        """Search Active GoodWorks, earliest start first.

        Filters combine with AND. Tags and required_skills match when at least
        one name is linked. The radius filter is a bounding box around the center.

        Example call:
        {
            "criteria": {
                "category": "Environment",
                "center_latitude": 30.27, "center_longitude": -97.74, "radius_miles": 10,
                "has_available_spots": true
            }
        }
        """
        logger.info("MCP tool: search_good_works")
        try:
            if criteria is not None:
                criteria = GoodWorkSearchCriteria.model_validate(criteria)
            results = await repository.search_good_works(criteria, viewer_id, limit)
            return _tool_result(results)
        except Exception as e:
            logger.error(f"Error searching GoodWorks: {e}")
            raise ToolError(f"Error searching GoodWorks: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_similar_good_works",
        annotations=_annotations("Similar GoodWorks", read_only=True),
    )
    async def get_similar_good_works(
        work_id: str = Field(..., description="Graph id of the reference GoodWork"),
        viewer_id: Optional[str] = Field(None, description="User id used for the is_user_* flags"),
        limit: int = Field(10, description="Maximum number of results"),
    ) -> ToolResult:
        """GoodWorks sharing category, tags, skills, location or effort level with the reference.

        Ranked by a weighted overlap score, then by closeness of start time.
        """
        logger.info(f"MCP tool: get_similar_good_works ({work_id})")
        try:
            return _tool_result(await repository.get_similar_good_works(work_id, viewer_id, limit))
        except Exception as e:
            logger.error(f"Error finding similar GoodWorks: {e}")
            raise ToolError(f"Error finding similar GoodWorks: {e}")

    @mcp.tool(
        name=namespace_prefix + "update_good_work",
        annotations=_annotations("Update GoodWork", read_only=False),
    )
    async def update_good_work(
        work_id: str = Field(..., description="Graph id of the GoodWork"),
        work: GoodWork = Field(..., description="New field values"),
        owner_id: str = Field(..., description="Must match the GoodWork's created_by"),
    ) -> ToolResult:
        """Overwrite a GoodWork owned by owner_id and re-link its neighbours.

        Returns:
            dict: {"updated": false} when the id is unknown or owned by someone else
        """
        logger.info(f"MCP tool: update_good_work ({work_id})")
        try:
            updated = await repository.update_good_work(work_id, GoodWork.model_validate(work), owner_id)
            return _tool_result({"updated": updated})
        except Exception as e:
            logger.error(f"Error updating GoodWork: {e}")
            raise ToolError(f"Error updating GoodWork: {e}")

    @mcp.tool(
        name=namespace_prefix + "delete_good_work",
        annotations=_annotations("Delete GoodWork", read_only=False, destructive=True),
    )
    async def delete_good_work(
        work_id: str = Field(..., description="Graph id of the GoodWork"),
        owner_id: str = Field(..., description="Must match the GoodWork's created_by"),
    ) -> ToolResult:
        """Delete a GoodWork owned by owner_id together with all of its relationships.

        Warning: this cannot be undone.
        """
        logger.info(f"MCP tool: delete_good_work ({work_id})")
        try:
            return _tool_result({"deleted": await repository.delete_good_work(work_id, owner_id)})
        except Exception as e:
            logger.error(f"Error deleting GoodWork: {e}")
            raise ToolError(f"Error deleting GoodWork: {e}")

    @mcp.tool(
        name=namespace_prefix + "set_interested",
        annotations=_annotations("Set Interest", read_only=False),
    )
    async def set_interested(
        user_id: str = Field(..., description="User id"),
        work_id: str = Field(..., description="Graph id of the GoodWork"),
        on: bool = Field(True, description="True to mark interest, false to remove it"),
    ) -> ToolResult:
        """Mark or unmark a user's interest in a GoodWork."""
        logger.info(f"MCP tool: set_interested ({user_id}, {work_id}, {on})")
        try:
            await repository.set_interested(user_id, work_id, on)
            return _tool_result({"interested": on})
        except Exception as e:
            logger.error(f"Error setting interest: {e}")
            raise ToolError(f"Error setting interest: {e}")

    @mcp.tool(
        name=namespace_prefix + "set_signed_up",
        annotations=_annotations("Set Sign-up", read_only=False),
    )
    async def set_signed_up(
        user_id: str = Field(..., description="User id"),
        work_id: str = Field(..., description="Graph id of the GoodWork"),
        on: bool = Field(True, description="True to sign up, false to withdraw"),
    ) -> ToolResult:
        """Sign a user up for a GoodWork or withdraw them; adjusts current_participants."""
        logger.info(f"MCP tool: set_signed_up ({user_id}, {work_id}, {on})")
        try:
            await repository.set_signed_up(user_id, work_id, on)
            return _tool_result({"signed_up": on})
        except Exception as e:
            logger.error(f"Error setting sign-up: {e}")
            raise ToolError(f"Error setting sign-up: {e}")

    @mcp.tool(
        name=namespace_prefix + "list_user_good_works",
        annotations=_annotations("List User GoodWorks", read_only=True),
    )
    async def list_user_good_works(
        user_id: str = Field(..., description="User id"),
        kind: ListKind = Field(..., description="One of: created, interested, signed_up"),
    ) -> ToolResult:
        """GoodWorks a user created, is interested in, or signed up for."""
        logger.info(f"MCP tool: list_user_good_works ({user_id}, {kind})")
        try:
            return _tool_result(await repository.list_by_user(user_id, kind))
        except Exception as e:
            logger.error(f"Error listing user GoodWorks: {e}")
            raise ToolError(f"Error listing user GoodWorks: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_good_works_by_category",
        annotations=_annotations("GoodWorks by Category", read_only=True),
    )
    async def get_good_works_by_category(
        category: str = Field(..., description="Exact category name"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_good_works_by_category ('{category}')")
        try:
            return _tool_result(await repository.get_good_works_by_category(category))
        except Exception as e:
            logger.error(f"Error listing GoodWorks by category: {e}")
            raise ToolError(f"Error listing GoodWorks by category: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_good_works_by_zip",
        annotations=_annotations("GoodWorks by ZIP", read_only=True),
    )
    async def get_good_works_by_zip(
        zip_code: str = Field(..., description="Postal code of the Location"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_good_works_by_zip ('{zip_code}')")
        try:
            return _tool_result(await repository.get_good_works_by_zip(zip_code))
        except Exception as e:
            logger.error(f"Error listing GoodWorks by zip: {e}")
            raise ToolError(f"Error listing GoodWorks by zip: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_good_works_by_location",
        annotations=_annotations("GoodWorks by Location", read_only=True),
    )
    async def get_good_works_by_location(
        city: str = Field(..., description="City"),
        state: str = Field(..., description="State or region"),
        country: str = Field(..., description="Country"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_good_works_by_location ('{city}', '{state}', '{country}')")
        try:
            return _tool_result(await repository.get_good_works_by_location(city, state, country))
        except Exception as e:
            logger.error(f"Error listing GoodWorks by location: {e}")
            raise ToolError(f"Error listing GoodWorks by location: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_good_works_in_bounds",
        annotations=_annotations("GoodWorks in Bounds", read_only=True),
    )
    async def get_good_works_in_bounds(
        min_lat: float = Field(..., description="Southern latitude"),
        max_lat: float = Field(..., description="Northern latitude"),
        min_lng: float = Field(..., description="Western longitude"),
        max_lng: float = Field(..., description="Eastern longitude"),
    ) -> ToolResult:
        """GoodWorks whose coordinates fall inside the box, bounds inclusive."""
        logger.info("MCP tool: get_good_works_in_bounds")
        try:
            return _tool_result(
                await repository.get_good_works_in_bounds(min_lat, max_lat, min_lng, max_lng)
            )
        except Exception as e:
            logger.error(f"Error listing GoodWorks in bounds: {e}")
            raise ToolError(f"Error listing GoodWorks in bounds: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_all_good_works_with_relationships",
        annotations=_annotations("All GoodWorks", read_only=True),
    )
    async def get_all_good_works_with_relationships() -> ToolResult:
        """Every linked GoodWork with its contact, category and location filled in."""
        logger.info("MCP tool: get_all_good_works_with_relationships")
        try:
            return _tool_result(await repository.get_all_good_works_with_relationships())
        except Exception as e:
            logger.error(f"Error reading all GoodWorks: {e}")
            raise ToolError(f"Error reading all GoodWorks: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_participants",
        annotations=_annotations("GoodWork Participants", read_only=True),
    )
    async def get_participants(
        work_id: str = Field(..., description="Graph id of the GoodWork"),
    ) -> ToolResult:
        """Users interested in or signed up for a GoodWork, newest engagement first."""
        logger.info(f"MCP tool: get_participants ({work_id})")
        try:
            return _tool_result(await repository.get_participants(work_id))
        except Exception as e:
            logger.error(f"Error reading participants: {e}")
            raise ToolError(f"Error reading participants: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_top_volunteers",
        annotations=_annotations("Top Volunteers", read_only=True),
    )
    async def get_top_volunteers(
        limit: int = Field(10, description="Maximum number of volunteers"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_top_volunteers ({limit})")
        try:
            return _tool_result(await repository.get_top_volunteers(limit))
        except Exception as e:
            logger.error(f"Error reading top volunteers: {e}")
            raise ToolError(f"Error reading top volunteers: {e}")

    # Recurrence

    @mcp.tool(
        name=namespace_prefix + "expand_recurring_good_work",
        annotations=_annotations("Expand Recurring GoodWork", read_only=True),
    )
    async def expand_recurring_good_work(
        work_id: str = Field(..., description="Graph id of the recurring GoodWork"),
        max_instances: int = Field(52, description="Maximum number of instances"),
    ) -> ToolResult:
        """Dated instances of a recurring GoodWork, each sharing the master's id.

        Non-recurring GoodWorks come back as a single instance.
        """
        logger.info(f"MCP tool: expand_recurring_good_work ({work_id})")
        try:
            master = await repository.get_good_work_by_id(work_id)
            if master is None:
                return _tool_result([])
            return _tool_result(expand_instances(master, max_instances))
        except Exception as e:
            logger.error(f"Error expanding recurring GoodWork: {e}")
            raise ToolError(f"Error expanding recurring GoodWork: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_upcoming_occurrences",
        annotations=_annotations("Upcoming Occurrences", read_only=True),
    )
    async def get_upcoming_occurrences(
        work_id: str = Field(..., description="Graph id of the recurring GoodWork"),
        count: int = Field(5, description="Number of start times to return"),
    ) -> ToolResult:
        """Next start times of a recurring GoodWork, from now on."""
        logger.info(f"MCP tool: get_upcoming_occurrences ({work_id})")
        try:
            work = await repository.get_good_work_by_id(work_id)
            if work is None:
                return _tool_result([])
            return _tool_result(upcoming_occurrences(work, count))
        except Exception as e:
            logger.error(f"Error computing upcoming occurrences: {e}")
            raise ToolError(f"Error computing upcoming occurrences: {e}")

    @mcp.tool(
        name=namespace_prefix + "describe_recurrence",
        annotations=_annotations("Describe Recurrence", read_only=True),
    )
    async def describe_recurrence(
        pattern: str = Field(..., description="Pattern such as 'WEEKLY:1:MON,WED,FRI'"),
    ) -> ToolResult:
        """Human-readable description of a recurrence pattern, e.g. "Weekly on Mon, Wed, Fri"."""
        return _tool_result({"description": format_pattern(pattern)})

    # Organizations

    @mcp.tool(
        name=namespace_prefix + "create_organization",
        annotations=_annotations("Create Organization", read_only=False, idempotent=False),
    )
    async def create_organization(
        organization: Organization = Field(..., description="Organization to create; slug is optional"),
        user_id: str = Field(..., description="User id that becomes the first admin"),
    ) -> ToolResult:
        """Create an organization and make the user its admin.

        Without a slug one is derived from the name and suffixed with -1, -2, ...
        until it is unique.
        """
        logger.info(f"MCP tool: create_organization ('{organization.name}')")
        try:
            created = await organizations.create_organization(
                Organization.model_validate(organization), user_id
            )
            return _tool_result(created)
        except Exception as e:
            logger.error(f"Error creating organization: {e}")
            raise ToolError(f"Error creating organization: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_organization",
        annotations=_annotations("Get Organization", read_only=True),
    )
    async def get_organization(
        slug: str = Field(..., description="Organization slug"),
        viewer_id: Optional[str] = Field(None, description="User id used for the is_user_* flags"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_organization ('{slug}')")
        try:
            return _tool_result(await organizations.get_organization_by_slug(slug, viewer_id))
        except Exception as e:
            logger.error(f"Error reading organization: {e}")
            raise ToolError(f"Error reading organization: {e}")

    @mcp.tool(
        name=namespace_prefix + "list_organizations",
        annotations=_annotations("List Organizations", read_only=True),
    )
    async def list_organizations(
        skip: int = Field(0, description="Number of organizations to skip"),
        limit: int = Field(20, description="Page size"),
        search_term: Optional[str] = Field(None, description="Matches name, description or city"),
    ) -> ToolResult:
        """A page of Active organizations, newest first, plus the total matching count."""
        logger.info("MCP tool: list_organizations")
        try:
            page = await organizations.get_organizations(skip, limit, search_term)
            total = await organizations.count_organizations(search_term)
            return _tool_result({"organizations": page, "total": total})
        except Exception as e:
            logger.error(f"Error listing organizations: {e}")
            raise ToolError(f"Error listing organizations: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_user_organizations",
        annotations=_annotations("User Organizations", read_only=True),
    )
    async def get_user_organizations(
        user_id: str = Field(..., description="User id"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_user_organizations ({user_id})")
        try:
            return _tool_result(await organizations.get_user_organizations(user_id))
        except Exception as e:
            logger.error(f"Error listing user organizations: {e}")
            raise ToolError(f"Error listing user organizations: {e}")

    @mcp.tool(
        name=namespace_prefix + "add_organization_member",
        annotations=_annotations("Add Member", read_only=False),
    )
    async def add_organization_member(
        org_id: str = Field(..., description="Graph id of the organization"),
        user_id: str = Field(..., description="User id"),
        role: MemberRole = Field(MemberRole.MEMBER, description="Admin, Member or Volunteer"),
    ) -> ToolResult:
        logger.info(f"MCP tool: add_organization_member ({org_id}, {user_id})")
        try:
            return _tool_result({"added": await organizations.add_member(org_id, user_id, role)})
        except Exception as e:
            logger.error(f"Error adding member: {e}")
            raise ToolError(f"Error adding member: {e}")

    @mcp.tool(
        name=namespace_prefix + "remove_organization_member",
        annotations=_annotations("Remove Member", read_only=False, destructive=True),
    )
    async def remove_organization_member(
        org_id: str = Field(..., description="Graph id of the organization"),
        user_id: str = Field(..., description="User id"),
    ) -> ToolResult:
        logger.info(f"MCP tool: remove_organization_member ({org_id}, {user_id})")
        try:
            return _tool_result({"removed": await organizations.remove_member(org_id, user_id)})
        except Exception as e:
            logger.error(f"Error removing member: {e}")
            raise ToolError(f"Error removing member: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_organization_members",
        annotations=_annotations("Organization Members", read_only=True),
    )
    async def get_organization_members(
        org_id: str = Field(..., description="Graph id of the organization"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_organization_members ({org_id})")
        try:
            return _tool_result(await organizations.get_organization_members(org_id))
        except Exception as e:
            logger.error(f"Error reading organization members: {e}")
            raise ToolError(f"Error reading organization members: {e}")

    @mcp.tool(
        name=namespace_prefix + "update_organization",
        annotations=_annotations("Update Organization", read_only=False),
    )
    async def update_organization(
        organization: Organization = Field(..., description="Organization with its id set"),
    ) -> ToolResult:
        """Overwrite the editable fields of an organization. Slug and status are kept."""
        logger.info(f"MCP tool: update_organization ({organization.id})")
        try:
            updated = await organizations.update_organization(Organization.model_validate(organization))
            return _tool_result({"updated": updated})
        except Exception as e:
            logger.error(f"Error updating organization: {e}")
            raise ToolError(f"Error updating organization: {e}")

    @mcp.tool(
        name=namespace_prefix + "delete_organization",
        annotations=_annotations("Deactivate Organization", read_only=False, destructive=True),
    )
    async def delete_organization(
        org_id: str = Field(..., description="Graph id of the organization"),
    ) -> ToolResult:
        """Mark an organization Inactive. Nothing is removed from the graph."""
        logger.info(f"MCP tool: delete_organization ({org_id})")
        try:
            return _tool_result({"deactivated": await organizations.delete_organization(org_id)})
        except Exception as e:
            logger.error(f"Error deactivating organization: {e}")
            raise ToolError(f"Error deactivating organization: {e}")

    @mcp.tool(
        name=namespace_prefix + "promote_to_admin",
        annotations=_annotations("Promote to Admin", read_only=False),
    )
    async def promote_to_admin(
        org_id: str = Field(..., description="Graph id of the organization"),
        user_id: str = Field(..., description="User id"),
    ) -> ToolResult:
        logger.info(f"MCP tool: promote_to_admin ({org_id}, {user_id})")
        try:
            return _tool_result({"promoted": await organizations.promote_to_admin(org_id, user_id)})
        except Exception as e:
            logger.error(f"Error promoting member: {e}")
            raise ToolError(f"Error promoting member: {e}")

    @mcp.tool(
        name=namespace_prefix + "is_user_admin",
        annotations=_annotations("Is User Admin", read_only=True),
    )
    async def is_user_admin(
        org_id: str = Field(..., description="Graph id of the organization"),
        user_id: str = Field(..., description="User id"),
    ) -> ToolResult:
        logger.info(f"MCP tool: is_user_admin ({org_id}, {user_id})")
        try:
            return _tool_result({"is_admin": await organizations.is_user_admin(org_id, user_id)})
        except Exception as e:
            logger.error(f"Error checking admin: {e}")
            raise ToolError(f"Error checking admin: {e}")

    @mcp.tool(
        name=namespace_prefix + "is_slug_available",
        annotations=_annotations("Is Slug Available", read_only=True),
    )
    async def is_slug_available(
        slug: str = Field(..., description="Candidate organization slug"),
        exclude_id: Optional[str] = Field(None, description="Graph id of an organization allowed to hold the slug"),
    ) -> ToolResult:
        logger.info(f"MCP tool: is_slug_available ('{slug}')")
        try:
            return _tool_result({"available": await organizations.is_slug_available(slug, exclude_id)})
        except Exception as e:
            logger.error(f"Error checking slug: {e}")
            raise ToolError(f"Error checking slug: {e}")

    # Skills

    @mcp.tool(
        name=namespace_prefix + "get_all_skills",
        annotations=_annotations("All Skills", read_only=True),
    )
    async def get_all_skills() -> ToolResult:
        """Every skill with its usage count, most used first."""
        logger.info("MCP tool: get_all_skills")
        try:
            return _tool_result(await skills.get_all_skills())
        except Exception as e:
            logger.error(f"Error reading skills: {e}")
            raise ToolError(f"Error reading skills: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_or_create_skill",
        annotations=_annotations("Get or Create Skill", read_only=False),
    )
    async def get_or_create_skill(
        name: str = Field(..., description="Skill name, matched case-insensitively"),
        category: Optional[str] = Field(None, description="Category used when the skill is created"),
        description: Optional[str] = Field(None, description="Description used when the skill is created"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_or_create_skill ('{name}')")
        try:
            return _tool_result(await skills.get_or_create_skill(name, category, description))
        except Exception as e:
            logger.error(f"Error getting or creating skill: {e}")
            raise ToolError(f"Error getting or creating skill: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_skills_by_category",
        annotations=_annotations("Skills by Category", read_only=True),
    )
    async def get_skills_by_category() -> ToolResult:
        """All skills with usage counts, grouped by category with "Other" last."""
        logger.info("MCP tool: get_skills_by_category")
        try:
            return _tool_result(await skills.get_skills_by_category())
        except Exception as e:
            logger.error(f"Error reading skills: {e}")
            raise ToolError(f"Error reading skills: {e}")

    @mcp.tool(
        name=namespace_prefix + "search_skills",
        annotations=_annotations("Search Skills", read_only=True),
    )
    async def search_skills(
        term: str = Field("", description="Text to look for in skill names and descriptions"),
    ) -> ToolResult:
        logger.info(f"MCP tool: search_skills ('{term}')")
        try:
            return _tool_result(await skills.search_skills(term))
        except Exception as e:
            logger.error(f"Error searching skills: {e}")
            raise ToolError(f"Error searching skills: {e}")

    @mcp.tool(
        name=namespace_prefix + "add_user_skill",
        annotations=_annotations("Add User Skill", read_only=False),
    )
    async def add_user_skill(
        user_id: str = Field(..., description="User id"),
        skill: str = Field(..., description="Skill name; created when unknown"),
    ) -> ToolResult:
        logger.info(f"MCP tool: add_user_skill ({user_id}, '{skill}')")
        try:
            return _tool_result({"added": await skills.add_user_skill(user_id, skill)})
        except Exception as e:
            logger.error(f"Error adding user skill: {e}")
            raise ToolError(f"Error adding user skill: {e}")

    @mcp.tool(
        name=namespace_prefix + "remove_user_skill",
        annotations=_annotations("Remove User Skill", read_only=False, destructive=True),
    )
    async def remove_user_skill(
        user_id: str = Field(..., description="User id"),
        skill: str = Field(..., description="Skill name, case-insensitive"),
    ) -> ToolResult:
        logger.info(f"MCP tool: remove_user_skill ({user_id}, '{skill}')")
        try:
            return _tool_result({"removed": await skills.remove_user_skill(user_id, skill)})
        except Exception as e:
            logger.error(f"Error removing user skill: {e}")
            raise ToolError(f"Error removing user skill: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_user_skills",
        annotations=_annotations("User Skills", read_only=True),
    )
    async def get_user_skills(
        user_id: str = Field(..., description="User id"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_user_skills ({user_id})")
        try:
            return _tool_result(await skills.get_user_skills(user_id))
        except Exception as e:
            logger.error(f"Error reading user skills: {e}")
            raise ToolError(f"Error reading user skills: {e}")

    # Test data and statistics

    @mcp.tool(
        name=namespace_prefix + "preview_test_data",
        annotations=_annotations("Preview Test Data", read_only=True),
    )
    async def preview_test_data() -> ToolResult:
        """The sample GoodWorks that import_test_data would create, without writing them."""
        logger.info("MCP tool: preview_test_data")
        try:
            return _tool_result(seed_data.preview())
        except Exception as e:
            logger.error(f"Error reading test data: {e}")
            raise ToolError(f"Error reading test data: {e}")

    @mcp.tool(
        name=namespace_prefix + "import_test_data",
        annotations=_annotations("Import Test Data", read_only=False, idempotent=False),
    )
    async def import_test_data(
        user_id: Optional[str] = Field(None, description="User id recorded as created_by"),
    ) -> ToolResult:
        """Import the sample GoodWorks, each tagged TEST_DATA. Returns the imported count."""
        logger.info("MCP tool: import_test_data")
        try:
            return _tool_result({"imported": await seed_data.import_test_data(user_id)})
        except Exception as e:
            logger.error(f"Error importing test data: {e}")
            raise ToolError(f"Error importing test data: {e}")

    @mcp.tool(
        name=namespace_prefix + "delete_test_data",
        annotations=_annotations("Delete Test Data", read_only=False, destructive=True),
    )
    async def delete_test_data() -> ToolResult:
        """Delete every GoodWork tagged TEST_DATA."""
        logger.info("MCP tool: delete_test_data")
        try:
            return _tool_result({"deleted": await seed_data.delete_all_test_data()})
        except Exception as e:
            logger.error(f"Error deleting test data: {e}")
            raise ToolError(f"Error deleting test data: {e}")

    @mcp.tool(
        name=namespace_prefix + "graph_stats",
        annotations=_annotations("Graph Statistics", read_only=True),
    )
    async def graph_stats() -> ToolResult:
        """Node counts per label and relationship counts per type, plus test data count.

        Example response:
        {
            "nodes": {"GoodWork": 12, "Tag": 7},
            "relationships": {"TAGGED_WITH": 20},
            "total_nodes": 19,
            "total_relationships": 20,
            "test_data": 4
        }
        """
        logger.info("MCP tool: graph_stats")
        try:
            stats = await client.graph_stats()
            stats["test_data"] = await seed_data.count_test_data()
            return _tool_result(stats)
        except Exception as e:
            logger.error(f"Error reading graph statistics: {e}")
            raise ToolError(f"Error reading graph statistics: {e}")

    # Graph explorer

    @mcp.tool(
        name=namespace_prefix + "get_graph_sample",
        annotations=_annotations("Graph Sample", read_only=True),
    )
    async def get_graph_sample(
        limit: int = Field(50, description="Maximum number of relationships to return"),
        node_type: Optional[str] = Field(None, description="Only relationships touching this label"),
        relationship_type: Optional[str] = Field(None, description="Only relationships of this type"),
    ) -> ToolResult:
        """A sample of relationships in either direction, with their endpoint nodes."""
        logger.info("MCP tool: get_graph_sample")
        try:
            return _tool_result(await explorer.get_graph_sample(limit, node_type, relationship_type))
        except Exception as e:
            logger.error(f"Error sampling graph: {e}")
            raise ToolError(f"Error sampling graph: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_node_neighbors",
        annotations=_annotations("Node Neighbors", read_only=True),
    )
    async def get_node_neighbors(
        node_id: str = Field(..., description="Graph id of the node"),
        depth: int = Field(1, description="Number of hops, 1 to 3"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_node_neighbors ({node_id}, depth={depth})")
        try:
            return _tool_result(await explorer.get_node_neighbors(node_id, depth))
        except Exception as e:
            logger.error(f"Error reading node neighbors: {e}")
            raise ToolError(f"Error reading node neighbors: {e}")

    @mcp.tool(
        name=namespace_prefix + "search_nodes",
        annotations=_annotations("Search Nodes", read_only=True),
    )
    async def search_nodes(
        label: Optional[str] = Field(None, description="Restrict to this label"),
        search_text: Optional[str] = Field(None, description="Matches name, title, description or email"),
        limit: int = Field(20, description="Maximum number of nodes"),
    ) -> ToolResult:
        logger.info(f"MCP tool: search_nodes ({label}, '{search_text}')")
        try:
            return _tool_result(await explorer.search_nodes(label, search_text, limit))
        except Exception as e:
            logger.error(f"Error searching nodes: {e}")
            raise ToolError(f"Error searching nodes: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_node_details",
        annotations=_annotations("Node Details", read_only=True),
    )
    async def get_node_details(
        node_id: str = Field(..., description="Graph id of the node"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_node_details ({node_id})")
        try:
            return _tool_result(await explorer.get_node_details(node_id))
        except Exception as e:
            logger.error(f"Error reading node: {e}")
            raise ToolError(f"Error reading node: {e}")

    @mcp.tool(
        name=namespace_prefix + "get_relationship_details",
        annotations=_annotations("Relationship Details", read_only=True),
    )
    async def get_relationship_details(
        relationship_id: str = Field(..., description="Graph id of the relationship"),
    ) -> ToolResult:
        logger.info(f"MCP tool: get_relationship_details ({relationship_id})")
        try:
            return _tool_result(await explorer.get_relationship_details(relationship_id))
        except Exception as e:
            logger.error(f"Error reading relationship: {e}")
            raise ToolError(f"Error reading relationship: {e}")

    return mcp


async def main(
    db_url: str,
    db_user: str,
    db_password: str,
    db_name: str,
    graphname: str,
    query_timeout: float = 30,
    google_maps_api_key: Optional[str] = None,
    transport: Literal["stdio", "sse", "http"] = "stdio",
    namespace: str = "",
    host: str = "127.0.0.1",
    port: int = 8000,
    path: str = "/mcp/",
    allow_origins: list[str] = [],
    allowed_hosts: list[str] = [],
) -> None:
    logger.info("Starting GoodWorks AgensGraph MCP Server")
    logger.info(f"Connecting to AgensGraph with URL: {db_url}")

    connection_pool = AsyncConnectionPool(
        build_connection_url(db_url, db_user, db_password, db_name), open=False
    )
    client = AgensGraphClient(connection_pool, graphname, query_timeout)

    try:
        await client.initialize()
        logger.info("Connected to AgensGraph successfully")
    except Exception as e:
        logger.error(f"Failed to initialize AgensGraph: {e}")
        sys.exit(1)

    geocoder = GoogleGeocoder(google_maps_api_key) if google_maps_api_key else None
    repository = GoodWorkRepository(client, geocoder)
    skills = SkillService(client)
    await skills.initialize_predefined_skills()

    mcp = create_mcp_server(
        repository,
        OrganizationService(client),
        skills,
        SeedDataService(repository),
        client,
        GraphExplorer(client),
        namespace,
    )
    logger.info("MCP server created")

    # Configure security middleware
    custom_middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        ),
        Middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts),
    ]

    logger.info(f"Starting server with transport: {transport}")
    try:
        match transport:
            case "http":
                logger.info(f"HTTP server starting on {host}:{port}{path}")
                await mcp.run_http_async(
                    host=host, port=port, path=path, middleware=custom_middleware, stateless_http=True
                )
            case "stdio":
                logger.info("STDIO server starting")
                await mcp.run_stdio_async()
            case "sse":
                logger.info(f"SSE server starting on {host}:{port}{path}")
                await mcp.run_http_async(
                    host=host, port=port, path=path, middleware=custom_middleware, transport="sse"
                )
            case _:
                raise ValueError(f"Unsupported transport: {transport}")
    finally:
        await client.close()
