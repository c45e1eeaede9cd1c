import logging
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Type

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("goodworks_agensgraph")
logger.setLevel(logging.INFO)


class EffortLevel(str, Enum):
    EASY = "Easy"
    MODERATE = "Moderate"
    CHALLENGING = "Challenging"


class GoodWorkStatus(str, Enum):
    ACTIVE = "Active"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"
    FULL = "Full"


class OrganizationStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    PENDING = "Pending"


class MemberRole(str, Enum):
    ADMIN = "Admin"
    MEMBER = "Member"
    VOLUNTEER = "Volunteer"


def _coerce_enum(enum_type: Type[Enum], value: Any, default: Enum) -> Any:
    """Match stored enum text case-insensitively; blank or unknown values become ``default``."""
    if value in (None, ""):
        return default
    if isinstance(value, enum_type):
        return value
    text = str(value).strip().lower()
    for member in enum_type:
        if text in (member.value.lower(), member.name.lower()):
            return member
    logger.warning(f"Unknown {enum_type.__name__} value {value!r}, using {default.value}")
    return default


class ListKind(str, Enum):
    """Which of a user's GoodWork lists to read."""

    CREATED = "created"
    INTERESTED = "interested"
    SIGNED_UP = "signed_up"


class GoodWork(BaseModel):
    """A volunteer opportunity together with the fields derived from its neighbourhood.

    The engine-assigned ``id`` is ``None`` until the record has been stored.
    Counts and ``is_user_*`` flags are filled in on read only.

    Example:
    {
        "name": "River Walk Cleanup",
        "category": "Environment",
        "tags": ["outdoors", "family"],
        "contact_email": "lead@example.org",
        "city": "Austin", "state": "TX", "country": "USA", "zip": "78701",
        "start_time": "2026-05-02T09:00:00Z",
        "effort_level": "Moderate"
    }
    """

    id: Optional[str] = Field(
        default=None,
        description="Engine graph id in '<label id>.<local id>' form",
        examples=["3.1"],
    )
    name: str = Field(default="", description="Short title of the opportunity")
    description: str = ""
    detailed_description: str = ""

    category: str = Field(default="", description="Name of the linked Category node")
    sub_category: str = ""
    tags: List[str] = Field(default=[], description="Names of the linked Tag nodes")
    required_skills: List[str] = Field(
        default=[], description="Names of the linked Skill nodes"
    )

    contact_name: str = ""
    contact_email: str = Field(
        default="", description="Email of the linked Contact node (its merge key)"
    )
    contact_phone: str = ""

    latitude: float = 0.0
    longitude: float = 0.0
    address: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    zip: str = ""

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    estimated_duration: int = Field(default=0, description="Duration in minutes")

    effort_level: EffortLevel = EffortLevel.MODERATE
    is_accessible: bool = False
    is_virtual: bool = False
    max_participants: Optional[int] = Field(
        default=None, description="Capacity; None means unlimited"
    )
    current_participants: int = Field(default=0, ge=0)
    minimum_age: int = 0
    family_friendly: bool = False

    is_recurring: bool = False
    recurrence_pattern: str = Field(
        default="",
        description="TYPE:interval[:extra], e.g. WEEKLY:1:MON,WED,FRI",
        examples=["DAILY:1", "WEEKLY:1:MON,WED,FRI", "MONTHLY:1:15", "YEARLY:1:3:15"],
    )
    recurrence_end_date: Optional[datetime] = None

    organization_id: Optional[str] = Field(
        default=None, description="Graph id of the posting Organization"
    )
    organization_name: str = ""
    organization_website: str = ""
    parking_available: bool = False
    public_transit_accessible: bool = False
    special_instructions: str = ""
    what_to_bring: List[str] = []
    impact_description: str = ""
    estimated_people_helped: int = 0
    status: GoodWorkStatus = GoodWorkStatus.ACTIVE
    outdoor_activity: bool = False
    weather_dependent: bool = False

    created_date: Optional[datetime] = None
    created_by: str = ""
    last_modified_date: Optional[datetime] = None

    interested_count: int = 0
    signed_up_count: int = 0
    is_user_interested: bool = False
    is_user_signed_up: bool = False

    @field_validator("effort_level", mode="before")
    @classmethod
    def _default_effort_level(cls, value):
        return _coerce_enum(EffortLevel, value, EffortLevel.MODERATE)

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return _coerce_enum(GoodWorkStatus, value, GoodWorkStatus.ACTIVE)


class GoodWorkSearchCriteria(BaseModel):
    """Optional search filters; every unset field is ignored.

    Example:
    {
        "category": "Environment",
        "center_latitude": 30.27, "center_longitude": -97.74, "radius_miles": 10,
        "has_available_spots": true,
        "search_text": "river"
    }
    """

    category: Optional[str] = None
    sub_category: Optional[str] = None
    tags: List[str] = Field(
        default=[], description="Match GoodWorks tagged with at least one of these"
    )
    required_skills: List[str] = Field(
        default=[], description="Match GoodWorks requiring at least one of these skills"
    )
    center_latitude: Optional[float] = None
    center_longitude: Optional[float] = None
    radius_miles: Optional[float] = Field(default=None, gt=0)
    start_date_from: Optional[datetime] = None
    start_date_to: Optional[datetime] = None
    effort_level: Optional[EffortLevel] = None
    is_virtual: Optional[bool] = None
    is_accessible: Optional[bool] = None
    family_friendly: Optional[bool] = None
    has_available_spots: Optional[bool] = None
    search_text: Optional[str] = None


class LocationDetails(BaseModel):
    city: str = "Unknown"
    state: str = "Unknown"
    country: str = "Unknown"
    zip: str = "Unknown"


class Participant(BaseModel):
    """A user engaged with a GoodWork through INTERESTED_IN or SIGNED_UP_FOR."""

    user_id: str
    name: str = ""
    email: str = ""
    relationship_type: str
    engagement_date: Optional[datetime] = None


class Volunteer(BaseModel):
    user_id: str
    name: str = ""
    signed_up_count: int = 0


class Organization(BaseModel):
    """An organization that posts GoodWorks, addressed publicly by its slug."""

    id: Optional[str] = None
    name: str = Field(default="", description="Display name; the slug is derived from it")
    slug: str = ""
    description: str = ""
    mission: str = ""
    vision: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    website: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    zip_code: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    organization_type: str = ""
    tax_id: str = ""
    founded_date: Optional[datetime] = None
    logo_url: str = ""
    cover_image_url: str = ""
    facebook_url: str = ""
    twitter_url: str = ""
    instagram_url: str = ""
    linkedin_url: str = ""
    focus_areas: List[str] = []
    tags: List[str] = []
    created_by: str = ""
    created_date: Optional[datetime] = None
    last_modified_date: Optional[datetime] = None
    status: OrganizationStatus = OrganizationStatus.ACTIVE
    is_verified: bool = False

    member_count: int = 0
    event_count: int = 0
    volunteer_count: int = 0
    is_user_admin: bool = False
    is_user_member: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return _coerce_enum(OrganizationStatus, value, OrganizationStatus.ACTIVE)


class UserOrganization(BaseModel):
    organization: Organization
    role: str


class OrganizationMember(BaseModel):
    user_id: str
    name: str = ""
    email: str = ""
    role: MemberRole = MemberRole.MEMBER
    joined_date: Optional[datetime] = None
    contributed_events: int = 0


class Skill(BaseModel):
    name: str
    category: str = ""
    description: str = ""
    created_date: Optional[datetime] = None
    usage_count: int = 0


class SkillCategory(BaseModel):
    name: str
    skills: List[Skill] = []


class GraphNode(BaseModel):
    """Any vertex of the graph, as shown by the explorer."""

    id: str = Field(..., description="Engine graph id", examples=["3.1"])
    label: str
    title: str = Field(..., description="Display title derived from the properties")
    properties: dict = {}


class GraphEdge(BaseModel):
    id: str
    source: str = Field(..., description="Graph id of the start vertex")
    target: str = Field(..., description="Graph id of the end vertex")
    type: str
    properties: dict = {}


class GraphData(BaseModel):
    nodes: List[GraphNode] = []
    edges: List[GraphEdge] = []
