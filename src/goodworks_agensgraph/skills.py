"""Skill catalogue shared by GoodWorks (REQUIRES_SKILL) and users (HAS_SKILL)."""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from psycopg.types.json import Jsonb

from .exceptions import ValidationError
from .graph import AgensGraphClient
from .mapping import RecordProjection, format_timestamp, utc_now
from .models import Skill, SkillCategory

logger = logging.getLogger("goodworks_agensgraph")
logger.setLevel(logging.INFO)

OTHER_CATEGORY = "Other"
SEARCH_LIMIT = 50

PREDEFINED_SKILLS: Dict[str, List[str]] = {
    "Physical": [
        "Manual Labor",
        "Lifting & Moving",
        "Construction",
        "Gardening",
        "Cleaning",
        "Painting",
        "Landscaping",
        "Driving",
        "Sports & Fitness",
    ],
    "Technical": [
        "Computer Skills",
        "Web Development",
        "Graphic Design",
        "Video Editing",
        "Photography",
        "Social Media Management",
        "Data Entry",
        "IT Support",
        "Software Development",
    ],
    "Social": [
        "Public Speaking",
        "Teaching & Tutoring",
        "Customer Service",
        "Event Planning",
        "Team Leadership",
        "Mentoring",
        "Counseling",
        "Networking",
        "Community Outreach",
    ],
    "Creative": [
        "Writing & Editing",
        "Arts & Crafts",
        "Music",
        "Cooking & Baking",
        "Event Decoration",
        "Content Creation",
        "Marketing",
        "Storytelling",
        "Design Thinking",
    ],
    "Administrative": [
        "Organization",
        "Scheduling",
        "Record Keeping",
        "Phone Skills",
        "Email Management",
        "Bookkeeping",
        "Project Management",
        "Filing & Documentation",
        "Office Management",
    ],
    "Healthcare": [
        "First Aid",
        "CPR Certified",
        "Medical Knowledge",
        "Elderly Care",
        "Child Care",
        "Mental Health Support",
        "Nutrition",
        "Physical Therapy",
        "Patient Care",
    ],
    "Language": [
        "Spanish",
        "French",
        "Mandarin",
        "Sign Language",
        "Translation",
        "Multilingual",
        "ESL Teaching",
        "Interpretation",
    ],
    "Specialized": [
        "Legal Knowledge",
        "Financial Planning",
        "Fundraising",
        "Grant Writing",
        "Research",
        "Environmental Science",
        "Animal Care",
        "Emergency Response",
        "Disaster Relief",
    ],
}

# Appended after a block binding ``s``; one row per skill with its usage count
SKILL_USAGE = """
    OPTIONAL MATCH (ref)-[r]->(s)
    WHERE type(r) = 'REQUIRES_SKILL' OR type(r) = 'HAS_SKILL'
    WITH s, count(DISTINCT ref) AS usage_count
    RETURN s.name AS name, s.category AS category, s.description AS description,
           s.created_date AS created_date, usage_count
"""


def normalize_skill_name(name: Optional[str]) -> str:
    """Lower-cased, trimmed, inner whitespace collapsed; the dedup key for skills."""
    if not name or not name.strip():
        return ""
    return re.sub(r"\s+", " ", name.strip().lower())


def display_skill_name(name: str) -> str:
    """Trimmed, inner whitespace collapsed, case kept; the stored spelling of a new skill."""
    return re.sub(r"\s+", " ", name.strip())


def skill_from_record(record: Mapping[str, Any]) -> Skill:
    p = RecordProjection(record, "s")
    return Skill(
        name=p.text("name"),
        category=p.text("category"),
        description=p.text("description"),
        created_date=p.timestamp("created_date"),
        usage_count=p.integer("usage_count"),
    )


def group_by_category(skills: List[Skill]) -> List[SkillCategory]:
    """Group skills by category name, alphabetically, with "Other" last.

    Skills without a category fall under "Other". Order inside a group is kept.
    """
    groups: Dict[str, List[Skill]] = {}
    for skill in skills:
        groups.setdefault(skill.category or OTHER_CATEGORY, []).append(skill)

    names = sorted(groups, key=lambda name: (name == OTHER_CATEGORY, name))
    return [SkillCategory(name=name, skills=groups[name]) for name in names]


class SkillService:
    """Look up, create and assign skills.

    Skill names are compared on their normalized form, so "First  aid" and
    "first aid" resolve to the same node; the first spelling stored is kept.
    """

    def __init__(self, client: AgensGraphClient):
        self.client = client

    async def get_all_skills(self) -> List[Skill]:
        """Every skill, most used first, then by name."""
        rows = await self.client.read(
            'MATCH (s:"Skill")\n' + SKILL_USAGE + "ORDER BY usage_count DESC, name ASC"
        )
        return [skill_from_record(row) for row in rows]

    async def get_skills_by_category(self) -> List[SkillCategory]:
        return group_by_category(await self.get_all_skills())

    async def get_or_create_skill(
        self,
        name: str,
        category: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Skill:
        """Return the skill matching ``name`` case-insensitively, creating it if absent."""
        normalized = normalize_skill_name(name)
        if not normalized:
            raise ValidationError("Skill name cannot be empty")
        display_name = display_skill_name(name)

        async with self.client.transaction() as tx:
            rows = await tx.run(
                'MATCH (s:"Skill")\nWHERE toLower(s.name) = %(normalized)s\n'
                + SKILL_USAGE
                + "LIMIT 1",
                {"normalized": Jsonb(normalized)},
            )
            if rows:
                return skill_from_record(rows[0])

            now = utc_now()
            await tx.run(
                """
                CREATE (s:"Skill")
                SET s += %(props)s
                """,
                {
                    "props": Jsonb(
                        {
                            "name": display_name,
                            "category": category or "",
                            "description": description or "",
                            "created_date": format_timestamp(now),
                        }
                    )
                },
            )

        logger.info(f"Created skill '{display_name}'")
        return Skill(
            name=display_name,
            category=category or "",
            description=description or "",
            created_date=now,
            usage_count=0,
        )

    async def search_skills(self, term: Optional[str]) -> List[Skill]:
        """Skills whose name or description contains ``term``; all skills for a blank term."""
        if not term or not term.strip():
            return await self.get_all_skills()

        rows = await self.client.read(
            """
            MATCH (s:"Skill")
            WHERE toLower(s.name) CONTAINS %(term)s
               OR toLower(s.description) CONTAINS %(term)s
            """
            + SKILL_USAGE
            + f"ORDER BY usage_count DESC, name ASC\nLIMIT {SEARCH_LIMIT}",
            {"term": Jsonb(term.strip().lower())},
        )
        return [skill_from_record(row) for row in rows]

    async def initialize_predefined_skills(self) -> int:
        """Make sure every predefined skill exists. Returns how many were processed.

        A failure on one skill is logged and the rest are still attempted.
        """
        processed = 0
        for category, names in PREDEFINED_SKILLS.items():
            for name in names:
                try:
                    await self.get_or_create_skill(name, category)
                    processed += 1
                except Exception as e:
                    logger.error(f"Error initializing skill '{name}': {e}")
        logger.info(f"Initialized {processed} predefined skills")
        return processed

    async def add_user_skill(self, user_id: str, name: str) -> bool:
        skill = await self.get_or_create_skill(name)
        rows = await self.client.write(
            """
            MATCH (s:"Skill")
            WHERE toLower(s.name) = %(normalized)s
            MERGE (u:"User" {user_id: %(user_id)s})
            MERGE (u)-[:"HAS_SKILL"]->(s)
            RETURN s.name AS name
            """,
            {
                "user_id": Jsonb(user_id),
                "normalized": Jsonb(normalize_skill_name(skill.name)),
            },
        )
        return bool(rows)

    async def remove_user_skill(self, user_id: str, name: str) -> bool:
        match = """
            MATCH (:"User" {user_id: %(user_id)s})-[r:"HAS_SKILL"]->(s:"Skill")
            WHERE toLower(s.name) = %(normalized)s
        """
        params = {"user_id": Jsonb(user_id), "normalized": Jsonb(normalize_skill_name(name))}
        async with self.client.transaction() as tx:
            rows = await tx.run(match + "RETURN count(r) AS existing", params)
            if not rows or int(rows[0]["existing"]) == 0:
                return False
            await tx.run(match + "DELETE r", params)
        return True

    async def get_user_skills(self, user_id: str) -> List[str]:
        rows = await self.client.read(
            """
            MATCH (:"User" {user_id: %(user_id)s})-[:"HAS_SKILL"]->(s:"Skill")
            RETURN s.name AS name
            ORDER BY name ASC
            """,
            {"user_id": Jsonb(user_id)},
        )
        return [row["name"] for row in rows]
