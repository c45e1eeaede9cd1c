import os
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from psycopg_pool import AsyncConnectionPool

from goodworks_agensgraph.explorer import GraphExplorer
from goodworks_agensgraph.graph import AgensGraphClient
from goodworks_agensgraph.models import GoodWork
from goodworks_agensgraph.organizations import OrganizationService
from goodworks_agensgraph.repository import GoodWorkRepository
from goodworks_agensgraph.seed import SeedDataService
from goodworks_agensgraph.skills import SkillService


@pytest.fixture(scope="module")
def graphname():
    """Graph name for database testing."""
    return os.getenv("AGENSGRAPH_GRAPH_NAME", "test_goodworks")


@pytest_asyncio.fixture(scope="function")
async def client(graphname):
    """AgensGraphClient on a fresh pool with the schema in place."""
    db_name = os.getenv("AGENSGRAPH_DB")
    db_user = os.getenv("AGENSGRAPH_USERNAME")
    db_password = os.getenv("AGENSGRAPH_PASSWORD")
    db_host = os.getenv("AGENSGRAPH_HOST", "localhost")
    db_port = os.getenv("AGENSGRAPH_PORT", "5432")

    if not db_name or not db_user or not db_password:
        pytest.skip(
            "Database integration tests skipped: AGENSGRAPH_DB, AGENSGRAPH_USERNAME, "
            "and AGENSGRAPH_PASSWORD environment variables must be set."
        )

    db_url = f"postgresql://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
    client = AgensGraphClient(AsyncConnectionPool(db_url, open=False), graphname)
    await client.initialize()

    yield client

    await client.close()


@pytest_asyncio.fixture(scope="function")
async def clean_graph(client):
    """Delete every node and relationship before a test."""
    await client.write("MATCH (n) DETACH DELETE n")
    return client


@pytest_asyncio.fixture(scope="function")
async def repository(clean_graph):
    return GoodWorkRepository(clean_graph)


@pytest_asyncio.fixture(scope="function")
async def organizations(clean_graph):
    return OrganizationService(clean_graph)


@pytest_asyncio.fixture(scope="function")
async def skills(clean_graph):
    return SkillService(clean_graph)


@pytest_asyncio.fixture(scope="function")
async def explorer(clean_graph):
    return GraphExplorer(clean_graph)


@pytest_asyncio.fixture(scope="function")
async def seed_data(repository):
    return SeedDataService(repository)


@pytest.fixture
def make_work():
    """Factory for a valid GoodWork; keyword arguments override fields."""

    def _make(**overrides):
        values = dict(
            name="River Walk Cleanup",
            description="Pick up litter along the river trail",
            category="Environment",
            tags=["outdoors"],
            required_skills=["Cleaning"],
            contact_name="Dana Reyes",
            contact_email="dana@example.org",
            latitude=30.26,
            longitude=-97.74,
            city="Austin",
            state="TX",
            country="USA",
            zip="78701",
            start_time=datetime(2026, 11, 7, 14, 0, tzinfo=timezone.utc),
            end_time=datetime(2026, 11, 7, 17, 0, tzinfo=timezone.utc),
            max_participants=2,
        )
        values.update(overrides)
        return GoodWork(**values)

    return _make
