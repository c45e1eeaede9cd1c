from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest

from goodworks_agensgraph.models import GoodWork


class FakeTransaction:
    """Records every query and answers with queued row lists, then ``[]``."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def run(self, query, params=None):
        self.calls.append((query, params or {}))
        if self.responses:
            return self.responses.pop(0)
        return []

    def queries(self):
        return [query for query, _ in self.calls]

    def param(self, call_index, name):
        """Unwrap a Jsonb parameter of a recorded call."""
        return self.calls[call_index][1][name].obj


class FakeClient:
    """Stands in for AgensGraphClient; every transaction shares one FakeTransaction."""

    def __init__(self, responses=()):
        self.tx = FakeTransaction(responses)
        self.transactions = []

    @asynccontextmanager
    async def transaction(self, read_only=False):
        self.transactions.append(read_only)
        yield self.tx

    async def read(self, query, params=None):
        async with self.transaction(read_only=True) as tx:
            return await tx.run(query, params)

    async def write(self, query, params=None):
        async with self.transaction() as tx:
            return await tx.run(query, params)


@pytest.fixture
def fake_client():
    """Factory for a FakeClient answering with the given row lists in order."""

    def _create(*responses):
        return FakeClient(responses)

    return _create


@pytest.fixture
def good_work():
    return GoodWork(
        name="River Walk Cleanup",
        description="Pick up litter along the river trail",
        category="Environment",
        tags=["outdoors", "family"],
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
        max_participants=25,
    )
