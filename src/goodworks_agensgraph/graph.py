"""AgensGraph connection handling: schema bootstrap, transactions and record decoding."""

import asyncio
import json
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, NamedTuple, Optional, Pattern

import psycopg
from psycopg import AsyncConnection
from psycopg.rows import namedtuple_row
from psycopg_pool import AsyncConnectionPool

from .exceptions import GraphQueryException

logger = logging.getLogger("goodworks_agensgraph")
logger.setLevel(logging.INFO)

# Regex patterns for parsing AgensGraph vertex and edge formats
VERTEX_REGEX: Pattern = re.compile(r"(\w+)\[(\d+\.\d+)\](\{.*\})")
EDGE_REGEX: Pattern = re.compile(r"(\w+)\[(\d+\.\d+)\]\[(\d+\.\d+),\s*(\d+\.\d+)\](\{.*\})")

VERTEX_LABELS = [
    "GoodWork",
    "Contact",
    "Category",
    "SubCategory",
    "Location",
    "Tag",
    "Skill",
    "Organization",
    "User",
]

EDGE_LABELS = [
    "HAS_CONTACT",
    "BELONGS_TO",
    "HAS_SUBCATEGORY",
    "LOCATED_IN",
    "TAGGED_WITH",
    "REQUIRES_SKILL",
    "POSTED_BY",
    "INTERESTED_IN",
    "SIGNED_UP_FOR",
    "HAS_SKILL",
    "ADMIN_OF",
    "MEMBER_OF",
]

# (index name, label, property)
PROPERTY_INDEXES = [
    ("goodwork_status_idx", "GoodWork", "status"),
    ("goodwork_created_by_idx", "GoodWork", "created_by"),
    ("contact_email_idx", "Contact", "email"),
    ("category_name_idx", "Category", "name"),
    ("tag_name_idx", "Tag", "name"),
    ("skill_name_idx", "Skill", "name"),
    ("location_zip_idx", "Location", "zip"),
    ("organization_slug_idx", "Organization", "slug"),
    ("user_user_id_idx", "User", "user_id"),
]


def _parse_properties(text: str) -> Optional[Dict[str, Any]]:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def record_to_dict(record: NamedTuple) -> Dict[str, Any]:
    """
    Convert an AgensGraph query record to a dictionary.

    Parses vertex and edge formats from AgensGraph:
    - Vertex: label[id]{properties}
    - Edge: label[id][start_id, end_id]{properties}

    Vertices become their property dictionaries, edges become
    ``(start_properties, label, end_properties)`` tuples and every other
    value is passed through unchanged.
    """
    result = {}
    vertices = {}

    # First pass: Build vertex mapping for edge construction
    for field_name in record._fields:
        value = getattr(record, field_name)
        if isinstance(value, str):
            vertex_match = VERTEX_REGEX.match(value)
            if vertex_match:
                label, vertex_id, properties = vertex_match.groups()
                parsed = _parse_properties(properties)
                if parsed is not None:
                    vertices[str(vertex_id)] = parsed

    # Second pass: Parse all fields
    for field_name in record._fields:
        value = getattr(record, field_name)

        if isinstance(value, str):
            vertex_match = VERTEX_REGEX.match(value)
            edge_match = EDGE_REGEX.match(value)
            properties = _parse_properties(vertex_match.group(3)) if vertex_match else None

            if properties is not None:
                result[field_name] = properties
            elif edge_match:
                label, edge_id, start_id, end_id, _ = edge_match.groups()
                result[field_name] = (
                    vertices.get(start_id, {}),
                    label,
                    vertices.get(end_id, {}),
                )
            else:
                result[field_name] = value
        else:
            result[field_name] = value

    return result


class GraphTransaction:
    """A single open transaction on the graph; every ``run`` shares it."""

    def __init__(self, conn: AsyncConnection, read_only: bool):
        self._conn = conn
        self.read_only = read_only

    async def run(
        self, query: str, params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Execute a Cypher query and return its rows as dictionaries."""
        logger.debug(f"Executing query: {query}\n{params}")
        async with self._conn.cursor(row_factory=namedtuple_row) as cursor:
            if params:
                await cursor.execute(query, params)
            else:
                await cursor.execute(query)

            try:
                data = await cursor.fetchall()
            except psycopg.ProgrammingError:
                # Query doesn't return data (e.g. DELETE without RETURN)
                data = []

        return [record_to_dict(record) for record in data]


class AgensGraphClient:
    """Owns the process-wide connection pool and hands out graph transactions.

    Args:
        pool: AsyncConnectionPool created with ``open=False``; ``initialize``
            opens it.
        graphname: Name of the AgensGraph graph holding the GoodWorks data.
        query_timeout: Per-statement timeout in seconds. ``None`` disables it.
    """

    def __init__(
        self,
        pool: AsyncConnectionPool,
        graphname: str,
        query_timeout: Optional[float] = 30,
    ):
        self.pool = pool
        self.graphname = graphname
        self.query_timeout = query_timeout
        self._pool_lock = asyncio.Lock()
        self._opened = False

    async def initialize(self) -> None:
        """Open the pool, then create the graph, its labels and property indexes."""
        async with self._pool_lock:
            if not self._opened:
                try:
                    await self.pool.open()
                except psycopg.Error as e:
                    raise GraphQueryException(
                        f"Failed to open connection to AgensGraph: {str(e)}"
                    ) from e
                self._opened = True

        async with self.pool.connection() as conn:
            async with conn.cursor() as curs:
                try:
                    await curs.execute(f"CREATE GRAPH IF NOT EXISTS {self.graphname}")
                    await curs.execute(f"SET graph_path = {self.graphname}")
                    for label in VERTEX_LABELS:
                        await curs.execute(f'CREATE VLABEL IF NOT EXISTS "{label}"')
                    for label in EDGE_LABELS:
                        await curs.execute(f'CREATE ELABEL IF NOT EXISTS "{label}"')
                    for index_name, label, prop in PROPERTY_INDEXES:
                        await curs.execute(
                            f'CREATE PROPERTY INDEX IF NOT EXISTS {index_name} ON "{label}" ({prop})'
                        )
                    await conn.commit()
                except (
                    psycopg.errors.InvalidSchemaName,
                    psycopg.errors.UniqueViolation,
                ):
                    await conn.rollback()
                    logger.warning(
                        f"Graph {self.graphname} already exists or could not be created."
                    )
                except psycopg.Error as e:
                    await conn.rollback()
                    raise GraphQueryException(
                        f"Error initializing graph {self.graphname}: {str(e)}"
                    ) from e

        logger.info(f"AgensGraph client initialized for graph: {self.graphname}")

    async def close(self) -> None:
        """Close the pool and release all connections."""
        if self._opened:
            await self.pool.close()
            self._opened = False

    @asynccontextmanager
    async def transaction(self, read_only: bool = False) -> AsyncIterator[GraphTransaction]:
        """Open one transaction for a logical operation.

        Commits when the block exits normally and rolls back when it raises.
        Database errors surface as ``GraphQueryException``.
        """
        async with self.pool.connection() as conn:
            try:
                async with conn.transaction():
                    async with conn.cursor() as cursor:
                        if read_only:
                            await cursor.execute("SET TRANSACTION READ ONLY")
                        if self.query_timeout is not None:
                            timeout_ms = int(self.query_timeout * 1000)
                            await cursor.execute(f"SET LOCAL statement_timeout = {timeout_ms}")
                        await cursor.execute(f"SET graph_path = {self.graphname}")
                    yield GraphTransaction(conn, read_only)
            except psycopg.Error as e:
                logger.error(f"Database error in graph transaction: {e}")
                raise GraphQueryException(
                    {"message": "Error executing graph query", "details": str(e)}
                ) from e

    async def read(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a single query in its own read-only transaction."""
        async with self.transaction(read_only=True) as tx:
            return await tx.run(query, params)

    async def write(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a single query in its own write transaction."""
        async with self.transaction() as tx:
            return await tx.run(query, params)

    async def graph_stats(self) -> Dict[str, Any]:
        """Count nodes per label and relationships per type."""
        async with self.transaction(read_only=True) as tx:
            node_rows = await tx.run(
                "MATCH (n) RETURN label(n) AS label, count(n) AS count"
            )
            rel_rows = await tx.run(
                "MATCH ()-[r]->() RETURN type(r) AS type, count(r) AS count"
            )

        nodes = {row["label"]: int(row["count"]) for row in node_rows}
        relationships = {row["type"]: int(row["count"]) for row in rel_rows}
        return {
            "nodes": nodes,
            "relationships": relationships,
            "total_nodes": sum(nodes.values()),
            "total_relationships": sum(relationships.values()),
        }
