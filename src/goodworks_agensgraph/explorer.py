"""Read-only browsing of the raw graph: samples, neighbourhoods, node and edge lookups."""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from psycopg.types.json import Jsonb

from .exceptions import ValidationError
from .graph import AgensGraphClient, GraphTransaction
from .models import GraphData, GraphEdge, GraphNode
from .repository import validate_graph_id

logger = logging.getLogger("goodworks_agensgraph")
logger.setLevel(logging.INFO)

DEFAULT_SAMPLE_LIMIT = 50
DEFAULT_SEARCH_LIMIT = 20
MAX_LIMIT = 500
MAX_DEPTH = 3

LABEL_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Properties searched by search_nodes
SEARCHABLE_PROPERTIES = ["name", "title", "description", "email"]

NODE_COLUMNS = """
    toString(id({alias})) AS {alias}_id, label({alias}) AS {alias}_label,
    properties({alias}) AS {alias}_properties
"""

EDGE_COLUMNS = """
    toString(id(r)) AS r_id, type(r) AS r_type, properties(r) AS r_properties,
    toString(id(startNode(r))) AS r_source, toString(id(endNode(r))) AS r_target
"""

# Both endpoints and the edge of a (n)-[r]-(m) match
PAIR_COLUMNS = ", ".join(
    [NODE_COLUMNS.format(alias="n"), NODE_COLUMNS.format(alias="m"), EDGE_COLUMNS]
)


def _label_filter(label: Optional[str], kind: str) -> str:
    """``:"Label"`` for a pattern, or nothing. Labels are interpolated, so only identifiers pass."""
    if not label:
        return ""
    if not LABEL_PATTERN.match(label):
        raise ValidationError(f"Invalid {kind}: {label!r}")
    return f':"{label}"'


def _validate_limit(limit: int) -> int:
    if not isinstance(limit, int) or isinstance(limit, bool) or not 0 < limit <= MAX_LIMIT:
        raise ValidationError(f"Invalid limit: {limit!r}. Expected 1 to {MAX_LIMIT}.")
    return limit


def node_title(label: str, node_id: str, properties: Mapping[str, Any]) -> str:
    """Display title: "city, state (zip)" for locations, else name, title or email."""
    if label == "Location":
        parts = [str(properties[key]) for key in ("city", "state") if properties.get(key)]
        zip_code = properties.get("zip")
        if parts:
            title = ", ".join(parts)
            return f"{title} ({zip_code})" if zip_code else title
        if zip_code:
            return str(zip_code)

    for key in ("name", "title", "email"):
        if properties.get(key):
            return str(properties[key])
    return f"{label or 'Node'} {node_id}"


def node_from_record(record: Mapping[str, Any], alias: str = "n") -> GraphNode:
    node_id = record[f"{alias}_id"]
    label = record.get(f"{alias}_label") or "Unknown"
    properties = dict(record.get(f"{alias}_properties") or {})
    return GraphNode(
        id=node_id,
        label=label,
        title=node_title(label, node_id, properties),
        properties=properties,
    )


def edge_from_record(record: Mapping[str, Any]) -> GraphEdge:
    return GraphEdge(
        id=record["r_id"],
        source=record["r_source"],
        target=record["r_target"],
        type=record["r_type"],
        properties=dict(record.get("r_properties") or {}),
    )


class _GraphDataBuilder:
    """Collects nodes and edges from rows, keeping the first of each id."""

    def __init__(self):
        self.nodes: Dict[str, GraphNode] = {}
        self.edges: Dict[str, GraphEdge] = {}

    def add_node(self, node: GraphNode) -> bool:
        if node.id in self.nodes:
            return False
        self.nodes[node.id] = node
        return True

    def add_row(self, row: Mapping[str, Any]) -> List[str]:
        """Add both endpoints and the edge; return ids of endpoints seen for the first time."""
        added = []
        for alias in ("n", "m"):
            node = node_from_record(row, alias)
            if self.add_node(node):
                added.append(node.id)
        edge = edge_from_record(row)
        self.edges.setdefault(edge.id, edge)
        return added

    def build(self) -> GraphData:
        return GraphData(nodes=list(self.nodes.values()), edges=list(self.edges.values()))


class GraphExplorer:
    """Generic graph browsing on top of an AgensGraphClient.

    Every method runs in a single read-only transaction. Node and
    relationship ids are engine graph ids such as ``'3.1'``.
    """

    def __init__(self, client: AgensGraphClient):
        self.client = client

    async def get_graph_sample(
        self,
        limit: int = DEFAULT_SAMPLE_LIMIT,
        node_type: Optional[str] = None,
        relationship_type: Optional[str] = None,
    ) -> GraphData:
        """Up to ``limit`` relationships in either direction, with their endpoints."""
        node_filter = _label_filter(node_type, "node type")
        rel_filter = _label_filter(relationship_type, "relationship type")
        query = f"""
            MATCH (n{node_filter})-[r{rel_filter}]-(m)
            RETURN {PAIR_COLUMNS}
            LIMIT {_validate_limit(limit)}
        """
        builder = _GraphDataBuilder()
        for row in await self.client.read(query):
            builder.add_row(row)
        return builder.build()

    async def get_node_neighbors(self, node_id: str, depth: int = 1) -> GraphData:
        """The node and everything within ``depth`` hops, expanded breadth first.

        An unknown node yields an empty GraphData.
        """
        node_id = validate_graph_id(node_id, "node_id")
        if not isinstance(depth, int) or isinstance(depth, bool) or not 1 <= depth <= MAX_DEPTH:
            raise ValidationError(f"Invalid depth: {depth!r}. Expected 1 to {MAX_DEPTH}.")

        builder = _GraphDataBuilder()
        async with self.client.transaction(read_only=True) as tx:
            start = await self._fetch_node(tx, node_id)
            if start is None:
                return builder.build()
            builder.add_node(start)

            frontier = [node_id]
            for _ in range(depth):
                rows = await tx.run(
                    f"""
                    MATCH (n)-[r]-(m)
                    WHERE toString(id(n)) <@ %(frontier)s
                    RETURN {PAIR_COLUMNS}
                    """,
                    {"frontier": Jsonb(frontier)},
                )
                frontier = []
                for row in rows:
                    frontier.extend(builder.add_row(row))
                if not frontier:
                    break

        logger.debug(f"Neighbourhood of {node_id}: {len(builder.nodes)} nodes")
        return builder.build()

    async def search_nodes(
        self,
        label: Optional[str] = None,
        search_text: Optional[str] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> List[GraphNode]:
        """Nodes whose name, title, description or email contains ``search_text``."""
        query = f"MATCH (n{_label_filter(label, 'label')})\n"
        params: Dict[str, Any] = {}
        if search_text and search_text.strip():
            conditions = [
                f"(n.{prop} IS NOT NULL AND toLower(n.{prop}) CONTAINS %(text)s)"
                for prop in SEARCHABLE_PROPERTIES
            ]
            query += "WHERE " + "\n   OR ".join(conditions) + "\n"
            params["text"] = Jsonb(search_text.strip().lower())
        query += f"RETURN {NODE_COLUMNS.format(alias='n')}\nLIMIT {_validate_limit(limit)}"

        rows = await self.client.read(query, params or None)
        return [node_from_record(row) for row in rows]

    async def get_node_details(self, node_id: str) -> Optional[GraphNode]:
        node_id = validate_graph_id(node_id, "node_id")
        async with self.client.transaction(read_only=True) as tx:
            return await self._fetch_node(tx, node_id)

    async def get_relationship_details(self, relationship_id: str) -> Optional[GraphEdge]:
        relationship_id = validate_graph_id(relationship_id, "relationship_id")
        rows = await self.client.read(
            f"""
            MATCH ()-[r]->()
            WHERE toString(id(r)) = %(id)s
            RETURN {EDGE_COLUMNS}
            """,
            {"id": Jsonb(relationship_id)},
        )
        return edge_from_record(rows[0]) if rows else None

    async def _fetch_node(self, tx: GraphTransaction, node_id: str) -> Optional[GraphNode]:
        rows = await tx.run(
            f"""
            MATCH (n)
            WHERE toString(id(n)) = %(id)s
            RETURN {NODE_COLUMNS.format(alias='n')}
            """,
            {"id": Jsonb(node_id)},
        )
        return node_from_record(rows[0]) if rows else None
