import pytest

from goodworks_agensgraph.exceptions import ValidationError
from goodworks_agensgraph.explorer import GraphExplorer, node_title


def _edge_row(n_id, n_label, n_props, m_id, m_label, m_props, r_id, r_type, source=None, target=None):
    return {
        "n_id": n_id,
        "n_label": n_label,
        "n_properties": n_props,
        "m_id": m_id,
        "m_label": m_label,
        "m_properties": m_props,
        "r_id": r_id,
        "r_type": r_type,
        "r_properties": {},
        "r_source": source or n_id,
        "r_target": target or m_id,
    }


TAGGED = _edge_row(
    "3.1", "GoodWork", {"name": "River Walk Cleanup"},
    "7.1", "Tag", {"name": "outdoors"},
    "20.1", "TAGGED_WITH",
)


class TestNodeTitle:
    def test_location_with_zip(self):
        props = {"city": "Austin", "state": "TX", "zip": "78701"}
        assert node_title("Location", "6.1", props) == "Austin, TX (78701)"

    def test_location_zip_only(self):
        assert node_title("Location", "6.1", {"city": "", "zip": "78701"}) == "78701"

    def test_falls_back_through_name_title_email(self):
        assert node_title("Contact", "4.1", {"email": "dana@example.org"}) == "dana@example.org"
        assert node_title("User", "9.1", {}) == "User 9.1"


class TestGraphSample:
    @pytest.mark.asyncio
    async def test_deduplicates_both_directions(self, fake_client):
        reverse = _edge_row(
            "7.1", "Tag", {"name": "outdoors"},
            "3.1", "GoodWork", {"name": "River Walk Cleanup"},
            "20.1", "TAGGED_WITH", source="3.1", target="7.1",
        )
        client = fake_client([TAGGED, reverse])

        data = await GraphExplorer(client).get_graph_sample(10, "GoodWork", "TAGGED_WITH")

        assert [node.id for node in data.nodes] == ["3.1", "7.1"]
        assert len(data.edges) == 1
        assert data.edges[0].source == "3.1"
        assert data.edges[0].target == "7.1"
        query = client.tx.queries()[0]
        assert '(n:"GoodWork")-[r:"TAGGED_WITH"]-(m)' in query
        assert "LIMIT 10" in query
        assert client.transactions == [True]

    @pytest.mark.asyncio
    async def test_rejects_unsafe_labels(self, fake_client):
        client = fake_client()

        with pytest.raises(ValidationError):
            await GraphExplorer(client).get_graph_sample(node_type='GoodWork"}) DETACH DELETE (x')
        assert client.tx.calls == []

    @pytest.mark.asyncio
    async def test_rejects_bad_limit(self, fake_client):
        with pytest.raises(ValidationError):
            await GraphExplorer(fake_client()).get_graph_sample(limit=0)


class TestNodeNeighbors:
    @pytest.mark.asyncio
    async def test_expands_breadth_first(self, fake_client):
        start = {"n_id": "3.1", "n_label": "GoodWork", "n_properties": {"name": "River Walk Cleanup"}}
        second_hop = _edge_row(
            "7.1", "Tag", {"name": "outdoors"},
            "3.2", "GoodWork", {"name": "Park Planting"},
            "20.2", "TAGGED_WITH", source="3.2", target="7.1",
        )
        client = fake_client([start], [TAGGED], [second_hop])

        data = await GraphExplorer(client).get_node_neighbors("3.1", depth=2)

        assert [node.id for node in data.nodes] == ["3.1", "7.1", "3.2"]
        assert [edge.id for edge in data.edges] == ["20.1", "20.2"]
        assert client.tx.param(1, "frontier") == ["3.1"]
        assert client.tx.param(2, "frontier") == ["7.1"]
        assert client.transactions == [True]

    @pytest.mark.asyncio
    async def test_stops_when_nothing_new(self, fake_client):
        start = {"n_id": "3.1", "n_label": "GoodWork", "n_properties": {}}
        client = fake_client([start], [])

        data = await GraphExplorer(client).get_node_neighbors("3.1", depth=3)

        assert [node.id for node in data.nodes] == ["3.1"]
        assert len(client.tx.calls) == 2

    @pytest.mark.asyncio
    async def test_unknown_node_is_empty(self, fake_client):
        client = fake_client([])

        data = await GraphExplorer(client).get_node_neighbors("3.99")

        assert data.nodes == [] and data.edges == []
        assert len(client.tx.calls) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("depth", [0, 4, True])
    async def test_depth_bounds(self, fake_client, depth):
        with pytest.raises(ValidationError):
            await GraphExplorer(fake_client()).get_node_neighbors("3.1", depth)


class TestSearchAndDetails:
    @pytest.mark.asyncio
    async def test_search_matches_text_properties(self, fake_client):
        client = fake_client([{"n_id": "4.1", "n_label": "Contact", "n_properties": {"email": "dana@example.org"}}])

        nodes = await GraphExplorer(client).search_nodes("Contact", " Dana ", 5)

        assert nodes[0].title == "dana@example.org"
        query = client.tx.queries()[0]
        assert 'MATCH (n:"Contact")' in query
        assert "toLower(n.email) CONTAINS %(text)s" in query
        assert client.tx.param(0, "text") == "dana"

    @pytest.mark.asyncio
    async def test_search_without_text(self, fake_client):
        client = fake_client([])

        await GraphExplorer(client).search_nodes()

        query = client.tx.queries()[0]
        assert "WHERE" not in query
        assert "LIMIT 20" in query

    @pytest.mark.asyncio
    async def test_node_details(self, fake_client):
        client = fake_client([{"n_id": "6.1", "n_label": "Location", "n_properties": {"city": "Austin", "state": "TX"}}])

        node = await GraphExplorer(client).get_node_details("6.1")

        assert node.title == "Austin, TX"
        assert client.tx.param(0, "id") == "6.1"

    @pytest.mark.asyncio
    async def test_missing_node_is_none(self, fake_client):
        assert await GraphExplorer(fake_client([])).get_node_details("6.9") is None

    @pytest.mark.asyncio
    async def test_relationship_details(self, fake_client):
        row = {k: v for k, v in TAGGED.items() if k.startswith("r_")}
        client = fake_client([row])

        edge = await GraphExplorer(client).get_relationship_details("20.1")

        assert edge.type == "TAGGED_WITH"
        assert (edge.source, edge.target) == ("3.1", "7.1")

    @pytest.mark.asyncio
    async def test_relationship_id_validated(self, fake_client):
        with pytest.raises(ValidationError):
            await GraphExplorer(fake_client()).get_relationship_details("r20")
