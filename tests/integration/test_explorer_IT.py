import pytest

from goodworks_agensgraph.explorer import GraphExplorer
from goodworks_agensgraph.repository import GoodWorkRepository


@pytest.mark.asyncio
async def test_neighbourhood_of_a_good_work(
    repository: GoodWorkRepository, explorer: GraphExplorer, make_work
):
    work_id = await repository.create_good_work(make_work(tags=["outdoors"]), "user-1")

    data = await explorer.get_node_neighbors(work_id)

    titles = {node.title for node in data.nodes}
    assert "River Walk Cleanup" in titles
    assert "outdoors" in titles
    assert "Austin, TX (78701)" in titles
    types = {edge.type for edge in data.edges}
    assert {"TAGGED_WITH", "HAS_CONTACT", "BELONGS_TO", "LOCATED_IN"} <= types
    assert all(edge.source == work_id for edge in data.edges)


@pytest.mark.asyncio
async def test_search_details_and_sample(
    repository: GoodWorkRepository, explorer: GraphExplorer, make_work
):
    work_id = await repository.create_good_work(make_work(), "user-1")

    contacts = await explorer.search_nodes("Contact", "DANA@")
    assert [node.title for node in contacts] == ["dana@example.org"]

    node = await explorer.get_node_details(work_id)
    assert node.label == "GoodWork"
    assert node.properties["created_by"] == "user-1"

    sample = await explorer.get_graph_sample(limit=50, relationship_type="TAGGED_WITH")
    assert len(sample.edges) == 1
    edge = await explorer.get_relationship_details(sample.edges[0].id)
    assert (edge.source, edge.type) == (work_id, "TAGGED_WITH")
