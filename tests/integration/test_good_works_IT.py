from datetime import datetime, timezone

import pytest

from goodworks_agensgraph.models import GoodWorkSearchCriteria, ListKind
from goodworks_agensgraph.repository import GoodWorkRepository


@pytest.mark.asyncio
async def test_create_and_read_back(repository: GoodWorkRepository, make_work):
    """Stored properties and derived neighbourhood fields come back on read."""
    work_id = await repository.create_good_work(
        make_work(sub_category="Cleanup", tags=["outdoors", "family"]), "user-1"
    )

    work = await repository.get_good_work_by_id(work_id)

    assert work.id == work_id
    assert work.name == "River Walk Cleanup"
    assert work.category == "Environment"
    assert work.sub_category == "Cleanup"
    assert sorted(work.tags) == ["family", "outdoors"]
    assert work.required_skills == ["Cleaning"]
    assert work.contact_email == "dana@example.org"
    assert (work.city, work.zip) == ("Austin", "78701")
    assert work.start_time == datetime(2026, 11, 7, 14, 0, tzinfo=timezone.utc)
    assert work.created_by == "user-1"
    assert work.current_participants == 0


@pytest.mark.asyncio
async def test_unknown_id_is_none(repository: GoodWorkRepository):
    assert await repository.get_good_work_by_id("999.999") is None


@pytest.mark.asyncio
async def test_interest_is_idempotent(repository: GoodWorkRepository, make_work):
    work_id = await repository.create_good_work(make_work(), "user-1")

    await repository.set_interested("user-2", work_id, True)
    first = await repository.get_participants(work_id)
    await repository.set_interested("user-2", work_id, True)
    second = await repository.get_participants(work_id)

    assert len(second) == 1
    assert second[0].engagement_date == first[0].engagement_date

    work = await repository.get_good_work_by_id(work_id, viewer_id="user-2")
    assert work.interested_count == 1
    assert work.is_user_interested is True

    await repository.set_interested("user-2", work_id, False)
    work = await repository.get_good_work_by_id(work_id, viewer_id="user-2")
    assert work.interested_count == 0
    assert work.is_user_interested is False


@pytest.mark.asyncio
async def test_sign_up_count_never_negative(repository: GoodWorkRepository, make_work):
    work_id = await repository.create_good_work(make_work(), "user-1")

    await repository.set_signed_up("user-2", work_id, True)
    await repository.set_signed_up("user-2", work_id, True)
    work = await repository.get_good_work_by_id(work_id)
    assert work.current_participants == 1
    assert work.signed_up_count == 1

    await repository.set_signed_up("user-2", work_id, False)
    await repository.set_signed_up("user-2", work_id, False)
    work = await repository.get_good_work_by_id(work_id)
    assert work.current_participants == 0
    assert work.signed_up_count == 0


@pytest.mark.asyncio
async def test_bounds_are_inclusive(repository: GoodWorkRepository, make_work):
    work_id = await repository.create_good_work(make_work(), "user-1")

    inside = await repository.get_good_works_in_bounds(30.0, 31.0, -98.0, -97.0)
    on_edge = await repository.get_good_works_in_bounds(30.26, 30.26, -97.74, -97.74)
    outside = await repository.get_good_works_in_bounds(31.0, 32.0, -98.0, -97.0)

    assert [w.id for w in inside] == [work_id]
    assert [w.id for w in on_edge] == [work_id]
    assert outside == []


@pytest.mark.asyncio
async def test_update_and_delete_require_owner(repository: GoodWorkRepository, make_work):
    work_id = await repository.create_good_work(make_work(), "owner")

    assert await repository.update_good_work(work_id, make_work(name="Hijacked"), "intruder") is False
    assert (await repository.get_good_work_by_id(work_id)).name == "River Walk Cleanup"

    updated = make_work(name="River Walk Cleanup II", category="Parks", tags=["weekend"])
    assert await repository.update_good_work(work_id, updated, "owner") is True
    work = await repository.get_good_work_by_id(work_id)
    assert work.name == "River Walk Cleanup II"
    assert work.category == "Parks"
    assert work.tags == ["weekend"]
    assert work.created_by == "owner"

    assert await repository.delete_good_work(work_id, "intruder") is False
    assert await repository.delete_good_work(work_id, "owner") is True
    assert await repository.get_good_work_by_id(work_id) is None


@pytest.mark.asyncio
async def test_search_filters(repository: GoodWorkRepository, make_work):
    river = await repository.create_good_work(make_work(), "user-1")
    await repository.create_good_work(
        make_work(
            name="Online Homework Help",
            category="Education",
            tags=["remote"],
            is_virtual=True,
            contact_email="tutors@example.org",
            start_time=datetime(2026, 11, 3, 23, 0, tzinfo=timezone.utc),
        ),
        "user-1",
    )

    everything = await repository.search_good_works()
    assert [w.name for w in everything] == ["Online Homework Help", "River Walk Cleanup"]

    by_tag = await repository.search_good_works(GoodWorkSearchCriteria(tags=["outdoors", "nope"]))
    assert [w.id for w in by_tag] == [river]

    by_text = await repository.search_good_works(GoodWorkSearchCriteria(search_text="TUTORS@"))
    assert [w.name for w in by_text] == ["Online Homework Help"]

    nearby = await repository.search_good_works(
        GoodWorkSearchCriteria(center_latitude=30.27, center_longitude=-97.74, radius_miles=5)
    )
    assert river in [w.id for w in nearby]


@pytest.mark.asyncio
async def test_available_spots_filter(repository: GoodWorkRepository, make_work):
    full = await repository.create_good_work(make_work(name="Full Shift", max_participants=1), "user-1")
    room = await repository.create_good_work(make_work(name="Open Shift", max_participants=3), "user-1")
    unlimited = await repository.create_good_work(
        make_work(name="Drop-in Shift", max_participants=None), "user-1"
    )
    await repository.set_signed_up("user-2", full, True)
    await repository.set_signed_up("user-2", room, True)

    available = await repository.search_good_works(GoodWorkSearchCriteria(has_available_spots=True))

    assert sorted(w.id for w in available) == sorted([room, unlimited])
    assert (await repository.get_good_work_by_id(unlimited)).max_participants is None


@pytest.mark.asyncio
async def test_clearing_capacity_makes_work_available(repository: GoodWorkRepository, make_work):
    work_id = await repository.create_good_work(make_work(max_participants=1), "owner")
    await repository.set_signed_up("user-2", work_id, True)
    criteria = GoodWorkSearchCriteria(has_available_spots=True)
    assert await repository.search_good_works(criteria) == []

    assert await repository.update_good_work(work_id, make_work(max_participants=None), "owner")

    assert [w.id for w in await repository.search_good_works(criteria)] == [work_id]


@pytest.mark.asyncio
async def test_start_date_range_filter(repository: GoodWorkRepository, make_work):
    early = await repository.create_good_work(
        make_work(name="Early", start_time=datetime(2026, 11, 1, 9, 0, tzinfo=timezone.utc)), "user-1"
    )
    middle = await repository.create_good_work(
        make_work(name="Middle", start_time=datetime(2026, 11, 5, 9, 0, tzinfo=timezone.utc)), "user-1"
    )
    await repository.create_good_work(
        make_work(name="Late", start_time=datetime(2026, 11, 9, 9, 0, tzinfo=timezone.utc)), "user-1"
    )

    in_range = await repository.search_good_works(
        GoodWorkSearchCriteria(
            start_date_from=datetime(2026, 11, 1, 9, 0, tzinfo=timezone.utc),
            start_date_to=datetime(2026, 11, 5, 9, 0, tzinfo=timezone.utc),
        )
    )

    assert [w.id for w in in_range] == [early, middle]


@pytest.mark.asyncio
async def test_flag_and_effort_filters(repository: GoodWorkRepository, make_work):
    accessible = await repository.create_good_work(
        make_work(name="Ramp Build", is_accessible=True, family_friendly=True, effort_level="Challenging"),
        "user-1",
    )
    virtual = await repository.create_good_work(
        make_work(name="Phone Bank", is_virtual=True, effort_level="Easy"), "user-1"
    )

    async def ids(**filters):
        works = await repository.search_good_works(GoodWorkSearchCriteria(**filters))
        return [w.id for w in works]

    assert await ids(is_accessible=True) == [accessible]
    assert await ids(family_friendly=True) == [accessible]
    assert await ids(is_virtual=True) == [virtual]
    assert await ids(is_virtual=False) == [accessible]
    assert await ids(effort_level="Easy") == [virtual]
    assert await ids(effort_level="Challenging", is_accessible=True) == [accessible]


@pytest.mark.asyncio
async def test_similar_good_works(repository: GoodWorkRepository, make_work):
    reference = await repository.create_good_work(make_work(), "user-1")
    close = await repository.create_good_work(make_work(name="Creek Cleanup"), "user-1")
    await repository.create_good_work(
        make_work(
            name="Chess Club",
            category="Recreation",
            tags=[],
            required_skills=[],
            effort_level="Easy",
            city="Dallas",
            zip="75201",
        ),
        "user-1",
    )

    similar = await repository.get_similar_good_works(reference)

    assert [w.id for w in similar] == [close]


@pytest.mark.asyncio
async def test_list_by_user(repository: GoodWorkRepository, make_work):
    mine = await repository.create_good_work(make_work(), "user-1")
    theirs = await repository.create_good_work(make_work(name="Other"), "user-9")
    await repository.set_signed_up("user-1", theirs, True)

    created = await repository.list_by_user("user-1", ListKind.CREATED)
    signed_up = await repository.list_by_user("user-1", ListKind.SIGNED_UP)

    assert [w.id for w in created] == [mine]
    assert [w.id for w in signed_up] == [theirs]
    assert signed_up[0].is_user_signed_up is True
