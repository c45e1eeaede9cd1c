import pytest

from goodworks_agensgraph.models import MemberRole, Organization
from goodworks_agensgraph.organizations import OrganizationService
from goodworks_agensgraph.repository import GoodWorkRepository


@pytest.mark.asyncio
async def test_colliding_names_get_suffixed_slugs(organizations: OrganizationService):
    first = await organizations.create_organization(Organization(name="River Walk Cleanup"), "user-1")
    second = await organizations.create_organization(Organization(name="River Walk Cleanup"), "user-2")

    assert first.slug == "river-walk-cleanup"
    assert second.slug == "river-walk-cleanup-1"
    assert await organizations.is_slug_available("river-walk-cleanup") is False
    assert await organizations.is_slug_available("river-walk-cleanup", exclude_id=first.id) is True


@pytest.mark.asyncio
async def test_creator_is_admin(organizations: OrganizationService):
    org = await organizations.create_organization(Organization(name="Food Bank"), "user-1")

    assert await organizations.is_user_admin(org.id, "user-1") is True

    fetched = await organizations.get_organization_by_slug("food-bank", viewer_id="user-1")
    assert fetched.id == org.id
    assert fetched.member_count == 1
    assert fetched.is_user_admin is True
    assert fetched.is_user_member is True


@pytest.mark.asyncio
async def test_membership_lifecycle(organizations: OrganizationService):
    org = await organizations.create_organization(Organization(name="Food Bank"), "owner")

    assert await organizations.add_member(org.id, "user-2", MemberRole.VOLUNTEER) is True
    members = {m.user_id: m for m in await organizations.get_organization_members(org.id)}
    assert members["owner"].role == MemberRole.ADMIN
    assert members["user-2"].role == MemberRole.VOLUNTEER

    assert await organizations.promote_to_admin(org.id, "user-2") is True
    roles = [m.role for m in await organizations.get_organization_members(org.id)]
    assert roles == [MemberRole.ADMIN, MemberRole.ADMIN]

    assert await organizations.remove_member(org.id, "user-2") is False

    await organizations.add_member(org.id, "user-3")
    assert await organizations.remove_member(org.id, "user-3") is True

    user_orgs = await organizations.get_user_organizations("user-2")
    assert [(u.organization.id, u.role) for u in user_orgs] == [(org.id, "Admin")]


@pytest.mark.asyncio
async def test_listing_and_soft_delete(organizations: OrganizationService):
    keep = await organizations.create_organization(
        Organization(name="Austin Tutors", city="Austin"), "user-1"
    )
    gone = await organizations.create_organization(Organization(name="Dallas Pantry"), "user-1")

    assert await organizations.count_organizations() == 2
    assert [o.id for o in await organizations.get_organizations(search_term="austin")] == [keep.id]

    assert await organizations.delete_organization(gone.id) is True
    assert [o.id for o in await organizations.get_organizations()] == [keep.id]
    assert (await organizations.get_organization_by_slug("dallas-pantry")).status == "Inactive"


@pytest.mark.asyncio
async def test_update_keeps_slug(organizations: OrganizationService):
    org = await organizations.create_organization(Organization(name="Food Bank"), "user-1")

    changed = org.model_copy(update={"name": "Central Food Bank", "slug": "other"})
    assert await organizations.update_organization(changed) is True

    fetched = await organizations.get_organization_by_slug("food-bank")
    assert fetched.name == "Central Food Bank"
    assert fetched.created_by == "user-1"


@pytest.mark.asyncio
async def test_posted_good_works_are_counted(
    organizations: OrganizationService, repository: GoodWorkRepository, make_work
):
    org = await organizations.create_organization(Organization(name="River Keepers"), "user-1")
    work_id = await repository.create_good_work(make_work(organization_id=org.id), "user-1")
    await repository.set_signed_up("user-5", work_id, True)

    work = await repository.get_good_work_by_id(work_id)
    assert work.organization_id == org.id

    fetched = await organizations.get_organization_by_slug("river-keepers")
    assert fetched.event_count == 1
    assert fetched.volunteer_count == 1

    members = await organizations.get_organization_members(org.id)
    assert members[0].contributed_events == 1
