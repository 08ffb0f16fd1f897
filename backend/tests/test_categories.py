"""Tests for the category tree and category moderators."""

import pytest

from agora.core.exceptions import BadRequestError, ConflictError, NotFoundError


async def test_create_category_generates_slug(category_service):
    category = await category_service.create_category("ROV Builds")

    assert category.slug == "rov-builds"
    assert category.level == 1


async def test_duplicate_slug_is_rejected(category_service):
    await category_service.create_category("Hardware")

    with pytest.raises(ConflictError):
        await category_service.create_category("Hardware")


async def test_tree_is_limited_to_two_levels(category_service):
    root = await category_service.create_category("Hardware")
    child = await category_service.create_category("Thrusters", parent_id=root.id)

    assert child.level == 2
    with pytest.raises(BadRequestError, match="maximum depth"):
        await category_service.create_category("Brushless", parent_id=child.id)


async def test_category_tree_nests_children_in_display_order(category_service):
    hardware = await category_service.create_category("Hardware", display_order=2)
    software = await category_service.create_category("Software", display_order=1)
    await category_service.create_category("Cameras", parent_id=hardware.id, display_order=2)
    await category_service.create_category("Thrusters", parent_id=hardware.id, display_order=1)

    tree = await category_service.get_category_tree()

    assert [node["id"] for node in tree] == [software.id, hardware.id]
    assert [child["name"] for child in tree[1]["children"]] == ["Thrusters", "Cameras"]


async def test_move_rules(category_service):
    hardware = await category_service.create_category("Hardware")
    software = await category_service.create_category("Software")
    cameras = await category_service.create_category("Cameras", parent_id=hardware.id)

    with pytest.raises(BadRequestError, match="own parent"):
        await category_service.update_category(hardware.id, parent_id=hardware.id)
    with pytest.raises(BadRequestError, match="own child"):
        await category_service.update_category(hardware.id, parent_id=cameras.id)
    with pytest.raises(BadRequestError, match="subcategories"):
        await category_service.update_category(hardware.id, parent_id=software.id)

    moved = await category_service.update_category(cameras.id, parent_id=software.id)
    assert moved.parent_id == software.id

    promoted = await category_service.update_category(cameras.id, parent_id=None)
    assert promoted.parent_id is None
    assert promoted.level == 1


async def test_delete_refused_while_topics_exist(make_user, make_category, make_topic, category_service):
    author = await make_user()
    busy = await make_category("Busy")
    empty = await make_category("Empty")
    await make_topic(author, category=busy)

    with pytest.raises(ConflictError):
        await category_service.delete_category(busy.id)

    await category_service.delete_category(empty.id)
    assert empty.is_active is False
    assert empty.id not in [c.id for c in await category_service.list_categories()]


async def test_delete_refused_while_subcategories_are_active(category_service):
    hardware = await category_service.create_category("Hardware")
    cameras = await category_service.create_category("Cameras", parent_id=hardware.id)

    with pytest.raises(ConflictError, match="subcategories"):
        await category_service.delete_category(hardware.id)

    await category_service.delete_category(cameras.id)
    await category_service.delete_category(hardware.id)
    assert hardware.is_active is False


async def test_reorder_categories(category_service):
    first = await category_service.create_category("First", display_order=0)
    second = await category_service.create_category("Second", display_order=1)

    await category_service.reorder_categories([
        {"id": first.id, "display_order": 1},
        {"id": second.id, "display_order": 0},
    ])

    tree = await category_service.get_category_tree()
    assert [node["id"] for node in tree] == [second.id, first.id]

    with pytest.raises(NotFoundError):
        await category_service.reorder_categories([{"id": 999, "display_order": 0}])


async def test_moderator_assignment(make_user, category_service):
    admin = await make_user()
    moderator = await make_user()
    category = await category_service.create_category("Hardware")

    await category_service.assign_moderator(category.id, moderator.id, assigned_by=admin)
    assert await category_service.is_category_moderator(category.id, moderator.id)

    with pytest.raises(ConflictError):
        await category_service.assign_moderator(category.id, moderator.id)

    moderators = await category_service.list_moderators(category.id)
    assert [m["user_id"] for m in moderators] == [moderator.id]

    await category_service.remove_moderator(category.id, moderator.id)
    assert not await category_service.is_category_moderator(category.id, moderator.id)

    with pytest.raises(NotFoundError):
        await category_service.remove_moderator(category.id, moderator.id)
