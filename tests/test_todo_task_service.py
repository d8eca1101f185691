import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from noticeboard.db.models import ActionItem, TodoTask
from noticeboard.services.todo_task_service import ChildTaskPolicy, TodoTaskService
from noticeboard.utils.errors import (
    DuplicateTaskError,
    InvalidParentError,
    OrphanTaskViolationError,
    TaskNotFoundError,
)


async def _task_ids(db_session: AsyncSession, user_id: str):
    result = await db_session.execute(select(TodoTask.id).where(TodoTask.user_id == user_id))
    return set(result.scalars().all())


class TestTaskCrud:
    """Test creating, reading and updating tasks."""

    @pytest.mark.asyncio
    async def test_create_and_group_by_category(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        await service.create_task("u1", "Buy milk", category="home", order=2)
        await service.create_task("u1", "Call bank", category="home", order=1)
        await service.create_task("u1", "Stretch")
        await service.create_task("u2", "Not mine")

        grouped = await service.get_tasks_for_user("u1")

        assert set(grouped) == {"home", "default"}
        assert [t.description for t in grouped["home"]] == ["Call bank", "Buy milk"]
        assert [t.description for t in grouped["default"]] == ["Stretch"]

    @pytest.mark.asyncio
    async def test_create_requires_description(self, db_session: AsyncSession):
        with pytest.raises(ValueError):
            await TodoTaskService(db_session).create_task("u1", "  ")

    @pytest.mark.asyncio
    async def test_parent_must_belong_to_same_user(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        foreign = await service.create_task("u2", "Someone else's")

        with pytest.raises(InvalidParentError):
            await service.create_task("u1", "Child", parent_id=foreign.id)
        with pytest.raises(InvalidParentError):
            await service.create_task("u1", "Child", parent_id="missing")

    @pytest.mark.asyncio
    async def test_update_changes_only_given_fields(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        task = await service.create_task("u1", "Draft report", category="work", order=3)

        updated = await service.update_task("u1", task.id, completed=True)

        assert updated.completed is True
        assert updated.description == "Draft report"
        assert updated.sort_order == 3

    @pytest.mark.asyncio
    async def test_foreign_task_is_not_found(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        task = await service.create_task("u2", "Private")

        with pytest.raises(TaskNotFoundError):
            await service.get_task("u1", task.id)
        with pytest.raises(TaskNotFoundError):
            await service.update_task("u1", task.id, completed=True)


class TestTasksFromNotifications:
    """Test task creation from a notification's action item."""

    @pytest.mark.asyncio
    async def test_copies_action_item(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)

        task = await service.create_from_notification("u1", "n1", ActionItem("Sign form", "hr"))

        assert task.description == "Sign form"
        assert task.category == "hr"
        assert task.parent_id is None
        assert task.created_from_notification is True
        assert task.source_notification_id == "n1"
        assert await service.exists_for_source("u1", "n1")
        assert not await service.exists_for_source("u2", "n1")

    @pytest.mark.asyncio
    async def test_second_task_for_same_source_is_duplicate(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        await service.create_from_notification("u1", "n1", ActionItem("Sign form"))

        with pytest.raises(DuplicateTaskError):
            await service.create_from_notification("u1", "n1", ActionItem("Sign form"))

        # Another user is unaffected
        await service.create_from_notification("u2", "n1", ActionItem("Sign form"))

    @pytest.mark.asyncio
    async def test_unique_constraint_backs_the_precheck(self, db_session: AsyncSession, monkeypatch):
        service = TodoTaskService(db_session)
        await service.create_from_notification("u1", "n1", ActionItem("Sign form"))

        async def never_exists(user_id, notification_id):
            return False

        monkeypatch.setattr(service, "exists_for_source", never_exists)

        with pytest.raises(DuplicateTaskError):
            await service.create_from_notification("u1", "n1", ActionItem("Sign form"))
        assert len(await _task_ids(db_session, "u1")) == 1


class TestDeleteTask:
    """Test orphan prevention when deleting tasks."""

    @pytest.mark.asyncio
    async def test_leaf_task_is_deleted(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        task = await service.create_task("u1", "Leaf")

        assert await service.delete_task("u1", task.id) == 1
        assert await _task_ids(db_session, "u1") == set()

    @pytest.mark.asyncio
    async def test_parent_with_children_is_rejected_by_default(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        parent = await service.create_task("u1", "Parent")
        child = await service.create_task("u1", "Child", parent_id=parent.id)

        with pytest.raises(OrphanTaskViolationError) as exc_info:
            await service.delete_task("u1", parent.id)

        assert exc_info.value.child_count == 1
        assert await _task_ids(db_session, "u1") == {parent.id, child.id}

    @pytest.mark.asyncio
    async def test_cascade_removes_all_descendants(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        root = await service.create_task("u1", "Root")
        child = await service.create_task("u1", "Child", parent_id=root.id)
        await service.create_task("u1", "Grandchild", parent_id=child.id)
        sibling = await service.create_task("u1", "Unrelated")

        deleted = await service.delete_task("u1", root.id, policy=ChildTaskPolicy.CASCADE)

        assert deleted == 3
        assert await _task_ids(db_session, "u1") == {sibling.id}

    @pytest.mark.asyncio
    async def test_reparent_to_root(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        parent = await service.create_task("u1", "Parent")
        first = await service.create_task("u1", "First", parent_id=parent.id)
        second = await service.create_task("u1", "Second", parent_id=parent.id)

        deleted = await service.delete_task("u1", parent.id, policy=ChildTaskPolicy.REPARENT)

        assert deleted == 1
        children = {t.id: t for t in await service.find_children("u1", parent.id)}
        assert children == {}
        for task_id in (first.id, second.id):
            task = await service.get_task("u1", task_id)
            assert task.parent_id is None

    @pytest.mark.asyncio
    async def test_reparent_to_other_task(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        parent = await service.create_task("u1", "Parent")
        child = await service.create_task("u1", "Child", parent_id=parent.id)
        adopter = await service.create_task("u1", "Adopter")

        await service.delete_task(
            "u1", parent.id, policy=ChildTaskPolicy.REPARENT, new_parent_id=adopter.id
        )

        assert [t.id for t in await service.find_children("u1", adopter.id)] == [child.id]

    @pytest.mark.asyncio
    async def test_reparent_under_own_descendant_is_rejected(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        parent = await service.create_task("u1", "Parent")
        child = await service.create_task("u1", "Child", parent_id=parent.id)
        grandchild = await service.create_task("u1", "Grandchild", parent_id=child.id)

        with pytest.raises(InvalidParentError):
            await service.delete_task(
                "u1", parent.id, policy=ChildTaskPolicy.REPARENT, new_parent_id=grandchild.id
            )
        assert await _task_ids(db_session, "u1") == {parent.id, child.id, grandchild.id}

    @pytest.mark.asyncio
    async def test_no_orphans_after_any_delete(self, db_session: AsyncSession):
        service = TodoTaskService(db_session)
        root = await service.create_task("u1", "Root")
        child = await service.create_task("u1", "Child", parent_id=root.id)
        await service.create_task("u1", "Grandchild", parent_id=child.id)

        await service.delete_task("u1", child.id, policy=ChildTaskPolicy.REPARENT, new_parent_id=root.id)

        result = await db_session.execute(select(TodoTask).where(TodoTask.user_id == "u1"))
        tasks = list(result.scalars().all())
        ids = {t.id for t in tasks}
        assert all(t.parent_id is None or t.parent_id in ids for t in tasks)
