import enum
import uuid
from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from noticeboard.db.models import ActionItem, TodoTask
from noticeboard.utils.errors import (
    DuplicateTaskError,
    InvalidParentError,
    OrphanTaskViolationError,
    TaskNotFoundError,
)
from noticeboard.utils.logging import get_logger

logger = get_logger()

DEFAULT_CATEGORY = "default"


class ChildTaskPolicy(enum.Enum):
    """What to do with child tasks when their parent is deleted."""

    REJECT = "reject"
    CASCADE = "cascade"
    REPARENT = "reparent"


class TodoTaskService:
    """User-scoped TODO tasks with parent/child grouping."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_task(self, user_id: str, task_id: str) -> TodoTask:
        task = await self.db.get(TodoTask, task_id)
        # Another user's task is reported exactly like a missing one
        if task is None or task.user_id != user_id:
            raise TaskNotFoundError(task_id)
        return task

    async def get_tasks_for_user(self, user_id: str) -> Dict[str, List[TodoTask]]:
        """All of a user's tasks grouped by category."""
        result = await self.db.execute(
            select(TodoTask)
            .where(TodoTask.user_id == user_id)
            .order_by(TodoTask.sort_order, TodoTask.created_at)
        )
        grouped: Dict[str, List[TodoTask]] = defaultdict(list)
        for task in result.scalars().all():
            grouped[task.category or DEFAULT_CATEGORY].append(task)
        return dict(grouped)

    async def find_children(self, user_id: str, parent_id: str) -> List[TodoTask]:
        result = await self.db.execute(
            select(TodoTask).where(
                TodoTask.user_id == user_id, TodoTask.parent_id == parent_id
            )
        )
        return list(result.scalars().all())

    async def exists_for_source(self, user_id: str, notification_id: str) -> bool:
        result = await self.db.execute(
            select(TodoTask.id)
            .where(
                TodoTask.user_id == user_id,
                TodoTask.source_notification_id == notification_id,
            )
            .limit(1)
        )
        return result.first() is not None

    async def create_task(
        self,
        user_id: str,
        description: str,
        category: Optional[str] = None,
        task_id: Optional[str] = None,
        order: int = 0,
        parent_id: Optional[str] = None,
    ) -> TodoTask:
        if not description or not description.strip():
            raise ValueError("Task description is required")
        if parent_id is not None:
            await self._ensure_parent(user_id, parent_id)

        task = TodoTask(
            id=task_id or str(uuid.uuid4()),
            user_id=user_id,
            description=description,
            category=category,
            completed=False,
            sort_order=order,
            parent_id=parent_id,
        )
        self.db.add(task)
        await self.db.commit()
        return task

    async def update_task(
        self,
        user_id: str,
        task_id: str,
        description: Optional[str] = None,
        completed: Optional[bool] = None,
        order: Optional[int] = None,
    ) -> TodoTask:
        """Only the provided fields change."""
        task = await self.get_task(user_id, task_id)
        if description is not None:
            task.description = description
        if completed is not None:
            task.completed = completed
        if order is not None:
            task.sort_order = order
        await self.db.commit()
        return task

    async def create_from_notification(
        self, user_id: str, notification_id: str, action_item: ActionItem
    ) -> TodoTask:
        """
        Create the root task a notification's action item produces for one user.

        Raises:
            DuplicateTaskError: the user already holds a task from this notification,
                detected up front or by the (user, source) unique constraint
        """
        if await self.exists_for_source(user_id, notification_id):
            raise DuplicateTaskError(user_id, notification_id)

        task = TodoTask(
            id=str(uuid.uuid4()),
            user_id=user_id,
            description=action_item.description,
            category=action_item.category,
            completed=False,
            sort_order=0,
            parent_id=None,
            created_from_notification=True,
            source_notification_id=notification_id,
        )
        self.db.add(task)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateTaskError(user_id, notification_id)
        return task

    async def delete_task(
        self,
        user_id: str,
        task_id: str,
        policy: ChildTaskPolicy = ChildTaskPolicy.REJECT,
        new_parent_id: Optional[str] = None,
    ) -> int:
        """
        Delete a task, handling its children according to `policy`.

        REJECT refuses when children exist, CASCADE removes every descendant,
        REPARENT moves the direct children under `new_parent_id` (None makes them roots).

        Returns:
            Number of tasks deleted
        """
        task = await self.get_task(user_id, task_id)
        children = await self.find_children(user_id, task_id)

        ids_to_delete = [task.id]
        if children:
            if policy == ChildTaskPolicy.REJECT:
                raise OrphanTaskViolationError(task_id, len(children))

            if policy == ChildTaskPolicy.CASCADE:
                ids_to_delete.extend(await self._descendant_ids(user_id, task_id))
            else:
                await self._reparent_children(user_id, task_id, new_parent_id)

        await self.db.execute(delete(TodoTask).where(TodoTask.id.in_(ids_to_delete)))
        await self.db.commit()

        logger.debug(f"Deleted {len(ids_to_delete)} task(s) for user {user_id} starting at {task_id}")
        return len(ids_to_delete)

    async def _reparent_children(
        self, user_id: str, task_id: str, new_parent_id: Optional[str]
    ) -> None:
        if new_parent_id is not None:
            if new_parent_id == task_id:
                raise InvalidParentError(new_parent_id, "A task cannot adopt its own children")
            await self._ensure_parent(user_id, new_parent_id)
            if new_parent_id in await self._descendant_ids(user_id, task_id):
                raise InvalidParentError(
                    new_parent_id, f"Task {new_parent_id} is a descendant of {task_id}"
                )

        await self.db.execute(
            update(TodoTask)
            .where(TodoTask.user_id == user_id, TodoTask.parent_id == task_id)
            .values(parent_id=new_parent_id)
        )

    async def _descendant_ids(self, user_id: str, task_id: str) -> List[str]:
        found: List[str] = []
        frontier = [task_id]
        while frontier:
            result = await self.db.execute(
                select(TodoTask.id).where(
                    TodoTask.user_id == user_id, TodoTask.parent_id.in_(frontier)
                )
            )
            frontier = [child_id for child_id in result.scalars().all() if child_id not in found]
            found.extend(frontier)
        return found

    async def _ensure_parent(self, user_id: str, parent_id: str) -> TodoTask:
        parent = await self.db.get(TodoTask, parent_id)
        if parent is None or parent.user_id != user_id:
            raise InvalidParentError(parent_id)
        return parent
