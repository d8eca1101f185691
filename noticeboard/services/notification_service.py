from datetime import datetime
from typing import Callable, Iterable, List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from noticeboard.config.settings import settings
from noticeboard.db.models import ActionItem, Notification, TodoTask
from noticeboard.schemas.notification_schemas import NotificationItem
from noticeboard.schemas.recurrence_schemas import RecurrenceRule
from noticeboard.services.notification_store import NotificationStore
from noticeboard.services.recurrence_service import RecurrenceService
from noticeboard.services.todo_task_service import TodoTaskService
from noticeboard.services.user_directory import UserDirectory
from noticeboard.utils.datetime_utils import to_naive_utc, utc_now
from noticeboard.utils.errors import (
    DuplicateTaskError,
    NoActionItemError,
    NotificationExpiredError,
    NotificationNotFoundError,
)
from noticeboard.utils.logging import get_logger

logger = get_logger()


class NotificationService:
    """Service for authoring notifications and for per-user reads and actions"""

    def __init__(
        self,
        db_session: AsyncSession,
        user_directory: Optional[UserDirectory] = None,
        recurrence_service: Optional[RecurrenceService] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db_session
        self.store = NotificationStore(db_session)
        self.todo_tasks = TodoTaskService(db_session)
        self.user_directory = user_directory
        self.recurrence = recurrence_service or RecurrenceService()
        self.clock = clock

    async def create_notification(
        self,
        subject: str,
        message_body: str,
        is_global: bool = False,
        target_user_ids: Optional[Iterable[str]] = None,
        expires_at: Optional[datetime] = None,
        recurrence_rule: Union[RecurrenceRule, str, None] = None,
        action_item: Optional[ActionItem] = None,
    ) -> Notification:
        """
        Validate and persist a notification.

        Random recurrence rules get their day drawn here, once. A one-shot
        notification carrying an action item immediately becomes a TODO for
        each of its recipients.

        Raises:
            ValueError: invalid subject, body, targets or recurrence rule
        """
        targets = sorted(set(target_user_ids or []))
        self._validate(subject, message_body, is_global, targets)

        rule = self._prepare_rule(recurrence_rule)
        if action_item is not None and not action_item.description.strip():
            action_item = None

        notification = await self.store.add(
            subject=subject,
            message_body=message_body,
            is_global=is_global,
            target_user_ids=targets,
            expires_at=expires_at,
            recurrence_rule_json=rule.to_json() if rule else None,
            action_item=action_item,
        )

        logger.info(
            "Notification created",
            notification_id=notification.id,
            is_global=is_global,
            target_count=len(targets),
            recurring=rule is not None,
        )

        if rule is None and action_item is not None:
            recipients = await self._recipients(is_global, targets)
            await self._create_immediate_tasks(notification.id, action_item, recipients)

        return notification

    async def get_notifications_for_user(
        self, user_id: str, include_expired: bool = False
    ) -> List[NotificationItem]:
        if include_expired:
            notifications = await self.store.find_all_for_user(user_id)
        else:
            notifications = await self.store.find_non_expired_for_user(user_id, self.clock())

        read_ids = await self.store.find_read_ids(user_id)
        return [
            NotificationItem.from_entity(notification, is_read=notification.id in read_ids)
            for notification in notifications
        ]

    async def get_notification(self, notification_id: str, user_id: str) -> Notification:
        notification = await self.store.get(notification_id)
        if notification is None or notification.deleted:
            raise NotificationNotFoundError(notification_id)
        if not notification.is_global and user_id not in notification.target_user_ids:
            raise NotificationNotFoundError(notification_id)
        return notification

    async def delete_notification(self, notification_id: str) -> None:
        """Soft delete; the row stays until retention cleanup purges it."""
        if not await self.store.soft_delete(notification_id):
            raise NotificationNotFoundError(notification_id)
        logger.info("Notification soft-deleted", notification_id=notification_id)

    async def mark_as_read(self, notification_id: str, user_id: str) -> None:
        await self.get_notification(notification_id, user_id)
        await self.store.set_read(notification_id, user_id, True)

    async def mark_as_unread(self, notification_id: str, user_id: str) -> None:
        await self.get_notification(notification_id, user_id)
        await self.store.set_read(notification_id, user_id, False)

    async def is_read(self, notification_id: str, user_id: str) -> bool:
        state = await self.store.get_state(notification_id, user_id)
        return state is not None and state.read

    async def action_notification(self, notification_id: str, user_id: str) -> TodoTask:
        """
        Turn the notification's action item into a TODO task for one user.

        Raises:
            NotificationNotFoundError: missing, deleted or not visible to the user
            NoActionItemError: nothing to action
            NotificationExpiredError: the notification expired
            DuplicateTaskError: the user already holds a task from it
        """
        notification = await self.get_notification(notification_id, user_id)
        if not notification.has_action_item:
            raise NoActionItemError(notification_id)
        if notification.is_expired(to_naive_utc(self.clock())):
            raise NotificationExpiredError(notification_id)

        task = await self.todo_tasks.create_from_notification(
            user_id, notification_id, notification.action_item
        )
        logger.info(
            "Notification actioned",
            notification_id=notification_id,
            user_id=user_id,
            task_id=task.id,
        )
        return task

    def _validate(
        self, subject: str, message_body: str, is_global: bool, targets: List[str]
    ) -> None:
        if not subject or not subject.strip():
            raise ValueError("Subject is required")
        if len(subject) > settings.SUBJECT_MAX_LENGTH:
            raise ValueError(
                f"Subject must be at most {settings.SUBJECT_MAX_LENGTH} characters"
            )
        if not message_body or not message_body.strip():
            raise ValueError("Message body is required")
        if not is_global and not targets:
            raise ValueError("A non-global notification needs at least one target user")

    def _prepare_rule(
        self, recurrence_rule: Union[RecurrenceRule, str, None]
    ) -> Optional[RecurrenceRule]:
        if recurrence_rule is None:
            return None
        if isinstance(recurrence_rule, str):
            # pydantic's ValidationError is a ValueError
            recurrence_rule = RecurrenceRule.from_json(recurrence_rule)
            if recurrence_rule is None:
                return None
        return self.recurrence.initialize_random_values(recurrence_rule)

    async def _recipients(self, is_global: bool, targets: List[str]) -> List[str]:
        if not is_global:
            return targets
        if self.user_directory is None:
            logger.warning("No user directory configured; global action item not fanned out")
            return []
        return sorted(await self.user_directory.all_user_ids())

    async def _create_immediate_tasks(
        self, notification_id: str, action_item: ActionItem, user_ids: List[str]
    ) -> int:
        created = 0
        for user_id in user_ids:
            try:
                await self.todo_tasks.create_from_notification(user_id, notification_id, action_item)
                created += 1
            except DuplicateTaskError:
                continue
            except Exception as e:
                await self.db.rollback()
                logger.error(
                    "Failed to create task from notification",
                    notification_id=notification_id,
                    user_id=user_id,
                    error=str(e),
                )
        return created
