from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Set

from sqlalchemy import Select, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from noticeboard.db.models import (
    ActionItem,
    Notification,
    NotificationTargetUser,
    UserNotificationState,
)
from noticeboard.utils.datetime_utils import naive_utc_now, to_naive_utc
from noticeboard.utils.logging import get_logger

logger = get_logger()


class NotificationStore:
    """Persistence operations and predicate queries for notifications."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def add(
        self,
        subject: str,
        message_body: str,
        is_global: bool,
        target_user_ids: Optional[Iterable[str]] = None,
        expires_at: Optional[datetime] = None,
        recurrence_rule_json: Optional[str] = None,
        action_item: Optional[ActionItem] = None,
    ) -> Notification:
        """Persist a new notification. Target ids are ignored for global notifications."""
        targets = [] if is_global else sorted(set(target_user_ids or []))
        notification = Notification(
            subject=subject,
            message_body=message_body,
            is_global=is_global,
            expires_at=to_naive_utc(expires_at) if expires_at else None,
            recurrence_rule_json=recurrence_rule_json,
            action_item=action_item,
            targets=[NotificationTargetUser(user_id=user_id) for user_id in targets],
        )
        self.db.add(notification)
        await self.db.commit()
        await self.db.refresh(notification)
        return notification

    async def get(self, notification_id: str) -> Optional[Notification]:
        return await self.db.get(Notification, notification_id)

    async def soft_delete(self, notification_id: str) -> bool:
        notification = await self.get(notification_id)
        if notification is None:
            return False
        notification.deleted = True
        await self.db.commit()
        return True

    # Visibility views

    def _visible_to_user(self, user_id: str) -> Select:
        targeted = select(NotificationTargetUser.notification_id).where(
            NotificationTargetUser.user_id == user_id
        )
        return (
            select(Notification)
            .where(
                Notification.deleted.is_(False),
                or_(Notification.is_global.is_(True), Notification.id.in_(targeted)),
            )
            .order_by(Notification.created_at.desc(), Notification.id)
        )

    async def find_global_not_deleted(self) -> List[Notification]:
        result = await self.db.execute(
            select(Notification).where(
                Notification.is_global.is_(True), Notification.deleted.is_(False)
            )
        )
        return list(result.scalars().all())

    async def find_targeting_user(self, user_id: str) -> List[Notification]:
        result = await self.db.execute(
            select(Notification)
            .join(NotificationTargetUser)
            .where(
                NotificationTargetUser.user_id == user_id,
                Notification.deleted.is_(False),
            )
        )
        return list(result.scalars().all())

    async def find_all_for_user(self, user_id: str) -> List[Notification]:
        """Global and targeted notifications, expired ones included."""
        result = await self.db.execute(self._visible_to_user(user_id))
        return list(result.scalars().all())

    async def find_non_expired_for_user(self, user_id: str, now: datetime) -> List[Notification]:
        """All-for-user narrowed to `expires_at IS NULL OR expires_at > now`."""
        result = await self.db.execute(
            self._visible_to_user(user_id).where(_not_expired(to_naive_utc(now)))
        )
        return list(result.scalars().all())

    # Per-user read state

    async def get_state(self, notification_id: str, user_id: str) -> Optional[UserNotificationState]:
        result = await self.db.execute(
            select(UserNotificationState).where(
                UserNotificationState.notification_id == notification_id,
                UserNotificationState.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create_state(self, notification_id: str, user_id: str) -> UserNotificationState:
        state = await self.get_state(notification_id, user_id)
        if state is None:
            state = UserNotificationState(
                notification_id=notification_id, user_id=user_id, read=False
            )
            self.db.add(state)
            await self.db.flush()
        return state

    async def set_read(self, notification_id: str, user_id: str, read: bool) -> UserNotificationState:
        state = await self.get_or_create_state(notification_id, user_id)
        state.read = read
        state.read_at = naive_utc_now() if read else None
        await self.db.commit()
        return state

    async def find_read_ids(self, user_id: str) -> Set[str]:
        result = await self.db.execute(
            select(UserNotificationState.notification_id).where(
                UserNotificationState.user_id == user_id,
                UserNotificationState.read.is_(True),
            )
        )
        return set(result.scalars().all())

    async def reset_read_states(self, notification_id: str) -> int:
        """Mark the notification unread for everyone who has a state row."""
        result = await self.db.execute(
            update(UserNotificationState)
            .where(UserNotificationState.notification_id == notification_id)
            .values(read=False, read_at=None)
        )
        await self.db.commit()
        return result.rowcount or 0

    # Engine and cleanup queries

    async def find_active_recurring_candidates(self, now: datetime) -> List[Notification]:
        """Not deleted, recurring, with a non-blank action item, and not expired at `now`."""
        result = await self.db.execute(
            select(Notification)
            .where(
                and_(
                    Notification.deleted.is_(False),
                    Notification.recurrence_rule_json.is_not(None),
                    Notification.action_description.is_not(None),
                    func.trim(Notification.action_description) != "",
                    _not_expired(to_naive_utc(now)),
                )
            )
            .order_by(Notification.created_at, Notification.id)
        )
        return list(result.scalars().all())

    async def find_expired_past_retention(self, retention_cutoff: datetime) -> List[str]:
        result = await self.db.execute(
            select(Notification.id).where(_expired_before(to_naive_utc(retention_cutoff)))
        )
        return list(result.scalars().all())

    async def count_expired_past_retention(self, retention_cutoff: datetime) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id)).where(
                _expired_before(to_naive_utc(retention_cutoff))
            )
        )
        return result.scalar() or 0

    async def hard_delete(self, notification_ids: Sequence[str]) -> int:
        """
        Physically remove notifications with their target rows and read states.
        The caller commits.
        """
        if not notification_ids:
            return 0
        ids = list(notification_ids)
        await self.db.execute(
            delete(UserNotificationState).where(UserNotificationState.notification_id.in_(ids))
        )
        await self.db.execute(
            delete(NotificationTargetUser).where(NotificationTargetUser.notification_id.in_(ids))
        )
        result = await self.db.execute(
            delete(Notification).where(Notification.id.in_(ids))
        )
        return result.rowcount or 0


def _not_expired(now: datetime):
    return or_(Notification.expires_at.is_(None), Notification.expires_at > now)


def _expired_before(cutoff: datetime):
    return and_(Notification.expires_at.is_not(None), Notification.expires_at < cutoff)
