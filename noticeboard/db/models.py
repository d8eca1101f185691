from typing import List, NamedTuple, Optional, Set
from datetime import datetime, date
import uuid

from sqlalchemy import (
    String,
    Boolean,
    Integer,
    Text,
    ForeignKey,
    Index,
    func,
    UniqueConstraint,
    CheckConstraint,
    DateTime,
    Date,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from noticeboard.utils.datetime_utils import naive_utc_now


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=naive_utc_now,
        server_default=func.now(),
        onupdate=naive_utc_now,
    )


# Models
class User(Base, AuditMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    username: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class ActionItem(NamedTuple):
    """Action item embedded in a notification; becomes a TODO task when actioned."""

    description: str
    category: Optional[str] = None


class Notification(Base, AuditMixin):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    message_body: Mapped[str] = mapped_column(Text, nullable=False)
    is_global: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    # JSON stored as Text - parsed by the recurrence service
    recurrence_rule_json: Mapped[Optional[str]] = mapped_column(Text)
    # Embedded action item
    action_description: Mapped[Optional[str]] = mapped_column(Text)
    action_category: Mapped[Optional[str]] = mapped_column(String(100))

    # Relationships
    targets: Mapped[List["NotificationTargetUser"]] = relationship(
        back_populates="notification",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_notif_global_deleted", "is_global", "deleted"),
        Index("idx_notif_expires_at", "expires_at"),
    )

    @property
    def target_user_ids(self) -> Set[str]:
        return {target.user_id for target in self.targets}

    @property
    def action_item(self) -> Optional[ActionItem]:
        if self.action_description is None:
            return None
        return ActionItem(self.action_description, self.action_category)

    @action_item.setter
    def action_item(self, value: Optional[ActionItem]) -> None:
        self.action_description = value.description if value else None
        self.action_category = value.category if value else None

    @property
    def has_action_item(self) -> bool:
        return bool(self.action_description and self.action_description.strip())

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class NotificationTargetUser(Base):
    __tablename__ = "notification_target_users"

    notification_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("notifications.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    notification: Mapped["Notification"] = relationship(back_populates="targets")

    __table_args__ = (Index("idx_notif_target_user", "user_id"),)


class ProcessedOccurrence(Base):
    __tablename__ = "processed_occurrences"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    notification_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("notifications.id", ondelete="CASCADE"),
        nullable=False,
    )
    occurrence_date: Mapped[date] = mapped_column(Date, nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "notification_id",
            "occurrence_date",
            name="uq_processed_occurrence_notification_date",
        ),
    )


class TodoTask(Base, AuditMixin):
    __tablename__ = "todo_tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("todo_tasks.id", ondelete="NO ACTION")
    )
    # Back-reference only; tasks outlive a purged notification
    source_notification_id: Mapped[Optional[str]] = mapped_column(String(36))
    created_from_notification: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "source_notification_id",
            name="uq_todo_task_user_source",
        ),
        CheckConstraint(
            "parent_id IS NULL OR parent_id <> id",
            name="ck_todo_task_not_own_parent",
        ),
        Index("idx_todo_task_user_parent", "user_id", "parent_id"),
        Index("idx_todo_task_user_category", "user_id", "category"),
    )


class UserNotificationState(Base, AuditMixin):
    __tablename__ = "user_notification_states"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    notification_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("notifications.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        UniqueConstraint(
            "notification_id", "user_id", name="uq_user_notification_state"
        ),
    )
