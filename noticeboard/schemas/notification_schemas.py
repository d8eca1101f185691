from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from noticeboard.db.models import ActionItem, Notification, TodoTask
from noticeboard.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class ActionItemSchema(BaseModel):
    """Transfer representation of the action item embedded in a notification."""

    description: str
    category: Optional[str] = None

    @classmethod
    def from_entity(cls, action_item: Optional[ActionItem]) -> Optional["ActionItemSchema"]:
        if action_item is None:
            return None
        return cls(description=action_item.description, category=action_item.category)

    def to_entity(self) -> ActionItem:
        return ActionItem(self.description, self.category)


def to_action_item(schema: Optional[ActionItemSchema]) -> Optional[ActionItem]:
    return schema.to_entity() if schema is not None else None


class NotificationItem(BaseModel):
    id: str
    subject: str
    message_body: str
    is_global: bool
    target_user_ids: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    recurrence_rule_json: Optional[str] = None
    action_item: Optional[ActionItemSchema] = None
    is_read: bool = False

    @classmethod
    def from_entity(cls, notification: Notification, is_read: bool = False) -> "NotificationItem":
        return cls(
            id=notification.id,
            subject=notification.subject,
            message_body=notification.message_body,
            is_global=notification.is_global,
            target_user_ids=sorted(notification.target_user_ids),
            created_at=notification.created_at,
            expires_at=notification.expires_at,
            recurrence_rule_json=notification.recurrence_rule_json,
            action_item=ActionItemSchema.from_entity(notification.action_item),
            is_read=is_read,
        )


class TodoTaskItem(BaseModel):
    id: str
    user_id: str
    description: str
    category: Optional[str] = None
    completed: bool = False
    order: int = 0
    parent_id: Optional[str] = None
    created_from_notification: bool = False
    source_notification_id: Optional[str] = None

    @classmethod
    def from_entity(cls, task: TodoTask) -> "TodoTaskItem":
        return cls(
            id=task.id,
            user_id=task.user_id,
            description=task.description,
            category=task.category,
            completed=task.completed,
            order=task.sort_order,
            parent_id=task.parent_id,
            created_from_notification=task.created_from_notification,
            source_notification_id=task.source_notification_id,
        )


class CycleResult(BaseModel):
    """Summary of one recurring-action-to-TODO pass."""

    evaluation_date: Optional[date] = None
    candidates_checked: int = 0
    occurrences_processed: int = 0
    tasks_created: int = 0
    tasks_skipped: int = 0
    errors: int = 0
    error_messages: List[str] = Field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors += 1
        self.error_messages.append(message)
