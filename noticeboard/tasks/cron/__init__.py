from .notification_cleanup import notification_cleanup_task
from .recurring_action_todo_processor import recurring_action_todo_processor_task

__all__ = [
    "recurring_action_todo_processor_task",
    "notification_cleanup_task",
]
