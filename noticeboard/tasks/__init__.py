from .cron import *

__all__ = [
    # Scheduled/Cron Tasks
    "recurring_action_todo_processor_task",
    "notification_cleanup_task",
]
