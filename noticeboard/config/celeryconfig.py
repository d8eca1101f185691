from celery.schedules import crontab
from .settings import settings

# Basic Celery Configuration
broker_url = settings.redis_url
result_backend = settings.redis_url

# Task Discovery
include = ["noticeboard.tasks"]

# Timezone Configuration
timezone = settings.TIMEZONE
enable_utc = True

# Task Result Configuration
result_expires = 3600

# Task Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

# Task Execution Configuration
task_track_started = True
task_time_limit = 30 * 60  # 30 minutes
task_soft_time_limit = 25 * 60  # 25 minutes

# Worker Configuration
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Task Retry Configuration
task_acks_late = True
task_reject_on_worker_lost = True
task_default_retry_delay = 60  # 60 seconds
task_max_retries = 3

# Exponential Backoff Settings
task_retry_backoff = True
task_retry_backoff_max = 600
task_retry_jitter = False

# Both jobs run once a day in the configured business time zone
beat_schedule = {
    "recurring-action-todo-processor": {
        "task": "noticeboard.tasks.cron.recurring_action_todo_processor.recurring_action_todo_processor_task",
        "schedule": crontab(
            hour=settings.RECURRING_TODO_CRON_HOUR,
            minute=settings.RECURRING_TODO_CRON_MINUTE,
        ),
        "args": ("recurring_action_todo_cron",),
    },
    "notification-cleanup": {
        "task": "noticeboard.tasks.cron.notification_cleanup.notification_cleanup_task",
        "schedule": crontab(
            hour=settings.NOTIFICATION_CLEANUP_CRON_HOUR,
            minute=settings.NOTIFICATION_CLEANUP_CRON_MINUTE,
        ),
        "args": ("notification_cleanup_cron",),
    },
}

# Default Queue
task_default_queue = "noticeboard"

# Beat Scheduler Configuration
beat_schedule_filename = "tmp/celerybeat-schedule"
