from datetime import date


class DatabaseError(Exception):
    """Custom exception for database-related errors."""

    def __init__(self, message: str, error_code: str = "DB_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class StorageUnavailableError(DatabaseError):
    """The store could not be reached or a statement failed outside a per-user unit of work."""

    def __init__(
        self, message: str = "Storage unavailable", error_code: str = "STORAGE_UNAVAILABLE"
    ):
        super().__init__(message, error_code)


class BusinessLogicError(Exception):
    """Custom exception for business logic errors."""

    def __init__(self, message: str, error_code: str = "BLOC_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class NotFoundError(Exception):
    """Custom exception for resource not found errors."""

    def __init__(
        self, message: str = "Resource not found", error_code: str = "NOT_FOUND"
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class NotificationNotFoundError(NotFoundError):
    def __init__(self, notification_id: str):
        super().__init__(
            f"Notification not found or not accessible: {notification_id}",
            "NOTIFICATION_NOT_FOUND",
        )
        self.notification_id = notification_id


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str):
        super().__init__(f"TODO task not found: {task_id}", "TASK_NOT_FOUND")
        self.task_id = task_id


class AlreadyProcessedError(BusinessLogicError):
    """
    The (notification, occurrence date) pair is already in the ledger.

    Expected outcome of a lost race or a repeated run; callers treat it as a no-op.
    """

    def __init__(self, notification_id: str, occurrence_date: date):
        super().__init__(
            f"Occurrence {occurrence_date.isoformat()} of notification {notification_id} already processed",
            "ALREADY_PROCESSED",
        )
        self.notification_id = notification_id
        self.occurrence_date = occurrence_date


class DuplicateTaskError(BusinessLogicError):
    """A TODO task already exists for (user, source notification)."""

    def __init__(self, user_id: str, notification_id: str):
        super().__init__(
            f"User {user_id} already has a task from notification {notification_id}",
            "DUPLICATE_TASK",
        )
        self.user_id = user_id
        self.notification_id = notification_id


class OrphanTaskViolationError(BusinessLogicError):
    """Deleting the task would leave children pointing at a missing parent."""

    def __init__(self, task_id: str, child_count: int):
        super().__init__(
            f"Task {task_id} still has {child_count} child task(s); cascade or re-parent them first",
            "ORPHAN_TASK_VIOLATION",
        )
        self.task_id = task_id
        self.child_count = child_count


class InvalidParentError(BusinessLogicError):
    def __init__(self, parent_id: str, message: str = ""):
        super().__init__(
            message or f"Parent task {parent_id} does not exist for this user",
            "INVALID_PARENT",
        )
        self.parent_id = parent_id


class NoActionItemError(BusinessLogicError):
    def __init__(self, notification_id: str):
        super().__init__(
            f"Notification {notification_id} does not have an action item",
            "NO_ACTION_ITEM",
        )
        self.notification_id = notification_id


class NotificationExpiredError(BusinessLogicError):
    def __init__(self, notification_id: str):
        super().__init__(
            f"Cannot action expired notification {notification_id}",
            "NOTIFICATION_EXPIRED",
        )
        self.notification_id = notification_id
