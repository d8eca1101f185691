from datetime import date, datetime
from typing import Callable, List, NamedTuple, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from noticeboard.config.settings import settings
from noticeboard.db.models import ActionItem, Notification
from noticeboard.schemas.notification_schemas import CycleResult
from noticeboard.services.notification_store import NotificationStore
from noticeboard.services.occurrence_ledger import OccurrenceLedger
from noticeboard.services.recurrence_service import RecurrenceService
from noticeboard.services.todo_task_service import TodoTaskService
from noticeboard.services.user_directory import UserDirectory
from noticeboard.utils.datetime_utils import local_date, utc_now
from noticeboard.utils.errors import (
    AlreadyProcessedError,
    DuplicateTaskError,
    StorageUnavailableError,
)
from noticeboard.utils.logging import get_logger

logger = get_logger()


class _Candidate(NamedTuple):
    # Plain values: a per-user rollback expires every ORM instance in the session
    notification_id: str
    is_global: bool
    target_user_ids: Set[str]
    recurrence_rule_json: str
    action_item: ActionItem

    @classmethod
    def from_notification(cls, notification: Notification) -> "_Candidate":
        return cls(
            notification_id=notification.id,
            is_global=notification.is_global,
            target_user_ids=notification.target_user_ids,
            recurrence_rule_json=notification.recurrence_rule_json,
            action_item=notification.action_item,
        )


class RecurringActionTodoService:
    """
    Turns occurrences of recurring notifications into TODO tasks.

    One cycle evaluates every active recurring notification with an action item
    against the business-local date of the evaluation instant. Each occurrence
    is claimed in the occurrence ledger before any task is created, so two
    cycles racing over the same day create at most one set of tasks.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        user_directory: UserDirectory,
        recurrence_service: Optional[RecurrenceService] = None,
        clock: Callable[[], datetime] = utc_now,
        timezone: Optional[str] = None,
    ):
        self.db = db_session
        self.user_directory = user_directory
        self.recurrence = recurrence_service or RecurrenceService()
        self.clock = clock
        self.timezone = timezone or settings.TIMEZONE
        self.store = NotificationStore(db_session)
        self.ledger = OccurrenceLedger(db_session)
        self.todo_tasks = TodoTaskService(db_session)

    async def run_cycle(self, evaluation_instant: Optional[datetime] = None) -> CycleResult:
        """
        Process every occurrence falling on the local date of `evaluation_instant`.

        Raises:
            StorageUnavailableError: the store failed outside a per-user unit of work
        """
        instant = evaluation_instant or self.clock()
        occurrence_date = local_date(instant, self.timezone)
        result = CycleResult(evaluation_date=occurrence_date)

        try:
            notifications = await self.store.find_active_recurring_candidates(instant)
            candidates = [_Candidate.from_notification(n) for n in notifications]
            result.candidates_checked = len(candidates)

            logger.info(
                "Starting recurring action cycle",
                occurrence_date=occurrence_date.isoformat(),
                candidate_count=len(candidates),
            )

            for candidate in candidates:
                await self._process_candidate(candidate, occurrence_date, result)
        except SQLAlchemyError as e:
            logger.error(
                "Recurring action cycle aborted: storage unavailable",
                occurrence_date=occurrence_date.isoformat(),
                error=str(e),
            )
            raise StorageUnavailableError(f"Recurring action cycle aborted: {e}") from e

        logger.info(
            "Recurring action cycle completed",
            occurrence_date=occurrence_date.isoformat(),
            occurrences_processed=result.occurrences_processed,
            tasks_created=result.tasks_created,
            tasks_skipped=result.tasks_skipped,
            errors=result.errors,
        )
        return result

    async def _process_candidate(
        self, candidate: _Candidate, occurrence_date: date, result: CycleResult
    ) -> None:
        if not self.recurrence.is_occurrence(candidate.recurrence_rule_json, occurrence_date):
            return

        try:
            await self.ledger.record_processed(candidate.notification_id, occurrence_date)
        except AlreadyProcessedError:
            return

        result.occurrences_processed += 1

        for user_id in await self.resolve_target_users(candidate):
            await self._create_task_for_user(candidate, user_id, result)

        await self.store.reset_read_states(candidate.notification_id)

    async def resolve_target_users(self, candidate: _Candidate) -> List[str]:
        """Every active user for global notifications, the explicit targets otherwise."""
        if candidate.is_global:
            user_ids = await self.user_directory.all_user_ids()
        else:
            user_ids = candidate.target_user_ids
        return sorted(user_ids)

    async def _create_task_for_user(
        self, candidate: _Candidate, user_id: str, result: CycleResult
    ) -> None:
        try:
            await self.todo_tasks.create_from_notification(
                user_id, candidate.notification_id, candidate.action_item
            )
            result.tasks_created += 1
        except DuplicateTaskError:
            result.tasks_skipped += 1
        except Exception as e:
            # The occurrence stays recorded; the user is not retried
            await self.db.rollback()
            message = (
                f"Failed to create task for user {user_id} "
                f"from notification {candidate.notification_id}: {e}"
            )
            logger.error(
                "Failed to create recurring task",
                notification_id=candidate.notification_id,
                user_id=user_id,
                error=str(e),
            )
            result.add_error(message)
