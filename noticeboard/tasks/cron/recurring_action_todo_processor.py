import asyncio

from noticeboard.celery import celery
from noticeboard.db.session import get_async_session
from noticeboard.services.recurring_action_todo_service import RecurringActionTodoService
from noticeboard.services.user_directory import SqlUserDirectory
from noticeboard.utils.datetime_utils import utc_now
from noticeboard.utils.context import job_context
from noticeboard.utils.logging import get_logger


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def recurring_action_todo_processor_task(self, request_id: str):
    """
    Daily task turning occurrences of recurring notifications into TODO tasks.

    Runs once a day (see the beat schedule) to:
    1. Find non-deleted, non-expired recurring notifications with an action item
    2. Evaluate each recurrence rule against today's business-local date
    3. Claim the occurrence in the occurrence ledger (a claimed occurrence is skipped)
    4. Create one root TODO task per target user who does not already hold one
    5. Reset the notification's read states so it shows as unread again

    Running it twice on the same day creates nothing the second time.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    with job_context(request_id):
        return asyncio.run(_async_recurring_action_todo_processor(self, request_id))


async def _async_recurring_action_todo_processor(task, request_id: str):
    logger = get_logger().bind(request_id=request_id)

    try:
        async with get_async_session() as db_session:
            service = RecurringActionTodoService(
                db_session, user_directory=SqlUserDirectory(db_session)
            )
            result = await service.run_cycle(utc_now())

        logger.info(
            f"Recurring action TODO processor completed: {result.occurrences_processed} occurrence(s), "
            f"{result.tasks_created} created, {result.tasks_skipped} skipped, {result.errors} error(s)"
        )

        return {
            "success": True,
            "evaluation_date": result.evaluation_date.isoformat(),
            "candidates_checked": result.candidates_checked,
            "occurrences_processed": result.occurrences_processed,
            "tasks_created": result.tasks_created,
            "tasks_skipped": result.tasks_skipped,
            "errors": result.errors,
            "error_messages": result.error_messages,
            "request_id": request_id,
        }

    except Exception as e:
        logger.error(f"Recurring action TODO processor exception: {str(e)}")

        # Retry with exponential backoff for transient errors
        if task.request.retries < task.max_retries:
            retry_delay = min(2**task.request.retries * 60, 600)  # Cap at 10 minutes
            raise task.retry(countdown=retry_delay)

        return {"success": False, "error": str(e), "request_id": request_id}
