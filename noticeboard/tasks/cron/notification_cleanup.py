import asyncio

from noticeboard.celery import celery
from noticeboard.config.settings import settings
from noticeboard.db.session import get_async_session
from noticeboard.services.notification_cleanup_service import NotificationCleanupService
from noticeboard.utils.datetime_utils import retention_cutoff, utc_now
from noticeboard.utils.context import job_context
from noticeboard.utils.logging import get_logger


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def notification_cleanup_task(self, request_id: str):
    """
    Daily task hard-deleting notifications expired for longer than the retention period.

    Notifications without an expiry are never purged. Target rows, read states and
    occurrence ledger entries are deleted with the notification; TODO tasks stay.

    Args:
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    with job_context(request_id):
        return asyncio.run(_async_notification_cleanup(self, request_id))


async def _async_notification_cleanup(task, request_id: str):
    logger = get_logger().bind(request_id=request_id)

    try:
        retention_days = settings.NOTIFICATION_RETENTION_DAYS
        cutoff = retention_cutoff(utc_now(), retention_days)

        async with get_async_session() as db_session:
            service = NotificationCleanupService(db_session)
            deleted_count = await service.purge_expired(cutoff)

        logger.info(
            f"Notification cleanup completed: {deleted_count} notification(s) older than {retention_days} days purged"
        )

        return {
            "success": True,
            "deleted_count": deleted_count,
            "retention_days": retention_days,
            "cutoff": cutoff.isoformat(),
            "request_id": request_id,
        }

    except Exception as e:
        logger.error(f"Notification cleanup task exception: {str(e)}")

        if task.request.retries < task.max_retries:
            retry_delay = min(2**task.request.retries * 60, 600)
            raise task.retry(countdown=retry_delay)

        return {"success": False, "error": str(e), "request_id": request_id}
