from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from noticeboard.config.settings import settings
from noticeboard.services.notification_store import NotificationStore
from noticeboard.services.occurrence_ledger import OccurrenceLedger
from noticeboard.utils.datetime_utils import retention_cutoff, to_naive_utc, utc_now
from noticeboard.utils.logging import get_logger

logger = get_logger()


class NotificationCleanupService:
    """Hard-deletes notifications that expired longer ago than the retention window."""

    def __init__(self, db_session: AsyncSession, clock: Callable[[], datetime] = utc_now):
        self.db = db_session
        self.clock = clock
        self.store = NotificationStore(db_session)
        self.ledger = OccurrenceLedger(db_session)

    async def count_expired_past_retention(self, cutoff: datetime) -> int:
        return await self.store.count_expired_past_retention(cutoff)

    async def find_expired_past_retention(self, cutoff: datetime) -> List[str]:
        return await self.store.find_expired_past_retention(cutoff)

    async def purge_expired(self, cutoff: datetime) -> int:
        """
        Delete every notification whose expiry lies before `cutoff`.

        Target rows, read states and occurrence ledger entries go with them.
        TODO tasks created from the notifications are kept.

        Returns:
            Number of notifications deleted
        """
        cutoff = to_naive_utc(cutoff)
        count = await self.count_expired_past_retention(cutoff)
        logger.info(
            "Expired notifications past retention",
            cutoff=cutoff.isoformat(),
            count=count,
        )
        if count == 0:
            return 0

        notification_ids = await self.find_expired_past_retention(cutoff)
        try:
            ledger_deleted = await self.ledger.delete_for_notifications(notification_ids)
            deleted = await self.store.hard_delete(notification_ids)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Purged expired notifications",
            deleted=deleted,
            ledger_entries_deleted=ledger_deleted,
        )
        return deleted

    async def cleanup_expired_notifications(
        self, retention_days: Optional[int] = None, now: Optional[datetime] = None
    ) -> int:
        """Purge with `cutoff = now - retention_days` (configured retention by default)."""
        if retention_days is None:
            retention_days = settings.NOTIFICATION_RETENTION_DAYS
        if retention_days < 0:
            raise ValueError("retention_days must not be negative")
        cutoff = retention_cutoff(now or self.clock(), retention_days)
        return await self.purge_expired(cutoff)
