import uuid
from datetime import date
from typing import List, Sequence

from sqlalchemy import delete, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from noticeboard.db.models import ProcessedOccurrence
from noticeboard.utils.datetime_utils import naive_utc_now
from noticeboard.utils.errors import AlreadyProcessedError
from noticeboard.utils.logging import get_logger

logger = get_logger()

_UPSERT_INSERTS = {"sqlite": sqlite_insert, "postgresql": pg_insert}


class OccurrenceLedger:
    """
    Append-only record of processed (notification, occurrence date) pairs.

    The unique constraint on the pair is the only synchronization point between
    concurrent engine runs: exactly one insert per pair can succeed.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def has_processed(self, notification_id: str, occurrence_date: date) -> bool:
        result = await self.db.execute(
            select(ProcessedOccurrence.id)
            .where(
                ProcessedOccurrence.notification_id == notification_id,
                ProcessedOccurrence.occurrence_date == occurrence_date,
            )
            .limit(1)
        )
        return result.first() is not None

    async def record_processed(
        self, notification_id: str, occurrence_date: date
    ) -> ProcessedOccurrence:
        """
        Insert the ledger entry if absent and commit it on its own.

        Raises:
            AlreadyProcessedError: another run (or an earlier one) owns this occurrence
        """
        values = {
            "id": str(uuid.uuid4()),
            "notification_id": notification_id,
            "occurrence_date": occurrence_date,
            "processed_at": naive_utc_now(),
        }

        dialect_name = self.db.get_bind().dialect.name
        upsert = _UPSERT_INSERTS.get(dialect_name)

        try:
            if upsert is not None:
                stmt = upsert(ProcessedOccurrence).values(**values).on_conflict_do_nothing(
                    index_elements=["notification_id", "occurrence_date"]
                )
                result = await self.db.execute(stmt)
                inserted = result.rowcount == 1
            else:
                await self.db.execute(insert(ProcessedOccurrence).values(**values))
                inserted = True
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            inserted = False

        if not inserted:
            logger.debug(
                f"Occurrence {occurrence_date.isoformat()} of notification {notification_id} already in ledger"
            )
            raise AlreadyProcessedError(notification_id, occurrence_date)

        logger.debug(
            f"Recorded occurrence {occurrence_date.isoformat()} for notification {notification_id}"
        )
        entry = await self.db.get(ProcessedOccurrence, values["id"])
        return entry

    async def find_for_notification(self, notification_id: str) -> List[ProcessedOccurrence]:
        result = await self.db.execute(
            select(ProcessedOccurrence)
            .where(ProcessedOccurrence.notification_id == notification_id)
            .order_by(ProcessedOccurrence.occurrence_date)
        )
        return list(result.scalars().all())

    async def delete_for_notifications(self, notification_ids: Sequence[str]) -> int:
        """Remove ledger entries of purged notifications. The caller commits."""
        if not notification_ids:
            return 0
        result = await self.db.execute(
            delete(ProcessedOccurrence).where(
                ProcessedOccurrence.notification_id.in_(list(notification_ids))
            )
        )
        return result.rowcount or 0
