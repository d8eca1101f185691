from typing import Iterable, Protocol, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from noticeboard.db.models import User


class UserDirectory(Protocol):
    """Resolves every known user for global notification fan-out."""

    async def all_user_ids(self) -> Set[str]: ...


class SqlUserDirectory:
    """Active rows of the users table."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def all_user_ids(self) -> Set[str]:
        result = await self.db.execute(select(User.id).where(User.is_active.is_(True)))
        return set(result.scalars().all())


class StaticUserDirectory:
    """Fixed user set, for tests and single-tenant deployments without a users table."""

    def __init__(self, user_ids: Iterable[str]):
        self._user_ids = set(user_ids)

    async def all_user_ids(self) -> Set[str]:
        return set(self._user_ids)
