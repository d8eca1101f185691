import pytest
from typing import AsyncGenerator, List
from unittest.mock import Mock

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from noticeboard.db.models import ActionItem, Base, Notification, User
from noticeboard.schemas.recurrence_schemas import RecurrenceRule, RecurrenceType
from noticeboard.services.notification_store import NotificationStore
from noticeboard.services.user_directory import StaticUserDirectory


# Test database setup
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """Create a fresh in-memory database engine for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async_session_maker = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def file_session_maker(tmp_path):
    """
    Session factory on a file-backed SQLite database.

    Unlike the StaticPool engine, every session gets its own connection,
    so concurrent writers really contend on the database.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def mock_celery_task():
    """Mock Celery task for testing retry behavior."""
    mock_task = Mock()
    mock_task.request.retries = 0
    mock_task.max_retries = 3
    mock_task.retry = Mock(side_effect=Exception("Retry called"))
    return mock_task


# Test data factories
@pytest_asyncio.fixture
async def sample_users(db_session: AsyncSession) -> List[User]:
    """Two active users and one deactivated user."""
    users = [
        User(id="u1", username="alice@example.com", is_active=True),
        User(id="u2", username="bob@example.com", is_active=True),
        User(id="u3", username="carol@example.com", is_active=False),
    ]
    db_session.add_all(users)
    await db_session.commit()
    return users


@pytest.fixture
def user_directory() -> StaticUserDirectory:
    return StaticUserDirectory(["u1", "u2"])


@pytest.fixture
def daily_rule() -> RecurrenceRule:
    return RecurrenceRule(type=RecurrenceType.DAILY)


@pytest.fixture
def make_notification(db_session: AsyncSession):
    """Factory persisting a notification through the store."""
    store = NotificationStore(db_session)

    async def _make(
        subject: str = "Team update",
        message_body: str = "Please read",
        is_global: bool = False,
        target_user_ids=None,
        expires_at=None,
        recurrence_rule=None,
        action_item=None,
    ) -> Notification:
        if isinstance(recurrence_rule, RecurrenceRule):
            recurrence_rule = recurrence_rule.to_json()
        return await store.add(
            subject=subject,
            message_body=message_body,
            is_global=is_global,
            target_user_ids=target_user_ids,
            expires_at=expires_at,
            recurrence_rule_json=recurrence_rule,
            action_item=action_item,
        )

    return _make


@pytest_asyncio.fixture
async def recurring_targeted_notification(make_notification, daily_rule) -> Notification:
    """Daily recurring notification targeted at u1 with an action item."""
    return await make_notification(
        subject="Submit timesheet",
        target_user_ids=["u1"],
        recurrence_rule=daily_rule,
        action_item=ActionItem("Submit your timesheet", "admin"),
    )
