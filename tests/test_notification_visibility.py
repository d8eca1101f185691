from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from noticeboard.db.models import ActionItem
from noticeboard.services.notification_store import NotificationStore

NOW = datetime(2024, 1, 10, 9, 0)


class TestVisibilityViews:
    """Test global/targeted visibility and the expiry filter."""

    @pytest.mark.asyncio
    async def test_global_and_targeted_union(self, db_session: AsyncSession, make_notification):
        store = NotificationStore(db_session)
        global_notification = await make_notification(subject="Global", is_global=True)
        mine = await make_notification(subject="Mine", target_user_ids=["u1", "u2"])
        other = await make_notification(subject="Other", target_user_ids=["u2"])

        visible = {n.id for n in await store.find_all_for_user("u1")}

        assert visible == {global_notification.id, mine.id}
        assert other.id not in visible

    @pytest.mark.asyncio
    async def test_targeted_notification_without_targets_is_invisible(
        self, db_session: AsyncSession, make_notification
    ):
        store = NotificationStore(db_session)
        orphan = await make_notification(subject="Nobody", target_user_ids=[])

        for user_id in ("u1", "u2", "anyone"):
            ids = {n.id for n in await store.find_all_for_user(user_id)}
            assert orphan.id not in ids

    @pytest.mark.asyncio
    async def test_deleted_notifications_are_hidden(
        self, db_session: AsyncSession, make_notification
    ):
        store = NotificationStore(db_session)
        global_notification = await make_notification(is_global=True)
        targeted = await make_notification(target_user_ids=["u1"])

        await store.soft_delete(global_notification.id)
        await store.soft_delete(targeted.id)

        assert await store.find_all_for_user("u1") == []
        assert await store.find_global_not_deleted() == []
        assert await store.find_targeting_user("u1") == []

    @pytest.mark.asyncio
    async def test_non_expired_filter_is_layered_on_all_for_user(
        self, db_session: AsyncSession, make_notification
    ):
        store = NotificationStore(db_session)
        no_expiry = await make_notification(is_global=True)
        future = await make_notification(is_global=True, expires_at=NOW + timedelta(days=1))
        past = await make_notification(target_user_ids=["u1"], expires_at=NOW - timedelta(days=1))
        # Expiring exactly now counts as expired
        boundary = await make_notification(target_user_ids=["u1"], expires_at=NOW)

        all_ids = {n.id for n in await store.find_all_for_user("u1")}
        live_ids = {n.id for n in await store.find_non_expired_for_user("u1", NOW)}

        assert all_ids == {no_expiry.id, future.id, past.id, boundary.id}
        assert live_ids == {no_expiry.id, future.id}
        assert live_ids <= all_ids

    @pytest.mark.asyncio
    async def test_global_notification_ignores_target_ids(
        self, db_session: AsyncSession, make_notification
    ):
        notification = await make_notification(is_global=True, target_user_ids=["u1"])

        assert notification.target_user_ids == set()
        store = NotificationStore(db_session)
        assert [n.id for n in await store.find_global_not_deleted()] == [notification.id]
        assert await store.find_targeting_user("u1") == []


class TestRecurringCandidates:
    """Test the engine's candidate query."""

    @pytest.mark.asyncio
    async def test_candidates_need_rule_action_and_no_expiry(
        self, db_session: AsyncSession, make_notification, daily_rule
    ):
        store = NotificationStore(db_session)
        action = ActionItem("Do it", None)
        candidate = await make_notification(
            target_user_ids=["u1"], recurrence_rule=daily_rule, action_item=action
        )
        await make_notification(target_user_ids=["u1"], recurrence_rule=daily_rule)
        await make_notification(target_user_ids=["u1"], action_item=action)
        await make_notification(
            target_user_ids=["u1"], recurrence_rule=daily_rule, action_item=ActionItem("   ")
        )
        await make_notification(
            target_user_ids=["u1"],
            recurrence_rule=daily_rule,
            action_item=action,
            expires_at=NOW - timedelta(minutes=1),
        )
        deleted = await make_notification(
            target_user_ids=["u1"], recurrence_rule=daily_rule, action_item=action
        )
        await store.soft_delete(deleted.id)

        candidates = await store.find_active_recurring_candidates(NOW)

        assert [c.id for c in candidates] == [candidate.id]
