"""
Tests for cart sync across authentication changes
"""

from datetime import timedelta

import pytest

from storefront.cart import AuthTransition, CartAuthSync


@pytest.fixture
def auth(coordinator):
    return CartAuthSync(coordinator)


class TestTransitions:
    """Login, logout and account switch."""

    @pytest.mark.asyncio
    async def test_login_with_empty_cart_pulls(self, auth, api):
        assert await auth.handle_auth_change("user-123") == AuthTransition.LOGIN
        assert api.calls == [("pull", [])]

    @pytest.mark.asyncio
    async def test_login_with_items_schedules_merge(self, auth, coordinator, store, api, product):
        store.add_item("P1", 2, product)

        assert await auth.handle_auth_change("user-123") == AuthTransition.LOGIN
        assert coordinator.has_pending is True
        assert api.calls == []

        await coordinator._pending

        assert api.calls == [("merge", [("P1", 2)])]

    @pytest.mark.asyncio
    async def test_same_user_again_is_unchanged(self, auth, api):
        await auth.handle_auth_change("user-123")

        assert await auth.handle_auth_change("user-123") == AuthTransition.UNCHANGED
        assert await auth.handle_auth_change(None) == AuthTransition.LOGOUT
        assert await auth.handle_auth_change(None) == AuthTransition.UNCHANGED
        assert api.calls == [("pull", [])]

    @pytest.mark.asyncio
    async def test_logout_pushes_items(self, auth, store, api, product):
        await auth.handle_auth_change("user-123")
        store.add_item("P1", 1, product)

        assert await auth.handle_auth_change(None) == AuthTransition.LOGOUT
        assert api.calls[-1] == ("local_to_db", [("P1", 1)])
        assert auth.current_user is None

    @pytest.mark.asyncio
    async def test_logout_with_empty_cart_skips_push(self, auth, api):
        await auth.handle_auth_change("user-123")
        await auth.handle_auth_change(None)

        assert api.calls == [("pull", [])]

    @pytest.mark.asyncio
    async def test_logout_cancels_pending_merge(self, auth, coordinator, store, api, product):
        store.add_item("P1", 1, product)
        await auth.handle_auth_change("user-123")

        await auth.handle_auth_change(None)

        assert coordinator.has_pending is False
        assert api.calls == [("local_to_db", [("P1", 1)])]

    @pytest.mark.asyncio
    async def test_account_switch_pushes_then_pulls(self, auth, store, api, product):
        await auth.handle_auth_change("user-123")
        store.add_item("P1", 1, product)

        assert await auth.handle_auth_change("user-456") == AuthTransition.ACCOUNT_SWITCH
        assert api.calls == [("pull", []), ("local_to_db", [("P1", 1)]), ("pull", [])]
        assert auth.current_user == "user-456"

    @pytest.mark.asyncio
    async def test_login_again_after_logout(self, auth, api):
        await auth.handle_auth_change("user-123")
        await auth.handle_auth_change(None)

        assert await auth.handle_auth_change("user-123") == AuthTransition.LOGIN
        assert api.calls == [("pull", []), ("pull", [])]


class TestManualSync:
    """User-triggered sync."""

    def test_signed_out(self, auth):
        assert auth.manual_sync(None) is False

    @pytest.mark.asyncio
    async def test_schedules_short_debounce(self, auth, coordinator, api):
        assert auth.manual_sync("user-123") is True
        assert coordinator.has_pending is True

        await coordinator._pending

        assert [call[0] for call in api.calls] == ["merge"]


class TestStatusText:
    """Sync status line."""

    def test_signed_out(self, auth):
        assert auth.sync_status_text() == "Sign in to sync cart across devices"

    @pytest.mark.asyncio
    async def test_never_synced(self, auth, store, api):
        api.pull_response = {"success": False}
        await auth.handle_auth_change("user-123")

        assert store.last_sync_at is None
        assert auth.sync_status_text() == "Cart not synced yet"

    @pytest.mark.asyncio
    async def test_syncing(self, auth, store):
        await auth.handle_auth_change("user-123")
        store.state.is_syncing = True

        assert auth.sync_status_text() == "Syncing cart..."

    @pytest.mark.asyncio
    @pytest.mark.parametrize("elapsed, expected", [
        (timedelta(seconds=30), "Cart synced just now"),
        (timedelta(minutes=5), "Cart synced 5m ago"),
        (timedelta(minutes=59, seconds=59), "Cart synced 59m ago"),
        (timedelta(hours=3), "Cart synced 3h ago"),
        (timedelta(days=2, hours=1), "Cart synced 2d ago"),
    ])
    async def test_relative_time(self, auth, store, clock, elapsed, expected):
        await auth.handle_auth_change("user-123")

        assert store.last_sync_at == clock.now
        assert auth.sync_status_text(now=clock.now + elapsed) == expected

    @pytest.mark.asyncio
    async def test_naive_last_sync_treated_as_utc(self, auth, store, clock):
        await auth.handle_auth_change("user-123")
        store.state.last_sync_at = clock.now.replace(tzinfo=None) - timedelta(minutes=5)

        assert auth.sync_status_text(now=clock.now) == "Cart synced 5m ago"
