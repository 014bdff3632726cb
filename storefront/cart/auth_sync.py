"""
Cart sync across authentication changes.

The application shell reports the current user id whenever it may have
changed (page load, login, logout, account switch). Only real transitions
trigger network work.

Call `handle_auth_change(None)` before the session is torn down, otherwise
the logout push is skipped by the session precheck.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from storefront.logging import get_logger, log_event, sanitize_id_for_logging
from .models import as_utc
from .sync import CartSyncCoordinator

logger = get_logger(__name__)

LOGIN_DEBOUNCE_MS = 500
MANUAL_DEBOUNCE_MS = 100


class AuthTransition(str, Enum):
    """What changed between two observations of the current user."""
    LOGIN = "login"
    LOGOUT = "logout"
    ACCOUNT_SWITCH = "account_switch"
    UNCHANGED = "unchanged"


class CartAuthSync:
    """Drives merge/push/pull in response to auth state changes."""

    def __init__(self, coordinator: CartSyncCoordinator):
        self.coordinator = coordinator
        self._previous_user: Optional[str] = None
        self._synced_on_login = False

    @property
    def store(self):
        return self.coordinator.store

    @property
    def current_user(self) -> Optional[str]:
        return self._previous_user

    async def handle_auth_change(self, user_id: Optional[str]) -> AuthTransition:
        """
        React to the latest observed user id.

        - login: merge (debounced) when local items exist, else pull
        - logout: push local items for the departing user
        - account switch: push for the old user, pull for the new one
        """
        previous = self._previous_user
        self._previous_user = user_id

        if not previous and user_id:
            if self._synced_on_login:
                return AuthTransition.UNCHANGED
            self._synced_on_login = True
            await self._on_login(user_id)
            return AuthTransition.LOGIN

        if previous and not user_id:
            self._synced_on_login = False
            await self._on_logout(previous)
            return AuthTransition.LOGOUT

        if previous and user_id and previous != user_id:
            await self._on_account_switch(previous, user_id)
            return AuthTransition.ACCOUNT_SWITCH

        return AuthTransition.UNCHANGED

    async def _on_login(self, user_id: str) -> None:
        log_event(logger, logging.INFO, "auth_login", user_id=sanitize_id_for_logging(user_id))
        if self.store.items:
            self.coordinator.sync_with_database_debounced(user_id, LOGIN_DEBOUNCE_MS)
        else:
            await self.coordinator.load_from_database(user_id)

    async def _on_logout(self, user_id: str) -> None:
        log_event(logger, logging.INFO, "auth_logout", user_id=sanitize_id_for_logging(user_id))
        self.coordinator.cancel_pending()
        if self.store.items:
            await self.coordinator.sync_to_database(user_id)

    async def _on_account_switch(self, old_user_id: str, new_user_id: str) -> None:
        log_event(
            logger, logging.INFO, "auth_account_switch",
            old_user_id=sanitize_id_for_logging(old_user_id),
            new_user_id=sanitize_id_for_logging(new_user_id),
        )
        self.coordinator.cancel_pending()
        if self.store.items:
            await self.coordinator.sync_to_database(old_user_id)
        await self.coordinator.load_from_database(new_user_id)

    def manual_sync(self, user_id: Optional[str]) -> bool:
        """User-triggered sync; short debounce. False when signed out."""
        if not user_id:
            return False
        self.coordinator.sync_with_database_debounced(user_id, MANUAL_DEBOUNCE_MS)
        return True

    def sync_status_text(self, now: Optional[datetime] = None) -> str:
        """Human-readable sync status line."""
        if not self._previous_user:
            return "Sign in to sync cart across devices"
        if self.store.is_syncing:
            return "Syncing cart..."

        last_sync_at = as_utc(self.store.last_sync_at)
        if last_sync_at is None:
            return "Cart not synced yet"

        now = as_utc(now) or datetime.now(timezone.utc)
        diff_minutes = int((now - last_sync_at).total_seconds() // 60)

        if diff_minutes < 1:
            return "Cart synced just now"
        if diff_minutes < 60:
            return f"Cart synced {diff_minutes}m ago"

        diff_hours = diff_minutes // 60
        if diff_hours < 24:
            return f"Cart synced {diff_hours}h ago"

        return f"Cart synced {diff_hours // 24}d ago"
