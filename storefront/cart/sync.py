"""
Cart Sync Coordinator

Reconciles the local cart with the server-held cart.

State machine per cart:
    idle -> debounce-scheduled -> syncing -> merging -> idle

- Debounce: a new request cancels the pending timer; only the last one runs.
- Single-flight: `is_syncing`/`sync_lock` are checked and set in the same
  synchronous turn; a second trigger while one runs is dropped, not queued.
- Throttle: a merge within 2 seconds of the last successful sync is skipped.
- Session precheck: no signed-in user means no network call at all.
- Failure leaves local items untouched; the lock is always released.
"""
import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Set

import httpx
from pydantic import ValidationError

from storefront.errors import ERROR_SYNC_FAILED, CartSyncError, CouponValidationError, StorefrontError
from storefront.logging import get_logger, log_event, sanitize_id_for_logging
from .client import CartApiClient
from .guard import collapse_duplicates, sanitize_stored
from .models import as_utc
from .schemas import MergeResponse, PullResponse
from .service import CartStore
from .session import SessionProvider

logger = get_logger(__name__)

DEFAULT_DEBOUNCE_MS = 1000
SYNC_MIN_INTERVAL = timedelta(seconds=2)

SYNC_ERRORS = (StorefrontError, httpx.HTTPError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CartSyncCoordinator:
    """Debounces, locks and sequences calls to the server cart endpoint."""

    def __init__(
        self,
        store: CartStore,
        client: CartApiClient,
        session: SessionProvider,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            store: Cart state container to reconcile
            client: Storefront API client
            session: Who is signed in; consulted once per attempt
            clock: Returns an aware "now"; injectable for tests
        """
        self.store = store
        self.client = client
        self.session = session
        self._clock = clock or _utcnow
        self._pending: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

    # ==================== Debounce ====================

    @property
    def has_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def sync_with_database_debounced(self, user_id: str, delay_ms: int = DEFAULT_DEBOUNCE_MS) -> asyncio.Task:
        """
        Schedule a merge after `delay_ms` of quiet.

        Must be called from a running event loop. Re-invoking before the
        timer fires cancels and replaces it.

        Returns:
            The timer task (awaitable; resolves once the sync, if any, ends)
        """
        self.cancel_pending()
        self.store.state.last_sync_request_at = self._clock()

        task = asyncio.get_running_loop().create_task(self._run_debounced(user_id, delay_ms / 1000))
        self._pending = task
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

        log_event(logger, logging.DEBUG, "sync_debounce_scheduled", delay_ms=delay_ms)
        return task

    async def _run_debounced(self, user_id: str, delay: float) -> None:
        await asyncio.sleep(delay)

        # Timer fired: from here on this is an in-flight sync, not cancelable
        if self._pending is asyncio.current_task():
            self._pending = None

        try:
            await self.sync_with_database(user_id)
        except Exception:
            logger.exception(f"{ERROR_SYNC_FAILED} (debounced)")

    def cancel_pending(self) -> bool:
        """Cancel the armed debounce timer, if any."""
        if not self.has_pending:
            self._pending = None
            return False

        self._pending.cancel()
        self._pending = None
        log_event(logger, logging.DEBUG, "sync_debounce_cancelled")
        return True

    async def aclose(self) -> None:
        """Cancel the pending timer, let in-flight syncs finish, close the client."""
        self.cancel_pending()
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        await self.client.close()

    # ==================== Lock ====================

    def _in_progress(self, kind: str) -> bool:
        state = self.store.state
        if state.is_syncing or state.sync_lock:
            log_event(
                logger, logging.INFO, "sync_skipped_in_flight",
                kind=kind, operation_id=state.sync_operation_id,
            )
            return True
        return False

    def _acquire(self, kind: str) -> str:
        operation_id = f"sync-{uuid.uuid4().hex[:12]}"
        state = self.store.state
        state.sync_lock = True
        state.sync_operation_id = operation_id
        state.is_syncing = True
        log_event(logger, logging.INFO, "sync_lock_acquired", kind=kind, operation_id=operation_id)
        return operation_id

    def _release(self, operation_id: str) -> None:
        state = self.store.state
        state.is_syncing = False
        state.sync_lock = False
        state.sync_operation_id = None
        log_event(logger, logging.INFO, "sync_lock_released", operation_id=operation_id)

    async def _has_session(self, user_id: str, kind: str) -> bool:
        try:
            current = await self.session.current_user()
        except Exception as e:
            log_event(logger, logging.INFO, "sync_skipped_no_session", kind=kind, error=str(e))
            return False

        if not current:
            log_event(logger, logging.INFO, "sync_skipped_no_session", kind=kind)
            return False

        log_event(
            logger, logging.DEBUG, "sync_session_ok",
            kind=kind, user_id=sanitize_id_for_logging(user_id),
        )
        return True

    # ==================== Merge ====================

    async def sync_with_database(self, user_id: str) -> bool:
        """
        Bidirectional merge with the server cart.

        Returns:
            True if a reconciled item list was installed
        """
        if self._in_progress("merge"):
            return False

        last_sync_at = as_utc(self.store.state.last_sync_at)
        if last_sync_at is not None:
            elapsed = as_utc(self._clock()) - last_sync_at
            if elapsed < SYNC_MIN_INTERVAL:
                log_event(
                    logger, logging.INFO, "sync_skipped_throttled",
                    since_ms=int(elapsed.total_seconds() * 1000),
                )
                return False

        # No await between the checks above and this line
        operation_id = self._acquire("merge")
        try:
            if not await self._has_session(user_id, "merge"):
                return False

            data = await self.client.post_sync(self.store.items, "merge")
            return self._apply_merge(data)
        except SYNC_ERRORS as e:
            log_event(logger, logging.ERROR, "sync_failed", kind="merge", error=str(e))
            return False
        finally:
            self._release(operation_id)

    def _apply_merge(self, data: dict) -> bool:
        try:
            parsed = MergeResponse.model_validate(data)
        except ValidationError as e:
            log_event(logger, logging.WARNING, "sync_response_malformed", kind="merge", errors=e.error_count())
            return False

        if not parsed.success or parsed.final_cart is None:
            # Losing a cart is worse than a stale one
            log_event(logger, logging.WARNING, "sync_response_malformed", kind="merge", reason="missing finalCart")
            return False

        converted = [row.to_line_item() for row in parsed.final_cart]
        cleaned, _ = sanitize_stored(converted)
        merged = collapse_duplicates(cleaned)

        log_event(logger, logging.INFO, "sync_merged", raw=len(converted), merged=len(merged))
        if parsed.conflicts:
            log_event(logger, logging.INFO, "sync_conflicts_resolved", count=len(parsed.conflicts))

        return self.store.replace_items(merged, self._clock())

    # ==================== Push / pull ====================

    async def sync_to_database(self, user_id: str) -> bool:
        """Push local items to the server, overwriting it. No merge-back."""
        if self._in_progress("push"):
            return False

        operation_id = self._acquire("push")
        try:
            if not await self._has_session(user_id, "push"):
                return False

            await self.client.post_sync(self.store.items, "local_to_db")
            self.store.mark_synced(self._clock())
            return True
        except SYNC_ERRORS as e:
            log_event(logger, logging.ERROR, "sync_failed", kind="push", error=str(e))
            return False
        finally:
            self._release(operation_id)

    async def load_from_database(self, user_id: str) -> bool:
        """Pull the server cart and overwrite local items (new-device login)."""
        if self._in_progress("pull"):
            return False

        operation_id = self._acquire("pull")
        self.store.set_loading(True)
        try:
            if not await self._has_session(user_id, "pull"):
                return False

            data = await self.client.fetch_cart()
            try:
                parsed = PullResponse.model_validate(data)
            except ValidationError as e:
                log_event(logger, logging.WARNING, "sync_response_malformed", kind="pull", errors=e.error_count())
                return False

            if not parsed.success:
                log_event(logger, logging.WARNING, "sync_response_malformed", kind="pull", reason="success=false")
                return False

            # Wholesale replacement: guarded, not deduplicated
            items, _ = sanitize_stored(row.to_line_item() for row in parsed.items)
            return self.store.replace_items(items, self._clock())
        except SYNC_ERRORS as e:
            log_event(logger, logging.ERROR, "sync_failed", kind="pull", error=str(e))
            return False
        finally:
            self.store.set_loading(False)
            self._release(operation_id)

    # ==================== Coupons ====================

    async def apply_coupon_code(self, code: str) -> bool:
        """
        Validate a code against the current subtotal, then store it.

        Returns:
            True if the coupon is now applied
        """
        try:
            coupon = await self.client.validate_coupon(code, self.store.subtotal)
        except CouponValidationError as e:
            log_event(logger, logging.INFO, "coupon_rejected", code=code, error=str(e))
            return False
        except (CartSyncError, httpx.HTTPError) as e:
            log_event(logger, logging.ERROR, "coupon_validation_failed", code=code, error=str(e))
            return False

        return self.store.apply_coupon(coupon)
