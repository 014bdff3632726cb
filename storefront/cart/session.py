"""Session capability consulted once per sync attempt."""
from abc import ABC, abstractmethod
from typing import Optional

from storefront.errors import ERROR_SESSION_CHECK_FAILED, StorefrontError
from storefront.logging import get_logger
from .client import CartApiClient

logger = get_logger(__name__)


class SessionProvider(ABC):
    """Answers "who is signed in right now?"."""

    @abstractmethod
    async def current_user(self) -> Optional[str]:
        """Return the signed-in user id, or None for an anonymous cart."""


class StaticSessionProvider(SessionProvider):
    """Session held by the application shell (set on login, cleared on logout)."""

    def __init__(self, user_id: Optional[str] = None):
        self.user_id = user_id

    def set_user(self, user_id: Optional[str]) -> None:
        self.user_id = user_id

    async def current_user(self) -> Optional[str]:
        return self.user_id


class HttpSessionProvider(SessionProvider):
    """Asks the storefront's session endpoint. Any failure counts as signed out."""

    def __init__(self, client: CartApiClient):
        self.client = client

    async def current_user(self) -> Optional[str]:
        try:
            session = await self.client.get_session()
        except StorefrontError as e:
            logger.info(f"{ERROR_SESSION_CHECK_FAILED}, treating as anonymous: {e}")
            return None

        user = session.get("user") if isinstance(session, dict) else None
        if not isinstance(user, dict):
            return None
        user_id = user.get("id") or user.get("email")
        return str(user_id) if user_id else None
