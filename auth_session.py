import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from api_errors import AuthenticationError

logger = logging.getLogger(__name__)

RefreshCall = Callable[[str], Awaitable[Dict[str, Any]]]


class TokenSession:
    """
    Holds the access/refresh token pair for one client.

    Only login, logout and the refresh routine write the tokens; everything else reads.
    Refresh is single-flight: while one refresh is running, every other caller awaits
    the same task and gets the same result.
    """

    ACCESS_TOKEN_KEY = "authToken"
    REFRESH_TOKEN_KEY = "refreshToken"

    def __init__(self, storage):
        self.storage = storage
        self.access_token: Optional[str] = storage.get_item(self.ACCESS_TOKEN_KEY)
        self.refresh_token: Optional[str] = storage.get_item(self.REFRESH_TOKEN_KEY)
        self.is_refreshing = False
        self._refresh_task: Optional[asyncio.Future] = None
        self._expiry_listeners: List[Callable[[], None]] = []

    # --- Token management ---

    def set_access_token(self, token: Optional[str]):
        self.access_token = token
        if token:
            self.storage.set_item(self.ACCESS_TOKEN_KEY, token)
        else:
            self.storage.remove_item(self.ACCESS_TOKEN_KEY)

    def set_refresh_token(self, token: Optional[str]):
        self.refresh_token = token
        if token:
            self.storage.set_item(self.REFRESH_TOKEN_KEY, token)
        else:
            self.storage.remove_item(self.REFRESH_TOKEN_KEY)

    def set_tokens(self, access_token: str, refresh_token: Optional[str] = None):
        self.set_access_token(access_token)
        # The backend does not always rotate the refresh token
        if refresh_token:
            self.set_refresh_token(refresh_token)

    def clear(self):
        self.set_access_token(None)
        self.set_refresh_token(None)
        self.is_refreshing = False
        self._refresh_task = None

    def is_authenticated(self) -> bool:
        # Local check only; says nothing about whether the server still accepts the token
        return bool(self.access_token)

    # --- Expiry notification ---

    def add_expiry_listener(self, listener: Callable[[], None]):
        self._expiry_listeners.append(listener)

    def expire(self):
        """Drop the tokens and tell dependants that the session is gone."""
        logger.warning("Session expired, clearing tokens")
        self.clear()
        for listener in list(self._expiry_listeners):
            listener()

    # --- Refresh ---

    async def refresh(self, refresher: RefreshCall) -> str:
        """
        Obtain a new access token through `refresher(refresh_token)`.
        Returns the new access token. Concurrent callers share one refresh call.
        """
        if self._refresh_task is not None:
            logger.info("Token refresh already in flight, waiting for it")
            return await asyncio.shield(self._refresh_task)

        if not self.refresh_token:
            raise AuthenticationError("No refresh token available")

        self.is_refreshing = True
        self._refresh_task = asyncio.ensure_future(self._run_refresh(refresher))
        return await asyncio.shield(self._refresh_task)

    async def _run_refresh(self, refresher: RefreshCall) -> str:
        try:
            logger.info("Refreshing access token")
            data = await refresher(self.refresh_token)
            self.set_tokens(data["access_token"], data.get("refresh_token"))
            logger.info("Token refreshed successfully")
            return self.access_token
        except Exception as e:
            logger.error(f"Token refresh failed: {e}")
            # Runs once per failed refresh, however many callers were waiting
            self.expire()
            raise
        finally:
            self.is_refreshing = False
            self._refresh_task = None


class AuthState:
    """Persisted sign-in flag, user profile and cached preferences."""

    SIGNED_IN_KEY = "isSignedIn"
    USER_DATA_KEY = "userData"
    PREFERENCE_KEYS = {"currency": "preferredCurrency", "country": "preferredCountry"}

    def __init__(self, storage):
        self.storage = storage

    @property
    def is_signed_in(self) -> bool:
        return self.storage.get_item(self.SIGNED_IN_KEY) == "true"

    @property
    def user_data(self) -> Optional[Dict[str, Any]]:
        raw = self.storage.get_item(self.USER_DATA_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error(f"Error parsing stored user data: {e}")
            return None

    def login(self, user: Dict[str, Any]):
        self.storage.set_item(self.SIGNED_IN_KEY, "true")
        self.storage.set_item(self.USER_DATA_KEY, json.dumps(user))

    def logout(self):
        self.storage.remove_item(self.SIGNED_IN_KEY)
        self.storage.remove_item(self.USER_DATA_KEY)

    def get_preference(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.storage.get_item(self.PREFERENCE_KEYS[name])
        return value if value is not None else default

    def set_preference(self, name: str, value: str):
        self.storage.set_item(self.PREFERENCE_KEYS[name], value)
