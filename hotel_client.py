import logging
from typing import Any, Dict, Optional

import httpx

from api_client import ApiClient
from auth_session import AuthState, TokenSession
from bookings_store import BookingsStore
from cart_store import CartStore
from checkout_manager import CheckoutManager
from config import API_BASE_URL, RECONCILE_DELAY
from persistence.storage import LocalStorage

logger = logging.getLogger(__name__)


class HotelClient:
    """
    One signed-in (or anonymous) user of the hotel backend.

    Owns the storage, token session, API client, cart, bookings and checkout pipeline.
    When the session cannot be recovered, every piece of local user state is reset.
    """

    def __init__(
        self,
        storage: Optional[LocalStorage] = None,
        base_url: str = API_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        reconcile_delay: float = RECONCILE_DELAY,
        **api_options,
    ):
        self.storage = storage or LocalStorage()
        self.session = TokenSession(self.storage)
        self.auth_state = AuthState(self.storage)
        self.api = ApiClient(self.session, base_url=base_url, transport=transport, **api_options)
        self.cart = CartStore(self.api)
        self.bookings = BookingsStore(self.api)
        self.checkout_manager = CheckoutManager(self.api, self.cart, self.bookings, reconcile_delay=reconcile_delay)
        self.session.add_expiry_listener(self.reset_local_state)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        self.checkout_manager.cancel_pending()
        await self.api.aclose()

    def is_authenticated(self) -> bool:
        return self.api.is_authenticated()

    async def start(self):
        """Initial load, the equivalent of mounting the app."""
        await self.cart.load()
        await self.bookings.load()

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        await self.api.login(username, password)
        user = await self.api.get_current_user()
        self.auth_state.login(user)
        await self.cart.reload()
        await self.bookings.load(force_refresh=True)
        logger.info("Login complete, cart and bookings reloaded")
        return user

    async def logout(self):
        try:
            await self.api.logout()
        finally:
            self.reset_local_state()

    async def checkout(self, customer_info, payment_method: Optional[str] = None):
        return await self.cart.checkout(customer_info, payment_method)

    def reset_local_state(self):
        logger.info("Resetting local cart, bookings and sign-in state")
        self.cart.reset()
        self.bookings.reset()
        self.auth_state.logout()
