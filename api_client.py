import asyncio
import logging
import time
from datetime import date, timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from api_errors import ApiError, AuthenticationError, SessionExpiredError
from config import API_BASE_URL, API_DEBUG, CURRENCY, DEFAULT_PAYMENT_METHOD, NETWORK_CHECK_TIMEOUT
from hotel_schemas import BookingRequest, CustomerInfo

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER = {"name": "Default User", "email": "user@example.com", "phone": "+91-0000000000"}


def _as_int(value, default: int) -> int:
    try:
        return int(value) or default
    except (TypeError, ValueError):
        return default


def iso_day(value, default: date) -> str:
    if not value:
        return default.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def normalize_booking_payload(data: Dict[str, Any], currency: str = CURRENCY) -> Dict[str, Any]:
    """
    Shape a booking payload the way POST /bookings/ expects it.
    Missing dates default to today / tomorrow, rooms to 1 and guests to 2.
    """
    if isinstance(data, BookingRequest):
        data = data.model_dump(mode="json")

    today = date.today()
    customer = data.get("customer_info")
    if isinstance(customer, CustomerInfo):
        customer = customer.model_dump(exclude_none=True)
    elif not isinstance(customer, dict):
        customer = dict(DEFAULT_CUSTOMER)

    return {
        "hotel_name": str(data.get("hotel_name") or ""),
        "location": str(data.get("location") or ""),
        "check_in": iso_day(data.get("check_in"), today),
        "check_out": iso_day(data.get("check_out"), today + timedelta(days=1)),
        "rooms": _as_int(data.get("rooms"), 1),
        "guests": _as_int(data.get("guests"), 2),
        "total_price": data.get("total_price"),
        "currency": data.get("currency") or currency,
        "customer_info": customer,
        "payment_method": data.get("payment_method") or DEFAULT_PAYMENT_METHOD,
        "special_requests": data.get("special_requests") or None,
    }


class ApiClient:
    """
    Async client for the hotel backend.

    Attaches the bearer token held by the injected TokenSession. On a 401 it refreshes
    the token once (shared with any concurrent caller) and retries the request once.
    There are no other retries.
    """

    def __init__(
        self,
        session,
        base_url: str = API_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        debug: bool = API_DEBUG,
        network_timeout: float = NETWORK_CHECK_TIMEOUT,
        currency: str = CURRENCY,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.debug = debug
        self.network_timeout = network_timeout
        self.currency = currency
        self._http = httpx.AsyncClient(base_url=self.base_url, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    def is_authenticated(self) -> bool:
        return self.session.is_authenticated()

    # --- Core request with refresh + single retry ---

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        started = time.monotonic()
        if self.debug:
            logger.debug(f"API Request: {method} {endpoint}")
        try:
            result = await self._request_with_refresh(endpoint, method, json, params, data, headers)
        except Exception as e:
            logger.error(f"API Error ({endpoint}): {e}")
            raise
        if self.debug:
            logger.debug(f"API Success: {endpoint} ({(time.monotonic() - started) * 1000:.0f}ms)")
        return result

    async def _request_with_refresh(self, endpoint, method, json, params, data, headers):
        token = self.session.access_token
        response = await self._send(endpoint, method, token, json, params, data, headers)

        if response.status_code == 401 and token:
            logger.info("Token expired, attempting refresh...")
            # Somebody else may already have swapped the token while this request was out
            if self.session.access_token == token:
                await self._refresh_session()
            elif not self.session.is_authenticated():
                raise SessionExpiredError()
            response = await self._send(endpoint, method, self.session.access_token, json, params, data, headers)

        return self._handle_response(response)

    async def _send(self, endpoint, method, token, json, params, data, headers) -> httpx.Response:
        merged = {}
        if data is None:
            merged["Content-Type"] = "application/json"
        merged.update(headers or {})
        if token:
            merged["Authorization"] = f"Bearer {token}"
        return await self._http.request(method, endpoint, json=json, params=params, data=data, headers=merged)

    async def _refresh_session(self):
        try:
            await self.session.refresh(self._call_refresh_endpoint)
        except Exception as e:
            logger.error(f"Token refresh failed: {e}")
            # A failed shared refresh has already expired the session
            if self.session.is_authenticated():
                self.session.expire()
            raise SessionExpiredError() from e

    async def _call_refresh_endpoint(self, refresh_token: str) -> Dict[str, Any]:
        response = await self._http.post(
            "/refresh-token/",
            json={"refresh_token": refresh_token},
            headers={"Content-Type": "application/json"},
        )
        payload = self._json_or_none(response)
        if not response.is_success:
            raise ApiError(self._error_message(payload, "Failed to refresh token"), response.status_code)
        return payload

    def _handle_response(self, response: httpx.Response) -> Any:
        payload = self._json_or_none(response)
        if not response.is_success:
            if response.status_code == 401:
                # Still rejected after refresh: drop the session and everything built on it
                if self.session.is_authenticated():
                    self.session.expire()
                    raise SessionExpiredError()
                self.session.clear()
                raise AuthenticationError()
            raise ApiError(self._error_message(payload, "API request failed"), response.status_code)
        return payload

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _error_message(payload: Any, default: str) -> str:
        if isinstance(payload, dict):
            detail = payload.get("detail") or payload.get("message")
            if detail:
                return detail if isinstance(detail, str) else str(detail)
        return default

    # --- Authentication ---

    async def register(self, name: str, email: str, password: str, age: Optional[int] = None):
        logger.info(f"Registering user: {email}")
        result = await self.request(
            "/register/",
            "POST",
            json={"username": name, "password": password, "email": email, "Age": age},
        )
        logger.info("Registration successful")
        return result

    async def login(self, username: str, password: str) -> Dict[str, Any]:
        """OAuth2 password flow: form-encoded credentials, tokens stored on success."""
        logger.info(f"Logging in user: {username}")
        response = await self._http.post("/token", data={"username": username, "password": password})
        result = self._json_or_none(response)
        if not response.is_success:
            message = self._error_message(result, "Login failed")
            logger.error(f"Login failed: {message}")
            raise AuthenticationError(message, response.status_code)

        self.session.set_tokens(result["access_token"], result.get("refresh_token"))
        logger.info("Login successful, tokens stored")
        return {"msg": "Login successful", "access_token": result["access_token"]}

    async def logout(self):
        logger.info("Logout initiated")
        try:
            if self.is_authenticated():
                try:
                    await self.request("/logout/", "POST", json={"refresh_token": self.session.refresh_token})
                except (ApiError, httpx.HTTPError) as e:
                    # Local cleanup still happens
                    logger.warning(f"Backend logout failed: {e}")
        finally:
            self.session.clear()
            logger.info("Logout completed")

    async def get_current_user(self):
        return await self.request("/users/me")

    async def get_user_dashboard(self, username: str):
        return await self.request("/userdashboard/", params={"username": username})

    async def check_auth_status(self) -> bool:
        if not self.is_authenticated():
            return False
        try:
            await self.get_current_user()
            return True
        except (ApiError, httpx.HTTPError) as e:
            logger.warning(f"Auth check failed: {e}")
            return False

    # --- Cart ---

    async def get_cart_items(self) -> List[Dict[str, Any]]:
        if not self.is_authenticated():
            logger.info("User not authenticated, returning empty cart")
            return []
        try:
            items = await self.request("/cart/")
        except AuthenticationError:
            return []
        logger.info(f"Loaded {len(items or [])} cart items")
        return items or []

    async def add_cart_item(self, item_data: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_authenticated():
            raise AuthenticationError("Please log in to add items to your cart")
        logger.info(f"Adding cart item: {item_data.get('hotel_name')}")
        result = await self.request("/cart/", "POST", json=item_data)
        logger.info("Cart item added")
        return result

    async def update_cart_item(self, item_id: str, quantity: int) -> Dict[str, Any]:
        logger.info(f"Updating cart item {item_id} quantity to {quantity}")
        return await self.request(f"/cart/{item_id}", "PUT", params={"quantity": quantity})

    async def remove_cart_item(self, item_id: str):
        logger.info(f"Removing cart item {item_id}")
        return await self.request(f"/cart/{item_id}", "DELETE")

    async def clear_cart(self):
        logger.info("Clearing entire cart")
        return await self.request("/cart/", "DELETE")

    # --- Bookings ---

    async def get_user_bookings(self):
        return await self.request("/bookings/")

    async def get_current_bookings(self):
        return await self.request("/bookings/current")

    async def get_past_bookings(self):
        return await self.request("/bookings/past")

    async def create_booking(self, booking_data) -> Dict[str, Any]:
        payload = normalize_booking_payload(booking_data, self.currency)
        logger.info(f"Creating booking: {payload['hotel_name']}")
        return await self.request("/bookings/", "POST", json=payload)

    async def create_batch_bookings(self, bookings: List[Dict[str, Any]]):
        logger.info(f"Creating {len(bookings)} bookings in batch")
        payload = [normalize_booking_payload(b, self.currency) for b in bookings]
        return await self.request("/bookings/batch", "POST", json=payload)

    async def cancel_booking(self, booking_id: str):
        logger.info(f"Cancelling booking {booking_id}")
        return await self.request(f"/bookings/{booking_id}/cancel", "PUT")

    # --- Search and chatbot ---

    async def get_recommendations(self, preferences: Dict[str, Any]):
        logger.info(f"Getting hotel recommendations: {preferences}")
        return await self.request("/recommend/", "POST", json=preferences)

    async def get_hotel_categories(self, location: str):
        return await self.request(f"/hotel-categories/{quote(location, safe='')}")

    async def send_chat_message(self, message: str):
        return await self.request("/chatbot/", "POST", json={"message": message})

    async def get_chatbot_status(self):
        return await self.request("/chatbot/status")

    async def get_chatbot_cache_info(self):
        return await self.request("/chatbot/cache-info")

    async def clear_chatbot_cache(self):
        return await self.request("/chatbot/clear-cache", "POST")

    # --- Utilities ---

    async def check_network_status(self) -> Dict[str, Any]:
        """Lightweight reachability probe; the only call with an explicit timeout."""
        try:
            await self._http.head("/", timeout=self.network_timeout)
            return {"online": True, "api": True}
        except httpx.HTTPError as e:
            return {"online": False, "api": False, "error": str(e) or e.__class__.__name__}

    async def batch_request(self, requests: List[Dict[str, Any]]) -> Dict[str, list]:
        """
        Run several requests concurrently and settle them all.
        Each entry is {"endpoint": ..., "method": ..., "json": ..., "params": ...}.
        """
        logger.info(f"Processing {len(requests)} batch requests")
        results = await asyncio.gather(
            *(
                self.request(
                    r["endpoint"],
                    r.get("method", "GET"),
                    json=r.get("json"),
                    params=r.get("params"),
                )
                for r in requests
            ),
            return_exceptions=True,
        )
        successful = [r for r in results if not isinstance(r, BaseException)]
        failed = [r for r in results if isinstance(r, BaseException)]
        logger.info(f"Batch completed: {len(successful)} success, {len(failed)} failed")
        return {"successful": successful, "failed": failed}
