import logging
from typing import Any, Dict, List, Optional, Set

import httpx
from pydantic import ValidationError

from api_errors import ApiError, AuthenticationError, InvalidInputError
from config import CURRENCY_SYMBOL, MAX_CART_QUANTITY
from hotel_schemas import CartItem, CartSummary, CheckoutResult, OperationResult
from validators import validate_cart_item

logger = logging.getLogger(__name__)

LOGIN_REQUIRED = "Please log in to add items to your cart"

# Everything a store operation may run into; none of it escapes the store
STORE_ERRORS = (ApiError, InvalidInputError, ValidationError, httpx.HTTPError)


def format_amount(amount: float, symbol: str = CURRENCY_SYMBOL) -> str:
    if float(amount).is_integer():
        return f"{symbol}{int(amount):,}"
    return f"{symbol}{amount:,.2f}"


def build_cart_item_payload(item: Dict[str, Any]) -> Dict[str, Any]:
    """Turn a hotel picked in the UI into the POST /cart/ body."""
    details = item.get("details") or {}
    return {
        "hotel_name": item.get("name") or item.get("hotel_name"),
        "location": item.get("location") or "Unknown",
        "price": item["price"],
        "quantity": item.get("quantity") or 1,
        "details": {
            "checkIn": item.get("checkIn") or details.get("checkIn"),
            "checkOut": item.get("checkOut") or details.get("checkOut"),
            "guests": item.get("guests") or details.get("guests") or 2,
            "amenities": item.get("amenities") or details.get("amenities"),
            "specialRequests": item.get("specialRequests") or details.get("specialRequests"),
        },
    }


class CartStore:
    """
    In-memory mirror of the server-side cart.

    Local state only changes after the server confirms a mutation, and the local
    copy of an item is always the server's response, never built from input.
    An item with a mutation in flight rejects a second one until the first settles.
    """

    def __init__(self, api):
        self.api = api
        self.items: List[CartItem] = []
        self.loading = False
        self.error: Optional[str] = None
        self.checkout_manager = None
        self._in_flight: Set[str] = set()

    # --- Loading ---

    async def load(self):
        self.loading = True
        try:
            if not self.api.is_authenticated():
                logger.info("User not authenticated, clearing cart")
                self._set_items([])
                return
            raw_items = await self.api.get_cart_items()
            self._set_items([CartItem.model_validate(raw) for raw in raw_items])
            logger.info(f"Cart items loaded: {len(self.items)}")
        except AuthenticationError:
            self._set_items([])
        except STORE_ERRORS as e:
            logger.error(f"Error loading cart items: {e}")
            self.error = str(e)
        finally:
            self.loading = False

    reload = load
    refresh = load

    def _set_items(self, items: List[CartItem]):
        self.items = items
        self.error = None

    # --- Mutations ---

    async def add_item(self, item: Dict[str, Any]) -> OperationResult:
        if not self.api.is_authenticated():
            return self._fail(LOGIN_REQUIRED)

        name = item.get("name") or item.get("hotel_name") if item else None
        price = item.get("price") if item else None
        if not name or not isinstance(price, (int, float)) or isinstance(price, bool):
            return self._fail("Invalid item data: missing required fields")
        if price <= 0:
            return self._fail("Invalid item price: must be greater than 0")

        payload = build_cart_item_payload(item)
        try:
            validate_cart_item(payload)
            logger.info(f"Adding to cart: {name}")
            created = CartItem.model_validate(await self.api.add_cart_item(payload))
        except AuthenticationError as e:
            return self._session_lost(e)
        except STORE_ERRORS as e:
            logger.error(f"Error adding to cart: {e}")
            return self._fail(str(e))

        self.items = self.items + [created]
        self.error = None
        return OperationResult(success=True, message=f"{name} added to cart")

    async def update_quantity(self, item_id: str, quantity: int) -> OperationResult:
        if not item_id or not isinstance(quantity, int) or isinstance(quantity, bool):
            return self._fail("Invalid parameters for quantity update")

        item = self.find_item(item_id)
        if item is None:
            return self._fail("Item not found in cart")
        if quantity <= 0:
            return await self.remove_item(item_id)
        if quantity > MAX_CART_QUANTITY:
            return self._fail(f"Quantity cannot exceed {MAX_CART_QUANTITY} rooms")
        if item.id in self._in_flight:
            return self._fail(f"{item.hotel_name} is already being updated")

        self._in_flight.add(item.id)
        try:
            logger.info(f"Updating quantity for {item.hotel_name}: {item.quantity} -> {quantity}")
            updated = CartItem.model_validate(await self.api.update_cart_item(item.id, quantity))
        except AuthenticationError as e:
            return self._session_lost(e)
        except STORE_ERRORS as e:
            logger.error(f"Error updating quantity: {e}")
            return self._fail(str(e))
        finally:
            self._in_flight.discard(item.id)

        self.items = [updated if i.id == updated.id else i for i in self.items]
        self.error = None
        return OperationResult(success=True, message="Quantity updated")

    async def remove_item(self, item_id: str) -> OperationResult:
        if not item_id:
            return self._fail("Invalid item ID")
        item = self.find_item(item_id)
        if item is None:
            return self._fail("Item not found in cart")
        if item.id in self._in_flight:
            return self._fail(f"{item.hotel_name} is already being updated")

        self._in_flight.add(item.id)
        try:
            logger.info(f"Removing from cart: {item.hotel_name}")
            await self.api.remove_cart_item(item.id)
        except AuthenticationError as e:
            return self._session_lost(e)
        except STORE_ERRORS as e:
            logger.error(f"Error removing from cart: {e}")
            return self._fail(str(e))
        finally:
            self._in_flight.discard(item.id)

        self.items = [i for i in self.items if i.id != item.id]
        return OperationResult(success=True, message=f"{item.hotel_name} removed from cart")

    async def clear(self) -> OperationResult:
        item_count = len(self.items)
        logger.info(f"Clearing cart: {item_count} items")
        try:
            await self.api.clear_cart()
        except AuthenticationError as e:
            return self._session_lost(e)
        except STORE_ERRORS as e:
            logger.error(f"Error clearing cart: {e}")
            return self._fail(str(e))

        self.items = []
        return OperationResult(success=True, message=f"Cart cleared ({item_count} items removed)")

    async def checkout(self, customer_info: Dict[str, Any], payment_method: Optional[str] = None) -> CheckoutResult:
        if self.checkout_manager is None:
            raise RuntimeError("CartStore has no checkout manager attached")
        result = await self.checkout_manager.checkout(customer_info, payment_method)
        if not result.success:
            self.error = result.error or result.message
        return result

    # --- Derived values ---

    def total(self) -> float:
        return sum(item.line_total for item in self.items)

    def count(self) -> int:
        return sum(item.quantity for item in self.items)

    def item_count(self) -> int:
        return len(self.items)

    def find_item(self, item_id) -> Optional[CartItem]:
        item_id = str(item_id)
        return next((item for item in self.items if item.id == item_id), None)

    def is_in_cart(self, item_id) -> bool:
        return self.find_item(item_id) is not None

    def summary(self) -> CartSummary:
        total = self.total()
        item_count = self.item_count()
        total_quantity = self.count()
        return CartSummary(
            total=total,
            item_count=item_count,
            total_quantity=total_quantity,
            is_empty=item_count == 0,
            formatted_total=format_amount(total),
            summary=f"{item_count} item{'s' if item_count != 1 else ''} ({total_quantity} total)",
        )

    # --- State resets ---

    def reset(self):
        self.items = []
        self.loading = False
        self.error = None
        self._in_flight.clear()

    def clear_error(self):
        self.error = None

    def _fail(self, message: str) -> OperationResult:
        self.error = message
        return OperationResult(success=False, message=message)

    def _session_lost(self, error: AuthenticationError) -> OperationResult:
        logger.warning(f"Cart operation lost the session: {error}")
        self.reset()
        return self._fail(str(error))
