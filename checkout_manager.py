import asyncio
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from api_client import iso_day
from api_errors import AuthenticationError, InvalidInputError
from cart_store import STORE_ERRORS
from config import CURRENCY, DEFAULT_PAYMENT_METHOD, RECONCILE_DELAY
from hotel_schemas import Booking, CartItem, CheckoutResult, CustomerInfo
from validators import validate_booking_data

logger = logging.getLogger(__name__)

GUEST_CUSTOMER = {"name": "Guest User", "email": "guest@example.com", "phone": "+91-0000000000"}


class CheckoutManager:
    """
    Best-effort cart -> bookings conversion (submit each item -> clear cart -> optimistic insert).

    Items are submitted one by one, in cart order. A failing item is logged and skipped;
    the rest still go through. The cart is cleared only when at least one booking was
    created, and a full bookings reload is scheduled shortly after.
    """

    def __init__(self, api, cart, bookings, currency: str = CURRENCY, reconcile_delay: float = RECONCILE_DELAY):
        self.api = api
        self.cart = cart
        self.bookings = bookings
        self.currency = currency
        self.reconcile_delay = reconcile_delay
        self.in_progress = False
        self._reconcile_task: Optional[asyncio.Future] = None
        cart.checkout_manager = self

    def build_booking_request(
        self, item: CartItem, customer_info: Dict[str, Any], payment_method: str
    ) -> Dict[str, Any]:
        """Booking payload for one cart item. total_price is price x quantity at this moment."""
        today = date.today()
        details = item.details
        customer = {
            "name": customer_info.get("name") or GUEST_CUSTOMER["name"],
            "email": customer_info.get("email") or GUEST_CUSTOMER["email"],
            "phone": customer_info.get("phone") or GUEST_CUSTOMER["phone"],
        }
        if customer_info.get("address"):
            customer["address"] = customer_info["address"]

        return {
            "hotel_name": item.hotel_name,
            "location": item.location,
            "check_in": iso_day(details.check_in, today),
            "check_out": iso_day(details.check_out, today + timedelta(days=1)),
            "rooms": item.quantity or 1,
            "guests": details.guests or 2,
            "total_price": round(item.price * item.quantity, 2),
            "currency": self.currency,
            "customer_info": customer,
            "payment_method": payment_method,
            "special_requests": details.special_requests or None,
        }

    async def checkout(self, customer_info, payment_method: Optional[str] = None) -> CheckoutResult:
        if self.in_progress:
            return self._failed("Checkout already in progress")

        items: List[CartItem] = list(self.cart.items)
        if not items:
            return self._failed("Cart is empty")

        if isinstance(customer_info, CustomerInfo):
            customer_info = customer_info.model_dump(exclude_none=True)
        customer_info = customer_info or {}
        payment_method = payment_method or DEFAULT_PAYMENT_METHOD

        self.in_progress = True
        try:
            logger.info(f"Starting cart checkout: {len(items)} items")
            created, failed = await self._submit_all(items, customer_info, payment_method)

            if not created:
                logger.error("Cart checkout failed: no bookings were created")
                return self._failed("No bookings were created successfully", failed_count=failed)

            message = f"Successfully created {len(created)} bookings"
            cleared = await self.cart.clear()
            if not cleared.success:
                logger.error(f"Bookings created but the cart could not be cleared: {cleared.message}")
                message += f" (cart could not be cleared: {cleared.message})"

            self.bookings.apply_optimistic(created)
            self._schedule_reconcile()
            logger.info(f"Cart checkout completed: {len(created)} created, {failed} failed")
            return CheckoutResult(
                success=True,
                message=message,
                bookings=created,
                created_count=len(created),
                failed_count=failed,
            )
        finally:
            self.in_progress = False

    async def _submit_all(self, items: List[CartItem], customer_info, payment_method):
        created: List[Booking] = []
        failed = 0
        for position, item in enumerate(items):
            payload = self.build_booking_request(item, customer_info, payment_method)
            # Incomplete items are dropped from the batch, not fatal to it
            if not payload["hotel_name"] or not payload["location"]:
                logger.warning(f"Skipping cart item {item.id}: missing hotel name or location")
                failed += 1
                continue
            try:
                validate_booking_data(payload)
            except InvalidInputError as e:
                logger.warning(f"Skipping cart item {item.id}: {e}")
                failed += 1
                continue

            try:
                created.append(Booking.model_validate(await self.api.create_booking(payload)))
                logger.info(f"Booking created for {item.hotel_name}")
            except AuthenticationError as e:
                # Nothing after this can succeed without a session
                logger.error(f"Session lost during checkout: {e}")
                failed += len(items) - position
                break
            except STORE_ERRORS as e:
                logger.error(f"Failed to create booking for {item.hotel_name}: {e}")
                failed += 1
        return created, failed

    def _failed(self, error: str, failed_count: int = 0) -> CheckoutResult:
        return CheckoutResult(
            success=False,
            message="Checkout failed. Please try again.",
            error=error,
            failed_count=failed_count,
        )

    # --- Background reconciliation ---

    def _schedule_reconcile(self):
        self.cancel_pending()
        self._reconcile_task = asyncio.ensure_future(self._reconcile_later())

    async def _reconcile_later(self):
        await asyncio.sleep(self.reconcile_delay)
        logger.info("Reconciling bookings with the server")
        await self.bookings.reconcile_from_server()

    def cancel_pending(self):
        if self._reconcile_task is not None and not self._reconcile_task.done():
            self._reconcile_task.cancel()

    async def wait_for_reconcile(self):
        """Wait for a scheduled reconciliation, if any (useful before shutdown)."""
        task = self._reconcile_task
        if task is not None:
            await asyncio.wait([task])
