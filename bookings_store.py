import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from api_errors import AuthenticationError
from cart_store import STORE_ERRORS
from hotel_schemas import Booking, BookingStats, OperationResult, SpendingSummary

logger = logging.getLogger(__name__)


class BookingsStore:
    """
    Mirror of the user's bookings, split into current and past buckets.

    Newly created bookings are applied optimistically and later replaced by a full
    reload; on conflict the server's copy always wins.
    Per booking: confirmed -> cancelled | completed, both terminal.
    """

    def __init__(self, api):
        self.api = api
        self.current: List[Booking] = []
        self.past: List[Booking] = []
        self.loading = False
        self.error: Optional[str] = None

    # --- Loading / reconciliation ---

    async def load(self, force_refresh: bool = False):
        if not self.api.is_authenticated():
            self._set_buckets([], [])
            return

        if force_refresh:
            logger.info("Refreshing bookings")
            self.current, self.past = [], []
            self.error = None

        self.loading = True
        try:
            current, past = await asyncio.gather(
                self.api.get_current_bookings(),
                self.api.get_past_bookings(),
            )
            self._set_buckets(self._parse_rows(current), self._parse_rows(past))
            logger.info(f"Bookings loaded: current={len(self.current)} past={len(self.past)}")
        except AuthenticationError as e:
            self._session_lost(e)
        except STORE_ERRORS as e:
            logger.error(f"Error loading bookings: {e}")
            self.error = str(e)
        finally:
            self.loading = False

    async def reconcile_from_server(self):
        """Replace local buckets wholesale with the server's view."""
        await self.load()

    @staticmethod
    def _parse_rows(rows) -> List[Booking]:
        bookings = []
        for raw in rows or []:
            try:
                bookings.append(Booking.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable booking row {raw.get('id') if isinstance(raw, dict) else raw}: {e}")
        return bookings

    def _set_buckets(self, current: List[Booking], past: List[Booking]):
        self.current = current
        self.past = past
        self.error = None

    # --- Creation ---

    def add_many(self, bookings: Iterable[Booking]):
        """Optimistic insert: newest bookings go to the front of the current bucket."""
        new = [b if isinstance(b, Booking) else Booking.model_validate(b) for b in bookings]
        self.current = new + self.current
        self.error = None

    apply_optimistic = add_many

    async def add_booking(self, booking_data: Dict[str, Any]) -> OperationResult:
        try:
            logger.info(f"Creating new booking: {booking_data.get('hotel_name')}")
            created = Booking.model_validate(await self.api.create_booking(booking_data))
        except AuthenticationError as e:
            return self._session_lost(e)
        except STORE_ERRORS as e:
            logger.error(f"Error creating booking: {e}")
            return self._fail(str(e))

        self.add_many([created])
        logger.info(f"Booking created: {created.id}")
        return OperationResult(success=True, message=f"Booking {created.id} confirmed")

    async def add_multiple_bookings(self, bookings_data: List[Dict[str, Any]]) -> OperationResult:
        logger.info(f"Creating {len(bookings_data)} bookings")
        created: List[Booking] = []
        for data in bookings_data:
            if not data.get("hotel_name") or not data.get("location"):
                logger.warning(f"Skipping invalid booking data: {data}")
                continue
            try:
                created.append(Booking.model_validate(await self.api.create_booking(data)))
            except AuthenticationError as e:
                return self._session_lost(e)
            except STORE_ERRORS as e:
                logger.error(f"Failed to create booking for {data.get('hotel_name')}: {e}")

        if not created:
            return self._fail("Failed to create any bookings")
        self.add_many(created)
        return OperationResult(success=True, message=f"{len(created)} bookings created successfully")

    # --- Transitions ---

    async def cancel(self, booking_id) -> OperationResult:
        booking = self._find_current(booking_id)
        if booking is None:
            return self._fail("Booking not found")
        if booking.is_terminal:
            return self._fail(f"Booking is already {booking.status}")

        try:
            logger.info(f"Cancelling booking: {booking.id}")
            await self.api.cancel_booking(booking.id)
        except AuthenticationError as e:
            return self._session_lost(e)
        except STORE_ERRORS as e:
            logger.error(f"Error cancelling booking: {e}")
            return self._fail(str(e))

        # Stays in the current bucket; cancelled is not completed
        self.current = [b.with_status("cancelled") if b.id == booking.id else b for b in self.current]
        return OperationResult(success=True, message="Booking cancelled successfully")

    def move_to_past(self, booking_id) -> bool:
        """Local-only completion, driven by an outside signal such as the stay ending."""
        booking = self._find_current(booking_id)
        if booking is None or booking.is_terminal:
            return False
        self.current = [b for b in self.current if b.id != booking.id]
        self.past = self.past + [booking.with_status("completed")]
        return True

    # --- Derived values ---

    def stats(self) -> BookingStats:
        return BookingStats(
            total=len(self.current) + len(self.past),
            confirmed=sum(1 for b in self.current if b.status == "confirmed"),
            cancelled=sum(1 for b in self.current if b.status == "cancelled"),
            completed=sum(1 for b in self.past if b.status == "completed"),
        )

    def total_spending(self) -> SpendingSummary:
        current = sum(b.total_price for b in self.current if b.status == "confirmed")
        past = sum(b.total_price for b in self.past)
        return SpendingSummary(current=current, past=past, total=current + past)

    def find_by_id(self, booking_id) -> Optional[Booking]:
        booking_id = str(booking_id)
        for booking in self.current + self.past:
            if booking.id == booking_id:
                return booking
        return None

    def _find_current(self, booking_id) -> Optional[Booking]:
        booking_id = str(booking_id)
        return next((b for b in self.current if b.id == booking_id), None)

    # --- State resets ---

    def reset(self):
        self.current = []
        self.past = []
        self.loading = False
        self.error = None

    def clear_error(self):
        self.error = None

    def _fail(self, message: str) -> OperationResult:
        self.error = message
        return OperationResult(success=False, message=message)

    def _session_lost(self, error: AuthenticationError) -> OperationResult:
        logger.warning(f"Bookings operation lost the session: {error}")
        self.reset()
        return self._fail(str(error))
