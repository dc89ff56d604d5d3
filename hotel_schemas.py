import json
from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

BookingStatus = Literal["confirmed", "completed", "cancelled"]
TERMINAL_STATUSES = ("cancelled", "completed")


def _coerce_id(value):
    # The backend hands out integer ids; the client always keys by string
    if value is None:
        return value
    return str(value)


class StayDetails(BaseModel):
    """Stay details carried by a cart item. Wire names are camelCase."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    check_in: Optional[str] = Field(default=None, alias="checkIn")
    check_out: Optional[str] = Field(default=None, alias="checkOut")
    guests: Optional[int] = None
    amenities: Optional[List[str]] = None
    special_requests: Optional[str] = Field(default=None, alias="specialRequests")


class CartItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str                      # server-assigned
    hotel_name: str
    location: str = "Unknown"
    price: float = Field(gt=0)
    quantity: int = Field(default=1, ge=1)
    details: StayDetails = Field(default_factory=StayDetails)

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value):
        return _coerce_id(value)

    @field_validator("details", mode="before")
    @classmethod
    def _empty_details(cls, value):
        return value or {}

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class CustomerInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    email: str
    phone: str
    address: Optional[str] = None


class BookingRequest(BaseModel):
    """Payload of POST /bookings/."""

    hotel_name: str
    location: str
    check_in: date
    check_out: date
    rooms: int = Field(default=1, ge=1)
    guests: int = Field(default=2, ge=1)
    total_price: float = Field(gt=0)
    currency: str = "INR"
    customer_info: CustomerInfo
    payment_method: str = "upi"
    special_requests: Optional[str] = None

    @field_validator("customer_info", mode="before")
    @classmethod
    def _parse_serialized_customer(cls, value):
        return _parse_customer(value)

    @model_validator(mode="after")
    def _check_dates(self):
        if self.check_out <= self.check_in:
            raise ValueError("Check-out date must be after check-in date")
        return self


def _parse_customer(value):
    # Some backend rows store customer info as a JSON string
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return {}
    return value


class BookingContact(BaseModel):
    """Customer info as stored on a booking row; older rows may lack fields."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class Booking(BaseModel):
    """
    A booking as the server reports it.

    Server rows are mirrored as they are: no price or date checks here, those belong
    to BookingRequest. Comped and legacy rows come back with a zero price.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    hotel_name: str
    location: str = "Unknown"
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    rooms: int = 1
    guests: int = 2
    total_price: float = 0
    currency: str = "INR"
    customer_info: BookingContact = Field(default_factory=BookingContact)
    payment_method: Optional[str] = None
    special_requests: Optional[str] = None
    status: BookingStatus = "confirmed"

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value):
        return _coerce_id(value)

    @field_validator("total_price", mode="before")
    @classmethod
    def _missing_price(cls, value):
        return value or 0

    @field_validator("check_in", "check_out", mode="before")
    @classmethod
    def _blank_date(cls, value):
        return value or None

    @field_validator("customer_info", mode="before")
    @classmethod
    def _parse_serialized_customer(cls, value):
        return _parse_customer(value) or {}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def with_status(self, status: BookingStatus) -> "Booking":
        return self.model_copy(update={"status": status})


# --- Derived views: recomputed on every call, never stored ---

class CartSummary(BaseModel):
    total: float
    item_count: int
    total_quantity: int
    is_empty: bool
    formatted_total: str
    summary: str


class BookingStats(BaseModel):
    total: int
    confirmed: int
    cancelled: int
    completed: int


class SpendingSummary(BaseModel):
    current: float
    past: float
    total: float


# --- Results handed back to callers instead of raising ---

class OperationResult(BaseModel):
    success: bool
    message: str


class CheckoutResult(OperationResult):
    bookings: List[Booking] = Field(default_factory=list)
    created_count: int = 0
    failed_count: int = 0
    error: Optional[str] = None
