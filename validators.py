"""
Client-side checks run before a request is sent.
Anything rejected here never reaches the network.
"""

from datetime import date
from typing import Any, Dict

from api_errors import InvalidInputError
from config import MAX_CART_QUANTITY

BOOKING_REQUIRED_FIELDS = ["hotel_name", "location", "check_in", "check_out", "rooms", "guests", "total_price"]
CART_ITEM_REQUIRED_FIELDS = ["hotel_name", "location", "price", "quantity"]


def _missing(data: Dict[str, Any], required) -> list:
    return [name for name in required if not data.get(name)]


def _as_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise InvalidInputError(f"Invalid date: {value}")


def validate_booking_data(data: Dict[str, Any]) -> bool:
    missing = _missing(data, BOOKING_REQUIRED_FIELDS)
    if missing:
        raise InvalidInputError(f"Missing required fields: {', '.join(missing)}")

    if _as_date(data["check_out"]) <= _as_date(data["check_in"]):
        raise InvalidInputError("Check-out date must be after check-in date")

    try:
        numbers = [float(data["rooms"]), float(data["guests"]), float(data["total_price"])]
    except (TypeError, ValueError):
        raise InvalidInputError("Rooms, guests, and price must be numbers")
    if any(n <= 0 for n in numbers):
        raise InvalidInputError("Rooms, guests, and price must be positive numbers")
    return True


def validate_cart_item(data: Dict[str, Any]) -> bool:
    missing = _missing(data, CART_ITEM_REQUIRED_FIELDS)
    if missing:
        raise InvalidInputError(f"Missing required fields: {', '.join(missing)}")

    price, quantity = data["price"], data["quantity"]
    if not isinstance(price, (int, float)) or isinstance(price, bool):
        raise InvalidInputError("Invalid item price: must be a number")
    validate_quantity(quantity)
    if price <= 0 or quantity <= 0:
        raise InvalidInputError("Price and quantity must be positive numbers")
    return True


def validate_quantity(quantity: int) -> int:
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise InvalidInputError("Quantity must be a whole number")
    if quantity > MAX_CART_QUANTITY:
        raise InvalidInputError(f"Quantity cannot exceed {MAX_CART_QUANTITY} rooms")
    return quantity
