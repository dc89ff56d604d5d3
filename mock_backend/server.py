"""
In-memory stand-in for the hotel backend.

Implements the endpoints the client talks to, with knobs for the failure modes the
client has to survive: expired access tokens, a failing refresh, slow refreshes,
hotels that refuse bookings and a cart service that cannot be cleared.
"""

import asyncio
import itertools
import json
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from hotel_schemas import BookingRequest

HOTELS = [
    {"name": "Taj Fort Aguada", "location": "Goa", "price": 12000, "rating": 4.7, "category": "luxury"},
    {"name": "Zostel Goa", "location": "Goa", "price": 1200, "rating": 4.2, "category": "budget"},
    {"name": "Sea Breeze Residency", "location": "Goa", "price": 3500, "rating": 4.0, "category": "mid-range"},
    {"name": "The Oberoi", "location": "Mumbai", "price": 15000, "rating": 4.8, "category": "luxury"},
    {"name": "Hotel Residency Fort", "location": "Mumbai", "price": 4000, "rating": 4.1, "category": "mid-range"},
    {"name": "Umaid Bhawan", "location": "Jaipur", "price": 20000, "rating": 4.9, "category": "luxury"},
    {"name": "Pink City Inn", "location": "Jaipur", "price": 1500, "rating": 3.9, "category": "budget"},
]


class BackendState:
    """Everything the fake server knows. Tests poke at it directly."""

    def __init__(self, refresh_delay: float = 0.0):
        self.users: Dict[str, dict] = {}
        self.access_tokens: Dict[str, str] = {}
        self.refresh_tokens: Dict[str, str] = {}
        self.carts: Dict[str, List[dict]] = {}
        self.bookings: Dict[str, List[dict]] = {}
        self.calls: List[tuple] = []
        self.refresh_calls = 0
        self.refresh_delay = refresh_delay
        self.latency = 0.0
        self.fail_refresh = False
        self.fail_cart_clear = False
        self.failing_hotels = set()
        self.chat_cache: Dict[str, str] = {}
        self._ids = itertools.count(1)

    def next_id(self) -> int:
        return next(self._ids)

    def add_user(self, username: str, password: str, email: str = "", age: Optional[int] = None):
        self.users[username] = {"username": username, "password": password, "email": email, "age": age}
        self.carts.setdefault(username, [])
        self.bookings.setdefault(username, [])

    def issue_tokens(self, username: str) -> dict:
        access, refresh = f"access-{uuid.uuid4().hex}", f"refresh-{uuid.uuid4().hex}"
        self.access_tokens[access] = username
        self.refresh_tokens[refresh] = username
        return {"access_token": access, "refresh_token": refresh, "token_type": "bearer"}

    def expire_access_tokens(self):
        self.access_tokens.clear()

    def complete_booking(self, username: str, booking_id: int):
        for booking in self.bookings[username]:
            if booking["id"] == booking_id:
                booking["status"] = "completed"

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [path for m, path in self.calls if method is None or m == method]


def create_app(state: Optional[BackendState] = None) -> FastAPI:
    state = state or BackendState()
    app = FastAPI(title="Hotel backend (mock)")
    app.state.backend = state

    @app.middleware("http")
    async def record_call(request: Request, call_next):
        state.calls.append((request.method, request.url.path))
        if state.latency:
            await asyncio.sleep(state.latency)
        return await call_next(request)

    def current_user(request: Request) -> str:
        header = request.headers.get("authorization", "")
        token = header[len("Bearer "):] if header.startswith("Bearer ") else None
        username = state.access_tokens.get(token) if token else None
        if not username:
            raise HTTPException(status_code=401, detail="Could not validate credentials")
        return username

    def public_booking(booking: dict) -> dict:
        # Stored rows keep customer_info serialized, like the real service does
        return {**booking, "customer_info": json.dumps(booking["customer_info"])}

    def create_booking_row(username: str, payload: dict) -> dict:
        try:
            request = BookingRequest.model_validate(payload)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False, include_input=False))
        if request.hotel_name in state.failing_hotels:
            raise HTTPException(status_code=400, detail=f"No availability at {request.hotel_name}")

        booking_id = state.next_id()
        row = {
            **request.model_dump(mode="json"),
            "id": booking_id,
            "status": "confirmed",
            "booking_reference": f"BK{booking_id:06d}",
            "nights": (request.check_out - request.check_in).days,
            "created_at": datetime.now().isoformat(),
        }
        state.bookings[username].append(row)
        return row

    @app.api_route("/", methods=["GET", "HEAD"])
    async def root():
        return {"status": "ok"}

    # --- Auth ---

    @app.post("/token")
    async def token(request: Request):
        form = await request.form()
        user = state.users.get(form.get("username"))
        if not user or user["password"] != form.get("password"):
            raise HTTPException(status_code=401, detail="Incorrect username or password")
        return state.issue_tokens(user["username"])

    @app.post("/refresh-token/")
    async def refresh_token(request: Request):
        state.refresh_calls += 1
        payload = await request.json()
        if state.refresh_delay:
            await asyncio.sleep(state.refresh_delay)
        username = state.refresh_tokens.pop(payload.get("refresh_token"), None)
        if state.fail_refresh or not username:
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        return state.issue_tokens(username)

    @app.post("/register/")
    async def register(request: Request):
        payload = await request.json()
        username = payload.get("username")
        if not username or not payload.get("password"):
            raise HTTPException(status_code=400, detail="Username and password are required")
        if username in state.users:
            raise HTTPException(status_code=400, detail="Username already registered")
        state.add_user(username, payload["password"], payload.get("email", ""), payload.get("Age"))
        return {"msg": "User registered successfully"}

    @app.post("/logout/")
    async def logout(request: Request, username: str = Depends(current_user)):
        payload = await request.json()
        state.refresh_tokens.pop(payload.get("refresh_token"), None)
        return {"msg": "Logged out"}

    @app.get("/users/me")
    async def me(username: str = Depends(current_user)):
        user = state.users[username]
        return {"username": username, "email": user["email"], "age": user["age"]}

    @app.get("/userdashboard/")
    async def dashboard(username: str, user: str = Depends(current_user)):
        if username != user:
            raise HTTPException(status_code=403, detail="Not allowed")
        return {
            "username": username,
            "cart_items": len(state.carts[username]),
            "bookings": len(state.bookings[username]),
        }

    # --- Cart ---

    @app.get("/cart/")
    async def get_cart(username: str = Depends(current_user)):
        return state.carts[username]

    @app.post("/cart/")
    async def add_to_cart(request: Request, username: str = Depends(current_user)):
        payload = await request.json()
        if not payload.get("hotel_name") or not isinstance(payload.get("price"), (int, float)):
            raise HTTPException(status_code=422, detail="hotel_name and price are required")
        if payload["price"] <= 0:
            raise HTTPException(status_code=422, detail="price must be positive")
        item = {
            "id": state.next_id(),
            "hotel_name": payload["hotel_name"],
            "location": payload.get("location") or "Unknown",
            "price": payload["price"],
            "quantity": payload.get("quantity") or 1,
            "details": payload.get("details") or {},
            "added_at": datetime.now().isoformat(),
        }
        state.carts[username].append(item)
        return item

    @app.put("/cart/{item_id}")
    async def update_cart_item(item_id: int, quantity: int, username: str = Depends(current_user)):
        if quantity < 1:
            raise HTTPException(status_code=400, detail="Quantity must be at least 1")
        for item in state.carts[username]:
            if item["id"] == item_id:
                item["quantity"] = quantity
                return item
        raise HTTPException(status_code=404, detail="Cart item not found")

    @app.delete("/cart/{item_id}")
    async def remove_cart_item(item_id: int, username: str = Depends(current_user)):
        items = state.carts[username]
        remaining = [item for item in items if item["id"] != item_id]
        if len(remaining) == len(items):
            raise HTTPException(status_code=404, detail="Cart item not found")
        state.carts[username] = remaining
        return {"msg": "Item removed"}

    @app.delete("/cart/")
    async def clear_cart(username: str = Depends(current_user)):
        if state.fail_cart_clear:
            return JSONResponse(status_code=503, content={"message": "Cart service unavailable"})
        removed = len(state.carts[username])
        state.carts[username] = []
        return {"msg": f"Removed {removed} items"}

    # --- Bookings ---

    @app.get("/bookings/")
    async def all_bookings(username: str = Depends(current_user)):
        return [public_booking(b) for b in state.bookings[username]]

    @app.get("/bookings/current")
    async def current_bookings(username: str = Depends(current_user)):
        return [public_booking(b) for b in state.bookings[username] if b["status"] != "completed"]

    @app.get("/bookings/past")
    async def past_bookings(username: str = Depends(current_user)):
        return [public_booking(b) for b in state.bookings[username] if b["status"] == "completed"]

    @app.post("/bookings/")
    async def create_booking(request: Request, username: str = Depends(current_user)):
        return create_booking_row(username, await request.json())

    @app.post("/bookings/batch")
    async def create_bookings(request: Request, username: str = Depends(current_user)):
        return [create_booking_row(username, payload) for payload in await request.json()]

    @app.put("/bookings/{booking_id}/cancel")
    async def cancel_booking(booking_id: int, username: str = Depends(current_user)):
        for booking in state.bookings[username]:
            if booking["id"] == booking_id:
                if booking["status"] != "confirmed":
                    raise HTTPException(status_code=400, detail=f"Booking is already {booking['status']}")
                booking["status"] = "cancelled"
                return public_booking(booking)
        raise HTTPException(status_code=404, detail="Booking not found")

    # --- Search and chatbot ---

    @app.post("/recommend/")
    async def recommend(request: Request):
        prefs = await request.json()
        location = (prefs.get("location") or "").lower()
        max_price = prefs.get("max_price")
        return [
            hotel for hotel in HOTELS
            if (not location or hotel["location"].lower() == location)
            and (max_price is None or hotel["price"] <= max_price)
        ]

    @app.get("/hotel-categories/{location}")
    async def hotel_categories(location: str):
        categories: Dict[str, List[str]] = {}
        for hotel in HOTELS:
            if hotel["location"].lower() == location.lower():
                categories.setdefault(hotel["category"], []).append(hotel["name"])
        return {"location": location, "categories": categories}

    @app.post("/chatbot/")
    async def chatbot(request: Request):
        message = (await request.json()).get("message", "")
        if message not in state.chat_cache:
            state.chat_cache[message] = f"Here are some ideas for: {message}"
        return {"response": state.chat_cache[message]}

    @app.get("/chatbot/status")
    async def chatbot_status():
        return {"status": "online"}

    @app.get("/chatbot/cache-info")
    async def chatbot_cache_info():
        return {"cached_responses": len(state.chat_cache)}

    @app.post("/chatbot/clear-cache")
    async def chatbot_clear_cache():
        state.chat_cache.clear()
        return {"msg": "Cache cleared"}

    return app
