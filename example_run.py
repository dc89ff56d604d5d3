"""
Run this script to see a full booking flow against the in-memory backend:
 - log in and load the (empty) cart and bookings
 - add two hotels to the cart and change a quantity
 - expire the access token to force a transparent refresh
 - check out, then let the background reconciliation run
 - cancel one booking and print the final numbers
"""

import asyncio
import tempfile
from pathlib import Path

import httpx

from config import configure_logging
from hotel_client import HotelClient
from mock_backend.server import BackendState, create_app
from persistence.storage import LocalStorage


async def main(storage_dir: str = None):
    backend = BackendState()
    backend.add_user("asha", "s3cret", email="asha@example.com")
    transport = httpx.ASGITransport(app=create_app(backend))

    storage_dir = storage_dir or tempfile.mkdtemp()
    storage = LocalStorage(f"sqlite:///{Path(storage_dir) / 'demo_client.db'}")

    async with HotelClient(storage, base_url="http://backend", transport=transport, reconcile_delay=0.1) as client:
        print("=== Login ===")
        user = await client.login("asha", "s3cret")
        print(f"Signed in as {user['username']}; cart={client.cart.item_count()} bookings={client.bookings.stats().total}")

        print("\n=== Cart ===")
        await client.cart.add_item({
            "name": "Taj Fort Aguada", "location": "Goa", "price": 1000, "quantity": 2,
            "checkIn": "2026-12-20", "checkOut": "2026-12-23", "guests": 3,
        })
        await client.cart.add_item({"name": "Umaid Bhawan", "location": "Jaipur", "price": 2000})
        first = client.cart.items[0]
        result = await client.cart.update_quantity(first.id, 3)
        print(f"- update quantity: {result.message}")
        summary = client.cart.summary()
        print(f"- {summary.summary}, total {summary.formatted_total}")

        print("\n=== Token expiry ===")
        backend.expire_access_tokens()
        await client.cart.load()
        print(f"- cart still loads after refresh ({backend.refresh_calls} refresh call)")

        print("\n=== Checkout ===")
        checkout = await client.checkout({"name": "Asha Rao", "email": "asha@example.com", "phone": "+91-9800000000"})
        print(f"- {checkout.message}")
        for booking in checkout.bookings:
            print(f"  {booking.id}: {booking.hotel_name} x{booking.rooms} = {booking.total_price} {booking.currency}")
        await client.checkout_manager.wait_for_reconcile()
        print(f"- cart now has {client.cart.item_count()} items; current bookings: {len(client.bookings.current)}")

        print("\n=== Cancel ===")
        cancelled = await client.bookings.cancel(checkout.bookings[0].id)
        print(f"- {cancelled.message}")
        print(f"- stats: {client.bookings.stats().model_dump()}")
        print(f"- spending: {client.bookings.total_spending().model_dump()}")

        await client.logout()
        print(f"\nLogged out; authenticated={client.is_authenticated()}")
    return backend


if __name__ == "__main__":
    configure_logging("WARNING")
    asyncio.run(main())
