import asyncio

import httpx
import pytest

from hotel_client import HotelClient
from mock_backend.server import BackendState, create_app
from persistence.storage import LocalStorage

USERNAME = "asha"
PASSWORD = "s3cret"
CUSTOMER = {"name": "Asha Rao", "email": "asha@example.com", "phone": "+91-9800000000"}


@pytest.fixture
def backend():
    state = BackendState()
    state.add_user(USERNAME, PASSWORD, email="asha@example.com", age=31)
    return state


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(f"sqlite:///{tmp_path / 'client.db'}")


@pytest.fixture
def make_client(backend, storage):
    def factory(**options):
        options.setdefault("reconcile_delay", 0)
        transport = httpx.ASGITransport(app=create_app(backend))
        return HotelClient(storage, base_url="http://backend", transport=transport, **options)

    return factory


@pytest.fixture
def run():
    return asyncio.run


async def logged_in(client):
    await client.login(USERNAME, PASSWORD)
    return client


def hotel(name="Taj Fort Aguada", location="Goa", price=1000, **extra):
    return {"name": name, "location": location, "price": price, **extra}
