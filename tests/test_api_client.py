import asyncio
from datetime import date, timedelta

import httpx
import pytest

from api_client import ApiClient, normalize_booking_payload
from api_errors import ApiError, AuthenticationError, SessionExpiredError
from auth_session import TokenSession
from conftest import PASSWORD, USERNAME, logged_in


def test_login_persists_tokens(make_client, storage, run):
    async def scenario():
        async with make_client() as client:
            await client.api.login(USERNAME, PASSWORD)
            return client.api.is_authenticated()

    assert run(scenario())
    restored = TokenSession(storage)
    assert restored.access_token.startswith("access-")
    assert restored.refresh_token.startswith("refresh-")


def test_login_with_wrong_password(make_client, run):
    async def scenario():
        async with make_client() as client:
            with pytest.raises(AuthenticationError, match="Incorrect username or password"):
                await client.api.login(USERNAME, "nope")
            return client.api.is_authenticated()

    assert run(scenario()) is False


def test_register_then_login(make_client, backend, run):
    async def scenario():
        async with make_client() as client:
            await client.api.register("ravi", "ravi@example.com", "pw", age=40)
            await client.api.login("ravi", "pw")
            return await client.api.get_current_user()

    user = run(scenario())
    assert user == {"username": "ravi", "email": "ravi@example.com", "age": 40}


def test_request_without_token_requires_authentication(make_client, run):
    async def scenario():
        async with make_client() as client:
            with pytest.raises(AuthenticationError, match="Authentication required"):
                await client.api.get_current_user()

    run(scenario())


def test_bearer_token_is_attached(make_client, backend, run):
    async def scenario():
        async with make_client() as client:
            await logged_in(client)
            return await client.api.get_user_dashboard(USERNAME)

    assert run(scenario()) == {"username": USERNAME, "cart_items": 0, "bookings": 0}


def test_expired_token_is_refreshed_and_request_retried(make_client, backend, storage, run):
    async def scenario():
        async with make_client() as client:
            await logged_in(client)
            old_token = client.session.access_token
            backend.expire_access_tokens()
            user = await client.api.get_current_user()
            return old_token, client.session.access_token, user

    old_token, new_token, user = run(scenario())
    assert user["username"] == USERNAME
    assert backend.refresh_calls == 1
    assert new_token != old_token
    assert storage.get_item("authToken") == new_token


def test_concurrent_401s_trigger_exactly_one_refresh(make_client, backend, run):
    backend.refresh_delay = 0.05

    async def scenario():
        async with make_client() as client:
            await logged_in(client)
            backend.expire_access_tokens()
            return await asyncio.gather(*(client.api.request("/cart/") for _ in range(5)))

    results = run(scenario())
    assert results == [[]] * 5
    assert backend.refresh_calls == 1


def test_failed_refresh_clears_session(make_client, backend, storage, run):
    backend.fail_refresh = True

    async def scenario():
        async with make_client() as client:
            await logged_in(client)
            backend.expire_access_tokens()
            with pytest.raises(SessionExpiredError, match="Session expired"):
                await client.api.get_current_user()
            return client.api.is_authenticated()

    assert run(scenario()) is False
    assert storage.get_item("authToken") is None
    assert storage.get_item("refreshToken") is None


def test_server_error_message_is_surfaced(make_client, run):
    async def scenario():
        async with make_client() as client:
            await logged_in(client)
            with pytest.raises(ApiError) as excinfo:
                await client.api.update_cart_item("999", 2)
            return excinfo.value

    error = run(scenario())
    assert error.message == "Cart item not found"
    assert error.status_code == 404


def test_message_field_is_used_when_detail_is_missing(make_client, backend, run):
    backend.fail_cart_clear = True

    async def scenario():
        async with make_client() as client:
            await logged_in(client)
            with pytest.raises(ApiError, match="Cart service unavailable"):
                await client.api.clear_cart()

    run(scenario())


def test_logout_clears_tokens_even_when_backend_fails(make_client, backend, storage, run):
    backend.fail_refresh = True

    async def scenario():
        async with make_client() as client:
            await logged_in(client)
            backend.expire_access_tokens()
            await client.api.logout()
            return client.api.is_authenticated()

    assert run(scenario()) is False
    assert storage.get_item("authToken") is None


def test_check_auth_status(make_client, backend, run):
    async def scenario():
        async with make_client() as client:
            before = await client.api.check_auth_status()
            await logged_in(client)
            after = await client.api.check_auth_status()
            return before, after

    assert run(scenario()) == (False, True)


def test_get_cart_items_is_empty_when_signed_out(make_client, backend, run):
    async def scenario():
        async with make_client() as client:
            return await client.api.get_cart_items()

    assert run(scenario()) == []
    assert "/cart/" not in backend.paths()


def test_add_cart_item_requires_login(make_client, run):
    async def scenario():
        async with make_client() as client:
            with pytest.raises(AuthenticationError, match="Please log in"):
                await client.api.add_cart_item({"hotel_name": "Zostel Goa", "price": 1200})

    run(scenario())


def test_create_booking_fills_defaults(make_client, run):
    async def scenario():
        async with make_client() as client:
            await logged_in(client)
            return await client.api.create_booking({
                "hotel_name": "Zostel Goa",
                "location": "Goa",
                "total_price": 1200,
                "customer_info": None,
            })

    booking = run(scenario())
    today = date.today()
    assert booking["check_in"] == today.isoformat()
    assert booking["check_out"] == (today + timedelta(days=1)).isoformat()
    assert booking["rooms"] == 1
    assert booking["guests"] == 2
    assert booking["currency"] == "INR"
    assert booking["payment_method"] == "upi"
    assert booking["customer_info"]["name"] == "Default User"


def test_normalize_booking_payload_keeps_given_values():
    payload = normalize_booking_payload({
        "hotel_name": "Pink City Inn",
        "location": "Jaipur",
        "check_in": date(2026, 11, 1),
        "check_out": "2026-11-03T00:00:00",
        "rooms": "2",
        "guests": 4,
        "total_price": 3000,
        "currency": "USD",
        "customer_info": {"name": "A", "email": "a@example.com", "phone": "1"},
        "payment_method": "card",
    })

    assert payload["check_in"] == "2026-11-01"
    assert payload["check_out"] == "2026-11-03"
    assert payload["rooms"] == 2
    assert payload["currency"] == "USD"
    assert payload["payment_method"] == "card"
    assert payload["special_requests"] is None


def test_batch_bookings_and_batch_requests(make_client, run):
    async def scenario():
        async with make_client() as client:
            await logged_in(client)
            created = await client.api.create_batch_bookings([
                {"hotel_name": "Zostel Goa", "location": "Goa", "total_price": 1200},
                {"hotel_name": "Pink City Inn", "location": "Jaipur", "total_price": 1500},
            ])
            settled = await client.api.batch_request([
                {"endpoint": "/bookings/"},
                {"endpoint": "/bookings/999/cancel", "method": "PUT"},
            ])
            everything = await client.api.get_user_bookings()
            return created, settled, everything

    created, settled, everything = run(scenario())
    assert [b["id"] for b in everything] == [b["id"] for b in created]
    assert [b["hotel_name"] for b in created] == ["Zostel Goa", "Pink City Inn"]
    assert len(settled["successful"]) == 1
    assert len(settled["successful"][0]) == 2
    assert isinstance(settled["failed"][0], ApiError)


def test_search_and_chatbot_endpoints(make_client, run):
    async def scenario():
        async with make_client() as client:
            hotels = await client.api.get_recommendations({"location": "Goa", "max_price": 5000})
            categories = await client.api.get_hotel_categories("New Delhi")
            reply = await client.api.send_chat_message("beach trip")
            info = await client.api.get_chatbot_cache_info()
            await client.api.clear_chatbot_cache()
            status = await client.api.get_chatbot_status()
            after = await client.api.get_chatbot_cache_info()
            return hotels, categories, reply, info, status, after

    hotels, categories, reply, info, status, after = run(scenario())
    assert {h["name"] for h in hotels} == {"Zostel Goa", "Sea Breeze Residency"}
    assert categories == {"location": "New Delhi", "categories": {}}
    assert "beach trip" in reply["response"]
    assert info == {"cached_responses": 1}
    assert status == {"status": "online"}
    assert after == {"cached_responses": 0}


def test_network_status(make_client, storage, run):
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        async with make_client() as client:
            online = await client.api.check_network_status()
        async with ApiClient(TokenSession(storage), "http://backend", transport=httpx.MockTransport(unreachable)) as api:
            offline = await api.check_network_status()
        return online, offline

    online, offline = run(scenario())
    assert online == {"online": True, "api": True}
    assert offline["api"] is False
    assert "connection refused" in offline["error"]


def test_transport_errors_propagate(storage, run):
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        async with ApiClient(TokenSession(storage), "http://backend", transport=httpx.MockTransport(unreachable)) as api:
            await api.get_recommendations({"location": "Goa"})

    with pytest.raises(httpx.ConnectError):
        run(scenario())
