import asyncio

import pytest

from api_errors import AuthenticationError
from auth_session import AuthState, TokenSession


def make_refresher(calls, fail=False, delay=0.01):
    async def refresher(refresh_token):
        calls.append(refresh_token)
        await asyncio.sleep(delay)
        if fail:
            raise RuntimeError("refresh rejected")
        return {"access_token": f"access-{len(calls)}", "refresh_token": f"refresh-{len(calls)}"}

    return refresher


def test_tokens_are_loaded_from_storage(storage):
    storage.set_item("authToken", "a-1")
    storage.set_item("refreshToken", "r-1")

    session = TokenSession(storage)

    assert session.access_token == "a-1"
    assert session.refresh_token == "r-1"
    assert session.is_authenticated()


def test_set_tokens_keeps_refresh_token_when_not_rotated(storage):
    session = TokenSession(storage)
    session.set_tokens("a-1", "r-1")
    session.set_tokens("a-2")

    assert storage.get_item("authToken") == "a-2"
    assert storage.get_item("refreshToken") == "r-1"


def test_clear_removes_both_tokens(storage):
    session = TokenSession(storage)
    session.set_tokens("a-1", "r-1")

    session.clear()

    assert not session.is_authenticated()
    assert storage.get_item("authToken") is None
    assert storage.get_item("refreshToken") is None


def test_concurrent_refreshes_share_one_call(storage, run):
    session = TokenSession(storage)
    session.set_tokens("a-0", "r-0")
    calls = []
    refresher = make_refresher(calls)

    async def scenario():
        return await asyncio.gather(*(session.refresh(refresher) for _ in range(5)))

    tokens = run(scenario())

    assert calls == ["r-0"]
    assert tokens == ["access-1"] * 5
    assert storage.get_item("refreshToken") == "refresh-1"
    assert session.is_refreshing is False


def test_a_later_expiry_starts_a_fresh_refresh(storage, run):
    session = TokenSession(storage)
    session.set_tokens("a-0", "r-0")
    calls = []
    refresher = make_refresher(calls)

    async def scenario():
        await session.refresh(refresher)
        await session.refresh(refresher)

    run(scenario())

    assert calls == ["r-0", "refresh-1"]


def test_failed_refresh_expires_the_session_once(storage, run):
    session = TokenSession(storage)
    session.set_tokens("a-0", "r-0")
    expired = []
    session.add_expiry_listener(lambda: expired.append(True))
    calls = []
    refresher = make_refresher(calls, fail=True)

    async def scenario():
        return await asyncio.gather(*(session.refresh(refresher) for _ in range(3)), return_exceptions=True)

    results = run(scenario())

    assert len(calls) == 1
    assert all(isinstance(r, RuntimeError) for r in results)
    assert expired == [True]
    assert not session.is_authenticated()
    assert storage.get_item("refreshToken") is None


def test_refresh_without_refresh_token(storage, run):
    session = TokenSession(storage)
    session.set_access_token("a-0")

    with pytest.raises(AuthenticationError, match="No refresh token"):
        run(session.refresh(make_refresher([])))


def test_auth_state_round_trip(storage):
    state = AuthState(storage)
    assert not state.is_signed_in
    assert state.user_data is None

    state.login({"username": "asha", "email": "asha@example.com"})
    assert state.is_signed_in
    assert state.user_data["username"] == "asha"

    state.logout()
    assert not state.is_signed_in
    assert state.user_data is None


def test_auth_state_ignores_corrupt_user_data(storage):
    storage.set_item("userData", "{not json")
    assert AuthState(storage).user_data is None


def test_preferences(storage):
    state = AuthState(storage)
    assert state.get_preference("currency", "INR") == "INR"

    state.set_preference("country", "IN")
    assert state.get_preference("country") == "IN"
    assert storage.get_item("preferredCountry") == "IN"
