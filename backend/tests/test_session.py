"""
Tests for the session service and identity provider.
"""

import pytest

from washq.core.exceptions import AuthError, Forbidden
from washq.infrastructure.document_store import USERS
from washq.schemas.user import Credentials, Role
from washq.services.session_service import SessionStatus

from conftest import seed_account


@pytest.mark.asyncio
async def test_starts_pending_then_unauthenticated(washq):
    session = washq.new_session()
    assert session.status == SessionStatus.PENDING

    await session.identity.resume(None)
    assert await session.current_user() is None
    assert session.status == SessionStatus.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_login_creates_user_record(washq, store):
    session = washq.new_session()
    user = await session.login(Credentials(email="first@dorm.edu", password="secret1"))

    assert session.status == SessionStatus.AUTHENTICATED
    assert user.role == Role.USER
    assert (await store.get_by_id(USERS, user.id))["email"] == "first@dorm.edu"
    assert await session.current_user() == user


@pytest.mark.asyncio
async def test_login_never_escalates_role(washq):
    session = washq.new_session()
    user = await session.login(Credentials(email="boss@dorm.edu", password="secret1", role=Role.ADMIN))
    assert user.role == Role.USER


@pytest.mark.asyncio
@pytest.mark.parametrize("email, password, reason", [
    ("nope", "secret1", "invalid-email"),
    ("short@dorm.edu", "123", "weak-password"),
])
async def test_login_input_errors(washq, email, password, reason):
    session = washq.new_session()
    with pytest.raises(AuthError) as exc:
        await session.login(Credentials(email=email, password=password))
    assert exc.value.reason == reason


@pytest.mark.asyncio
async def test_login_wrong_password(washq):
    await washq.new_session().login(Credentials(email="me@dorm.edu", password="secret1"))

    with pytest.raises(AuthError) as exc:
        await washq.new_session().login(Credentials(email="me@dorm.edu", password="secret2"))
    assert exc.value.reason == "wrong-password"


@pytest.mark.asyncio
async def test_resume_token_and_logout(washq, store):
    headers = await seed_account(store, "u1")
    token = headers["Authorization"].split()[1]

    session = washq.new_session()
    await session.identity.resume(token)
    user = await session.current_user()
    assert user.id == "u1"

    await session.logout()
    assert session.status == SessionStatus.UNAUTHENTICATED
    assert await session.current_user() is None


@pytest.mark.asyncio
async def test_require_admin(washq, store):
    user_token = (await seed_account(store, "u1"))["Authorization"].split()[1]
    admin_token = (await seed_account(store, "boss", Role.ADMIN))["Authorization"].split()[1]

    session = washq.new_session()
    await session.identity.resume(user_token)
    with pytest.raises(Forbidden):
        await session.require_admin()

    session = washq.new_session()
    await session.identity.resume(admin_token)
    assert (await session.require_admin()).id == "boss"


@pytest.mark.asyncio
async def test_identity_sign_up_duplicate(washq):
    provider = washq.identity_provider()
    await provider.sign_up("dup@dorm.edu", "secret1")
    with pytest.raises(AuthError) as exc:
        await provider.sign_up("dup@dorm.edu", "secret1")
    assert exc.value.reason == "email-already-in-use"


@pytest.mark.asyncio
async def test_identity_change_callbacks(washq):
    provider = washq.identity_provider()
    seen = []
    unsubscribe = provider.on_identity_change(seen.append)

    identity = await provider.sign_up("cb@dorm.edu", "secret1")
    await provider.sign_out()
    unsubscribe()
    await provider.sign_in("cb@dorm.edu", "secret1")

    assert seen == [identity, None]
