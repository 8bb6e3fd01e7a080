"""
FastAPI dependencies: application services and the per-request session.
"""

from typing import AsyncIterator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from washq.core.permissions import require_admin, require_user
from washq.schemas.user import User
from washq.services.app_state import WashQ
from washq.services.session_service import SessionService

bearer_scheme = HTTPBearer(auto_error=False)


def get_app_state(request: Request) -> WashQ:
    return request.app.state.washq


async def get_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    washq: WashQ = Depends(get_app_state),
) -> AsyncIterator[SessionService]:
    """Session resumed from the bearer token, if any."""
    session = washq.new_session()
    try:
        await session.identity.resume(credentials.credentials if credentials else None)
        yield session
    finally:
        session.close()


async def get_optional_user(session: SessionService = Depends(get_session)) -> Optional[User]:
    return await session.current_user()


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    return require_user(user)


async def get_admin_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    return require_admin(user)
