"""
Authentication endpoints: login (creates the account on first use), logout, me.
"""

from fastapi import APIRouter, Depends, status

from washq.api.deps import get_current_user, get_session
from washq.schemas.user import Credentials, Token, User
from washq.services.session_service import SessionService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=Token)
async def login(credentials: Credentials, session: SessionService = Depends(get_session)):
    """Sign in with email and password; unknown emails are registered as regular users."""
    user = await session.login(credentials)
    token = session.identity.issue_token(session.identity.current)
    return Token(access_token=token, user=user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(session: SessionService = Depends(get_session)):
    await session.logout()


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
    return user
