"""
User session: tracks who is signed in and resolves their washQ user record.

Status starts as `pending` and settles once the identity provider reports an
identity (or its absence). current_user() waits for that to happen.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from email_validator import EmailNotValidError, validate_email

from washq.core.exceptions import AuthError
from washq.core.logging import get_logger
from washq.core.permissions import require_admin
from washq.infrastructure.document_store import USERS, DocumentStore
from washq.schemas.user import Credentials, Role, User
from washq.services.identity_service import AuthIdentity, IdentityProvider

logger = get_logger(__name__)

UserHook = Callable[[User], None]


class SessionStatus(str, Enum):
    PENDING = "pending"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class SessionService:

    def __init__(
        self,
        identity: IdentityProvider,
        store: DocumentStore,
        min_password_length: int = 6,
        on_login: Optional[UserHook] = None,
        on_logout: Optional[UserHook] = None,
    ):
        self.identity = identity
        self.store = store
        self.min_password_length = min_password_length
        self.on_login = on_login
        self.on_logout = on_logout

        self.status = SessionStatus.PENDING
        self._user: Optional[User] = None
        self._settled = asyncio.Event()
        self._resolving: Optional[asyncio.Task] = None
        self._unsubscribe = identity.on_identity_change(self._identity_changed)

    # ------------------------------------------------------------------

    async def current_user(self) -> Optional[User]:
        """The signed-in user, or None. Waits while the session is pending."""
        if self._resolving is not None:
            await self._resolving
        await self._settled.wait()
        return self._user

    async def login(self, credentials: Credentials) -> User:
        """
        Sign in, creating the account on first use.

        Raises AuthError with reason invalid-email, weak-password or
        wrong-password. A requested admin role is never granted here.
        """
        try:
            email = validate_email(credentials.email, check_deliverability=False).normalized
        except EmailNotValidError:
            raise AuthError("invalid-email")
        if len(credentials.password) < self.min_password_length:
            raise AuthError("weak-password")

        try:
            identity = await self.identity.sign_in(email, credentials.password)
        except AuthError as e:
            if e.reason != "user-not-found":
                raise
            identity = await self.identity.sign_up(email, credentials.password)

        user = await self._await_resolution(identity)
        if credentials.role != Role.USER and user.role != credentials.role:
            logger.info("role_request_ignored", user_id=user.id, requested=credentials.role)
        logger.info("user_logged_in", user_id=user.id, role=user.role)
        return user

    async def logout(self) -> None:
        user = self._user
        await self.identity.sign_out()
        if user is not None:
            if self.on_logout:
                self.on_logout(user)
            logger.info("user_logged_out", user_id=user.id)

    async def require_admin(self) -> User:
        return require_admin(await self.current_user())

    def close(self) -> None:
        self._unsubscribe()

    # ------------------------------------------------------------------

    def _identity_changed(self, identity: Optional[AuthIdentity]) -> None:
        if identity is None:
            self._user = None
            self._resolving = None
            self.status = SessionStatus.UNAUTHENTICATED
            self._settled.set()
            return
        if self._user is not None and self._user.id == identity.uid:
            return

        self.status = SessionStatus.PENDING
        self._settled.clear()
        self._resolving = asyncio.ensure_future(self._resolve(identity))

    async def _await_resolution(self, identity: AuthIdentity) -> User:
        if self._resolving is not None:
            await self._resolving
        if self._user is None or self._user.id != identity.uid:
            await self._resolve(identity)
        return self._user

    async def _resolve(self, identity: AuthIdentity) -> User:
        try:
            record = await self.store.get_by_id(USERS, identity.uid)
            if record is None:
                user = User(
                    id=identity.uid,
                    email=identity.email,
                    role=Role.USER,
                    created_at=datetime.now(timezone.utc),
                )
                await self.store.create(USERS, user.model_dump(), user.id)
                logger.info("user_created", user_id=user.id)
            else:
                user = User.model_validate(record)
        except BaseException:
            self.status = SessionStatus.UNAUTHENTICATED
            self._settled.set()
            raise

        self._user = user
        self.status = SessionStatus.AUTHENTICATED
        self._settled.set()
        if self.on_login:
            self.on_login(user)
        return user
