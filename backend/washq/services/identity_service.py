"""
Identity provider: email/secret sign-in and sign-up, bearer token resume.

The provider holds the identity of one session. Every change of that
identity (sign in, sign up, sign out, resume) is pushed to the callbacks
registered with on_identity_change().
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from washq.core.exceptions import AuthError
from washq.core.logging import get_logger
from washq.core.security import (
    create_access_token, decode_access_token, hash_password, verify_password,
)
from washq.infrastructure.document_store import IDENTITIES, DocumentStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthIdentity:
    uid: str
    email: str


IdentityCallback = Callable[[Optional[AuthIdentity]], None]


class IdentityProvider(ABC):

    def __init__(self) -> None:
        self.current: Optional[AuthIdentity] = None
        self._callbacks: list[IdentityCallback] = []

    @abstractmethod
    async def sign_in(self, email: str, secret: str) -> AuthIdentity:
        """Raises AuthError(user-not-found | wrong-password)."""

    @abstractmethod
    async def sign_up(self, email: str, secret: str) -> AuthIdentity:
        """Raises AuthError(email-already-in-use | weak-password)."""

    @abstractmethod
    async def resume(self, token: Optional[str]) -> Optional[AuthIdentity]:
        """Restore the identity carried by a bearer token; None clears it."""

    @abstractmethod
    def issue_token(self, identity: AuthIdentity) -> str:
        ...

    async def sign_out(self) -> None:
        self._set_current(None)

    def on_identity_change(self, callback: IdentityCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def _set_current(self, identity: Optional[AuthIdentity]) -> None:
        self.current = identity
        for callback in list(self._callbacks):
            callback(identity)


class StoreIdentityProvider(IdentityProvider):
    """Identities kept in the document store, argon2 hashes, JWT bearer tokens."""

    def __init__(self, store: DocumentStore, min_secret_length: int = 6):
        super().__init__()
        self.store = store
        self.min_secret_length = min_secret_length

    async def _find(self, email: str) -> Optional[dict]:
        matches = await self.store.query_equals(IDENTITIES, "email", email.lower())
        return matches[0] if matches else None

    async def sign_in(self, email: str, secret: str) -> AuthIdentity:
        record = await self._find(email)
        if record is None:
            raise AuthError("user-not-found")
        if not verify_password(secret, record["hashed_password"]):
            logger.warning("sign_in_failed", reason="wrong-password", uid=record["id"])
            raise AuthError("wrong-password")

        identity = AuthIdentity(uid=record["id"], email=record["email"])
        self._set_current(identity)
        logger.info("signed_in", uid=identity.uid)
        return identity

    async def sign_up(self, email: str, secret: str) -> AuthIdentity:
        if len(secret) < self.min_secret_length:
            raise AuthError("weak-password")
        if await self._find(email) is not None:
            raise AuthError("email-already-in-use")

        uid = await self.store.create(IDENTITIES, {
            "email": email.lower(),
            "hashed_password": hash_password(secret),
            "created_at": datetime.now(timezone.utc),
        })
        identity = AuthIdentity(uid=uid, email=email.lower())
        self._set_current(identity)
        logger.info("signed_up", uid=uid)
        return identity

    async def resume(self, token: Optional[str]) -> Optional[AuthIdentity]:
        if not token:
            self._set_current(None)
            return None

        payload = decode_access_token(token)
        record = await self.store.get_by_id(IDENTITIES, payload["sub"])
        if record is None:
            self._set_current(None)
            raise AuthError("invalid-token")

        identity = AuthIdentity(uid=record["id"], email=record["email"])
        self._set_current(identity)
        return identity

    def issue_token(self, identity: AuthIdentity) -> str:
        return create_access_token({"sub": identity.uid, "email": identity.email})
