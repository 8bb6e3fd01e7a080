"""Role checks shared by the services.

Admin-only operations call require_admin() themselves so the rule holds no
matter which route, task or script invokes them.
"""

from typing import Optional

from washq.core.exceptions import AuthError, Forbidden
from washq.schemas.user import Role, User


def require_user(user: Optional[User]) -> User:
    if user is None:
        raise AuthError("not-authenticated")
    return user


def require_admin(user: Optional[User]) -> User:
    user = require_user(user)
    if user.role != Role.ADMIN:
        raise Forbidden()
    return user
