"""
Pydantic schemas for user-related request/response validation.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class User(BaseModel):
    id: str
    email: str
    role: Role = Role.USER
    active_booking: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True, from_attributes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class Credentials(BaseModel):
    # Email format is checked by the session service so that a malformed
    # address surfaces as AuthError(invalid-email) rather than a schema error.
    email: str = Field(..., max_length=255)
    password: str = Field(..., max_length=128)
    # Only honoured as a hint; new identities are always created as `user`.
    role: Role = Role.USER


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: User
