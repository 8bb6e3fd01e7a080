"""
User profile: role and the active-booking pointer.
Credentials live in the identities table owned by the identity provider.
"""

from sqlalchemy import Column, String, CheckConstraint

from washq.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="user")
    active_booking = Column(String(64), nullable=True)

    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="check_user_role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
