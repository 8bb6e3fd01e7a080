"""
Identity record used by the built-in identity provider.
"""

from sqlalchemy import Column, String

from washq.db.base import Base, TimestampMixin


class Identity(Base, TimestampMixin):
    __tablename__ = "identities"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Identity(id={self.id}, email={self.email})>"
