"""
Booking model binding one user to one machine.

Key design decisions:
- Unique constraint on user_id is the database-level backstop for the
  one-active-booking-per-user rule
- No foreign keys: machines can be removed while the cascade release runs
  in the same batch, and identities live in the identity provider
"""

from sqlalchemy import Column, String, DateTime, UniqueConstraint

from washq.db.base import Base, TimestampMixin


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    machine_id = Column(String(64), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    # Set on the booking of the user who started the wash
    wash_started_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_one_booking_per_user"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, machine={self.machine_id})>"
