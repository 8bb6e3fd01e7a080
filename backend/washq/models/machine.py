"""
Machine model: one shared laundry machine and its current status.

Key design decisions:
- `queue_count` and `time_remaining` are nullable; CHECK constraints keep them
  consistent with `status` so a bad write cannot leave a half-updated machine
- Index on `created_at` backs the creation-ordered machine listing
"""

from sqlalchemy import Column, Integer, String, CheckConstraint, Index

from washq.db.base import Base, TimestampMixin


class Machine(Base, TimestampMixin):
    __tablename__ = "machines"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="available")
    queue_count = Column(Integer, nullable=True)
    time_remaining = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('available', 'running', 'waiting', 'out-of-order')",
            name="check_machine_status",
        ),
        CheckConstraint(
            "status != 'waiting' OR (queue_count IS NOT NULL AND queue_count >= 1)",
            name="check_waiting_has_queue",
        ),
        CheckConstraint(
            "status != 'running' OR time_remaining IS NOT NULL",
            name="check_running_has_time",
        ),
        CheckConstraint(
            "status NOT IN ('available', 'out-of-order') OR (queue_count IS NULL AND time_remaining IS NULL)",
            name="check_idle_has_no_aux_fields",
        ),
        Index("ix_machines_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Machine(id={self.id}, name={self.name}, status={self.status})>"
