"""
Append-only user feedback, readable by admins.
"""

from sqlalchemy import Column, String, Text, CheckConstraint

from washq.db.base import Base, TimestampMixin


class Feedback(Base, TimestampMixin):
    __tablename__ = "feedback"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    user_email = Column(String(255), nullable=False)
    subject = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)

    __table_args__ = (
        CheckConstraint("subject IN ('issue', 'suggestion', 'other')", name="check_feedback_subject"),
    )

    def __repr__(self) -> str:
        return f"<Feedback(id={self.id}, user={self.user_id}, subject={self.subject})>"
