"""
User feedback: submission by any signed-in user, listing for admins.
"""

from datetime import datetime, timezone
from typing import Optional

from washq.core.exceptions import ValidationError
from washq.core.logging import get_logger
from washq.core.permissions import require_admin, require_user
from washq.infrastructure.document_store import FEEDBACK, DocumentStore
from washq.schemas.feedback import Feedback, FeedbackSubject
from washq.schemas.user import User

logger = get_logger(__name__)


class FeedbackService:

    def __init__(self, store: DocumentStore):
        self.store = store

    async def submit(self, user: Optional[User], subject: FeedbackSubject | str, message: str) -> Feedback:
        user = require_user(user)
        message = (message or "").strip()
        if not message:
            raise ValidationError("Please enter a message")
        try:
            subject = FeedbackSubject(subject)
        except ValueError:
            raise ValidationError(f"Unknown feedback subject: {subject}")

        fields = {
            "user_id": user.id,
            "user_email": user.email,
            "subject": subject.value,
            "message": message,
            "created_at": datetime.now(timezone.utc),
        }
        feedback_id = await self.store.create(FEEDBACK, fields)
        logger.info("feedback_submitted", feedback_id=feedback_id, user_id=user.id, subject=subject.value)
        return Feedback(id=feedback_id, **fields)

    async def list(self, actor: Optional[User]) -> list[Feedback]:
        """All feedback, newest first. Admin only."""
        require_admin(actor)
        records = await self.store.list_all(FEEDBACK)
        items = [Feedback.model_validate(r) for r in records]
        items.sort(key=lambda f: f.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return items
