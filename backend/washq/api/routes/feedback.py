"""
Feedback endpoints.
"""

from fastapi import APIRouter, Depends, status

from washq.api.deps import get_admin_user, get_app_state, get_current_user
from washq.schemas.feedback import Feedback, FeedbackCreate
from washq.schemas.user import User
from washq.services.app_state import WashQ

router = APIRouter(prefix="/feedback", tags=["Feedback"])


@router.post("/", response_model=Feedback, status_code=status.HTTP_201_CREATED)
async def submit_feedback(
    feedback_data: FeedbackCreate,
    user: User = Depends(get_current_user),
    washq: WashQ = Depends(get_app_state),
):
    return await washq.feedback.submit(user, feedback_data.subject, feedback_data.message)


@router.get("/", response_model=list[Feedback])
async def list_feedback(
    admin: User = Depends(get_admin_user),
    washq: WashQ = Depends(get_app_state),
):
    """All feedback, newest first."""
    return await washq.feedback.list(admin)
