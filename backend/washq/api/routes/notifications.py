"""
Notification endpoint: clients poll it to collect "machine ready" events.
"""

from fastapi import APIRouter, Depends

from washq.api.deps import get_app_state, get_current_user
from washq.schemas.notification import NotificationList
from washq.schemas.user import User
from washq.services.app_state import WashQ

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/", response_model=NotificationList)
async def collect_notifications(
    user: User = Depends(get_current_user),
    washq: WashQ = Depends(get_app_state),
):
    """Pending notifications for the caller; each is delivered once."""
    return NotificationList(notifications=washq.notifications.drain(user.id))
