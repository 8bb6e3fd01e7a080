"""
Notification payloads delivered to users.
"""

from datetime import datetime, timezone
from pydantic import BaseModel, Field


class MachineReadyNotification(BaseModel):
    user_id: str
    machine_id: str
    machine_name: str
    title: str = "Your machine is ready!"
    message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationList(BaseModel):
    notifications: list[MachineReadyNotification]
