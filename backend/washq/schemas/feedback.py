"""
Pydantic schemas for user feedback.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class FeedbackSubject(str, Enum):
    ISSUE = "issue"
    SUGGESTION = "suggestion"
    OTHER = "other"


class FeedbackCreate(BaseModel):
    subject: FeedbackSubject = FeedbackSubject.ISSUE
    message: str = Field(..., max_length=5000)


class Feedback(BaseModel):
    id: str
    user_id: str
    user_email: str
    subject: FeedbackSubject
    message: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True, from_attributes=True)
