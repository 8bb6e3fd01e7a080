from washq.schemas.machine import (
    Machine, MachineStatus, MachineCreate, MachineStatusUpdate, MachineListResponse,
    ScanRequest, MachineQRResponse,
)
from washq.schemas.booking import (
    Booking, BookingCreate, BookingOutcome, ActiveBookingResponse, ClearBookingResponse,
)
from washq.schemas.user import User, Role, Credentials, Token
from washq.schemas.feedback import Feedback, FeedbackCreate, FeedbackSubject
from washq.schemas.notification import MachineReadyNotification, NotificationList

__all__ = [
    "Machine", "MachineStatus", "MachineCreate", "MachineStatusUpdate", "MachineListResponse",
    "ScanRequest", "MachineQRResponse",
    "Booking", "BookingCreate", "BookingOutcome", "ActiveBookingResponse", "ClearBookingResponse",
    "User", "Role", "Credentials", "Token",
    "Feedback", "FeedbackCreate", "FeedbackSubject",
    "MachineReadyNotification", "NotificationList",
]
