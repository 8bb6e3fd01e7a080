from washq.models.machine import Machine
from washq.models.booking import Booking
from washq.models.user import User
from washq.models.identity import Identity
from washq.models.feedback import Feedback

__all__ = ["Machine", "Booking", "User", "Identity", "Feedback"]
