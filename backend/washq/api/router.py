"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from washq.api.routes import auth, bookings, feedback, machines, notifications

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(machines.router)
api_router.include_router(bookings.router)
api_router.include_router(feedback.router)
api_router.include_router(notifications.router)
