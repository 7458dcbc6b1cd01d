"""API routes."""

from hrms_engine.api.routes.attendance import router as attendance_router
from hrms_engine.api.routes.health import router as health_router
from hrms_engine.api.routes.messages import router as messages_router
from hrms_engine.api.routes.requests import router as requests_router
from hrms_engine.api.routes.toil import router as toil_router

__all__ = [
    "attendance_router",
    "health_router",
    "messages_router",
    "requests_router",
    "toil_router",
]
