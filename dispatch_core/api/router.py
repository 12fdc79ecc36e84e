"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from dispatch_core.api.routes import analytics, bookings, dispatches

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings.router)
api_router.include_router(dispatches.router)
api_router.include_router(analytics.router)
