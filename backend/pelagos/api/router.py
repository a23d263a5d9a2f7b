"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from pelagos.api.routes import webhooks, payments, bookings, time_slots, admin

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(webhooks.router)
api_router.include_router(payments.router)
api_router.include_router(bookings.router)
api_router.include_router(time_slots.router)
api_router.include_router(admin.router)
