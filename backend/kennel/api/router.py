"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from kennel.api.routes import admin, availability, bookings, payments, pricing, reservations

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(reservations.router)
api_router.include_router(availability.router)
api_router.include_router(pricing.router)
api_router.include_router(bookings.router)
api_router.include_router(payments.router)
api_router.include_router(admin.router)
