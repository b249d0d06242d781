"""
Top‑level router for version 1 of the API.

This router aggregates the domain routers (pricing, services, dispatch,
payments, automation, ...) under a unified prefix.  When a new domain
is introduced, include its router here.
"""

from fastapi import APIRouter

from .endpoints import (
    automation,
    dispatch,
    events,
    loyalty,
    payments,
    pricing,
    services,
    subscriptions,
)

router = APIRouter()

router.include_router(pricing.router, prefix="/pricing", tags=["pricing"])
router.include_router(services.router, prefix="/services", tags=["services"])
router.include_router(dispatch.router, prefix="/dispatch", tags=["dispatch"])
router.include_router(payments.router, prefix="/payments", tags=["payments"])
router.include_router(automation.router, prefix="/automation", tags=["automation"])
router.include_router(events.router, prefix="/events", tags=["events"])
router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
router.include_router(loyalty.router, prefix="/loyalty", tags=["loyalty"])
