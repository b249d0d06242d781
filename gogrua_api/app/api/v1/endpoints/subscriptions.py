"""
Subscription plan endpoints for API v1.
"""

from typing import List

from fastapi import APIRouter

from gogrua_api.app.schemas.loyalty import SubscriptionPlanRead
from gogrua_api.app.services.loyalty_service import LoyaltyService


router = APIRouter()


@router.get("/plans", response_model=List[SubscriptionPlanRead])
async def list_plans() -> List[SubscriptionPlanRead]:
    """Planes de suscripción para proveedores, del más barato al más caro."""
    return await LoyaltyService.list_plans()
