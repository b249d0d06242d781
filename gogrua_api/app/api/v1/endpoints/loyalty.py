"""
Loyalty endpoints for API v1.

Customers can only read their own points; staff can read anyone's.
"""

from fastapi import APIRouter, Depends, HTTPException, Path, status

from gogrua_api.app.core.security import get_current_user
from gogrua_api.app.schemas.loyalty import LoyaltyRead
from gogrua_api.app.services.loyalty_service import LoyaltyService


router = APIRouter()

STAFF_ROLES = {"admin", "dispatcher"}


@router.get("/{user_id}", response_model=LoyaltyRead)
async def get_loyalty(
    user_id: str = Path(..., description="ID del usuario"),
    current_user: dict = Depends(get_current_user),
) -> LoyaltyRead:
    """Puntos, nivel y progreso al siguiente nivel de un usuario."""
    if current_user.get("role") not in STAFF_ROLES and str(current_user.get("sub")) != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return await LoyaltyService.get_loyalty(user_id)
