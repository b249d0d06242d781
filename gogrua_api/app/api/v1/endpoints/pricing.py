"""
Pricing endpoints for API v1.

``POST /pricing/calculate`` quotes a tow before the customer books it.
The response is the bare price breakdown, without the ``success``
envelope, because the booking form renders it field by field.
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, status

from gogrua_api.app.schemas.pricing import AddonRead, PriceBreakdown, PriceCalculationRequest, RateRead
from gogrua_api.app.services.pricing_service import PricingService


router = APIRouter()


@router.post("/calculate", response_model=PriceBreakdown)
async def calculate_price(data: PriceCalculationRequest) -> PriceBreakdown:
    """Calcular el precio estimado de un servicio de grúa.

    Combina la tarifa del tipo de vehículo, la distancia, el horario,
    la demanda actual, la zona y los servicios adicionales elegidos.
    """
    try:
        return await PricingService.calculate_price(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/rates", response_model=List[RateRead])
async def list_rates() -> List[RateRead]:
    """Tarifas activas por tipo de vehículo."""
    return await PricingService.list_rates()


@router.get("/addons", response_model=List[AddonRead])
async def list_addons(category: Optional[str] = None) -> List[AddonRead]:
    """Servicios adicionales disponibles, opcionalmente filtrados por ``category``."""
    return await PricingService.list_addons(category)
