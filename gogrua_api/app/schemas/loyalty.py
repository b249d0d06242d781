"""
Pydantic models for provider subscription plans and customer loyalty.
"""

from typing import List, Optional

from .base import CamelModel


class SubscriptionPlanRead(CamelModel):
    id: str
    name: str
    tier: str
    description: Optional[str] = None
    monthly_price: float
    annual_price: Optional[float] = None
    features: List[str] = []
    commission_discount_percent: float = 0
    priority_support: bool = False
    advanced_analytics: bool = False


class LoyaltyRead(CamelModel):
    user_id: str
    points_balance: int
    lifetime_points: int
    tier: str
    next_tier: Optional[str] = None
    points_to_next_tier: int = 0
    progress_percent: float = 100.0
