"""
Provider subscription plans and customer loyalty points.
"""

import logging
from typing import List, Optional

from gogrua_api.app.core.db import get_connection, row_to_dict
from gogrua_api.app.core.money import round_half_up
from gogrua_api.app.schemas.loyalty import LoyaltyRead, SubscriptionPlanRead


logger = logging.getLogger(__name__)

# Lifetime points needed to reach each tier, lowest first.
TIER_THRESHOLDS = [("bronze", 0), ("silver", 1000), ("gold", 5000), ("platinum", 15000)]


def tier_for_points(lifetime_points: int) -> str:
    tier = TIER_THRESHOLDS[0][0]
    for name, threshold in TIER_THRESHOLDS:
        if lifetime_points >= threshold:
            tier = name
    return tier


def next_tier(tier: str) -> Optional[str]:
    names = [name for name, _ in TIER_THRESHOLDS]
    if tier not in names:
        return names[1]
    index = names.index(tier)
    return names[index + 1] if index + 1 < len(names) else None


def points_to_next_tier(tier: str, points_balance: int) -> int:
    upcoming = next_tier(tier)
    if upcoming is None:
        return 0
    return max(0, dict(TIER_THRESHOLDS)[upcoming] - points_balance)


class LoyaltyService:
    """Servicio de planes y fidelización."""

    @classmethod
    async def list_plans(cls) -> List[SubscriptionPlanRead]:
        """Active subscription plans, cheapest first."""
        conn = get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM subscription_plans WHERE is_active = 1 ORDER BY monthly_price, name"
            ).fetchall()
        finally:
            conn.close()
        plans = []
        for row in rows:
            plan = row_to_dict(row, json_columns=("features",))
            plan["features"] = plan.get("features") or []
            plans.append(SubscriptionPlanRead(**plan))
        return plans

    @classmethod
    async def get_loyalty(cls, user_id: str) -> LoyaltyRead:
        """Balance, tier and progress of a user.

        Users who never earned points are reported as ``bronze`` with an
        empty balance.
        """
        conn = get_connection()
        try:
            row = conn.execute("SELECT * FROM loyalty_points WHERE user_id = ?", (user_id,)).fetchone()
        finally:
            conn.close()

        balance = row["points_balance"] if row else 0
        lifetime = row["lifetime_points"] if row else 0
        tier = (row["tier"] if row else None) or tier_for_points(lifetime)
        upcoming = next_tier(tier)
        remaining = points_to_next_tier(tier, balance)
        if upcoming is None:
            progress = 100.0
        elif balance + remaining == 0:
            progress = 0.0
        else:
            progress = min(100.0, round_half_up(balance / (balance + remaining) * 100, 1))
        logger.debug("Loyalty for %s: %s points, tier %s", user_id, balance, tier)
        return LoyaltyRead(
            user_id=user_id,
            points_balance=balance,
            lifetime_points=lifetime,
            tier=tier,
            next_tier=upcoming,
            points_to_next_tier=remaining,
            progress_percent=progress,
        )
