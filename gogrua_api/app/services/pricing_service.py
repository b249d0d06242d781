"""
Business logic for price quotes.

A quote is built from the vehicle rate, the approximate road distance,
time‑of‑day rules, current demand, a zone surcharge and any selected
add‑ons, plus the platform fee.  All inputs come from the catalog
tables (``rates``, ``pricing_time_rules``, ``service_addons``) and the
count of recently created services.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from gogrua_api.app.core.db import get_connection, now_timestamp, row_to_dict
from gogrua_api.app.core.money import round_half_up
from gogrua_api.app.core.statuses import SERVICE_PENDING
from gogrua_api.app.schemas.pricing import (
    AddonLine,
    AddonRead,
    PriceBreakdown,
    PriceCalculationRequest,
    RateRead,
)


logger = logging.getLogger(__name__)

DEFAULT_BASE_PRICE = 35000
DEFAULT_PRICE_PER_KM = 500
DEFAULT_MINIMUM_PRICE = 25000

EARTH_RADIUS_KM = 6371
ROAD_DISTANCE_FACTOR = 1.3
MINIMUM_DISTANCE_KM = 1

DEMAND_WINDOW_MINUTES = 30
SURGE_THRESHOLD = 10
SURGE_STEP = 0.05
SURGE_CAP = 1.5

# Central Santiago, (min, max) for latitude and longitude.
CENTRAL_ZONE_LAT = (-33.5, -33.4)
CENTRAL_ZONE_LNG = (-70.7, -70.6)
CENTRAL_ZONE_MULTIPLIER = 1.1

PLATFORM_FEE_RATE = 0.05
AVERAGE_CITY_SPEED_KMH = 40
LOADING_MINUTES = 15


def haversine_km(origin_lat: float, origin_lng: float, dest_lat: float, dest_lng: float) -> float:
    """Great‑circle distance between two points, in kilometres."""
    d_lat = math.radians(dest_lat - origin_lat)
    d_lng = math.radians(dest_lng - origin_lng)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(origin_lat)) * math.cos(math.radians(dest_lat)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def road_distance_km(origin_lat: float, origin_lng: float, dest_lat: float, dest_lng: float) -> float:
    """Approximate driving distance: straight line times the road factor, at least 1 km."""
    return max(haversine_km(origin_lat, origin_lng, dest_lat, dest_lng) * ROAD_DISTANCE_FACTOR, MINIMUM_DISTANCE_KM)


def day_of_week(moment: datetime) -> int:
    """Day number with 0 = Sunday, the convention of ``pricing_time_rules``."""
    return moment.isoweekday() % 7


def hour_in_window(hour: int, start_hour: int, end_hour: int) -> bool:
    """Inclusive hour window; ``start_hour > end_hour`` wraps past midnight."""
    if start_hour <= end_hour:
        return start_hour <= hour <= end_hour
    return hour >= start_hour or hour <= end_hour


def time_multiplier(rules: Iterable[Dict[str, Any]], moment: datetime) -> float:
    """Highest multiplier among the rules matching ``moment``, never below 1.0."""
    day = day_of_week(moment)
    multiplier = 1.0
    for rule in rules:
        days = rule.get("day_of_week")
        if not isinstance(days, list):
            continue
        if day in days and hour_in_window(moment.hour, rule["start_hour"], rule["end_hour"]):
            multiplier = max(multiplier, float(rule["multiplier"]))
    return multiplier


def surge_multiplier(pending_services: int) -> float:
    if pending_services <= SURGE_THRESHOLD:
        return 1.0
    return min(SURGE_CAP, 1 + (pending_services - SURGE_THRESHOLD) * SURGE_STEP)


def zone_multiplier(lat: float, lng: float) -> float:
    if CENTRAL_ZONE_LAT[0] < lat < CENTRAL_ZONE_LAT[1] and CENTRAL_ZONE_LNG[0] < lng < CENTRAL_ZONE_LNG[1]:
        return CENTRAL_ZONE_MULTIPLIER
    return 1.0


def addon_price(addon: Dict[str, Any], base_price: float, distance_price: float, distance_km: float) -> float:
    """Price of one add‑on; unknown price types cost nothing."""
    price_type = addon.get("price_type")
    amount = float(addon.get("base_price") or 0)
    if price_type == "fixed":
        return amount
    if price_type == "percentage":
        return (base_price + distance_price) * (amount / 100)
    if price_type == "per_km":
        return distance_km * amount
    return 0.0


def estimated_duration_minutes(distance_km: float) -> int:
    return round_half_up(distance_km / AVERAGE_CITY_SPEED_KMH * 60 + LOADING_MINUTES)


class PricingService:
    """Servicio de cotización de grúas."""

    @classmethod
    async def calculate_price(cls, data: PriceCalculationRequest, now: Optional[datetime] = None) -> PriceBreakdown:
        """Build a full price breakdown for a towing request.

        ``now`` is the clock used for the demand window and, when the
        request has no ``scheduled_at``, for the time rules.
        """
        now = now or datetime.now(timezone.utc)
        moment = data.scheduled_at or now
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)

        logger.info(
            "Calculating price for %s: (%s, %s) -> (%s, %s)",
            data.vehicle_type,
            data.origin_lat,
            data.origin_lng,
            data.destination_lat,
            data.destination_lng,
        )

        conn = get_connection()
        try:
            cursor = conn.cursor()
            rate = cursor.execute(
                "SELECT * FROM rates WHERE vehicle_type = ? AND is_active = 1 ORDER BY id LIMIT 1",
                (data.vehicle_type,),
            ).fetchone()
            rules = [
                row_to_dict(row, json_columns=("day_of_week",))
                for row in cursor.execute("SELECT * FROM pricing_time_rules WHERE is_active = 1").fetchall()
            ]
            cutoff = now_timestamp(now - timedelta(minutes=DEMAND_WINDOW_MINUTES))
            demand_row = cursor.execute(
                "SELECT COUNT(*) AS total FROM services WHERE status = ? AND created_at >= ?",
                (SERVICE_PENDING, cutoff),
            ).fetchone()
            addons: List[Dict[str, Any]] = []
            if data.addons:
                placeholders = ",".join("?" for _ in data.addons)
                addons = [
                    dict(row)
                    for row in cursor.execute(
                        f"SELECT * FROM service_addons WHERE id IN ({placeholders}) AND is_active = 1 ORDER BY rowid",
                        tuple(data.addons),
                    ).fetchall()
                ]
        finally:
            conn.close()

        base_price = (rate["base_price"] if rate else None) or DEFAULT_BASE_PRICE
        price_per_km = (rate["price_per_km"] if rate else None) or DEFAULT_PRICE_PER_KM
        minimum_price = (rate["minimum_price"] if rate else None) or DEFAULT_MINIMUM_PRICE

        distance_km = road_distance_km(data.origin_lat, data.origin_lng, data.destination_lat, data.destination_lng)
        distance_price = distance_km * price_per_km

        time_mult = time_multiplier(rules, moment)

        demand_level = demand_row["total"] if demand_row else 0
        surge_mult = surge_multiplier(demand_level)
        surge = surge_mult > 1.0

        zone_mult = zone_multiplier(data.origin_lat, data.origin_lng)

        addons_total, addons_breakdown = cls._price_addons(addons, base_price, distance_price, distance_km)

        subtotal = (base_price + distance_price) * time_mult * surge_mult * zone_mult
        platform_fee = round_half_up(subtotal * PLATFORM_FEE_RATE)
        total = max(round_half_up(subtotal + addons_total + platform_fee), minimum_price)

        breakdown = PriceBreakdown(
            base_price=round_half_up(base_price),
            distance_price=round_half_up(distance_price),
            distance_km=round_half_up(distance_km, 1),
            time_multiplier=time_mult,
            demand_multiplier=surge_mult,
            zone_multiplier=zone_mult,
            addons_total=round_half_up(addons_total),
            addons_breakdown=addons_breakdown,
            subtotal=round_half_up(subtotal),
            platform_fee=platform_fee,
            total=round_half_up(total),
            estimated_duration_minutes=estimated_duration_minutes(distance_km),
            surge=surge,
            surge_multiplier=surge_mult,
        )
        logger.info("Price calculated: total=%s surge=%s", breakdown.total, breakdown.surge)
        return breakdown

    @staticmethod
    def _price_addons(
        addons: Iterable[Dict[str, Any]], base_price: float, distance_price: float, distance_km: float
    ) -> Tuple[float, List[AddonLine]]:
        total = 0.0
        lines: List[AddonLine] = []
        for addon in addons:
            price = addon_price(addon, base_price, distance_price, distance_km)
            total += price
            lines.append(AddonLine(name=addon["name"], price=round_half_up(price)))
        return total, lines

    @classmethod
    async def list_rates(cls) -> List[RateRead]:
        """Active rates, one per vehicle type."""
        conn = get_connection()
        try:
            rows = conn.execute(
                "SELECT id, vehicle_type, base_price, price_per_km, minimum_price FROM rates "
                "WHERE is_active = 1 ORDER BY vehicle_type"
            ).fetchall()
            return [RateRead(**dict(row)) for row in rows]
        finally:
            conn.close()

    @classmethod
    async def list_addons(cls, category: Optional[str] = None) -> List[AddonRead]:
        """Active add‑ons, optionally restricted to one category."""
        conn = get_connection()
        try:
            query = (
                "SELECT id, name, description, category, base_price, price_type, icon "
                "FROM service_addons WHERE is_active = 1"
            )
            params: list = []
            if category:
                query += " AND category = ?"
                params.append(category)
            query += " ORDER BY category, name"
            rows = conn.execute(query, tuple(params)).fetchall()
            return [AddonRead(**dict(row)) for row in rows]
        finally:
            conn.close()
