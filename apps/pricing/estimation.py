from __future__ import annotations

import logging
import math
from datetime import date

from apps.pricing.reference import DEFAULT_BASE_PRICE, SEASONAL_FACTORS, route_base_prices, route_key

logger = logging.getLogger(__name__)


def base_price(origin: str, destination: str) -> float:
    return route_base_prices().get(route_key(origin, destination), DEFAULT_BASE_PRICE)


def seasonal_factor(travel_date: date) -> float:
    return SEASONAL_FACTORS.get(travel_date.month, 1.0)


def advance_discount(week: int, total_weeks: int) -> float:
    """Earlier weeks of the booking window get a larger discount."""
    ratio = week / total_weeks
    if ratio < 0.2:
        return 0.7
    if ratio < 0.5:
        return 0.8
    if ratio < 0.8:
        return 0.9
    return 1.0


def _round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


def estimate_price(origin: str, destination: str, travel_date: date, week: int, total_weeks: int) -> float:
    """Deterministic synthetic fare used when live pricing is unavailable.

    price = base route price * seasonal multiplier * advance-purchase discount,
    rounded half-up to a whole currency unit.
    """
    base = base_price(origin, destination)
    season = seasonal_factor(travel_date)
    discount = advance_discount(week, total_weeks)
    price = _round_half_up(base * season * discount)
    logger.info(
        "Estimated %s on %s: %.0f (base %.0f, season %.2f, discount %.2f)",
        route_key(origin, destination), travel_date.isoformat(), price, base, season, discount,
    )
    return price
