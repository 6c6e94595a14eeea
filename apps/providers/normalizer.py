from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from apps.pricing.reference import get_airline_name
from apps.providers.amadeus_client import ProviderError

logger = logging.getLogger(__name__)


class NoOffersError(Exception):
    pass


@dataclass(frozen=True)
class OfferSpread:
    carriers: int
    average: float
    min_price: float
    max_price: float
    price_range: float
    std_dev: float


def decode_offers(body: str) -> List[Dict[str, Any]]:
    """Parse a Flight Offers Search body into its list of offers."""
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise ProviderError(200, f"invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ProviderError(200, "unexpected response shape")
    return payload.get("data") or []


def _parse_price(offer: Dict[str, Any]) -> Optional[float]:
    price_info = offer.get("price")
    if not isinstance(price_info, dict):
        return None
    total = price_info.get("total")
    try:
        price = float(total)
    except (TypeError, ValueError):
        return None
    # NaN/inf are unusable as a market price
    if not math.isfinite(price):
        return None
    return price


def _first_carrier_code(offer: Any) -> Optional[str]:
    # Null or non-object entries mark the offer as malformed
    if not isinstance(offer, dict):
        return None
    itineraries = offer.get("itineraries")
    if not isinstance(itineraries, list) or not itineraries or not isinstance(itineraries[0], dict):
        return None
    segments = itineraries[0].get("segments")
    if not isinstance(segments, list) or not segments or not isinstance(segments[0], dict):
        return None
    code = segments[0].get("carrierCode")
    return code if isinstance(code, str) else ""


def airline_min_prices(offers: List[Dict[str, Any]]) -> Dict[str, float]:
    """Lowest total price per carrier display name.

    Offers without a first-itinerary segment or with an unparseable price are
    skipped. The carrier is taken from the first segment of the first itinerary.
    """
    prices: Dict[str, float] = {}
    for offer in offers:
        code = _first_carrier_code(offer)
        if code is None:
            continue
        price = _parse_price(offer)
        if price is None:
            continue
        airline = get_airline_name(code)
        existing = prices.get(airline)
        if existing is None or price < existing:
            prices[airline] = price
    return prices


def summarize_airline_prices(prices: Dict[str, float]) -> OfferSpread:
    if not prices:
        raise NoOffersError("no usable flight offers")
    values = sorted(prices.values())
    average = sum(values) / len(values)
    variance = sum((v - average) ** 2 for v in values) / len(values)
    return OfferSpread(
        carriers=len(values),
        average=average,
        min_price=values[0],
        max_price=values[-1],
        price_range=values[-1] - values[0],
        std_dev=math.sqrt(variance),
    )


def representative_price(offers: List[Dict[str, Any]]) -> float:
    """Mean of the per-carrier minimum prices.

    Averaging one fare per carrier keeps airlines with dense inventory from
    dominating the market price.
    """
    prices = airline_min_prices(offers)
    spread = summarize_airline_prices(prices)
    logger.debug(
        "%d offers -> %d carriers: avg %.0f, min %.0f, max %.0f, range %.0f, std %.0f",
        len(offers), spread.carriers, spread.average, spread.min_price,
        spread.max_price, spread.price_range, spread.std_dev,
    )
    for airline, price in sorted(prices.items(), key=lambda item: item[1]):
        logger.debug("  %s: %.0f", airline, price)
    return spread.average
