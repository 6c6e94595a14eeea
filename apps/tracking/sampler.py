from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from django.conf import settings

from apps.pricing.estimation import estimate_price
from apps.providers.amadeus_client import AmadeusClient, get_amadeus_client
from apps.providers.normalizer import decode_offers, representative_price
from apps.tracking.audit import ResponseAuditLog
from apps.tracking.types import SOURCE_ESTIMATED, SOURCE_LIVE, PriceSample

logger = logging.getLogger(__name__)


class PriceSampler:
    """Market price for one departure date, live when possible, estimated otherwise."""

    def __init__(
        self,
        client: Optional[AmadeusClient] = None,
        audit_log: Optional[ResponseAuditLog] = None,
        currency: Optional[str] = None,
        max_results: Optional[int] = None,
    ):
        self._client = client
        self.audit_log = audit_log if audit_log is not None else ResponseAuditLog.from_settings()
        self.currency = currency or getattr(settings, 'PRICE_TRACK_CURRENCY', 'TWD')
        self.max_results = max_results or getattr(settings, 'PRICE_TRACK_MAX_RESULTS', 20)

    @property
    def client(self) -> AmadeusClient:
        if self._client is None:
            self._client = get_amadeus_client()
        return self._client

    def _live_price(self, origin: str, destination: str, travel_date: date) -> float:
        departure = travel_date.isoformat()
        body = self.client.search_flight_offers(
            origin=origin,
            destination=destination,
            departure_date=departure,
            adults=1,
            currency=self.currency,
            max_results=self.max_results,
        )
        self.audit_log.append(origin=origin, destination=destination, departure_date=departure, raw_body=body)
        return representative_price(decode_offers(body))

    def sample(self, origin: str, destination: str, travel_date: date, week: int, total_weeks: int) -> PriceSample:
        try:
            price = self._live_price(origin, destination, travel_date)
        except Exception as exc:
            logger.warning(
                "Live price for %s-%s on %s failed (week %d/%d), using estimate: %s",
                origin, destination, travel_date.isoformat(), week, total_weeks, exc,
            )
            price = estimate_price(origin, destination, travel_date, week, total_weeks)
            return PriceSample(price=price, source=SOURCE_ESTIMATED)
        return PriceSample(price=price, source=SOURCE_LIVE)

    def sample_price(self, origin: str, destination: str, travel_date: date, week: int, total_weeks: int) -> float:
        return self.sample(origin, destination, travel_date, week, total_weeks).price
