from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from django.conf import settings

DEFAULT_BASE_PRICE = 5000.0

CARRIER_NAMES: Mapping[str, str] = MappingProxyType({
    "CI": "China Airlines",
    "BR": "EVA Air",
    "CX": "Cathay Pacific",
    "JL": "Japan Airlines",
    "NH": "All Nippon Airways",
    "KE": "Korean Air",
    "SQ": "Singapore Airlines",
    "TG": "Thai Airways",
    "UA": "United Airlines",
    "AA": "American Airlines",
    "SL": "Thai Lion Air",
    "TW": "T'way Air",
    "TR": "Tigerair Taiwan",
    "7C": "Jeju Air",
    "MF": "Xiamen Airlines",
    "OZ": "Asiana Airlines",
    "JX": "Starlux Airlines",
    "VN": "Vietnam Airlines",
    "PR": "Philippine Airlines",
})

ROUTE_BASE_PRICES: Mapping[str, float] = MappingProxyType({
    "TPE-TYO": 8000.0,
    "TPE-OSA": 7500.0,
    "TPE-SEL": 6000.0,
    "TPE-HKG": 4000.0,
    "TPE-BKK": 7000.0,
    "TPE-SIN": 8000.0,
    "TPE-KHH": 2000.0,
})

# Peak travel months: winter break / Lunar New Year, cherry blossom, summer, year end
SEASONAL_FACTORS: Mapping[int, float] = MappingProxyType({
    1: 1.4,
    2: 1.4,
    3: 1.3,
    4: 1.3,
    7: 1.5,
    8: 1.5,
    12: 1.4,
})


def carrier_names() -> Mapping[str, str]:
    """Built-in carrier table merged with ``settings.CARRIER_NAMES`` overrides."""
    extra = getattr(settings, 'CARRIER_NAMES', None) or {}
    return MappingProxyType({**CARRIER_NAMES, **extra})


def route_base_prices() -> Mapping[str, float]:
    extra = getattr(settings, 'ROUTE_BASE_PRICES', None) or {}
    return MappingProxyType({**ROUTE_BASE_PRICES, **{k: float(v) for k, v in extra.items()}})


def get_airline_name(code: str) -> str:
    return carrier_names().get(code, code)


def route_key(origin: str, destination: str) -> str:
    return f"{origin}-{destination}"
