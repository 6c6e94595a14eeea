from __future__ import annotations

from typing import Optional

from django.conf import settings
from django.core.cache import cache

from apps.tracking.types import PriceAnalysis

DEFAULT_CACHE_TTL = 60 * 60


def _cache_key(route: str) -> str:
    return f"prices:analysis:{route}"


def remember_analysis(analysis: PriceAnalysis) -> None:
    ttl = getattr(settings, 'PRICE_TRACK_CACHE_TTL', DEFAULT_CACHE_TTL)
    cache.set(_cache_key(analysis.route), analysis, ttl)


def cached_analysis(route: str, weeks: Optional[int] = None) -> Optional[PriceAnalysis]:
    """Last analysis for ``route``; ignored when it covered a different number of weeks."""
    analysis = cache.get(_cache_key(route))
    if analysis is None:
        return None
    if weeks is not None and analysis.track_weeks != weeks:
        return None
    return analysis
