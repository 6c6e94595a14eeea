from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from typing import Dict, Optional, Tuple

from django.conf import settings
from django.utils import timezone

from apps.tracking.sampler import PriceSampler
from apps.tracking.types import (
    LEVEL_MODERATE,
    LEVEL_STABLE,
    LEVEL_STRONG,
    PriceAnalysis,
    PriceComparison,
    PricePoint,
    PriceTrackRequest,
    PriceTrend,
)

logger = logging.getLogger(__name__)

MAX_TRACK_WEEKS = 52
DEFAULT_TRACK_WEEKS = 18
# Travel is assumed to happen this many days after each weekly search
TRAVEL_LEAD_DAYS = 30
DEFAULT_MAX_WORKERS = 4
DEFAULT_DEAL_THRESHOLD_PERCENT = 15.0


class InputError(ValueError):
    pass


def validate_request(request: PriceTrackRequest) -> None:
    if not request.origin or not request.destination:
        raise InputError("origin and destination are required")
    if request.weeks <= 0:
        raise InputError("weeks must be a positive integer")


def travel_date_for_week(today: date, week: int) -> date:
    search_date = today + timedelta(days=(week - 1) * 7)
    return search_date + timedelta(days=TRAVEL_LEAD_DAYS)


def _sample_week(sampler: PriceSampler, request: PriceTrackRequest, week: int, today: date, currency: str) -> PricePoint:
    travel_date = travel_date_for_week(today, week)
    sample = sampler.sample(request.origin, request.destination, travel_date, week, request.weeks)
    logger.info(
        "%s week %d: departure %s, price %.0f (%s)",
        request.route, week, travel_date.isoformat(), sample.price, sample.source,
    )
    return PricePoint(week=week, date=travel_date, price=sample.price, currency=currency, source=sample.source)


def track_prices(
    request: PriceTrackRequest,
    *,
    sampler: Optional[PriceSampler] = None,
    today: Optional[date] = None,
    max_workers: Optional[int] = None,
) -> PriceAnalysis:
    """Sample one price per week for ``request.weeks`` weeks and summarize them.

    Weeks are sampled concurrently on a bounded pool and collected by week
    number, so ``data_points`` is always in week order. Provider failures are
    absorbed by the sampler; only malformed input raises.
    """
    validate_request(request)
    sampler = sampler or PriceSampler()
    today = today or timezone.localdate()
    workers = max_workers or getattr(settings, 'PRICE_TRACK_MAX_WORKERS', DEFAULT_MAX_WORKERS)
    currency = sampler.currency

    analysis = PriceAnalysis(route=request.route, track_weeks=request.weeks, created_at=timezone.now())
    logger.info("Tracking %s over %d weeks", request.route, request.weeks)

    points: Dict[int, PricePoint] = {}
    with ThreadPoolExecutor(max_workers=max(1, min(workers, request.weeks))) as executor:
        futures = {
            week: executor.submit(_sample_week, sampler, request, week, today, currency)
            for week in range(1, request.weeks + 1)
        }
        for week, future in futures.items():
            points[week] = future.result()

    analysis.data_points = [points[week] for week in sorted(points)]
    calculate_price_statistics(analysis)

    logger.info(
        "Tracked %s: min %.0f on %s, avg %.0f, %d/%d weeks estimated",
        analysis.route, analysis.min_price, analysis.best_date, analysis.avg_price,
        analysis.estimated_weeks, analysis.track_weeks,
    )
    return analysis


def calculate_price_statistics(analysis: PriceAnalysis) -> None:
    """Fill min/max/avg/best date and the recommendation from ``data_points``."""
    if not analysis.data_points:
        return

    first = analysis.data_points[0]
    min_price = max_price = first.price
    best_date = first.date
    total = 0.0
    for point in analysis.data_points:
        # Strict comparison keeps the earliest week on ties
        if point.price < min_price:
            min_price = point.price
            best_date = point.date
        if point.price > max_price:
            max_price = point.price
        total += point.price

    analysis.min_price = min_price
    analysis.max_price = max_price
    analysis.avg_price = total / len(analysis.data_points)
    analysis.best_date = best_date
    analysis.recommendation_level, analysis.recommendation = generate_recommendation(analysis)


def savings_against_average(avg_price: float, price: float) -> Tuple[float, float]:
    savings = avg_price - price
    if avg_price <= 0:
        return savings, 0.0
    return savings, savings / avg_price * 100


def generate_recommendation(analysis: PriceAnalysis) -> Tuple[str, str]:
    savings, ratio = savings_against_average(analysis.avg_price, analysis.min_price)
    best = analysis.best_date.isoformat() if analysis.best_date else "the cheapest week"

    if ratio > 20:
        return LEVEL_STRONG, (
            f"Strongly recommended: depart on {best}. {analysis.min_price:.0f} is the lowest fare, "
            f"{savings:.0f} ({ratio:.0f}%) below the average."
        )
    if ratio > 10:
        return LEVEL_MODERATE, (
            f"Recommended: depart on {best}. {analysis.min_price:.0f} is a good fare, "
            f"saving {savings:.0f} ({ratio:.0f}%)."
        )
    return LEVEL_STABLE, "Prices are stable; pick a departure date that suits your schedule."


def generate_price_trend(analysis: PriceAnalysis) -> PriceTrend:
    return PriceTrend(
        route=analysis.route,
        weeks=analysis.track_weeks,
        labels=[p.date.strftime("%m/%d") for p in analysis.data_points],
        prices=[p.price for p in analysis.data_points],
        week_nums=[p.week for p in analysis.data_points],
        summary=analysis,
    )


def compare_price(analysis: PriceAnalysis, current_price: float) -> PriceComparison:
    """Judge a quoted fare against a tracked route's low and average."""
    threshold = getattr(settings, 'PRICE_DEAL_THRESHOLD_PERCENT', DEFAULT_DEAL_THRESHOLD_PERCENT)
    savings, savings_percent = savings_against_average(analysis.avg_price, current_price)
    is_good_deal = current_price <= analysis.min_price or savings_percent >= threshold

    if current_price <= analysis.min_price:
        recommendation = "At or below the lowest tracked fare. Book now."
    elif is_good_deal:
        recommendation = f"{savings_percent:.0f}% below the tracked average. A good fare."
    elif savings >= 0:
        recommendation = "Close to the tracked average. Consider waiting for a lower fare."
    else:
        recommendation = f"{-savings_percent:.0f}% above the tracked average. Wait if your dates are flexible."

    return PriceComparison(
        current_price=current_price,
        historical_low=analysis.min_price,
        average_price=analysis.avg_price,
        savings=round(savings, 2),
        savings_percent=round(savings_percent, 2),
        is_good_deal=is_good_deal,
        recommendation=recommendation,
        compared_date=timezone.now(),
    )
