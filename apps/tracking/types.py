from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

SOURCE_LIVE = "live"
SOURCE_ESTIMATED = "estimated"

LEVEL_STRONG = "strong"
LEVEL_MODERATE = "moderate"
LEVEL_STABLE = "stable"


@dataclass(frozen=True)
class PriceTrackRequest:
    origin: str
    destination: str
    weeks: int

    @property
    def route(self) -> str:
        return f"{self.origin}-{self.destination}"


@dataclass(frozen=True)
class PriceSample:
    price: float
    source: str


@dataclass(frozen=True)
class PricePoint:
    week: int
    date: date
    price: float
    currency: str
    # Not part of the API response; lets tests and logs tell degraded samples apart
    source: str = SOURCE_LIVE


@dataclass
class PriceAnalysis:
    route: str
    track_weeks: int
    created_at: datetime
    data_points: List[PricePoint] = field(default_factory=list)
    min_price: float = 0.0
    max_price: float = 0.0
    avg_price: float = 0.0
    best_date: Optional[date] = None
    recommendation: str = ""
    recommendation_level: str = LEVEL_STABLE

    @property
    def estimated_weeks(self) -> int:
        return sum(1 for p in self.data_points if p.source == SOURCE_ESTIMATED)


@dataclass(frozen=True)
class PriceTrend:
    route: str
    weeks: int
    labels: List[str]
    prices: List[float]
    week_nums: List[int]
    summary: PriceAnalysis


@dataclass(frozen=True)
class PriceComparison:
    current_price: float
    historical_low: float
    average_price: float
    savings: float
    savings_percent: float
    is_good_deal: bool
    recommendation: str
    compared_date: datetime
