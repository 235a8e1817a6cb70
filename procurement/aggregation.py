from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from procurement.schemas import ForecastKey, ForecastPoint, ForecastResult, ForecastSummary, Trend, key_of


def _trend(first: float, last: float) -> Trend:
    diff = last - first
    if diff > 0:
        return "up"
    if diff < 0:
        return "down"
    return "stable"


def summarize_points(points: Sequence[ForecastPoint], symmetric_trends: bool = False) -> ForecastSummary:
    """Summary for forecast points that arrived without one (CSV imports).

    Trends compare the first and last point as given, not by date.
    Lead-time trend is only derived when `symmetric_trends` is set;
    optimized order quantity is never derived here.
    """
    if not points:
        return ForecastSummary()

    prices = np.array([p.predicted_price for p in points], dtype=float)
    lead_times = np.array([p.predicted_lead_time for p in points], dtype=float)

    price_trend = "stable"
    lead_time_trend = "stable"
    if len(points) > 1:
        price_trend = _trend(prices[0], prices[-1])
        if symmetric_trends:
            lead_time_trend = _trend(lead_times[0], lead_times[-1])

    return ForecastSummary(
        avg_predicted_price=float(prices.mean()),
        avg_predicted_lead_time=float(lead_times.mean()),
        price_trend=price_trend,
        lead_time_trend=lead_time_trend,
    )


def group_forecast_points(
    rows: Iterable[Tuple[ForecastKey, ForecastPoint]], symmetric_trends: bool = False
) -> List[ForecastResult]:
    """Group flat (key, point) rows into one ForecastResult per key, in first-seen order."""
    groups: Dict[Tuple[str, str, str], List[ForecastPoint]] = {}
    for key, point in rows:
        groups.setdefault(key.as_tuple(), []).append(point)

    return [
        ForecastResult(
            part_number=part_number,
            vendor=vendor,
            country=country,
            forecast=points,
            summary=summarize_points(points, symmetric_trends),
        )
        for (part_number, vendor, country), points in groups.items()
    ]


def find_forecast(forecasts: Sequence[ForecastResult], key: ForecastKey) -> Optional[ForecastResult]:
    target = key.as_tuple()
    return next((f for f in forecasts if key_of(f) == target), None)


def upsert_forecast(forecasts: Sequence[ForecastResult], result: ForecastResult) -> List[ForecastResult]:
    """New list with any forecast for the same key replaced by `result`, which goes last."""
    target = key_of(result)
    return [f for f in forecasts if key_of(f) != target] + [result]


def merge_forecasts(forecasts: Sequence[ForecastResult], incoming: Iterable[ForecastResult]) -> List[ForecastResult]:
    merged = list(forecasts)
    for result in incoming:
        merged = upsert_forecast(merged, result)
    return merged
