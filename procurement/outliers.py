import logging
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from procurement.schemas import HistoricalRecord

logger = logging.getLogger(__name__)

MIN_RECORDS = 4
IQR_MULTIPLIER = 1.5


class CleanseResult(NamedTuple):
    kept: List[HistoricalRecord]
    removed_count: int


def price_bounds(records: Sequence[HistoricalRecord]) -> Optional[Tuple[float, float]]:
    """Acceptable usd_price band from the IQR rule, or None below MIN_RECORDS.

    Quartiles are taken by population index on the sorted prices
    (sorted[n // 4] and sorted[3n // 4]), never interpolated.
    """
    n = len(records)
    if n < MIN_RECORDS:
        return None

    prices = np.sort(np.fromiter((r.usd_price for r in records), dtype=float, count=n))
    q1 = float(prices[n // 4])
    q3 = float(prices[(n * 3) // 4])
    iqr = q3 - q1
    return q1 - IQR_MULTIPLIER * iqr, q3 + IQR_MULTIPLIER * iqr


def cleanse_outliers(records: Sequence[HistoricalRecord]) -> CleanseResult:
    """Drop records whose price falls outside the closed IQR band."""
    bounds = price_bounds(records)
    if bounds is None:
        return CleanseResult(list(records), 0)

    low, high = bounds
    kept = [r for r in records if low <= r.usd_price <= high]
    removed = len(records) - len(kept)
    logger.info(f"Outlier cleanse: band [{low:.2f}, {high:.2f}], removed {removed} of {len(records)} records")
    return CleanseResult(kept, removed)


def flag_outliers(records: Sequence[HistoricalRecord]) -> List[HistoricalRecord]:
    """Copies of the records with is_outlier set by the same band cleanse_outliers uses."""
    bounds = price_bounds(records)
    if bounds is None:
        return [r.model_copy(update={"is_outlier": False}) for r in records]

    low, high = bounds
    return [r.model_copy(update={"is_outlier": not (low <= r.usd_price <= high)}) for r in records]
