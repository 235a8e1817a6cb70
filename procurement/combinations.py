from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Sequence

import pandas as pd

from procurement.schemas import ForecastKey, HistoricalRecord, key_of


def _distinct(values) -> List[str]:
    """Distinct values in first-seen order."""
    return list(dict.fromkeys(values))


def enumerate_combinations(records: Sequence[HistoricalRecord]) -> List[ForecastKey]:
    """Every (part, vendor, country) triple that co-occurs in at least one record.

    Parts, then vendors within a part, then countries within a part/vendor
    pair, are each taken in first-seen order, so the sequence is stable for
    a given dataset.
    """
    keys = []
    for part in _distinct(r.part_number for r in records):
        by_part = [r for r in records if r.part_number == part]
        for vendor in _distinct(r.vendor for r in by_part):
            for country in _distinct(r.country for r in by_part if r.vendor == vendor):
                keys.append(ForecastKey(part_number=part, vendor=vendor, country=country))
    return keys


def batched(keys: Sequence[ForecastKey], size: int) -> Iterator[List[ForecastKey]]:
    for start in range(0, len(keys), size):
        yield list(keys[start : start + size])


def available_options(records: Sequence[HistoricalRecord], filters: ForecastKey) -> Dict[str, List[str]]:
    """Cascading filter choices: each dimension is narrowed by the other two selections."""
    if not records:
        return {"parts": [], "vendors": [], "countries": []}

    df = pd.DataFrame([key_of(r) for r in records], columns=["part_number", "vendor", "country"])

    def _options(column: str) -> List[str]:
        mask = pd.Series(True, index=df.index)
        for other in ("part_number", "vendor", "country"):
            selected = getattr(filters, other)
            if other != column and selected:
                mask &= df[other] == selected
        return sorted(df.loc[mask, column].dropna().unique().tolist())

    return {"parts": _options("part_number"), "vendors": _options("vendor"), "countries": _options("country")}


def reconcile_filters(filters: ForecastKey, options: Dict[str, List[str]]) -> ForecastKey:
    """Clear any selection that is no longer among the available options."""
    updates = {}
    if filters.part_number and filters.part_number not in options["parts"]:
        updates["part_number"] = ""
    if filters.vendor and filters.vendor not in options["vendors"]:
        updates["vendor"] = ""
    if filters.country and filters.country not in options["countries"]:
        updates["country"] = ""
    return filters.model_copy(update=updates) if updates else filters


def _date_sort_key(value: str):
    """Unparseable dates sort after every parseable one."""
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return (1, datetime.min)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return (0, parsed)


def history_for_key(
    records: Sequence[HistoricalRecord], key: ForecastKey, limit: Optional[int] = None
) -> List[HistoricalRecord]:
    """Records matching the key exactly, oldest first, optionally only the last `limit`."""
    history = sorted((r for r in records if key.matches(r)), key=lambda r: _date_sort_key(r.date))
    if limit is not None:
        history = history[-limit:] if limit > 0 else []
    return history
