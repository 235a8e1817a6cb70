"""
CSV encode/decode for historical records, negotiated rates and forecast points.

The format is deliberately simple: lines split on "\\n", fields split on ",",
each value trimmed with one layer of surrounding double quotes removed.
Quoted fields containing commas are NOT supported and will mis-split; files
exported by this module never need it for the shipped vocabularies.

Decoding is tolerant by default: a missing or unparseable numeric field is
read as 0. Pass a list as `warnings` to collect one message per such field,
or `strict=True` to raise ParseFailure instead.
"""

import logging
import re
import uuid
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from procurement.aggregation import group_forecast_points
from procurement.exceptions import ParseFailure
from procurement.sample_data import generate_sample_data
from procurement.schemas import (
    BenchmarkResult,
    ForecastKey,
    ForecastPoint,
    ForecastResult,
    HistoricalRecord,
    NegotiatedRate,
)

logger = logging.getLogger(__name__)

HISTORICAL_HEADERS = ["Part Number", "Country", "USD Pricing", "Quantity", "Lead Time (Days)", "Vendor", "Date"]
NEGOTIATION_HEADERS = ["Part Number", "Vendor", "Country", "Proposed Price", "Proposed Lead Time"]
FORECAST_HEADERS = [
    "Part Number",
    "Vendor",
    "Country",
    "Date",
    "Predicted Price",
    "Predicted Lead Time",
    "Confidence Upper",
    "Confidence Lower",
]
BENCHMARK_HEADERS = [
    "Part Number",
    "Vendor",
    "Country",
    "Proposed Price",
    "Proposed Lead Time",
    "Price Status",
    "Lead Time Status",
    "AI Comment",
]

HISTORICAL_ALIASES = {
    "part_number": ["part number", "partnumber", "sku"],
    "country": ["country"],
    "usd_price": ["usd pricing", "usd price", "price"],
    "quantity": ["quantity", "qty"],
    "lead_time_days": ["lead time days", "lead time", "leadtime"],
    "vendor": ["vendor"],
    "date": ["date"],
}
NEGOTIATION_ALIASES = {
    "part_number": ["part number", "partnumber"],
    "vendor": ["vendor"],
    "country": ["country"],
    "proposed_price": ["proposed price", "price"],
    "proposed_lead_time": ["proposed lead time", "lead time"],
}
FORECAST_ALIASES = {
    "part_number": ["part number", "partnumber"],
    "vendor": ["vendor"],
    "country": ["country"],
    "date": ["date"],
    "predicted_price": ["predicted price"],
    "predicted_lead_time": ["predicted lead time"],
    "confidence_interval_upper": ["confidence upper"],
    "confidence_interval_lower": ["confidence lower"],
}

NEGOTIATION_SAMPLES = [
    ["SKU-1001", "GlobalLogistics Inc", "USA", "145.00", "14"],
    ["SKU-2045", "AsiaDirect Mfg", "China", "88.50", "35"],
    ["CHIP-M2", "TechSupply Co", "Vietnam", "210.00", "21"],
]
FORECAST_SAMPLES = [
    ["SKU-1001", "GlobalLogistics Inc", "USA", "140.00", "15", "145.00", "135.00"],
    ["SKU-2045", "AsiaDirect Mfg", "China", "90.00", "30", "95.00", "85.00"],
]

CSV_MIME_TYPE = "text/csv"

_FLOAT_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_INT_PREFIX = re.compile(r"^[+-]?\d+")
_SURROUNDING_QUOTE = re.compile(r'^"|"$')
_PARENS = re.compile(r"[()]")


# ---------------------------------------------------------------- decoding


class _RowReader:
    """Positional header->value mapping for one data line, with alias lookup."""

    def __init__(self, row: Dict[str, str], line_no: int, warnings: Optional[List[str]], strict: bool):
        self.row = row
        self.line_no = line_no
        self.warnings = warnings
        self.strict = strict

    def text(self, aliases: Sequence[str]) -> Optional[str]:
        for alias in aliases:
            value = self.row.get(alias)
            if value:
                return value
        return None

    def string(self, aliases: Sequence[str]) -> str:
        return self.text(aliases) or ""

    def number(self, aliases: Sequence[str], field: str, integer: bool = False):
        raw = self.text(aliases)
        if raw is None:
            return self._fallback(f"line {self.line_no}: missing {field}, read as 0", integer)

        match = (_INT_PREFIX if integer else _FLOAT_PREFIX).match(raw)
        if match is None:
            return self._fallback(f"line {self.line_no}: could not parse {field} from {raw!r}, read as 0", integer)

        return int(match.group()) if integer else float(match.group())

    def _fallback(self, message: str, integer: bool):
        if self.strict:
            raise ParseFailure(message, code="STRICT_DECODE", details={"line": self.line_no})
        if self.warnings is not None:
            self.warnings.append(message)
        return 0 if integer else 0.0


def _split_values(line: str) -> List[str]:
    return [_SURROUNDING_QUOTE.sub("", value.strip()) for value in line.split(",")]


def _read_rows(text: str, warnings: Optional[List[str]], strict: bool, strip_parens: bool = False):
    """Yield a _RowReader for each non-blank data line. Fewer than two lines yields nothing."""
    lines = text.split("\n")
    if len(lines) < 2:
        return

    headers = [h.strip().lower() for h in lines[0].split(",")]
    if strip_parens:
        headers = [_PARENS.sub("", h) for h in headers]

    for line_no, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue
        yield _RowReader(dict(zip(headers, _split_values(line))), line_no, warnings, strict)


def _timestamp(moment: datetime) -> str:
    """Aware moments render in UTC as 2024-05-01T12:30:00.000Z; naive ones are formatted as given."""
    if moment.tzinfo is None:
        return moment.isoformat()
    utc = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return utc.isoformat(timespec="milliseconds") + "Z"


def parse_historical_csv(
    text: str,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    warnings: Optional[List[str]] = None,
    strict: bool = False,
) -> List[HistoricalRecord]:
    """Decode a historical price/lead-time upload. A missing date becomes clock() at parse time."""
    aliases = HISTORICAL_ALIASES
    records = []
    for reader in _read_rows(text, warnings, strict, strip_parens=True):
        records.append(
            HistoricalRecord(
                id=id_factory(),
                part_number=reader.string(aliases["part_number"]),
                country=reader.string(aliases["country"]),
                usd_price=reader.number(aliases["usd_price"], "usd price"),
                quantity=reader.number(aliases["quantity"], "quantity", integer=True),
                lead_time_days=reader.number(aliases["lead_time_days"], "lead time", integer=True),
                vendor=reader.string(aliases["vendor"]),
                date=reader.text(aliases["date"]) or _timestamp(clock()),
            )
        )

    logger.info(f"Parsed {len(records)} historical records")
    return records


def parse_negotiation_csv(
    text: str, warnings: Optional[List[str]] = None, strict: bool = False
) -> List[NegotiatedRate]:
    aliases = NEGOTIATION_ALIASES
    rates = [
        NegotiatedRate(
            part_number=reader.string(aliases["part_number"]),
            vendor=reader.string(aliases["vendor"]),
            country=reader.string(aliases["country"]),
            proposed_price=reader.number(aliases["proposed_price"], "proposed price"),
            proposed_lead_time=reader.number(aliases["proposed_lead_time"], "proposed lead time", integer=True),
        )
        for reader in _read_rows(text, warnings, strict)
    ]

    logger.info(f"Parsed {len(rates)} negotiated rates")
    return rates


def parse_forecast_csv(
    text: str, warnings: Optional[List[str]] = None, strict: bool = False, symmetric_trends: bool = False
) -> List[ForecastResult]:
    """Decode a forecast baseline file and group its rows into one ForecastResult per key."""
    aliases = FORECAST_ALIASES
    rows = []
    for reader in _read_rows(text, warnings, strict):
        key = ForecastKey(
            part_number=reader.string(aliases["part_number"]),
            vendor=reader.string(aliases["vendor"]),
            country=reader.string(aliases["country"]),
        )
        point = ForecastPoint(
            date=reader.string(aliases["date"]),
            predicted_price=reader.number(aliases["predicted_price"], "predicted price"),
            predicted_lead_time=reader.number(aliases["predicted_lead_time"], "predicted lead time", integer=True),
            confidence_interval_upper=reader.number(aliases["confidence_interval_upper"], "confidence upper"),
            confidence_interval_lower=reader.number(aliases["confidence_interval_lower"], "confidence lower"),
        )
        rows.append((key, point))

    results = group_forecast_points(rows, symmetric_trends=symmetric_trends)
    logger.info(f"Parsed {len(rows)} forecast rows into {len(results)} forecast series")
    return results


# ---------------------------------------------------------------- encoding


def format_number(value) -> str:
    """Shortest plain rendering: 100.0 -> "100", 100.5 -> "100.5"."""
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


def _quote(value: str) -> str:
    return f'"{value}"'


def _to_csv(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    return "\n".join([",".join(headers)] + [",".join(row) for row in rows])


def generate_sample_csv(
    records: Optional[Sequence[HistoricalRecord]] = None,
    count: int = 100,
    rng: Optional[np.random.Generator] = None,
) -> str:
    """Historical-upload template. Synthesizes `count` sample rows when no records are given."""
    if records is None:
        records = generate_sample_data(count, rng=rng)

    rows = [
        [
            _quote(r.part_number),
            _quote(r.country),
            format_number(r.usd_price),
            format_number(r.quantity),
            format_number(r.lead_time_days),
            _quote(r.vendor),
            r.date,
        ]
        for r in records
    ]
    return _to_csv(HISTORICAL_HEADERS, rows)


def generate_negotiation_sample_csv() -> str:
    return _to_csv(NEGOTIATION_HEADERS, NEGOTIATION_SAMPLES)


def generate_forecast_template_csv(today: Optional[date] = None) -> str:
    sample_date = (today or date.today()).isoformat()
    rows = [row[:3] + [sample_date] + row[3:] for row in FORECAST_SAMPLES]
    return _to_csv(FORECAST_HEADERS, rows)


def export_forecasts_csv(forecasts: Sequence[ForecastResult]) -> str:
    rows = [
        [
            _quote(f.part_number),
            _quote(f.vendor),
            _quote(f.country),
            point.date,
            format_number(point.predicted_price),
            format_number(point.predicted_lead_time),
            format_number(point.confidence_interval_upper),
            format_number(point.confidence_interval_lower),
        ]
        for f in forecasts
        for point in f.forecast
    ]
    return _to_csv(FORECAST_HEADERS, rows)


def export_benchmarks_csv(benchmarks: Sequence[BenchmarkResult]) -> str:
    rows = [
        [
            _quote(b.part_number),
            _quote(b.vendor),
            _quote(b.country),
            format_number(b.proposed_price),
            format_number(b.proposed_lead_time),
            b.price_status,
            b.lead_time_status,
            _quote(b.comment),
        ]
        for b in benchmarks
    ]
    return _to_csv(BENCHMARK_HEADERS, rows)


def export_filename(prefix: str, today: Optional[date] = None) -> str:
    return f"{prefix}_{(today or date.today()).isoformat()}.csv"
