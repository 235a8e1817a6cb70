from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

Trend = Literal["up", "down", "stable"]
Status = Literal["favorable", "warning", "critical", "anomaly"]
ConfidenceLevel = Literal[90, 95, 99]
ForecastSource = Literal["system", "upload"]

ATTENTION_STATUSES = ("warning", "critical", "anomaly")


class ProcurementModel(BaseModel):
    """Immutable model that reads and writes the camelCase wire names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ForecastKey(ProcurementModel):
    """The (part, vendor, country) triple. Also used as the filter selection, where blanks mean unset."""

    part_number: str = ""
    vendor: str = ""
    country: str = ""

    def as_tuple(self) -> Tuple[str, str, str]:
        return (self.part_number, self.vendor, self.country)

    def is_complete(self) -> bool:
        return bool(self.part_number and self.vendor and self.country)

    def matches(self, item) -> bool:
        """Exact, case-sensitive comparison against anything carrying the three key fields."""
        return key_of(item) == self.as_tuple()


def key_of(item) -> Tuple[str, str, str]:
    return (item.part_number, item.vendor, item.country)


class HistoricalRecord(ProcurementModel):
    id: str
    part_number: str = ""
    country: str = ""
    usd_price: float = 0.0
    quantity: int = 0
    lead_time_days: int = 0
    vendor: str = ""
    date: str
    is_outlier: Optional[bool] = None


class NegotiatedRate(ProcurementModel):
    part_number: str = ""
    vendor: str = ""
    country: str = ""
    proposed_price: float = 0.0
    proposed_lead_time: int = 0


class ForecastPoint(ProcurementModel):
    date: str
    predicted_price: float = 0.0
    predicted_lead_time: float = 0.0
    confidence_interval_upper: float = 0.0
    confidence_interval_lower: float = 0.0


class ForecastSummary(ProcurementModel):
    avg_predicted_price: float = 0.0
    avg_predicted_lead_time: float = 0.0
    price_trend: Trend = "stable"
    lead_time_trend: Trend = "stable"
    optimized_order_quantity: float = 0


class ForecastResult(ProcurementModel):
    part_number: str
    vendor: str
    country: str
    forecast: List[ForecastPoint] = []
    summary: ForecastSummary = ForecastSummary()

    @property
    def key(self) -> ForecastKey:
        return ForecastKey(part_number=self.part_number, vendor=self.vendor, country=self.country)


class BenchmarkResult(ProcurementModel):
    part_number: str
    vendor: str
    country: str
    proposed_price: float
    proposed_lead_time: float
    price_status: Status
    lead_time_status: Status
    confidence_match: bool
    comment: str = ""

    def needs_attention(self) -> bool:
        return self.price_status in ATTENTION_STATUSES or self.lead_time_status in ATTENTION_STATUSES
