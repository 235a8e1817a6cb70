from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from procurement.schemas import (
    BenchmarkResult,
    ConfidenceLevel,
    ForecastKey,
    ForecastResult,
    ForecastSource,
    HistoricalRecord,
    NegotiatedRate,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadResponse(ApiModel):
    status: str = "success"
    records: int
    warnings: List[str] = []


class DatasetResponse(ApiModel):
    records: List[HistoricalRecord]
    count: int
    is_cleansed: bool


class CleanseResponse(ApiModel):
    kept: int
    outlier_count: int
    is_cleansed: bool


class FilterOptions(ApiModel):
    filters: ForecastKey
    parts: List[str]
    vendors: List[str]
    countries: List[str]


class CombinationsResponse(ApiModel):
    combinations: List[ForecastKey]
    count: int


class SettingsUpdate(ApiModel):
    selected_model: Optional[str] = None
    confidence_level: Optional[ConfidenceLevel] = None
    forecast_source: Optional[ForecastSource] = None


class SettingsResponse(ApiModel):
    selected_model: str
    confidence_level: int
    forecast_source: str
    available_models: List[str]


class ForecastListResponse(ApiModel):
    forecasts: List[ForecastResult]
    count: int
    source: str


class CurrentForecastResponse(ApiModel):
    filters: ForecastKey
    forecast: Optional[ForecastResult]
    baseline: Optional[ForecastResult]
    history: List[HistoricalRecord]


class BulkProgressResponse(ApiModel):
    running: bool
    progress: int


class NegotiationsResponse(ApiModel):
    rates: List[NegotiatedRate]
    count: int


class BenchmarkListResponse(ApiModel):
    benchmarks: List[BenchmarkResult]
    count: int
    attention_required: int
