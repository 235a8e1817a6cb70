"""
Workspace controller for the procurement analytics service.

All session data (uploads, cleansed view, forecasts, negotiated rates,
benchmarks, filter selection) lives in one immutable WorkspaceState. The
ProcurementEngine is the only owner: every operation builds a new state from
the current one and swaps it in. The core functions it calls never see or
touch this state.

AI requests run in a worker thread under one asyncio.Lock. Replacing the
dataset while a request is in flight bumps a version counter, and the
request then discards its results with DatasetChanged instead of writing
forecasts for data that is no longer loaded.
"""

import asyncio
import dataclasses
import logging
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from starlette.concurrency import run_in_threadpool

from procurement.aggregation import find_forecast, merge_forecasts, upsert_forecast
from procurement.ai_service import AIService
from procurement.combinations import available_options, enumerate_combinations, history_for_key, reconcile_filters
from procurement.csv_codec import (
    export_benchmarks_csv,
    export_filename,
    export_forecasts_csv,
    generate_forecast_template_csv,
    generate_negotiation_sample_csv,
    generate_sample_csv,
)
from procurement.data_pipeline import DataPipeline
from procurement.exceptions import BaselineMissing, DatasetChanged, InvalidInput
from procurement.outliers import flag_outliers
from procurement.sample_data import generate_sample_data
from procurement.schemas import (
    BenchmarkResult,
    ForecastKey,
    ForecastResult,
    HistoricalRecord,
    NegotiatedRate,
)

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class WorkspaceState:
    data: Tuple[HistoricalRecord, ...] = ()
    cleansed_data: Tuple[HistoricalRecord, ...] = ()
    outlier_count: int = 0
    is_cleansed: bool = False
    filters: ForecastKey = ForecastKey()
    forecast: Optional[ForecastResult] = None
    all_forecasts: Tuple[ForecastResult, ...] = ()
    uploaded_forecasts: Tuple[ForecastResult, ...] = ()
    forecast_source: str = "system"
    proposed_rates: Tuple[NegotiatedRate, ...] = ()
    benchmarks: Tuple[BenchmarkResult, ...] = ()
    confidence_level: int = 95
    selected_model: str = ""

    @property
    def active_data(self) -> Tuple[HistoricalRecord, ...]:
        return self.cleansed_data if self.is_cleansed else self.data

    @property
    def active_forecasts(self) -> Tuple[ForecastResult, ...]:
        return self.all_forecasts if self.forecast_source == "system" else self.uploaded_forecasts

    def replace(self, **changes) -> "WorkspaceState":
        return dataclasses.replace(self, **changes)


class ProcurementEngine:
    """Single controller owning the workspace state."""

    def __init__(self, config: Dict, ai_service: Optional[AIService] = None, pipeline: Optional[DataPipeline] = None):
        self.config = config
        self.ai_service = ai_service or AIService(config)
        self.pipeline = pipeline or DataPipeline(config)
        self.bulk_progress = 0
        self.bulk_running = False
        self._lock = asyncio.Lock()
        self._data_version = 0
        self._state = WorkspaceState(selected_model=config["ai"]["forecast_model"])

    @property
    def state(self) -> WorkspaceState:
        return self._state

    def _replace_dataset(self, **changes) -> WorkspaceState:
        """Commit a change to the active dataset. Forecasts from the previous one are dropped."""
        self._data_version += 1
        return self._commit(self._state.replace(forecast=None, all_forecasts=(), **changes))

    def _check_dataset(self, version: int) -> None:
        if self._data_version != version:
            logger.warning("Dataset replaced during an AI request; discarding its results")
            raise DatasetChanged()

    def _commit(self, state: WorkspaceState) -> WorkspaceState:
        """Swap in a new state after applying the derived updates.

        Selections missing from the active data are cleared, and a complete
        selection shows the cached system forecast for that key, if any.
        """
        if state.active_data:
            options = available_options(state.active_data, state.filters)
            state = state.replace(filters=reconcile_filters(state.filters, options))
        if state.filters.is_complete():
            state = state.replace(forecast=find_forecast(state.all_forecasts, state.filters))
        self._state = state
        return state

    # ------------------------------------------------------------ historical data

    def load_historical(self, records: Sequence[HistoricalRecord]) -> WorkspaceState:
        logger.info(f"Loading {len(records)} historical records into the workspace")
        return self._replace_dataset(data=tuple(records), cleansed_data=(), outlier_count=0, is_cleansed=False)

    def load_historical_text(self, text: str) -> List[str]:
        """Decode and load an upload; returns the decode warnings."""
        warnings = []
        records = self.pipeline.load_historical(text, warnings=warnings)
        self.load_historical(records)
        return warnings

    def load_sample(self, count: Optional[int] = None, seed: Optional[int] = None) -> WorkspaceState:
        count = count or self.config["data"]["sample_size"]
        return self.load_historical(generate_sample_data(count, rng=np.random.default_rng(seed)))

    def cleanse(self) -> WorkspaceState:
        if not self._state.data:
            raise InvalidInput("Input Required: Please upload historical data first.")

        kept, removed = self.pipeline.cleanse(self._state.data)
        return self._replace_dataset(cleansed_data=tuple(kept), outlier_count=removed, is_cleansed=True)

    def restore_original(self) -> WorkspaceState:
        return self._replace_dataset(is_cleansed=False)

    def flagged_data(self) -> List[HistoricalRecord]:
        return flag_outliers(self._state.data)

    def summary(self) -> Dict:
        summary = self.pipeline.summarize(self._state.active_data)
        summary.update(is_cleansed=self._state.is_cleansed, outlier_count=self._state.outlier_count)
        return summary

    def history(self, key: ForecastKey) -> List[HistoricalRecord]:
        return history_for_key(self._state.active_data, key)

    # ------------------------------------------------------------ selection

    def set_filters(self, filters: ForecastKey) -> WorkspaceState:
        return self._commit(self._state.replace(filters=filters))

    def filter_options(self) -> Dict[str, List[str]]:
        return available_options(self._state.active_data, self._state.filters)

    def set_settings(
        self,
        selected_model: Optional[str] = None,
        confidence_level: Optional[int] = None,
        forecast_source: Optional[str] = None,
    ) -> WorkspaceState:
        changes = {}
        if selected_model is not None:
            if selected_model not in self.config["ai"]["models"]:
                raise InvalidInput(f"Unknown model '{selected_model}'", details={"models": self.config["ai"]["models"]})
            changes["selected_model"] = selected_model
        if confidence_level is not None:
            changes["confidence_level"] = confidence_level
        if forecast_source is not None:
            changes["forecast_source"] = forecast_source
        return self._commit(self._state.replace(**changes))

    def combinations(self) -> List[ForecastKey]:
        return enumerate_combinations(self._state.active_data)

    # ------------------------------------------------------------ forecasts

    async def run_forecast(self, key: Optional[ForecastKey] = None) -> ForecastResult:
        key = key or self._state.filters
        if not key.is_complete():
            raise InvalidInput("Input Required: Select a part number, vendor and country first.")

        async with self._lock:
            state = self._state
            version = self._data_version
            result = await run_in_threadpool(
                self.ai_service.get_forecast, state.active_data, key, state.selected_model
            )
            self._check_dataset(version)
            self._commit(
                self._state.replace(
                    filters=key,
                    forecast=result,
                    all_forecasts=tuple(upsert_forecast(self._state.all_forecasts, result)),
                )
            )
        return result

    def _report_progress(self, processed: int, total: int) -> None:
        self.bulk_progress = round(processed / total * 100)
        logger.info(f"Bulk forecast progress: {processed}/{total} combinations")

    async def run_bulk_forecasts(self) -> List[ForecastResult]:
        if not self._state.active_data:
            raise InvalidInput("Input Required: Please upload historical data first.")

        async with self._lock:
            state = self._state
            version = self._data_version
            if not state.active_data:
                raise InvalidInput("Input Required: Please upload historical data first.")

            keys = enumerate_combinations(state.active_data)
            logger.info(f"Starting bulk forecast for {len(keys)} combinations")
            self.bulk_running = True
            self.bulk_progress = 0
            try:
                results = await run_in_threadpool(
                    self.ai_service.get_bulk_forecasts,
                    state.active_data,
                    keys,
                    lambda processed: self._report_progress(processed, len(keys)),
                    state.selected_model,
                )
            finally:
                self.bulk_running = False
                self.bulk_progress = 0

            self._check_dataset(version)
            results = merge_forecasts([], results)
            changes = {"all_forecasts": tuple(results)}
            if results:
                changes.update(filters=results[0].key, forecast=results[0])
            self._commit(self._state.replace(**changes))
        return results

    def current_forecast(self) -> Optional[ForecastResult]:
        return self._state.forecast

    def upload_forecasts(self, text: str) -> List[str]:
        warnings = []
        forecasts = self.pipeline.load_forecasts(text, warnings=warnings)
        self._commit(self._state.replace(uploaded_forecasts=tuple(forecasts), forecast_source="upload"))
        return warnings

    def active_baseline(self) -> Optional[ForecastResult]:
        return find_forecast(self._state.active_forecasts, self._state.filters)

    # ------------------------------------------------------------ negotiations & benchmarks

    def upload_negotiations(self, texts: Sequence[str]) -> List[str]:
        warnings = []
        rates = self.pipeline.load_negotiations(texts, warnings=warnings)
        self._commit(self._state.replace(proposed_rates=self._state.proposed_rates + tuple(rates), benchmarks=()))
        return warnings

    def clear_negotiations(self) -> WorkspaceState:
        return self._commit(self._state.replace(proposed_rates=(), benchmarks=()))

    def _check_benchmark_inputs(self, state: WorkspaceState) -> None:
        if not state.proposed_rates:
            raise InvalidInput("Input Required: Please upload negotiated rates first.")
        if not state.active_forecasts:
            source = "system forecasts" if state.forecast_source == "system" else "uploaded forecast data"
            raise BaselineMissing(f"Baseline Missing: Please ensure you have {source} available.")

    async def run_benchmark(self) -> List[BenchmarkResult]:
        self._check_benchmark_inputs(self._state)

        async with self._lock:
            state = self._state
            self._check_benchmark_inputs(state)
            results = await run_in_threadpool(
                self.ai_service.get_benchmark, state.proposed_rates, state.active_forecasts, state.confidence_level
            )
            current = self._state
            if (
                current.proposed_rates is not state.proposed_rates
                or current.active_forecasts is not state.active_forecasts
            ):
                logger.warning("Negotiated rates or baseline replaced during benchmarking; discarding results")
                raise DatasetChanged()
            self._commit(current.replace(benchmarks=tuple(results)))
        return results

    def benchmarks(self, attention_only: bool = False) -> List[BenchmarkResult]:
        if attention_only:
            return [b for b in self._state.benchmarks if b.needs_attention()]
        return list(self._state.benchmarks)

    # ------------------------------------------------------------ exports & templates

    def export_forecasts(self, today: Optional[date] = None) -> Tuple[str, str]:
        if not self._state.all_forecasts:
            raise InvalidInput("Nothing to export: no system forecasts have been generated.")
        return export_filename("ProcureForecasts", today), export_forecasts_csv(self._state.all_forecasts)

    def export_benchmarks(self, today: Optional[date] = None) -> Tuple[str, str]:
        if not self._state.benchmarks:
            raise InvalidInput("Nothing to export: no benchmark results available.")
        return export_filename("ProcureBenchmark", today), export_benchmarks_csv(self._state.benchmarks)

    def historical_template(self, seed: Optional[int] = None) -> Tuple[str, str]:
        count = self.config["data"]["template_sample_size"]
        return "procurement_history_template.csv", generate_sample_csv(count=count, rng=np.random.default_rng(seed))

    def negotiation_template(self) -> Tuple[str, str]:
        return "negotiation_template.csv", generate_negotiation_sample_csv()

    def forecast_template(self, today: Optional[date] = None) -> Tuple[str, str]:
        return "forecast_baseline_template.csv", generate_forecast_template_csv(today)
