import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import Response

from app.api.schemas import (
    BenchmarkListResponse,
    BulkProgressResponse,
    CleanseResponse,
    CombinationsResponse,
    CurrentForecastResponse,
    DatasetResponse,
    FilterOptions,
    ForecastListResponse,
    NegotiationsResponse,
    SettingsResponse,
    SettingsUpdate,
    UploadResponse,
)
from app.engine import ProcurementEngine
from procurement.csv_codec import CSV_MIME_TYPE
from procurement.data_pipeline import decode_upload
from procurement.schemas import ForecastKey, ForecastResult, HistoricalRecord

logger = logging.getLogger(__name__)

router = APIRouter()


def get_engine(request: Request) -> ProcurementEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Procurement engine not ready")
    return engine


async def _read_csv(file: UploadFile) -> str:
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Only CSV files are supported")
    try:
        return decode_upload(await file.read())
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail=f"{file.filename} is not UTF-8 text")


def _csv_response(filename: str, content: str) -> Response:
    return Response(
        content=content,
        media_type=CSV_MIME_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _settings(engine: ProcurementEngine) -> SettingsResponse:
    state = engine.state
    return SettingsResponse(
        selected_model=state.selected_model,
        confidence_level=state.confidence_level,
        forecast_source=state.forecast_source,
        available_models=engine.config["ai"]["models"],
    )


# ---------------------------------------------------------------- historical data


@router.post("/historical/upload", response_model=UploadResponse)
async def upload_historical(file: UploadFile = File(...), engine: ProcurementEngine = Depends(get_engine)):
    """Replace the working dataset with an uploaded history CSV"""
    warnings = engine.load_historical_text(await _read_csv(file))
    return UploadResponse(records=len(engine.state.data), warnings=warnings)


@router.post("/historical/sample", response_model=UploadResponse)
async def load_sample_data(
    count: Optional[int] = Query(None, ge=1, le=5000),
    seed: Optional[int] = None,
    engine: ProcurementEngine = Depends(get_engine),
):
    """Replace the working dataset with synthetic records"""
    engine.load_sample(count, seed)
    return UploadResponse(records=len(engine.state.data))


@router.get("/historical", response_model=DatasetResponse)
async def get_historical(
    part_number: Optional[str] = None,
    vendor: Optional[str] = None,
    country: Optional[str] = None,
    engine: ProcurementEngine = Depends(get_engine),
):
    """Active dataset, or the chronological history of one key when all three are given"""
    state = engine.state
    if part_number and vendor and country:
        records = engine.history(ForecastKey(part_number=part_number, vendor=vendor, country=country))
    else:
        records = list(state.active_data)
    return DatasetResponse(records=records, count=len(records), is_cleansed=state.is_cleansed)


@router.get("/historical/summary")
async def get_summary(engine: ProcurementEngine = Depends(get_engine)):
    return engine.summary()


@router.get("/historical/outliers", response_model=List[HistoricalRecord])
async def get_outliers(engine: ProcurementEngine = Depends(get_engine)):
    """Uploaded records that a cleanse would remove"""
    return [r for r in engine.flagged_data() if r.is_outlier]


@router.post("/historical/cleanse", response_model=CleanseResponse)
async def cleanse_data(engine: ProcurementEngine = Depends(get_engine)):
    state = engine.cleanse()
    return CleanseResponse(kept=len(state.cleansed_data), outlier_count=state.outlier_count, is_cleansed=True)


@router.post("/historical/restore", response_model=CleanseResponse)
async def restore_data(engine: ProcurementEngine = Depends(get_engine)):
    state = engine.restore_original()
    return CleanseResponse(kept=len(state.data), outlier_count=state.outlier_count, is_cleansed=False)


# ---------------------------------------------------------------- selection & settings


@router.get("/filters", response_model=FilterOptions)
async def get_filters(engine: ProcurementEngine = Depends(get_engine)):
    return FilterOptions(filters=engine.state.filters, **engine.filter_options())


@router.put("/filters", response_model=FilterOptions)
async def set_filters(filters: ForecastKey, engine: ProcurementEngine = Depends(get_engine)):
    engine.set_filters(filters)
    return FilterOptions(filters=engine.state.filters, **engine.filter_options())


@router.get("/settings", response_model=SettingsResponse)
async def get_settings(engine: ProcurementEngine = Depends(get_engine)):
    return _settings(engine)


@router.put("/settings", response_model=SettingsResponse)
async def update_settings(update: SettingsUpdate, engine: ProcurementEngine = Depends(get_engine)):
    engine.set_settings(update.selected_model, update.confidence_level, update.forecast_source)
    return _settings(engine)


@router.get("/combinations", response_model=CombinationsResponse)
async def get_combinations(engine: ProcurementEngine = Depends(get_engine)):
    combinations = engine.combinations()
    return CombinationsResponse(combinations=combinations, count=len(combinations))


# ---------------------------------------------------------------- forecasts


@router.post("/forecasts/run", response_model=ForecastResult)
async def run_forecast(key: Optional[ForecastKey] = None, engine: ProcurementEngine = Depends(get_engine)):
    """Forecast the given key, or the current filter selection"""
    return await engine.run_forecast(key)


@router.post("/forecasts/bulk", response_model=ForecastListResponse)
async def run_bulk_forecasts(engine: ProcurementEngine = Depends(get_engine)):
    """Forecast every combination present in the active dataset"""
    results = await engine.run_bulk_forecasts()
    return ForecastListResponse(forecasts=results, count=len(results), source="system")


@router.get("/forecasts/bulk/progress", response_model=BulkProgressResponse)
async def get_bulk_progress(engine: ProcurementEngine = Depends(get_engine)):
    return BulkProgressResponse(running=engine.bulk_running, progress=engine.bulk_progress)


@router.get("/forecasts", response_model=ForecastListResponse)
async def get_forecasts(engine: ProcurementEngine = Depends(get_engine)):
    state = engine.state
    forecasts = list(state.active_forecasts)
    return ForecastListResponse(forecasts=forecasts, count=len(forecasts), source=state.forecast_source)


@router.get("/forecasts/current", response_model=CurrentForecastResponse)
async def get_current_forecast(engine: ProcurementEngine = Depends(get_engine)):
    """Forecast, benchmark baseline and history for the current selection"""
    state = engine.state
    history = engine.history(state.filters) if state.filters.is_complete() else []
    return CurrentForecastResponse(
        filters=state.filters, forecast=state.forecast, baseline=engine.active_baseline(), history=history
    )


@router.post("/forecasts/upload", response_model=UploadResponse)
async def upload_forecasts(file: UploadFile = File(...), engine: ProcurementEngine = Depends(get_engine)):
    """Load a forecast baseline CSV and make it the benchmark source"""
    warnings = engine.upload_forecasts(await _read_csv(file))
    return UploadResponse(records=len(engine.state.uploaded_forecasts), warnings=warnings)


# ---------------------------------------------------------------- negotiations & benchmarks


@router.post("/negotiations/upload", response_model=UploadResponse)
async def upload_negotiations(files: List[UploadFile] = File(...), engine: ProcurementEngine = Depends(get_engine)):
    """Append negotiated rates from one or more CSV files, read in order"""
    texts = []
    for file in files:
        texts.append(await _read_csv(file))
    before = len(engine.state.proposed_rates)
    warnings = engine.upload_negotiations(texts)
    return UploadResponse(records=len(engine.state.proposed_rates) - before, warnings=warnings)


@router.get("/negotiations", response_model=NegotiationsResponse)
async def get_negotiations(engine: ProcurementEngine = Depends(get_engine)):
    rates = list(engine.state.proposed_rates)
    return NegotiationsResponse(rates=rates, count=len(rates))


@router.delete("/negotiations", response_model=NegotiationsResponse)
async def clear_negotiations(engine: ProcurementEngine = Depends(get_engine)):
    engine.clear_negotiations()
    return NegotiationsResponse(rates=[], count=0)


def _benchmark_list(engine: ProcurementEngine, attention_only: bool = False) -> BenchmarkListResponse:
    benchmarks = engine.benchmarks(attention_only)
    return BenchmarkListResponse(
        benchmarks=benchmarks,
        count=len(benchmarks),
        attention_required=len(engine.benchmarks(attention_only=True)),
    )


@router.post("/benchmarks/run", response_model=BenchmarkListResponse)
async def run_benchmark(engine: ProcurementEngine = Depends(get_engine)):
    await engine.run_benchmark()
    return _benchmark_list(engine)


@router.get("/benchmarks", response_model=BenchmarkListResponse)
async def get_benchmarks(attention_only: bool = False, engine: ProcurementEngine = Depends(get_engine)):
    return _benchmark_list(engine, attention_only)


# ---------------------------------------------------------------- exports & templates


@router.get("/exports/forecasts")
async def export_forecasts(engine: ProcurementEngine = Depends(get_engine)):
    return _csv_response(*engine.export_forecasts())


@router.get("/exports/benchmarks")
async def export_benchmarks(engine: ProcurementEngine = Depends(get_engine)):
    return _csv_response(*engine.export_benchmarks())


@router.get("/templates/historical")
async def historical_template(seed: Optional[int] = None, engine: ProcurementEngine = Depends(get_engine)):
    return _csv_response(*engine.historical_template(seed))


@router.get("/templates/negotiation")
async def negotiation_template(engine: ProcurementEngine = Depends(get_engine)):
    return _csv_response(*engine.negotiation_template())


@router.get("/templates/forecast")
async def forecast_template(engine: ProcurementEngine = Depends(get_engine)):
    return _csv_response(*engine.forecast_template())
