import logging
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence

import pandas as pd

from procurement.combinations import enumerate_combinations
from procurement.config import load_config
from procurement.csv_codec import parse_forecast_csv, parse_historical_csv, parse_negotiation_csv
from procurement.exceptions import ParseFailure
from procurement.outliers import CleanseResult, cleanse_outliers
from procurement.schemas import ForecastKey, ForecastResult, HistoricalRecord, NegotiatedRate

logger = logging.getLogger(__name__)

KEY_COLUMNS = ["part_number", "vendor", "country"]


class PipelineResult(NamedTuple):
    records: List[HistoricalRecord]
    removed_count: int
    combinations: List[ForecastKey]
    summary: Dict
    warnings: List[str]


def decode_upload(content: bytes) -> str:
    """Uploaded file bytes to text. A UTF-8 byte order mark is dropped."""
    return content.decode("utf-8-sig")


def records_to_frame(records: Sequence[HistoricalRecord]) -> pd.DataFrame:
    return pd.DataFrame([r.model_dump() for r in records])


class DataPipeline:
    def __init__(self, config: Optional[Dict] = None, config_path: Optional[str] = None):
        self.config = config or load_config(config_path)
        self.data_config = self.config["data"]

    def load_historical(self, text: str, warnings: Optional[List[str]] = None) -> List[HistoricalRecord]:
        """Decode a historical upload. Raises ParseFailure when no rows come out."""
        logger.info("Loading historical data...")
        records = parse_historical_csv(text, warnings=warnings, strict=self.data_config["strict_decode"])
        if not records:
            raise ParseFailure()

        logger.info(f"Loaded {len(records)} rows of historical data")
        return records

    def load_negotiations(self, texts: Iterable[str], warnings: Optional[List[str]] = None) -> List[NegotiatedRate]:
        """Decode several negotiation files in order and concatenate their rows."""
        rates = []
        for index, text in enumerate(texts):
            parsed = parse_negotiation_csv(text, warnings=warnings, strict=self.data_config["strict_decode"])
            logger.info(f"Negotiation file {index + 1}: {len(parsed)} rates")
            rates.extend(parsed)
        return rates

    def load_forecasts(self, text: str, warnings: Optional[List[str]] = None) -> List[ForecastResult]:
        forecasts = parse_forecast_csv(
            text,
            warnings=warnings,
            strict=self.data_config["strict_decode"],
            symmetric_trends=self.data_config["symmetric_trends"],
        )
        if not forecasts:
            raise ParseFailure("Could not parse any valid forecasts from CSV.")
        return forecasts

    def cleanse(self, records: Sequence[HistoricalRecord]) -> CleanseResult:
        result = cleanse_outliers(records)
        logger.info(f"Cleansed dataset: kept {len(result.kept)}, removed {result.removed_count} outliers")
        return result

    def summarize(self, records: Sequence[HistoricalRecord]) -> Dict:
        """Dataset statistics for display: counts, ranges and per-combination averages."""
        if not records:
            return {"total_records": 0, "date_range": None, "combinations": []}

        df = records_to_frame(records)
        dates = pd.to_datetime(df["date"], errors="coerce", utc=True, format="mixed").dropna()

        per_key = (
            df.groupby(KEY_COLUMNS, sort=False)
            .agg(
                records=("id", "count"),
                avg_price=("usd_price", "mean"),
                min_price=("usd_price", "min"),
                max_price=("usd_price", "max"),
                avg_lead_time=("lead_time_days", "mean"),
                total_quantity=("quantity", "sum"),
            )
            .round(2)
            .reset_index()
        )

        return {
            "total_records": len(df),
            "date_range": {
                "start": dates.min().strftime("%Y-%m-%d"),
                "end": dates.max().strftime("%Y-%m-%d"),
            }
            if not dates.empty
            else None,
            "parts": int(df["part_number"].nunique()),
            "vendors": int(df["vendor"].nunique()),
            "countries": int(df["country"].nunique()),
            "avg_price": round(float(df["usd_price"].mean()), 2),
            "avg_lead_time": round(float(df["lead_time_days"].mean()), 2),
            "total_spend": round(float((df["usd_price"] * df["quantity"]).sum()), 2),
            "combinations": per_key.to_dict(orient="records"),
        }

    def run_pipeline(self, text: str, cleanse: bool = False) -> PipelineResult:
        """Decode an upload, optionally cleanse it, then summarize and enumerate its keys."""
        warnings = []
        try:
            records = self.load_historical(text, warnings=warnings)
            removed = 0
            if cleanse:
                records, removed = self.cleanse(records)

            result = PipelineResult(
                records=records,
                removed_count=removed,
                combinations=enumerate_combinations(records),
                summary=self.summarize(records),
                warnings=warnings,
            )
        except Exception as e:
            logger.error(f"Error in data pipeline: {e}")
            raise

        logger.info(f"Data pipeline completed: {len(result.records)} records, {len(result.combinations)} combinations")
        if warnings:
            logger.warning(f"{len(warnings)} fields were read as 0 during decode")
        return result
