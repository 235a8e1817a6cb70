from .ai_service import AIService
from .aggregation import group_forecast_points
from .combinations import enumerate_combinations
from .csv_codec import parse_forecast_csv, parse_historical_csv, parse_negotiation_csv
from .data_pipeline import DataPipeline
from .outliers import cleanse_outliers
from .sample_data import generate_sample_data

__all__ = [
    "AIService",
    "DataPipeline",
    "cleanse_outliers",
    "enumerate_combinations",
    "generate_sample_data",
    "group_forecast_points",
    "parse_forecast_csv",
    "parse_historical_csv",
    "parse_negotiation_csv",
]
