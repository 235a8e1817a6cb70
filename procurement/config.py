import copy
import logging
import os
from typing import Dict, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PROCUREMENT_CONFIG"
DEFAULT_CONFIG_PATH = "config/config.yaml"

DEFAULT_CONFIG = {
    "app": {
        "title": "Procurement Forecast Analytics",
        "description": "AI-assisted price and lead-time forecasting with negotiated-rate benchmarking",
        "version": "1.0.0",
        "host": "0.0.0.0",
        "port": 8000,
        "cors_origins": ["*"],
    },
    "ai": {
        "api_key_env": "OPENAI_API_KEY",
        "forecast_model": "gpt-4o-mini",
        "benchmark_model": "gpt-4o",
        "models": ["gpt-4o-mini", "gpt-4o", "gpt-4.1-mini"],
        "temperature": 0.1,
        "max_tokens": 8192,
        "timeout_seconds": 60,
        "forecast_horizon_months": 12,
        "min_history_points": 3,
        "forecast_history_rows": 24,
        "bulk_batch_size": 10,
        "bulk_history_rows": 6,
        "batch_pause_seconds": 0.1,
    },
    "data": {
        "sample_size": 150,
        "template_sample_size": 100,
        "symmetric_trends": False,
        "strict_decode": False,
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
}


def _deep_merge(base: Dict, override: Dict) -> Dict:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> Dict:
    """Load YAML config over the built-in defaults.

    The path comes from the argument, then $PROCUREMENT_CONFIG, then
    config/config.yaml. A missing file falls back to the defaults.
    """
    config_path = config_path or os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
    try:
        with open(config_path, "r") as file:
            loaded = yaml.safe_load(file) or {}
    except FileNotFoundError:
        logger.warning(f"⚠️ Config file {config_path} not found. Using defaults.")
        loaded = {}

    return _deep_merge(DEFAULT_CONFIG, loaded)


def setup_logging(config: Dict) -> None:
    log_config = config["logging"]
    level = getattr(logging, str(log_config["level"]).upper(), logging.INFO)
    logging.basicConfig(level=level, format=log_config["format"])
