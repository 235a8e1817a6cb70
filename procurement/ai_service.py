"""
Boundary to the external LLM that produces forecasts and benchmarks.

Everything this module sends is structured JSON built from the core data
model, and everything it returns is validated back into that model. Any
failure of the engine surfaces as exactly one UpstreamError subclass;
precondition failures (too little history, nothing to benchmark) raise
before a request is made.

Requires: OPENAI_API_KEY in environment or .env file.
"""

import json
import logging
import os
import time
from typing import Callable, Dict, List, Optional, Sequence

import openai
from dotenv import load_dotenv
from openai import OpenAI
from pydantic import ValidationError

from procurement.combinations import batched, history_for_key
from procurement.exceptions import (
    BaselineMissing,
    GenericUpstreamFailure,
    InsufficientData,
    InvalidInput,
    MalformedUpstreamResponse,
    MissingHistoricalData,
    RateLimited,
    Unauthenticated,
    UpstreamError,
    UpstreamUnavailable,
)
from procurement.schemas import (
    BenchmarkResult,
    ForecastKey,
    ForecastResult,
    HistoricalRecord,
    NegotiatedRate,
    key_of,
)

load_dotenv()

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("429", "quota", "rate limit")
UNAVAILABLE_MARKERS = ("503", "unavailable", "overloaded")
AUTH_MARKERS = ("api key", "401", "403")

FORECAST_POINT_SHAPE = (
    '{"date": "YYYY-MM-DD", "predictedPrice": number, "predictedLeadTime": number, '
    '"confidenceIntervalUpper": number, "confidenceIntervalLower": number}'
)
SUMMARY_SHAPE = (
    '{"avgPredictedPrice": number, "avgPredictedLeadTime": number, '
    '"priceTrend": "up|down|stable", "leadTimeTrend": "up|down|stable", "optimizedOrderQuantity": number}'
)


def categorize_upstream_error(error: Exception) -> UpstreamError:
    """Map any failure raised while talking to the engine onto one UpstreamError kind."""
    if isinstance(error, UpstreamError):
        return error
    if isinstance(error, (json.JSONDecodeError, ValidationError)):
        return MalformedUpstreamResponse(details={"reason": str(error)[:500]})
    if isinstance(error, openai.RateLimitError):
        return RateLimited()
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return Unauthenticated()
    if isinstance(error, (openai.InternalServerError, openai.APIConnectionError)):
        return UpstreamUnavailable()

    message = str(error).lower()
    if any(marker in message for marker in RATE_LIMIT_MARKERS):
        return RateLimited()
    if any(marker in message for marker in UNAVAILABLE_MARKERS):
        return UpstreamUnavailable()
    if any(marker in message for marker in AUTH_MARKERS):
        return Unauthenticated()

    return GenericUpstreamFailure(
        f"AI System Error: {error or 'An unexpected error occurred while processing your request.'}"
    )


def _history_payload(records: Sequence[HistoricalRecord]) -> List[Dict]:
    return [r.model_dump(by_alias=True, exclude={"id", "is_outlier"}) for r in records]


def _extract_list(payload, field: str) -> List:
    """JSON mode only returns objects, so list answers arrive wrapped as {field: [...]}."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get(field), list):
        return payload[field]
    raise MalformedUpstreamResponse(details={"reason": f"expected a '{field}' array"})


def _check_batch_keys(results: Sequence[ForecastResult], batch: Sequence[ForecastKey]) -> None:
    requested = {key.as_tuple() for key in batch}
    unexpected = [key_of(r) for r in results if key_of(r) not in requested]
    if unexpected:
        raise MalformedUpstreamResponse(details={"reason": f"forecasts for keys outside the batch: {unexpected}"})


def build_baseline_context(forecasts: Sequence[ForecastResult]) -> List[Dict]:
    """Per-forecast reference figures the benchmark prompt compares against."""
    context = []
    for f in forecasts:
        first = f.forecast[0] if f.forecast else None
        avg_lead_time = f.summary.avg_predicted_lead_time
        context.append(
            {
                "part": f.part_number,
                "vendor": f.vendor,
                "country": f.country,
                "pricing": {
                    "avg": f.summary.avg_predicted_price,
                    "range": [
                        first.confidence_interval_lower if first else None,
                        first.confidence_interval_upper if first else None,
                    ],
                },
                "logistics": {
                    "avgLeadTime": avg_lead_time,
                    "range": [avg_lead_time * 0.6, avg_lead_time * 1.4],
                    "trend": f.summary.lead_time_trend,
                },
            }
        )
    return context


class AIService:
    """Forecast and benchmark requests against an OpenAI chat model in JSON mode."""

    def __init__(self, config: Dict, client=None):
        self.ai_config = config["ai"]
        self._client = client

    def is_configured(self) -> bool:
        return self._client is not None or bool(os.environ.get(self.ai_config["api_key_env"], "").strip())

    def _get_client(self):
        if self._client is None:
            api_key = os.environ.get(self.ai_config["api_key_env"], "").strip()
            if not api_key:
                raise Unauthenticated(details={"reason": f"{self.ai_config['api_key_env']} is not set"})
            self._client = OpenAI(api_key=api_key, timeout=self.ai_config["timeout_seconds"])
        return self._client

    def _complete(self, model: str, system_prompt: str, content: str):
        response = self._get_client().chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": content},
            ],
            temperature=self.ai_config["temperature"],
            max_tokens=self.ai_config["max_tokens"],
            timeout=self.ai_config["timeout_seconds"],
            response_format={"type": "json_object"},
        )
        text = response.choices[0].message.content
        if not text:
            raise MalformedUpstreamResponse("Empty AI Response: The engine failed to generate content.")
        return json.loads(text)

    # ------------------------------------------------------------ forecasts

    def _forecast_prompt(self, key: ForecastKey) -> str:
        months = self.ai_config["forecast_horizon_months"]
        return (
            "You are a supply chain analyst. "
            f"Generate a {months}-month monthly forecast for BOTH USD Price and Lead Time (Days) "
            f"based on the provided historical data for Part: {key.part_number}, "
            f"Vendor: {key.vendor}, Country: {key.country}. "
            "Ensure confidence intervals reflect data volatility. "
            "Respond ONLY with a JSON object of the form "
            f'{{"partNumber": string, "forecast": [{FORECAST_POINT_SHAPE}], "summary": {SUMMARY_SHAPE}}}.'
        )

    def get_forecast(
        self, records: Sequence[HistoricalRecord], key: ForecastKey, model: Optional[str] = None
    ) -> ForecastResult:
        """Forecast one key from its chronological history."""
        history = history_for_key(records, key)
        if not history:
            raise MissingHistoricalData()
        if len(history) < self.ai_config["min_history_points"]:
            raise InsufficientData(details={"points": len(history)})

        model = model or self.ai_config["forecast_model"]
        context = _history_payload(history[-self.ai_config["forecast_history_rows"] :])
        logger.info(f"Requesting forecast for {key.as_tuple()} from {model} with {len(context)} points")

        try:
            payload = self._complete(model, self._forecast_prompt(key), f"Historical Context (JSON): {json.dumps(context)}")
            if not isinstance(payload, dict):
                raise MalformedUpstreamResponse(details={"reason": "expected a forecast object"})
            # the requested key always wins over whatever the engine echoed back
            return ForecastResult.model_validate({**payload, **key.model_dump(by_alias=True)})
        except Exception as e:
            logger.error(f"AI Service Error: {e}")
            raise categorize_upstream_error(e) from e

    def get_bulk_forecasts(
        self,
        records: Sequence[HistoricalRecord],
        keys: Sequence[ForecastKey],
        on_progress: Optional[Callable[[int], None]] = None,
        model: Optional[str] = None,
    ) -> List[ForecastResult]:
        """Forecast many keys in fixed-size batches, reporting processed-key counts after each batch.

        A failed batch is skipped, except for rate-limit and authentication
        failures, which abort the whole run.
        """
        model = model or self.ai_config["forecast_model"]
        batch_size = self.ai_config["bulk_batch_size"]
        history_rows = self.ai_config["bulk_history_rows"]
        system_prompt = (
            "Generate pricing and lead-time forecasts for this batch of procurement items. "
            "Respond ONLY with a JSON object of the form "
            f'{{"forecasts": [{{"partNumber": string, "vendor": string, "country": string, '
            f'"forecast": [{FORECAST_POINT_SHAPE}], "summary": {SUMMARY_SHAPE}}}]}}, '
            "with one entry per combination in the batch."
        )

        results = []
        processed = 0
        for batch in batched(keys, batch_size):
            batch_data = [
                {
                    "combo": key.model_dump(by_alias=True),
                    "history": _history_payload(history_for_key(records, key, limit=history_rows)),
                }
                for key in batch
            ]

            try:
                payload = self._complete(model, system_prompt, f"Bulk Data Batch: {json.dumps(batch_data)}")
                batch_results = [ForecastResult.model_validate(item) for item in _extract_list(payload, "forecasts")]
                _check_batch_keys(batch_results, batch)
                results.extend(batch_results)
            except Exception as e:
                error = categorize_upstream_error(e)
                logger.warning(f"Bulk processing batch failure at index {processed}: {error}")
                if isinstance(error, (RateLimited, Unauthenticated)):
                    raise error from e

            processed = min(processed + batch_size, len(keys))
            if on_progress is not None:
                on_progress(processed)
            time.sleep(self.ai_config["batch_pause_seconds"])

        if not results and keys:
            raise GenericUpstreamFailure(
                "Bulk Analysis Failed: The AI engine was unable to process any of the requested data batches."
            )

        logger.info(f"Bulk forecast produced {len(results)} results for {len(keys)} combinations")
        return results

    # ------------------------------------------------------------ benchmarks

    def _benchmark_prompt(self, confidence_level: int) -> str:
        return f"""Benchmark proposed negotiated rates against AI-generated Baseline Forecasts using a {confidence_level}% Confidence Level.

EVALUATION PROTOCOL:
1. PRICE STATUS:
   - 'anomaly': Proposed Price < Baseline Pricing Lower Range.
   - 'favorable': Baseline Lower Range <= Proposed Price <= Baseline Avg Pricing.
   - 'warning': Proposed Price > Baseline Avg but < Baseline Upper Range.
   - 'critical': Proposed Price >= Baseline Upper Range.

2. LEAD TIME STATUS:
   - 'anomaly': Proposed Lead Time < 60% of Baseline Avg Lead Time.
   - 'favorable': 60% of Baseline Avg <= Proposed Lead Time <= Baseline Avg Lead Time.
   - 'warning': Proposed Lead Time > Baseline Avg by up to 20%.
   - 'critical': Proposed Lead Time > Baseline Avg by more than 20%.

3. RULES:
   - No history: status 'favorable', comment "No comparative baseline available".
   - Provide strategic feedback in comments.
   - Respond ONLY with a JSON object of the form {{"benchmarks": [{{"partNumber": string, "vendor": string,
     "country": string, "proposedPrice": number, "proposedLeadTime": number, "priceStatus": string,
     "leadTimeStatus": string, "confidenceMatch": boolean, "comment": string}}]}}."""

    def get_benchmark(
        self,
        negotiated: Sequence[NegotiatedRate],
        forecasts: Sequence[ForecastResult],
        confidence_level: int = 95,
    ) -> List[BenchmarkResult]:
        if not negotiated:
            raise InvalidInput()
        if not forecasts:
            raise BaselineMissing()

        model = self.ai_config["benchmark_model"]
        content = (
            f"Negotiations: {json.dumps([r.model_dump(by_alias=True) for r in negotiated])}\n"
            f"Baselines: {json.dumps(build_baseline_context(forecasts))}"
        )
        logger.info(
            f"Benchmarking {len(negotiated)} negotiated rates against {len(forecasts)} baselines "
            f"at {confidence_level}% confidence"
        )

        try:
            payload = self._complete(model, self._benchmark_prompt(confidence_level), content)
            return [BenchmarkResult.model_validate(item) for item in _extract_list(payload, "benchmarks")]
        except Exception as e:
            logger.error(f"AI Service Error: {e}")
            raise categorize_upstream_error(e) from e
