import json
import os
import sys
import threading
from types import SimpleNamespace

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from procurement.config import DEFAULT_CONFIG, _deep_merge
from procurement.schemas import HistoricalRecord


class FakeCompletions:
    """Stands in for client.chat.completions; replays queued responses or raises queued errors."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        content = item if isinstance(item, str) else json.dumps(item)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeClient:
    def __init__(self, responses=()):
        self.completions = FakeCompletions(responses)
        self.chat = SimpleNamespace(completions=self.completions)


class BlockingClient(FakeClient):
    """FakeClient whose requests wait inside create() until release is set."""

    def __init__(self, responses=()):
        super().__init__(responses)
        self.entered = threading.Event()
        self.release = threading.Event()
        replay = self.completions.create

        def create(**kwargs):
            self.entered.set()
            self.release.wait(5)
            return replay(**kwargs)

        self.completions.create = create


def make_record(price, part="A", vendor="V1", country="US", date="2024-01-01", record_id=None, lead_time=10):
    return HistoricalRecord(
        id=record_id or f"{part}-{vendor}-{country}-{date}-{price}",
        part_number=part,
        vendor=vendor,
        country=country,
        usd_price=price,
        quantity=100,
        lead_time_days=lead_time,
        date=date,
    )


def forecast_payload(part="A", vendor="V1", country="US", prices=(100.0, 110.0)):
    return {
        "partNumber": part,
        "vendor": vendor,
        "country": country,
        "forecast": [
            {
                "date": f"2025-{i + 1:02d}-01",
                "predictedPrice": price,
                "predictedLeadTime": 20,
                "confidenceIntervalUpper": price + 5,
                "confidenceIntervalLower": price - 5,
            }
            for i, price in enumerate(prices)
        ],
        "summary": {
            "avgPredictedPrice": sum(prices) / len(prices),
            "avgPredictedLeadTime": 20,
            "priceTrend": "up",
            "leadTimeTrend": "stable",
            "optimizedOrderQuantity": 500,
        },
    }


def benchmark_payload(part="A", vendor="V1", country="US", price_status="favorable", lead_time_status="favorable"):
    return {
        "partNumber": part,
        "vendor": vendor,
        "country": country,
        "proposedPrice": 100.0,
        "proposedLeadTime": 20,
        "priceStatus": price_status,
        "leadTimeStatus": lead_time_status,
        "confidenceMatch": True,
        "comment": "Within expected range",
    }


@pytest.fixture
def config():
    return _deep_merge(DEFAULT_CONFIG, {"ai": {"batch_pause_seconds": 0}})


@pytest.fixture
def history():
    """Five monthly points for (A, V1, US), deliberately out of date order, plus one point for (B, V2, DE)."""
    return [
        make_record(104.0, date="2024-03-01"),
        make_record(100.0, date="2024-01-01"),
        make_record(102.0, date="2024-02-01"),
        make_record(108.0, date="2024-05-01"),
        make_record(106.0, date="2024-04-01"),
        make_record(50.0, part="B", vendor="V2", country="DE", date="2024-01-01"),
    ]
