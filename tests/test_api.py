import numpy as np
import pytest
from fastapi.testclient import TestClient

from app.engine import ProcurementEngine
from app.main import create_app, status_code_for
from procurement.ai_service import AIService
from procurement.csv_codec import generate_negotiation_sample_csv, generate_sample_csv
from procurement.exceptions import (
    DatasetChanged,
    GenericUpstreamFailure,
    InsufficientData,
    MalformedUpstreamResponse,
    ParseFailure,
    RateLimited,
    Unauthenticated,
    UpstreamUnavailable,
)
from tests.conftest import FakeClient, benchmark_payload, forecast_payload

HISTORY_CSV = (
    "Part Number,Country,USD Pricing,Quantity,Lead Time (Days),Vendor,Date\n"
    "A,US,100,10,20,V1,2024-01-01\n"
    "A,US,102,10,21,V1,2024-02-01\n"
    "A,US,104,10,22,V1,2024-03-01\n"
    "B,DE,50,5,30,V2,2024-01-01"
)


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def client(config, fake_client):
    engine = ProcurementEngine(config, ai_service=AIService(config, client=fake_client))
    with TestClient(create_app(config, engine)) as test_client:
        yield test_client


def _upload(client, path, text, filename="data.csv"):
    return client.post(path, files={"file": (filename, text.encode("utf-8"), "text/csv")})


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "active"

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["engine_ready"] is True
    assert health["ai_configured"] is True


def test_upload_historical(client):
    response = _upload(client, "/historical/upload", HISTORY_CSV)

    assert response.status_code == 200
    assert response.json() == {"status": "success", "records": 4, "warnings": []}

    data = client.get("/historical").json()
    assert data["count"] == 4
    assert data["isCleansed"] is False
    assert data["records"][0]["partNumber"] == "A"
    assert data["records"][0]["usdPrice"] == 100.0


def test_upload_rejects_non_csv_and_empty_files(client):
    assert _upload(client, "/historical/upload", HISTORY_CSV, filename="data.txt").status_code == 400

    response = _upload(client, "/historical/upload", "Part Number,Country")
    assert response.status_code == 422
    assert response.json()["error"] == "ParseFailure"


def test_upload_strips_byte_order_mark(client):
    response = client.post(
        "/historical/upload", files={"file": ("data.csv", b"\xef\xbb\xbf" + HISTORY_CSV.encode("utf-8"), "text/csv")}
    )
    assert response.json()["records"] == 4
    assert client.get("/historical").json()["records"][0]["partNumber"] == "A"


def test_history_for_one_key(client):
    _upload(client, "/historical/upload", HISTORY_CSV)

    data = client.get("/historical", params={"part_number": "A", "vendor": "V1", "country": "US"}).json()
    assert [r["date"] for r in data["records"]] == ["2024-01-01", "2024-02-01", "2024-03-01"]


def test_sample_cleanse_and_restore(client):
    loaded = client.post("/historical/sample", params={"count": 120, "seed": 9}).json()
    assert 0 < loaded["records"] <= 120

    cleansed = client.post("/historical/cleanse").json()
    assert cleansed["isCleansed"] is True
    assert cleansed["kept"] + cleansed["outlierCount"] == loaded["records"]
    assert len(client.get("/historical/outliers").json()) == cleansed["outlierCount"]

    restored = client.post("/historical/restore").json()
    assert restored["kept"] == loaded["records"]

    summary = client.get("/historical/summary").json()
    assert summary["total_records"] == loaded["records"]


def test_filters_and_combinations(client):
    _upload(client, "/historical/upload", HISTORY_CSV)

    combinations = client.get("/combinations").json()
    assert combinations["count"] == 2
    assert combinations["combinations"][0] == {"partNumber": "A", "vendor": "V1", "country": "US"}

    options = client.put("/filters", json={"partNumber": "B"}).json()
    assert options["filters"]["partNumber"] == "B"
    assert options["vendors"] == ["V2"]


def test_settings(client):
    settings = client.get("/settings").json()
    assert settings["forecastSource"] == "system"
    assert settings["selectedModel"] in settings["availableModels"]

    updated = client.put("/settings", json={"selectedModel": "gpt-4o", "confidenceLevel": 90}).json()
    assert updated["selectedModel"] == "gpt-4o"
    assert updated["confidenceLevel"] == 90

    assert client.put("/settings", json={"confidenceLevel": 80}).status_code == 422
    assert client.put("/settings", json={"selectedModel": "unknown"}).status_code == 400


def test_run_forecast_flow(client, fake_client):
    _upload(client, "/historical/upload", HISTORY_CSV)
    fake_client.completions.responses.append(forecast_payload(prices=(105.0, 107.0)))

    response = client.post("/forecasts/run", json={"partNumber": "A", "vendor": "V1", "country": "US"})
    assert response.status_code == 200
    assert response.json()["summary"]["avgPredictedPrice"] == 106.0

    current = client.get("/forecasts/current").json()
    assert current["filters"] == {"partNumber": "A", "vendor": "V1", "country": "US"}
    assert current["forecast"]["partNumber"] == "A"
    assert len(current["history"]) == 3

    export = client.get("/exports/forecasts")
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert 'filename="ProcureForecasts_' in export.headers["content-disposition"]


def test_forecast_with_too_little_history(client, fake_client):
    _upload(client, "/historical/upload", HISTORY_CSV)

    response = client.post("/forecasts/run", json={"partNumber": "B", "vendor": "V2", "country": "DE"})
    assert response.status_code == 400
    assert response.json()["error"] == "InsufficientData"
    assert fake_client.completions.calls == []


def test_rate_limit_maps_to_429(client, fake_client):
    _upload(client, "/historical/upload", HISTORY_CSV)
    fake_client.completions.responses.append(Exception("Error code: 429"))

    response = client.post("/forecasts/run", json={"partNumber": "A", "vendor": "V1", "country": "US"})
    assert response.status_code == 429
    assert response.json()["error"] == "RateLimited"


def test_bulk_forecasts(client, fake_client):
    _upload(client, "/historical/upload", HISTORY_CSV)
    fake_client.completions.responses.append(
        {"forecasts": [forecast_payload(), forecast_payload(part="B", vendor="V2", country="DE")]}
    )

    response = client.post("/forecasts/bulk").json()
    assert response["count"] == 2
    assert client.get("/forecasts").json()["count"] == 2
    assert client.get("/forecasts/bulk/progress").json() == {"running": False, "progress": 0}


def test_negotiations_and_benchmarks(client, fake_client):
    sample = generate_negotiation_sample_csv().encode("utf-8")
    response = client.post(
        "/negotiations/upload",
        files=[("files", ("a.csv", sample, "text/csv")), ("files", ("b.csv", sample, "text/csv"))],
    )
    assert response.json()["records"] == 6
    assert client.get("/negotiations").json()["count"] == 6

    assert client.post("/benchmarks/run").status_code == 400

    forecast_csv = (
        "Part Number,Vendor,Country,Date,Predicted Price,Predicted Lead Time,Confidence Upper,Confidence Lower\n"
        "SKU-1001,GlobalLogistics Inc,USA,2025-01-01,140,15,145,135"
    )
    assert _upload(client, "/forecasts/upload", forecast_csv).json()["records"] == 1
    assert client.get("/settings").json()["forecastSource"] == "upload"

    fake_client.completions.responses.append(
        {"benchmarks": [benchmark_payload(), benchmark_payload(part="B", price_status="anomaly")]}
    )
    result = client.post("/benchmarks/run").json()
    assert result["count"] == 2
    assert result["attentionRequired"] == 1

    flagged = client.get("/benchmarks", params={"attention_only": "true"}).json()
    assert [b["partNumber"] for b in flagged["benchmarks"]] == ["B"]

    export = client.get("/exports/benchmarks")
    assert 'filename="ProcureBenchmark_' in export.headers["content-disposition"]

    assert client.delete("/negotiations").json()["count"] == 0


def test_empty_exports_are_rejected(client):
    response = client.get("/exports/forecasts")
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidInput"


@pytest.mark.parametrize(
    "path, filename",
    [
        ("/templates/historical", "procurement_history_template.csv"),
        ("/templates/negotiation", "negotiation_template.csv"),
        ("/templates/forecast", "forecast_baseline_template.csv"),
    ],
)
def test_templates(client, path, filename):
    response = client.get(path)

    assert response.status_code == 200
    assert response.headers["content-disposition"] == f'attachment; filename="{filename}"'
    assert response.text.startswith("Part Number,")


def test_historical_template_is_seedable(client):
    first = client.get("/templates/historical", params={"seed": 4}).text
    assert first == client.get("/templates/historical", params={"seed": 4}).text
    assert first == generate_sample_csv(count=100, rng=np.random.default_rng(4))


def test_unknown_route(client):
    response = client.get("/nope")
    assert response.status_code == 404
    assert "available_endpoints" in response.json()


def test_status_code_mapping():
    assert status_code_for(ParseFailure()) == 422
    assert status_code_for(DatasetChanged()) == 409
    assert status_code_for(InsufficientData()) == 400
    assert status_code_for(RateLimited()) == 429
    assert status_code_for(UpstreamUnavailable()) == 503
    assert status_code_for(Unauthenticated()) == 502
    assert status_code_for(MalformedUpstreamResponse()) == 502
    assert status_code_for(GenericUpstreamFailure()) == 502


if __name__ == "__main__":
    pytest.main([__file__])
