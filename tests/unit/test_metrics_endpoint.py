from __future__ import annotations

from fastapi.testclient import TestClient

from ai_processing.app import create_app
from ai_processing.config import AppConfig


def test_metrics_endpoint_exposes_prometheus_series():
    app = create_app(config=AppConfig(language_load_on_startup=False))
    with TestClient(app) as client:
        health = client.get("/health")
        assert health.status_code == 200

        response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.headers["cache-control"] == "no-store"
    body = response.text
    assert "cv_http_requests_total" in body
    assert 'route="/health"' in body
    assert "cv_pipeline_runs_total" in body
    assert "cv_model_retries_total" in body
