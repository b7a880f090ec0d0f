"""Integration tests for the HTTP endpoints."""
from __future__ import annotations

from datetime import date

import pytest

from app.config import get_settings
from app.main import serve
from app.services.advisor import CoachAdvisor
from app.services.coach_pipeline import CoachPipeline
from app.services.intervals_service import UpstreamUnavailableError


@pytest.fixture
def patch_pipeline(monkeypatch: pytest.MonkeyPatch, synthetic_intervals):
    """Route every endpoint's CoachPipeline through in-memory intervals data."""

    def install(end: date | None = None, **kwargs):
        intervals = synthetic_intervals(end=end or date(2025, 10, 19), **kwargs)

        class StubbedPipeline(CoachPipeline):
            def __init__(self) -> None:
                super().__init__(
                    settings=get_settings(),
                    intervals=intervals,
                    advisor=CoachAdvisor.disabled(get_settings()),
                )

        monkeypatch.setattr("app.routers.recommendations.CoachPipeline", StubbedPipeline)
        monkeypatch.setattr("app.routers.alerts.CoachPipeline", StubbedPipeline)
        return intervals

    return install


def test_date_endpoint_returns_report(test_client, patch_pipeline):
    patch_pipeline()

    response = test_client.get("/api/recommendations/2025-10-19")

    assert response.status_code == 200
    payload = response.json()
    assert payload["target_date"] == "2025-10-19"
    assert payload["decision"]["workout_type"] == "Tempo"
    assert payload["fitness"]["tsb"] == -4.0
    assert payload["phase"]["deterministic_phase"] == "Base"
    assert set(payload["advisories"]) == {"deload", "ramp_rate", "volume_jump", "illness", "ftp_test"}


def test_today_endpoint_uses_current_date(test_client, patch_pipeline):
    patch_pipeline(end=date.today())

    response = test_client.get("/api/recommendations/today")

    assert response.status_code == 200
    assert response.json()["target_date"] == date.today().isoformat()


def test_date_endpoint_validates_isoformat(test_client):
    bad = test_client.get("/api/recommendations/not-a-date")

    assert bad.status_code == 400
    assert bad.json()["detail"] == "Invalid date format. Use YYYY-MM-DD"


def test_upstream_outage_is_503(test_client, patch_pipeline):
    patch_pipeline(wellness_error="connection refused")

    response = test_client.get("/api/recommendations/2025-10-19")

    assert response.status_code == 503


def test_unexpected_failure_is_500(monkeypatch: pytest.MonkeyPatch, test_client):
    class BrokenPipeline:
        def run(self, target_date):
            raise RuntimeError("boom")

    monkeypatch.setattr("app.routers.recommendations.CoachPipeline", BrokenPipeline)

    response = test_client.get("/api/recommendations/2025-10-19")

    assert response.status_code == 500
    assert "boom" in response.json()["detail"]


def test_active_alerts_endpoint(test_client, patch_pipeline):
    patch_pipeline(end=date.today())

    response = test_client.get("/api/alerts/active")

    assert response.status_code == 200
    payload = response.json()
    assert payload["date"] == date.today().isoformat()
    assert payload["count"] == len(payload["alerts"])
    for alert in payload["alerts"]:
        assert set(alert) == {"alert_type", "severity", "reasons", "recommendation"}


def test_active_alerts_upstream_outage(test_client, patch_pipeline):
    patch_pipeline(wellness_error="timeout")

    assert test_client.get("/api/alerts/active").status_code == 503


def test_health_endpoints(test_client):
    assert test_client.get("/health").json() == {"status": "ok"}
    assert test_client.get("/api/health/status").json() == {"status": "online"}


def test_serve_uses_configured_host_and_port(monkeypatch: pytest.MonkeyPatch):
    calls = []
    monkeypatch.setattr("app.main.uvicorn.run", lambda target, **kwargs: calls.append((target, kwargs)))

    serve()

    settings = get_settings()
    assert calls == [("app.main:app", {"host": settings.app_host, "port": settings.app_port, "log_config": None})]
