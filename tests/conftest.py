"""Pytest configuration for global fixtures and logging setup."""
from __future__ import annotations

import json
import os
from datetime import date, timedelta
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, Dict, List

import pytest
from fastapi.testclient import TestClient

os.environ["INTERVALS_API_KEY"] = os.environ.get("INTERVALS_API_KEY") or "test-intervals-key"
os.environ["ANTHROPIC_API_KEY"] = os.environ.get("ANTHROPIC_API_KEY") or "test-anthropic-key"
os.environ["ADVISOR_ENABLED"] = "false"
os.environ["GARMIN_EMAIL"] = ""
os.environ["GARMIN_PASSWORD"] = ""
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL") or "sqlite:///./data/test_coach.db"

from app.logging_config import configure_logging

configure_logging()

from app.config import get_settings
from app.main import app
from app.models.schemas import ActivityRecord, FitnessPoint, WellnessRecord
from app.services.advisor import CoachAdvisor

FIXTURES_DIR = Path(__file__).parent / "fixtures"
TARGET_DATE = date(2025, 10, 19)


@pytest.fixture(scope="session")
def test_client() -> TestClient:
    """Provide a FastAPI test client."""

    return TestClient(app)


def _load_fixture(name: str) -> Any:
    with (FIXTURES_DIR / name).open("r", encoding="utf-8") as fh:
        return json.load(fh)


@pytest.fixture(scope="session")
def wellness_rows() -> List[Dict[str, Any]]:
    """Raw intervals.icu wellness rows."""

    return _load_fixture("intervals_wellness.json")


@pytest.fixture(scope="session")
def activity_rows() -> List[Dict[str, Any]]:
    return _load_fixture("intervals_activities.json")


@pytest.fixture(scope="session")
def event_rows() -> List[Dict[str, Any]]:
    return _load_fixture("intervals_events.json")


@pytest.fixture(scope="session")
def anthropic_workout_fixture() -> Dict[str, Any]:
    """Return a valid advisor workout reply."""

    return _load_fixture("anthropic_workout.json")


@pytest.fixture(scope="session")
def garmin_recovery_fixture() -> Dict[str, Any]:
    return _load_fixture("garmin_recovery.json")


@pytest.fixture
def target_date() -> date:
    return TARGET_DATE


@pytest.fixture
def make_points() -> Callable[..., List[FitnessPoint]]:
    """Build a daily fitness series ending at ``end`` (newest first)."""

    def build(
        days: int = 35,
        end: date = TARGET_DATE,
        ctl_start: float = 40.0,
        ctl_step: float = 0.5,
        atl_offset: float = 5.0,
        eftp_start: float | None = 240.0,
        eftp_step: float = 0.3,
    ) -> List[FitnessPoint]:
        points = []
        for offset in range(days):
            day = end - timedelta(days=days - 1 - offset)
            ctl = ctl_start + ctl_step * offset
            points.append(
                FitnessPoint(
                    date=day,
                    ctl=round(ctl, 2),
                    atl=round(ctl + atl_offset, 2),
                    ramp_rate=round(ctl_step * 7, 2),
                    eftp=round(eftp_start + eftp_step * offset, 2) if eftp_start is not None else None,
                )
            )
        return sorted(points, key=lambda point: point.date, reverse=True)

    return build


@pytest.fixture
def make_wellness() -> Callable[..., List[WellnessRecord]]:
    """Build daily wellness records ending at ``end`` (newest first)."""

    def build(days: int = 28, end: date = TARGET_DATE, **fields: Any) -> List[WellnessRecord]:
        return [WellnessRecord(date=end - timedelta(days=offset), **fields) for offset in range(days)]

    return build


@pytest.fixture
def make_activity() -> Callable[..., ActivityRecord]:
    counter = {"next": 0}

    def build(day: date, training_load: float | None = 60.0, **fields: Any) -> ActivityRecord:
        counter["next"] += 1
        fields.setdefault("sport", "cycling")
        return ActivityRecord(id=f"a{counter['next']}", date=day, training_load=training_load, **fields)

    return build


class FakeIntervals:
    """In-memory stand-in for IntervalsService that records every fetch."""

    def __init__(
        self,
        wellness: List[Dict[str, Any]],
        activities: List[Dict[str, Any]] | None = None,
        events: List[Dict[str, Any]] | None = None,
        wellness_error: str | None = None,
    ) -> None:
        self.rows = {"wellness": wellness, "activities": activities or [], "events": events or []}
        self.wellness_error = wellness_error
        self.calls: List[str] = []

    def _result(self, endpoint: str) -> Dict[str, Any]:
        self.calls.append(endpoint)
        if endpoint == "wellness" and self.wellness_error:
            return {"success": False, "data": [], "error": self.wellness_error}
        return {"success": True, "data": list(self.rows[endpoint]), "error": None}

    def fetch_wellness(self, oldest: date, newest: date) -> Dict[str, Any]:
        return self._result("wellness")

    def fetch_activities(self, oldest: date, newest: date) -> Dict[str, Any]:
        return self._result("activities")

    def fetch_events(self, oldest: date, newest: date) -> Dict[str, Any]:
        return self._result("events")


@pytest.fixture
def synthetic_intervals() -> Callable[..., FakeIntervals]:
    """A month of steadily building rows in the intervals.icu wire format."""

    def build(end: date = TARGET_DATE, today_has_data: bool = True, **kwargs: Any) -> FakeIntervals:
        wellness = []
        activities = []
        for offset in range(30):
            day = end - timedelta(days=offset)
            ctl = 55.0 - 0.4 * offset
            row: Dict[str, Any] = {
                "id": day.isoformat(),
                "ctl": ctl,
                "atl": ctl + 4,
                "rampRate": 2.8,
                "sportInfo": [{"type": "Ride", "eftp": 250 - 0.2 * offset}],
            }
            if offset > 0 or today_has_data:
                row.update({"restingHR": 48, "hrv": 60 + (offset % 3), "sleepSecs": 27000, "readiness": 70})
            wellness.append(row)
            if offset > 0 and offset % 2 == 0:
                activities.append(
                    {
                        "id": f"i{offset}",
                        "start_date_local": f"{day.isoformat()}T07:00:00",
                        "type": "Ride",
                        "name": "Endurance_Z2" if offset % 4 else "SweetSpot",
                        "icu_training_load": 70,
                        "icu_ftp": 245,
                        "icu_rpe": 6,
                        "feel": 2,
                    }
                )
        events = [
            {"id": 1, "start_date_local": "2026-01-18T00:00:00", "category": "RACE_A", "name": "Winter Classic"},
            {"id": 2, "start_date_local": "2025-11-30T00:00:00", "category": "RACE_B", "name": "Hill Climb"},
        ]
        return FakeIntervals(wellness, activities, events, **kwargs)

    return build


class DummyMessages:
    """Mimics ``Anthropic().messages`` returning one canned reply."""

    def __init__(self, reply: Any) -> None:
        self.reply = reply
        self.requests: List[Dict[str, Any]] = []

    def create(self, **kwargs: Any) -> SimpleNamespace:
        self.requests.append(kwargs)
        if isinstance(self.reply, Exception):
            raise self.reply
        text = self.reply if isinstance(self.reply, str) else json.dumps(self.reply)
        return SimpleNamespace(content=[SimpleNamespace(text=text)])


@pytest.fixture
def advisor_with_reply() -> Callable[[Any], CoachAdvisor]:
    """Enabled advisor whose client answers every prompt with ``reply``."""

    def build(reply: Any) -> CoachAdvisor:
        client = SimpleNamespace(messages=DummyMessages(reply))
        return CoachAdvisor(settings=get_settings(), client=client, enabled=True)

    return build


@pytest.fixture
def disabled_advisor() -> CoachAdvisor:
    return CoachAdvisor.disabled(get_settings())
