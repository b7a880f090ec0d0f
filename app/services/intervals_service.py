"""Read-only client for the intervals.icu fitness-tracking API."""
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, TypedDict

import requests
from pydantic import ValidationError

from app.config import Settings, get_settings
from app.models.schemas import (
    ActivityRecord,
    CalendarEvent,
    EventCategory,
    FitnessPoint,
    WellnessRecord,
)


logger = logging.getLogger(__name__)

CYCLING_TYPES = {"Ride", "VirtualRide", "GravelRide", "MountainBikeRide", "EBikeRide", "TrackRide"}
RUNNING_TYPES = {"Run", "VirtualRun", "TrailRun", "TreadmillRun"}

_THRESHOLD_TEST_PATTERN = re.compile(r"\b(ftp test|ramp test|threshold test|20 ?min(ute)? test|cp test)\b", re.IGNORECASE)


class UpstreamUnavailableError(RuntimeError):
    """Raised when the fitness service cannot be reached at the start of a run."""


class FetchResult(TypedDict):
    success: bool
    data: list[dict[str, Any]]
    error: str | None


class IntervalsService:
    """Thin wrapper around the intervals.icu REST API with non-throwing fetches."""

    def __init__(self, settings: Settings | None = None, session: requests.Session | None = None) -> None:
        settings = settings or get_settings()
        self.athlete_id = settings.intervals_athlete_id
        self.base_url = settings.intervals_base_url.rstrip("/")
        self.timeout = settings.intervals_timeout_seconds
        self._session = session or requests.Session()
        self._session.auth = ("API_KEY", settings.intervals_api_key)
        self._session.headers.setdefault("Accept", "application/json")

    def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> FetchResult:
        url = f"{self.base_url}/athlete/{self.athlete_id}/{endpoint}"
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as err:
            logger.warning("intervals.icu %s fetch failed: %s", endpoint, err)
            return {"success": False, "data": [], "error": str(err)}

        if not isinstance(payload, list):
            logger.warning("intervals.icu %s returned %s instead of a list", endpoint, type(payload).__name__)
            return {"success": True, "data": [], "error": None}

        rows = [row for row in payload if isinstance(row, dict)]
        logger.debug("intervals.icu %s returned %d rows", endpoint, len(rows))
        return {"success": True, "data": rows, "error": None}

    @staticmethod
    def _range(oldest: date, newest: date) -> dict[str, str]:
        return {"oldest": oldest.isoformat(), "newest": newest.isoformat()}

    def fetch_wellness(self, oldest: date, newest: date) -> FetchResult:
        return self._get("wellness", self._range(oldest, newest))

    def fetch_activities(self, oldest: date, newest: date) -> FetchResult:
        return self._get("activities", self._range(oldest, newest))

    def fetch_events(self, oldest: date, newest: date) -> FetchResult:
        return self._get("events", self._range(oldest, newest))


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def _to_float(value: Any, minimum: float | None = None, maximum: float | None = None) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if minimum is not None and number < minimum:
        return None
    if maximum is not None and number > maximum:
        return None
    return number


def _to_scale(value: Any, low: int, high: int) -> int | None:
    number = _to_float(value, low, high)
    return int(round(number)) if number is not None else None


def _parse_day(value: Any) -> date | None:
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def normalize_sport(activity_type: str | None) -> str:
    if activity_type in CYCLING_TYPES:
        return "cycling"
    if activity_type in RUNNING_TYPES:
        return "running"
    return "other"


def _eftp_from_sport_info(sport_info: Any, sport: str) -> float | None:
    if not isinstance(sport_info, list):
        return None
    wanted = CYCLING_TYPES if sport == "cycling" else RUNNING_TYPES
    for entry in sport_info:
        if isinstance(entry, dict) and entry.get("type") in wanted:
            return _to_float(entry.get("eftp"), minimum=1)
    return None


def parse_wellness(rows: list[dict[str, Any]], sport: str = "cycling") -> tuple[list[WellnessRecord], list[FitnessPoint]]:
    """
    Convert intervals.icu wellness rows into wellness records and fitness points.

    Rows with an unparseable date are skipped. Both lists are newest first.
    """
    records: list[WellnessRecord] = []
    points: list[FitnessPoint] = []

    for row in rows:
        day = _parse_day(row.get("id") or row.get("date"))
        if day is None:
            continue

        sleep_secs = _to_float(row.get("sleepSecs"), minimum=0)
        try:
            records.append(
                WellnessRecord(
                    date=day,
                    sleep_hours=round(sleep_secs / 3600, 2) if sleep_secs else None,
                    sleep_quality=_to_scale(row.get("sleepQuality"), 1, 5),
                    resting_hr=_to_float(row.get("restingHR"), minimum=1),
                    hrv=_to_float(row.get("hrv"), minimum=1),
                    recovery_score=_to_float(row.get("readiness"), 0, 100),
                    soreness=_to_scale(row.get("soreness"), 1, 5),
                    fatigue=_to_scale(row.get("fatigue"), 1, 5),
                    stress=_to_scale(row.get("stress"), 1, 5),
                    mood=_to_scale(row.get("mood"), 1, 5),
                )
            )
        except ValidationError:
            logger.debug("Skipping malformed wellness row for %s", day, exc_info=True)

        points.append(
            FitnessPoint(
                date=day,
                ctl=_to_float(row.get("ctl"), minimum=0),
                atl=_to_float(row.get("atl"), minimum=0),
                ramp_rate=_to_float(row.get("rampRate")),
                eftp=_eftp_from_sport_info(row.get("sportInfo"), sport),
            )
        )

    records.sort(key=lambda record: record.date, reverse=True)
    points.sort(key=lambda point: point.date, reverse=True)
    return records, points


def parse_activities(rows: list[dict[str, Any]]) -> list[ActivityRecord]:
    """Convert activity rows to records, newest first."""

    activities: list[ActivityRecord] = []
    for row in rows:
        day = _parse_day(row.get("start_date_local"))
        if day is None:
            continue
        name = str(row.get("name") or "")
        rpe = row.get("icu_rpe", row.get("perceived_exertion"))
        try:
            activities.append(
                ActivityRecord(
                    id=str(row.get("id", "")),
                    date=day,
                    sport=normalize_sport(row.get("type")),
                    name=name,
                    training_load=_to_float(row.get("icu_training_load"), minimum=0),
                    ftp=_to_float(row.get("icu_ftp"), minimum=1),
                    rpe=_to_scale(rpe, 1, 10),
                    feel=_to_scale(row.get("feel"), 1, 5),
                    is_threshold_test=bool(_THRESHOLD_TEST_PATTERN.search(name)),
                )
            )
        except ValidationError:
            logger.debug("Skipping malformed activity row %s", row.get("id"), exc_info=True)

    activities.sort(key=lambda activity: activity.date, reverse=True)
    return activities


def parse_events(rows: list[dict[str, Any]]) -> list[CalendarEvent]:
    """Convert calendar rows to events, soonest first."""

    events: list[CalendarEvent] = []
    for row in rows:
        day = _parse_day(row.get("start_date_local"))
        if day is None:
            continue
        raw_category = str(row.get("category") or "").upper()
        try:
            category = EventCategory(raw_category)
        except ValueError:
            category = EventCategory.OTHER
        events.append(
            CalendarEvent(
                id=str(row.get("id", "")),
                date=day,
                category=category,
                name=str(row.get("name") or ""),
                description=row.get("description") if isinstance(row.get("description"), str) else None,
            )
        )

    events.sort(key=lambda event: event.date)
    return events
