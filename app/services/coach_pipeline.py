"""End-to-end daily coaching run: fetch, analyze, decide."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable

from app.config import Settings, get_settings
from app.models.schemas import (
    ActivityRecord,
    CalendarEvent,
    DailyCoachReport,
    EventCategory,
    FitnessPoint,
    WellnessRecord,
)
from app.models.workout_library import match_workout
from app.services.adaptive_feedback import (
    analyze_feedback,
    classify_training_gap,
    combine_adjustments,
    days_since_last_activity,
)
from app.services.advisor import CoachAdvisor
from app.services.alert_detector import AlertDetector
from app.services.fitness_trajectory import analyze_trajectory, current_metrics
from app.services.garmin_service import GarminService
from app.services.intervals_service import (
    FetchResult,
    IntervalsService,
    UpstreamUnavailableError,
    parse_activities,
    parse_events,
    parse_wellness,
)
from app.services.load_advisor import recommend_load
from app.services.phase_calculator import calculate_training_phase, parse_phase, weeks_until
from app.services.wellness_aggregator import merge_wearable_record, summarize_wellness
from app.services.workout_selector import WorkoutContext, select_workout


logger = logging.getLogger(__name__)

WELLNESS_DAYS = 30
ACTIVITY_DAYS = 90
EVENT_DAYS_AHEAD = 365
RECENT_TYPE_COUNT = 5
# Priority order for goal and adjacent-day race selection
RACE_PRIORITY = (EventCategory.RACE_A, EventCategory.RACE_B, EventCategory.RACE_C)


@dataclass
class RunCache:
    """
    Memoizes upstream fetches for one pipeline invocation.

    Entries expire after ``ttl_seconds``; ``invalidate`` drops one key or all.
    """

    ttl_seconds: float = 900.0
    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, tuple[float, Any]] = field(default_factory=dict, init=False, repr=False)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self.clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: Any) -> None:
        self._entries[key] = (self.clock(), value)

    def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Any],
        cacheable: Callable[[Any], bool] = lambda value: True,
    ) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = fetch()
        if cacheable(value):
            self.put(key, value)
        return value

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)


def select_goal_event(events: list[CalendarEvent], today: date) -> CalendarEvent | None:
    """Next A race on or after today, else the next B race."""

    upcoming = sorted((e for e in events if e.date >= today), key=lambda event: event.date)
    for category in (EventCategory.RACE_A, EventCategory.RACE_B):
        match = next((e for e in upcoming if e.category == category), None)
        if match is not None:
            return match
    return None


def race_on(events: list[CalendarEvent], day: date) -> CalendarEvent | None:
    """Highest-priority race on ``day``."""

    races = [e for e in events if e.date == day and e.category.is_race]
    if not races:
        return None
    return min(races, key=lambda event: RACE_PRIORITY.index(event.category))


class CoachPipeline:
    """Runs every decision component in order for one target date."""

    def __init__(
        self,
        settings: Settings | None = None,
        intervals: IntervalsService | None = None,
        wearable: GarminService | None = None,
        advisor: CoachAdvisor | None = None,
        detector: AlertDetector | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.intervals = intervals or IntervalsService(self.settings)
        if wearable is None and self.settings.wearable_configured:
            wearable = GarminService(self.settings)
        self.wearable = wearable
        self.advisor = advisor or CoachAdvisor(self.settings)
        self.detector = detector or AlertDetector()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _fetch(
        self,
        cache: RunCache,
        endpoint: str,
        oldest: date,
        newest: date,
    ) -> FetchResult:
        fetcher = getattr(self.intervals, f"fetch_{endpoint}")
        return cache.get_or_fetch(
            f"{endpoint}:{oldest.isoformat()}:{newest.isoformat()}",
            lambda: fetcher(oldest, newest),
            cacheable=lambda result: result["success"],
        )

    def _wearable_record(self, cache: RunCache, target_date: date) -> WellnessRecord | None:
        if self.wearable is None:
            return None
        return cache.get_or_fetch(
            f"wearable:{target_date.isoformat()}",
            lambda: self.wearable.fetch_recovery_record(target_date),
            cacheable=lambda record: record is not None,
        )

    def _load_wellness(
        self,
        cache: RunCache,
        target_date: date,
    ) -> tuple[list[WellnessRecord], list[FitnessPoint]]:
        result = self._fetch(cache, "wellness", target_date - timedelta(days=WELLNESS_DAYS - 1), target_date)
        if not result["success"]:
            raise UpstreamUnavailableError(f"Fitness service unavailable: {result['error']}")
        records, points = parse_wellness(result["data"], self.settings.sport)
        records = merge_wearable_record(records, self._wearable_record(cache, target_date))
        return records, points

    def _load_activities(self, cache: RunCache, target_date: date) -> list[ActivityRecord]:
        result = self._fetch(cache, "activities", target_date - timedelta(days=ACTIVITY_DAYS - 1), target_date)
        return parse_activities(result["data"])

    def _load_events(self, cache: RunCache, target_date: date) -> list[CalendarEvent]:
        result = self._fetch(
            cache,
            "events",
            target_date - timedelta(days=1),
            target_date + timedelta(days=EVENT_DAYS_AHEAD),
        )
        return parse_events(result["data"])

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_recovery_data_ready(self, target_date: date, cache: RunCache | None = None) -> bool:
        """True once today's merged wellness record carries physiological data."""

        cache = cache or RunCache()
        try:
            records, _ = self._load_wellness(cache, target_date)
        except UpstreamUnavailableError:
            logger.warning("Readiness check for %s could not reach the fitness service", target_date)
            return False
        today = next((r for r in records if r.date == target_date), None)
        return bool(today and today.has_physiological_data)

    def run(self, target_date: date | None = None, cache: RunCache | None = None) -> DailyCoachReport:
        """
        Produce the daily report for ``target_date``.

        Raises:
            UpstreamUnavailableError: When the first fitness-service fetch fails
        """
        target_date = target_date or date.today()
        cache = cache or RunCache()
        sport = self.settings.sport
        logger.info("Coach run for %s (%s)", target_date.isoformat(), sport)

        records, points = self._load_wellness(cache, target_date)
        activities = self._load_activities(cache, target_date)
        events = self._load_events(cache, target_date)

        wellness = summarize_wellness(records, target_date)
        metrics = current_metrics(points)

        goal = select_goal_event(events, target_date)
        weeks_out = weeks_until(goal.date, target_date) if goal else None
        trajectory = analyze_trajectory(
            points,
            records,
            target_date,
            target_ftp=self.settings.target_ftp,
            weeks_out=weeks_out,
        )

        phase = calculate_training_phase(target_date, goal, trajectory, self.advisor)
        load = recommend_load(metrics, phase.phase, phase.weeks_out, self.advisor, target_date)

        advisories = self.detector.detect_all(
            target_date,
            activities,
            records,
            points,
            metrics,
            recovery_status=wellness.recovery_status,
            phase=parse_phase(phase.phase) or phase.deterministic_phase,
            weeks_out=phase.weeks_out,
            target_weekly_tss=(load.weekly_tss_min + load.weekly_tss_max) / 2,
            eftp=trajectory.current_eftp,
        )

        feedback = analyze_feedback(activities, target_date)
        gap = classify_training_gap(
            days_since_last_activity(activities, target_date, sport),
            wellness.recovery_status,
        )
        adjustment = combine_adjustments(feedback, gap)

        recent_types = tuple(
            entry["name"]
            for entry in (match_workout(sport, a.name) for a in activities if a.sport == sport and a.date < target_date)
            if entry is not None
        )[:RECENT_TYPE_COUNT]
        context = WorkoutContext(
            target_date=target_date,
            sport=sport,
            phase=phase,
            fitness=metrics,
            wellness=wellness,
            event_tomorrow=race_on(events, target_date + timedelta(days=1)),
            event_yesterday=race_on(events, target_date - timedelta(days=1)),
            recent_types=recent_types,
            adjustment=adjustment,
            advisories=advisories,
            duration_min=self.settings.workout_min_minutes,
            duration_max=self.settings.workout_max_minutes,
            warnings=tuple(load.warnings),
        )
        decision = select_workout(context, self.advisor)

        return DailyCoachReport(
            target_date=target_date,
            generated_at=datetime.now(),
            sport=sport,
            wellness=wellness,
            fitness=metrics,
            trajectory=trajectory,
            goal_event=goal,
            phase=phase,
            load=load,
            advisories=advisories,
            adaptive=adjustment,
            decision=decision,
        )
