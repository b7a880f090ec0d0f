"""End-to-end tests for the daily coaching pipeline."""
from __future__ import annotations

from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from app.config import get_settings
from app.models.schemas import CalendarEvent, EventCategory, Phase, WellnessRecord
from app.services.coach_pipeline import CoachPipeline, RunCache, race_on, select_goal_event
from app.services.intervals_service import UpstreamUnavailableError


def _pipeline(intervals, advisor, wearable=None) -> CoachPipeline:
    return CoachPipeline(settings=get_settings(), intervals=intervals, wearable=wearable, advisor=advisor)


def test_run_produces_full_report(target_date, synthetic_intervals, disabled_advisor):
    report = _pipeline(synthetic_intervals(), disabled_advisor).run(target_date)

    assert report.target_date == target_date
    assert report.fitness.ctl == 55.0
    assert report.fitness.tsb == -4.0
    assert report.goal_event is not None
    assert report.goal_event.name == "Winter Classic"
    assert report.phase.weeks_out == 13
    assert report.phase.deterministic_phase == Phase.BASE
    assert report.wellness.data_date == target_date
    assert report.adaptive.gap.interpretation == "normal"
    assert report.decision.workout_type == "Tempo"
    assert report.decision.max_intensity == 3
    assert report.decision.advisor_enhanced is False


def test_same_inputs_give_same_decision(target_date, synthetic_intervals, disabled_advisor):
    pipeline = _pipeline(synthetic_intervals(), disabled_advisor)

    first = pipeline.run(target_date, RunCache())
    second = pipeline.run(target_date, RunCache())

    assert first.model_dump(exclude={"generated_at"}) == second.model_dump(exclude={"generated_at"})


def test_advisor_failure_still_yields_valid_decision(target_date, synthetic_intervals, advisor_with_reply):
    report = _pipeline(synthetic_intervals(), advisor_with_reply("not json")).run(target_date)

    assert report.decision.workout_type == "Tempo"
    assert 1 <= report.decision.max_intensity <= 5
    assert report.phase.advisor_enhanced is False
    assert report.load.advisor_enhanced is False



def test_advisor_sees_recent_catalog_workouts(target_date, synthetic_intervals, advisor_with_reply):
    advisor = advisor_with_reply("not json")

    _pipeline(synthetic_intervals(), advisor).run(target_date)

    prompts = [request["messages"][0]["content"] for request in advisor.client.messages.requests]
    expected = "Endurance_Z2, SweetSpot, Endurance_Z2, SweetSpot, Endurance_Z2"
    assert any(f"RECENT WORKOUT TYPES (newest first): {expected}" in prompt for prompt in prompts)

def test_shared_cache_avoids_refetching(target_date, synthetic_intervals, disabled_advisor):
    intervals = synthetic_intervals()
    pipeline = _pipeline(intervals, disabled_advisor)
    cache = RunCache()

    pipeline.run(target_date, cache)
    pipeline.run(target_date, cache)

    assert sorted(intervals.calls) == ["activities", "events", "wellness"]


def test_wellness_outage_aborts_run(target_date, synthetic_intervals, disabled_advisor):
    pipeline = _pipeline(synthetic_intervals(wellness_error="timeout"), disabled_advisor)

    with pytest.raises(UpstreamUnavailableError):
        pipeline.run(target_date)
    assert pipeline.is_recovery_data_ready(target_date) is False


def test_readiness_waits_for_todays_data(target_date, synthetic_intervals, disabled_advisor):
    pipeline = _pipeline(synthetic_intervals(today_has_data=False), disabled_advisor)

    assert pipeline.is_recovery_data_ready(target_date) is False


def test_wearable_record_fills_today(target_date, synthetic_intervals, disabled_advisor):
    wearable = SimpleNamespace(fetch_recovery_record=lambda day: WellnessRecord(date=day, hrv=65.0, sleep_hours=7.9))
    pipeline = _pipeline(synthetic_intervals(today_has_data=False), disabled_advisor, wearable=wearable)

    assert pipeline.is_recovery_data_ready(target_date) is True
    report = pipeline.run(target_date)
    assert report.wellness.data_date == target_date
    assert report.wellness.hrv == 65.0


def test_run_cache_expires_and_invalidates():
    now = {"t": 0.0}
    cache = RunCache(ttl_seconds=60, clock=lambda: now["t"])
    calls = []

    def fetch():
        calls.append(1)
        return {"success": True}

    cache.get_or_fetch("k", fetch)
    cache.get_or_fetch("k", fetch)
    assert len(calls) == 1

    now["t"] = 61.0
    cache.get_or_fetch("k", fetch)
    assert len(calls) == 2

    cache.invalidate("k")
    cache.get_or_fetch("k", fetch)
    assert len(calls) == 3


def test_failed_fetch_is_not_cached():
    cache = RunCache()

    cache.get_or_fetch("k", lambda: {"success": False}, cacheable=lambda value: value["success"])

    assert cache.get("k") is None


def _event(day: date, category: EventCategory, name: str) -> CalendarEvent:
    return CalendarEvent(id=name, date=day, category=category, name=name)


def test_goal_prefers_a_race_over_nearer_b_race(target_date):
    events = [
        _event(target_date + timedelta(days=20), EventCategory.RACE_B, "B"),
        _event(target_date + timedelta(days=90), EventCategory.RACE_A, "A"),
        _event(target_date - timedelta(days=3), EventCategory.RACE_A, "past"),
    ]

    assert select_goal_event(events, target_date).name == "A"
    assert select_goal_event(events[:1], target_date).name == "B"
    assert select_goal_event([], target_date) is None


def test_race_on_picks_highest_priority(target_date):
    tomorrow = target_date + timedelta(days=1)
    events = [
        _event(tomorrow, EventCategory.RACE_C, "C"),
        _event(tomorrow, EventCategory.RACE_A, "A"),
        _event(tomorrow, EventCategory.WORKOUT, "W"),
    ]

    assert race_on(events, tomorrow).name == "A"
    assert race_on(events[2:], tomorrow) is None
