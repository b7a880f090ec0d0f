"""Terminal decision: which workout to do today."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from app.models.schemas import (
    AdaptiveAdjustment,
    Advisories,
    CalendarEvent,
    EventCategory,
    FitnessMetrics,
    Phase,
    RecoveryStatus,
    TrainingPhase,
    WellnessSummary,
    WorkoutDecision,
)
from app.models.workout_library import catalog_for, easiest_workout, find_workout
from app.services.advisor import CoachAdvisor, resolve
from app.services.phase_calculator import parse_phase


logger = logging.getLogger(__name__)

DEFAULT_CAP = 3
REDUCED_CAP = 2
FATIGUED_TSB = -15.0
ADJUSTMENT_CAP_PCT = -10

PHASE_WORKOUTS = {
    "cycling": {Phase.BASE: "Tempo", Phase.BUILD: "SweetSpot"},
    "running": {Phase.BASE: "Run_Easy", Phase.BUILD: "Run_Tempo"},
}
DEFAULT_PHASE_WORKOUT = {"cycling": "Endurance_Tempo", "running": "Run_Steady"}


@dataclass(frozen=True)
class WorkoutContext:
    """Everything the selector looks at, assembled by the pipeline."""

    target_date: date
    sport: str
    phase: TrainingPhase
    fitness: FitnessMetrics
    wellness: WellnessSummary
    event_tomorrow: CalendarEvent | None = None
    event_yesterday: CalendarEvent | None = None
    recent_types: tuple[str, ...] = ()
    adjustment: AdaptiveAdjustment | None = None
    advisories: Advisories | None = None
    duration_min: int = 60
    duration_max: int = 90
    warnings: tuple[str, ...] = ()


def intensity_cap(context: WorkoutContext) -> tuple[int, list[str]]:
    """Rule-based maximum intensity and the reasons that lowered it."""

    cap = DEFAULT_CAP
    reasons: list[str] = []

    event = context.event_tomorrow
    if event is not None:
        event_cap = DEFAULT_CAP if event.category == EventCategory.RACE_C else REDUCED_CAP
        if event_cap < cap:
            cap = event_cap
            reasons.append(f"{event.category.value} '{event.name}' tomorrow")

    if context.fitness.tsb < FATIGUED_TSB:
        cap = min(cap, REDUCED_CAP)
        reasons.append(f"TSB {context.fitness.tsb}")

    if context.wellness.recovery_status == RecoveryStatus.RED:
        cap = min(cap, REDUCED_CAP)
        reasons.append("red recovery")

    yesterday = context.event_yesterday
    if yesterday is not None and yesterday.category in (EventCategory.RACE_A, EventCategory.RACE_B):
        cap = min(cap, REDUCED_CAP)
        reasons.append(f"raced '{yesterday.name}' yesterday")

    if context.adjustment is not None and context.adjustment.combined_adjustment_pct <= ADJUSTMENT_CAP_PCT:
        cap = min(cap, REDUCED_CAP)
        reasons.append(f"adaptive adjustment {context.adjustment.combined_adjustment_pct}%")

    return cap, reasons


def fallback_workout(context: WorkoutContext) -> WorkoutDecision:
    """Conservative rule-based choice; never consults the advisor."""

    cap, reasons = intensity_cap(context)

    if cap <= REDUCED_CAP:
        entry = easiest_workout(context.sport)
        reason = f"Easy day: {', '.join(reasons)}"
    else:
        phase = parse_phase(context.phase.phase) or context.phase.deterministic_phase
        name = PHASE_WORKOUTS.get(context.sport, PHASE_WORKOUTS["cycling"]).get(
            phase,
            DEFAULT_PHASE_WORKOUT.get(context.sport, DEFAULT_PHASE_WORKOUT["cycling"]),
        )
        entry = find_workout(context.sport, name) or easiest_workout(context.sport)
        reason = f"{phase.value} phase default: {entry['description']}"

    return WorkoutDecision(
        workout_type=entry["name"],
        max_intensity=cap,
        reason=reason,
    )


def _catalog_text(sport: str) -> str:
    return "\n".join(
        f"- {entry['name']} (intensity {entry['intensity']}, {entry['zone']}): {entry['description']}"
        for entry in catalog_for(sport)
    )


def _describe_event(event: CalendarEvent | None) -> str:
    if event is None:
        return "none"
    return f"{event.name} ({event.category.value})"


def _prompt_fields(context: WorkoutContext, safety_cap: int) -> dict[str, Any]:
    wellness = context.wellness
    adjustment = context.adjustment
    warnings = list(context.warnings)
    if context.advisories is not None:
        warnings.extend(
            f"{name}: {advisory.severity.value}" for name, advisory in context.advisories.active()
        )
    return {
        "target_date": context.target_date.isoformat(),
        "sport": context.sport,
        "phase": context.phase.phase,
        "focus": context.phase.focus,
        "ctl": round(context.fitness.ctl, 1),
        "atl": round(context.fitness.atl, 1),
        "tsb": context.fitness.tsb,
        "recovery_status": wellness.recovery_status.value,
        "recovery_score": wellness.recovery_score if wellness.recovery_score is not None else "n/a",
        "hrv": wellness.hrv if wellness.hrv is not None else "n/a",
        "sleep_hours": wellness.sleep_hours if wellness.sleep_hours is not None else "n/a",
        "sleep_status": wellness.sleep_status.value if wellness.sleep_status else "unknown",
        "event_tomorrow": _describe_event(context.event_tomorrow),
        "event_yesterday": _describe_event(context.event_yesterday),
        "recent_types": ", ".join(context.recent_types) or "none",
        "adjustment": adjustment.combined_adjustment_pct if adjustment else 0,
        "adjustment_reason": adjustment.gap.reasoning if adjustment else "no data",
        "warnings": "; ".join(warnings) or "none",
        "duration_min": context.duration_min,
        "duration_max": context.duration_max,
        "safety_cap": safety_cap,
        "catalog": _catalog_text(context.sport),
    }


def _apply_advisor_reply(context: WorkoutContext, reply: dict[str, Any]) -> WorkoutDecision:
    should_train = reply.get("shouldTrain")
    if not isinstance(should_train, bool):
        raise ValueError("shouldTrain must be a boolean")

    reason = reply.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        raise ValueError("reason missing")

    if not should_train:
        return WorkoutDecision(
            workout_type=easiest_workout(context.sport)["name"],
            max_intensity=1,
            is_rest_day=True,
            reason=reason.strip(),
            advisor_enhanced=True,
        )

    entry = find_workout(context.sport, reply.get("workoutType"))
    if entry is None:
        raise ValueError(f"workout type {reply.get('workoutType')!r} not in the {context.sport} catalog")

    intensity = reply.get("intensity")
    if isinstance(intensity, bool) or not isinstance(intensity, int) or not 1 <= intensity <= 5:
        raise ValueError(f"intensity {intensity!r} outside 1-5")

    return WorkoutDecision(
        workout_type=entry["name"],
        max_intensity=intensity,
        reason=reason.strip(),
        advisor_enhanced=True,
    )


def select_workout(context: WorkoutContext, advisor: CoachAdvisor | None = None) -> WorkoutDecision:
    """
    Pick today's workout.

    The advisor's reply is used only when every field validates; anything
    else falls back to the rule-based choice in full.
    """

    def primary(baseline: WorkoutDecision) -> WorkoutDecision | None:
        if advisor is None or not advisor.enabled:
            return None
        prompt = advisor.render("workout", **_prompt_fields(context, baseline.max_intensity))
        reply = advisor.ask_json("workout", prompt)
        if reply is None:
            return None
        return _apply_advisor_reply(context, reply)

    decision = resolve("workout", lambda: fallback_workout(context), primary).value
    logger.info(
        "Workout %s | %s intensity<=%d rest=%s advisor=%s",
        context.target_date.isoformat(),
        decision.workout_type,
        decision.max_intensity,
        decision.is_rest_day,
        decision.advisor_enhanced,
    )
    return decision
