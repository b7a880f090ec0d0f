"""Periodization phase state machine with optional advisor override."""
from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any

from app.models.schemas import (
    CalendarEvent,
    FitnessTrajectory,
    Phase,
    PhaseOverride,
    PhaseTransitionAdvice,
    TrainingPhase,
    TransitionAction,
    TrendLabel,
)
from app.services.advisor import CoachAdvisor, resolve


logger = logging.getLogger(__name__)

# (max weeks out, phase), checked top to bottom
PHASE_THRESHOLDS = (
    (1, Phase.RACE_WEEK),
    (3, Phase.TAPER),
    (6, Phase.SPECIALTY),
    (10, Phase.BUILD),
)

PHASE_FOCUS = {
    Phase.BASE: "Aerobic foundation: volume at endurance intensity, tempo as the hardest work.",
    Phase.BUILD: "Raise threshold: sweet spot and threshold intervals on top of the aerobic base.",
    Phase.SPECIALTY: "Race-specific intensity: VO2max and race-pace efforts with full recovery.",
    Phase.TAPER: "Shed fatigue: cut volume, keep short sharp efforts to stay primed.",
    Phase.RACE_WEEK: "Arrive fresh: openers only, rest and logistics.",
}

BASE_TO_BUILD_WEEKS = 12
BUILD_TO_SPECIALTY_WEEKS = 8
SPECIALTY_TO_TAPER_WEEKS = 4
DELAY_BUILD_WEEKS = 8

_PHASE_LOOKUP = {phase.value.lower(): phase for phase in Phase}
_CONFIDENCE_LEVELS = {"high", "medium", "low"}


def weeks_until(goal_date: date, today: date) -> int:
    """Signed whole weeks to the goal, rounded away from zero."""

    days = (goal_date - today).days
    if days >= 0:
        return math.ceil(days / 7)
    return -math.ceil(-days / 7)


def phase_for_weeks_out(weeks_out: int | None) -> Phase:
    """Calendar-only phase; Base when there is no goal or it has passed."""

    if weeks_out is None or weeks_out < 0:
        return Phase.BASE
    for max_weeks, phase in PHASE_THRESHOLDS:
        if weeks_out <= max_weeks:
            return phase
    return Phase.BASE


def parse_phase(name: Any) -> Phase | None:
    if not isinstance(name, str):
        return None
    return _PHASE_LOOKUP.get(name.strip().lower())


def check_phase_transition_readiness(
    phase: Phase,
    weeks_out: int | None,
    trajectory: FitnessTrajectory,
) -> PhaseTransitionAdvice:
    """
    Recommend an early or late transition from trajectory readiness.

    Only ever advisory: the calendar phase is not moved by this result alone.
    """

    def advice(action: TransitionAction, recommended: Phase, reason: str) -> PhaseTransitionAdvice:
        return PhaseTransitionAdvice(
            current_phase=phase,
            recommended_phase=recommended,
            action=action,
            reason=reason,
        )

    if weeks_out is None or phase in (Phase.TAPER, Phase.RACE_WEEK):
        return advice(TransitionAction.HOLD, phase, "Stay on the calendar plan")

    if phase == Phase.BASE:
        if trajectory.base_complete and weeks_out <= BASE_TO_BUILD_WEEKS:
            return advice(
                TransitionAction.ACCELERATE,
                Phase.BUILD,
                f"Aerobic base is established (CTL {trajectory.current_ctl}) with {weeks_out} weeks to go",
            )

    elif phase == Phase.BUILD:
        if trajectory.recovery_trend.sustainable is False and trajectory.ctl_trend == TrendLabel.DECLINING:
            return advice(
                TransitionAction.REGRESS,
                Phase.BASE,
                "Recovery is not keeping up and fitness is declining",
            )
        if trajectory.ready_for_specialty and weeks_out <= BUILD_TO_SPECIALTY_WEEKS:
            return advice(
                TransitionAction.ACCELERATE,
                Phase.SPECIALTY,
                "Threshold work is absorbed and recovery is sustainable",
            )
        if not trajectory.base_complete and weeks_out > DELAY_BUILD_WEEKS:
            return advice(
                TransitionAction.DELAY,
                Phase.BASE,
                "Base is not complete yet; extend aerobic work before building",
            )

    elif phase == Phase.SPECIALTY:
        if trajectory.ready_for_taper and weeks_out <= SPECIALTY_TO_TAPER_WEEKS:
            return advice(
                TransitionAction.ACCELERATE,
                Phase.TAPER,
                "Target fitness reached; an early taper will protect it",
            )

    return advice(TransitionAction.HOLD, phase, "Trajectory supports the calendar phase")


def deterministic_phase(
    target_date: date,
    goal_event: CalendarEvent | None,
    trajectory: FitnessTrajectory,
) -> TrainingPhase:
    """Rule-based phase used both on its own and as the advisor's baseline."""

    weeks_out = weeks_until(goal_event.date, target_date) if goal_event else None
    phase = phase_for_weeks_out(weeks_out)
    transition = check_phase_transition_readiness(phase, weeks_out, trajectory)

    reasoning: list[str] = []
    if goal_event is None:
        reasoning.append("No A or B race on the calendar; defaulting to Base")
    elif weeks_out is not None and weeks_out < 0:
        reasoning.append(f"Goal '{goal_event.name}' has passed; defaulting to Base")
    else:
        reasoning.append(f"{weeks_out} weeks to '{goal_event.name}' on {goal_event.date.isoformat()}")
    reasoning.append(
        f"CTL {trajectory.current_ctl if trajectory.current_ctl is not None else 'n/a'} "
        f"({trajectory.ctl_trend.value}, {trajectory.consistency_pct:.0f}% consistent weeks)"
    )

    adjustments: list[str] = []
    if transition.action != TransitionAction.HOLD:
        adjustments.append(
            f"{transition.action.value}: {transition.current_phase.value} -> "
            f"{transition.recommended_phase.value} ({transition.reason})"
        )

    if trajectory.insufficient_data:
        confidence = "low"
    elif weeks_out is None:
        confidence = "medium"
    else:
        confidence = "high"

    return TrainingPhase(
        phase=phase.value,
        deterministic_phase=phase,
        weeks_out=weeks_out,
        focus=PHASE_FOCUS[phase],
        reasoning=reasoning,
        adjustments=adjustments,
        confidence_level=confidence,
        transition=transition,
    )


def _prompt_fields(
    target_date: date,
    goal_event: CalendarEvent | None,
    trajectory: FitnessTrajectory,
    baseline: TrainingPhase,
) -> dict[str, Any]:
    transition = baseline.transition
    recovery = trajectory.recovery_trend
    return {
        "target_date": target_date.isoformat(),
        "goal": f"{goal_event.name} ({goal_event.category.value}, {goal_event.date.isoformat()})" if goal_event else "none",
        "weeks_out": baseline.weeks_out if baseline.weeks_out is not None else "n/a",
        "deterministic_phase": baseline.deterministic_phase.value,
        "deterministic_focus": baseline.focus,
        "transition": f"{transition.action.value} - {transition.reason}" if transition else "hold",
        "ctl": trajectory.current_ctl,
        "ctl_deltas": trajectory.ctl_deltas,
        "ctl_trend": trajectory.ctl_trend.value,
        "consistency": f"{trajectory.consistency_pct:.0f}",
        "eftp": trajectory.current_eftp,
        "eftp_trend": trajectory.eftp_trend.value,
        "eftp_on_track": trajectory.eftp_on_track,
        "recovery_trend": f"{recovery.trend.value} via {recovery.source}",
        "recovery_sustainable": recovery.sustainable,
        "base_complete": trajectory.base_complete,
        "build_complete": trajectory.build_complete,
        "ready_for_specialty": trajectory.ready_for_specialty,
        "ready_for_taper": trajectory.ready_for_taper,
    }


def _apply_advisor_reply(baseline: TrainingPhase, reply: dict[str, Any]) -> TrainingPhase:
    phase = parse_phase(reply.get("phaseName"))
    override_flag = reply.get("phaseOverride")
    reasoning = reply.get("reasoning")

    if phase is None:
        raise ValueError(f"unknown phase {reply.get('phaseName')!r}")
    if not isinstance(override_flag, bool):
        raise ValueError("phaseOverride must be a boolean")
    if not isinstance(reasoning, str) or not reasoning.strip():
        raise ValueError("reasoning missing")

    confidence = str(reply.get("confidence", "medium")).lower()
    if confidence not in _CONFIDENCE_LEVELS:
        confidence = "medium"

    focus = reply.get("focus")
    if not isinstance(focus, str) or not focus.strip():
        focus = PHASE_FOCUS[phase]

    if not override_flag or phase == baseline.deterministic_phase:
        return baseline.model_copy(
            update={
                "reasoning": [*baseline.reasoning, f"Advisor agrees: {reasoning.strip()}"],
                "confidence_level": confidence,
                "advisor_enhanced": True,
            }
        )

    override = PhaseOverride(phase=phase.value, reasoning=reasoning.strip(), confidence=confidence)
    return baseline.model_copy(
        update={
            "phase": phase.value,
            "focus": focus.strip(),
            "adjustments": [
                *baseline.adjustments,
                f"Advisor override: {baseline.deterministic_phase.value} -> {phase.value}",
            ],
            "confidence_level": confidence,
            "advisor_enhanced": True,
            "override": override,
        }
    )


def calculate_training_phase(
    target_date: date,
    goal_event: CalendarEvent | None,
    trajectory: FitnessTrajectory,
    advisor: CoachAdvisor | None = None,
) -> TrainingPhase:
    """
    Determine today's training phase.

    The deterministic phase is always computed first and retained; the
    advisor may only annotate it or override the displayed phase and focus.
    """

    def fallback() -> TrainingPhase:
        return deterministic_phase(target_date, goal_event, trajectory)

    def primary(baseline: TrainingPhase) -> TrainingPhase | None:
        if advisor is None or not advisor.enabled:
            return None
        prompt = advisor.render("phase", **_prompt_fields(target_date, goal_event, trajectory, baseline))
        reply = advisor.ask_json("phase", prompt)
        if reply is None:
            return None
        return _apply_advisor_reply(baseline, reply)

    resolution = resolve("phase", fallback, primary)
    result = resolution.value
    logger.info(
        "Phase %s | deterministic=%s displayed=%s weeks_out=%s advisor=%s",
        target_date.isoformat(),
        result.deterministic_phase.value,
        result.phase,
        result.weeks_out,
        result.advisor_enhanced,
    )
    return result
