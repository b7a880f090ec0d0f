"""Weekly and daily training-stress targets derived from phase and load."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any

from app.models.schemas import FitnessMetrics, LoadAdvice
from app.services.advisor import CoachAdvisor, resolve


logger = logging.getLogger(__name__)

DEFAULT_WEEKS_OUT = 12
MAX_CTL_GAIN = 40.0
CTL_GAIN_PER_WEEK = 5.0
CTL_GAIN_FRACTION = 0.25
MIN_CTL_GAIN = 10.0
RANGE_SPREAD = 0.10
RECOVER_TSB = -25.0
RECOVER_REDUCTION_PCT = 40

# (max ramp, label, warn)
RAMP_BANDS = (
    (3.0, "Maintain", False),
    (5.0, "Build", False),
    (7.0, "Aggressive", True),
)
RAMP_LABELS = {"Maintain", "Build", "Aggressive", "Caution", "Recover"}

PHASE_REDUCTIONS = {
    "taper": 50,
    "race week": 50,
    "peak": 30,
    "transition": 60,
}


def classify_ramp(ramp: float) -> tuple[str, bool]:
    for max_ramp, label, warn in RAMP_BANDS:
        if ramp <= max_ramp:
            return label, warn
    return "Caution", True


def fallback_load_advice(
    metrics: FitnessMetrics,
    phase_label: str,
    weeks_out: int | None,
) -> LoadAdvice:
    """
    Rule-based load targets.

    Target CTL grows by the smallest of five points per week, 40 points or a
    quarter of current CTL (at least 10 points when more than three weeks
    remain). Weekly TSS is the daily load that sustains the required ramp.
    """
    ctl = metrics.ctl
    effective_weeks = DEFAULT_WEEKS_OUT if weeks_out is None or weeks_out < 0 else weeks_out

    gain = min(effective_weeks * CTL_GAIN_PER_WEEK, MAX_CTL_GAIN, ctl * CTL_GAIN_FRACTION)
    if effective_weeks > 3:
        gain = max(gain, MIN_CTL_GAIN)
    target_ctl = ctl + gain
    required_ramp = gain / max(effective_weeks - 2, 1)

    label, warn = classify_ramp(required_ramp)
    warnings: list[str] = []
    if warn:
        warnings.append(f"Required ramp of {required_ramp:.1f} CTL/week is {label.lower()}")

    reduction = PHASE_REDUCTIONS.get(phase_label.strip().lower(), 0)
    if metrics.tsb < RECOVER_TSB:
        reduction = RECOVER_REDUCTION_PCT
        label = "Recover"
        warnings.append(f"TSB {metrics.tsb} is below {RECOVER_TSB:.0f}; recovery load forced")

    weekly = 7 * (ctl + 6 * required_ramp) * (1 - reduction / 100)
    daily = weekly / 7

    reasoning = f"CTL {ctl:.0f} -> {target_ctl:.0f} over {effective_weeks} weeks ({required_ramp:.1f}/week, {label})"
    if reduction:
        reasoning += f"; {reduction}% reduction for {'fatigue' if label == 'Recover' else phase_label}"

    return LoadAdvice(
        current_ctl=round(ctl, 1),
        target_ctl=round(target_ctl, 1),
        weeks_out=weeks_out,
        required_weekly_ramp=round(required_ramp, 2),
        ramp_label=label,
        weekly_tss_min=round(weekly * (1 - RANGE_SPREAD)),
        weekly_tss_max=round(weekly * (1 + RANGE_SPREAD)),
        daily_tss_min=round(daily * (1 - RANGE_SPREAD)),
        daily_tss_max=round(daily * (1 + RANGE_SPREAD)),
        reduction_pct=reduction,
        warnings=warnings,
        reasoning=reasoning,
    )


def _positive_range(reply: dict[str, Any], low_key: str, high_key: str) -> tuple[float, float]:
    low, high = reply.get(low_key), reply.get(high_key)
    for value in (low, high):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{low_key}/{high_key} must be numeric")
    if low <= 0 or high <= 0 or low > high:
        raise ValueError(f"invalid range {low_key}={low} {high_key}={high}")
    return float(low), float(high)


def _apply_advisor_reply(baseline: LoadAdvice, reply: dict[str, Any]) -> LoadAdvice:
    weekly_min, weekly_max = _positive_range(reply, "weeklyTssMin", "weeklyTssMax")
    daily_min, daily_max = _positive_range(reply, "dailyTssMin", "dailyTssMax")

    label = reply.get("rampLabel")
    if label not in RAMP_LABELS:
        label = baseline.ramp_label
    reasoning = reply.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning.strip():
        reasoning = baseline.reasoning

    return baseline.model_copy(
        update={
            "weekly_tss_min": round(weekly_min),
            "weekly_tss_max": round(weekly_max),
            "daily_tss_min": round(daily_min),
            "daily_tss_max": round(daily_max),
            "ramp_label": label,
            "reasoning": reasoning.strip(),
            "advisor_enhanced": True,
        }
    )


def recommend_load(
    metrics: FitnessMetrics,
    phase_label: str,
    weeks_out: int | None,
    advisor: CoachAdvisor | None = None,
    target_date: date | None = None,
) -> LoadAdvice:
    """Advisor-first load recommendation; deep fatigue skips the advisor."""

    def fallback() -> LoadAdvice:
        return fallback_load_advice(metrics, phase_label, weeks_out)

    def primary(baseline: LoadAdvice) -> LoadAdvice | None:
        if advisor is None or not advisor.enabled:
            return None
        if metrics.tsb < RECOVER_TSB:
            logger.info("TSB %.1f below %.0f - keeping forced recovery load", metrics.tsb, RECOVER_TSB)
            return None
        prompt = advisor.render(
            "load",
            target_date=(target_date or date.today()).isoformat(),
            phase=phase_label,
            weeks_out=weeks_out if weeks_out is not None else "n/a",
            ctl=round(metrics.ctl, 1),
            atl=round(metrics.atl, 1),
            tsb=metrics.tsb,
            ramp_rate=metrics.ramp_rate if metrics.ramp_rate is not None else "n/a",
            target_ctl=baseline.target_ctl,
            required_ramp=baseline.required_weekly_ramp,
            ramp_label=baseline.ramp_label,
            weekly_min=baseline.weekly_tss_min,
            weekly_max=baseline.weekly_tss_max,
            daily_min=baseline.daily_tss_min,
            daily_max=baseline.daily_tss_max,
        )
        reply = advisor.ask_json("load", prompt)
        if reply is None:
            return None
        return _apply_advisor_reply(baseline, reply)

    return resolve("load", fallback, primary).value
