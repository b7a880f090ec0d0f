"""Intensity adjustment from subjective feedback and training gaps."""
from __future__ import annotations

import logging
from datetime import date, timedelta

from app.models.schemas import (
    ActivityRecord,
    AdaptiveAdjustment,
    AdaptiveFeedback,
    Confidence,
    FeedbackRecommendation,
    RecoveryStatus,
    TrainingGap,
)
from app.services.wellness_aggregator import average


logger = logging.getLogger(__name__)

MIN_FEEDBACK_SAMPLES = 3
GAP_DAYS = 4
LONG_GAP_DAYS = 7
LONG_GAP_FACTOR = 0.9

_GAP_BY_RECOVERY = {
    RecoveryStatus.GREEN: ("fresh", 1.0),
    RecoveryStatus.YELLOW: ("cautious return", 0.85),
    RecoveryStatus.RED: ("returning from illness", 0.7),
    RecoveryStatus.UNKNOWN: ("unknown recovery", 0.8),
}


def _feel_score(feel: int) -> int:
    """Feel is 1 (strong) to 5 (weak); flip it so higher is better."""
    return 6 - feel


def _map_score(score: float) -> tuple[FeedbackRecommendation, int]:
    if score <= -2:
        return FeedbackRecommendation.EASIER, -10
    if score <= -1:
        return FeedbackRecommendation.EASIER, -5
    if score >= 2:
        return FeedbackRecommendation.HARDER, 5
    if score >= 1:
        return FeedbackRecommendation.HARDER, 3
    return FeedbackRecommendation.MAINTAIN, 0


def _confidence(samples: int) -> Confidence:
    if samples >= 8:
        return Confidence.HIGH
    if samples >= 5:
        return Confidence.MEDIUM
    return Confidence.LOW


def analyze_feedback(
    activities: list[ActivityRecord],
    today: date,
    window_days: int = 14,
) -> AdaptiveFeedback:
    """
    Score recent feel and RPE entries into an intensity recommendation.

    Args:
        activities: Activities in any order
        today: Reference date
        window_days: How far back feedback counts

    Returns:
        AdaptiveFeedback; insufficient confidence with fewer than three entries
    """
    window_start = today - timedelta(days=window_days - 1)
    entries = sorted(
        (a for a in activities if a.has_feedback and window_start <= a.date <= today),
        key=lambda activity: activity.date,
        reverse=True,
    )

    if len(entries) < MIN_FEEDBACK_SAMPLES:
        return AdaptiveFeedback(
            sample_size=len(entries),
            reasoning=[f"Only {len(entries)} activities with feedback in {window_days} days"],
        )

    feel_scores = [_feel_score(a.feel) for a in entries if a.feel is not None]
    rpes = [a.rpe for a in entries if a.rpe is not None]
    avg_feel_score = average(feel_scores)
    avg_rpe = average(rpes)

    score = 0.0
    reasoning: list[str] = []

    if avg_feel_score is not None:
        if avg_feel_score < 2.5:
            score -= 2
            reasoning.append(f"Feel is poor (score {avg_feel_score:.1f}/5)")
        elif avg_feel_score < 3:
            score -= 1
            reasoning.append(f"Feel is below average (score {avg_feel_score:.1f}/5)")
        elif avg_feel_score > 3.5:
            score += 1
            reasoning.append(f"Feel is good (score {avg_feel_score:.1f}/5)")

    if avg_rpe is not None:
        if avg_rpe > 8:
            score -= 1
            reasoning.append(f"Average RPE {avg_rpe:.1f} is high")
        elif avg_rpe < 5:
            score += 1
            reasoning.append(f"Average RPE {avg_rpe:.1f} is low")

    negative = sum(1 for a in entries if (a.feel or 0) >= 4 or (a.rpe or 0) >= 9)
    if negative / len(entries) > 0.4:
        score -= 1
        reasoning.append(f"{negative} of {len(entries)} sessions felt bad")

    # feel_scores is newest first
    if len(feel_scores) > 3:
        trend = average(feel_scores[:3]) - average(feel_scores[3:])
        if trend <= -0.5:
            score -= 1
            reasoning.append("Feel is trending down over the last three sessions")
        elif trend >= 0.5:
            score += 0.5
            reasoning.append("Feel is trending up over the last three sessions")

    recommendation, pct = _map_score(score)
    if not reasoning:
        reasoning.append("Feedback is in the normal range")

    logger.debug("Feedback score %.1f over %d sessions -> %s %+d%%", score, len(entries), recommendation.value, pct)

    avg_feel = average(a.feel for a in entries)
    return AdaptiveFeedback(
        recommendation=recommendation,
        confidence=_confidence(len(entries)),
        intensity_adjustment_pct=pct,
        score=score,
        sample_size=len(entries),
        avg_feel=round(avg_feel, 2) if avg_feel is not None else None,
        avg_rpe=round(avg_rpe, 2) if avg_rpe is not None else None,
        reasoning=reasoning,
    )


def days_since_last_activity(
    activities: list[ActivityRecord],
    today: date,
    sport: str | None = None,
) -> int | None:
    """Whole days since the most recent activity on or before ``today``."""

    dates = [a.date for a in activities if a.date <= today and (sport is None or a.sport == sport)]
    if not dates:
        return None
    return (today - max(dates)).days


def classify_training_gap(days_since_last: int | None, recovery_status: RecoveryStatus) -> TrainingGap:
    """
    Interpret a break in training in light of current recovery.

    No activity at all in the lookback counts as a long gap.
    """
    if days_since_last is not None and days_since_last < GAP_DAYS:
        return TrainingGap(
            days_since_last=days_since_last,
            interpretation="normal",
            reasoning=f"Last session {days_since_last} days ago",
        )

    interpretation, multiplier = _GAP_BY_RECOVERY[recovery_status]
    gap_text = "No recent sessions" if days_since_last is None else f"{days_since_last} days off"
    reasoning = f"{gap_text} with {recovery_status.value.lower()} recovery"

    if days_since_last is None or days_since_last >= LONG_GAP_DAYS:
        multiplier *= LONG_GAP_FACTOR
        reasoning += "; long break, easing back in"

    return TrainingGap(
        days_since_last=days_since_last,
        interpretation=interpretation,
        intensity_multiplier=round(multiplier, 3),
        reasoning=reasoning,
    )


def combine_adjustments(feedback: AdaptiveFeedback, gap: TrainingGap) -> AdaptiveAdjustment:
    """Take the more conservative of the feedback and gap adjustments."""

    gap_pct = round((gap.intensity_multiplier - 1) * 100)
    combined = min(feedback.intensity_adjustment_pct, gap_pct)
    return AdaptiveAdjustment(feedback=feedback, gap=gap, combined_adjustment_pct=combined)
