"""Tests for feedback scoring and training-gap interpretation."""
from __future__ import annotations

from datetime import timedelta

import pytest

from app.models.schemas import Confidence, FeedbackRecommendation, RecoveryStatus
from app.services.adaptive_feedback import (
    analyze_feedback,
    classify_training_gap,
    combine_adjustments,
    days_since_last_activity,
)


def test_bad_feel_and_high_rpe_recommend_easier(target_date, make_activity):
    feels = [5, 5, 4, 5, 3]
    rpes = [9, 8, 9, 8, None]
    activities = [
        make_activity(target_date - timedelta(days=index + 1), feel=feel, rpe=rpe)
        for index, (feel, rpe) in enumerate(zip(feels, rpes))
    ]

    feedback = analyze_feedback(activities, target_date)

    assert feedback.avg_rpe == 8.5
    assert feedback.recommendation == FeedbackRecommendation.EASIER
    assert feedback.intensity_adjustment_pct == -10
    assert feedback.confidence == Confidence.MEDIUM
    assert feedback.sample_size == 5


def test_too_few_entries_is_insufficient(target_date, make_activity):
    activities = [make_activity(target_date - timedelta(days=1), feel=5), make_activity(target_date, rpe=10)]

    feedback = analyze_feedback(activities, target_date)

    assert feedback.recommendation == FeedbackRecommendation.MAINTAIN
    assert feedback.confidence == Confidence.INSUFFICIENT
    assert feedback.intensity_adjustment_pct == 0


def test_strong_feel_and_low_rpe_recommend_harder(target_date, make_activity):
    activities = [make_activity(target_date - timedelta(days=day), feel=1, rpe=4) for day in range(1, 6)]

    feedback = analyze_feedback(activities, target_date)

    assert feedback.recommendation == FeedbackRecommendation.HARDER
    assert feedback.intensity_adjustment_pct == 5


def test_feedback_outside_window_is_ignored(target_date, make_activity):
    activities = [make_activity(target_date - timedelta(days=20 + day), feel=5, rpe=10) for day in range(5)]

    assert analyze_feedback(activities, target_date).sample_size == 0


@pytest.mark.parametrize("days_back, expected_samples", [(13, 3), (14, 0)])
def test_feedback_window_covers_fourteen_days(target_date, make_activity, days_back, expected_samples):
    activities = [make_activity(target_date - timedelta(days=days_back), feel=5, rpe=9) for _ in range(3)]

    assert analyze_feedback(activities, target_date).sample_size == expected_samples


@pytest.mark.parametrize(
    "days, status, interpretation, multiplier",
    [
        (2, RecoveryStatus.GREEN, "normal", 1.0),
        (2, RecoveryStatus.RED, "normal", 1.0),
        (5, RecoveryStatus.GREEN, "fresh", 1.0),
        (5, RecoveryStatus.YELLOW, "cautious return", 0.85),
        (8, RecoveryStatus.RED, "returning from illness", 0.63),
        (None, RecoveryStatus.UNKNOWN, "unknown recovery", 0.72),
    ],
)
def test_training_gap(days, status, interpretation, multiplier):
    gap = classify_training_gap(days, status)

    assert gap.interpretation == interpretation
    assert gap.intensity_multiplier == pytest.approx(multiplier)


def test_combined_adjustment_takes_more_conservative(target_date, make_activity):
    activities = [make_activity(target_date - timedelta(days=day), feel=1, rpe=4) for day in range(1, 6)]
    feedback = analyze_feedback(activities, target_date)

    combined = combine_adjustments(feedback, classify_training_gap(5, RecoveryStatus.YELLOW))

    assert combined.combined_adjustment_pct == -15


def test_days_since_last_activity_filters_sport(target_date, make_activity):
    activities = [
        make_activity(target_date - timedelta(days=1), sport="running"),
        make_activity(target_date - timedelta(days=6)),
        make_activity(target_date + timedelta(days=1)),
    ]

    assert days_since_last_activity(activities, target_date) == 1
    assert days_since_last_activity(activities, target_date, "cycling") == 6
    assert days_since_last_activity([], target_date) is None
