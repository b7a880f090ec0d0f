"""Tests for weekly training-stress targets."""
from __future__ import annotations

import pytest

from app.models.schemas import FitnessMetrics
from app.services.load_advisor import classify_ramp, fallback_load_advice, recommend_load


@pytest.mark.parametrize(
    "ramp, label, warn",
    [(1.0, "Maintain", False), (3.0, "Maintain", False), (4.5, "Build", False), (6.0, "Aggressive", True), (8.0, "Caution", True)],
)
def test_ramp_bands(ramp, label, warn):
    assert classify_ramp(ramp) == (label, warn)


def test_base_phase_targets():
    advice = fallback_load_advice(FitnessMetrics(ctl=50, atl=55), "Base", 12)

    assert advice.target_ctl == 62.5
    assert advice.required_weekly_ramp == 1.25
    assert advice.ramp_label == "Maintain"
    assert (advice.weekly_tss_min, advice.weekly_tss_max) == (362, 443)
    assert (advice.daily_tss_min, advice.daily_tss_max) == (52, 63)
    assert advice.reduction_pct == 0


def test_missing_goal_uses_default_horizon():
    with_goal = fallback_load_advice(FitnessMetrics(ctl=50, atl=55), "Base", 12)
    without_goal = fallback_load_advice(FitnessMetrics(ctl=50, atl=55), "Base", None)

    assert without_goal.weeks_out is None
    assert without_goal.weekly_tss_min == with_goal.weekly_tss_min


@pytest.mark.parametrize(
    "phase, reduction, weekly_range",
    [
        ("Taper", 50, (181, 221)),
        ("Race Week", 50, (181, 221)),
        ("Peak", 30, (254, 310)),
        ("Transition", 60, (145, 177)),
        ("Build", 0, (362, 443)),
    ],
)
def test_phase_reductions(phase, reduction, weekly_range):
    advice = fallback_load_advice(FitnessMetrics(ctl=50, atl=55), phase, 12)

    assert advice.reduction_pct == reduction
    assert (advice.weekly_tss_min, advice.weekly_tss_max) == weekly_range
    assert advice.ramp_label == "Maintain"


def test_deep_fatigue_forces_recovery():
    advice = fallback_load_advice(FitnessMetrics(ctl=50, atl=80), "Build", 8)

    assert advice.ramp_label == "Recover"
    assert advice.reduction_pct == 40
    assert any("TSB" in warning for warning in advice.warnings)


def test_deep_fatigue_skips_advisor(advisor_with_reply):
    advisor = advisor_with_reply(
        {"weeklyTssMin": 500, "weeklyTssMax": 600, "dailyTssMin": 70, "dailyTssMax": 90, "reasoning": "push"}
    )

    advice = recommend_load(FitnessMetrics(ctl=50, atl=80), "Build", 8, advisor)

    assert advice.advisor_enhanced is False
    assert advice.ramp_label == "Recover"
    assert advisor.client.messages.requests == []


def test_valid_advisor_range_is_used(advisor_with_reply, target_date):
    advisor = advisor_with_reply(
        {
            "weeklyTssMin": 400,
            "weeklyTssMax": 450,
            "dailyTssMin": 55,
            "dailyTssMax": 65,
            "rampLabel": "Build",
            "reasoning": "Room to push a little.",
        }
    )

    advice = recommend_load(FitnessMetrics(ctl=50, atl=55), "Base", 12, advisor, target_date)

    assert advice.advisor_enhanced is True
    assert (advice.weekly_tss_min, advice.weekly_tss_max) == (400, 450)
    assert advice.ramp_label == "Build"
    assert advice.target_ctl == 62.5


def test_inverted_advisor_range_is_rejected(advisor_with_reply):
    advisor = advisor_with_reply({"weeklyTssMin": 500, "weeklyTssMax": 400, "dailyTssMin": 55, "dailyTssMax": 65})

    advice = recommend_load(FitnessMetrics(ctl=50, atl=55), "Base", 12, advisor)

    assert advice == fallback_load_advice(FitnessMetrics(ctl=50, atl=55), "Base", 12)
