"""Week-over-week fitness trajectory and phase-readiness flags."""
from __future__ import annotations

import logging
from datetime import date, timedelta

from app.models.schemas import (
    FitnessMetrics,
    FitnessPoint,
    FitnessTrajectory,
    RecoveryTrend,
    RecoveryTrendLabel,
    TrendLabel,
    WeeklySnapshot,
    WellnessRecord,
)
from app.services.wellness_aggregator import average


logger = logging.getLogger(__name__)

SNAPSHOT_WEEKS = 4
# A snapshot may use a point up to this many days before its boundary
SNAPSHOT_TOLERANCE_DAYS = 6

CTL_BUILDING_DELTA = 3.0
EFTP_STABLE_BAND = 1.0

RECOVERY_SCORE_TREND_DELTA = 5.0
RECOVERY_SCORE_SUSTAINABLE = 50.0
HRV_IMPROVING_PCT = 3.0
HRV_DECLINING_PCT = -5.0
HRV_SUSTAINABLE_RATIO = 0.95

BASE_COMPLETE_CTL = 40.0
BASE_COMPLETE_CONSISTENCY = 60.0
BUILD_COMPLETE_EFTP_MARGIN = 5.0
BUILD_COMPLETE_PROGRESS_PCT = 90.0
SPECIALTY_READY_CTL = 50.0
TAPER_READY_CTL = 60.0


def current_metrics(points: list[FitnessPoint]) -> FitnessMetrics:
    """Latest ctl/atl/ramp from the daily fitness series (zeros when empty)."""

    ordered = sorted(points, key=lambda point: point.date, reverse=True)
    for point in ordered:
        if point.ctl is not None and point.atl is not None:
            return FitnessMetrics(ctl=point.ctl, atl=point.atl, ramp_rate=point.ramp_rate)
    logger.info("No ctl/atl values in the fitness series - using zero load")
    return FitnessMetrics()


def weekly_snapshots(points: list[FitnessPoint], target_date: date, weeks: int = SNAPSHOT_WEEKS) -> list[WeeklySnapshot]:
    """Sample one point per 7-day boundary, most recent first."""

    with_ctl = sorted(
        (point for point in points if point.ctl is not None and point.date <= target_date),
        key=lambda point: point.date,
        reverse=True,
    )
    snapshots: list[WeeklySnapshot] = []
    for week in range(weeks):
        boundary = target_date - timedelta(days=7 * week)
        earliest = boundary - timedelta(days=SNAPSHOT_TOLERANCE_DAYS)
        match = next((p for p in with_ctl if earliest <= p.date <= boundary), None)
        if match is None:
            break
        snapshots.append(WeeklySnapshot(date=match.date, ctl=match.ctl, eftp=match.eftp))
    return snapshots


def weekly_deltas(values: list[float | None]) -> list[float]:
    """Newer-minus-older deltas for adjacent non-null pairs."""

    deltas = []
    for newer, older in zip(values, values[1:]):
        if newer is not None and older is not None:
            deltas.append(round(newer - older, 2))
    return deltas


def classify_ctl_trend(deltas: list[float]) -> TrendLabel:
    if not deltas:
        return TrendLabel.STABLE
    mean = sum(deltas) / len(deltas)
    if mean >= CTL_BUILDING_DELTA:
        return TrendLabel.BUILDING
    if mean >= 0:
        return TrendLabel.STABLE
    return TrendLabel.DECLINING


def classify_eftp_trend(deltas: list[float]) -> TrendLabel:
    if not deltas:
        return TrendLabel.STABLE
    mean = sum(deltas) / len(deltas)
    if mean >= EFTP_STABLE_BAND:
        return TrendLabel.BUILDING
    if mean <= -EFTP_STABLE_BAND:
        return TrendLabel.DECLINING
    return TrendLabel.STABLE


def analyze_recovery_trend(records: list[WellnessRecord], target_date: date) -> RecoveryTrend:
    """
    Compare the last 7 days of recovery with the 21 days before.

    The recovery score is preferred; HRV is used when no score exists in the
    recent window. With neither, the trend is stable and sustainability unknown.
    """
    recent_start = target_date - timedelta(days=6)
    earlier_start = target_date - timedelta(days=27)
    recent = [r for r in records if recent_start <= r.date <= target_date]
    earlier = [r for r in records if earlier_start <= r.date < recent_start]

    recent_score = average(r.recovery_score for r in recent)
    if recent_score is not None:
        earlier_score = average(r.recovery_score for r in earlier)
        trend = RecoveryTrendLabel.STABLE
        if earlier_score is not None:
            delta = recent_score - earlier_score
            if delta >= RECOVERY_SCORE_TREND_DELTA:
                trend = RecoveryTrendLabel.IMPROVING
            elif delta <= -RECOVERY_SCORE_TREND_DELTA:
                trend = RecoveryTrendLabel.DECLINING
        return RecoveryTrend(
            trend=trend,
            source="recovery_score",
            recent_average=round(recent_score, 1),
            earlier_average=round(earlier_score, 1) if earlier_score is not None else None,
            sustainable=recent_score >= RECOVERY_SCORE_SUSTAINABLE,
        )

    recent_hrv = average(r.hrv for r in recent)
    earlier_hrv = average(r.hrv for r in earlier)
    if recent_hrv is not None and earlier_hrv:
        change_pct = (recent_hrv - earlier_hrv) / earlier_hrv * 100
        if change_pct >= HRV_IMPROVING_PCT:
            trend = RecoveryTrendLabel.IMPROVING
        elif change_pct <= HRV_DECLINING_PCT:
            trend = RecoveryTrendLabel.DECLINING
        else:
            trend = RecoveryTrendLabel.STABLE
        return RecoveryTrend(
            trend=trend,
            source="hrv",
            recent_average=round(recent_hrv, 1),
            earlier_average=round(earlier_hrv, 1),
            sustainable=recent_hrv >= earlier_hrv * HRV_SUSTAINABLE_RATIO,
        )

    return RecoveryTrend()


def _eftp_on_track(
    current_eftp: float | None,
    target_ftp: float | None,
    eftp_deltas: list[float],
    weeks_out: int | None,
) -> bool | None:
    if current_eftp is None or not target_ftp:
        return None
    if current_eftp >= target_ftp:
        return True
    if not eftp_deltas or weeks_out is None or weeks_out <= 0:
        return None
    required_gain = (target_ftp - current_eftp) / weeks_out
    mean_gain = sum(eftp_deltas) / len(eftp_deltas)
    return mean_gain >= required_gain


def analyze_trajectory(
    points: list[FitnessPoint],
    wellness: list[WellnessRecord],
    target_date: date,
    target_ftp: float | None = None,
    weeks_out: int | None = None,
) -> FitnessTrajectory:
    """
    Build the 4-week fitness trajectory ending at ``target_date``.

    Args:
        points: Daily fitness points (any order)
        wellness: Daily wellness records for the recovery trend (28 days or more)
        target_date: Last day of the window
        target_ftp: Athlete's goal FTP, if any
        weeks_out: Weeks to the goal event, used for the eFTP on-track check

    Returns:
        FitnessTrajectory with trend labels and readiness flags
    """
    snapshots = weekly_snapshots(points, target_date)
    insufficient = len(snapshots) < 2

    ctl_deltas = weekly_deltas([s.ctl for s in snapshots])
    eftp_deltas = weekly_deltas([s.eftp for s in snapshots])

    if insufficient:
        ctl_trend = TrendLabel.STABLE
        eftp_trend = TrendLabel.STABLE
        consistency = 0.0
    else:
        ctl_trend = classify_ctl_trend(ctl_deltas)
        eftp_trend = classify_eftp_trend(eftp_deltas)
        positive = sum(1 for delta in ctl_deltas if delta > 0)
        consistency = round(positive / len(ctl_deltas) * 100, 1) if ctl_deltas else 0.0

    current_ctl = snapshots[0].ctl if snapshots else None
    current_eftp = next((s.eftp for s in snapshots if s.eftp is not None), None)

    eftp_progress = None
    if current_eftp is not None and target_ftp:
        eftp_progress = round(current_eftp / target_ftp * 100, 1)

    recovery_trend = analyze_recovery_trend(wellness, target_date)
    ctl = current_ctl or 0.0

    base_complete = (
        ctl >= BASE_COMPLETE_CTL
        and ctl_trend != TrendLabel.DECLINING
        and consistency >= BASE_COMPLETE_CONSISTENCY
    )
    build_complete = bool(
        current_eftp is not None
        and target_ftp
        and (
            target_ftp - current_eftp <= BUILD_COMPLETE_EFTP_MARGIN
            or (eftp_progress or 0.0) >= BUILD_COMPLETE_PROGRESS_PCT
        )
    )
    # Unknown sustainability does not block the transition
    ready_for_specialty = base_complete and ctl >= SPECIALTY_READY_CTL and recovery_trend.sustainable is not False
    ready_for_taper = build_complete and ctl >= TAPER_READY_CTL

    trajectory = FitnessTrajectory(
        snapshots=snapshots,
        ctl_deltas=ctl_deltas,
        eftp_deltas=eftp_deltas,
        ctl_trend=ctl_trend,
        eftp_trend=eftp_trend,
        consistency_pct=consistency,
        current_ctl=current_ctl,
        current_eftp=current_eftp,
        target_ftp=target_ftp,
        eftp_progress_pct=eftp_progress,
        eftp_on_track=_eftp_on_track(current_eftp, target_ftp, eftp_deltas, weeks_out),
        recovery_trend=recovery_trend,
        base_complete=base_complete,
        build_complete=build_complete,
        ready_for_specialty=ready_for_specialty,
        ready_for_taper=ready_for_taper,
        insufficient_data=insufficient,
    )
    logger.debug(
        "Trajectory %s | ctl=%s trend=%s consistency=%.0f%% eftp_trend=%s recovery=%s",
        target_date.isoformat(),
        current_ctl,
        ctl_trend.value,
        consistency,
        eftp_trend.value,
        recovery_trend.trend.value,
    )
    return trajectory
