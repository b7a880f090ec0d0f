"""Collapse a window of daily wellness records into one classified summary."""
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Iterable

from app.models.schemas import RecoveryStatus, SleepStatus, WellnessRecord, WellnessSummary


logger = logging.getLogger(__name__)

RECOVERY_GREEN_THRESHOLD = 67.0
RECOVERY_RED_THRESHOLD = 34.0
HRV_ABOVE_BASELINE_PCT = 5.0
HRV_BELOW_BASELINE_PCT = -10.0

NEUTRAL_INTENSITY_MODIFIER = 1.0
INTENSITY_MODIFIERS = {
    RecoveryStatus.GREEN: 1.0,
    RecoveryStatus.YELLOW: 0.85,
    RecoveryStatus.RED: 0.7,
    RecoveryStatus.UNKNOWN: NEUTRAL_INTENSITY_MODIFIER,
}

# (minimum hours, status), checked top to bottom
SLEEP_THRESHOLDS = (
    (8.0, SleepStatus.EXCELLENT),
    (7.0, SleepStatus.ADEQUATE),
    (6.0, SleepStatus.POOR),
)
SLEEP_MODIFIERS = {
    SleepStatus.POOR: 0.95,
    SleepStatus.INSUFFICIENT: 0.9,
}


def average(values: Iterable[float | None]) -> float | None:
    """Mean of the non-null values, or None when there are none."""

    present = [float(v) for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def classify_recovery_score(score: float) -> RecoveryStatus:
    if score >= RECOVERY_GREEN_THRESHOLD:
        return RecoveryStatus.GREEN
    if score < RECOVERY_RED_THRESHOLD:
        return RecoveryStatus.RED
    return RecoveryStatus.YELLOW


def classify_hrv_deviation(deviation_pct: float) -> RecoveryStatus:
    if deviation_pct >= HRV_ABOVE_BASELINE_PCT:
        return RecoveryStatus.GREEN
    if deviation_pct <= HRV_BELOW_BASELINE_PCT:
        return RecoveryStatus.RED
    return RecoveryStatus.YELLOW


def classify_sleep(hours: float | None) -> SleepStatus | None:
    if hours is None or hours <= 0:
        return None
    for minimum, status in SLEEP_THRESHOLDS:
        if hours >= minimum:
            return status
    return SleepStatus.INSUFFICIENT


def latest_with_data(records: list[WellnessRecord]) -> WellnessRecord | None:
    """
    First record (newest first) carrying any physiological reading.

    Today's record is often empty until the wearable syncs, so an empty
    record is skipped rather than treated as "no data".
    """
    for record in records:
        if record.has_physiological_data:
            return record
    return None


def summarize_wellness(
    records: list[WellnessRecord],
    target_date: date | None = None,
    window_days: int = 7,
) -> WellnessSummary:
    """
    Build the WellnessSummary for a window of records.

    Args:
        records: Daily records, any order (sorted newest first internally)
        target_date: Day the summary is for (defaults to the newest record)
        window_days: Size of the averaging window

    Returns:
        Summary with recovery status, sleep status and intensity modifier
    """
    ordered = sorted(records, key=lambda record: record.date, reverse=True)
    if target_date is None and ordered:
        target_date = ordered[0].date
    if target_date is not None:
        window_start = target_date - timedelta(days=window_days - 1)
        ordered = [r for r in ordered if window_start <= r.date <= target_date]

    latest = latest_with_data(ordered)
    if latest is None:
        logger.info("No wellness data in the last %d days - recovery status unknown", window_days)
        return WellnessSummary(
            recovery_status=RecoveryStatus.UNKNOWN,
            intensity_modifier=NEUTRAL_INTENSITY_MODIFIER,
        )

    avg_sleep = average(r.sleep_hours for r in ordered if r.sleep_hours)
    avg_hrv = average(r.hrv for r in ordered)
    avg_rhr = average(r.resting_hr for r in ordered)
    avg_recovery = average(r.recovery_score for r in ordered)

    # HRV baseline excludes the reading being judged
    prior_hrv = average(r.hrv for r in ordered if r.date < latest.date)
    hrv_deviation = None
    if latest.hrv is not None and prior_hrv:
        hrv_deviation = round((latest.hrv - prior_hrv) / prior_hrv * 100, 1)

    if latest.recovery_score is not None:
        status = classify_recovery_score(latest.recovery_score)
        classified_by = "recovery_score"
    elif hrv_deviation is not None:
        status = classify_hrv_deviation(hrv_deviation)
        classified_by = "hrv"
    else:
        status = RecoveryStatus.UNKNOWN
        classified_by = "none"

    sleep_status = classify_sleep(latest.sleep_hours)
    modifier = INTENSITY_MODIFIERS[status] * SLEEP_MODIFIERS.get(sleep_status, 1.0)
    modifier = round(min(1.0, max(0.0, modifier)), 3)

    logger.debug(
        "Wellness %s | recovery=%s (%s) sleep=%s modifier=%.2f",
        latest.date.isoformat(),
        status.value,
        classified_by,
        sleep_status.value if sleep_status else "n/a",
        modifier,
    )

    return WellnessSummary(
        recovery_status=status,
        sleep_status=sleep_status,
        intensity_modifier=modifier,
        data_date=latest.date,
        classified_by=classified_by,
        recovery_score=latest.recovery_score,
        hrv=latest.hrv,
        resting_hr=latest.resting_hr,
        sleep_hours=latest.sleep_hours,
        avg_sleep_hours=_round(avg_sleep, 2),
        avg_hrv=_round(avg_hrv, 1),
        avg_resting_hr=_round(avg_rhr, 1),
        avg_recovery_score=_round(avg_recovery, 1),
        hrv_deviation_pct=hrv_deviation,
        soreness=latest.soreness,
        fatigue=latest.fatigue,
        stress=latest.stress,
        mood=latest.mood,
    )


def merge_wearable_record(
    records: list[WellnessRecord],
    wearable: WellnessRecord | None,
) -> list[WellnessRecord]:
    """
    Overlay a fresher wearable reading onto the primary wellness feed.

    Populated wearable fields win for the same date; a wearable reading for a
    date the primary feed lacks is inserted. Returns a new list, newest first.
    """
    if wearable is None:
        return sorted(records, key=lambda record: record.date, reverse=True)

    overlay = {k: v for k, v in wearable.model_dump().items() if v is not None and k != "date"}
    merged: list[WellnessRecord] = []
    matched = False
    for record in records:
        if record.date == wearable.date:
            merged.append(record.model_copy(update=overlay))
            matched = True
        else:
            merged.append(record)
    if not matched:
        merged.append(wearable)

    return sorted(merged, key=lambda record: record.date, reverse=True)


def _round(value: float | None, digits: int) -> float | None:
    return round(value, digits) if value is not None else None
