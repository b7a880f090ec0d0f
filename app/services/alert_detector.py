"""Alert detection service for identifying training risks."""
from __future__ import annotations

import copy
import logging
from datetime import date, timedelta
from typing import Any, Callable, Iterable

from app.models.schemas import (
    ActivityRecord,
    Advisories,
    DeloadAdvisory,
    FitnessMetrics,
    FitnessPoint,
    FtpTestAdvisory,
    IllnessAdvisory,
    Phase,
    RampRateAdvisory,
    RecoveryStatus,
    Severity,
    VolumeJumpAdvisory,
    WellnessRecord,
)
from app.services.coach_config import load_coach_config
from app.services.fitness_trajectory import weekly_deltas, weekly_snapshots
from app.services.wellness_aggregator import average


logger = logging.getLogger(__name__)


class AlertDetectorHelper:
    """Helper class for windowing the raw records each detector reads."""

    @staticmethod
    def trailing_weekly_totals(
        activities: Iterable[ActivityRecord],
        target_date: date,
        weeks: int = 4,
    ) -> list[float]:
        """
        Sum training load over trailing 7-day blocks of completed days.

        Block 0 covers the seven days before ``target_date``. Days without
        activities count as zero.

        Returns:
            Weekly totals, most recent first
        """
        totals = [0.0] * weeks
        for activity in activities:
            if not activity.training_load:
                continue
            days_back = (target_date - activity.date).days - 1
            if days_back < 0:
                continue
            week = days_back // 7
            if week < weeks:
                totals[week] += activity.training_load
        return [round(total, 1) for total in totals]

    @staticmethod
    def calendar_week_totals(
        activities: Iterable[ActivityRecord],
        target_date: date,
    ) -> tuple[float, float]:
        """
        Load of the last completed Monday-Sunday week and the week before it.
        """
        this_monday = target_date - timedelta(days=target_date.weekday())
        last_monday = this_monday - timedelta(days=7)
        previous_monday = last_monday - timedelta(days=7)

        last_week = 0.0
        previous_week = 0.0
        for activity in activities:
            if not activity.training_load:
                continue
            if last_monday <= activity.date < this_monday:
                last_week += activity.training_load
            elif previous_monday <= activity.date < last_monday:
                previous_week += activity.training_load
        return round(last_week, 1), round(previous_week, 1)

    @staticmethod
    def sleep_debt(
        records: Iterable[WellnessRecord],
        target_date: date,
        target_hours: float = 7.5,
        nights: int = 7,
    ) -> float:
        """Hours slept below target over the last ``nights`` nights with data."""

        window_start = target_date - timedelta(days=nights - 1)
        debt = sum(
            max(0.0, target_hours - record.sleep_hours)
            for record in records
            if record.sleep_hours and window_start <= record.date <= target_date
        )
        return round(debt, 1)

    @staticmethod
    def count_consecutive(values: Iterable[float], predicate: Callable[[float], bool]) -> int:
        """Leading run length of values satisfying ``predicate``."""

        count = 0
        for value in values:
            if not predicate(value):
                break
            count += 1
        return count


class AlertDetector:
    """Runs the five independent training-risk detectors."""

    def __init__(self, config: dict[str, Any] | None = None):
        """
        Initialize alert detector.

        Args:
            config: Optional pre-loaded configuration (defaults to coach.yaml's
                ``alert_detection`` section merged over built-in defaults)
        """
        self.helper = AlertDetectorHelper()
        self.config = self._merge(self._default_config(), config if config is not None else self._load_config())

    def _load_config(self) -> dict[str, Any]:
        alert_config = load_coach_config().get("alert_detection", {})
        if not alert_config:
            logger.warning("No alert_detection config found in coach.yaml - using defaults")
            return {}
        return alert_config

    @staticmethod
    def _merge(defaults: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
        merged = copy.deepcopy(defaults)
        for key, value in (overrides or {}).items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = AlertDetector._merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def _default_config(self) -> dict[str, Any]:
        """Return default configuration if config file is missing."""
        return {
            "deload": {
                "min_baseline_tss": 100,
                "deload_ratio": 0.7,
                "min_deload_tss": 70,
                "sleep_target_hours": 7.5,
            },
            "ramp_rate": {"critical_ramp": 7, "warning_ramp": 5},
            "volume_jump": {
                "high_pct": 30,
                "medium_pct": 20,
                "low_pct": 15,
                "illness_drop_pct": 30,
                "illness_min_prior_tss": 100,
            },
            "illness": {
                "rhr_increase_bpm": 5,
                "rhr_critical_bpm": 10,
                "hrv_drop_percent": 20,
                "hrv_critical_percent": 30,
                "sleep_drop_hours": 1.5,
                "subjective_threshold": 4,
            },
            "ftp_test": {
                "retest_after_days": 42,
                "lookback_days": 90,
                "eftp_gap_percent": 3,
                "min_weeks_out": 2,
            },
        }

    def _recommendation(self, section: str, key: str, default: str) -> str:
        messages = self.config.get(section, {}).get("messages", {})
        return messages.get(key, {}).get("recommendation", default)

    # ------------------------------------------------------------------
    # Deload
    # ------------------------------------------------------------------

    def check_deload(
        self,
        weekly_totals: list[float],
        target_weekly_tss: float | None = None,
        ramp_rate: float | None = None,
        tsb: float | None = None,
        sleep_debt_hours: float = 0.0,
    ) -> DeloadAdvisory:
        """
        Score the need for a recovery week.

        Args:
            weekly_totals: Trailing weekly load totals, most recent first
            target_weekly_tss: Planned weekly load (baseline floor applies)
            ramp_rate: Current CTL ramp per week
            tsb: Current training stress balance
            sleep_debt_hours: Accumulated sleep debt over the last week

        Returns:
            DeloadAdvisory with urgency score and severity
        """
        config = self.config["deload"]
        totals = (list(weekly_totals) + [0.0] * 4)[:4]
        baseline = max(target_weekly_tss or 0.0, float(config["min_baseline_tss"]))
        deload_threshold = max(config["deload_ratio"] * baseline, float(config["min_deload_tss"]))

        weeks_without = self.helper.count_consecutive(totals, lambda total: total > baseline)
        last_deload = next((i for i, total in enumerate(totals) if total < deload_threshold), None)
        weeks_above = sum(1 for total in totals if total > baseline)

        score = 0
        reasons: list[str] = []
        if weeks_without >= 4:
            score += 2
        elif weeks_without >= 3:
            score += 1
        if weeks_without >= 3:
            reasons.append(f"{weeks_without} consecutive weeks above {baseline:.0f} TSS")

        if ramp_rate is not None:
            if ramp_rate > 5:
                score += 2
            elif ramp_rate > 3:
                score += 1
            if ramp_rate > 3:
                reasons.append(f"Ramp rate {ramp_rate:.1f} CTL/week")

        if tsb is not None:
            if tsb < -30:
                score += 2
            elif tsb < -20:
                score += 1
            if tsb < -20:
                reasons.append(f"TSB {tsb:.1f}")

        if weeks_above >= 3:
            score += 1
            reasons.append(f"{weeks_above} of the last 4 weeks above target")

        if sleep_debt_hours >= 5:
            score += 3
        elif sleep_debt_hours >= 3:
            score += 2
        elif sleep_debt_hours >= 1.5:
            score += 1
        if sleep_debt_hours >= 1.5:
            reasons.append(f"{sleep_debt_hours:.1f}h sleep debt this week")

        if score >= 4:
            severity = Severity.HIGH
        elif score >= 2 and weeks_without >= 3:
            severity = Severity.MEDIUM
        elif score >= 1 and weeks_without >= 4:
            severity = Severity.LOW
        else:
            severity = Severity.NONE

        detected = severity != Severity.NONE
        if detected:
            logger.warning("Deload needed (%s): score=%d weeks=%d", severity.value, score, weeks_without)

        return DeloadAdvisory(
            detected=detected,
            severity=severity,
            reasons=reasons,
            recommendation=self._recommendation("deload", severity.value, "Plan a recovery week.") if detected else "",
            weekly_totals=totals,
            weeks_without_deload=weeks_without,
            last_deload_weeks_ago=last_deload,
            weeks_above_target=weeks_above,
            sleep_debt_hours=sleep_debt_hours,
            urgency_score=score,
        )

    # ------------------------------------------------------------------
    # Ramp rate
    # ------------------------------------------------------------------

    def check_ramp_rate(self, weekly_ramp_rates: list[float]) -> RampRateAdvisory:
        """Flag sustained CTL ramps from weekly deltas (most recent first)."""

        config = self.config["ramp_rate"]
        critical_ramp = config["critical_ramp"]
        warning_ramp = config["warning_ramp"]
        rates = list(weekly_ramp_rates)[:4]

        over_critical = self.helper.count_consecutive(rates, lambda rate: rate > critical_ramp)
        over_warning = self.helper.count_consecutive(rates, lambda rate: rate > warning_ramp)

        if over_critical >= 2:
            severity = Severity.CRITICAL
        elif over_warning >= 3:
            severity = Severity.WARNING
        elif over_warning >= 2:
            severity = Severity.CAUTION
        else:
            severity = Severity.NONE

        reasons: list[str] = []
        if over_critical >= 2:
            reasons.append(f"{over_critical} consecutive weeks with ramp above {critical_ramp}")
        elif over_warning >= 2:
            reasons.append(f"{over_warning} consecutive weeks with ramp above {warning_ramp}")

        detected = severity != Severity.NONE
        if detected:
            logger.warning("Ramp-rate alert detected: %s (%s)", severity.value, rates)

        return RampRateAdvisory(
            detected=detected,
            severity=severity,
            reasons=reasons,
            recommendation=self._recommendation("ramp_rate", severity.value, "Hold load flat.") if detected else "",
            weekly_ramp_rates=rates,
            consecutive_over_critical=over_critical,
            consecutive_over_warning=over_warning,
        )

    # ------------------------------------------------------------------
    # Volume jump
    # ------------------------------------------------------------------

    def check_volume_jump(self, last_week_tss: float, previous_week_tss: float) -> VolumeJumpAdvisory:
        """
        Compare two completed calendar weeks.

        A large drop from a substantial week is reported as a possible illness
        signal rather than a volume risk.
        """
        config = self.config["volume_jump"]
        if previous_week_tss <= 0:
            return VolumeJumpAdvisory(last_week_tss=last_week_tss, previous_week_tss=previous_week_tss)

        change = round((last_week_tss - previous_week_tss) / previous_week_tss * 100, 1)

        risk = Severity.NONE
        if change > config["high_pct"]:
            risk = Severity.HIGH
        elif change > config["medium_pct"]:
            risk = Severity.MEDIUM
        elif change > config["low_pct"]:
            risk = Severity.LOW

        possible_illness = (
            change < -config["illness_drop_pct"] and previous_week_tss > config["illness_min_prior_tss"]
        )

        if risk != Severity.NONE:
            logger.warning("Volume jump detected: %+.1f%% (%s)", change, risk.value)
            return VolumeJumpAdvisory(
                detected=True,
                severity=risk,
                reasons=[f"Weekly load {previous_week_tss:.0f} -> {last_week_tss:.0f} TSS ({change:+.0f}%)"],
                recommendation=self._recommendation("volume_jump", risk.value, "Avoid another jump this week."),
                last_week_tss=last_week_tss,
                previous_week_tss=previous_week_tss,
                percent_change=change,
                risk=risk,
            )

        if possible_illness:
            logger.info("Sharp volume drop %+.1f%% - possible illness", change)
            return VolumeJumpAdvisory(
                detected=True,
                severity=Severity.CAUTION,
                reasons=[f"Weekly load dropped {abs(change):.0f}% from {previous_week_tss:.0f} TSS"],
                recommendation=self._recommendation("volume_jump", "illness", "Return gradually."),
                last_week_tss=last_week_tss,
                previous_week_tss=previous_week_tss,
                percent_change=change,
                possible_illness=True,
            )

        return VolumeJumpAdvisory(
            last_week_tss=last_week_tss,
            previous_week_tss=previous_week_tss,
            percent_change=change,
        )

    # ------------------------------------------------------------------
    # Illness
    # ------------------------------------------------------------------

    def _illness_signals(
        self,
        record: WellnessRecord,
        baseline: list[WellnessRecord],
    ) -> tuple[list[str], dict[str, float | None]]:
        config = self.config["illness"]
        signals: list[str] = []

        rhr_elevation = None
        avg_rhr = average(r.resting_hr for r in baseline)
        if record.resting_hr is not None and avg_rhr is not None:
            rhr_elevation = round(record.resting_hr - avg_rhr, 1)
            if rhr_elevation >= config["rhr_increase_bpm"]:
                signals.append(f"Resting HR +{rhr_elevation:.0f} bpm")

        hrv_drop = None
        avg_hrv = average(r.hrv for r in baseline)
        if record.hrv is not None and avg_hrv:
            hrv_drop = round((avg_hrv - record.hrv) / avg_hrv * 100, 1)
            if hrv_drop >= config["hrv_drop_percent"]:
                signals.append(f"HRV down {hrv_drop:.0f}%")

        sleep_deficit = None
        avg_sleep = average(r.sleep_hours for r in baseline if r.sleep_hours)
        if record.sleep_hours and avg_sleep is not None:
            sleep_deficit = round(avg_sleep - record.sleep_hours, 1)
            if sleep_deficit >= config["sleep_drop_hours"]:
                signals.append(f"Sleep {sleep_deficit:.1f}h below normal")

        threshold = config["subjective_threshold"]
        if (record.fatigue or 0) >= threshold or (record.soreness or 0) >= threshold:
            signals.append("Elevated fatigue or soreness")

        metrics = {"rhr": rhr_elevation, "hrv": hrv_drop, "sleep": sleep_deficit}
        return signals, metrics

    def _baseline_before(self, records: list[WellnessRecord], day: date) -> list[WellnessRecord]:
        start = day - timedelta(days=7)
        return [r for r in records if start <= r.date < day]

    def check_illness(self, records: list[WellnessRecord], target_date: date) -> IllnessAdvisory:
        """
        Compare the latest day with the seven days before it.

        Critical needs a large HRV drop together with a large resting-HR rise.
        """
        config = self.config["illness"]
        ordered = sorted(
            (r for r in records if r.date <= target_date and r.has_physiological_data),
            key=lambda record: record.date,
            reverse=True,
        )
        if not ordered:
            return IllnessAdvisory()

        latest = ordered[0]
        signals, metrics = self._illness_signals(latest, self._baseline_before(ordered, latest.date))

        consecutive = 0
        for record in ordered[:7]:
            if record.date != latest.date - timedelta(days=consecutive):
                break
            day_signals, _ = self._illness_signals(record, self._baseline_before(ordered, record.date))
            if len(day_signals) < 2:
                break
            consecutive += 1

        hrv_drop = metrics["hrv"]
        rhr_elevation = metrics["rhr"]
        if (
            hrv_drop is not None
            and rhr_elevation is not None
            and hrv_drop >= config["hrv_critical_percent"]
            and rhr_elevation >= config["rhr_critical_bpm"]
        ):
            severity = Severity.CRITICAL
        elif len(signals) >= 2 and consecutive >= 2:
            severity = Severity.WARNING
        elif len(signals) >= 2:
            severity = Severity.CAUTION
        else:
            severity = Severity.NONE

        detected = severity != Severity.NONE
        if detected:
            logger.warning("Illness risk alert detected: %s (%s)", severity.value, "; ".join(signals))

        return IllnessAdvisory(
            detected=detected,
            severity=severity,
            reasons=signals if detected else [],
            recommendation=self._recommendation("illness", severity.value, "Keep today easy.") if detected else "",
            signals=signals,
            consecutive_days=consecutive,
            rhr_elevation_bpm=rhr_elevation,
            hrv_drop_pct=hrv_drop,
            sleep_deficit_hours=metrics["sleep"],
        )

    # ------------------------------------------------------------------
    # FTP retest
    # ------------------------------------------------------------------

    def check_ftp_test(
        self,
        activities: list[ActivityRecord],
        target_date: date,
        eftp: float | None,
        tsb: float,
        recovery_status: RecoveryStatus,
        weeks_out: int | None,
        phase: Phase,
    ) -> FtpTestAdvisory:
        """Suggest a threshold test when the last one is stale and the athlete is fresh."""

        config = self.config["ftp_test"]
        lookback_start = target_date - timedelta(days=config["lookback_days"])
        tests = [a for a in activities if a.is_threshold_test and lookback_start <= a.date <= target_date]
        days_since = (target_date - max(a.date for a in tests)).days if tests else None

        set_ftp = next(
            (a.ftp for a in sorted(activities, key=lambda a: a.date, reverse=True) if a.ftp and a.date <= target_date),
            None,
        )
        gap_pct = round((eftp - set_ftp) / set_ftp * 100, 1) if eftp and set_ftp else None

        reasons: list[str] = []
        if days_since is None:
            reasons.append(f"No threshold test in the last {config['lookback_days']} days")
        elif days_since >= config["retest_after_days"]:
            reasons.append(f"Last threshold test was {days_since} days ago")
        if gap_pct is not None and gap_pct >= config["eftp_gap_percent"]:
            reasons.append(f"Estimated FTP is {gap_pct:.1f}% above the set FTP")

        blockers: list[str] = []
        if tsb <= 0:
            blockers.append(f"TSB {tsb:.1f} is not positive")
        if recovery_status == RecoveryStatus.RED:
            blockers.append("Recovery is red")
        if weeks_out is not None and 0 <= weeks_out <= config["min_weeks_out"]:
            blockers.append(f"Goal event is {weeks_out} weeks away")
        if phase in (Phase.TAPER, Phase.RACE_WEEK):
            blockers.append(f"{phase.value} phase")

        detected = bool(reasons) and not blockers
        if detected:
            logger.info("FTP test suggested: %s", "; ".join(reasons))

        return FtpTestAdvisory(
            detected=detected,
            severity=Severity.LOW if detected else Severity.NONE,
            reasons=reasons,
            recommendation=self._recommendation("ftp_test", "due", "Schedule an FTP test.") if detected else "",
            days_since_last_test=days_since,
            eftp_gap_pct=gap_pct,
            blockers=blockers,
        )

    # ------------------------------------------------------------------
    # All detectors
    # ------------------------------------------------------------------

    def detect_all(
        self,
        target_date: date,
        activities: list[ActivityRecord],
        wellness: list[WellnessRecord],
        points: list[FitnessPoint],
        metrics: FitnessMetrics,
        recovery_status: RecoveryStatus,
        phase: Phase,
        weeks_out: int | None,
        target_weekly_tss: float | None = None,
        eftp: float | None = None,
    ) -> Advisories:
        """
        Run every detector over its own window of the raw records.

        No detector sees another's output.
        """
        logger.info("Detecting alerts for %s", target_date.isoformat())

        sleep_target = self.config["deload"]["sleep_target_hours"]
        deload = self.check_deload(
            self.helper.trailing_weekly_totals(activities, target_date),
            target_weekly_tss=target_weekly_tss,
            ramp_rate=metrics.ramp_rate,
            tsb=metrics.tsb,
            sleep_debt_hours=self.helper.sleep_debt(wellness, target_date, sleep_target),
        )

        ramp_snapshots = weekly_snapshots(points, target_date, weeks=5)
        ramp_rate = self.check_ramp_rate(weekly_deltas([s.ctl for s in ramp_snapshots]))

        volume_jump = self.check_volume_jump(*self.helper.calendar_week_totals(activities, target_date))
        illness = self.check_illness(wellness, target_date)
        ftp_test = self.check_ftp_test(
            activities,
            target_date,
            eftp=eftp,
            tsb=metrics.tsb,
            recovery_status=recovery_status,
            weeks_out=weeks_out,
            phase=phase,
        )

        advisories = Advisories(
            deload=deload,
            ramp_rate=ramp_rate,
            volume_jump=volume_jump,
            illness=illness,
            ftp_test=ftp_test,
        )
        logger.info("Detected %d alerts for %s", len(advisories.active()), target_date.isoformat())
        return advisories
