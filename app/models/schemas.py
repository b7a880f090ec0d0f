"""Pydantic models describing the coach's intermediate decision objects."""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class _Frozen(BaseModel):
    """Base for immutable domain records."""

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RecoveryStatus(str, Enum):
    GREEN = "Green"
    YELLOW = "Yellow"
    RED = "Red"
    UNKNOWN = "Unknown"


class SleepStatus(str, Enum):
    EXCELLENT = "Excellent"
    ADEQUATE = "Adequate"
    POOR = "Poor"
    INSUFFICIENT = "Insufficient"


class TrendLabel(str, Enum):
    BUILDING = "building"
    STABLE = "stable"
    DECLINING = "declining"


class RecoveryTrendLabel(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class Phase(str, Enum):
    """Periodization phases, ordered from furthest to closest to the goal."""

    BASE = "Base"
    BUILD = "Build"
    SPECIALTY = "Specialty"
    TAPER = "Taper"
    RACE_WEEK = "Race Week"


class TransitionAction(str, Enum):
    HOLD = "hold"
    ACCELERATE = "accelerate"
    DELAY = "delay"
    REGRESS = "regress"


class Severity(str, Enum):
    NONE = "none"
    LOW = "low"
    CAUTION = "caution"
    MEDIUM = "medium"
    WARNING = "warning"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = list(Severity)


class FeedbackRecommendation(str, Enum):
    EASIER = "easier"
    MAINTAIN = "maintain"
    HARDER = "harder"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INSUFFICIENT = "insufficient"


class EventCategory(str, Enum):
    RACE_A = "RACE_A"
    RACE_B = "RACE_B"
    RACE_C = "RACE_C"
    WORKOUT = "WORKOUT"
    NOTE = "NOTE"
    HOLIDAY = "HOLIDAY"
    OTHER = "OTHER"

    @property
    def is_race(self) -> bool:
        return self in {EventCategory.RACE_A, EventCategory.RACE_B, EventCategory.RACE_C}


# ---------------------------------------------------------------------------
# Raw records from collaborators
# ---------------------------------------------------------------------------


class WellnessRecord(_Frozen):
    """One calendar day of physiological and subjective readings."""

    date: date
    sleep_hours: float | None = Field(default=None, ge=0)
    sleep_quality: int | None = Field(default=None, ge=1, le=5)
    resting_hr: float | None = Field(default=None, gt=0)
    hrv: float | None = Field(default=None, gt=0)
    recovery_score: float | None = Field(default=None, ge=0, le=100)
    soreness: int | None = Field(default=None, ge=1, le=5)
    fatigue: int | None = Field(default=None, ge=1, le=5)
    stress: int | None = Field(default=None, ge=1, le=5)
    mood: int | None = Field(default=None, ge=1, le=5)

    @property
    def has_physiological_data(self) -> bool:
        return bool(self.sleep_hours and self.sleep_hours > 0) or self.hrv is not None or self.recovery_score is not None


class FitnessPoint(_Frozen):
    """Daily training-load snapshot as reported by the fitness service."""

    date: date
    ctl: float | None = None
    atl: float | None = None
    ramp_rate: float | None = None
    eftp: float | None = None


class ActivityRecord(_Frozen):
    id: str
    date: date
    sport: str
    name: str = ""
    training_load: float | None = None
    ftp: float | None = None
    rpe: int | None = Field(default=None, ge=1, le=10)
    feel: int | None = Field(default=None, ge=1, le=5)
    is_threshold_test: bool = False

    @property
    def has_feedback(self) -> bool:
        return self.rpe is not None or self.feel is not None


class CalendarEvent(_Frozen):
    id: str
    date: date
    category: EventCategory
    name: str = ""
    description: str | None = None


# ---------------------------------------------------------------------------
# Derived objects
# ---------------------------------------------------------------------------


class WellnessSummary(_Frozen):
    recovery_status: RecoveryStatus
    sleep_status: SleepStatus | None = None
    intensity_modifier: float = Field(ge=0, le=1)
    data_date: date | None = None
    classified_by: str = "none"
    recovery_score: float | None = None
    hrv: float | None = None
    resting_hr: float | None = None
    sleep_hours: float | None = None
    avg_sleep_hours: float | None = None
    avg_hrv: float | None = None
    avg_resting_hr: float | None = None
    avg_recovery_score: float | None = None
    hrv_deviation_pct: float | None = None
    soreness: int | None = None
    fatigue: int | None = None
    stress: int | None = None
    mood: int | None = None

    @property
    def has_data(self) -> bool:
        return self.data_date is not None


class FitnessMetrics(_Frozen):
    ctl: float = 0.0
    atl: float = 0.0
    ramp_rate: float | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def tsb(self) -> float:
        return round(self.ctl - self.atl, 1)


class WeeklySnapshot(_Frozen):
    date: date
    ctl: float | None = None
    eftp: float | None = None


class RecoveryTrend(_Frozen):
    trend: RecoveryTrendLabel = RecoveryTrendLabel.STABLE
    source: str = "none"
    recent_average: float | None = None
    earlier_average: float | None = None
    sustainable: bool | None = None


class FitnessTrajectory(_Frozen):
    snapshots: list[WeeklySnapshot] = Field(default_factory=list)
    ctl_deltas: list[float] = Field(default_factory=list)
    eftp_deltas: list[float] = Field(default_factory=list)
    ctl_trend: TrendLabel = TrendLabel.STABLE
    eftp_trend: TrendLabel = TrendLabel.STABLE
    consistency_pct: float = 0.0
    current_ctl: float | None = None
    current_eftp: float | None = None
    target_ftp: float | None = None
    eftp_progress_pct: float | None = None
    eftp_on_track: bool | None = None
    recovery_trend: RecoveryTrend = Field(default_factory=RecoveryTrend)
    base_complete: bool = False
    build_complete: bool = False
    ready_for_specialty: bool = False
    ready_for_taper: bool = False
    insufficient_data: bool = False


class PhaseTransitionAdvice(_Frozen):
    current_phase: Phase
    recommended_phase: Phase
    action: TransitionAction = TransitionAction.HOLD
    reason: str = ""


class PhaseOverride(_Frozen):
    phase: str
    reasoning: str
    confidence: str = "medium"
    overridden: bool = True


class TrainingPhase(_Frozen):
    phase: str
    deterministic_phase: Phase
    weeks_out: int | None
    focus: str
    reasoning: list[str] = Field(default_factory=list)
    adjustments: list[str] = Field(default_factory=list)
    confidence_level: str = "medium"
    advisor_enhanced: bool = False
    override: PhaseOverride | None = None
    transition: PhaseTransitionAdvice | None = None


class LoadAdvice(_Frozen):
    current_ctl: float
    target_ctl: float
    weeks_out: int | None
    required_weekly_ramp: float
    ramp_label: str
    weekly_tss_min: float
    weekly_tss_max: float
    daily_tss_min: float
    daily_tss_max: float
    reduction_pct: int = 0
    warnings: list[str] = Field(default_factory=list)
    reasoning: str = ""
    advisor_enhanced: bool = False


class Advisory(_Frozen):
    detected: bool = False
    severity: Severity = Severity.NONE
    reasons: list[str] = Field(default_factory=list)
    recommendation: str = ""


class DeloadAdvisory(Advisory):
    weekly_totals: list[float] = Field(default_factory=list)
    weeks_without_deload: int = 0
    last_deload_weeks_ago: int | None = None
    weeks_above_target: int = 0
    sleep_debt_hours: float = 0.0
    urgency_score: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def needed(self) -> bool:
        return self.detected


class RampRateAdvisory(Advisory):
    weekly_ramp_rates: list[float] = Field(default_factory=list)
    consecutive_over_critical: int = 0
    consecutive_over_warning: int = 0


class VolumeJumpAdvisory(Advisory):
    last_week_tss: float = 0.0
    previous_week_tss: float = 0.0
    percent_change: float | None = None
    risk: Severity = Severity.NONE
    possible_illness: bool = False


class IllnessAdvisory(Advisory):
    signals: list[str] = Field(default_factory=list)
    consecutive_days: int = 0
    rhr_elevation_bpm: float | None = None
    hrv_drop_pct: float | None = None
    sleep_deficit_hours: float | None = None


class FtpTestAdvisory(Advisory):
    days_since_last_test: int | None = None
    eftp_gap_pct: float | None = None
    blockers: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def suggested(self) -> bool:
        return self.detected


class Advisories(_Frozen):
    deload: DeloadAdvisory
    ramp_rate: RampRateAdvisory
    volume_jump: VolumeJumpAdvisory
    illness: IllnessAdvisory
    ftp_test: FtpTestAdvisory

    def active(self) -> list[tuple[str, Advisory]]:
        """Return (name, advisory) pairs that fired, most severe first."""

        fired = [(name, getattr(self, name)) for name in type(self).model_fields]
        fired = [(name, advisory) for name, advisory in fired if advisory.detected]
        return sorted(fired, key=lambda item: item[1].severity.rank, reverse=True)


class AdaptiveFeedback(_Frozen):
    recommendation: FeedbackRecommendation = FeedbackRecommendation.MAINTAIN
    confidence: Confidence = Confidence.INSUFFICIENT
    intensity_adjustment_pct: int = 0
    score: float = 0.0
    sample_size: int = 0
    avg_feel: float | None = None
    avg_rpe: float | None = None
    reasoning: list[str] = Field(default_factory=list)


class TrainingGap(_Frozen):
    days_since_last: int | None
    interpretation: str
    intensity_multiplier: float = 1.0
    reasoning: str = ""


class AdaptiveAdjustment(_Frozen):
    feedback: AdaptiveFeedback
    gap: TrainingGap
    combined_adjustment_pct: int = 0


class WorkoutDecision(_Frozen):
    workout_type: str
    max_intensity: int = Field(ge=1, le=5)
    is_rest_day: bool = False
    reason: str
    advisor_enhanced: bool = False


class DailyCoachReport(_Frozen):
    """Terminal artifact handed to the upload/notification collaborators."""

    target_date: date
    generated_at: datetime
    sport: str
    wellness: WellnessSummary
    fitness: FitnessMetrics
    trajectory: FitnessTrajectory
    goal_event: CalendarEvent | None = None
    phase: TrainingPhase
    load: LoadAdvice
    advisories: Advisories
    adaptive: AdaptiveAdjustment
    decision: WorkoutDecision
