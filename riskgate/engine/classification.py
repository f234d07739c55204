"""
Adaptive Threshold Classification.

Maps a decision score onto auto-approve / flag-for-review / block against a
threshold band that moves with context:

- risk posture, dimension entropy and the recent violation trend combine
  into a conservatism signal that shifts the whole band
- high entropy (no dominant risk dimension) additionally pushes the band up
- the band is bounded and keeps a minimum review gap
- a preemptive risk lift can escalate the state, never relax it

Realized violations feed a bounded sliding window that drives the trend.
"""

import math
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Optional

import structlog

from riskgate.engine.dimensions import RiskDimension, clamp, clamp01
from riskgate.engine.scoring import RiskScoreResult

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

BASE_AUTO_APPROVE_MIN: float = 72.0
BASE_BLOCK_MAX: float = 42.0
MIN_REVIEW_GAP: float = 12.0
MAX_THRESHOLD_SHIFT: float = 18.0
ENTROPY_EXPANSION_SCALE: float = 8.0

AUTO_APPROVE_BOUNDS: tuple[float, float] = (50.0, 95.0)
BLOCK_BOUNDS: tuple[float, float] = (5.0, 70.0)

DEFAULT_HISTORY_WINDOW: int = 50
MIN_HISTORY_WINDOW: int = 10
DEFAULT_VIOLATION_SEVERITY: float = 0.6
MIN_VIOLATION_SEVERITY_WEIGHT: float = 0.1

DEFAULT_REVIEW_ESCALATION_THRESHOLD: float = 0.14
DEFAULT_BLOCK_ESCALATION_THRESHOLD: float = 0.30

MAX_CONSERVATISM_BIAS: float = 0.5


class ClassificationState(StrEnum):
    AUTO_APPROVE = "auto-approve"
    FLAG_FOR_REVIEW = "flag-for-review"
    BLOCK = "block"


@dataclass(frozen=True)
class ThresholdBand:
    """Scores >= auto_approve_min auto-approve; scores <= block_max block."""
    auto_approve_min: float
    block_max: float

    @property
    def gap(self) -> float:
        return self.auto_approve_min - self.block_max


BASE_THRESHOLD_BAND = ThresholdBand(BASE_AUTO_APPROVE_MIN, BASE_BLOCK_MAX)


@dataclass(frozen=True)
class ViolationEvent:
    violated: bool
    severity: float = 0.0


@dataclass(frozen=True)
class ViolationTrendSnapshot:
    violation_rate: float                # rate in the recent half of the window
    momentum: float                      # 0.5 = flat, >0.5 = worsening
    severity_adjusted_rate: float


@dataclass(frozen=True)
class ClassificationContext:
    """Per-call classification inputs. Missing values are derived."""
    risk_posture: float = 0.0
    entropy_level: Optional[float] = None
    recent_violation_trend: Optional[ViolationTrendSnapshot] = None
    preemptive_risk_lift: float = 0.0
    review_escalation_threshold: Optional[float] = None
    block_escalation_threshold: Optional[float] = None


@dataclass(frozen=True)
class ClassificationSignals:
    risk_posture: float
    entropy_level: float
    violation_trend: float


@dataclass(frozen=True)
class ClassificationResult:
    decision_id: str
    decision_score: float
    state: ClassificationState
    base_state: ClassificationState          # before preemptive escalation
    threshold_band: ThresholdBand
    signals: ClassificationSignals
    conservatism_signal: float
    shift_magnitude: float
    preemptive_risk_lift: float
    rationale: tuple[str, ...] = field(default_factory=tuple)

    @property
    def escalated(self) -> bool:
        return self.state != self.base_state


def normalize_threshold_band(auto_approve_min: float, block_max: float) -> ThresholdBand:
    """Clamp both thresholds to their bounds and restore the minimum gap."""
    auto_approve = clamp(auto_approve_min, *AUTO_APPROVE_BOUNDS)
    block = clamp(block_max, *BLOCK_BOUNDS)
    if auto_approve - block < MIN_REVIEW_GAP:
        center = (auto_approve + block) / 2
        auto_approve = clamp(center + MIN_REVIEW_GAP / 2, *AUTO_APPROVE_BOUNDS)
        # Derived from auto_approve so the gap is exact.
        block = clamp(min(center - MIN_REVIEW_GAP / 2, auto_approve - MIN_REVIEW_GAP), *BLOCK_BOUNDS)
    return ThresholdBand(auto_approve_min=auto_approve, block_max=block)


def dimension_entropy(score_result: RiskScoreResult) -> float:
    """Shannon entropy of the dimension scores, normalized to [0, 1]."""
    values = [clamp01(score_result.dimension_scores[d]) for d in RiskDimension]
    total = sum(values)
    if total <= 0:
        return 0.0
    entropy = 0.0
    for value in values:
        if value <= 0:
            continue
        p = value / total
        entropy -= p * math.log2(p)
    return clamp01(entropy / math.log2(len(RiskDimension)))


def violation_trend_snapshot(events: list[ViolationEvent]) -> ViolationTrendSnapshot:
    """Recent-vs-older violation rate, momentum and severity-weighted rate."""
    total = len(events)
    if total == 0:
        return ViolationTrendSnapshot(0.0, 0.0, 0.0)

    split = max(1, total // 2)
    older, recent = events[:split], events[split:]

    def rate(window: list[ViolationEvent]) -> float:
        if not window:
            return 0.0
        return sum(1 for e in window if e.violated) / len(window)

    recent_rate = rate(recent)
    older_rate = rate(older)
    momentum = clamp01((recent_rate - older_rate + 1) / 2)
    severity_adjusted = clamp01(
        sum(max(MIN_VIOLATION_SEVERITY_WEIGHT, e.severity) for e in events if e.violated) / total
    )
    return ViolationTrendSnapshot(
        violation_rate=round(recent_rate, 4),
        momentum=round(momentum, 4),
        severity_adjusted_rate=round(severity_adjusted, 4),
    )


class ClassificationEngine:
    """
    Context-sensitive classifier with a violation feedback window.

    The base band and a conservatism bias are the tunable configuration;
    the threshold optimizer rewrites them through apply_configuration().
    """

    def __init__(
        self,
        history_window_size: int = DEFAULT_HISTORY_WINDOW,
        base_band: ThresholdBand = BASE_THRESHOLD_BAND,
        conservatism_bias: float = 0.0,
    ):
        self.history_window_size = max(MIN_HISTORY_WINDOW, int(history_window_size))
        self._events: deque[ViolationEvent] = deque()
        self._base_band = normalize_threshold_band(base_band.auto_approve_min, base_band.block_max)
        self._conservatism_bias = clamp(conservatism_bias, -MAX_CONSERVATISM_BIAS, MAX_CONSERVATISM_BIAS)
        self._lock = threading.RLock()

    # ── Configuration ─────────────────────────────────────────────────

    def get_configuration(self) -> tuple[ThresholdBand, float]:
        with self._lock:
            return self._base_band, self._conservatism_bias

    def apply_configuration(self, base_band: ThresholdBand, conservatism_bias: float) -> None:
        band = normalize_threshold_band(base_band.auto_approve_min, base_band.block_max)
        bias = clamp(conservatism_bias, -MAX_CONSERVATISM_BIAS, MAX_CONSERVATISM_BIAS)
        with self._lock:
            self._base_band = band
            self._conservatism_bias = bias
        logger.info(
            "classification_configuration_applied",
            auto_approve_min=band.auto_approve_min,
            block_max=band.block_max,
            conservatism_bias=bias,
        )

    # ── Classification ────────────────────────────────────────────────

    def classify(
        self,
        score_result: RiskScoreResult,
        context: Optional[ClassificationContext] = None,
    ) -> ClassificationResult:
        context = context or ClassificationContext()
        with self._lock:
            base_band = self._base_band
            bias = self._conservatism_bias
            events = list(self._events)

        posture = clamp01(context.risk_posture)
        entropy = (
            clamp01(context.entropy_level)
            if context.entropy_level is not None
            else dimension_entropy(score_result)
        )
        trend_snapshot = context.recent_violation_trend or violation_trend_snapshot(events)
        trend = clamp01(
            0.7 * clamp01(trend_snapshot.severity_adjusted_rate)
            + 0.3 * clamp01(trend_snapshot.momentum)
        )

        conservatism = clamp01(0.45 * posture + 0.25 * entropy + 0.30 * trend + bias)
        shift = (conservatism - 0.5) * 2 * MAX_THRESHOLD_SHIFT
        expansion = (entropy - 0.5) * ENTROPY_EXPANSION_SCALE
        band = normalize_threshold_band(
            base_band.auto_approve_min + shift + expansion,
            base_band.block_max + shift + expansion,
        )

        score = score_result.decision_score
        if score >= band.auto_approve_min:
            base_state = ClassificationState.AUTO_APPROVE
        elif score <= band.block_max:
            base_state = ClassificationState.BLOCK
        else:
            base_state = ClassificationState.FLAG_FOR_REVIEW

        lift = clamp01(context.preemptive_risk_lift)
        review_threshold = clamp01(
            context.review_escalation_threshold
            if context.review_escalation_threshold is not None
            else DEFAULT_REVIEW_ESCALATION_THRESHOLD
        )
        block_threshold = clamp01(
            context.block_escalation_threshold
            if context.block_escalation_threshold is not None
            else DEFAULT_BLOCK_ESCALATION_THRESHOLD
        )
        state = base_state
        if lift >= block_threshold:
            state = ClassificationState.BLOCK
        elif lift >= review_threshold and base_state == ClassificationState.AUTO_APPROVE:
            state = ClassificationState.FLAG_FOR_REVIEW

        rationale = [
            f"Decision score {score:.2f} evaluated against adaptive band "
            f"[block <= {band.block_max:.2f}, auto-approve >= {band.auto_approve_min:.2f}]",
            f"Conservatism signal {conservatism:.4f} from posture {posture:.4f}, "
            f"entropy {entropy:.4f}, violation trend {trend:.4f}",
            f"Threshold shift {shift:+.2f} with entropy expansion {expansion:+.2f}",
        ]
        if state != base_state:
            rationale.append(
                f"Preemptive risk lift {lift:.4f} escalated {base_state.value} to {state.value}"
            )

        result = ClassificationResult(
            decision_id=score_result.decision_id,
            decision_score=score,
            state=state,
            base_state=base_state,
            threshold_band=band,
            signals=ClassificationSignals(
                risk_posture=round(posture, 4),
                entropy_level=round(entropy, 4),
                violation_trend=round(trend, 4),
            ),
            conservatism_signal=round(conservatism, 4),
            shift_magnitude=round(shift, 4),
            preemptive_risk_lift=round(lift, 4),
            rationale=tuple(rationale),
        )

        logger.info(
            "decision_classified",
            decision_id=score_result.decision_id,
            state=state.value,
            base_state=base_state.value,
            decision_score=score,
            auto_approve_min=round(band.auto_approve_min, 2),
            block_max=round(band.block_max, 2),
        )
        return result

    # ── Violation feedback ────────────────────────────────────────────

    def record_outcome(self, violated: bool, severity: Optional[float] = None) -> None:
        """Append a realized outcome to the sliding violation window."""
        if severity is None:
            severity = DEFAULT_VIOLATION_SEVERITY if violated else 0.0
        event = ViolationEvent(violated=violated, severity=clamp01(severity))
        with self._lock:
            self._events.append(event)
            while len(self._events) > self.history_window_size:
                self._events.popleft()

    def get_violation_trend_snapshot(self) -> ViolationTrendSnapshot:
        with self._lock:
            events = list(self._events)
        return violation_trend_snapshot(events)

    @property
    def violation_window_length(self) -> int:
        with self._lock:
            return len(self._events)
