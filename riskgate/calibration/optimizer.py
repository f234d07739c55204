"""
Threshold Optimization Engine.

Consumes queued calibration signals in batches and turns them into a new,
versioned gate configuration:

1. Each signal contributes tightening or relaxing pressure, weighted by
   its confidence, plus optional per-dimension weight nudges
2. Opposing pressure in the same batch is dampened
3. The band shift is capped per cycle
4. A new ConfigVersion is created, activated and applied to both engines

Every version keeps the absolute configuration (band, conservatism bias,
adaptive multipliers), so rollback restores it exactly. Version numbers
only grow; rollback reactivates an old version without creating a new one.
"""

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

import structlog

from riskgate.calibration.signals import (
    ConfigVersion,
    FalsePositiveSignal,
    MissedViolationSignal,
    OptimizationSignal,
    OutcomeSignal,
    OverrideSignal,
    SignalType,
)
from riskgate.engine.classification import (
    BASE_THRESHOLD_BAND,
    ClassificationEngine,
    ClassificationState,
    ThresholdBand,
    normalize_threshold_band,
)
from riskgate.engine.dimensions import DimensionVector, RiskDimension, clamp, clamp01
from riskgate.engine.scoring import RiskScoringEngine
from riskgate.human.schemas import OverrideAdaptationSignal, OverrideVerdict

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_MINIMUM_SIGNAL_COUNT: int = 5
DEFAULT_MAX_SHIFT_PER_CYCLE: float = 4.0
DEFAULT_LEARNING_RATE: float = 0.1
DEFAULT_MAX_VERSION_HISTORY: int = 50
DEFAULT_EMA_ALPHA: float = 0.2

MIN_EFFECTIVE_LEARNING_RATE: float = 0.005
MAX_EFFECTIVE_LEARNING_RATE: float = 0.2
DAMPENING_STRENGTH: float = 0.6          # factor = 1 - strength * conflict ratio
CONSERVATISM_BIAS_STEP: float = 0.05
MAX_CONSERVATISM_BIAS: float = 0.3
ADAPTATION_SIGNAL_WEIGHT: float = 1.0    # the override aggregate counts as one signal

# Pressure per signal: > 0 tightens the gate, < 0 relaxes it.
FALSE_POSITIVE_PRESSURE: float = -1.0
OUTCOME_SAFE_BLOCK_PRESSURE: float = -0.5
OUTCOME_SAFE_REVIEW_PRESSURE: float = -0.25
OUTCOME_CAUGHT_VIOLATION_PRESSURE: float = 0.25
OVERRIDE_PRESSURE: dict[OverrideVerdict, float] = {
    OverrideVerdict.APPROVED: -1.0,
    OverrideVerdict.REJECTED: 0.5,
    OverrideVerdict.ESCALATED: 0.25,
}


@dataclass(frozen=True)
class SignalAssessment:
    """How one signal pushes the gate."""
    pressure: float                                # -1..1
    dimension_nudges: dict[RiskDimension, float]
    false_positive: float                          # EMA observation, 0-1
    missed_violation: float                        # EMA observation, 0-1


@dataclass(frozen=True)
class ErrorRateIndicators:
    false_positive_rate: float
    missed_violation_rate: float
    signals_observed: int


@dataclass(frozen=True)
class OptimizationReport:
    version: ConfigVersion
    signals_processed: int
    signal_counts: dict[SignalType, int]
    effective_learning_rate: float
    net_pressure: float
    dampening_applied: bool
    dampening_factor: float
    applied_dimension_deltas: DimensionVector
    threshold_shift: float
    conservatism_bias_delta: float


@dataclass(frozen=True)
class RollbackResult:
    success: bool
    reason: str
    previous_version: Optional[ConfigVersion] = None
    active_version: Optional[ConfigVersion] = None


def assess_signal(signal: OptimizationSignal) -> SignalAssessment:
    """Translate one signal into gate pressure and dimension nudges."""
    if isinstance(signal, FalsePositiveSignal):
        return SignalAssessment(
            pressure=FALSE_POSITIVE_PRESSURE,
            dimension_nudges={d: -1.0 for d in signal.overweighted_dimensions},
            false_positive=1.0,
            missed_violation=0.0,
        )

    if isinstance(signal, MissedViolationSignal):
        return SignalAssessment(
            pressure=0.5 + 0.5 * clamp01(signal.severity),
            dimension_nudges={d: 1.0 for d in signal.underweighted_dimensions},
            false_positive=0.0,
            missed_violation=1.0,
        )

    if isinstance(signal, OutcomeSignal):
        state = signal.classification.state
        if signal.violated:
            if state == ClassificationState.AUTO_APPROVE:
                return SignalAssessment(0.5 + 0.5 * clamp01(signal.severity), {}, 0.0, 1.0)
            return SignalAssessment(OUTCOME_CAUGHT_VIOLATION_PRESSURE, {}, 0.0, 0.0)
        if state == ClassificationState.BLOCK:
            return SignalAssessment(OUTCOME_SAFE_BLOCK_PRESSURE, {}, 1.0, 0.0)
        if state == ClassificationState.FLAG_FOR_REVIEW:
            return SignalAssessment(OUTCOME_SAFE_REVIEW_PRESSURE, {}, 0.5, 0.0)
        return SignalAssessment(0.0, {}, 0.0, 0.0)

    if isinstance(signal, OverrideSignal):
        return SignalAssessment(
            pressure=OVERRIDE_PRESSURE[signal.verdict],
            dimension_nudges={
                dim: -clamp(assessment, -1.0, 1.0)
                for dim, assessment in signal.dimension_disagreements
            },
            false_positive=1.0 if signal.verdict == OverrideVerdict.APPROVED else 0.0,
            missed_violation=0.0,
        )

    raise TypeError(f"Unsupported optimization signal: {type(signal).__name__}")


class ThresholdOptimizationEngine:
    """
    Versioned, rollback-capable optimizer for the classification band and
    scoring multipliers.

    Exactly one version is active at any time. Signal ingestion and
    optimization are serialized by one RLock.
    """

    def __init__(
        self,
        minimum_signal_count: int = DEFAULT_MINIMUM_SIGNAL_COUNT,
        max_shift_per_cycle: float = DEFAULT_MAX_SHIFT_PER_CYCLE,
        learning_rate: float = DEFAULT_LEARNING_RATE,
        max_version_history: int = DEFAULT_MAX_VERSION_HISTORY,
        ema_alpha: float = DEFAULT_EMA_ALPHA,
        initial_band: ThresholdBand = BASE_THRESHOLD_BAND,
        initial_conservatism_bias: float = 0.0,
        initial_multipliers: Optional[DimensionVector] = None,
    ):
        self.minimum_signal_count = max(1, int(minimum_signal_count))
        self.max_shift_per_cycle = abs(max_shift_per_cycle)
        self.learning_rate = clamp(learning_rate, MIN_EFFECTIVE_LEARNING_RATE, MAX_EFFECTIVE_LEARNING_RATE)
        self.max_version_history = max(2, int(max_version_history))
        self.ema_alpha = clamp01(ema_alpha)

        self._pending: list[OptimizationSignal] = []
        self._versions: list[ConfigVersion] = []
        self._next_version_number = 1
        self._fp_rate = 0.0
        self._missed_rate = 0.0
        self._signals_observed = 0
        self._lock = threading.RLock()

        self._append_version(
            threshold_band=normalize_threshold_band(
                initial_band.auto_approve_min, initial_band.block_max,
            ),
            conservatism_bias=clamp(initial_conservatism_bias, -MAX_CONSERVATISM_BIAS, MAX_CONSERVATISM_BIAS),
            adaptive_multipliers=initial_multipliers or DimensionVector.uniform(1.0),
            triggering_signal_ids=(),
            change_reason="initial configuration",
        )

    # ── Signals ───────────────────────────────────────────────────────

    def ingest_signal(self, signal: OptimizationSignal) -> None:
        with self._lock:
            self._pending.append(signal)
            pending = len(self._pending)
        logger.debug(
            "optimization_signal_ingested",
            signal_id=signal.signal_id,
            signal_type=signal.signal_type.value,
            pending=pending,
        )

    @property
    def pending_signal_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def get_error_rate_indicators(self) -> ErrorRateIndicators:
        with self._lock:
            return ErrorRateIndicators(
                false_positive_rate=round(self._fp_rate, 4),
                missed_violation_rate=round(self._missed_rate, 4),
                signals_observed=self._signals_observed,
            )

    # ── Versions ──────────────────────────────────────────────────────

    def get_active_version(self) -> ConfigVersion:
        with self._lock:
            return next(v for v in self._versions if v.active)

    def get_version_history(self) -> list[ConfigVersion]:
        with self._lock:
            return list(self._versions)

    def get_version(self, version_id: str) -> Optional[ConfigVersion]:
        with self._lock:
            return next((v for v in self._versions if v.version_id == version_id), None)

    def _append_version(
        self,
        threshold_band: ThresholdBand,
        conservatism_bias: float,
        adaptive_multipliers: DimensionVector,
        triggering_signal_ids: tuple[str, ...],
        change_reason: str,
    ) -> ConfigVersion:
        version = ConfigVersion(
            version_id=f"cfg_{uuid.uuid4().hex[:12]}",
            version_number=self._next_version_number,
            created_at=datetime.now(timezone.utc),
            active=True,
            conservatism_bias=conservatism_bias,
            threshold_band=threshold_band,
            adaptive_multipliers=adaptive_multipliers,
            triggering_signal_ids=triggering_signal_ids,
            change_reason=change_reason,
        )
        self._next_version_number += 1
        self._versions = [replace(v, active=False) if v.active else v for v in self._versions]
        self._versions.append(version)
        self._evict_versions()
        return version

    def _activate(self, version_id: str) -> ConfigVersion:
        self._versions = [replace(v, active=(v.version_id == version_id)) for v in self._versions]
        return next(v for v in self._versions if v.active)

    def _evict_versions(self) -> None:
        while len(self._versions) > self.max_version_history:
            oldest_inactive = next((v for v in self._versions if not v.active), None)
            if oldest_inactive is None:
                return
            self._versions.remove(oldest_inactive)

    # ── Optimization ──────────────────────────────────────────────────

    def optimize(
        self,
        scoring_engine: RiskScoringEngine,
        classification_engine: ClassificationEngine,
        override_adaptation_signal: Optional[OverrideAdaptationSignal] = None,
    ) -> Optional[OptimizationReport]:
        """
        Consume pending signals into a new active configuration.

        Returns:
            The report, or None while fewer than minimum_signal_count
            signals are pending.
        """
        with self._lock:
            if len(self._pending) < self.minimum_signal_count:
                logger.debug(
                    "optimization_skipped",
                    pending=len(self._pending),
                    minimum_signal_count=self.minimum_signal_count,
                )
                return None

            signals = self._pending
            self._pending = []

            counts = {signal_type: 0 for signal_type in SignalType}
            tighten = relax = total_weight = 0.0
            nudge_sums = {dim: 0.0 for dim in RiskDimension}

            for signal in signals:
                counts[signal.signal_type] += 1
                assessment = assess_signal(signal)
                weight = clamp01(signal.confidence)
                total_weight += weight
                tighten += weight * max(assessment.pressure, 0.0)
                relax += weight * max(-assessment.pressure, 0.0)
                for dim, nudge in assessment.dimension_nudges.items():
                    nudge_sums[dim] += weight * nudge

                self._fp_rate += self.ema_alpha * (assessment.false_positive - self._fp_rate)
                self._missed_rate += self.ema_alpha * (assessment.missed_violation - self._missed_rate)
                self._signals_observed += 1

            mean_confidence = total_weight / len(signals)

            adaptation = override_adaptation_signal
            if adaptation is not None and adaptation.sample_size > 0:
                bias = (adaptation.rejection_rate - adaptation.approval_rate) * adaptation.average_confidence
                weight = ADAPTATION_SIGNAL_WEIGHT
                total_weight += weight
                tighten += weight * max(bias, 0.0)
                relax += weight * max(-bias, 0.0)
                for dim, disagreement in adaptation.weighted_dimension_disagreements.items():
                    nudge_sums[dim] += -disagreement * adaptation.average_confidence * weight

            net_pressure = (tighten - relax) / total_weight if total_weight > 0 else 0.0
            conflict = min(tighten, relax) / max(tighten, relax) if tighten > 0 and relax > 0 else 0.0
            dampening_applied = conflict > 0
            dampening_factor = 1.0 - DAMPENING_STRENGTH * conflict

            threshold_shift = clamp(
                net_pressure * dampening_factor * self.max_shift_per_cycle,
                -self.max_shift_per_cycle,
                self.max_shift_per_cycle,
            )
            effective_lr = clamp(
                self.learning_rate * mean_confidence * dampening_factor,
                MIN_EFFECTIVE_LEARNING_RATE,
                MAX_EFFECTIVE_LEARNING_RATE,
            )
            dimension_deltas = DimensionVector.from_mapping({
                dim: clamp(total / total_weight * dampening_factor, -1.0, 1.0) if total_weight > 0 else 0.0
                for dim, total in nudge_sums.items()
            })

            previous = next(v for v in self._versions if v.active)
            if any(value != 0 for _, value in dimension_deltas.items()):
                multipliers = scoring_engine.apply_adaptive_multiplier_deltas(
                    dict(dimension_deltas.items()), effective_lr,
                )
            else:
                multipliers = scoring_engine.get_adaptive_multipliers()

            new_bias = clamp(
                previous.conservatism_bias + net_pressure * dampening_factor * CONSERVATISM_BIAS_STEP,
                -MAX_CONSERVATISM_BIAS,
                MAX_CONSERVATISM_BIAS,
            )
            new_band = normalize_threshold_band(
                previous.threshold_band.auto_approve_min + threshold_shift,
                previous.threshold_band.block_max + threshold_shift,
            )

            reason = (
                f"{len(signals)} signals "
                f"(false_positive={counts[SignalType.FALSE_POSITIVE]}, "
                f"missed_violation={counts[SignalType.MISSED_VIOLATION]}, "
                f"outcome={counts[SignalType.OUTCOME]}, "
                f"override={counts[SignalType.OVERRIDE]}); "
                f"net pressure {net_pressure:+.3f}"
                + (f", dampened x{dampening_factor:.2f}" if dampening_applied else "")
            )
            version = self._append_version(
                threshold_band=new_band,
                conservatism_bias=new_bias,
                adaptive_multipliers=multipliers,
                triggering_signal_ids=tuple(s.signal_id for s in signals),
                change_reason=reason,
            )
            classification_engine.apply_configuration(new_band, new_bias)

        logger.info(
            "threshold_configuration_optimized",
            version_id=version.version_id,
            version_number=version.version_number,
            signals_processed=len(signals),
            threshold_shift=round(threshold_shift, 4),
            dampening_applied=dampening_applied,
        )
        return OptimizationReport(
            version=version,
            signals_processed=len(signals),
            signal_counts=counts,
            effective_learning_rate=round(effective_lr, 6),
            net_pressure=round(net_pressure, 4),
            dampening_applied=dampening_applied,
            dampening_factor=round(dampening_factor, 4),
            applied_dimension_deltas=dimension_deltas,
            threshold_shift=threshold_shift,
            conservatism_bias_delta=new_bias - previous.conservatism_bias,
        )

    def rollback(
        self,
        version_id: str,
        reason: str,
        scoring_engine: RiskScoringEngine,
        classification_engine: ClassificationEngine,
    ) -> RollbackResult:
        """Reapply a retained version's configuration and make it the active one."""
        with self._lock:
            previous = next(v for v in self._versions if v.active)
            target = next((v for v in self._versions if v.version_id == version_id), None)
            if target is None:
                logger.warning(
                    "configuration_rollback_failed",
                    version_id=version_id,
                    reason=reason,
                )
                return RollbackResult(
                    success=False,
                    reason=f"Version {version_id} is not retained",
                    previous_version=previous,
                    active_version=previous,
                )

            scoring_engine.set_adaptive_multipliers(target.adaptive_multipliers)
            classification_engine.apply_configuration(target.threshold_band, target.conservatism_bias)
            active = self._activate(version_id)

        logger.info(
            "configuration_rolled_back",
            from_version=previous.version_number,
            to_version=active.version_number,
            reason=reason,
        )
        return RollbackResult(
            success=True,
            reason=reason,
            previous_version=previous,
            active_version=active,
        )
