"""
Optimization signals and configuration versions.

A calibration signal is any observation that says the gate was too strict
or too lenient: a false positive, a missed violation, a realized outcome,
or a human override. Signals queue up in the threshold optimizer and are
consumed in batches.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import ClassVar, Optional, Union

from riskgate.engine.classification import ClassificationResult, ThresholdBand
from riskgate.engine.dimensions import DimensionVector, RiskDimension
from riskgate.engine.scoring import RiskScoreResult
from riskgate.human.schemas import OverrideRecord, OverrideVerdict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _signal_id() -> str:
    return f"sig_{uuid.uuid4().hex[:16]}"


class SignalType(StrEnum):
    FALSE_POSITIVE = "false_positive"
    MISSED_VIOLATION = "missed_violation"
    OUTCOME = "outcome"
    OVERRIDE = "override"


@dataclass(frozen=True)
class _SignalBase:
    score_result: RiskScoreResult
    classification: ClassificationResult
    confidence: float = 1.0
    signal_id: str = field(default_factory=_signal_id)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class FalsePositiveSignal(_SignalBase):
    """A flagged or blocked decision that turned out to be safe."""
    signal_type: ClassVar[SignalType] = SignalType.FALSE_POSITIVE
    overweighted_dimensions: tuple[RiskDimension, ...] = ()


@dataclass(frozen=True)
class MissedViolationSignal(_SignalBase):
    """An approved decision that went on to violate policy."""
    signal_type: ClassVar[SignalType] = SignalType.MISSED_VIOLATION
    severity: float = 0.6
    underweighted_dimensions: tuple[RiskDimension, ...] = ()


@dataclass(frozen=True)
class OutcomeSignal(_SignalBase):
    """A realized outcome, interpreted against the original classification."""
    signal_type: ClassVar[SignalType] = SignalType.OUTCOME
    violated: bool = False
    severity: float = 0.0


@dataclass(frozen=True)
class OverrideSignal(_SignalBase):
    """A human verdict on a flagged decision."""
    signal_type: ClassVar[SignalType] = SignalType.OVERRIDE
    verdict: OverrideVerdict = OverrideVerdict.ESCALATED
    dimension_disagreements: tuple[tuple[RiskDimension, float], ...] = ()
    override_record_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: OverrideRecord) -> "OverrideSignal":
        return cls(
            score_result=record.original_score_result,
            classification=record.original_classification,
            confidence=record.confidence,
            verdict=record.verdict,
            dimension_disagreements=tuple(
                (d.dimension, d.stakeholder_assessment)
                for d in record.rationale.dimension_disagreements
            ),
            override_record_id=record.record_id,
        )


OptimizationSignal = Union[
    FalsePositiveSignal,
    MissedViolationSignal,
    OutcomeSignal,
    OverrideSignal,
]


@dataclass(frozen=True)
class ConfigVersion:
    """Snapshot of the tunable gate configuration, retained for rollback."""
    version_id: str
    version_number: int
    created_at: datetime
    active: bool
    conservatism_bias: float
    threshold_band: ThresholdBand
    adaptive_multipliers: DimensionVector
    triggering_signal_ids: tuple[str, ...] = ()
    change_reason: str = ""
