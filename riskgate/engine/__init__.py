"""
RiskGate Engines — scoring, classification and preemptive detection.

All engines hold their mutable state behind a per-instance lock and
never mutate the DecisionObjects they read.
"""

from riskgate.engine.classification import (
    ClassificationContext,
    ClassificationEngine,
    ClassificationResult,
    ClassificationState,
    ThresholdBand,
    ViolationTrendSnapshot,
)
from riskgate.engine.dimensions import DimensionVector, RiskDimension
from riskgate.engine.preemptive import (
    DownstreamOutcomeRecord,
    PatternAggregate,
    PreemptiveDetectionLayer,
    PreemptiveRiskAssessment,
)
from riskgate.engine.scoring import ObservedOutcome, RiskScoreResult, RiskScoringEngine

__all__ = [
    "ClassificationContext",
    "ClassificationEngine",
    "ClassificationResult",
    "ClassificationState",
    "DimensionVector",
    "DownstreamOutcomeRecord",
    "ObservedOutcome",
    "PatternAggregate",
    "PreemptiveDetectionLayer",
    "PreemptiveRiskAssessment",
    "RiskDimension",
    "RiskScoreResult",
    "RiskScoringEngine",
    "ThresholdBand",
    "ViolationTrendSnapshot",
]
