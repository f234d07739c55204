"""
RiskGate Calibration — batch historical feedback and versioned threshold
optimization with rollback.
"""

from riskgate.calibration.historical import (
    FeedbackIntegrationReport,
    HistoricalFeedbackIntegrator,
    HistoricalFeedbackRecord,
)
from riskgate.calibration.optimizer import (
    ErrorRateIndicators,
    OptimizationReport,
    RollbackResult,
    ThresholdOptimizationEngine,
)
from riskgate.calibration.signals import (
    ConfigVersion,
    FalsePositiveSignal,
    MissedViolationSignal,
    OptimizationSignal,
    OutcomeSignal,
    OverrideSignal,
    SignalType,
)

__all__ = [
    "ConfigVersion",
    "ErrorRateIndicators",
    "FalsePositiveSignal",
    "FeedbackIntegrationReport",
    "HistoricalFeedbackIntegrator",
    "HistoricalFeedbackRecord",
    "MissedViolationSignal",
    "OptimizationReport",
    "OptimizationSignal",
    "OutcomeSignal",
    "OverrideSignal",
    "RollbackResult",
    "SignalType",
    "ThresholdOptimizationEngine",
]
