"""
Calibration collaborators — the simulation and compliance models tuned by
historical feedback.
"""

from riskgate.collaborators.compliance import (
    ComplianceCalibrationDeltas,
    ComplianceEstimator,
    HistoricalViolationPattern,
    PolicySchema,
)
from riskgate.collaborators.simulation import (
    ImpactSimulationModule,
    SimulationAssumptions,
    SimulationResult,
)

__all__ = [
    "ComplianceCalibrationDeltas",
    "ComplianceEstimator",
    "HistoricalViolationPattern",
    "ImpactSimulationModule",
    "PolicySchema",
    "SimulationAssumptions",
    "SimulationResult",
]
