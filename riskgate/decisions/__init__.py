"""
RiskGate Decisions — the gate pipeline and its enforcement output.
"""

from riskgate.decisions.enforcement import (
    EnforcementAction,
    EnforcementDirective,
    EnforcementPlatform,
    GovernanceAuditEntry,
)
from riskgate.decisions.gate import (
    CalibrationCycleReport,
    DecisionGate,
    GateDecision,
    derive_risk_posture,
)

__all__ = [
    "CalibrationCycleReport",
    "DecisionGate",
    "EnforcementAction",
    "EnforcementDirective",
    "EnforcementPlatform",
    "GateDecision",
    "GovernanceAuditEntry",
    "derive_risk_posture",
]
