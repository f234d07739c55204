"""
RiskGate Human Override Module.

Human oversight of flagged decisions:
- Override requests for every flag-for-review decision
- Clearance-checked verdicts (APPROVED / REJECTED / ESCALATED)
- Verdicts translated into calibration feedback for both engines
- Adaptation signal aggregated for threshold optimization

CRITICAL: All verdicts create immutable audit records.
"""

from riskgate.human.override import (
    HumanOverrideInterface,
    authorize_stakeholder,
    required_clearance_for,
)
from riskgate.human.schemas import (
    Annotation,
    AnnotationCategory,
    ClearanceLevel,
    DimensionDisagreement,
    OverrideAdaptationSignal,
    OverrideRationale,
    OverrideRecord,
    OverrideRequest,
    OverrideVerdict,
    Stakeholder,
)

__all__ = [
    # Interface
    "HumanOverrideInterface",
    "authorize_stakeholder",
    "required_clearance_for",
    # Schemas
    "Annotation",
    "AnnotationCategory",
    "ClearanceLevel",
    "DimensionDisagreement",
    "OverrideAdaptationSignal",
    "OverrideRationale",
    "OverrideRecord",
    "OverrideRequest",
    "OverrideVerdict",
    "Stakeholder",
]
