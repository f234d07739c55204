"""
Human override schemas.

These schemas define the data structures for:
- Stakeholders and their clearance
- Override rationale, dimension disagreements and annotations
- Override requests (pending → resolved) and immutable override records
- The aggregate adaptation signal fed to threshold optimization

Every resolved request produces exactly one immutable OverrideRecord.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from riskgate.engine.classification import ClassificationResult
from riskgate.engine.dimensions import DimensionVector, RiskDimension
from riskgate.engine.scoring import RiskScoreResult
from riskgate.schemas.decision import DecisionObject


class OverrideVerdict(StrEnum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ESCALATED = "ESCALATED"


class ClearanceLevel(StrEnum):
    OBSERVER = "OBSERVER"
    REVIEWER = "REVIEWER"
    APPROVER = "APPROVER"
    ADMIN = "ADMIN"


CLEARANCE_RANK: dict[ClearanceLevel, int] = {
    ClearanceLevel.OBSERVER: 0,
    ClearanceLevel.REVIEWER: 1,
    ClearanceLevel.APPROVER: 2,
    ClearanceLevel.ADMIN: 3,
}

REQUIRED_CLEARANCE: dict[OverrideVerdict, ClearanceLevel] = {
    OverrideVerdict.APPROVED: ClearanceLevel.APPROVER,
    OverrideVerdict.REJECTED: ClearanceLevel.APPROVER,
    OverrideVerdict.ESCALATED: ClearanceLevel.REVIEWER,
}


class AnnotationCategory(StrEnum):
    POLICY_REFERENCE = "POLICY_REFERENCE"
    RISK_OBSERVATION = "RISK_OBSERVATION"
    HISTORICAL_PRECEDENT = "HISTORICAL_PRECEDENT"
    DOMAIN_CONTEXT = "DOMAIN_CONTEXT"
    MITIGATION_SUGGESTION = "MITIGATION_SUGGESTION"
    COMPLIANCE_NOTE = "COMPLIANCE_NOTE"
    GENERAL = "GENERAL"


# ============================================================================
# STAKEHOLDER INPUT
# ============================================================================


class Stakeholder(BaseModel):
    """A human reviewer able to submit verdicts."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    role: str = ""
    department: str = ""
    clearance: ClearanceLevel = ClearanceLevel.OBSERVER
    expertise_domains: list[str] = Field(default_factory=list)
    active: bool = True


class DimensionDisagreement(BaseModel):
    """
    Stakeholder view on one risk dimension.

    stakeholder_assessment > 0 means the system overstated the dimension,
    < 0 means it understated it.
    """
    model_config = ConfigDict(frozen=True)

    dimension: RiskDimension
    stakeholder_assessment: float        # -1..1
    justification: str = ""


class OverrideRationale(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: str
    confidence_level: float = Field(default=0.5, description="0-1, clamped on submit")
    dimension_disagreements: list[DimensionDisagreement] = Field(default_factory=list)
    risk_accepted: bool = False
    conditional_requirements: list[str] = Field(default_factory=list)


class Annotation(BaseModel):
    model_config = ConfigDict(frozen=True)

    annotation_id: str
    author_id: str
    category: AnnotationCategory = AnnotationCategory.GENERAL
    content: str
    relevance_weight: float = 0.5        # 0-1, clamped on submit
    created_at: datetime
    related_dimension: Optional[RiskDimension] = None


# ============================================================================
# REQUESTS AND RECORDS
# ============================================================================


@dataclass
class OverrideRequest:
    """A flagged decision awaiting a human verdict."""
    request_id: str
    decision: DecisionObject
    score_result: RiskScoreResult
    classification: ClassificationResult
    flagged_at: datetime
    resolved: bool = False
    override_record_id: Optional[str] = None


@dataclass(frozen=True)
class OverrideRecord:
    """Immutable audit record of one resolved override."""
    record_id: str
    request_id: str
    decision_id: str
    stakeholder: Stakeholder
    verdict: OverrideVerdict
    rationale: OverrideRationale
    annotations: tuple[Annotation, ...]
    original_score_result: RiskScoreResult
    original_classification: ClassificationResult
    submitted_at: datetime
    review_duration_ms: float

    @property
    def confidence(self) -> float:
        return self.rationale.confidence_level


@dataclass(frozen=True)
class OverrideAdaptationSignal:
    """Aggregate of recent overrides, consumed by threshold optimization."""
    sample_size: int = 0
    approval_rate: float = 0.0
    rejection_rate: float = 0.0
    escalation_rate: float = 0.0
    average_confidence: float = 0.0
    average_review_duration_ms: float = 0.0
    conditional_approval_rate: float = 0.0
    weighted_dimension_disagreements: DimensionVector = field(
        default_factory=lambda: DimensionVector.uniform(0.0)
    )
