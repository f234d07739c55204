"""Shared input schemas for the decision-gating pipeline."""

from riskgate.schemas.decision import (
    AuthorityScope,
    ComplianceForecast,
    Criticality,
    DecisionMetadata,
    DecisionObject,
    HumanOverrideStamp,
    LifecycleStage,
    LifecycleStageProbabilities,
    PolicyExposure,
    ProjectedImpact,
    ResourceAnalysis,
    ResourceRequirement,
    RiskScoringContext,
    StrategicAlignmentAssessment,
    SystemState,
)

__all__ = [
    "AuthorityScope",
    "ComplianceForecast",
    "Criticality",
    "DecisionMetadata",
    "DecisionObject",
    "HumanOverrideStamp",
    "LifecycleStage",
    "LifecycleStageProbabilities",
    "PolicyExposure",
    "ProjectedImpact",
    "ResourceAnalysis",
    "ResourceRequirement",
    "RiskScoringContext",
    "StrategicAlignmentAssessment",
    "SystemState",
]
