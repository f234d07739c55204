"""
Decision Schemas — the structured description of a proposed agent action.

A DecisionObject answers:
1. What does the agent want to do? (action_type, intent, expected_outcome)
2. What does it consume? (required_resources)
3. Under what authority? (authority_scope)
4. Which policies does it touch? (policy_exposure)
5. What will it change? (projected_impact)

Optional enrichments (compliance forecast, strategic alignment, resource
analysis) are produced upstream and consumed when present. Numeric fields
are accepted as given and clamped where they are used.
"""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Criticality(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class LifecycleStage(StrEnum):
    INITIATION = "initiation"
    EXECUTION = "execution"
    PERSISTENCE = "persistence"
    TERMINATION = "termination"


class ResourceRequirement(BaseModel):
    """A resource the action consumes."""
    model_config = ConfigDict(frozen=True)

    type: str                      # CPU, API_CALL, NETWORK_EGRESS_MB, ...
    amount: float
    unit: str = ""
    criticality: Criticality = Criticality.LOW


class AuthorityScope(BaseModel):
    """The layer, permissions and delegation chain the action runs under."""
    model_config = ConfigDict(frozen=True)

    layer: str
    permissions: list[str] = Field(default_factory=list)
    delegation_chain: list[str] = Field(default_factory=list)


class PolicyExposure(BaseModel):
    """How strongly the action touches one governance policy."""
    model_config = ConfigDict(frozen=True)

    policy_id: str
    exposure_level: float          # 0-1
    potential_violations: list[str] = Field(default_factory=list)


class ProjectedImpact(BaseModel):
    """Simulated effect of the action on the cooperative system."""
    model_config = ConfigDict(frozen=True)

    system_stability_score: float = 0.0               # -1..1
    trust_weighted_propagation: float = 0.0           # -1..1
    estimated_recovery_time_seconds: float = 0.0
    real_world_task_impact: float = 0.0               # -1..1
    predictive_synergy_density: float = 0.0           # 0..1
    cooperative_intelligence_evolution: float = 0.0   # -1..1


class LifecycleStageProbabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    initiation: float
    execution: float
    persistence: float
    termination: float


class ComplianceForecast(BaseModel):
    """Probability of remaining compliant across the action lifecycle."""
    model_config = ConfigDict(frozen=True)

    overall_probability: float
    lifecycle_stage_probabilities: LifecycleStageProbabilities
    primary_risk_drivers: list[str] = Field(default_factory=list)
    estimated_drift_impact: float = 0.0


class StrategicAlignmentAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_alignment_score: float
    misalignment_penalty: float    # 0-1
    alignment_flags: list[str] = Field(default_factory=list)


class ResourceAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    computational_cost_score: float = 0.0
    estimated_financial_expenditure_usd: Optional[float] = None
    bandwidth_utilization_mbps: float = 0.0
    opportunity_tradeoff_score: float = 0.0
    projected_opportunity_cost_of_blocking_usd: float = 0.0
    economic_efficiency_score: float = 0.0


class DecisionMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent_id: str
    agent_type: Optional[str] = None
    context_id: Optional[str] = None


class HumanOverrideStamp(BaseModel):
    """Summary of the human verdict attached to a resolved decision."""
    model_config = ConfigDict(frozen=True)

    record_id: str
    verdict: str
    stakeholder_id: str
    confidence: float
    resolved_at: datetime


class DecisionObject(BaseModel):
    """A proposed agent action. Never mutated after creation."""
    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    action_type: str
    intent: str = ""
    expected_outcome: str = ""
    required_resources: list[ResourceRequirement] = Field(default_factory=list)
    authority_scope: AuthorityScope
    policy_exposure: list[PolicyExposure] = Field(default_factory=list)
    projected_impact: ProjectedImpact = Field(default_factory=ProjectedImpact)
    compliance_forecast: Optional[ComplianceForecast] = None
    strategic_alignment: Optional[StrategicAlignmentAssessment] = None
    resource_analysis: Optional[ResourceAnalysis] = None
    metadata: DecisionMetadata
    human_override: Optional[HumanOverrideStamp] = None


# ============================================================================
# SCORING INPUTS
# ============================================================================


class RiskScoringContext(BaseModel):
    """Caller-supplied context for one scoring call."""
    model_config = ConfigDict(frozen=True)

    historical_compliance_rate: Optional[float] = None    # 0-1, default 0.5
    budget_pressure: float = 0.0                          # 0-1
    data_sensitivity: float = 0.0                         # 0-1
    dimension_priorities: dict[str, float] = Field(default_factory=dict)
    preemptive_risk_lift: float = 0.0                     # 0-1


class SystemState(BaseModel):
    """Live state of the cooperative system at decision time."""
    model_config = ConfigDict(frozen=True)

    load_factor: float = 0.0                  # 0-1
    incident_active: bool = False
    regulatory_alert: bool = False
    recovery_backlog_seconds: float = 0.0
