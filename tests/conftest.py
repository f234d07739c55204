"""
Pytest Configuration and Fixtures.

Provides:
- Decision factories (a maintenance cleanup action and a low-risk read)
- Scoring context / system state matching those decisions
- Stakeholders at each clearance level
- Helpers to push a decision through scoring and classification
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

# Keep log output quiet and deterministic under test.
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "WARNING"

from riskgate.engine.classification import ClassificationContext, ClassificationEngine
from riskgate.engine.scoring import RiskScoringEngine
from riskgate.human.schemas import ClearanceLevel, Stakeholder
from riskgate.schemas.decision import (
    AuthorityScope,
    Criticality,
    DecisionMetadata,
    DecisionObject,
    PolicyExposure,
    ProjectedImpact,
    ResourceRequirement,
    RiskScoringContext,
    SystemState,
)


# ============================================================================
# DECISION FACTORIES
# ============================================================================


def _build_decision(
    decision_id: str = "dec-cleanup-001",
    action_type: str = "FILE_DELETE",
    intent: str = "Cleanup old audit records to save disk space",
    permissions: tuple[str, ...] = ("EXECUTE",),
    layer: str = "TOOL_EXECUTION",
    agent_type: str | None = None,
    exposure_level: float = 0.1,
    potential_violations: tuple[str, ...] = (),
    **impact,
) -> DecisionObject:
    projected = dict(
        system_stability_score=0.95,
        trust_weighted_propagation=0.7,
        estimated_recovery_time_seconds=0.0,
        real_world_task_impact=0.72,
        predictive_synergy_density=0.3,
        cooperative_intelligence_evolution=0.6,
    )
    projected.update(impact)
    return DecisionObject(
        id=decision_id,
        timestamp=datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        action_type=action_type,
        intent=intent,
        expected_outcome="Disk usage reduced",
        required_resources=[
            ResourceRequirement(type="API_CALL", amount=2, unit="calls", criticality=Criticality.MEDIUM),
            ResourceRequirement(type="CPU", amount=120, unit="ms", criticality=Criticality.MEDIUM),
            ResourceRequirement(type="NETWORK_EGRESS_MB", amount=0.0001, unit="MB", criticality=Criticality.LOW),
        ],
        authority_scope=AuthorityScope(
            layer=layer,
            permissions=list(permissions),
            delegation_chain=["sys-admin", "maintenance-service"],
        ),
        policy_exposure=[
            PolicyExposure(
                policy_id="DEFAULT_SAFETY_GUIDE_V1",
                exposure_level=exposure_level,
                potential_violations=list(potential_violations),
            ),
        ],
        projected_impact=ProjectedImpact(**projected),
        metadata=DecisionMetadata(agent_id="agent-ops-7", agent_type=agent_type),
    )


def _build_safe_decision(decision_id: str = "dec-read-001") -> DecisionObject:
    return DecisionObject(
        id=decision_id,
        action_type="READ_METRICS",
        intent="Read cluster utilisation metrics for the weekly capacity report",
        authority_scope=AuthorityScope(layer="OBSERVATION", permissions=["READ"]),
        projected_impact=ProjectedImpact(
            system_stability_score=1.0,
            trust_weighted_propagation=1.0,
            real_world_task_impact=1.0,
            predictive_synergy_density=1.0,
            cooperative_intelligence_evolution=1.0,
        ),
        metadata=DecisionMetadata(agent_id="agent-metrics-2"),
    )


@pytest.fixture
def decision_factory():
    """Build cleanup-style decisions with per-test overrides."""
    return _build_decision


@pytest.fixture
def cleanup_decision() -> DecisionObject:
    """Maintenance cleanup: EXECUTE permission, light policy exposure."""
    return _build_decision()


@pytest.fixture
def safe_decision_factory():
    return _build_safe_decision


@pytest.fixture
def safe_decision() -> DecisionObject:
    """Read-only action with a fully positive impact projection."""
    return _build_safe_decision()


# ============================================================================
# CONTEXT
# ============================================================================


@pytest.fixture
def cleanup_context() -> RiskScoringContext:
    return RiskScoringContext(
        historical_compliance_rate=0.95,
        budget_pressure=0.2,
        data_sensitivity=0.8,
    )


@pytest.fixture
def safe_context() -> RiskScoringContext:
    return RiskScoringContext(historical_compliance_rate=1.0)


@pytest.fixture
def light_load() -> SystemState:
    return SystemState(load_factor=0.1)


# ============================================================================
# STAKEHOLDERS
# ============================================================================


@pytest.fixture
def approver() -> Stakeholder:
    return Stakeholder(
        id="stk-approver",
        name="Avery Lin",
        role="Platform Lead",
        clearance=ClearanceLevel.APPROVER,
        expertise_domains=["infrastructure"],
    )


@pytest.fixture
def reviewer() -> Stakeholder:
    return Stakeholder(id="stk-reviewer", name="Sam Ortiz", clearance=ClearanceLevel.REVIEWER)


@pytest.fixture
def observer() -> Stakeholder:
    return Stakeholder(id="stk-observer", name="Kai Novak", clearance=ClearanceLevel.OBSERVER)


@pytest.fixture
def inactive_admin() -> Stakeholder:
    return Stakeholder(
        id="stk-retired",
        name="Jordan Reyes",
        clearance=ClearanceLevel.ADMIN,
        active=False,
    )


# ============================================================================
# PIPELINE HELPERS
# ============================================================================


@pytest.fixture
def flagged_pair(cleanup_decision, cleanup_context, light_load):
    """Score and classify the cleanup decision as flag-for-review."""

    def _make(decision=None, scoring=None, classification=None):
        decision = decision or cleanup_decision
        scoring = scoring or RiskScoringEngine()
        classification = classification or ClassificationEngine()
        score = scoring.score_decision(decision, cleanup_context, light_load)
        # Pin the context so the state does not depend on violation history.
        result = classification.classify(
            score, ClassificationContext(risk_posture=0.5, entropy_level=0.5),
        )
        return score, result

    return _make


class StepClock:
    """Deterministic clock advancing by a fixed step per call."""

    def __init__(self, start: datetime | None = None, step_seconds: float = 2.5):
        self.current = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        self.step = timedelta(seconds=step_seconds)

    def __call__(self) -> datetime:
        now = self.current
        self.current = self.current + self.step
        return now


@pytest.fixture
def step_clock() -> StepClock:
    return StepClock()
