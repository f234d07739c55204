"""
Decision Gate — the full gating pipeline.

Flow:
    DecisionObject
      → enrich                               (missing compliance forecast / impact projection)
      → PreemptiveDetectionLayer.assess      (recurring-failure lift)
      → RiskScoringEngine.score_decision     (lift feeds the weights)
      → ClassificationEngine.classify        (lift can escalate the state)
      → HumanOverrideInterface               (flag-for-review only)
      → enforcement directives + audit hash

Feedback paths:
    record_outcome()         → violation window, pattern history, optimizer
    resolve_override()       → both engines, optimizer
    run_calibration_cycle()  → historical integration, then optimization
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

import structlog

from riskgate.calibration.historical import (
    FeedbackIntegrationReport,
    HistoricalFeedbackIntegrator,
    HistoricalFeedbackRecord,
)
from riskgate.calibration.optimizer import (
    OptimizationReport,
    RollbackResult,
    ThresholdOptimizationEngine,
)
from riskgate.calibration.signals import (
    FalsePositiveSignal,
    MissedViolationSignal,
    OutcomeSignal,
    OverrideSignal,
)
from riskgate.collaborators.compliance import ComplianceEstimator
from riskgate.collaborators.simulation import ImpactSimulationModule
from riskgate.config import Settings, settings as default_settings
from riskgate.decisions.enforcement import (
    EnforcementAction,
    EnforcementDirective,
    EnforcementPlatform,
    GovernanceAuditEntry,
    build_directives,
    build_governance_entries,
    compute_tamper_evidence_hash,
    enforcement_action_for,
    risk_band,
)
from riskgate.engine.classification import (
    ClassificationContext,
    ClassificationEngine,
    ClassificationResult,
    ClassificationState,
    ThresholdBand,
)
from riskgate.engine.dimensions import clamp01
from riskgate.engine.preemptive import PreemptiveDetectionLayer, PreemptiveRiskAssessment
from riskgate.engine.scoring import RiskScoreResult, RiskScoringEngine
from riskgate.human.override import HumanOverrideInterface
from riskgate.human.schemas import Annotation, OverrideRationale, OverrideRecord, OverrideVerdict, Stakeholder
from riskgate.schemas.decision import DecisionObject, RiskScoringContext, SystemState

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

POSTURE_LOAD_WEIGHT: float = 0.4
POSTURE_INCIDENT_WEIGHT: float = 0.35
POSTURE_REGULATORY_WEIGHT: float = 0.25
DEFAULT_OUTCOME_SEVERITY: float = 0.6


def derive_risk_posture(system_state: SystemState) -> float:
    """Risk posture implied by live system state."""
    return clamp01(
        clamp01(system_state.load_factor) * POSTURE_LOAD_WEIGHT
        + (POSTURE_INCIDENT_WEIGHT if system_state.incident_active else 0.0)
        + (POSTURE_REGULATORY_WEIGHT if system_state.regulatory_alert else 0.0)
    )


@dataclass(frozen=True)
class GateDecision:
    """Everything the gate decided about one action."""
    evaluation_id: str
    evaluated_at: datetime
    decision: DecisionObject
    preemptive_assessment: PreemptiveRiskAssessment
    score_result: RiskScoreResult
    classification: ClassificationResult
    enforcement_action: EnforcementAction
    risk_band: str
    directives: tuple[EnforcementDirective, ...]
    governance_entries: tuple[GovernanceAuditEntry, ...]
    tamper_evidence_hash: str
    override_request_id: Optional[str] = None


@dataclass(frozen=True)
class CalibrationCycleReport:
    feedback: Optional[FeedbackIntegrationReport] = None
    optimization: Optional[OptimizationReport] = None
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DecisionGate:
    """Wires the engines into one gate with its feedback loops."""

    def __init__(
        self,
        scoring_engine: Optional[RiskScoringEngine] = None,
        classification_engine: Optional[ClassificationEngine] = None,
        preemptive_layer: Optional[PreemptiveDetectionLayer] = None,
        override_interface: Optional[HumanOverrideInterface] = None,
        optimizer: Optional[ThresholdOptimizationEngine] = None,
        integrator: Optional[HistoricalFeedbackIntegrator] = None,
        platforms: tuple[EnforcementPlatform, ...] = (EnforcementPlatform.LINUX,),
        strict_mode: bool = False,
    ):
        self.scoring_engine = scoring_engine or RiskScoringEngine()
        self.classification_engine = classification_engine or ClassificationEngine()
        self.preemptive_layer = preemptive_layer or PreemptiveDetectionLayer()
        self.override_interface = override_interface or HumanOverrideInterface()
        if optimizer is None:
            band, bias = self.classification_engine.get_configuration()
            optimizer = ThresholdOptimizationEngine(
                initial_band=band,
                initial_conservatism_bias=bias,
                initial_multipliers=self.scoring_engine.get_adaptive_multipliers(),
            )
        self.optimizer = optimizer
        self.integrator = integrator or HistoricalFeedbackIntegrator(
            self.scoring_engine, ImpactSimulationModule(), ComplianceEstimator(),
        )
        self.platforms = platforms
        self.strict_mode = strict_mode

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "DecisionGate":
        """Build the full pipeline from environment-driven settings."""
        config = config or default_settings
        scoring = RiskScoringEngine()
        classification = ClassificationEngine(
            history_window_size=config.classification_history_window,
            base_band=ThresholdBand(config.base_auto_approve_min, config.base_block_max),
        )
        band, bias = classification.get_configuration()
        return cls(
            scoring_engine=scoring,
            classification_engine=classification,
            preemptive_layer=PreemptiveDetectionLayer(
                max_history_size=config.preemptive_max_history,
                min_samples_for_activation=config.preemptive_min_samples,
                min_failure_rate_for_activation=config.preemptive_min_failure_rate,
                max_risk_lift=config.preemptive_max_risk_lift,
                review_escalation_threshold=config.preemptive_review_threshold,
                block_escalation_threshold=config.preemptive_block_threshold,
            ),
            override_interface=HumanOverrideInterface(
                adaptation_window_size=config.override_adaptation_window,
                override_learning_rate=config.override_learning_rate,
            ),
            optimizer=ThresholdOptimizationEngine(
                minimum_signal_count=config.optimizer_minimum_signal_count,
                max_shift_per_cycle=config.optimizer_max_shift_per_cycle,
                learning_rate=config.optimizer_learning_rate,
                max_version_history=config.optimizer_max_version_history,
                ema_alpha=config.optimizer_ema_alpha,
                initial_band=band,
                initial_conservatism_bias=bias,
            ),
            integrator=HistoricalFeedbackIntegrator(
                scoring,
                ImpactSimulationModule(seed=config.simulation_seed),
                ComplianceEstimator(),
                max_history_size=config.feedback_max_history,
                weight_learning_rate=config.feedback_weight_learning_rate,
                simulation_learning_rate=config.feedback_simulation_learning_rate,
                compliance_learning_rate=config.feedback_compliance_learning_rate,
                minimum_sample_size=config.feedback_minimum_sample_size,
            ),
            strict_mode=config.enforcement_strict_mode,
        )

    # ── Evaluation ────────────────────────────────────────────────────

    def enrich(self, decision: DecisionObject) -> DecisionObject:
        """
        Fill in what the calibrated collaborators project for a decision.

        The impact projection is simulated when the caller left it unset, and
        a compliance forecast is attached when none was supplied. Caller
        values are never replaced.
        """
        update = {}
        if "projected_impact" not in decision.model_fields_set:
            simulation = self.integrator.simulation_module.simulate(decision)
            update["projected_impact"] = decision.projected_impact.model_copy(update={
                "real_world_task_impact": simulation.real_world_task_impact,
                "predictive_synergy_density": simulation.predictive_synergy_density,
                "trust_weighted_propagation": simulation.trust_weighted_propagation,
                "cooperative_intelligence_evolution": simulation.cooperative_intelligence_evolution,
            })
        if decision.compliance_forecast is None:
            projected = decision.model_copy(update=update) if update else decision
            update["compliance_forecast"] = self.integrator.compliance_estimator.estimate_compliance(projected)
        if not update:
            return decision
        return decision.model_copy(update=update)

    def evaluate(
        self,
        decision: DecisionObject,
        risk_context: Optional[RiskScoringContext] = None,
        system_state: Optional[SystemState] = None,
        classification_context: Optional[ClassificationContext] = None,
        platforms: Optional[tuple[EnforcementPlatform, ...]] = None,
    ) -> GateDecision:
        risk_context = risk_context or RiskScoringContext()
        system_state = system_state or SystemState()

        decision = self.enrich(decision)
        assessment = self.preemptive_layer.assess(decision)
        lift = max(assessment.risk_lift, clamp01(risk_context.preemptive_risk_lift))
        score_result = self.scoring_engine.score_decision(
            decision,
            risk_context.model_copy(update={"preemptive_risk_lift": lift}),
            system_state,
        )

        if classification_context is None:
            classification_context = ClassificationContext(risk_posture=derive_risk_posture(system_state))
        classification_context = replace(
            classification_context,
            preemptive_risk_lift=max(lift, clamp01(classification_context.preemptive_risk_lift)),
            review_escalation_threshold=(
                classification_context.review_escalation_threshold
                if classification_context.review_escalation_threshold is not None
                else self.preemptive_layer.review_escalation_threshold
            ),
            block_escalation_threshold=(
                classification_context.block_escalation_threshold
                if classification_context.block_escalation_threshold is not None
                else self.preemptive_layer.block_escalation_threshold
            ),
        )
        classification = self.classification_engine.classify(score_result, classification_context)

        override_request_id = None
        if classification.state == ClassificationState.FLAG_FOR_REVIEW:
            request = self.override_interface.create_override_request(decision, score_result, classification)
            override_request_id = request.request_id

        action = enforcement_action_for(classification.state)
        directives = build_directives(list(platforms or self.platforms), action, self.strict_mode)
        entries = build_governance_entries(decision, score_result, classification, directives)
        digest = compute_tamper_evidence_hash(decision.id, score_result, classification, directives, entries)

        gate_decision = GateDecision(
            evaluation_id=f"eval_{uuid.uuid4().hex[:16]}",
            evaluated_at=datetime.now(timezone.utc),
            decision=decision,
            preemptive_assessment=assessment,
            score_result=score_result,
            classification=classification,
            enforcement_action=action,
            risk_band=risk_band(score_result.risk_pressure),
            directives=tuple(directives),
            governance_entries=tuple(entries),
            tamper_evidence_hash=digest,
            override_request_id=override_request_id,
        )
        logger.info(
            "decision_gated",
            decision_id=decision.id,
            action_type=decision.action_type,
            enforcement_action=action.value,
            decision_score=score_result.decision_score,
            preemptive_risk_lift=lift,
        )
        return gate_decision

    # ── Feedback ──────────────────────────────────────────────────────

    def resolve_override(
        self,
        request_id: str,
        stakeholder: Stakeholder,
        verdict: OverrideVerdict,
        rationale: OverrideRationale,
        annotations: Optional[list[Annotation]] = None,
    ) -> OverrideRecord:
        record = self.override_interface.submit_override(
            request_id,
            stakeholder,
            verdict,
            rationale,
            self.scoring_engine,
            self.classification_engine,
            annotations=annotations,
        )
        self.optimizer.ingest_signal(OverrideSignal.from_record(record))
        return record

    def record_outcome(
        self,
        gate_decision: GateDecision,
        violated: bool,
        severity: Optional[float] = None,
        downstream_failure: bool = False,
    ) -> None:
        """Feed a realized outcome of an executed decision into every learner."""
        if severity is None:
            severity = DEFAULT_OUTCOME_SEVERITY if violated or downstream_failure else 0.0
        severity = clamp01(severity)

        self.classification_engine.record_outcome(violated=violated, severity=severity if violated else 0.0)
        self.preemptive_layer.record_decision_outcome(
            gate_decision.decision,
            compliance_failure=violated,
            downstream_failure=downstream_failure,
            severity=severity,
        )

        state = gate_decision.classification.state
        if violated and state == ClassificationState.AUTO_APPROVE:
            signal = MissedViolationSignal(
                score_result=gate_decision.score_result,
                classification=gate_decision.classification,
                severity=severity,
            )
        elif not violated and not downstream_failure and state == ClassificationState.BLOCK:
            signal = FalsePositiveSignal(
                score_result=gate_decision.score_result,
                classification=gate_decision.classification,
            )
        else:
            signal = OutcomeSignal(
                score_result=gate_decision.score_result,
                classification=gate_decision.classification,
                violated=violated,
                severity=severity,
            )
        self.optimizer.ingest_signal(signal)

    def run_calibration_cycle(
        self,
        records: Optional[list[HistoricalFeedbackRecord]] = None,
    ) -> CalibrationCycleReport:
        feedback = self.integrator.integrate(records or [])
        optimization = self.optimizer.optimize(
            self.scoring_engine,
            self.classification_engine,
            self.override_interface.compute_adaptation_signal(),
        )
        logger.info(
            "calibration_cycle_completed",
            feedback_applied=feedback is not None,
            optimization_applied=optimization is not None,
        )
        return CalibrationCycleReport(feedback=feedback, optimization=optimization)

    def rollback(self, version_id: str, reason: str) -> RollbackResult:
        return self.optimizer.rollback(
            version_id, reason, self.scoring_engine, self.classification_engine,
        )
