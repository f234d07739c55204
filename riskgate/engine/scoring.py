"""
Multidimensional Risk Scoring Engine.

Scores a DecisionObject on nine dimensions and collapses them into a single
decision score (0-100, higher is safer) through a risk-pressure aggregate.

Weights are recalibrated on every call:
- base weights
- system-state multipliers (load, active incidents, regulatory alert)
- decision sensitivity (WRITE / DELETE / ADMIN / EXECUTE permissions)
- context multipliers (budget pressure, data sensitivity, preemptive lift,
  caller priority overrides)
- learned adaptive multipliers, updated from outcomes and human overrides

The adaptive multipliers are the only mutable state. Writes replace the
whole vector under the engine lock; every scoring call works from one
snapshot of it.
"""

import threading
from dataclasses import dataclass
from typing import Mapping, Optional

import structlog

from riskgate.engine.dimensions import (
    RISK_DIRECTION_DIMENSIONS,
    DimensionKey,
    DimensionVector,
    RiskDimension,
    clamp,
    clamp01,
    is_finite_number,
)
from riskgate.schemas.decision import (
    Criticality,
    DecisionObject,
    RiskScoringContext,
    SystemState,
)

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

BASE_WEIGHTS = DimensionVector(
    operational_risk=1.0,
    regulatory_exposure=1.0,
    financial_cost=0.8,
    reputational_impact=0.9,
    cooperative_system_stability=1.0,
    predicted_compliance_probability=1.1,
    simulation_impact=1.2,
    opportunity_cost_projection=1.0,
    strategic_misalignment=1.15,
)

MIN_ADAPTIVE_MULTIPLIER: float = 0.5
MAX_ADAPTIVE_MULTIPLIER: float = 2.5
MIN_CALIBRATION_LEARNING_RATE: float = 0.005
MAX_CALIBRATION_LEARNING_RATE: float = 0.2
MAX_OVERRUN_MULTIPLIER_STEP: float = 0.25

SENSITIVE_PERMISSIONS: frozenset[str] = frozenset({"WRITE", "DELETE", "ADMIN", "EXECUTE"})

CRITICALITY_FACTORS: dict[Criticality, float] = {
    Criticality.HIGH: 1.0,
    Criticality.MEDIUM: 0.6,
    Criticality.LOW: 0.3,
}

# USD per unit, used when no resource analysis priced the action.
UNIT_COSTS_USD: dict[str, float] = {
    "CPU": 0.002,
    "API_CALL": 0.01,
    "NETWORK_EGRESS_MB": 0.0015,
    "STORAGE_GB": 0.02,
    "HUMAN_REVIEW_MINUTES": 0.4,
}
DEFAULT_UNIT_COST_USD: float = 0.005
COST_NORMALIZATION_USD: float = 100.0

# Risk-pressure aggregate
PRESSURE_RISK_WEIGHT: float = 0.45
PRESSURE_COMPLIANCE_WEIGHT: float = 0.13
PRESSURE_SIMULATION_WEIGHT: float = 0.12
PRESSURE_OPPORTUNITY_WEIGHT: float = 0.12
PRESSURE_MISALIGNMENT_WEIGHT: float = 0.18


@dataclass(frozen=True)
class RiskScoreResult:
    """Scored decision."""
    decision_id: str
    dimension_scores: DimensionVector
    weights: DimensionVector                 # sums to 1
    decision_score: float                    # 0-100, higher is safer
    risk_pressure: float                     # 0-1
    weighted_risk: float                     # weighted mean over risk-direction dims
    weighted_compliance: float
    weighted_simulation: float
    weighted_opportunity: float
    weighted_strategic_misalignment: float


@dataclass(frozen=True)
class ObservedOutcome:
    """What actually happened after a scored decision executed."""
    compliance_observed: float               # 0-1
    stability_incident_occurred: bool = False
    cost_overrun_ratio: Optional[float] = None


def _normalized_task_impact(decision: DecisionObject) -> float:
    return clamp01((decision.projected_impact.real_world_task_impact + 1) / 2)


def _permission_breadth(decision: DecisionObject) -> float:
    return min(len(decision.authority_scope.permissions) / 5, 1.0)


def _average_exposure(decision: DecisionObject) -> float:
    exposures = decision.policy_exposure
    if not exposures:
        return 0.0
    return sum(clamp01(e.exposure_level) for e in exposures) / len(exposures)


def _estimated_cost_usd(decision: DecisionObject) -> float:
    analysis = decision.resource_analysis
    if analysis is not None and analysis.estimated_financial_expenditure_usd is not None:
        return max(0.0, analysis.estimated_financial_expenditure_usd)
    total = 0.0
    for resource in decision.required_resources:
        unit_cost = UNIT_COSTS_USD.get(resource.type.upper(), DEFAULT_UNIT_COST_USD)
        total += max(0.0, resource.amount) * unit_cost
    return total


class RiskScoringEngine:
    """
    Scores decisions and learns per-dimension weight multipliers.

    Thread-safe: calibration writes are serialized by an RLock and scoring
    calls read a consistent snapshot of the multipliers.
    """

    def __init__(self, base_weights: DimensionVector = BASE_WEIGHTS):
        self._base_weights = base_weights
        self._adaptive_multipliers = DimensionVector.uniform(1.0)
        self._lock = threading.RLock()

    # ── Scoring ───────────────────────────────────────────────────────

    def score_decision(
        self,
        decision: DecisionObject,
        context: Optional[RiskScoringContext] = None,
        system_state: Optional[SystemState] = None,
    ) -> RiskScoreResult:
        """Score a decision. Read-only with respect to engine state."""
        context = context or RiskScoringContext()
        system_state = system_state or SystemState()

        weights = self.recalibrate_weights(decision, context, system_state)
        scores = self.compute_dimension_scores(decision, context, system_state)

        risk_weight_total = sum(weights[d] for d in RISK_DIRECTION_DIMENSIONS)
        weighted_risk = (
            sum(scores[d] * weights[d] for d in RISK_DIRECTION_DIMENSIONS) / risk_weight_total
            if risk_weight_total > 0 else 0.0
        )

        def weighted(dim: RiskDimension) -> float:
            return clamp01(scores[dim] * weights[dim])

        weighted_compliance = weighted(RiskDimension.PREDICTED_COMPLIANCE_PROBABILITY)
        weighted_simulation = weighted(RiskDimension.SIMULATION_IMPACT)
        weighted_opportunity = weighted(RiskDimension.OPPORTUNITY_COST_PROJECTION)
        weighted_misalignment = weighted(RiskDimension.STRATEGIC_MISALIGNMENT)

        risk_pressure = clamp01(
            PRESSURE_RISK_WEIGHT * weighted_risk
            + PRESSURE_COMPLIANCE_WEIGHT * (1 - weighted_compliance)
            + PRESSURE_SIMULATION_WEIGHT * (1 - weighted_simulation)
            + PRESSURE_OPPORTUNITY_WEIGHT * (1 - weighted_opportunity)
            + PRESSURE_MISALIGNMENT_WEIGHT * weighted_misalignment
        )
        decision_score = round(clamp01(1 - risk_pressure) * 100, 2)

        logger.debug(
            "decision_scored",
            decision_id=decision.id,
            decision_score=decision_score,
            risk_pressure=round(risk_pressure, 4),
        )

        return RiskScoreResult(
            decision_id=decision.id,
            dimension_scores=scores,
            weights=weights,
            decision_score=decision_score,
            risk_pressure=round(risk_pressure, 4),
            weighted_risk=round(weighted_risk, 4),
            weighted_compliance=round(weighted_compliance, 4),
            weighted_simulation=round(weighted_simulation, 4),
            weighted_opportunity=round(weighted_opportunity, 4),
            weighted_strategic_misalignment=round(weighted_misalignment, 4),
        )

    def recalibrate_weights(
        self,
        decision: DecisionObject,
        context: RiskScoringContext,
        system_state: SystemState,
    ) -> DimensionVector:
        """Context-adjusted weights for one decision, normalized to sum 1."""
        w = self._base_weights.to_dict()
        D = RiskDimension

        load = clamp01(system_state.load_factor)
        w[D.COOPERATIVE_SYSTEM_STABILITY] *= 1 + load * 0.8
        w[D.OPERATIONAL_RISK] *= 1 + load * 0.4
        if system_state.incident_active:
            w[D.COOPERATIVE_SYSTEM_STABILITY] *= 1.35
            w[D.REPUTATIONAL_IMPACT] *= 1.2
        if system_state.regulatory_alert:
            w[D.REGULATORY_EXPOSURE] *= 1.4
            w[D.PREDICTED_COMPLIANCE_PROBABILITY] *= 1.25
            w[D.REPUTATIONAL_IMPACT] *= 1.1

        permissions = {p.upper() for p in decision.authority_scope.permissions}
        if permissions & SENSITIVE_PERMISSIONS:
            w[D.OPERATIONAL_RISK] *= 1.15
            w[D.REGULATORY_EXPOSURE] *= 1.1
            w[D.STRATEGIC_MISALIGNMENT] *= 1.1

        budget = clamp01(context.budget_pressure)
        w[D.FINANCIAL_COST] *= 1 + budget * 0.9
        w[D.OPPORTUNITY_COST_PROJECTION] *= 1 + (1 - budget) * 0.35

        sensitivity = clamp01(context.data_sensitivity)
        w[D.REGULATORY_EXPOSURE] *= 1 + sensitivity * 0.7
        w[D.REPUTATIONAL_IMPACT] *= 1 + sensitivity * 0.5
        w[D.OPPORTUNITY_COST_PROJECTION] *= 1 + (1 - sensitivity) * 0.15

        lift = clamp01(context.preemptive_risk_lift)
        w[D.OPERATIONAL_RISK] *= 1 + lift
        w[D.REGULATORY_EXPOSURE] *= 1 + lift * 0.5

        for key, priority in context.dimension_priorities.items():
            if key not in w or not is_finite_number(priority) or priority <= 0:
                continue
            w[key] *= priority

        multipliers = self.get_adaptive_multipliers()
        for dim, multiplier in multipliers.items():
            w[dim] = max(0.0, w[dim] * multiplier)

        total = sum(w.values())
        if total <= 0:
            return DimensionVector.uniform(1 / len(RiskDimension))
        return DimensionVector(**{k: v / total for k, v in w.items()})

    def compute_dimension_scores(
        self,
        decision: DecisionObject,
        context: RiskScoringContext,
        system_state: SystemState,
    ) -> DimensionVector:
        """Raw [0, 1] score per dimension."""
        operational = self._operational_risk(decision, system_state)
        regulatory = self._regulatory_exposure(decision, context)
        return DimensionVector(
            operational_risk=operational,
            regulatory_exposure=regulatory,
            financial_cost=self._financial_cost(decision, context),
            reputational_impact=self._reputational_impact(decision, system_state),
            cooperative_system_stability=self._system_stability(decision, system_state),
            predicted_compliance_probability=self._compliance_probability(
                decision, context, regulatory, operational,
            ),
            simulation_impact=self._simulation_impact(decision),
            opportunity_cost_projection=self._opportunity_cost(decision, context),
            strategic_misalignment=self._strategic_misalignment(decision),
        )

    # ── Dimension scorers ─────────────────────────────────────────────

    def _operational_risk(self, decision: DecisionObject, state: SystemState) -> float:
        resource_pressure = sum(
            CRITICALITY_FACTORS.get(r.criticality, 0.3) * clamp01(r.amount / 1000)
            for r in decision.required_resources
        )
        breadth = _permission_breadth(decision)
        load = clamp01(state.load_factor)

        analysis = decision.resource_analysis
        if analysis is None:
            return clamp01(resource_pressure * 0.5 + breadth * 0.3 + load * 0.2)

        computed_resource_risk = clamp01(
            clamp01(analysis.computational_cost_score) * 0.7
            + min(max(0.0, analysis.bandwidth_utilization_mbps) / 100, 1.0) * 0.3
        )
        return clamp01(
            resource_pressure * 0.35
            + breadth * 0.2
            + load * 0.15
            + computed_resource_risk * 0.3
        )

    def _regulatory_exposure(self, decision: DecisionObject, context: RiskScoringContext) -> float:
        if not decision.policy_exposure:
            return 0.0
        violations = sum(len(e.potential_violations) for e in decision.policy_exposure)
        return clamp01(
            _average_exposure(decision) * 0.7
            + min(violations / 10, 1.0) * 0.2
            + clamp01(context.data_sensitivity) * 0.1
        )

    def _financial_cost(self, decision: DecisionObject, context: RiskScoringContext) -> float:
        spend = min(_estimated_cost_usd(decision) / COST_NORMALIZATION_USD, 1.0)
        return clamp01(spend * 0.75 + clamp01(context.budget_pressure) * 0.25)

    def _reputational_impact(self, decision: DecisionObject, state: SystemState) -> float:
        violations = sum(len(e.potential_violations) for e in decision.policy_exposure)
        negative_trust = clamp01(max(0.0, -decision.projected_impact.trust_weighted_propagation))
        return clamp01(
            min(violations / 8, 1.0) * 0.5
            + negative_trust * 0.3
            + (0.2 if state.incident_active else 0.0)
        )

    def _system_stability(self, decision: DecisionObject, state: SystemState) -> float:
        impact = decision.projected_impact
        inverse_stability = clamp01((1 - impact.system_stability_score) / 2)
        recovery = min(max(0.0, impact.estimated_recovery_time_seconds) / 3600, 1.0)
        backlog = min(max(0.0, state.recovery_backlog_seconds) / 7200, 1.0)
        return clamp01(inverse_stability * 0.5 + recovery * 0.3 + backlog * 0.2)

    def _compliance_probability(
        self,
        decision: DecisionObject,
        context: RiskScoringContext,
        regulatory: float,
        operational: float,
    ) -> float:
        if decision.compliance_forecast is not None:
            return clamp01(decision.compliance_forecast.overall_probability)
        historical = context.historical_compliance_rate
        historical = clamp01(historical) if historical is not None else 0.5
        return clamp01(historical * 0.6 + (1 - regulatory) * 0.25 + (1 - operational) * 0.15)

    def _simulation_impact(self, decision: DecisionObject) -> float:
        impact = decision.projected_impact
        return clamp01(
            _normalized_task_impact(decision) * 0.4
            + clamp01(impact.predictive_synergy_density) * 0.2
            + clamp01((impact.trust_weighted_propagation + 1) / 2) * 0.2
            + clamp01((impact.cooperative_intelligence_evolution + 1) / 2) * 0.2
        )

    def _opportunity_cost(self, decision: DecisionObject, context: RiskScoringContext) -> float:
        budget = clamp01(context.budget_pressure)
        analysis = decision.resource_analysis
        if analysis is not None:
            return clamp01(
                clamp01(analysis.projected_opportunity_cost_of_blocking_usd / 300) * 0.5
                + clamp01(analysis.opportunity_tradeoff_score) * 0.3
                + clamp01(analysis.economic_efficiency_score) * 0.2
                - budget * 0.15
            )
        # Unpriced: value forgone by blocking is approximated from the impact projection.
        spend = min(_estimated_cost_usd(decision) / COST_NORMALIZATION_USD, 1.0)
        return clamp01(
            _normalized_task_impact(decision) * 0.5
            + clamp01(decision.projected_impact.predictive_synergy_density) * 0.3
            + (1 - spend) * 0.2
            - budget * 0.15
        )

    def _strategic_misalignment(self, decision: DecisionObject) -> float:
        if decision.strategic_alignment is not None:
            return clamp01(decision.strategic_alignment.misalignment_penalty)
        intent_clarity = 0.1 if len(decision.intent) > 40 else 0.35
        return clamp01(
            intent_clarity
            + _permission_breadth(decision) * 0.25
            + _average_exposure(decision) * 0.2
        )

    # ── Calibration ───────────────────────────────────────────────────

    def get_adaptive_multipliers(self) -> DimensionVector:
        with self._lock:
            return self._adaptive_multipliers

    def set_adaptive_multipliers(self, multipliers: DimensionVector) -> None:
        """Replace all multipliers (used to restore a configuration snapshot)."""
        restored = DimensionVector(**{
            dim.value: clamp(value, MIN_ADAPTIVE_MULTIPLIER, MAX_ADAPTIVE_MULTIPLIER)
            for dim, value in multipliers.items()
        })
        with self._lock:
            self._adaptive_multipliers = restored
        logger.info("adaptive_multipliers_restored", multipliers=restored.to_dict())

    def update_calibration_from_feedback(
        self,
        predicted: RiskScoreResult,
        observed: ObservedOutcome,
        learning_rate: float = 0.05,
    ) -> DimensionVector:
        """
        Nudge multipliers toward an observed outcome.

        A positive compliance error (reality better than predicted) relaxes
        the regulatory and operational multipliers; incidents and cost
        overruns tighten the stability, reputational and financial ones.
        """
        lr = clamp(learning_rate, MIN_CALIBRATION_LEARNING_RATE, MAX_CALIBRATION_LEARNING_RATE)
        predicted_compliance = predicted.dimension_scores[RiskDimension.PREDICTED_COMPLIANCE_PROBABILITY]
        compliance_error = clamp01(observed.compliance_observed) - predicted_compliance

        deltas: dict[RiskDimension, float] = {
            RiskDimension.REGULATORY_EXPOSURE: -compliance_error * lr,
            RiskDimension.OPERATIONAL_RISK: -compliance_error * lr * 0.7,
        }
        if observed.stability_incident_occurred:
            deltas[RiskDimension.COOPERATIVE_SYSTEM_STABILITY] = lr
            deltas[RiskDimension.REPUTATIONAL_IMPACT] = lr * 0.6
        ratio = observed.cost_overrun_ratio
        if ratio is not None and is_finite_number(ratio) and ratio > 1:
            deltas[RiskDimension.FINANCIAL_COST] = clamp(
                (ratio - 1) * lr, 0.0, MAX_OVERRUN_MULTIPLIER_STEP,
            )
        if compliance_error > 0.1 and not observed.stability_incident_occurred:
            deltas[RiskDimension.PREDICTED_COMPLIANCE_PROBABILITY] = -lr * 0.4

        with self._lock:
            updated = self._shifted(self._adaptive_multipliers, deltas)
            self._adaptive_multipliers = updated

        logger.info(
            "scoring_calibrated_from_feedback",
            decision_id=predicted.decision_id,
            compliance_error=round(compliance_error, 4),
            learning_rate=lr,
        )
        return updated

    def apply_adaptive_multiplier_deltas(
        self,
        deltas: Mapping[DimensionKey, float],
        learning_rate: float,
    ) -> DimensionVector:
        """Batch update: multiplier += delta * learning_rate, bounded."""
        lr = clamp(learning_rate, MIN_CALIBRATION_LEARNING_RATE, MAX_CALIBRATION_LEARNING_RATE)
        scaled = {
            RiskDimension(key): delta * lr
            for key, delta in deltas.items()
            if is_finite_number(delta)
        }
        with self._lock:
            updated = self._shifted(self._adaptive_multipliers, scaled)
            self._adaptive_multipliers = updated

        logger.info(
            "adaptive_multipliers_updated",
            dimensions=sorted(d.value for d in scaled),
            learning_rate=lr,
        )
        return updated

    @staticmethod
    def _shifted(
        current: DimensionVector,
        deltas: Mapping[RiskDimension, float],
    ) -> DimensionVector:
        result = current
        for dim, delta in deltas.items():
            result = result.with_value(
                dim,
                clamp(current[dim] + delta, MIN_ADAPTIVE_MULTIPLIER, MAX_ADAPTIVE_MULTIPLIER),
            )
        return result
