"""
Historical Feedback Integrator.

Batch calibration: compares past predictions with realized outcomes and
pushes bounded corrections into three models at once:
1. Scoring weights (adaptive multiplier deltas)
2. Simulation assumptions
3. Compliance stage / action-type / drift biases

Below the minimum sample size the integrator does nothing: insufficient
evidence is not an error.
"""

import statistics
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from riskgate.collaborators.compliance import ComplianceCalibrationDeltas, ComplianceEstimator
from riskgate.collaborators.simulation import ImpactSimulationModule
from riskgate.engine.dimensions import DimensionVector, RiskDimension, clamp, clamp01
from riskgate.engine.scoring import RiskScoringEngine
from riskgate.schemas.decision import LifecycleStage

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_MAX_HISTORY_SIZE: int = 500
DEFAULT_WEIGHT_LEARNING_RATE: float = 0.2
DEFAULT_SIMULATION_LEARNING_RATE: float = 0.2
DEFAULT_COMPLIANCE_LEARNING_RATE: float = 0.2
DEFAULT_MINIMUM_SAMPLE_SIZE: int = 8

MAX_STAGE_BIAS: float = 0.25
MAX_ACTION_TYPE_DELTA: float = 0.25
MAX_DRIFT_BIAS_DELTA: float = 0.25
MAX_SCORE_UNCERTAINTY: float = 0.4
BASELINE_NOISE_UNCERTAINTY: float = 0.12


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SimulationSnapshot(BaseModel):
    """Simulation metrics, predicted or realized. Missing metrics are skipped."""
    model_config = ConfigDict(frozen=True)

    real_world_task_impact: Optional[float] = None
    predictive_synergy_density: Optional[float] = None
    trust_weighted_propagation: Optional[float] = None
    cooperative_intelligence_evolution: Optional[float] = None


class PredictedCompliance(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_probability: float
    lifecycle_stage_probabilities: dict[LifecycleStage, float] = Field(default_factory=dict)


class RealizedCompliance(BaseModel):
    model_config = ConfigDict(frozen=True)

    overall_observed: float
    lifecycle_stage_observed: dict[LifecycleStage, float] = Field(default_factory=dict)


class HistoricalFeedbackRecord(BaseModel):
    """One past decision: what was predicted and what actually happened."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utcnow)
    action_type: str
    predicted_decision_score: float              # 0-100
    realized_decision_quality: float             # 0-1
    predicted_simulation: Optional[SimulationSnapshot] = None
    realized_simulation: Optional[SimulationSnapshot] = None
    predicted_compliance: Optional[PredictedCompliance] = None
    realized_compliance: Optional[RealizedCompliance] = None


@dataclass(frozen=True)
class SimulationErrors:
    task_impact: float = 0.0
    synergy: float = 0.0
    trust: float = 0.0
    intelligence_evolution: float = 0.0


@dataclass(frozen=True)
class FeedbackIntegrationReport:
    sample_count: int
    mean_score_error: float
    mean_compliance_error: float
    mean_simulation_errors: SimulationErrors
    applied_weight_deltas: DimensionVector
    applied_simulation_assumption_deltas: dict[str, float]
    applied_compliance_calibration: ComplianceCalibrationDeltas
    multipliers_after: DimensionVector = field(
        default_factory=lambda: DimensionVector.uniform(1.0)
    )


def _mean(values: list[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def _compliance_error(record: HistoricalFeedbackRecord) -> Optional[float]:
    if record.predicted_compliance is None or record.realized_compliance is None:
        return None
    return (
        clamp01(record.realized_compliance.overall_observed)
        - clamp01(record.predicted_compliance.overall_probability)
    )


class HistoricalFeedbackIntegrator:
    """Applies batch corrections to scoring, simulation and compliance models."""

    def __init__(
        self,
        scoring_engine: RiskScoringEngine,
        simulation_module: ImpactSimulationModule,
        compliance_estimator: ComplianceEstimator,
        max_history_size: int = DEFAULT_MAX_HISTORY_SIZE,
        weight_learning_rate: float = DEFAULT_WEIGHT_LEARNING_RATE,
        simulation_learning_rate: float = DEFAULT_SIMULATION_LEARNING_RATE,
        compliance_learning_rate: float = DEFAULT_COMPLIANCE_LEARNING_RATE,
        minimum_sample_size: int = DEFAULT_MINIMUM_SAMPLE_SIZE,
    ):
        self.scoring_engine = scoring_engine
        self.simulation_module = simulation_module
        self.compliance_estimator = compliance_estimator
        self.max_history_size = max(1, int(max_history_size))
        self.weight_learning_rate = weight_learning_rate
        self.simulation_learning_rate = simulation_learning_rate
        self.compliance_learning_rate = compliance_learning_rate
        self.minimum_sample_size = max(1, int(minimum_sample_size))
        self._history: deque[HistoricalFeedbackRecord] = deque(maxlen=self.max_history_size)
        self._lock = threading.RLock()

    def get_history(self) -> list[HistoricalFeedbackRecord]:
        with self._lock:
            return list(self._history)

    def integrate(
        self,
        records: list[HistoricalFeedbackRecord],
    ) -> Optional[FeedbackIntegrationReport]:
        """
        Append records and, with enough history, apply one calibration round.

        Returns:
            The report, or None when records is empty or the retained
            history is below minimum_sample_size.
        """
        if not records:
            return None

        with self._lock:
            self._history.extend(records)
            sample = list(self._history)
            if len(sample) < self.minimum_sample_size:
                logger.debug(
                    "feedback_integration_skipped",
                    sample_count=len(sample),
                    minimum_sample_size=self.minimum_sample_size,
                )
                return None

            score_errors = [
                clamp01(r.realized_decision_quality) - clamp(r.predicted_decision_score, 0.0, 100.0) / 100
                for r in sample
            ]
            mean_score_error = _mean(score_errors)
            compliance_errors = [e for e in map(_compliance_error, sample) if e is not None]
            mean_compliance_error = _mean(compliance_errors)

            simulation_errors = self._simulation_errors(sample)
            stage_bias = self._stage_bias(sample)
            action_type_deltas = self._action_type_deltas(sample)

            weight_deltas = self._weight_deltas(mean_score_error, mean_compliance_error, simulation_errors)
            assumption_deltas = self._assumption_deltas(simulation_errors, score_errors)
            drift_delta = clamp(
                -mean_compliance_error * 0.6 - stage_bias.get(LifecycleStage.PERSISTENCE, 0.0) * 0.4,
                -MAX_DRIFT_BIAS_DELTA,
                MAX_DRIFT_BIAS_DELTA,
            )
            compliance_calibration = ComplianceCalibrationDeltas(
                stage_bias=stage_bias,
                action_type_violation_deltas=action_type_deltas,
                drift_bias_delta=round(drift_delta, 4),
            )

            multipliers = self.scoring_engine.apply_adaptive_multiplier_deltas(
                {dim: value for dim, value in weight_deltas.items()},
                self.weight_learning_rate,
            )
            self.simulation_module.apply_assumption_deltas(assumption_deltas, self.simulation_learning_rate)
            self.compliance_estimator.apply_historical_calibration(
                compliance_calibration, self.compliance_learning_rate,
            )

        report = FeedbackIntegrationReport(
            sample_count=len(sample),
            mean_score_error=round(mean_score_error, 4),
            mean_compliance_error=round(mean_compliance_error, 4),
            mean_simulation_errors=SimulationErrors(
                task_impact=round(simulation_errors.task_impact, 4),
                synergy=round(simulation_errors.synergy, 4),
                trust=round(simulation_errors.trust, 4),
                intelligence_evolution=round(simulation_errors.intelligence_evolution, 4),
            ),
            applied_weight_deltas=weight_deltas,
            applied_simulation_assumption_deltas=assumption_deltas,
            applied_compliance_calibration=compliance_calibration,
            multipliers_after=multipliers,
        )
        logger.info(
            "historical_feedback_integrated",
            sample_count=report.sample_count,
            mean_score_error=report.mean_score_error,
            mean_compliance_error=report.mean_compliance_error,
        )
        return report

    # ── Error aggregation ─────────────────────────────────────────────

    @staticmethod
    def _simulation_errors(sample: list[HistoricalFeedbackRecord]) -> SimulationErrors:
        metrics = {
            "task_impact": "real_world_task_impact",
            "synergy": "predictive_synergy_density",
            "trust": "trust_weighted_propagation",
            "intelligence_evolution": "cooperative_intelligence_evolution",
        }
        errors: dict[str, list[float]] = {name: [] for name in metrics}
        for record in sample:
            predicted, realized = record.predicted_simulation, record.realized_simulation
            if predicted is None or realized is None:
                continue
            for name, attr in metrics.items():
                p, r = getattr(predicted, attr), getattr(realized, attr)
                if p is not None and r is not None:
                    errors[name].append(r - p)
        return SimulationErrors(**{name: _mean(values) for name, values in errors.items()})

    @staticmethod
    def _stage_bias(sample: list[HistoricalFeedbackRecord]) -> dict[LifecycleStage, float]:
        errors: dict[LifecycleStage, list[float]] = {stage: [] for stage in LifecycleStage}
        for record in sample:
            if record.predicted_compliance is None or record.realized_compliance is None:
                continue
            predicted = record.predicted_compliance.lifecycle_stage_probabilities
            realized = record.realized_compliance.lifecycle_stage_observed
            for stage in LifecycleStage:
                if stage in predicted and stage in realized:
                    errors[stage].append(clamp01(realized[stage]) - clamp01(predicted[stage]))
        return {
            stage: clamp(_mean(values), -MAX_STAGE_BIAS, MAX_STAGE_BIAS)
            for stage, values in errors.items()
            if values
        }

    @staticmethod
    def _action_type_deltas(sample: list[HistoricalFeedbackRecord]) -> dict[str, float]:
        by_action: dict[str, list[float]] = {}
        for record in sample:
            error = _compliance_error(record)
            if error is not None:
                by_action.setdefault(record.action_type, []).append(error)
        return {
            action: clamp(-_mean(values) * 0.8, -MAX_ACTION_TYPE_DELTA, MAX_ACTION_TYPE_DELTA)
            for action, values in by_action.items()
        }

    # ── Delta derivation ──────────────────────────────────────────────

    @staticmethod
    def _weight_deltas(
        mean_score_error: float,
        mean_compliance_error: float,
        sim: SimulationErrors,
    ) -> DimensionVector:
        over = clamp(-mean_score_error, 0.0, 1.0)
        under = clamp(mean_score_error, 0.0, 1.0)
        miss = clamp(-mean_compliance_error, 0.0, 1.0)
        sim_miss = clamp(
            abs(sim.task_impact) * 0.4
            + abs(sim.synergy) * 0.2
            + abs(sim.trust) * 0.2
            + abs(sim.intelligence_evolution) * 0.2,
            0.0,
            1.0,
        )
        return DimensionVector.from_mapping({
            RiskDimension.OPERATIONAL_RISK: over * 0.9 - under * 0.4,
            RiskDimension.REGULATORY_EXPOSURE: over * 0.8 + miss * 1.1 - under * 0.3,
            RiskDimension.FINANCIAL_COST: over * 0.25 - under * 0.15,
            RiskDimension.REPUTATIONAL_IMPACT: over * 0.5 + miss * 0.4,
            RiskDimension.COOPERATIVE_SYSTEM_STABILITY: over * 0.7 + sim_miss * 0.4,
            RiskDimension.PREDICTED_COMPLIANCE_PROBABILITY: miss * 1.2 - under * 0.2,
            RiskDimension.SIMULATION_IMPACT: sim_miss * 0.9 - under * 0.2,
            RiskDimension.OPPORTUNITY_COST_PROJECTION: under * 0.4 - over * 0.6,
            RiskDimension.STRATEGIC_MISALIGNMENT: over * 0.35 - under * 0.2,
        })

    @staticmethod
    def _assumption_deltas(sim: SimulationErrors, score_errors: list[float]) -> dict[str, float]:
        uncertainty = clamp(
            statistics.pstdev(score_errors) if len(score_errors) > 1 else 0.0,
            0.0,
            MAX_SCORE_UNCERTAINTY,
        )
        return {
            "task_criticality_weight": sim.task_impact * 0.5,
            "task_intent_clarity_weight": sim.task_impact * 0.25,
            "excessive_resource_penalty": -sim.task_impact * 0.4,
            "synergy_permission_weight": sim.synergy * 0.3,
            "synergy_layer_weight": sim.synergy * 0.35,
            "trust_base": sim.trust * 0.35,
            "trust_policy_exposure_penalty_weight": -sim.trust * 0.3,
            "intelligence_synergy_weight": sim.intelligence_evolution * 0.3,
            "intelligence_stability_weight": sim.intelligence_evolution * 0.25,
            "impactful_permission_boost": sim.intelligence_evolution * 0.25,
            "noise_amplitude": (uncertainty - BASELINE_NOISE_UNCERTAINTY) * 0.5,
        }
