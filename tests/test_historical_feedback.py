"""
Historical Feedback Integrator Tests.
"""

import pytest

from riskgate.calibration.historical import (
    HistoricalFeedbackIntegrator,
    HistoricalFeedbackRecord,
    PredictedCompliance,
    RealizedCompliance,
    SimulationSnapshot,
)
from riskgate.collaborators.compliance import ComplianceEstimator
from riskgate.collaborators.simulation import ImpactSimulationModule
from riskgate.engine.dimensions import RiskDimension
from riskgate.engine.scoring import RiskScoringEngine
from riskgate.schemas.decision import LifecycleStage

D = RiskDimension


def record(
    predicted_score: float,
    realized_quality: float,
    action_type: str = "FILE_DELETE",
    **kwargs,
) -> HistoricalFeedbackRecord:
    return HistoricalFeedbackRecord(
        action_type=action_type,
        predicted_decision_score=predicted_score,
        realized_decision_quality=realized_quality,
        **kwargs,
    )


class TestFeedbackIntegration:
    """Batch calibration across scoring, simulation and compliance."""

    def setup_method(self):
        self.scoring = RiskScoringEngine()
        self.simulation = ImpactSimulationModule(seed=7)
        self.compliance = ComplianceEstimator()
        self.integrator = HistoricalFeedbackIntegrator(self.scoring, self.simulation, self.compliance)

    def test_empty_batch(self):
        assert self.integrator.integrate([]) is None

    def test_insufficient_evidence(self):
        """Below the minimum sample size nothing is calibrated, but history is kept."""
        assert self.integrator.integrate([record(80, 0.8)] * 7) is None
        assert len(self.integrator.get_history()) == 7
        assert self.scoring.get_adaptive_multipliers()[D.OPERATIONAL_RISK] == 1.0

        report = self.integrator.integrate([record(80, 0.8)])
        assert report is not None
        assert report.sample_count == 8

    def test_over_optimistic_scores_tighten_risk_weights(self):
        """Predicted 90 but realized 0.3 raises risk multipliers, lowers opportunity."""
        report = self.integrator.integrate([record(90, 0.3)] * 8)
        assert report.mean_score_error == pytest.approx(-0.6)
        assert report.applied_weight_deltas[D.OPERATIONAL_RISK] == pytest.approx(0.54)

        multipliers = self.scoring.get_adaptive_multipliers()
        assert multipliers[D.OPERATIONAL_RISK] == pytest.approx(1.108)
        assert multipliers[D.OPPORTUNITY_COST_PROJECTION] == pytest.approx(0.928)
        assert report.multipliers_after == multipliers

        # Identical errors: zero spread pulls the noise amplitude down.
        assert self.simulation.get_assumptions().noise_amplitude == pytest.approx(0.088)

    def test_pessimistic_scores_relax_risk_weights(self):
        self.integrator.integrate([record(40, 0.9)] * 8)
        multipliers = self.scoring.get_adaptive_multipliers()
        assert multipliers[D.OPERATIONAL_RISK] == pytest.approx(0.96)
        assert multipliers[D.OPPORTUNITY_COST_PROJECTION] == pytest.approx(1.04)

    def test_compliance_misses_calibrate_estimator(self):
        """Realized compliance below forecast raises action-type and drift bias."""
        batch = [
            record(
                70, 0.7,
                predicted_compliance=PredictedCompliance(
                    overall_probability=0.9,
                    lifecycle_stage_probabilities={LifecycleStage.EXECUTION: 0.9},
                ),
                realized_compliance=RealizedCompliance(
                    overall_observed=0.6,
                    lifecycle_stage_observed={LifecycleStage.EXECUTION: 0.5},
                ),
            )
        ] * 8
        report = self.integrator.integrate(batch)

        assert report.mean_compliance_error == pytest.approx(-0.3)
        calibration = report.applied_compliance_calibration
        assert calibration.stage_bias == {LifecycleStage.EXECUTION: pytest.approx(-0.25)}
        assert calibration.action_type_violation_deltas["FILE_DELETE"] == pytest.approx(0.24)
        assert calibration.drift_bias_delta == pytest.approx(0.18)

        snapshot = self.compliance.get_calibration_snapshot()
        assert snapshot.stage_bias[LifecycleStage.EXECUTION] == pytest.approx(-0.05)
        assert snapshot.action_type_violation_bias["FILE_DELETE"] == pytest.approx(0.048)
        assert snapshot.drift_bias == pytest.approx(0.036)

        multipliers = self.scoring.get_adaptive_multipliers()
        assert multipliers[D.PREDICTED_COMPLIANCE_PROBABILITY] > 1.0

    def test_simulation_errors_tune_assumptions(self):
        batch = [
            record(
                60, 0.6,
                predicted_simulation=SimulationSnapshot(real_world_task_impact=0.2),
                realized_simulation=SimulationSnapshot(real_world_task_impact=0.6, trust_weighted_propagation=0.1),
            )
        ] * 8
        report = self.integrator.integrate(batch)
        assert report.mean_simulation_errors.task_impact == pytest.approx(0.4)
        # trust was not predicted, so it contributes no error
        assert report.mean_simulation_errors.trust == 0.0
        assumptions = self.simulation.get_assumptions()
        assert assumptions.task_criticality_weight == pytest.approx(0.64)
        assert assumptions.excessive_resource_penalty == pytest.approx(0.268)

    def test_history_bounded(self):
        integrator = HistoricalFeedbackIntegrator(
            self.scoring, self.simulation, self.compliance, max_history_size=10,
        )
        integrator.integrate([record(50, 0.5)] * 15)
        assert len(integrator.get_history()) == 10
