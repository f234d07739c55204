"""
Threshold Optimization Engine Tests.

Versioning, dampening, bounded shifts and exact rollback.
"""

import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from riskgate.calibration.optimizer import ThresholdOptimizationEngine, assess_signal
from riskgate.calibration.signals import (
    FalsePositiveSignal,
    MissedViolationSignal,
    OutcomeSignal,
    OverrideSignal,
    SignalType,
)
from riskgate.engine.classification import (
    BASE_THRESHOLD_BAND,
    ClassificationContext,
    ClassificationEngine,
    ClassificationState,
    ThresholdBand,
    ViolationTrendSnapshot,
)
from riskgate.engine.dimensions import DimensionVector, RiskDimension
from riskgate.engine.scoring import RiskScoreResult, RiskScoringEngine
from riskgate.human.schemas import OverrideAdaptationSignal, OverrideVerdict

NEUTRAL = ClassificationContext(
    entropy_level=0.5,
    recent_violation_trend=ViolationTrendSnapshot(0.0, 0.0, 0.0),
)


def graded(decision_score: float):
    """Score and classify a synthetic decision (90 approves, 45 flags, 10 blocks)."""
    score = RiskScoreResult(
        decision_id=f"dec-{decision_score}",
        dimension_scores=DimensionVector.uniform(0.5),
        weights=DimensionVector.uniform(1 / 9),
        decision_score=decision_score,
        risk_pressure=1 - decision_score / 100,
        weighted_risk=0.5,
        weighted_compliance=0.05,
        weighted_simulation=0.05,
        weighted_opportunity=0.05,
        weighted_strategic_misalignment=0.05,
    )
    return score, ClassificationEngine().classify(score, NEUTRAL)


def false_positive(confidence: float = 1.0) -> FalsePositiveSignal:
    score, result = graded(10.0)
    return FalsePositiveSignal(score_result=score, classification=result, confidence=confidence)


def missed_violation(severity: float = 1.0, confidence: float = 1.0) -> MissedViolationSignal:
    score, result = graded(90.0)
    return MissedViolationSignal(
        score_result=score, classification=result, confidence=confidence, severity=severity,
    )


class TestSignalAssessment:
    def test_outcome_interpretation(self):
        """Outcomes are read against the original classification."""
        approved, flagged, blocked = graded(90.0), graded(45.0), graded(10.0)
        assert approved[1].state == ClassificationState.AUTO_APPROVE
        assert flagged[1].state == ClassificationState.FLAG_FOR_REVIEW
        assert blocked[1].state == ClassificationState.BLOCK

        missed = assess_signal(OutcomeSignal(*approved, violated=True, severity=0.6))
        assert missed.pressure == pytest.approx(0.8)
        assert missed.missed_violation == 1.0

        caught = assess_signal(OutcomeSignal(*flagged, violated=True, severity=0.6))
        assert caught.pressure == pytest.approx(0.25)

        safe_block = assess_signal(OutcomeSignal(*blocked, violated=False))
        assert safe_block.pressure == pytest.approx(-0.5)
        assert safe_block.false_positive == 1.0

        safe_review = assess_signal(OutcomeSignal(*flagged, violated=False))
        assert safe_review.pressure == pytest.approx(-0.25)
        assert safe_review.false_positive == 0.5

        assert assess_signal(OutcomeSignal(*approved, violated=False)).pressure == 0.0

    def test_override_nudges_oppose_disagreement(self):
        """An overstated dimension is nudged down."""
        score, result = graded(45.0)
        signal = OverrideSignal(
            score_result=score,
            classification=result,
            verdict=OverrideVerdict.APPROVED,
            dimension_disagreements=((RiskDimension.FINANCIAL_COST, 0.7),),
        )
        assessment = assess_signal(signal)
        assert assessment.pressure == -1.0
        assert assessment.dimension_nudges == {RiskDimension.FINANCIAL_COST: -0.7}

    def test_unsupported_signal(self):
        with pytest.raises(TypeError):
            assess_signal(object())


class TestOptimize:
    """Optimization cycles."""

    def setup_method(self):
        self.scoring = RiskScoringEngine()
        self.classification = ClassificationEngine()
        self.optimizer = ThresholdOptimizationEngine()

    def _feed(self, signals):
        for signal in signals:
            self.optimizer.ingest_signal(signal)

    def _active_count(self) -> int:
        return sum(1 for v in self.optimizer.get_version_history() if v.active)

    def test_initial_version(self):
        version = self.optimizer.get_active_version()
        assert version.version_number == 1
        assert version.threshold_band == BASE_THRESHOLD_BAND
        assert version.change_reason == "initial configuration"

    def test_waits_for_minimum_signals(self):
        self._feed([false_positive() for _ in range(4)])
        assert self.optimizer.optimize(self.scoring, self.classification) is None
        assert self.optimizer.pending_signal_count == 4
        assert len(self.optimizer.get_version_history()) == 1

    def test_false_positives_relax_band(self):
        """Five confident false positives lower the band by the full cycle cap."""
        self._feed([false_positive() for _ in range(5)])
        report = self.optimizer.optimize(self.scoring, self.classification)

        assert report.threshold_shift == pytest.approx(-4.0)
        assert report.net_pressure == pytest.approx(-1.0)
        assert not report.dampening_applied
        assert report.effective_learning_rate == pytest.approx(0.1)
        assert report.signal_counts[SignalType.FALSE_POSITIVE] == 5
        assert report.version.version_number == 2
        assert len(report.version.triggering_signal_ids) == 5

        band, bias = self.classification.get_configuration()
        assert band == ThresholdBand(68.0, 38.0)
        assert bias == pytest.approx(-0.05)
        assert self.optimizer.pending_signal_count == 0
        assert self._active_count() == 1

    def test_missed_violations_tighten_band(self):
        self._feed([missed_violation() for _ in range(5)])
        report = self.optimizer.optimize(self.scoring, self.classification)
        assert report.threshold_shift == pytest.approx(4.0)
        band, _ = self.classification.get_configuration()
        assert band == ThresholdBand(76.0, 46.0)

    def test_conflicting_pressure_dampened(self):
        """Opposing signals shrink the net shift."""
        self._feed([false_positive() for _ in range(3)] + [missed_violation() for _ in range(2)])
        report = self.optimizer.optimize(self.scoring, self.classification)
        assert report.dampening_applied
        assert report.dampening_factor == pytest.approx(0.6)
        assert report.net_pressure == pytest.approx(-0.2)
        assert report.threshold_shift == pytest.approx(-0.48)

    def test_adaptation_signal_counts_as_one(self):
        """A rejecting override aggregate tightens even when outcomes are neutral."""
        score, result = graded(90.0)
        self._feed([OutcomeSignal(score, result, violated=False) for _ in range(5)])
        adaptation = OverrideAdaptationSignal(
            sample_size=4, rejection_rate=1.0, average_confidence=1.0,
        )
        report = self.optimizer.optimize(self.scoring, self.classification, adaptation)
        assert report.net_pressure == pytest.approx(1 / 6, abs=1e-4)
        assert report.threshold_shift == pytest.approx(4 / 6)

    def test_error_rate_indicators(self):
        self._feed([false_positive() for _ in range(5)])
        self.optimizer.optimize(self.scoring, self.classification)
        indicators = self.optimizer.get_error_rate_indicators()
        assert indicators.false_positive_rate == pytest.approx(1 - 0.8 ** 5, abs=1e-4)
        assert indicators.missed_violation_rate == 0.0
        assert indicators.signals_observed == 5

    def test_override_disagreements_move_multipliers(self):
        score, result = graded(45.0)
        self._feed([
            OverrideSignal(
                score_result=score,
                classification=result,
                verdict=OverrideVerdict.APPROVED,
                dimension_disagreements=((RiskDimension.FINANCIAL_COST, 1.0),),
            )
            for _ in range(5)
        ])
        report = self.optimizer.optimize(self.scoring, self.classification)
        assert report.applied_dimension_deltas[RiskDimension.FINANCIAL_COST] == pytest.approx(-1.0)
        multipliers = self.scoring.get_adaptive_multipliers()
        assert multipliers[RiskDimension.FINANCIAL_COST] == pytest.approx(0.9)
        assert report.version.adaptive_multipliers == multipliers

    @given(
        kinds=st.lists(
            st.tuples(st.booleans(), st.floats(min_value=0, max_value=1)),
            min_size=5,
            max_size=30,
        ),
    )
    @hyp_settings(max_examples=40, deadline=None)
    def test_shift_bounded(self, kinds):
        """No cycle moves the band further than the per-cycle cap."""
        optimizer = ThresholdOptimizationEngine(max_shift_per_cycle=4.0)
        for is_false_positive, confidence in kinds:
            signal = false_positive(confidence) if is_false_positive else missed_violation(confidence=confidence)
            optimizer.ingest_signal(signal)
        report = optimizer.optimize(RiskScoringEngine(), ClassificationEngine())
        assert abs(report.threshold_shift) <= 4.0 + 1e-9
        assert sum(1 for v in optimizer.get_version_history() if v.active) == 1


class TestRollback:
    """Exact-restore rollback."""

    def setup_method(self):
        self.scoring = RiskScoringEngine()
        self.classification = ClassificationEngine()
        self.optimizer = ThresholdOptimizationEngine()

    def _cycle(self, signals):
        for signal in signals:
            self.optimizer.ingest_signal(signal)
        return self.optimizer.optimize(self.scoring, self.classification)

    def test_rollback_restores_exact_configuration(self):
        initial = self.optimizer.get_active_version()
        score, result = graded(45.0)
        self._cycle([
            OverrideSignal(
                score_result=score,
                classification=result,
                verdict=OverrideVerdict.APPROVED,
                dimension_disagreements=((RiskDimension.OPERATIONAL_RISK, 0.8),),
            )
            for _ in range(5)
        ])
        assert self.scoring.get_adaptive_multipliers() != DimensionVector.uniform(1.0)

        outcome = self.optimizer.rollback(
            initial.version_id, "regression in review load", self.scoring, self.classification,
        )

        assert outcome.success
        assert outcome.previous_version.version_number == 2
        assert outcome.active_version.version_id == initial.version_id
        assert self.scoring.get_adaptive_multipliers() == DimensionVector.uniform(1.0)
        assert self.classification.get_configuration() == (BASE_THRESHOLD_BAND, 0.0)
        history = self.optimizer.get_version_history()
        assert [v.version_number for v in history] == [1, 2]
        assert [v.active for v in history] == [True, False]

        # Numbering continues after a rollback.
        report = self._cycle([false_positive() for _ in range(5)])
        assert report.version.version_number == 3
        assert report.version.threshold_band == ThresholdBand(68.0, 38.0)

    def test_unknown_version(self):
        active = self.optimizer.get_active_version()
        outcome = self.optimizer.rollback("cfg_missing", "typo", self.scoring, self.classification)
        assert not outcome.success
        assert outcome.active_version == active
        assert self.optimizer.get_active_version() == active

    def test_history_bounded_and_keeps_active(self):
        optimizer = ThresholdOptimizationEngine(max_version_history=3)
        first = optimizer.get_active_version()
        for _ in range(5):
            for _ in range(5):
                optimizer.ingest_signal(false_positive())
            optimizer.optimize(self.scoring, self.classification)

        history = optimizer.get_version_history()
        assert [v.version_number for v in history] == [4, 5, 6]
        assert history[-1].active
        assert optimizer.get_version(first.version_id) is None
        assert not optimizer.rollback(first.version_id, "gone", self.scoring, self.classification).success
