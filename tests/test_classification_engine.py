"""
Adaptive Threshold Classification Tests.
"""

import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from riskgate.engine.classification import (
    BASE_THRESHOLD_BAND,
    MIN_REVIEW_GAP,
    ClassificationContext,
    ClassificationEngine,
    ClassificationState,
    ThresholdBand,
    ViolationEvent,
    ViolationTrendSnapshot,
    dimension_entropy,
    normalize_threshold_band,
    violation_trend_snapshot,
)
from riskgate.engine.dimensions import DimensionVector
from riskgate.engine.scoring import RiskScoreResult

STATE_RANK = {
    ClassificationState.AUTO_APPROVE: 0,
    ClassificationState.FLAG_FOR_REVIEW: 1,
    ClassificationState.BLOCK: 2,
}


def make_score(decision_score: float, dimension_scores: DimensionVector | None = None) -> RiskScoreResult:
    return RiskScoreResult(
        decision_id="dec-test",
        dimension_scores=dimension_scores or DimensionVector.uniform(0.5),
        weights=DimensionVector.uniform(1 / 9),
        decision_score=decision_score,
        risk_pressure=round(1 - decision_score / 100, 4),
        weighted_risk=0.0,
        weighted_compliance=0.0,
        weighted_simulation=0.0,
        weighted_opportunity=0.0,
        weighted_strategic_misalignment=0.0,
    )


NEUTRAL = ClassificationContext(
    risk_posture=0.0,
    entropy_level=0.5,
    recent_violation_trend=ViolationTrendSnapshot(0.0, 0.0, 0.0),
)


class TestThresholdBand:
    """Band normalization."""

    def test_base_band_untouched(self):
        """The base band is already valid."""
        band = normalize_threshold_band(72.0, 42.0)
        assert band == BASE_THRESHOLD_BAND

    def test_thresholds_clamped(self):
        """Each threshold is clamped to its own bounds."""
        band = normalize_threshold_band(120.0, -30.0)
        assert band.auto_approve_min == 95.0
        assert band.block_max == 5.0

    def test_gap_restored_around_center(self):
        """A collapsed band is re-centered with the minimum gap."""
        band = normalize_threshold_band(60.0, 58.0)
        assert band.auto_approve_min == pytest.approx(65.0)
        assert band.block_max == pytest.approx(53.0)
        assert band.gap >= MIN_REVIEW_GAP

    def test_recentered_gap_exact(self):
        """Re-centering never leaves the gap a rounding error short."""
        auto = 50.0
        while auto < 95.0:
            band = normalize_threshold_band(auto, auto - 11.5)
            assert band.gap >= MIN_REVIEW_GAP, (auto, band)
            auto += 0.01337
        assert normalize_threshold_band(63.75374, 52.25374).gap >= MIN_REVIEW_GAP

    @given(
        auto=st.floats(min_value=-500, max_value=500, allow_nan=False),
        block=st.floats(min_value=-500, max_value=500, allow_nan=False),
    )
    @hyp_settings(max_examples=100)
    def test_band_always_bounded(self, auto, block):
        """Any input produces a bounded band with the review gap."""
        band = normalize_threshold_band(auto, block)
        assert 50.0 <= band.auto_approve_min <= 95.0
        assert 5.0 <= band.block_max <= 70.0
        assert band.gap >= MIN_REVIEW_GAP


class TestClassify:
    """State assignment against the adaptive band."""

    def setup_method(self):
        self.engine = ClassificationEngine()

    def test_neutral_context_shifts_band_down(self):
        """Zero posture and trend relax the band by the full conservatism range."""
        result = self.engine.classify(make_score(70.0), NEUTRAL)
        # conservatism 0.125 -> shift -13.5, no entropy expansion
        assert result.shift_magnitude == pytest.approx(-13.5)
        assert result.threshold_band.auto_approve_min == pytest.approx(58.5)
        assert result.threshold_band.block_max == pytest.approx(28.5)
        assert result.state == ClassificationState.AUTO_APPROVE

    def test_high_posture_blocks(self):
        """Maximum posture and trend push the band up until a mid score blocks."""
        context = ClassificationContext(
            risk_posture=1.0,
            entropy_level=1.0,
            recent_violation_trend=ViolationTrendSnapshot(1.0, 1.0, 1.0),
        )
        result = self.engine.classify(make_score(60.0), context)
        assert result.conservatism_signal == 1.0
        assert result.threshold_band.auto_approve_min == pytest.approx(94.0)
        assert result.threshold_band.block_max == pytest.approx(64.0)
        assert result.state == ClassificationState.BLOCK

    def test_review_state_between_thresholds(self):
        result = self.engine.classify(make_score(45.0), NEUTRAL)
        assert result.state == ClassificationState.FLAG_FOR_REVIEW
        assert not result.escalated

    def test_entropy_derived_from_scores(self):
        """Without an explicit level, entropy comes from the dimension scores."""
        context = ClassificationContext(recent_violation_trend=ViolationTrendSnapshot(0.0, 0.0, 0.0))
        result = self.engine.classify(make_score(50.0, DimensionVector.uniform(0.3)), context)
        assert result.signals.entropy_level == pytest.approx(1.0)

    def test_rationale_lists_band_and_signals(self):
        result = self.engine.classify(make_score(50.0), NEUTRAL)
        assert len(result.rationale) == 3
        assert "adaptive band" in result.rationale[0]

    def test_conservatism_bias_applied(self):
        """The configured bias moves the conservatism signal."""
        self.engine.apply_configuration(BASE_THRESHOLD_BAND, 0.2)
        result = self.engine.classify(make_score(50.0), NEUTRAL)
        assert result.conservatism_signal == pytest.approx(0.325)

    def test_bias_clamped(self):
        self.engine.apply_configuration(ThresholdBand(80.0, 40.0), 3.0)
        band, bias = self.engine.get_configuration()
        assert bias == 0.5
        assert band == ThresholdBand(80.0, 40.0)


class TestPreemptiveEscalation:
    """Lift can escalate, never relax."""

    def setup_method(self):
        self.engine = ClassificationEngine()

    def _classify(self, score: float, lift: float):
        context = ClassificationContext(
            risk_posture=0.0,
            entropy_level=0.5,
            recent_violation_trend=ViolationTrendSnapshot(0.0, 0.0, 0.0),
            preemptive_risk_lift=lift,
        )
        return self.engine.classify(make_score(score), context)

    def test_review_escalation(self):
        """Auto-approve with a moderate lift becomes flag-for-review."""
        result = self._classify(80.0, 0.2)
        assert result.base_state == ClassificationState.AUTO_APPROVE
        assert result.state == ClassificationState.FLAG_FOR_REVIEW
        assert result.escalated
        assert "escalated" in result.rationale[-1]

    def test_block_escalation(self):
        """A lift above the block threshold blocks regardless of score."""
        result = self._classify(90.0, 0.31)
        assert result.state == ClassificationState.BLOCK

    def test_block_stays_block(self):
        result = self._classify(10.0, 0.2)
        assert result.state == ClassificationState.BLOCK
        assert not result.escalated

    def test_custom_thresholds(self):
        context = ClassificationContext(
            entropy_level=0.5,
            recent_violation_trend=ViolationTrendSnapshot(0.0, 0.0, 0.0),
            preemptive_risk_lift=0.1,
            review_escalation_threshold=0.05,
        )
        result = self.engine.classify(make_score(80.0), context)
        assert result.state == ClassificationState.FLAG_FOR_REVIEW

    def test_out_of_range_thresholds_clamped(self):
        """A block threshold above 1 still blocks at full lift."""
        context = ClassificationContext(
            entropy_level=0.5,
            recent_violation_trend=ViolationTrendSnapshot(0.0, 0.0, 0.0),
            preemptive_risk_lift=1.0,
            review_escalation_threshold=3.0,
            block_escalation_threshold=1.5,
        )
        result = self.engine.classify(make_score(90.0), context)
        assert result.state == ClassificationState.BLOCK

    @given(
        score=st.floats(min_value=0, max_value=100),
        lift=st.floats(min_value=0, max_value=1),
        posture=st.floats(min_value=0, max_value=1),
    )
    @hyp_settings(max_examples=100)
    def test_escalation_is_monotonic(self, score, lift, posture):
        """Adding a lift never yields a less restrictive state."""
        engine = ClassificationEngine()
        base_context = ClassificationContext(
            risk_posture=posture,
            entropy_level=0.5,
            recent_violation_trend=ViolationTrendSnapshot(0.0, 0.0, 0.0),
        )
        lifted_context = ClassificationContext(
            risk_posture=posture,
            entropy_level=0.5,
            recent_violation_trend=ViolationTrendSnapshot(0.0, 0.0, 0.0),
            preemptive_risk_lift=lift,
        )
        plain = engine.classify(make_score(score), base_context)
        lifted = engine.classify(make_score(score), lifted_context)
        assert STATE_RANK[lifted.state] >= STATE_RANK[plain.state]
        assert lifted.base_state == plain.base_state


class TestViolationWindow:
    """Violation feedback."""

    def setup_method(self):
        self.engine = ClassificationEngine(history_window_size=10)

    def test_window_bounded(self):
        """The window never exceeds its configured size."""
        for i in range(25):
            self.engine.record_outcome(violated=i % 2 == 0)
        assert self.engine.violation_window_length == 10

    def test_minimum_window_size(self):
        assert ClassificationEngine(history_window_size=3).history_window_size == 10

    def test_default_severity(self):
        """Violations without severity count as 0.6."""
        self.engine.record_outcome(violated=True)
        snapshot = self.engine.get_violation_trend_snapshot()
        assert snapshot.severity_adjusted_rate == pytest.approx(0.6)

    def test_seeded_trend(self):
        """Older third clean, recent half worsening."""
        for violated, severity in [
            (False, None), (False, None), (True, 0.3), (False, None),
            (True, 0.5), (True, 0.8), (False, None),
        ]:
            self.engine.record_outcome(violated=violated, severity=severity)
        snapshot = self.engine.get_violation_trend_snapshot()
        assert snapshot.violation_rate == pytest.approx(0.5)
        assert snapshot.momentum == pytest.approx(0.5833, abs=1e-4)
        assert snapshot.severity_adjusted_rate == pytest.approx(1.6 / 7, abs=1e-4)

    def test_low_severity_floor(self):
        """Violations count at least 0.1 toward the severity rate."""
        snapshot = violation_trend_snapshot([ViolationEvent(True, 0.0), ViolationEvent(False, 0.0)])
        assert snapshot.severity_adjusted_rate == pytest.approx(0.05)

    def test_empty_window(self):
        snapshot = violation_trend_snapshot([])
        assert snapshot == ViolationTrendSnapshot(0.0, 0.0, 0.0)


class TestEntropy:
    def test_zero_scores(self):
        assert dimension_entropy(make_score(50.0, DimensionVector.uniform(0.0))) == 0.0

    def test_single_dominant_dimension(self):
        scores = DimensionVector.uniform(0.0).with_value("financial_cost", 0.9)
        assert dimension_entropy(make_score(50.0, scores)) == 0.0

    def test_uniform_scores(self):
        assert dimension_entropy(make_score(50.0, DimensionVector.uniform(0.8))) == pytest.approx(1.0)
