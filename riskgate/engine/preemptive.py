"""
Preemptive Pattern-Recurrence Detection.

Learns which decision shapes keep failing downstream and lifts the risk of
new decisions that share the same signature before they execute.

Each outcome is indexed under six signatures:
    ACTION:{a}
    ACTION:{a}|LAYER:{l}
    ACTION:{a}|AGENT:{t}
    ACTION:{a}|PERMS:{sorted perms}
    ACTION:{a}|LAYER:{l}|AGENT:{t}
    ACTION:{a}|EXPOSURE:{LOW|MEDIUM|HIGH}

A signature activates once it has enough samples and a high enough
failure rate; its risk lift grows with failure rate, severity and sample
confidence, up to a configured ceiling.
"""

import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional

import structlog

from riskgate.engine.classification import ClassificationState
from riskgate.engine.dimensions import clamp01
from riskgate.schemas.decision import DecisionObject, PolicyExposure

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_MAX_HISTORY_SIZE: int = 500
DEFAULT_MIN_SAMPLES_FOR_ACTIVATION: int = 3
DEFAULT_MIN_FAILURE_RATE_FOR_ACTIVATION: float = 0.45
DEFAULT_MAX_RISK_LIFT: float = 0.35
DEFAULT_REVIEW_ESCALATION_THRESHOLD: float = 0.14
DEFAULT_BLOCK_ESCALATION_THRESHOLD: float = 0.30

COMPLIANCE_FAILURE_WEIGHT: float = 0.65
DOWNSTREAM_FAILURE_WEIGHT: float = 0.35
MAX_RATIONALE_ENTRIES: int = 3

NO_MATCH_RATIONALE = "No activated historical risk pattern matched this decision"


@dataclass(frozen=True)
class DownstreamOutcomeRecord:
    """Realized outcome of one executed decision, keyed by its shape."""
    decision_id: str
    action_type: str
    authority_layer: str
    permissions: tuple[str, ...]
    policy_exposure_levels: tuple[float, ...]
    compliance_failure: bool
    downstream_failure: bool
    severity: float                      # 0-1
    agent_type: Optional[str] = None


@dataclass(frozen=True)
class PatternAggregate:
    signature: str
    sample_size: int
    weighted_failure_total: float
    weighted_severity_total: float
    failure_rate: float
    weighted_severity: float
    risk_lift: float


@dataclass(frozen=True)
class PreemptiveRiskAssessment:
    decision_id: str
    risk_lift: float
    matched_pattern_signatures: tuple[str, ...]
    rationale: tuple[str, ...]


@dataclass(frozen=True)
class EscalationRecommendation:
    state: ClassificationState
    reason: str


def exposure_band(levels: tuple[float, ...] | list[float]) -> str:
    if not levels:
        return "LOW"
    mean = sum(clamp01(level) for level in levels) / len(levels)
    if mean >= 0.66:
        return "HIGH"
    if mean >= 0.33:
        return "MEDIUM"
    return "LOW"


def build_signatures(
    action_type: str,
    authority_layer: str,
    permissions: tuple[str, ...] | list[str],
    policy_exposure_levels: tuple[float, ...] | list[float],
    agent_type: Optional[str] = None,
) -> list[str]:
    """The six upper-cased pattern signatures for one decision shape."""
    action = action_type.upper()
    layer = authority_layer.upper()
    agent = (agent_type or "UNKNOWN").upper()
    perms = ",".join(sorted(p.upper() for p in permissions))
    band = exposure_band(policy_exposure_levels)
    return [
        f"ACTION:{action}",
        f"ACTION:{action}|LAYER:{layer}",
        f"ACTION:{action}|AGENT:{agent}",
        f"ACTION:{action}|PERMS:{perms}",
        f"ACTION:{action}|LAYER:{layer}|AGENT:{agent}",
        f"ACTION:{action}|EXPOSURE:{band}",
    ]


def _exposure_levels(exposures: list[PolicyExposure]) -> tuple[float, ...]:
    return tuple(e.exposure_level for e in exposures)


def decision_signatures(decision: DecisionObject) -> list[str]:
    return build_signatures(
        action_type=decision.action_type,
        authority_layer=decision.authority_scope.layer,
        permissions=decision.authority_scope.permissions,
        policy_exposure_levels=_exposure_levels(decision.policy_exposure),
        agent_type=decision.metadata.agent_type,
    )


class PreemptiveDetectionLayer:
    """Bounded outcome history with per-signature failure aggregates."""

    def __init__(
        self,
        max_history_size: int = DEFAULT_MAX_HISTORY_SIZE,
        min_samples_for_activation: int = DEFAULT_MIN_SAMPLES_FOR_ACTIVATION,
        min_failure_rate_for_activation: float = DEFAULT_MIN_FAILURE_RATE_FOR_ACTIVATION,
        max_risk_lift: float = DEFAULT_MAX_RISK_LIFT,
        review_escalation_threshold: float = DEFAULT_REVIEW_ESCALATION_THRESHOLD,
        block_escalation_threshold: float = DEFAULT_BLOCK_ESCALATION_THRESHOLD,
    ):
        self.max_history_size = max(1, int(max_history_size))
        self.min_samples_for_activation = max(1, int(min_samples_for_activation))
        self.min_failure_rate_for_activation = clamp01(min_failure_rate_for_activation)
        self.max_risk_lift = clamp01(max_risk_lift)
        self.review_escalation_threshold = clamp01(review_escalation_threshold)
        self.block_escalation_threshold = clamp01(block_escalation_threshold)
        self._history: deque[DownstreamOutcomeRecord] = deque()
        self._aggregates: dict[str, PatternAggregate] = {}
        self._lock = threading.RLock()

    # ── Recording ─────────────────────────────────────────────────────

    def record_outcome(self, record: DownstreamOutcomeRecord) -> None:
        with self._lock:
            self._history.append(record)
            while len(self._history) > self.max_history_size:
                self._history.popleft()
            self._rebuild_aggregates()

        logger.debug(
            "preemptive_outcome_recorded",
            decision_id=record.decision_id,
            action_type=record.action_type,
            compliance_failure=record.compliance_failure,
            downstream_failure=record.downstream_failure,
        )

    def record_decision_outcome(
        self,
        decision: DecisionObject,
        compliance_failure: bool,
        downstream_failure: bool,
        severity: float,
    ) -> DownstreamOutcomeRecord:
        record = DownstreamOutcomeRecord(
            decision_id=decision.id,
            action_type=decision.action_type,
            authority_layer=decision.authority_scope.layer,
            permissions=tuple(decision.authority_scope.permissions),
            policy_exposure_levels=_exposure_levels(decision.policy_exposure),
            compliance_failure=compliance_failure,
            downstream_failure=downstream_failure,
            severity=clamp01(severity),
            agent_type=decision.metadata.agent_type,
        )
        self.record_outcome(record)
        return record

    def _rebuild_aggregates(self) -> None:
        totals: dict[str, list[float]] = {}
        for record in self._history:
            failure = clamp01(
                COMPLIANCE_FAILURE_WEIGHT * (1.0 if record.compliance_failure else 0.0)
                + DOWNSTREAM_FAILURE_WEIGHT * (1.0 if record.downstream_failure else 0.0)
            )
            severity = clamp01(record.severity)
            signatures = build_signatures(
                record.action_type,
                record.authority_layer,
                record.permissions,
                record.policy_exposure_levels,
                record.agent_type,
            )
            for signature in signatures:
                entry = totals.setdefault(signature, [0, 0.0, 0.0])
                entry[0] += 1
                entry[1] += failure
                entry[2] += failure * severity

        self._aggregates = {
            signature: self._aggregate(signature, int(n), failure_total, severity_total)
            for signature, (n, failure_total, severity_total) in totals.items()
        }

    def _aggregate(
        self,
        signature: str,
        sample_size: int,
        failure_total: float,
        severity_total: float,
    ) -> PatternAggregate:
        failure_rate = failure_total / sample_size if sample_size else 0.0
        weighted_severity = severity_total / failure_total if failure_total > 0 else 0.0
        return PatternAggregate(
            signature=signature,
            sample_size=sample_size,
            weighted_failure_total=failure_total,
            weighted_severity_total=severity_total,
            failure_rate=failure_rate,
            weighted_severity=weighted_severity,
            risk_lift=self.compute_risk_lift(sample_size, failure_rate, weighted_severity),
        )

    def compute_risk_lift(
        self,
        sample_size: int,
        failure_rate: float,
        weighted_severity: float,
    ) -> float:
        if sample_size < self.min_samples_for_activation:
            return 0.0
        if failure_rate < self.min_failure_rate_for_activation:
            return 0.0
        sample_confidence = clamp01(sample_size / (self.min_samples_for_activation + 4))
        base = clamp01(
            0.65 * clamp01(failure_rate)
            + 0.25 * clamp01(weighted_severity)
            + 0.10 * sample_confidence
        )
        return base * self.max_risk_lift

    # ── Assessment ────────────────────────────────────────────────────

    def assess(self, decision: DecisionObject) -> PreemptiveRiskAssessment:
        signatures = decision_signatures(decision)
        with self._lock:
            matched = [self._aggregates[s] for s in signatures if s in self._aggregates]

        if not matched:
            return PreemptiveRiskAssessment(
                decision_id=decision.id,
                risk_lift=0.0,
                matched_pattern_signatures=(),
                rationale=(NO_MATCH_RATIONALE,),
            )

        strongest = max(a.risk_lift for a in matched)
        ranked = sorted(matched, key=lambda a: a.risk_lift, reverse=True)
        rationale = tuple(
            f"Pattern {a.signature} recurring failures: rate={a.failure_rate:.2f}, "
            f"severity={a.weighted_severity:.2f}, samples={a.sample_size}"
            for a in ranked[:MAX_RATIONALE_ENTRIES]
        )
        risk_lift = round(min(max(strongest, 0.0), self.max_risk_lift), 4)

        if risk_lift > 0:
            logger.info(
                "preemptive_pattern_matched",
                decision_id=decision.id,
                risk_lift=risk_lift,
                top_signature=ranked[0].signature,
            )

        return PreemptiveRiskAssessment(
            decision_id=decision.id,
            risk_lift=risk_lift,
            matched_pattern_signatures=tuple(a.signature for a in matched),
            rationale=rationale,
        )

    def recommend_classification_escalation(
        self,
        assessment: PreemptiveRiskAssessment,
    ) -> Optional[EscalationRecommendation]:
        if assessment.risk_lift >= self.block_escalation_threshold:
            return EscalationRecommendation(
                state=ClassificationState.BLOCK,
                reason=(
                    f"Preemptive risk lift {assessment.risk_lift:.4f} exceeds block "
                    f"threshold {self.block_escalation_threshold:.2f}"
                ),
            )
        if assessment.risk_lift >= self.review_escalation_threshold:
            return EscalationRecommendation(
                state=ClassificationState.FLAG_FOR_REVIEW,
                reason=(
                    f"Preemptive risk lift {assessment.risk_lift:.4f} exceeds review "
                    f"threshold {self.review_escalation_threshold:.2f}"
                ),
            )
        return None

    def get_pattern_snapshots(self) -> list[PatternAggregate]:
        with self._lock:
            return sorted(self._aggregates.values(), key=lambda a: a.risk_lift, reverse=True)

    @property
    def history_size(self) -> int:
        with self._lock:
            return len(self._history)
