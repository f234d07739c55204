"""
Human Override Interface.

Turns a reviewer's verdict on a flagged decision into calibration feedback:

- Request: each flagged decision gets one pending override request
- Authorization: verdicts require a minimum stakeholder clearance
- Submission: resolves the request exactly once, records an immutable
  audit entry and feeds a synthetic outcome to both engines
- Adaptation: recent overrides aggregate into a signal for threshold
  optimization

CRITICAL: lookup and authorization failures raise before any state changes.
"""

import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from riskgate.engine.classification import ClassificationEngine, ClassificationResult
from riskgate.engine.dimensions import DimensionVector, RiskDimension, clamp, clamp01
from riskgate.engine.scoring import ObservedOutcome, RiskScoreResult, RiskScoringEngine
from riskgate.exceptions import (
    AuthorizationFailure,
    InsufficientClearanceError,
    OverrideAlreadyResolvedError,
    OverrideRequestNotFoundError,
    StakeholderInactiveError,
)
from riskgate.human.schemas import (
    CLEARANCE_RANK,
    REQUIRED_CLEARANCE,
    Annotation,
    AnnotationCategory,
    ClearanceLevel,
    OverrideAdaptationSignal,
    OverrideRationale,
    OverrideRecord,
    OverrideRequest,
    OverrideVerdict,
    Stakeholder,
)
from riskgate.schemas.decision import DecisionObject, HumanOverrideStamp

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_ADAPTATION_WINDOW: int = 100
MIN_ADAPTATION_WINDOW: int = 10
DEFAULT_OVERRIDE_LEARNING_RATE: float = 0.04
MIN_OVERRIDE_LEARNING_RATE: float = 0.005
MAX_OVERRIDE_LEARNING_RATE: float = 0.2
DEFAULT_ANNOTATION_RELEVANCE: float = 0.5

# Audit trail hard cap and trimmed length, in multiples of the window.
HISTORY_CAP_FACTOR: int = 3
HISTORY_TRIM_FACTOR: int = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def required_clearance_for(verdict: OverrideVerdict) -> ClearanceLevel:
    return REQUIRED_CLEARANCE[verdict]


def authorize_stakeholder(
    stakeholder: Stakeholder,
    verdict: OverrideVerdict,
) -> Optional[AuthorizationFailure]:
    """Return why the stakeholder may not submit this verdict, or None."""
    if not stakeholder.active:
        return AuthorizationFailure.INACTIVE_STAKEHOLDER
    if CLEARANCE_RANK[stakeholder.clearance] < CLEARANCE_RANK[required_clearance_for(verdict)]:
        return AuthorizationFailure.INSUFFICIENT_CLEARANCE
    return None


def synthetic_outcome(
    verdict: OverrideVerdict,
    confidence: float,
) -> tuple[ObservedOutcome, bool, float]:
    """
    Translate a verdict into the outcome fed back to the engines.

    Returns:
        (scoring outcome, classification violated flag, classification severity)
    """
    if verdict == OverrideVerdict.APPROVED:
        return (
            ObservedOutcome(
                compliance_observed=0.85 + 0.15 * confidence,
                stability_incident_occurred=False,
                cost_overrun_ratio=0.6,
            ),
            False,
            0.0,
        )
    if verdict == OverrideVerdict.REJECTED:
        return (
            ObservedOutcome(
                compliance_observed=0.2 + 0.3 * (1 - confidence),
                stability_incident_occurred=confidence > 0.7,
                cost_overrun_ratio=1.2 + 0.5 * confidence,
            ),
            True,
            0.4 + 0.5 * confidence,
        )
    return (
        ObservedOutcome(
            compliance_observed=0.55,
            stability_incident_occurred=False,
            cost_overrun_ratio=1.05,
        ),
        True,
        0.2,
    )


class HumanOverrideInterface:
    """
    Pending-request map plus a bounded audit trail of override records.

    All mutations run under one RLock, so a request can never be resolved
    twice even under concurrent submissions.
    """

    def __init__(
        self,
        adaptation_window_size: int = DEFAULT_ADAPTATION_WINDOW,
        override_learning_rate: float = DEFAULT_OVERRIDE_LEARNING_RATE,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.adaptation_window_size = max(MIN_ADAPTATION_WINDOW, int(adaptation_window_size))
        self.override_learning_rate = clamp(
            override_learning_rate, MIN_OVERRIDE_LEARNING_RATE, MAX_OVERRIDE_LEARNING_RATE,
        )
        self._clock = clock
        self._requests: dict[str, OverrideRequest] = {}
        self._request_by_decision: dict[str, str] = {}
        self._history: list[OverrideRecord] = []
        self._lock = threading.RLock()

    # ── Requests ──────────────────────────────────────────────────────

    def create_override_request(
        self,
        decision: DecisionObject,
        score_result: RiskScoreResult,
        classification: ClassificationResult,
    ) -> OverrideRequest:
        """
        Open a review request for a flagged decision.

        A decision with a pending request gets that request back; once it is
        resolved, a later flag opens a fresh one.
        """
        with self._lock:
            existing_id = self._request_by_decision.get(decision.id)
            if existing_id is not None and not self._requests[existing_id].resolved:
                return self._requests[existing_id]

            request = OverrideRequest(
                request_id=f"ovr_{uuid.uuid4().hex[:16]}",
                decision=decision,
                score_result=score_result,
                classification=classification,
                flagged_at=self._clock(),
            )
            self._requests[request.request_id] = request
            self._request_by_decision[decision.id] = request.request_id

        logger.info(
            "override_request_created",
            request_id=request.request_id,
            decision_id=decision.id,
            decision_score=score_result.decision_score,
            state=classification.state.value,
        )
        return request

    def get_pending_requests(self) -> list[OverrideRequest]:
        with self._lock:
            pending = [r for r in self._requests.values() if not r.resolved]
        return sorted(pending, key=lambda r: r.flagged_at)

    def get_request(self, request_id: str) -> Optional[OverrideRequest]:
        with self._lock:
            return self._requests.get(request_id)

    # ── Submission ────────────────────────────────────────────────────

    def submit_override(
        self,
        request_id: str,
        stakeholder: Stakeholder,
        verdict: OverrideVerdict,
        rationale: OverrideRationale,
        scoring_engine: RiskScoringEngine,
        classification_engine: ClassificationEngine,
        annotations: Optional[list[Annotation]] = None,
    ) -> OverrideRecord:
        """
        Resolve a pending request with a stakeholder verdict.

        Args:
            request_id: ID of the pending override request
            stakeholder: Reviewer submitting the verdict
            verdict: APPROVED, REJECTED or ESCALATED
            rationale: Reviewer reasoning; confidence is clamped into [0, 1]
            scoring_engine: Receives the translated outcome
            classification_engine: Receives the translated violation event
            annotations: Optional notes; relevance weights are clamped

        Returns:
            The immutable OverrideRecord

        Raises:
            OverrideRequestNotFoundError, OverrideAlreadyResolvedError,
            StakeholderInactiveError, InsufficientClearanceError
        """
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise OverrideRequestNotFoundError(request_id)
            if request.resolved:
                raise OverrideAlreadyResolvedError(request_id)

            failure = authorize_stakeholder(stakeholder, verdict)
            if failure == AuthorizationFailure.INACTIVE_STAKEHOLDER:
                logger.warning(
                    "override_rejected_inactive_stakeholder",
                    request_id=request_id,
                    stakeholder_id=stakeholder.id,
                )
                raise StakeholderInactiveError(request_id, stakeholder.id)
            if failure == AuthorizationFailure.INSUFFICIENT_CLEARANCE:
                required = required_clearance_for(verdict)
                logger.warning(
                    "override_rejected_insufficient_clearance",
                    request_id=request_id,
                    stakeholder_id=stakeholder.id,
                    clearance=stakeholder.clearance.value,
                    required=required.value,
                )
                raise InsufficientClearanceError(
                    request_id, stakeholder.id, stakeholder.clearance.value, required.value,
                )

            submitted_at = self._clock()
            confidence = clamp01(rationale.confidence_level)
            stamped_annotations = tuple(
                a.model_copy(update={"relevance_weight": clamp01(a.relevance_weight)})
                for a in (annotations or [])
            )
            review_duration_ms = max(
                0.0, (submitted_at - request.flagged_at).total_seconds() * 1000,
            )

            record = OverrideRecord(
                record_id=f"rec_{uuid.uuid4().hex[:16]}",
                request_id=request_id,
                decision_id=request.decision.id,
                stakeholder=stakeholder,
                verdict=verdict,
                rationale=rationale.model_copy(update={"confidence_level": confidence}),
                annotations=stamped_annotations,
                original_score_result=request.score_result,
                original_classification=request.classification,
                submitted_at=submitted_at,
                review_duration_ms=review_duration_ms,
            )

            request.resolved = True
            request.override_record_id = record.record_id
            request.decision = request.decision.model_copy(update={
                "human_override": HumanOverrideStamp(
                    record_id=record.record_id,
                    verdict=verdict.value,
                    stakeholder_id=stakeholder.id,
                    confidence=confidence,
                    resolved_at=submitted_at,
                ),
            })

            outcome, violated, severity = synthetic_outcome(verdict, confidence)
            scoring_engine.update_calibration_from_feedback(
                request.score_result,
                outcome,
                learning_rate=self.override_learning_rate * confidence,
            )
            classification_engine.record_outcome(violated=violated, severity=severity)

            self._history.append(record)
            if len(self._history) > HISTORY_CAP_FACTOR * self.adaptation_window_size:
                self._history = self._history[-HISTORY_TRIM_FACTOR * self.adaptation_window_size:]
                self._evict_resolved_requests()

        logger.info(
            "override_submitted",
            request_id=request_id,
            decision_id=record.decision_id,
            stakeholder_id=stakeholder.id,
            verdict=verdict.value,
            confidence=confidence,
            review_duration_ms=round(review_duration_ms, 1),
        )
        return record

    def _evict_resolved_requests(self) -> None:
        """Drop resolved requests whose records fell out of the audit trail."""
        kept = {r.record_id for r in self._history}
        stale = [
            request_id for request_id, request in self._requests.items()
            if request.resolved and request.override_record_id not in kept
        ]
        for request_id in stale:
            request = self._requests.pop(request_id)
            if self._request_by_decision.get(request.decision.id) == request_id:
                del self._request_by_decision[request.decision.id]

    def create_annotation(
        self,
        author_id: str,
        content: str,
        category: AnnotationCategory = AnnotationCategory.GENERAL,
        relevance_weight: float = DEFAULT_ANNOTATION_RELEVANCE,
        related_dimension: Optional[RiskDimension] = None,
    ) -> Annotation:
        return Annotation(
            annotation_id=f"ann_{uuid.uuid4().hex[:16]}",
            author_id=author_id,
            category=category,
            content=content,
            relevance_weight=clamp01(relevance_weight),
            created_at=self._clock(),
            related_dimension=related_dimension,
        )

    # ── History & adaptation ──────────────────────────────────────────

    def get_override_history(self, limit: Optional[int] = None) -> list[OverrideRecord]:
        with self._lock:
            history = list(self._history)
        if limit is not None:
            return history[-limit:] if limit > 0 else []
        return history

    def get_overrides_for_decision(self, decision_id: str) -> list[OverrideRecord]:
        with self._lock:
            return [r for r in self._history if r.decision_id == decision_id]

    def get_verdict_distribution(self) -> dict[OverrideVerdict, int]:
        distribution = {verdict: 0 for verdict in OverrideVerdict}
        with self._lock:
            for record in self._history:
                distribution[record.verdict] += 1
        return distribution

    def compute_adaptation_signal(self) -> OverrideAdaptationSignal:
        """Aggregate the most recent adaptation_window_size overrides."""
        with self._lock:
            window = self._history[-self.adaptation_window_size:]

        if not window:
            return OverrideAdaptationSignal()

        n = len(window)
        approvals = [r for r in window if r.verdict == OverrideVerdict.APPROVED]
        rejections = sum(1 for r in window if r.verdict == OverrideVerdict.REJECTED)
        escalations = sum(1 for r in window if r.verdict == OverrideVerdict.ESCALATED)
        conditional = sum(1 for r in approvals if r.rationale.conditional_requirements)

        weighted_sums = {dim: 0.0 for dim in RiskDimension}
        confidence_sums = {dim: 0.0 for dim in RiskDimension}
        for record in window:
            for disagreement in record.rationale.dimension_disagreements:
                assessment = clamp(disagreement.stakeholder_assessment, -1.0, 1.0)
                weighted_sums[disagreement.dimension] += assessment * record.confidence
                confidence_sums[disagreement.dimension] += record.confidence

        disagreements = DimensionVector.from_mapping({
            dim: weighted_sums[dim] / confidence_sums[dim]
            for dim in RiskDimension
            if confidence_sums[dim] > 0
        })

        return OverrideAdaptationSignal(
            sample_size=n,
            approval_rate=round(len(approvals) / n, 4),
            rejection_rate=round(rejections / n, 4),
            escalation_rate=round(escalations / n, 4),
            average_confidence=round(sum(r.confidence for r in window) / n, 4),
            average_review_duration_ms=round(sum(r.review_duration_ms for r in window) / n, 1),
            conditional_approval_rate=round(conditional / len(approvals), 4) if approvals else 0.0,
            weighted_dimension_disagreements=disagreements,
        )
