"""
Lifecycle Compliance Estimator.

Estimates the probability that an action stays compliant through each
lifecycle stage (initiation, execution, persistence, termination) and
combines them with a geometric mean, so a weak stage dominates.

Policy and violation-pattern catalogs are injected at construction; the
defaults below are the catalogs loaded at process start. Historical
feedback shifts per-stage, per-action-type and drift biases.
"""

import threading
from dataclasses import dataclass, field
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from riskgate.engine.dimensions import clamp, clamp01, is_finite_number
from riskgate.schemas.decision import (
    ComplianceForecast,
    Criticality,
    DecisionObject,
    LifecycleStage,
    LifecycleStageProbabilities,
)

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

MIN_CALIBRATION_LEARNING_RATE: float = 0.01
MAX_CALIBRATION_LEARNING_RATE: float = 0.5
MAX_STAGE_BIAS: float = 0.35
MAX_ACTION_TYPE_BIAS: float = 0.4
MAX_DRIFT_BIAS: float = 0.3
RISK_DRIVER_THRESHOLD: float = 0.8
SEVERE_EXPOSURE_LEVEL: float = 0.7

EXECUTION_PRESSURE: dict[Criticality, float] = {
    Criticality.HIGH: 0.3,
    Criticality.MEDIUM: 0.1,
    Criticality.LOW: 0.05,
}


class PolicySchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    description: str = ""
    constraint_type: str = "ACCESS_RESTRICTION"
    severity: int = 5                          # 1-10
    historical_violation_rate: float = 0.0
    drift_factor: float = 0.05


class HistoricalViolationPattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern_id: str
    description: str = ""
    associated_action_types: list[str] = Field(default_factory=list)
    violation_probability: float
    lifecycle_stage: LifecycleStage


DEFAULT_POLICIES: tuple[PolicySchema, ...] = (
    PolicySchema(id="DEFAULT_SAFETY_GUIDE_V1", description="Basic safety constraints",
                 constraint_type="ACCESS_RESTRICTION", severity=5,
                 historical_violation_rate=0.02, drift_factor=0.05),
    PolicySchema(id="RESOURCE_QUOTA_POLICY", description="Limits total resource consumption",
                 constraint_type="RESOURCE_LIMIT", severity=7,
                 historical_violation_rate=0.05, drift_factor=0.02),
    PolicySchema(id="DATA_PRIVACY_STRICT", description="Tight control over PII",
                 constraint_type="ACCESS_RESTRICTION", severity=10,
                 historical_violation_rate=0.01, drift_factor=0.1),
    PolicySchema(id="TEMPORAL_EXECUTION_LOCK", description="Prevents execution during maintenance",
                 constraint_type="TEMPORAL_LOCK", severity=4,
                 historical_violation_rate=0.03, drift_factor=0.01),
)

DEFAULT_VIOLATION_PATTERNS: tuple[HistoricalViolationPattern, ...] = (
    HistoricalViolationPattern(
        pattern_id="AUTH_DRIFT_01",
        description="Permission escalation during execution",
        associated_action_types=["MIGRATE", "UPDATE", "EXECUTE"],
        violation_probability=0.12,
        lifecycle_stage=LifecycleStage.EXECUTION,
    ),
    HistoricalViolationPattern(
        pattern_id="CLEANUP_FAILURE",
        description="Orphaned resources after termination",
        associated_action_types=["DEPLOY", "CREATE", "ALLOCATE"],
        violation_probability=0.08,
        lifecycle_stage=LifecycleStage.TERMINATION,
    ),
    HistoricalViolationPattern(
        pattern_id="LONG_TERM_DEGRADATION",
        description="Compliance decay over time due to environment change",
        associated_action_types=["PERSIST", "MONITOR", "BACKUP"],
        violation_probability=0.15,
        lifecycle_stage=LifecycleStage.PERSISTENCE,
    ),
)


@dataclass(frozen=True)
class ComplianceCalibrationDeltas:
    stage_bias: dict[LifecycleStage, float] = field(default_factory=dict)
    action_type_violation_deltas: dict[str, float] = field(default_factory=dict)
    drift_bias_delta: Optional[float] = None


@dataclass(frozen=True)
class ComplianceCalibrationSnapshot:
    stage_bias: dict[LifecycleStage, float]
    action_type_violation_bias: dict[str, float]
    drift_bias: float


class ComplianceEstimator:
    """Stage-wise compliance forecaster with bounded calibration biases."""

    def __init__(
        self,
        policies: tuple[PolicySchema, ...] = DEFAULT_POLICIES,
        violation_patterns: tuple[HistoricalViolationPattern, ...] = DEFAULT_VIOLATION_PATTERNS,
    ):
        self._policies = {p.id: p for p in policies}
        self._patterns = tuple(violation_patterns)
        self._stage_bias = {stage: 0.0 for stage in LifecycleStage}
        self._action_type_bias: dict[str, float] = {}
        self._drift_bias = 0.0
        self._lock = threading.RLock()

    def estimate_compliance(self, decision: DecisionObject) -> ComplianceForecast:
        with self._lock:
            stage_bias = dict(self._stage_bias)
            action_bias = self._action_type_bias.get(decision.action_type, 0.0)
            drift_bias = self._drift_bias

        probs = {
            LifecycleStage.INITIATION: clamp01(self._initiation(decision, action_bias) + stage_bias[LifecycleStage.INITIATION]),
            LifecycleStage.EXECUTION: clamp01(self._execution(decision, action_bias) + stage_bias[LifecycleStage.EXECUTION]),
            LifecycleStage.PERSISTENCE: clamp01(self._persistence(decision, action_bias) + stage_bias[LifecycleStage.PERSISTENCE]),
            LifecycleStage.TERMINATION: clamp01(self._termination(decision, action_bias) + stage_bias[LifecycleStage.TERMINATION]),
        }
        product = 1.0
        for value in probs.values():
            product *= value
        overall = product ** (1 / len(probs))

        drift = self._drift_impact(decision, drift_bias)
        forecast = ComplianceForecast(
            overall_probability=round(overall, 4),
            lifecycle_stage_probabilities=LifecycleStageProbabilities(
                **{stage.value: round(value, 4) for stage, value in probs.items()}
            ),
            primary_risk_drivers=self._risk_drivers(decision, probs),
            estimated_drift_impact=round(drift, 4),
        )
        logger.debug(
            "compliance_estimated",
            decision_id=decision.id,
            overall_probability=forecast.overall_probability,
        )
        return forecast

    def apply_historical_calibration(
        self,
        deltas: ComplianceCalibrationDeltas,
        learning_rate: float = 0.2,
    ) -> ComplianceCalibrationSnapshot:
        lr = clamp(learning_rate, MIN_CALIBRATION_LEARNING_RATE, MAX_CALIBRATION_LEARNING_RATE)
        with self._lock:
            for stage, delta in deltas.stage_bias.items():
                if not is_finite_number(delta):
                    continue
                stage = LifecycleStage(stage)
                self._stage_bias[stage] = clamp(
                    self._stage_bias[stage] + delta * lr, -MAX_STAGE_BIAS, MAX_STAGE_BIAS,
                )
            for action_type, delta in deltas.action_type_violation_deltas.items():
                if not is_finite_number(delta):
                    continue
                current = self._action_type_bias.get(action_type, 0.0)
                self._action_type_bias[action_type] = clamp(
                    current + delta * lr, -MAX_ACTION_TYPE_BIAS, MAX_ACTION_TYPE_BIAS,
                )
            if deltas.drift_bias_delta is not None and is_finite_number(deltas.drift_bias_delta):
                self._drift_bias = clamp(
                    self._drift_bias + deltas.drift_bias_delta * lr, -MAX_DRIFT_BIAS, MAX_DRIFT_BIAS,
                )
            snapshot = self.get_calibration_snapshot()

        logger.info(
            "compliance_calibration_applied",
            learning_rate=lr,
            drift_bias=snapshot.drift_bias,
            action_types=len(snapshot.action_type_violation_bias),
        )
        return snapshot

    def get_calibration_snapshot(self) -> ComplianceCalibrationSnapshot:
        with self._lock:
            return ComplianceCalibrationSnapshot(
                stage_bias=dict(self._stage_bias),
                action_type_violation_bias=dict(self._action_type_bias),
                drift_bias=self._drift_bias,
            )

    # ── Stage models ──────────────────────────────────────────────────

    def _pattern_factor(self, decision: DecisionObject, stage: LifecycleStage, action_bias: float) -> float:
        relevant = [
            p for p in self._patterns
            if p.lifecycle_stage == stage and decision.action_type in p.associated_action_types
        ]
        if not relevant:
            return 1.0
        strongest = max(p.violation_probability for p in relevant)
        return 1 - clamp01(strongest + action_bias)

    @staticmethod
    def _authority_alignment(decision: DecisionObject) -> float:
        has_delegation = len(decision.authority_scope.delegation_chain) > 0
        not_admin = "ADMIN" not in decision.authority_scope.permissions
        if has_delegation:
            return 0.95 if not_admin else 0.8
        return 0.85 if not_admin else 0.6

    def _initiation(self, decision: DecisionObject, action_bias: float) -> float:
        exposures = decision.policy_exposure
        exposure_score = 1 - sum(p.exposure_level for p in exposures) / max(1, len(exposures))
        return (
            self._authority_alignment(decision) * 0.4
            + exposure_score * 0.4
            + self._pattern_factor(decision, LifecycleStage.INITIATION, action_bias) * 0.2
        )

    def _execution(self, decision: DecisionObject, action_bias: float) -> float:
        pressure = sum(EXECUTION_PRESSURE.get(r.criticality, 0.05) for r in decision.required_resources)
        stability = (decision.projected_impact.system_stability_score + 1) / 2
        return (
            stability
            * (1 - min(pressure, 0.5))
            * self._pattern_factor(decision, LifecycleStage.EXECUTION, action_bias)
        )

    def _persistence(self, decision: DecisionObject, action_bias: float) -> float:
        exposures = decision.policy_exposure
        drift = sum(
            self._policies[p.policy_id].drift_factor if p.policy_id in self._policies else 0.1
            for p in exposures
        ) / max(1, len(exposures))
        trust = (decision.projected_impact.trust_weighted_propagation + 1) / 2
        return (
            trust * 0.7
            * (1 - drift)
            * self._pattern_factor(decision, LifecycleStage.PERSISTENCE, action_bias)
        )

    def _termination(self, decision: DecisionObject, action_bias: float) -> float:
        impact = decision.projected_impact
        recovery = max(0.0, 1 - impact.estimated_recovery_time_seconds / 3600)
        return (
            recovery * 0.5
            + impact.predictive_synergy_density * 0.3
            + self._pattern_factor(decision, LifecycleStage.TERMINATION, action_bias) * 0.2
        )

    def _drift_impact(self, decision: DecisionObject, drift_bias: float) -> float:
        exposures = decision.policy_exposure
        base = sum(
            self._policies[p.policy_id].drift_factor if p.policy_id in self._policies else 0.05
            for p in exposures
        ) / max(1, len(exposures))
        return clamp01(base + drift_bias)

    @staticmethod
    def _risk_drivers(decision: DecisionObject, probs: dict[LifecycleStage, float]) -> list[str]:
        labels = {
            LifecycleStage.INITIATION: "Authority Scope Ambiguity",
            LifecycleStage.EXECUTION: "High Resource Criticality Pressure",
            LifecycleStage.PERSISTENCE: "High Policy Drift Potential",
            LifecycleStage.TERMINATION: "Extended Recovery Debt",
        }
        drivers = [labels[stage] for stage, value in probs.items() if value < RISK_DRIVER_THRESHOLD]
        if any(p.exposure_level > SEVERE_EXPOSURE_LEVEL for p in decision.policy_exposure):
            drivers.append("Severe Policy Exposure")
        return drivers
