"""
Enforcement directives and governance audit.

Maps a classification onto ALLOW / REVIEW / BLOCK directives per target
platform, records the governance checks that led there, and seals the
result with a SHA-256 tamper-evidence hash.
"""

import hashlib
import json
from dataclasses import dataclass
from enum import StrEnum

from riskgate.engine.classification import ClassificationResult, ClassificationState
from riskgate.engine.scoring import RiskScoreResult
from riskgate.schemas.decision import DecisionObject

HIGH_RISK_PRESSURE: float = 0.66
MEDIUM_RISK_PRESSURE: float = 0.33
SEVERE_EXPOSURE_LEVEL: float = 0.7


class EnforcementAction(StrEnum):
    ALLOW = "ALLOW"
    REVIEW = "REVIEW"
    BLOCK = "BLOCK"


class EnforcementPlatform(StrEnum):
    WINDOWS = "WINDOWS"
    LINUX = "LINUX"
    MACOS = "MACOS"
    KUBERNETES = "KUBERNETES"
    CLOUD = "CLOUD"


class ControlPlane(StrEnum):
    NONE = "NONE"
    OS_POLICY = "OS_POLICY"
    RUNTIME_GATE = "RUNTIME_GATE"
    WORKFLOW_APPROVAL = "WORKFLOW_APPROVAL"


class AuditStatus(StrEnum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


@dataclass(frozen=True)
class EnforcementDirective:
    platform: EnforcementPlatform
    action: EnforcementAction
    control_plane: ControlPlane
    controls: tuple[str, ...]


@dataclass(frozen=True)
class GovernanceAuditEntry:
    step: str
    status: AuditStatus
    detail: str


def risk_band(risk_pressure: float) -> str:
    if risk_pressure >= HIGH_RISK_PRESSURE:
        return "HIGH"
    if risk_pressure >= MEDIUM_RISK_PRESSURE:
        return "MEDIUM"
    return "LOW"


def enforcement_action_for(state: ClassificationState) -> EnforcementAction:
    if state == ClassificationState.AUTO_APPROVE:
        return EnforcementAction.ALLOW
    if state == ClassificationState.FLAG_FOR_REVIEW:
        return EnforcementAction.REVIEW
    return EnforcementAction.BLOCK


def build_directives(
    platforms: list[EnforcementPlatform],
    action: EnforcementAction,
    strict: bool = False,
) -> list[EnforcementDirective]:
    """One directive per distinct platform, in first-seen order."""
    directives = []
    for platform in dict.fromkeys(platforms):
        if action == EnforcementAction.ALLOW:
            directives.append(EnforcementDirective(platform, action, ControlPlane.NONE, ("log-only",)))
        elif action == EnforcementAction.REVIEW:
            approval = "require-two-person-approval" if strict else "require-single-approver"
            directives.append(EnforcementDirective(
                platform, action, ControlPlane.WORKFLOW_APPROVAL, (approval, "immutable-audit-log"),
            ))
        else:
            plane = (
                ControlPlane.RUNTIME_GATE
                if platform in (EnforcementPlatform.CLOUD, EnforcementPlatform.KUBERNETES)
                else ControlPlane.OS_POLICY
            )
            controls = (
                ("deny-execution", "alert-soc", "immutable-audit-log")
                if strict else ("deny-execution", "immutable-audit-log")
            )
            directives.append(EnforcementDirective(platform, action, plane, controls))
    return directives


def is_cross_platform_consistent(directives: list[EnforcementDirective]) -> bool:
    return len({d.action for d in directives}) <= 1


def build_governance_entries(
    decision: DecisionObject,
    score_result: RiskScoreResult,
    classification: ClassificationResult,
    directives: list[EnforcementDirective],
) -> list[GovernanceAuditEntry]:
    max_exposure = max((p.exposure_level for p in decision.policy_exposure), default=0.0)
    return [
        GovernanceAuditEntry(
            step="policy-exposure-check",
            status=AuditStatus.WARN if max_exposure > SEVERE_EXPOSURE_LEVEL else AuditStatus.PASS,
            detail=f"max-policy-exposure={max(max_exposure, 0.0):.2f}",
        ),
        GovernanceAuditEntry(
            step="risk-computation",
            status=AuditStatus.WARN if score_result.risk_pressure > HIGH_RISK_PRESSURE else AuditStatus.PASS,
            detail=f"risk-pressure={score_result.risk_pressure:.4f}, score={score_result.decision_score}",
        ),
        GovernanceAuditEntry(
            step="classification-resolution",
            status=AuditStatus.WARN if classification.state == ClassificationState.BLOCK else AuditStatus.PASS,
            detail=f"classification={classification.state.value}",
        ),
        GovernanceAuditEntry(
            step="cross-platform-enforcement",
            status=AuditStatus.PASS if is_cross_platform_consistent(directives) else AuditStatus.FAIL,
            detail=f"directives={len(directives)}",
        ),
    ]


def compute_tamper_evidence_hash(
    decision_id: str,
    score_result: RiskScoreResult,
    classification: ClassificationResult,
    directives: list[EnforcementDirective],
    entries: list[GovernanceAuditEntry],
) -> str:
    """SHA-256 over a canonical JSON rendering of the gate outcome."""
    payload = {
        "decision_id": decision_id,
        "decision_score": score_result.decision_score,
        "risk_pressure": score_result.risk_pressure,
        "classification": classification.state.value,
        "threshold_band": [
            round(classification.threshold_band.auto_approve_min, 6),
            round(classification.threshold_band.block_max, 6),
        ],
        "directives": [
            [d.platform.value, d.action.value, d.control_plane.value, list(d.controls)]
            for d in directives
        ],
        "audit": [[e.step, e.status.value, e.detail] for e in entries],
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
