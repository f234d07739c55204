"""
Custom exceptions for RiskGate.

Provides structured error handling with recovery hints and error codes.
Numeric inputs are never rejected (they are clamped at use); exceptions are
reserved for the override workflow, where a lookup or authorization failure
must stop the submission before any state changes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Standard error codes for RiskGate."""
    # General errors (1xxx)
    UNKNOWN_ERROR = "E1000"

    # Security errors (3xxx)
    AUTHORIZATION_ERROR = "E3001"
    STAKEHOLDER_INACTIVE = "E3004"

    # Override errors (7xxx)
    OVERRIDE_REQUEST_NOT_FOUND = "E7000"
    OVERRIDE_ALREADY_RESOLVED = "E7001"


class AuthorizationFailure(str, Enum):
    """Why a stakeholder may not submit a verdict."""
    INACTIVE_STAKEHOLDER = "inactive_stakeholder"
    INSUFFICIENT_CLEARANCE = "insufficient_clearance"


@dataclass
class RecoveryHint:
    """A hint for recovering from an error."""
    action: str
    description: str
    requires_human: bool = False


@dataclass
class ErrorContext:
    """Context information for an error."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = None
    stakeholder_id: Optional[str] = None
    additional: Dict[str, Any] = field(default_factory=dict)


class RiskGateError(Exception):
    """
    Base exception for RiskGate.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        recovery_hint: Optional[RecoveryHint] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.recovery_hint = recovery_hint
        self.context = context or ErrorContext()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
            "timestamp": self.context.timestamp.isoformat(),
        }

        if self.recovery_hint:
            result["recovery"] = {
                "action": self.recovery_hint.action,
                "description": self.recovery_hint.description,
                "requires_human": self.recovery_hint.requires_human,
            }

        if self.context.request_id:
            result["request_id"] = self.context.request_id
        if self.context.stakeholder_id:
            result["stakeholder_id"] = self.context.stakeholder_id

        return result

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"


# ============================================================================
# OVERRIDE WORKFLOW ERRORS
# ============================================================================


class OverrideRequestNotFoundError(RiskGateError):
    """No override request exists under the given id."""

    def __init__(self, request_id: str):
        super().__init__(
            message=f"Override request not found: {request_id}",
            error_code=ErrorCode.OVERRIDE_REQUEST_NOT_FOUND,
            recovery_hint=RecoveryHint(
                action="check_request_id",
                description="List pending requests and retry with a known id",
            ),
            context=ErrorContext(request_id=request_id),
        )
        self.request_id = request_id


class OverrideAlreadyResolvedError(RiskGateError):
    """The override request has already received its verdict."""

    def __init__(self, request_id: str):
        super().__init__(
            message=f"Override request already resolved: {request_id}",
            error_code=ErrorCode.OVERRIDE_ALREADY_RESOLVED,
            recovery_hint=RecoveryHint(
                action="inspect_history",
                description="Read the existing override record for this decision",
            ),
            context=ErrorContext(request_id=request_id),
        )
        self.request_id = request_id


class OverrideAuthorizationError(RiskGateError):
    """Base class for stakeholder authorization failures."""

    failure: AuthorizationFailure

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        request_id: str,
        stakeholder_id: str,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            recovery_hint=RecoveryHint(
                action="reassign_reviewer",
                description="Route the request to an active stakeholder with sufficient clearance",
                requires_human=True,
            ),
            context=ErrorContext(request_id=request_id, stakeholder_id=stakeholder_id),
        )
        self.request_id = request_id
        self.stakeholder_id = stakeholder_id


class StakeholderInactiveError(OverrideAuthorizationError):
    """The submitting stakeholder is deactivated."""

    failure = AuthorizationFailure.INACTIVE_STAKEHOLDER

    def __init__(self, request_id: str, stakeholder_id: str):
        super().__init__(
            message=f"Stakeholder {stakeholder_id} is inactive",
            error_code=ErrorCode.STAKEHOLDER_INACTIVE,
            request_id=request_id,
            stakeholder_id=stakeholder_id,
        )


class InsufficientClearanceError(OverrideAuthorizationError):
    """The stakeholder's clearance is below what the verdict requires."""

    failure = AuthorizationFailure.INSUFFICIENT_CLEARANCE

    def __init__(
        self,
        request_id: str,
        stakeholder_id: str,
        clearance: str,
        required: str,
    ):
        super().__init__(
            message=(
                f"Stakeholder {stakeholder_id} has clearance {clearance}, "
                f"verdict requires {required}"
            ),
            error_code=ErrorCode.AUTHORIZATION_ERROR,
            request_id=request_id,
            stakeholder_id=stakeholder_id,
        )
        self.clearance = clearance
        self.required = required
