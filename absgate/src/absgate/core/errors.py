"""
Error taxonomy for the governance gate.

Guards raise one of the named kinds below so callers can branch on the
kind instead of parsing messages. Validators never raise; they return a
ValidationResult instead.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class ValidationIssue:
    """A single structural problem found while validating a record."""
    path: str
    message: str
    code: str = "invalid"

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "message": self.message, "code": self.code}


@dataclass
class FailedGate:
    """A gate that blocked execution."""
    name: str
    result: str
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "result": self.result}
        if self.reason:
            d["reason"] = self.reason
        return d


class GovernanceError(Exception):
    """Base exception for all governance errors."""
    code = "GOVERNANCE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(GovernanceError):
    """Raised when a record is structurally invalid."""
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[List[ValidationIssue]] = None):
        errors = list(errors or [])
        super().__init__(message, {"errors": [e.to_dict() for e in errors]})
        self.errors = errors


class InvariantError(GovernanceError):
    """Raised when a contract invariant is violated (an integration bug)."""
    code = "INVARIANT_VIOLATION"

    def __init__(self, message: str, invariant: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, {"invariant": invariant, **(details or {})})
        self.invariant = invariant


class ExpiredError(GovernanceError):
    """Raised when a decision is used after its valid_until."""
    code = "DECISION_EXPIRED"

    def __init__(self, valid_until: str, now: str):
        super().__init__(
            f"Decision expired at {valid_until} (now: {now})",
            {"valid_until": valid_until, "now": now},
        )
        self.valid_until = valid_until
        self.now = now


class MonitorModeError(GovernanceError):
    """Raised when execution is attempted on an advisory-only decision."""
    code = "MONITOR_MODE"

    def __init__(self, decision_id: str):
        super().__init__(
            f"Decision {decision_id} is in monitor mode and cannot be executed",
            {"decision_id": decision_id},
        )
        self.decision_id = decision_id


class VerdictError(GovernanceError):
    """Raised when execution is attempted on a non-ALLOW verdict."""
    code = "VERDICT_NOT_ALLOW"

    def __init__(self, verdict: str, reason_code: str):
        super().__init__(
            f"Cannot execute: verdict is {verdict} ({reason_code})",
            {"verdict": verdict, "reason_code": reason_code},
        )
        self.verdict = verdict
        self.reason_code = reason_code


class GateError(GovernanceError):
    """Raised when one or more gates failed or were skipped without authorization."""
    code = "GATE_FAILURE"

    def __init__(self, failed_gates: List[FailedGate]):
        names = ", ".join(g.name for g in failed_gates)
        super().__init__(
            f"Gate check failed: {names}",
            {"failed_gates": [g.to_dict() for g in failed_gates]},
        )
        self.failed_gates = list(failed_gates)


class ClockSkewError(GovernanceError):
    """Raised when a decision timestamp is too far from local time."""
    code = "CLOCK_SKEW"

    def __init__(self, skew_ms: float, max_allowed_ms: float):
        super().__init__(
            f"Clock skew of {abs(skew_ms):.0f}ms exceeds maximum of {max_allowed_ms:.0f}ms",
            {"skew_ms": skew_ms, "max_allowed_ms": max_allowed_ms},
        )
        self.skew_ms = skew_ms
        self.max_allowed_ms = max_allowed_ms


class SignatureError(GovernanceError):
    """Raised when a signature does not verify. Always a security event."""
    code = "SIGNATURE_INVALID"

    def __init__(self, message: str = "Signature verification failed", key_id: Optional[str] = None):
        super().__init__(message, {"key_id": key_id})
        self.key_id = key_id


# Errors that a blocked execution attempt reports as its details
EXECUTION_GUARD_ERRORS = (
    ValidationError,
    InvariantError,
    ExpiredError,
    MonitorModeError,
    VerdictError,
    GateError,
    ClockSkewError,
    SignatureError,
)
