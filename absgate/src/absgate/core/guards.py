"""
Execution guards.

Guards are hard-fail checks used at the execution gate. Each raises a
distinct error kind so callers can branch on it:

    guard_not_monitor_mode       -> MonitorModeError
    guard_not_expired            -> ExpiredError
    guard_allowed                -> VerdictError
    guard_gates_passed           -> GateError
    guard_time_sync              -> ClockSkewError
    guard_receipt_links_to_envelope / guard_required_gates_checked
                                 -> InvariantError

``guard_executable`` composes the first three. Monitor mode blocks
execution even when the verdict is ALLOW.
"""

from datetime import datetime
from typing import List, Optional, Union

from absgate.core.clock import TimeProvider, format_timestamp, parse_timestamp, time_provider as default_time_provider
from absgate.core.envelope import DecisionEnvelope, Verdict
from absgate.core.errors import (
    ClockSkewError,
    ExpiredError,
    FailedGate,
    GateError,
    InvariantError,
    MonitorModeError,
    VerdictError,
)
from absgate.core.receipts import ExecutionReceipt, GateResult, GateStatus

DEFAULT_MAX_SKEW_MS = 30_000


def _now(now: Optional[datetime], time_provider: Optional[TimeProvider]) -> datetime:
    if now is not None:
        return parse_timestamp(now)
    return (time_provider or default_time_provider).now()


def guard_not_monitor_mode(envelope: DecisionEnvelope) -> None:
    if envelope.applicability.monitor_mode:
        raise MonitorModeError(envelope.decision_id)


def guard_not_expired(
    envelope: DecisionEnvelope,
    now: Optional[datetime] = None,
    time_provider: Optional[TimeProvider] = None,
) -> None:
    if not envelope.valid_until:
        return

    current = _now(now, time_provider)
    if current > parse_timestamp(envelope.valid_until):
        raise ExpiredError(envelope.valid_until, format_timestamp(current))


def guard_allowed(envelope: DecisionEnvelope) -> None:
    if envelope.verdict != Verdict.ALLOW:
        verdict = envelope.verdict.value if isinstance(envelope.verdict, Verdict) else str(envelope.verdict)
        raise VerdictError(verdict, str(envelope.reason_code))


def collect_failed_gates(gates: dict) -> List[FailedGate]:
    """FAIL gates and SKIPPED gates lacking a policy version."""
    failed: List[FailedGate] = []
    for name, gate in gates.items():
        if not isinstance(gate, GateResult):
            gate = GateResult.from_dict(gate)
        if gate.result == GateStatus.FAIL:
            failed.append(FailedGate(name=name, result="FAIL", reason=gate.source))
        elif gate.result == GateStatus.SKIPPED and not gate.skip_policy_version:
            failed.append(FailedGate(
                name=name,
                result="SKIPPED",
                reason="SKIPPED without policy authorization",
            ))
    return failed


def guard_gates_passed(receipt: Union[ExecutionReceipt, dict]) -> None:
    """
    Raises GateError if any gate is FAIL or an unauthorized SKIPPED.

    Accepts a receipt or a bare mapping of gate name to GateResult.
    """
    gates = receipt.gates if isinstance(receipt, ExecutionReceipt) else receipt
    failed = collect_failed_gates(gates)
    if failed:
        raise GateError(failed)


def guard_time_sync(
    timestamp: Union[str, datetime],
    max_skew_ms: float = DEFAULT_MAX_SKEW_MS,
    reference_time: Optional[datetime] = None,
    time_provider: Optional[TimeProvider] = None,
) -> None:
    """Fail if ``timestamp`` is more than ``max_skew_ms`` away from now."""
    now = _now(reference_time, time_provider)
    skew_ms = (now - parse_timestamp(timestamp)).total_seconds() * 1000
    if abs(skew_ms) > max_skew_ms:
        raise ClockSkewError(skew_ms, max_skew_ms)


def guard_executable(
    envelope: DecisionEnvelope,
    now: Optional[datetime] = None,
    time_provider: Optional[TimeProvider] = None,
) -> None:
    """Not in monitor mode, not expired, and verdict is ALLOW (checked in that order)."""
    guard_not_monitor_mode(envelope)
    guard_not_expired(envelope, now=now, time_provider=time_provider)
    guard_allowed(envelope)


def guard_receipt_links_to_envelope(envelope: DecisionEnvelope, receipt: ExecutionReceipt) -> None:
    if receipt.decision_id != envelope.decision_id:
        raise InvariantError(
            f"Receipt decision_id ({receipt.decision_id}) does not match envelope ({envelope.decision_id})",
            "RECEIPT_ENVELOPE_LINK",
            {"receipt_id": receipt.receipt_id, "decision_id": envelope.decision_id},
        )


def guard_required_gates_checked(envelope: DecisionEnvelope, receipt: ExecutionReceipt) -> None:
    missing = [
        check for check in envelope.applicability.required_checks
        if check not in receipt.gates
    ]
    if missing:
        raise InvariantError(
            f"Required gates not checked: {', '.join(missing)}",
            "MISSING_REQUIRED_GATES",
            {"missing_gates": missing},
        )
