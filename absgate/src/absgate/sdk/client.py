"""
ABS SDK Client

Runs an action behind the execution gate. Every attempt, allowed or not,
yields an Execution Receipt linked to the Decision Envelope it acted on.

Usage:
    client = GovernanceClient(ClientConfig(tenant_id="acme", agent_id="bot-1"))

    result = await client.execute(envelope, send_reply)
    if result.status == ExecutionStatus.EXECUTED:
        print(result.result)
    else:
        print(result.receipt.details)
"""

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from absgate.core.clock import TimeProvider, time_provider as default_time_provider
from absgate.core.crypto import generate_uuid, hash_json
from absgate.core.envelope import DecisionEnvelope, DecisionEnvelopeBuilder, ReasonCode, Verdict
from absgate.core.errors import EXECUTION_GUARD_ERRORS, ValidationError
from absgate.core.guards import (
    guard_executable,
    guard_gates_passed,
    guard_receipt_links_to_envelope,
    guard_required_gates_checked,
    guard_time_sync,
)
from absgate.core.receipts import ExecutionOutcome, ExecutionReceipt, ExecutionReceiptBuilder, GateResult
from absgate.core.signing import EnvelopeSigner
from absgate.core.validator import (
    ChainValidationResult,
    ValidationResult,
    validate_chain,
    validate_envelope,
    validate_receipt,
)
from absgate.monitoring.logging import AuditLogger, get_logger

SDK_VERSION = "0.1.0"

logger = get_logger(__name__)


class ExecutionStatus(str, Enum):
    EXECUTED = "executed"
    BLOCKED = "blocked"


@dataclass
class ClientConfig:
    """Configuration for GovernanceClient."""
    tenant_id: str
    agent_id: str
    executor_id: str = "sdk-executor"
    environment: str = "unknown"
    time_provider: Optional[TimeProvider] = None
    signer: Optional[EnvelopeSigner] = None
    verify_signatures: bool = False


@dataclass
class ExecutionResult:
    """Outcome of execute(). A receipt is always present."""
    status: ExecutionStatus
    receipt: ExecutionReceipt
    result: Any = None
    error: Optional[Exception] = None

    @property
    def executed(self) -> bool:
        return self.status == ExecutionStatus.EXECUTED


class GovernanceClient:
    """Execution-side client for decision envelopes."""

    def __init__(self, config: ClientConfig):
        if config.verify_signatures and config.signer is None:
            raise ValueError("verify_signatures requires a signer")
        for name in ("tenant_id", "environment", "executor_id"):
            if not getattr(config, name):
                raise ValueError(f"ClientConfig.{name} must not be empty")
        self.config = config
        self.time = config.time_provider or default_time_provider
        self._audit = AuditLogger()

    async def execute(
        self,
        envelope: DecisionEnvelope,
        executor: Callable[[], Any],
        executor_id: Optional[str] = None,
        gate_source: str = "policy-gate-verified",
        gates: Optional[Dict[str, GateResult]] = None,
        timeout_seconds: Optional[float] = None,
        max_skew_ms: Optional[float] = None,
    ) -> ExecutionResult:
        """
        Run ``executor`` if the envelope permits it.

        The executor may be a plain or async callable and is called at most
        once. Plain callables run in a worker thread; ``timeout_seconds``
        bounds the wait for either kind, but a timed-out plain callable
        keeps running in its thread. Guard failures and executor exceptions
        both produce a BLOCKED receipt; nothing is raised to the caller.
        """
        builder = self.create_receipt_builder(envelope, executor_id=executor_id)

        try:
            if self.config.verify_signatures:
                self.config.signer.require_valid_envelope(envelope)

            guard_executable(envelope, time_provider=self.time)
            if max_skew_ms is not None:
                guard_time_sync(envelope.timestamp, max_skew_ms, time_provider=self.time)

            for name, gate in (gates or {}).items():
                builder.set_gate(name, gate)
            builder.auto_pass_required_gates(gate_source)
            guard_gates_passed(builder.gates)

            draft = builder.build_unsafe()
            guard_receipt_links_to_envelope(envelope, draft)
            guard_required_gates_checked(envelope, draft)
        except EXECUTION_GUARD_ERRORS as e:
            return self._blocked(envelope, builder, e.message, e)

        try:
            result = await self._run(executor, timeout_seconds)
        except asyncio.TimeoutError as e:
            return self._blocked(envelope, builder, f"Execution failed: timed out after {timeout_seconds}s", e)
        except Exception as e:
            return self._blocked(envelope, builder, f"Execution failed: {e}", e)

        evidence_metadata = {"executed_at": self.time.now_iso(), "sdk_version": SDK_VERSION}
        builder = (
            builder
            .set_outcome(ExecutionOutcome.EXECUTED)
            .set_details("Execution completed successfully")
            .set_evidence(output_hash=_output_hash(result), metadata=evidence_metadata)
        )
        receipt = self._finish(envelope, builder)
        self._audit.log_execution(
            decision_id=envelope.decision_id,
            receipt_id=receipt.receipt_id,
            outcome=receipt.outcome.value,
            executor_id=receipt.executor_id,
        )
        return ExecutionResult(status=ExecutionStatus.EXECUTED, receipt=receipt, result=result)

    async def _run(self, executor: Callable[[], Any], timeout_seconds: Optional[float]) -> Any:
        if timeout_seconds is None:
            return await _invoke(executor)
        return await asyncio.wait_for(_invoke(executor), timeout=timeout_seconds)

    def _finish(self, envelope: DecisionEnvelope, builder: ExecutionReceiptBuilder) -> ExecutionReceipt:
        """
        Build the receipt for an attempt that has already happened.

        A receipt that fails structural validation (a replayed envelope with
        a legacy id, a gate without a source) is still built, unvalidated,
        with the validation errors appended to its details.
        """
        try:
            return builder.build()
        except ValidationError as e:
            issues = "; ".join(f"{issue.path}: {issue.message}" for issue in e.errors)
            details = builder.details or ""
            builder.set_details(f"{details} [receipt validation failed: {issues}]".strip())
            logger.warning(
                "receipt_validation_failed",
                decision_id=envelope.decision_id,
                errors=[issue.to_dict() for issue in e.errors],
            )
            receipt = builder.build_unsafe()
            if self.config.signer is not None:
                receipt = self.config.signer.sign_receipt(receipt)
            return receipt

    def _blocked(
        self,
        envelope: DecisionEnvelope,
        builder: ExecutionReceiptBuilder,
        details: str,
        error: Exception,
    ) -> ExecutionResult:
        receipt = self._finish(envelope, builder.set_outcome(ExecutionOutcome.BLOCKED).set_details(details))
        self._audit.log_execution(
            decision_id=envelope.decision_id,
            receipt_id=receipt.receipt_id,
            outcome=receipt.outcome.value,
            executor_id=receipt.executor_id,
            details=details,
            error_type=type(error).__name__,
        )
        return ExecutionResult(status=ExecutionStatus.BLOCKED, receipt=receipt, error=error)

    def process_local(self, event: Any) -> DecisionEnvelope:
        """
        Build a monitor-mode ALLOW envelope for ``event`` without policy
        evaluation. Useful for offline testing; never executable.
        """
        envelope = (
            self.create_envelope_builder()
            .set_decision_id(generate_uuid())
            .set_trace_id(getattr(event, "correlation_id", None) or generate_uuid())
            .set_verdict(Verdict.ALLOW)
            .set_reason(ReasonCode.POLICY_ALLOWED, "Local SDK processing - no policy evaluation")
            .set_risk_score(0)
            .set_authority("sdk-local", SDK_VERSION)
            .set_context(
                tenant_id=getattr(event, "tenant_id", None) or self.config.tenant_id,
                agent_id=self.config.agent_id,
                event_type=getattr(event, "event_type", None) or "unknown",
                action_requested="process",
            )
            .set_monitor_mode(True)
            .build()
        )
        logger.debug("local_envelope_built", decision_id=envelope.decision_id)
        return envelope

    def validate(self, envelope: Any) -> ValidationResult:
        return validate_envelope(envelope, time_provider=self.time)

    def validate_receipt(self, receipt: Any) -> ValidationResult:
        return validate_receipt(receipt)

    def validate_chain(self, envelope: Any, receipts: List[Any]) -> ChainValidationResult:
        return validate_chain(envelope, receipts, time_provider=self.time)

    def create_envelope_builder(self) -> DecisionEnvelopeBuilder:
        """An envelope builder pre-filled with the client's context."""
        return DecisionEnvelopeBuilder(time_provider=self.time, signer=self.config.signer).set_context(
            tenant_id=self.config.tenant_id,
            agent_id=self.config.agent_id,
            event_type="unknown",
            action_requested="unknown",
        )

    def create_receipt_builder(
        self,
        envelope: DecisionEnvelope,
        executor_id: Optional[str] = None,
    ) -> ExecutionReceiptBuilder:
        """A receipt builder linked to ``envelope``."""
        return (
            ExecutionReceiptBuilder(envelope, time_provider=self.time, signer=self.config.signer)
            .set_executor_id(executor_id or self.config.executor_id)
            .set_execution_context(environment=self.config.environment, tenant_id=self.config.tenant_id)
        )


async def _invoke(executor: Callable[[], Any]) -> Any:
    # Plain callables run in a worker thread so they never block the event
    # loop; a timed-out thread cannot be interrupted and runs to completion.
    if inspect.iscoroutinefunction(executor):
        return await executor()
    outcome = await asyncio.to_thread(executor)
    if inspect.isawaitable(outcome):
        return await outcome
    return outcome


def _output_hash(result: Any) -> Optional[str]:
    if result is None:
        return None
    try:
        return hash_json(result)
    except (TypeError, ValueError):
        return None
