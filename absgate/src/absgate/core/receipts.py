"""
Execution Receipts

An Execution Receipt is the record of one attempted execution, tied to
exactly one Decision Envelope by ``decision_id``. It carries:

1. The gate results checked before execution
2. The outcome (EXECUTED, BLOCKED, SKIPPED) and details
3. Evidence of what happened (output hash, metadata)
4. A signature over every other field

A SKIPPED gate only counts as authorized when it names the policy version
that allowed the skip; otherwise it is treated as a failure.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from absgate.core.clock import TimeProvider, format_timestamp, time_provider as default_time_provider
from absgate.core.crypto import canonicalize_json, generate_uuid, hash_data
from absgate.core.envelope import DecisionEnvelope, Signature
from absgate.core.errors import InvariantError, ValidationError
from absgate.core.validator import validate_receipt


class GateStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    SKIPPED = "SKIPPED"


class ExecutionOutcome(str, Enum):
    EXECUTED = "EXECUTED"
    BLOCKED = "BLOCKED"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class GateResult:
    """Result of one applicability gate."""
    result: GateStatus
    checked_at: str
    source: str
    skip_reason: Optional[str] = None
    skip_policy_version: Optional[str] = None

    @property
    def is_authorized_skip(self) -> bool:
        return self.result == GateStatus.SKIPPED and bool(self.skip_policy_version)

    @property
    def blocks_execution(self) -> bool:
        """FAIL, or SKIPPED without a policy version."""
        if self.result == GateStatus.FAIL:
            return True
        return self.result == GateStatus.SKIPPED and not self.skip_policy_version

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "result": self.result.value,
            "checked_at": self.checked_at,
            "source": self.source,
        }
        if self.skip_reason:
            d["skip_reason"] = self.skip_reason
        if self.skip_policy_version:
            d["skip_policy_version"] = self.skip_policy_version
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GateResult":
        return cls(
            result=GateStatus(data["result"]),
            checked_at=data["checked_at"],
            source=data["source"],
            skip_reason=data.get("skip_reason"),
            skip_policy_version=data.get("skip_policy_version"),
        )


@dataclass(frozen=True)
class Evidence:
    """Evidence of execution."""
    output_hash: Optional[str] = None
    input_hash: Optional[str] = None
    external_refs: Optional[List[str]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.input_hash:
            d["input_hash"] = self.input_hash
        if self.output_hash:
            d["output_hash"] = self.output_hash
        if self.external_refs:
            d["external_refs"] = list(self.external_refs)
        if self.metadata:
            d["metadata"] = dict(self.metadata)
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Evidence":
        return cls(
            output_hash=data.get("output_hash"),
            input_hash=data.get("input_hash"),
            external_refs=data.get("external_refs"),
            metadata=data.get("metadata") or {},
        )


@dataclass(frozen=True)
class ExecutionContext:
    """Where the execution happened. Extra keys are carried through."""
    environment: str
    tenant_id: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d = dict(self.extra)
        d["environment"] = self.environment
        d["tenant_id"] = self.tenant_id
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionContext":
        extra = {k: v for k, v in data.items() if k not in ("environment", "tenant_id")}
        return cls(environment=data["environment"], tenant_id=data["tenant_id"], extra=extra)


@dataclass(frozen=True)
class ExecutionReceipt:
    """
    Proof that a decision was acted upon (or blocked).

    Links back to the DecisionEnvelope via ``decision_id``.
    """
    receipt_id: str
    execution_id: str
    decision_id: str
    timestamp: str
    executor_id: str
    execution_context: ExecutionContext
    gates: Dict[str, GateResult]
    outcome: ExecutionOutcome
    details: Optional[str] = None
    evidence: Optional[Evidence] = None
    signature: Optional[Signature] = None

    @property
    def failed_gates(self) -> List[str]:
        return [name for name, gate in self.gates.items() if gate.blocks_execution]

    def with_signature(self, signature: Signature) -> "ExecutionReceipt":
        return replace(self, signature=signature)

    def to_dict(self, include_signature: bool = True) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "receipt_id": self.receipt_id,
            "execution_id": self.execution_id,
            "decision_id": self.decision_id,
            "timestamp": self.timestamp,
            "executor_id": self.executor_id,
            "execution_context": self.execution_context.to_dict(),
            "gates": {name: gate.to_dict() for name, gate in self.gates.items()},
            "outcome": self.outcome.value,
        }
        if self.details is not None:
            d["details"] = self.details
        if self.evidence is not None:
            d["evidence"] = self.evidence.to_dict()
        if include_signature and self.signature is not None:
            d["signature"] = self.signature.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionReceipt":
        evidence = data.get("evidence")
        signature = data.get("signature")
        return cls(
            receipt_id=data["receipt_id"],
            execution_id=data["execution_id"],
            decision_id=data["decision_id"],
            timestamp=data["timestamp"],
            executor_id=data["executor_id"],
            execution_context=ExecutionContext.from_dict(data["execution_context"]),
            gates={name: GateResult.from_dict(g) for name, g in data.get("gates", {}).items()},
            outcome=ExecutionOutcome(data["outcome"]),
            details=data.get("details"),
            evidence=Evidence.from_dict(evidence) if evidence is not None else None,
            signature=Signature.from_dict(signature) if signature else None,
        )

    def to_json(self) -> str:
        return canonicalize_json(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "ExecutionReceipt":
        return cls.from_dict(json.loads(json_str))

    def canonical_bytes(self) -> bytes:
        """Bytes covered by the signature."""
        return canonicalize_json(self.to_dict(include_signature=False)).encode("utf-8")

    def compute_hash(self) -> str:
        return hash_data(self.canonical_bytes())


class ExecutionReceiptBuilder:
    """
    Builder for ExecutionReceipt, linked to a DecisionEnvelope.

    Usage:
        receipt = (
            ExecutionReceiptBuilder(envelope)
            .set_executor_id("worker-1")
            .set_execution_context("production", "tenant-1")
            .add_gate_pass("TENANT_ACTIVE", "policy-service")
            .set_outcome(ExecutionOutcome.EXECUTED)
            .set_evidence(output_hash="sha256:...")
            .build()
        )
    """

    def __init__(
        self,
        envelope: DecisionEnvelope,
        time_provider: Optional[TimeProvider] = None,
        signer: Optional[Any] = None,
    ):
        self.envelope = envelope
        self._time = time_provider or default_time_provider
        self._signer = signer
        self._data: Dict[str, Any] = {
            "decision_id": envelope.decision_id,
            "gates": {},
        }

    def set_receipt_id(self, receipt_id: str) -> "ExecutionReceiptBuilder":
        self._data["receipt_id"] = receipt_id
        return self

    def set_execution_id(self, execution_id: str) -> "ExecutionReceiptBuilder":
        self._data["execution_id"] = execution_id
        return self

    def set_decision_id(self, decision_id: str) -> "ExecutionReceiptBuilder":
        """Override the linked decision id (replaying stored receipts)."""
        self._data["decision_id"] = decision_id
        return self

    def set_timestamp(self, timestamp: Union[str, datetime]) -> "ExecutionReceiptBuilder":
        self._data["timestamp"] = format_timestamp(timestamp) if isinstance(timestamp, datetime) else timestamp
        return self

    def set_executor_id(self, executor_id: str) -> "ExecutionReceiptBuilder":
        self._data["executor_id"] = executor_id
        return self

    def set_execution_context(self, environment: str, tenant_id: str, **extra: Any) -> "ExecutionReceiptBuilder":
        self._data["execution_context"] = {**extra, "environment": environment, "tenant_id": tenant_id}
        return self

    def add_gate_pass(self, gate_name: str, source: str) -> "ExecutionReceiptBuilder":
        return self.set_gate(gate_name, GateResult(GateStatus.PASS, self._time.now_iso(), source))

    def add_gate_fail(self, gate_name: str, source: str) -> "ExecutionReceiptBuilder":
        return self.set_gate(gate_name, GateResult(GateStatus.FAIL, self._time.now_iso(), source))

    def add_gate_skipped(
        self,
        gate_name: str,
        source: str,
        policy_version: str,
        reason: str,
        acknowledge: bool = False,
    ) -> "ExecutionReceiptBuilder":
        """
        Record a SKIPPED gate.

        Skipping a gate is an explicit policy exception, so the caller must
        pass ``acknowledge=True`` and name the policy version that allows it.

        Raises:
            InvariantError: without acknowledgement or policy version
        """
        if not acknowledge:
            raise InvariantError(
                "SKIPPED gates require explicit acknowledgment",
                "GATE_SKIP_ACKNOWLEDGMENT",
                {"gate": gate_name},
            )
        if not policy_version:
            raise InvariantError(
                "SKIPPED gates require the authorizing policy version",
                "GATE_SKIP_POLICY_VERSION",
                {"gate": gate_name},
            )
        return self.set_gate(gate_name, GateResult(
            result=GateStatus.SKIPPED,
            checked_at=self._time.now_iso(),
            source=source,
            skip_reason=reason,
            skip_policy_version=policy_version,
        ))

    def set_gate(self, gate_name: str, result: Union[GateResult, Dict[str, Any]]) -> "ExecutionReceiptBuilder":
        self._data["gates"][gate_name] = result.to_dict() if isinstance(result, GateResult) else dict(result)
        return self

    def auto_pass_required_gates(self, source: str) -> "ExecutionReceiptBuilder":
        """Mark every required check of the envelope not yet recorded as PASS."""
        for check in self.envelope.applicability.required_checks:
            if check not in self._data["gates"]:
                self.add_gate_pass(check, source)
        return self

    @property
    def gates(self) -> Dict[str, GateResult]:
        return {name: GateResult.from_dict(g) for name, g in self._data["gates"].items()}

    @property
    def details(self) -> Optional[str]:
        return self._data.get("details")

    def set_outcome(self, outcome: Union[ExecutionOutcome, str]) -> "ExecutionReceiptBuilder":
        self._data["outcome"] = outcome.value if isinstance(outcome, ExecutionOutcome) else outcome
        return self

    def set_details(self, details: str) -> "ExecutionReceiptBuilder":
        self._data["details"] = details
        return self

    def set_evidence(
        self,
        output_hash: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        input_hash: Optional[str] = None,
        external_refs: Optional[List[str]] = None,
    ) -> "ExecutionReceiptBuilder":
        self._data["evidence"] = Evidence(
            output_hash=output_hash,
            input_hash=input_hash,
            external_refs=external_refs,
            metadata=metadata or {},
        ).to_dict()
        return self

    def set_signature(self, signature: Signature) -> "ExecutionReceiptBuilder":
        self._data["signature"] = signature.to_dict()
        return self

    def _fill_defaults(self) -> None:
        self._data.setdefault("receipt_id", generate_uuid())
        self._data.setdefault("execution_id", generate_uuid())
        self._data.setdefault("timestamp", self._time.now_iso())

    def build(self) -> ExecutionReceipt:
        """
        Validate and build the receipt.

        Raises:
            ValidationError: if required fields are missing or invalid
        """
        self._fill_defaults()
        self._data.setdefault("evidence", {"metadata": {"auto_generated": True}})

        result = validate_receipt(self._data)
        if not result.valid:
            raise ValidationError(
                "Failed to build ExecutionReceipt: validation failed",
                result.errors,
            )

        receipt = ExecutionReceipt.from_dict(self._data)
        if self._signer is not None and receipt.signature is None:
            receipt = self._signer.sign_receipt(receipt)
        return receipt

    def build_unsafe(self) -> ExecutionReceipt:
        """Build without validation. Missing fields are left empty."""
        self._fill_defaults()
        data = self._data
        evidence = data.get("evidence")
        signature = data.get("signature")
        return ExecutionReceipt(
            receipt_id=data["receipt_id"],
            execution_id=data["execution_id"],
            decision_id=data["decision_id"],
            timestamp=data["timestamp"],
            executor_id=data.get("executor_id", ""),
            execution_context=ExecutionContext.from_dict(
                data.get("execution_context", {"environment": "", "tenant_id": ""})
            ),
            gates=self.gates,
            outcome=ExecutionOutcome(data.get("outcome", ExecutionOutcome.BLOCKED.value)),
            details=data.get("details"),
            evidence=Evidence.from_dict(evidence) if evidence is not None else None,
            signature=Signature.from_dict(signature) if signature else None,
        )
