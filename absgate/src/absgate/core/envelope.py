"""
Decision Envelope

The Decision Envelope is the immutable, signed record of one governance
decision. It is the contract between the gate and any executor:

- verdict: ALLOW, DENY or REQUIRE_APPROVAL
- reason_code / reason_human: why
- risk_score: integer 0-100
- authority: which policy decided, and when
- applicability: gates that must pass before execution, monitor mode
- context: tenant, agent, event and requested action
- signature: HMAC over every other field

Envelopes are built with DecisionEnvelopeBuilder, which validates the
record before returning it. Once built an envelope is never mutated; use
``dataclasses.replace`` to derive a new one (which invalidates the
signature).
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from absgate.core.clock import TimeProvider, format_timestamp, time_provider as default_time_provider
from absgate.core.crypto import SIGNATURE_ALGORITHM, canonicalize_json, generate_uuid, hash_data
from absgate.core.errors import ValidationError
from absgate.core.validator import validate_envelope

CONTRACT_VERSION = "1.0.0"


class Verdict(str, Enum):
    """Outcome of governance evaluation."""
    ALLOW = "ALLOW"
    DENY = "DENY"
    REQUIRE_APPROVAL = "REQUIRE_APPROVAL"


class DecisionType(str, Enum):
    GOVERNANCE = "GOVERNANCE"
    OPERATIONAL = "OPERATIONAL"


class ReasonCode(str, Enum):
    """Structured categorization of decision rationale."""
    POLICY_ALLOWED = "POLICY.ALLOWED"
    POLICY_VIOLATION = "POLICY.VIOLATION"
    RISK_EXCEEDED = "RISK.EXCEEDED"
    SEQUENCE_VIOLATION = "SEQUENCE.VIOLATION"
    INPUT_INJECTION = "INPUT.INJECTION"
    AUTH_INVALID = "AUTH.INVALID"
    AUTH_SCOPE_MISSING = "AUTH.SCOPE_MISSING"
    BUDGET_EXHAUSTED = "BUDGET.EXHAUSTED"
    RATE_LIMITED = "RATE.LIMITED"
    OPS_MAINTENANCE = "OPS.MAINTENANCE"


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class Signature:
    """Cryptographic seal over a record."""
    alg: str
    key_id: str
    value: str

    @property
    def is_placeholder(self) -> bool:
        return self.key_id == UNSIGNED.key_id and self.value == UNSIGNED.value

    def to_dict(self) -> Dict[str, Any]:
        return {"alg": self.alg, "key_id": self.key_id, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Signature":
        return cls(alg=data["alg"], key_id=data["key_id"], value=data["value"])


# Carried by records built without a signer
UNSIGNED = Signature(alg=SIGNATURE_ALGORITHM, key_id="unsigned", value="pending")


@dataclass(frozen=True)
class Authority:
    """Which policy produced the decision, and when."""
    policy_name: str
    policy_version: str
    evaluated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy_name": self.policy_name,
            "policy_version": self.policy_version,
            "evaluated_at": self.evaluated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Authority":
        return cls(
            policy_name=data["policy_name"],
            policy_version=data["policy_version"],
            evaluated_at=data["evaluated_at"],
        )


@dataclass(frozen=True)
class Applicability:
    """Conditions for execution."""
    required_checks: Tuple[str, ...] = ()
    monitor_mode: bool = False
    jurisdiction: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "required_checks": list(self.required_checks),
            "monitor_mode": self.monitor_mode,
        }
        if self.jurisdiction:
            d["jurisdiction"] = self.jurisdiction
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Applicability":
        return cls(
            required_checks=tuple(data.get("required_checks", [])),
            monitor_mode=data.get("monitor_mode", False),
            jurisdiction=data.get("jurisdiction"),
        )


@dataclass(frozen=True)
class DecisionContext:
    """What triggered the decision."""
    tenant_id: str
    agent_id: str
    event_type: str
    action_requested: str
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "tenant_id": self.tenant_id,
            "agent_id": self.agent_id,
            "event_type": self.event_type,
            "action_requested": self.action_requested,
        }
        if self.session_id:
            d["session_id"] = self.session_id
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionContext":
        return cls(
            tenant_id=data["tenant_id"],
            agent_id=data["agent_id"],
            event_type=data["event_type"],
            action_requested=data["action_requested"],
            session_id=data.get("session_id"),
        )


@dataclass(frozen=True)
class DecisionEnvelope:
    """
    The immutable governance decision.

    The signature covers the canonical JSON of every other field, so any
    change to any field invalidates it.
    """
    decision_id: str
    trace_id: str
    timestamp: str
    verdict: Verdict
    reason_code: str
    reason_human: str
    risk_score: int
    authority: Authority
    context: DecisionContext
    applicability: Applicability = field(default_factory=Applicability)
    signature: Signature = UNSIGNED
    valid_until: Optional[str] = None
    decision_type: DecisionType = DecisionType.GOVERNANCE
    contract_version: str = CONTRACT_VERSION

    @property
    def is_signed(self) -> bool:
        return not self.signature.is_placeholder

    @property
    def monitor_mode(self) -> bool:
        return self.applicability.monitor_mode

    @property
    def required_checks(self) -> List[str]:
        return list(self.applicability.required_checks)

    def with_signature(self, signature: Signature) -> "DecisionEnvelope":
        return replace(self, signature=signature)

    def to_dict(self, include_signature: bool = True) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "contract_version": self.contract_version,
            "decision_id": self.decision_id,
            "trace_id": self.trace_id,
            "timestamp": self.timestamp,
            "decision_type": _enum_value(self.decision_type),
            "verdict": _enum_value(self.verdict),
            "reason_code": _enum_value(self.reason_code),
            "reason_human": self.reason_human,
            "risk_score": self.risk_score,
            "authority": self.authority.to_dict(),
            "applicability": self.applicability.to_dict(),
            "context": self.context.to_dict(),
        }
        if self.valid_until:
            d["valid_until"] = self.valid_until
        if include_signature:
            d["signature"] = self.signature.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionEnvelope":
        applicability = data.get("applicability")
        signature = data.get("signature")
        return cls(
            contract_version=data.get("contract_version", CONTRACT_VERSION),
            decision_id=data["decision_id"],
            trace_id=data["trace_id"],
            timestamp=data["timestamp"],
            valid_until=data.get("valid_until"),
            decision_type=DecisionType(data.get("decision_type", DecisionType.GOVERNANCE.value)),
            verdict=Verdict(data["verdict"]),
            reason_code=data["reason_code"],
            reason_human=data["reason_human"],
            risk_score=data["risk_score"],
            authority=Authority.from_dict(data["authority"]),
            applicability=Applicability.from_dict(applicability) if applicability else Applicability(),
            context=DecisionContext.from_dict(data["context"]),
            signature=Signature.from_dict(signature) if signature else UNSIGNED,
        )

    def to_json(self) -> str:
        return canonicalize_json(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "DecisionEnvelope":
        return cls.from_dict(json.loads(json_str))

    def canonical_bytes(self) -> bytes:
        """Bytes covered by the signature (every field except the signature)."""
        return canonicalize_json(self.to_dict(include_signature=False)).encode("utf-8")

    def compute_hash(self) -> str:
        return hash_data(self.canonical_bytes())


class DecisionEnvelopeBuilder:
    """
    Fluent builder for DecisionEnvelope.

    Usage:
        envelope = (
            DecisionEnvelopeBuilder()
            .set_trace_id("evt-123")
            .set_verdict(Verdict.ALLOW)
            .set_reason(ReasonCode.POLICY_ALLOWED, "Within policy")
            .set_risk_score(12)
            .set_authority("abs-risk-policy", "1.0.0")
            .set_context("tenant-1", "agent-1", "bot.message", "send_reply")
            .set_valid_until(300)
            .build()
        )

    ``build()`` validates the record and raises ValidationError listing
    every problem. ``build_unsafe()`` skips validation and is meant only
    for test fixtures and replaying stored records.
    """

    def __init__(
        self,
        time_provider: Optional[TimeProvider] = None,
        signer: Optional[Any] = None,
    ):
        self._time = time_provider or default_time_provider
        self._signer = signer
        self._data: Dict[str, Any] = {
            "contract_version": CONTRACT_VERSION,
            "decision_type": DecisionType.GOVERNANCE.value,
        }

    def set_decision_id(self, decision_id: str) -> "DecisionEnvelopeBuilder":
        self._data["decision_id"] = decision_id
        return self

    def set_trace_id(self, trace_id: str) -> "DecisionEnvelopeBuilder":
        self._data["trace_id"] = trace_id
        return self

    def set_timestamp(self, timestamp: Union[str, datetime]) -> "DecisionEnvelopeBuilder":
        self._data["timestamp"] = _to_wire_time(timestamp)
        return self

    def set_valid_until(self, valid_until: Union[str, datetime, int, float]) -> "DecisionEnvelopeBuilder":
        """Set expiry as an ISO timestamp, a datetime, or a TTL in seconds from now."""
        if isinstance(valid_until, (int, float)) and not isinstance(valid_until, bool):
            self._data["valid_until"] = self._time.valid_until(valid_until)
        else:
            self._data["valid_until"] = _to_wire_time(valid_until)
        return self

    def set_decision_type(self, decision_type: Union[DecisionType, str]) -> "DecisionEnvelopeBuilder":
        self._data["decision_type"] = _enum_value(decision_type)
        return self

    def set_verdict(self, verdict: Union[Verdict, str]) -> "DecisionEnvelopeBuilder":
        self._data["verdict"] = _enum_value(verdict)
        return self

    def set_reason_code(self, code: Union[ReasonCode, str]) -> "DecisionEnvelopeBuilder":
        self._data["reason_code"] = _enum_value(code)
        return self

    def set_reason_human(self, reason: str) -> "DecisionEnvelopeBuilder":
        self._data["reason_human"] = reason
        return self

    def set_reason(self, code: Union[ReasonCode, str], reason: str) -> "DecisionEnvelopeBuilder":
        return self.set_reason_code(code).set_reason_human(reason)

    def set_risk_score(self, score: int) -> "DecisionEnvelopeBuilder":
        # Range is enforced by build() so the failure carries a field path
        self._data["risk_score"] = score
        return self

    def set_authority(
        self,
        policy_name: str,
        policy_version: str,
        evaluated_at: Optional[Union[str, datetime]] = None,
    ) -> "DecisionEnvelopeBuilder":
        self._data["authority"] = {
            "policy_name": policy_name,
            "policy_version": policy_version,
            "evaluated_at": _to_wire_time(evaluated_at) if evaluated_at else self._time.now_iso(),
        }
        return self

    def set_applicability(
        self,
        required_checks: List[str],
        monitor_mode: bool = False,
        jurisdiction: Optional[str] = None,
    ) -> "DecisionEnvelopeBuilder":
        self._data["applicability"] = {
            "required_checks": list(required_checks),
            "monitor_mode": monitor_mode,
        }
        if jurisdiction:
            self._data["applicability"]["jurisdiction"] = jurisdiction
        return self

    def set_required_checks(self, checks: List[str]) -> "DecisionEnvelopeBuilder":
        self._applicability()["required_checks"] = list(checks)
        return self

    def set_monitor_mode(self, enabled: bool) -> "DecisionEnvelopeBuilder":
        self._applicability()["monitor_mode"] = enabled
        return self

    def set_context(
        self,
        tenant_id: str,
        agent_id: str,
        event_type: str,
        action_requested: str,
        session_id: Optional[str] = None,
    ) -> "DecisionEnvelopeBuilder":
        self._data["context"] = {
            "tenant_id": tenant_id,
            "agent_id": agent_id,
            "event_type": event_type,
            "action_requested": action_requested,
        }
        if session_id:
            self._data["context"]["session_id"] = session_id
        return self

    def set_signature(self, signature: Signature) -> "DecisionEnvelopeBuilder":
        self._data["signature"] = signature.to_dict()
        return self

    def _applicability(self) -> Dict[str, Any]:
        return self._data.setdefault(
            "applicability", {"required_checks": [], "monitor_mode": False}
        )

    def _fill_defaults(self) -> None:
        self._data.setdefault("decision_id", generate_uuid())
        self._data.setdefault("timestamp", self._time.now_iso())
        self._applicability()

    def build(self) -> DecisionEnvelope:
        """
        Validate and build the envelope.

        Raises:
            ValidationError: if any required field is missing or out of range
        """
        self._fill_defaults()
        draft = dict(self._data)
        draft.setdefault("signature", UNSIGNED.to_dict())

        result = validate_envelope(draft, time_provider=self._time)
        if not result.valid:
            raise ValidationError(
                "Failed to build DecisionEnvelope: validation failed",
                result.errors,
            )

        envelope = DecisionEnvelope.from_dict(draft)
        if self._signer is not None and "signature" not in self._data:
            envelope = self._signer.sign_envelope(envelope)
        return envelope

    def build_unsafe(self) -> DecisionEnvelope:
        """Build without validation. Missing fields are left empty."""
        self._fill_defaults()
        data = self._data
        return DecisionEnvelope(
            contract_version=data.get("contract_version", CONTRACT_VERSION),
            decision_id=data["decision_id"],
            trace_id=data.get("trace_id", ""),
            timestamp=data["timestamp"],
            valid_until=data.get("valid_until"),
            decision_type=DecisionType(data.get("decision_type", DecisionType.GOVERNANCE.value)),
            verdict=Verdict(data.get("verdict", Verdict.DENY.value)),
            reason_code=data.get("reason_code", ""),
            reason_human=data.get("reason_human", ""),
            risk_score=data.get("risk_score", 0),
            authority=Authority.from_dict(data["authority"]) if "authority" in data else Authority("", "", ""),
            applicability=Applicability.from_dict(data["applicability"]),
            context=DecisionContext.from_dict(data["context"]) if "context" in data else DecisionContext("", "", "", ""),
            signature=Signature.from_dict(data["signature"]) if "signature" in data else UNSIGNED,
        )


def _to_wire_time(value: Union[str, datetime]) -> str:
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value
