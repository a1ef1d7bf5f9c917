"""
Structural validation for envelopes and receipts.

Validators return a ValidationResult and never raise: they are used for
passive audit and forensic review where a crash would itself be a
failure. For enforcement use the guards in ``absgate.core.guards``.

Schemas are pydantic models; pydantic's error list is mapped to
ValidationIssue(path, message, code).
"""

from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator
from pydantic import ValidationError as SchemaError

from absgate.core.clock import TimeProvider, parse_timestamp, time_provider as default_time_provider
from absgate.core.errors import ValidationIssue

HIGH_RISK_ALLOW_THRESHOLD = 80


@dataclass
class ValidationWarning:
    """Non-fatal finding."""
    path: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "message": self.message}


@dataclass
class ValidationResult:
    valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationWarning] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass
class ChainBreakPoint:
    reason: str
    envelope_id: Optional[str] = None
    receipt_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"reason": self.reason}
        if self.envelope_id:
            d["envelope_id"] = self.envelope_id
        if self.receipt_id:
            d["receipt_id"] = self.receipt_id
        return d


@dataclass
class ChainValidationResult(ValidationResult):
    break_point: Optional[ChainBreakPoint] = None

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        if self.break_point:
            d["break_point"] = self.break_point.to_dict()
        return d


# =============================================================================
# Schemas
# =============================================================================

NonEmptyStr = Annotated[str, Field(min_length=1)]


def _check_timestamp(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    try:
        parse_timestamp(value)
    except (TypeError, ValueError):
        raise ValueError("Invalid ISO-8601 timestamp")
    return value


class SignatureSchema(BaseModel):
    alg: Literal["HMAC-SHA256", "EdDSA"]
    key_id: NonEmptyStr
    value: NonEmptyStr


class AuthoritySchema(BaseModel):
    policy_name: NonEmptyStr
    policy_version: NonEmptyStr
    evaluated_at: str

    @field_validator("evaluated_at")
    @classmethod
    def check_timestamps(cls, value: Optional[str]) -> Optional[str]:
        return _check_timestamp(value)


class ApplicabilitySchema(BaseModel):
    required_checks: List[str] = Field(default_factory=list)
    monitor_mode: StrictBool = False
    jurisdiction: Optional[str] = None


class DecisionContextSchema(BaseModel):
    tenant_id: NonEmptyStr
    agent_id: NonEmptyStr
    event_type: NonEmptyStr
    action_requested: NonEmptyStr
    session_id: Optional[str] = None


class DecisionEnvelopeSchema(BaseModel):
    contract_version: Literal["1.0.0"]
    decision_id: UUID
    trace_id: NonEmptyStr
    timestamp: str
    valid_until: Optional[str] = None
    signature: SignatureSchema
    decision_type: Literal["GOVERNANCE", "OPERATIONAL"]
    verdict: Literal["ALLOW", "DENY", "REQUIRE_APPROVAL"]
    reason_code: NonEmptyStr
    reason_human: NonEmptyStr
    risk_score: StrictInt = Field(ge=0, le=100)
    authority: AuthoritySchema
    applicability: Optional[ApplicabilitySchema] = None
    context: DecisionContextSchema

    @field_validator("timestamp", "valid_until")
    @classmethod
    def check_timestamps(cls, value: Optional[str]) -> Optional[str]:
        return _check_timestamp(value)


class GateResultSchema(BaseModel):
    result: Literal["PASS", "FAIL", "SKIPPED"]
    checked_at: str
    source: NonEmptyStr
    skip_reason: Optional[str] = None
    skip_policy_version: Optional[str] = None

    @field_validator("checked_at")
    @classmethod
    def check_timestamps(cls, value: Optional[str]) -> Optional[str]:
        return _check_timestamp(value)


class EvidenceSchema(BaseModel):
    input_hash: Optional[str] = None
    output_hash: Optional[str] = None
    external_refs: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None


class ExecutionContextSchema(BaseModel):
    model_config = ConfigDict(extra="allow")

    environment: NonEmptyStr
    tenant_id: NonEmptyStr


class ExecutionReceiptSchema(BaseModel):
    receipt_id: UUID
    decision_id: UUID
    execution_id: UUID
    timestamp: str
    executor_id: NonEmptyStr
    execution_context: ExecutionContextSchema
    gates: Dict[str, GateResultSchema]
    outcome: Literal["EXECUTED", "BLOCKED", "SKIPPED"]
    details: Optional[str] = None
    evidence: Optional[EvidenceSchema] = None
    signature: Optional[SignatureSchema] = None

    @field_validator("timestamp")
    @classmethod
    def check_timestamps(cls, value: Optional[str]) -> Optional[str]:
        return _check_timestamp(value)


def _as_dict(record: Any) -> Any:
    if hasattr(record, "to_dict"):
        return record.to_dict()
    return record


def _issues(exc: SchemaError) -> List[ValidationIssue]:
    return [
        ValidationIssue(
            path=".".join(str(part) for part in err["loc"]),
            message=err["msg"],
            code=err["type"],
        )
        for err in exc.errors()
    ]


# =============================================================================
# Validation functions
# =============================================================================

def validate_envelope(envelope: Any, time_provider: Optional[TimeProvider] = None) -> ValidationResult:
    """
    Validate a DecisionEnvelope (object or dict).

    Returns detailed results without raising.
    """
    clock = time_provider or default_time_provider
    try:
        env = DecisionEnvelopeSchema.model_validate(_as_dict(envelope))
    except SchemaError as e:
        return ValidationResult(valid=False, errors=_issues(e))

    warnings: List[ValidationWarning] = []

    if env.valid_until and clock.is_expired(env.valid_until):
        warnings.append(ValidationWarning(
            path="valid_until",
            message=f"Envelope has expired (valid_until: {env.valid_until})",
        ))

    if env.applicability is not None and env.applicability.monitor_mode:
        warnings.append(ValidationWarning(
            path="applicability.monitor_mode",
            message="Envelope is in monitor mode - execution should be advisory only",
        ))

    if env.verdict == "ALLOW" and env.risk_score >= HIGH_RISK_ALLOW_THRESHOLD:
        warnings.append(ValidationWarning(
            path="risk_score",
            message=f"High risk score ({env.risk_score}) with ALLOW verdict - review policy",
        ))

    return ValidationResult(valid=True, warnings=warnings)


def validate_receipt(receipt: Any) -> ValidationResult:
    """
    Validate an ExecutionReceipt (object or dict).

    Returns detailed results without raising.
    """
    try:
        rec = ExecutionReceiptSchema.model_validate(_as_dict(receipt))
    except SchemaError as e:
        return ValidationResult(valid=False, errors=_issues(e))

    warnings: List[ValidationWarning] = []

    for gate_name, gate in rec.gates.items():
        if gate.result == "SKIPPED" and not gate.skip_policy_version:
            warnings.append(ValidationWarning(
                path=f"gates.{gate_name}",
                message="Gate SKIPPED without policy authorization",
            ))

    if rec.outcome == "EXECUTED" and rec.evidence is None:
        warnings.append(ValidationWarning(
            path="evidence",
            message="Execution completed without evidence - consider adding for audit trail",
        ))

    return ValidationResult(valid=True, warnings=warnings)


def validate_chain(
    envelope: Any,
    receipts: Sequence[Any],
    time_provider: Optional[TimeProvider] = None,
) -> ChainValidationResult:
    """
    Validate the chain from an envelope to its receipts.

    Checks, per receipt in order:
    1. The receipt is structurally valid
    2. It links to the envelope (decision_id)
    3. Every required check of the envelope appears in its gates

    The first break found is reported as ``break_point``. Receipts
    timestamped before the envelope produce a warning only.
    """
    env_data = _as_dict(envelope)
    envelope_id = _get(env_data, "decision_id")

    envelope_result = validate_envelope(env_data, time_provider=time_provider)
    if not envelope_result.valid:
        return ChainValidationResult(
            valid=False,
            errors=envelope_result.errors,
            warnings=envelope_result.warnings,
            break_point=ChainBreakPoint(
                reason="Envelope validation failed",
                envelope_id=envelope_id,
            ),
        )

    warnings: List[ValidationWarning] = []
    required_checks = (env_data.get("applicability") or {}).get("required_checks", [])
    envelope_time = parse_timestamp(env_data["timestamp"])

    for receipt in receipts:
        rec_data = _as_dict(receipt)
        receipt_id = _get(rec_data, "receipt_id")

        receipt_result = validate_receipt(rec_data)
        if not receipt_result.valid:
            return ChainValidationResult(
                valid=False,
                errors=receipt_result.errors,
                warnings=receipt_result.warnings,
                break_point=ChainBreakPoint(
                    reason="Receipt validation failed",
                    receipt_id=receipt_id,
                ),
            )

        if rec_data["decision_id"] != envelope_id:
            return ChainValidationResult(
                valid=False,
                errors=[ValidationIssue(
                    path="decision_id",
                    message=(
                        f"Receipt decision_id ({rec_data['decision_id']}) "
                        f"does not match envelope ({envelope_id})"
                    ),
                    code="chain_break",
                )],
                break_point=ChainBreakPoint(
                    reason="Decision ID mismatch",
                    envelope_id=envelope_id,
                    receipt_id=receipt_id,
                ),
            )

        if parse_timestamp(rec_data["timestamp"]) < envelope_time:
            warnings.append(ValidationWarning(
                path="timestamp",
                message=(
                    f"Receipt timestamp ({rec_data['timestamp']}) is before "
                    f"envelope ({env_data['timestamp']})"
                ),
            ))

        missing = [check for check in required_checks if check not in rec_data["gates"]]
        if missing:
            return ChainValidationResult(
                valid=False,
                errors=[ValidationIssue(
                    path="gates",
                    message=f"Required gates not checked: {', '.join(missing)}",
                    code="missing_gates",
                )],
                break_point=ChainBreakPoint(
                    reason="Missing required gates",
                    receipt_id=receipt_id,
                ),
            )

        warnings.extend(receipt_result.warnings)

    warnings.extend(envelope_result.warnings)
    return ChainValidationResult(valid=True, warnings=warnings)


def _get(data: Any, key: str) -> Optional[str]:
    if isinstance(data, dict):
        return data.get(key)
    return None
