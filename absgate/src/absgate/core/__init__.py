"""
ABS Core Components

The decision/receipt contract and the stateful analyzers behind the gate.
"""

from absgate.core.crypto import (
    compute_hmac,
    verify_hmac,
    hash_data,
    hash_json,
    canonicalize_json,
)
from absgate.core.clock import TimeProvider, time_provider
from absgate.core.errors import (
    GovernanceError,
    ValidationError,
    InvariantError,
    ExpiredError,
    MonitorModeError,
    VerdictError,
    GateError,
    ClockSkewError,
    SignatureError,
)
from absgate.core.envelope import DecisionEnvelope, DecisionEnvelopeBuilder, Verdict, ReasonCode
from absgate.core.receipts import ExecutionReceipt, ExecutionReceiptBuilder, GateResult, GateStatus
from absgate.core.sequence import SequenceAnalyzer, SequencePattern, ActionRecord
from absgate.core.agent_memory import AgentMemory, ActionOutcome, TrustLevel
from absgate.core.capabilities import CapabilityTokenService, CapabilityToken, CAPABILITIES
from absgate.core.policy import RiskPolicy, PolicyContext, PolicyDecision

__all__ = [
    # Crypto
    "compute_hmac",
    "verify_hmac",
    "hash_data",
    "hash_json",
    "canonicalize_json",
    # Time
    "TimeProvider",
    "time_provider",
    # Errors
    "GovernanceError",
    "ValidationError",
    "InvariantError",
    "ExpiredError",
    "MonitorModeError",
    "VerdictError",
    "GateError",
    "ClockSkewError",
    "SignatureError",
    # Contract
    "DecisionEnvelope",
    "DecisionEnvelopeBuilder",
    "Verdict",
    "ReasonCode",
    "ExecutionReceipt",
    "ExecutionReceiptBuilder",
    "GateResult",
    "GateStatus",
    # Analyzers
    "SequenceAnalyzer",
    "SequencePattern",
    "ActionRecord",
    "AgentMemory",
    "ActionOutcome",
    "TrustLevel",
    "CapabilityTokenService",
    "CapabilityToken",
    "CAPABILITIES",
    "RiskPolicy",
    "PolicyContext",
    "PolicyDecision",
]
