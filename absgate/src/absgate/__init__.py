"""
Agent Behavior Supervision gate (absgate)

A governance layer between autonomous agents and the actions they want to
take. Every proposed action gets a signed Decision Envelope; every
execution attempt gets a signed Execution Receipt linked to it.

Core Components:
- Decision Envelope / Execution Receipt contract with validators and guards
- Sequence Analyzer: multi-step dangerous pattern detection
- Agent Memory: per-agent risk profiles from outcome history
- Action Sanitizer: rewrites risky actions instead of blocking them
- Capability Tokens: signed, time-bounded permission grants
- Session Manager: one active session per agent
- Governance Gateway: orchestration of all of the above
"""

__version__ = "0.1.0"
__author__ = "ABS Team"

from absgate.core.envelope import DecisionEnvelope, DecisionEnvelopeBuilder, Verdict, ReasonCode
from absgate.core.receipts import ExecutionReceipt, ExecutionReceiptBuilder, ExecutionOutcome, GateStatus
from absgate.core.signing import EnvelopeSigner
from absgate.core.validator import validate_envelope, validate_receipt, validate_chain
from absgate.core.guards import guard_executable, guard_gates_passed, guard_time_sync
from absgate.core.gateway import GovernanceGateway, EventInput, GatewayDecision
from absgate.sdk.client import GovernanceClient, ClientConfig, ExecutionResult

__all__ = [
    "DecisionEnvelope",
    "DecisionEnvelopeBuilder",
    "Verdict",
    "ReasonCode",
    "ExecutionReceipt",
    "ExecutionReceiptBuilder",
    "ExecutionOutcome",
    "GateStatus",
    "EnvelopeSigner",
    "validate_envelope",
    "validate_receipt",
    "validate_chain",
    "guard_executable",
    "guard_gates_passed",
    "guard_time_sync",
    "GovernanceGateway",
    "EventInput",
    "GatewayDecision",
    "GovernanceClient",
    "ClientConfig",
    "ExecutionResult",
]
