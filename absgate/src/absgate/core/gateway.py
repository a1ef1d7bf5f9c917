"""
Governance Gateway for ABS

This module is the orchestration point for a proposed agent action:
- Tracks the agent's session
- Scans the payload for prompt injection
- Checks the capability token, when one is presented
- Asks the decision provider for a proposal
- Scores risk (provider estimate, action sequence, agent history)
- Tries to rewrite risky actions instead of only blocking them
- Evaluates the risk policy
- Issues a signed Decision Envelope and persists it

Execution goes through execute(), which runs the guards and always
persists an Execution Receipt, whether the action ran or not.
"""

import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from absgate.auth.sessions import SessionManager
from absgate.config import GateConfig, get_config
from absgate.core.agent_memory import ActionOutcome, AdaptiveRisk, AgentMemory
from absgate.core.capabilities import Capability, CapabilityToken, CapabilityTokenService, WILDCARD
from absgate.core.clock import TimeProvider, time_provider as default_time_provider
from absgate.core.crypto import generate_uuid
from absgate.core.envelope import DecisionEnvelope, DecisionEnvelopeBuilder, Verdict
from absgate.core.policy import PolicyContext, PolicyDecision, RiskPolicy
from absgate.core.sequence import ActionRecord, SequenceAnalysis, SequenceAnalyzer
from absgate.core.signing import EnvelopeSigner
from absgate.monitoring.logging import AuditLogger, get_logger
from absgate.providers.base import DecisionProposal, DecisionProvider, RiskLevel
from absgate.sdk.client import ClientConfig, ExecutionResult, ExecutionStatus, GovernanceClient
from absgate.security.action_sanitizer import ActionSanitizer, SanitizationResult
from absgate.security.injection_detection import PromptInjectionDetector
from absgate.storage.base import DecisionStore
from absgate.storage.memory import InMemoryDecisionStore

logger = get_logger(__name__)

PROVIDER_STATE = "IDLE"

RISK_LEVEL_SCORES: Dict[RiskLevel, int] = {
    RiskLevel.LOW: 10,
    RiskLevel.MEDIUM: 40,
    RiskLevel.HIGH: 70,
}


@dataclass
class EventInput:
    """A structurally valid proposed-action event."""
    event_id: str
    tenant_id: str
    event_type: str
    source: str
    occurred_at: str
    payload: Any = None
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "event_id": self.event_id,
            "tenant_id": self.tenant_id,
            "event_type": self.event_type,
            "source": self.source,
            "occurred_at": self.occurred_at,
            "payload": self.payload,
            "metadata": dict(self.metadata),
        }
        if self.correlation_id:
            d["correlation_id"] = self.correlation_id
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventInput":
        return cls(
            event_id=data.get("event_id") or generate_uuid(),
            tenant_id=data["tenant_id"],
            event_type=data["event_type"],
            source=data["source"],
            occurred_at=data["occurred_at"],
            payload=data.get("payload"),
            correlation_id=data.get("correlation_id"),
            metadata=data.get("metadata") or {},
        )


@dataclass
class GatewayDecision:
    """Everything process() decided about one event."""
    envelope: DecisionEnvelope
    proposal: DecisionProposal
    risk: AdaptiveRisk
    sanitization: Optional[SanitizationResult] = None
    injection_flags: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    sequence: Optional[SequenceAnalysis] = None
    policy: Optional[PolicyDecision] = None

    @property
    def verdict(self) -> Verdict:
        return self.envelope.verdict

    def to_dict(self) -> Dict[str, Any]:
        return {
            "envelope": self.envelope.to_dict(),
            "proposal": self.proposal.to_dict(),
            "risk_score": self.risk.final_score,
            "risk_explanation": self.risk.explanation,
            "sanitization": self.sanitization.to_dict() if self.sanitization else None,
            "injection_flags": list(self.injection_flags),
            "session_id": self.session_id,
        }


class GovernanceGateway:
    """
    Decides on proposed actions and gates their execution.

    Components not passed in are built from the configuration. All of
    them are safe to share between concurrent process() calls.
    """

    def __init__(
        self,
        provider: DecisionProvider,
        config: Optional[GateConfig] = None,
        store: Optional[DecisionStore] = None,
        signer: Optional[EnvelopeSigner] = None,
        time_provider: Optional[TimeProvider] = None,
        analyzer: Optional[SequenceAnalyzer] = None,
        memory: Optional[AgentMemory] = None,
        sanitizer: Optional[ActionSanitizer] = None,
        sessions: Optional[SessionManager] = None,
        detector: Optional[PromptInjectionDetector] = None,
        token_service: Optional[CapabilityTokenService] = None,
        policy: Optional[RiskPolicy] = None,
    ):
        self.provider = provider
        self.config = config or get_config()
        self.time = time_provider or default_time_provider
        self.store = store or InMemoryDecisionStore()
        self.signer = signer or EnvelopeSigner(self.config.secret_key, key_id=self.config.key_id)

        self.analyzer = analyzer or SequenceAnalyzer(
            max_history_size=self.config.sequence_max_history,
            history_ttl_ms=self.config.sequence_history_ttl_ms,
            time_provider=self.time,
        )
        self.memory = memory or AgentMemory(time_provider=self.time)
        self.sanitizer = sanitizer or ActionSanitizer()
        self.sessions = sessions or SessionManager(
            idle_timeout=timedelta(minutes=self.config.session_timeout_minutes),
            time_provider=self.time,
        )
        self.detector = detector or PromptInjectionDetector()
        self.token_service = token_service or CapabilityTokenService(
            self.config.secret_key, time_provider=self.time
        )
        self.policy = policy or RiskPolicy(
            approval_threshold=self.config.approval_threshold,
            deny_threshold=self.config.deny_threshold,
            min_confidence=self.config.min_confidence,
        )

        self._audit = AuditLogger()
        self._stats_lock = threading.Lock()
        self._stats: Dict[str, int] = {
            "processed": 0,
            "allowed": 0,
            "denied": 0,
            "escalated": 0,
            "sanitized": 0,
            "executed": 0,
            "blocked": 0,
        }

    async def process(
        self,
        event: EventInput,
        capability_token: Optional[CapabilityToken] = None,
    ) -> GatewayDecision:
        """
        Decide on a proposed action and return the signed envelope.

        Raises:
            ProviderError: if the decision provider fails
        """
        agent_id = event.metadata.get("actor") or event.source
        session = self.sessions.get_active_session(agent_id)
        if session is None:
            session = self.sessions.start_session(agent_id, {"tenant_id": event.tenant_id})
            # Replaced and timed-out sessions are only kept until the next start
            self.sessions.cleanup_closed_sessions()

        scan = self.detector.scan(event.payload)

        token_valid = None
        scope_granted = True
        if capability_token is not None:
            verification = self.token_service.verify(capability_token)
            token_valid = verification.valid
            scope_granted = verification.valid and (
                Capability.TOOL_EXECUTE in verification.capabilities
                or WILDCARD in verification.capabilities
            )

        proposal = await self.provider.propose(event, PROVIDER_STATE)

        base_risk = _base_risk(proposal, event.metadata.get("risk_hint"))
        now = self.time.now()
        payload = event.payload if isinstance(event.payload, dict) else None
        sequence = self.analyzer.analyze(
            agent_id,
            ActionRecord(event_type=event.event_type, timestamp=now, risk_score=base_risk, payload=payload),
        )
        risk = self.memory.calculate_adaptive_risk(agent_id, base_risk, sequence.sequence_risk)

        sanitization = self.sanitizer.try_sanitize(event.event_type, payload)

        decision = self.policy.evaluate(PolicyContext(
            risk_score=risk.final_score,
            confidence=proposal.confidence,
            token_valid=token_valid,
            scope_granted=scope_granted,
            injection_flags=scan.flags,
            sanitization_requires_confirmation=bool(sanitization and sanitization.requires_confirmation),
            matched_patterns=sequence.matched_patterns,
        ))

        outcome = _outcome_for(decision.verdict, sanitization)
        self.memory.record_action(agent_id, outcome)

        envelope = (
            DecisionEnvelopeBuilder(time_provider=self.time, signer=self.signer)
            .set_trace_id(event.correlation_id or event.event_id)
            .set_verdict(decision.verdict)
            .set_reason(decision.reason_code, decision.reason_human)
            .set_risk_score(risk.final_score)
            .set_authority(self.config.policy_name, self.config.policy_version)
            .set_context(
                tenant_id=event.tenant_id,
                agent_id=agent_id,
                event_type=event.event_type,
                action_requested=proposal.recommended_action,
                session_id=session.session_id,
            )
            .set_applicability(
                required_checks=self.config.required_checks,
                monitor_mode=self.config.monitor_mode,
            )
            .set_valid_until(self.config.decision_ttl_seconds)
            .build()
        )
        self.store.save_envelope(envelope)

        self._audit.log_decision(
            decision_id=envelope.decision_id,
            agent_id=agent_id,
            tenant_id=event.tenant_id,
            verdict=envelope.verdict.value,
            reason_code=envelope.reason_code,
            risk_score=envelope.risk_score,
            event_id=event.event_id,
            rule=decision.rule_name,
            matched_patterns=sequence.matched_patterns,
        )
        self._count_decision(decision.verdict, outcome)

        return GatewayDecision(
            envelope=envelope,
            proposal=proposal,
            risk=risk,
            sanitization=sanitization,
            injection_flags=scan.flags,
            session_id=session.session_id,
            sequence=sequence,
            policy=decision,
        )

    async def execute(
        self,
        envelope: DecisionEnvelope,
        executor: Callable[[], Any],
        **options: Any,
    ) -> ExecutionResult:
        """
        Run ``executor`` behind the execution guards and persist the receipt.

        Options are passed to GovernanceClient.execute. The envelope's
        signature is always verified, and its timestamp is checked against
        the configured clock skew unless ``max_skew_ms`` is given.
        """
        options.setdefault("max_skew_ms", self.config.max_clock_skew_ms)
        client = GovernanceClient(ClientConfig(
            tenant_id=envelope.context.tenant_id,
            agent_id=envelope.context.agent_id,
            environment=self.config.environment,
            time_provider=self.time,
            signer=self.signer,
            verify_signatures=True,
        ))
        result = await client.execute(envelope, executor, **options)
        self.store.save_receipt(result.receipt)

        with self._stats_lock:
            key = "executed" if result.status == ExecutionStatus.EXECUTED else "blocked"
            self._stats[key] += 1
        return result

    def _count_decision(self, verdict: Verdict, outcome: ActionOutcome) -> None:
        with self._stats_lock:
            self._stats["processed"] += 1
            if verdict == Verdict.ALLOW:
                self._stats["allowed"] += 1
            elif verdict == Verdict.DENY:
                self._stats["denied"] += 1
            else:
                self._stats["escalated"] += 1
            if outcome == ActionOutcome.SANITIZED:
                self._stats["sanitized"] += 1

    def get_stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return dict(self._stats)


def _base_risk(proposal: DecisionProposal, risk_hint: Any) -> int:
    base = RISK_LEVEL_SCORES[proposal.risk_level]
    if isinstance(risk_hint, (int, float)) and not isinstance(risk_hint, bool):
        base = max(base, int(min(100, risk_hint)))
    return base


def _outcome_for(verdict: Verdict, sanitization: Optional[SanitizationResult]) -> ActionOutcome:
    if verdict == Verdict.ALLOW:
        return ActionOutcome.SANITIZED if sanitization is not None else ActionOutcome.ALLOWED
    if verdict == Verdict.DENY:
        return ActionOutcome.BLOCKED
    return ActionOutcome.ESCALATED
