"""
Test Configuration and Fixtures

Provides:
- A pinned TimeProvider (advance it instead of sleeping)
- Signer, analyzers and stores wired to that clock
- Envelope factory and a fully wired gateway
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from absgate.auth.sessions import SessionManager
from absgate.config import GateConfig
from absgate.core.agent_memory import AgentMemory
from absgate.core.capabilities import CapabilityTokenService
from absgate.core.clock import TimeProvider
from absgate.core.envelope import DecisionEnvelope, DecisionEnvelopeBuilder, ReasonCode, Verdict
from absgate.core.gateway import GovernanceGateway
from absgate.core.sequence import SequenceAnalyzer
from absgate.core.signing import EnvelopeSigner
from absgate.providers.mock import MockProvider
from absgate.security.action_sanitizer import ActionSanitizer
from absgate.storage.memory import InMemoryDecisionStore

FIXED_NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
TEST_SECRET = "test-secret-0123456789abcdef0123456789abcdef"


@pytest.fixture
def clock() -> TimeProvider:
    """A TimeProvider pinned to FIXED_NOW."""
    return TimeProvider(mock_time=FIXED_NOW)


@pytest.fixture
def signer() -> EnvelopeSigner:
    return EnvelopeSigner(TEST_SECRET, key_id="test-key")


@pytest.fixture
def analyzer(clock) -> SequenceAnalyzer:
    return SequenceAnalyzer(time_provider=clock)


@pytest.fixture
def memory(clock) -> AgentMemory:
    return AgentMemory(time_provider=clock)


@pytest.fixture
def sanitizer() -> ActionSanitizer:
    return ActionSanitizer()


@pytest.fixture
def sessions(clock) -> SessionManager:
    return SessionManager(time_provider=clock)


@pytest.fixture
def token_service(clock) -> CapabilityTokenService:
    return CapabilityTokenService(TEST_SECRET, time_provider=clock)


@pytest.fixture
def store() -> InMemoryDecisionStore:
    return InMemoryDecisionStore()


@pytest.fixture
def gate_config() -> GateConfig:
    return GateConfig(
        secret_key=TEST_SECRET,
        key_id="test-key",
        environment="test",
        monitor_mode=False,
        required_checks=["TENANT_ACTIVE", "POLICY_ACTIVE"],
    )


@pytest.fixture
def provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def gateway(provider, gate_config, store, signer, clock, token_service) -> GovernanceGateway:
    return GovernanceGateway(
        provider=provider,
        config=gate_config,
        store=store,
        signer=signer,
        time_provider=clock,
        token_service=token_service,
    )


@pytest.fixture
def make_envelope(clock) -> Callable[..., DecisionEnvelope]:
    """Factory for valid envelopes; keyword arguments override the defaults."""

    def _make(
        verdict: Verdict = Verdict.ALLOW,
        risk_score: int = 10,
        monitor_mode: bool = False,
        required_checks: Optional[List[str]] = None,
        valid_until: Any = 300,
        signer: Optional[EnvelopeSigner] = None,
        reason_code: ReasonCode = ReasonCode.POLICY_ALLOWED,
    ) -> DecisionEnvelope:
        builder = (
            DecisionEnvelopeBuilder(time_provider=clock, signer=signer)
            .set_trace_id("evt-001")
            .set_verdict(verdict)
            .set_reason(reason_code, "test decision")
            .set_risk_score(risk_score)
            .set_authority("abs-risk-policy", "1.0.0")
            .set_context("tenant-1", "agent-1", "bot.message", "send_reply")
            .set_applicability(required_checks or [], monitor_mode=monitor_mode)
        )
        if valid_until is not None:
            builder.set_valid_until(valid_until)
        return builder.build()

    return _make
