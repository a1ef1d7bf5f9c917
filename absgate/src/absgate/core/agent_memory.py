"""
Agent Memory

Tracks outcome counters per agent and derives a risk profile from them:
agents with a high incident rate get a positive risk modifier, agents
with a long clean history get a small bonus. The modifier decays with a
7 day half-life measured from the last incident (or from the agent's
first action if it never had one).

The profile is computed on read; only the counters are stored.
"""

import math
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from absgate.core.clock import TimeProvider, elapsed_ms, time_provider as default_time_provider
from absgate.monitoring.logging import get_logger

logger = get_logger(__name__)

TRUST_HALF_LIFE_MS = 7 * 24 * 60 * 60 * 1000
NEW_AGENT_MODIFIER = 5


class ActionOutcome(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    ESCALATED = "escalated"
    SANITIZED = "sanitized"


class TrustLevel(str, Enum):
    UNTRUSTED = "untrusted"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class AgentStats:
    agent_id: str
    created_at: datetime
    last_action_at: datetime
    total: int = 0
    allowed: int = 0
    blocked: int = 0
    escalated: int = 0
    sanitized: int = 0
    last_incident_at: Optional[datetime] = None

    @property
    def incident_count(self) -> int:
        return self.blocked + self.escalated

    @property
    def incident_rate(self) -> float:
        return self.incident_count / self.total if self.total else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "total": self.total,
            "allowed": self.allowed,
            "blocked": self.blocked,
            "escalated": self.escalated,
            "sanitized": self.sanitized,
            "created_at": self.created_at.isoformat(),
            "last_action_at": self.last_action_at.isoformat(),
            "last_incident_at": self.last_incident_at.isoformat() if self.last_incident_at else None,
        }


@dataclass(frozen=True)
class RiskProfile:
    agent_id: str
    base_risk_modifier: int
    trust_level: TrustLevel
    incident_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "base_risk_modifier": self.base_risk_modifier,
            "trust_level": self.trust_level.value,
            "incident_count": self.incident_count,
        }


@dataclass(frozen=True)
class AdaptiveRisk:
    final_score: int
    explanation: str
    profile: RiskProfile


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class AgentMemory:
    """Thread-safe per-agent outcome counters with derived risk profiles."""

    def __init__(self, time_provider: Optional[TimeProvider] = None):
        self._time = time_provider or default_time_provider
        self._stats: Dict[str, AgentStats] = {}
        self._lock = threading.Lock()

    def record_action(self, agent_id: str, outcome: Union[ActionOutcome, str]) -> AgentStats:
        """Count an outcome for an agent. Blocked and escalated outcomes are incidents."""
        outcome = ActionOutcome(outcome)
        now = self._time.now()

        with self._lock:
            stats = self._stats.get(agent_id)
            if stats is None:
                stats = AgentStats(agent_id=agent_id, created_at=now, last_action_at=now)
                self._stats[agent_id] = stats

            stats.total += 1
            stats.last_action_at = now

            if outcome == ActionOutcome.ALLOWED:
                stats.allowed += 1
            elif outcome == ActionOutcome.BLOCKED:
                stats.blocked += 1
                stats.last_incident_at = now
            elif outcome == ActionOutcome.ESCALATED:
                stats.escalated += 1
                stats.last_incident_at = now
            elif outcome == ActionOutcome.SANITIZED:
                stats.sanitized += 1

            return replace(stats)

    def get_agent_risk_profile(self, agent_id: str) -> RiskProfile:
        with self._lock:
            stats = self._stats.get(agent_id)
            stats = replace(stats) if stats is not None else None

        if stats is None:
            # Unknown agents start mildly distrusted
            return RiskProfile(
                agent_id=agent_id,
                base_risk_modifier=NEW_AGENT_MODIFIER,
                trust_level=TrustLevel.UNTRUSTED,
                incident_count=0,
            )

        now = self._time.now()
        rate = stats.incident_rate
        since = elapsed_ms(stats.last_incident_at or stats.created_at, now)
        trust_decay = 0.5 ** (max(since, 0.0) / TRUST_HALF_LIFE_MS)

        if rate > 0.3:
            modifier = 50 * trust_decay
            level = TrustLevel.UNTRUSTED
        elif rate > 0.1:
            modifier = 20 * trust_decay
            level = TrustLevel.LOW
        elif stats.total > 100 and rate < 0.05:
            modifier = -10 * (1 - trust_decay)
            level = TrustLevel.HIGH
        elif stats.total > 20 and rate < 0.1:
            modifier = 0
            level = TrustLevel.MEDIUM
        else:
            modifier = NEW_AGENT_MODIFIER
            level = TrustLevel.LOW

        return RiskProfile(
            agent_id=agent_id,
            base_risk_modifier=round_half_up(modifier),
            trust_level=level,
            incident_count=stats.incident_count,
        )

    def calculate_adaptive_risk(
        self,
        agent_id: str,
        base_score: float,
        sequence_bonus: float = 0,
    ) -> AdaptiveRisk:
        """
        final = clamp(base * (1 + modifier/100) + sequence_bonus, 0, 100), rounded.

        The explanation string records the derivation for audit trails.
        """
        profile = self.get_agent_risk_profile(agent_id)
        adjusted = base_score * (1 + profile.base_risk_modifier / 100)
        final = min(100.0, max(0.0, adjusted + sequence_bonus))
        final_score = round_half_up(final)

        explanation = f"Base: {_fmt(base_score)}"
        if profile.base_risk_modifier != 0:
            sign = "+" if profile.base_risk_modifier > 0 else ""
            explanation += (
                f", Agent modifier: {sign}{profile.base_risk_modifier}% "
                f"({profile.trust_level.value})"
            )
        if sequence_bonus > 0:
            explanation += f", Sequence bonus: +{_fmt(sequence_bonus)}"
        explanation += f" = {final_score}"

        logger.debug(
            "adaptive_risk_calculated",
            agent_id=agent_id,
            base_score=base_score,
            modifier=profile.base_risk_modifier,
            sequence_bonus=sequence_bonus,
            final_score=final_score,
        )
        return AdaptiveRisk(final_score=final_score, explanation=explanation, profile=profile)

    def get_agent_stats(self, agent_id: str) -> Optional[AgentStats]:
        with self._lock:
            stats = self._stats.get(agent_id)
            return replace(stats) if stats is not None else None

    def clear_agent_stats(self, agent_id: Optional[str] = None) -> None:
        """Forget one agent, or every agent when no id is given."""
        with self._lock:
            if agent_id is None:
                self._stats.clear()
            else:
                self._stats.pop(agent_id, None)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "tracked_agents": len(self._stats),
                "total_actions": sum(s.total for s in self._stats.values()),
                "total_incidents": sum(s.incident_count for s in self._stats.values()),
            }


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
