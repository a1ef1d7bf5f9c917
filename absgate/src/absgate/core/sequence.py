"""
Sequence Analyzer

Detects chains of individually-permitted actions that are collectively
dangerous, e.g. reading a sensitive file and then making an outbound HTTP
request within a minute.

Each agent has a rolling action history (pruned by TTL and size). Every
registered pattern is matched against the recent part of that history:
the pattern's event types must appear in order, but not necessarily
back to back. Intervening unrelated actions do not reset a partial match.

Matched patterns add their risk bonus to the call's sequence risk. The
agent's cumulative risk decays with a 5 minute half-life and is clamped
to [0, 100].
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from absgate.core.clock import TimeProvider, elapsed_ms, parse_timestamp, time_provider as default_time_provider
from absgate.monitoring.logging import get_logger

logger = get_logger(__name__)

CUMULATIVE_RISK_HALF_LIFE_MS = 300_000
DEFAULT_HISTORY_TTL_MS = 300_000
DEFAULT_MAX_HISTORY = 20


@dataclass(frozen=True)
class ActionRecord:
    """One entry in an agent's action history."""
    event_type: str
    timestamp: datetime
    risk_score: float = 0
    payload: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        object.__setattr__(self, "timestamp", parse_timestamp(self.timestamp))


@dataclass
class AgentSequence:
    agent_id: str
    actions: List[ActionRecord] = field(default_factory=list)
    cumulative_risk: float = 0.0
    last_updated: Optional[datetime] = None


@dataclass(frozen=True)
class SequencePattern:
    """
    An ordered list of event-type matchers.

    A matcher ending in '*' matches any event type with that prefix
    ('auth:*' matches 'auth:login').
    """
    name: str
    description: str
    pattern: Tuple[str, ...]
    risk_bonus: float
    max_time_window_ms: float

    def __post_init__(self):
        if not self.pattern:
            raise ValueError(f"Sequence pattern '{self.name}' has no steps")
        # Accept lists from callers but store an immutable tuple
        object.__setattr__(self, "pattern", tuple(self.pattern))


@dataclass
class SequenceAnalysis:
    sequence_risk: float
    matched_patterns: List[str]
    cumulative_risk: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence_risk": self.sequence_risk,
            "matched_patterns": list(self.matched_patterns),
            "cumulative_risk": self.cumulative_risk,
        }


DANGEROUS_PATTERNS: Tuple[SequencePattern, ...] = (
    SequencePattern(
        name="data-exfiltration",
        description="Reading sensitive files followed by external communication",
        pattern=("file:read", "http:request"),
        risk_bonus=40,
        max_time_window_ms=60_000,
    ),
    SequencePattern(
        name="privilege-escalation",
        description="Multiple permission-related operations in sequence",
        pattern=("auth:*", "admin:*"),
        risk_bonus=50,
        max_time_window_ms=30_000,
    ),
    SequencePattern(
        name="config-manipulation",
        description="Reading config followed by write operations",
        pattern=("file:read", "file:write"),
        risk_bonus=20,
        max_time_window_ms=30_000,
    ),
    SequencePattern(
        name="destructive-sequence",
        description="Multiple destructive operations in sequence",
        pattern=("db:delete", "file:delete"),
        risk_bonus=60,
        max_time_window_ms=60_000,
    ),
    SequencePattern(
        name="reconnaissance",
        description="Multiple read/list operations indicating scanning",
        pattern=("file:list", "file:list", "file:read"),
        risk_bonus=15,
        max_time_window_ms=120_000,
    ),
)


def matches_event_type(event_type: str, matcher: str) -> bool:
    if matcher.endswith("*"):
        return event_type.startswith(matcher[:-1])
    return event_type == matcher


def matches_in_order(event_types: Sequence[str], pattern: Sequence[str]) -> bool:
    """True if ``pattern`` occurs in ``event_types`` in order, gaps allowed."""
    if len(event_types) < len(pattern):
        return False
    index = 0
    for event_type in event_types:
        if matches_event_type(event_type, pattern[index]):
            index += 1
            if index == len(pattern):
                return True
    return False


class SequenceAnalyzer:
    """
    Per-agent rolling history with dangerous-pattern detection.

    All agent sequences live behind a single lock; the work per call is
    small, so one coarse lock is sufficient.
    """

    def __init__(
        self,
        custom_patterns: Optional[List[SequencePattern]] = None,
        max_history_size: int = DEFAULT_MAX_HISTORY,
        history_ttl_ms: float = DEFAULT_HISTORY_TTL_MS,
        time_provider: Optional[TimeProvider] = None,
    ):
        self._patterns: List[SequencePattern] = list(DANGEROUS_PATTERNS) + list(custom_patterns or [])
        self.max_history_size = max_history_size
        self.history_ttl_ms = history_ttl_ms
        self._time = time_provider or default_time_provider
        self._sequences: Dict[str, AgentSequence] = {}
        self._lock = threading.Lock()

    def analyze(self, agent_id: str, action: ActionRecord) -> SequenceAnalysis:
        """
        Record an action and evaluate every pattern against the history.

        Returns the risk added by this call, the names of matched patterns,
        and the agent's updated cumulative risk.
        """
        now = self._time.now()

        with self._lock:
            sequence = self._sequences.get(agent_id)
            if sequence is None:
                sequence = AgentSequence(agent_id=agent_id, last_updated=now)
                self._sequences[agent_id] = sequence

            sequence.actions.append(action)
            self._prune(sequence, now)

            matched: List[str] = []
            sequence_risk = 0.0
            for pattern in self._patterns:
                if self._matches(sequence, pattern, now):
                    matched.append(pattern.name)
                    sequence_risk += pattern.risk_bonus

            # Decay runs from the previous update, so last_updated moves after it
            sequence.cumulative_risk = self._decayed_risk(sequence, now, sequence_risk)
            sequence.last_updated = now
            cumulative = sequence.cumulative_risk

        for name in matched:
            logger.info(
                "sequence_pattern_detected",
                agent_id=agent_id,
                pattern=name,
                event_type=action.event_type,
            )

        return SequenceAnalysis(
            sequence_risk=sequence_risk,
            matched_patterns=matched,
            cumulative_risk=cumulative,
        )

    def _matches(self, sequence: AgentSequence, pattern: SequencePattern, now: datetime) -> bool:
        recent = [
            a.event_type for a in sequence.actions
            if elapsed_ms(a.timestamp, now) <= pattern.max_time_window_ms
        ]
        return matches_in_order(recent, pattern.pattern)

    def _decayed_risk(self, sequence: AgentSequence, now: datetime, new_risk: float) -> float:
        since = elapsed_ms(sequence.last_updated, now) if sequence.last_updated else 0.0
        decay = 0.5 ** (max(since, 0.0) / CUMULATIVE_RISK_HALF_LIFE_MS)
        return max(0.0, min(100.0, sequence.cumulative_risk * decay + new_risk))

    def _prune(self, sequence: AgentSequence, now: datetime) -> None:
        sequence.actions = [
            a for a in sequence.actions
            if elapsed_ms(a.timestamp, now) <= self.history_ttl_ms
        ]
        if len(sequence.actions) > self.max_history_size:
            sequence.actions = sequence.actions[-self.max_history_size:]

    def get_sequence(self, agent_id: str) -> Optional[AgentSequence]:
        """Snapshot of an agent's sequence, or None if unknown."""
        with self._lock:
            sequence = self._sequences.get(agent_id)
            if sequence is None:
                return None
            return AgentSequence(
                agent_id=sequence.agent_id,
                actions=list(sequence.actions),
                cumulative_risk=sequence.cumulative_risk,
                last_updated=sequence.last_updated,
            )

    def clear_agent(self, agent_id: str) -> None:
        with self._lock:
            self._sequences.pop(agent_id, None)

    def add_pattern(self, pattern: SequencePattern) -> None:
        with self._lock:
            self._patterns.append(pattern)

    def get_patterns(self) -> List[SequencePattern]:
        with self._lock:
            return list(self._patterns)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "tracked_agents": len(self._sequences),
                "patterns": len(self._patterns),
                "max_history_size": self.max_history_size,
                "history_ttl_ms": self.history_ttl_ms,
            }
