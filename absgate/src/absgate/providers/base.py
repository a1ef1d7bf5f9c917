"""
Base Decision Provider Interface

A decision provider (an LLM or a canned mock) is asked what to do about a
proposed action. Its answer is an opaque input to risk scoring; the gate
never trusts it to decide on its own.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


class ProviderError(Exception):
    """Base exception for provider errors."""
    pass


class RiskLevel(str, Enum):
    """Provider's coarse risk estimate."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class DecisionProposal:
    """What the provider recommends for an event."""
    recommended_action: str
    confidence: float
    explanation: str
    risk_level: RiskLevel = RiskLevel.LOW
    action_params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ProviderError(f"Proposal confidence out of range: {self.confidence}")
        self.risk_level = RiskLevel(self.risk_level)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommended_action": self.recommended_action,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "risk_level": self.risk_level.value,
            "action_params": dict(self.action_params),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionProposal":
        return cls(
            recommended_action=data["recommended_action"],
            confidence=float(data["confidence"]),
            explanation=data.get("explanation", ""),
            risk_level=RiskLevel(data.get("risk_level", "low")),
            action_params=data.get("action_params", {}),
        )


class DecisionProvider(ABC):
    """
    Abstract base class for decision providers.

    Implementations must be safe to call concurrently.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of this provider (e.g., 'mock', 'openai')."""
        pass

    @abstractmethod
    async def propose(self, event: Any, state: str) -> DecisionProposal:
        """
        Recommend an action for ``event`` given the current state label.

        Raises:
            ProviderError: If no proposal can be produced
        """
        pass
