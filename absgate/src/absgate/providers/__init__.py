"""
Decision providers.

Providers propose what to do about an event; the gate scores and decides.
"""

from absgate.providers.base import (
    DecisionProvider,
    DecisionProposal,
    RiskLevel,
    ProviderError,
)
from absgate.providers.mock import MockProvider

__all__ = [
    "DecisionProvider",
    "DecisionProposal",
    "RiskLevel",
    "ProviderError",
    "MockProvider",
]
