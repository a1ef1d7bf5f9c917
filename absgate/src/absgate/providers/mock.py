"""
Mock decision provider for tests and offline runs.
"""

from typing import Any, List, Optional

from absgate.providers.base import DecisionProposal, DecisionProvider, ProviderError, RiskLevel


class MockProvider(DecisionProvider):
    """
    Returns a configurable fixed proposal.

    Set ``error`` to make every call fail with a ProviderError.
    """

    def __init__(
        self,
        proposal: Optional[DecisionProposal] = None,
        error: Optional[str] = None,
    ):
        self.proposal = proposal or DecisionProposal(
            recommended_action="proceed",
            confidence=0.95,
            explanation="Mock provider default proposal",
            risk_level=RiskLevel.LOW,
        )
        self.error = error
        self._requests: List[Any] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def requests(self) -> List[Any]:
        """Events seen so far, in call order."""
        return list(self._requests)

    def set_proposal(self, proposal: DecisionProposal) -> None:
        self.proposal = proposal

    async def propose(self, event: Any, state: str) -> DecisionProposal:
        self._requests.append(event)
        if self.error:
            raise ProviderError(self.error)
        return self.proposal
