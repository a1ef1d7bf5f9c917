"""
Base Storage Interfaces for ABS

Decision envelopes and execution receipts are written once and never
updated. Implementations must be:
- Thread-safe
- Append-only (re-inserting an id is an error)
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List


class StorageError(Exception):
    """Base exception for storage errors."""
    pass


class NotFoundError(StorageError):
    """Raised when a requested item is not found."""
    pass


class DuplicateError(StorageError):
    """Raised when trying to create a duplicate item."""
    pass


class DecisionStore(ABC):
    """Interface for the durable envelope/receipt audit trail."""

    @abstractmethod
    def save_envelope(self, envelope: Any) -> None:
        """
        Persist a decision envelope.

        Raises DuplicateError if the decision_id is already stored.
        """
        pass

    @abstractmethod
    def save_receipt(self, receipt: Any) -> None:
        """
        Persist an execution receipt.

        Raises DuplicateError if the receipt_id is already stored.
        """
        pass

    @abstractmethod
    def get_envelope(self, decision_id: str) -> Dict[str, Any]:
        """
        Get a stored envelope in its serialized form.

        Raises NotFoundError if it doesn't exist.
        """
        pass

    @abstractmethod
    def get_receipts(self, decision_id: str) -> List[Dict[str, Any]]:
        """Receipts linked to a decision, in insertion order."""
        pass
