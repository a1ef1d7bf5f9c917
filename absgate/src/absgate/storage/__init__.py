"""
Storage module for ABS

Append-only persistence of decision envelopes and execution receipts.
"""

from absgate.storage.base import DecisionStore, StorageError, NotFoundError, DuplicateError
from absgate.storage.memory import InMemoryDecisionStore

__all__ = [
    "DecisionStore",
    "StorageError",
    "NotFoundError",
    "DuplicateError",
    "InMemoryDecisionStore",
]
