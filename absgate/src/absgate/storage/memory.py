"""
In-memory decision store.

Records are kept in their serialized dict form so what is read back is
exactly what was written.
"""

import copy
import threading
from typing import Any, Dict, List

from absgate.core.envelope import DecisionEnvelope
from absgate.core.receipts import ExecutionReceipt
from absgate.monitoring.logging import get_logger
from absgate.storage.base import DecisionStore, DuplicateError, NotFoundError

logger = get_logger(__name__)


class InMemoryDecisionStore(DecisionStore):
    """Thread-safe, append-only store backed by dicts."""

    def __init__(self):
        self._envelopes: Dict[str, Dict[str, Any]] = {}
        self._receipts: Dict[str, Dict[str, Any]] = {}
        self._receipts_by_decision: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def save_envelope(self, envelope: DecisionEnvelope) -> None:
        record = envelope.to_dict()
        with self._lock:
            if envelope.decision_id in self._envelopes:
                raise DuplicateError(f"Envelope already stored: {envelope.decision_id}")
            self._envelopes[envelope.decision_id] = record
        logger.debug("envelope_saved", decision_id=envelope.decision_id)

    def save_receipt(self, receipt: ExecutionReceipt) -> None:
        record = receipt.to_dict()
        with self._lock:
            if receipt.receipt_id in self._receipts:
                raise DuplicateError(f"Receipt already stored: {receipt.receipt_id}")
            self._receipts[receipt.receipt_id] = record
            self._receipts_by_decision.setdefault(receipt.decision_id, []).append(receipt.receipt_id)
        logger.debug("receipt_saved", receipt_id=receipt.receipt_id, decision_id=receipt.decision_id)

    def get_envelope(self, decision_id: str) -> Dict[str, Any]:
        with self._lock:
            record = self._envelopes.get(decision_id)
            if record is None:
                raise NotFoundError(f"Envelope not found: {decision_id}")
            return copy.deepcopy(record)

    def get_receipts(self, decision_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            ids = self._receipts_by_decision.get(decision_id, [])
            return [copy.deepcopy(self._receipts[rid]) for rid in ids]

    def load_envelope(self, decision_id: str) -> DecisionEnvelope:
        return DecisionEnvelope.from_dict(self.get_envelope(decision_id))

    def load_receipts(self, decision_id: str) -> List[ExecutionReceipt]:
        return [ExecutionReceipt.from_dict(r) for r in self.get_receipts(decision_id)]

    def count(self) -> Dict[str, int]:
        with self._lock:
            return {"envelopes": len(self._envelopes), "receipts": len(self._receipts)}
