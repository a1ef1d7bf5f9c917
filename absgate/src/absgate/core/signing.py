"""
Envelope and receipt signing.

Both records are sealed with HMAC-SHA256 over their canonical bytes
(every field except the signature, keys sorted at every level). The
verifier recomputes the canonical form, so any mutation of any field
invalidates the signature.

Signing uses a single shared secret. Rotating the secret invalidates
everything signed under the old one.
"""

from typing import Optional, Union

from absgate.core.crypto import SIGNATURE_ALGORITHM, compute_hmac, verify_hmac
from absgate.core.envelope import DecisionEnvelope, Signature
from absgate.core.errors import SignatureError
from absgate.core.receipts import ExecutionReceipt
from absgate.monitoring.logging import AuditLogger


class EnvelopeSigner:
    """Signs and verifies envelopes and receipts with a shared secret."""

    def __init__(self, secret: Union[str, bytes], key_id: str = "default"):
        if not secret:
            raise ValueError("Signing secret must not be empty")
        self._secret = secret
        self.key_id = key_id
        self._audit = AuditLogger()

    def _signature_for(self, payload: bytes) -> Signature:
        return Signature(
            alg=SIGNATURE_ALGORITHM,
            key_id=self.key_id,
            value=compute_hmac(payload, self._secret),
        )

    def _verify(self, payload: bytes, signature: Optional[Signature]) -> bool:
        if signature is None or signature.is_placeholder:
            return False
        if signature.alg != SIGNATURE_ALGORITHM:
            return False
        return verify_hmac(payload, signature.value, self._secret)

    def sign_envelope(self, envelope: DecisionEnvelope) -> DecisionEnvelope:
        """Return a copy of the envelope carrying a fresh signature."""
        return envelope.with_signature(self._signature_for(envelope.canonical_bytes()))

    def verify_envelope(self, envelope: DecisionEnvelope) -> bool:
        return self._verify(envelope.canonical_bytes(), envelope.signature)

    def require_valid_envelope(self, envelope: DecisionEnvelope) -> None:
        """
        Raises:
            SignatureError: if the envelope signature does not verify
        """
        if not self.verify_envelope(envelope):
            self._audit.log_security_event(
                "signature_invalid",
                record_type="envelope",
                decision_id=envelope.decision_id,
                key_id=envelope.signature.key_id,
            )
            raise SignatureError(
                f"Envelope {envelope.decision_id} signature verification failed",
                key_id=envelope.signature.key_id,
            )

    def sign_receipt(self, receipt: ExecutionReceipt) -> ExecutionReceipt:
        return receipt.with_signature(self._signature_for(receipt.canonical_bytes()))

    def verify_receipt(self, receipt: ExecutionReceipt) -> bool:
        return self._verify(receipt.canonical_bytes(), receipt.signature)
