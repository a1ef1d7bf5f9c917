"""
Cryptographic Primitives for ABS

This module provides the foundational cryptographic operations:
- HMAC-SHA256 signing and verification over a shared secret
- SHA-256 hashing for data and JSON canonicalization
- Secure random identifiers

Decision envelopes, execution receipts and capability tokens are all
sealed with the same primitive: an HMAC over the canonical JSON form of
the record. The verifier recomputes the canonical form, so canonicalization
must be deterministic (sorted keys at every level, no whitespace).
"""

import base64
import hashlib
import json
import secrets
import uuid
from datetime import datetime
from typing import Any, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

SIGNATURE_ALGORITHM = "HMAC-SHA256"


def _key_bytes(key: Union[str, bytes]) -> bytes:
    return key.encode("utf-8") if isinstance(key, str) else key


def compute_hmac(message: bytes, key: Union[str, bytes]) -> str:
    """
    Compute an HMAC-SHA256 over a message.

    Args:
        message: The message bytes to authenticate
        key: Shared secret

    Returns:
        Hex-encoded MAC
    """
    mac = hmac.HMAC(_key_bytes(key), hashes.SHA256())
    mac.update(message)
    return mac.finalize().hex()


def verify_hmac(message: bytes, signature_hex: str, key: Union[str, bytes]) -> bool:
    """
    Verify an HMAC-SHA256 in constant time.

    Args:
        message: The original message bytes
        signature_hex: Hex-encoded MAC to check
        key: Shared secret

    Returns:
        True if the MAC matches, False otherwise
    """
    try:
        expected = bytes.fromhex(signature_hex)
    except (TypeError, ValueError):
        return False

    mac = hmac.HMAC(_key_bytes(key), hashes.SHA256())
    mac.update(message)
    try:
        mac.verify(expected)
        return True
    except InvalidSignature:
        return False


def hash_data(data: bytes) -> str:
    """
    Compute SHA-256 hash of bytes.

    Returns:
        Hex-encoded SHA-256 hash with 'sha256:' prefix
    """
    digest = hashlib.sha256(data).hexdigest()
    return f"sha256:{digest}"


def hash_json(obj: Any) -> str:
    """
    Compute SHA-256 hash of a JSON-serializable object.

    Uses canonical JSON serialization so that key order never changes
    the hash.
    """
    canonical = canonicalize_json(obj)
    return hash_data(canonical.encode("utf-8"))


def canonicalize_json(obj: Any) -> str:
    """
    Produce a canonical JSON string for deterministic hashing and signing.

    Rules:
    - Keys are sorted alphabetically at all levels
    - No whitespace between elements
    - Unicode escaped consistently
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
        default=_json_serializer,
    )


def generate_uuid() -> str:
    """Generate a UUID v4 string (decision, receipt and execution ids)."""
    return str(uuid.uuid4())


def generate_secret() -> str:
    """Generate a 256-bit hex secret suitable for ABS_SECRET_KEY."""
    return secrets.token_hex(32)


def _json_serializer(obj: Any) -> Any:
    """Custom JSON serializer for special types."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, bytes):
        return base64.b64encode(obj).decode("ascii")
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
