"""
Capability Tokens

Signed, time-bounded grants of named permissions to a subject. A token
is sealed with HMAC-SHA256 over the canonical JSON of every field except
the signature; verification is pure and never mutates state.

The capability '*' is a wildcard that grants everything.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from absgate.core.clock import TimeProvider, format_timestamp, parse_timestamp, time_provider as default_time_provider
from absgate.core.crypto import canonicalize_json, compute_hmac, generate_uuid, verify_hmac
from absgate.monitoring.logging import AuditLogger

DEFAULT_ISSUER = "abs-core"
DEFAULT_TOKEN_TTL_MS = 3_600_000
WILDCARD = "*"


class Capability:
    """Standard capability scopes."""
    WAL_READ = "wal:read"
    WAL_WRITE = "wal:write"
    TOOL_EXECUTE = "tool:execute"
    SAFE_MODE = "runtime:safe_mode"
    ADMIN = WILDCARD


CAPABILITIES: Dict[str, str] = {
    "WAL_READ": Capability.WAL_READ,
    "WAL_WRITE": Capability.WAL_WRITE,
    "TOOL_EXECUTE": Capability.TOOL_EXECUTE,
    "SAFE_MODE": Capability.SAFE_MODE,
    "ADMIN": Capability.ADMIN,
}


class TokenError(str, Enum):
    EXPIRED = "expired"
    INVALID_SIGNATURE = "invalid_signature"


@dataclass(frozen=True)
class CapabilityToken:
    token_id: str
    subject: str
    issuer: str
    capabilities: Tuple[str, ...]
    issued_at: datetime
    expires_at: datetime
    signature: str

    def signing_payload(self) -> Dict[str, Any]:
        """Every field except the signature, timestamps in wire format."""
        return {
            "token_id": self.token_id,
            "subject": self.subject,
            "issuer": self.issuer,
            "capabilities": list(self.capabilities),
            "issued_at": format_timestamp(self.issued_at),
            "expires_at": format_timestamp(self.expires_at),
        }

    def canonical_bytes(self) -> bytes:
        return canonicalize_json(self.signing_payload()).encode("utf-8")

    def to_dict(self) -> Dict[str, Any]:
        d = self.signing_payload()
        d["signature"] = self.signature
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CapabilityToken":
        return cls(
            token_id=data["token_id"],
            subject=data["subject"],
            issuer=data["issuer"],
            capabilities=tuple(data["capabilities"]),
            issued_at=parse_timestamp(data["issued_at"]),
            expires_at=parse_timestamp(data["expires_at"]),
            signature=data["signature"],
        )


@dataclass
class TokenVerification:
    valid: bool
    capabilities: List[str]
    error: Optional[TokenError] = None

    @property
    def expired(self) -> bool:
        return self.error == TokenError.EXPIRED


class CapabilityTokenService:
    """Issues and verifies capability tokens under a shared secret."""

    def __init__(
        self,
        secret: Union[str, bytes],
        issuer: str = DEFAULT_ISSUER,
        default_ttl_ms: int = DEFAULT_TOKEN_TTL_MS,
        time_provider: Optional[TimeProvider] = None,
    ):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret
        self.issuer = issuer
        self.default_ttl_ms = default_ttl_ms
        self._time = time_provider or default_time_provider
        self._audit = AuditLogger()

    def issue(
        self,
        subject: str,
        capabilities: List[str],
        ttl_ms: Optional[int] = None,
    ) -> CapabilityToken:
        """Issue a token granting ``capabilities`` to ``subject``."""
        now = self._time.now()
        ttl = self.default_ttl_ms if ttl_ms is None else ttl_ms
        unsigned = CapabilityToken(
            token_id=generate_uuid(),
            subject=subject,
            issuer=self.issuer,
            capabilities=tuple(capabilities),
            issued_at=now,
            expires_at=now + timedelta(milliseconds=ttl),
            signature="",
        )
        return replace(unsigned, signature=compute_hmac(unsigned.canonical_bytes(), self._secret))

    def verify(self, token: CapabilityToken) -> TokenVerification:
        """
        Check expiry, then the signature.

        Returns the granted capabilities when both hold.
        """
        if self._time.now() > parse_timestamp(token.expires_at):
            return TokenVerification(valid=False, capabilities=[], error=TokenError.EXPIRED)

        if not verify_hmac(token.canonical_bytes(), token.signature, self._secret):
            self._audit.log_security_event(
                "capability_token_invalid",
                token_id=token.token_id,
                subject=token.subject,
            )
            return TokenVerification(valid=False, capabilities=[], error=TokenError.INVALID_SIGNATURE)

        return TokenVerification(valid=True, capabilities=list(token.capabilities))

    def has_capability(self, token: CapabilityToken, capability: str) -> bool:
        verification = self.verify(token)
        if not verification.valid:
            return False
        return capability in verification.capabilities or WILDCARD in verification.capabilities
