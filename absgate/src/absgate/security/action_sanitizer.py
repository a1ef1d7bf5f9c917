"""
Action Sanitization for ABS

Rewrites risky actions instead of only blocking them:
- Unscoped destructive SQL gets LIMIT 1 (and needs confirmation)
- Unbounded SELECT gets LIMIT 100
- Recursive-force shell deletes become interactive (needs confirmation)
- Secret-shaped strings are redacted from log/output payloads

Rules are data: an event-type matcher plus two pure functions. They are
evaluated in order and the first rule that matches, applies and reports
a rewrite wins.
"""

import re
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from absgate.monitoring.logging import AuditLogger


@dataclass
class SanitizationResult:
    """Outcome of applying a rule to an action payload."""
    can_sanitize: bool
    original_action: str
    sanitized_action: str
    changes: List[str] = field(default_factory=list)
    requires_confirmation: bool = False
    reason: Optional[str] = None
    rule_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "can_sanitize": self.can_sanitize,
            "original_action": self.original_action,
            "sanitized_action": self.sanitized_action,
            "changes": list(self.changes),
            "requires_confirmation": self.requires_confirmation,
        }
        if self.reason:
            d["reason"] = self.reason
        if self.rule_name:
            d["rule"] = self.rule_name
        return d


@dataclass(frozen=True)
class SanitizeRule:
    """A rewrite rule. ``event_type`` is an exact string or a compiled pattern."""
    name: str
    event_type: Union[str, re.Pattern]
    check: Callable[[Dict[str, Any]], bool]
    sanitize: Callable[[Dict[str, Any]], SanitizationResult]

    def matches(self, event_type: str) -> bool:
        if isinstance(self.event_type, str):
            return event_type == self.event_type
        return self.event_type.search(event_type) is not None


def _text(payload: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if value:
            return str(value)
    return ""


# =============================================================================
# SQL
# =============================================================================

def _sql_check(payload: Dict[str, Any]) -> bool:
    query = _text(payload, "query").upper()
    risky = "DELETE" in query or "UPDATE" in query or "SELECT" in query
    return risky and "LIMIT" not in query and "WHERE" not in query


def _sql_sanitize(payload: Dict[str, Any]) -> SanitizationResult:
    original = _text(payload, "query")
    upper = original.upper().strip()

    if upper.startswith("DELETE") or upper.startswith("UPDATE"):
        return SanitizationResult(
            can_sanitize=True,
            original_action=original,
            sanitized_action=original + " LIMIT 1",
            changes=["Added LIMIT 1 to prevent mass operation"],
            requires_confirmation=True,
            reason="Destructive operation without WHERE clause",
        )

    if upper.startswith("SELECT") and "LIMIT" not in upper:
        return SanitizationResult(
            can_sanitize=True,
            original_action=original,
            sanitized_action=original + " LIMIT 100",
            changes=["Added LIMIT 100 to prevent large result sets"],
            requires_confirmation=False,
        )

    return SanitizationResult(can_sanitize=False, original_action=original, sanitized_action=original)


# =============================================================================
# Shell
# =============================================================================

# Flag spellings of a recursive forced delete, each as a standalone option
RECURSIVE_FORCE_FLAGS = [
    re.compile(r"(?<!\S)-rf\b\s*"),
    re.compile(r"(?<!\S)-fr\b\s*"),
    re.compile(r"(?<!\S)-r\s+-f\b\s*"),
    re.compile(r"(?<!\S)-f\s+-r\b\s*"),
]


def _shell_check(payload: Dict[str, Any]) -> bool:
    command = _text(payload, "command")
    return "rm " in command and any(flag.search(command) for flag in RECURSIVE_FORCE_FLAGS)


def _shell_sanitize(payload: Dict[str, Any]) -> SanitizationResult:
    original = _text(payload, "command")
    sanitized = original
    for flag in RECURSIVE_FORCE_FLAGS:
        sanitized = flag.sub("-i ", sanitized)
    return SanitizationResult(
        can_sanitize=True,
        original_action=original,
        sanitized_action=sanitized.rstrip(),
        changes=["Replaced -rf with -i (interactive mode)"],
        requires_confirmation=True,
        reason="Destructive shell command modified for safety",
    )


# =============================================================================
# Secret redaction
# =============================================================================

SECRET_PATTERNS = [
    (re.compile(r"api[_-]?key\s*[:=]\s*[\"']?[a-zA-Z0-9]{20,}", re.IGNORECASE), "API_KEY=[REDACTED]"),
    (re.compile(r"sk[-_](live|test)[-_][a-zA-Z0-9]{20,}"), "sk-[REDACTED]"),
    (re.compile(r"ghp_[a-zA-Z0-9]{36}"), "ghp_[REDACTED]"),
    (re.compile(r"password\s*[:=]\s*[\"']?[^\s\"']{8,}", re.IGNORECASE), "password=[REDACTED]"),
]


def _secrets_check(payload: Dict[str, Any]) -> bool:
    content = _text(payload, "content", "message")
    return any(pattern.search(content) for pattern, _ in SECRET_PATTERNS)


def _secrets_sanitize(payload: Dict[str, Any]) -> SanitizationResult:
    content = _text(payload, "content", "message")
    for pattern, replacement in SECRET_PATTERNS:
        content = pattern.sub(replacement, content)
    return SanitizationResult(
        can_sanitize=True,
        original_action="[content with secrets]",
        sanitized_action=content,
        changes=["Redacted potential secrets from output"],
        requires_confirmation=False,
        reason="Sensitive data detected and redacted",
    )


BUILTIN_RULES: List[SanitizeRule] = [
    SanitizeRule(
        name="sql-add-limit",
        event_type=re.compile(r"^db:(query|execute)$"),
        check=_sql_check,
        sanitize=_sql_sanitize,
    ),
    SanitizeRule(
        name="shell-remove-dangerous-flags",
        event_type=re.compile(r"^shell:(execute|run)$"),
        check=_shell_check,
        sanitize=_shell_sanitize,
    ),
    SanitizeRule(
        name="redact-secrets-in-output",
        event_type=re.compile(r"^(log|output|response):"),
        check=_secrets_check,
        sanitize=_secrets_sanitize,
    ),
]


class ActionSanitizer:
    """Ordered rule list; first applicable rewrite wins."""

    def __init__(self, custom_rules: Optional[List[SanitizeRule]] = None):
        self._rules: List[SanitizeRule] = list(BUILTIN_RULES) + list(custom_rules or [])
        self._lock = threading.Lock()
        self._audit = AuditLogger()

    def try_sanitize(self, event_type: str, payload: Optional[Dict[str, Any]]) -> Optional[SanitizationResult]:
        """
        Return the first applicable rewrite, or None.

        None means no rule applies and the caller falls back to the normal
        allow/deny path.
        """
        payload = payload if isinstance(payload, dict) else {}
        with self._lock:
            rules = list(self._rules)

        for rule in rules:
            if not rule.matches(event_type) or not rule.check(payload):
                continue
            result = rule.sanitize(payload)
            if result.can_sanitize:
                result.rule_name = rule.name
                self._audit.log_sanitization(
                    rule=rule.name,
                    event_type=event_type,
                    requires_confirmation=result.requires_confirmation,
                    changes=result.changes,
                )
                return result
        return None

    def add_rule(self, rule: SanitizeRule) -> None:
        """Append a rule. Rules added later have lower priority."""
        with self._lock:
            self._rules.append(rule)

    def get_rules(self) -> List[SanitizeRule]:
        with self._lock:
            return list(self._rules)
