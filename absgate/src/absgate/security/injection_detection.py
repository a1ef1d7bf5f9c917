"""
Prompt Injection Detection for ABS

Scans event payloads for text that tries to steer the decision model:
- Instruction overrides ("ignore previous instructions")
- Role/persona hijacking
- System-prompt delimiters and special tokens
- Known jailbreak phrases
- Output manipulation and forced approval

A flagged payload is escalated for human review rather than decided
automatically. The payload itself is passed through unchanged.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from absgate.core.crypto import canonicalize_json
from absgate.monitoring.logging import AuditLogger


class InjectionSeverity(Enum):
    """Severity levels for injection attempts."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class InjectionAttempt:
    """Detected injection attempt."""
    pattern_name: str
    matched_text: str
    position: int
    severity: InjectionSeverity
    explanation: str

    def describe(self) -> str:
        return f'{self.pattern_name}: matched "{self.matched_text}"'


@dataclass
class InjectionScan:
    """Result of scanning a payload."""
    flagged: bool
    flags: List[str] = field(default_factory=list)
    attempts: List[InjectionAttempt] = field(default_factory=list)

    @property
    def max_severity(self) -> Optional[InjectionSeverity]:
        if not self.attempts:
            return None
        return min(self.attempts, key=lambda a: _SEVERITY_ORDER[a.severity]).severity


_SEVERITY_ORDER = {
    InjectionSeverity.CRITICAL: 0,
    InjectionSeverity.HIGH: 1,
    InjectionSeverity.MEDIUM: 2,
    InjectionSeverity.LOW: 3,
}


INJECTION_PATTERNS: List[Dict[str, Any]] = [
    # Instruction overrides
    {
        "name": "ignore_instructions",
        "pattern": r"(?i)ignore\s+(all\s+)?(previous|above|prior|my|the)\s+(instructions?|rules?|prompts?)",
        "severity": InjectionSeverity.CRITICAL,
        "explanation": "Attempt to override prior instructions",
    },
    {
        "name": "disregard_instructions",
        "pattern": r"(?i)disregard\s+(all\s+)?(previous|above|prior)",
        "severity": InjectionSeverity.HIGH,
        "explanation": "Attempt to discard prior context",
    },
    {
        "name": "forget_instructions",
        "pattern": r"(?i)forget\s+(all\s+)?(previous|above|prior|your)\s+(instructions?|rules?)",
        "severity": InjectionSeverity.HIGH,
        "explanation": "Attempt to erase prior instructions",
    },
    # Role hijacking
    {
        "name": "role_hijack",
        "pattern": r"(?i)(you\s+are\s+now\s+|act\s+as\s+(if\s+)?|pretend\s+(to\s+be|you'?re)|roleplay\s+as|imagine\s+you\s+are)",
        "severity": InjectionSeverity.HIGH,
        "explanation": "Role or persona hijacking",
    },
    # System prompt delimiters
    {
        "name": "system_prompt_marker",
        "pattern": r"(?i)(system\s*:\s*|\[system\]|\[INST\]|<<SYS>>)",
        "severity": InjectionSeverity.HIGH,
        "explanation": "System prompt delimiter in user content",
    },
    {
        "name": "special_tokens",
        "pattern": r"<\|.*?\|>",
        "severity": InjectionSeverity.CRITICAL,
        "explanation": "Model special token injection",
    },
    # Jailbreaks
    {
        "name": "jailbreak",
        "pattern": r"(?i)(do\s+anything\s+now|DAN\s+mode|jailbreak|bypass\s+(the\s+)?(filter|restriction|rule))",
        "severity": InjectionSeverity.CRITICAL,
        "explanation": "Known jailbreak technique",
    },
    # Output manipulation
    {
        "name": "output_manipulation",
        "pattern": r"(?i)(always\s+(respond|answer|say|output)|your\s+(only\s+)?response\s+(should|must|will)\s+be|respond\s+with\s+(only\s+)?[\"'`])",
        "severity": InjectionSeverity.MEDIUM,
        "explanation": "Attempt to dictate the model's output",
    },
    # Forced approval
    {
        "name": "forced_approval",
        "pattern": r"(?i)(\bapprove\s+this\b|\bmust\s+approve\b|\bforce\s+approval\b)",
        "severity": InjectionSeverity.HIGH,
        "explanation": "Attempt to force an approval verdict",
    },
]


class PromptInjectionDetector:
    """
    Detects prompt injection attempts in text and event payloads.
    """

    def __init__(self, custom_patterns: Optional[List[Dict[str, Any]]] = None):
        self.patterns = list(INJECTION_PATTERNS)
        if custom_patterns:
            self.patterns.extend(custom_patterns)

        # Invalid custom patterns fail loudly at construction
        self.compiled_patterns = [
            {**p, "compiled": re.compile(p["pattern"])} for p in self.patterns
        ]
        self._audit = AuditLogger()

    def detect(self, text: str) -> List[InjectionAttempt]:
        """
        Scan text for injection attempts.

        Returns attempts sorted by severity (critical first), then position.
        """
        attempts = []
        for pattern in self.compiled_patterns:
            for match in pattern["compiled"].finditer(text):
                attempts.append(InjectionAttempt(
                    pattern_name=pattern["name"],
                    matched_text=match.group(),
                    position=match.start(),
                    severity=pattern["severity"],
                    explanation=pattern["explanation"],
                ))

        attempts.sort(key=lambda a: (_SEVERITY_ORDER[a.severity], a.position))
        return attempts

    def is_safe(self, text: str) -> bool:
        return not self.detect(text)

    def scan(self, payload: Any) -> InjectionScan:
        """
        Scan an event payload.

        Non-string payloads are scanned in their JSON-serialized form.
        """
        text = payload if isinstance(payload, str) else canonicalize_json(payload)
        attempts = self.detect(text)
        scan = InjectionScan(
            flagged=bool(attempts),
            flags=[a.describe() for a in attempts],
            attempts=attempts,
        )
        if scan.flagged:
            self._audit.log_security_event(
                "prompt_injection_detected",
                patterns=sorted({a.pattern_name for a in attempts}),
                injection_severity=scan.max_severity.value,
            )
        return scan
