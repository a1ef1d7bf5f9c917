"""
Payload-level protections: action rewriting and prompt-injection scanning.
"""

from absgate.security.action_sanitizer import ActionSanitizer, SanitizeRule, SanitizationResult
from absgate.security.injection_detection import PromptInjectionDetector, InjectionScan

__all__ = [
    "ActionSanitizer",
    "SanitizeRule",
    "SanitizationResult",
    "PromptInjectionDetector",
    "InjectionScan",
]
