"""
Risk Policy for ABS

Turns the gathered signals for one event (token check, injection scan,
risk score, sanitization, sequence matches, provider confidence) into a
verdict. Rules are data evaluated in order; the first that matches
decides.

Policy evaluation is DETERMINISTIC - given the same context, it always
produces the same decision.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from absgate.core.envelope import ReasonCode, Verdict

DEFAULT_APPROVAL_THRESHOLD = 50
DEFAULT_DENY_THRESHOLD = 80
DEFAULT_MIN_CONFIDENCE = 0.8


@dataclass
class PolicyContext:
    """Signals gathered for one event."""
    risk_score: int
    confidence: float = 1.0
    token_valid: Optional[bool] = None  # None: no token supplied
    scope_granted: bool = True
    injection_flags: List[str] = field(default_factory=list)
    sanitization_requires_confirmation: bool = False
    matched_patterns: List[str] = field(default_factory=list)


@dataclass
class PolicyDecision:
    """The result of policy evaluation."""
    verdict: Verdict
    reason_code: str
    reason_human: str
    rule_name: str


@dataclass(frozen=True)
class PolicyRule:
    name: str
    verdict: Verdict
    reason_code: str
    check: Callable[[PolicyContext, "RiskPolicy"], bool]
    explain: Callable[[PolicyContext, "RiskPolicy"], str]


DEFAULT_RULES: List[PolicyRule] = [
    PolicyRule(
        name="invalid-token",
        verdict=Verdict.DENY,
        reason_code=ReasonCode.AUTH_INVALID.value,
        check=lambda ctx, p: ctx.token_valid is False,
        explain=lambda ctx, p: "Capability token is invalid or expired",
    ),
    PolicyRule(
        name="missing-scope",
        verdict=Verdict.DENY,
        reason_code=ReasonCode.AUTH_SCOPE_MISSING.value,
        check=lambda ctx, p: ctx.token_valid is True and not ctx.scope_granted,
        explain=lambda ctx, p: "Capability token does not grant tool execution",
    ),
    PolicyRule(
        name="prompt-injection",
        verdict=Verdict.REQUIRE_APPROVAL,
        reason_code=ReasonCode.INPUT_INJECTION.value,
        check=lambda ctx, p: bool(ctx.injection_flags),
        explain=lambda ctx, p: "Possible prompt injection: " + "; ".join(ctx.injection_flags),
    ),
    PolicyRule(
        name="risk-deny",
        verdict=Verdict.DENY,
        reason_code=ReasonCode.RISK_EXCEEDED.value,
        check=lambda ctx, p: ctx.risk_score >= p.deny_threshold,
        explain=lambda ctx, p: f"Risk score {ctx.risk_score} exceeds deny threshold {p.deny_threshold}",
    ),
    PolicyRule(
        name="sanitization-confirmation",
        verdict=Verdict.REQUIRE_APPROVAL,
        reason_code=ReasonCode.POLICY_VIOLATION.value,
        check=lambda ctx, p: ctx.sanitization_requires_confirmation,
        explain=lambda ctx, p: "Action was rewritten and the rewrite needs confirmation",
    ),
    PolicyRule(
        name="dangerous-sequence",
        verdict=Verdict.REQUIRE_APPROVAL,
        reason_code=ReasonCode.SEQUENCE_VIOLATION.value,
        check=lambda ctx, p: bool(ctx.matched_patterns) and ctx.risk_score >= p.approval_threshold,
        explain=lambda ctx, p: "Dangerous action sequence: " + ", ".join(ctx.matched_patterns),
    ),
    PolicyRule(
        name="risk-approval",
        verdict=Verdict.REQUIRE_APPROVAL,
        reason_code=ReasonCode.RISK_EXCEEDED.value,
        check=lambda ctx, p: ctx.risk_score >= p.approval_threshold,
        explain=lambda ctx, p: f"Risk score {ctx.risk_score} requires approval (threshold {p.approval_threshold})",
    ),
    PolicyRule(
        name="low-confidence",
        verdict=Verdict.REQUIRE_APPROVAL,
        reason_code=ReasonCode.POLICY_VIOLATION.value,
        check=lambda ctx, p: ctx.confidence < p.min_confidence,
        explain=lambda ctx, p: f"Low confidence ({ctx.confidence:.2f}), manual review required",
    ),
]


class RiskPolicy:
    """Ordered rule list with an ALLOW fallthrough."""

    def __init__(
        self,
        approval_threshold: int = DEFAULT_APPROVAL_THRESHOLD,
        deny_threshold: int = DEFAULT_DENY_THRESHOLD,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        rules: Optional[List[PolicyRule]] = None,
    ):
        if approval_threshold > deny_threshold:
            raise ValueError("approval_threshold must not exceed deny_threshold")
        self.approval_threshold = approval_threshold
        self.deny_threshold = deny_threshold
        self.min_confidence = min_confidence
        self.rules = list(DEFAULT_RULES if rules is None else rules)

    def evaluate(self, ctx: PolicyContext) -> PolicyDecision:
        for rule in self.rules:
            if rule.check(ctx, self):
                return PolicyDecision(
                    verdict=rule.verdict,
                    reason_code=rule.reason_code,
                    reason_human=rule.explain(ctx, self),
                    rule_name=rule.name,
                )
        return PolicyDecision(
            verdict=Verdict.ALLOW,
            reason_code=ReasonCode.POLICY_ALLOWED.value,
            reason_human=f"Risk score {ctx.risk_score} within policy",
            rule_name="default-allow",
        )
