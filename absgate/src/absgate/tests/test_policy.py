"""
Tests for the risk policy rule list.
"""

import pytest

from absgate.core.envelope import Verdict
from absgate.core.policy import DEFAULT_RULES, PolicyContext, PolicyRule, RiskPolicy


@pytest.fixture
def policy():
    return RiskPolicy()


class TestRiskPolicy:

    def test_low_risk_allowed(self, policy):
        decision = policy.evaluate(PolicyContext(risk_score=10, confidence=0.95))
        assert decision.verdict == Verdict.ALLOW
        assert decision.reason_code == "POLICY.ALLOWED"

    def test_invalid_token_wins_over_everything(self, policy):
        decision = policy.evaluate(PolicyContext(
            risk_score=95,
            token_valid=False,
            injection_flags=["ignore_instructions: matched"],
        ))
        assert decision.verdict == Verdict.DENY
        assert decision.reason_code == "AUTH.INVALID"

    def test_missing_scope(self, policy):
        decision = policy.evaluate(PolicyContext(risk_score=10, token_valid=True, scope_granted=False))
        assert decision.verdict == Verdict.DENY
        assert decision.reason_code == "AUTH.SCOPE_MISSING"

    def test_injection_escalates_before_risk_deny(self, policy):
        decision = policy.evaluate(PolicyContext(risk_score=95, injection_flags=["jailbreak: matched"]))
        assert decision.verdict == Verdict.REQUIRE_APPROVAL
        assert decision.reason_code == "INPUT.INJECTION"
        assert "jailbreak" in decision.reason_human

    @pytest.mark.parametrize("score,verdict,code", [
        (79, Verdict.REQUIRE_APPROVAL, "RISK.EXCEEDED"),
        (80, Verdict.DENY, "RISK.EXCEEDED"),
        (50, Verdict.REQUIRE_APPROVAL, "RISK.EXCEEDED"),
        (49, Verdict.ALLOW, "POLICY.ALLOWED"),
    ])
    def test_thresholds(self, policy, score, verdict, code):
        decision = policy.evaluate(PolicyContext(risk_score=score))
        assert decision.verdict == verdict
        assert decision.reason_code == code

    def test_sanitization_confirmation(self, policy):
        decision = policy.evaluate(PolicyContext(risk_score=10, sanitization_requires_confirmation=True))
        assert decision.verdict == Verdict.REQUIRE_APPROVAL
        assert decision.reason_code == "POLICY.VIOLATION"

    def test_sequence_violation(self, policy):
        decision = policy.evaluate(PolicyContext(risk_score=55, matched_patterns=["data-exfiltration"]))
        assert decision.reason_code == "SEQUENCE.VIOLATION"
        assert decision.rule_name == "dangerous-sequence"

    def test_sequence_below_threshold_allowed(self, policy):
        decision = policy.evaluate(PolicyContext(risk_score=30, matched_patterns=["reconnaissance"]))
        assert decision.verdict == Verdict.ALLOW

    def test_low_confidence(self, policy):
        decision = policy.evaluate(PolicyContext(risk_score=10, confidence=0.5))
        assert decision.verdict == Verdict.REQUIRE_APPROVAL
        assert decision.reason_code == "POLICY.VIOLATION"
        assert "0.50" in decision.reason_human

    def test_custom_thresholds(self):
        policy = RiskPolicy(approval_threshold=20, deny_threshold=30)
        assert policy.evaluate(PolicyContext(risk_score=25)).verdict == Verdict.REQUIRE_APPROVAL
        assert policy.evaluate(PolicyContext(risk_score=30)).verdict == Verdict.DENY

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(ValueError):
            RiskPolicy(approval_threshold=90, deny_threshold=80)

    def test_custom_rule_list(self):
        block_all = PolicyRule(
            name="maintenance",
            verdict=Verdict.DENY,
            reason_code="OPS.MAINTENANCE",
            check=lambda ctx, p: True,
            explain=lambda ctx, p: "Maintenance window",
        )
        policy = RiskPolicy(rules=[block_all] + DEFAULT_RULES)
        assert policy.evaluate(PolicyContext(risk_score=0)).reason_code == "OPS.MAINTENANCE"
