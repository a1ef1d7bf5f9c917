"""
Tests for Agent Memory risk profiles.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from absgate.core.agent_memory import ActionOutcome, TrustLevel, round_half_up


def _record(memory, outcome, count, agent_id="agent-1"):
    for _ in range(count):
        memory.record_action(agent_id, outcome)


class TestRiskProfile:

    def test_new_agent(self, memory):
        profile = memory.get_agent_risk_profile("fresh")
        assert profile.base_risk_modifier == 5
        assert profile.trust_level == TrustLevel.UNTRUSTED
        assert profile.incident_count == 0

    def test_high_trust_after_clean_history(self, memory, clock):
        _record(memory, ActionOutcome.ALLOWED, 101)
        clock.advance(timedelta(days=7))
        profile = memory.get_agent_risk_profile("agent-1")
        assert profile.trust_level == TrustLevel.HIGH
        assert profile.base_risk_modifier == -5

    def test_high_trust_bonus_grows_with_time(self, memory, clock):
        _record(memory, ActionOutcome.ALLOWED, 101)
        clock.advance(timedelta(days=70))
        assert memory.get_agent_risk_profile("agent-1").base_risk_modifier == -10

    def test_high_incident_rate(self, memory):
        _record(memory, ActionOutcome.ALLOWED, 2)
        _record(memory, ActionOutcome.BLOCKED, 2)
        profile = memory.get_agent_risk_profile("agent-1")
        assert profile.trust_level == TrustLevel.UNTRUSTED
        assert profile.base_risk_modifier == 50
        assert profile.incident_count == 2

    def test_incident_penalty_decays(self, memory, clock):
        _record(memory, ActionOutcome.ALLOWED, 2)
        _record(memory, ActionOutcome.BLOCKED, 2)
        clock.advance(timedelta(days=7))
        assert memory.get_agent_risk_profile("agent-1").base_risk_modifier == 25

    def test_moderate_incident_rate(self, memory):
        _record(memory, ActionOutcome.ALLOWED, 4)
        _record(memory, ActionOutcome.ESCALATED, 1)
        profile = memory.get_agent_risk_profile("agent-1")
        assert profile.trust_level == TrustLevel.LOW
        assert profile.base_risk_modifier == 20

    def test_medium_trust(self, memory):
        _record(memory, ActionOutcome.ALLOWED, 25)
        profile = memory.get_agent_risk_profile("agent-1")
        assert profile.trust_level == TrustLevel.MEDIUM
        assert profile.base_risk_modifier == 0

    def test_short_history(self, memory):
        _record(memory, ActionOutcome.ALLOWED, 3)
        profile = memory.get_agent_risk_profile("agent-1")
        assert profile.trust_level == TrustLevel.LOW
        assert profile.base_risk_modifier == 5

    def test_sanitized_is_not_an_incident(self, memory):
        _record(memory, ActionOutcome.SANITIZED, 30)
        stats = memory.get_agent_stats("agent-1")
        assert stats.sanitized == 30
        assert stats.incident_count == 0


class TestAdaptiveRisk:

    def test_new_agent_explanation(self, memory):
        risk = memory.calculate_adaptive_risk("fresh", 40)
        assert risk.final_score == 42
        assert risk.explanation == "Base: 40, Agent modifier: +5% (untrusted) = 42"

    def test_sequence_bonus(self, memory):
        risk = memory.calculate_adaptive_risk("fresh", 10, sequence_bonus=40)
        assert risk.final_score == 51
        assert "Sequence bonus: +40" in risk.explanation

    def test_zero_modifier_omitted(self, memory):
        _record(memory, ActionOutcome.ALLOWED, 25)
        risk = memory.calculate_adaptive_risk("agent-1", 30)
        assert risk.explanation == "Base: 30 = 30"

    def test_clamped(self, memory):
        assert memory.calculate_adaptive_risk("fresh", 90, sequence_bonus=60).final_score == 100
        assert memory.calculate_adaptive_risk("fresh", 0).final_score == 0


class TestBookkeeping:

    def test_stats_snapshot(self, memory):
        _record(memory, ActionOutcome.ALLOWED, 1)
        stats = memory.get_agent_stats("agent-1")
        stats.allowed = 99
        assert memory.get_agent_stats("agent-1").allowed == 1

    def test_clear_one_and_all(self, memory):
        _record(memory, ActionOutcome.ALLOWED, 1, agent_id="a")
        _record(memory, ActionOutcome.ALLOWED, 1, agent_id="b")
        memory.clear_agent_stats("a")
        assert memory.get_agent_stats("a") is None
        assert memory.get_stats()["tracked_agents"] == 1
        memory.clear_agent_stats()
        assert memory.get_stats()["tracked_agents"] == 0

    def test_unknown_outcome_rejected(self, memory):
        with pytest.raises(ValueError):
            memory.record_action("agent-1", "vaporized")

    @pytest.mark.parametrize("value,expected", [(0.5, 1), (-0.5, 0), (-4.5, -4), (2.4, 2)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestConcurrentRecording:

    def test_counters_exact_under_contention(self, memory):
        """Concurrent handlers for the same agent never lose an update."""
        outcomes = [ActionOutcome.ALLOWED, ActionOutcome.BLOCKED, ActionOutcome.ESCALATED, ActionOutcome.SANITIZED]

        def worker(n):
            for i in range(500):
                memory.record_action("agent-1", outcomes[(n + i) % len(outcomes)])

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(worker, range(8)))

        stats = memory.get_agent_stats("agent-1")
        assert stats.total == 4000
        assert stats.allowed == stats.blocked == stats.escalated == stats.sanitized == 1000
        assert stats.incident_count == 2000
