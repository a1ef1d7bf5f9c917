"""
Tests for the structural validators. Validators never raise.
"""

from datetime import timedelta

from absgate.core.envelope import Verdict
from absgate.core.receipts import ExecutionReceiptBuilder
from absgate.core.validator import validate_chain, validate_envelope, validate_receipt


def _receipt(envelope, clock, gates=None, decision_id=None):
    builder = (
        ExecutionReceiptBuilder(envelope, time_provider=clock)
        .set_executor_id("worker-1")
        .set_execution_context("test", "tenant-1")
        .set_outcome("EXECUTED")
    )
    for name in gates or []:
        builder.add_gate_pass(name, "policy-gate")
    if decision_id:
        builder.set_decision_id(decision_id)
    return builder.build()


class TestValidateEnvelope:

    def test_valid_envelope(self, make_envelope, clock):
        result = validate_envelope(make_envelope(), time_provider=clock)
        assert result.valid
        assert result.errors == []

    def test_accepts_dicts(self, make_envelope, clock):
        assert validate_envelope(make_envelope().to_dict(), time_provider=clock).valid

    def test_garbage_does_not_raise(self):
        result = validate_envelope({"verdict": "MAYBE"})
        assert not result.valid
        assert result.errors

    def test_non_integer_risk_rejected(self, make_envelope, clock):
        data = make_envelope().to_dict()
        data["risk_score"] = 12.5
        assert not validate_envelope(data, time_provider=clock).valid

    def test_expired_is_warning(self, make_envelope, clock):
        env = make_envelope(valid_until=60)
        clock.advance(timedelta(minutes=2))
        result = validate_envelope(env, time_provider=clock)
        assert result.valid
        assert any(w.path == "valid_until" for w in result.warnings)

    def test_monitor_mode_warning(self, make_envelope, clock):
        result = validate_envelope(make_envelope(monitor_mode=True), time_provider=clock)
        assert any(w.path == "applicability.monitor_mode" for w in result.warnings)

    def test_high_risk_allow_warning(self, make_envelope, clock):
        result = validate_envelope(make_envelope(verdict=Verdict.ALLOW, risk_score=85), time_provider=clock)
        assert any(w.path == "risk_score" for w in result.warnings)
        result = validate_envelope(make_envelope(verdict=Verdict.DENY, risk_score=85), time_provider=clock)
        assert not any(w.path == "risk_score" for w in result.warnings)


class TestValidateReceipt:

    def test_unauthorized_skip_warning(self, make_envelope, clock):
        data = _receipt(make_envelope(), clock).to_dict()
        data["gates"]["TENANT_ACTIVE"] = {
            "result": "SKIPPED",
            "checked_at": "2026-01-01T12:00:00.000Z",
            "source": "ops",
        }
        result = validate_receipt(data)
        assert result.valid
        assert any(w.path == "gates.TENANT_ACTIVE" for w in result.warnings)

    def test_executed_without_evidence_warning(self, make_envelope, clock):
        data = _receipt(make_envelope(), clock).to_dict()
        del data["evidence"]
        result = validate_receipt(data)
        assert any(w.path == "evidence" for w in result.warnings)

    def test_bad_outcome(self, make_envelope, clock):
        data = _receipt(make_envelope(), clock).to_dict()
        data["outcome"] = "DONE"
        assert not validate_receipt(data).valid


class TestValidateChain:

    def test_valid_chain(self, make_envelope, clock):
        env = make_envelope(required_checks=["TENANT_ACTIVE"])
        result = validate_chain(env, [_receipt(env, clock, gates=["TENANT_ACTIVE"])], time_provider=clock)
        assert result.valid
        assert result.break_point is None

    def test_decision_id_mismatch(self, make_envelope, clock):
        env = make_envelope()
        other = make_envelope()
        receipt = _receipt(other, clock)
        result = validate_chain(env, [receipt], time_provider=clock)
        assert not result.valid
        assert result.break_point.reason == "Decision ID mismatch"
        assert result.break_point.receipt_id == receipt.receipt_id

    def test_missing_required_gates(self, make_envelope, clock):
        env = make_envelope(required_checks=["TENANT_ACTIVE", "POLICY_ACTIVE"])
        receipt = _receipt(env, clock, gates=["TENANT_ACTIVE"])
        result = validate_chain(env, [receipt], time_provider=clock)
        assert not result.valid
        assert result.break_point.reason == "Missing required gates"
        assert result.errors[0].code == "missing_gates"

    def test_invalid_envelope_breaks_chain(self, make_envelope, clock):
        env = make_envelope().to_dict()
        env["risk_score"] = 500
        result = validate_chain(env, [], time_provider=clock)
        assert result.break_point.reason == "Envelope validation failed"

    def test_invalid_receipt_breaks_chain(self, make_envelope, clock):
        env = make_envelope()
        data = _receipt(env, clock).to_dict()
        data["executor_id"] = ""
        result = validate_chain(env, [data], time_provider=clock)
        assert result.break_point.reason == "Receipt validation failed"

    def test_receipt_before_envelope_is_warning(self, make_envelope, clock):
        env = make_envelope()
        data = _receipt(env, clock).to_dict()
        data["timestamp"] = "2026-01-01T11:59:00.000Z"
        result = validate_chain(env, [data], time_provider=clock)
        assert result.valid
        assert any(w.path == "timestamp" for w in result.warnings)
