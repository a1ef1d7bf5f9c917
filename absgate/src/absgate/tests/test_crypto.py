"""
Tests for cryptographic primitives and the time provider.
"""

from datetime import datetime, timedelta, timezone

import pytest

from absgate.core.clock import TimeProvider, format_timestamp, parse_timestamp
from absgate.core.crypto import (
    canonicalize_json,
    compute_hmac,
    generate_uuid,
    hash_data,
    hash_json,
    verify_hmac,
)

from conftest import FIXED_NOW


class TestHmac:
    """HMAC-SHA256 signing."""

    def test_sign_and_verify(self):
        """A MAC verifies under the same key and message."""
        mac = compute_hmac(b"hello", "secret")
        assert len(mac) == 64
        assert verify_hmac(b"hello", mac, "secret")

    def test_wrong_message_or_key_fails(self):
        mac = compute_hmac(b"hello", "secret")
        assert not verify_hmac(b"hello!", mac, "secret")
        assert not verify_hmac(b"hello", mac, "other-secret")

    def test_garbage_signature_fails(self):
        """Non-hex signatures are rejected rather than raising."""
        assert not verify_hmac(b"hello", "not-hex", "secret")
        assert not verify_hmac(b"hello", "", "secret")

    def test_bytes_and_str_keys_agree(self):
        assert compute_hmac(b"m", "key") == compute_hmac(b"m", b"key")


class TestHashing:
    """Hashing and canonical JSON."""

    def test_hash_prefix(self):
        assert hash_data(b"x").startswith("sha256:")

    def test_hash_json_ignores_key_order(self):
        assert hash_json({"b": 2, "a": 1}) == hash_json({"a": 1, "b": 2})

    def test_canonicalize_sorts_nested_keys(self):
        obj = {"z": 1, "a": {"y": 2, "b": 3}}
        assert canonicalize_json(obj) == '{"a":{"b":3,"y":2},"z":1}'

    def test_uuid_is_v4(self):
        value = generate_uuid()
        assert len(value) == 36
        assert value[14] == "4"


class TestTimestamps:
    """Wire timestamp format."""

    def test_format_has_millis_and_z(self):
        dt = datetime(2026, 1, 1, 0, 0, 0, 123456, tzinfo=timezone.utc)
        assert format_timestamp(dt) == "2026-01-01T00:00:00.123Z"

    def test_parse_accepts_z_and_offset(self):
        a = parse_timestamp("2026-01-01T00:00:00.000Z")
        b = parse_timestamp("2026-01-01T00:00:00+00:00")
        assert a == b
        assert a.tzinfo is not None

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")


class TestTimeProvider:
    """Mockable clock."""

    def test_mock_time(self, clock):
        assert clock.now() == FIXED_NOW
        assert clock.is_mocked
        assert clock.now_iso() == "2026-01-01T12:00:00.000Z"

    def test_advance(self, clock):
        clock.advance(timedelta(seconds=90))
        assert clock.now() == FIXED_NOW + timedelta(seconds=90)

    def test_skew(self, clock):
        past = FIXED_NOW - timedelta(seconds=10)
        assert clock.calculate_skew_ms(past) == 10_000
        assert clock.is_within_skew(past, 30_000)
        assert not clock.is_within_skew(past, 5_000)

    def test_valid_until_and_expiry(self, clock):
        valid_until = clock.valid_until(60)
        assert valid_until == "2026-01-01T12:01:00.000Z"
        assert not clock.is_expired(valid_until)
        clock.advance(timedelta(seconds=61))
        assert clock.is_expired(valid_until)

    def test_real_clock_when_unmocked(self):
        provider = TimeProvider()
        assert not provider.is_mocked
        assert provider.now().tzinfo is not None
