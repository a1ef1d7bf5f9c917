"""
Tests for the Action Sanitizer.
"""

import re

import pytest

from absgate.security.action_sanitizer import (
    BUILTIN_RULES,
    ActionSanitizer,
    SanitizationResult,
    SanitizeRule,
)


class TestSqlRule:

    def test_unscoped_delete(self, sanitizer):
        result = sanitizer.try_sanitize("db:query", {"query": "DELETE FROM users"})
        assert result.sanitized_action == "DELETE FROM users LIMIT 1"
        assert result.requires_confirmation
        assert result.reason == "Destructive operation without WHERE clause"
        assert result.rule_name == "sql-add-limit"

    def test_unscoped_update(self, sanitizer):
        result = sanitizer.try_sanitize("db:execute", {"query": "UPDATE users SET active = 0"})
        assert result.sanitized_action == "UPDATE users SET active = 0 LIMIT 1"
        assert result.requires_confirmation

    def test_unbounded_select(self, sanitizer):
        result = sanitizer.try_sanitize("db:query", {"query": "SELECT * FROM users"})
        assert result.sanitized_action == "SELECT * FROM users LIMIT 100"
        assert not result.requires_confirmation
        assert result.original_action == "SELECT * FROM users"

    @pytest.mark.parametrize("query", [
        "DELETE FROM users WHERE id = 1",
        "SELECT * FROM users LIMIT 10",
        "INSERT INTO users VALUES (1)",
    ])
    def test_scoped_queries_untouched(self, sanitizer, query):
        assert sanitizer.try_sanitize("db:query", {"query": query}) is None

    def test_other_event_types_ignored(self, sanitizer):
        assert sanitizer.try_sanitize("db:migrate", {"query": "DELETE FROM users"}) is None


class TestShellRule:

    @pytest.mark.parametrize("command,expected", [
        ("rm -rf /tmp/build", "rm -i /tmp/build"),
        ("rm -fr /tmp/build", "rm -i /tmp/build"),
        ("rm -r -f /tmp/build", "rm -i /tmp/build"),
        ("rm /tmp/build -rf", "rm /tmp/build -i"),
    ])
    def test_recursive_force_becomes_interactive(self, sanitizer, command, expected):
        result = sanitizer.try_sanitize("shell:execute", {"command": command})
        assert result.sanitized_action == expected
        assert result.requires_confirmation

    def test_plain_rm_untouched(self, sanitizer):
        assert sanitizer.try_sanitize("shell:run", {"command": "rm notes.txt"}) is None

    def test_similar_flags_untouched(self, sanitizer):
        assert sanitizer.try_sanitize("shell:run", {"command": "rm --from-file list.txt"}) is None


class TestSecretRedaction:

    def test_api_key_redacted(self, sanitizer):
        content = "config loaded api_key=abcdefghijklmnopqrstuvwxyz"
        result = sanitizer.try_sanitize("log:write", {"content": content})
        assert "abcdefghijklmnopqrstuvwxyz" not in result.sanitized_action
        assert "API_KEY=[REDACTED]" in result.sanitized_action
        assert result.original_action == "[content with secrets]"
        assert not result.requires_confirmation

    def test_github_token_in_message(self, sanitizer):
        token = "ghp_" + "a" * 36
        result = sanitizer.try_sanitize("response:send", {"message": f"token is {token}"})
        assert result.sanitized_action == "token is ghp_[REDACTED]"

    def test_clean_output_untouched(self, sanitizer):
        assert sanitizer.try_sanitize("output:print", {"content": "hello"}) is None


class TestSanitizer:

    def test_missing_payload(self, sanitizer):
        assert sanitizer.try_sanitize("db:query", None) is None

    def test_custom_rule_runs_after_builtins(self):
        rule = SanitizeRule(
            name="strip-cc",
            event_type="email:send",
            check=lambda payload: "cc" in payload,
            sanitize=lambda payload: SanitizationResult(
                can_sanitize=True,
                original_action=str(payload["cc"]),
                sanitized_action="",
                changes=["Removed CC recipients"],
            ),
        )
        sanitizer = ActionSanitizer()
        sanitizer.add_rule(rule)
        result = sanitizer.try_sanitize("email:send", {"cc": "all@example.com"})
        assert result.rule_name == "strip-cc"
        assert sanitizer.get_rules()[:len(BUILTIN_RULES)] == BUILTIN_RULES

    def test_rule_that_declines_falls_through(self):
        declines = SanitizeRule(
            name="declines",
            event_type=re.compile(r"^db:"),
            check=lambda payload: True,
            sanitize=lambda payload: SanitizationResult(False, "", ""),
        )
        sanitizer = ActionSanitizer(custom_rules=[declines])
        assert sanitizer.try_sanitize("db:vacuum", {"query": "VACUUM"}) is None
