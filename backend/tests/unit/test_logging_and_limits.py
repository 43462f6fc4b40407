"""Tests for log context, redaction and the login rate limiter."""
import json
import logging

from procurement.core.logging import (
    ContextFilter,
    JsonFormatter,
    RedactionFilter,
    redact_string,
    reset_actor_id,
    reset_request_id,
    set_actor_id,
    set_request_id,
)
from procurement.core.rate_limit import SlidingWindowRateLimiter


def _record(msg, args=None) -> logging.LogRecord:
    return logging.LogRecord("procurement.test", logging.INFO, __file__, 1, msg, args, None)


class TestRedaction:
    """Tests for secret scrubbing in log records."""

    def test_bearer_tokens_are_masked(self):
        assert redact_string("Authorization: Bearer abc.def.ghi") == "Authorization: Bearer [REDACTED]"

    def test_emails_are_masked(self):
        assert redact_string("login for alice@example.com") == "login for a***@example.com"

    def test_sensitive_keys_are_masked(self):
        record = _record({"password": "hunter2", "username": "alice"})

        RedactionFilter(["password"]).filter(record)

        assert record.msg == {"password": "[REDACTED]", "username": "alice"}

    def test_args_are_scrubbed(self):
        record = _record("Login failed for email=%s", ("bob@example.com",))

        RedactionFilter([]).filter(record)

        assert record.getMessage() == "Login failed for email=b***@example.com"


class TestContext:
    """Tests for request and actor context on records."""

    def test_defaults(self):
        record = _record("hello")
        ContextFilter().filter(record)
        assert record.request_id == "-"
        assert record.actor_id == "-"

    def test_json_lines_carry_context(self):
        request_token = set_request_id("req-123")
        actor_token = set_actor_id("USR-0007")
        try:
            record = _record("Permission %s approved", ("PERM-0001",))
            ContextFilter().filter(record)
            payload = json.loads(JsonFormatter().format(record))
        finally:
            reset_actor_id(actor_token)
            reset_request_id(request_token)

        assert payload["request_id"] == "req-123"
        assert payload["actor_id"] == "USR-0007"
        assert payload["message"] == "Permission PERM-0001 approved"
        assert payload["level"] == "INFO"


class TestSlidingWindowRateLimiter:
    """Tests for the in-process limiter."""

    def test_blocks_after_limit_until_window_passes(self):
        clock = [100.0]
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=10, clock=lambda: clock[0])

        assert limiter.evaluate("k").allowed
        assert limiter.evaluate("k").allowed
        blocked = limiter.evaluate("k")
        assert not blocked.allowed
        assert blocked.retry_after_seconds == 10

        clock[0] += 10.5
        assert limiter.evaluate("k").allowed

    def test_keys_are_independent(self):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
        assert limiter.evaluate("a").allowed
        assert limiter.evaluate("b").allowed
        assert not limiter.evaluate("a").allowed

    def test_forget_clears_history(self):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
        limiter.evaluate("a")
        limiter.forget("a")
        assert limiter.evaluate("a").allowed
