"""Tests for log redaction and correlation ids."""

from medicalink.logging import (
    _redact_sensitive,
    fingerprint,
    get_correlation_id,
    set_correlation_id,
)


class TestRedaction:
    def test_masks_credentials_and_email(self):
        event = _redact_sensitive(
            None,
            "info",
            {
                "event": "login_failed",
                "password": "hunter2hunter2",
                "access_token": "eyJhbGciOi.payload.sig",
                "email": "doctor@example.com",
                "user_id": "u-1",
            },
        )

        assert event["password"] == "hu***r2"
        assert event["access_token"].startswith("ey***")
        assert "doctor" not in event["email"]
        assert event["user_id"] == "u-1"
        assert event["event"] == "login_failed"

    def test_hashes_are_left_alone(self):
        digest = fingerprint("doctor@example.com")

        event = _redact_sensitive(None, "info", {"email_hash": digest})

        assert event["email_hash"] == digest

    def test_blacklist_cache_key_is_fingerprinted(self):
        token = "eyJhbGciOi.payload.sig"

        event = _redact_sensitive(None, "error", {"key": f"blacklist:{token}"})

        assert event["key"] == f"blacklist:{fingerprint(token)}"
        assert token not in event["key"]

    def test_session_cache_key_is_kept(self):
        event = _redact_sensitive(None, "error", {"key": "session:1700000000000-abc"})

        assert event["key"] == "session:1700000000000-abc"


class TestCorrelationId:
    def test_set_uses_given_id(self):
        assert set_correlation_id("req-1") == "req-1"
        assert get_correlation_id() == "req-1"

    def test_set_generates_id(self):
        cid = set_correlation_id()

        assert len(cid) == 36
        assert get_correlation_id() == cid
