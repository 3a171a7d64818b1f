"""Tests for webhook verification and dispatch."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging

import pytest

from evntaly.errors import ConfigurationError
from evntaly.webhook import (
    REPLAY_WINDOW_SECONDS,
    SIGNATURE_HEADER,
    VerificationStatus,
    WebhookManager,
    WebhookVerifier,
    compute_signature,
    sign,
)
from evntaly.webhook.verifier import find_header

SECRET = "whsec_test"
NOW = 1_700_000_000


def body(event: str = "event.created", **extra) -> bytes:
    return json.dumps({"event": event, **extra}).encode()


def signed_headers(payload: bytes, timestamp: int = NOW, secret: str = SECRET) -> dict:
    return {SIGNATURE_HEADER: sign(secret, payload, timestamp=timestamp)}


@pytest.fixture
def manager():
    return WebhookManager(SECRET)


class TestSignature:
    def test_compute_signature_matches_hmac(self) -> None:
        """Test that the signature is HMAC-SHA256 over "<t>.<body>"."""
        payload = b'{"event":"ping"}'
        expected = hmac.new(
            SECRET.encode(), b"1700000000." + payload, hashlib.sha256
        ).hexdigest()
        assert compute_signature(SECRET, NOW, payload) == expected

    def test_str_and_bytes_payloads_agree(self) -> None:
        """Test that str payloads are signed as UTF-8."""
        assert compute_signature(SECRET, NOW, "héllo") == compute_signature(
            SECRET, NOW, "héllo".encode()
        )

    def test_sign_format(self) -> None:
        """Test the signature header format."""
        header = sign(SECRET, b"{}", timestamp=NOW)
        assert header == f"t={NOW},v1={compute_signature(SECRET, NOW, b'{}')}"


class TestFindHeader:
    def test_case_insensitive(self) -> None:
        """Test that header lookup ignores case."""
        assert find_header({"x-evntaly-signature": "v"}, SIGNATURE_HEADER) == "v"

    def test_list_values_take_first(self) -> None:
        """Test that the first of multiple values is used."""
        assert find_header({"X-Evntaly-Signature": ["a", "b"]}, SIGNATURE_HEADER) == "a"

    def test_missing(self) -> None:
        """Test that a missing header returns None."""
        assert find_header({"Content-Type": "json"}, SIGNATURE_HEADER) is None


class TestWebhookVerifier:
    """Tests for WebhookVerifier.verify()."""

    def test_empty_secret_rejected(self) -> None:
        """Test that an empty secret is rejected."""
        with pytest.raises(ConfigurationError):
            WebhookVerifier("")

    def test_valid_signature(self) -> None:
        """Test that a correctly signed delivery verifies."""
        payload = body()
        result = WebhookVerifier(SECRET).verify(payload, signed_headers(payload), now=NOW)
        assert result.valid
        assert result.status is VerificationStatus.VALID
        assert result.timestamp == NOW

    def test_window_boundary_is_inclusive(self) -> None:
        """Test that a delivery exactly 300 seconds old is accepted."""
        payload = body()
        headers = signed_headers(payload, timestamp=NOW - REPLAY_WINDOW_SECONDS)
        assert WebhookVerifier(SECRET).verify(payload, headers, now=NOW)

    def test_expired_timestamp(self) -> None:
        """Test that a delivery signed 301 seconds ago is rejected."""
        payload = body()
        headers = signed_headers(payload, timestamp=NOW - 301)
        result = WebhookVerifier(SECRET).verify(payload, headers, now=NOW)
        assert not result
        assert result.status is VerificationStatus.EXPIRED

    def test_future_timestamp(self) -> None:
        """Test that a timestamp too far in the future is rejected."""
        payload = body()
        headers = signed_headers(payload, timestamp=NOW + 301)
        result = WebhookVerifier(SECRET).verify(payload, headers, now=NOW)
        assert result.status is VerificationStatus.EXPIRED

    def test_mutated_payload(self) -> None:
        """Test that a modified body fails verification."""
        payload = body()
        headers = signed_headers(payload)
        tampered = payload.replace(b"created", b"deleted")
        result = WebhookVerifier(SECRET).verify(tampered, headers, now=NOW)
        assert result.status is VerificationStatus.SIGNATURE_MISMATCH

    def test_wrong_secret(self) -> None:
        """Test that a delivery signed with another secret fails."""
        payload = body()
        headers = signed_headers(payload, secret="other")
        result = WebhookVerifier(SECRET).verify(payload, headers, now=NOW)
        assert result.status is VerificationStatus.SIGNATURE_MISMATCH

    def test_missing_header(self) -> None:
        """Test that a delivery without a signature header fails."""
        result = WebhookVerifier(SECRET).verify(body(), {}, now=NOW)
        assert result.status is VerificationStatus.MISSING_SIGNATURE

    @pytest.mark.parametrize(
        "header",
        [
            "garbage",
            f"v1=abc,t={NOW}",
            f"t={NOW}",
            f"t={NOW},v1=ABCDEF",
            "t=-5,v1=abc",
            f"t={NOW},v1=abc,extra=1",
            f"t={NOW},v1=" + "a" * 63,
            "t=" + "1" * 5000 + ",v1=" + "a" * 64,
        ],
    )
    def test_malformed_header(self, header) -> None:
        """Test that malformed signature headers are rejected."""
        result = WebhookVerifier(SECRET).verify(body(), {SIGNATURE_HEADER: header}, now=NOW)
        assert result.status is VerificationStatus.MALFORMED_SIGNATURE

    def test_verifier_sign_round_trip(self) -> None:
        """Test that WebhookVerifier.sign() produces headers it accepts."""
        verifier = WebhookVerifier(SECRET)
        payload = body()
        header = verifier.sign(payload, timestamp=NOW)
        assert verifier.verify(payload, {SIGNATURE_HEADER: header}, now=NOW)


class TestWebhookManager:
    """Tests for WebhookManager.process_webhook()."""

    def test_dispatches_to_matching_handler(self, manager) -> None:
        """Test that a valid delivery reaches its handler."""
        received = []
        manager.register_handler("event.created", lambda data, t: received.append((data, t)))

        payload = body(data={"id": 1})
        assert manager.process_webhook(payload, signed_headers(payload), now=NOW) is True
        assert received == [({"event": "event.created", "data": {"id": 1}}, "event.created")]

    def test_specific_handlers_run_before_wildcard(self, manager) -> None:
        """Test that specific handlers run before wildcard handlers."""
        calls = []

        @manager.on()
        def wildcard(data, event_type):
            calls.append("wildcard")

        @manager.on("event.created")
        def specific(data, event_type):
            calls.append("specific")

        payload = body()
        manager.process_webhook(payload, signed_headers(payload), now=NOW)
        assert calls == ["specific", "wildcard"]

    def test_other_event_types_are_not_dispatched(self, manager) -> None:
        """Test that handlers for other event types are not called."""
        calls = []
        manager.register_handler("event.deleted", lambda d, t: calls.append(t))

        payload = body()
        assert manager.process_webhook(payload, signed_headers(payload), now=NOW) is True
        assert calls == []

    def test_no_handlers_still_accepted(self, manager) -> None:
        """Test that a valid delivery with no handlers is accepted."""
        payload = body()
        assert manager.process_webhook(payload, signed_headers(payload), now=NOW) is True

    def test_invalid_signature_skips_handlers(self, manager) -> None:
        """Test that handlers do not run for rejected deliveries."""
        calls = []
        manager.register_handler("*", lambda d, t: calls.append(t))

        payload = body()
        headers = signed_headers(payload, timestamp=NOW - 301)
        assert manager.process_webhook(payload, headers, now=NOW) is False
        assert calls == []

    def test_invalid_json(self, manager) -> None:
        """Test that a body that is not JSON is rejected."""
        payload = b"{not json"
        assert manager.process_webhook(payload, signed_headers(payload), now=NOW) is False

    def test_oversized_timestamp_rejected(self, manager) -> None:
        """Test that a header with a huge timestamp is rejected instead of raising."""
        calls = []
        manager.register_handler("*", lambda d, t: calls.append(t))

        headers = {SIGNATURE_HEADER: "t=" + "1" * 5000 + ",v1=" + "a" * 64}
        assert manager.process_webhook(body(), headers, now=NOW) is False
        assert calls == []

    def test_non_utf8_body(self, manager) -> None:
        """Test that a body that is not UTF-8 is rejected."""
        payload = b"\x80\x81abc"
        assert manager.process_webhook(payload, signed_headers(payload), now=NOW) is False

    @pytest.mark.parametrize(
        "payload",
        [b'{"data": {}}', b'{"event": 5}', b'["event"]', b'"event"'],
    )
    def test_missing_or_invalid_event(self, manager, payload) -> None:
        """Test that payloads without a string event are rejected."""
        assert manager.process_webhook(payload, signed_headers(payload), now=NOW) is False

    def test_handler_failure_is_isolated(self, manager, caplog) -> None:
        """Test that a raising handler does not stop the others."""
        calls = []

        def broken(data, event_type):
            raise RuntimeError("handler bug")

        manager.register_handler("event.created", broken)
        manager.register_handler("event.created", lambda d, t: calls.append("second"))
        manager.register_handler("*", lambda d, t: calls.append("wildcard"))

        payload = body()
        with caplog.at_level(logging.ERROR, logger="evntaly.webhook.manager"):
            assert manager.process_webhook(payload, signed_headers(payload), now=NOW) is True

        assert calls == ["second", "wildcard"]
        assert "handler bug" in caplog.text

    def test_str_payload(self, manager) -> None:
        """Test that str payloads are accepted."""
        payload = json.dumps({"event": "ping"})
        calls = []
        manager.register_handler("ping", lambda d, t: calls.append(t))
        assert manager.process_webhook(payload, signed_headers(payload.encode()), now=NOW)
        assert calls == ["ping"]

    def test_get_registered_handlers(self, manager) -> None:
        """Test the registered handler snapshot."""

        def handler(data, event_type):
            pass

        manager.register_handler("a", handler).register_handler("*", handler)
        assert manager.get_registered_handlers() == {"a": [handler], "*": [handler]}

    def test_verify(self, manager) -> None:
        """Test that verify() exposes the verification result."""
        payload = body()
        assert manager.verify(payload, signed_headers(payload), now=NOW).valid
