"""HMAC signature verification for webhook deliveries.

Deliveries carry a header of the form::

    X-Evntaly-Signature: t=1706351400,v1=5f2b...e9

where ``v1`` is the lowercase hex HMAC-SHA256 of ``"<t>.<raw body>"`` keyed
with the shared webhook secret. Deliveries whose timestamp is more than five
minutes away from the local clock are rejected to prevent replays.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from typing import Any, Mapping, Optional, Union

from evntaly.core.clock import unix_time
from evntaly.errors import ConfigurationError
from evntaly.webhook.models import VerificationResult, VerificationStatus

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Evntaly-Signature"

# Maximum allowed distance between the signed timestamp and now, in seconds
REPLAY_WINDOW_SECONDS = 300

# Bounded so int() never sees an oversized timestamp; v1 is a hex SHA-256 digest
_SIGNATURE_PATTERN = re.compile(r"t=([0-9]{1,15}),v1=([a-f0-9]{64})")

Payload = Union[bytes, str]


def _as_bytes(payload: Payload) -> bytes:
    return payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)


def compute_signature(secret: str, timestamp: int, payload: Payload) -> str:
    """Hex HMAC-SHA256 of ``"<timestamp>.<payload>"`` keyed with ``secret``."""
    message = f"{timestamp}.".encode("utf-8") + _as_bytes(payload)
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign(secret: str, payload: Payload, timestamp: Optional[int] = None) -> str:
    """
    Build a signature header value for ``payload``.

    Example:
        >>> header = sign("whsec", b'{"event": "ping"}', timestamp=1700000000)
        >>> header.startswith("t=1700000000,v1=")
        True
    """
    ts = unix_time() if timestamp is None else timestamp
    return f"t={ts},v1={compute_signature(secret, ts, payload)}"


def find_header(headers: Mapping[str, Any], name: str) -> Optional[str]:
    """Look up a header case-insensitively.

    Frameworks that expose multi-valued headers as lists are supported;
    the first value wins.
    """
    wanted = name.lower()
    for key, value in headers.items():
        if str(key).lower() != wanted:
            continue
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        return str(value) if value is not None else None
    return None


class WebhookVerifier:
    """Checks delivery signatures against a shared secret."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ConfigurationError("Webhook secret cannot be empty")
        self._secret = secret

    def verify(
        self,
        payload: Payload,
        headers: Mapping[str, Any],
        now: Optional[int] = None,
    ) -> VerificationResult:
        """
        Verify a delivery.

        Args:
            payload: Raw request body, exactly as received
            headers: Request headers (any case)
            now: Current Unix time (defaults to the system clock)

        Returns:
            VerificationResult; truthy only when the signature is valid
        """
        header = find_header(headers, SIGNATURE_HEADER)
        if not header:
            logger.debug("Webhook rejected: no %s header", SIGNATURE_HEADER)
            return VerificationResult(VerificationStatus.MISSING_SIGNATURE)

        match = _SIGNATURE_PATTERN.fullmatch(header.strip())
        if match is None:
            logger.debug("Webhook rejected: malformed signature header")
            return VerificationResult(VerificationStatus.MALFORMED_SIGNATURE)

        timestamp = int(match.group(1))
        signature = match.group(2)

        current = unix_time() if now is None else now
        if abs(current - timestamp) > REPLAY_WINDOW_SECONDS:
            logger.debug(
                "Webhook rejected: timestamp %d outside %ds window", timestamp, REPLAY_WINDOW_SECONDS
            )
            return VerificationResult(VerificationStatus.EXPIRED, timestamp)

        expected = compute_signature(self._secret, timestamp, payload)
        if not hmac.compare_digest(expected, signature):
            logger.debug("Webhook rejected: signature mismatch")
            return VerificationResult(VerificationStatus.SIGNATURE_MISMATCH, timestamp)

        return VerificationResult(VerificationStatus.VALID, timestamp)

    def sign(self, payload: Payload, timestamp: Optional[int] = None) -> str:
        return sign(self._secret, payload, timestamp)
