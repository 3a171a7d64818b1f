"""Signed webhook verification and dispatch."""

from evntaly.webhook.manager import WebhookHandler, WebhookManager
from evntaly.webhook.models import VerificationResult, VerificationStatus, WebhookPayload
from evntaly.webhook.server import WebhookServer
from evntaly.webhook.verifier import (
    REPLAY_WINDOW_SECONDS,
    SIGNATURE_HEADER,
    WebhookVerifier,
    compute_signature,
    sign,
)

__all__ = [
    "WebhookManager",
    "WebhookHandler",
    "WebhookPayload",
    "WebhookServer",
    "WebhookVerifier",
    "VerificationResult",
    "VerificationStatus",
    "REPLAY_WINDOW_SECONDS",
    "SIGNATURE_HEADER",
    "compute_signature",
    "sign",
]
