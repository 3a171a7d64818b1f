"""Authenticate inbound webhook deliveries and route them to handlers."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Mapping, Optional

from pydantic import ValidationError

from evntaly.registry import WILDCARD, HandlerRegistry
from evntaly.webhook.models import VerificationResult, WebhookPayload
from evntaly.webhook.verifier import Payload, WebhookVerifier

logger = logging.getLogger(__name__)

# Handlers receive the parsed payload and its event type
WebhookHandler = Callable[[dict[str, Any], str], None]


class WebhookManager:
    """
    Verify signed webhook deliveries and dispatch them by event type.

    Example:
        ```python
        from evntaly.webhook import WebhookManager

        webhooks = WebhookManager(secret="whsec_...")

        @webhooks.on("event.created")
        def handle_created(payload, event_type):
            print(payload["data"])

        # In your web framework's request handler:
        ok = webhooks.process_webhook(request.body, request.headers)
        ```
    """

    def __init__(self, secret: str) -> None:
        """
        Initialize the webhook manager.

        Args:
            secret: Shared secret used to validate signatures

        Raises:
            ConfigurationError: If the secret is empty
        """
        self.verifier = WebhookVerifier(secret)
        self.handlers: HandlerRegistry[WebhookHandler] = HandlerRegistry()

    def register_handler(self, event: str, handler: WebhookHandler) -> WebhookManager:
        """Register a handler for an event type, or ``"*"`` for every type."""
        self.handlers.register(event, handler)
        return self

    def on(self, event: str = WILDCARD) -> Callable[[WebhookHandler], WebhookHandler]:
        """Decorator form of register_handler()."""

        def decorator(handler: WebhookHandler) -> WebhookHandler:
            self.register_handler(event, handler)
            return handler

        return decorator

    def get_registered_handlers(self) -> dict[str, list[WebhookHandler]]:
        return self.handlers.as_dict()

    def verify(
        self, payload: Payload, headers: Mapping[str, Any], now: Optional[int] = None
    ) -> VerificationResult:
        return self.verifier.verify(payload, headers, now=now)

    def process_webhook(
        self, payload: Payload, headers: Mapping[str, Any], now: Optional[int] = None
    ) -> bool:
        """
        Verify a delivery and run the matching handlers.

        Handlers for the payload's ``event`` run first, then wildcard
        handlers, each with ``(payload_dict, event_type)``. A handler that
        raises is logged and skipped; it does not stop the others or change
        the return value.

        Args:
            payload: Raw request body
            headers: Request headers
            now: Current Unix time (defaults to the system clock)

        Returns:
            True if the signature is valid and the payload names an event
        """
        result = self.verifier.verify(payload, headers, now=now)
        if not result.valid:
            logger.info("Rejected webhook delivery: %s", result.status.value)
            return False

        try:
            data = json.loads(payload)
            parsed = WebhookPayload.model_validate(data)
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
            logger.info("Rejected webhook delivery: invalid payload (%s)", e)
            return False

        event_type = parsed.event
        handlers = self.handlers.handlers_for(event_type)
        if not handlers:
            logger.debug("No handlers registered for webhook event %s", event_type)
            return True

        for handler in handlers:
            try:
                handler(data, event_type)
            except Exception:
                logger.exception(
                    "Webhook handler %s failed for event %s",
                    getattr(handler, "__name__", repr(handler)),
                    event_type,
                )

        return True
