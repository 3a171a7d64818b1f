"""
Standalone HTTP receiver for Evntaly webhook deliveries.

Applications that already run a web framework should call
``WebhookManager.process_webhook`` from their own route. This module is for
processes that have no HTTP server of their own.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Optional

from aiohttp import web

from evntaly.webhook.manager import WebhookManager

logger = logging.getLogger(__name__)


class WebhookServer:
    """
    aiohttp server that feeds deliveries into a WebhookManager.

    Verification and handler dispatch run in the loop's default executor,
    so blocking handlers do not stall other requests. Handlers must
    therefore be safe to call from a worker thread.

    Example:
        ```python
        import threading
        from evntaly.webhook import WebhookManager, WebhookServer

        webhooks = WebhookManager(secret="whsec_...")
        server = WebhookServer(webhooks, port=8787)
        threading.Thread(target=server.start_background, daemon=True).start()

        # Point Evntaly at http://your-server:8787/webhook
        ```
    """

    def __init__(
        self,
        manager: WebhookManager,
        port: int = 8787,
        host: str = "0.0.0.0",
        path: str = "/webhook",
    ):
        """
        Initialize the webhook server.

        Args:
            manager: Verifies and dispatches the deliveries
            port: Port to listen on (default: 8787)
            host: Host to bind to (default: 0.0.0.0)
            path: Route that accepts POST deliveries
        """
        self.manager = manager
        self.port = port
        self.host = host
        self.path = path
        self.runner: Optional[web.AppRunner] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def handle_webhook(self, request: web.Request) -> web.Response:
        """Verify and dispatch one delivery."""
        body = await request.read()
        loop = asyncio.get_running_loop()
        accepted = await loop.run_in_executor(
            None, functools.partial(self.manager.process_webhook, body, dict(request.headers))
        )

        if accepted:
            return web.json_response({"status": "accepted"})
        return web.json_response({"status": "rejected"}, status=401)

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post(self.path, self.handle_webhook)
        return app

    async def start_async(self) -> None:
        """Start serving on the running event loop."""
        self.runner = web.AppRunner(self.create_app())
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        logger.info("Webhook receiver listening on http://%s:%d%s", self.host, self.port, self.path)

    async def stop_async(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
            logger.info("Webhook receiver stopped")

    def start_background(self) -> None:
        """
        Run the server forever on a fresh event loop.

        Designed to be the target of a ``threading.Thread``.
        """
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        loop.run_until_complete(self.start_async())
        try:
            loop.run_forever()
        finally:
            loop.run_until_complete(self.stop_async())
            loop.close()

    def stop(self) -> None:
        """Stop a server started with start_background()."""
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._loop.stop)
