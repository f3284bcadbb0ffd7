"""
Hosted payment page for a terminal client.

The gateway's checkout script only runs in a browser, so open() serves a
small page embedding it from a loopback FastAPI app, points the customer's
browser at it, and waits for the page to post back the signed callback or
the dismissal.
"""

import asyncio
import html
import json
import socket
import webbrowser
from typing import Callable, Optional

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from checkout.errors import GatewayError, GatewayUnavailable
from checkout.gateway import CheckoutOptions
from storage.models import PaymentAuthorization
from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

PAGE_TEMPLATE = """<!doctype html>
<html>
<head>
  <meta charset="utf-8">
  <title>{title}</title>
  <script src="{script_url}"></script>
</head>
<body>
  <p id="status">Opening the payment window...</p>
  <script>
    const options = {options};
    const report = (path, body) => fetch(path, {{
      method: "POST",
      headers: {{"Content-Type": "application/json"}},
      body: JSON.stringify(body || {{}}),
    }}).then(() => {{
      document.getElementById("status").textContent =
        "You can close this tab and return to the store.";
    }});
    options.handler = (response) => report("/callback", response);
    options.modal = Object.assign({{}}, options.modal, {{
      ondismiss: () => report("/dismiss"),
    }});
    new Razorpay(options).open();
  </script>
</body>
</html>
"""


class GatewayCallback(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class HostedCheckout:
    """Default checkout SDK: the gateway's own page, opened in the browser."""

    def __init__(
        self,
        script_url: str = config.GATEWAY_SCRIPT_URL,
        host: str = config.GATEWAY_CALLBACK_HOST,
        port: int = config.GATEWAY_CALLBACK_PORT,
        timeout: float = config.GATEWAY_TIMEOUT,
        open_browser: Callable[[str], bool] = webbrowser.open,
    ):
        self.script_url = script_url
        self.host = host
        self.port = port
        self.timeout = timeout
        self.open_browser = open_browser

    @property
    def page_url(self) -> str:
        return f"http://{self.host}:{self.port}/"

    async def load(self) -> None:
        """Make sure the gateway script is reachable before offering to pay."""
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(self.script_url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise GatewayUnavailable(
                f"Could not load {self.script_url}: {e}",
                user_message="Payment system is still loading. Please try again in a moment.",
            ) from e

    def build_app(self, options: CheckoutOptions, outcome: asyncio.Future) -> FastAPI:
        app = FastAPI(title="Hosted checkout", docs_url=None, redoc_url=None, openapi_url=None)
        page = PAGE_TEMPLATE.format(
            title=html.escape(options.name),
            script_url=html.escape(self.script_url, quote=True),
            options=json.dumps(options.to_sdk()),
        )

        @app.get("/", response_class=HTMLResponse)
        async def checkout_page():
            return page

        @app.post("/callback")
        async def callback(body: GatewayCallback):
            if not outcome.done():
                outcome.set_result(
                    PaymentAuthorization(
                        gateway_order_id=body.razorpay_order_id,
                        payment_id=body.razorpay_payment_id,
                        signature=body.razorpay_signature,
                    )
                )
            return {"success": True}

        @app.post("/dismiss")
        async def dismiss():
            if not outcome.done():
                outcome.set_result(None)
            return {"success": True}

        return app

    async def open(self, options: CheckoutOptions) -> Optional[PaymentAuthorization]:
        # bind up front so a busy port is an ordinary gateway failure
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise GatewayError(f"Could not serve the payment page on {self.page_url}: {e}") from e

        outcome: asyncio.Future = asyncio.get_running_loop().create_future()
        server = uvicorn.Server(
            uvicorn.Config(
                self.build_app(options, outcome),
                log_level="warning",
                lifespan="off",
            )
        )
        serving = asyncio.create_task(server.serve(sockets=[sock]))
        try:
            while not server.started:
                if serving.done():
                    raise GatewayError(f"Could not serve the payment page on {self.page_url}")
                await asyncio.sleep(0.05)

            _logger.info(f"Payment page ready at {self.page_url}")
            if not self.open_browser(self.page_url):
                _logger.warning(f"No browser available, open {self.page_url} manually")

            try:
                return await asyncio.wait_for(outcome, timeout=self.timeout)
            except asyncio.TimeoutError:
                _logger.info("Payment page timed out, treating it as dismissed")
                return None
        finally:
            server.should_exit = True
            await serving
            sock.close()
