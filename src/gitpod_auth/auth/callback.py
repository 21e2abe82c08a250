"""Loopback HTTP receiver for the OAuth2 redirect.

Outside an editor there is no custom-scheme URI handler to catch
``vscode://.../complete-gitpod-auth``. The CLI instead registers
``http://127.0.0.1:<port>/complete-gitpod-auth`` as redirect URI and runs a
:class:`CallbackReceiver` on that port. The receiver serves requests on a
worker thread until the redirect arrives, then hands the authorization code
back to the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from gitpod_auth.exceptions import AuthError

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/complete-gitpod-auth"

_POLL_INTERVAL = 0.25


class CallbackReceiver:
    """Single-use local HTTP server waiting for the authorization redirect.

    Args:
        host: Interface to bind. Only loopback addresses make sense here.
        port: Port to bind; ``0`` picks a free one.
        timeout: Seconds :meth:`wait` blocks before giving up.

    Example::

        with CallbackReceiver() as receiver:
            flow = AuthorizationFlow(config, store, open_url, redirect_uri=receiver.redirect_uri)
            code = await receiver.wait()
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0, timeout: float = 300.0) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout
        self._server: Optional[HTTPServer] = None
        self._stopped = threading.Event()
        self._serving = False
        self._result: dict[str, Optional[str]] = {"code": None, "error": None}

    @property
    def port(self) -> int:
        if self._server is None:
            raise AuthError("Callback receiver is not running")
        return self._server.server_address[1]

    @property
    def redirect_uri(self) -> str:
        return f"http://{self._host}:{self.port}{CALLBACK_PATH}"

    def start(self) -> CallbackReceiver:
        if self._server is not None:
            return self
        result = self._result

        class CallbackHandler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                parsed = urlparse(self.path)
                if parsed.path != CALLBACK_PATH:
                    self.send_error(404)
                    return
                params = parse_qs(parsed.query)

                if "error" in params:
                    result["error"] = params["error"][0]
                    error_desc = params.get("error_description", [""])[0]
                    body = f"Authorization failed: {result['error']}"
                    if error_desc:
                        body += f" - {error_desc}"
                elif "code" in params:
                    result["code"] = params["code"][0]
                    body = (
                        "You are signed in to Gitpod. You can close this window "
                        "and return to the terminal."
                    )
                else:
                    result["error"] = "no_code"
                    body = "No authorization code received."

                self.send_response(200)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.end_headers()
                self.wfile.write(
                    f"<html><body><h2>{body}</h2></body></html>".encode("utf-8")
                )

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("Callback request: " + format, *args)

        self._server = HTTPServer((self._host, self._port), CallbackHandler)
        self._server.timeout = _POLL_INTERVAL
        logger.debug("Listening for the redirect on %s", self.redirect_uri)
        return self

    async def wait(self) -> str:
        """Block (off the event loop) until the redirect arrives.

        Returns:
            The authorization code.

        Raises:
            AuthError: If the redirect carries an error or no code, or if
                nothing arrives within the timeout.
        """
        self.start()
        self._serving = True
        try:
            await asyncio.to_thread(self._serve)
        finally:
            self.close()

        if self._result["error"]:
            raise AuthError(f"OAuth2 authorization failed: {self._result['error']}")
        if not self._result["code"]:
            raise AuthError("No authorization code received from callback")
        return self._result["code"]

    def close(self) -> None:
        """Stop serving. A running :meth:`wait` returns within one poll interval."""
        self._stopped.set()
        if not self._serving:
            self._shutdown()

    def _shutdown(self) -> None:
        server, self._server = self._server, None
        if server is not None:
            server.server_close()

    def _serve(self) -> None:
        server = self._server
        assert server is not None
        deadline = time.monotonic() + self._timeout
        try:
            while not self._stopped.is_set() and time.monotonic() < deadline:
                server.handle_request()
                if self._result["code"] or self._result["error"]:
                    return
        finally:
            self._serving = False
            self._shutdown()

    def __enter__(self) -> CallbackReceiver:
        return self.start()

    def __exit__(self, *args: object) -> None:
        self.close()
