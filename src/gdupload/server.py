"""
Local OAuth redirect listener for gdupload.

Runs a throwaway HTTP server on localhost that receives the browser redirect
after the user grants access, and hands the authorization code to the
waiting caller through a Future.
"""

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from gdupload.exceptions import AuthTimeoutError, ConfigurationError, RemoteAPIError

logger = logging.getLogger(__name__)

SUCCESS_PAGE = b"<h1>Access token received</h1><p>You can close this window.</p>"
FAILURE_PAGE = b"<h1>Authorization failed</h1><p>Return to the terminal for details.</p>"


def _make_handler(future: "Future[str]") -> Any:
    class CallbackHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            params = parse_qs(urlparse(self.path).query)
            code = params.get("code", [""])[0]
            error = params.get("error", [""])[0]

            if future.done():
                self._respond(409, b"<h1>Authorization already handled</h1>")
                return

            if code:
                future.set_result(code)
                self._respond(200, SUCCESS_PAGE)
            elif error:
                future.set_exception(
                    RemoteAPIError("authorize access", ValueError(f"authorization denied: {error}"))
                )
                self._respond(400, FAILURE_PAGE)
            else:
                # Favicon requests and the like; keep waiting for the redirect
                self._respond(404, b"")

        def _respond(self, status: int, body: bytes) -> None:
            self.send_response(status)
            self.send_header("Content-Type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: Any) -> None:
            logger.debug("callback server: " + format, *args)

    return CallbackHandler


class AccessTokenServer:
    """
    HTTP listener that captures the ``code`` query parameter of the redirect.

    Args:
        port: Port to listen on; 0 picks a free port (see ``port`` after
            ``start``).
        host: Interface to bind.
    """

    def __init__(self, port: int, host: str = "localhost") -> None:
        self.port = port
        self.host = host
        self._httpd: Optional[HTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "Future[str]":
        """Start listening in a background thread and return the code Future."""
        future: "Future[str]" = Future()
        try:
            self._httpd = HTTPServer((self.host, self.port), _make_handler(future))
        except OSError as e:
            raise ConfigurationError(f"listen on {self.host}:{self.port}", e) from e
        self.port = self._httpd.server_address[1]
        self._thread = threading.Thread(
            target=self._httpd.serve_forever, name="gdupload-auth-callback", daemon=True
        )
        self._thread.start()
        logger.debug("Waiting for OAuth redirect on %s:%d", self.host, self.port)
        return future

    def stop(self) -> None:
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def wait_for_code(self, timeout: float) -> str:
        """
        Serve until an authorization code arrives or ``timeout`` seconds pass.

        The server is always stopped before returning.

        Raises:
            AuthTimeoutError: If no redirect arrived in time.
            RemoteAPIError: If the redirect reported an authorization error.
        """
        future = self.start()
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            future.cancel()
            raise AuthTimeoutError(
                f"wait for authorization code (no response within {timeout:g}s)", e
            ) from e
        finally:
            self.stop()
