"""
One-shot OAuth callback listener for Halcyon setup.

During setup the user authorizes Halcyon in a browser on the hub's
authorize page. The hub then redirects the browser to a local URL carrying
an authorization code. This module binds that local address, serves exactly
one request, extracts the code and releases the port.

The listener is single-use: bind, handle one request, close. It is not a
long-running server and must not be reused across setup runs.
"""

import logging
import socket
import sys
import time
import webbrowser
from dataclasses import dataclass
from typing import Callable, Optional, Tuple
from urllib.parse import quote, urlencode
from wsgiref.simple_server import WSGIRequestHandler, make_server

from flask import Flask, Response, request

from .exceptions import (
    BindError,
    CallbackTimeoutError,
    MissingCodeError,
    TransportError,
)

logger = logging.getLogger(__name__)

SUCCESS_PAGE = """<html>
<head><title>Halcyon Authorized</title></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px;">
    <h1 style="color: #4caf50;">Halcyon is now authenticated to Home Assistant</h1>
    <p style="margin-top: 30px; color: #666;">You can close this page now and return to the terminal.</p>
</body>
</html>"""

FAILURE_PAGE = """<html>
<head><title>Halcyon Authorization Failed</title></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px;">
    <h1 style="color: #d32f2f;">Something went wrong authenticating Halcyon with Home Assistant</h1>
    <p>No authorization code was received.</p>
    <p style="margin-top: 30px; color: #666;">You can close this page and rerun setup.</p>
</body>
</html>"""


@dataclass(frozen=True)
class AuthorizationSession:
    """
    Parameters of one browser authorization.

    Attributes:
        client_id: OAuth client id presented to the hub
        redirect_uri: Local callback URL the hub redirects to
    """

    client_id: str
    redirect_uri: str


def build_authorize_url(hub_host: str, session: AuthorizationSession, scheme: str = "http") -> str:
    """
    Build the browser-facing authorize URL.

    ``:`` and ``/`` inside the parameter values are percent-encoded along
    with the other reserved characters.

    Args:
        hub_host: Hub address (host[:port])
        session: Client id and redirect URI for this authorization
        scheme: "http" or "https"

    Returns:
        Authorize URL, e.g.
        http://hub:8123/auth/authorize?client_id=http%3A%2F%2F127.0.0.1%3A8000&redirect_uri=...
    """
    params = {"client_id": session.client_id, "redirect_uri": session.redirect_uri}
    query = urlencode(params, quote_via=quote, safe="")
    url = f"{scheme}://{hub_host}/auth/authorize?{query}"
    logger.debug(f"Generated authorization URL: {url}")
    return url


def print_authorize_instructions(authorize_url: str, open_browser: bool = False) -> None:
    """Show the authorize URL to the user, optionally opening a browser."""
    print("\n" + "=" * 70)
    print("HOME ASSISTANT AUTHORIZATION")
    print("=" * 70)
    print("\nOpen the following URL in your browser and log in:")
    print(f"\n  {authorize_url}\n")

    if open_browser:
        try:
            webbrowser.open(authorize_url)
        except webbrowser.Error as e:
            logger.warning(f"Could not open browser automatically: {e}")
            print("Could not open a browser, please copy the URL above.")

    print("Waiting for authorization...")
    print("=" * 70 + "\n")


class _QuietRequestHandler(WSGIRequestHandler):
    """Route wsgiref access logs to our logger and bound reads by the wait deadline."""

    def setup(self) -> None:
        deadline = getattr(self.server, "deadline", None)
        if deadline is not None:
            self.timeout = max(deadline - time.monotonic(), 0.01)
        super().setup()

    def log_message(self, format: str, *args) -> None:
        logger.debug("Callback request: " + format % args)


class CallbackListener:
    """
    Single-request HTTP listener that captures the authorization code.

    Usage:
        listener = CallbackListener("127.0.0.1", 8000, timeout=300)
        code = listener.listen_once(authorize_url, announce=print)
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 8000, timeout: Optional[float] = None):
        """
        Initialize callback listener.

        Args:
            host: Address to bind
            port: Port to bind (0 picks a free port)
            timeout: Seconds to wait for the callback, None to wait forever
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self.bound_port: Optional[int] = None
        self.code: Optional[str] = None

        self._used = False
        self._missing_detail: Optional[str] = None
        self._timed_out = False
        self._transport_error: Optional[str] = None

        self.app = Flask(__name__)
        self.app.logger.setLevel(logging.WARNING)
        self.app.add_url_rule(
            "/", "oauth_callback", self._handle_callback, methods=["GET", "POST"]
        )
        self.app.add_url_rule(
            "/<path:path>", "oauth_callback_path", self._handle_callback, methods=["GET", "POST"]
        )

    def _handle_callback(self, path: str = "") -> Response:
        """Handle the authorization redirect."""
        logger.info("Received authorization callback")

        code = request.args.get("code")
        if not code:
            error = request.args.get("error")
            if error:
                description = request.args.get("error_description", "")
                self._missing_detail = f"hub returned error '{error}' {description}".strip()
            else:
                self._missing_detail = "no 'code' query parameter in callback"
            logger.error(f"Authorization callback without code: {self._missing_detail}")
            return Response(FAILURE_PAGE, status=500, content_type="text/html")

        self.code = code
        logger.info("Authorization code received")
        return Response(SUCCESS_PAGE, status=200, content_type="text/html")

    def _on_timeout(self) -> None:
        self._timed_out = True

    def _on_error(self, request_socket, client_address) -> None:
        if isinstance(sys.exc_info()[1], socket.timeout):
            logger.warning(f"Callback connection from {client_address} sent no request in time")
            self._timed_out = True
            return
        logger.exception(f"Error while handling callback from {client_address}")
        self._transport_error = f"error while handling callback from {client_address}"

    def listen_once(
        self,
        authorize_url: str,
        announce: Optional[Callable[[str], None]] = None,
    ) -> str:
        """
        Bind, announce the authorize URL, serve one request and release the port.

        Args:
            authorize_url: URL the user must open to authorize
            announce: Called with authorize_url once the port is bound

        Returns:
            Authorization code from the callback

        Raises:
            BindError: If the address cannot be bound
            MissingCodeError: If the callback carries no code
            CallbackTimeoutError: If no request arrives within the timeout
            TransportError: If the listener fails while waiting
        """
        if self._used:
            raise RuntimeError("CallbackListener is single-use; create a new one")
        self._used = True

        try:
            server = make_server(
                self.host, self.port, self.app, handler_class=_QuietRequestHandler
            )
        except OSError as e:
            logger.error(f"Could not bind callback listener on {self.host}:{self.port}: {e}")
            raise BindError(
                f"Could not start callback listener on {self.host}:{self.port}: {e}"
            ) from e

        try:
            self.bound_port = server.server_port
            server.timeout = self.timeout
            server.deadline = None
            server.handle_timeout = self._on_timeout
            server.handle_error = self._on_error
            logger.info(f"Callback listener bound on {self.host}:{self.bound_port}")

            if announce is not None:
                announce(authorize_url)

            # handle_request only bounds the accept; the deadline also bounds the read
            if self.timeout is not None:
                server.deadline = time.monotonic() + self.timeout
            try:
                server.handle_request()
            except OSError as e:
                logger.error(f"Callback listener failed: {e}")
                raise TransportError(f"Callback listener failed while waiting: {e}") from e
        finally:
            server.server_close()
            logger.debug(f"Callback listener on {self.host}:{self.bound_port} released")

        if self._timed_out:
            raise CallbackTimeoutError(
                f"No authorization callback received within {self.timeout} seconds. "
                f"Please complete the authorization in your browser and rerun setup."
            )
        if self._transport_error:
            raise TransportError(f"Callback listener failed: {self._transport_error}")
        if self.code:
            return self.code
        if self._missing_detail:
            raise MissingCodeError(f"Authorization callback failed: {self._missing_detail}")
        raise TransportError("Callback listener stopped without receiving a request")


def await_authorization_code(
    bind_address: Tuple[str, int],
    authorize_url: str,
    timeout: Optional[float] = None,
    announce: Optional[Callable[[str], None]] = None,
) -> str:
    """
    Wait for one authorization redirect on a fresh listener.

    Args:
        bind_address: (host, port) to bind
        authorize_url: URL the user must open to authorize
        timeout: Seconds to wait, None to wait forever
        announce: Called with authorize_url once the port is bound

    Returns:
        Authorization code
    """
    host, port = bind_address
    listener = CallbackListener(host, port, timeout=timeout)
    return listener.listen_once(authorize_url, announce=announce)
