"""
Setup settings for Halcyon.

These are the knobs of the one-shot setup flow that are not stored in the
durable config record: the OAuth client identity, where the local callback
listener binds, how long to wait on the hub, and the parameters of the
long-lived token request. Values can be provided programmatically or read
from ``HALCYON_*`` environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigurationError

# Home Assistant issues long-lived tokens for ten years by default; we ask for one.
DEFAULT_TOKEN_LIFESPAN_DAYS = 365

DEFAULT_COMMAND_ID = 11


def _parse_timeout(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None:
        return default
    if raw.strip().lower() in ("", "none", "off"):
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number or 'none', got {raw!r}") from e


def _parse_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class SetupSettings:
    """
    Configuration for the Halcyon setup flow.

    Attributes:
        client_id: OAuth client id presented to the hub. Home Assistant
            requires the redirect URI to live on the same host.
        callback_host: Loopback address the callback listener binds to
        callback_port: Port the callback listener binds to
        callback_path: URL path of the redirect URI
        hub_scheme: "http" or "https"; selects ws:// or wss:// as well
        client_name: Client name attached to the long-lived token
        token_lifespan_days: Requested lifespan of the long-lived token
        command_id: Fixed id of the issue-token WebSocket command
        callback_timeout: Seconds to wait for the browser redirect (None waits forever)
        message_timeout: Seconds to wait for each WebSocket message (None waits forever)
        request_timeout: Seconds allowed for each HTTP request to the hub
    """

    client_id: str = "http://127.0.0.1:8000"
    callback_host: str = "127.0.0.1"
    callback_port: int = 8000
    callback_path: str = "/callback"
    hub_scheme: str = "http"
    client_name: str = "Halcyon"
    token_lifespan_days: int = DEFAULT_TOKEN_LIFESPAN_DAYS
    command_id: int = DEFAULT_COMMAND_ID
    callback_timeout: Optional[float] = 300
    message_timeout: Optional[float] = 30
    request_timeout: float = 30

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if not self.client_id:
            raise ConfigurationError("client_id cannot be empty")

        if not isinstance(self.callback_port, int) or not (
            0 <= self.callback_port <= 65535
        ):
            raise ConfigurationError(
                f"callback_port must be between 0 and 65535, got {self.callback_port}"
            )

        if not self.callback_path.startswith("/"):
            raise ConfigurationError(
                f"callback_path must start with '/', got {self.callback_path!r}"
            )

        if self.hub_scheme not in ("http", "https"):
            raise ConfigurationError(
                f"hub_scheme must be 'http' or 'https', got {self.hub_scheme!r}"
            )

        if self.token_lifespan_days < 1:
            raise ConfigurationError("token_lifespan_days must be at least 1")

        for name in ("callback_timeout", "message_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} must be positive or None")

        if self.request_timeout is None or self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")

    @property
    def redirect_uri(self) -> str:
        """
        Redirect URI handed to the hub's authorize endpoint.

        Returns:
            Local callback URL (e.g., http://127.0.0.1:8000/callback)
        """
        return f"http://{self.callback_host}:{self.callback_port}{self.callback_path}"

    @property
    def ws_scheme(self) -> str:
        return "wss" if self.hub_scheme == "https" else "ws"

    @classmethod
    def from_env(cls) -> "SetupSettings":
        """
        Load settings from environment variables, falling back to defaults.

        Optional environment variables:
            HALCYON_CLIENT_ID: OAuth client id
            HALCYON_CALLBACK_HOST: Callback bind address (default: 127.0.0.1)
            HALCYON_CALLBACK_PORT: Callback bind port (default: 8000)
            HALCYON_HUB_SCHEME: http or https (default: http)
            HALCYON_CLIENT_NAME: Long-lived token client name (default: Halcyon)
            HALCYON_TOKEN_LIFESPAN_DAYS: Long-lived token lifespan (default: 365)
            HALCYON_CALLBACK_TIMEOUT: Seconds, or "none" to wait forever (default: 300)
            HALCYON_MESSAGE_TIMEOUT: Seconds, or "none" to wait forever (default: 30)
            HALCYON_REQUEST_TIMEOUT: Seconds (default: 30)

        Returns:
            SetupSettings instance

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        callback_host = os.environ.get("HALCYON_CALLBACK_HOST", "127.0.0.1")
        callback_port = _parse_int("HALCYON_CALLBACK_PORT", 8000)
        client_id = os.environ.get(
            "HALCYON_CLIENT_ID", f"http://{callback_host}:{callback_port}"
        )

        return cls(
            client_id=client_id,
            callback_host=callback_host,
            callback_port=callback_port,
            hub_scheme=os.environ.get("HALCYON_HUB_SCHEME", "http"),
            client_name=os.environ.get("HALCYON_CLIENT_NAME", "Halcyon"),
            token_lifespan_days=_parse_int(
                "HALCYON_TOKEN_LIFESPAN_DAYS", DEFAULT_TOKEN_LIFESPAN_DAYS
            ),
            callback_timeout=_parse_timeout("HALCYON_CALLBACK_TIMEOUT", 300),
            message_timeout=_parse_timeout("HALCYON_MESSAGE_TIMEOUT", 30),
            request_timeout=_parse_timeout("HALCYON_REQUEST_TIMEOUT", 30),
        )
