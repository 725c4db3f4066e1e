"""
Halcyon: Home Assistant companion setup for Linux machines.

This package authenticates a machine against a Home Assistant hub and
stores the resulting durable credential:

- A one-shot local listener captures the OAuth authorization redirect
- The authorization code is exchanged for a short-lived token
- The short-lived token is upgraded to a long-lived token over the
  hub's WebSocket API
- The machine is registered as a device and its webhook id stored

Public API:
    SetupOrchestrator: Runs the setup sequence for a config file
    SetupSettings: Setup settings
    ConfigRecord: Persisted config record
    CallbackListener: One-shot authorization callback listener
    TokenExchangeClient: Token endpoint client
    LongLivedTokenNegotiator: WebSocket token negotiation
    HubClient: Device registration REST client

Exceptions:
    HalcyonError: Base exception
    ConfigurationError, ConfigIOError, BindError, MissingCodeError,
    TransportError, CallbackTimeoutError, ProviderError, NetworkError,
    DecodeError, ProtocolError, NegotiationTimeoutError,
    AuthRejectedError, RegistrationError
"""

__version__ = "0.1.0"

from .callback_server import (  # noqa: E402
    AuthorizationSession,
    CallbackListener,
    await_authorization_code,
    build_authorize_url,
)
from .config_store import ConfigRecord  # noqa: E402
from .exceptions import (  # noqa: E402
    AuthRejectedError,
    BindError,
    CallbackTimeoutError,
    ConfigIOError,
    ConfigurationError,
    DecodeError,
    HalcyonError,
    MissingCodeError,
    NegotiationTimeoutError,
    NetworkError,
    ProtocolError,
    ProviderError,
    RegistrationError,
    TransportError,
)
from .hub_api import HubClient  # noqa: E402
from .negotiator import LongLivedTokenNegotiator  # noqa: E402
from .orchestrator import SetupOrchestrator  # noqa: E402
from .settings import SetupSettings  # noqa: E402
from .token_exchange import TokenExchangeClient  # noqa: E402
from .tokens import LongLivedToken, ShortLivedToken  # noqa: E402

__all__ = [
    "__version__",
    # Orchestration
    "SetupOrchestrator",
    "SetupSettings",
    # Config
    "ConfigRecord",
    # Callback
    "AuthorizationSession",
    "CallbackListener",
    "await_authorization_code",
    "build_authorize_url",
    # Tokens
    "TokenExchangeClient",
    "LongLivedTokenNegotiator",
    "ShortLivedToken",
    "LongLivedToken",
    # Registration
    "HubClient",
    # Exceptions
    "HalcyonError",
    "ConfigurationError",
    "ConfigIOError",
    "BindError",
    "MissingCodeError",
    "TransportError",
    "CallbackTimeoutError",
    "ProviderError",
    "NetworkError",
    "DecodeError",
    "ProtocolError",
    "NegotiationTimeoutError",
    "AuthRejectedError",
    "RegistrationError",
]
