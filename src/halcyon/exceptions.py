"""
Exception classes for the Halcyon device setup flow.

Every failure in the setup sequence is surfaced as one of these classes.
The message names the phase that failed and, for errors reported by the
hub, carries the hub-supplied text so an operator can fix the cause and
rerun setup.
"""

from typing import Optional


class HalcyonError(Exception):
    """Base exception for all Halcyon setup errors."""

    pass


class ConfigurationError(HalcyonError):
    """Invalid setup settings (bad port, negative timeout, etc.)."""

    pass


class ConfigIOError(HalcyonError):
    """Config file could not be opened, parsed or written."""

    pass


class BindError(HalcyonError):
    """Local callback listener could not bind its address."""

    pass


class MissingCodeError(HalcyonError):
    """Authorization callback arrived without a ``code`` parameter."""

    pass


class TransportError(HalcyonError):
    """Local callback listener failed while waiting for the redirect."""

    pass


class CallbackTimeoutError(TransportError):
    """No authorization callback arrived within the configured wait."""

    pass


class ProviderError(HalcyonError):
    """
    Token endpoint rejected the request.

    Attributes:
        error: OAuth error code returned by the hub
        description: Human-readable description returned by the hub
    """

    def __init__(self, error: str, description: str = ""):
        self.error = error
        self.description = description
        message = f"Token exchange rejected by hub: {error}"
        if description:
            message += f" ({description})"
        super().__init__(message)


class NetworkError(HalcyonError):
    """Request to the hub failed at the transport level."""

    pass


class DecodeError(HalcyonError):
    """Hub response body could not be decoded."""

    pass


class ProtocolError(HalcyonError):
    """Unexpected, malformed or failed message during token negotiation."""

    pass


class NegotiationTimeoutError(ProtocolError):
    """Hub went silent during token negotiation."""

    pass


class AuthRejectedError(HalcyonError):
    """
    Hub rejected the access token on the WebSocket connection.

    Attributes:
        message: Rejection message sent by the hub
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(
            f"Hub rejected WebSocket authorization: {message or 'no reason given'} "
            f"(a long-lived token may already have been issued for this client name)"
        )


class RegistrationError(HalcyonError):
    """
    Device or sensor registration request failed.

    Attributes:
        status_code: HTTP status returned by the hub, if any
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
