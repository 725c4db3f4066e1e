"""
Bearer credentials used against the hub.

A credential is one of two kinds:

- ShortLivedToken: OAuth access token plus refresh token, from the token
  endpoint. Expires after ``expires_in`` seconds and is never persisted.
- LongLivedToken: durable token issued over the WebSocket API and stored
  in the config file. Never expires from our point of view.

``Token`` is the union of the two; ``needs_refresh`` and ``bearer_value``
dispatch on the kind.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Union


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ShortLivedToken:
    """
    OAuth token pair returned by the token endpoint.

    Attributes:
        access_token: Short-lived access token for API calls
        refresh_token: Token for obtaining new access tokens
        expires_in: Access token lifetime in seconds from issue time
        token_type: Token type (typically "Bearer")
        issued_at: When the token was received (timezone-aware UTC)
    """

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"
    issued_at: datetime = field(default_factory=_utcnow)

    @property
    def expires_at(self) -> datetime:
        """Datetime when the access token expires."""
        return self.issued_at + timedelta(seconds=self.expires_in)

    def expires_within(self, seconds: int) -> bool:
        """
        Check if the access token expires within the given seconds.

        Args:
            seconds: Number of seconds to check

        Returns:
            True if the token will expire within the specified time
        """
        return _utcnow() + timedelta(seconds=seconds) >= self.expires_at

    def __repr__(self) -> str:
        return (
            f"ShortLivedToken(token_type={self.token_type!r}, "
            f"expires_in={self.expires_in}, issued_at={self.issued_at.isoformat()!r})"
        )


@dataclass(frozen=True)
class LongLivedToken:
    """Durable bearer token issued by the hub."""

    token: str

    def __repr__(self) -> str:
        return "LongLivedToken(token=<redacted>)"


Token = Union[ShortLivedToken, LongLivedToken]


def needs_refresh(token: Token, buffer_seconds: int = 10) -> bool:
    """
    Check whether a token must be refreshed before use.

    Args:
        token: Credential to check
        buffer_seconds: Refresh this many seconds before expiry

    Returns:
        True for a short-lived token expiring within the buffer, False otherwise
    """
    if isinstance(token, LongLivedToken):
        return False
    if isinstance(token, ShortLivedToken):
        return token.expires_within(buffer_seconds)
    raise TypeError(f"Unknown token kind: {type(token).__name__}")


def bearer_value(token: Token) -> str:
    """Return the string to send in the Authorization: Bearer header."""
    if isinstance(token, LongLivedToken):
        return token.token
    if isinstance(token, ShortLivedToken):
        return token.access_token
    raise TypeError(f"Unknown token kind: {type(token).__name__}")
