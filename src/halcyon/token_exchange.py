"""
Token endpoint client for Halcyon setup.

Exchanges an authorization code (from the browser redirect) for a
short-lived access/refresh token pair, and refreshes that pair when a
caller holds on to it long enough for the access token to expire.
No retries: any failure is surfaced to the caller.
"""

import logging
from typing import Optional

import requests

from .exceptions import DecodeError, NetworkError, ProviderError
from .tokens import ShortLivedToken

logger = logging.getLogger(__name__)


class TokenExchangeClient:
    """
    Client for the hub's ``/auth/token`` endpoint.

    Example:
        client = TokenExchangeClient(timeout=30)
        token = client.exchange_code("hub.local:8123", code, "http://127.0.0.1:8000")
    """

    def __init__(self, scheme: str = "http", timeout: float = 30):
        """
        Initialize token exchange client.

        Args:
            scheme: "http" or "https" for the hub URL
            timeout: Seconds allowed for each request
        """
        self.scheme = scheme
        self.timeout = timeout

    def token_url(self, hub_host: str) -> str:
        return f"{self.scheme}://{hub_host}/auth/token"

    def exchange_code(self, hub_host: str, code: str, client_id: str) -> ShortLivedToken:
        """
        Exchange an authorization code for an access/refresh token pair.

        Args:
            hub_host: Hub address (host[:port])
            code: Authorization code from the callback
            client_id: OAuth client id used for the authorization

        Returns:
            ShortLivedToken with access and refresh tokens

        Raises:
            ProviderError: If the hub rejects the code
            NetworkError: If the request fails
            DecodeError: If the response body is not what we expect
        """
        logger.info("Exchanging authorization code for tokens")
        data = self._post(
            hub_host,
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": client_id,
            },
        )

        try:
            token = ShortLivedToken(
                access_token=data["access_token"],
                refresh_token=data["refresh_token"],
                expires_in=int(data["expires_in"]),
                token_type=data.get("token_type", "Bearer"),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Invalid response from token endpoint: {e}")
            raise DecodeError(f"Invalid response from token endpoint: missing or bad {e}") from e

        logger.info(f"Obtained access token (expires in {token.expires_in}s)")
        return token

    def refresh(self, hub_host: str, refresh_token: str, client_id: str) -> ShortLivedToken:
        """
        Obtain a new access token using a refresh token.

        The hub does not rotate refresh tokens, so the one passed in is
        carried over to the returned token.

        Raises:
            ProviderError: If the hub rejects the refresh token
            NetworkError: If the request fails
            DecodeError: If the response body is not what we expect
        """
        logger.info("Refreshing access token")
        data = self._post(
            hub_host,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": client_id,
            },
        )

        try:
            return ShortLivedToken(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token", refresh_token),
                expires_in=int(data["expires_in"]),
                token_type=data.get("token_type", "Bearer"),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Invalid response from token endpoint: {e}")
            raise DecodeError(f"Invalid response from token endpoint: missing or bad {e}") from e

    def _post(self, hub_host: str, form: dict) -> dict:
        url = self.token_url(hub_host)
        try:
            response = requests.post(
                url,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data=form,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Network error calling token endpoint: {e}")
            raise NetworkError(f"Network error calling token endpoint {url}: {e}") from e

        if response.status_code != 200:
            logger.error(f"Token endpoint returned {response.status_code}: {response.text}")
            raise self._provider_error(response)

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Token endpoint returned invalid JSON: {e}")
            raise DecodeError(f"Token endpoint returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise DecodeError("Token endpoint returned a non-object JSON body")
        return data

    @staticmethod
    def _provider_error(response: requests.Response) -> Exception:
        try:
            body = response.json()
        except ValueError as e:
            return DecodeError(
                f"Token endpoint returned status {response.status_code} "
                f"with an undecodable body: {e}"
            )

        error: Optional[str] = body.get("error") if isinstance(body, dict) else None
        if not error:
            return DecodeError(
                f"Token endpoint returned status {response.status_code} "
                f"without an error code"
            )
        return ProviderError(error, body.get("error_description", ""))
