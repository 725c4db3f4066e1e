"""
REST client for the hub's device registration and webhook APIs.

Used after the credential has been acquired: checks whether this machine
is already known to the hub, registers it as a mobile_app device, and
registers/updates its sensors through the device webhook.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

import requests

from .device_info import DeviceRegistration, SensorRegistration, SensorUpdate
from .exceptions import DecodeError, NetworkError, RegistrationError
from .token_exchange import TokenExchangeClient
from .tokens import ShortLivedToken, Token, bearer_value, needs_refresh

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceRegistrationResponse:
    """
    Hub reply to a device registration.

    Attributes:
        webhook_id: Webhook id for this device
        cloudhook_url: Cloud webhook URL, if the hub has one
        remote_ui_url: Remote UI URL, if the hub has one
        secret: Encryption secret, if encryption is enabled
    """

    webhook_id: str
    cloudhook_url: Optional[str] = None
    remote_ui_url: Optional[str] = None
    secret: Optional[str] = None


class HubClient:
    """
    Client for the hub REST API, authenticated with a bearer token.

    A short-lived token close to expiry is refreshed before each request
    when a TokenExchangeClient and client id are provided.
    """

    def __init__(
        self,
        host: str,
        token: Token,
        scheme: str = "http",
        timeout: float = 30,
        client_id: Optional[str] = None,
        exchange: Optional[TokenExchangeClient] = None,
    ):
        self.host = host
        self.token = token
        self.scheme = scheme
        self.timeout = timeout
        self.client_id = client_id
        self.exchange = exchange

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}"

    def _headers(self) -> dict:
        if needs_refresh(self.token):
            self._refresh()
        return {"Authorization": f"Bearer {bearer_value(self.token)}"}

    def _refresh(self) -> None:
        if not isinstance(self.token, ShortLivedToken):
            raise RegistrationError("Tried to refresh a long-lived access token")
        if self.exchange is None or self.client_id is None:
            raise RegistrationError("Access token expired and no refresh client configured")
        self.token = self.exchange.refresh(self.host, self.token.refresh_token, self.client_id)

    def _decode(self, response: requests.Response, what: str) -> Any:
        if response.status_code >= 400:
            logger.error(f"{what} failed: {response.status_code} - {response.text}")
            raise RegistrationError(
                f"{what} failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{what} returned invalid JSON: {e}")
            raise DecodeError(f"{what} returned invalid JSON: {e}") from e

    def _get(self, path: str, what: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = requests.get(url, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Network error during {what}: {e}")
            raise NetworkError(f"Network error during {what}: {e}") from e
        return self._decode(response, what)

    def _post(self, path: str, body: dict, what: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = requests.post(
                url, headers=self._headers(), json=body, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Network error during {what}: {e}")
            raise NetworkError(f"Network error during {what}: {e}") from e
        return self._decode(response, what)

    def get_states(self) -> List[dict]:
        """
        Fetch all entity states.

        Returns:
            List of state objects as returned by GET /api/states
        """
        states = self._get("/api/states", "State query")
        if not isinstance(states, list):
            raise DecodeError("State query returned a non-list body")
        return states

    def find_device_state(self, friendly_name: str) -> Optional[dict]:
        """Return the first state whose friendly_name matches, if any."""
        for state in self.get_states():
            attributes = state.get("attributes") or {}
            if attributes.get("friendly_name") == friendly_name:
                return state
        return None

    def register_device(self, registration: DeviceRegistration) -> DeviceRegistrationResponse:
        """
        Register this machine as a mobile_app device.

        Raises:
            RegistrationError: If the hub rejects the registration
            NetworkError: If the request fails
            DecodeError: If the response has no webhook id
        """
        logger.info(f"Registering device {registration.device_name}")
        data = self._post(
            "/api/mobile_app/registrations", registration.to_dict(), "Device registration"
        )
        if not isinstance(data, dict) or not data.get("webhook_id"):
            raise DecodeError("Device registration response has no webhook_id")

        return DeviceRegistrationResponse(
            webhook_id=data["webhook_id"],
            cloudhook_url=data.get("cloudhook_url"),
            remote_ui_url=data.get("remote_ui_url"),
            secret=data.get("secret"),
        )

    def register_sensor(self, webhook_id: str, sensor: SensorRegistration) -> Any:
        logger.info(f"Registering sensor {sensor.unique_id}")
        return self._post(
            f"/api/webhook/{webhook_id}",
            {"type": "register_sensor", "data": sensor.to_dict()},
            "Sensor registration",
        )

    def update_sensor_states(self, webhook_id: str, updates: List[SensorUpdate]) -> Any:
        logger.info(f"Updating {len(updates)} sensor state(s)")
        return self._post(
            f"/api/webhook/{webhook_id}",
            {"type": "update_sensor_states", "data": [update.to_dict() for update in updates]},
            "Sensor update",
        )
