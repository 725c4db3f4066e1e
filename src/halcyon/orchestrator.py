"""
Setup orchestration for Halcyon.

Runs the one-shot setup sequence against the hub:

1. Load the config record
2. Ensure a device id (local only)
3. Ensure a long-lived token: browser authorization -> code exchange ->
   WebSocket upgrade, only if none is stored yet
4. Ensure the device is registered and its webhook id is stored

Each acquired field is written to the config file before the next step
starts, and a field that is already present is never fetched again, so
rerunning setup after a failure resumes where it stopped.
"""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from . import config_store
from .callback_server import (
    AuthorizationSession,
    await_authorization_code,
    build_authorize_url,
    print_authorize_instructions,
)
from .config_store import ConfigRecord
from .device_info import (
    DeviceInfo,
    DeviceRegistration,
    current_sensor_states,
    default_sensors,
)
from .exceptions import ConfigIOError
from .hub_api import HubClient
from .negotiator import LongLivedTokenNegotiator
from .settings import SetupSettings
from .token_exchange import TokenExchangeClient
from .tokens import LongLivedToken

logger = logging.getLogger(__name__)


class SetupOrchestrator:
    """
    Sequences the setup steps for one config file.

    Example:
        orchestrator = SetupOrchestrator(SetupSettings.from_env())
        record = orchestrator.run_setup("config.yml")
    """

    def __init__(
        self,
        settings: Optional[SetupSettings] = None,
        exchange: Optional[TokenExchangeClient] = None,
        negotiator: Optional[LongLivedTokenNegotiator] = None,
        device_info: Optional[DeviceInfo] = None,
        announce: Optional[Callable[[str], None]] = None,
        open_browser: bool = False,
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Setup settings (loads from environment if not provided)
            exchange: Token endpoint client (built from settings if not provided)
            negotiator: WebSocket negotiator (built from settings if not provided)
            device_info: Platform details (collected if not provided)
            announce: Shows the authorize URL to the user
            open_browser: Whether the default announce opens a browser
        """
        self.settings = settings or SetupSettings.from_env()
        self.exchange = exchange or TokenExchangeClient(
            scheme=self.settings.hub_scheme, timeout=self.settings.request_timeout
        )
        self.negotiator = negotiator or LongLivedTokenNegotiator(
            scheme=self.settings.ws_scheme,
            client_name=self.settings.client_name,
            lifespan_days=self.settings.token_lifespan_days,
            command_id=self.settings.command_id,
            message_timeout=self.settings.message_timeout,
        )
        self.device_info = device_info or DeviceInfo.collect()
        self.announce = announce or (
            lambda url: print_authorize_instructions(url, open_browser=open_browser)
        )

    def run_setup(self, config_path: Union[str, Path]) -> ConfigRecord:
        """
        Run the full setup sequence.

        Args:
            config_path: Path to the YAML config file

        Returns:
            The final config record

        Raises:
            HalcyonError: The first failure of any step; later steps are not attempted
        """
        logger.info(f"Starting setup with config {config_path}")
        record = config_store.load(config_path)
        record = config_store.ensure_device_id(record, config_path)

        if record.long_lived_token is None:
            logger.info("No long-lived token in config, starting authorization")
            token = self.acquire_long_lived_token(record.host)
            record = config_store.ensure_long_lived_token(record, config_path, token)
        else:
            logger.info("Long-lived token already present")

        record = self.ensure_registered(record, config_path)
        logger.info("Setup complete")
        return record

    def acquire_long_lived_token(self, host: str) -> str:
        """
        Obtain a long-lived token through browser authorization.

        Args:
            host: Hub address

        Returns:
            Long-lived token
        """
        session = AuthorizationSession(
            client_id=self.settings.client_id,
            redirect_uri=self.settings.redirect_uri,
        )
        authorize_url = build_authorize_url(host, session, scheme=self.settings.hub_scheme)

        code = await_authorization_code(
            (self.settings.callback_host, self.settings.callback_port),
            authorize_url,
            timeout=self.settings.callback_timeout,
            announce=self.announce,
        )
        short_lived = self.exchange.exchange_code(host, code, session.client_id)
        return self.negotiator.negotiate(host, short_lived.access_token)

    def hub_client(self, record: ConfigRecord) -> HubClient:
        return HubClient(
            record.host,
            LongLivedToken(record.long_lived_token),
            scheme=self.settings.hub_scheme,
            timeout=self.settings.request_timeout,
        )

    def ensure_registered(self, record: ConfigRecord, config_path: Union[str, Path]) -> ConfigRecord:
        """
        Register this machine with the hub unless it is already known.

        A device is considered registered when the hub has an entity whose
        friendly name is this machine's node name.
        """
        hub = self.hub_client(record)
        name = self.device_info.node_name

        if hub.find_device_state(name) is not None:
            logger.info(f"Device {name} is already registered on the hub")
            if record.webhook_id is None:
                logger.warning(
                    f"Device {name} is registered on the hub but no webhook-id is "
                    f"stored; sensor reports will fail until the device is removed "
                    f"from the hub and setup is run again"
                )
            return record

        registration = DeviceRegistration.for_device(record.device_id, self.device_info)
        response = hub.register_device(registration)
        record = config_store.ensure_webhook_id(record, config_path, response.webhook_id)
        logger.info(f"Registered device {name}")

        for sensor in default_sensors(record.device_id, self.device_info):
            hub.register_sensor(record.webhook_id, sensor)
        logger.info("Registered sensors")
        return record

    def report_sensors(self, config_path: Union[str, Path]) -> None:
        """
        Push the current sensor values once.

        Raises:
            ConfigIOError: If setup has not stored a token and webhook id yet
        """
        record = config_store.load(config_path)
        if not record.long_lived_token or not record.webhook_id or not record.device_id:
            raise ConfigIOError(
                f"Config {config_path} is missing a long-lived token, device id or "
                f"webhook id; run setup first"
            )

        hub = self.hub_client(record)
        hub.update_sensor_states(
            record.webhook_id, current_sensor_states(record.device_id, self.device_info)
        )
