"""Tests for the setup orchestrator."""

import logging
from pathlib import Path
from unittest import mock

import pytest

from src.halcyon import config_store
from src.halcyon.config_store import ConfigRecord
from src.halcyon.device_info import DeviceInfo
from src.halcyon.exceptions import (
    AuthRejectedError,
    ConfigIOError,
    MissingCodeError,
    ProviderError,
)
from src.halcyon.hub_api import DeviceRegistrationResponse
from src.halcyon.orchestrator import SetupOrchestrator
from src.halcyon.settings import SetupSettings
from src.halcyon.tokens import LongLivedToken, ShortLivedToken


@pytest.fixture
def fresh_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yml"
    path.write_text("ha:\n  host: hub.local:8123\n")
    return path


@pytest.fixture
def full_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yml"
    config_store.save(
        ConfigRecord(
            host="hub.local:8123",
            device_id="device-1",
            long_lived_token="llt-1",
            webhook_id="hook-1",
        ),
        path,
    )
    return path


@pytest.fixture
def device_info() -> DeviceInfo:
    return DeviceInfo("workstation", "x86_64", "Linux", "#1 SMP", "6.1.0")


@pytest.fixture
def orchestrator(device_info) -> SetupOrchestrator:
    exchange = mock.Mock()
    exchange.exchange_code.return_value = ShortLivedToken("short-access", "refresh", 1800)
    negotiator = mock.Mock()
    negotiator.negotiate.return_value = "llt-new"
    return SetupOrchestrator(
        settings=SetupSettings(),
        exchange=exchange,
        negotiator=negotiator,
        device_info=device_info,
        announce=mock.Mock(),
    )


class TestRunSetup:
    """Tests for SetupOrchestrator.run_setup."""

    @mock.patch("src.halcyon.orchestrator.HubClient")
    @mock.patch("src.halcyon.orchestrator.await_authorization_code")
    def test_fresh_config_runs_every_step(
        self, mock_await, mock_hub_class, orchestrator, fresh_config
    ):
        mock_await.return_value = "code-1"
        hub = mock_hub_class.return_value
        hub.find_device_state.return_value = None
        hub.register_device.return_value = DeviceRegistrationResponse(webhook_id="hook-new")

        record = orchestrator.run_setup(fresh_config)

        mock_await.assert_called_once()
        bind_address, authorize_url = mock_await.call_args[0]
        assert bind_address == ("127.0.0.1", 8000)
        assert authorize_url == (
            "http://hub.local:8123/auth/authorize"
            "?client_id=http%3A%2F%2F127.0.0.1%3A8000"
            "&redirect_uri=http%3A%2F%2F127.0.0.1%3A8000%2Fcallback"
        )
        assert mock_await.call_args[1]["timeout"] == 300
        assert mock_await.call_args[1]["announce"] is orchestrator.announce

        orchestrator.exchange.exchange_code.assert_called_once_with(
            "hub.local:8123", "code-1", "http://127.0.0.1:8000"
        )
        orchestrator.negotiator.negotiate.assert_called_once_with(
            "hub.local:8123", "short-access"
        )
        mock_hub_class.assert_called_once_with(
            "hub.local:8123", LongLivedToken("llt-new"), scheme="http", timeout=30
        )
        assert hub.register_sensor.call_count == 2

        assert record.long_lived_token == "llt-new"
        assert record.webhook_id == "hook-new"
        assert config_store.load(fresh_config) == record

    @mock.patch("src.halcyon.orchestrator.HubClient")
    @mock.patch("src.halcyon.orchestrator.await_authorization_code")
    def test_populated_config_skips_authorization(
        self, mock_await, mock_hub_class, orchestrator, full_config
    ):
        """A fully populated record opens no listener or connection and writes nothing."""
        mock_hub_class.return_value.find_device_state.return_value = {"entity_id": "x"}

        with mock.patch.object(config_store, "save") as mock_save:
            record = orchestrator.run_setup(full_config)

        mock_await.assert_not_called()
        orchestrator.exchange.exchange_code.assert_not_called()
        orchestrator.negotiator.negotiate.assert_not_called()
        mock_hub_class.return_value.register_device.assert_not_called()
        mock_save.assert_not_called()
        assert record.long_lived_token == "llt-1"

    @mock.patch("src.halcyon.orchestrator.HubClient")
    def test_registered_device_without_webhook_id_warns(
        self, mock_hub_class, orchestrator, tmp_path, caplog
    ):
        """A device known to the hub but with no stored webhook id is reported."""
        path = tmp_path / "config.yml"
        config_store.save(
            ConfigRecord(host="hub.local:8123", device_id="device-1", long_lived_token="llt-1"),
            path,
        )
        mock_hub_class.return_value.find_device_state.return_value = {"entity_id": "x"}

        with caplog.at_level(logging.WARNING, logger="src.halcyon.orchestrator"):
            record = orchestrator.run_setup(path)

        assert record.webhook_id is None
        mock_hub_class.return_value.register_device.assert_not_called()
        assert "no webhook-id is stored" in caplog.text

    @mock.patch("src.halcyon.orchestrator.HubClient")
    @mock.patch("src.halcyon.orchestrator.await_authorization_code")
    def test_second_run_is_idempotent(
        self, mock_await, mock_hub_class, orchestrator, fresh_config
    ):
        mock_await.return_value = "code-1"
        hub = mock_hub_class.return_value
        hub.find_device_state.return_value = None
        hub.register_device.return_value = DeviceRegistrationResponse(webhook_id="hook-new")
        first = orchestrator.run_setup(fresh_config)

        hub.find_device_state.return_value = {"entity_id": "device_tracker.workstation"}
        second = orchestrator.run_setup(fresh_config)

        assert mock_await.call_count == 1
        assert orchestrator.negotiator.negotiate.call_count == 1
        assert second == first

    @mock.patch("src.halcyon.orchestrator.HubClient")
    @mock.patch("src.halcyon.orchestrator.await_authorization_code")
    def test_callback_failure_stops_flow(
        self, mock_await, mock_hub_class, orchestrator, fresh_config
    ):
        mock_await.side_effect = MissingCodeError("no code")

        with pytest.raises(MissingCodeError):
            orchestrator.run_setup(fresh_config)

        orchestrator.exchange.exchange_code.assert_not_called()
        mock_hub_class.assert_not_called()
        saved = config_store.load(fresh_config)
        assert saved.device_id is not None
        assert saved.long_lived_token is None

    @mock.patch("src.halcyon.orchestrator.HubClient")
    @mock.patch("src.halcyon.orchestrator.await_authorization_code")
    def test_exchange_failure_stops_flow(
        self, mock_await, mock_hub_class, orchestrator, fresh_config
    ):
        mock_await.return_value = "code-1"
        orchestrator.exchange.exchange_code.side_effect = ProviderError(
            "invalid_request", "Invalid code"
        )

        with pytest.raises(ProviderError, match="Invalid code"):
            orchestrator.run_setup(fresh_config)

        orchestrator.negotiator.negotiate.assert_not_called()
        mock_hub_class.assert_not_called()

    @mock.patch("src.halcyon.orchestrator.HubClient")
    @mock.patch("src.halcyon.orchestrator.await_authorization_code")
    def test_negotiation_failure_persists_nothing(
        self, mock_await, mock_hub_class, orchestrator, fresh_config
    ):
        mock_await.return_value = "code-1"
        orchestrator.negotiator.negotiate.side_effect = AuthRejectedError("denied")

        with pytest.raises(AuthRejectedError):
            orchestrator.run_setup(fresh_config)

        assert config_store.load(fresh_config).long_lived_token is None
        mock_hub_class.assert_not_called()

    def test_missing_config_fails_before_network(self, orchestrator, tmp_path):
        with mock.patch("src.halcyon.orchestrator.await_authorization_code") as mock_await:
            with pytest.raises(ConfigIOError):
                orchestrator.run_setup(tmp_path / "missing.yml")

        mock_await.assert_not_called()

    @mock.patch("src.halcyon.orchestrator.HubClient")
    def test_existing_webhook_id_is_kept(self, mock_hub_class, orchestrator, full_config):
        """Re-registering never overwrites a stored webhook id."""
        hub = mock_hub_class.return_value
        hub.find_device_state.return_value = None
        hub.register_device.return_value = DeviceRegistrationResponse(webhook_id="hook-other")

        record = orchestrator.run_setup(full_config)

        assert record.webhook_id == "hook-1"
        for call in hub.register_sensor.call_args_list:
            assert call[0][0] == "hook-1"


class TestReportSensors:
    """Tests for SetupOrchestrator.report_sensors."""

    @mock.patch("src.halcyon.orchestrator.HubClient")
    def test_report_pushes_states(self, mock_hub_class, orchestrator, full_config):
        orchestrator.report_sensors(full_config)

        hub = mock_hub_class.return_value
        hub.update_sensor_states.assert_called_once()
        webhook_id, updates = hub.update_sensor_states.call_args[0]
        assert webhook_id == "hook-1"
        assert all(update.unique_id.startswith("device-1_") for update in updates)

    def test_report_requires_setup(self, orchestrator, fresh_config):
        with pytest.raises(ConfigIOError, match="run setup first"):
            orchestrator.report_sensors(fresh_config)
