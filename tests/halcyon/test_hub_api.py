"""Tests for the hub REST client and device metadata."""

from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
import requests

from src.halcyon import __version__
from src.halcyon.device_info import (
    DeviceInfo,
    DeviceRegistration,
    SensorRegistration,
    current_sensor_states,
    default_sensors,
)
from src.halcyon.exceptions import DecodeError, NetworkError, RegistrationError
from src.halcyon.hub_api import DeviceRegistrationResponse, HubClient
from src.halcyon.tokens import LongLivedToken, ShortLivedToken


def _response(status_code: int, body=None, content: bytes = b"{}") -> mock.Mock:
    response = mock.Mock()
    response.status_code = status_code
    response.content = content
    response.text = content.decode()
    response.json.return_value = body
    return response


@pytest.fixture
def device_info() -> DeviceInfo:
    return DeviceInfo(
        node_name="workstation",
        machine="x86_64",
        os_name="Linux",
        os_version="#1 SMP",
        os_release="6.1.0",
    )


@pytest.fixture
def client() -> HubClient:
    return HubClient("hub.local:8123", LongLivedToken("llt"))


class TestDeviceInfo:
    """Tests for device metadata helpers."""

    @mock.patch("platform.uname")
    def test_collect(self, mock_uname):
        mock_uname.return_value = mock.Mock(
            node="box", machine="aarch64", system="Linux", version="#5", release="6.6"
        )

        info = DeviceInfo.collect()

        assert info == DeviceInfo("box", "aarch64", "Linux", "#5", "6.6")

    def test_registration_for_device(self, device_info):
        registration = DeviceRegistration.for_device("device-1", device_info)
        data = registration.to_dict()

        assert data["device_id"] == "device-1"
        assert data["device_name"] == "workstation"
        assert data["model"] == "x86_64"
        assert data["app_name"] == "Halcyon"
        assert data["app_version"] == __version__
        assert data["manufacturer"] == "PC"
        assert data["supports_encryption"] is False

    def test_default_sensors_have_unique_ids(self, device_info):
        sensors = default_sensors("device-1", device_info)

        ids = [sensor.unique_id for sensor in sensors]
        assert len(ids) == len(set(ids))
        assert all(unique_id.startswith("device-1_") for unique_id in ids)

    def test_sensor_registration_omits_none(self):
        data = SensorRegistration("id", "Name", "on", "mdi:x").to_dict()

        assert "device_class" not in data
        assert "unit_of_measurement" not in data
        assert data["type"] == "sensor"

    def test_current_sensor_states_match_default_sensors(self, device_info):
        updates = current_sensor_states("device-1", device_info)
        sensors = default_sensors("device-1", device_info)

        assert [u.unique_id for u in updates] == [s.unique_id for s in sensors]


class TestHubClient:
    """Tests for HubClient."""

    @mock.patch("requests.get")
    def test_get_states_sends_bearer(self, mock_get, client):
        mock_get.return_value = _response(200, [{"entity_id": "sun.sun"}])

        states = client.get_states()

        assert states == [{"entity_id": "sun.sun"}]
        assert mock_get.call_args[0][0] == "http://hub.local:8123/api/states"
        assert mock_get.call_args[1]["headers"] == {"Authorization": "Bearer llt"}

    @mock.patch("requests.get")
    def test_find_device_state(self, mock_get, client):
        mock_get.return_value = _response(
            200,
            [
                {"entity_id": "sun.sun", "attributes": {"friendly_name": "Sun"}},
                {"entity_id": "device_tracker.ws", "attributes": {"friendly_name": "workstation"}},
            ],
        )

        assert client.find_device_state("workstation")["entity_id"] == "device_tracker.ws"
        assert client.find_device_state("laptop") is None

    @mock.patch("requests.get")
    def test_get_states_unauthorized(self, mock_get, client):
        mock_get.return_value = _response(401, None, content=b"401: Unauthorized")

        with pytest.raises(RegistrationError) as exc_info:
            client.get_states()
        assert exc_info.value.status_code == 401

    @mock.patch("requests.get")
    def test_get_states_network_error(self, mock_get, client):
        mock_get.side_effect = requests.Timeout("timed out")

        with pytest.raises(NetworkError, match="timed out"):
            client.get_states()

    @mock.patch("requests.get")
    def test_get_states_non_list(self, mock_get, client):
        mock_get.return_value = _response(200, {"message": "hi"})

        with pytest.raises(DecodeError):
            client.get_states()

    @mock.patch("requests.post")
    def test_register_device(self, mock_post, client, device_info):
        mock_post.return_value = _response(
            201, {"webhook_id": "hook-1", "cloudhook_url": None, "secret": None}
        )

        response = client.register_device(DeviceRegistration.for_device("d", device_info))

        assert response == DeviceRegistrationResponse(webhook_id="hook-1")
        assert mock_post.call_args[0][0] == "http://hub.local:8123/api/mobile_app/registrations"
        assert mock_post.call_args[1]["json"]["device_id"] == "d"

    @mock.patch("requests.post")
    def test_register_device_without_webhook(self, mock_post, client, device_info):
        mock_post.return_value = _response(201, {"secret": None})

        with pytest.raises(DecodeError, match="webhook_id"):
            client.register_device(DeviceRegistration.for_device("d", device_info))

    @mock.patch("requests.post")
    def test_register_sensor(self, mock_post, client):
        mock_post.return_value = _response(201, {"success": True})
        sensor = SensorRegistration("s1", "Sensor", "on", "mdi:x")

        assert client.register_sensor("hook-1", sensor) == {"success": True}
        assert mock_post.call_args[0][0] == "http://hub.local:8123/api/webhook/hook-1"
        assert mock_post.call_args[1]["json"]["type"] == "register_sensor"
        assert mock_post.call_args[1]["json"]["data"]["unique_id"] == "s1"

    @mock.patch("requests.post")
    def test_update_sensor_states_empty_body(self, mock_post, client, device_info):
        mock_post.return_value = _response(200, None, content=b"")

        result = client.update_sensor_states("hook-1", current_sensor_states("d", device_info))

        assert result == {}
        body = mock_post.call_args[1]["json"]
        assert body["type"] == "update_sensor_states"
        assert isinstance(body["data"], list)

    @mock.patch("requests.get")
    def test_expired_short_lived_token_is_refreshed(self, mock_get):
        expired = ShortLivedToken(
            "old-access",
            "refresh-1",
            expires_in=60,
            issued_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )
        exchange = mock.Mock()
        exchange.refresh.return_value = ShortLivedToken("new-access", "refresh-1", 1800)
        mock_get.return_value = _response(200, [])

        client = HubClient("hub", expired, client_id="cid", exchange=exchange)
        client.get_states()

        exchange.refresh.assert_called_once_with("hub", "refresh-1", "cid")
        assert mock_get.call_args[1]["headers"] == {"Authorization": "Bearer new-access"}

    def test_expired_token_without_exchange(self):
        expired = ShortLivedToken(
            "a", "r", expires_in=1, issued_at=datetime.now(timezone.utc) - timedelta(hours=1)
        )

        with pytest.raises(RegistrationError, match="no refresh client"):
            HubClient("hub", expired).get_states()
