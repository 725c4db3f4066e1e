"""
Device metadata and default sensors reported to the hub.
"""

import os
import platform
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from . import __version__

APP_ID = "halcyon"
APP_NAME = "Halcyon"
MANUFACTURER = "PC"


@dataclass(frozen=True)
class DeviceInfo:
    """
    Platform details of this machine.

    Attributes:
        node_name: Network node name (used as the device name on the hub)
        machine: Hardware identifier (e.g., x86_64)
        os_name: Operating system name (e.g., Linux)
        os_version: Operating system version string
        os_release: Kernel/OS release
    """

    node_name: str
    machine: str
    os_name: str
    os_version: str
    os_release: str = ""

    @classmethod
    def collect(cls) -> "DeviceInfo":
        uname = platform.uname()
        return cls(
            node_name=uname.node,
            machine=uname.machine,
            os_name=uname.system,
            os_version=uname.version,
            os_release=uname.release,
        )


@dataclass
class DeviceRegistration:
    """Body of POST /api/mobile_app/registrations."""

    device_id: str
    device_name: str
    model: str
    os_name: str
    os_version: str
    app_id: str = APP_ID
    app_name: str = APP_NAME
    app_version: str = __version__
    manufacturer: str = MANUFACTURER
    supports_encryption: bool = False
    app_data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_device(cls, device_id: str, info: DeviceInfo) -> "DeviceRegistration":
        return cls(
            device_id=device_id,
            device_name=info.node_name,
            model=info.machine,
            os_name=info.os_name,
            os_version=info.os_version,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SensorRegistration:
    """Data of a ``register_sensor`` webhook call."""

    unique_id: str
    name: str
    state: Any
    icon: str
    type: str = "sensor"
    device_class: Optional[str] = None
    unit_of_measurement: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class SensorUpdate:
    """One entry of an ``update_sensor_states`` webhook call."""

    unique_id: str
    state: Any
    icon: str
    type: str = "sensor"
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def default_sensors(device_id: str, info: DeviceInfo) -> List[SensorRegistration]:
    """Sensors registered for every device on first setup."""
    return [
        SensorRegistration(
            unique_id=f"{device_id}_os_release",
            name=f"{info.node_name} OS Release",
            state=info.os_release,
            icon="mdi:linux",
            attributes={"os_name": info.os_name, "machine": info.machine},
        ),
        SensorRegistration(
            unique_id=f"{device_id}_cpu_count",
            name=f"{info.node_name} CPU Count",
            state=os.cpu_count() or 0,
            icon="mdi:cpu-64-bit",
            unit_of_measurement="cores",
        ),
    ]


def current_sensor_states(device_id: str, info: DeviceInfo) -> List[SensorUpdate]:
    """Current values of the default sensors."""
    return [
        SensorUpdate(
            unique_id=sensor.unique_id,
            state=sensor.state,
            icon=sensor.icon,
            type=sensor.type,
            attributes=sensor.attributes,
        )
        for sensor in default_sensors(device_id, info)
    ]
