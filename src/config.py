"""
Device configuration.

Devices are listed in a JSON file (config.json by default, or the path in
PIXELBOX_CONFIG):

    {
        "devices": [
            {"name": "desk", "mac": "11:75:58:B1:B2:15", "channel": 1}
        ]
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from src.connection import mac_to_bdaddr
from src.constants import DEFAULT_RFCOMM_CHANNEL
from src.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("config.json")
CONFIG_ENV_VAR = "PIXELBOX_CONFIG"

# Valid RFCOMM channel numbers
MIN_CHANNEL = 1
MAX_CHANNEL = 30


@dataclass
class DeviceConfig:
    """One Timebox reachable over RFCOMM."""

    name: str
    mac: str
    channel: int = DEFAULT_RFCOMM_CHANNEL


@dataclass
class Config:
    devices: list[DeviceConfig] = field(default_factory=list)

    def find_device(self, name: str | None = None) -> DeviceConfig:
        """Return the device called name, or the first one if name is None."""
        if not self.devices:
            raise ConfigError("no devices configured")
        if name is None:
            return self.devices[0]
        for device in self.devices:
            if device.name == name:
                return device
        known = ", ".join(d.name for d in self.devices)
        raise ConfigError(f"unknown device '{name}' (configured: {known})")


def default_config_path() -> Path:
    return Path(os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH))


def _parse_device(index: int, raw: object) -> DeviceConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"device #{index} should be an object")
    mac = raw.get("mac")
    if not isinstance(mac, str):
        raise ConfigError(f"device #{index} is missing 'mac'")
    try:
        mac_to_bdaddr(mac)
    except ValueError as e:
        raise ConfigError(f"device #{index}: {e}") from None

    channel = raw.get("channel", DEFAULT_RFCOMM_CHANNEL)
    if (
        not isinstance(channel, int)
        or isinstance(channel, bool)
        or not MIN_CHANNEL <= channel <= MAX_CHANNEL
    ):
        raise ConfigError(
            f"device #{index}: channel should be an integer between "
            f"{MIN_CHANNEL} and {MAX_CHANNEL}, got {channel!r}"
        )
    name = raw.get("name") or f"device{index}"
    return DeviceConfig(name=str(name), mac=mac, channel=channel)


def parse_config(data: dict) -> Config:
    """Build a Config from already-decoded JSON. Unknown keys are ignored."""
    if not isinstance(data, dict):
        raise ConfigError("config should be a JSON object")
    devices = data.get("devices", [])
    if not isinstance(devices, list):
        raise ConfigError("'devices' should be a list")
    return Config(devices=[_parse_device(i, d) for i, d in enumerate(devices)])


def load_config(path: str | Path | None = None) -> Config:
    """
    Load the device configuration file.

    Raises:
        ConfigError: If the file cannot be read or does not validate.
    """
    path = Path(path) if path is not None else default_config_path()
    try:
        text = path.read_text()
    except OSError as e:
        raise ConfigError(f"could not read {path}: {e}") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in {path}: {e}") from e
    return parse_config(data)
