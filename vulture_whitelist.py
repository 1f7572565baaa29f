"""
Vulture whitelist for intentionally unused code.

These are public API elements that are meant to be used by consumers of the
package (the CLI builds packets directly and never goes through them).
"""

from src.client import TimeboxClient
from src.connection import DeviceConnection
from src.images import decode_image

# Programmatic API for scripts that drive a device from asyncio
_ = (
    TimeboxClient.set_volume,
    TimeboxClient.set_brightness,
    TimeboxClient.set_weather,
    TimeboxClient.sync_time,
    TimeboxClient.show_clock,
    TimeboxClient.show_light,
    TimeboxClient.show_cloud,
    TimeboxClient.show_vj_effect,
    TimeboxClient.show_visualisation,
    TimeboxClient.show_scoreboard,
    TimeboxClient.display_off,
    TimeboxClient.request_settings,
    TimeboxClient.show_image,
    TimeboxClient.show_animation,
    DeviceConnection.remove_listener,
    DeviceConnection.state,
    # Inverse of convert_image, for checking captured frames
    decode_image,
)
