"""
Outgoing commands for the Timebox Evo.

Every builder validates its arguments and returns the envelope-wrapped bytes
to write to the serial link. Nothing here does I/O, so an invalid argument
never reaches the device.
"""

import re
from collections.abc import Sequence
from datetime import datetime

from PIL import Image

from src.constants import (
    ANIMATION_PACKET_STRIDE,
    ANIMATION_PACKET_WINDOW,
    CHANNELS,
    CLOCK_TYPES,
    CMD_GET_SETTINGS,
    CMD_SET_ANIMATION,
    CMD_SET_BRIGHTNESS,
    CMD_SET_CHANNEL,
    CMD_SET_IMAGE,
    CMD_SET_TIME,
    CMD_SET_VOLUME,
    CMD_SET_WEATHER,
    IMAGE_PREAMBLE,
    LIGHT_TYPES,
    MAX_BRIGHTNESS,
    MAX_SCORE,
    MAX_TEMPERATURE,
    MAX_VISUALISATION,
    MAX_VJ_EFFECT,
    MAX_VOLUME,
    WEATHER_TYPES,
)
from src.envelope import wrap
from src.errors import RangeError, UnknownTypeError
from src.images import Color, build_frame


def parse_color(color: str) -> Color:
    """Parse hex color string to (R, G, B) tuple."""
    raw = color.strip().lower()
    if raw.startswith("#"):
        raw = raw[1:]
    if raw.startswith("0x"):
        raw = raw[2:]
    if len(raw) == 3:
        raw = "".join([c * 2 for c in raw])
    if len(raw) != 6 or not re.fullmatch(r"[0-9a-f]{6}", raw):
        raise ValueError(f"Invalid color '{color}'. Use hex like #ff0000.")
    return int(raw[0:2], 16), int(raw[2:4], 16), int(raw[4:6], 16)


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if value < low or value > high:
        raise RangeError(f"{name} should be between {low} and {high}, got {value}")


def _check_color(color: Sequence[int]) -> None:
    if len(color) != 3 or any(c < 0 or c > 255 for c in color):
        raise RangeError(f"color should be three values between 0 and 255, got {color}")


def _lookup(table: dict[str, int], kind: str, name: str) -> int:
    try:
        return table[name]
    except KeyError:
        raise UnknownTypeError(
            f"invalid {kind} type '{name}', expected one of {', '.join(table)}"
        ) from None


def get_settings() -> bytes:
    """Ask the device to report its current settings."""
    return wrap([CMD_GET_SETTINGS])


def display_off() -> bytes:
    """Switch to the light channel with the power flag cleared."""
    return wrap(
        [
            CMD_SET_CHANNEL,
            CHANNELS["LIGHT"],
            0, 0, 0,  # color
            0,  # brightness
            0,  # light type
            0,  # power off
            0, 0, 0,  # fixed ending
        ]
    )


def set_time(moment: datetime | None = None) -> bytes:
    """Set the device clock, defaulting to the current local time."""
    if moment is None:
        moment = datetime.now()
    return wrap(
        [
            CMD_SET_TIME,
            moment.year % 100,
            moment.year // 100,
            moment.month,
            moment.day,
            moment.hour,
            moment.minute,
            moment.second,
            0x00,
        ]
    )


def set_volume(volume: int) -> bytes:
    """Set the speaker volume (0-16)."""
    _check_range("volume", volume, 0, MAX_VOLUME)
    return wrap([CMD_SET_VOLUME, volume])


def set_brightness(brightness: int) -> bytes:
    """Set the display brightness (0-100)."""
    _check_range("brightness", brightness, 0, MAX_BRIGHTNESS)
    return wrap([CMD_SET_BRIGHTNESS, brightness])


def set_weather(temperature: int, weather_type: str) -> bytes:
    """
    Push a weather report for the clock channel.

    Args:
        temperature: Degrees, strictly between -100 and 100. Sent as a
            single two's complement byte.
        weather_type: Key of WEATHER_TYPES, e.g. "RAIN".
    """
    weather_id = _lookup(WEATHER_TYPES, "weather", weather_type)
    if temperature <= -MAX_TEMPERATURE or temperature >= MAX_TEMPERATURE:
        raise RangeError(
            f"temperature should be between -{MAX_TEMPERATURE} and "
            f"{MAX_TEMPERATURE} (exclusive), got {temperature}"
        )
    return wrap([CMD_SET_WEATHER, temperature & 0xFF, weather_id])


def show_clock(
    clock_type: str,
    show_time: bool = True,
    show_weather: bool = False,
    show_temperature: bool = False,
    show_calendar: bool = False,
    color: Color = (255, 255, 255),
) -> bytes:
    """Switch to the clock channel with the given style and sub-displays."""
    clock_id = _lookup(CLOCK_TYPES, "clock", clock_type)
    _check_color(color)
    return wrap(
        [
            CMD_SET_CHANNEL,
            CHANNELS["CLOCK"],
            0x01,  # always 1 in captures
            clock_id,
            int(bool(show_time)),
            int(bool(show_weather)),
            int(bool(show_temperature)),
            int(bool(show_calendar)),
            *color,
        ]
    )


def show_light(
    light_type: str,
    color: Color = (255, 255, 255),
    brightness: int = MAX_BRIGHTNESS,
) -> bytes:
    """Switch to the light channel (the display as a lamp)."""
    _check_range("brightness", brightness, 0, MAX_BRIGHTNESS)
    light_id = _lookup(LIGHT_TYPES, "light", light_type)
    _check_color(color)
    return wrap(
        [
            CMD_SET_CHANNEL,
            CHANNELS["LIGHT"],
            *color,
            brightness,
            light_id,
            1,  # power on
            0, 0, 0,  # fixed ending
        ]
    )


def show_cloud() -> bytes:
    """Switch to the cloud channel (images pushed from the app gallery)."""
    return wrap([CMD_SET_CHANNEL, CHANNELS["CLOUD"]])


def show_vj_effect(effect: int) -> bytes:
    """Switch to one of the VJ effects (0-15)."""
    _check_range("effect", effect, 0, MAX_VJ_EFFECT)
    return wrap([CMD_SET_CHANNEL, CHANNELS["VJ"], effect])


def show_visualisation(visualisation: int) -> bytes:
    """Switch to one of the music visualisations (0-11)."""
    _check_range("visualisation", visualisation, 0, MAX_VISUALISATION)
    return wrap([CMD_SET_CHANNEL, CHANNELS["VISUALISATION"], visualisation])


def show_scoreboard(red_score: int, blue_score: int) -> bytes:
    """Show the two player scoreboard, each score 0-999."""
    _check_range("red score", red_score, 0, MAX_SCORE)
    _check_range("blue score", blue_score, 0, MAX_SCORE)
    return wrap(
        [
            CMD_SET_CHANNEL,
            CHANNELS["SCOREBOARD"],
            0x00,  # always 0 in captures
            red_score & 0xFF,
            (red_score >> 8) & 0xFF,
            blue_score & 0xFF,
            (blue_score >> 8) & 0xFF,
        ]
    )


def show_image(image: Image.Image) -> bytes:
    """
    Show a static 16x16 image.

    Raises:
        DimensionError: If the image is not 16x16.
    """
    command = bytearray([CMD_SET_IMAGE])
    command.extend(IMAGE_PREAMBLE)
    command.extend(build_frame(image, 0))
    return wrap(command)


def split_animation(frame_data: bytes | bytearray) -> list[bytes]:
    """
    Cut concatenated frame blocks into the slices carried by each packet.

    Packets start every ANIMATION_PACKET_STRIDE bytes but carry up to
    ANIMATION_PACKET_WINDOW bytes, so neighbouring packets overlap. This is
    what the device was observed to receive; do not deduplicate without
    checking against real traces.
    """
    return [
        bytes(frame_data[start : start + ANIMATION_PACKET_WINDOW])
        for start in range(0, len(frame_data), ANIMATION_PACKET_STRIDE)
    ]


def show_animation(
    images: Sequence[Image.Image],
    durations_ms: Sequence[int],
) -> list[bytes]:
    """
    Build the packet stream for a multi-frame animation.

    Args:
        images: 16x16 frames in display order.
        durations_ms: How long to show each frame, one per image. Values
            are truncated to 16 bits.

    Returns:
        Envelopes to write in order, without interleaving other writes.

    Raises:
        DimensionError: If any frame is not 16x16.
        RangeError: If there is not exactly one duration per frame.
    """
    if len(images) != len(durations_ms):
        raise RangeError(
            f"expected one duration per frame, got {len(images)} frame(s) "
            f"and {len(durations_ms)} duration(s)"
        )

    frame_data = bytearray()
    for image, duration in zip(images, durations_ms):
        frame_data.extend(build_frame(image, duration))

    total_size = len(frame_data) & 0xFFFF
    packets: list[bytes] = []
    for packet_number, window in enumerate(split_animation(frame_data)):
        command = bytearray(
            [
                CMD_SET_ANIMATION,
                total_size & 0xFF,
                (total_size >> 8) & 0xFF,
                packet_number & 0xFF,
            ]
        )
        command.extend(window)
        packets.append(wrap(command))
    return packets
