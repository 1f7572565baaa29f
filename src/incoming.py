"""
Decoding of messages sent by the Timebox Evo.

One read from the serial link can hold several envelopes; parse_incoming
unwraps and decodes all of them. Everything here has been reverse engineered,
so the field table below is best effort: an unknown command still decodes,
it just comes without a description.
"""

from dataclasses import dataclass

from loguru import logger as log

from src.constants import (
    ALARM_CONFIG_STATES,
    BUTTON_PATTERNS,
    CHANNEL_NAMES,
    IN_ACKNOWLEDGE,
    IN_ALARM_CONFIG,
    IN_ANIMATION_SET,
    IN_BRIGHTNESS_SET,
    IN_BUTTON_PRESS,
    IN_CHANNEL_SET,
    IN_IMAGE_SET,
    IN_SETTINGS_SET,
    IN_TIME_SET,
    IN_VOLUME_SET,
    INCOMING_HEADER_1,
    INCOMING_HEADER_2,
)
from src.envelope import unwrap
from src.errors import MalformedMessageError

# Offsets inside the settings report data
SETTINGS_BRIGHTNESS_OFFSET = 6
SETTINGS_CHANNEL_OFFSET = 20


@dataclass
class Message:
    """A decoded device message."""

    command: int
    data: bytes
    channel: int | None = None
    brightness: int | None = None
    volume: int | None = None
    description: str = ""

    @property
    def channel_name(self) -> str | None:
        if self.channel is None:
            return None
        return CHANNEL_NAMES.get(self.channel, "UNKNOWN")

    def __str__(self) -> str:
        if self.description:
            return self.description
        return (
            f"Unknown message with command ID {self.command} "
            f"and data {self.data.hex()}"
        )


def _describe_settings(message: Message) -> None:
    # Least understood message; there is a lot more in it than we extract
    data = message.data
    if len(data) > SETTINGS_CHANNEL_OFFSET:
        message.channel = data[SETTINGS_CHANNEL_OFFSET]
        message.brightness = data[SETTINGS_BRIGHTNESS_OFFSET]
        message.description = (
            f"Updated settings to brightness {message.brightness} and channel "
            f"{message.channel} ({message.channel_name})"
        )
    elif len(data) >= SETTINGS_CHANNEL_OFFSET:
        message.brightness = data[SETTINGS_BRIGHTNESS_OFFSET]
        message.description = (
            f"Received requested settings with brightness {message.brightness}"
        )


def _describe(message: Message) -> None:
    data = message.data
    command = message.command

    if command == IN_SETTINGS_SET:
        _describe_settings(message)
    elif command == IN_CHANNEL_SET and data:
        message.channel = data[0]
        message.description = f"Set channel to {message.channel}"
    elif command == IN_BRIGHTNESS_SET and data:
        message.brightness = data[0]
        message.description = f"Set brightness to {message.brightness}"
    elif command == IN_TIME_SET:
        message.description = "Time was set"
    elif command == IN_IMAGE_SET:
        message.description = "Image was shown"
    elif command == IN_ANIMATION_SET:
        message.description = "Animation was shown"
    elif command == IN_ACKNOWLEDGE and data:
        message.brightness = data[0]
        message.description = (
            f"Light or clock was set with brightness {message.brightness}"
        )
    elif command == IN_VOLUME_SET and data:
        message.volume = data[0]
        message.description = f"Volume was set to {message.volume}/16"
    elif command == IN_BUTTON_PRESS:
        message.description = BUTTON_PATTERNS.get(bytes(data), "")
    elif command == IN_ALARM_CONFIG and len(data) == 1:
        message.description = ALARM_CONFIG_STATES.get(data[0], "")


def decode_message(payload: bytes | bytearray) -> Message:
    """
    Decode one unwrapped payload.

    Raises:
        MalformedMessageError: If the payload is shorter than three bytes or
            lacks the 0x04 / 0x55 sub-header.
    """
    if (
        len(payload) < 3
        or payload[0] != INCOMING_HEADER_1
        or payload[2] != INCOMING_HEADER_2
    ):
        raise MalformedMessageError(
            f"received a message format I don't understand: {bytes(payload).hex()}"
        )

    message = Message(command=payload[1], data=bytes(payload[3:]))
    _describe(message)
    return message


def parse_incoming(
    buffer: bytes | bytearray,
    *,
    skip_malformed: bool = False,
) -> list[Message]:
    """
    Unwrap and decode every message in a buffer of received bytes.

    The buffer must hold complete envelopes only. By default one bad message
    fails the whole batch.

    Args:
        buffer: Raw bytes read from the device.
        skip_malformed: Skip payloads with a bad sub-header instead of
            failing. Envelope errors still fail the batch.

    Raises:
        FrameError: If envelope unwrapping fails.
        MalformedMessageError: If a payload cannot be decoded and
            skip_malformed is False.
    """
    messages: list[Message] = []
    for payload in unwrap(buffer):
        try:
            messages.append(decode_message(payload))
        except MalformedMessageError as e:
            if not skip_malformed:
                raise
            log.warning("Skipping message: {}", e)
    return messages
