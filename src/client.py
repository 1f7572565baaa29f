"""
Async client for Divoom Timebox Evo control.

Use as a context manager to connect and send commands:

    async with TimeboxClient("11:75:58:B1:B2:15") as client:
        client.on_message(print)
        await client.set_brightness(60)
        await client.show_clock("RAINBOW")
"""

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime

from loguru import logger as log
from PIL import Image

from src import commands
from src.connection import DeviceConnection
from src.constants import DEFAULT_RFCOMM_CHANNEL, MAX_BRIGHTNESS
from src.envelope import EnvelopeAssembler
from src.errors import FrameError, MalformedMessageError
from src.images import Color
from src.incoming import Message, parse_incoming

MessageCallback = Callable[[Message], None]


class TimeboxClient:
    """
    Send commands to a Timebox Evo and receive its decoded messages.

    Every command method validates its arguments before any I/O, so a bad
    argument raises without touching the connection. A custom connection
    must use a single dispatch worker (the default), since received chunks
    are reassembled in arrival order.
    """

    def __init__(
        self,
        address: str,
        channel: int = DEFAULT_RFCOMM_CHANNEL,
        *,
        connection: DeviceConnection | None = None,
    ) -> None:
        self.connection = connection or DeviceConnection(address, channel)
        if self.connection.workers != 1:
            raise ValueError(
                f"TimeboxClient needs a connection with one worker, got {self.connection.workers}"
            )
        self._assembler = EnvelopeAssembler()
        self._callbacks: list[MessageCallback] = []
        self.connection.add_listener(self._handle_chunk)

    async def __aenter__(self) -> "TimeboxClient":
        await self.connect()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        self._assembler.reset()
        await self.connection.connect()

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    def on_message(self, callback: MessageCallback) -> None:
        """Register a callback for every decoded device message."""
        self._callbacks.append(callback)

    async def _handle_chunk(self, chunk: bytes) -> None:
        for envelope in self._assembler.feed(chunk):
            try:
                messages = parse_incoming(envelope)
            except (FrameError, MalformedMessageError) as e:
                log.warning("Could not parse message {}: {}", envelope.hex(), e)
                continue
            for message in messages:
                log.info("Device: {}", message)
                for callback in self._callbacks:
                    callback(message)

    async def send_packets(self, packets: Iterable[bytes]) -> None:
        """Write prepared envelopes in order, without interleaving."""
        packets = list(packets)
        log.debug("Sending {} packet(s)", len(packets))
        await self.connection.send_all(packets)

    async def set_volume(self, volume: int) -> None:
        await self.connection.send(commands.set_volume(volume))

    async def set_brightness(self, brightness: int) -> None:
        await self.connection.send(commands.set_brightness(brightness))

    async def set_weather(self, temperature: int, weather_type: str) -> None:
        await self.connection.send(commands.set_weather(temperature, weather_type))

    async def sync_time(self, moment: datetime | None = None) -> None:
        """Set the device clock to moment, or now."""
        await self.connection.send(commands.set_time(moment))

    async def show_clock(
        self,
        clock_type: str,
        *,
        show_time: bool = True,
        show_weather: bool = False,
        show_temperature: bool = False,
        show_calendar: bool = False,
        color: Color = (255, 255, 255),
    ) -> None:
        await self.connection.send(
            commands.show_clock(
                clock_type,
                show_time,
                show_weather,
                show_temperature,
                show_calendar,
                color,
            )
        )

    async def show_light(
        self,
        light_type: str,
        *,
        color: Color = (255, 255, 255),
        brightness: int = MAX_BRIGHTNESS,
    ) -> None:
        await self.connection.send(commands.show_light(light_type, color, brightness))

    async def show_cloud(self) -> None:
        await self.connection.send(commands.show_cloud())

    async def show_vj_effect(self, effect: int) -> None:
        await self.connection.send(commands.show_vj_effect(effect))

    async def show_visualisation(self, visualisation: int) -> None:
        await self.connection.send(commands.show_visualisation(visualisation))

    async def show_scoreboard(self, red_score: int, blue_score: int) -> None:
        await self.connection.send(commands.show_scoreboard(red_score, blue_score))

    async def display_off(self) -> None:
        await self.connection.send(commands.display_off())

    async def request_settings(self) -> None:
        """Ask for a settings report; it arrives through on_message."""
        await self.connection.send(commands.get_settings())

    async def show_image(self, image: Image.Image) -> None:
        await self.connection.send(commands.show_image(image))

    async def show_animation(
        self,
        images: Sequence[Image.Image],
        durations_ms: Sequence[int],
    ) -> None:
        """Stream an animation; packets are written as one uninterrupted batch."""
        packets = commands.show_animation(images, durations_ms)
        log.info("Streaming {} frame(s) in {} packet(s)", len(images), len(packets))
        await self.send_packets(packets)
