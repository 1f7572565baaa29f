"""
CLI to control a Divoom Timebox Evo over Bluetooth.

Each subcommand builds the envelopes for one operation and writes them to the
device. The target comes from --address/--channel or from the device list in
config.json.

Usage:
    pixelbox --address 11:75:58:B1:B2:15 brightness 60
    pixelbox --device desk clock RAINBOW --color "#ff8800" --calendar
    pixelbox --dry-run image sprite.png
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import click
from PIL import Image, ImageSequence

from src import commands
from src.client import TimeboxClient
from src.config import load_config
from src.constants import (
    CLOCK_TYPES,
    DEFAULT_RFCOMM_CHANNEL,
    LIGHT_TYPES,
    MAX_BRIGHTNESS,
    WEATHER_TYPES,
)
from src.errors import ConfigError, DeviceConnectionError, PixelboxError
from src.images import Color
from src.utils.logging_config import setup_logging

# Frame time used when a GIF frame carries no duration
DEFAULT_FRAME_DURATION_MS = 100

# How long `settings` waits for the report if --listen is not given
SETTINGS_LISTEN_SECONDS = 2.0


@dataclass
class Target:
    """Options shared by every subcommand."""

    config_path: Path | None
    device_name: str | None
    address: str | None
    channel: int | None
    listen: float
    dry_run: bool


def _color_option(_ctx: click.Context, _param: click.Parameter, value: str) -> Color:
    try:
        return commands.parse_color(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from None


def _build(builder: Callable, *args: object) -> bytes | list[bytes]:
    """Run a command builder, turning validation errors into CLI errors."""
    try:
        return builder(*args)
    except PixelboxError as e:
        raise click.ClickException(str(e)) from None


def _resolve_target(target: Target) -> tuple[str, int]:
    if target.address:
        return target.address, target.channel or DEFAULT_RFCOMM_CHANNEL
    try:
        device = load_config(target.config_path).find_device(target.device_name)
    except ConfigError as e:
        raise click.ClickException(f"{e}. Use --address or a config file.") from None
    return device.mac, target.channel or device.channel


async def _send_packets(
    address: str,
    channel: int,
    packets: list[bytes],
    listen: float,
) -> None:
    """Connect, write packets, then optionally wait for device messages."""
    async with TimeboxClient(address, channel) as client:
        client.on_message(lambda message: click.echo(str(message)))
        if packets:
            await client.send_packets(packets)
        if listen > 0:
            click.echo(f"Listening for {listen:g}s...")
            await asyncio.sleep(listen)


def _deliver(target: Target, packets: list[bytes], listen: float | None = None) -> None:
    if target.dry_run:
        for i, packet in enumerate(packets, start=1):
            click.echo(f"--- Packet {i} ({len(packet)} bytes) ---")
            click.echo(packet.hex().upper())
        return

    address, channel = _resolve_target(target)
    click.echo(f"Connecting to {address} (channel {channel})...")
    try:
        asyncio.run(
            _send_packets(
                address,
                channel,
                packets,
                target.listen if listen is None else listen,
            )
        )
    except DeviceConnectionError as e:
        raise click.ClickException(str(e)) from None
    click.echo("Done!")


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Device config file (default: $PIXELBOX_CONFIG or config.json)",
)
@click.option(
    "--device",
    "-d",
    "device_name",
    default=None,
    help="Device name from the config file (default: first device)",
)
@click.option(
    "--address",
    "-a",
    default=None,
    help="Device Bluetooth MAC address, skips the config file",
)
@click.option(
    "--channel",
    "-c",
    type=click.IntRange(1, 30),
    default=None,
    help="RFCOMM channel [default: from config, or 1]",
)
@click.option(
    "--listen",
    "-l",
    type=click.FloatRange(min=0),
    default=0.0,
    show_default=True,
    help="Seconds to keep the link open and print device messages",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Print the packets as hex instead of sending them",
)
@click.option(
    "--log-level",
    type=click.Choice(["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level (default: $PIXELBOX_LOG_LEVEL or INFO)",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    device_name: str | None,
    address: str | None,
    channel: int | None,
    listen: float,
    dry_run: bool,
    log_level: str | None,
) -> None:
    """Control a Divoom Timebox Evo over Bluetooth RFCOMM."""
    setup_logging(log_level)
    ctx.obj = Target(
        config_path=config_path,
        device_name=device_name,
        address=address,
        channel=channel,
        listen=listen,
        dry_run=dry_run,
    )


@main.command()
@click.argument("level", type=int)
@click.pass_obj
def brightness(target: Target, level: int) -> None:
    """Set display brightness (0-100)."""
    _deliver(target, [_build(commands.set_brightness, level)])


@main.command()
@click.argument("level", type=int)
@click.pass_obj
def volume(target: Target, level: int) -> None:
    """Set speaker volume (0-16)."""
    _deliver(target, [_build(commands.set_volume, level)])


@main.command()
@click.argument("temperature", type=int)
@click.argument("weather_type", type=click.Choice(sorted(WEATHER_TYPES)))
@click.pass_obj
def weather(target: Target, temperature: int, weather_type: str) -> None:
    """Push a weather report (temperature -99..99).

    Negative temperatures need `--` first: pixelbox weather -- -5 SNOW
    """
    _deliver(target, [_build(commands.set_weather, temperature, weather_type)])


@main.command()
@click.argument("clock_type", type=click.Choice(sorted(CLOCK_TYPES)))
@click.option("--time/--no-time", "show_time", default=True, show_default=True)
@click.option("--weather", "show_weather", is_flag=True, help="Show weather")
@click.option("--temperature", "show_temperature", is_flag=True, help="Show temperature")
@click.option("--calendar", "show_calendar", is_flag=True, help="Show calendar")
@click.option(
    "--color",
    default="#ffffff",
    show_default=True,
    callback=_color_option,
    help="Clock color (hex)",
)
@click.pass_obj
def clock(
    target: Target,
    clock_type: str,
    show_time: bool,
    show_weather: bool,
    show_temperature: bool,
    show_calendar: bool,
    color: Color,
) -> None:
    """Switch to the clock channel."""
    packet = _build(
        commands.show_clock,
        clock_type,
        show_time,
        show_weather,
        show_temperature,
        show_calendar,
        color,
    )
    _deliver(target, [packet])


@main.command()
@click.argument("light_type", type=click.Choice(sorted(LIGHT_TYPES)))
@click.option(
    "--color",
    default="#ffffff",
    show_default=True,
    callback=_color_option,
    help="Light color (hex)",
)
@click.option(
    "--brightness",
    "-b",
    "level",
    type=int,
    default=MAX_BRIGHTNESS,
    show_default=True,
    help="Light brightness (0-100)",
)
@click.pass_obj
def light(target: Target, light_type: str, color: Color, level: int) -> None:
    """Switch to the light channel."""
    _deliver(target, [_build(commands.show_light, light_type, color, level)])


@main.command()
@click.pass_obj
def cloud(target: Target) -> None:
    """Switch to the cloud channel."""
    _deliver(target, [commands.show_cloud()])


@main.command()
@click.argument("effect", type=int)
@click.pass_obj
def vj(target: Target, effect: int) -> None:
    """Show a VJ effect (0-15)."""
    _deliver(target, [_build(commands.show_vj_effect, effect)])


@main.command()
@click.argument("visualisation", type=int)
@click.pass_obj
def visualisation(target: Target, visualisation: int) -> None:
    """Show a music visualisation (0-11)."""
    _deliver(target, [_build(commands.show_visualisation, visualisation)])


@main.command()
@click.argument("red", type=int)
@click.argument("blue", type=int)
@click.pass_obj
def scoreboard(target: Target, red: int, blue: int) -> None:
    """Show the scoreboard (scores 0-999)."""
    _deliver(target, [_build(commands.show_scoreboard, red, blue)])


@main.command(name="sync-time")
@click.pass_obj
def sync_time(target: Target) -> None:
    """Set the device clock to the local time."""
    _deliver(target, [commands.set_time()])


@main.command()
@click.pass_obj
def off(target: Target) -> None:
    """Turn the display off."""
    _deliver(target, [commands.display_off()])


@main.command()
@click.pass_obj
def settings(target: Target) -> None:
    """Request and print the device settings report."""
    _deliver(
        target,
        [commands.get_settings()],
        listen=max(target.listen, SETTINGS_LISTEN_SECONDS),
    )


@main.command()
@click.option(
    "--seconds",
    "-s",
    type=click.FloatRange(min=0, min_open=True),
    default=30.0,
    show_default=True,
    help="How long to listen",
)
@click.pass_obj
def listen(target: Target, seconds: float) -> None:
    """Print messages from the device (button presses, acknowledgements)."""
    _deliver(target, [], listen=seconds)


def _open_image(path: Path) -> Image.Image:
    try:
        return Image.open(path)
    except OSError as e:
        raise click.ClickException(f"could not open {path}: {e}") from None


@main.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def image(target: Target, file_path: Path) -> None:
    """Show a 16x16 image file."""
    with _open_image(file_path) as img:
        packet = _build(commands.show_image, img)
    _deliver(target, [packet])


@main.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--duration",
    type=int,
    default=None,
    help=f"Frame time in ms for every frame [default: from file, or {DEFAULT_FRAME_DURATION_MS}]",
)
@click.pass_obj
def animation(target: Target, file_path: Path, duration: int | None) -> None:
    """Stream an animated 16x16 GIF."""
    frames: list[Image.Image] = []
    durations: list[int] = []
    with _open_image(file_path) as img:
        for frame in ImageSequence.Iterator(img):
            frames.append(frame.convert("RGB"))
            if duration is not None:
                durations.append(duration)
            else:
                durations.append(int(frame.info.get("duration", DEFAULT_FRAME_DURATION_MS)))

    click.echo(f"Loaded {len(frames)} frame(s) from {file_path.name}")
    _deliver(target, _build(commands.show_animation, frames, durations))


if __name__ == "__main__":
    main()
