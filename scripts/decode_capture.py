#!/usr/bin/env python3
"""
Decode bytes captured from a Timebox Evo without a device.

Takes hex dumps of received data (e.g. from an HCI snoop log or the
--log-level DEBUG output of the CLI) and prints what each message means, so
new message types can be reverse engineered.
"""

import argparse
import json
import sys

# Allow running from repo root
sys.path.insert(0, "")

from src.envelope import unwrap_partial
from src.errors import PixelboxError
from src.incoming import Message, decode_message, parse_incoming


def message_to_dict(message: Message) -> dict:
    return {
        "command": f"0x{message.command:02X}",
        "data": message.data.hex().upper(),
        "channel": message.channel,
        "channel_name": message.channel_name,
        "brightness": message.brightness,
        "volume": message.volume,
        "description": str(message),
    }


def decode_capture(capture: bytes, *, lenient: bool = False) -> tuple[list[Message], str | None]:
    """Decode one capture; returns messages and an error string if one occurred."""
    if not lenient:
        try:
            return parse_incoming(capture), None
        except PixelboxError as e:
            return [], str(e)

    payloads, frame_error = unwrap_partial(capture)
    messages: list[Message] = []
    errors: list[str] = [str(frame_error)] if frame_error else []
    for payload in payloads:
        try:
            messages.append(decode_message(payload))
        except PixelboxError as e:
            errors.append(str(e))
    return messages, "; ".join(errors) or None


def run_decode(captures: list[str], *, lenient: bool = False, output_json: bool = False) -> int:
    results = []
    failures = 0
    for raw in captures:
        try:
            capture = bytes.fromhex(raw.replace(" ", "").replace(":", ""))
        except ValueError:
            print(f"Not a hex string: {raw}", file=sys.stderr)
            return 2
        messages, error = decode_capture(capture, lenient=lenient)
        if error:
            failures += 1
        results.append((capture, messages, error))

    if output_json:
        out = [
            {
                "capture": capture.hex().upper(),
                "messages": [message_to_dict(m) for m in messages],
                "error": error,
            }
            for capture, messages, error in results
        ]
        print(json.dumps(out, indent=2))
        return 1 if failures else 0

    for i, (capture, messages, error) in enumerate(results, start=1):
        print(f"--- Capture {i} ({len(capture)} bytes) ---")
        for message in messages:
            print(f"  [0x{message.command:02X}] {message}")
        if error:
            print(f"  ERROR: {error}")
        print()
    return 1 if failures else 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Decode Timebox Evo messages from hex captures (no device).",
    )
    parser.add_argument("captures", nargs="+", metavar="HEX", help="Captured bytes as hex")
    parser.add_argument(
        "--lenient",
        action="store_true",
        help="Keep messages decoded before a failure instead of failing the capture",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="output_json",
        help="Output JSON instead of plain text",
    )
    args = parser.parse_args()
    sys.exit(run_decode(args.captures, lenient=args.lenient, output_json=args.output_json))


if __name__ == "__main__":
    main()
