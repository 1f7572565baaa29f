"""
Envelope framing for the Timebox Evo serial link.

Every message in both directions is wrapped like this:

    [ PREFIX, LL, LL, <payload>, CH, CH, POSTFIX ]

LL LL is the little-endian length of the payload plus two (the length field
counts itself). CH CH is the little-endian 16-bit sum of the length bytes and
the payload. PREFIX and POSTFIX are fixed.
"""

from loguru import logger as log

from src.constants import (
    ENVELOPE_OVERHEAD,
    ENVELOPE_POSTFIX,
    ENVELOPE_PREFIX,
    MAX_INCOMING_LENGTH,
)
from src.errors import FrameError


def checksum(data: bytes | bytearray) -> int:
    """Return the 16-bit sum of all bytes in data."""
    return sum(data) & 0xFFFF


def wrap(payload: bytes | bytearray | list[int]) -> bytes:
    """Wrap a command payload in the device envelope."""
    length = len(payload) + 2
    body = bytearray([length & 0xFF, (length >> 8) & 0xFF])
    body.extend(payload)
    check = checksum(body)

    envelope = bytearray([ENVELOPE_PREFIX])
    envelope.extend(body)
    envelope.extend([check & 0xFF, (check >> 8) & 0xFF, ENVELOPE_POSTFIX])
    return bytes(envelope)


def _scan(buffer: bytes | bytearray) -> tuple[list[bytes], FrameError | None]:
    """
    Unwrap back-to-back envelopes until the buffer ends or one fails.

    Assumes the buffer holds complete envelopes only; partial frames must be
    assembled by the caller (see EnvelopeAssembler).
    """
    payloads: list[bytes] = []
    index = 0
    while index < len(buffer):
        if buffer[index] != ENVELOPE_PREFIX:
            return payloads, FrameError(
                f"expected prefix 0x{ENVELOPE_PREFIX:02x} at offset {index}, "
                f"got 0x{buffer[index]:02x}"
            )
        if index + 3 > len(buffer):
            return payloads, FrameError(
                f"truncated envelope at offset {index}: no length field"
            )

        length = buffer[index + 1] | (buffer[index + 2] << 8)
        checksum_index = index + 1 + length
        end_index = checksum_index + 2
        if length < 2:
            return payloads, FrameError(
                f"invalid length {length} at offset {index}, expected at least 2"
            )
        if end_index >= len(buffer):
            return payloads, FrameError(
                f"truncated envelope at offset {index}: length {length} needs "
                f"{length + 4} bytes, {len(buffer) - index} available"
            )

        if buffer[end_index] != ENVELOPE_POSTFIX:
            return payloads, FrameError(
                f"expected postfix 0x{ENVELOPE_POSTFIX:02x} at offset {end_index}, "
                f"got 0x{buffer[end_index]:02x}"
            )

        body = buffer[index + 1 : checksum_index]
        received = buffer[checksum_index] | (buffer[checksum_index + 1] << 8)
        calculated = checksum(body)
        if received != calculated:
            return payloads, FrameError(
                f"invalid checksum at offset {index}, expected {calculated}, "
                f"got {received}"
            )

        # Leave the length out
        payloads.append(bytes(body[2:]))
        index = end_index + 1
    return payloads, None


def unwrap(buffer: bytes | bytearray) -> list[bytes]:
    """
    Unwrap one or more concatenated envelopes into their payloads.

    Raises:
        FrameError: If any envelope in the buffer is malformed. Nothing
            decoded from the buffer is returned in that case.
    """
    payloads, error = _scan(buffer)
    if error is not None:
        raise error
    return payloads


def unwrap_partial(
    buffer: bytes | bytearray,
) -> tuple[list[bytes], FrameError | None]:
    """
    Unwrap envelopes, keeping everything decoded before the first failure.

    Returns:
        The payloads that validated and the error that stopped the scan
        (None when the whole buffer was consumed).
    """
    return _scan(buffer)


class EnvelopeAssembler:
    """
    Reassemble complete envelopes from arbitrarily split read chunks.

    The serial link delivers bytes in whatever pieces the socket hands out,
    so a single envelope may span several reads and a read may hold several
    envelopes. Only envelopes whose postfix and checksum validate are
    returned; anything else is skipped a byte at a time until the next
    prefix.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        """Drop any buffered bytes."""
        self._buffer.clear()

    def _candidate(self, index: int) -> int:
        """Size of the valid envelope at index, 0 if incomplete, -1 if invalid."""
        buffer = self._buffer
        if len(buffer) - index < 3:
            return 0
        length = buffer[index + 1] | (buffer[index + 2] << 8)
        if length < 2 or length > MAX_INCOMING_LENGTH:
            return -1
        total = length + ENVELOPE_OVERHEAD - 2
        if len(buffer) - index < total:
            return 0
        end = index + total
        if buffer[end - 1] != ENVELOPE_POSTFIX:
            return -1
        received = buffer[end - 3] | (buffer[end - 2] << 8)
        if checksum(buffer[index + 1 : end - 3]) != received:
            return -1
        return total

    def _next_valid(self, start: int) -> int | None:
        index = self._buffer.find(ENVELOPE_PREFIX, start)
        while index >= 0:
            if self._candidate(index) > 0:
                return index
            index = self._buffer.find(ENVELOPE_PREFIX, index + 1)
        return None

    def feed(self, chunk: bytes | bytearray) -> list[bytes]:
        """Add a chunk and return every envelope completed by it."""
        self._buffer.extend(chunk)
        envelopes: list[bytes] = []
        while True:
            start = self._buffer.find(ENVELOPE_PREFIX)
            if start < 0:
                if self._buffer:
                    log.debug("Discarding {} byte(s) of noise", len(self._buffer))
                self._buffer.clear()
                break
            if start > 0:
                log.debug("Discarding {} byte(s) before prefix", start)
                del self._buffer[:start]

            size = self._candidate(0)
            if size > 0:
                envelopes.append(bytes(self._buffer[:size]))
                del self._buffer[:size]
                continue
            if size < 0:
                # Not a real envelope start, resync on the next prefix
                del self._buffer[:1]
                continue

            # Still incomplete; a complete envelope further on means this
            # start was noise that happened to look like a prefix
            later = self._next_valid(1)
            if later is None:
                break
            log.debug("Discarding {} byte(s) of false envelope start", later)
            del self._buffer[:later]
        return envelopes
