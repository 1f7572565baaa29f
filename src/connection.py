"""
RFCOMM connection to a Timebox Evo.

The device speaks its protocol over a Bluetooth serial port profile link. A
DeviceConnection owns the socket: a background task reads whatever the device
sends and hands each chunk to registered listeners through a bounded queue,
while send() writes outgoing envelopes. Any socket error retires the session
for good; recovering means calling connect() again.
"""

import asyncio
import inspect
import socket
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum

from loguru import logger as log

from src.constants import DEFAULT_RFCOMM_CHANNEL
from src.errors import DeviceConnectionError

# Bytes requested per socket read
READ_CHUNK_SIZE = 128

# Chunks waiting for listeners before new ones are dropped
DEFAULT_QUEUE_SIZE = 64

Listener = Callable[[bytes], None] | Callable[[bytes], Awaitable[None]]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"  # retired after an I/O error


def mac_to_bdaddr(mac: str) -> bytes:
    """
    Parse a MAC like "11:75:58:70:53:FA" into sockaddr_rc byte order.

    Bluetooth stores the address little-endian, so the bytes come out
    reversed relative to the human readable form.

    DeviceConnection uses it to validate the address; the socket itself is
    given the string form.
    """
    raw = mac.strip().replace(":", "").replace("-", "")
    try:
        octets = bytes.fromhex(raw)
    except ValueError:
        raise ValueError(f"invalid mac {mac!r}") from None
    if len(octets) != 6:
        raise ValueError(f"invalid mac {mac!r}")
    return octets[::-1]


def bdaddr_to_mac(bdaddr: bytes) -> str:
    """Format a little-endian bdaddr back into colon-hex notation."""
    return ":".join(f"{b:02X}" for b in reversed(bdaddr))


class DeviceConnection:
    """
    A single session to one device on one RFCOMM channel.

    Use as an async context manager, or call connect() / disconnect().
    Listeners receive raw chunks exactly as read from the socket; envelopes
    may be split across chunks (see EnvelopeAssembler).
    """

    def __init__(
        self,
        address: str,
        channel: int = DEFAULT_RFCOMM_CHANNEL,
        *,
        listeners: Iterable[Listener] = (),
        queue_size: int = DEFAULT_QUEUE_SIZE,
        workers: int = 1,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.address = address
        self.channel = channel
        self.queue_size = queue_size
        self.workers = workers
        self.dropped_chunks = 0
        self._listeners: list[Listener] = list(listeners)
        self._state = ConnectionState.DISCONNECTED
        self._sock: socket.socket | None = None
        self._queue: asyncio.Queue[bytes] | None = None
        self._write_lock: asyncio.Lock | None = None
        self._tasks: list[asyncio.Task] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is ConnectionState.ACTIVE

    def add_listener(self, listener: Listener) -> None:
        """Register a callable invoked with every received chunk."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    async def _open_socket(self, bdaddr: bytes) -> socket.socket:
        """Create the RFCOMM socket and connect it. No timeout is applied."""
        sock = socket.socket(
            socket.AF_BLUETOOTH, socket.SOCK_STREAM, socket.BTPROTO_RFCOMM
        )
        sock.setblocking(False)
        try:
            # CPython wants the colon-hex string and builds sockaddr_rc from it,
            # so the parsed bdaddr only gets formatted back in canonical form
            await asyncio.get_running_loop().sock_connect(
                sock, (bdaddr_to_mac(bdaddr), self.channel)
            )
        except BaseException:
            sock.close()
            raise
        return sock

    async def connect(self) -> None:
        """
        Connect to the device and start the read loop.

        Raises:
            DeviceConnectionError: If the address is invalid or the socket
                cannot be opened or connected. The state stays DISCONNECTED.
        """
        if self._state in (ConnectionState.CONNECTING, ConnectionState.ACTIVE):
            raise DeviceConnectionError(f"already {self._state.value}")
        if self._tasks or self._sock is not None:
            # Leftovers from a retired session
            await self.disconnect()

        self._state = ConnectionState.CONNECTING
        log.info("Connecting to {} on RFCOMM channel {}", self.address, self.channel)
        try:
            # Raises ValueError for a malformed address before any socket exists
            bdaddr = mac_to_bdaddr(self.address)
            log.debug("bdaddr (sockaddr_rc order): {}", bdaddr.hex())
            sock = await self._open_socket(bdaddr)
        except (ValueError, OSError, AttributeError) as e:
            # AttributeError: this Python was built without AF_BLUETOOTH
            self._state = ConnectionState.DISCONNECTED
            raise DeviceConnectionError(
                f"connect failed (mac={self.address} ch={self.channel}): {e}"
            ) from e
        except BaseException:
            self._state = ConnectionState.DISCONNECTED
            raise

        sock.setblocking(False)
        self._sock = sock
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._write_lock = asyncio.Lock()
        self.dropped_chunks = 0
        self._state = ConnectionState.ACTIVE
        self._tasks = [asyncio.create_task(self._read_loop(sock))]
        self._tasks.extend(
            asyncio.create_task(self._dispatch_worker(self._queue))
            for _ in range(self.workers)
        )
        log.info("Connected to {}", self.address)

    async def disconnect(self) -> None:
        """Stop background tasks and close the socket unconditionally."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._sock is not None:
            log.debug("Closing socket to {}", self.address)
            self._sock.close()
            self._sock = None
        self._queue = None
        self._state = ConnectionState.DISCONNECTED

    async def __aenter__(self) -> "DeviceConnection":
        await self.connect()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.disconnect()

    def _retire(self, reason: str) -> None:
        """Mark the session dead after an I/O failure. No reconnect is tried."""
        if self._state is ConnectionState.ACTIVE:
            log.warning("Connection to {} lost: {}", self.address, reason)
        self._state = ConnectionState.CLOSED

    async def _write(self, message: bytes) -> None:
        if self._state is not ConnectionState.ACTIVE or self._sock is None:
            raise DeviceConnectionError("device not connected")
        log.debug("Sending: {}", message.hex())
        try:
            await asyncio.get_running_loop().sock_sendall(self._sock, message)
        except OSError as e:
            self._retire(f"write failed: {e}")
            raise DeviceConnectionError(f"write failed: {e}") from e

    async def send(self, message: bytes) -> None:
        """
        Write one envelope to the device.

        Raises:
            DeviceConnectionError: If the session is not active, or the
                write fails (which retires the session).
        """
        if not self.is_active or self._write_lock is None:
            raise DeviceConnectionError("device not connected")
        async with self._write_lock:
            await self._write(message)

    async def send_all(self, messages: Iterable[bytes]) -> None:
        """Write several envelopes back to back without interleaving."""
        if not self.is_active or self._write_lock is None:
            raise DeviceConnectionError("device not connected")
        async with self._write_lock:
            for message in messages:
                await self._write(message)

    async def _read_loop(self, sock: socket.socket) -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                chunk = await loop.sock_recv(sock, READ_CHUNK_SIZE)
            except OSError as e:
                self._retire(f"read failed: {e}")
                return
            if not chunk:
                self._retire("closed by device")
                return
            log.debug("Received: {}", chunk.hex())
            self._enqueue(chunk)

    def _enqueue(self, chunk: bytes) -> None:
        if self._queue is None:
            return
        try:
            self._queue.put_nowait(chunk)
        except asyncio.QueueFull:
            # Listeners are behind; drop the newest chunk rather than block reads
            self.dropped_chunks += 1
            log.warning(
                "Listener queue full, dropped {} byte chunk ({} dropped so far)",
                len(chunk),
                self.dropped_chunks,
            )

    async def _dispatch_worker(self, queue: asyncio.Queue) -> None:
        while True:
            chunk = await queue.get()
            try:
                for listener in list(self._listeners):
                    await self._notify(listener, chunk)
            finally:
                queue.task_done()

    async def _notify(self, listener: Listener, chunk: bytes) -> None:
        try:
            if inspect.iscoroutinefunction(listener):
                await listener(chunk)
            else:
                # Plain callables run off the loop so a slow one cannot stall reads
                await asyncio.to_thread(listener, chunk)
        except Exception as e:
            log.opt(exception=e).error("Listener {!r} failed", listener)
