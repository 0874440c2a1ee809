"""Async serial transport with COBS framing and auto-reconnect.

Bytes read from the port go through a FrameExtractor; each complete frame
is decoded with the transport's FrameCodec and the payload handed to the
registered handlers. Frames that fail to decode are counted and dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Callable

import serial

from cobsio.io.cobs import CorruptFrameError, FrameCodec
from cobsio.io.framing import DEFAULT_MAX_FRAME_LEN, FrameExtractor

log = logging.getLogger(__name__)

# Reconnect backoff bounds
_RECONNECT_MIN_S = 0.5
_RECONNECT_MAX_S = 5.0

_READ_SIZE = 256
_READ_TIMEOUT_S = 0.05
_WRITE_TIMEOUT_S = 0.1

PayloadHandler = Callable[[bytes], None]
RawFrameHandler = Callable[[int, str, bytes], None]


def _mono_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(slots=True)
class TransportStats:
    connects: int = 0
    disconnects: int = 0
    reads: int = 0
    writes: int = 0
    rx_bytes: int = 0
    tx_bytes: int = 0
    frames_ok: int = 0
    frames_bad: int = 0
    write_errors: int = 0
    write_timeouts: int = 0
    last_rx_mono_ms: float = 0.0
    last_frame_mono_ms: float = 0.0
    last_bad_frame: str = ""
    last_error: str = ""


class SerialTransport:
    """pyserial port wrapped for asyncio, speaking COBS frames."""

    def __init__(
        self,
        port: str,
        baudrate: int = 115200,
        label: str = "serial",
        *,
        codec: FrameCodec | None = None,
        max_frame_len: int = DEFAULT_MAX_FRAME_LEN,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.label = label
        self.codec = codec or FrameCodec()
        self.stats = TransportStats()

        self._ser: serial.Serial | None = None
        self._extractor = FrameExtractor(self.codec.delimiter, max_frame_len)
        self._connected = False
        self._running = False
        self._task: asyncio.Task | None = None
        self._payload_handlers: list[PayloadHandler] = []
        self._raw_frame_cb: RawFrameHandler | None = None
        self._connect_cb: Callable[[], None] | None = None
        self._disconnect_cb: Callable[[], None] | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    def on_payload(self, cb: PayloadHandler) -> None:
        self._payload_handlers.append(cb)

    def on_raw_frame(self, cb: RawFrameHandler) -> None:
        """Called with (t_rx_ns, label, frame) for every frame, before decode."""
        self._raw_frame_cb = cb

    def on_connect(self, cb: Callable[[], None]) -> None:
        self._connect_cb = cb

    def on_disconnect(self, cb: Callable[[], None]) -> None:
        self._disconnect_cb = cb

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._running = False
        self._close()
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def send(self, payload: bytes) -> bool:
        """COBS-encode ``payload`` and write it as one frame."""
        return self.write(self.codec.encode(payload))

    def write(self, data: bytes) -> bool:
        """Write an already-framed buffer. Returns False if it wasn't sent."""
        self.stats.writes += 1
        ser = self._ser
        if ser is None or not self._connected:
            return False

        try:
            written = ser.write(data) or 0
        except serial.SerialTimeoutException as e:
            # frame dropped; port stays open
            self.stats.write_timeouts += 1
            self.stats.last_error = str(e)
            return False
        except (serial.SerialException, OSError) as e:
            self.stats.write_errors += 1
            self.stats.last_error = str(e)
            log.warning("%s: write error: %s", self.label, e)
            self._handle_disconnect()
            return False

        if written != len(data):
            self.stats.write_timeouts += 1
            self.stats.last_error = f"Short write ({written}/{len(data)} bytes)"
            return False
        self.stats.tx_bytes += written
        return True

    def debug_snapshot(self) -> dict:
        snap = asdict(self.stats)
        snap["last_rx_mono_ms"] = round(snap["last_rx_mono_ms"], 1)
        snap["last_frame_mono_ms"] = round(snap["last_frame_mono_ms"], 1)
        snap.update(
            port=self.port,
            label=self.label,
            connected=self._connected,
            delimiter=self.codec.delimiter,
            frames_too_long=self._extractor.frames_too_long,
            pending_bytes=self._extractor.pending,
        )
        return snap

    # -- internals -----------------------------------------------------------

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        backoff = _RECONNECT_MIN_S
        while self._running:
            if not self._connected:
                if not self._open():
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, _RECONNECT_MAX_S)
                    continue
                backoff = _RECONNECT_MIN_S

            try:
                data = await loop.run_in_executor(None, self._read_blocking)
            except (serial.SerialException, OSError) as e:
                self.stats.last_error = str(e)
                log.warning("%s: read error: %s", self.label, e)
                self._handle_disconnect()
                continue
            if data:
                self._feed(data)

    def _open(self) -> bool:
        try:
            self._ser = serial.Serial(
                self.port,
                self.baudrate,
                timeout=_READ_TIMEOUT_S,
                write_timeout=_WRITE_TIMEOUT_S,
            )
        except (serial.SerialException, OSError) as e:
            self.stats.last_error = str(e)
            log.debug("%s: can't open %s: %s", self.label, self.port, e)
            return False

        self.stats.connects += 1
        self._connected = True
        self._extractor.reset()
        log.info("%s: connected to %s @ %d", self.label, self.port, self.baudrate)
        if self._connect_cb:
            self._connect_cb()
        return True

    def _read_blocking(self) -> bytes:
        """Runs in the executor thread."""
        self.stats.reads += 1
        ser = self._ser
        if ser is None:
            return b""
        return ser.read(_READ_SIZE)

    def _feed(self, data: bytes) -> None:
        self.stats.rx_bytes += len(data)
        self.stats.last_rx_mono_ms = _mono_ms()
        for frame in self._extractor.feed(data):
            self._dispatch_frame(frame)

    def _dispatch_frame(self, frame: bytes) -> None:
        if self._raw_frame_cb:
            self._raw_frame_cb(time.time_ns(), self.label, frame)

        result = self.codec.try_decode(frame)
        if not result.ok:
            self._reject(frame, result.error)
            return

        self.stats.frames_ok += 1
        self.stats.last_frame_mono_ms = _mono_ms()
        for handler in self._payload_handlers:
            handler(result.payload)

    def _reject(self, frame: bytes, err: CorruptFrameError) -> None:
        self.stats.frames_bad += 1
        self.stats.last_bad_frame = str(err)
        log.debug("%s: bad %d-byte frame: %s", self.label, len(frame), err)

    def _handle_disconnect(self) -> None:
        if self._connected:
            self.stats.disconnects += 1
            self._connected = False
            log.warning("%s: disconnected from %s", self.label, self.port)
            if self._disconnect_cb:
                self._disconnect_cb()
        self._close()

    def _close(self) -> None:
        ser, self._ser = self._ser, None
        self._connected = False
        if ser is None:
            return
        try:
            ser.close()
        except (serial.SerialException, OSError) as e:
            log.debug("%s: close error: %s", self.label, e)
