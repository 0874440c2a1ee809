"""Raw binary frame logger.

Record format per entry:
    [t_rx_ns:i64-LE] [src_id_len:u8] [src_id:utf8] [frame_len:u16-LE] [raw_bytes:N]

raw_bytes is the frame exactly as received, terminal delimiter included,
so entries can be fed straight back through ``FrameCodec.decode`` for replay.
"""

from __future__ import annotations

import logging
import struct
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator

log = logging.getLogger(__name__)

_HEADER_FMT = struct.Struct("<q")  # t_rx_ns: i64-LE
_FRAME_LEN_FMT = struct.Struct("<H")  # frame_len: u16-LE

# Default: rotate at 50 MB, keep 5 files
DEFAULT_MAX_BYTES = 50 * 1024 * 1024
DEFAULT_MAX_FILES = 5


@dataclass(slots=True)
class LoggedFrame:
    t_rx_ns: int
    src_id: str
    raw_frame: bytes


class RawFrameLogger:
    """Append-only binary logger for deterministic frame replay.

    Thread-safety: NOT thread-safe.  Call from the serial transport's
    event-loop thread only (same thread that calls _dispatch_frame).
    """

    def __init__(
        self,
        log_dir: Path,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        max_files: int = DEFAULT_MAX_FILES,
    ) -> None:
        self._log_dir = Path(log_dir)
        self._max_bytes = max_bytes
        self._max_files = max_files
        self._file: BinaryIO | None = None
        self._path: Path | None = None
        self._bytes_written: int = 0
        self._entries_written: int = 0
        self._enabled: bool = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def entries_written(self) -> int:
        return self._entries_written

    @property
    def path(self) -> Path | None:
        return self._path

    def start(self) -> None:
        """Open a new log file and begin recording."""
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._open_next()
        self._enabled = True
        log.info("raw logger: started → %s", self._path)

    def stop(self) -> None:
        """Flush and close the current log file."""
        self._enabled = False
        if self._file:
            try:
                self._file.flush()
                self._file.close()
            except OSError as e:
                log.warning("raw logger: close error: %s", e)
            self._file = None
        log.info("raw logger: stopped (%d entries)", self._entries_written)

    def log_frame(self, t_rx_ns: int, src_id: str, raw_frame: bytes) -> None:
        """Record a single raw COBS frame with its receive timestamp."""
        if not self._enabled or self._file is None:
            return

        src_bytes = src_id.encode("utf-8")[:255]
        entry = (
            _HEADER_FMT.pack(t_rx_ns)
            + bytes([len(src_bytes)])
            + src_bytes
            + _FRAME_LEN_FMT.pack(len(raw_frame))
            + raw_frame
        )

        try:
            self._file.write(entry)
            self._bytes_written += len(entry)
            self._entries_written += 1
        except OSError as e:
            log.warning("raw logger: write error: %s", e)
            return

        if self._bytes_written >= self._max_bytes:
            self._rotate()

    def _rotate(self) -> None:
        """Close current file and open a new one."""
        if self._file:
            self._file.flush()
            self._file.close()
            self._file = None

        self._open_next()
        log.info("raw logger: rotated → %s", self._path)

    def _open_next(self) -> None:
        self._rotate_if_needed()
        # Names sort in creation order; _rotate_if_needed relies on it.
        stamp = time.time_ns()
        path = self._log_dir / f"raw_{stamp}.bin"
        while path.exists():
            stamp += 1
            path = self._log_dir / f"raw_{stamp}.bin"
        self._file = open(path, "ab")  # noqa: SIM115
        self._path = path
        self._bytes_written = 0

    def _rotate_if_needed(self) -> None:
        """Remove oldest log files if we exceed max_files."""
        files = sorted(self._log_dir.glob("raw_*.bin"), key=lambda p: p.name)
        while len(files) >= self._max_files:
            oldest = files.pop(0)
            try:
                oldest.unlink()
                log.info("raw logger: removed old log %s", oldest.name)
            except OSError as e:
                log.warning("raw logger: can't remove %s: %s", oldest.name, e)


def read_entries(path: str | Path) -> Iterator[LoggedFrame]:
    """Iterate the entries of a raw log file in recording order.

    A truncated trailing entry (e.g. power loss mid-write) ends iteration
    with a warning.
    """
    data = Path(path).read_bytes()
    offset = 0
    while offset < len(data):
        try:
            (t_ns,) = _HEADER_FMT.unpack_from(data, offset)
            offset += _HEADER_FMT.size
            src_len = data[offset]
            offset += 1
            src_id = data[offset : offset + src_len].decode("utf-8", "replace")
            offset += src_len
            (frame_len,) = _FRAME_LEN_FMT.unpack_from(data, offset)
            offset += _FRAME_LEN_FMT.size
        except (struct.error, IndexError):
            log.warning("raw log %s: truncated entry header at end", path)
            return
        frame = data[offset : offset + frame_len]
        if len(frame) != frame_len:
            log.warning("raw log %s: truncated frame at end", path)
            return
        offset += frame_len
        yield LoggedFrame(t_rx_ns=t_ns, src_id=src_id, raw_frame=frame)
