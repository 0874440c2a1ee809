"""Delimiter-based frame extraction for byte streams.

Collects bytes until the delimiter shows up and hands back the complete
frame (delimiter included), ready for ``FrameCodec.decode``.
"""

from __future__ import annotations

import logging

from cobsio.io.cobs import DEFAULT_DELIMITER

log = logging.getLogger(__name__)

DEFAULT_MAX_FRAME_LEN = 1024


class FrameExtractor:
    """Split an incoming byte stream into delimiter-terminated frames.

    A bare delimiter with nothing buffered before it is idle fill and is
    skipped. A partial frame longer than ``max_frame_len`` is discarded up to
    the next delimiter, so one lost delimiter can't swallow the stream.
    """

    def __init__(
        self,
        delimiter: int = DEFAULT_DELIMITER,
        max_frame_len: int = DEFAULT_MAX_FRAME_LEN,
    ) -> None:
        self.delimiter = delimiter
        self.max_frame_len = max_frame_len
        self._buf = bytearray()
        self._discarding = False
        self.frames_too_long = 0

    @property
    def pending(self) -> int:
        return len(self._buf)

    def reset(self) -> None:
        self._buf.clear()
        self._discarding = False

    def feed(self, data: bytes) -> list[bytes]:
        """Consume ``data``; return every frame it completed."""
        frames: list[bytes] = []
        delim = self.delimiter
        start = 0
        while start < len(data):
            idx = data.find(delim, start)
            if idx < 0:
                self._append(data[start:])
                break
            self._append(data[start:idx])
            if self._discarding:
                self._discarding = False
            elif self._buf:
                self._buf.append(delim)
                frames.append(bytes(self._buf))
            self._buf.clear()
            start = idx + 1
        return frames

    def _append(self, data: bytes) -> None:
        if self._discarding or not data:
            return
        self._buf += data
        if len(self._buf) > self.max_frame_len:
            self.frames_too_long += 1
            log.warning(
                "frame too long (>%d bytes), discarding", self.max_frame_len
            )
            self._buf.clear()
            self._discarding = True
