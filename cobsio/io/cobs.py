"""COBS (Consistent Overhead Byte Stuffing) encode/decode.

Wire format: [prefix] [data...] [prefix] [data...] ... [delimiter]

Each prefix byte holds ``len(chunk) + 1`` (XOR the delimiter, so a prefix
never collides with it). A prefix of 0xFF marks a full 254-byte chunk that
is NOT followed by a delimiter in the original payload; every other prefix
implies one delimiter after its data, except at the end of the frame.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Union

DEFAULT_DELIMITER = 0x00
MAX_CHUNK = 254  # data bytes per prefix; 0xFF = full chunk, no delimiter

BytesLike = Union[bytes, bytearray, memoryview, Iterable[int]]


class CorruptKind(str, Enum):
    MISSING_DELIMITER = "missing terminal delimiter"
    INVALID_LENGTH = "invalid chunk length"


class CorruptFrameError(ValueError):
    """Encoded frame violates COBS framing. ``kind`` tells which rule broke."""

    def __init__(self, kind: CorruptKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        msg = kind.value if not detail else f"{kind.value}: {detail}"
        super().__init__(msg)


@dataclass(frozen=True, slots=True)
class DecodeResult:
    payload: bytes | None = None
    error: CorruptFrameError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# -- Segmentation helpers ---------------------------------------------------


def split_on(data: bytes, delimiter: int) -> Iterator[bytes]:
    """Yield the runs of bytes between ``delimiter`` occurrences.

    Leading, trailing and back-to-back delimiters yield empty runs, and an
    empty buffer yields a single empty run:

        split_on(b"\\x01\\x02\\x00\\x03", 0) -> b"\\x01\\x02", b"\\x03"
        split_on(b"\\x00\\x00", 0)           -> b"", b"", b""
    """
    start = 0
    while True:
        idx = data.find(delimiter, start)
        if idx < 0:
            yield data[start:]
            return
        yield data[start:idx]
        start = idx + 1


def chunks_of(group: bytes, size: int) -> Iterator[bytes]:
    """Yield ``size``-byte chunks of ``group``; the last one may be shorter.

    An empty group yields exactly one empty chunk so the encoder still
    writes a prefix byte for it.
    """
    if not group:
        yield b""
        return
    for start in range(0, len(group), size):
        yield group[start : start + size]


def max_encoded_len(n: int, max_chunk: int = MAX_CHUNK) -> int:
    """Upper bound on ``len(encode(payload))`` for an ``n``-byte payload."""
    return n + math.ceil(max(n, 1) / max_chunk) + 1


# -- Codec ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FrameCodec:
    """COBS codec bound to a delimiter value and chunk size."""

    delimiter: int = DEFAULT_DELIMITER
    max_chunk: int = MAX_CHUNK

    def __post_init__(self) -> None:
        if not 0 <= self.delimiter <= 0xFF:
            raise ValueError(f"delimiter must be a byte value, got {self.delimiter}")
        if not 1 <= self.max_chunk <= MAX_CHUNK:
            raise ValueError(
                f"max_chunk must be in 1..{MAX_CHUNK}, got {self.max_chunk}"
            )

    @property
    def full_code(self) -> int:
        return self.max_chunk + 1

    def encode(self, data: BytesLike) -> bytes:
        """COBS-encode data and append the terminal delimiter."""
        delim = self.delimiter
        out = bytearray()
        code = 0

        for group in split_on(bytes(data), delim):
            if code == self.full_code:
                # Previous group ended on a full chunk, which never implies a
                # delimiter; give the real one its own empty chunk.
                out.append(1 ^ delim)
            for chunk in chunks_of(group, self.max_chunk):
                code = len(chunk) + 1
                out.append(code ^ delim)
                out += chunk

        out.append(delim)
        return bytes(out)

    def decode(self, data: BytesLike) -> bytes:
        """COBS-decode one frame. Input must include the terminal delimiter."""
        buf = bytes(data)
        delim = self.delimiter
        if not buf or buf[-1] != delim:
            raise CorruptFrameError(
                CorruptKind.MISSING_DELIMITER,
                f"frame does not end with 0x{delim:02x}",
            )

        end = len(buf) - 1
        out = bytearray()
        pos = 0

        while pos < end:
            code = buf[pos] ^ delim
            if code == 0 or code > self.full_code or pos + code > end:
                raise CorruptFrameError(
                    CorruptKind.INVALID_LENGTH,
                    f"prefix {code} at offset {pos} in {len(buf)}-byte frame",
                )
            out += buf[pos + 1 : pos + code]
            pos += code

            if pos < end and code < self.full_code:
                out.append(delim)

        return bytes(out)

    def try_decode(self, data: BytesLike) -> DecodeResult:
        try:
            return DecodeResult(payload=self.decode(data))
        except CorruptFrameError as e:
            return DecodeResult(error=e)


def encode(data: BytesLike, delimiter: int = DEFAULT_DELIMITER) -> bytes:
    """COBS-encode data. Appends the terminal delimiter."""
    return FrameCodec(delimiter).encode(data)


def decode(data: BytesLike, delimiter: int = DEFAULT_DELIMITER) -> bytes:
    """COBS-decode data. Input must include the terminal delimiter."""
    return FrameCodec(delimiter).decode(data)


def try_decode(data: BytesLike, delimiter: int = DEFAULT_DELIMITER) -> DecodeResult:
    return FrameCodec(delimiter).try_decode(data)
