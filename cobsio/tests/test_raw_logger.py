"""Tests for RawFrameLogger and read_entries."""

from __future__ import annotations

from pathlib import Path

from cobsio.io.cobs import decode, encode
from cobsio.io.raw_logger import (
    RawFrameLogger,
    _FRAME_LEN_FMT,
    _HEADER_FMT,
    read_entries,
)


def _only_log(tmp_path: Path) -> Path:
    files = sorted(tmp_path.glob("raw_*.bin"))
    assert len(files) == 1
    return files[0]


class TestRawFrameLogger:
    """Binary entry layout, enable/disable and rotation."""

    def test_entry_layout(self, tmp_path: Path):
        """[t:i64][src_len:u8][src:utf8][len:u16][frame], little-endian."""
        logger = RawFrameLogger(tmp_path)
        logger.start()
        try:
            frame = encode(b"\x11\x00\x22")
            logger.log_frame(1234567890123456789, "uart0", frame)
            assert logger.entries_written == 1
        finally:
            logger.stop()

        data = _only_log(tmp_path).read_bytes()
        (t_read,) = _HEADER_FMT.unpack_from(data, 0)
        assert t_read == 1234567890123456789

        offset = _HEADER_FMT.size
        assert data[offset] == len("uart0")
        offset += 1
        assert data[offset : offset + 5] == b"uart0"
        offset += 5

        (frame_len,) = _FRAME_LEN_FMT.unpack_from(data, offset)
        offset += _FRAME_LEN_FMT.size
        assert frame_len == len(frame)
        assert data[offset:] == frame

    def test_disabled_before_start_and_after_stop(self, tmp_path: Path):
        logger = RawFrameLogger(tmp_path)
        assert not logger.enabled
        logger.log_frame(0, "uart0", b"\x01\x00")
        logger.start()
        logger.stop()
        assert not logger.enabled
        logger.log_frame(0, "uart0", b"\x01\x00")
        assert logger.entries_written == 0

    def test_creates_log_dir(self, tmp_path: Path):
        log_dir = tmp_path / "nested" / "raw"
        logger = RawFrameLogger(log_dir)
        logger.start()
        logger.stop()
        assert log_dir.is_dir()
        assert logger.path is not None and logger.path.parent == log_dir

    def test_rotation_keeps_every_entry(self, tmp_path: Path):
        # 8 + 1 + 1 + 2 + 10 = 22 bytes per entry; rotates every 5 entries
        logger = RawFrameLogger(tmp_path, max_bytes=100, max_files=50)
        logger.start()
        try:
            for i in range(12):
                logger.log_frame(i, "r", b"\xaa" * 9 + b"\x00")
        finally:
            logger.stop()

        files = sorted(tmp_path.glob("raw_*.bin"))
        assert len(files) == 3
        stamps = [e.t_rx_ns for f in files for e in read_entries(f)]
        assert stamps == list(range(12))

    def test_max_files_cleanup(self, tmp_path: Path):
        logger = RawFrameLogger(tmp_path, max_bytes=50, max_files=3)
        logger.start()
        try:
            for i in range(200):
                logger.log_frame(i, "r", b"\xbb" * 20)
        finally:
            logger.stop()

        assert len(list(tmp_path.glob("raw_*.bin"))) <= 3


class TestReadEntries:
    def test_replay_decodes(self, tmp_path: Path):
        payloads = [b"", b"\x00", b"\x01\x02\x00\x03", bytes(range(1, 255)) * 2]
        logger = RawFrameLogger(tmp_path)
        logger.start()
        try:
            for i, p in enumerate(payloads):
                logger.log_frame(i * 10, "uart0" if i % 2 else "uart1", encode(p))
        finally:
            logger.stop()

        entries = list(read_entries(_only_log(tmp_path)))
        assert [e.t_rx_ns for e in entries] == [0, 10, 20, 30]
        assert [e.src_id for e in entries] == ["uart1", "uart0", "uart1", "uart0"]
        assert [decode(e.raw_frame) for e in entries] == payloads

    def test_truncated_tail_ignored(self, tmp_path: Path):
        logger = RawFrameLogger(tmp_path)
        logger.start()
        try:
            logger.log_frame(1, "a", b"\x02\x05\x00")
            logger.log_frame(2, "a", b"\x02\x06\x00")
        finally:
            logger.stop()

        path = _only_log(tmp_path)
        path.write_bytes(path.read_bytes()[:-2])
        entries = list(read_entries(path))
        assert [e.raw_frame for e in entries] == [b"\x02\x05\x00"]

    def test_truncated_header_ignored(self, tmp_path: Path):
        path = tmp_path / "raw_1.bin"
        path.write_bytes(_HEADER_FMT.pack(5)[:4])
        assert list(read_entries(path)) == []

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "raw_1.bin"
        path.write_bytes(b"")
        assert list(read_entries(path)) == []
