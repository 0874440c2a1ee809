"""Tests for the cobsio CLI (one-shot commands)."""

from __future__ import annotations

import io
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from cobsio.io.cobs import encode
from cobsio.io.raw_logger import RawFrameLogger
from cobsio.main import build_config, parse_args, run


def _run(argv: list[str]) -> int:
    return run(parse_args(argv))


def test_encode_hex(capsys):
    assert _run(["encode", "0b160021"]) == 0
    assert capsys.readouterr().out.strip() == "030b16022100"


def test_decode_hex(capsys):
    assert _run(["decode", "020b01010100"]) == 0
    assert capsys.readouterr().out.strip() == "0b000000"


def test_decode_corrupt_exits_nonzero(capsys, caplog):
    assert _run(["decode", "0101"]) == 1
    assert capsys.readouterr().out == ""
    assert "MISSING_DELIMITER" in caplog.text


def test_invalid_hex(capsys):
    assert _run(["encode", "xyz"]) == 1
    assert capsys.readouterr().out == ""


def test_custom_delimiter(capsys):
    assert _run(["--delimiter", "0x7e", "encode", "7e"]) == 0
    assert capsys.readouterr().out.strip() == "7f7f7e"


def test_bad_delimiter_rejected():
    with pytest.raises(SystemExit):
        parse_args(["--delimiter", "300", "encode", "00"])


def test_encode_from_stdin(capsys, monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.StringIO("11 22 33 44\n"))
    assert _run(["encode"]) == 0
    assert capsys.readouterr().out.strip() == "051122334400"


def test_raw_round_trip(monkeypatch):
    payload = b"\x00\x01\x00" + bytes(range(1, 256))
    out = io.BytesIO()
    monkeypatch.setattr(
        sys, "stdin", SimpleNamespace(buffer=io.BytesIO(payload))
    )
    monkeypatch.setattr(sys, "stdout", SimpleNamespace(buffer=out))
    assert _run(["encode", "--raw"]) == 0
    assert out.getvalue() == encode(payload)


def test_replay(tmp_path: Path, capsys):
    logger = RawFrameLogger(tmp_path)
    logger.start()
    try:
        logger.log_frame(100, "uart0", encode(b"\x01\x00\x02"))
        logger.log_frame(200, "uart0", encode(b""))
    finally:
        logger.stop()
    log_file = next(tmp_path.glob("raw_*.bin"))

    assert _run(["replay", str(log_file)]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == ["100 uart0 010002", "200 uart0 "]


def test_replay_reports_corrupt(tmp_path: Path, capsys):
    logger = RawFrameLogger(tmp_path)
    logger.start()
    try:
        logger.log_frame(1, "uart0", bytes([3, 11, 22, 3, 33, 0]))
        logger.log_frame(2, "uart0", encode(b"\x05"))
    finally:
        logger.stop()
    log_file = next(tmp_path.glob("raw_*.bin"))

    assert _run(["replay", str(log_file)]) == 1
    assert capsys.readouterr().out.strip() == "2 uart0 05"


def test_replay_missing_file(tmp_path: Path):
    assert _run(["replay", str(tmp_path / "none.bin")]) == 1


def test_build_config_overrides(tmp_path: Path):
    path = tmp_path / "cobsio.yaml"
    path.write_text("serial:\n  port: /dev/ttyUSB0\n  baudrate: 9600\n")
    args = parse_args(
        ["--config", str(path), "listen", "--port", "/dev/ttyACM3", "--record", "x"]
    )
    cfg = build_config(args)
    assert cfg.serial.port == "/dev/ttyACM3"
    assert cfg.serial.baudrate == 9600
    assert args.record == "x"


def test_build_config_serve():
    args = parse_args(["--delimiter", "1", "serve", "--http-port", "9001"])
    cfg = build_config(args)
    assert cfg.codec.delimiter == 1
    assert cfg.network.http_port == 9001
    assert cfg.serial.port == "/dev/ttyACM0"
