"""cobsio command-line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from cobsio.config import AppConfig, load_config
from cobsio.io.cobs import CorruptFrameError, FrameCodec

log = logging.getLogger(__name__)


def _byte_value(text: str) -> int:
    value = int(text, 0)
    if not 0 <= value <= 0xFF:
        raise argparse.ArgumentTypeError(f"not a byte value: {text}")
    return value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="cobsio", description="COBS framing: encode, decode, serial I/O"
    )
    p.add_argument("--config", default=None, help="YAML config file path")
    p.add_argument("--log-level", default="INFO", help="Log level")
    p.add_argument(
        "--delimiter",
        type=_byte_value,
        default=None,
        help="Frame delimiter byte, e.g. 0 or 0x7e (default: from config, 0)",
    )
    sub = p.add_subparsers(dest="command", required=True)

    for name, what in (("encode", "payload"), ("decode", "COBS frame")):
        sp = sub.add_parser(name, help=f"{name} a {what}")
        sp.add_argument(
            "data", nargs="?", default=None, help=f"{what} as hex (default: stdin)"
        )
        sp.add_argument(
            "--raw",
            action="store_true",
            help="Read raw bytes from stdin and write raw bytes to stdout",
        )

    sp = sub.add_parser("listen", help="Print decoded frames from a serial port")
    sp.add_argument("--port", default=None, help="Serial port (default: from config)")
    sp.add_argument("--baudrate", type=int, default=None, help="Baud rate")
    sp.add_argument(
        "--record", default=None, help="Record raw frames into this directory"
    )

    sp = sub.add_parser("replay", help="Decode frames from a raw frame log")
    sp.add_argument("path", help="raw_*.bin log file")

    sp = sub.add_parser("serve", help="Run the HTTP encode/decode service")
    sp.add_argument("--port", default=None, help="Attach to this serial port")
    sp.add_argument("--baudrate", type=int, default=None, help="Baud rate")
    sp.add_argument("--http-port", type=int, default=None, help="HTTP server port")
    sp.add_argument("--host", default=None, help="HTTP bind address")

    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    if args.delimiter is not None:
        cfg.codec.delimiter = args.delimiter
    if getattr(args, "baudrate", None) is not None:
        cfg.serial.baudrate = args.baudrate
    if args.command in ("listen", "serve") and args.port is not None:
        cfg.serial.port = args.port
    if getattr(args, "http_port", None) is not None:
        cfg.network.http_port = args.http_port
    if getattr(args, "host", None) is not None:
        cfg.network.host = args.host
    return cfg


# -- one-shot commands ------------------------------------------------------


def _read_input(args: argparse.Namespace) -> bytes:
    if args.raw:
        return sys.stdin.buffer.read()
    text = args.data if args.data is not None else sys.stdin.read()
    return bytes.fromhex(text.strip())


def _write_output(args: argparse.Namespace, data: bytes) -> None:
    if args.raw:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
    else:
        print(data.hex())


def cmd_encode(args: argparse.Namespace, codec: FrameCodec) -> int:
    try:
        data = _read_input(args)
    except ValueError as e:
        log.error("invalid hex input: %s", e)
        return 1
    _write_output(args, codec.encode(data))
    return 0


def cmd_decode(args: argparse.Namespace, codec: FrameCodec) -> int:
    try:
        data = _read_input(args)
    except ValueError as e:
        log.error("invalid hex input: %s", e)
        return 1
    result = codec.try_decode(data)
    if not result.ok:
        log.error("corrupt frame (%s): %s", result.error.kind.name, result.error)
        return 1
    _write_output(args, result.payload)
    return 0


def cmd_replay(args: argparse.Namespace, codec: FrameCodec) -> int:
    from cobsio.io.raw_logger import read_entries

    path = Path(args.path)
    if not path.exists():
        log.error("no such log file: %s", path)
        return 1

    ok = bad = 0
    for entry in read_entries(path):
        try:
            payload = codec.decode(entry.raw_frame)
        except CorruptFrameError as e:
            bad += 1
            log.warning("%s @%d: %s", entry.src_id, entry.t_rx_ns, e)
            continue
        ok += 1
        print(f"{entry.t_rx_ns} {entry.src_id} {payload.hex()}")

    log.info("replay: %d frames decoded, %d corrupt", ok, bad)
    return 0 if bad == 0 else 1


# -- long-running commands --------------------------------------------------


async def run_listen(cfg: AppConfig, codec: FrameCodec, record_dir: str | None) -> None:
    from cobsio.io.raw_logger import RawFrameLogger
    from cobsio.io.serial_transport import SerialTransport

    transport = SerialTransport(
        cfg.serial.port,
        cfg.serial.baudrate,
        label="listen",
        codec=codec,
        max_frame_len=cfg.serial.max_frame_len,
    )
    transport.on_payload(lambda payload: print(payload.hex(), flush=True))

    raw_logger = None
    if record_dir is None and cfg.logging.record_raw:
        record_dir = cfg.logging.record_dir
    if record_dir is not None:
        raw_logger = RawFrameLogger(
            Path(record_dir),
            max_bytes=cfg.logging.record_max_mb * 1024 * 1024,
            max_files=cfg.logging.record_max_files,
        )
        raw_logger.start()
        transport.on_raw_frame(raw_logger.log_frame)

    await transport.start()
    log.info("listening on %s @ %d baud", cfg.serial.port, cfg.serial.baudrate)
    try:
        await asyncio.Event().wait()
    finally:
        await transport.stop()
        if raw_logger:
            raw_logger.stop()


async def run_serve(cfg: AppConfig, codec: FrameCodec, attach: bool) -> None:
    import uvicorn

    from cobsio.api.http_server import create_app
    from cobsio.io.serial_transport import SerialTransport

    transport = None
    if attach:
        transport = SerialTransport(
            cfg.serial.port,
            cfg.serial.baudrate,
            label="serve",
            codec=codec,
            max_frame_len=cfg.serial.max_frame_len,
        )
        transport.on_payload(
            lambda payload: log.info("rx %d bytes: %s", len(payload), payload.hex())
        )

    app = create_app(codec, transport)
    http_server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=cfg.network.host,
            port=cfg.network.http_port,
            log_level="warning",
        )
    )

    log.info(
        "serving on http://%s:%d (serial=%s)",
        cfg.network.host,
        cfg.network.http_port,
        cfg.serial.port if attach else None,
    )
    try:
        if transport:
            await transport.start()
        await http_server.serve()
    finally:
        log.info("shutting down...")
        if transport:
            await transport.stop()


def run(args: argparse.Namespace) -> int:
    cfg = build_config(args)
    try:
        codec = cfg.codec.build()
    except ValueError as e:
        log.error("bad codec settings: %s", e)
        return 1

    if args.command == "encode":
        return cmd_encode(args, codec)
    if args.command == "decode":
        return cmd_decode(args, codec)
    if args.command == "replay":
        return cmd_replay(args, codec)
    if args.command == "listen":
        asyncio.run(run_listen(cfg, codec, args.record))
        return 0
    if args.command == "serve":
        asyncio.run(run_serve(cfg, codec, attach=args.port is not None))
        return 0
    return 2


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-5s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    try:
        sys.exit(run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
