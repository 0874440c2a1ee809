"""cobsio configuration with defaults, loadable from YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from cobsio.io.cobs import DEFAULT_DELIMITER, MAX_CHUNK, FrameCodec
from cobsio.io.framing import DEFAULT_MAX_FRAME_LEN

log = logging.getLogger(__name__)


@dataclass
class CodecConfig:
    delimiter: int = DEFAULT_DELIMITER
    max_chunk: int = MAX_CHUNK

    def build(self) -> FrameCodec:
        return FrameCodec(self.delimiter, self.max_chunk)


@dataclass
class SerialConfig:
    port: str = "/dev/ttyACM0"
    baudrate: int = 115200
    max_frame_len: int = DEFAULT_MAX_FRAME_LEN


@dataclass
class NetworkConfig:
    http_port: int = 8080
    host: str = "127.0.0.1"


@dataclass
class LoggingConfig:
    record_raw: bool = False
    record_dir: str = "/tmp/cobsio-logs"
    record_max_mb: int = 50
    record_max_files: int = 5


@dataclass
class AppConfig:
    codec: CodecConfig = field(default_factory=CodecConfig)
    serial: SerialConfig = field(default_factory=SerialConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = ("codec", "serial", "network", "logging")


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from YAML file, falling back to defaults."""
    if path is None:
        return AppConfig()

    path = Path(path)
    if not path.exists():
        log.warning("config file not found: %s, using defaults", path)
        return AppConfig()

    try:
        import yaml

        with open(path) as f:
            raw = yaml.safe_load(f) or {}

        cfg = AppConfig()
        for name in _SECTIONS:
            section = getattr(cfg, name)
            for k, v in (raw.get(name) or {}).items():
                if not hasattr(section, k):
                    log.warning("config: unknown key %s.%s ignored", name, k)
                    continue
                setattr(section, k, v)

        cfg.codec.build()  # raises ValueError on a bad delimiter/chunk size

        log.info("config loaded from %s", path)
        return cfg
    except Exception as e:
        log.warning("config load error: %s, using defaults", e)
        return AppConfig()
