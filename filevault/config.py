import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BACKENDS = ("memory", "persistent")

DEFAULT_MAX_UPLOAD_SIZE = 50 * 1024 * 1024


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration for the vault.

    `backend` picks the storage variant for file records, share grants and
    the user directory: "memory" keeps everything in process, "persistent"
    writes JSON indexes and ciphertext blobs under `data_dir`.
    """

    backend: str = "memory"
    data_dir: Path = Path("vault")
    max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE
    access_log_limit: int = 5
    queue_size: int = 100
    ping_interval: float = 30.0
    ping_timeout: float = 90.0
    compensation_attempts: int = 3
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ValueError(f"unknown backend {self.backend!r}, expected one of {BACKENDS}")
        if self.ping_timeout < self.ping_interval:
            raise ValueError("ping timeout must not be shorter than the ping interval")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        load_dotenv(env_file)
        return cls(
            backend=os.getenv("FILEVAULT_BACKEND", "memory").strip().lower(),
            data_dir=Path(os.getenv("FILEVAULT_DATA_DIR", "vault")).expanduser(),
            max_upload_size=_int_env("FILEVAULT_MAX_UPLOAD_SIZE", DEFAULT_MAX_UPLOAD_SIZE),
            access_log_limit=_int_env("FILEVAULT_ACCESS_LOG_LIMIT", 5),
            queue_size=_int_env("FILEVAULT_QUEUE_SIZE", 100),
            ping_interval=_float_env("FILEVAULT_PING_INTERVAL", 30.0),
            ping_timeout=_float_env("FILEVAULT_PING_TIMEOUT", 90.0),
            compensation_attempts=_int_env("FILEVAULT_COMPENSATION_ATTEMPTS", 3),
            log_level=os.getenv("FILEVAULT_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
