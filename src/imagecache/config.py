from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError
from .util.http import DEFAULT_USER_AGENT

DEFAULT_DATA_DIR = "/data"
DEFAULT_IMAGE_URL = "https://picsum.photos/1200"
DEFAULT_TOUCH_URL = "http://127.0.0.1:3001/touch"
DEFAULT_PINGPONG_URL = "http://pingpong-svc/pingpong"


class LockSettings(BaseModel):
    # kept independent of each other and of the download timeout
    stale_after_seconds: float = Field(default=60.0, gt=0)
    timeout_seconds: float = Field(default=15.0, gt=0)
    retry_seconds: float = Field(default=0.15, gt=0)


class OwnerSettings(BaseModel):
    data_dir: Path = Field(default=Path(DEFAULT_DATA_DIR))
    image_url: str = Field(default=DEFAULT_IMAGE_URL)
    ttl_ms: int = Field(default=600_000, ge=0)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001, ge=1, le=65535)
    download_timeout_seconds: float = Field(default=30.0, gt=0)
    download_retries: int = Field(default=2, ge=0)
    min_image_bytes: int = Field(default=1024, ge=0)
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    lock: LockSettings = Field(default_factory=LockSettings)
    logs_dir: Optional[Path] = None
    log_level: str = Field(default="INFO")
    enable_shutdown: bool = Field(default=False)


class ConsumerSettings(BaseModel):
    data_dir: Path = Field(default=Path(DEFAULT_DATA_DIR))
    touch_url: str = Field(default=DEFAULT_TOUCH_URL)
    pingpong_url: str = Field(default=DEFAULT_PINGPONG_URL)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)
    touch_timeout_seconds: float = Field(default=8.0, gt=0)
    pingpong_timeout_seconds: float = Field(default=2.5, gt=0)
    poll_attempts: int = Field(default=80, ge=0)
    poll_interval_seconds: float = Field(default=0.1, ge=0)
    logs_dir: Optional[Path] = None
    log_level: str = Field(default="INFO")
    enable_shutdown: bool = Field(default=False)


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _env_str(key: str, default: str) -> str:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return value


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from exc


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from exc


def _env_optional_path(key: str) -> Optional[Path]:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return None
    return Path(value).expanduser()


def _cli_or_env_str(cli_value: str | None, env_key: str, default: str) -> str:
    if cli_value is not None:
        return cli_value
    return _env_str(env_key, default)


def _cli_or_env_int(cli_value: int | None, env_key: str, default: int) -> int:
    if cli_value is not None:
        return int(cli_value)
    return _env_int(env_key, default)


def _common(cli_args: dict[str, Any]) -> dict[str, Any]:
    logs_dir = cli_args.get("logs_dir")
    return {
        "data_dir": Path(_cli_or_env_str(cli_args.get("data_dir"), "DATA_DIR", DEFAULT_DATA_DIR)).expanduser(),
        "host": _cli_or_env_str(cli_args.get("host"), "HOST", "0.0.0.0"),
        "logs_dir": Path(logs_dir).expanduser() if logs_dir else _env_optional_path("LOGS_DIR"),
        "log_level": _env_str("LOG_LEVEL", "INFO").upper(),
        "enable_shutdown": _env_bool("ENABLE_SHUTDOWN", False),
    }


def load_owner_settings(cli_args: dict[str, Any] | None = None) -> OwnerSettings:
    load_dotenv(find_dotenv(usecwd=True))
    cli_args = cli_args or {}

    try:
        data: dict[str, Any] = {
            **_common(cli_args),
            "image_url": _cli_or_env_str(cli_args.get("image_url"), "IMAGE_URL", DEFAULT_IMAGE_URL),
            "ttl_ms": _cli_or_env_int(cli_args.get("ttl_ms"), "TTL_MS", 600_000),
            "port": _cli_or_env_int(cli_args.get("port"), "PORT", 3001),
            "download_timeout_seconds": _env_float("DOWNLOAD_TIMEOUT_SECONDS", 30.0),
            "download_retries": _env_int("DOWNLOAD_RETRIES", 2),
            "min_image_bytes": _env_int("MIN_IMAGE_BYTES", 1024),
            "user_agent": _env_str("USER_AGENT", DEFAULT_USER_AGENT),
            "lock": LockSettings(
                stale_after_seconds=_env_float("LOCK_STALE_SECONDS", 60.0),
                timeout_seconds=_env_float("LOCK_TIMEOUT_SECONDS", 15.0),
                retry_seconds=_env_float("LOCK_RETRY_SECONDS", 0.15),
            ),
        }
        return OwnerSettings(**data)
    except (ValueError, ValidationError) as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def load_consumer_settings(cli_args: dict[str, Any] | None = None) -> ConsumerSettings:
    load_dotenv(find_dotenv(usecwd=True))
    cli_args = cli_args or {}

    try:
        data: dict[str, Any] = {
            **_common(cli_args),
            "touch_url": _cli_or_env_str(cli_args.get("touch_url"), "IMAGE_CACHE_URL", DEFAULT_TOUCH_URL),
            "pingpong_url": _cli_or_env_str(cli_args.get("pingpong_url"), "PINGPONG_URL", DEFAULT_PINGPONG_URL),
            "port": _cli_or_env_int(cli_args.get("port"), "PORT", 3000),
            "touch_timeout_seconds": _env_float("TOUCH_TIMEOUT_SECONDS", 8.0),
            "pingpong_timeout_seconds": _env_float("PINGPONG_TIMEOUT_SECONDS", 2.5),
            "poll_attempts": _env_int("POLL_ATTEMPTS", 80),
            "poll_interval_seconds": _env_float("POLL_INTERVAL_SECONDS", 0.1),
        }
        return ConsumerSettings(**data)
    except (ValueError, ValidationError) as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
