from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .keys import DEFAULT_HASH_ALGORITHM, derive_key
from .util.http import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT

DEFAULT_CACHE_DIR = Path("~/.cache/download-cache")
ENV_PREFIX = "DOWNLOAD_CACHE_"


class CacheSettings(BaseModel):
    cache_dir: Path = Field(default=DEFAULT_CACHE_DIR)
    pending_dirname: str = Field(default="pending", min_length=1)
    fetcher: Literal["aiohttp", "httpx", "requests"] = Field(default="aiohttp")
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    chunk_size: int = Field(default=64 * 1024, gt=0)
    max_buffered_chunks: int = Field(default=0, ge=0)
    hash_algorithm: str = Field(default=DEFAULT_HASH_ALGORITHM)
    fsync: bool = Field(default=True)
    logs_dir: Optional[Path] = None

    model_config = {
        "validate_default": True,
    }

    @field_validator("cache_dir", "logs_dir")
    @classmethod
    def _expand(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None

    @field_validator("pending_dirname")
    @classmethod
    def _plain_name(cls, value: str) -> str:
        if "/" in value or "\\" in value or value in {".", ".."}:
            raise ValueError("pending_dirname must be a single directory name")
        return value

    @field_validator("hash_algorithm")
    @classmethod
    def _known_algorithm(cls, value: str) -> str:
        derive_key("", value)
        return value


def _env(key: str) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + key)
    if value is None or value.strip() == "":
        return None
    return value


def _env_bool(key: str, default: bool) -> bool:
    value = _env(key)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _pick(cli_args: dict[str, Any], name: str, env_key: str, default: Any) -> Any:
    if cli_args.get(name) is not None:
        return cli_args[name]
    value = _env(env_key)
    return default if value is None else value


def load_settings(cli_args: dict[str, Any] | None = None) -> CacheSettings:
    """Merge CLI values over ``DOWNLOAD_CACHE_*`` environment variables over defaults."""
    load_dotenv(find_dotenv(usecwd=True))
    cli_args = cli_args or {}

    data: dict[str, Any] = {
        "cache_dir": _pick(cli_args, "cache_dir", "DIR", DEFAULT_CACHE_DIR),
        "pending_dirname": _pick(cli_args, "pending_dirname", "PENDING_DIR", "pending"),
        "fetcher": str(_pick(cli_args, "fetcher", "FETCHER", "aiohttp")).lower(),
        "user_agent": _pick(cli_args, "user_agent", "USER_AGENT", DEFAULT_USER_AGENT),
        "timeout": _pick(cli_args, "timeout", "TIMEOUT", DEFAULT_TIMEOUT),
        "chunk_size": _pick(cli_args, "chunk_size", "CHUNK_SIZE", 64 * 1024),
        "max_buffered_chunks": _pick(cli_args, "max_buffered_chunks", "MAX_BUFFERED", 0),
        "hash_algorithm": _pick(cli_args, "hash_algorithm", "HASH", DEFAULT_HASH_ALGORITHM),
        "fsync": cli_args["fsync"] if cli_args.get("fsync") is not None else _env_bool("FSYNC", True),
        "logs_dir": _pick(cli_args, "logs_dir", "LOGS_DIR", None),
    }

    try:
        return CacheSettings(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
