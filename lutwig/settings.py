"""Configuration helpers bound to python-decouple."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Protocol

from decouple import Config as DecoupleConfig, RepositoryEmpty, RepositoryEnv

from lutwig.errors import InvalidHome, InvalidSetting
from lutwig.package import DEFAULT_MIRROR_URL, PackageSpec

DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_READ_TIMEOUT = 300.0
DEFAULT_CHUNK_SIZE = 1 << 16
DEFAULT_NAMESPACE = "lutwig"
DEFAULT_MARKER_NAME = ".lwcache"
DEFAULT_LOCK_NAME = ".lutwig.lock"
DEFAULT_LOG_LEVEL = "INFO"


def load_config(env_path: str = ".env") -> DecoupleConfig:
    """Return a decouple config object anchored to the repository .env file.

    Process environment variables always win over the file; a missing file
    behaves like an empty one.
    """

    if Path(env_path).is_file():
        return DecoupleConfig(RepositoryEnv(env_path))
    return DecoupleConfig(RepositoryEmpty())


@dataclass(frozen=True)
class MirrorSettings:
    url: str
    connect_timeout: float
    read_timeout: float
    chunk_size: int


@dataclass(frozen=True)
class CacheSettings:
    namespace: str
    marker_name: str
    lock_name: str


@dataclass(frozen=True)
class LoggingSettings:
    level: str


@dataclass(frozen=True)
class Settings:
    """Top-level settings object shared by the pipeline and the CLI."""

    env_path: str
    mirror: MirrorSettings
    cache: CacheSettings
    logging: LoggingSettings

    def package(self) -> PackageSpec:
        """Return the package description pointed at the configured mirror."""

        return PackageSpec().with_mirror(self.mirror.url)


def build_settings(env_path: str = ".env") -> Settings:
    config = load_config(env_path)
    mirror = MirrorSettings(
        url=config("LUTWIG_MIRROR_URL", default=DEFAULT_MIRROR_URL),
        connect_timeout=config("LUTWIG_CONNECT_TIMEOUT", default=DEFAULT_CONNECT_TIMEOUT, cast=float),
        read_timeout=config("LUTWIG_HTTP_TIMEOUT", default=DEFAULT_READ_TIMEOUT, cast=float),
        chunk_size=config("LUTWIG_CHUNK_SIZE", default=DEFAULT_CHUNK_SIZE, cast=int),
    )
    cache = CacheSettings(
        namespace=DEFAULT_NAMESPACE,
        marker_name=DEFAULT_MARKER_NAME,
        lock_name=DEFAULT_LOCK_NAME,
    )
    level = config("LUTWIG_LOG_LEVEL", default=DEFAULT_LOG_LEVEL).upper()
    if level not in logging.getLevelNamesMapping():
        raise InvalidSetting(f"LUTWIG_LOG_LEVEL must be a logging level name, got {level!r}")
    logging_settings = LoggingSettings(level=level)
    return Settings(env_path=env_path, mirror=mirror, cache=cache, logging=logging_settings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return build_settings()


class Environment(Protocol):
    """Ambient per-user locations the cache locator depends on."""

    def home_dir(self) -> Path: ...

    def cache_base(self) -> Path: ...


class DecoupleEnvironment:
    """Resolve ``HOME`` and ``XDG_CACHE_HOME`` through a decouple config."""

    def __init__(self, config: DecoupleConfig | None = None) -> None:
        self._config = config or load_config()

    def home_dir(self) -> Path:
        raw = self._config("HOME", default="")
        if not raw or not Path(raw).is_absolute():
            raise InvalidHome("Home directory is not set up correctly (HOME is empty or relative)")
        return Path(raw)

    def cache_base(self) -> Path:
        raw = self._config("XDG_CACHE_HOME", default="")
        # XDG says relative values are invalid and must be ignored.
        if raw and Path(raw).is_absolute():
            return Path(raw)
        return self.home_dir() / ".cache"


@dataclass(frozen=True)
class StaticEnvironment:
    """Fixed locations, used by tests and by callers that already know them."""

    home: Path | None
    cache: Path | None = None

    def home_dir(self) -> Path:
        if self.home is None:
            raise InvalidHome("Home directory is not available")
        return self.home

    def cache_base(self) -> Path:
        if self.cache is not None:
            return self.cache
        return self.home_dir() / ".cache"
