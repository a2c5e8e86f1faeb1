"""Typed errors raised by the fetch/unpack/merge pipeline.

Every error extends ``LutwigError`` and carries the exit code the CLI returns
for it. Validation errors share ``EXIT_USAGE`` so callers can tell bad input
apart from runtime failures.
"""

from __future__ import annotations

EXIT_OK = 0
EXIT_GENERIC = 1
EXIT_USAGE = 2
EXIT_NETWORK = 3
EXIT_UNPACK = 4
EXIT_FILESYSTEM = 5


class LutwigError(Exception):
    """Base error for lutwig."""

    exit_code: int = EXIT_GENERIC


class InvalidHome(LutwigError):
    """The user's home or cache base directory cannot be determined."""

    exit_code = EXIT_USAGE


class InvalidCache(LutwigError):
    """An explicit cache directory is not an absolute, existing directory."""

    exit_code = EXIT_USAGE


class InvalidTarget(LutwigError):
    """The target game directory does not exist or is not a directory."""

    exit_code = EXIT_USAGE


class MirrorUnavailable(LutwigError):
    """The mirror answered with a non-success HTTP status."""

    exit_code = EXIT_NETWORK

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"Mirror {url} answered HTTP {status_code}")
        self.url = url
        self.status_code = status_code


class NetworkFailure(LutwigError):
    exit_code = EXIT_NETWORK


class UnpackFailed(LutwigError):
    exit_code = EXIT_UNPACK


class FilesystemFailure(LutwigError):
    exit_code = EXIT_FILESYSTEM


class InvalidSetting(LutwigError):
    """A configuration value cannot be used."""

    exit_code = EXIT_USAGE
