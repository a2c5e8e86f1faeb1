"""Cache root resolution, the diagnostic cache marker, and the cache lock."""

from __future__ import annotations

import fcntl
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from lutwig.errors import FilesystemFailure, InvalidCache, InvalidHome
from lutwig.settings import DEFAULT_LOCK_NAME, DEFAULT_MARKER_NAME, DEFAULT_NAMESPACE, Environment

LOGGER = logging.getLogger(__name__)


def locate(
    explicit_path: Path | None = None,
    *,
    environment: Environment,
    namespace: str = DEFAULT_NAMESPACE,
) -> Path:
    """Return the cache root, creating it when needed.

    An explicit path is used as-is and must already be an absolute directory.
    Without one, ``<platform cache base>/<namespace>`` is used and created
    along with any missing ancestors.
    """

    if explicit_path is not None:
        if not explicit_path.is_absolute():
            raise InvalidCache(f"Cache directory must be an absolute path: {explicit_path}")
        if not explicit_path.is_dir():
            raise InvalidCache(f"Cache directory does not exist: {explicit_path}")
        LOGGER.debug("Using explicit cache root %s", explicit_path)
        return explicit_path

    cache_root = environment.cache_base() / namespace
    if not cache_root.is_dir():
        try:
            cache_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemFailure(f"Could not create cache directory {cache_root}: {exc}") from exc
        LOGGER.info("Created cache root %s", cache_root)
    return cache_root


def write_cache_marker(
    cache_root: Path,
    *,
    environment: Environment,
    marker_name: str = DEFAULT_MARKER_NAME,
) -> Path | None:
    """Record the resolved cache root in ``$HOME/<marker_name>``.

    The marker only exists for outside diagnostics, so every failure is logged
    and swallowed. Returns the marker path when it was written.
    """

    try:
        marker = environment.home_dir() / marker_name
        marker.write_text(f"{cache_root}\n", encoding="utf-8")
    except (InvalidHome, OSError) as exc:
        LOGGER.warning("Could not write cache marker: %s", exc)
        return None
    LOGGER.debug("Wrote cache marker %s", marker)
    return marker


def read_cache_marker(
    *,
    environment: Environment,
    marker_name: str = DEFAULT_MARKER_NAME,
) -> Path | None:
    try:
        marker = environment.home_dir() / marker_name
        content = marker.read_text(encoding="utf-8").strip()
    except (InvalidHome, OSError):
        return None
    return Path(content) if content else None


@contextmanager
def cache_lock(cache_root: Path, *, lock_name: str = DEFAULT_LOCK_NAME) -> Iterator[Path]:
    """Hold an exclusive advisory lock on the cache root.

    A non-blocking attempt comes first so a waiting process can say why it
    stalls; after that the lock is awaited without a timeout.
    """

    lock_path = cache_root / lock_name
    try:
        handle = lock_path.open("a")
    except OSError as exc:
        raise FilesystemFailure(f"Could not open cache lock {lock_path}: {exc}") from exc
    try:
        try:
            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            LOGGER.info("Another lutwig process holds %s; waiting", lock_path)
            fcntl.flock(handle, fcntl.LOCK_EX)
        yield lock_path
    finally:
        handle.close()
