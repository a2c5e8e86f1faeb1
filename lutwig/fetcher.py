"""Download the package archive from its mirror into the cache."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import httpx

from lutwig.errors import FilesystemFailure, MirrorUnavailable, NetworkFailure
from lutwig.package import PackageSpec
from lutwig.schemas import FetchResult
from lutwig.settings import DEFAULT_CHUNK_SIZE, DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT, MirrorSettings

LOGGER = logging.getLogger(__name__)
WRITE_TIMEOUT = 30.0
POOL_TIMEOUT = 10.0
REQUEST_TIMEOUT = httpx.Timeout(
    connect=DEFAULT_CONNECT_TIMEOUT, read=DEFAULT_READ_TIMEOUT, write=WRITE_TIMEOUT, pool=POOL_TIMEOUT
)


def build_timeout(mirror: MirrorSettings) -> httpx.Timeout:
    return httpx.Timeout(
        connect=mirror.connect_timeout, read=mirror.read_timeout, write=WRITE_TIMEOUT, pool=POOL_TIMEOUT
    )


def build_client(timeout: httpx.Timeout | None = None) -> httpx.Client:
    """Return the client used for mirror downloads (redirects followed)."""

    return httpx.Client(timeout=timeout or REQUEST_TIMEOUT, follow_redirects=True)


def fetch(
    cache_root: Path,
    *,
    package: PackageSpec,
    client: httpx.Client | None = None,
    timeout: httpx.Timeout | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> FetchResult:
    """Download ``package`` into ``cache_root`` unless it is already there.

    Parameters
    ----------
    cache_root:
        Resolved cache root.
    package:
        Package description; supplies the mirror URL and artifact names.
    client:
        Optional ``httpx.Client`` (useful for tests). When omitted, a client
        is created for the duration of this call.
    timeout:
        Timeout for the client created here; ignored when ``client`` is given.

    The body is streamed into ``<archive>.part`` and renamed once complete, so
    an interrupted download never looks like a finished one. The partial file
    stays on disk after a failure and is overwritten by the next attempt.
    """

    archive = package.archive_path(cache_root)
    tree = package.tree_path(cache_root)
    if archive.exists():
        LOGGER.info("Archive already present at %s", archive)
        return FetchResult(archive=archive, skipped=True)
    if tree.exists():
        LOGGER.info("Unpacked tree already present at %s; skipping download", tree)
        return FetchResult(archive=archive, skipped=True)

    partial = package.partial_path(cache_root)
    owns_client = client is None
    http_client = client or build_client(timeout)
    url = package.mirror_url
    LOGGER.info("Downloading %s", url)
    try:
        with http_client.stream("GET", url) as response:
            if not response.is_success:
                LOGGER.error("Mirror request failed: status=%s", response.status_code)
                raise MirrorUnavailable(url, response.status_code)
            written = _stream_to_file(response, partial, chunk_size)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise NetworkFailure(f"Download from {url} failed: {exc}") from exc
    finally:
        if owns_client:
            http_client.close()

    try:
        os.replace(partial, archive)
    except OSError as exc:
        raise FilesystemFailure(f"Could not move {partial} to {archive}: {exc}") from exc
    LOGGER.info("Downloaded %d bytes to %s", written, archive)
    return FetchResult(archive=archive, skipped=False, bytes_written=written)


def _stream_to_file(response: httpx.Response, path: Path, chunk_size: int) -> int:
    written = 0
    try:
        with path.open("wb") as handle:
            for chunk in response.iter_bytes(chunk_size=chunk_size):
                handle.write(chunk)
                written += len(chunk)
    except OSError as exc:
        raise FilesystemFailure(f"Writing {path} failed after {written} bytes: {exc}") from exc
    return written
