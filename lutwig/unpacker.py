"""Extract the cached archive into the unpacked tree."""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
import tempfile
import zlib
from pathlib import Path, PurePosixPath

from lutwig.errors import UnpackFailed
from lutwig.package import PackageSpec
from lutwig.schemas import UnpackResult

LOGGER = logging.getLogger(__name__)
STAGING_PREFIX = ".unpack-"


def staging_prefix(package: PackageSpec) -> str:
    return f"{STAGING_PREFIX}{package.package_id}-"


def unpack(cache_root: Path, archive: Path, *, package: PackageSpec) -> UnpackResult:
    """Extract ``archive`` and promote its asset tree to ``<cache>/<package_id>``.

    Extraction happens in a staging directory inside the cache root; the tree
    only appears at its final path through a single rename once every member
    has been written. The archive is left untouched whatever happens, so a
    failed run can be retried.

    Callers running concurrently against one cache root must hold
    :func:`lutwig.cache.cache_lock`; stale staging directories are removed
    here on the assumption that nobody else is extracting.
    """

    tree = package.tree_path(cache_root)
    if tree.exists():
        LOGGER.info("Unpacked tree already present at %s", tree)
        return UnpackResult(tree=tree, skipped=True)
    if not archive.is_file():
        raise UnpackFailed(f"Archive {archive} is missing")

    remove_stale_staging(cache_root, package)
    try:
        staging = Path(tempfile.mkdtemp(prefix=staging_prefix(package), dir=cache_root))
    except OSError as exc:
        raise UnpackFailed(f"Could not create staging directory in {cache_root}: {exc}") from exc

    try:
        members = _extract(archive, staging)
        root = _locate_tree(staging, package.archive_root)
        try:
            os.replace(root, tree)
        except OSError as exc:
            raise UnpackFailed(f"Could not move {root} to {tree}: {exc}") from exc
    finally:
        _remove_tree(staging)

    LOGGER.info("Unpacked %d members from %s into %s", members, archive.name, tree)
    return UnpackResult(tree=tree, skipped=False, members=members)


def remove_stale_staging(cache_root: Path, package: PackageSpec) -> list[Path]:
    """Delete staging directories left behind by killed extractions."""

    removed: list[Path] = []
    prefix = staging_prefix(package)
    try:
        entries = list(cache_root.iterdir())
    except OSError as exc:
        raise UnpackFailed(f"Could not scan {cache_root} for staging directories: {exc}") from exc
    for entry in entries:
        if entry.is_dir() and entry.name.startswith(prefix):
            LOGGER.info("Removing stale staging directory %s", entry)
            _remove_tree(entry)
            removed.append(entry)
    return removed


def _extract(archive: Path, staging: Path) -> int:
    try:
        with tarfile.open(archive, mode="r:*") as tar:
            members = tar.getmembers()
            tar.extractall(path=staging, members=members, filter="data")
    except (tarfile.TarError, EOFError, zlib.error, OSError) as exc:
        LOGGER.error("Extraction of %s failed", archive)
        raise UnpackFailed(f"Could not extract {archive}: {exc}") from exc
    return len(members)


def _locate_tree(staging: Path, archive_root: str) -> Path:
    candidate = staging.joinpath(*PurePosixPath(archive_root).parts)
    if candidate.is_dir():
        return candidate
    # Archives repackaged without the vendor prefix carry a single top folder.
    entries = list(staging.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        LOGGER.debug("No %s in archive; using top-level %s", archive_root, entries[0].name)
        return entries[0]
    raise UnpackFailed(f"Archive does not contain {archive_root}/")


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        LOGGER.warning("Could not remove staging directory %s: %s", path, exc)
