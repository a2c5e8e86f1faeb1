"""Copy AssetSpec subdirectories from the unpacked tree into a game directory."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path, PurePosixPath
from typing import Callable, Sequence

from lutwig.errors import FilesystemFailure
from lutwig.schemas import MergedDirectory, MergeReport

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[MergedDirectory], None]


def merge(
    unpacked_tree: Path,
    target_root: Path,
    assets: Sequence[str],
    *,
    on_progress: ProgressCallback | None = None,
) -> MergeReport:
    """Merge each asset subdirectory of ``unpacked_tree`` into ``target_root``.

    Entries are copied over whatever the target already holds under the same
    name; nothing else in the target is touched. The first failure aborts the
    merge and leaves earlier subdirectories applied, which is safe because a
    re-run copies the same files again.
    """

    report = MergeReport(target=target_root)
    for relative in assets:
        parts = PurePosixPath(relative).parts
        source = unpacked_tree.joinpath(*parts)
        dest = target_root.joinpath(*parts)

        try:
            dest.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemFailure(f"Could not create {dest}: {exc}") from exc

        try:
            entries = sorted(source.iterdir(), key=lambda path: path.name)
        except OSError as exc:
            LOGGER.error("Cannot list source subdirectory %s", relative)
            raise FilesystemFailure(f"Cannot read {relative} from {unpacked_tree}: {exc}") from exc

        for entry in entries:
            _copy_entry(entry, dest / entry.name)

        merged = MergedDirectory(relative=relative, dest=dest, entries=len(entries))
        report.merged.append(merged)
        LOGGER.debug("Merged %d entries into %s", len(entries), dest)
        if on_progress is not None:
            on_progress(merged)
    return report


def _copy_entry(source: Path, dest: Path) -> None:
    # A file and a directory sharing a name cannot be overwritten additively.
    if dest.exists() and source.is_dir() != dest.is_dir():
        raise FilesystemFailure(f"Cannot copy {source} over {dest}: file/directory mismatch")
    try:
        if source.is_dir():
            shutil.copytree(source, dest, copy_function=_copy_file, dirs_exist_ok=True)
        else:
            shutil.copy2(source, dest)
    except (OSError, shutil.Error) as exc:
        raise FilesystemFailure(f"Could not copy {source} to {dest}: {exc}") from exc


def _copy_file(source: str, dest: str) -> str:
    # copy2 would silently nest the file inside an existing directory.
    if Path(dest).is_dir():
        raise FilesystemFailure(f"Cannot copy {source} over {dest}: file/directory mismatch")
    return shutil.copy2(source, dest)

