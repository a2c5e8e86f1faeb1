"""Drive the download, unpack and patch phases against one target directory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import httpx

from lutwig.cache import cache_lock, locate, read_cache_marker, write_cache_marker
from lutwig.errors import FilesystemFailure, InvalidTarget, LutwigError
from lutwig.fetcher import build_timeout, fetch
from lutwig.merger import merge
from lutwig.package import PackageSpec
from lutwig.schemas import CacheStatus, MergedDirectory, MergeReport, Phase, PhaseResult, PipelineReport
from lutwig.settings import DecoupleEnvironment, Environment, Settings, get_settings, load_config
from lutwig.unpacker import unpack

LOGGER = logging.getLogger(__name__)

Echo = Callable[[str], None]
PHASE_TITLES = {
    Phase.DOWNLOAD: "Download starting...",
    Phase.UNPACK: "Unpacking download...",
    Phase.PATCH: "Applying patches...",
}


def run(
    cache_override: Path | None,
    target_path: Path,
    *,
    settings: Settings | None = None,
    environment: Environment | None = None,
    package: PackageSpec | None = None,
    client: httpx.Client | None = None,
    echo: Echo | None = None,
) -> PipelineReport:
    """Patch ``target_path`` with the cached package, doing only missing work.

    The target is validated before anything touches the cache or the
    network. Each phase is skipped when its artifact already exists. Errors
    stop the run; the returned report carries the error and a non-zero exit
    code instead of raising.
    """

    cfg = settings or get_settings()
    env = environment or DecoupleEnvironment(load_config(cfg.env_path))
    pkg = package or cfg.package()
    emit = echo or print
    report = PipelineReport(target=target_path)

    try:
        if not target_path.is_dir():
            raise InvalidTarget(f"Target {target_path} is not an existing directory")
        target = target_path.absolute()
        report.target = target

        cache_root = locate(cache_override, environment=env, namespace=cfg.cache.namespace)
        report.cache_root = cache_root
        write_cache_marker(cache_root, environment=env, marker_name=cfg.cache.marker_name)

        with cache_lock(cache_root, lock_name=cfg.cache.lock_name):
            _run_phases(report, cache_root, target, pkg, cfg, client, emit)
    except LutwigError as exc:
        _record_failure(report, exc, emit)
        return report
    except OSError as exc:
        # Filesystem errors outside the phase wrappers, e.g. unreadable cache entries.
        _record_failure(report, FilesystemFailure(str(exc)), emit)
        return report

    emit("- DONE!")
    return report


def _run_phases(
    report: PipelineReport,
    cache_root: Path,
    target: Path,
    package: PackageSpec,
    settings: Settings,
    client: httpx.Client | None,
    emit: Echo,
) -> None:
    total = len(PHASE_TITLES)

    emit(_phase_line(Phase.DOWNLOAD, total))
    fetched = fetch(
        cache_root,
        package=package,
        client=client,
        timeout=build_timeout(settings.mirror),
        chunk_size=settings.mirror.chunk_size,
    )
    message = "already present" if fetched.skipped else f"downloaded {fetched.bytes_written} bytes"
    report.phases.append(
        PhaseResult(phase=Phase.DOWNLOAD, skipped=fetched.skipped, artifact=fetched.archive, message=message)
    )

    emit(_phase_line(Phase.UNPACK, total))
    unpacked = unpack(cache_root, fetched.archive, package=package)
    message = "already unpacked" if unpacked.skipped else f"extracted {unpacked.members} members"
    report.phases.append(
        PhaseResult(phase=Phase.UNPACK, skipped=unpacked.skipped, artifact=unpacked.tree, message=message)
    )

    emit(_phase_line(Phase.PATCH, total))

    # Filled as directories land so a failed merge still reports its progress.
    progress = MergeReport(target=target)
    report.merge = progress

    def _progress(merged: MergedDirectory) -> None:
        progress.merged.append(merged)
        emit(str(merged.dest))

    merged = merge(unpacked.tree, target, package.assets, on_progress=_progress)
    report.phases.append(
        PhaseResult(
            phase=Phase.PATCH,
            artifact=target,
            message=f"merged {len(merged.merged)} directories",
        )
    )


def _record_failure(report: PipelineReport, exc: LutwigError, emit: Echo) -> None:
    LOGGER.debug("Pipeline aborted", exc_info=True)
    report.exit_code = exc.exit_code
    report.error = str(exc)
    report.error_kind = type(exc).__name__
    emit(f"- FAILED: {report.error_kind}: {exc}")


def _phase_line(phase: Phase, total: int) -> str:
    index = list(PHASE_TITLES).index(phase) + 1
    return f"- [{index}/{total}] {PHASE_TITLES[phase]}"


def inspect_cache(
    cache_override: Path | None,
    *,
    settings: Settings | None = None,
    environment: Environment | None = None,
    package: PackageSpec | None = None,
) -> CacheStatus:
    """Report which phase markers exist in the cache root."""

    cfg = settings or get_settings()
    env = environment or DecoupleEnvironment(load_config(cfg.env_path))
    pkg = package or cfg.package()
    cache_root = locate(cache_override, environment=env, namespace=cfg.cache.namespace)
    archive = pkg.archive_path(cache_root)
    tree = pkg.tree_path(cache_root)
    return CacheStatus(
        cache_root=cache_root,
        archive=archive,
        archive_present=archive.exists(),
        partial_present=pkg.partial_path(cache_root).exists(),
        tree=tree,
        tree_present=tree.exists(),
        mirror_url=pkg.mirror_url,
        marker=read_cache_marker(environment=env, marker_name=cfg.cache.marker_name),
    )
