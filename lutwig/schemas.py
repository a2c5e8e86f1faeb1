"""Pydantic models describing what each pipeline phase did."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class Phase(str, Enum):
    """Pipeline phases in execution order."""

    DOWNLOAD = "download"
    UNPACK = "unpack"
    PATCH = "patch"


class FetchResult(BaseModel):
    archive: Path = Field(description="Archive path inside the cache root")
    skipped: bool = Field(description="True when no request was issued")
    bytes_written: int = Field(default=0, ge=0, description="Body bytes streamed to disk")


class UnpackResult(BaseModel):
    tree: Path = Field(description="Unpacked tree root inside the cache root")
    skipped: bool = Field(description="True when the tree already existed")
    members: int = Field(default=0, ge=0, description="Archive members extracted")


class MergedDirectory(BaseModel):
    relative: str = Field(description="AssetSpec entry")
    dest: Path = Field(description="Destination directory under the target root")
    entries: int = Field(ge=0, description="Top-level entries copied from the source")


class MergeReport(BaseModel):
    """Destinations processed by a merge, in AssetSpec order."""

    target: Path
    merged: list[MergedDirectory] = Field(default_factory=list)

    @property
    def processed(self) -> list[Path]:
        return [entry.dest for entry in self.merged]


class PhaseResult(BaseModel):
    phase: Phase
    skipped: bool = False
    artifact: Path | None = None
    message: str = ""


class PipelineReport(BaseModel):
    """Outcome of one ``run`` invocation."""

    cache_root: Path | None = None
    target: Path
    phases: list[PhaseResult] = Field(default_factory=list)
    merge: MergeReport | None = None
    exit_code: int = 0
    error: str | None = Field(default=None, description="Failure message when exit_code != 0")
    error_kind: str | None = Field(default=None, description="Error class name when exit_code != 0")

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CacheStatus(BaseModel):
    """On-disk markers and the work the next ``patch`` would perform."""

    cache_root: Path
    archive: Path
    archive_present: bool
    partial_present: bool
    tree: Path
    tree_present: bool
    mirror_url: str
    marker: Path | None = Field(default=None, description="Cache root recorded by the last run, if readable")

    @property
    def pending(self) -> list[Phase]:
        phases: list[Phase] = []
        if not self.archive_present and not self.tree_present:
            phases.append(Phase.DOWNLOAD)
        if not self.tree_present:
            phases.append(Phase.UNPACK)
        phases.append(Phase.PATCH)
        return phases
