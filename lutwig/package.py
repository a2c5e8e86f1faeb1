"""Static description of the RTP package lutwig installs."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path, PurePosixPath

DEFAULT_MIRROR_URL = "https://archive.org/download/vxacertp.tar/vxacertp.tar.gz"

ASSET_SPEC: tuple[str, ...] = (
    "Audio/BGM",
    "Audio/BGS",
    "Audio/ME",
    "Audio/SE",
    "Fonts",
    "Graphics/Animations",
    "Graphics/Battlebacks1",
    "Graphics/Battlebacks2",
    "Graphics/Battlers",
    "Graphics/Characters",
    "Graphics/Faces",
    "Graphics/Parallaxes",
    "Graphics/System",
    "Graphics/Tilesets",
    "Graphics/Titles1",
    "Graphics/Titles2",
)


@dataclass(frozen=True, slots=True)
class PackageSpec:
    """Where a package comes from and how it lands in the cache.

    ``archive_root`` is the path of the asset tree inside the archive; it is
    promoted to ``<cache>/<package_id>`` after extraction.
    """

    package_id: str = "RPGVXAce"
    archive_ext: str = "tar.gz"
    archive_root: str = "vxacertp/RPGVXAce"
    mirror_url: str = DEFAULT_MIRROR_URL
    assets: tuple[str, ...] = field(default=ASSET_SPEC)

    def __post_init__(self) -> None:
        for entry in self.assets:
            relative = PurePosixPath(entry)
            if relative.is_absolute() or ".." in relative.parts or not relative.parts:
                raise ValueError(f"Asset path must be a plain relative path: {entry!r}")

    def archive_path(self, cache_root: Path) -> Path:
        return cache_root / f"{self.package_id}.{self.archive_ext}"

    def partial_path(self, cache_root: Path) -> Path:
        return cache_root / f"{self.package_id}.{self.archive_ext}.part"

    def tree_path(self, cache_root: Path) -> Path:
        return cache_root / self.package_id

    def with_mirror(self, url: str) -> "PackageSpec":
        return replace(self, mirror_url=url)


DEFAULT_PACKAGE = PackageSpec()
