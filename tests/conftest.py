from __future__ import annotations

import io
import tarfile
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import pytest

from lutwig.package import PackageSpec
from lutwig.settings import CacheSettings, LoggingSettings, MirrorSettings, Settings, StaticEnvironment

MIRROR_URL = "https://mirror.test/rtp/vxacertp.tar.gz"
SMALL_ASSETS = ("Audio/BGM", "Fonts", "Graphics/Characters")


def asset_files(assets: tuple[str, ...]) -> dict[str, bytes]:
    """Files an RTP fixture carries for ``assets``, keyed by tree-relative path."""

    files: dict[str, bytes] = {}
    for relative in assets:
        slug = relative.replace("/", "-").lower()
        files[f"{relative}/{slug}-1.bin"] = f"{relative} one".encode()
        files[f"{relative}/{slug}-2.bin"] = f"{relative} two".encode()
        files[f"{relative}/nested/{slug}-deep.bin"] = f"{relative} deep".encode()
    files["Game.ini.sample"] = b"[Game]\n"
    return files


def build_archive(files: dict[str, bytes], *, root: str = "vxacertp/RPGVXAce") -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, payload in files.items():
            info = tarfile.TarInfo(name=f"{root}/{name}" if root else name)
            info.size = len(payload)
            tar.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()


def make_settings(url: str = MIRROR_URL, *, level: str = "WARNING") -> Settings:
    return Settings(
        env_path=".env",
        mirror=MirrorSettings(url=url, connect_timeout=5.0, read_timeout=5.0, chunk_size=7),
        cache=CacheSettings(namespace="lutwig", marker_name=".lwcache", lock_name=".lutwig.lock"),
        logging=LoggingSettings(level=level),
    )


@dataclass
class MirrorStub:
    """MockTransport-backed mirror that records every request."""

    body: bytes = b""
    status_code: int = 200
    requests: list[httpx.Request] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, text="mirror down")
        return httpx.Response(self.status_code, content=self.body)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def small_package() -> PackageSpec:
    return PackageSpec(mirror_url=MIRROR_URL, assets=SMALL_ASSETS)


@pytest.fixture
def environment(tmp_path: Path) -> StaticEnvironment:
    home = tmp_path / "home"
    home.mkdir()
    return StaticEnvironment(home=home, cache=tmp_path / "xdg-cache")


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    root = tmp_path / "cache"
    root.mkdir()
    return root


@pytest.fixture
def target(tmp_path: Path) -> Path:
    root = tmp_path / "game"
    root.mkdir()
    return root


@pytest.fixture
def mirror() -> MirrorStub:
    return MirrorStub()
