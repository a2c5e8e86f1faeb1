from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from lutwig.package import ASSET_SPEC
from lutwig.settings import build_settings
from scripts import lutwig_cli

from conftest import MirrorStub, asset_files, build_archive, make_settings

runner = CliRunner()


@pytest.fixture
def patched_cli(monkeypatch, environment):
    mirror = MirrorStub(body=build_archive(asset_files(ASSET_SPEC)))
    monkeypatch.setattr(lutwig_cli, "_resolve_settings", lambda: make_settings())
    monkeypatch.setattr(lutwig_cli, "_resolve_environment", lambda settings: environment)
    monkeypatch.setattr(lutwig_cli, "_client", lambda settings: mirror.client())
    return mirror


def test_patch_command_merges_assets(patched_cli: MirrorStub, target: Path) -> None:
    result = runner.invoke(lutwig_cli.cli, ["patch", str(target)])

    assert result.exit_code == 0, result.output
    assert "[1/3] Download starting..." in result.output
    assert "DONE!" in result.output
    assert (target / "Graphics" / "Titles2" / "graphics-titles2-1.bin").exists()
    assert len(patched_cli.requests) == 1


def test_patch_command_with_explicit_cache(patched_cli: MirrorStub, cache_root: Path, target: Path) -> None:
    result = runner.invoke(lutwig_cli.cli, ["--cache", str(cache_root), "patch", str(target)])

    assert result.exit_code == 0, result.output
    assert (cache_root / "RPGVXAce.tar.gz").exists()
    assert (cache_root / "RPGVXAce" / "Audio" / "SE").is_dir()


def test_patch_command_rejects_missing_target(patched_cli: MirrorStub, tmp_path: Path) -> None:
    result = runner.invoke(lutwig_cli.cli, ["patch", str(tmp_path / "nowhere")])

    assert result.exit_code == 2
    assert "InvalidTarget" in result.output
    assert patched_cli.requests == []


def test_patch_command_rejects_relative_cache(patched_cli: MirrorStub, target: Path) -> None:
    result = runner.invoke(lutwig_cli.cli, ["-C", "relative-cache", "patch", str(target)])

    assert result.exit_code == 2
    assert "InvalidCache" in result.output


def test_patch_command_json_report(patched_cli: MirrorStub, target: Path) -> None:
    result = runner.invoke(lutwig_cli.cli, ["patch", str(target), "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["exit_code"] == 0
    assert [phase["phase"] for phase in payload["phases"]] == ["download", "unpack", "patch"]
    assert len(payload["merge"]["merged"]) == len(ASSET_SPEC)


def test_patch_command_mirror_down(monkeypatch, environment, target: Path) -> None:
    mirror = MirrorStub(status_code=503)
    monkeypatch.setattr(lutwig_cli, "_resolve_settings", lambda: make_settings())
    monkeypatch.setattr(lutwig_cli, "_resolve_environment", lambda settings: environment)
    monkeypatch.setattr(lutwig_cli, "_client", lambda settings: mirror.client())

    result = runner.invoke(lutwig_cli.cli, ["patch", str(target)])

    assert result.exit_code == 3
    assert "MirrorUnavailable" in result.output


def test_status_command_json(patched_cli: MirrorStub, cache_root: Path) -> None:
    result = runner.invoke(lutwig_cli.cli, ["--cache", str(cache_root), "status", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["cache_root"] == str(cache_root)
    assert payload["archive_present"] is False
    assert payload["pending"] == ["download", "unpack", "patch"]


def test_status_command_table_after_patch(patched_cli: MirrorStub, cache_root: Path, target: Path) -> None:
    runner.invoke(lutwig_cli.cli, ["--cache", str(cache_root), "patch", str(target)])

    result = runner.invoke(lutwig_cli.cli, ["--cache", str(cache_root), "status"])

    assert result.exit_code == 0
    assert "Next patch runs" in result.output
    assert "patch" in result.output


def test_install_is_a_stub(patched_cli: MirrorStub, target: Path) -> None:
    result = runner.invoke(lutwig_cli.cli, ["install", str(target)])

    assert result.exit_code == 0
    assert "not supported yet" in result.output
    assert list(target.iterdir()) == []


def test_patch_failure_is_reported_once(patched_cli: MirrorStub, tmp_path: Path) -> None:
    result = runner.invoke(lutwig_cli.cli, ["patch", str(tmp_path / "nowhere")])

    assert result.output.count("InvalidTarget") == 1


def test_bad_log_level_exits_with_usage_code(monkeypatch, tmp_path: Path, target: Path) -> None:
    monkeypatch.setenv("LUTWIG_LOG_LEVEL", "chatty")
    monkeypatch.setattr(lutwig_cli, "_resolve_settings", lambda: build_settings(str(tmp_path / "missing.env")))

    result = runner.invoke(lutwig_cli.cli, ["patch", str(target)])

    assert result.exit_code == 2
    assert "InvalidSetting" in result.output
