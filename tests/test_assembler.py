from __future__ import annotations

from pathlib import Path

import pytest

from conftest import PROJECT_NAME, BuildFactory
from distpack.models import BuildArtifact
from distpack.packaging.assembler import assemble_bundle, assemble_plain, relocate_content


def test_assemble_plain_copies_tree_without_rename(build_factory: BuildFactory, tmp_path: Path) -> None:
    artifact = build_factory("linux-x64")
    dest = tmp_path / "staging" / "linux"

    executable = assemble_plain(artifact, dest, PROJECT_NAME)

    assert executable == dest / PROJECT_NAME
    assert executable.read_bytes() == b"binary:linux-x64"
    assert (dest / "Content" / "Textures" / "hero.xnb").is_file()
    assert (dest / "libSDL2.so").is_file()


def test_assemble_plain_renames_executable(build_factory: BuildFactory, tmp_path: Path) -> None:
    artifact = build_factory("linux-arm64")
    dest = tmp_path / "staging" / "linux"

    executable = assemble_plain(artifact, dest, "CustomGame")

    assert executable == dest / "CustomGame"
    assert not (dest / PROJECT_NAME).exists()
    # source tree is left untouched
    assert artifact.executable_path.is_file()


def test_assemble_plain_windows_keeps_exe_suffix(build_factory: BuildFactory, tmp_path: Path) -> None:
    artifact = build_factory("win-x64")
    dest = tmp_path / "staging" / "win"

    executable = assemble_plain(artifact, dest, "CustomGame")

    assert executable.name == "CustomGame.exe"
    assert not (dest / f"{PROJECT_NAME}.exe").exists()


def test_assemble_plain_replaces_stale_destination(build_factory: BuildFactory, tmp_path: Path) -> None:
    artifact = build_factory("linux-x64")
    dest = tmp_path / "staging" / "linux"
    dest.mkdir(parents=True)
    (dest / "stale.txt").write_text("old", encoding="utf-8")

    assemble_plain(artifact, dest, PROJECT_NAME)

    assert not (dest / "stale.txt").exists()


def test_assemble_plain_missing_build_dir(tmp_path: Path, build_factory: BuildFactory) -> None:
    artifact = build_factory("linux-x64")
    missing = BuildArtifact(tmp_path / "nope", artifact.executable_name, artifact.runtime_target)
    with pytest.raises(FileNotFoundError):
        assemble_plain(missing, tmp_path / "dest", PROJECT_NAME)


def test_assemble_plain_missing_executable_on_rename(build_factory: BuildFactory, tmp_path: Path) -> None:
    artifact = build_factory("linux-x64")
    artifact.executable_path.unlink()
    with pytest.raises(FileNotFoundError):
        assemble_plain(artifact, tmp_path / "dest", "Other")


def test_assemble_bundle_layout(
    build_factory: BuildFactory,
    bundle_inputs: tuple[Path, Path],
    tmp_path: Path,
) -> None:
    info_plist, icns = bundle_inputs
    artifact = build_factory("osx-arm64")

    layout = assemble_bundle(artifact, PROJECT_NAME, info_plist, icns, tmp_path / "out")

    assert layout.app_dir == tmp_path / "out" / f"{PROJECT_NAME}.app"
    assert layout.info_plist_path.read_bytes() == info_plist.read_bytes()
    assert (layout.resources_dir / "Icon.icns").is_file()
    assert (layout.macos_dir / PROJECT_NAME).is_file()
    assert (layout.macos_dir / "libSDL2.so").is_file()
    assert not (layout.macos_dir / "Content").exists()
    assert (layout.resources_content_dir / "Textures" / "hero.xnb").is_file()


def test_assemble_bundle_renames_to_app_name(
    build_factory: BuildFactory,
    bundle_inputs: tuple[Path, Path],
    tmp_path: Path,
) -> None:
    info_plist, icns = bundle_inputs
    artifact = build_factory("osx-x64")

    layout = assemble_bundle(artifact, "CustomGame", info_plist, icns, tmp_path / "out")

    assert layout.app_dir.name == "CustomGame.app"
    assert (layout.macos_dir / "CustomGame").is_file()
    assert not (layout.macos_dir / PROJECT_NAME).exists()


def test_assemble_bundle_without_content(
    build_factory: BuildFactory,
    bundle_inputs: tuple[Path, Path],
    tmp_path: Path,
) -> None:
    info_plist, icns = bundle_inputs
    artifact = build_factory("osx-x64", with_content=False)

    layout = assemble_bundle(artifact, PROJECT_NAME, info_plist, icns, tmp_path / "out")

    assert layout.resources_dir.is_dir()
    assert not layout.resources_content_dir.exists()


def test_relocate_content_replaces_existing_target(tmp_path: Path) -> None:
    source = tmp_path / "MacOS" / "Content"
    source.mkdir(parents=True)
    (source / "new.bin").write_bytes(b"new")
    target = tmp_path / "Resources" / "Content"
    target.mkdir(parents=True)
    (target / "old.bin").write_bytes(b"old")

    assert relocate_content(source, target) is True

    assert not source.exists()
    assert (target / "new.bin").is_file()
    assert not (target / "old.bin").exists()
    assert relocate_content(source, target) is False
