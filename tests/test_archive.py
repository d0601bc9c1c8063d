from __future__ import annotations

import stat
import tarfile
import zipfile
from pathlib import Path

import pytest

from conftest import PROJECT_NAME, BuildFactory
from distpack.models import ArchiveDescriptor, ArchiveFormat
from distpack.packaging.archive import collect_tree, read_archive_entries, write_archive


@pytest.fixture()
def tree(build_factory: BuildFactory) -> Path:
    return build_factory("linux-x64").root_directory


def _descriptor(
    source_root: Path,
    output_path: Path,
    archive_format: ArchiveFormat,
    **overrides: object,
) -> ArchiveDescriptor:
    values: dict[str, object] = {
        "output_path": output_path,
        "archive_format": archive_format,
        "source_root": source_root,
        "executable_names": frozenset({PROJECT_NAME}),
    }
    values.update(overrides)
    return ArchiveDescriptor(**values)  # type: ignore[arg-type]


def test_collect_tree_is_sorted_and_forward_slashed(tree: Path) -> None:
    names = [entry.arcname for entry in collect_tree(tree)]

    assert names == [
        "Content",
        "Content/Textures",
        "Content/Textures/hero.xnb",
        "Content/music.ogg",
        PROJECT_NAME,
        f"{PROJECT_NAME}.dll",
        "libSDL2.so",
        "runtimeconfig.json",
    ]


def test_collect_tree_with_base_directory(tree: Path) -> None:
    names = [entry.arcname for entry in collect_tree(tree, include_base_directory=True)]

    assert names[0] == tree.name
    assert all(name == tree.name or name.startswith(f"{tree.name}/") for name in names)


def test_collect_tree_missing_root(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        collect_tree(tmp_path / "missing")


def test_zip_permissions_in_external_attributes(tree: Path, tmp_path: Path) -> None:
    output = write_archive(_descriptor(tree, tmp_path / "out.zip", "zip"))

    with zipfile.ZipFile(output) as archive:
        infos = {info.filename: info for info in archive.infolist()}

    executable = infos[PROJECT_NAME]
    assert executable.create_system == 3
    assert (executable.external_attr >> 16) & 0o777 == 0o755
    assert stat.S_ISREG(executable.external_attr >> 16)

    library = infos["libSDL2.so"]
    assert (library.external_attr >> 16) & 0o777 == 0o644

    directory = infos["Content/Textures/"]
    assert (directory.external_attr >> 16) & 0o777 == 0o755
    assert stat.S_ISDIR(directory.external_attr >> 16)
    assert directory.external_attr & 0x10

    assert all("\\" not in name for name in infos)
    assert infos["Content/Textures/hero.xnb"].file_size > 0


def test_zip_payload_round_trips(tree: Path, tmp_path: Path) -> None:
    output = write_archive(_descriptor(tree, tmp_path / "out.zip", "zip"), compression_level=9)

    with zipfile.ZipFile(output) as archive:
        assert archive.read("Content/music.ogg") == b"music bytes"
        assert archive.read(PROJECT_NAME) == b"binary:linux-x64"
        assert archive.testzip() is None


def test_tar_gz_modes_and_directory_entries(tree: Path, tmp_path: Path) -> None:
    output = write_archive(_descriptor(tree, tmp_path / "out.tar.gz", "tar.gz"))

    with tarfile.open(output, "r:gz") as archive:
        members = {member.name: member for member in archive.getmembers()}

    assert members["Content"].isdir()
    assert members["Content/Textures"].isdir()
    assert members["Content/Textures"].mode == 0o755
    assert members[PROJECT_NAME].isfile()
    assert members[PROJECT_NAME].mode == 0o755
    assert members["runtimeconfig.json"].mode == 0o644
    assert members["Content/music.ogg"].size == len(b"music bytes")
    assert {member.uid for member in members.values()} == {0}


def test_tar_gz_payload_round_trips(tree: Path, tmp_path: Path) -> None:
    output = write_archive(_descriptor(tree, tmp_path / "out.tar.gz", "tar.gz"))

    with tarfile.open(output, "r:gz") as archive:
        handle = archive.extractfile("Content/Textures/hero.xnb")
        assert handle is not None
        assert handle.read() == b"texture bytes"


@pytest.mark.parametrize(("archive_format", "suffix"), [("zip", ".zip"), ("tar.gz", ".tar.gz")])
def test_base_directory_prefixes_every_entry(
    tree: Path,
    tmp_path: Path,
    archive_format: ArchiveFormat,
    suffix: str,
) -> None:
    output = write_archive(
        _descriptor(tree, tmp_path / f"out{suffix}", archive_format, include_base_directory=True),
    )

    names = [entry.name for entry in read_archive_entries(output)]
    assert names[0] == tree.name
    assert all(name == tree.name or name.startswith(f"{tree.name}/") for name in names)


@pytest.mark.parametrize(("archive_format", "suffix"), [("zip", ".zip"), ("tar.gz", ".tar.gz")])
def test_rewrite_replaces_existing_archive_without_stale_entries(
    tree: Path,
    tmp_path: Path,
    archive_format: ArchiveFormat,
    suffix: str,
) -> None:
    output_path = tmp_path / f"out{suffix}"
    output_path.write_bytes(b"not an archive")
    descriptor = _descriptor(tree, output_path, archive_format)

    write_archive(descriptor)
    first = [(entry.name, entry.mode, entry.is_dir) for entry in read_archive_entries(output_path)]
    write_archive(descriptor)
    second = [(entry.name, entry.mode, entry.is_dir) for entry in read_archive_entries(output_path)]
    assert first == second

    (tree / "libSDL2.so").unlink()
    write_archive(descriptor)
    third = {entry.name for entry in read_archive_entries(output_path)}
    assert "libSDL2.so" not in third
    assert not list(tmp_path.glob(".out*.tmp"))


def test_windows_names_match_case_insensitively(tmp_path: Path) -> None:
    source = tmp_path / "win"
    source.mkdir()
    (source / "GAME.EXE").write_bytes(b"MZ")
    (source / "readme.txt").write_bytes(b"hello")

    output = write_archive(
        _descriptor(
            source,
            tmp_path / "win.zip",
            "zip",
            executable_names=frozenset({"Game.exe"}),
            case_insensitive_names=True,
        )
    )

    modes = {entry.name: entry.mode for entry in read_archive_entries(output)}
    assert modes == {"GAME.EXE": 0o755, "readme.txt": 0o644}


def test_read_archive_entries_both_formats_agree(tree: Path, tmp_path: Path) -> None:
    zip_entries = read_archive_entries(write_archive(_descriptor(tree, tmp_path / "a.zip", "zip")))
    tar_entries = read_archive_entries(write_archive(_descriptor(tree, tmp_path / "a.tar.gz", "tar.gz")))

    def key(entries: list) -> list[tuple[str, int, bool, int]]:
        return [(entry.name, entry.mode, entry.is_dir, entry.size) for entry in entries]

    assert key(zip_entries) == key(tar_entries)
