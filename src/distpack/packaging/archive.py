"""Zip and tar.gz writers that stamp canonical permission bits on every entry."""

from __future__ import annotations

import logging
import os
import stat
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from distpack.models import ArchiveDescriptor, ArchiveFormat
from distpack.packaging.permissions import PERMISSION_MASK, resolve_permissions, role_for_name

LOGGER = logging.getLogger(__name__)

DEFAULT_COMPRESSION_LEVEL = 6
ZIP_UNIX_SYSTEM = 3
MSDOS_DIRECTORY_FLAG = 0x10


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    """One decoded archive member."""

    name: str
    mode: int
    is_dir: bool
    size: int

    @property
    def file_name(self) -> str:
        return self.name.rsplit("/", 1)[-1]


@dataclass(frozen=True, slots=True)
class _TreeEntry:
    path: Path
    arcname: str
    is_dir: bool


def _atomic_temp_path(target_path: Path) -> Path:
    """Create a unique temp path next to the target for atomic replacement."""

    return target_path.parent / f".{target_path.name}.{uuid4().hex}.tmp"


def _walk_sorted(directory: Path) -> list[Path]:
    paths: list[Path] = []
    for child in sorted(directory.iterdir(), key=lambda item: item.name):
        paths.append(child)
        if child.is_dir():
            paths.extend(_walk_sorted(child))
    return paths


def collect_tree(source_root: Path, include_base_directory: bool = False) -> list[_TreeEntry]:
    """List every directory and file under ``source_root`` in archive order.

    Arc names always use forward slashes. With ``include_base_directory`` the
    root directory itself is emitted and prefixes every name.
    """

    if not source_root.is_dir():
        raise FileNotFoundError(f"archive source directory not found: {source_root}")

    base = source_root.parent if include_base_directory else source_root
    entries: list[_TreeEntry] = []
    if include_base_directory:
        entries.append(_TreeEntry(path=source_root, arcname=source_root.name, is_dir=True))
    for path in _walk_sorted(source_root):
        entries.append(
            _TreeEntry(
                path=path,
                arcname=path.relative_to(base).as_posix(),
                is_dir=path.is_dir(),
            )
        )
    return entries


def _entry_permissions(entry: _TreeEntry, descriptor: ArchiveDescriptor) -> int:
    role = role_for_name(
        entry.path.name,
        is_dir=entry.is_dir,
        executable_names=descriptor.executable_names,
        case_insensitive=descriptor.case_insensitive_names,
    )
    return resolve_permissions(role)


def _write_zip(
    descriptor: ArchiveDescriptor,
    entries: list[_TreeEntry],
    temp_path: Path,
    compression_level: int,
) -> None:
    with zipfile.ZipFile(temp_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=compression_level) as archive:
        for entry in entries:
            bits = _entry_permissions(entry, descriptor)
            arcname = f"{entry.arcname}/" if entry.is_dir else entry.arcname
            info = zipfile.ZipInfo.from_file(entry.path, arcname, strict_timestamps=False)
            info.create_system = ZIP_UNIX_SYSTEM
            if entry.is_dir:
                info.compress_type = zipfile.ZIP_STORED
                info.external_attr = ((stat.S_IFDIR | bits) << 16) | MSDOS_DIRECTORY_FLAG
                archive.writestr(info, b"")
                continue
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = (stat.S_IFREG | bits) << 16
            with entry.path.open("rb") as handle:
                archive.writestr(info, handle.read(), compresslevel=compression_level)


def _write_tar_gz(
    descriptor: ArchiveDescriptor,
    entries: list[_TreeEntry],
    temp_path: Path,
    compression_level: int,
) -> None:
    with tarfile.open(temp_path, "w:gz", compresslevel=compression_level) as archive:
        for entry in entries:
            file_stat = entry.path.stat()
            info = tarfile.TarInfo(name=entry.arcname)
            info.mode = _entry_permissions(entry, descriptor)
            info.mtime = int(file_stat.st_mtime)
            info.uid = 0
            info.gid = 0
            info.uname = ""
            info.gname = ""
            if entry.is_dir:
                info.type = tarfile.DIRTYPE
                archive.addfile(info)
                continue
            info.type = tarfile.REGTYPE
            info.size = file_stat.st_size
            with entry.path.open("rb") as handle:
                archive.addfile(info, handle)


def write_archive(
    descriptor: ArchiveDescriptor,
    *,
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    logger: logging.Logger | None = None,
) -> Path:
    """Serialize ``descriptor.source_root`` into a fresh archive and return its path."""

    effective_logger = logger or LOGGER
    output_path = descriptor.output_path
    entries = collect_tree(descriptor.source_root, descriptor.include_base_directory)

    if output_path.exists():
        effective_logger.info("archive.replace_existing path=%s", output_path)
        output_path.unlink()
    output_path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = _atomic_temp_path(output_path)
    try:
        if descriptor.archive_format == "zip":
            _write_zip(descriptor, entries, temp_path, compression_level)
        elif descriptor.archive_format == "tar.gz":
            _write_tar_gz(descriptor, entries, temp_path, compression_level)
        else:
            raise ValueError(f"unsupported archive format: {descriptor.archive_format}")
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()

    effective_logger.info(
        "archive.written path=%s format=%s entries=%s bytes=%s",
        output_path,
        descriptor.archive_format,
        len(entries),
        output_path.stat().st_size,
    )
    return output_path


def detect_archive_format(path: Path) -> ArchiveFormat:
    """Infer the archive format from the file name, falling back to content sniffing."""

    name = path.name.lower()
    if name.endswith(".zip"):
        return "zip"
    if name.endswith((".tar.gz", ".tgz")):
        return "tar.gz"
    if zipfile.is_zipfile(path):
        return "zip"
    return "tar.gz"


def read_archive_entries(path: Path) -> list[ArchiveEntry]:
    """Decode every member of a zip or tar.gz archive with its permission bits."""

    entries: list[ArchiveEntry] = []
    if detect_archive_format(path) == "zip":
        with zipfile.ZipFile(path) as archive:
            for info in archive.infolist():
                entries.append(
                    ArchiveEntry(
                        name=info.filename.rstrip("/"),
                        mode=(info.external_attr >> 16) & PERMISSION_MASK,
                        is_dir=info.is_dir(),
                        size=info.file_size,
                    )
                )
        return entries

    with tarfile.open(path, "r:gz") as archive:
        for member in archive.getmembers():
            entries.append(
                ArchiveEntry(
                    name=member.name.rstrip("/"),
                    mode=member.mode & PERMISSION_MASK,
                    is_dir=member.isdir(),
                    size=member.size,
                )
            )
    return entries
