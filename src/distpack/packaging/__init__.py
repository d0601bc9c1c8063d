"""Packaging core: permissions, assembly, universal binaries, and archive writers."""

from distpack.packaging.archive import ArchiveEntry, read_archive_entries, write_archive
from distpack.packaging.assembler import assemble_bundle, assemble_plain
from distpack.packaging.packagers import (
    PackagedArchive,
    package_macos_bundle,
    package_macos_universal,
    package_plain,
    select_packager_kind,
)
from distpack.packaging.permissions import describe_mode, resolve_permissions
from distpack.packaging.sanity import ArchiveSanityResult, check_archive
from distpack.packaging.universal import (
    NativeMergeStrategy,
    ScriptDispatchStrategy,
    UniversalBinaryStrategy,
    select_universal_strategy,
)

__all__ = [
    "ArchiveEntry",
    "read_archive_entries",
    "write_archive",
    "assemble_plain",
    "assemble_bundle",
    "PackagedArchive",
    "package_plain",
    "package_macos_bundle",
    "package_macos_universal",
    "select_packager_kind",
    "resolve_permissions",
    "describe_mode",
    "ArchiveSanityResult",
    "check_archive",
    "UniversalBinaryStrategy",
    "NativeMergeStrategy",
    "ScriptDispatchStrategy",
    "select_universal_strategy",
]
