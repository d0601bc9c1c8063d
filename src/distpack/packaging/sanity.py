"""Post-hoc checks of packaged archives: permission bits, empty files, bundle layout."""

from __future__ import annotations

import logging
from collections.abc import Collection
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from distpack.models import EntryRole
from distpack.packaging.archive import ArchiveEntry, read_archive_entries
from distpack.packaging.permissions import describe_mode, role_for_name

LOGGER = logging.getLogger(__name__)

REQUIRED_FILE_BITS = 0o644
FORBIDDEN_FILE_BITS = 0o022
EXECUTE_BITS = 0o111
REQUIRED_DIRECTORY_BITS = 0o755


@dataclass(frozen=True, slots=True)
class ArchiveSanityResult:
    """Outcome of checking one archive."""

    archive_path: Path
    entry_count: int
    issues: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def as_dict(self) -> dict[str, Any]:
        return {
            "archive_path": str(self.archive_path),
            "entry_count": self.entry_count,
            "ok": self.ok,
            "issues": list(self.issues),
        }


def _check_entry_permissions(entry: ArchiveEntry, role: EntryRole) -> list[str]:
    issues: list[str] = []
    mode = entry.mode
    rendered = describe_mode(mode)
    if mode == 0:
        return [f"{entry.name}: permission bits are zero"]
    if role is EntryRole.DIRECTORY:
        if mode & REQUIRED_DIRECTORY_BITS != REQUIRED_DIRECTORY_BITS:
            issues.append(f"{entry.name}: directory missing rwxr-xr-x, was {rendered}")
        return issues
    if mode & REQUIRED_FILE_BITS != REQUIRED_FILE_BITS:
        issues.append(f"{entry.name}: file missing rw-r--r--, was {rendered}")
    if mode & FORBIDDEN_FILE_BITS:
        issues.append(f"{entry.name}: group/other write must not be set, was {rendered}")
    if role is EntryRole.EXECUTABLE and mode & EXECUTE_BITS != EXECUTE_BITS:
        issues.append(f"{entry.name}: executable missing execute bits, was {rendered}")
    return issues


def _check_bundle_layout(entries: list[ArchiveEntry], bundle_name: str) -> list[str]:
    issues: list[str] = []
    app_dir = f"{bundle_name}.app"
    names = [entry.name for entry in entries]
    outside = [name for name in names if name != app_dir and not name.startswith(f"{app_dir}/")]
    if outside:
        issues.append(f"{len(outside)} entries outside {app_dir}, e.g. {outside[0]}")

    contents = f"{app_dir}/Contents"
    required_prefixes = {
        "Contents/MacOS/": f"{contents}/MacOS/",
        "Contents/Resources/": f"{contents}/Resources/",
    }
    for label, prefix in required_prefixes.items():
        if not any(name.startswith(prefix) for name in names):
            issues.append(f"bundle has nothing under {label}")
    if f"{contents}/Info.plist" not in names:
        issues.append("bundle missing Contents/Info.plist")
    if not any(name.startswith(f"{contents}/Resources/") and name.endswith(".icns") for name in names):
        issues.append("bundle missing Contents/Resources/*.icns")
    return issues


def check_archive(
    archive_path: Path,
    *,
    executable_names: Collection[str],
    case_insensitive: bool = False,
    bundle_name: str | None = None,
    check_permissions: bool = True,
    logger: logging.Logger | None = None,
) -> ArchiveSanityResult:
    """Check packaging invariants for an archive that has already been written.

    Empty file entries are reported as defects. Permission checks can be
    disabled for Windows archives, whose consumers ignore Unix modes.
    """

    effective_logger = logger or LOGGER
    entries = read_archive_entries(archive_path)
    issues: list[str] = []
    if not entries:
        issues.append("archive has no entries")

    for entry in entries:
        role = role_for_name(
            entry.file_name,
            is_dir=entry.is_dir,
            executable_names=executable_names,
            case_insensitive=case_insensitive,
        )
        if role is not EntryRole.DIRECTORY and entry.size <= 0:
            issues.append(f"{entry.name}: file is empty")
        if check_permissions:
            issues.extend(_check_entry_permissions(entry, role))

    if bundle_name is not None:
        issues.extend(_check_bundle_layout(entries, bundle_name))

    result = ArchiveSanityResult(archive_path=archive_path, entry_count=len(entries), issues=issues)
    if result.ok:
        effective_logger.info("sanity.ok archive=%s entries=%s", archive_path, len(entries))
    else:
        effective_logger.warning("sanity.issues archive=%s count=%s first=%s", archive_path, len(issues), issues[0])
    return result
