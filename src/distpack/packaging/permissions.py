"""Canonical Unix permission bits per archived entry role."""

from __future__ import annotations

import stat
from collections.abc import Collection
from typing import Final

from distpack.models import EntryRole

FILE_PERMISSIONS: Final[int] = 0o644
EXECUTABLE_PERMISSIONS: Final[int] = 0o755
DIRECTORY_PERMISSIONS: Final[int] = 0o755

PERMISSION_MASK: Final[int] = 0o777

_ROLE_PERMISSIONS: Final[dict[EntryRole, int]] = {
    EntryRole.REGULAR_FILE: FILE_PERMISSIONS,
    EntryRole.EXECUTABLE: EXECUTABLE_PERMISSIONS,
    EntryRole.DIRECTORY: DIRECTORY_PERMISSIONS,
}


def resolve_permissions(role: EntryRole) -> int:
    """Return the permission bits every archive format applies for ``role``."""

    return _ROLE_PERMISSIONS[role]


def role_for_name(
    file_name: str,
    *,
    is_dir: bool,
    executable_names: Collection[str],
    case_insensitive: bool = False,
) -> EntryRole:
    """Derive an entry role from its file name and kind."""

    if is_dir:
        return EntryRole.DIRECTORY
    if case_insensitive:
        lowered = {name.lower() for name in executable_names}
        if file_name.lower() in lowered:
            return EntryRole.EXECUTABLE
    elif file_name in executable_names:
        return EntryRole.EXECUTABLE
    return EntryRole.REGULAR_FILE


def describe_mode(bits: int) -> str:
    """Render permission bits as ``rwxr-xr-x``."""

    return stat.filemode(bits & PERMISSION_MASK)[1:]
