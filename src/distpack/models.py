"""Data model shared by the assembler, archive writer, and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal

from distpack.errors import ConfigurationError

ArchiveFormat = Literal["zip", "tar.gz"]
ARCHIVE_FORMAT_VALUES: tuple[ArchiveFormat, ...] = ("zip", "tar.gz")

OutcomeStatus = Literal["success", "failed", "skipped"]

UNIVERSAL_LABEL = "universal"
WINDOWS_EXECUTABLE_SUFFIX = ".exe"

_OS_FAMILY_ALIASES: dict[str, str] = {
    "win": "windows",
    "windows": "windows",
    "osx": "macos",
    "macos": "macos",
    "darwin": "macos",
    "linux": "linux",
}


class EntryRole(str, Enum):
    """Semantic role of one archived path."""

    REGULAR_FILE = "regular_file"
    EXECUTABLE = "executable"
    DIRECTORY = "directory"


@dataclass(frozen=True, slots=True)
class RuntimeTarget:
    """Operating-system family plus CPU architecture, e.g. ``osx-arm64``."""

    identifier: str
    os_family: str
    arch: str

    @classmethod
    def parse(cls, identifier: str) -> "RuntimeTarget":
        """Parse an identifier of the form ``<os>-<arch>``."""

        text = identifier.strip()
        os_part, sep, arch_part = text.partition("-")
        if not sep or not os_part or not arch_part:
            raise ConfigurationError(f"runtime target must look like <os>-<arch>, got {identifier!r}")
        os_family = _OS_FAMILY_ALIASES.get(os_part.lower(), os_part.lower())
        return cls(identifier=text, os_family=os_family, arch=arch_part.lower())

    @property
    def is_windows(self) -> bool:
        return self.os_family == "windows"

    @property
    def is_macos(self) -> bool:
        return self.os_family == "macos"

    @property
    def is_arm64(self) -> bool:
        return self.arch in {"arm64", "aarch64"}

    @property
    def is_x64(self) -> bool:
        return self.arch in {"x64", "amd64", "x86_64"}

    def executable_file_name(self, name: str) -> str:
        """Return the on-disk executable file name for this platform."""

        if self.is_windows and not name.lower().endswith(WINDOWS_EXECUTABLE_SUFFIX):
            return f"{name}{WINDOWS_EXECUTABLE_SUFFIX}"
        return name

    def __str__(self) -> str:
        return self.identifier


@dataclass(frozen=True, slots=True)
class BuildArtifact:
    """Output of the external build step for one runtime target."""

    root_directory: Path
    executable_name: str
    runtime_target: RuntimeTarget

    @property
    def executable_file_name(self) -> str:
        return self.runtime_target.executable_file_name(self.executable_name)

    @property
    def executable_path(self) -> Path:
        return self.root_directory / self.executable_file_name


@dataclass(frozen=True, slots=True)
class BundleLayout:
    """Resolved paths of a macOS ``.app`` bundle skeleton."""

    app_dir: Path
    contents_dir: Path
    macos_dir: Path
    resources_dir: Path
    resources_content_dir: Path
    info_plist_path: Path

    @classmethod
    def for_app(cls, output_dir: Path, app_name: str) -> "BundleLayout":
        app_dir = output_dir / f"{app_name}.app"
        contents_dir = app_dir / "Contents"
        resources_dir = contents_dir / "Resources"
        return cls(
            app_dir=app_dir,
            contents_dir=contents_dir,
            macos_dir=contents_dir / "MacOS",
            resources_dir=resources_dir,
            resources_content_dir=resources_dir / "Content",
            info_plist_path=contents_dir / "Info.plist",
        )


@dataclass(frozen=True, slots=True)
class ArchiveDescriptor:
    """Everything the archive writer needs to serialize one tree."""

    output_path: Path
    archive_format: ArchiveFormat
    source_root: Path
    executable_names: frozenset[str] = field(default_factory=frozenset)
    include_base_directory: bool = False
    case_insensitive_names: bool = False


@dataclass(frozen=True, slots=True)
class PackageRequest:
    """Caller request for one packaging run."""

    artifacts: tuple[BuildArtifact, ...]
    project_name: str
    executable_name: str | None = None
    archive_format: ArchiveFormat = "zip"
    info_plist_path: Path | None = None
    icns_path: Path | None = None
    macos_universal: bool = False

    @property
    def app_name(self) -> str:
        """Name used for the bundle, the renamed executable, and archive files."""

        return self.executable_name or self.project_name


@dataclass(frozen=True, slots=True)
class TargetOutcome:
    """Result of packaging one target (or the combined universal build)."""

    label: str
    status: OutcomeStatus
    archive_path: Path | None = None
    stage: str | None = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


def archive_file_name(base_name: str, label: str, archive_format: ArchiveFormat) -> str:
    """Build ``<name>-<label>.<ext>`` output names; the format doubles as the extension."""

    if archive_format not in ARCHIVE_FORMAT_VALUES:
        raise ConfigurationError(f"archive format must be one of {', '.join(ARCHIVE_FORMAT_VALUES)}")
    return f"{base_name}-{label}.{archive_format}"
