"""Packager variants: plain directory, macOS bundle, and macOS universal bundle."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from distpack.errors import ConfigurationError, TargetPackagingError
from distpack.models import (
    UNIVERSAL_LABEL,
    ArchiveDescriptor,
    BuildArtifact,
    BundleLayout,
    PackageRequest,
    RuntimeTarget,
    archive_file_name,
)
from distpack.packaging.archive import DEFAULT_COMPRESSION_LEVEL, write_archive
from distpack.packaging.assembler import assemble_bundle, assemble_plain, create_bundle_skeleton
from distpack.packaging.universal import UniversalBinaryStrategy

LOGGER = logging.getLogger(__name__)

PackagerKind = Literal["plain", "macos_bundle", "macos_universal"]


@dataclass(frozen=True, slots=True)
class PackagedArchive:
    """Archive produced by one packager plus the directories it consumed."""

    label: str
    archive_path: Path
    staging_dir: Path
    artifacts: tuple[BuildArtifact, ...]


@dataclass(frozen=True, slots=True)
class UniversalPair:
    """The two macOS builds merged into one universal bundle."""

    x64: BuildArtifact
    arm64: BuildArtifact


@contextmanager
def packaging_stage(label: str, stage: str) -> Iterator[None]:
    """Tag any failure inside the block with the unit label and stage."""

    try:
        yield
    except TargetPackagingError:
        raise
    except Exception as exc:
        raise TargetPackagingError(label, stage, exc) from exc


def select_packager_kind(target: RuntimeTarget) -> PackagerKind:
    """Choose the single-target packager for a runtime target."""

    return "macos_bundle" if target.is_macos else "plain"


def require_bundle_inputs(request: PackageRequest) -> tuple[Path, Path]:
    """Return the plist and icon paths, failing when either is absent."""

    info_plist_path = request.info_plist_path
    icns_path = request.icns_path
    missing: list[str] = []
    if info_plist_path is None:
        missing.append("Info.plist path")
    elif not info_plist_path.is_file():
        missing.append(f"Info.plist file ({info_plist_path})")
    if icns_path is None:
        missing.append("icon (.icns) path")
    elif not icns_path.is_file():
        missing.append(f"icon file ({icns_path})")
    if missing or info_plist_path is None or icns_path is None:
        raise ConfigurationError(f"macOS bundle requires {', '.join(missing)}")
    return info_plist_path, icns_path


def pair_universal_artifacts(artifacts: Sequence[BuildArtifact]) -> UniversalPair:
    """Find exactly one x64 and one arm64 macOS build."""

    x64 = [artifact for artifact in artifacts if artifact.runtime_target.is_macos and artifact.runtime_target.is_x64]
    arm64 = [
        artifact for artifact in artifacts if artifact.runtime_target.is_macos and artifact.runtime_target.is_arm64
    ]
    others = [artifact for artifact in artifacts if artifact not in x64 and artifact not in arm64]
    if len(x64) != 1 or len(arm64) != 1 or others:
        identifiers = ", ".join(str(artifact.runtime_target) for artifact in artifacts) or "none"
        raise ConfigurationError(
            f"universal macOS package needs exactly one x64 and one arm64 macOS build, got: {identifiers}"
        )
    return UniversalPair(x64=x64[0], arm64=arm64[0])


def _archive_path(request: PackageRequest, output_dir: Path, label: str) -> Path:
    return output_dir / archive_file_name(request.app_name, label, request.archive_format)


def package_plain(
    artifact: BuildArtifact,
    request: PackageRequest,
    *,
    output_dir: Path,
    staging_root: Path,
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    logger: logging.Logger | None = None,
) -> PackagedArchive:
    """Copy a build as-is (with the desired executable name) and archive its contents."""

    effective_logger = logger or LOGGER
    target = artifact.runtime_target
    label = target.identifier
    staging_dir = staging_root / f"{request.app_name}-{label}"

    with packaging_stage(label, "assemble"):
        executable_path = assemble_plain(artifact, staging_dir, request.app_name, logger=effective_logger)

    descriptor = ArchiveDescriptor(
        output_path=_archive_path(request, output_dir, label),
        archive_format=request.archive_format,
        source_root=staging_dir,
        executable_names=frozenset({executable_path.name}),
        include_base_directory=False,
        case_insensitive_names=target.is_windows,
    )
    with packaging_stage(label, "archive"):
        archive_path = write_archive(descriptor, compression_level=compression_level, logger=effective_logger)
    return PackagedArchive(label=label, archive_path=archive_path, staging_dir=staging_dir, artifacts=(artifact,))


def package_macos_bundle(
    artifact: BuildArtifact,
    request: PackageRequest,
    *,
    output_dir: Path,
    staging_root: Path,
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    logger: logging.Logger | None = None,
) -> PackagedArchive:
    """Lay out a single-architecture ``.app`` bundle and archive it."""

    effective_logger = logger or LOGGER
    label = artifact.runtime_target.identifier
    with packaging_stage(label, "configure"):
        info_plist_path, icns_path = require_bundle_inputs(request)

    staging_dir = staging_root / label
    with packaging_stage(label, "assemble"):
        layout = assemble_bundle(
            artifact,
            request.app_name,
            info_plist_path,
            icns_path,
            staging_dir,
            logger=effective_logger,
        )

    descriptor = ArchiveDescriptor(
        output_path=_archive_path(request, output_dir, label),
        archive_format=request.archive_format,
        source_root=layout.app_dir,
        executable_names=frozenset({request.app_name}),
        include_base_directory=True,
    )
    with packaging_stage(label, "archive"):
        archive_path = write_archive(descriptor, compression_level=compression_level, logger=effective_logger)
    return PackagedArchive(label=label, archive_path=archive_path, staging_dir=staging_dir, artifacts=(artifact,))


def package_macos_universal(
    artifacts: Sequence[BuildArtifact],
    request: PackageRequest,
    strategy: UniversalBinaryStrategy,
    *,
    output_dir: Path,
    staging_root: Path,
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    logger: logging.Logger | None = None,
) -> PackagedArchive:
    """Build one bundle spanning x64 and arm64 and archive it as ``-universal``."""

    effective_logger = logger or LOGGER
    label = UNIVERSAL_LABEL
    with packaging_stage(label, "configure"):
        info_plist_path, icns_path = require_bundle_inputs(request)
        pair = pair_universal_artifacts(artifacts)

    staging_dir = staging_root / label
    with packaging_stage(label, "assemble"):
        layout: BundleLayout = create_bundle_skeleton(staging_dir, request.app_name, info_plist_path, icns_path)
        executable_path = strategy.build(pair.x64, pair.arm64, layout, request.app_name)
        effective_logger.info(
            "package.universal_assembled strategy=%s executable=%s",
            strategy.name,
            executable_path,
        )

    executable_names = {request.app_name}
    if strategy.name == "script":
        # per-architecture binaries live under MacOS/amd64 and MacOS/arm64
        executable_names.update({pair.x64.executable_file_name, pair.arm64.executable_file_name})
    descriptor = ArchiveDescriptor(
        output_path=_archive_path(request, output_dir, label),
        archive_format=request.archive_format,
        source_root=layout.app_dir,
        executable_names=frozenset(executable_names),
        include_base_directory=True,
    )
    with packaging_stage(label, "archive"):
        archive_path = write_archive(descriptor, compression_level=compression_level, logger=effective_logger)
    return PackagedArchive(
        label=label,
        archive_path=archive_path,
        staging_dir=staging_dir,
        artifacts=(pair.x64, pair.arm64),
    )
