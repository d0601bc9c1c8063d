"""Copy build-output trees into flat or macOS bundle layouts."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from distpack.models import BuildArtifact, BundleLayout

LOGGER = logging.getLogger(__name__)

CONTENT_DIR_NAME = "Content"


def reset_directory(path: Path) -> Path:
    """Remove ``path`` if present and recreate it empty."""

    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)
    return path


def copy_tree(source: Path, destination: Path) -> Path:
    """Copy the contents of ``source`` into ``destination``, merging directories."""

    if not source.is_dir():
        raise FileNotFoundError(f"build output directory not found: {source}")
    shutil.copytree(source, destination, dirs_exist_ok=True)
    return destination


def rename_executable(
    directory: Path,
    artifact: BuildArtifact,
    desired_name: str,
    logger: logging.Logger | None = None,
) -> Path:
    """Rename the artifact's executable inside ``directory`` to ``desired_name``.

    Windows executables keep their ``.exe`` suffix; only the stem changes.
    """

    effective_logger = logger or LOGGER
    current_path = directory / artifact.executable_file_name
    desired_path = directory / artifact.runtime_target.executable_file_name(desired_name)
    if current_path == desired_path:
        return current_path
    if not current_path.is_file():
        raise FileNotFoundError(f"executable not found in build output: {current_path}")
    current_path.rename(desired_path)
    effective_logger.info("assemble.renamed_executable from=%s to=%s", current_path.name, desired_path.name)
    return desired_path


def relocate_content(
    source_content_dir: Path,
    resources_content_dir: Path,
    logger: logging.Logger | None = None,
) -> bool:
    """Move a ``Content`` payload into ``Contents/Resources/Content``.

    Returns False when there is no payload to move.
    """

    effective_logger = logger or LOGGER
    if not source_content_dir.is_dir():
        return False
    if resources_content_dir.exists():
        shutil.rmtree(resources_content_dir)
    resources_content_dir.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(source_content_dir), str(resources_content_dir))
    effective_logger.info("assemble.content_relocated source=%s dest=%s", source_content_dir, resources_content_dir)
    return True


def prune_content(directory: Path) -> None:
    """Delete an embedded ``Content`` payload from a per-architecture copy."""

    content_dir = directory / CONTENT_DIR_NAME
    if content_dir.is_dir():
        shutil.rmtree(content_dir)


def assemble_plain(
    artifact: BuildArtifact,
    dest_dir: Path,
    desired_executable_name: str,
    logger: logging.Logger | None = None,
) -> Path:
    """Copy a build output to ``dest_dir`` and apply the desired executable name.

    Returns the path of the executable inside ``dest_dir``.
    """

    effective_logger = logger or LOGGER
    reset_directory(dest_dir)
    copy_tree(artifact.root_directory, dest_dir)
    executable_path = rename_executable(dest_dir, artifact, desired_executable_name, logger=effective_logger)
    effective_logger.info(
        "assemble.plain target=%s source=%s dest=%s executable=%s",
        artifact.runtime_target,
        artifact.root_directory,
        dest_dir,
        executable_path.name,
    )
    return executable_path


def create_bundle_skeleton(
    output_dir: Path,
    app_name: str,
    info_plist_path: Path,
    icns_path: Path,
) -> BundleLayout:
    """Create ``<app_name>.app/Contents/{MacOS,Resources}`` with plist and icon."""

    layout = BundleLayout.for_app(output_dir, app_name)
    reset_directory(layout.app_dir)
    layout.macos_dir.mkdir(parents=True)
    layout.resources_dir.mkdir(parents=True)
    shutil.copyfile(info_plist_path, layout.info_plist_path)
    shutil.copyfile(icns_path, layout.resources_dir / icns_path.name)
    return layout


def assemble_bundle(
    artifact: BuildArtifact,
    app_name: str,
    info_plist_path: Path,
    icns_path: Path,
    output_dir: Path,
    logger: logging.Logger | None = None,
) -> BundleLayout:
    """Lay out a single-architecture macOS ``.app`` bundle under ``output_dir``."""

    effective_logger = logger or LOGGER
    layout = create_bundle_skeleton(output_dir, app_name, info_plist_path, icns_path)
    copy_tree(artifact.root_directory, layout.macos_dir)
    rename_executable(layout.macos_dir, artifact, app_name, logger=effective_logger)
    relocate_content(layout.macos_dir / CONTENT_DIR_NAME, layout.resources_content_dir, logger=effective_logger)
    effective_logger.info(
        "assemble.bundle target=%s app_dir=%s",
        artifact.runtime_target,
        layout.app_dir,
    )
    return layout
