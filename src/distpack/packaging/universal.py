"""Universal (x64 + arm64) macOS executables: native merge or script dispatch."""

from __future__ import annotations

import logging
import os
import platform
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from distpack.config import UniversalStrategyMode
from distpack.errors import MergeToolError
from distpack.models import BuildArtifact, BundleLayout
from distpack.packaging.assembler import (
    CONTENT_DIR_NAME,
    copy_tree,
    prune_content,
    relocate_content,
)
from distpack.packaging.permissions import EXECUTABLE_PERMISSIONS

LOGGER = logging.getLogger(__name__)

DEFAULT_MERGE_COMMAND: tuple[str, ...] = ("lipo",)
AMD64_DIR_NAME = "amd64"
ARM64_DIR_NAME = "arm64"

DISPATCH_SCRIPT_TEMPLATE = """#!/bin/bash

cd "$(dirname "$BASH_SOURCE")/../Resources"
if [[ $(uname -p) == 'arm' ]]; then
  exec ./../MacOS/{arm64_dir}/{executable} "$@"
else
  exec ./../MacOS/{amd64_dir}/{executable} "$@"
fi
"""


class UniversalBinaryStrategy(Protocol):
    """Produce a universal executable inside a bundle from two single-arch builds."""

    name: str

    def build(
        self,
        x64: BuildArtifact,
        arm64: BuildArtifact,
        layout: BundleLayout,
        app_name: str,
    ) -> Path:
        """Populate ``layout.macos_dir`` and return the nominal executable path."""
        ...


def host_supports_native_merge() -> bool:
    """Return True when this process runs on macOS, where the merge tool ships."""

    return platform.system() == "Darwin"


def run_merge_tool(
    x64_executable: Path,
    arm64_executable: Path,
    output_path: Path,
    *,
    merge_command: Sequence[str] = DEFAULT_MERGE_COMMAND,
    logger: logging.Logger | None = None,
) -> subprocess.CompletedProcess[str]:
    """Merge two single-architecture executables into ``output_path``.

    Both output streams are captured while the tool runs; a non-zero exit
    raises MergeToolError carrying the captured text.
    """

    effective_logger = logger or LOGGER
    command = [
        *merge_command,
        "-create",
        str(x64_executable.resolve()),
        str(arm64_executable.resolve()),
        "-output",
        str(output_path.resolve()),
    ]
    effective_logger.info("universal.merge_start command=%s", command)
    completed = subprocess.run(command, capture_output=True, text=True, check=False)
    if completed.stdout:
        effective_logger.info("universal.merge_stdout %s", completed.stdout.strip())
    if completed.stderr:
        effective_logger.warning("universal.merge_stderr %s", completed.stderr.strip())
    if completed.returncode != 0:
        raise MergeToolError(completed.returncode, stdout=completed.stdout, stderr=completed.stderr)
    effective_logger.info("universal.merge_done output=%s", output_path)
    return completed


def render_dispatch_script(executable_name: str) -> str:
    """Return the bash launcher text that picks the per-architecture binary."""

    return DISPATCH_SCRIPT_TEMPLATE.format(
        arm64_dir=ARM64_DIR_NAME,
        amd64_dir=AMD64_DIR_NAME,
        executable=executable_name,
    )


def write_dispatch_script(script_path: Path, executable_name: str) -> Path:
    """Write the launcher with LF line endings and mark it executable where possible."""

    script_path.parent.mkdir(parents=True, exist_ok=True)
    with script_path.open("w", encoding="utf-8", newline="\n") as handle:
        handle.write(render_dispatch_script(executable_name))
    if os.name == "posix":
        script_path.chmod(EXECUTABLE_PERMISSIONS)
    return script_path


class NativeMergeStrategy:
    """Merge both executables with the host merge tool (macOS hosts)."""

    name = "native"

    def __init__(
        self,
        merge_command: Sequence[str] = DEFAULT_MERGE_COMMAND,
        logger: logging.Logger | None = None,
    ) -> None:
        self.merge_command = tuple(merge_command)
        self.logger = logger or LOGGER

    def build(
        self,
        x64: BuildArtifact,
        arm64: BuildArtifact,
        layout: BundleLayout,
        app_name: str,
    ) -> Path:
        copy_tree(x64.root_directory, layout.macos_dir)
        merged_path = layout.macos_dir / x64.executable_file_name
        run_merge_tool(
            x64.executable_path,
            arm64.executable_path,
            merged_path,
            merge_command=self.merge_command,
            logger=self.logger,
        )

        final_path = layout.macos_dir / app_name
        if merged_path != final_path:
            merged_path.rename(final_path)
            self.logger.info("universal.renamed_executable from=%s to=%s", merged_path.name, final_path.name)

        relocate_content(layout.macos_dir / CONTENT_DIR_NAME, layout.resources_content_dir, logger=self.logger)
        return final_path


class ScriptDispatchStrategy:
    """Ship both architectures side by side behind a launcher script."""

    name = "script"

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or LOGGER

    def build(
        self,
        x64: BuildArtifact,
        arm64: BuildArtifact,
        layout: BundleLayout,
        app_name: str,
    ) -> Path:
        amd64_dir = layout.macos_dir / AMD64_DIR_NAME
        arm64_dir = layout.macos_dir / ARM64_DIR_NAME
        amd64_dir.mkdir(parents=True, exist_ok=True)
        arm64_dir.mkdir(parents=True, exist_ok=True)

        copy_tree(x64.root_directory, amd64_dir)
        prune_content(amd64_dir)
        copy_tree(arm64.root_directory, arm64_dir)

        # both builds carry identical content; ship the arm64 copy once
        relocate_content(arm64_dir / CONTENT_DIR_NAME, layout.resources_content_dir, logger=self.logger)

        script_path = write_dispatch_script(layout.macos_dir / app_name, arm64.executable_file_name)
        self.logger.info(
            "universal.dispatch_script path=%s executable=%s",
            script_path,
            arm64.executable_file_name,
        )
        return script_path


def select_universal_strategy(
    mode: UniversalStrategyMode = "auto",
    *,
    merge_command: Sequence[str] = DEFAULT_MERGE_COMMAND,
    logger: logging.Logger | None = None,
) -> UniversalBinaryStrategy:
    """Pick the merge strategy from configuration, probing the host for ``auto``."""

    effective_logger = logger or LOGGER
    use_native = mode == "native" or (mode == "auto" and host_supports_native_merge())
    strategy: UniversalBinaryStrategy
    if use_native:
        strategy = NativeMergeStrategy(merge_command, logger=effective_logger)
    else:
        strategy = ScriptDispatchStrategy(logger=effective_logger)
    effective_logger.info("universal.strategy_selected mode=%s strategy=%s", mode, strategy.name)
    return strategy
