from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Callable

import pytest

from distpack.config import AppSettings, load_settings
from distpack.models import BuildArtifact, RuntimeTarget

PROJECT_NAME = "ExampleGame"

SETTINGS_YAML = """\
project:
  name: distpack-tests
  env: test
paths:
  output_root: ./dist
  staging_root: ./staging
  artifacts_root: ./artifacts
  logs_root: ./logs
packaging:
  archive_format: zip
  compression_level: 6
  failure_policy: continue
  keep_staging: false
  delete_build_dirs: true
macos:
  universal_strategy: script
"""

FAKE_MERGE_TOOL = """\
import sys
from pathlib import Path

args = sys.argv[1:]
output_index = args.index("-output")
inputs = [Path(item) for item in args[1:output_index]]
output = Path(args[output_index + 1])
output.write_bytes(b"UNIVERSAL:" + b"|".join(item.read_bytes() for item in inputs))
print(f"merged {len(inputs)} inputs")
"""

FAILING_MERGE_TOOL = """\
import sys

print("lipo: can't figure out the architecture type", file=sys.stderr)
sys.exit(3)
"""

BuildFactory = Callable[..., BuildArtifact]


@pytest.fixture(autouse=True)
def _restore_root_logging():
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in list(root_logger.handlers):
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(level)


@pytest.fixture()
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "configs").mkdir(parents=True)
    (root / "configs" / "settings.yaml").write_text(SETTINGS_YAML, encoding="utf-8")
    return root


@pytest.fixture()
def settings(project_root: Path, monkeypatch: pytest.MonkeyPatch) -> AppSettings:
    monkeypatch.chdir(project_root)
    return load_settings(project_root / "configs" / "settings.yaml")


def create_build(
    root: Path,
    target: str,
    executable_name: str = PROJECT_NAME,
    with_content: bool = True,
) -> BuildArtifact:
    """Write a small fake build output the way the build step would leave it."""

    runtime_target = RuntimeTarget.parse(target)
    root.mkdir(parents=True, exist_ok=True)
    executable = root / runtime_target.executable_file_name(executable_name)
    executable.write_bytes(f"binary:{target}".encode())
    (root / f"{executable_name}.dll").write_bytes(b"managed assembly")
    (root / "libSDL2.so").write_bytes(b"native library")
    (root / "runtimeconfig.json").write_text('{"framework": "net8.0"}\n', encoding="utf-8")
    if with_content:
        textures = root / "Content" / "Textures"
        textures.mkdir(parents=True, exist_ok=True)
        (textures / "hero.xnb").write_bytes(b"texture bytes")
        (root / "Content" / "music.ogg").write_bytes(b"music bytes")
    return BuildArtifact(root_directory=root, executable_name=executable_name, runtime_target=runtime_target)


@pytest.fixture()
def build_factory(tmp_path: Path) -> BuildFactory:
    def factory(target: str, executable_name: str = PROJECT_NAME, with_content: bool = True) -> BuildArtifact:
        return create_build(tmp_path / "builds" / target, target, executable_name, with_content)

    return factory


@pytest.fixture()
def bundle_inputs(tmp_path: Path) -> tuple[Path, Path]:
    inputs_dir = tmp_path / "inputs"
    inputs_dir.mkdir()
    info_plist = inputs_dir / "Info.plist"
    info_plist.write_text(
        '<?xml version="1.0" encoding="UTF-8"?>\n<plist version="1.0"><dict/></plist>\n',
        encoding="utf-8",
    )
    icns = inputs_dir / "Icon.icns"
    icns.write_bytes(b"icns\x00\x00\x00\x08")
    return info_plist, icns


@pytest.fixture()
def fake_merge_command(tmp_path: Path) -> tuple[str, ...]:
    script = tmp_path / "fake_lipo.py"
    script.write_text(FAKE_MERGE_TOOL, encoding="utf-8")
    return (sys.executable, str(script))


@pytest.fixture()
def failing_merge_command(tmp_path: Path) -> tuple[str, ...]:
    script = tmp_path / "failing_lipo.py"
    script.write_text(FAILING_MERGE_TOOL, encoding="utf-8")
    return (sys.executable, str(script))
