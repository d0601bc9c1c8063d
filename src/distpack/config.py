"""Configuration models and loading logic."""

from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_SETTINGS_FILE = Path("configs/settings.yaml")
SETTINGS_FILE_ENV = "DISTPACK_SETTINGS_FILE"

FailurePolicy = Literal["continue", "abort"]
UniversalStrategyMode = Literal["auto", "native", "script"]


class ProjectConfig(BaseModel):
    """Project metadata settings."""

    name: str = "distpack"
    env: str = "dev"


class PathsConfig(BaseModel):
    """Filesystem locations for archives, staging trees, and run artifacts."""

    output_root: Path = Path("./dist")
    staging_root: Path = Path("./dist/.staging")
    artifacts_root: Path = Path("./artifacts")
    logs_root: Path = Path("./logs")

    def resolved(self, project_root: Path) -> "PathsConfig":
        """Return a copy with project-relative paths resolved to absolute paths."""

        updates: dict[str, Path] = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            updates[field_name] = value if value.is_absolute() else (project_root / value).resolve()
        return self.model_copy(update=updates)


class PackagingConfig(BaseModel):
    """Archive output and per-run behavior switches."""

    archive_format: Literal["zip", "tar.gz"] = "zip"
    compression_level: int = Field(default=6, ge=0, le=9)
    failure_policy: FailurePolicy = "continue"
    keep_staging: bool = False
    delete_build_dirs: bool = True


class MacOSConfig(BaseModel):
    """Inputs and host-capability switches for macOS bundles."""

    info_plist: Path | None = None
    icns: Path | None = None
    universal_strategy: UniversalStrategyMode = "auto"
    merge_command: list[str] = Field(default_factory=lambda: ["lipo"], min_length=1)

    def resolved(self, project_root: Path) -> "MacOSConfig":
        updates: dict[str, Path] = {}
        for field_name in ("info_plist", "icns"):
            value = getattr(self, field_name)
            if value is not None and not value.is_absolute():
                updates[field_name] = (project_root / value).resolve()
        return self.model_copy(update=updates)


class AppSettings(BaseSettings):
    """Top-level application settings."""

    _yaml_file_override: ClassVar[Path | None] = None

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    packaging: PackagingConfig = Field(default_factory=PackagingConfig)
    macos: MacOSConfig = Field(default_factory=MacOSConfig)

    model_config = SettingsConfigDict(
        env_prefix="DISTPACK_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Use YAML defaults while allowing env vars to override values."""

        yaml_file = resolve_settings_file(cls._yaml_file_override)
        yaml_settings = YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    def as_dict(self) -> dict[str, object]:
        """Return settings as a standard nested dictionary."""

        return self.model_dump(mode="json")


def find_project_root(start: Path | None = None) -> Path:
    """Locate the project root by traversing upward for config markers."""

    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / "configs/settings.yaml").exists():
            return candidate
    return current


def resolve_settings_file(override: Path | None = None) -> Path:
    """Resolve settings file from explicit override, env var, or default."""

    chosen = override
    if chosen is None:
        env_value = os.getenv(SETTINGS_FILE_ENV)
        if env_value:
            chosen = Path(env_value)
    if chosen is None:
        chosen = DEFAULT_SETTINGS_FILE

    if not chosen.is_absolute():
        chosen = (find_project_root() / chosen).resolve()
    return chosen


def load_settings(config_file: Path | None = None) -> AppSettings:
    """Load settings with YAML defaults and environment variable overrides."""

    settings_file = resolve_settings_file(config_file)
    project_root = settings_file.parent.parent.resolve()
    AppSettings._yaml_file_override = settings_file
    try:
        settings = AppSettings()
    finally:
        AppSettings._yaml_file_override = None
    resolved_paths = settings.paths.resolved(project_root=project_root)
    resolved_macos = settings.macos.resolved(project_root=project_root)
    return settings.model_copy(update={"paths": resolved_paths, "macos": resolved_macos})
