"""Typer CLI entrypoint for distpack."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import cast

import typer
import yaml

from distpack.config import AppSettings, FailurePolicy, load_settings
from distpack.errors import ConfigurationError
from distpack.logging_utils import configure_logging
from distpack.models import ARCHIVE_FORMAT_VALUES, ArchiveFormat, BuildArtifact, PackageRequest, RuntimeTarget
from distpack.packaging.archive import read_archive_entries
from distpack.packaging.permissions import describe_mode
from distpack.packaging.sanity import check_archive
from distpack.pipeline import PackageRunOptions, run_packaging

app = typer.Typer(
    add_completion=False,
    help="distpack command line interface.",
    no_args_is_help=True,
)


def _load_and_optionally_configure_logger(
    config_file: Path | None,
    configure: bool,
) -> tuple[AppSettings, logging.Logger]:
    settings = load_settings(config_file=config_file)
    if configure:
        logger = configure_logging(settings.paths.logs_root / "distpack.log")
    else:
        logger = logging.getLogger("distpack")
    return settings, logger


def _normalize_choice(value: str | None, *, allowed: set[str], option_name: str) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in allowed:
        allowed_rendered = ",".join(sorted(allowed))
        raise typer.BadParameter(f"{option_name} must be one of: {allowed_rendered}")
    return normalized


def _parse_artifact(value: str, build_executable: str) -> BuildArtifact:
    target_text, sep, directory_text = value.partition("=")
    if not sep or not target_text.strip() or not directory_text.strip():
        raise typer.BadParameter("artifact must be TARGET=DIR, e.g. linux-x64=./build/linux-x64")
    try:
        target = RuntimeTarget.parse(target_text)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return BuildArtifact(
        root_directory=Path(directory_text.strip()).expanduser().resolve(),
        executable_name=build_executable,
        runtime_target=target,
    )


@app.command("show-config")
def show_config(
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Print the effective configuration after env overrides."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    rendered = yaml.safe_dump(settings.as_dict(), sort_keys=False)
    typer.echo(rendered)


@app.command("package")
def package(
    artifact: list[str] = typer.Option(
        ...,
        "--artifact",
        help="Build output as TARGET=DIR (repeatable), e.g. osx-arm64=./build/osx-arm64.",
    ),
    name: str = typer.Option(
        ...,
        "--name",
        help="Project name; default bundle, executable, and archive base name.",
    ),
    build_executable: str | None = typer.Option(
        None,
        "--build-executable",
        help="Executable name the build step produced (defaults to --name).",
    ),
    executable_name: str | None = typer.Option(
        None,
        "--executable-name",
        help="Custom executable name used inside and for naming the archives.",
    ),
    archive_format: str | None = typer.Option(
        None,
        "--format",
        help="Archive format: zip or tar.gz (defaults to settings).",
    ),
    info_plist: Path | None = typer.Option(
        None,
        "--info-plist",
        help="Info.plist for macOS bundles (defaults to settings).",
        dir_okay=False,
    ),
    icns: Path | None = typer.Option(
        None,
        "--icns",
        help="Icon (.icns) for macOS bundles (defaults to settings).",
        dir_okay=False,
    ),
    macos_universal: bool = typer.Option(
        False,
        "--macos-universal",
        help="Combine the osx x64 and arm64 builds into one universal bundle.",
    ),
    failure_policy: str | None = typer.Option(
        None,
        "--failure-policy",
        help="continue (package every target) or abort (stop at first failure).",
    ),
    keep_staging: bool = typer.Option(
        False,
        "--keep-staging",
        help="Keep assembled staging trees after archiving.",
    ),
    output_dir: Path | None = typer.Option(
        None,
        "--output-dir",
        help="Directory for archives (defaults to settings paths.output_root).",
        file_okay=False,
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Package build outputs into per-target archives."""

    normalized_format = _normalize_choice(archive_format, allowed=set(ARCHIVE_FORMAT_VALUES), option_name="format")
    normalized_policy = _normalize_choice(failure_policy, allowed={"continue", "abort"}, option_name="failure-policy")

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    artifacts = tuple(_parse_artifact(value, build_executable or name) for value in artifact)

    request = PackageRequest(
        artifacts=artifacts,
        project_name=name,
        executable_name=executable_name,
        archive_format=cast(ArchiveFormat, normalized_format or settings.packaging.archive_format),
        info_plist_path=info_plist or settings.macos.info_plist,
        icns_path=icns or settings.macos.icns,
        macos_universal=macos_universal,
    )
    options = PackageRunOptions.from_settings(settings)
    if normalized_policy is not None:
        options = replace(options, failure_policy=cast(FailurePolicy, normalized_policy))
    if keep_staging:
        options = replace(options, keep_staging=True)

    try:
        result = run_packaging(request, settings, options=options, output_dir=output_dir, logger=logger)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    for outcome in result.outcomes:
        if outcome.status == "success":
            typer.echo(f"{outcome.label}: {outcome.archive_path}")
        elif outcome.status == "skipped":
            typer.echo(f"{outcome.label}: skipped")
        else:
            typer.echo(f"{outcome.label}: FAILED stage={outcome.stage} error={outcome.error_message}")
    typer.echo(f"run_id: {result.run_id}")
    typer.echo(f"summary_path: {result.summary_path}")

    if result.failures:
        raise typer.Exit(code=1)


@app.command("inspect")
def inspect_archive(
    archive: Path = typer.Argument(
        ...,
        help="Zip or tar.gz archive to list.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """List archive entries with their decoded permission bits."""

    for entry in read_archive_entries(archive):
        kind = "d" if entry.is_dir else "-"
        suffix = "/" if entry.is_dir else ""
        typer.echo(f"{kind}{describe_mode(entry.mode)} {oct(entry.mode)} {entry.size:>10} {entry.name}{suffix}")


@app.command("verify")
def verify_archive(
    archive: Path = typer.Argument(
        ...,
        help="Zip or tar.gz archive to check.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    executable: list[str] = typer.Option(
        [],
        "--executable",
        help="File name that must carry execute bits (repeatable).",
    ),
    bundle_name: str | None = typer.Option(
        None,
        "--bundle-name",
        help="Expect a <NAME>.app bundle layout.",
    ),
    windows: bool = typer.Option(
        False,
        "--windows",
        help="Windows archive: match names case-insensitively and skip Unix mode checks.",
    ),
) -> None:
    """Check permission bits, empty files, and bundle layout of an archive."""

    configure_logging()
    result = check_archive(
        archive,
        executable_names=executable,
        case_insensitive=windows,
        bundle_name=bundle_name,
        check_permissions=not windows,
    )
    typer.echo(f"archive: {result.archive_path}")
    typer.echo(f"entries: {result.entry_count}")
    for issue in result.issues:
        typer.echo(f"issue: {issue}")
    typer.echo("ok" if result.ok else f"issues: {len(result.issues)}")
    if not result.ok:
        raise typer.Exit(code=1)


def main() -> None:
    """CLI script entrypoint."""

    app()


if __name__ == "__main__":
    main()
