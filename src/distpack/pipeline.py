"""Packaging run orchestration across requested runtime targets."""

from __future__ import annotations

import json
import logging
import os
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import uuid4

import polars as pl

from distpack.config import AppSettings, FailurePolicy, UniversalStrategyMode
from distpack.errors import ConfigurationError, TargetPackagingError
from distpack.models import UNIVERSAL_LABEL, BuildArtifact, PackageRequest, TargetOutcome
from distpack.packaging.archive import DEFAULT_COMPRESSION_LEVEL
from distpack.packaging.packagers import (
    PackagedArchive,
    PackagerKind,
    package_macos_bundle,
    package_macos_universal,
    package_plain,
    packaging_stage,
    pair_universal_artifacts,
    require_bundle_inputs,
    select_packager_kind,
)
from distpack.packaging.universal import DEFAULT_MERGE_COMMAND, select_universal_strategy
from distpack.utils.time_utils import now_utc

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PackageRunOptions:
    """Runtime options for a packaging run."""

    failure_policy: FailurePolicy = "continue"
    keep_staging: bool = False
    delete_build_dirs: bool = True
    compression_level: int = DEFAULT_COMPRESSION_LEVEL
    universal_strategy: UniversalStrategyMode = "auto"
    merge_command: tuple[str, ...] = DEFAULT_MERGE_COMMAND

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "PackageRunOptions":
        return cls(
            failure_policy=settings.packaging.failure_policy,
            keep_staging=settings.packaging.keep_staging,
            delete_build_dirs=settings.packaging.delete_build_dirs,
            compression_level=settings.packaging.compression_level,
            universal_strategy=settings.macos.universal_strategy,
            merge_command=tuple(settings.macos.merge_command),
        )


@dataclass(frozen=True, slots=True)
class PackagingUnit:
    """One archive to produce: a single target or the combined universal build."""

    label: str
    kind: PackagerKind
    artifacts: tuple[BuildArtifact, ...]


@dataclass(frozen=True, slots=True)
class PackageRunResult:
    """Return object for packaging run outcomes."""

    run_id: str
    outcomes: list[TargetOutcome]
    summary: dict[str, Any]
    summary_path: Path
    target_results_path: Path
    archives: list[Path] = field(default_factory=list)

    @property
    def failures(self) -> list[TargetOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == "failed"]

    @property
    def succeeded(self) -> bool:
        return all(outcome.succeeded for outcome in self.outcomes)


def _atomic_temp_path(target_path: Path) -> Path:
    """Create a temp path in the target directory for atomic replacement."""

    return target_path.parent / f".{target_path.name}.{uuid4().hex}.tmp"


def _write_json_atomically(payload: dict[str, Any], output_path: Path) -> Path:
    """Write JSON payload atomically to output path."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = _atomic_temp_path(output_path)
    try:
        temp_path.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n", encoding="utf-8")
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def _write_parquet_atomically(df: pl.DataFrame, output_path: Path) -> Path:
    """Write parquet atomically to output path."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = _atomic_temp_path(output_path)
    try:
        df.write_parquet(temp_path)
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def plan_units(request: PackageRequest) -> list[PackagingUnit]:
    """Split the request into archives: macOS builds fold into one universal unit when asked."""

    units: list[PackagingUnit] = []
    universal_artifacts: list[BuildArtifact] = []
    for artifact in request.artifacts:
        target = artifact.runtime_target
        if request.macos_universal and target.is_macos:
            universal_artifacts.append(artifact)
            continue
        units.append(
            PackagingUnit(
                label=target.identifier,
                kind=select_packager_kind(target),
                artifacts=(artifact,),
            )
        )
    if request.macos_universal:
        units.append(
            PackagingUnit(
                label=UNIVERSAL_LABEL,
                kind="macos_universal",
                artifacts=tuple(universal_artifacts),
            )
        )

    labels = [unit.label for unit in units]
    duplicates = sorted({label for label in labels if labels.count(label) > 1})
    if duplicates:
        raise ConfigurationError(f"runtime targets requested more than once: {', '.join(duplicates)}")
    return units


def validate_unit(unit: PackagingUnit, request: PackageRequest) -> None:
    """Raise ConfigurationError when a unit's inputs are incomplete."""

    if unit.kind == "plain":
        return
    require_bundle_inputs(request)
    if unit.kind == "macos_universal":
        pair_universal_artifacts(unit.artifacts)


def _empty_target_results_df() -> pl.DataFrame:
    """Create empty target-results frame with stable schema."""

    return pl.DataFrame(schema=_target_results_schema())


def _target_results_schema() -> dict[str, pl.DataType]:
    return {
        "label": pl.String,
        "status": pl.String,
        "archive_path": pl.String,
        "stage": pl.String,
        "error_message": pl.String,
    }


def _outcome_row(outcome: TargetOutcome) -> dict[str, object]:
    return {
        "label": outcome.label,
        "status": outcome.status,
        "archive_path": str(outcome.archive_path) if outcome.archive_path else None,
        "stage": outcome.stage,
        "error_message": outcome.error_message,
    }


def _cleanup_unit(
    packaged: PackagedArchive,
    options: PackageRunOptions,
    logger: logging.Logger,
) -> None:
    """Delete the staging tree and the consumed build directories."""

    if not options.keep_staging and packaged.staging_dir.exists():
        shutil.rmtree(packaged.staging_dir)
        logger.info("package_run.staging_removed label=%s path=%s", packaged.label, packaged.staging_dir)
    if options.delete_build_dirs:
        for artifact in packaged.artifacts:
            if artifact.root_directory.exists():
                shutil.rmtree(artifact.root_directory)
                logger.info(
                    "package_run.build_dir_removed label=%s target=%s path=%s",
                    packaged.label,
                    artifact.runtime_target,
                    artifact.root_directory,
                )


def _failed_outcome(
    unit: PackagingUnit,
    exc: TargetPackagingError,
    archive_path: Path | None = None,
) -> TargetOutcome:
    return TargetOutcome(
        label=unit.label,
        status="failed",
        archive_path=archive_path,
        stage=exc.stage,
        error_message=str(exc.cause),
    )


def _package_unit(
    unit: PackagingUnit,
    runner: Callable[[], PackagedArchive],
    options: PackageRunOptions,
    logger: logging.Logger,
) -> TargetOutcome:
    """Run one unit to completion; failures leave its build directories in place."""

    try:
        with packaging_stage(unit.label, "package"):
            packaged = runner()
    except TargetPackagingError as exc:
        logger.exception("package_run.unit_failed label=%s stage=%s", unit.label, exc.stage)
        return _failed_outcome(unit, exc)

    try:
        with packaging_stage(unit.label, "cleanup"):
            _cleanup_unit(packaged, options, logger)
    except TargetPackagingError as exc:
        logger.exception("package_run.unit_failed label=%s stage=%s", unit.label, exc.stage)
        return _failed_outcome(unit, exc, archive_path=packaged.archive_path)

    return TargetOutcome(label=unit.label, status="success", archive_path=packaged.archive_path)


def run_packaging(
    request: PackageRequest,
    settings: AppSettings,
    *,
    options: PackageRunOptions | None = None,
    output_dir: Path | None = None,
    logger: logging.Logger | None = None,
) -> PackageRunResult:
    """Package every requested runtime target and write run summary artifacts."""

    effective_logger = logger or LOGGER
    run_options = options or PackageRunOptions.from_settings(settings)
    archives_dir = output_dir or settings.paths.output_root
    run_id = f"package-run-{uuid4().hex[:12]}"
    staging_root = settings.paths.staging_root / run_id
    started_ts = now_utc()
    started_mono = time.monotonic()

    units = plan_units(request)
    effective_logger.info(
        "package_run.start run_id=%s units=%s format=%s failure_policy=%s output_dir=%s",
        run_id,
        [unit.label for unit in units],
        request.archive_format,
        run_options.failure_policy,
        archives_dir,
    )

    outcomes: dict[str, TargetOutcome] = {}
    aborted = False

    # Configuration problems surface before any unit does filesystem work.
    for unit in units:
        try:
            validate_unit(unit, request)
        except ConfigurationError as exc:
            outcomes[unit.label] = TargetOutcome(
                label=unit.label,
                status="failed",
                stage="configure",
                error_message=str(exc),
            )
            effective_logger.error("package_run.config_error label=%s error=%s", unit.label, exc)
    if outcomes and run_options.failure_policy == "abort":
        aborted = True

    archives: list[Path] = []
    for index, unit in enumerate(units, start=1):
        if unit.label in outcomes:
            continue
        if aborted:
            outcomes[unit.label] = TargetOutcome(label=unit.label, status="skipped")
            continue

        runner = _unit_runner(unit, request, run_options, archives_dir, staging_root, effective_logger)
        outcome = _package_unit(unit, runner, run_options, effective_logger)
        outcomes[unit.label] = outcome
        if outcome.archive_path is not None:
            archives.append(outcome.archive_path)
        if outcome.status == "failed" and run_options.failure_policy == "abort":
            aborted = True

        effective_logger.info(
            "package_run.progress processed=%s/%s label=%s status=%s elapsed_sec=%.2f",
            index,
            len(units),
            unit.label,
            outcomes[unit.label].status,
            time.monotonic() - started_mono,
        )

    any_failed = any(outcome.status == "failed" for outcome in outcomes.values())
    if staging_root.exists() and not run_options.keep_staging and not any_failed:
        # failed units keep their partial staging trees for diagnosis
        shutil.rmtree(staging_root)

    ordered_outcomes = [outcomes[unit.label] for unit in units]
    status_counts = {
        status: sum(1 for outcome in ordered_outcomes if outcome.status == status)
        for status in ("success", "failed", "skipped")
    }
    finished_ts = now_utc()
    summary: dict[str, Any] = {
        "run_id": run_id,
        "started_ts": started_ts.isoformat(),
        "finished_ts": finished_ts.isoformat(),
        "duration_sec": round(time.monotonic() - started_mono, 3),
        "app_name": request.app_name,
        "archive_format": request.archive_format,
        "macos_universal": request.macos_universal,
        "failure_policy": run_options.failure_policy,
        "aborted": aborted,
        "status_counts": status_counts,
        "targets": [_outcome_row(outcome) for outcome in ordered_outcomes],
        "outputs": {
            "output_dir": str(archives_dir),
            "archives": [str(path) for path in archives],
        },
    }

    summaries_dir = settings.paths.artifacts_root / "run_summaries"
    summary_path = _write_json_atomically(summary, summaries_dir / f"{run_id}_package_run_summary.json")
    rows = [_outcome_row(outcome) for outcome in ordered_outcomes]
    target_results_df = (
        pl.DataFrame(rows, schema_overrides=_target_results_schema()) if rows else _empty_target_results_df()
    )
    target_results_path = _write_parquet_atomically(
        target_results_df,
        summaries_dir / f"{run_id}_target_results.parquet",
    )

    effective_logger.info(
        "package_run.done run_id=%s success=%s failed=%s skipped=%s summary_path=%s",
        run_id,
        status_counts["success"],
        status_counts["failed"],
        status_counts["skipped"],
        summary_path,
    )
    return PackageRunResult(
        run_id=run_id,
        outcomes=ordered_outcomes,
        summary=summary,
        summary_path=summary_path,
        target_results_path=target_results_path,
        archives=archives,
    )


def _unit_runner(
    unit: PackagingUnit,
    request: PackageRequest,
    options: PackageRunOptions,
    output_dir: Path,
    staging_root: Path,
    logger: logging.Logger,
) -> Callable[[], PackagedArchive]:
    """Bind a unit to the packager that handles its kind."""

    common: dict[str, Any] = {
        "output_dir": output_dir,
        "staging_root": staging_root,
        "compression_level": options.compression_level,
        "logger": logger,
    }
    if unit.kind == "plain":
        return lambda: package_plain(unit.artifacts[0], request, **common)
    if unit.kind == "macos_bundle":
        return lambda: package_macos_bundle(unit.artifacts[0], request, **common)

    def run_universal() -> PackagedArchive:
        strategy = select_universal_strategy(
            options.universal_strategy,
            merge_command=options.merge_command,
            logger=logger,
        )
        return package_macos_universal(unit.artifacts, request, strategy, **common)

    return run_universal
