"""Exception types raised by the packaging core."""

from __future__ import annotations


class PackagingError(Exception):
    """Base class for all packaging failures."""


class ConfigurationError(PackagingError):
    """Required packaging inputs are missing or inconsistent."""


class MergeToolError(PackagingError):
    """The external binary-merge tool exited with a non-zero status."""

    def __init__(self, exit_code: int, stdout: str = "", stderr: str = "") -> None:
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        message = f"merge tool failed with exit code {exit_code}"
        details = "\n".join(part for part in (stdout.strip(), stderr.strip()) if part)
        if details:
            message = f"{message}\n{details}"
        super().__init__(message)


class TargetPackagingError(PackagingError):
    """Failure of one packaging unit, tagged with the stage that failed."""

    def __init__(self, target: str, stage: str, cause: BaseException) -> None:
        self.target = target
        self.stage = stage
        self.cause = cause
        super().__init__(f"target={target} stage={stage}: {cause}")
