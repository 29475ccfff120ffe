"""Exception types raised by nhx.

Every failure that should stop the run derives from NhxError and carries the
process exit code the CLI uses when reporting it. A script's own non-zero
exit is not an error and never passes through here.
"""

from __future__ import annotations

from constants import ExitCodes


class NhxError(Exception):
    """Base class for fatal nhx failures."""

    exit_code = ExitCodes.FAILURE.value


class ManifestParseError(NhxError):
    """Raised when an inline package block holds an invalid object."""

    def __init__(self, message: str):
        super().__init__(f"Failed to parse inline deps: {message}")
        self.detail = message


class InstallError(NhxError):
    """Raised when npm install fails on both the offline and network attempts."""


class CacheIntegrityError(NhxError):
    """Raised when a complete cache entry records a different dependency set."""


class RuntimeResolutionError(NhxError):
    """Raised when no Node version can satisfy an engines constraint."""


class TargetError(NhxError):
    """Raised when the requested script or package executable cannot be found."""


class LaunchFailure(NhxError):
    """Raised when the target runtime or executable cannot be spawned."""

    exit_code = ExitCodes.LAUNCH_FAILURE.value
