"""Exception hierarchy for twinfinder."""

from pathlib import Path
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .models import DeleteOutcome


class TwinFinderError(Exception):
    """Base exception for all twinfinder errors."""


class InvalidPathError(TwinFinderError, ValueError):
    """Raised when the scan root does not exist, is not a directory or is unreadable."""


class FileHashError(TwinFinderError, OSError):
    """Raised when a file cannot be opened or read while hashing."""


class DecodeError(TwinFinderError):
    """Raised when an image file cannot be decoded for perceptual hashing."""


class ScanInProgressError(TwinFinderError, RuntimeError):
    """Raised when an operation conflicts with a running scan."""


class ScanCancelled(TwinFinderError):
    """Raised when a scan was cancelled before it completed."""


class ConfigError(TwinFinderError, ValueError):
    """Raised when the configuration file is malformed."""


class DeleteError(TwinFinderError):
    """A single file could not be deleted."""

    def __init__(
        self, path: Union[str, Path], outcome: "DeleteOutcome", message: str = ""
    ):
        self.path = str(path)
        self.outcome = outcome
        super().__init__(message or f"{outcome.value}: {path}")
