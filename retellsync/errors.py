from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class RetellSyncError(Exception):
    """Base exception for retell-sync failures surfaced to the CLI."""


@dataclass(frozen=True)
class ConfigParseError(RetellSyncError):
    """Raised when a JSON/YAML file in the workspace cannot be parsed."""

    path: Path
    message: str
    lineno: int | None = None
    colno: int | None = None

    def __str__(self) -> str:
        loc = ""
        if self.lineno is not None and self.colno is not None:
            loc = f" (line {self.lineno}, column {self.colno})"
        return f"Invalid file {self.path}: {self.message}{loc}"


@dataclass(frozen=True)
class ConfigValidationError(RetellSyncError):
    """Raised when a parsed config file does not match the expected schema."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"Invalid config in {self.path}: {self.message}"


@dataclass(frozen=True)
class SchemaError(RetellSyncError):
    """Raised when an API payload does not have the shape we rely on."""

    resource: str
    message: str

    def __str__(self) -> str:
        return f"Unexpected {self.resource} payload: {self.message}"


@dataclass(frozen=True)
class LocalStateError(RetellSyncError):
    """Raised when the local agent tree is inconsistent (e.g. dangling file:// reference)."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class PullAborted(RetellSyncError):
    """Raised when the user declines to overwrite uncommitted changes."""
