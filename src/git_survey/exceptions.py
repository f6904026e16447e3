"""Exception hierarchy for git-survey."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path


class SurveyError(Exception):
    """Base error for all custom exceptions."""


class ConfigError(SurveyError):
    """Raised when the configuration file or an option is invalid."""


class GitCommandError(SurveyError):
    """Raised when a git invocation fails."""

    def __init__(self, command: list[str], returncode: int, stderr: str | None = None):
        message = "Git command failed"
        if command:
            message = f"Git command failed: {' '.join(command)}"
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr or ""


class NotARepositoryError(SurveyError):
    """Raised when a path cannot be opened as a Git repository."""

    def __init__(self, path: Path, reason: str = ""):
        message = f"Not a git repository: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.path = path
        self.reason = reason


class FilesystemError(SurveyError):
    """Raised when repository internals cannot be read from disk."""

    def __init__(self, path: Path, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message


class RemoteErrorKind(StrEnum):
    """Why the upstream could not be compared."""

    INVALID_REMOTE = "invalid_remote"
    UNREACHABLE = "unreachable"
    AUTH_FAILED = "auth_failed"
    REF_NOT_FOUND = "ref_not_found"


class RemoteError(SurveyError):
    """Raised when divergence against the upstream cannot be computed."""

    def __init__(self, kind: RemoteErrorKind, message: str = ""):
        super().__init__(f"{kind.value}: {message}" if message else kind.value)
        self.kind = kind
        self.message = message

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RemoteError):
            return NotImplemented
        return self.kind == other.kind and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.kind, self.message))

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}
