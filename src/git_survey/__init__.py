"""git-survey: A quick look at every Git repository under a directory."""

# Guard against deleted CWD (e.g. directory removed by another process).
# rich crashes on import if os.getcwd() fails, so recover before any imports.
import os

try:
    os.getcwd()
except (OSError, PermissionError):
    os.chdir(os.path.expanduser("~"))

from ._version import __version__
from .config import DisplayMode, Settings, load_settings
from .core import (
    BranchInfo,
    DirtyState,
    DispatchReport,
    Dispatcher,
    DivergenceCalculator,
    DivergenceCount,
    RepositoryOutcome,
    RepositoryStatusRecord,
    StatusResolver,
    SubmoduleInfo,
    SubmoduleStatus,
    SurveySummary,
    SyncStatus,
    UpstreamRef,
    WorkingTreeClassifier,
    discover_repositories,
    summarize,
)
from .credentials import AuthCandidate, AuthKind, auth_candidates, parse_remote_url
from .exceptions import (
    ConfigError,
    FilesystemError,
    GitCommandError,
    NotARepositoryError,
    RemoteError,
    RemoteErrorKind,
    SurveyError,
)
from .cli import app
from .formatters import OutputFormatter
from .schema import get_tool_schema

__all__ = [
    # Version
    "__version__",
    # CLI
    "app",
    # Models
    "BranchInfo",
    "DirtyState",
    "DispatchReport",
    "DivergenceCount",
    "RepositoryOutcome",
    "RepositoryStatusRecord",
    "SubmoduleInfo",
    "SubmoduleStatus",
    "SurveySummary",
    "SyncStatus",
    "UpstreamRef",
    "AuthCandidate",
    "AuthKind",
    # Operations
    "Dispatcher",
    "DivergenceCalculator",
    "StatusResolver",
    "WorkingTreeClassifier",
    # Functions
    "auth_candidates",
    "discover_repositories",
    "get_tool_schema",
    "load_settings",
    "parse_remote_url",
    "summarize",
    # Configuration
    "DisplayMode",
    "Settings",
    # Errors
    "ConfigError",
    "FilesystemError",
    "GitCommandError",
    "NotARepositoryError",
    "RemoteError",
    "RemoteErrorKind",
    "SurveyError",
    # Formatters
    "OutputFormatter",
]
