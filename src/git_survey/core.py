"""
git-survey: A quick look at every Git repository under a directory.

For each repository, resolve the current branch, how far it has drifted from
its upstream, and whether the working tree is dirty. Many repositories are
resolved in parallel, and a failure in one never stops the others.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import threading
import time
from collections.abc import Iterable, Iterator, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass, field
from enum import Flag, StrEnum, auto
from pathlib import Path

from .config import Settings
from .credentials import RemoteUrl, auth_candidates, parse_remote_url
from .exceptions import (
    FilesystemError,
    GitCommandError,
    NotARepositoryError,
    RemoteError,
    RemoteErrorKind,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Domain Models
# =============================================================================


class DirtyState(Flag):
    """Working tree and index state. CLEAN is the empty set of flags."""

    CLEAN = 0
    UNSTAGED = auto()
    STAGED = auto()
    UNTRACKED = auto()
    SUBMODULE = auto()

    @property
    def is_dirty(self) -> bool:
        return self != DirtyState.CLEAN

    def labels(self) -> list[str]:
        if not self:
            return ["clean"]
        return [flag.name.lower() for flag in DirtyState if flag and flag in self]


class SyncStatus(StrEnum):
    """Repository sync status with its upstream."""

    CLEAN = "clean"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"
    NO_UPSTREAM = "no_upstream"
    DETACHED = "detached"
    REMOTE_ERROR = "remote_error"
    ERROR = "error"


@dataclass(frozen=True)
class BranchInfo:
    """The checked out branch, or the detached HEAD sentinel."""

    name: str
    detached: bool = False

    @classmethod
    def detached_head(cls) -> BranchInfo:
        return cls(name="HEAD", detached=True)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class UpstreamRef:
    """Upstream configured for a local branch.

    tracking_ref is the local ref git maps the upstream to through the
    remote's fetch refspec (refs/heads/<branch> when remote is "."). It is
    empty when no refspec stores the upstream locally.
    """

    remote: str
    branch: str
    tracking_ref: str = field(default="", compare=False)

    @property
    def is_local(self) -> bool:
        """True when the upstream is another local branch (remote ".")."""
        return self.remote == "."

    def __str__(self) -> str:
        if self.is_local:
            return self.branch
        return f"{self.remote}/{self.branch}"


@dataclass(frozen=True)
class DivergenceCount:
    """Commits only on the local side (ahead) and only on the upstream (behind)."""

    ahead: int = 0
    behind: int = 0

    def __post_init__(self):
        if self.ahead < 0 or self.behind < 0:
            raise ValueError("divergence counts cannot be negative")

    @property
    def in_sync(self) -> bool:
        return self.ahead == 0 and self.behind == 0


class SubmoduleStatus(StrEnum):
    """State of a submodule as shown by `git submodule status`."""

    CURRENT = "current"
    UNINITIALIZED = "uninitialized"
    MODIFIED = "modified"
    CONFLICT = "conflict"


_SUBMODULE_PREFIXES = {
    " ": SubmoduleStatus.CURRENT,
    "-": SubmoduleStatus.UNINITIALIZED,
    "+": SubmoduleStatus.MODIFIED,
    "U": SubmoduleStatus.CONFLICT,
}


@dataclass(frozen=True)
class SubmoduleInfo:
    """A submodule of the repository."""

    name: str
    path: str
    status: SubmoduleStatus

    def to_dict(self) -> dict:
        return {"name": self.name, "path": self.path, "status": self.status.value}


@dataclass(frozen=True)
class RepositoryStatusRecord:
    """Complete, immutable status of one Git repository."""

    path: Path
    name: str
    branch: BranchInfo | None = None
    upstream: UpstreamRef | None = None
    divergence: DivergenceCount | None = None
    remote_error: RemoteError | None = None
    dirty_state: DirtyState | None = None
    error: str = ""
    url: str | None = None
    email: str | None = None
    bare: bool = False
    fetched: bool = False
    submodules: tuple[SubmoduleInfo, ...] | None = None

    @property
    def sync_status(self) -> SyncStatus:
        if self.error:
            return SyncStatus.ERROR
        if self.branch is not None and self.branch.detached:
            return SyncStatus.DETACHED
        if self.remote_error is not None:
            return SyncStatus.REMOTE_ERROR
        if self.divergence is None:
            return SyncStatus.NO_UPSTREAM
        if self.divergence.ahead and self.divergence.behind:
            return SyncStatus.DIVERGED
        if self.divergence.ahead:
            return SyncStatus.AHEAD
        if self.divergence.behind:
            return SyncStatus.BEHIND
        return SyncStatus.CLEAN

    @property
    def is_dirty(self) -> bool:
        return self.dirty_state is not None and self.dirty_state.is_dirty

    @property
    def needs_push(self) -> bool:
        return self.sync_status in (SyncStatus.AHEAD, SyncStatus.DIVERGED)

    @property
    def needs_pull(self) -> bool:
        return self.sync_status in (SyncStatus.BEHIND, SyncStatus.DIVERGED)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "path": str(self.path),
            "name": self.name,
            "branch": self.branch.name if self.branch else None,
            "detached": self.branch.detached if self.branch else False,
            "upstream": str(self.upstream) if self.upstream else None,
            "sync_status": self.sync_status.value,
            "ahead": self.divergence.ahead if self.divergence else None,
            "behind": self.divergence.behind if self.divergence else None,
            "fetched": self.fetched,
            "remote_error": self.remote_error.to_dict() if self.remote_error else None,
            "dirty": self.dirty_state.labels() if self.dirty_state is not None else None,
            "bare": self.bare,
            "url": self.url,
            "email": self.email,
            "submodules": (
                [s.to_dict() for s in self.submodules] if self.submodules is not None else None
            ),
            "error": self.error or None,
        }


@dataclass(frozen=True)
class RepositoryOutcome:
    """What one input path produced: a record, or a not-a-repository error."""

    path: Path
    record: RepositoryStatusRecord | None = None
    error: NotARepositoryError | None = None

    @property
    def is_repository(self) -> bool:
        return self.record is not None

    def to_dict(self) -> dict:
        if self.record is not None:
            return self.record.to_dict()
        return {
            "path": str(self.path),
            "not_a_repository": str(self.error) if self.error else True,
        }


@dataclass(frozen=True)
class DispatchReport:
    """Outcomes of one dispatcher run, sorted by path."""

    outcomes: tuple[RepositoryOutcome, ...] = ()
    cancelled: bool = False

    def __iter__(self) -> Iterator[RepositoryOutcome]:
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    def __getitem__(self, index: int) -> RepositoryOutcome:
        return self.outcomes[index]

    @property
    def records(self) -> list[RepositoryStatusRecord]:
        return [o.record for o in self.outcomes if o.record is not None]

    @property
    def not_repositories(self) -> list[RepositoryOutcome]:
        return [o for o in self.outcomes if o.record is None]


@dataclass
class SurveySummary:
    """Counts across a whole run."""

    total: int = 0
    clean: int = 0
    dirty: int = 0
    ahead: int = 0
    behind: int = 0
    diverged: int = 0
    no_upstream: int = 0
    detached: int = 0
    remote_errors: int = 0
    errors: int = 0
    not_repositories: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


# =============================================================================
# Git Operations (Low-level)
# =============================================================================

# Inherited variables that would point git somewhere other than repo_path.
_REPO_ENV_VARS = ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE", "GIT_OBJECT_DIRECTORY")

# <state><sha> <path>[ (<describe>)]
_SUBMODULE_LINE = re.compile(r"^(?P<state>[ +\-U])[0-9a-f]+ (?P<path>.+?)(?: \(.*\))?$")


def repository_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if environ is None else environ)
    for name in _REPO_ENV_VARS:
        env.pop(name, None)
    return env


class GitOperations:
    """Low-level Git queries for a single repository."""

    def __init__(self, repo_path: Path, env: Mapping[str, str] | None = None):
        self.repo_path = repo_path
        self.env = repository_env(env)

    def _run(
        self,
        *args: str,
        check: bool = True,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess:
        """Run a git command in the repository."""
        cmd = ["git", "--no-optional-locks", *args]
        result = subprocess.run(
            cmd,
            cwd=self.repo_path,
            capture_output=True,
            # Paths are bytes; with core.quotePath=false git prints them raw.
            encoding="utf-8",
            errors="surrogateescape",
            check=False,
            env=dict(env) if env is not None else self.env,
            timeout=timeout,
        )
        if check and result.returncode != 0:
            raise GitCommandError(cmd, result.returncode, result.stderr)
        return result

    def _config_get(self, key: str) -> str | None:
        result = self._run("config", "--get", key, check=False)
        if result.returncode == 0:
            return result.stdout.strip()
        if result.returncode == 1:
            return None
        raise GitCommandError(["git", "config", "--get", key], result.returncode, result.stderr)

    def open(self) -> bool:
        """Check that repo_path is a repository root. Returns True for bare repositories."""
        if not self.repo_path.is_dir():
            raise NotARepositoryError(self.repo_path, "not a directory")

        # Never let discovery wander into a repository above repo_path.
        env = dict(self.env)
        env["GIT_CEILING_DIRECTORIES"] = str(self.repo_path.parent)
        try:
            result = self._run("rev-parse", "--is-bare-repository", check=False, env=env)
        except OSError as e:
            raise NotARepositoryError(self.repo_path, str(e)) from e
        if result.returncode != 0:
            raise NotARepositoryError(self.repo_path, result.stderr.strip())

        bare = result.stdout.strip() == "true"
        query = "--absolute-git-dir" if bare else "--show-toplevel"
        result = self._run("rev-parse", query, check=False, env=env)
        if result.returncode != 0:
            raise NotARepositoryError(self.repo_path, result.stderr.strip())
        if Path(result.stdout.strip()).resolve() != self.repo_path.resolve():
            raise NotARepositoryError(self.repo_path, "inside another repository")
        return bare

    def get_branch(self) -> BranchInfo:
        """Read the symbolic HEAD reference."""
        result = self._run("symbolic-ref", "--quiet", "HEAD", check=False)
        if result.returncode == 0:
            return BranchInfo(result.stdout.strip().removeprefix("refs/heads/"))
        if result.returncode == 1:
            return BranchInfo.detached_head()
        raise GitCommandError(["git", "symbolic-ref", "HEAD"], result.returncode, result.stderr)

    def get_upstream(self, branch: str) -> UpstreamRef | None:
        """Get the configured upstream of a local branch."""
        remote = self._config_get(f"branch.{branch}.remote")
        merge = self._config_get(f"branch.{branch}.merge")
        if not remote or not merge:
            return None
        # %(upstream) applies the fetch refspec and does not need the ref to exist.
        result = self._run(
            "for-each-ref", "--count=1", "--format=%(upstream)", f"refs/heads/{branch}"
        )
        tracking_ref = result.stdout.strip()
        if not tracking_ref and remote != "." and not self.has_commit("HEAD"):
            # Unborn branch: there is no refs/heads/<branch> for git to look at.
            tracking_ref = self._map_fetch_refspecs(remote, merge) or ""
        return UpstreamRef(
            remote=remote,
            branch=merge.removeprefix("refs/heads/"),
            tracking_ref=tracking_ref,
        )

    def _map_fetch_refspecs(self, remote: str, merge: str) -> str | None:
        """Where the fetch refspecs of `remote` store its ref `merge`."""
        result = self._run("config", "--get-all", f"remote.{remote}.fetch", check=False)
        for refspec in result.stdout.split():
            src, _, dst = refspec.removeprefix("+").partition(":")
            if not dst or src.startswith("^"):
                continue
            if "*" not in src:
                if src == merge:
                    return dst
                continue
            prefix, _, suffix = src.partition("*")
            if merge.startswith(prefix) and merge.endswith(suffix):
                matched = merge[len(prefix):len(merge) - len(suffix)]
                return dst.replace("*", matched, 1)
        return None

    def get_remotes(self) -> list[str]:
        result = self._run("remote", check=False)
        if result.returncode != 0:
            return []
        return [n.strip() for n in result.stdout.splitlines() if n.strip()]

    def get_remote_url(self, remote: str) -> str | None:
        result = self._run("remote", "get-url", remote, check=False)
        if result.returncode == 0:
            return result.stdout.strip() or None
        return None

    def get_default_remote_url(self) -> str | None:
        """URL of origin, else of the first remote that has one."""
        remotes = self.get_remotes()
        if "origin" in remotes:
            remotes.remove("origin")
            remotes.insert(0, "origin")
        for name in remotes:
            url = self.get_remote_url(name)
            if url:
                return url
        return None

    def get_user_email(self) -> str | None:
        """Effective user.email; local config first, then global."""
        try:
            return self._config_get("user.email") or None
        except (GitCommandError, OSError) as e:
            logger.debug("ignored error reading user.email in %s: %s", self.repo_path, e)
            return None

    def has_commit(self, ref: str) -> bool:
        result = self._run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False)
        return result.returncode == 0

    def get_ahead_behind(self, ref: str) -> tuple[int, int]:
        """Commits reachable only from HEAD and only from ref."""
        if not self.has_commit("HEAD"):
            # Unborn branch: every upstream commit is behind.
            result = self._run("rev-list", "--count", ref)
            return 0, int(result.stdout.strip())
        result = self._run("rev-list", "--left-right", "--count", f"HEAD...{ref}")
        ahead, behind = result.stdout.split()
        return int(ahead), int(behind)

    def fetch_branch(
        self,
        remote: str,
        branch: str,
        tracking_ref: str,
        *,
        env: Mapping[str, str],
        timeout: float,
    ) -> subprocess.CompletedProcess:
        """Fetch one branch into its remote-tracking ref."""
        refspec = f"+refs/heads/{branch}:{tracking_ref}"
        return self._run(
            "fetch", "--no-tags", "--quiet", remote, refspec, check=False, env=env, timeout=timeout
        )

    def get_status_porcelain(self, include_ignored: bool = False) -> str:
        args = [
            "status",
            "--porcelain=v2",
            "--untracked-files=normal",
            "--ignore-submodules=none",
        ]
        if include_ignored:
            args.append("--ignored")
        return self._run(*args).stdout

    def get_submodule_names(self) -> dict[str, str]:
        """Map submodule paths to their names in .gitmodules."""
        result = self._run(
            "config", "--file", ".gitmodules", "--get-regexp", r"^submodule\..*\.path$",
            check=False,
        )
        names = {}
        for line in result.stdout.splitlines():
            key, _, path = line.partition(" ")
            names[path] = key.removeprefix("submodule.").removesuffix(".path")
        return names

    def get_submodules(self) -> list[SubmoduleInfo]:
        """List direct submodules with their checkout state."""
        names = self.get_submodule_names()
        submodules = []
        for line in self._run("submodule", "status").stdout.splitlines():
            match = _SUBMODULE_LINE.match(line)
            if not match:
                continue
            path = match.group("path")
            submodules.append(
                SubmoduleInfo(
                    name=names.get(path, path),
                    path=path,
                    status=_SUBMODULE_PREFIXES[match.group("state")],
                )
            )
        return submodules


# =============================================================================
# Remote Divergence
# =============================================================================

_AUTH_FAILURES = (
    "permission denied",
    "authentication failed",
    "could not read username",
    "could not read password",
    "terminal prompts disabled",
    "invalid username or password",
    "invalid credentials",
    "http basic: access denied",
    "the requested url returned error: 401",
    "the requested url returned error: 403",
)
_REF_NOT_FOUND = ("couldn't find remote ref", "could not find remote ref")


def classify_fetch_error(stderr: str) -> RemoteErrorKind:
    """Map git fetch stderr to the kind of remote failure."""
    text = stderr.lower()
    if any(marker in text for marker in _REF_NOT_FOUND):
        return RemoteErrorKind.REF_NOT_FOUND
    if any(marker in text for marker in _AUTH_FAILURES):
        return RemoteErrorKind.AUTH_FAILED
    return RemoteErrorKind.UNREACHABLE


def _last_line(text: str) -> str:
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    return lines[-1] if lines else ""


class DivergenceCalculator:
    """Compute ahead/behind counts of a branch against its upstream.

    By default only the cached remote-tracking ref is read. With
    settings.fetch_remote the branch is fetched first, trying each
    authentication candidate in turn within one contact deadline.
    """

    def __init__(self, settings: Settings | None = None, environ: Mapping[str, str] | None = None):
        self.settings = settings or Settings()
        self.environ = os.environ if environ is None else environ

    def diverge(self, ops: GitOperations, upstream: UpstreamRef) -> DivergenceCount:
        ref = upstream.tracking_ref
        if not upstream.is_local:
            remote_url = parse_remote_url(ops.get_remote_url(upstream.remote))
            if not ref:
                raise RemoteError(
                    RemoteErrorKind.REF_NOT_FOUND,
                    f"{upstream} is not stored as a remote-tracking branch",
                )
            if self.settings.fetch_remote:
                self._fetch(ops, upstream, remote_url)

        if not ref or not ops.has_commit(ref):
            raise RemoteError(RemoteErrorKind.REF_NOT_FOUND, f"{ref or upstream} does not exist")
        ahead, behind = ops.get_ahead_behind(ref)
        return DivergenceCount(ahead=ahead, behind=behind)

    def _fetch(self, ops: GitOperations, upstream: UpstreamRef, remote_url: RemoteUrl) -> None:
        timeout = self.settings.contact_timeout
        deadline = time.monotonic() + timeout
        base_env = dict(ops.env)
        base_env["LC_ALL"] = "C"
        rejected: list[str] = []

        for candidate in auth_candidates(remote_url, self.settings, self.environ):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise RemoteError(
                    RemoteErrorKind.UNREACHABLE,
                    f"no response from '{upstream.remote}' within {timeout:g}s",
                )
            logger.debug(
                "fetching %s in %s using %s", upstream, ops.repo_path, candidate.describe()
            )
            env = candidate.git_env(base_env, connect_timeout=remaining)
            try:
                result = ops.fetch_branch(
                    upstream.remote,
                    upstream.branch,
                    upstream.tracking_ref,
                    env=env,
                    timeout=remaining,
                )
            except subprocess.TimeoutExpired:
                raise RemoteError(
                    RemoteErrorKind.UNREACHABLE,
                    f"no response from '{upstream.remote}' within {timeout:g}s",
                ) from None

            if result.returncode == 0:
                logger.debug("fetched %s in %s", upstream, ops.repo_path)
                return

            kind = classify_fetch_error(result.stderr)
            if kind != RemoteErrorKind.AUTH_FAILED:
                raise RemoteError(kind, _last_line(result.stderr))
            logger.debug("%s rejected for %s", candidate.describe(), upstream)
            rejected.append(candidate.describe())

        raise RemoteError(
            RemoteErrorKind.AUTH_FAILED,
            f"all credentials rejected by '{upstream.remote}': {', '.join(rejected) or 'none'}",
        )


# =============================================================================
# Working Tree
# =============================================================================


def parse_status_porcelain(output: str, include_ignored: bool = False) -> DirtyState:
    """Classify `git status --porcelain=v2` output."""
    state = DirtyState.CLEAN
    for line in output.splitlines():
        if line.startswith("1 ") or line.startswith("2 "):
            # Changed entry: XY sub mH mI mW hH hI path
            parts = line.split(" ", 3)
            if len(parts) < 3:
                continue
            xy, sub = parts[1], parts[2]
            if sub.startswith("S"):
                state |= DirtyState.SUBMODULE
                continue
            if xy[0] != ".":
                state |= DirtyState.STAGED
            if xy[1] != ".":
                state |= DirtyState.UNSTAGED
        elif line.startswith("u "):
            # Unmerged entry: counts as both staged and unstaged
            state |= DirtyState.STAGED | DirtyState.UNSTAGED
        elif line.startswith("? "):
            state |= DirtyState.UNTRACKED
        elif line.startswith("! ") and include_ignored:
            state |= DirtyState.UNTRACKED
    return state


class WorkingTreeClassifier:
    """Classify index and working tree changes. Never touches the network."""

    def __init__(self, include_ignored: bool = False):
        self.include_ignored = include_ignored

    def classify(self, ops: GitOperations) -> DirtyState:
        try:
            output = ops.get_status_porcelain(include_ignored=self.include_ignored)
        except (GitCommandError, OSError) as e:
            raise FilesystemError(ops.repo_path, str(e)) from e
        return parse_status_porcelain(output, include_ignored=self.include_ignored)


# =============================================================================
# Repository Status Resolver
# =============================================================================


class StatusResolver:
    """Resolve the status record of one repository."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        calculator: DivergenceCalculator | None = None,
        classifier: WorkingTreeClassifier | None = None,
    ):
        self.settings = settings or Settings()
        self.calculator = calculator or DivergenceCalculator(self.settings)
        self.classifier = classifier or WorkingTreeClassifier(self.settings.include_ignored)

    def resolve(self, path: Path) -> RepositoryStatusRecord:
        """Resolve `path`. Raises NotARepositoryError; every other failure is on the record."""
        path = Path(path).expanduser().absolute()
        ops = GitOperations(path)
        bare = ops.open()
        logger.debug("resolving repository at %s", path)

        fields: dict = {"path": path, "name": path.name, "bare": bare}
        try:
            branch = ops.get_branch()
            fields["branch"] = branch

            upstream = None
            if not branch.detached:
                upstream = ops.get_upstream(branch.name)
                fields["upstream"] = upstream

            if upstream is not None:
                try:
                    fields["divergence"] = self.calculator.diverge(ops, upstream)
                    fields["fetched"] = self.settings.fetch_remote and not upstream.is_local
                except RemoteError as e:
                    logger.info("%s: cannot compare with %s: %s", path, upstream, e)
                    fields["remote_error"] = e

            if bare:
                fields["dirty_state"] = DirtyState.CLEAN
            else:
                fields["dirty_state"] = self.classifier.classify(ops)
                if self.settings.include_submodules:
                    fields["submodules"] = tuple(ops.get_submodules())

            if upstream is not None and not upstream.is_local:
                fields["url"] = ops.get_remote_url(upstream.remote)
            else:
                fields["url"] = ops.get_default_remote_url()
            if self.settings.include_email:
                fields["email"] = ops.get_user_email()
        except FilesystemError as e:
            logger.info("%s: %s", path, e.message)
            fields["error"] = e.message
        except (GitCommandError, OSError) as e:
            logger.info("%s: %s", path, e)
            fields["error"] = str(e)

        logger.debug("finalized record for %s", path)
        return RepositoryStatusRecord(**fields)


# =============================================================================
# Concurrent Dispatcher
# =============================================================================


class Dispatcher:
    """Resolve many repositories on a bounded thread pool."""

    def __init__(
        self,
        resolver: StatusResolver | None = None,
        max_workers: int | None = None,
        *,
        sequential: bool = False,
    ):
        self.resolver = resolver or StatusResolver()
        self.max_workers = max_workers or os.cpu_count() or 1
        self.sequential = sequential
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Skip every repository of the current (or next) run not yet started."""
        self._cancelled.set()

    def _resolve_one(self, path: Path) -> RepositoryOutcome | None:
        if self._cancelled.is_set():
            return None
        try:
            record = self.resolver.resolve(path)
        except NotARepositoryError as e:
            logger.info("skipping %s", e)
            return RepositoryOutcome(path=path, error=e)
        except Exception as e:
            logger.exception("unexpected failure resolving %s", path)
            record = RepositoryStatusRecord(
                path=path, name=path.name, error=f"unexpected error: {e}"
            )
        return RepositoryOutcome(path=path, record=record)

    def dispatch(self, paths: Iterable[Path]) -> DispatchReport:
        """Resolve every path; one outcome per path unless the run is cancelled."""
        paths = [Path(p) for p in paths]
        outcomes: list[RepositoryOutcome] = []
        cancelled = False

        if self.sequential or len(paths) <= 1:
            try:
                for path in paths:
                    outcome = self._resolve_one(path)
                    if outcome is None:
                        cancelled = True
                        break
                    outcomes.append(outcome)
            except KeyboardInterrupt:
                cancelled = True
        else:
            executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(paths)))
            futures: dict[Future, Path] = {
                executor.submit(self._resolve_one, path): path for path in paths
            }
            collected: set[Future] = set()
            try:
                for future in as_completed(futures):
                    collected.add(future)
                    outcome = future.result()
                    if outcome is None:
                        cancelled = True
                    else:
                        outcomes.append(outcome)
            except KeyboardInterrupt:
                cancelled = True
                self.cancel()
                for future in futures:
                    if future in collected or not future.done() or future.cancelled():
                        continue
                    outcome = future.result()
                    if outcome is not None:
                        outcomes.append(outcome)
            finally:
                executor.shutdown(wait=not cancelled, cancel_futures=cancelled)

        if cancelled:
            logger.warning(
                "run cancelled: %d of %d repositories resolved", len(outcomes), len(paths)
            )
        # A cancel applies to one run; the next dispatch starts fresh.
        self._cancelled.clear()
        outcomes.sort(key=lambda o: o.path)
        return DispatchReport(outcomes=tuple(outcomes), cancelled=cancelled)


# =============================================================================
# Discovery and Summary
# =============================================================================


def discover_repositories(root: Path) -> list[Path]:
    """Find directories under root holding a .git directory or gitfile."""
    root = root.expanduser().resolve()
    repos = []
    for dirpath, dirnames, filenames in os.walk(root):
        if ".git" in dirnames or ".git" in filenames:
            repos.append(Path(dirpath))
        dirnames[:] = [d for d in dirnames if d != ".git"]

    # Sort by path for consistent ordering
    repos.sort()
    return repos


def summarize(report: Iterable[RepositoryOutcome]) -> SurveySummary:
    """Generate summary from dispatcher outcomes."""
    summary = SurveySummary()
    for outcome in report:
        summary.total += 1
        record = outcome.record
        if record is None:
            summary.not_repositories += 1
            continue

        match record.sync_status:
            case SyncStatus.ERROR:
                summary.errors += 1
            case SyncStatus.AHEAD:
                summary.ahead += 1
            case SyncStatus.BEHIND:
                summary.behind += 1
            case SyncStatus.DIVERGED:
                summary.diverged += 1
            case SyncStatus.NO_UPSTREAM:
                summary.no_upstream += 1
            case SyncStatus.DETACHED:
                summary.detached += 1
            case SyncStatus.REMOTE_ERROR:
                summary.remote_errors += 1

        if record.is_dirty:
            summary.dirty += 1
        elif not record.error and record.sync_status in (
            SyncStatus.CLEAN,
            SyncStatus.NO_UPSTREAM,
        ):
            summary.clean += 1
    return summary
