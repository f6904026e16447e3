"""Authentication candidates for contacting Git remotes.

Remote URLs are parsed into a small RemoteUrl value, the user's SSH client
configuration is read once per process, and auth_candidates() yields the
attempts to make against a remote, cheapest and most likely first:

1. the SSH agent (SSH remotes, when SSH_AUTH_SOCK points at a socket)
2. identity files from ~/.ssh/config for the remote host, else default keys
3. an explicit HTTPS token, then git's own credential helpers (HTTP remotes)
4. a single attempt with no credentials for anything else (local paths,
   git://, and transport::address remotes served by a git remote helper)

Each candidate knows how to turn itself into the environment for one git
subprocess. Nothing here ever prompts: every attempt runs with terminal
prompts disabled and ssh in batch mode.
"""

from __future__ import annotations

import base64
import glob
import logging
import math
import os
import re
import shlex
import stat
import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import paramiko
from paramiko.ssh_exception import ConfigParseError, CouldNotCanonicalize

from .exceptions import RemoteError, RemoteErrorKind

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_FILES = ("id_ed25519", "id_ecdsa", "id_rsa", "id_dsa")
MAX_INCLUDE_DEPTH = 16

# =============================================================================
# Remote URLs
# =============================================================================

_SCHEMES = {
    "ssh": "ssh",
    "git+ssh": "ssh",
    "ssh+git": "ssh",
    "https": "https",
    "http": "http",
    "git": "git",
    "file": "file",
}

# user@host:path, where no slash appears before the colon
_SCP_LIKE = re.compile(r"^(?:(?P<user>[^@/\s]+)@)?(?P<host>[^:/\s]+):(?P<path>.*)$")

# <transport>::<address>, handed to git-remote-<transport>
_REMOTE_HELPER = re.compile(r"^(?P<transport>[A-Za-z][A-Za-z0-9+.-]*)::(?P<address>.+)$")


@dataclass(frozen=True)
class RemoteUrl:
    """A parsed remote URL."""

    scheme: str
    host: str = ""
    user: str = ""
    port: int | None = None
    path: str = ""
    transport: str = ""

    @property
    def is_ssh(self) -> bool:
        return self.scheme == "ssh"

    @property
    def is_http(self) -> bool:
        return self.scheme in ("http", "https")


def parse_remote_url(url: str | None) -> RemoteUrl:
    """Parse a Git remote URL, raising RemoteError(INVALID_REMOTE) if it is unusable."""
    url = (url or "").strip()
    if not url:
        raise RemoteError(RemoteErrorKind.INVALID_REMOTE, "remote has no URL")

    match = _REMOTE_HELPER.match(url)
    if match:
        # git-remote-<transport> handles the address and its own credentials.
        return RemoteUrl(
            scheme="helper", transport=match.group("transport"), path=match.group("address")
        )

    if "://" in url:
        parsed = urlsplit(url)
        scheme = _SCHEMES.get(parsed.scheme.lower())
        if scheme is None:
            raise RemoteError(
                RemoteErrorKind.INVALID_REMOTE, f"unsupported URL scheme: {parsed.scheme}"
            )
        if scheme == "file":
            return RemoteUrl(scheme="file", path=parsed.path)
        try:
            port = parsed.port
        except ValueError:
            raise RemoteError(RemoteErrorKind.INVALID_REMOTE, f"invalid port in {url}") from None
        if not parsed.hostname:
            raise RemoteError(RemoteErrorKind.INVALID_REMOTE, f"missing host in {url}")
        return RemoteUrl(
            scheme=scheme,
            host=parsed.hostname,
            user=parsed.username or "",
            port=port,
            path=parsed.path,
        )

    if url.startswith(("/", ".", "~")):
        return RemoteUrl(scheme="file", path=url)

    match = _SCP_LIKE.match(url)
    if match:
        return RemoteUrl(
            scheme="ssh",
            host=match.group("host"),
            user=match.group("user") or "",
            path=match.group("path"),
        )
    return RemoteUrl(scheme="file", path=url)


# =============================================================================
# SSH client configuration
# =============================================================================


@dataclass(frozen=True)
class SshHostParams:
    """Options ssh would apply when connecting to one host."""

    hostname: str | None = None
    user: str | None = None
    port: int | None = None
    identity_files: tuple[Path, ...] = ()
    identities_only: bool = False


_INCLUDE_LINE = re.compile(r"^\s*include(?:\s*=\s*|\s+)(?P<value>.+)$", re.IGNORECASE)


def _include_paths(value: str, base_dir: Path) -> list[Path]:
    paths: list[Path] = []
    for token in value.split():
        expanded = os.path.expanduser(token.strip('"'))
        if not os.path.isabs(expanded):
            expanded = str(base_dir / expanded)
        paths.extend(Path(p) for p in sorted(glob.glob(expanded)))
    return paths


def _inline_includes(text: str, base_dir: Path, depth: int = 0) -> str:
    """Splice the files named by Include lines into the text.

    paramiko's parser does not follow Include, so included files are read
    here and parsed as if they had been written in place.
    """
    lines = []
    for line in text.splitlines():
        match = _INCLUDE_LINE.match(line)
        if not match:
            lines.append(line)
            continue
        if depth >= MAX_INCLUDE_DEPTH:
            logger.warning("ssh config Include nested too deeply, skipping: %s", line.strip())
            continue
        for included in _include_paths(match.group("value"), base_dir):
            try:
                included_text = included.read_text()
            except OSError as e:
                logger.debug("skipping unreadable ssh config include %s: %s", included, e)
                continue
            lines.append(_inline_includes(included_text, base_dir, depth + 1))
    return "\n".join(lines)


class SshConfig:
    """The user's ssh client configuration, evaluated by paramiko."""

    def __init__(self, config: paramiko.SSHConfig | None = None):
        self._config = config or paramiko.SSHConfig()

    @classmethod
    def parse(cls, text: str, base_dir: Path | None = None) -> SshConfig:
        text = _inline_includes(text, base_dir or Path.home() / ".ssh")
        return cls(paramiko.SSHConfig.from_text(text))

    def query(self, host: str) -> SshHostParams:
        """Options for `host` as written in the remote URL (the Host alias)."""
        try:
            options = self._config.lookup(host.lower())
        except (ConfigParseError, CouldNotCanonicalize) as e:
            logger.warning("could not evaluate ssh config for %s: %s", host, e)
            return SshHostParams()

        port = options.get("port", "")
        return SshHostParams(
            hostname=options.get("hostname"),
            user=options.get("user"),
            port=int(port) if port.isdigit() else None,
            identity_files=tuple(
                Path(value).expanduser()
                for value in options.get("identityfile", [])
                if value.lower() != "none"
            ),
            identities_only=options.get("identitiesonly", "no").lower() == "yes",
        )


def default_ssh_config_path() -> Path:
    return Path.home() / ".ssh" / "config"


_ssh_config_lock = threading.Lock()
_ssh_config_cache: dict[Path, SshConfig] = {}


def load_ssh_config(path: Path | None = None) -> SshConfig:
    """Return the parsed SSH config, reading it on first use only."""
    path = (path or default_ssh_config_path()).expanduser()
    with _ssh_config_lock:
        config = _ssh_config_cache.get(path)
        if config is None:
            config = _read_ssh_config(path)
            _ssh_config_cache[path] = config
        return config


def _read_ssh_config(path: Path) -> SshConfig:
    try:
        text = path.read_text()
    except FileNotFoundError:
        logger.debug("no ssh config at %s", path)
        return SshConfig()
    except OSError as e:
        logger.warning("could not read ssh config %s: %s", path, e)
        return SshConfig()
    try:
        config = SshConfig.parse(text, base_dir=path.parent)
    except ConfigParseError as e:
        logger.warning("could not parse ssh config %s: %s", path, e)
        return SshConfig()
    logger.debug("loaded ssh config from %s", path)
    return config


def default_identity_files() -> list[Path]:
    ssh_dir = Path.home() / ".ssh"
    return [ssh_dir / name for name in DEFAULT_IDENTITY_FILES]


# =============================================================================
# Authentication candidates
# =============================================================================


class AuthKind(StrEnum):
    """Kind of authentication attempt."""

    NONE = "none"
    SSH_AGENT = "ssh_agent"
    SSH_KEY = "ssh_key"
    HTTPS_TOKEN = "https_token"
    HTTPS_HELPER = "https_helper"


def _append_git_config(env: dict[str, str], key: str, value: str) -> None:
    index = int(env.get("GIT_CONFIG_COUNT", "0") or "0")
    env[f"GIT_CONFIG_KEY_{index}"] = key
    env[f"GIT_CONFIG_VALUE_{index}"] = value
    env["GIT_CONFIG_COUNT"] = str(index + 1)


@dataclass(frozen=True)
class AuthCandidate:
    """One way of authenticating against a remote."""

    kind: AuthKind
    key_path: Path | None = None
    agent_socket: str | None = None
    username: str | None = None
    token: str | None = field(default=None, repr=False)

    def describe(self) -> str:
        match self.kind:
            case AuthKind.SSH_AGENT:
                return f"ssh agent ({self.agent_socket})"
            case AuthKind.SSH_KEY:
                return f"ssh key {self.key_path}"
            case AuthKind.HTTPS_TOKEN:
                return f"https token for {self.username}"
            case AuthKind.HTTPS_HELPER:
                return "git credential helper"
            case _:
                return "no credentials"

    def git_env(self, base: Mapping[str, str], *, connect_timeout: float = 5.0) -> dict[str, str]:
        """Environment for a git subprocess making this attempt."""
        env = dict(base)
        env["GIT_TERMINAL_PROMPT"] = "0"
        ssh = [
            "ssh",
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={max(1, math.ceil(connect_timeout))}",
        ]

        match self.kind:
            case AuthKind.SSH_AGENT:
                env["SSH_AUTH_SOCK"] = self.agent_socket or ""
                env["GIT_SSH_COMMAND"] = shlex.join(ssh)
            case AuthKind.SSH_KEY:
                env.pop("SSH_AUTH_SOCK", None)
                env["GIT_SSH_COMMAND"] = shlex.join(
                    [*ssh, "-o", "IdentitiesOnly=yes", "-i", str(self.key_path)]
                )
            case AuthKind.HTTPS_TOKEN:
                basic = base64.b64encode(f"{self.username}:{self.token}".encode()).decode()
                # An empty helper value clears the configured helpers.
                _append_git_config(env, "credential.helper", "")
                _append_git_config(env, "http.extraHeader", f"Authorization: Basic {basic}")
            case AuthKind.NONE:
                env["GIT_SSH_COMMAND"] = shlex.join(ssh)
        return env


def _is_socket(path: str) -> bool:
    try:
        return stat.S_ISSOCK(os.stat(path).st_mode)
    except OSError:
        return False


def auth_candidates(
    remote: RemoteUrl,
    settings: Settings,
    environ: Mapping[str, str] | None = None,
) -> Iterator[AuthCandidate]:
    """Lazily yield the authentication attempts for `remote`, best first."""
    environ = os.environ if environ is None else environ

    if remote.is_ssh:
        yielded = False
        socket_path = environ.get("SSH_AUTH_SOCK")
        if socket_path and _is_socket(socket_path):
            yielded = True
            yield AuthCandidate(AuthKind.SSH_AGENT, agent_socket=socket_path)

        params = load_ssh_config(settings.ssh_config_path).query(remote.host)
        keys = [p for p in params.identity_files if p.is_file()]
        if not params.identity_files:
            keys = [p for p in default_identity_files() if p.is_file()]
        seen: set[Path] = set()
        for key in keys:
            if key in seen:
                continue
            seen.add(key)
            yielded = True
            yield AuthCandidate(AuthKind.SSH_KEY, key_path=key)

        if not yielded:
            # Let ssh fall back to whatever it would do on its own.
            yield AuthCandidate(AuthKind.NONE)
    elif remote.is_http:
        if settings.https_token:
            yield AuthCandidate(
                AuthKind.HTTPS_TOKEN,
                username=remote.user or settings.https_username,
                token=settings.https_token,
            )
        yield AuthCandidate(AuthKind.HTTPS_HELPER)
    else:
        yield AuthCandidate(AuthKind.NONE)
