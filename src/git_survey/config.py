"""Settings and config file loading."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import asdict, dataclass, field, fields, replace
from enum import StrEnum
from pathlib import Path
from typing import Any

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "GIT_SURVEY_TOKEN"
CONFIG_ENV_VAR = "GIT_SURVEY_CONFIG"


class DisplayMode(StrEnum):
    """How collected records are rendered."""

    STANDARD = "standard"
    CLASSIC = "classic"
    JSON = "json"


@dataclass(frozen=True)
class Settings:
    """Options shared by the resolver, the dispatcher and the CLI."""

    fetch_remote: bool = False
    contact_timeout: float = 5.0
    max_workers: int | None = None
    include_email: bool = False
    include_ignored: bool = False
    include_submodules: bool = False
    https_username: str = "x-access-token"
    https_token: str | None = field(default=None, repr=False)
    ssh_config_path: Path | None = None
    display_mode: DisplayMode = DisplayMode.STANDARD
    paths: list[Path] = field(default_factory=list)

    def merged(self, **overrides: Any) -> Settings:
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> dict:
        data = asdict(self)
        data["https_token"] = "***" if self.https_token else None
        data["ssh_config_path"] = str(self.ssh_config_path) if self.ssh_config_path else None
        data["display_mode"] = self.display_mode.value
        data["paths"] = [str(p) for p in self.paths]
        return data


def resolve_config_file() -> Path | None:
    """Auto-resolve the config file from environment and standard locations.

    Priority order:
    1. $GIT_SURVEY_CONFIG environment variable
    2. $XDG_CONFIG_HOME/git-survey.toml
    3. $XDG_CONFIG_HOME/git-survey/config.toml
    4. ~/.config/git-survey.toml
    """
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        env_path = Path(env_config).expanduser()
        if env_path.is_file():
            return env_path

    candidates = []
    xdg_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_home:
        xdg = Path(xdg_home).expanduser()
        candidates += [xdg / "git-survey.toml", xdg / "git-survey" / "config.toml"]
    candidates.append(Path.home() / ".config" / "git-survey.toml")

    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def _coerce(name: str, value: Any) -> Any:
    """Validate a raw TOML value against the Settings field it targets."""
    if name in ("fetch_remote", "include_email", "include_ignored", "include_submodules"):
        if not isinstance(value, bool):
            raise ConfigError(f"'{name}' must be a boolean")
        return value
    if name == "contact_timeout":
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ConfigError("'contact_timeout' must be a positive number")
        return float(value)
    if name == "max_workers":
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigError("'max_workers' must be a positive integer")
        return value
    if name in ("https_username", "https_token"):
        if not isinstance(value, str):
            raise ConfigError(f"'{name}' must be a string")
        return value
    if name == "ssh_config_path":
        if not isinstance(value, str):
            raise ConfigError("'ssh_config_path' must be a string")
        return Path(value).expanduser()
    if name == "display_mode":
        try:
            return DisplayMode(value)
        except ValueError:
            choices = ", ".join(m.value for m in DisplayMode)
            raise ConfigError(f"'display_mode' must be one of: {choices}") from None
    if name == "paths":
        if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
            raise ConfigError("'paths' must be a list of strings")
        return [Path(os.path.expandvars(p)).expanduser() for p in value]
    raise ConfigError(f"Unknown config key: '{name}'")


def parse_settings(data: dict[str, Any]) -> Settings:
    """Build Settings from a parsed config mapping."""
    known = {f.name for f in fields(Settings)}
    values = {}
    for key, value in data.items():
        name = key.replace("-", "_")
        if name not in known:
            raise ConfigError(f"Unknown config key: '{key}'")
        values[name] = _coerce(name, value)
    return Settings(**values)


def load_settings(config_file: Path | None = None, *, ignore_file: bool = False) -> Settings:
    """Load settings from the config file and environment.

    CLI options are layered on top by the caller with Settings.merged().
    """
    settings = Settings()
    if not ignore_file:
        path = config_file or resolve_config_file()
        if path is not None:
            logger.debug("loading config file: %s", path)
            try:
                with open(path, "rb") as f:
                    data = tomllib.load(f)
            except FileNotFoundError:
                raise ConfigError(f"Config file not found: {path}") from None
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Invalid TOML in {path}: {e}") from e
            settings = parse_settings(data)

    token = os.environ.get(TOKEN_ENV_VAR)
    if token:
        settings = replace(settings, https_token=token)
    return settings
