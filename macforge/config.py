"""User configuration file and per-invocation runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

REPO_ENV_VAR = "MACHEIM_REPO"


class ConfigError(Exception):
    """Raised when the user config file exists but cannot be read or parsed."""


@dataclass(frozen=True)
class Config:
    """On-disk schema of ``~/.config/macheim/config.yaml``."""

    repo_path: str = ""


def _home_dir() -> Path:
    return Path.home()


def _config_path() -> Path:
    return _home_dir() / ".config" / "macheim" / "config.yaml"


def load() -> Config:
    """Read the user config file.

    A missing file yields an empty ``Config``. A file that exists but cannot
    be read or parsed raises ``ConfigError``.
    """
    path = _config_path()
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return Config()
    except OSError as exc:
        raise ConfigError(f"read {path}: {exc}") from exc

    try:
        document = yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise ConfigError(f"parse {path}: {exc}") from exc

    if document is None:
        return Config()
    if not isinstance(document, dict):
        raise ConfigError(f"parse {path}: top level must be a mapping")

    value = document.get("repo_path")
    if value is None:
        return Config()
    if not isinstance(value, str):
        raise ConfigError(f"parse {path}: repo_path must be a string")
    return Config(repo_path=value)


def _dir_at(path: Path) -> bool:
    try:
        return path.is_dir()
    except OSError:
        return False


@dataclass
class Runtime:
    """Global flags and build identity shared by every command."""

    repo_path: str = ""
    dry_run: bool = False
    verbose: bool = False
    quiet: bool = False
    yes: bool = False
    no_color: bool = False

    version: str = ""
    commit: str = ""
    build_date: str = ""

    def validate(self) -> None:
        """Raise ``ValueError`` when flags conflict."""
        if self.verbose and self.quiet:
            raise ValueError("--verbose and --quiet are mutually exclusive")

    def version_string(self) -> str:
        """Format the build identity for ``--version`` output."""
        return f"{self.version} (commit {self.commit}, built {self.build_date})"

    def resolve_repo_path(self) -> tuple[str, str]:
        """Walk the repo discovery chain and return ``(path, source)``.

        Sources are ``flag``, ``env``, ``config``, ``convention:src`` and
        ``convention:code``. ``("", "")`` means nothing matched (embed
        fallback). A broken config file raises ``ConfigError``.
        """
        if self.repo_path:
            return self.repo_path, "flag"

        env_value = os.environ.get(REPO_ENV_VAR, "")
        if env_value:
            return env_value, "env"

        cfg = load()
        if cfg.repo_path:
            return cfg.repo_path, "config"

        home = _home_dir()
        for subdir, source in (("src", "convention:src"), ("code", "convention:code")):
            candidate = home / subdir / "macheim"
            if _dir_at(candidate):
                return str(candidate), source

        return "", ""

    def is_read_only(self) -> bool:
        """Report whether no repo could be discovered (embed fallback)."""
        try:
            path, source = self.resolve_repo_path()
        except ConfigError:
            return False
        return path == "" and source == ""