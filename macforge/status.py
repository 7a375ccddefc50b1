"""Read-only summary of what the tool sees right now."""

from __future__ import annotations

import os
import platform
import subprocess
from dataclasses import dataclass, field
from typing import Callable, TextIO

from macforge import gitrepo, output
from macforge.config import ConfigError, Runtime
from macforge.gitrepo import Commit, GitError
from macforge.output import Marker

_ARCH_ALIASES = {
    "arm64": "arm64",
    "aarch64": "arm64",
    "x86_64": "amd64",
    "amd64": "amd64",
}

_BREW_PATHS = {
    "arm64": "/opt/homebrew/bin/brew",
    "amd64": "/usr/local/bin/brew",
}


def _host_arch() -> str:
    machine = platform.machine()
    return _ARCH_ALIASES.get(machine.lower(), machine.lower())


def _brew_version(brew_path: str) -> str:
    out = subprocess.run(
        [brew_path, "--version"],
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        check=True,
    ).stdout.decode(errors="replace")
    line = out.strip().split("\n", 1)[0]
    parts = line.split()
    if len(parts) < 2:
        return line
    return parts[1]


@dataclass
class Row:
    """One renderable line; hidden rows are dropped under quiet."""

    marker: Marker
    name: str
    detail: str = ""
    verbose: str = ""
    hidden: bool = False


@dataclass
class Section:
    """A named area of the status report."""

    name: str
    run: Callable[[Runtime], list[Row]]


@dataclass
class BrewSeam:
    """System dependencies of the brew row."""

    arch: str = field(default_factory=_host_arch)
    exists: Callable[[str], bool] = os.path.exists
    version: Callable[[str], str] = _brew_version


@dataclass
class RepoSeam:
    """System dependencies of the repo row."""

    is_dir: Callable[[str], bool] = os.path.isdir
    last_commit: Callable[[str], Commit] = gitrepo.last_commit
    is_clean: Callable[[str], bool] = gitrepo.is_clean


def brew_row(seam: BrewSeam) -> Row:
    """Report brew presence, path and version."""
    path = _BREW_PATHS.get(seam.arch)
    if path is None:
        return Row(Marker.FAIL, "brew", f'unsupported arch "{seam.arch}"')
    if not seam.exists(path):
        return Row(Marker.FAIL, "brew", "not installed")
    try:
        version = seam.version(path)
    except (OSError, subprocess.SubprocessError):
        return Row(Marker.OK, "brew", f"{path} (version unavailable)")
    return Row(Marker.OK, "brew", f"{path} ({version})")


def repo_row(rt: Runtime, seam: RepoSeam) -> Row:
    """Report the resolved repo, its last commit and clean/dirty state."""
    try:
        path, source = rt.resolve_repo_path()
    except ConfigError as exc:
        return Row(Marker.FAIL, "repo", str(exc))
    if not path:
        return Row(
            Marker.UNKNOWN,
            "repo",
            "not configured (embed-fallback mode)",
            verbose=(
                "no source matched (--repo flag, MACHEIM_REPO, "
                "~/.config/macheim/config.yaml, ~/src/macheim, ~/code/macheim)"
            ),
        )
    if not seam.is_dir(path):
        return Row(Marker.FAIL, "repo", f"[{source}] {path} (missing)")
    try:
        commit = seam.last_commit(path)
    except (GitError, OSError) as exc:
        return Row(
            Marker.OK,
            "repo",
            f"[{source}] {path}",
            verbose=f"git log -1 failed: {exc}",
        )
    try:
        clean = seam.is_clean(path)
    except (GitError, OSError):
        clean = False
    label = "clean" if clean else "dirty"
    return Row(
        Marker.OK,
        "repo",
        f"[{source}] {path} @ {commit.sha[:7]} ({label})",
        verbose=f"{commit.subject} — {commit.iso_date}",
    )


def brew_section() -> Section:
    """Section holding the brew row."""
    seam = BrewSeam()
    return Section("brew", lambda _rt: [brew_row(seam)])


def repo_section() -> Section:
    """Section holding the repo row."""
    seam = RepoSeam()
    return Section("repo", lambda rt: [repo_row(rt, seam)])


def drift_section() -> Section:
    """Placeholder rows for drift detectors that are not in place yet."""

    def rows(_rt: Runtime) -> list[Row]:
        return [
            Row(Marker.UNKNOWN, "drift:brew", "not implemented (see #14)", hidden=True),
            Row(Marker.UNKNOWN, "drift:dotfiles", "not implemented (see #17 / #18)", hidden=True),
            Row(Marker.UNKNOWN, "drift:macos", "deferred", hidden=True),
        ]

    return Section("drift", rows)


def default_sections() -> list[Section]:
    """The canonical sections in display order."""
    return [brew_section(), repo_section(), drift_section()]


def run(rt: Runtime, stream: TextIO) -> None:
    """Print every section's rows to ``stream``. Status never fails."""
    color = output.use_color(rt.no_color, stream)
    for section in default_sections():
        for item in section.run(rt):
            if rt.quiet and item.hidden:
                continue
            output.row(stream, color, rt.verbose, item.marker, item.name, item.detail, item.verbose)