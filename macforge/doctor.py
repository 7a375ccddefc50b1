"""Read-only environment sanity checks with per-check results and a summary."""

from __future__ import annotations

import os
import platform
import stat as stat_module
import subprocess
import tempfile
from dataclasses import dataclass, field
from typing import Callable, Sequence, TextIO

from macforge import output
from macforge.config import ConfigError, Runtime
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


class ChecksFailedError(Exception):
    """Raised by ``run`` when one or more checks fail; output is already written."""

    def __init__(self, message: str = "doctor: one or more checks failed") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class Result:
    """Outcome of one check. The probe is shown only under verbose."""

    ok: bool = False
    probe: str = ""
    remediation: str = ""


@dataclass(frozen=True)
class Check:
    """One named diagnostic."""

    name: str
    run: Callable[[Runtime], Result]


def _run_command(name: str, *args: str) -> str:
    proc = subprocess.run(
        [name, *args],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        check=True,
    )
    return proc.stdout.decode(errors="replace")


def _host_arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, machine)


def _is_dir(info: os.stat_result) -> bool:
    return stat_module.S_ISDIR(info.st_mode)


def dir_writable(directory: str) -> bool:
    """Report whether files can be created in ``directory``, probing with a temp dir."""
    try:
        probe = tempfile.mkdtemp(prefix="macheim-doctor-", dir=directory)
    except OSError:
        return False
    try:
        os.rmdir(probe)
    except OSError:
        pass
    return True


def file_or_parent_writable(path: str) -> bool:
    """Report whether ``path`` is writable, or creatable in a writable parent.

    Existing files are opened for appending without writing any bytes.
    """
    try:
        info = os.stat(path)
    except FileNotFoundError:
        return dir_writable(os.path.dirname(path))
    except OSError:
        return False
    if _is_dir(info):
        return False
    try:
        fd = os.open(path, os.O_WRONLY | os.O_APPEND)
    except OSError:
        return False
    os.close(fd)
    return True


@dataclass
class Seam:
    """System dependencies of the checks, replaceable in tests."""

    run: Callable[..., str] = _run_command
    stat: Callable[[str], os.stat_result] = os.stat
    look_env: Callable[[str], str] = lambda name: os.environ.get(name, "")
    can_write_dir: Callable[[str], bool] = dir_writable
    can_write_file: Callable[[str], bool] = file_or_parent_writable
    arch: str = field(default_factory=_host_arch)
    home_dir: str = field(default_factory=lambda: os.path.expanduser("~"))


def default_seam() -> Seam:
    """A seam wired to the real operating system."""
    return Seam()


def xcode_check(rt: Runtime, seam: Seam) -> Result:
    """``xcode-select -p`` must succeed and name an existing directory."""
    try:
        out = seam.run("xcode-select", "-p")
    except (OSError, subprocess.SubprocessError):
        return Result(
            probe="ran `xcode-select -p`: command failed",
            remediation="Run: xcode-select --install",
        )
    path = out.strip()
    try:
        is_dir = _is_dir(seam.stat(path))
    except OSError:
        is_dir = False
    if not is_dir:
        return Result(
            probe=f"xcode-select -p → {path} (path missing)",
            remediation="Run: xcode-select --install",
        )
    return Result(ok=True, probe=f"xcode-select -p → {path}")


def brew_check(rt: Runtime, seam: Seam) -> Result:
    """The brew binary for this architecture must exist."""
    path = _BREW_PATHS.get(seam.arch)
    if path is None:
        return Result(
            probe=f'unsupported architecture "{seam.arch}"',
            remediation="macheim runs on arm64 (Apple Silicon) and amd64 (Intel) only",
        )
    try:
        seam.stat(path)
    except OSError:
        return Result(probe=f"{path} (not found)", remediation="Run: macheim brew install")
    return Result(ok=True, probe=path)


def repo_check(rt: Runtime, seam: Seam) -> Result:
    """The resolved repo must exist and be writable; no repo at all passes."""
    try:
        path, source = rt.resolve_repo_path()
    except ConfigError as exc:
        return Result(probe=str(exc), remediation="Set --repo or MACHEIM_REPO")
    if not path:
        return Result(ok=True, probe="no repo configured; running in embed-fallback mode")
    try:
        is_dir = _is_dir(seam.stat(path))
    except OSError:
        is_dir = False
    if not is_dir:
        return Result(
            probe=f"[{source}] {path} (missing)",
            remediation=f"Clone the macheim repo to {path}, or update --repo / MACHEIM_REPO",
        )
    if not seam.can_write_dir(path):
        return Result(
            probe=f"[{source}] {path} (not writable)",
            remediation=f"Check permissions on {path}",
        )
    return Result(ok=True, probe=f"[{source}] {path}")


def config_dir_check(rt: Runtime, seam: Seam) -> Result:
    """``~/.config/macheim`` must be writable, or creatable in a writable parent."""
    cfg_dir = os.path.join(seam.home_dir, ".config", "macheim")
    try:
        seam.stat(cfg_dir)
    except OSError:
        pass
    else:
        if not seam.can_write_dir(cfg_dir):
            return Result(
                probe=f"{cfg_dir} (exists, not writable)",
                remediation=f"chmod u+w {cfg_dir}",
            )
        return Result(ok=True, probe=f"{cfg_dir} (writable)")
    parent = os.path.dirname(cfg_dir)
    if seam.can_write_dir(parent):
        return Result(ok=True, probe=f"{cfg_dir} (will create; parent {parent} writable)")
    return Result(
        probe=f"{cfg_dir} (missing; parent {parent} not writable)",
        remediation=f"mkdir -p {cfg_dir} && chmod u+w {cfg_dir}",
    )


def shell_rc_check(rt: Runtime, seam: Seam) -> Result:
    """``$SHELL`` must be zsh or bash and its rc file writable or creatable."""
    sh = seam.look_env("SHELL")
    if sh.endswith("zsh"):
        rc = os.path.join(seam.home_dir, ".zshrc")
    elif sh.endswith("bash"):
        rc = os.path.join(seam.home_dir, ".bash_profile")
    else:
        return Result(
            probe=f'$SHELL="{sh}" (unknown)',
            remediation="Set SHELL to /bin/zsh or /bin/bash",
        )
    if seam.can_write_file(rc):
        return Result(ok=True, probe=f"$SHELL={sh} → {rc} (writable)")
    return Result(
        probe=f"$SHELL={sh} → {rc} (not writable)",
        remediation=f"touch {rc} && chmod u+w {rc}",
    )


def default_checks(seam: Seam | None = None) -> list[Check]:
    """The canonical checks, in display order, bound to ``seam``."""
    bound = seam if seam is not None else default_seam()
    checks: Sequence[tuple[str, Callable[[Runtime, Seam], Result]]] = (
        ("xcode-select", xcode_check),
        ("brew", brew_check),
        ("repo", repo_check),
        ("config-dir", config_dir_check),
        ("shell-rc", shell_rc_check),
    )
    return [
        Check(name=name, run=lambda rt, fn=fn: fn(rt, bound))
        for name, fn in checks
    ]


class Renderer:
    """Writes check rows and the summary line for one doctor run."""

    def __init__(self, rt: Runtime, stream: TextIO) -> None:
        self.stream = stream
        self.quiet = rt.quiet
        self.verbose = rt.verbose
        self.use_color = output.use_color(rt.no_color, stream)

    def row(self, name: str, result: Result) -> None:
        """Write one check's row; passes are hidden under quiet, failures never."""
        probe = f"probed: {result.probe}" if result.probe else ""
        if result.ok:
            if self.quiet:
                return
            output.row(self.stream, self.use_color, self.verbose, Marker.OK, name, "", probe)
            return
        output.row(self.stream, self.use_color, self.verbose, Marker.FAIL, name, "", probe)
        if result.remediation:
            self.stream.write(f"   → {result.remediation}\n")

    def summary(self, failed: int) -> None:
        """Write the closing tally line."""
        if failed == 0:
            output.summary(self.stream, self.use_color, Marker.OK, "All checks passed.")
            return
        noun = "check" if failed == 1 else "checks"
        output.summary(self.stream, self.use_color, Marker.FAIL, f"{failed} {noun} failed.")


def run(rt: Runtime, stream: TextIO) -> None:
    """Run every check, write the report, and raise ``ChecksFailedError`` on any failure."""
    renderer = Renderer(rt, stream)
    failed = 0
    for check in default_checks():
        result = check.run(rt)
        renderer.row(check.name, result)
        if not result.ok:
            failed += 1
    renderer.summary(failed)
    if failed:
        raise ChecksFailedError()