"""Subprocess execution, y/n prompts, shell detection and rc-file appends.

Every entry point consults the caller's ``Runtime`` so that dry-run, quiet,
verbose and yes behave the same way across commands. A ``None`` runtime is
treated as all flags off.
"""

from __future__ import annotations

import codecs
import os
import subprocess
import sys
from typing import TextIO

from macforge.config import Runtime


class UnknownShellError(Exception):
    """Raised when ``$SHELL`` names neither zsh nor bash."""


def _quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def detect() -> tuple[str, str]:
    """Return ``(shell, rc_path)`` for the user's ``$SHELL``.

    zsh maps to ``$HOME/.zshrc`` and bash to ``$HOME/.bash_profile``; any
    other value raises ``UnknownShellError``.
    """
    sh = os.environ.get("SHELL", "")
    home = os.environ.get("HOME", "")
    if sh.endswith("zsh"):
        return "zsh", os.path.join(home, ".zshrc")
    if sh.endswith("bash"):
        return "bash", os.path.join(home, ".bash_profile")
    raise UnknownShellError(f"unknown shell {_quote(sh)}")


def prompt(rt: Runtime | None, stream: TextIO, message: str) -> bool:
    """Ask a y/n question on stderr and read one answer line from ``stream``.

    Only ``y`` or ``yes`` (any case) count as consent; empty input, EOF and
    anything else mean no. ``rt.yes`` answers yes without reading or printing.
    """
    if rt is not None and rt.yes:
        return True

    sys.stderr.write(f"{message} [y/N] ")
    sys.stderr.flush()

    line = stream.readline()
    answer = line.strip().lower()
    return answer in ("y", "yes")


def append_if_missing(rt: Runtime | None, rc_path: str, line: str) -> None:
    """Append ``line`` to ``rc_path`` unless that exact line is already present.

    The file is created with mode 0644 when missing. Under dry-run the intended
    append is announced on stderr and nothing is touched.
    """
    if rt is not None and rt.dry_run:
        sys.stderr.write(f"[dry-run] append {_quote(line)} to {rc_path}\n")
        return

    try:
        with open(rc_path, "rb") as handle:
            content = handle.read().decode("utf-8", errors="surrogateescape")
    except FileNotFoundError:
        content = ""

    if line in content.split("\n"):
        return

    fd = os.open(rc_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
    with os.fdopen(fd, "ab") as handle:
        handle.write(f"{line}\n".encode("utf-8", errors="surrogateescape"))


def _command_line(name: str, args: tuple[str, ...]) -> str:
    return " ".join((name, *args))


def run(rt: Runtime | None, name: str, *args: str) -> str:
    """Run a command, streaming its output live, and return the captured stdout.

    Verbose echoes ``$ <cmd>`` to stderr; dry-run prints ``[dry-run] <cmd>``
    and returns ``""`` without executing; quiet captures stdout without
    echoing it. The child's stderr always goes straight to the terminal.
    A non-zero exit raises ``subprocess.CalledProcessError`` carrying the
    captured output.
    """
    command = _command_line(name, args)
    dry_run = rt is not None and rt.dry_run
    verbose = rt is not None and rt.verbose
    quiet = rt is not None and rt.quiet

    if verbose:
        sys.stderr.write(f"$ {command}\n")
    if dry_run:
        sys.stderr.write(f"[dry-run] {command}\n")
        return ""

    argv = [name, *args]
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pieces: list[str] = []

    def emit(text: str) -> None:
        if not text:
            return
        pieces.append(text)
        if not quiet:
            sys.stdout.write(text)
            sys.stdout.flush()

    with subprocess.Popen(argv, stdout=subprocess.PIPE) as proc:
        assert proc.stdout is not None
        for chunk in iter(lambda: proc.stdout.read1(65536), b""):
            emit(decoder.decode(chunk))
        emit(decoder.decode(b"", final=True))
        returncode = proc.wait()

    captured = "".join(pieces)
    if returncode != 0:
        raise subprocess.CalledProcessError(returncode, argv, output=captured)
    return captured