"""Shared row renderer for read-only commands such as doctor and status."""

from __future__ import annotations

from enum import Enum
from typing import TextIO

ANSI_GREEN = "\033[32m"
ANSI_RED = "\033[31m"
ANSI_YELLOW = "\033[33m"
ANSI_RESET = "\033[0m"


class Marker(Enum):
    """Leading glyph of a row: pass, fail or unknown."""

    OK = ("✓", ANSI_GREEN)
    FAIL = ("✗", ANSI_RED)
    UNKNOWN = ("?", ANSI_YELLOW)

    def __init__(self, glyph: str, code: str) -> None:
        self.glyph = glyph
        self.code = code


def use_color(no_color: bool, stream: TextIO) -> bool:
    """Report whether ANSI escapes should be written to ``stream``."""
    if no_color:
        return False
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return False
    try:
        return bool(isatty())
    except (OSError, ValueError):
        return False


def row(
    stream: TextIO,
    use_color: bool,
    verbose: bool,
    marker: Marker,
    name: str,
    detail: str = "",
    probe: str = "",
) -> None:
    """Write ``<marker> <name>[  <detail>]`` and, when verbose, the probe line."""
    if use_color:
        stream.write(f"{marker.code}{marker.glyph}{ANSI_RESET} {name}")
    else:
        stream.write(f"{marker.glyph} {name}")
    if detail:
        stream.write(f"  {detail}")
    stream.write("\n")
    if verbose and probe:
        stream.write(f"   {probe}\n")


def summary(stream: TextIO, use_color: bool, marker: Marker, text: str) -> None:
    """Write a single trailing line, coloured by ``marker``; empty text writes nothing."""
    if not text:
        return
    if use_color:
        stream.write(f"{marker.code}{text}{ANSI_RESET}\n")
    else:
        stream.write(f"{text}\n")