"""Thin wrappers around the system ``git`` command."""

from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass

from macforge.config import Runtime


class GitError(Exception):
    """Raised when a git invocation fails or returns unusable output."""


@dataclass(frozen=True)
class Commit:
    """The most recent commit on HEAD."""

    sha: str
    subject: str
    iso_date: str


def _git(repo_path: str, *args: str, merge_stderr: bool = False) -> subprocess.CompletedProcess:
    return subprocess.run(
        ["git", "-C", os.fspath(repo_path), *args],
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
        check=False,
    )


def pull(rt: Runtime | None, repo_path: str) -> None:
    """Run ``git pull --ff-only`` in ``repo_path``; under dry-run only announce it."""
    if rt is not None and rt.dry_run:
        sys.stderr.write(f"[dry-run] git -C {repo_path} pull --ff-only\n")
        return
    prefix = f"git pull --ff-only failed in {repo_path}"
    try:
        proc = _git(repo_path, "pull", "--ff-only", merge_stderr=True)
    except OSError as exc:
        raise GitError(f"{prefix}: {exc}") from exc
    if proc.returncode != 0:
        output = proc.stdout.decode(errors="replace").strip()
        raise GitError(f"{prefix}: exit status {proc.returncode} ({output})")


def last_commit(repo_path: str) -> Commit:
    """Return SHA, subject and ISO-8601 commit date of HEAD in ``repo_path``."""
    prefix = f"git log -1 failed in {repo_path}"
    try:
        proc = _git(repo_path, "log", "-1", "--format=%H%n%s%n%cI")
    except OSError as exc:
        raise GitError(f"{prefix}: {exc}") from exc
    if proc.returncode != 0:
        raise GitError(f"{prefix}: exit status {proc.returncode}")

    out = proc.stdout.decode(errors="replace")
    parts = out.rstrip("\n").split("\n", 2)
    if len(parts) != 3:
        raise GitError(f"git log -1 produced {len(parts)} field(s), want 3 (output: {out!r})")
    sha, subject, iso_date = parts
    if not sha or not subject or not iso_date:
        raise GitError(
            f"git log -1 returned empty field(s): sha={sha!r} subject={subject!r} isoDate={iso_date!r}"
        )
    return Commit(sha=sha, subject=subject, iso_date=iso_date)


def is_clean(repo_path: str) -> bool:
    """Report whether ``git status --porcelain`` shows no pending changes."""
    prefix = f"git status --porcelain failed in {repo_path}"
    try:
        proc = _git(repo_path, "status", "--porcelain")
    except OSError as exc:
        raise GitError(f"{prefix}: {exc}") from exc
    if proc.returncode != 0:
        raise GitError(f"{prefix}: exit status {proc.returncode}")
    return proc.stdout.decode(errors="replace").strip() == ""