"""Copy dotfiles that drifted in ``$HOME`` back into the repo's ``dotfiles/`` tree.

This is the reverse of ``dotfiles.apply``. Only paths the repo already tracks
are considered. A tracked file missing from ``$HOME`` is reported but never
copied or removed. Repo files are backed up before they are overwritten.
"""

from __future__ import annotations

import os
import stat as stat_module
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator

from macforge import shell
from macforge.config import Runtime
from macforge.dotfiles import DotfilesError, FileClass

_BACKUP_DIRNAME = ".macheim-repo-backups"
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H%M%SZ"

Confirm = Callable[[Runtime, str], bool]


class NoRepoConfiguredError(Exception):
    """Raised when no repo could be discovered (embed-fallback mode)."""

    def __init__(self) -> None:
        super().__init__(
            "update local-to-remote: no repo configured; clone the macheim repo "
            "and set --repo or MACHEIM_REPO first"
        )


@dataclass(frozen=True)
class ReverseChange:
    """One tracked path whose ``$HOME`` copy differs from the repo or is gone."""

    rel_path: str
    file_class: FileClass


@dataclass
class LocalToRemoteResult:
    """Outcome of one reverse sync, in repo-walk order."""

    copied: list[str] = field(default_factory=list)
    backed_up: list[str] = field(default_factory=list)
    backup_dir: str = ""


def _is_link(info: os.stat_result) -> bool:
    return stat_module.S_ISLNK(info.st_mode)


def _walk_tracked(root: str, rel: str = "") -> Iterator[str]:
    directory = os.path.join(root, rel) if rel else root
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        child = os.path.join(rel, entry.name) if rel else entry.name
        if entry.is_dir(follow_symlinks=False):
            if entry.name.endswith(".git"):
                continue
            yield from _walk_tracked(root, child)
            continue
        if entry.name == ".DS_Store":
            continue
        yield child


def _read_bytes(path: str) -> bytes:
    try:
        with open(path, "rb") as handle:
            return handle.read()
    except OSError as exc:
        raise DotfilesError(f"dotfiles: read {path}: {exc}") from exc


def _readlink(path: str) -> str:
    try:
        return os.readlink(path)
    except OSError as exc:
        raise DotfilesError(f"dotfiles: readlink {path}: {exc}") from exc


def _classify_reverse(repo_file: str, home_file: str) -> FileClass | None:
    """Return the class of an actionable pair, or ``None`` when they match."""
    try:
        home_info = os.lstat(home_file)
    except FileNotFoundError:
        return FileClass.MISSING_IN_REPO
    except OSError as exc:
        raise DotfilesError(f"dotfiles: lstat {home_file}: {exc}") from exc
    try:
        repo_info = os.lstat(repo_file)
    except OSError as exc:
        raise DotfilesError(f"dotfiles: lstat {repo_file}: {exc}") from exc

    repo_is_link = _is_link(repo_info)
    if repo_is_link != _is_link(home_info):
        return FileClass.CHANGED
    if repo_is_link:
        same = _readlink(repo_file) == _readlink(home_file)
    else:
        same = _read_bytes(repo_file) == _read_bytes(home_file)
    return None if same else FileClass.CHANGED


def reverse_diff(repo_path: str, home_path: str) -> list[ReverseChange]:
    """List tracked paths whose ``$HOME`` copy differs from the repo or is missing.

    A repo without a ``dotfiles/`` directory yields an empty list.
    """
    root = os.path.join(os.fspath(repo_path), "dotfiles")
    try:
        info = os.stat(root)
    except FileNotFoundError:
        return []
    except OSError as exc:
        raise DotfilesError(f"dotfiles: stat repo tree: {exc}") from exc
    if not stat_module.S_ISDIR(info.st_mode):
        raise DotfilesError(f"dotfiles: {root} is not a directory")

    changes: list[ReverseChange] = []
    try:
        for rel in _walk_tracked(root):
            file_class = _classify_reverse(
                os.path.join(root, rel), os.path.join(os.fspath(home_path), rel)
            )
            if file_class is not None:
                changes.append(ReverseChange(rel_path=rel, file_class=file_class))
    except DotfilesError:
        raise
    except OSError as exc:
        raise DotfilesError(f"dotfiles: walk {root}: {exc}") from exc
    return changes


def _render_drift(changes: list[ReverseChange]) -> None:
    if not changes:
        sys.stderr.write("dotfiles: no drift\n")
        return
    sys.stderr.write("Dotfiles drift ($HOME -> repo):\n")
    for change in changes:
        if change.file_class is FileClass.CHANGED:
            sys.stderr.write(f"  ~ {change.rel_path}\n")
        elif change.file_class is FileClass.MISSING_IN_REPO:
            sys.stderr.write(f"  - {change.rel_path} (missing in $HOME; not copied)\n")


def _log(verbose: bool, dry_run: bool, message: str) -> None:
    if not verbose:
        return
    prefix = "[dry-run] " if dry_run else ""
    sys.stderr.write(f"{prefix}{message}\n")


def _copy_entry(src: str, dst: str) -> None:
    info = os.lstat(src)
    if _is_link(info):
        os.symlink(os.readlink(src), dst)
        return
    mode = stat_module.S_IMODE(info.st_mode) & 0o777
    with open(src, "rb") as handle:
        data = handle.read()
    fd = os.open(dst, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)
    os.chmod(dst, mode)


def _backup_repo_file(src: str, dst: str, dry_run: bool) -> None:
    if dry_run:
        return
    os.makedirs(os.path.dirname(dst), mode=0o755, exist_ok=True)
    _copy_entry(src, dst)


def _install_into_repo(src: str, dst: str, dry_run: bool) -> None:
    if dry_run:
        return
    os.makedirs(os.path.dirname(dst), mode=0o755, exist_ok=True)
    os.lstat(src)
    try:
        os.remove(dst)
    except FileNotFoundError:
        pass
    _copy_entry(src, dst)


def _default_confirm(rt: Runtime, message: str) -> bool:
    return shell.prompt(rt, sys.stdin, message)


def update_local_to_remote(rt: Runtime, confirm: Confirm | None = None) -> LocalToRemoteResult:
    """Copy drifted ``$HOME`` dotfiles back into the resolved repo after confirmation.

    ``confirm`` is asked once with the runtime and a question; by default it
    prompts on stdin, honouring ``rt.yes``. Raises ``NoRepoConfiguredError`` in
    embed-fallback mode. Under dry-run the result is filled in but nothing is
    written.
    """
    ask = confirm if confirm is not None else _default_confirm
    result = LocalToRemoteResult()

    repo_path, _source = rt.resolve_repo_path()
    if not repo_path:
        raise NoRepoConfiguredError()
    home_path = os.path.expanduser("~")

    changes = reverse_diff(repo_path, home_path)
    _render_drift(changes)
    if not changes:
        return result

    if not ask(rt, f"Copy these {len(changes)} changed file(s) back to the repo?"):
        sys.stderr.write("dotfiles: skipped\n")
        return result

    timestamp = datetime.now(timezone.utc).strftime(_TIMESTAMP_FORMAT)
    backup_dir = os.path.join(repo_path, _BACKUP_DIRNAME, timestamp)
    dry_run = rt.dry_run
    verbose = rt.verbose

    for change in changes:
        if change.file_class is FileClass.MISSING_IN_REPO:
            continue
        rel = change.rel_path
        src = os.path.join(home_path, rel)
        dst = os.path.join(repo_path, "dotfiles", rel)
        backup_path = os.path.join(backup_dir, rel)

        try:
            _backup_repo_file(dst, backup_path, dry_run)
        except OSError as exc:
            raise DotfilesError(f"dotfiles: backup {rel}: {exc}") from exc
        result.backed_up.append(rel)
        if not result.backup_dir:
            result.backup_dir = backup_dir
        _log(verbose, dry_run, f"backup: {rel} -> {backup_path}")

        try:
            _install_into_repo(src, dst, dry_run)
        except OSError as exc:
            raise DotfilesError(f"dotfiles: copy {rel}: {exc}") from exc
        result.copied.append(rel)
        _log(verbose, dry_run, f"copy: {rel} -> {dst}")

    return result