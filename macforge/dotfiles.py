"""Compare a repo's ``dotfiles/`` tree with ``$HOME`` and install it with backups.

Every path beneath ``<repo>/dotfiles/`` maps to the same relative path under
``$HOME``. Symlinks are kept as symlinks: they compare by target and are
recreated rather than dereferenced.
"""

from __future__ import annotations

import os
import stat as stat_module
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator

from macforge.config import Runtime

_BACKUP_DIRNAME = ".macheim-backups"
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H%M%SZ"


class DotfilesError(Exception):
    """Raised when the dotfiles tree cannot be compared or installed.

    ``result`` carries the partial outcome of an interrupted apply, if any.
    """

    def __init__(self, message: str, result: "ApplyResult | None" = None) -> None:
        super().__init__(message)
        self.result = result


class FileClass(Enum):
    """Classification of one path between the repo tree and ``$HOME``."""

    IDENTICAL = "identical"
    CHANGED = "changed"
    NEW_IN_REPO = "new-in-repo"
    MISSING_IN_REPO = "missing-in-repo"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DiffEntry:
    """One row of the diff; ``rel_path`` is relative to the repo's dotfiles dir."""

    rel_path: str
    file_class: FileClass


@dataclass
class ApplyResult:
    """Outcome of one apply run, in repo-walk order."""

    copied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    backed_up: list[str] = field(default_factory=list)
    backup_dir: str = ""


def _is_link(info: os.stat_result) -> bool:
    return stat_module.S_ISLNK(info.st_mode)


def _walk_files(root: str, rel: str = "") -> Iterator[str]:
    """Yield relative paths of files and symlinks below ``root`` in sorted order."""
    directory = os.path.join(root, rel) if rel else root
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        child = os.path.join(rel, entry.name) if rel else entry.name
        if entry.is_dir(follow_symlinks=False):
            if entry.name.endswith(".git"):
                continue
            yield from _walk_files(root, child)
            continue
        if entry.name == ".DS_Store":
            continue
        yield child


def _classify(repo_file: str, home_file: str) -> FileClass:
    try:
        home_info = os.lstat(home_file)
    except FileNotFoundError:
        return FileClass.NEW_IN_REPO
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
        try:
            repo_target = os.readlink(repo_file)
        except OSError as exc:
            raise DotfilesError(f"dotfiles: readlink {repo_file}: {exc}") from exc
        try:
            home_target = os.readlink(home_file)
        except OSError as exc:
            raise DotfilesError(f"dotfiles: readlink {home_file}: {exc}") from exc
        return FileClass.IDENTICAL if repo_target == home_target else FileClass.CHANGED

    try:
        with open(repo_file, "rb") as handle:
            repo_bytes = handle.read()
    except OSError as exc:
        raise DotfilesError(f"dotfiles: read {repo_file}: {exc}") from exc
    try:
        with open(home_file, "rb") as handle:
            home_bytes = handle.read()
    except OSError as exc:
        raise DotfilesError(f"dotfiles: read {home_file}: {exc}") from exc
    return FileClass.IDENTICAL if repo_bytes == home_bytes else FileClass.CHANGED


def diff(repo_path: str, home_path: str) -> list[DiffEntry]:
    """Compare ``<repo_path>/dotfiles/`` with the matching paths under ``home_path``.

    Only files and symlinks are reported, in sorted walk order. ``.DS_Store``
    files and directories ending in ``.git`` are skipped. A repo with no
    ``dotfiles/`` directory yields an empty list.
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

    entries: list[DiffEntry] = []
    try:
        for rel in _walk_files(root):
            file_class = _classify(os.path.join(root, rel), os.path.join(os.fspath(home_path), rel))
            entries.append(DiffEntry(rel_path=rel, file_class=file_class))
    except DotfilesError:
        raise
    except OSError as exc:
        raise DotfilesError(f"dotfiles: walk {root}: {exc}") from exc
    return entries


def _log(verbose: bool, dry_run: bool, message: str) -> None:
    if not verbose:
        return
    prefix = "[dry-run] " if dry_run else ""
    sys.stderr.write(f"{prefix}{message}\n")


def _copy_regular(src: str, dst: str, mode: int) -> None:
    with open(src, "rb") as handle:
        data = handle.read()
    fd = os.open(dst, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)
    # The umask may have narrowed the mode; force the source's exact bits.
    os.chmod(dst, mode)


def _copy_entry(src: str, dst: str, info: os.stat_result) -> None:
    if _is_link(info):
        os.symlink(os.readlink(src), dst)
        return
    _copy_regular(src, dst, stat_module.S_IMODE(info.st_mode) & 0o777)


def _backup_file(src: str, dst: str, dry_run: bool) -> None:
    if dry_run:
        return
    os.makedirs(os.path.dirname(dst), mode=0o755, exist_ok=True)
    _copy_entry(src, dst, os.lstat(src))


def _remove_existing(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except IsADirectoryError:
        os.rmdir(path)


def _install_entry(src: str, dst: str, dry_run: bool) -> None:
    if dry_run:
        return
    os.makedirs(os.path.dirname(dst), mode=0o755, exist_ok=True)
    info = os.lstat(src)
    _remove_existing(dst)
    _copy_entry(src, dst, info)


def apply(rt: Runtime | None, repo_path: str, home_path: str) -> ApplyResult:
    """Copy ``<repo_path>/dotfiles/`` over ``home_path``, backing up what it replaces.

    Replaced files go to ``<home_path>/.macheim-backups/<UTC timestamp>/`` under
    their relative path. Under dry-run nothing is touched, but the result is
    filled in as if it had been. Verbose logs each action to stderr.
    """
    home_path = os.fspath(home_path)
    result = ApplyResult()
    entries = diff(repo_path, home_path)

    timestamp = datetime.now(timezone.utc).strftime(_TIMESTAMP_FORMAT)
    backup_dir = os.path.join(home_path, _BACKUP_DIRNAME, timestamp)
    repo_root = os.path.join(os.fspath(repo_path), "dotfiles")
    dry_run = rt is not None and rt.dry_run
    verbose = rt is not None and rt.verbose

    for entry in entries:
        rel = entry.rel_path
        if entry.file_class is FileClass.IDENTICAL:
            result.skipped.append(rel)
            _log(verbose, dry_run, f"skip (identical): {rel}")
            continue

        src = os.path.join(repo_root, rel)
        dst = os.path.join(home_path, rel)

        if entry.file_class is FileClass.CHANGED:
            backup_path = os.path.join(backup_dir, rel)
            try:
                _backup_file(dst, backup_path, dry_run)
            except OSError as exc:
                raise DotfilesError(f"dotfiles: backup {rel}: {exc}", result) from exc
            result.backed_up.append(rel)
            if not result.backup_dir:
                result.backup_dir = backup_dir
            _log(verbose, dry_run, f"backup: {rel} -> {backup_path}")

        try:
            _install_entry(src, dst, dry_run)
        except OSError as exc:
            raise DotfilesError(f"dotfiles: install {rel}: {exc}", result) from exc
        result.copied.append(rel)
        _log(verbose, dry_run, f"copy: {rel} -> {dst}")

    return result