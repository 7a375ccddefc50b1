import os
import stat

import pytest

from macforge.config import Runtime
from macforge.dotfiles import (
    ApplyResult,
    DiffEntry,
    DotfilesError,
    FileClass,
    apply,
    diff,
)


def write_file(path, content, mode=0o644):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    os.chmod(path, mode)


def make_symlink(target, path):
    path.parent.mkdir(parents=True, exist_ok=True)
    os.symlink(target, path)


def find_entry(entries, rel):
    matches = [e for e in entries if e.rel_path == rel]
    assert matches, f"expected entry for {rel!r} in {entries!r}"
    return matches[0]


@pytest.fixture
def trees(tmp_path):
    repo = tmp_path / "repo"
    home = tmp_path / "home"
    repo.mkdir()
    home.mkdir()
    return repo, home


# ---- diff ----


def test_diff_identical(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / ".zshrc", "export A=1\n")
    write_file(home / ".zshrc", "export A=1\n")
    assert find_entry(diff(str(repo), str(home)), ".zshrc").file_class is FileClass.IDENTICAL


def test_diff_changed(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / ".zshrc", "new\n")
    write_file(home / ".zshrc", "old\n")
    assert find_entry(diff(str(repo), str(home)), ".zshrc").file_class is FileClass.CHANGED


def test_diff_new_in_repo(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / ".zshrc", "x\n")
    assert find_entry(diff(str(repo), str(home)), ".zshrc").file_class is FileClass.NEW_IN_REPO


def test_diff_symlink_identical(trees):
    repo, home = trees
    make_symlink("/foo/bar", repo / "dotfiles" / ".link")
    make_symlink("/foo/bar", home / ".link")
    assert find_entry(diff(str(repo), str(home)), ".link").file_class is FileClass.IDENTICAL


def test_diff_symlink_differ(trees):
    repo, home = trees
    make_symlink("/foo/new", repo / "dotfiles" / ".link")
    make_symlink("/foo/old", home / ".link")
    assert find_entry(diff(str(repo), str(home)), ".link").file_class is FileClass.CHANGED


def test_diff_symlink_versus_regular_file_is_changed(trees):
    repo, home = trees
    write_file(home / "target", "same\n")
    make_symlink(str(home / "target"), repo / "dotfiles" / ".cfg")
    write_file(home / ".cfg", "same\n")
    assert find_entry(diff(str(repo), str(home)), ".cfg").file_class is FileClass.CHANGED


def test_diff_nested_files(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / ".config" / "foo" / "bar.yaml", "k: v\n")
    rel = os.path.join(".config", "foo", "bar.yaml")
    assert find_entry(diff(str(repo), str(home)), rel).file_class is FileClass.NEW_IN_REPO


def test_diff_skips_ds_store(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / ".DS_Store", "junk")
    write_file(repo / "dotfiles" / ".zshrc", "x\n")
    entries = diff(str(repo), str(home))
    assert [e.rel_path for e in entries] == [".zshrc"]


def test_diff_skips_git_dirs(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / ".config" / "repo" / ".git" / "HEAD", "ref: x\n")
    write_file(repo / "dotfiles" / ".zshrc", "x\n")
    entries = diff(str(repo), str(home))
    assert entries == [DiffEntry(".zshrc", FileClass.NEW_IN_REPO)]


def test_diff_missing_repo_tree(trees):
    repo, home = trees
    assert diff(str(repo), str(home)) == []


def test_diff_sorted_walk_order(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / "b", "b")
    write_file(repo / "dotfiles" / "a", "a")
    write_file(repo / "dotfiles" / "c" / "d", "d")
    rels = [e.rel_path for e in diff(str(repo), str(home))]
    assert rels == ["a", "b", os.path.join("c", "d")]


def test_diff_dotfiles_is_a_file_raises(trees):
    repo, home = trees
    write_file(repo / "dotfiles", "not a dir")
    with pytest.raises(DotfilesError, match="is not a directory"):
        diff(str(repo), str(home))


def test_file_class_strings_from_diff(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / "a", "same\n")
    write_file(home / "a", "same\n")
    write_file(repo / "dotfiles" / "b", "new\n")
    write_file(home / "b", "old\n")
    write_file(repo / "dotfiles" / "c", "x\n")

    labels = [str(e.file_class) for e in diff(str(repo), str(home))]
    assert labels == ["identical", "changed", "new-in-repo"]
    assert str(FileClass.MISSING_IN_REPO) == "missing-in-repo"


# ---- apply ----


def test_apply_copies_new_file(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / ".zshrc", "export PATH=/x\n", 0o640)

    result = apply(Runtime(), str(repo), str(home))

    assert ".zshrc" in result.copied
    assert result.backed_up == []
    assert (home / ".zshrc").read_text() == "export PATH=/x\n"
    assert stat.S_IMODE(os.stat(home / ".zshrc").st_mode) == 0o640


def test_apply_backs_up_changed_file(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / ".zshrc", "new\n")
    write_file(home / ".zshrc", "old\n")

    result = apply(Runtime(), str(repo), str(home))

    assert ".zshrc" in result.copied
    assert ".zshrc" in result.backed_up
    assert result.backup_dir
    assert (home / ".zshrc").read_text() == "new\n"
    with open(os.path.join(result.backup_dir, ".zshrc")) as handle:
        assert handle.read() == "old\n"
    assert result.backup_dir.startswith(str(home / ".macheim-backups"))


def test_apply_skips_identical(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / ".zshrc", "same\n")
    write_file(home / ".zshrc", "same\n")
    before = os.stat(home / ".zshrc").st_mtime_ns

    result = apply(Runtime(), str(repo), str(home))

    assert result == ApplyResult(skipped=[".zshrc"])
    assert os.stat(home / ".zshrc").st_mtime_ns == before
    assert not (home / ".macheim-backups").exists()


def test_apply_preserves_symlinks(trees):
    repo, home = trees
    make_symlink("/foo/bar", repo / "dotfiles" / ".link")

    result = apply(Runtime(), str(repo), str(home))

    assert ".link" in result.copied
    dst = home / ".link"
    assert stat.S_ISLNK(os.lstat(dst).st_mode)
    assert os.readlink(dst) == "/foo/bar"


def test_apply_replaces_file_with_symlink_and_backs_up(trees):
    repo, home = trees
    make_symlink("/foo/bar", repo / "dotfiles" / ".link")
    write_file(home / ".link", "plain\n")

    result = apply(None, str(repo), str(home))

    assert result.backed_up == [".link"]
    assert os.readlink(home / ".link") == "/foo/bar"
    with open(os.path.join(result.backup_dir, ".link")) as handle:
        assert handle.read() == "plain\n"


def test_apply_dry_run(trees):
    repo, home = trees
    write_file(repo / "dotfiles" / ".zshrc", "new\n")
    write_file(home / ".zshrc", "old\n")
    write_file(repo / "dotfiles" / ".vimrc", "set nocompatible\n")

    result = apply(Runtime(dry_run=True), str(repo), str(home))

    assert ".zshrc" in result.copied
    assert ".vimrc" in result.copied
    assert ".zshrc" in result.backed_up
    assert result.backup_dir
    assert (home / ".zshrc").read_text() == "old\n"
    assert not (home / ".vimrc").exists()
    assert not (home / ".macheim-backups").exists()


def test_apply_verbose_dry_run_logs_with_prefix(trees, capsys):
    repo, home = trees
    write_file(repo / "dotfiles" / ".vimrc", "x\n")

    apply(Runtime(dry_run=True, verbose=True), str(repo), str(home))

    err = capsys.readouterr().err
    assert "[dry-run] copy: .vimrc -> " in err


def test_apply_quiet_by_default(trees, capsys):
    repo, home = trees
    write_file(repo / "dotfiles" / ".vimrc", "x\n")

    apply(Runtime(), str(repo), str(home))

    assert capsys.readouterr().err == ""


def test_apply_missing_repo_tree_is_empty(trees):
    repo, home = trees
    assert apply(Runtime(), str(repo), str(home)) == ApplyResult()