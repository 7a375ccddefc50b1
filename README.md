# macforge

A library of building blocks for setting up and maintaining a developer
workstation (Apple Silicon and Intel Macs):

- `macforge.config`: the `Runtime` settings shared by every operation
  (`dry_run`, `verbose`, `quiet`, `yes`, `no_color`, plus `version`, `commit`
  and `build_date`), the user config file, and discovery of the workstation
  repository.
- `macforge.doctor`: read-only checks for `xcode-select`, the Homebrew binary,
  the repository, `~/.config/macheim/` and the shell rc file.
- `macforge.status`: a summary of the Homebrew install and the repository's
  last commit and clean/dirty state.
- `macforge.dotfiles`: compare the repository's `dotfiles/` tree with `$HOME`
  and copy it into place with timestamped backups.
- `macforge.local_to_remote`: copy dotfiles edited in `$HOME` back into the
  repository.
- `macforge.shell`: shell detection, y/N prompts, idempotent rc-file appends
  and subprocess execution that honours dry-run.
- `macforge.gitrepo`: `pull`, `last_commit` and `is_clean`, using the system
  `git`.
- `macforge.output`: the row and summary renderer used by doctor and status.

Install with `pip install .` (add `.[test]` for pytest). Requires Python 3.10
or later and PyYAML.

## Runtime and repository discovery

```python
from macforge.config import Runtime

rt = Runtime(verbose=True)
rt.validate()             # ValueError if verbose and quiet are both set
print(rt.version_string())  # "<version> (commit <commit>, built <build_date>)"
```

`Runtime.resolve_repo_path()` returns a `(path, source)` pair, trying in order:

| source            | where the path comes from                      |
|-------------------|------------------------------------------------|
| `flag`            | `Runtime.repo_path`                            |
| `env`             | the `MACHEIM_REPO` environment variable        |
| `config`          | `repo_path` in `~/.config/macheim/config.yaml` |
| `convention:src`  | `~/src/macheim`, if it is a directory          |
| `convention:code` | `~/code/macheim`, if it is a directory         |

When nothing matches, both values are empty strings and
`Runtime.is_read_only()` returns true. A missing config file counts as empty;
one that exists but cannot be read or parsed makes `config.load()` and
`resolve_repo_path()` raise `ConfigError`.

## Doctor and status

```python
import sys

from macforge import doctor, status
from macforge.config import Runtime

rt = Runtime()
status.run(rt, sys.stdout)      # informational; never raises for failed rows

try:
    doctor.run(rt, sys.stdout)
except doctor.ChecksFailedError:
    sys.exit(1)
```

Each row starts with a marker: `✓` (pass), `✗` (fail) or `?` (unknown).
Colour is used only when the stream is a terminal and `no_color` is false.
With `verbose`, doctor prints each check's probe (`probed: ...`) and status
prints extra detail lines. With `quiet`, passing doctor checks and the status
drift placeholder rows are left out; doctor failures, their `→` remediation
lines and the summary line are always printed.

The individual checks (`xcode_check`, `brew_check`, `repo_check`,
`config_dir_check`, `shell_rc_check`) take a `Runtime` and a `doctor.Seam`,
whose fields (`run`, `stat`, `look_env`, `can_write_dir`, `can_write_file`,
`arch`, `home_dir`) can be replaced to test them without touching the system.
`status.brew_row` and `status.repo_row` take a `BrewSeam` and `RepoSeam` in the
same way.

## Dotfiles

Every path beneath `<repo>/dotfiles/` corresponds to the same relative path
under `$HOME`. `.DS_Store` files and directories whose names end in `.git` are
skipped; symlinks compare by target and are recreated as symlinks.

```python
from pathlib import Path

from macforge import dotfiles
from macforge.config import Runtime

home = str(Path.home())
rt = Runtime(repo_path=str(Path.home() / "src" / "macheim"), dry_run=True)

for entry in dotfiles.diff(rt.repo_path, home):
    print(entry.rel_path, entry.file_class)   # identical / changed / new-in-repo

result = dotfiles.apply(rt, rt.repo_path, home)
print("would copy:", result.copied)
print("would back up:", result.backed_up, "into", result.backup_dir)
```

`apply` backs up each file it replaces to
`<home>/.macheim-backups/<UTC timestamp>/` and preserves file modes. With
`dry_run` nothing on disk changes, but the result lists what would have
happened. Failures raise `DotfilesError`, whose `result` attribute holds the
partial outcome.

Copying drifted files from `$HOME` back into the repository:

```python
from macforge import local_to_remote
from macforge.config import Runtime

rt = Runtime(yes=True)
result = local_to_remote.update_local_to_remote(rt)
print(result.copied, result.backup_dir)
```

Only paths already in the repository's `dotfiles/` tree are considered. A
tracked file missing from `$HOME` is reported on stderr but never copied or
deleted. Repository files are backed up to
`<repo>/.macheim-repo-backups/<UTC timestamp>/` before being overwritten. By
default the user is asked once on stdin (answered yes automatically when
`rt.yes` is set); pass `confirm=` a callable taking `(rt, message)` to decide
otherwise. With no repository configured it raises `NoRepoConfiguredError`.

## Shell and git helpers

```python
from macforge import gitrepo, shell
from macforge.config import Runtime

rt = Runtime()
name, rc_path = shell.detect()             # UnknownShellError unless zsh or bash
shell.append_if_missing(rt, rc_path, 'eval "$(/opt/homebrew/bin/brew shellenv)"')
out = shell.run(rt, "echo", "hello")        # streams and returns stdout

commit = gitrepo.last_commit("/path/to/repo")  # Commit(sha, subject, iso_date)
print(gitrepo.is_clean("/path/to/repo"))
```

`shell.run` raises `subprocess.CalledProcessError` on a non-zero exit;
`gitrepo` functions raise `GitError`. Under `dry_run`, `shell.run`,
`shell.append_if_missing` and `gitrepo.pull` only describe what they would do
on stderr.

## What it does not do

- There is no command-line program; everything is called from Python.
- Remediation messages mention commands such as `macheim brew install`, but
  this package does not install Homebrew or anything else.
- There is no bundled snapshot of configuration files to fall back on when no
  repository is found; in that case the runtime is simply read-only.
- The status report's drift rows are placeholders marked `?`; no drift
  detection for Homebrew, dotfiles or macOS settings is performed there.