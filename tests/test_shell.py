import io
import os
import subprocess
import sys

import pytest

from macforge.config import Runtime
from macforge.shell import UnknownShellError, append_if_missing, detect, prompt, run

DETECT_HOME = "/tmp/macheim-detect-home"
BREW_LINE = 'eval "$(brew shellenv)"'


@pytest.mark.parametrize(
    "shell_value, want_shell, want_rc",
    [
        ("/bin/zsh", "zsh", os.path.join(DETECT_HOME, ".zshrc")),
        ("/opt/homebrew/bin/zsh", "zsh", os.path.join(DETECT_HOME, ".zshrc")),
        ("/bin/bash", "bash", os.path.join(DETECT_HOME, ".bash_profile")),
    ],
)
def test_detect_known_shells(monkeypatch, shell_value, want_shell, want_rc):
    monkeypatch.setenv("SHELL", shell_value)
    monkeypatch.setenv("HOME", DETECT_HOME)
    assert detect() == (want_shell, want_rc)


@pytest.mark.parametrize("shell_value", ["/usr/bin/fish", "", "/opt/strange/nushell"])
def test_detect_unknown_shells(monkeypatch, shell_value):
    monkeypatch.setenv("SHELL", shell_value)
    monkeypatch.setenv("HOME", DETECT_HOME)
    with pytest.raises(UnknownShellError, match="unknown shell"):
        detect()


def test_prompt_yes_short_circuits(capsys):
    assert prompt(Runtime(yes=True), io.StringIO(""), "proceed?") is True
    assert capsys.readouterr().err == ""


@pytest.mark.parametrize("answer", ["y\n", "yes\n", "YES\n", "Y\n"])
def test_prompt_affirmative_inputs(answer):
    assert prompt(Runtime(), io.StringIO(answer), "go?") is True


@pytest.mark.parametrize("answer", ["\n", "maybe\n", ""])
def test_prompt_other_inputs_default_no(answer):
    assert prompt(Runtime(), io.StringIO(answer), "go?") is False


def test_prompt_writes_question_to_stderr(capsys):
    prompt(Runtime(), io.StringIO("n\n"), "go?")
    captured = capsys.readouterr()
    assert captured.err == "go? [y/N] "
    assert captured.out == ""


def test_append_if_missing_creates_file(tmp_path):
    rc = tmp_path / ".zshrc"
    append_if_missing(Runtime(), str(rc), BREW_LINE)
    assert rc.read_text() == BREW_LINE + "\n"


def test_append_if_missing_is_idempotent(tmp_path):
    rc = tmp_path / ".zshrc"
    for _ in range(3):
        append_if_missing(Runtime(), str(rc), BREW_LINE)
    assert rc.read_text().count(BREW_LINE) == 1


def test_append_if_missing_preserves_other_lines(tmp_path):
    rc = tmp_path / ".zshrc"
    existing = "export FOO=bar\nexport BAZ=qux\n"
    rc.write_text(existing)
    append_if_missing(Runtime(), str(rc), BREW_LINE)
    assert rc.read_text() == existing + BREW_LINE + "\n"


def test_append_if_missing_dry_run_touches_nothing(tmp_path, capsys):
    rc = tmp_path / ".zshrc"
    append_if_missing(Runtime(dry_run=True), str(rc), BREW_LINE)
    assert not rc.exists()
    err = capsys.readouterr().err
    assert "[dry-run]" in err
    assert str(rc) in err


def test_append_if_missing_detects_line_mid_file(tmp_path):
    rc = tmp_path / ".zshrc"
    seed = "export FOO=bar\n" + BREW_LINE + "\nexport BAZ=qux\n"
    rc.write_text(seed)
    append_if_missing(Runtime(), str(rc), BREW_LINE)
    assert rc.read_text() == seed


def test_append_if_missing_unreadable_path_raises(tmp_path):
    with pytest.raises(OSError):
        append_if_missing(Runtime(), str(tmp_path), BREW_LINE)


def test_run_dry_run_skips_exec(capsys):
    out = run(Runtime(dry_run=True), "/usr/bin/false")
    assert out == ""
    assert "[dry-run] /usr/bin/false" in capsys.readouterr().err


def test_run_quiet_captures_without_streaming(capsys):
    out = run(Runtime(quiet=True), "/bin/echo", "hello")
    assert "hello" in out
    assert capsys.readouterr().out == ""


def test_run_verbose_prefixes_echo(capsys):
    out = run(Runtime(verbose=True, quiet=True), sys.executable, "-c", "pass")
    assert out == ""
    assert f"$ {sys.executable} -c pass" in capsys.readouterr().err


def test_run_nil_runtime_streams_and_captures(capsys):
    out = run(None, "/bin/echo", "ok")
    assert "ok" in out
    assert "ok" in capsys.readouterr().out


def test_run_nonzero_exit_raises_with_output():
    with pytest.raises(subprocess.CalledProcessError) as excinfo:
        run(
            Runtime(quiet=True),
            sys.executable,
            "-c",
            "import sys; print('partial'); sys.exit(3)",
        )
    assert excinfo.value.returncode == 3
    assert "partial" in excinfo.value.output