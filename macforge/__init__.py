"""Workstation checks, status reporting, dotfile sync, git and shell helpers."""

__version__ = "0.1.0"

__all__ = [
    "config",
    "doctor",
    "dotfiles",
    "gitrepo",
    "local_to_remote",
    "output",
    "shell",
    "status",
]