"""
pkm-vault - vault persistence and backup engine for a desktop note-taking app.

Keeps an in-memory collection of notes in step with a directory of Markdown
files plus a sidecar JSON index, manages per-note attachment folders, and
schedules best-effort git backups of the vault.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pkm-vault")
except PackageNotFoundError:
    __version__ = "0.3.0"
