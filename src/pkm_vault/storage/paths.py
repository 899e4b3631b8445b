"""Path sanitizing and collision-free naming for notes and attachments.

Everything here accepts untrusted strings and degrades instead of raising:
a save must never fail because a title contained a colon.
"""
import posixpath
import re
from pathlib import Path
from typing import Any, Optional, Set

from pkm_vault.models.schema import DEFAULT_NOTEBOOK

DEFAULT_NOTE_NAME = "untitled.md"
DEFAULT_ATTACHMENT_STEM = "attachment"
ATTACHMENTS_DIR = "attachments"

# Reserved on Windows plus C0 control characters
_RESERVED_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")


def normalize_segment(segment: str) -> str:
    """Replace reserved/control characters with '-' and collapse whitespace."""
    cleaned = _RESERVED_CHARS.sub("-", segment)
    return _WHITESPACE.sub(" ", cleaned).strip()


def sanitize_note_path(value: Any) -> str:
    """Turn an arbitrary string into a safe vault-relative ``.md`` path.

    Examples:
        "../../etc/passwd" -> "etc/passwd.md"
        "Inbox\\Hello"     -> "Inbox/Hello.md"
        ""                 -> "untitled.md"
    """
    raw = value if isinstance(value, str) else ""
    segments = []
    for segment in raw.replace("\\", "/").split("/"):
        if not segment or segment in (".", ".."):
            continue
        segment = normalize_segment(segment)
        if segment:
            segments.append(segment)

    file_name = segments.pop() if segments else DEFAULT_NOTE_NAME
    if not file_name.lower().endswith(".md"):
        file_name = f"{file_name}.md"

    return "/".join(segments + [file_name])


def sanitize_attachment_name(value: Any) -> str:
    """Reduce an uploaded file name to a safe base name.

    The directory part is dropped; stem and extension are normalized
    separately so ``"../x?.png"`` becomes ``"x-.png"``.
    """
    raw = value if isinstance(value, str) else ""
    base_name = posixpath.basename(raw.replace("\\", "/")).replace("/", "")
    stem, ext = posixpath.splitext(base_name)
    normalized_stem = normalize_segment(stem) or DEFAULT_ATTACHMENT_STEM
    normalized_ext = normalize_segment(ext) if ext else ""
    return f"{normalized_stem}{normalized_ext}"


def _split_stem(name: str, default_ext: str = "") -> tuple:
    stem, ext = posixpath.splitext(name)
    if not ext:
        return name, default_ext
    return stem, ext


def unique_relative_path(base_path: str, used: Set[str]) -> str:
    """Pick ``base_path`` or ``"<stem> 2<ext>"``, ``"<stem> 3<ext>"``, ...

    Comparison is case-insensitive against ``used``, which holds lower-cased
    paths and is updated with the chosen one.
    """
    stem, ext = _split_stem(base_path, ".md")
    candidate = base_path
    counter = 2
    while candidate.lower() in used:
        candidate = f"{stem} {counter}{ext}"
        counter += 1
    used.add(candidate.lower())
    return candidate


def unique_file_name_in_dir(directory: Path, file_name: str) -> str:
    """Like ``unique_relative_path`` but probes the files on disk."""
    stem, ext = _split_stem(file_name)
    candidate = file_name
    counter = 2
    while (directory / candidate).exists():
        candidate = f"{stem} {counter}{ext}"
        counter += 1
    return candidate


def notebook_from_path(relative_path: str, explicit: Optional[str] = None) -> str:
    """Notebook name: explicit value, else the first folder, else the default."""
    if isinstance(explicit, str) and explicit.strip():
        return explicit.strip()
    segments = relative_path.split("/")
    if len(segments) > 1 and segments[0]:
        return segments[0]
    return DEFAULT_NOTEBOOK


def note_dir(note_path: str) -> str:
    """Directory part of a vault-relative note path ('' at the root)."""
    return posixpath.dirname(note_path)


def attachments_dir_for(note_path: str) -> str:
    """Vault-relative attachments folder that belongs to a note."""
    directory = note_dir(note_path)
    return posixpath.join(directory, ATTACHMENTS_DIR) if directory else ATTACHMENTS_DIR


def relative_from_note(note_directory: str, target: str) -> str:
    """Link target for ``target`` as seen from a note in ``note_directory``.

    Always starts with '.', e.g. ``./attachments/image.png``.
    """
    relative = posixpath.relpath(target, note_directory or ".")
    return relative if relative.startswith(".") else f"./{relative}"


def resolve_in_vault(vault_root: Path, relative_path: str) -> Path:
    """Absolute path for a sanitized vault-relative path."""
    return vault_root.joinpath(*relative_path.split("/"))
