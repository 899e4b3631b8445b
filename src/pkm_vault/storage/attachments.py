"""Attachment files stored beside the notes that embed them.

Each note owns an ``attachments/`` folder next to it. Duplicating a note
copies the local files it links to, so the copy keeps its images when the
original is deleted.
"""
import base64
import binascii
import logging
import posixpath
import re
import shutil
from pathlib import Path
from typing import Callable, Dict, Optional

from pkm_vault.exceptions import AttachmentError, ErrorCode
from pkm_vault.models.schema import AttachmentResult, CloneResult
from pkm_vault.observability import VaultDiagnostics
from pkm_vault.storage.paths import (
    attachments_dir_for,
    note_dir,
    relative_from_note,
    resolve_in_vault,
    sanitize_attachment_name,
    sanitize_note_path,
    unique_file_name_in_dir,
)

logger = logging.getLogger(__name__)

STORE_REASON = "attachment-save"
CLONE_REASON = "attachment-clone"
DEFAULT_ATTACHMENT_NAME = "attachment.bin"

# [label](target) and ![label](target)
LINK_PATTERN = re.compile(r"(!?\[[^\]]*\])\(([^)]+)\)")
SCHEME_PATTERN = re.compile(r"^[a-z][a-z0-9+.\-]*:", re.IGNORECASE)


def is_external_reference(target: str) -> bool:
    """True for blank targets, bare anchors, and anything with a URI scheme."""
    trimmed = target.strip()
    if not trimmed or trimmed.startswith("#"):
        return True
    return bool(SCHEME_PATTERN.match(trimmed))


def normalize_link_target(target: str) -> str:
    """Trim and drop the optional ``<...>`` wrapper."""
    trimmed = target.strip()
    if trimmed.startswith("<"):
        trimmed = trimmed[1:]
    if trimmed.endswith(">"):
        trimmed = trimmed[:-1]
    return trimmed


def decode_base64(data: str, file_name: str) -> bytes:
    """Decode an upload payload.

    Raises:
        AttachmentError: If the payload is blank or not valid base64.
    """
    if not data.strip():
        raise AttachmentError("Attachment payload is empty", file_name=file_name)
    try:
        content = base64.b64decode(data)
    except (binascii.Error, ValueError) as e:
        raise AttachmentError(
            f"Attachment payload is not valid base64: {e}", file_name=file_name
        ) from e
    if not content:
        raise AttachmentError("Attachment payload decodes to no bytes", file_name=file_name)
    return content


class AttachmentManager:
    """Stores and clones attachment files.

    Args:
        vault_root: Vault root directory.
        diagnostics: Channel for tolerated failures.
        on_changed: Called with a backup reason after files were written;
            normally the backup scheduler's ``schedule``.
    """

    def __init__(
        self,
        vault_root: Path,
        diagnostics: Optional[VaultDiagnostics] = None,
        on_changed: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.vault_root = vault_root
        self._diagnostics = diagnostics or VaultDiagnostics()
        self._on_changed = on_changed

    def store(
        self, note_path: str, file_name: Optional[str], base64_data: Optional[str]
    ) -> Optional[AttachmentResult]:
        """Save uploaded bytes into the note's attachments folder.

        Returns None when the payload is missing or undecodable.

        Raises:
            AttachmentError: If the file cannot be written.
        """
        raw_name = file_name if isinstance(file_name, str) else DEFAULT_ATTACHMENT_NAME
        safe_name = sanitize_attachment_name(raw_name)
        try:
            content = decode_base64(
                base64_data if isinstance(base64_data, str) else "", safe_name
            )
        except AttachmentError as e:
            self._diagnostics.report_error(e, operation="store_attachment")
            return None

        safe_note_path = sanitize_note_path(note_path)
        attachments_relative = attachments_dir_for(safe_note_path)
        attachments_absolute = resolve_in_vault(self.vault_root, attachments_relative)
        try:
            attachments_absolute.mkdir(parents=True, exist_ok=True)
            unique_name = unique_file_name_in_dir(attachments_absolute, safe_name)
            (attachments_absolute / unique_name).write_bytes(content)
        except OSError as e:
            raise AttachmentError(
                f"Failed to write attachment: {e}",
                file_name=safe_name,
                code=ErrorCode.ATTACHMENT_WRITE_FAILED,
            ) from e
        stored_path = posixpath.join(attachments_relative, unique_name)

        logger.info(f"Stored attachment {stored_path} ({len(content)} bytes)")
        self._notify(STORE_REASON)

        return AttachmentResult(
            relative_path=relative_from_note(note_dir(safe_note_path), stored_path),
            stored_path=stored_path,
            size_bytes=len(content),
        )

    def clone_links(
        self, source_path: str, target_path: str, markdown: Optional[str]
    ) -> CloneResult:
        """Copy the local files ``markdown`` links to and rewrite the links.

        Links are resolved relative to ``source_path``'s folder; only files
        that exist are copied, into ``target_path``'s attachments folder.
        The same source file referenced twice is copied once.
        """
        text = markdown if isinstance(markdown, str) else ""
        if not text.strip():
            return CloneResult(markdown=text, copied_count=0)

        source_note = sanitize_note_path(source_path)
        target_note = sanitize_note_path(target_path)
        source_dir = note_dir(source_note)
        target_dir = note_dir(target_note)
        target_attachments = attachments_dir_for(target_note)

        copied: Dict[str, str] = {}

        def _rewrite(match: re.Match) -> str:
            label, raw_target = match.group(1), match.group(2)
            source_relative = self._resolve_local_target(source_dir, raw_target)
            if source_relative is None:
                return match.group(0)

            new_link = copied.get(source_relative)
            if new_link is None:
                new_link = self._copy_into(source_relative, target_attachments, target_dir)
                if new_link is None:
                    return match.group(0)
                copied[source_relative] = new_link
            return f"{label}({new_link})"

        rewritten = LINK_PATTERN.sub(_rewrite, text)

        if copied:
            logger.info(
                f"Cloned {len(copied)} attachment(s) from {source_note} to {target_note}"
            )
            self._notify(CLONE_REASON)
        return CloneResult(markdown=rewritten, copied_count=len(copied))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_local_target(source_dir: str, raw_target: str) -> Optional[str]:
        """Vault-relative path a link points at, or None if it is not local."""
        target = normalize_link_target(raw_target)
        if is_external_reference(target) or target.startswith(("/", "\\")):
            return None
        candidate = re.sub(r"^(\./)+", "", target)
        resolved = posixpath.normpath(posixpath.join(source_dir, candidate))
        if resolved in ("", ".") or resolved == ".." or resolved.startswith("../"):
            return None
        return resolved

    def _copy_into(
        self, source_relative: str, target_attachments: str, target_dir: str
    ) -> Optional[str]:
        source_absolute = resolve_in_vault(self.vault_root, source_relative)
        if not source_absolute.is_file():
            return None

        attachments_absolute = resolve_in_vault(self.vault_root, target_attachments)
        safe_name = sanitize_attachment_name(posixpath.basename(source_relative))
        try:
            attachments_absolute.mkdir(parents=True, exist_ok=True)
            unique_name = unique_file_name_in_dir(attachments_absolute, safe_name)
            shutil.copy2(source_absolute, attachments_absolute / unique_name)
        except OSError as e:
            self._diagnostics.report(
                ErrorCode.ATTACHMENT_COPY_FAILED,
                str(e),
                operation="clone_attachment_links",
                path=source_relative,
            )
            return None

        target_relative = posixpath.join(target_attachments, unique_name)
        return relative_from_note(target_dir, target_relative)

    def _notify(self, reason: str) -> None:
        if self._on_changed is not None:
            self._on_changed(reason)
