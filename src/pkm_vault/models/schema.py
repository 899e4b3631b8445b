"""Data models for the vault engine.

JSON produced and consumed by the engine (index file, facade results)
uses camelCase keys; Python code uses the snake_case attribute names.
"""

import datetime
import uuid
from datetime import timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_NOTEBOOK = "Inbox"
DEFAULT_MARKDOWN = "# Untitled\n\n"

_CAMEL_CONFIG = {"alias_generator": to_camel, "populate_by_name": True}


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC."""
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def generate_id() -> str:
    """Opaque, stable note identifier."""
    return str(uuid.uuid4())


def _parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    if isinstance(value, datetime.datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


class IndexEntry(BaseModel):
    """One record of the sidecar index, as read from disk.

    Only ``path`` is required. Every other field is optional, but when it is
    present it must have the right type; otherwise the whole entry is
    rejected at the index boundary.
    """

    id: Optional[str] = None
    path: str
    title: Optional[str] = None
    snippet: Optional[str] = None
    tags: Optional[List[str]] = None
    links_out: Optional[List[str]] = None
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None
    notebook: Optional[str] = None
    is_template: bool = False

    model_config = {**_CAMEL_CONFIG, "extra": "ignore"}

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(
        cls, v: Optional[datetime.datetime]
    ) -> Optional[datetime.datetime]:
        """Treat naive timestamps as UTC."""
        if v is None:
            return None
        return ensure_timezone_aware(v)


class NoteInput(IndexEntry):
    """One item of a save payload.

    Deliberately tolerant: wrongly-typed optional fields count as "not
    supplied" so the writer re-derives them from the Markdown body.
    """

    path: str = ""
    markdown: Optional[str] = None

    @field_validator("path", mode="before")
    @classmethod
    def coerce_path(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("id", "title", "snippet", "notebook", "markdown", mode="before")
    @classmethod
    def drop_non_strings(cls, v: Any) -> Optional[str]:
        return v if isinstance(v, str) else None

    @field_validator("tags", "links_out", mode="before")
    @classmethod
    def filter_string_lists(cls, v: Any) -> Optional[List[str]]:
        if isinstance(v, (list, tuple, set)):
            return [item for item in v if isinstance(item, str)]
        return None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def parse_loose_timestamps(cls, v: Any) -> Optional[datetime.datetime]:
        return _parse_timestamp(v)

    @field_validator("is_template", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> bool:
        return bool(v)


class NoteRecord(BaseModel):
    """A fully hydrated note: index metadata plus the Markdown body."""

    id: str = Field(default_factory=generate_id)
    path: str = Field(..., description="Vault-relative, forward slashes, ends in .md")
    title: str = Field(default="Untitled")
    snippet: str = Field(default="")
    tags: List[str] = Field(default_factory=list)
    links_out: List[str] = Field(default_factory=list)
    created_at: datetime.datetime = Field(default_factory=utc_now)
    updated_at: datetime.datetime = Field(default_factory=utc_now)
    notebook: str = Field(default=DEFAULT_NOTEBOOK)
    is_template: bool = Field(default=False)
    markdown: str = Field(default=DEFAULT_MARKDOWN)

    model_config = _CAMEL_CONFIG

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.lower().endswith(".md"):
            raise ValueError("Note path must end in .md")
        return v

    @field_validator("notebook")
    @classmethod
    def validate_notebook(cls, v: str) -> str:
        return v.strip() or DEFAULT_NOTEBOOK

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    def to_index_entry(self) -> Dict[str, Any]:
        """JSON-ready index projection (everything except the body)."""
        return self.model_dump(mode="json", by_alias=True, exclude={"markdown"})


class AttachmentResult(BaseModel):
    """Where a stored attachment ended up."""

    relative_path: str = Field(..., description="Link target relative to the note")
    stored_path: str = Field(..., description="Vault-relative path of the file")
    size_bytes: int

    model_config = {**_CAMEL_CONFIG, "frozen": True}


class CloneResult(BaseModel):
    """Rewritten Markdown after copying a note's local attachments."""

    markdown: str
    copied_count: int = 0

    model_config = {**_CAMEL_CONFIG, "frozen": True}


class BackupSettings(BaseModel):
    """The only persisted part of the backup state."""

    enabled: bool = True


class BackupState(BaseModel):
    """Snapshot of the backup scheduler, read-only to callers."""

    enabled: bool = True
    available: Optional[bool] = None
    repo_ready: bool = False
    dirty: bool = False
    busy: bool = False
    pending: bool = False
    last_reason: Optional[str] = None
    last_run_at: Optional[datetime.datetime] = None
    last_commit_at: Optional[datetime.datetime] = None
    last_commit_hash: Optional[str] = None
    last_error: Optional[str] = None

    model_config = {**_CAMEL_CONFIG, "frozen": True}

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
