"""Metadata derivation from Markdown note bodies.

Title, snippet, tags and outbound wikilinks are always derivable from the
body alone; the index only caches them. Both hydration and saving go
through ``MarkdownParser.merge`` so the two never disagree on the rules.
"""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

import frontmatter

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled"

TITLE_PATTERN = re.compile(r"^#[ \t]+(.*\S)[ \t]*$", re.MULTILINE)
TAG_PATTERN = re.compile(r"(?:^|\s)#([a-zA-Z0-9/_-]+)")
WIKILINK_PATTERN = re.compile(r"\[\[([^\]]+)\]\]")
# Fallback when the front matter block is not valid YAML
FRONTMATTER_PATTERN = re.compile(r"\A---\n.*?\n---[ \t]*(?:\n|\Z)", re.DOTALL)
SNIPPET_STRIP_PATTERN = re.compile(r"[#>*`\-\[\]]")
WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass(frozen=True)
class NoteMetadata:
    """Derived (or merged) metadata for one note body."""

    title: str
    snippet: str
    tags: List[str]
    links_out: List[str]


def _dedupe(values) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


class MarkdownParser:
    """Derives note metadata from Markdown."""

    def __init__(self, snippet_length: int = 160):
        self.snippet_length = snippet_length

    @staticmethod
    def normalize(markdown: str) -> str:
        """Normalize line endings."""
        return markdown.replace("\r\n", "\n")

    def strip_frontmatter(self, markdown: str) -> str:
        """Return the body without a leading YAML front matter block."""
        if not markdown.startswith("---"):
            return markdown
        try:
            return frontmatter.loads(markdown).content
        except Exception as e:
            logger.debug(f"Front matter is not valid YAML, stripping by pattern: {e}")
            return FRONTMATTER_PATTERN.sub("", markdown, count=1)

    def extract_title(self, markdown: str) -> str:
        """First ``# `` heading of the body, or ``Untitled``."""
        body = self.strip_frontmatter(self.normalize(markdown))
        match = TITLE_PATTERN.search(body)
        if match and match.group(1).strip():
            return match.group(1).strip()
        return DEFAULT_TITLE

    def extract_snippet(self, markdown: str) -> str:
        """Plain-text preview: body minus front matter, first heading, and
        Markdown punctuation, whitespace collapsed, cut to snippet_length."""
        body = self.strip_frontmatter(self.normalize(markdown))
        body = TITLE_PATTERN.sub("", body, count=1)
        body = SNIPPET_STRIP_PATTERN.sub("", body)
        body = WHITESPACE_PATTERN.sub(" ", body).strip()
        return body[: self.snippet_length]

    @staticmethod
    def extract_tags(markdown: str) -> List[str]:
        """All ``#tag`` tokens, lowercased, first-seen order."""
        return _dedupe(m.group(1).lower() for m in TAG_PATTERN.finditer(markdown))

    @staticmethod
    def extract_wikilinks(markdown: str) -> List[str]:
        """All ``[[Target]]`` tokens, trimmed, first-seen order."""
        return _dedupe(m.group(1).strip() for m in WIKILINK_PATTERN.finditer(markdown))

    def derive(self, markdown: str) -> NoteMetadata:
        """Derive every field from the body."""
        return NoteMetadata(
            title=self.extract_title(markdown),
            snippet=self.extract_snippet(markdown),
            tags=self.extract_tags(markdown),
            links_out=self.extract_wikilinks(markdown),
        )

    def merge(
        self,
        markdown: str,
        title: Optional[str] = None,
        snippet: Optional[str] = None,
        tags: Optional[List[str]] = None,
        links_out: Optional[List[str]] = None,
    ) -> NoteMetadata:
        """Prefer explicitly supplied, non-empty values; derive the rest.

        Tags are lowercased either way.

        Derivation is lazy so a fully populated index entry costs nothing.
        """
        return NoteMetadata(
            title=(
                title.strip()
                if title and title.strip()
                else self.extract_title(markdown)
            ),
            snippet=snippet if snippet else self.extract_snippet(markdown),
            tags=(
                _dedupe(tag.strip().lower() for tag in tags)
                if tags
                else self.extract_tags(markdown)
            ),
            links_out=_dedupe(links_out) if links_out else self.extract_wikilinks(markdown),
        )
