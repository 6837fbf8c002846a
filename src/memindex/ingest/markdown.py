"""Markdown chunker — heading-bounded sections with breadcrumb context.

Strategy:
- Strip a leading YAML frontmatter block (``---`` ... ``---``) when it is closed.
- Every ATX heading (``#`` to ``######`` followed by whitespace and text) closes
  the previous section and opens a new one. Lines inside fenced code blocks are
  never headings.
- A stack of enclosing headings gives each section its breadcrumb trail
  ("Parent > Child"), independent of skipped heading levels.
- Content before the first heading is a level-0 section without breadcrumbs.
- Sections longer than ``max_chars`` are split by lines; every sub-chunk keeps
  the section's breadcrumb.
- With ``include_breadcrumbs`` the chunk text is ``[A > B]\\n<section text>``, so
  the breadcrumb takes part in the hash, the embedding and the keyword index.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

import yaml

from memindex.db.models import Chunk
from memindex.exceptions import MalformedInputError
from memindex.ingest.base import DEFAULT_MAX_CHARS, BaseChunker, Line, Piece

logger = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$")
_FENCE_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")
_DELIMITER = "---"


@dataclass
class Frontmatter:
    """Result of splitting a document into frontmatter and body."""

    meta: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    body_start_line: int = 1  # 1-indexed line of the body's first line


def split_frontmatter(content: str) -> Frontmatter:
    """Separate a leading ``---`` delimited YAML block from the body.

    No closing delimiter means there is no frontmatter: the whole document is
    body text. Flow sequences (``tags: [a, b, c]``) parse to lists.

    Raises:
        MalformedInputError: If a closed block is not a YAML mapping.
    """
    text = content.replace("\r\n", "\n")
    lines = text.split("\n")
    if not lines or lines[0].rstrip() != _DELIMITER:
        return Frontmatter(body=text)

    for i in range(1, len(lines)):
        if lines[i].rstrip() == _DELIMITER:
            block = "\n".join(lines[1:i])
            try:
                meta = yaml.safe_load(block) if block.strip() else {}
            except yaml.YAMLError as exc:
                raise MalformedInputError(f"Invalid frontmatter: {exc}") from exc
            if meta is None:
                meta = {}
            if not isinstance(meta, dict):
                raise MalformedInputError(
                    f"Frontmatter must be a mapping, got {type(meta).__name__}"
                )
            return Frontmatter(
                meta=meta, body="\n".join(lines[i + 1 :]), body_start_line=i + 2
            )

    return Frontmatter(body=text)


@dataclass
class _Section:
    level: int
    title: str | None
    breadcrumb: str
    lines: list[Line] = field(default_factory=list)


class MarkdownChunker(BaseChunker):
    """Split Markdown on heading boundaries, carrying the heading trail along."""

    def __init__(
        self, max_chars: int = DEFAULT_MAX_CHARS, include_breadcrumbs: bool = True
    ) -> None:
        super().__init__(max_chars)
        self.include_breadcrumbs = include_breadcrumbs

    def chunk(self, content: str, path: str = "") -> list[Chunk]:
        if not content.strip():
            return []

        try:
            fm = split_frontmatter(content)
        except MalformedInputError as exc:
            logger.debug("%s: %s; indexing without frontmatter", path or "<document>", exc)
            fm = Frontmatter(body=content.replace("\r\n", "\n"))

        pieces: list[Piece] = []
        for section in self._split_sections(self._lines(fm.body, fm.body_start_line)):
            prefix = 0
            if self.include_breadcrumbs and section.breadcrumb:
                prefix = len(section.breadcrumb) + 3  # "[" + breadcrumb + "]\n"
            pieces.extend(self._pieces(section.lines, section.breadcrumb, prefix))
        return self._make_chunks(path, pieces, include_breadcrumbs=self.include_breadcrumbs)

    def _split_sections(self, lines: list[Line]) -> list[_Section]:
        """Walk *lines* and cut a new section at every heading outside code fences."""
        stack: list[tuple[int, str]] = []
        current = _Section(level=0, title=None, breadcrumb="")
        sections = [current]
        fence: str | None = None

        for lineno, line in lines:
            fence_match = _FENCE_RE.match(line)
            if fence_match:
                marker = fence_match.group(1)
                if fence is None:
                    fence = marker[0] * 3
                elif marker.startswith(fence):
                    fence = None
                current.lines.append((lineno, line))
                continue

            heading = _HEADING_RE.match(line) if fence is None else None
            if heading is None:
                current.lines.append((lineno, line))
                continue

            level = len(heading.group(1))
            title = heading.group(2).strip()
            while stack and stack[-1][0] >= level:
                stack.pop()
            stack.append((level, title))
            current = _Section(
                level=level,
                title=title,
                breadcrumb=" > ".join(t for _, t in stack),
                lines=[(lineno, line)],
            )
            sections.append(current)

        return sections
