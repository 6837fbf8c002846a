"""Base chunker interface: line-preserving size splits and chunk assembly."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from memindex.db.models import Chunk
from memindex.ingest.hashing import hash_text

DEFAULT_MAX_CHARS = 1600
MIN_CHARS = 32

# (1-indexed line number, line text)
Line = tuple[int, str]


@dataclass
class Piece:
    """A contiguous run of lines destined to become one chunk."""

    start_line: int
    end_line: int
    text: str
    breadcrumb: str = ""


class BaseChunker(ABC):
    """Abstract base for the markdown and plain-text chunkers.

    Subclasses implement ``chunk()`` and use ``_split_by_size()`` and
    ``_make_chunks()``. ``max_chars`` is floored at ``MIN_CHARS`` so a split
    always makes forward progress.
    """

    def __init__(self, max_chars: int = DEFAULT_MAX_CHARS) -> None:
        self.max_chars = max(MIN_CHARS, int(max_chars))

    @abstractmethod
    def chunk(self, content: str, path: str = "") -> list[Chunk]:
        """Split *content* into Chunk objects owned by *path*.

        Args:
            content: Full decoded text of the document.
            path: Relative, forward-slash path of the owning file; used to
                derive chunk ids.

        Returns:
            Chunks in document order. Embeddings are not set.
        """

    @staticmethod
    def _lines(content: str, first_line: int = 1) -> list[Line]:
        text = content.replace("\r\n", "\n")
        return [(first_line + i, line) for i, line in enumerate(text.split("\n"))]

    @staticmethod
    def _trim_blank(lines: list[Line]) -> list[Line]:
        """Drop leading and trailing whitespace-only lines."""
        start, end = 0, len(lines)
        while start < end and not lines[start][1].strip():
            start += 1
        while end > start and not lines[end - 1][1].strip():
            end -= 1
        return lines[start:end]

    def _split_by_size(
        self, lines: list[Line], limit: int | None = None
    ) -> list[list[Line]]:
        """Accumulate lines until the next one would push the group past *limit*.

        *limit* defaults to ``max_chars``. Lines longer than it are cut into
        segments that keep the original line number.
        """
        limit = limit or self.max_chars
        groups: list[list[Line]] = []
        current: list[Line] = []
        size = 0
        for lineno, line in lines:
            segments = [
                line[i : i + limit] for i in range(0, len(line), limit)
            ] or [""]
            for segment in segments:
                seg_size = len(segment) + 1  # +1 for the joining newline
                if current and size + seg_size > limit:
                    groups.append(current)
                    current, size = [], 0
                current.append((lineno, segment))
                size += seg_size
        if current:
            groups.append(current)
        return groups

    def _pieces(
        self, lines: list[Line], breadcrumb: str = "", prefix_chars: int = 0
    ) -> list[Piece]:
        """Trim *lines*, split them if oversized, and return non-blank pieces.

        *prefix_chars* is reserved for text prepended later (the breadcrumb
        line) so finished chunks stay within ``max_chars``.
        """
        limit = max(MIN_CHARS, self.max_chars - prefix_chars)
        lines = self._trim_blank(lines)
        if not lines:
            return []
        raw = "\n".join(text for _, text in lines)
        groups = [lines] if len(raw) <= limit else self._split_by_size(lines, limit)

        pieces: list[Piece] = []
        for group in groups:
            group = self._trim_blank(group)
            if not group:
                continue
            pieces.append(
                Piece(
                    start_line=group[0][0],
                    end_line=group[-1][0],
                    text="\n".join(text for _, text in group),
                    breadcrumb=breadcrumb,
                )
            )
        return pieces

    def _make_chunks(
        self, path: str, pieces: list[Piece], include_breadcrumbs: bool = False
    ) -> list[Chunk]:
        """Convert pieces into Chunks with deterministic ids and content hashes."""
        chunks: list[Chunk] = []
        seen: dict[str, int] = {}
        for piece in pieces:
            if not piece.text.strip():
                continue
            text = piece.text
            if include_breadcrumbs and piece.breadcrumb:
                text = f"[{piece.breadcrumb}]\n{text}"
            chunks.append(
                Chunk(
                    id=self._unique_id(chunk_id(path, piece.start_line, piece.end_line), seen),
                    path=path,
                    start_line=piece.start_line,
                    end_line=piece.end_line,
                    text=text,
                    hash=hash_text(text),
                    breadcrumb=piece.breadcrumb,
                )
            )
        return chunks

    @staticmethod
    def _unique_id(base: str, seen: dict[str, int]) -> str:
        # Segments of one long line share a line range; number the repeats.
        count = seen.get(base, 0) + 1
        seen[base] = count
        return base if count == 1 else f"{base}#{count}"


def chunk_id(path: str, start_line: int, end_line: int) -> str:
    return f"{path}:{start_line}-{end_line}"
