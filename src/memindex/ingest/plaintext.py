"""Plain-text chunker — size-bounded line groups for ``.txt`` session logs."""

from __future__ import annotations

from memindex.db.models import Chunk
from memindex.ingest.base import BaseChunker


class PlainTextChunker(BaseChunker):
    """Split text into line groups of at most ``max_chars`` characters.

    Line numbers are preserved; no headings or breadcrumbs apply.
    """

    def chunk(self, content: str, path: str = "") -> list[Chunk]:
        if not content.strip():
            return []
        return self._make_chunks(path, self._pieces(self._lines(content)))
