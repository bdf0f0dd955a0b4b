"""
Transcript extraction for uploaded SOW templates.

Turns a .docx, .pdf or .txt upload into the plain-text transcript the
placeholder extractor and section segmenter work on. Paragraph order is kept
and table rows are appended as `` | ``-joined cells.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import fitz  # PyMuPDF
from docx import Document as DocxDocument

from sow_engine.config import settings
from sow_engine.services.placeholder_extractor import detect_template_type
from sow_engine.services.zip_writer import ensure_zip_container

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class ParsedTemplate:
    """
    Output of the TranscriptParser.

    Attributes:
        transcript:      Plain text, one paragraph per line.
        paragraph_count: Number of non-table paragraphs (or PDF text lines).
        metadata:        Dict with keys: file_type, title, author,
                         page_count, table_count, template_type.
    """

    transcript: str
    paragraph_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class TranscriptParser:
    """Extracts transcripts from template uploads held in memory."""

    def __init__(self, max_size: Optional[int] = None) -> None:
        self.max_size = max_size or settings.MAX_TEMPLATE_SIZE

    def parse(self, data: bytes, file_type: str, filename: Optional[str] = None) -> ParsedTemplate:
        """
        Extract the transcript of an uploaded template.

        Args:
            data:      File contents.
            file_type: Extension with or without dot, e.g. ".docx" or "pdf".
            filename:  Original name, used in error messages only.

        Returns:
            ParsedTemplate with transcript text and metadata.

        Raises:
            ValueError:              Unsupported file type or oversized file.
            MalformedContainerError: .docx bytes that are not a ZIP package.
            RuntimeError:            Password-protected or unreadable file.
        """
        ft = file_type.lower().lstrip(".")
        if f".{ft}" not in settings.SUPPORTED_TEMPLATE_TYPES:
            raise ValueError(f"Unsupported file type: {file_type!r}")
        if len(data) > self.max_size:
            raise ValueError(
                f"Template is {len(data)} bytes; the limit is {self.max_size} bytes"
            )

        if ft == "docx":
            parsed = self._parse_docx(data, filename)
        elif ft == "pdf":
            parsed = self._parse_pdf(data)
        else:
            parsed = self._parse_txt(data)

        parsed.metadata["template_type"] = detect_template_type(parsed.transcript).value
        logger.info(
            "Parsed %s template: %d paragraphs, %d characters",
            ft, parsed.paragraph_count, len(parsed.transcript),
        )
        return parsed

    # ------------------------------------------------------------------
    # DOCX
    # ------------------------------------------------------------------

    def _parse_docx(self, data: bytes, filename: Optional[str]) -> ParsedTemplate:
        ensure_zip_container(data, filename)
        try:
            doc = DocxDocument(io.BytesIO(data))
        except Exception as exc:
            raise RuntimeError(f"Cannot open DOCX file: {exc}") from exc

        lines: List[str] = [para.text for para in doc.paragraphs]
        paragraph_count = len(lines)

        for table in doc.tables:
            for row in table.rows:
                cells = _unique_row_cells(row)
                non_empty = [c for c in cells if c]
                if non_empty:
                    lines.append(" | ".join(non_empty))

        core = doc.core_properties
        return ParsedTemplate(
            transcript="\n".join(lines),
            paragraph_count=paragraph_count,
            metadata={
                "file_type": "docx",
                "title": core.title or "",
                "author": core.author or "",
                "page_count": None,   # python-docx cannot report rendered page count
                "table_count": len(doc.tables),
            },
        )

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    def _parse_pdf(self, data: bytes) -> ParsedTemplate:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise RuntimeError(f"Cannot open PDF file: {exc}") from exc

        try:
            if doc.needs_pass:
                raise RuntimeError(
                    "PDF is password-protected. Please provide an unlocked copy."
                )
            pages = [page.get_text("text") for page in doc]
            raw_meta = doc.metadata or {}
            page_count = doc.page_count
        finally:
            doc.close()

        lines = [ln.rstrip() for text in pages for ln in text.splitlines()]
        return ParsedTemplate(
            transcript="\n".join(lines),
            paragraph_count=sum(1 for ln in lines if ln.strip()),
            metadata={
                "file_type": "pdf",
                "title": raw_meta.get("title", "") or "",
                "author": raw_meta.get("author", "") or "",
                "page_count": page_count,
                "table_count": 0,
            },
        )

    # ------------------------------------------------------------------
    # Plain text
    # ------------------------------------------------------------------

    def _parse_txt(self, data: bytes) -> ParsedTemplate:
        text = data.decode("utf-8-sig", errors="replace")
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        return ParsedTemplate(
            transcript=text,
            paragraph_count=sum(1 for ln in text.split("\n") if ln.strip()),
            metadata={"file_type": "txt", "title": "", "author": "", "page_count": None, "table_count": 0},
        )


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def _unique_row_cells(row) -> List[str]:
    """Cell texts of a table row, skipping horizontally merged repeats."""
    seen = set()
    cells: List[str] = []
    for cell in row.cells:
        if cell._tc in seen:
            continue
        seen.add(cell._tc)
        cells.append(cell.text.strip())
    return cells


def parse_template(data: bytes, file_type: str, filename: Optional[str] = None) -> ParsedTemplate:
    """Module-level shortcut for TranscriptParser().parse(...)."""
    return TranscriptParser().parse(data, file_type, filename)
