"""
Single-page plain-text PDF writer.

Six indirect objects in fixed order (font, content stream, resources, page,
pages, catalog), an xref table whose offsets are recorded while the objects
are written, and a trailer. Text is set in Helvetica from the top-left
margin, one ``T*`` per line; lines past the bottom margin are clipped by the
page, there is no pagination.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional

from sow_engine.config import settings
from sow_engine.exceptions import SerializationInvariantError

logger = logging.getLogger(__name__)

PAGE_WIDTH = 612
PAGE_HEIGHT = 792
OBJECT_COUNT = 6

FONT_OBJ, CONTENT_OBJ, RESOURCES_OBJ, PAGE_OBJ, PAGES_OBJ, CATALOG_OBJ = range(1, 7)

_OBJ_RE = re.compile(rb"(?m)^(\d+) 0 obj\b")
# "N 0 obj" inside page text would shadow the real object header
_OBJ_MARKER_RE = re.compile(r"(?<=\d 0 )obj")


def escape_pdf_text(text: str) -> str:
    """Escape a string for a PDF literal: backslash, parentheses, CR; tabs become spaces.

    The ``o`` of an ``N 0 obj`` sequence is written as the octal escape
    ``\\157`` so page text never contains an object header.
    """
    escaped = (
        str(text or "")
        .replace("\\", "\\\\")
        .replace("(", "\\(")
        .replace(")", "\\)")
        .replace("\r", "\\r")
        .replace("\t", "    ")
    )
    return _OBJ_MARKER_RE.sub(r"\\157bj", escaped)


def _content_stream(lines: Iterable[str], font_size: int, leading: int, left: int, top: int) -> bytes:
    ops = [
        "BT",
        f"/F1 {font_size} Tf",
        f"{leading} TL",
        f"{left} {PAGE_HEIGHT - top} Td",
    ]
    for i, line in enumerate(lines):
        literal = f"({escape_pdf_text(line)}) Tj"
        ops.append(literal if i == 0 else f"T* {literal}")
    ops.append("ET")
    # Helvetica uses WinAnsi; anything outside Latin-1 prints as '?'
    return "\n".join(ops).encode("latin-1", errors="replace")


def build_single_page_pdf(
    lines: Iterable[str],
    font_size: Optional[int] = None,
    leading: Optional[int] = None,
    margin_left: Optional[int] = None,
    margin_top: Optional[int] = None,
) -> bytes:
    """
    Render text lines onto one US Letter page.

    Args:
        lines: Text lines; embedded newlines split into further lines.
        font_size, leading, margin_left, margin_top: Layout overrides in
            points; default to the configured PDF_* settings.

    Returns:
        PDF bytes.

    Raises:
        SerializationInvariantError: if an xref offset does not land on its object.
    """
    split_lines: List[str] = []
    for line in lines:
        split_lines.extend(str(line).replace("\r\n", "\n").split("\n"))

    stream = _content_stream(
        split_lines,
        font_size or settings.PDF_FONT_SIZE,
        leading or settings.PDF_LEADING,
        settings.PDF_MARGIN_LEFT if margin_left is None else margin_left,
        settings.PDF_MARGIN_TOP if margin_top is None else margin_top,
    )

    bodies = {
        FONT_OBJ: b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
        CONTENT_OBJ: b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        RESOURCES_OBJ: b"<< /Font << /F1 %d 0 R >> >>" % FONT_OBJ,
        PAGE_OBJ: (
            b"<< /Type /Page /Parent %d 0 R /Resources %d 0 R /Contents %d 0 R /MediaBox [0 0 %d %d] >>"
            % (PAGES_OBJ, RESOURCES_OBJ, CONTENT_OBJ, PAGE_WIDTH, PAGE_HEIGHT)
        ),
        PAGES_OBJ: b"<< /Type /Pages /Kids [%d 0 R] /Count 1 >>" % PAGE_OBJ,
        CATALOG_OBJ: b"<< /Type /Catalog /Pages %d 0 R >>" % PAGES_OBJ,
    }

    out = bytearray(b"%PDF-1.4\n")
    offsets: Dict[int, int] = {}
    for num in range(1, OBJECT_COUNT + 1):
        offsets[num] = len(out)
        out += b"%d 0 obj\n" % num + bodies[num] + b"\nendobj\n"

    xref_at = len(out)
    out += b"xref\n0 %d\n" % (OBJECT_COUNT + 1)
    out += b"0000000000 65535 f \n"
    for num in range(1, OBJECT_COUNT + 1):
        out += b"%010d 00000 n \n" % offsets[num]
    out += b"trailer\n<< /Size %d /Root %d 0 R >>\n" % (OBJECT_COUNT + 1, CATALOG_OBJ)
    out += b"startxref\n%d\n%%%%EOF\n" % xref_at

    pdf = bytes(out)
    for num, offset in offsets.items():
        if not pdf.startswith(b"%d 0 obj" % num, offset):
            raise SerializationInvariantError(f"PDF xref offset for object {num} is wrong ({offset})")
    logger.debug("Built single-page PDF: %d lines, %d bytes", len(split_lines), len(pdf))
    return pdf


def find_object_offsets(pdf: bytes) -> Dict[int, int]:
    """Byte position of every ``N 0 obj`` token that starts a line."""
    return {int(m.group(1)): m.start() for m in _OBJ_RE.finditer(pdf)}


def read_xref_offsets(pdf: bytes) -> Dict[int, int]:
    """Object number -> offset as declared in the xref table (in-use entries only)."""
    xref_at = int(pdf.rsplit(b"startxref", 1)[1].split()[0])
    lines = pdf[xref_at:].split(b"\n")
    first, count = (int(x) for x in lines[1].split())
    table = {}
    for i in range(count):
        offset, _gen, flag = lines[2 + i].split()
        if flag == b"n":
            table[first + i] = int(offset)
    return table
