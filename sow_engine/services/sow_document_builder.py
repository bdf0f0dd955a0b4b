"""
Canonical SOW document layout.

Every export built from captured values (rather than from the uploaded
template's own layout) uses the same block order:

    logo image (when supplied)
    title
    one line group per schema field
    "Authorized Signature:" and the signature image, or "Not signed"
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sow_engine.config import settings
from sow_engine.models.schemas import TemplateSchema
from sow_engine.models.value_store import ValueStore
from sow_engine.services.ooxml_generator import ImageParagraph, Paragraph, TextParagraph
from sow_engine.services.value_mapper import render_field_lines

logger = logging.getLogger(__name__)

SIGNATURE_HEADING = "Authorized Signature:"
NOT_SIGNED = "Not signed"
SIGNED_ON_FILE = "Signature on file"

TITLE_SIZE_HALF_POINTS = 32


class SowDocumentBuilder:
    """Lays out a SOW from a schema and captured values."""

    def __init__(self, title: Optional[str] = None, blank: Optional[str] = None) -> None:
        self.title = title or settings.DEFAULT_DOCUMENT_TITLE
        self.blank = blank

    def field_lines(self, schema: TemplateSchema, store: ValueStore) -> List[str]:
        return render_field_lines(schema, store, self.blank)

    def docx_paragraphs(self, schema: TemplateSchema, store: ValueStore) -> List[Paragraph]:
        """Paragraph list for build_ooxml_package; image slots come from the store."""
        paragraphs: List[Paragraph] = []
        if store.image("logo") is not None:
            paragraphs.append(ImageParagraph("logo"))
        paragraphs.append(TextParagraph(self.title, bold=True, size_half_points=TITLE_SIZE_HALF_POINTS))
        paragraphs.append("")
        paragraphs.extend(self.field_lines(schema, store))
        paragraphs.append("")
        paragraphs.append(TextParagraph(SIGNATURE_HEADING, bold=True))
        if store.image("signature") is not None:
            paragraphs.append(ImageParagraph("signature"))
        else:
            paragraphs.append(NOT_SIGNED)
        return paragraphs

    def pdf_lines(self, schema: TemplateSchema, store: ValueStore) -> List[str]:
        """The same layout as text lines; the PDF writer carries no images."""
        lines = [self.title, ""]
        lines.extend(self.field_lines(schema, store))
        lines.extend(["", SIGNATURE_HEADING])
        lines.append(SIGNED_ON_FILE if store.image("signature") is not None else NOT_SIGNED)
        return lines

    @staticmethod
    def transcript_paragraphs(merged_text: str, store: ValueStore) -> List[Paragraph]:
        """A merged transcript line by line, logo first when supplied."""
        paragraphs: List[Paragraph] = []
        if store.image("logo") is not None:
            paragraphs.append(ImageParagraph("logo"))
        paragraphs.extend(merged_text.replace("\r\n", "\n").split("\n"))
        return paragraphs
