"""
Export orchestrator for SOW documents.

Public API
----------
SowExporter.export_transcript_docx(transcript, store)
    Exact substitution over a transcript, one paragraph per line.
SowExporter.export_template_docx(docx_bytes, store)
    Exact substitution inside the uploaded Word template, formatting kept.
SowExporter.export_structured_docx(schema, store)
    Canonical layout built from captured values.
SowExporter.export_transcript_pdf(transcript, store)
SowExporter.export_structured_pdf(schema, store)
    Single-page PDF counterparts.

Every export returns a GeneratedDocument named
``SOW_<client>_<title>_<YYYYMMDD>.<ext>``.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sow_engine.models.schemas import GeneratedDocument, TemplateSchema
from sow_engine.models.value_store import ValueStore
from sow_engine.services.docx_template_merge import merge_docx_template
from sow_engine.services.ooxml_generator import build_docx
from sow_engine.services.pdf_generator import build_single_page_pdf
from sow_engine.services.sow_document_builder import SowDocumentBuilder
from sow_engine.services.value_mapper import (
    UnfilledPolicy,
    build_resolver,
    interpolate_transcript,
    stringify_value,
)
from sow_engine.utils.helpers import filename_component

logger = logging.getLogger(__name__)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PDF_MEDIA_TYPE = "application/pdf"

# Value keys consulted for the filename when the caller passes none
_TITLE_KEYS = ("title", "project_title", "project_name", "project")


def make_filename(client: Optional[str], title: Optional[str], ext: str, on: Optional[date] = None) -> str:
    """``SOW_<client>_<title>_<YYYYMMDD>.<ext>`` with non-word runs collapsed to ``_``."""
    stamp = (on or date.today()).strftime("%Y%m%d")
    return (
        f"SOW_{filename_component(client, 'Client')}"
        f"_{filename_component(title, 'Statement_of_Work')}"
        f"_{stamp}.{ext.lstrip('.')}"
    )


class SowExporter:
    """Runs a merge path and wraps the bytes for the delivery layer."""

    def __init__(
        self,
        policy: Optional[UnfilledPolicy] = None,
        title: Optional[str] = None,
        on: Optional[date] = None,
    ) -> None:
        self.policy = policy or UnfilledPolicy.from_settings()
        self.title = title
        self.builder = SowDocumentBuilder(title=title)
        self.on = on

    # ------------------------------------------------------------------
    # Transcript / template paths (exact substitution)
    # ------------------------------------------------------------------

    def merge_transcript(self, transcript: str, store: ValueStore) -> str:
        return interpolate_transcript(transcript, build_resolver(store), self.policy)

    def export_transcript_docx(self, transcript: str, store: ValueStore) -> GeneratedDocument:
        merged = self.merge_transcript(transcript, store)
        content = build_docx(self.builder.transcript_paragraphs(merged, store), store.images)
        return self._wrap(content, "docx", DOCX_MEDIA_TYPE, store)

    def export_template_docx(
        self, docx_bytes: bytes, store: ValueStore, filename: Optional[str] = None
    ) -> GeneratedDocument:
        content = merge_docx_template(
            docx_bytes, build_resolver(store), self.policy, store.images, filename=filename
        )
        return self._wrap(content, "docx", DOCX_MEDIA_TYPE, store)

    def export_transcript_pdf(self, transcript: str, store: ValueStore) -> GeneratedDocument:
        merged = self.merge_transcript(transcript, store)
        content = build_single_page_pdf(merged.split("\n"))
        return self._wrap(content, "pdf", PDF_MEDIA_TYPE, store)

    # ------------------------------------------------------------------
    # Structured paths (canonical layout)
    # ------------------------------------------------------------------

    def export_structured_docx(self, schema: TemplateSchema, store: ValueStore) -> GeneratedDocument:
        content = build_docx(self.builder.docx_paragraphs(schema, store), store.images)
        return self._wrap(content, "docx", DOCX_MEDIA_TYPE, store)

    def export_structured_pdf(self, schema: TemplateSchema, store: ValueStore) -> GeneratedDocument:
        content = build_single_page_pdf(self.builder.pdf_lines(schema, store))
        return self._wrap(content, "pdf", PDF_MEDIA_TYPE, store)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def filename_for(self, store: ValueStore, ext: str) -> str:
        client = build_resolver(store)("Client Name", "client_name")
        title = self.title or next(
            (stringify_value(store.get((k,))) for k in _TITLE_KEYS if stringify_value(store.get((k,)))),
            None,
        )
        return make_filename(client, title, ext, self.on)

    def _wrap(self, content: bytes, ext: str, media_type: str, store: ValueStore) -> GeneratedDocument:
        doc = GeneratedDocument(content=content, filename=self.filename_for(store, ext), media_type=media_type)
        logger.info("Exported %s (%d bytes)", doc.filename, doc.size)
        return doc
