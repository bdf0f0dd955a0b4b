"""Tests for the export orchestrator."""
import io
from datetime import date

import fitz  # PyMuPDF
import pytest
from docx import Document

from sow_engine.models.value_store import ValueStore
from sow_engine.services.exporter import DOCX_MEDIA_TYPE, PDF_MEDIA_TYPE, SowExporter, make_filename
from sow_engine.services.schema_builder import build_schema_from_transcript
from sow_engine.services.value_mapper import UnfilledPolicy

DAY = date(2025, 3, 5)


@pytest.fixture
def exporter():
    return SowExporter(policy=UnfilledPolicy.keep_original_token(), on=DAY)


@pytest.fixture
def schema(transcript):
    return build_schema_from_transcript(transcript, "sample", strict=False)


def _paragraphs(content):
    return [p.text for p in Document(io.BytesIO(content)).paragraphs]


# ---------------------------------------------------------------------------
# Filenames
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("client,title,ext,expected", [
    ("Acme Corp", "Cloud Migration", "docx", "SOW_Acme_Corp_Cloud_Migration_20250305.docx"),
    (None, None, "pdf", "SOW_Client_Statement_of_Work_20250305.pdf"),
    ("  ", "", ".docx", "SOW_Client_Statement_of_Work_20250305.docx"),
    ("Acme, Inc.", "Phase 1/2", "docx", "SOW_Acme_Inc__Phase_1_2_20250305.docx"),
])
def test_make_filename(client, title, ext, expected):
    assert make_filename(client, title, ext, DAY) == expected


def test_filename_uses_resolved_client(exporter, store):
    assert exporter.filename_for(store, "docx") == "SOW_Acme_Corp_Statement_of_Work_20250305.docx"


def test_filename_title_from_values(exporter):
    store = ValueStore.from_mapping({"client_name": "Acme Corp", "project_title": "Cloud Migration"})
    assert exporter.filename_for(store, "pdf") == "SOW_Acme_Corp_Cloud_Migration_20250305.pdf"


def test_explicit_title_wins(store):
    exporter = SowExporter(title="Data Platform", on=DAY)
    assert exporter.filename_for(store, "docx") == "SOW_Acme_Corp_Data_Platform_20250305.docx"


# ---------------------------------------------------------------------------
# Transcript paths
# ---------------------------------------------------------------------------

def test_transcript_docx(exporter, transcript, store):
    doc = exporter.export_transcript_docx(transcript, store)
    assert doc.media_type == DOCX_MEDIA_TYPE
    assert doc.filename.endswith(".docx")
    texts = _paragraphs(doc.content)
    assert texts[0] == "Statement of Work"
    assert "This Statement of Work is entered into by Acme Corp and Northwind Consulting." in texts
    assert "Start Date: 2025-03-05" in texts
    assert "Client: Sam Ortiz" in texts


def test_transcript_docx_with_logo(exporter, transcript, image_store):
    doc = exporter.export_transcript_docx(transcript, image_store)
    assert len(Document(io.BytesIO(doc.content)).inline_shapes) == 1


def test_transcript_blank_fill():
    exporter = SowExporter(policy=UnfilledPolicy.blank_fill("__"), on=DAY)
    assert exporter.merge_transcript("Client: [Client Name]", ValueStore()) == "Client: __"


def test_transcript_pdf(exporter, transcript, store):
    doc = exporter.export_transcript_pdf(transcript, store)
    assert doc.media_type == PDF_MEDIA_TYPE
    assert doc.content.startswith(b"%PDF-1.4")
    with fitz.open(stream=doc.content, filetype="pdf") as pdf:
        text = pdf[0].get_text("text")
    assert "Acme Corp" in text


def test_template_docx(exporter, docx_template, store):
    doc = exporter.export_template_docx(docx_template, store, filename="template.docx")
    assert doc.filename == "SOW_Acme_Corp_Statement_of_Work_20250305.docx"
    assert "Start Date: 2025-03-05" in _paragraphs(doc.content)


# ---------------------------------------------------------------------------
# Structured paths
# ---------------------------------------------------------------------------

def test_structured_docx_layout(exporter, schema, store):
    texts = _paragraphs(exporter.export_structured_docx(schema, store).content)
    assert texts[0] == "Statement of Work"
    assert "    Start Date: 05 Mar 2025" in texts
    assert texts[-2:] == ["Authorized Signature:", "Not signed"]


def test_structured_docx_with_images(schema, image_store):
    exporter = SowExporter(title="Cloud Migration", on=DAY)
    doc = exporter.export_structured_docx(schema, image_store)
    document = Document(io.BytesIO(doc.content))
    assert len(document.inline_shapes) == 2
    assert document.paragraphs[1].text == "Cloud Migration"
    assert doc.filename == "SOW_Acme_Corp_Cloud_Migration_20250305.docx"


def test_structured_pdf(exporter, schema, store, image_store):
    unsigned = exporter.export_structured_pdf(schema, store)
    assert b"(Not signed) Tj" in unsigned.content
    signed = exporter.export_structured_pdf(schema, image_store)
    assert b"(Signature on file) Tj" in signed.content
    assert signed.filename.endswith(".pdf")
