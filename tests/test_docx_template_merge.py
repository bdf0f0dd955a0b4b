"""Tests for in-place placeholder substitution in .docx templates."""
import io

import pytest
from docx import Document

from sow_engine.exceptions import MalformedContainerError
from sow_engine.services.docx_template_merge import iter_document_paragraphs, merge_docx_template
from sow_engine.services.value_mapper import UnfilledPolicy, build_resolver


def _merge(docx_bytes, store, policy=None):
    merged = merge_docx_template(
        docx_bytes, build_resolver(store), policy or UnfilledPolicy.keep_original_token(), store.images
    )
    return Document(io.BytesIO(merged))


def _texts(doc):
    return [p.text for p in doc.paragraphs]


def test_token_split_across_runs(docx_template, store):
    doc = _merge(docx_template, store)
    para = doc.paragraphs[1]
    assert para.text == "This agreement is between Acme Corp and Northwind Consulting."
    # The run the token started in keeps its formatting
    assert para.runs[1].text == "Acme Corp"
    assert para.runs[1].bold


def test_untouched_text_is_kept(docx_template, store):
    texts = _texts(_merge(docx_template, store))
    assert texts[0] == "Statement of Work"
    assert "Start Date: 2025-03-05" in texts


def test_keep_token_policy(docx_template, store):
    assert "Reference: [Purchase Order]" in _texts(_merge(docx_template, store))


def test_blank_fill_policy(docx_template, store):
    doc = _merge(docx_template, store, UnfilledPolicy.blank_fill("____"))
    assert "Reference: ____" in _texts(doc)


def test_table_cells_are_merged(docx_template, store):
    table = _merge(docx_template, store).tables[0]
    assert table.cell(0, 1).text == "Sam Ortiz"


def test_signature_token_becomes_picture(docx_template, image_store):
    doc = _merge(docx_template, image_store)
    cell = doc.tables[0].cell(1, 1)
    assert cell.text == ""
    assert len(doc.inline_shapes) == 1
    assert "a:blip" in cell._tc.xml


def test_header_logo_and_text(docx_template, image_store):
    doc = _merge(docx_template, image_store)
    header = doc.sections[0].header
    assert header.paragraphs[0].text.strip() == "Prepared for Acme Corp"
    assert "a:blip" in header._element.xml


def test_image_tokens_kept_without_images(docx_template, store):
    doc = _merge(docx_template, store)
    assert doc.sections[0].header.paragraphs[0].text == "[Logo] Prepared for Acme Corp"
    assert doc.tables[0].cell(1, 1).text == "[Signature]"
    assert len(doc.inline_shapes) == 0


def test_paragraph_traversal_covers_tables_and_headers(docx_template):
    doc = Document(io.BytesIO(docx_template))
    texts = [p.text for p in iter_document_paragraphs(doc)]
    assert "[Client Signature Name]" in texts
    assert "[Logo] Prepared for [Client Name]" in texts
    assert texts.count("[Client Signature Name]") == 1


def test_merged_table_cells_visited_once(store):
    doc = Document()
    table = doc.add_table(rows=1, cols=2)
    merged = table.cell(0, 0).merge(table.cell(0, 1))
    merged.text = "[Client Name]"
    buf = io.BytesIO()
    doc.save(buf)

    reloaded = Document(io.BytesIO(buf.getvalue()))
    texts = [p.text for p in iter_document_paragraphs(reloaded)]
    assert texts.count("[Client Name]") == 1


def test_plain_text_upload_is_rejected(store):
    with pytest.raises(MalformedContainerError) as info:
        merge_docx_template(b"Client: [Client Name]\n", build_resolver(store), filename="sow.docx")
    assert info.value.looks_like_text


def test_zip_that_is_not_word_is_rejected(store):
    with pytest.raises(MalformedContainerError, match="not a readable Word document"):
        merge_docx_template(b"PK\x03\x04garbage", build_resolver(store))
