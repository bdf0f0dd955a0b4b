"""Tests for the single-page PDF writer."""
import re

import fitz  # PyMuPDF

from sow_engine.services.pdf_generator import (
    build_single_page_pdf,
    escape_pdf_text,
    find_object_offsets,
    read_xref_offsets,
)


def test_hello_has_six_objects_and_seven_xref_entries():
    pdf = build_single_page_pdf(["Hello"])
    assert len(re.findall(rb"\d+ 0 obj", pdf)) == 6
    assert b"xref\n0 7\n0000000000 65535 f \n" in pdf
    assert b"trailer\n<< /Size 7 /Root 6 0 R >>" in pdf
    assert pdf.startswith(b"%PDF-1.4\n")
    assert pdf.rstrip().endswith(b"%%EOF")


def test_xref_offsets_match_object_positions():
    pdf = build_single_page_pdf(["Hello", "(nested) \\ text", "", "see 4 0 obj here", "Third line"])
    declared = read_xref_offsets(pdf)
    assert sorted(declared) == [1, 2, 3, 4, 5, 6]
    for num, offset in declared.items():
        assert offset == pdf.index(b"%d 0 obj" % num)
    assert declared == find_object_offsets(pdf)


def test_xref_lines_are_twenty_bytes():
    pdf = build_single_page_pdf(["a"])
    xref_at = pdf.index(b"xref\n")
    table = pdf[xref_at:pdf.index(b"trailer")].split(b"\n", 2)[2]
    assert len(table) == 7 * 20


def test_startxref_points_at_xref():
    pdf = build_single_page_pdf(["a"])
    offset = int(pdf.rsplit(b"startxref\n", 1)[1].split(b"\n")[0])
    assert pdf[offset:offset + 4] == b"xref"


def test_stream_length_is_exact():
    pdf = build_single_page_pdf(["Line one", "Line two"])
    length = int(re.search(rb"/Length (\d+)", pdf).group(1))
    start = pdf.index(b"stream\n") + len(b"stream\n")
    end = pdf.index(b"\nendstream")
    assert end - start == length


def test_escape_pdf_text():
    assert escape_pdf_text("a(b)\\c") == "a\\(b\\)\\\\c"
    assert escape_pdf_text("x\ry") == "x\\ry"
    assert escape_pdf_text("\tindent") == "    indent"
    assert escape_pdf_text("see 4 0 obj") == "see 4 0 \\157bj"


def test_content_stream_operators():
    pdf = build_single_page_pdf(["first", "second"])
    assert b"/F1 10 Tf" in pdf
    assert b"12 TL" in pdf
    assert b"36 756 Td" in pdf
    assert b"(first) Tj\nT* (second) Tj" in pdf


def test_non_latin_text_is_replaced():
    pdf = build_single_page_pdf(["café ☃"])
    assert b"(caf\xe9 ?) Tj" in pdf


def test_output_is_deterministic():
    assert build_single_page_pdf(["x", "y"]) == build_single_page_pdf(["x", "y"])


def test_pymupdf_reads_the_text():
    pdf = build_single_page_pdf(["Hello (world)", "Second line"])
    with fitz.open(stream=pdf, filetype="pdf") as doc:
        assert doc.page_count == 1
        page = doc[0]
        assert page.rect.width == 612 and page.rect.height == 792
        text = page.get_text("text")
    assert "Hello (world)" in text
    assert text.index("Hello") < text.index("Second line")


def test_object_marker_in_text_still_reads_back():
    pdf = build_single_page_pdf(["see 4 0 obj here"])
    assert pdf.count(b"4 0 obj") == 1
    with fitz.open(stream=pdf, filetype="pdf") as doc:
        assert "see 4 0 obj here" in doc[0].get_text("text")
