"""
Shared fixtures for the SOW engine tests.

Everything is built in memory: a sample SOW transcript, captured form values,
PNG bytes drawn with Pillow and a .docx template written with python-docx.
"""
from __future__ import annotations

import io

import pytest
from docx import Document
from PIL import Image

from sow_engine.models.value_store import ValueStore
from sow_engine.services.image_loader import load_image


SAMPLE_TRANSCRIPT = """Statement of Work
This Statement of Work is entered into by [Client Name] and <Supplier Name>.
1. Project Duration:
Start Date: [Start Date]
End Date: [End Date]
2. Scope of Work:
[Scope Description]
3. Supplier Deliverables:
- Discovery report
- Implementation plan
4. Charges & Payment:
Hourly Rate: [Hourly Rate]
Total Budget: [Total Budget]
5. Address for Communications:
Contact Email: [Contact Email]
Authorization
Supplier: [Supplier Signature Name]
Client: [Client Signature Name]
"""


def _png_bytes(size=(4, 3), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def transcript() -> str:
    return SAMPLE_TRANSCRIPT


@pytest.fixture
def png_bytes() -> bytes:
    return _png_bytes()


@pytest.fixture
def values() -> dict:
    return {
        "client_company_name": "Acme Corp",
        "supplier_name": "Northwind Consulting",
        "project_duration": {"start_date": "2025-03-05", "end_date": "2025-09-30"},
        "scope_description": "Migrate billing to the new platform",
        "hourly_rate": "150",
        "total_budget": 48000,
        "contact_email": "pm@acme.example",
        "authorization_signatures": {
            "supplier_signature_name": "Dana Lee",
            "client_signature_name": "Sam Ortiz",
        },
    }


@pytest.fixture
def store(values) -> ValueStore:
    return ValueStore.from_mapping(values)


@pytest.fixture
def image_store(values, png_bytes) -> ValueStore:
    images = {
        "logo": load_image(png_bytes, "logo"),
        "signature": load_image(png_bytes, "signature"),
    }
    return ValueStore.from_mapping(values, images)


@pytest.fixture
def docx_template() -> bytes:
    """A Word template whose tokens are split across runs, in a table and in the header."""
    doc = Document()
    doc.sections[0].header.paragraphs[0].text = "[Logo] Prepared for [Client Name]"

    doc.add_paragraph("Statement of Work")
    p = doc.add_paragraph("This agreement is between ")
    bold = p.add_run("[Client")
    bold.bold = True
    p.add_run(" Name]")
    p.add_run(" and <Supplier Name>.")
    doc.add_paragraph("Start Date: [Start Date]")
    doc.add_paragraph("Reference: [Purchase Order]")

    table = doc.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Client Signatory"
    table.cell(0, 1).text = "[Client Signature Name]"
    table.cell(1, 0).text = "Signature"
    table.cell(1, 1).text = "[Signature]"

    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()
