"""Tests for the stored ZIP writer and container sniffing."""
import io
import struct
import zipfile
import zlib

import pytest

from sow_engine.exceptions import MalformedContainerError, SerializationInvariantError
from sow_engine.services.zip_writer import (
    build_zip,
    crc32,
    ensure_zip_container,
    list_zip_entries,
    read_zip,
    verify_zip,
)


def test_single_entry_layout():
    archive = build_zip({"a.txt": "hi"})
    eocd = archive[-22:]
    assert eocd[:4] == b"PK\x05\x06"
    cd_offset = struct.unpack_from("<I", eocd, 16)[0]
    # 30-byte local header + name + content
    assert cd_offset == 30 + len(b"a.txt") + len(b"hi")
    assert struct.unpack_from("<HH", eocd, 8) == (1, 1)


def test_standard_reader_round_trip():
    files = {
        "[Content_Types].xml": "<Types/>",
        "word/document.xml": "<w:document>café</w:document>",
        "word/media/logo.png": b"\x89PNG\r\n\x1a\n\x00\x01",
    }
    archive = build_zip(files)
    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        assert zf.testzip() is None
        assert zf.namelist() == list(files)
        for name, content in files.items():
            expected = content.encode("utf-8") if isinstance(content, str) else content
            assert zf.read(name) == expected
            assert zf.getinfo(name).compress_type == zipfile.ZIP_STORED


def test_utf8_entry_names():
    archive = build_zip({"média/résumé.txt": "x"})
    assert read_zip(archive) == {"média/résumé.txt": b"x"}


@pytest.mark.parametrize("data", [b"", b"hi", b"The quick brown fox", bytes(range(256)) * 3])
def test_crc32_matches_zlib(data):
    assert crc32(data) == zlib.crc32(data) & 0xFFFFFFFF


def test_output_is_deterministic():
    files = {"b.txt": "2", "a.txt": "1"}
    assert build_zip(files) == build_zip(dict(files))


def test_empty_archive():
    archive = build_zip({})
    assert len(archive) == 22
    with zipfile.ZipFile(io.BytesIO(archive)) as zf:
        assert zf.namelist() == []


def test_entry_offsets_point_at_local_headers():
    archive = build_zip({"one.txt": "1", "two.txt": "22"})
    entries = list_zip_entries(archive)
    assert [e.name for e in entries] == ["one.txt", "two.txt"]
    for entry in entries:
        assert archive[entry.offset:entry.offset + 4] == b"PK\x03\x04"


def test_verify_detects_corrupted_content():
    archive = bytearray(build_zip({"a.txt": "hi"}))
    archive[30 + len(b"a.txt")] ^= 0xFF
    with pytest.raises(SerializationInvariantError, match="CRC"):
        verify_zip(bytes(archive))


def test_verify_detects_truncation():
    archive = build_zip({"a.txt": "hi"})
    with pytest.raises(SerializationInvariantError):
        verify_zip(archive[:-1])


# ---------------------------------------------------------------------------
# Container sniffing
# ---------------------------------------------------------------------------

def test_zip_bytes_pass():
    ensure_zip_container(build_zip({"a.txt": "hi"}))


def test_plain_text_is_reported_as_transcript():
    with pytest.raises(MalformedContainerError) as info:
        ensure_zip_container(b"1. Scope of Work:\n[Scope]", "template.docx")
    assert info.value.looks_like_text
    assert "plain-text transcript" in str(info.value)
    assert "template.docx" in str(info.value)


def test_pdf_is_reported_as_pdf():
    with pytest.raises(MalformedContainerError, match="PDF") as info:
        ensure_zip_container(b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n")
    assert not info.value.looks_like_text


def test_binary_is_reported_as_unrelated():
    with pytest.raises(MalformedContainerError, match="unrelated binary"):
        ensure_zip_container(b"\x00\x01\x02\xff\xfe" * 10)


def test_malformed_container_is_a_value_error():
    with pytest.raises(ValueError):
        ensure_zip_container(b"")
