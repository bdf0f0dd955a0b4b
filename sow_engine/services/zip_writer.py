"""
Stored (uncompressed) ZIP container writer.

Entries are written in insertion order with DOS time/date zero so identical
inputs always give identical bytes. Every archive is re-walked after it is
built; any offset, size or checksum drift raises SerializationInvariantError
instead of handing back a package Word would refuse to open.
"""
from __future__ import annotations

import functools
import logging
import struct
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple, Union

from sow_engine.exceptions import MalformedContainerError, SerializationInvariantError

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"

LOCAL_HEADER_SIG = 0x04034B50
CENTRAL_DIR_SIG = 0x02014B50
END_OF_CENTRAL_DIR_SIG = 0x06054B50

LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")              # 30 bytes
CENTRAL_DIR_RECORD = struct.Struct("<IHHHHHHIIIHHHHHII")  # 46 bytes
END_OF_CENTRAL_DIR = struct.Struct("<IHHHHIIH")           # 22 bytes

VERSION = 20

FileMap = Mapping[str, Union[bytes, str]]


@functools.lru_cache(maxsize=1)
def _crc_table() -> Tuple[int, ...]:
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            c = (0xEDB88320 ^ (c >> 1)) if c & 1 else (c >> 1)
        table.append(c)
    return tuple(table)


def crc32(data: bytes) -> int:
    """Standard reflected CRC-32 (same result as zlib.crc32)."""
    table = _crc_table()
    crc = 0xFFFFFFFF
    for byte in data:
        crc = table[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


def _as_bytes(content: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


def build_zip(file_map: FileMap) -> bytes:
    """
    Pack a path -> content mapping into a stored ZIP archive.

    Args:
        file_map: Archive paths mapped to bytes or text (text is UTF-8 encoded).

    Returns:
        Archive bytes.

    Raises:
        SerializationInvariantError: if the written archive fails verification.
    """
    out = bytearray()
    central: List[bytes] = []

    for path, content in file_map.items():
        name = path.encode("utf-8")
        data = _as_bytes(content)
        crc = crc32(data)
        offset = len(out)

        out += LOCAL_HEADER.pack(
            LOCAL_HEADER_SIG, VERSION, 0, 0, 0, 0,
            crc, len(data), len(data), len(name), 0,
        )
        out += name
        out += data

        central.append(CENTRAL_DIR_RECORD.pack(
            CENTRAL_DIR_SIG, VERSION, VERSION, 0, 0, 0, 0,
            crc, len(data), len(data), len(name), 0, 0, 0, 0, 0,
            offset,
        ) + name)

    cd_offset = len(out)
    for record in central:
        out += record
    cd_size = len(out) - cd_offset

    out += END_OF_CENTRAL_DIR.pack(
        END_OF_CENTRAL_DIR_SIG, 0, 0,
        len(central), len(central), cd_size, cd_offset, 0,
    )

    archive = bytes(out)
    verify_zip(archive)
    logger.debug("Built ZIP with %d entries (%d bytes)", len(central), len(archive))
    return archive


# ----------------------------------------------------------------------------
# Reading back
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class ZipEntry:
    """A stored entry as recorded in the central directory."""

    name: str
    offset: int
    crc: int
    size: int
    data: bytes


def _fail(message: str) -> None:
    raise SerializationInvariantError(f"ZIP invariant violated: {message}")


def list_zip_entries(archive: bytes) -> List[ZipEntry]:
    """
    Walk the end record and central directory of a stored archive.

    Each central record is checked against its local header and the data it
    points at.

    Raises:
        SerializationInvariantError: on any structural mismatch.
    """
    try:
        return _walk_entries(archive)
    except (struct.error, UnicodeDecodeError) as exc:
        raise SerializationInvariantError(f"ZIP invariant violated: {exc}") from exc


def _walk_entries(archive: bytes) -> List[ZipEntry]:
    if len(archive) < END_OF_CENTRAL_DIR.size:
        _fail("archive shorter than end-of-central-directory record")
    eocd_at = len(archive) - END_OF_CENTRAL_DIR.size
    (sig, _disk, _cd_disk, count_disk, count, cd_size, cd_offset, _comment) = \
        END_OF_CENTRAL_DIR.unpack_from(archive, eocd_at)
    if sig != END_OF_CENTRAL_DIR_SIG:
        _fail("missing end-of-central-directory signature")
    if count_disk != count:
        _fail("entry counts disagree")
    if cd_offset + cd_size != eocd_at:
        _fail(f"central directory ends at {cd_offset + cd_size}, end record at {eocd_at}")

    entries: List[ZipEntry] = []
    pos = cd_offset
    for _ in range(count):
        fields = CENTRAL_DIR_RECORD.unpack_from(archive, pos)
        if fields[0] != CENTRAL_DIR_SIG:
            _fail(f"bad central directory signature at {pos}")
        crc, comp_size, size, name_len, extra_len, comment_len = (
            fields[7], fields[8], fields[9], fields[10], fields[11], fields[12]
        )
        offset = fields[16]
        name_start = pos + CENTRAL_DIR_RECORD.size
        name = archive[name_start:name_start + name_len]
        pos = name_start + name_len + extra_len + comment_len

        local = LOCAL_HEADER.unpack_from(archive, offset)
        if local[0] != LOCAL_HEADER_SIG:
            _fail(f"entry {name!r} offset {offset} does not point at a local header")
        if local[6] != crc or local[7] != comp_size or local[8] != size:
            _fail(f"entry {name!r} local header disagrees with central directory")
        data_start = offset + LOCAL_HEADER.size + local[9] + local[10]
        if archive[offset + LOCAL_HEADER.size:offset + LOCAL_HEADER.size + local[9]] != name:
            _fail(f"entry {name!r} name differs between headers")
        data = archive[data_start:data_start + size]
        if len(data) != size or comp_size != size:
            _fail(f"entry {name!r} is truncated or not stored")
        if crc32(data) != crc:
            _fail(f"entry {name!r} CRC mismatch")
        entries.append(ZipEntry(name.decode("utf-8"), offset, crc, size, data))

    if pos != eocd_at:
        _fail("central directory size does not match its records")
    return entries


def verify_zip(archive: bytes) -> None:
    """Raise SerializationInvariantError unless *archive* is internally consistent."""
    list_zip_entries(archive)


def read_zip(archive: bytes) -> dict:
    """Path -> bytes for every entry of a stored archive built by build_zip."""
    return {entry.name: entry.data for entry in list_zip_entries(archive)}


# ----------------------------------------------------------------------------
# Container sniffing
# ----------------------------------------------------------------------------

def _looks_like_text(sample: bytes) -> bool:
    if not sample:
        return True
    if b"\x00" in sample:
        return False
    try:
        sample.decode("utf-8")
    except UnicodeDecodeError:
        # A multi-byte sequence may be cut at the sample boundary
        try:
            sample[:-3].decode("utf-8")
        except UnicodeDecodeError:
            return False
    return True


def ensure_zip_container(data: bytes, filename: Optional[str] = None) -> None:
    """
    Reject anything that is not a ZIP/OOXML package before parsing it.

    Raises:
        MalformedContainerError: with a message that tells a plain-text
            transcript apart from an unrelated binary file.
    """
    if data[:4] == ZIP_MAGIC:
        return
    label = f"'{filename}'" if filename else "The uploaded file"
    sample = bytes(data[:1024])
    if sample.startswith(b"%PDF"):
        raise MalformedContainerError(
            f"{label} is a PDF, not a Word document. Export it as .docx or upload it as a PDF template."
        )
    if _looks_like_text(sample):
        raise MalformedContainerError(
            f"{label} appears to be a plain-text transcript, not a .docx package. "
            "Upload the original Word file or use the transcript export instead.",
            looks_like_text=True,
        )
    raise MalformedContainerError(
        f"{label} is not a valid .docx package (missing ZIP signature); it looks like an unrelated binary file."
    )
