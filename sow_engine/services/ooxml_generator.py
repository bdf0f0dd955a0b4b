"""
Minimal WordprocessingML package generator.

Produces the five parts a word processor needs (content types, package
relationships, document, document relationships, styles) plus one media part
per embedded image. Output is a path -> content mapping for zip_writer.
"""
from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Union
from xml.sax.saxutils import escape, quoteattr

from lxml import etree

from sow_engine.exceptions import SerializationInvariantError
from sow_engine.models.value_store import EmbeddedImage
from sow_engine.services.zip_writer import build_zip

logger = logging.getLogger(__name__)

EMU_PER_PIXEL = 9525

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
CT_NS = "http://schemas.openxmlformats.org/package/2006/content-types"

REL_OFFICE_DOCUMENT = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument"
REL_STYLES = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/styles"
REL_IMAGE = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/image"

CT_DOCUMENT = "application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"
CT_STYLES = "application/vnd.openxmlformats-officedocument.wordprocessingml.styles+xml"

DEFAULT_IMAGE_TYPES = (("png", "image/png"), ("jpg", "image/jpeg"), ("jpeg", "image/jpeg"))

# rId1 is reserved for styles
FIRST_IMAGE_RID = 2

# Characters XML 1.0 does not allow (PDF extraction can leave form feeds etc.)
_ILLEGAL_XML_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


@dataclass(frozen=True)
class TextParagraph:
    """A paragraph holding one text run."""

    text: str
    bold: bool = False
    size_half_points: Optional[int] = None


@dataclass(frozen=True)
class ImageParagraph:
    """A paragraph holding one inline picture from an image slot."""

    slot: str
    width_px: Optional[int] = None
    height_px: Optional[int] = None


Paragraph = Union[str, TextParagraph, ImageParagraph]


def px_to_emu(px: int) -> int:
    return int(round(px * EMU_PER_PIXEL))


def xml_text(text: str) -> str:
    """Escape text for element content, dropping characters XML cannot carry."""
    return escape(_ILLEGAL_XML_RE.sub("", str(text)))


# ----------------------------------------------------------------------------
# Part templates
# ----------------------------------------------------------------------------

_DOCUMENT_OPEN = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    '<w:document xmlns:wpc="http://schemas.microsoft.com/office/word/2010/wordprocessingCanvas"'
    ' xmlns:mc="http://schemas.openxmlformats.org/markup-compatibility/2006"'
    ' xmlns:o="urn:schemas-microsoft-com:office:office"'
    f' xmlns:r="{R_NS}"'
    ' xmlns:m="http://schemas.openxmlformats.org/officeDocument/2006/math"'
    ' xmlns:v="urn:schemas-microsoft-com:vml"'
    ' xmlns:wp14="http://schemas.microsoft.com/office/word/2010/wordprocessingDrawing"'
    ' xmlns:wp="http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing"'
    ' xmlns:w10="urn:schemas-microsoft-com:office:word"'
    f' xmlns:w="{W_NS}"'
    ' xmlns:w14="http://schemas.microsoft.com/office/word/2010/wordml"'
    ' xmlns:wpg="http://schemas.microsoft.com/office/word/2010/wordprocessingGroup"'
    ' xmlns:wpi="http://schemas.microsoft.com/office/word/2010/wordprocessingInk"'
    ' xmlns:wne="http://schemas.microsoft.com/office/2006/wordml"'
    ' xmlns:wps="http://schemas.microsoft.com/office/word/2010/wordprocessingShape"'
    ' mc:Ignorable="w14 wp14">\n'
    '<w:body>\n'
)

# A4 portrait, one-inch margins
_DOCUMENT_CLOSE = (
    '<w:sectPr>'
    '<w:pgSz w:w="11906" w:h="16838"/>'
    '<w:pgMar w:top="1440" w:right="1440" w:bottom="1440" w:left="1440"'
    ' w:header="708" w:footer="708" w:gutter="0"/>'
    '<w:cols w:space="708"/>'
    '<w:docGrid w:linePitch="360"/>'
    '</w:sectPr>\n'
    '</w:body>\n'
    '</w:document>'
)

_PACKAGE_RELS = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    f'<Relationships xmlns="{PKG_REL_NS}">'
    f'<Relationship Id="rId1" Type="{REL_OFFICE_DOCUMENT}" Target="word/document.xml"/>'
    '</Relationships>'
)

_STYLES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
    f'<w:styles xmlns:w="{W_NS}">'
    '<w:docDefaults><w:rPrDefault><w:rPr>'
    '<w:rFonts w:ascii="Calibri" w:hAnsi="Calibri" w:cs="Calibri"/>'
    '<w:sz w:val="22"/><w:szCs w:val="22"/>'
    '</w:rPr></w:rPrDefault></w:docDefaults>'
    '<w:style w:type="paragraph" w:default="1" w:styleId="Normal">'
    '<w:name w:val="Normal"/><w:qFormat/>'
    '<w:pPr><w:spacing w:after="60"/></w:pPr>'
    '</w:style>'
    '</w:styles>'
)


def _text_paragraph_xml(paragraph: TextParagraph) -> str:
    props = []
    if paragraph.bold:
        props.append("<w:b/>")
    if paragraph.size_half_points:
        props.append(f'<w:sz w:val="{int(paragraph.size_half_points)}"/>')
    rpr = f"<w:rPr>{''.join(props)}</w:rPr>" if props else ""
    return f'<w:p><w:r>{rpr}<w:t xml:space="preserve">{xml_text(paragraph.text)}</w:t></w:r></w:p>'


def _image_paragraph_xml(rel_id: str, doc_pr_id: int, name: str, width_px: int, height_px: int) -> str:
    cx, cy = px_to_emu(width_px), px_to_emu(height_px)
    return (
        '<w:p><w:r><w:drawing>'
        '<wp:inline distT="0" distB="0" distL="0" distR="0">'
        f'<wp:extent cx="{cx}" cy="{cy}"/>'
        f'<wp:docPr id="{doc_pr_id}" name={quoteattr(f"Picture {doc_pr_id}")}/>'
        '<a:graphic xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main">'
        '<a:graphicData uri="http://schemas.openxmlformats.org/drawingml/2006/picture">'
        '<pic:pic xmlns:pic="http://schemas.openxmlformats.org/drawingml/2006/picture">'
        f'<pic:nvPicPr><pic:cNvPr id="0" name={quoteattr(name)}/><pic:cNvPicPr/></pic:nvPicPr>'
        f'<pic:blipFill><a:blip r:embed="{rel_id}"/><a:stretch><a:fillRect/></a:stretch></pic:blipFill>'
        '<pic:spPr>'
        f'<a:xfrm><a:off x="0" y="0"/><a:ext cx="{cx}" cy="{cy}"/></a:xfrm>'
        '<a:prstGeom prst="rect"><a:avLst/></a:prstGeom>'
        '</pic:spPr>'
        '</pic:pic>'
        '</a:graphicData>'
        '</a:graphic>'
        '</wp:inline>'
        '</w:drawing></w:r></w:p>'
    )


def _content_types_xml(image_types: Mapping[str, str]) -> str:
    defaults = [
        '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>',
        '<Default Extension="xml" ContentType="application/xml"/>',
    ]
    defaults += [
        f'<Default Extension="{ext}" ContentType="{mime}"/>' for ext, mime in image_types.items()
    ]
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        f'<Types xmlns="{CT_NS}">'
        + "".join(defaults)
        + f'<Override PartName="/word/document.xml" ContentType="{CT_DOCUMENT}"/>'
        + f'<Override PartName="/word/styles.xml" ContentType="{CT_STYLES}"/>'
        + '</Types>'
    )


def _document_rels_xml(image_rels: Sequence[tuple]) -> str:
    rels = [f'<Relationship Id="rId1" Type="{REL_STYLES}" Target="styles.xml"/>']
    rels += [
        f'<Relationship Id="{rel_id}" Type="{REL_IMAGE}" Target="{target}"/>'
        for rel_id, target in image_rels
    ]
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        f'<Relationships xmlns="{PKG_REL_NS}">' + "".join(rels) + '</Relationships>'
    )


# ----------------------------------------------------------------------------
# Package assembly
# ----------------------------------------------------------------------------

def build_ooxml_package(
    paragraphs: Sequence[Paragraph],
    images: Optional[Mapping[str, EmbeddedImage]] = None,
) -> Dict[str, Union[bytes, str]]:
    """
    Build the parts of a .docx package.

    Args:
        paragraphs: Plain strings (one paragraph per string, newlines split
                    into further paragraphs), TextParagraph or ImageParagraph.
        images:     Image slot -> decoded image. ImageParagraphs naming an
                    empty slot are skipped.

    Returns:
        Ordered mapping of package path -> content for build_zip.

    Raises:
        SerializationInvariantError: if the parts do not wire up.
    """
    images = images or {}
    image_types: Dict[str, str] = dict(DEFAULT_IMAGE_TYPES)
    slot_rels: Dict[str, str] = {}
    image_rels: List[tuple] = []
    media: Dict[str, bytes] = {}
    body: List[str] = []
    next_rid = FIRST_IMAGE_RID
    doc_pr_id = 1

    for paragraph in paragraphs:
        if isinstance(paragraph, ImageParagraph):
            image = images.get(paragraph.slot)
            if image is None:
                logger.debug("No image in slot %r; skipping picture paragraph", paragraph.slot)
                continue
            if paragraph.slot not in slot_rels:
                rel_id = f"rId{next_rid}"
                next_rid += 1
                stem = normalize_media_name(paragraph.slot)
                target = f"media/{stem}.{image.ext}"
                if f"word/{target}" in media:
                    target = f"media/{stem}_{rel_id}.{image.ext}"
                slot_rels[paragraph.slot] = rel_id
                image_rels.append((rel_id, target))
                media[f"word/{target}"] = image.data
                image_types.setdefault(image.ext, image.mime)
            body.append(_image_paragraph_xml(
                slot_rels[paragraph.slot],
                doc_pr_id,
                image.name,
                paragraph.width_px or image.width_px,
                paragraph.height_px or image.height_px,
            ))
            doc_pr_id += 1
        elif isinstance(paragraph, TextParagraph):
            body.append(_text_paragraph_xml(paragraph))
        elif isinstance(paragraph, str):
            for line in paragraph.replace("\r\n", "\n").split("\n"):
                body.append(_text_paragraph_xml(TextParagraph(line)))
        else:
            raise TypeError(f"Unsupported paragraph type: {type(paragraph).__name__}")

    file_map: Dict[str, Union[bytes, str]] = {
        "[Content_Types].xml": _content_types_xml(image_types),
        "_rels/.rels": _PACKAGE_RELS,
        "word/document.xml": _DOCUMENT_OPEN + "\n".join(body) + "\n" + _DOCUMENT_CLOSE,
        "word/_rels/document.xml.rels": _document_rels_xml(image_rels),
        "word/styles.xml": _STYLES,
    }
    file_map.update(media)

    verify_package(file_map)
    logger.debug("Built OOXML package: %d paragraphs, %d images", len(body), len(media))
    return file_map


def normalize_media_name(slot: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "_", slot) or "image"


def _as_bytes(content: Union[bytes, str]) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else bytes(content)


def verify_package(file_map: Mapping[str, Union[bytes, str]]) -> None:
    """
    Check that every picture reference in document.xml resolves.

    Every ``r:embed`` id must name a relationship, every internal relationship
    target must exist in the map, and every media extension must have a
    content type.

    Raises:
        SerializationInvariantError: naming the dangling id or target.
    """
    for required in ("[Content_Types].xml", "_rels/.rels", "word/document.xml", "word/_rels/document.xml.rels"):
        if required not in file_map:
            raise SerializationInvariantError(f"OOXML package is missing part {required}")

    try:
        document = etree.fromstring(_as_bytes(file_map["word/document.xml"]))
        rels = etree.fromstring(_as_bytes(file_map["word/_rels/document.xml.rels"]))
        types = etree.fromstring(_as_bytes(file_map["[Content_Types].xml"]))
    except etree.XMLSyntaxError as exc:
        raise SerializationInvariantError(f"OOXML part is not well-formed XML: {exc}") from exc

    targets = {}
    for rel in rels.iter(f"{{{PKG_REL_NS}}}Relationship"):
        targets[rel.get("Id")] = (rel.get("Target"), rel.get("TargetMode"))

    for rel_id, (target, mode) in targets.items():
        if mode == "External":
            continue
        path = posixpath.normpath(posixpath.join("word", target))
        if path not in file_map:
            raise SerializationInvariantError(f"Relationship {rel_id} points at missing part {path}")

    embed_attr = f"{{{R_NS}}}embed"
    for blip in document.iter():
        rel_id = blip.get(embed_attr)
        if rel_id is not None and rel_id not in targets:
            raise SerializationInvariantError(f"r:embed {rel_id} has no matching relationship")

    extensions = {
        d.get("Extension", "").lower() for d in types.iter(f"{{{CT_NS}}}Default")
    }
    for path in file_map:
        if path.startswith("word/media/"):
            ext = path.rsplit(".", 1)[-1].lower()
            if ext not in extensions:
                raise SerializationInvariantError(f"No content type declared for media {path}")


def build_docx(
    paragraphs: Sequence[Paragraph],
    images: Optional[Mapping[str, EmbeddedImage]] = None,
) -> bytes:
    """Build a complete .docx (package + ZIP container)."""
    return build_zip(build_ooxml_package(paragraphs, images))
