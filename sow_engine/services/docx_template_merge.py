"""
In-place placeholder substitution inside an uploaded .docx template.

Word often splits one ``[Client Name]`` token over several runs (spell-check,
formatting, revision marks). Each paragraph's run texts are concatenated, the
tokens are located in that combined string, and each replacement is written
into the run where its token starts; the remaining pieces of the token are
cleared from the following runs. Formatting of the first run wins.
"""
from __future__ import annotations

import copy
import io
import logging
from typing import Iterator, List, Mapping, Optional

from docx import Document as DocxDocument
from docx.shared import Emu

from sow_engine.exceptions import MalformedContainerError
from sow_engine.models.value_store import IMAGE_SLOTS, EmbeddedImage
from sow_engine.services.ooxml_generator import px_to_emu
from sow_engine.services.value_mapper import TOKEN_RE, Resolver, UnfilledPolicy
from sow_engine.services.zip_writer import ensure_zip_container
from sow_engine.utils.helpers import collapse_whitespace, normalize_key

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Paragraph traversal
# ---------------------------------------------------------------------------

def _iter_block_paragraphs(container, seen_cells: set) -> Iterator:
    """Paragraphs of a body / header / cell, then of its tables, recursively."""
    yield from container.paragraphs
    for table in container.tables:
        for row in table.rows:
            for cell in row.cells:
                # Merged cells show up once per grid column
                if cell._tc in seen_cells:
                    continue
                seen_cells.add(cell._tc)
                yield from _iter_block_paragraphs(cell, seen_cells)


def iter_document_paragraphs(doc) -> Iterator:
    """Every paragraph in the body, tables, headers and footers of *doc*."""
    seen_cells: set = set()
    yield from _iter_block_paragraphs(doc, seen_cells)

    seen_parts: set = set()
    for section in doc.sections:
        for attr in ("header", "first_page_header", "even_page_header",
                     "footer", "first_page_footer", "even_page_footer"):
            part = getattr(section, attr)
            # Linked parts have no definition of their own; reading them would add one
            if part.is_linked_to_previous:
                continue
            element = part._element
            if element in seen_parts:
                continue
            seen_parts.add(element)
            yield from _iter_block_paragraphs(part, seen_cells)


# ---------------------------------------------------------------------------
# Run-level substitution
# ---------------------------------------------------------------------------

class TemplateMerger:
    """Substitutes tokens paragraph by paragraph, keeping run formatting."""

    def __init__(
        self,
        resolve: Resolver,
        policy: Optional[UnfilledPolicy] = None,
        images: Optional[Mapping[str, EmbeddedImage]] = None,
    ) -> None:
        self.resolve = resolve
        self.policy = policy or UnfilledPolicy.from_settings()
        self.images = dict(images or {})
        self.replaced = 0
        self.unfilled = 0
        self.pictures = 0

    def merge_paragraph(self, paragraph) -> None:
        runs = list(paragraph.runs)
        if not runs:
            return
        texts: List[str] = [run.text for run in runs]
        starts: List[int] = []
        pos = 0
        for text in texts:
            starts.append(pos)
            pos += len(text)
        combined = "".join(texts)

        matches = list(TOKEN_RE.finditer(combined))
        for match in reversed(matches):
            label = collapse_whitespace(match.group(1) or match.group(2))
            key = normalize_key(label)
            if not key:
                continue

            first = _run_at(starts, texts, match.start())
            last = _run_at(starts, texts, match.end() - 1)
            prefix = texts[first][:match.start() - starts[first]]
            suffix = texts[last][match.end() - starts[last]:]

            for k in range(first + 1, last + 1):
                runs[k].text = ""
                texts[k] = ""

            image = self.images.get(key) if key in IMAGE_SLOTS else None
            if image is not None:
                runs[first].text = prefix
                texts[first] = prefix
                self._insert_picture(paragraph, runs[first], image, suffix)
                self.pictures += 1
                continue

            value = self.resolve(label, key)
            if value:
                self.replaced += 1
            else:
                self.unfilled += 1
                value = self.policy.fill(match.group(0))
            texts[first] = prefix + value + suffix
            runs[first].text = texts[first]

    def _insert_picture(self, paragraph, anchor_run, image: EmbeddedImage, suffix: str) -> None:
        pic_run = paragraph.add_run()
        pic_run.add_picture(
            io.BytesIO(image.data),
            width=Emu(px_to_emu(image.width_px)),
            height=Emu(px_to_emu(image.height_px)),
        )
        anchor_run._r.addnext(pic_run._r)
        if suffix:
            tail = paragraph.add_run(suffix)
            rpr = anchor_run._r.rPr
            if rpr is not None:
                tail._r.insert(0, copy.deepcopy(rpr))
            pic_run._r.addnext(tail._r)


def _run_at(starts: List[int], texts: List[str], offset: int) -> int:
    """Index of the run holding character *offset* of the combined text."""
    for i in range(len(starts) - 1, -1, -1):
        if starts[i] <= offset and texts[i]:
            return i
    return 0


def merge_docx_template(
    docx_bytes: bytes,
    resolve: Resolver,
    policy: Optional[UnfilledPolicy] = None,
    images: Optional[Mapping[str, EmbeddedImage]] = None,
    filename: Optional[str] = None,
) -> bytes:
    """
    Fill the placeholders of a .docx template in place.

    Args:
        docx_bytes: The uploaded template.
        resolve:    ``resolve(label, key)`` returning display text or None.
        policy:     Unfilled policy; defaults to the configured one.
        images:     Image slot -> decoded image, used for [Logo] / [Signature].
        filename:   Original name, used in error messages only.

    Returns:
        The merged document as .docx bytes.

    Raises:
        MalformedContainerError: the bytes are not a Word package.
    """
    ensure_zip_container(docx_bytes, filename)
    try:
        doc = DocxDocument(io.BytesIO(docx_bytes))
    except Exception as exc:
        raise MalformedContainerError(
            f"{filename or 'The uploaded file'} is a ZIP archive but not a readable Word document: {exc}"
        ) from exc

    merger = TemplateMerger(resolve, policy, images)
    for paragraph in iter_document_paragraphs(doc):
        merger.merge_paragraph(paragraph)

    buf = io.BytesIO()
    doc.save(buf)
    logger.debug(
        "Merged template: %d replaced, %d unfilled, %d pictures",
        merger.replaced, merger.unfilled, merger.pictures,
    )
    return buf.getvalue()
