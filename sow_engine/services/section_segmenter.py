"""
Transcript segmentation into ordered sections with attached fields.

Segmentation is a two-state machine:
  - outside any section: the first content line opens a synthetic "Preamble"
  - inside a section:    lines accumulate until the next heading

A heading is either a numbered line (``3. Scope of Work:``) or a known
top-level heading (``Statement of Work``, ``Authorization`` ...). Bullet lines
are also recorded as list items of the current section.

When a section closes, a finalize step may synthesize fields so every section
stays addressable (a list field for bullets, a date-range object, a textarea
for scope/charges sections, or a plain text fallback). Strict mode turns all
synthesis off and surfaces literal placeholders only.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sow_engine.config import settings
from sow_engine.models.schemas import FieldSource, FieldType, TemplateType
from sow_engine.services.placeholder_extractor import (
    PlaceholderToken,
    detect_template_type,
    extract_line_placeholders,
)
from sow_engine.utils.helpers import normalize_key

logger = logging.getLogger(__name__)

PREAMBLE_TITLE = "Preamble"

NUMBERED_SECTION_RE = re.compile(r"^\s*(\d+)\.\s+(.+?):?\s*$")
NUMBERED_PREFIX_RE = re.compile(r"^\s*\d+\.\s*")
KNOWN_HEADING_RE = re.compile(
    r"^\s*(Statement of Work.*|Work Order.*|Authorization.*|Scope of Work.*"
    r"|Master Services Agreement.*)\s*$",
    re.IGNORECASE,
)
BULLET_RE = re.compile(r"^\s*(?:[-*\u2022\u25cf]|\uf0b7)\s+(.*?)\s*$")
START_DATE_LABEL_RE = re.compile(r"start date\s*:?\s*$", re.IGNORECASE)
END_DATE_LABEL_RE = re.compile(r"end date\s*:?\s*$", re.IGNORECASE)
TEXTAREA_TITLE_RE = re.compile(r"scope|charges|payment|change control", re.IGNORECASE)

# Known SOW sections that carry list content even without bullets
_LIST_SECTION_RE = re.compile(
    r"supplier deliverables|client deliverables|project schedule|milestones"
    r"|communication paths|key client personnel",
    re.IGNORECASE,
)
_ADDRESS_SECTION_RE = re.compile(r"address for communications", re.IGNORECASE)
_ADDRESS_FIELDS = (
    ("supplier_name", "Supplier Name", FieldType.TEXT),
    ("contact_name", "Contact Name", FieldType.TEXT),
    ("email", "Email", FieldType.EMAIL),
    ("address", "Address", FieldType.TEXTAREA),
)


@dataclass
class Section:
    """A contiguous region of the transcript under one heading."""

    title: str
    ordinal_index: Optional[int] = None
    raw_lines: List[str] = field(default_factory=list)
    list_items: List[str] = field(default_factory=list)
    fields: List[PlaceholderToken] = field(default_factory=list)

    @property
    def key(self) -> str:
        return normalize_key(self.title)

    def add_field(self, token: PlaceholderToken) -> bool:
        """Attach a field unless one with the same key is already present."""
        if any(f.normalized_key == token.normalized_key for f in self.fields):
            return False
        token.source_section = self.title
        self.fields.append(token)
        return True

    def has_type(self, field_type: FieldType) -> bool:
        return any(f.inferred_type == field_type for f in self.fields)


@dataclass
class ParsedTranscript:
    """Output of segment_transcript."""

    sections: List[Section]
    flat_fields: List[PlaceholderToken]
    detected_template_type: TemplateType = TemplateType.UNKNOWN


def _inferred(key: str, label: str, field_type: FieldType) -> PlaceholderToken:
    return PlaceholderToken(
        raw_label=label,
        normalized_key=key,
        inferred_type=field_type,
        source=FieldSource.INFERRED,
    )


class SectionSegmenter:
    """Splits a transcript into sections and attaches discovered fields."""

    def __init__(self, strict: Optional[bool] = None) -> None:
        self.strict = settings.STRICT_TEMPLATE_FIELDS if strict is None else strict

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def segment(self, text: str) -> ParsedTranscript:
        """
        Segment a transcript.

        Args:
            text: Transcript text (any line-ending convention).

        Returns:
            ParsedTranscript with sections in source order, a flat
            de-duplicated field list and the detected template type.
        """
        normalized = _normalize_eols(str(text or ""))
        sections: List[Section] = []
        current: Optional[Section] = None

        for raw in normalized.split("\n"):
            line = raw.rstrip()

            numbered = NUMBERED_SECTION_RE.match(line)
            if numbered:
                if current is not None:
                    sections.append(self._finalize(current))
                current = Section(title=numbered.group(2).strip(), ordinal_index=int(numbered.group(1)))
                self._attach_placeholders(current, numbered.group(2))
                continue

            if KNOWN_HEADING_RE.match(line) and not NUMBERED_PREFIX_RE.match(line):
                if current is not None:
                    sections.append(self._finalize(current))
                title = re.sub(r"\s+To\s*$", "", line, flags=re.IGNORECASE).strip()
                current = Section(title=title)
                self._attach_placeholders(current, line)
                continue

            if current is None:
                if not line.strip():
                    continue
                current = Section(title=PREAMBLE_TITLE)
            self._push_line(current, line)

        if current is not None:
            sections.append(self._finalize(current))

        if not self.strict:
            for section in sections:
                _enhance_known_section(section)

        flat: Dict[str, PlaceholderToken] = {}
        for section in sections:
            for token in section.fields:
                flat.setdefault(token.normalized_key, token)

        logger.debug(
            "Segmented transcript into %d sections with %d unique fields",
            len(sections),
            len(flat),
        )
        return ParsedTranscript(
            sections=sections,
            flat_fields=list(flat.values()),
            detected_template_type=detect_template_type(normalized),
        )

    # ------------------------------------------------------------------
    # Line handling
    # ------------------------------------------------------------------

    def _push_line(self, section: Section, line: str) -> None:
        section.raw_lines.append(line)
        bullet = BULLET_RE.match(line)
        if bullet and bullet.group(1):
            section.list_items.append(bullet.group(1).strip())
        self._attach_placeholders(section, line)

    def _attach_placeholders(self, section: Section, line: str) -> None:
        tokens = extract_line_placeholders(line)
        for token in tokens:
            section.add_field(token)
        if self.strict:
            return
        # Bare "Start Date:" / "End Date:" labels with no bracketed token
        keys = [t.normalized_key for t in tokens]
        if START_DATE_LABEL_RE.search(line) and not any("start_date" in k for k in keys):
            section.add_field(_inferred("start_date", "Start Date", FieldType.DATE))
        if END_DATE_LABEL_RE.search(line) and not any("end_date" in k for k in keys):
            section.add_field(_inferred("end_date", "End Date", FieldType.DATE))

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    def _finalize(self, section: Section) -> Section:
        if self.strict:
            return section

        if section.list_items:
            section.add_field(_inferred(
                normalize_key(f"{section.title}_list"),
                f"{section.title} (List)",
                FieldType.LIST,
            ))

        if any(_has_date_marker(line, "start") or _has_date_marker(line, "end") for line in section.raw_lines):
            section.add_field(_inferred(
                normalize_key(f"{section.title}_duration"),
                "Project Duration",
                FieldType.OBJECT,
            ))

        if TEXTAREA_TITLE_RE.search(section.title) and not section.has_type(FieldType.TEXTAREA):
            section.add_field(_inferred(section.key, section.title, FieldType.TEXTAREA))

        if not section.fields:
            section.add_field(_inferred(section.key, section.title, FieldType.TEXT))

        return section


def _has_date_marker(line: str, which: str) -> bool:
    label_re = START_DATE_LABEL_RE if which == "start" else END_DATE_LABEL_RE
    return bool(label_re.search(line)) or f"[{which} date]" in line.lower()


def _enhance_known_section(section: Section) -> None:
    """Add the fields recurring SOW sections always carry."""
    title = section.title
    if _LIST_SECTION_RE.search(title) and not section.has_type(FieldType.LIST):
        section.add_field(_inferred(section.key, title, FieldType.LIST))
    if _ADDRESS_SECTION_RE.search(title):
        for key, label, field_type in _ADDRESS_FIELDS:
            section.add_field(_inferred(key, label, field_type))
    if re.search(r"charges & payment", title, re.IGNORECASE) and not section.has_type(FieldType.TEXTAREA):
        section.add_field(_inferred(section.key, title, FieldType.TEXTAREA))
    if re.search(r"type of project", title, re.IGNORECASE):
        section.add_field(_inferred("type_of_project", "Type of Project", FieldType.TEXT))


def _normalize_eols(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n").replace("\\r", "\n")


def segment_transcript(text: str, strict: Optional[bool] = None) -> ParsedTranscript:
    """Module-level shortcut for SectionSegmenter(strict).segment(text)."""
    return SectionSegmenter(strict=strict).segment(text)
