"""
Field schema assembly from segmented transcript sections.

Ordering: numbered sections come first, sorted by ordinal with encounter
order as the tiebreak; unnumbered sections follow in encounter order.
Each section becomes one top-level field:
  - "project duration" sections collapse to a start/end date object
  - sections with several fields become an object grouping
  - sections with exactly one field collapse to that bare field
An ``authorization_signatures`` object is appended when the template does
not already expose one.
"""
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Set

from sow_engine.config import settings
from sow_engine.models.schemas import (
    FieldType,
    ListField,
    ObjectField,
    ScalarField,
    TemplateSchema,
)
from sow_engine.services.placeholder_extractor import PlaceholderToken
from sow_engine.services.section_segmenter import Section, SectionSegmenter

logger = logging.getLogger(__name__)

AUTHORIZATION_KEY = "authorization_signatures"

_PROJECT_DURATION_RE = re.compile(r"project duration", re.IGNORECASE)


def _date_range(key: str, label: str) -> ObjectField:
    return ObjectField(
        key=key,
        label=label,
        properties=(
            ScalarField(key="start_date", label="Start Date", type=FieldType.DATE),
            ScalarField(key="end_date", label="End Date", type=FieldType.DATE),
        ),
    )


def authorization_field() -> ObjectField:
    """Signer names and dates for both parties."""
    return ObjectField(
        key=AUTHORIZATION_KEY,
        label="Authorization",
        properties=(
            ScalarField(key="supplier_signature_name", label="Supplier - Name", type=FieldType.TEXT),
            ScalarField(key="supplier_signature_date", label="Supplier - Date", type=FieldType.DATE),
            ScalarField(key="client_signature_name", label="Client - Name", type=FieldType.TEXT),
            ScalarField(key="client_signature_date", label="Client - Date", type=FieldType.DATE),
        ),
    )


def field_from_token(token: PlaceholderToken, section_title: str = ""):
    """Convert a section field into its schema variant."""
    if token.inferred_type == FieldType.LIST:
        return ListField(key=token.normalized_key, label=token.raw_label, item_label=section_title or "Item")
    if token.inferred_type == FieldType.OBJECT:
        return _date_range(token.normalized_key, token.raw_label)
    return ScalarField(key=token.normalized_key, label=token.raw_label, type=token.inferred_type)


def order_sections(sections: Iterable[Section]) -> List[Section]:
    """Stable re-sort: numbered sections by ordinal, then unnumbered in encounter order."""
    indexed = list(enumerate(sections))
    indexed.sort(key=lambda item: (
        1 if item[1].ordinal_index is None else 0,
        item[1].ordinal_index or 0,
        item[0],
    ))
    return [section for _, section in indexed]


class SchemaBuilder:
    """Builds a TemplateSchema from parsed sections."""

    def __init__(self, strict: Optional[bool] = None) -> None:
        self.strict = settings.STRICT_TEMPLATE_FIELDS if strict is None else strict

    def build(self, sections: Iterable[Section], template_id: str, title: Optional[str] = None) -> TemplateSchema:
        """
        Assemble the ordered field schema.

        Args:
            sections:    Sections from the segmenter (any order).
            template_id: Identifier stored on the schema.
            title:       Display title; defaults to template_id.

        Returns:
            TemplateSchema whose top-level keys are unique.
        """
        fields = []
        used: Set[str] = set()

        for section in order_sections(sections):
            if not self.strict and _PROJECT_DURATION_RE.search(section.title):
                candidate = _date_range("project_duration", "Project Duration")
            elif len(section.fields) > 1:
                candidate = ObjectField(
                    key=section.key or "section",
                    label=section.title,
                    properties=tuple(field_from_token(t, section.title) for t in section.fields),
                )
            elif section.fields:
                candidate = field_from_token(section.fields[0], section.title)
            else:
                continue

            if candidate.key in used:
                if not isinstance(candidate, ObjectField):
                    logger.debug("Dropping duplicate field %r from section %r", candidate.key, section.title)
                    continue
                candidate = candidate.model_copy(update={"key": _unique_key(candidate.key, used)})
            used.add(candidate.key)
            fields.append(candidate)

        if not self.strict and AUTHORIZATION_KEY not in used:
            fields.append(authorization_field())

        logger.debug("Built schema %r with %d top-level fields", template_id, len(fields))
        return TemplateSchema(id=template_id, title=title or template_id, fields=fields)


def _unique_key(key: str, used: Set[str]) -> str:
    n = 2
    while f"{key}_{n}" in used:
        n += 1
    return f"{key}_{n}"


def build_schema(
    sections: Iterable[Section],
    template_id: str,
    title: Optional[str] = None,
    strict: Optional[bool] = None,
) -> TemplateSchema:
    """Module-level shortcut for SchemaBuilder(strict).build(...)."""
    return SchemaBuilder(strict=strict).build(sections, template_id, title)


def build_schema_from_transcript(
    text: str,
    template_id: str,
    title: Optional[str] = None,
    strict: Optional[bool] = None,
) -> TemplateSchema:
    """Segment a transcript and build its schema in one call."""
    parsed = SectionSegmenter(strict=strict).segment(text)
    return build_schema(parsed.sections, template_id, title, strict=strict)
