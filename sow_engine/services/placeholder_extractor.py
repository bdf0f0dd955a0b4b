"""
Placeholder discovery for plain-text document transcripts.

Fill-in points are written in the source document as ``[Client Name]`` or
``<Supplier>``. Each token is reduced to a stable snake-case key and given a
semantic type from keywords in its label (and, more weakly, in the line that
contains it). Only tokens literally present in the text are returned.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from sow_engine.models.schemas import FieldSource, FieldType, TemplateType
from sow_engine.utils.helpers import collapse_whitespace, normalize_key

logger = logging.getLogger(__name__)

BRACKET_RE = re.compile(r"\[([^\]\n]+)\]")
ANGLE_RE = re.compile(r"<([^>\n]+)>")
PLACEHOLDER_PATTERNS = (BRACKET_RE, ANGLE_RE)


@dataclass
class PlaceholderToken:
    """A fill-in point discovered in a transcript."""

    raw_label: str
    normalized_key: str
    inferred_type: FieldType
    source_section: Optional[str] = None
    source: FieldSource = FieldSource.AUTO

    @property
    def label(self) -> str:
        return self.raw_label

    @property
    def key(self) -> str:
        return self.normalized_key


def infer_type(label: str, context_line: str = "") -> FieldType:
    """Classify a placeholder by keywords in its label and surrounding line."""
    lab = (label or "").lower()
    ctx = (context_line or "").lower()
    if "date" in lab or "date:" in ctx:
        return FieldType.DATE
    if "email" in lab:
        return FieldType.EMAIL
    if any(word in lab for word in ("rate", "budget", "cost", "payment")):
        return FieldType.CURRENCY
    if "description" in lab or "scope" in lab:
        return FieldType.TEXTAREA
    if re.search(r"charges|payment|change control", ctx):
        return FieldType.TEXTAREA
    return FieldType.TEXT


def iter_token_matches(line: str) -> Iterator[Tuple[re.Match, str]]:
    """Yield (match, cleaned_label) for every placeholder on one line, left to right."""
    matches = [m for pattern in PLACEHOLDER_PATTERNS for m in pattern.finditer(line)]
    matches.sort(key=lambda m: m.start())
    for match in matches:
        label = collapse_whitespace(match.group(1))
        if label:
            yield match, label


def extract_line_placeholders(line: str, section: Optional[str] = None) -> List[PlaceholderToken]:
    """Placeholders on a single line, in order, without de-duplication."""
    return [
        PlaceholderToken(
            raw_label=label,
            normalized_key=normalize_key(label),
            inferred_type=infer_type(label, line),
            source_section=section,
        )
        for _match, label in iter_token_matches(line)
        if normalize_key(label)
    ]


def extract_placeholders(text: str) -> List[PlaceholderToken]:
    """
    Scan a transcript for ``[...]`` and ``<...>`` placeholders.

    Args:
        text: Transcript text.

    Returns:
        Tokens in first-seen order, de-duplicated by normalized key (the
        first occurrence's label and type win).
    """
    seen = {}
    for line in str(text or "").splitlines():
        for token in extract_line_placeholders(line):
            if token.normalized_key not in seen:
                seen[token.normalized_key] = token
    logger.debug("Extracted %d unique placeholders", len(seen))
    return list(seen.values())


def detect_template_type(text: str) -> TemplateType:
    """Guess the commercial model of a SOW transcript (metadata only)."""
    lc = str(text or "").lower()
    if "time & materials" in lc or "t&m" in lc:
        return TemplateType.TIME_AND_MATERIALS
    if "fixed price" in lc:
        return TemplateType.FIXED_PRICE
    return TemplateType.UNKNOWN
