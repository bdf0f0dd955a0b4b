"""
Value resolution and merging for both export paths.

Exact substitution rewrites ``[...]`` / ``<...>`` tokens inside a transcript
(or template paragraph) using a ``resolve(label, key)`` callable. Structured
substitution walks a TemplateSchema in order and renders one line group per
field, so every field shows up even when nobody answered it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Any, Callable, List, Mapping, Optional

from sow_engine.config import settings
from sow_engine.models.schemas import (
    FieldType,
    ListField,
    ObjectField,
    ScalarField,
    TableField,
    TemplateSchema,
)
from sow_engine.models.value_store import MISSING, ValueStore, parse_path
from sow_engine.utils.helpers import (
    collapse_whitespace,
    format_currency,
    format_date,
    normalize_key,
)

logger = logging.getLogger(__name__)

Resolver = Callable[[str, str], Optional[str]]

# One scan over both delimiters so substituted text is never re-scanned
TOKEN_RE = re.compile(r"\[([^\]\n]+)\]|<([^>\n]+)>")

AUTHORIZATION_KEY = "authorization_signatures"
_SIGNATURE_PREFIXES = ("supplier_signature_", "client_signature_")

# Placeholder keys commonly used in templates -> where the form stores them
KEY_ALIASES: Mapping[str, str] = MappingProxyType({
    "client_name": "client_company_name",
    "company_name": "client_company_name",
    "supplier_name": "vendor_name",
    "start_date": "project_duration.start_date",
    "end_date": "project_duration.end_date",
    "scope_of_work": "scope",
})

INDENT = "    "


# ----------------------------------------------------------------------------
# Unfilled policy
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class UnfilledPolicy:
    """What replaces a placeholder that resolved to nothing.

    ``marker=None`` keeps the original token text; any string (including an
    explicitly configured empty string) is used as the blank fill.
    """

    marker: Optional[str] = None

    @classmethod
    def keep_original_token(cls) -> "UnfilledPolicy":
        return cls(marker=None)

    @classmethod
    def blank_fill(cls, marker: Optional[str] = None) -> "UnfilledPolicy":
        return cls(marker=settings.BLANK_FILL_MARKER if marker is None else marker)

    @classmethod
    def from_settings(cls) -> "UnfilledPolicy":
        if settings.KEEP_UNFILLED_TOKENS:
            return cls.keep_original_token()
        return cls.blank_fill()

    @property
    def keeps_token(self) -> bool:
        return self.marker is None

    def fill(self, token_text: str) -> str:
        return token_text if self.marker is None else self.marker


# ----------------------------------------------------------------------------
# Exact substitution
# ----------------------------------------------------------------------------

def stringify_value(value: Any) -> str:
    """Flatten a stored value to display text.

    Lists join with ``", "``, mappings become ``key: value`` pairs joined
    with ``"; "`` and None becomes the empty string.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, date):
        return format_date(value, settings.DATE_OUTPUT_FORMAT)
    if isinstance(value, (list, tuple)):
        return ", ".join(s for s in (stringify_value(v) for v in value) if s)
    if isinstance(value, Mapping):
        return "; ".join(f"{k}: {stringify_value(v)}" for k, v in value.items())
    return str(value)


def build_resolver(store: ValueStore) -> Resolver:
    """
    Build the ``resolve(label, key)`` callable used by exact substitution.

    Lookup order: exact key, authorization sub-object (full key, then the key
    without its supplier_/client_ prefix), then the static alias table.
    Nothing else is searched; empty values count as unresolved.

    Args:
        store: Captured form values.

    Returns:
        Resolver returning display text or None.
    """

    def candidates(key: str):
        yield store.get((key,), MISSING)
        auth = store.get((AUTHORIZATION_KEY,))
        if isinstance(auth, Mapping):
            yield auth.get(key, MISSING)
            if key.startswith(_SIGNATURE_PREFIXES):
                yield auth.get(key.split("_", 1)[1], MISSING)
        alias = KEY_ALIASES.get(key)
        if alias:
            yield store.get(parse_path(alias), MISSING)

    def resolve(label: str, key: str) -> Optional[str]:
        key = key or normalize_key(label)
        if not key:
            return None
        for value in candidates(key):
            if value is MISSING:
                continue
            text = stringify_value(value)
            if text:
                return text
        return None

    return resolve


def interpolate_transcript(text: str, resolve: Resolver, policy: Optional[UnfilledPolicy] = None) -> str:
    """
    Replace every placeholder token in *text*.

    Args:
        text:    Transcript or paragraph text.
        resolve: ``resolve(label, key)`` returning display text or None.
        policy:  Unfilled policy; defaults to the configured one.

    Returns:
        Text with resolved values substituted and unresolved tokens handled
        per policy. Everything outside the tokens is left untouched.
    """
    policy = policy or UnfilledPolicy.from_settings()
    unresolved = 0

    def replace(match: re.Match) -> str:
        nonlocal unresolved
        label = collapse_whitespace(match.group(1) or match.group(2))
        key = normalize_key(label)
        if not key:
            return match.group(0)
        value = resolve(label, key)
        if value:
            return value
        unresolved += 1
        return policy.fill(match.group(0))

    merged = TOKEN_RE.sub(replace, str(text or ""))
    if unresolved:
        logger.debug("%d placeholders left unfilled (keep_token=%s)", unresolved, policy.keeps_token)
    return merged


# ----------------------------------------------------------------------------
# Structured substitution
# ----------------------------------------------------------------------------

@dataclass
class FieldRow:
    """One rendered line of the structured field listing."""

    path: str
    label: str
    value: str = ""
    depth: int = 0
    is_group: bool = False   # label-only header for object/list/table children
    is_item: bool = False    # list item / table row under a group header
    filled: bool = True

    def render(self) -> str:
        pad = INDENT * self.depth
        if self.is_item:
            return f"{pad}{self.value}"
        if self.is_group:
            return f"{pad}{self.label}:"
        return f"{pad}{self.label}: {self.value}"


class StructuredRenderer:
    """Formats schema fields from a ValueStore."""

    def __init__(
        self,
        blank: Optional[str] = None,
        date_format: Optional[str] = None,
        currency_symbol: Optional[str] = None,
    ) -> None:
        self.blank = settings.EMPTY_FIELD_MARKER if blank is None else blank
        self.date_format = date_format or settings.DATE_OUTPUT_FORMAT
        self.currency_symbol = settings.CURRENCY_SYMBOL if currency_symbol is None else currency_symbol

    def rows(self, schema: TemplateSchema, store: ValueStore) -> List[FieldRow]:
        out: List[FieldRow] = []
        for field in schema.fields:
            self._field_rows(field, store, (), 0, out)
        return out

    def format_scalar(self, field_type: FieldType, value: Any) -> str:
        if value is None or value is MISSING:
            return ""
        if field_type == FieldType.DATE:
            return format_date(value, self.date_format)
        if field_type == FieldType.CURRENCY:
            return format_currency(value, self.currency_symbol)
        return stringify_value(value)

    def _field_rows(self, field, store: ValueStore, parent: tuple, depth: int, out: List[FieldRow]) -> None:
        path = parent + (field.key,)
        dotted = ".".join(path)
        value = store.get(path)
        if value is None and parent:
            # Grouped fields may also be captured flat at the top level
            value = store.get((field.key,))

        if isinstance(field, ScalarField):
            text = self.format_scalar(field.type, value)
            out.append(FieldRow(dotted, field.label, text or self.blank, depth, filled=bool(text)))
        elif isinstance(field, ObjectField):
            out.append(FieldRow(dotted, field.label, depth=depth, is_group=True))
            for prop in field.properties:
                self._field_rows(prop, store, path, depth + 1, out)
        elif isinstance(field, ListField):
            items = _list_items(value)
            if not items:
                out.append(FieldRow(dotted, field.label, self.blank, depth, filled=False))
                return
            out.append(FieldRow(dotted, field.label, depth=depth, is_group=True))
            for item in items:
                out.append(FieldRow(dotted, field.item_label, f"- {item}", depth + 1, is_item=True))
        elif isinstance(field, TableField):
            records = [r for r in (value or []) if isinstance(r, Mapping)] if isinstance(value, list) else []
            if not records:
                out.append(FieldRow(dotted, field.label, self.blank, depth, filled=False))
                return
            out.append(FieldRow(dotted, field.label, depth=depth, is_group=True))
            for record in records:
                cells = []
                for column in field.columns:
                    cell = self.format_scalar(column.type, record.get(column.key))
                    cells.append(f"{column.label}: {cell or self.blank}")
                out.append(FieldRow(dotted, field.label, "; ".join(cells), depth + 1, is_item=True))
        else:
            raise TypeError(f"Unknown field schema variant: {type(field).__name__}")


def _list_items(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    if isinstance(value, (list, tuple)):
        return [s for s in (stringify_value(v).strip() for v in value) if s]
    text = stringify_value(value).strip()
    return [text] if text else []


def build_field_rows(schema: TemplateSchema, store: ValueStore, blank: Optional[str] = None) -> List[FieldRow]:
    """Rows for every schema field in document order (empties use *blank*)."""
    return StructuredRenderer(blank=blank).rows(schema, store)


def render_field_lines(schema: TemplateSchema, store: ValueStore, blank: Optional[str] = None) -> List[str]:
    """
    Render the structured field listing as plain text lines.

    Multi-line values continue on indented lines below their label.
    """
    lines: List[str] = []
    for row in build_field_rows(schema, store, blank):
        first, *rest = row.render().split("\n")
        lines.append(first)
        pad = INDENT * (row.depth + 1)
        lines.extend(f"{pad}{extra.strip()}" for extra in rest if extra.strip())
    return lines
