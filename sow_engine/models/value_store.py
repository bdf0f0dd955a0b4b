"""
Nested value store addressed by dotted / bracket paths, plus image slots.

A path such as ``authorization_signatures.client_signature_name`` or
``deliverables[0].name`` is parsed once into a ``Path`` (a tuple of string
keys and integer indexes) and resolved against nested dicts and lists.
"""
from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

Key = Union[str, int]
Path = Tuple[Key, ...]

_SEGMENT_RE = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

IMAGE_SLOTS = ("logo", "signature")


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def parse_path(path: Union[str, Path]) -> Path:
    """Parse ``a.b[0].c`` into ``("a", "b", 0, "c")``. Tuples pass through."""
    if isinstance(path, tuple):
        return path
    text = str(path).strip()
    if not text:
        raise ValueError("Empty value path")
    parts = []
    pos = 0
    for match in _SEGMENT_RE.finditer(text):
        gap = text[pos:match.start()]
        if gap not in ("", "."):
            raise ValueError(f"Malformed value path: {path!r}")
        name, index = match.groups()
        parts.append(int(index) if index is not None else name)
        pos = match.end()
    if text[pos:]:
        raise ValueError(f"Malformed value path: {path!r}")
    return tuple(parts)


def format_path(path: Path) -> str:
    """Inverse of parse_path."""
    out = ""
    for part in path:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else part
    return out


@dataclass(frozen=True)
class EmbeddedImage:
    """Decoded image bytes ready to be embedded in a document."""

    data: bytes
    ext: str            # png, jpeg, gif, ...
    mime: str           # image/png, ...
    width_px: int
    height_px: int
    name: str = "image"


@dataclass
class ValueStore:
    """User-supplied values keyed to match schema key / dotted-path conventions."""

    values: Dict[str, Any] = field(default_factory=dict)
    images: Dict[str, EmbeddedImage] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Path access
    # ------------------------------------------------------------------

    def get(self, path: Union[str, Path], default: Any = None) -> Any:
        """Resolve a path; returns *default* when any segment is missing."""
        found = self._lookup(parse_path(path))
        return default if found is MISSING else found

    def has(self, path: Union[str, Path]) -> bool:
        return self._lookup(parse_path(path)) is not MISSING

    def set(self, path: Union[str, Path], value: Any) -> None:
        """Assign a value, creating intermediate dicts / lists as needed."""
        parts = parse_path(path)
        if not isinstance(parts[0], str):
            raise ValueError("A value path must start with a key, not an index")
        cursor: Any = self.values
        for part, nxt in zip(parts, parts[1:]):
            child = _child(cursor, part)
            if child is MISSING or child is None:
                child = [] if isinstance(nxt, int) else {}
                _assign(cursor, part, child)
            cursor = child
        _assign(cursor, parts[-1], value)

    def _lookup(self, parts: Path) -> Any:
        cursor: Any = self.values
        for part in parts:
            cursor = _child(cursor, part)
            if cursor is MISSING:
                return MISSING
        return cursor

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_mapping(
        cls,
        values: Optional[Mapping[str, Any]] = None,
        images: Optional[Mapping[str, EmbeddedImage]] = None,
    ) -> "ValueStore":
        """Build a store from plain nested data (copied, never aliased)."""
        return cls(
            values=copy.deepcopy(dict(values or {})),
            images={k: v for k, v in (images or {}).items() if v is not None},
        )

    def image(self, slot: str) -> Optional[EmbeddedImage]:
        return self.images.get(slot)


def _child(container: Any, part: Key) -> Any:
    if isinstance(part, int):
        if isinstance(container, list) and 0 <= part < len(container):
            return container[part]
        return MISSING
    if isinstance(container, Mapping) and part in container:
        return container[part]
    return MISSING


def _assign(container: Any, part: Key, value: Any) -> None:
    if isinstance(part, int):
        if not isinstance(container, list):
            raise TypeError(f"Cannot index {type(container).__name__} with [{part}]")
        while len(container) <= part:
            container.append(None)
        container[part] = value
    else:
        if not isinstance(container, dict):
            raise TypeError(f"Cannot set key {part!r} on {type(container).__name__}")
        container[part] = value
