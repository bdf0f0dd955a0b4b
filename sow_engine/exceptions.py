"""
Exception types raised by the template engine.

Unresolved placeholders are not errors (the unfilled policy handles them) and
undecodable images are dropped with a warning, so neither appears here.
"""


class TemplateEngineError(Exception):
    """Base class for engine failures that should reach the caller."""


class MalformedContainerError(TemplateEngineError, ValueError):
    """Bytes handed to a ZIP-consuming step are not a ZIP/OOXML package."""

    def __init__(self, message: str, *, looks_like_text: bool = False) -> None:
        super().__init__(message)
        self.looks_like_text = looks_like_text


class SerializationInvariantError(TemplateEngineError, RuntimeError):
    """A generated container violates its own byte layout or wiring.

    This is a programming error: offsets, checksums or relationship ids that
    do not line up. Generation stops instead of returning a corrupt file.
    """
