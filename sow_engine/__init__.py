"""SOW template engine: placeholder discovery, field schemas and document export."""

__version__ = "1.0.0"
