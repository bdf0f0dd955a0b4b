"""Schema and value models for the SOW template engine."""
from sow_engine.models.schemas import (
    FieldSchema,
    FieldSource,
    FieldType,
    GeneratedDocument,
    ListField,
    ObjectField,
    ScalarField,
    TableColumn,
    TableField,
    TemplateSchema,
    TemplateType,
    iter_field_paths,
)
from sow_engine.models.value_store import (
    IMAGE_SLOTS,
    EmbeddedImage,
    Path,
    ValueStore,
    format_path,
    parse_path,
)

__all__ = [
    # Field schema
    "FieldSchema",
    "FieldSource",
    "FieldType",
    "ListField",
    "ObjectField",
    "ScalarField",
    "TableColumn",
    "TableField",
    "TemplateSchema",
    "TemplateType",
    "iter_field_paths",
    "GeneratedDocument",
    # Values
    "IMAGE_SLOTS",
    "EmbeddedImage",
    "Path",
    "ValueStore",
    "format_path",
    "parse_path",
]
