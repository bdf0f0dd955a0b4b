"""
Pydantic schemas for the declarative field schema exposed to form controllers.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Annotated, Iterator, List, Literal, Optional, Tuple, Union
from enum import Enum


class FieldType(str, Enum):
    """Semantic value types for scalar fields."""

    TEXT = "text"
    DATE = "date"
    EMAIL = "email"
    CURRENCY = "currency"
    TEXTAREA = "textarea"
    # Section-level types produced by the segmenter
    LIST = "list"
    OBJECT = "object"


class FieldSource(str, Enum):
    """Where a section field came from."""

    AUTO = "auto"          # literal placeholder in the transcript
    INFERRED = "inferred"  # synthesized by section heuristics


class TemplateType(str, Enum):
    """Commercial model detected from transcript vocabulary."""

    TIME_AND_MATERIALS = "T&M"
    FIXED_PRICE = "Fixed Price"
    UNKNOWN = "Unknown"


# Field schema variants
class ScalarField(BaseModel):
    """A single typed input."""

    kind: Literal["scalar"] = "scalar"
    key: str = Field(..., min_length=1)
    label: str
    type: FieldType = FieldType.TEXT

    model_config = ConfigDict(frozen=True)


class ListField(BaseModel):
    """An ordered list of free-text items."""

    kind: Literal["list"] = "list"
    key: str = Field(..., min_length=1)
    label: str
    item_label: str = "Item"

    model_config = ConfigDict(frozen=True)


class TableColumn(BaseModel):
    """One column of a table field."""

    key: str = Field(..., min_length=1)
    label: str
    type: FieldType = FieldType.TEXT

    model_config = ConfigDict(frozen=True)


class TableField(BaseModel):
    """Rows of values sharing the same columns."""

    kind: Literal["table"] = "table"
    key: str = Field(..., min_length=1)
    label: str
    columns: Tuple[TableColumn, ...] = ()

    model_config = ConfigDict(frozen=True)


class ObjectField(BaseModel):
    """A group of sub-fields addressed as ``parent.child``."""

    kind: Literal["object"] = "object"
    key: str = Field(..., min_length=1)
    label: str
    properties: Tuple["FieldSchema", ...] = ()

    model_config = ConfigDict(frozen=True)


FieldSchema = Annotated[
    Union[ScalarField, ObjectField, ListField, TableField],
    Field(discriminator="kind"),
]

ObjectField.model_rebuild()


class TemplateSchema(BaseModel):
    """Ordered, typed description of every field a template exposes."""

    id: str
    title: str
    fields: List[FieldSchema] = Field(default_factory=list)

    def field_paths(self) -> List[str]:
        """Dotted paths of every addressable leaf field, in document order."""
        return [path for path, _ in iter_field_paths(self.fields)]

    def find(self, key: str) -> Optional[BaseModel]:
        """Return the top-level field with this key, if any."""
        for field in self.fields:
            if field.key == key:
                return field
        return None


def iter_field_paths(
    fields, prefix: str = ""
) -> Iterator[Tuple[str, Union[ScalarField, ListField, TableField]]]:
    """Yield (dotted_path, field) for every non-object field, depth first."""
    for field in fields:
        path = f"{prefix}{field.key}"
        if isinstance(field, ObjectField):
            yield from iter_field_paths(field.properties, prefix=f"{path}.")
        elif isinstance(field, (ScalarField, ListField, TableField)):
            yield path, field
        else:
            raise TypeError(f"Unknown field schema variant: {type(field).__name__}")


# Export payloads
class GeneratedDocument(BaseModel):
    """A finished export handed to the delivery layer."""

    content: bytes
    filename: str
    media_type: str

    @property
    def size(self) -> int:
        return len(self.content)
