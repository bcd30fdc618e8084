"""Typed, immutable metadata produced by the loader.

These models are the merged view of the mapping and structural declarations.
They are built once per service and shared read-only by extractors and codecs.
"""

from typing import Any

from pydantic import Field, ValidationInfo, field_validator, model_validator

from formdoc.models.base import FrozenModel, ensure_non_empty_text, ensure_optional_text
from formdoc.models.enums import SectionKind

RESERVED_ID_KEY = "id"


class CatalogField(FrozenModel):
    """A field known to storage: logical id plus its physical column."""

    field_id: str
    column: str | None = None

    @field_validator("field_id")
    @classmethod
    def _ensure_field_id(cls, value: str) -> str:
        return ensure_non_empty_text(value, "field_id")

    @field_validator("column", mode="before")
    @classmethod
    def _normalize_column(cls, value: Any) -> str | None:
        return ensure_optional_text(value)


class TypeAnnotation(FrozenModel):
    """Literal value written next to a field, e.g. an identifier type tag."""

    path: str
    value: Any

    @field_validator("path")
    @classmethod
    def _ensure_path(cls, value: str) -> str:
        return ensure_non_empty_text(value, "path")


class FieldMapping(FrozenModel):
    source_id: str
    target_path: str
    fallback_path: str | None = None
    transform: str | None = None
    value_map: dict[str, Any] = Field(default_factory=dict)
    required: bool = False
    type_annotation: TypeAnnotation | None = None

    @field_validator("source_id", "target_path")
    @classmethod
    def _ensure_non_empty(cls, value: str, info: ValidationInfo) -> str:
        return ensure_non_empty_text(value, info.field_name or "value")

    @field_validator("fallback_path", "transform", mode="before")
    @classmethod
    def _normalize_optional(cls, value: Any) -> str | None:
        return ensure_optional_text(value)

    @field_validator("value_map", mode="before")
    @classmethod
    def _stringify_keys(cls, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("value_map must be a dictionary")
        return {str(key): item for key, item in value.items()}


class SectionMapping(FrozenModel):
    name: str
    kind: SectionKind
    table: str | None = None
    form: str | None = None
    fields: tuple[FieldMapping, ...] = ()
    catalog: tuple[CatalogField, ...] = ()
    reference_field: str | None = None
    from_root: bool = False
    grid: str | None = None
    grid_links: tuple[str, ...] = ()
    parent_key: str | None = None
    foreign_key_column: str | None = None
    document_path: str | None = None

    @field_validator("name")
    @classmethod
    def _ensure_name(cls, value: str) -> str:
        ensure_non_empty_text(value, "name")
        if value == RESERVED_ID_KEY:
            raise ValueError(f"section name '{RESERVED_ID_KEY}' is reserved for the record id")
        return value

    @model_validator(mode="after")
    def _validate_collection_path(self) -> "SectionMapping":
        if self.kind == SectionKind.COLLECTION and not self.document_path:
            raise ValueError(f"collection section '{self.name}' requires a document_path")
        return self

    @property
    def is_collection(self) -> bool:
        return self.kind == SectionKind.COLLECTION

    def column_for(self, field_id: str) -> str | None:
        for catalog_field in self.catalog:
            if catalog_field.field_id == field_id:
                return catalog_field.column
        return None


class RootDefaults(FrozenModel):
    grid_parent_column: str | None = None


class RootEntity(FrozenModel):
    """The table and form anchoring the record graph."""

    form: str
    table: str
    key_column: str = RESERVED_ID_KEY
    defaults: RootDefaults = Field(default_factory=RootDefaults)
    catalog: tuple[CatalogField, ...] = ()

    @field_validator("form", "table", "key_column")
    @classmethod
    def _ensure_non_empty(cls, value: str, info: ValidationInfo) -> str:
        return ensure_non_empty_text(value, info.field_name or "value")

    def column_for(self, field_id: str) -> str | None:
        for catalog_field in self.catalog:
            if catalog_field.field_id == field_id:
                return catalog_field.column
        return None


class ServiceMetadata(FrozenModel):
    id: str
    name: str | None = None
    version: str | None = None
    schema_version: str | None = None
    root: RootEntity
    sections: tuple[SectionMapping, ...] = ()

    @field_validator("id")
    @classmethod
    def _ensure_id(cls, value: str) -> str:
        return ensure_non_empty_text(value, "id")

    @model_validator(mode="after")
    def _validate_unique_sections(self) -> "ServiceMetadata":
        names = [section.name for section in self.sections]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate section names: {', '.join(duplicates)}")
        return self

    def section(self, name: str) -> SectionMapping | None:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def grid_owner(self, collection: SectionMapping) -> SectionMapping | None:
        """Return the object section that declares this collection under a grid field."""
        grid_name = collection.grid or collection.name
        for section in self.sections:
            if section.is_collection:
                continue
            if grid_name in section.grid_links:
                return section
        return None

    def grid_collection_for(self, section: SectionMapping) -> SectionMapping | None:
        """Return a collection section whose grid link names this section."""
        for candidate in self.sections:
            if candidate.is_collection and candidate.grid == section.name:
                return candidate
        return None


__all__ = [
    "RESERVED_ID_KEY",
    "CatalogField",
    "FieldMapping",
    "RootDefaults",
    "RootEntity",
    "SectionMapping",
    "ServiceMetadata",
    "TypeAnnotation",
]
