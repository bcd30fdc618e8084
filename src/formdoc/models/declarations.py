"""Strict deserializers for the two metadata documents.

The mapping declaration (one per service) names sections, field paths and
relational links. The structural declaration (shared) catalogs forms, their
tables, columns and grid relationships. Both are parsed from YAML into these
models before the loader merges them into ServiceMetadata.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from formdoc.models.base import ensure_optional_text
from formdoc.models.enums import SectionKind
from formdoc.models.metadata import RootDefaults

GRID_TRANSFORM = "grid"

_STRICT = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)
_LENIENT = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


def _yaml_key(key: Any) -> str:
    if isinstance(key, bool):
        return "yes" if key else "no"
    return str(key)


class TypeAnnotationDeclaration(BaseModel):
    path: str
    value: Any

    model_config = _STRICT


class FieldDeclaration(BaseModel):
    source: str | None = None
    target: str | None = None
    fallback_target: str | None = None
    transform: str | None = None
    value_map: dict[str, Any] | None = None
    required: bool = False
    type_annotation: TypeAnnotationDeclaration | None = None

    model_config = _STRICT

    @field_validator("source", "target", "fallback_target", "transform", mode="before")
    @classmethod
    def _normalize_text(cls, value: Any) -> str | None:
        return ensure_optional_text(value)

    @field_validator("value_map", mode="before")
    @classmethod
    def _stringify_keys(cls, value: Any) -> Any:
        # YAML reads unquoted keys such as 1 or yes as int/bool
        if isinstance(value, dict):
            return {_yaml_key(key): item for key, item in value.items()}
        return value

    @property
    def is_grid_link(self) -> bool:
        return (self.transform or "").lower() == GRID_TRANSFORM


class SectionDeclaration(BaseModel):
    kind: SectionKind = SectionKind.OBJECT
    table: str | None = None
    form: str | None = None
    reference_field: str | None = None
    from_root: bool = False
    grid: str | None = None
    parent_key: str | None = None
    document_path: str | None = None
    fields: list[FieldDeclaration] = Field(default_factory=list)

    model_config = _STRICT

    @field_validator("table", "form", "reference_field", "grid", "parent_key", "document_path", mode="before")
    @classmethod
    def _normalize_text(cls, value: Any) -> str | None:
        return ensure_optional_text(value)

    @field_validator("fields", mode="before")
    @classmethod
    def _coerce_fields(cls, value: Any) -> Any:
        return [] if value is None else value


class RootDeclaration(BaseModel):
    form: str | None = None
    table: str | None = None
    key_column: str | None = None
    defaults: RootDefaults = Field(default_factory=RootDefaults)

    model_config = _STRICT

    @field_validator("form", "table", "key_column", mode="before")
    @classmethod
    def _normalize_text(cls, value: Any) -> str | None:
        return ensure_optional_text(value)

    @field_validator("defaults", mode="before")
    @classmethod
    def _coerce_defaults(cls, value: Any) -> Any:
        return {} if value is None else value


class ServiceDeclaration(BaseModel):
    id: str | None = None
    name: str | None = None
    version: str | None = None
    schema_version: str | None = None
    root: RootDeclaration | None = None

    model_config = _STRICT

    @field_validator("version", "schema_version", mode="before")
    @classmethod
    def _stringify_versions(cls, value: Any) -> str | None:
        if value is None:
            return None
        return str(value)


class MappingDeclaration(BaseModel):
    service: ServiceDeclaration | None = None
    sections: dict[str, SectionDeclaration | None] = Field(default_factory=dict)

    model_config = _STRICT

    @field_validator("sections", mode="before")
    @classmethod
    def _coerce_sections(cls, value: Any) -> Any:
        return {} if value is None else value


class StructureFieldDeclaration(BaseModel):
    field_id: str | None = None
    column: str | None = None

    model_config = _LENIENT

    @field_validator("field_id", "column", mode="before")
    @classmethod
    def _normalize_text(cls, value: Any) -> str | None:
        return ensure_optional_text(value)


class StructureSectionDeclaration(BaseModel):
    fields: list[StructureFieldDeclaration] = Field(default_factory=list)

    model_config = _LENIENT


class GridDeclaration(BaseModel):
    grid_id: str
    sub_form_id: str | None = None
    foreign_key: str | None = None

    model_config = _LENIENT


class FormDeclaration(BaseModel):
    table_name: str | None = None
    root: bool = False
    fields: list[StructureFieldDeclaration] = Field(
        default_factory=list,
        validation_alias=AliasChoices("fields", "all_fields"),
    )
    sections: list[StructureSectionDeclaration] = Field(default_factory=list)
    grids: list[GridDeclaration] = Field(default_factory=list)

    model_config = _LENIENT

    def all_fields(self) -> list[StructureFieldDeclaration]:
        """Declared fields, falling back to the fields of every nested section."""
        if self.fields:
            return list(self.fields)
        collected: list[StructureFieldDeclaration] = []
        for section in self.sections:
            collected.extend(section.fields)
        return collected


class StructureDeclaration(BaseModel):
    forms: dict[str, FormDeclaration] = Field(default_factory=dict)

    model_config = _LENIENT

    @field_validator("forms", mode="before")
    @classmethod
    def _drop_empty_forms(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {name: form for name, form in value.items() if form is not None}
        return value

    def find_grid(self, grid_id: str) -> GridDeclaration | None:
        for form in self.forms.values():
            for grid in form.grids:
                if grid.grid_id == grid_id:
                    return grid
        return None

    def root_forms(self) -> list[str]:
        return [name for name, form in self.forms.items() if form.root]
