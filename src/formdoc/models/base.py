from typing import Any, ClassVar, Mapping, Type, TypeVar

from pydantic import BaseModel, ConfigDict, model_validator

T_Model = TypeVar("T_Model", bound="RecordModel")


class FrozenModel(BaseModel):
    """Immutable model that rejects unknown fields."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class SchemaVersioned(FrozenModel):
    """Base class enforcing schema_version defaults and immutability."""

    SCHEMA_VERSION: ClassVar[str]
    schema_version: str

    @model_validator(mode="before")
    @classmethod
    def _apply_default_schema_version(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            if "schema_version" not in data:
                data = dict(data)
                data["schema_version"] = cls.SCHEMA_VERSION
        return data

    @model_validator(mode="after")
    def _validate_schema_version(self) -> "SchemaVersioned":
        if self.schema_version != self.SCHEMA_VERSION:
            raise ValueError(f"expected schema_version '{self.SCHEMA_VERSION}'")
        return self


class RecordModel(SchemaVersioned):
    """Adds serialization helpers for storage and CLI output."""

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_record(cls: Type[T_Model], data: Mapping[str, Any] | BaseModel) -> T_Model:
        return cls.model_validate(data)


def ensure_non_empty_text(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    if not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value


def ensure_optional_text(value: Any) -> str | None:
    """Normalize blank strings to None; leave other strings untouched."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("expected a string or None")
    return value if value.strip() else None


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty after stripping."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()
