from typing import Any, ClassVar, Mapping

from pydantic import Field, field_validator

from formdoc.models.base import RecordModel
from formdoc.models.metadata import RESERVED_ID_KEY

FieldValues = dict[str, Any]
SectionData = FieldValues | list[FieldValues]


class ExtractedRecord(RecordModel):
    """Multi-section record assembled by the extractor or the decoder.

    Object sections hold a flat field map; collection sections hold a list of
    flat field maps. Instances are built once per call and never shared.
    """

    SCHEMA_VERSION: ClassVar[str] = "extracted_record.v1"

    schema_version: str = Field(default=SCHEMA_VERSION)
    record_id: str
    sections: dict[str, SectionData] = Field(default_factory=dict)

    @field_validator("sections")
    @classmethod
    def _reject_reserved_key(cls, value: dict[str, SectionData]) -> dict[str, SectionData]:
        if RESERVED_ID_KEY in value:
            raise ValueError(f"'{RESERVED_ID_KEY}' is reserved for the record id")
        return value

    def section(self, name: str) -> SectionData | None:
        return self.sections.get(name)

    def is_empty(self) -> bool:
        return not self.sections

    def to_mapping(self) -> dict[str, Any]:
        """Render as a plain map with the record id under the reserved key."""
        return {RESERVED_ID_KEY: self.record_id, **self.sections}

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ExtractedRecord":
        sections = {key: value for key, value in data.items() if key != RESERVED_ID_KEY}
        record_id = data.get(RESERVED_ID_KEY)
        return cls(record_id="" if record_id is None else str(record_id), sections=sections)


__all__ = ["ExtractedRecord", "FieldValues", "SectionData"]
