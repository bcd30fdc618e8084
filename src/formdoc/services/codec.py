"""Encoding of extracted records into documents, and decoding back.

Both directions walk the same field mappings. Encoding applies each field's
transform, then its value dictionary, and writes the result at the field's
target path. Decoding reads the target path (falling back to the alternate
path), reverses the value dictionary, then reverses the transform.
"""

import json
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from formdoc.models.base import is_blank
from formdoc.models.diagnostics import GapCallback, ResolutionGap
from formdoc.models.enums import Direction, GapKind
from formdoc.models.metadata import FieldMapping, SectionMapping, ServiceMetadata
from formdoc.models.record import ExtractedRecord, FieldValues, SectionData
from formdoc.services.document_builder import DocumentBuilder, read_path
from formdoc.services.transformers import ISO_TIMESTAMP_FORMAT, TransformationRegistry

Clock = Callable[[], datetime]

TIMESTAMP_KEY = "timestamp"
ID_KEY = "id"
SERVICE_ID_KEY = "serviceId"
SERVICE_VERSION_KEY = "serviceVersion"
METADATA_VERSION_KEY = "metadataVersion"
TEST_DATA_KEY = "testData"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def wrap_test_data(document: dict[str, Any]) -> dict[str, Any]:
    """Wrap a document in the envelope accepted by test endpoints."""
    return {TEST_DATA_KEY: [document]}


def to_json(document: Any, indent: int | None = 2) -> str:
    return json.dumps(document, indent=indent, ensure_ascii=False)


class DocumentEncoder:
    """Builds a document from an ExtractedRecord."""

    def __init__(
        self,
        metadata: ServiceMetadata,
        registry: TransformationRegistry,
        logger: structlog.stdlib.BoundLogger | None = None,
        clock: Clock = utc_now,
        on_gap: GapCallback | None = None,
    ) -> None:
        self._metadata = metadata
        self._registry = registry
        self._logger = logger or structlog.get_logger(__name__)
        self._clock = clock
        self._on_gap = on_gap

    def encode(self, record: ExtractedRecord) -> dict[str, Any]:
        """Encode a record.

        Sections absent from the record are skipped. Trailing identity fields
        (timestamp, id, service identity) are always written.

        Args:
            record: The record to encode.

        Returns:
            The document as a plain nested dict.
        """
        builder = DocumentBuilder(logger=self._logger)

        for section in self._metadata.sections:
            data = record.section(section.name)
            if data is None:
                self._logger.debug("section_absent", section=section.name)
                continue

            if section.is_collection:
                self._encode_collection(section, data, builder)
            elif isinstance(data, dict):
                self._encode_fields(section, data, builder)
            else:
                self._logger.warning("section_shape_mismatch", section=section.name, expected="object")

        builder.set_value(TIMESTAMP_KEY, self._clock().astimezone(timezone.utc).strftime(ISO_TIMESTAMP_FORMAT))
        builder.set_value(ID_KEY, record.record_id)
        builder.set_value(SERVICE_ID_KEY, self._metadata.id)
        builder.set_value(SERVICE_VERSION_KEY, self._metadata.version)
        builder.set_value(METADATA_VERSION_KEY, self._metadata.schema_version)

        self._logger.info("document_encoded", service_id=self._metadata.id, record_id=record.record_id)
        return builder.to_dict()

    def _encode_collection(self, section: SectionMapping, data: SectionData, builder: DocumentBuilder) -> None:
        if not isinstance(data, list):
            self._logger.warning("section_shape_mismatch", section=section.name, expected="collection")
            return

        items: list[dict[str, Any]] = []
        for item in data:
            item_builder = DocumentBuilder(logger=self._logger)
            self._encode_fields(section, item, item_builder)
            items.append(item_builder.to_dict())
        builder.set_value(section.document_path, items)

    def _encode_fields(self, section: SectionMapping, values: FieldValues, builder: DocumentBuilder) -> None:
        for field in section.fields:
            value = values.get(field.source_id)
            if is_blank(value):
                if field.required:
                    self._missing_required(section, field)
                continue

            encoded = self._registry.encode(value, field.transform)
            encoded = self._registry.apply_value_map(encoded, field.value_map, Direction.ENCODE)
            builder.set_value(field.target_path, encoded)
            if field.type_annotation is not None:
                builder.set_value(field.type_annotation.path, field.type_annotation.value)

    def _missing_required(self, section: SectionMapping, field: FieldMapping) -> None:
        self._logger.warning("required_field_missing", section=section.name, field=field.source_id)
        if self._on_gap is not None:
            self._on_gap(
                ResolutionGap(
                    kind=GapKind.MISSING_REQUIRED,
                    section=section.name,
                    field=field.source_id,
                    detail=f"required field '{field.source_id}' has no value",
                )
            )


class DocumentDecoder:
    """Populates an ExtractedRecord from an inbound document."""

    def __init__(
        self,
        metadata: ServiceMetadata,
        registry: TransformationRegistry,
        logger: structlog.stdlib.BoundLogger | None = None,
        on_gap: GapCallback | None = None,
    ) -> None:
        self._metadata = metadata
        self._registry = registry
        self._logger = logger or structlog.get_logger(__name__)
        self._on_gap = on_gap

    def decode(self, document: dict[str, Any]) -> ExtractedRecord:
        sections: dict[str, SectionData] = {}

        for section in self._metadata.sections:
            if section.is_collection:
                items = read_path(document, section.document_path)
                if not isinstance(items, list):
                    continue
                decoded = [self._decode_fields(section, item) for item in items if isinstance(item, dict)]
                decoded = [values for values in decoded if values]
                if decoded:
                    sections[section.name] = decoded
            else:
                values = self._decode_fields(section, document)
                if values:
                    sections[section.name] = values

        record_id = document.get(ID_KEY)
        self._logger.info("document_decoded", service_id=self._metadata.id, record_id=record_id)
        return ExtractedRecord(record_id="" if record_id is None else str(record_id), sections=sections)

    def _decode_fields(self, section: SectionMapping, tree: dict[str, Any]) -> FieldValues:
        values: FieldValues = {}
        for field in section.fields:
            raw = read_path(tree, field.target_path)
            if raw is None and field.fallback_path is not None:
                raw = read_path(tree, field.fallback_path)
            if raw is None:
                if field.required:
                    self._missing_required(section, field)
                continue

            value = self._registry.apply_value_map(raw, field.value_map, Direction.DECODE)
            value = self._registry.decode(value, field.transform)
            if value is not None:
                values[field.source_id] = value
        return values

    def _missing_required(self, section: SectionMapping, field: FieldMapping) -> None:
        self._logger.warning("required_field_missing", section=section.name, field=field.source_id)
        if self._on_gap is not None:
            self._on_gap(
                ResolutionGap(
                    kind=GapKind.MISSING_REQUIRED,
                    section=section.name,
                    field=field.source_id,
                    detail=f"required field '{field.source_id}' not found in document",
                )
            )
