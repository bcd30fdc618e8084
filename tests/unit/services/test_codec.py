"""Unit tests for DocumentEncoder and DocumentDecoder."""

import json
from datetime import datetime, timedelta, timezone

from formdoc.models.diagnostics import ResolutionGap, TransformFault
from formdoc.models.enums import GapKind, SectionKind
from formdoc.models.metadata import (
    FieldMapping,
    RootEntity,
    SectionMapping,
    ServiceMetadata,
    TypeAnnotation,
)
from formdoc.models.record import ExtractedRecord
from formdoc.services.codec import DocumentDecoder, DocumentEncoder, to_json, wrap_test_data
from formdoc.services.transformers import TransformationRegistry

_NOW = datetime(2024, 5, 6, 10, 8, 9, tzinfo=timezone(timedelta(hours=3)))


def _make_metadata(*sections: SectionMapping) -> ServiceMetadata:
    return ServiceMetadata(
        id="svc",
        version="3",
        schema_version="1.0",
        root=RootEntity(form="registration", table="registration"),
        sections=sections,
    )


def _section_a() -> SectionMapping:
    return SectionMapping(
        name="sectionA",
        kind=SectionKind.OBJECT,
        table="a",
        fields=(
            FieldMapping(source_id="f1", target_path="x.flag", transform="boolean"),
            FieldMapping(source_id="f2", target_path="x.when", transform="date"),
        ),
    )


def _make_codec(
    metadata: ServiceMetadata,
) -> tuple[DocumentEncoder, DocumentDecoder, list[ResolutionGap], list[TransformFault]]:
    gaps: list[ResolutionGap] = []
    faults: list[TransformFault] = []
    registry = TransformationRegistry(on_gap=gaps.append, on_fault=faults.append)
    encoder = DocumentEncoder(metadata=metadata, registry=registry, clock=lambda: _NOW, on_gap=gaps.append)
    decoder = DocumentDecoder(metadata=metadata, registry=registry, on_gap=gaps.append)
    return encoder, decoder, gaps, faults


class TestDocumentEncoder:
    def test_boolean_and_date_fields_round_trip(self) -> None:
        encoder, decoder, _, _ = _make_codec(_make_metadata(_section_a()))
        record = ExtractedRecord(record_id="R1", sections={"sectionA": {"f1": "yes", "f2": "2024-03-01"}})

        document = encoder.encode(record)

        assert document["x"] == {"flag": True, "when": "2024-03-01T00:00:00Z"}
        assert decoder.decode(document).section("sectionA") == {"f1": "yes", "f2": "2024-03-01"}

    def test_trailing_identity_fields(self) -> None:
        encoder, _, _, _ = _make_codec(_make_metadata(_section_a()))

        document = encoder.encode(ExtractedRecord(record_id="R1"))

        assert document == {
            "timestamp": "2024-05-06T07:08:09Z",
            "id": "R1",
            "serviceId": "svc",
            "serviceVersion": "3",
            "metadataVersion": "1.0",
        }
        assert list(document)[-1] == "metadataVersion"

    def test_missing_required_field_reports_gap_and_keeps_other_fields(self) -> None:
        section = SectionMapping(
            name="applicant",
            kind=SectionKind.OBJECT,
            table="applicant",
            fields=(
                FieldMapping(source_id="name", target_path="applicant.name", required=True),
                FieldMapping(source_id="age", target_path="applicant.age", transform="numeric"),
            ),
        )
        encoder, _, gaps, _ = _make_codec(_make_metadata(section))

        document = encoder.encode(ExtractedRecord(record_id="R1", sections={"applicant": {"name": " ", "age": "4"}}))

        assert document["applicant"] == {"age": 4}
        assert [(gap.kind, gap.section, gap.field) for gap in gaps] == [
            (GapKind.MISSING_REQUIRED, "applicant", "name")
        ]

    def test_value_map_and_type_annotation(self) -> None:
        section = SectionMapping(
            name="person",
            kind=SectionKind.OBJECT,
            table="person",
            fields=(
                FieldMapping(source_id="sex", target_path="person.sex", value_map={"1": "male", "2": "female"}),
                FieldMapping(
                    source_id="nid",
                    target_path="person.ids[0].value",
                    type_annotation=TypeAnnotation(path="person.ids[0].type", value="NATIONAL_ID"),
                ),
            ),
        )
        encoder, _, _, _ = _make_codec(_make_metadata(section))

        document = encoder.encode(ExtractedRecord(record_id="R1", sections={"person": {"sex": "2", "nid": "99"}}))

        assert document["person"] == {"sex": "female", "ids": [{"value": "99", "type": "NATIONAL_ID"}]}

    def test_collection_items_are_built_relative_to_document_path(self) -> None:
        section = SectionMapping(
            name="members",
            kind=SectionKind.COLLECTION,
            table="member",
            document_path="household.members",
            fields=(
                FieldMapping(source_id="name", target_path="name.full"),
                FieldMapping(source_id="age", target_path="age", transform="integer"),
            ),
        )
        encoder, _, _, _ = _make_codec(_make_metadata(section))
        record = ExtractedRecord(
            record_id="R1",
            sections={"members": [{"name": "Juma", "age": "34"}, {"name": "Neema"}]},
        )

        document = encoder.encode(record)

        assert document["household"]["members"] == [{"name": {"full": "Juma"}, "age": 34}, {"name": {"full": "Neema"}}]

    def test_absent_sections_are_skipped(self) -> None:
        section = SectionMapping(
            name="members",
            kind=SectionKind.COLLECTION,
            table="member",
            document_path="household.members",
            fields=(FieldMapping(source_id="name", target_path="name"),),
        )
        encoder, _, gaps, _ = _make_codec(_make_metadata(_section_a(), section))

        document = encoder.encode(ExtractedRecord(record_id="R1"))

        assert "x" not in document
        assert "household" not in document
        assert gaps == []

    def test_failing_transform_passes_value_through(self) -> None:
        encoder, _, _, faults = _make_codec(_make_metadata(_section_a()))

        document = encoder.encode(
            ExtractedRecord(record_id="R1", sections={"sectionA": {"f1": "yes", "f2": "not a date"}})
        )

        assert document["x"] == {"flag": True, "when": "not a date"}
        assert [fault.type_key for fault in faults] == ["date"]

    def test_shape_mismatch_skips_section(self) -> None:
        encoder, _, _, _ = _make_codec(_make_metadata(_section_a()))

        document = encoder.encode(ExtractedRecord(record_id="R1", sections={"sectionA": [{"f1": "yes"}]}))

        assert "x" not in document


class TestDocumentDecoder:
    def test_fallback_path_is_used_when_primary_is_absent(self) -> None:
        section = SectionMapping(
            name="applicant",
            kind=SectionKind.OBJECT,
            table="applicant",
            fields=(
                FieldMapping(
                    source_id="registered",
                    target_path="applicant.registeredOn",
                    fallback_path="registrationDate",
                    transform="date",
                ),
            ),
        )
        _, decoder, _, _ = _make_codec(_make_metadata(section))

        legacy = decoder.decode({"id": "R1", "registrationDate": "2024-03-01T00:00:00Z"})
        both = decoder.decode(
            {"id": "R1", "applicant": {"registeredOn": "2024-04-02"}, "registrationDate": "2024-03-01"}
        )

        assert legacy.section("applicant") == {"registered": "2024-03-01"}
        assert both.section("applicant") == {"registered": "2024-04-02"}

    def test_value_map_is_reversed_before_transform(self) -> None:
        section = SectionMapping(
            name="household",
            kind=SectionKind.OBJECT,
            table="household",
            fields=(
                FieldMapping(source_id="district", target_path="district", value_map={"D1": "Northern"}),
                FieldMapping(source_id="sources", target_path="sources", transform="multiselect"),
            ),
        )
        _, decoder, _, _ = _make_codec(_make_metadata(section))

        record = decoder.decode({"id": 5, "district": "Northern", "sources": ["well", "river"]})

        assert record.record_id == "5"
        assert record.section("household") == {"district": "D1", "sources": "well;river"}

    def test_collections_decode_into_lists(self) -> None:
        section = SectionMapping(
            name="members",
            kind=SectionKind.COLLECTION,
            table="member",
            document_path="household.members",
            fields=(FieldMapping(source_id="age", target_path="age", transform="numeric"),),
        )
        _, decoder, _, _ = _make_codec(_make_metadata(section))

        record = decoder.decode({"id": "R1", "household": {"members": [{"age": 34}, "junk", {}]}})

        assert record.section("members") == [{"age": "34"}]

    def test_missing_required_field_is_reported(self) -> None:
        section = SectionMapping(
            name="applicant",
            kind=SectionKind.OBJECT,
            table="applicant",
            fields=(FieldMapping(source_id="name", target_path="applicant.name", required=True),),
        )
        _, decoder, gaps, _ = _make_codec(_make_metadata(section))

        record = decoder.decode({"id": "R1"})

        assert record.is_empty()
        assert gaps[0].kind == GapKind.MISSING_REQUIRED


class TestHelpers:
    def test_wrap_test_data(self) -> None:
        assert wrap_test_data({"id": "R1"}) == {"testData": [{"id": "R1"}]}

    def test_to_json_is_pretty(self) -> None:
        rendered = to_json({"a": ["é"]})

        assert "\n" in rendered
        assert json.loads(rendered) == {"a": ["é"]}
