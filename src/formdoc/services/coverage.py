"""Mapping coverage: how much of each section's catalog reaches the document."""

import structlog
from pydantic import BaseModel, Field

from formdoc.models.metadata import ServiceMetadata
from formdoc.services.transformers import TransformationRegistry

SYSTEM_FIELDS = frozenset(
    {
        "id",
        "dateCreated",
        "dateModified",
        "createdBy",
        "modifiedBy",
        "createdByName",
        "modifiedByName",
    }
)
LINK_FIELD_SUFFIXES = ("_id", "_key")


class UnknownTransform(BaseModel):
    section: str
    field: str
    transform: str

    model_config = {"frozen": True}


class SectionCoverage(BaseModel):
    section: str
    total_fields: int = Field(ge=0)
    mapped_fields: int = Field(ge=0)
    unmapped: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def coverage(self) -> float:
        if self.total_fields == 0:
            return 100.0
        return round(self.mapped_fields * 100.0 / self.total_fields, 1)


class CoverageReport(BaseModel):
    service_id: str
    sections: list[SectionCoverage] = Field(default_factory=list)
    unknown_transforms: list[UnknownTransform] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def total_fields(self) -> int:
        return sum(section.total_fields for section in self.sections)

    @property
    def mapped_fields(self) -> int:
        return sum(section.mapped_fields for section in self.sections)

    @property
    def coverage(self) -> float:
        if self.total_fields == 0:
            return 100.0
        return round(self.mapped_fields * 100.0 / self.total_fields, 1)

    @property
    def is_complete(self) -> bool:
        return not self.unknown_transforms and all(not section.unmapped for section in self.sections)


def is_system_field(field_id: str) -> bool:
    return field_id in SYSTEM_FIELDS or field_id.endswith(LINK_FIELD_SUFFIXES)


def build_coverage_report(
    metadata: ServiceMetadata,
    registry: TransformationRegistry,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> CoverageReport:
    """Compare every section's catalog with its field mappings.

    Args:
        metadata: Loaded service metadata.
        registry: Registry used to detect transforms nothing supports.
        logger: Optional structured logger.

    Returns:
        CoverageReport with per-section counts and unsupported transforms.
    """
    logger = logger or structlog.get_logger(__name__)

    sections: list[SectionCoverage] = []
    unknown: list[UnknownTransform] = []
    for section in metadata.sections:
        mapped_ids = {field.source_id for field in section.fields}
        candidates = [field.field_id for field in section.catalog if not is_system_field(field.field_id)]
        unmapped = [field_id for field_id in candidates if field_id not in mapped_ids]
        sections.append(
            SectionCoverage(
                section=section.name,
                total_fields=len(candidates),
                mapped_fields=len(candidates) - len(unmapped),
                unmapped=unmapped,
            )
        )

        for field in section.fields:
            if field.transform is not None and not registry.supports(field.transform):
                unknown.append(UnknownTransform(section=section.name, field=field.source_id, transform=field.transform))

    report = CoverageReport(service_id=metadata.id, sections=sections, unknown_transforms=unknown)
    logger.info(
        "coverage_report_built",
        service_id=metadata.id,
        coverage=report.coverage,
        unknown_transform_count=len(unknown),
    )
    return report
