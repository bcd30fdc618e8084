from formdoc.models.diagnostics import ResolutionGap, TransformFault
from formdoc.models.enums import Direction, GapKind, MergeStrategy, SectionKind
from formdoc.models.metadata import (
    CatalogField,
    FieldMapping,
    RootDefaults,
    RootEntity,
    SectionMapping,
    ServiceMetadata,
    TypeAnnotation,
)
from formdoc.models.record import ExtractedRecord

__all__ = [
    "CatalogField",
    "Direction",
    "ExtractedRecord",
    "FieldMapping",
    "GapKind",
    "MergeStrategy",
    "ResolutionGap",
    "RootDefaults",
    "RootEntity",
    "SectionKind",
    "SectionMapping",
    "ServiceMetadata",
    "TransformFault",
    "TypeAnnotation",
]
