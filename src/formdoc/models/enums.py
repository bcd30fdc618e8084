from enum import StrEnum


class SectionKind(StrEnum):
    OBJECT = "object"
    COLLECTION = "collection"


class Direction(StrEnum):
    ENCODE = "encode"
    DECODE = "decode"


class MergeStrategy(StrEnum):
    """How structural and mapping declarations combine into the field catalog."""

    UNION = "union"
    STRUCTURE = "structure"


class GapKind(StrEnum):
    UNRESOLVED_KEY = "unresolved_key"
    MISSING_TRANSFORMER = "missing_transformer"
    MISSING_REQUIRED = "missing_required"
    MISSING_CONFIG = "missing_config"
