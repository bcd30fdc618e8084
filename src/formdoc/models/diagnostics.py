"""Non-fatal diagnostics reported while extracting, encoding or decoding.

Gaps and faults never interrupt a call. They are logged and, when a caller
supplies a callback, delivered to it so data-quality problems can be counted.
"""

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict

from formdoc.models.enums import GapKind


class ResolutionGap(BaseModel):
    kind: GapKind
    section: str | None = None
    field: str | None = None
    detail: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")


class TransformFault(BaseModel):
    type_key: str
    value: Any = None
    error: str

    model_config = ConfigDict(frozen=True, extra="forbid")


GapCallback = Callable[[ResolutionGap], None]
FaultCallback = Callable[[TransformFault], None]


__all__ = ["FaultCallback", "GapCallback", "ResolutionGap", "TransformFault"]
