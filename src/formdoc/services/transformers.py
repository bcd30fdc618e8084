"""Bidirectional value transformers and the registry that dispatches to them.

Encoding converts a stored form value into its document representation;
decoding converts a document value back into its stored form. The registry
applies the first transformer whose type keys match, passes values through when
nothing matches, and never lets a transformer failure reach the caller.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any, ClassVar

import structlog

from formdoc.models.base import is_blank
from formdoc.models.diagnostics import FaultCallback, GapCallback, ResolutionGap, TransformFault
from formdoc.models.enums import Direction, GapKind

ISO_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
_CALENDAR_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ValueTransformer(ABC):
    """Codec for one semantic value type."""

    type_keys: ClassVar[frozenset[str]] = frozenset()

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.get_logger(__name__)

    def supports(self, type_key: str) -> bool:
        return type_key.strip().lower() in self.type_keys

    @abstractmethod
    def encode(self, value: Any) -> Any:
        """Convert a stored value into its document form."""

    @abstractmethod
    def decode(self, value: Any) -> Any:
        """Convert a document value back into its stored form."""


class DateTransformer(ValueTransformer):
    """Calendar dates (YYYY-MM-DD) to ISO-8601 UTC timestamps and back."""

    type_keys = frozenset({"date", "date_iso8601", "dateiso8601"})

    def encode(self, value: Any) -> Any:
        if is_blank(value):
            return None
        if isinstance(value, datetime):
            return _format_utc(value)
        if isinstance(value, date):
            return _format_utc(datetime(value.year, value.month, value.day))

        text = str(value).strip()
        if _CALENDAR_DATE.match(text):
            parsed = date.fromisoformat(text)
            return _format_utc(datetime(parsed.year, parsed.month, parsed.day))
        try:
            # Accepts "T" or space separated timestamps.
            return _format_utc(datetime.fromisoformat(text))
        except ValueError:
            raise ValueError(f"unrecognized date: {text!r}") from None

    def decode(self, value: Any) -> Any:
        if is_blank(value):
            return None
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()

        text = str(value).strip()
        if _CALENDAR_DATE.match(text):
            return date.fromisoformat(text).isoformat()
        try:
            # Calendar portion as written; no timezone conversion.
            return datetime.fromisoformat(text).date().isoformat()
        except ValueError:
            raise ValueError(f"unrecognized date: {text!r}") from None


class BooleanTransformer(ValueTransformer):
    """yes/no style form tokens to JSON booleans and back."""

    type_keys = frozenset({"boolean", "bool", "yesnoboolean"})

    TRUTHY: ClassVar[frozenset[str]] = frozenset({"yes", "y", "true", "1", "checked", "on"})
    FALSY: ClassVar[frozenset[str]] = frozenset({"no", "n", "false", "0", "unchecked", "off", ""})

    def encode(self, value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, bool):
            return value

        token = str(value).strip().lower()
        if token in self.TRUTHY:
            return True
        if token not in self.FALSY:
            self._logger.warning("boolean_token_unrecognized", direction=Direction.ENCODE.value, value=token)
        return False

    def decode(self, value: Any) -> str:
        if value is None:
            return "no"
        if isinstance(value, bool):
            return "yes" if value else "no"

        token = str(value).strip().lower()
        if token in self.TRUTHY:
            return "yes"
        if token not in self.FALSY:
            self._logger.warning("boolean_token_unrecognized", direction=Direction.DECODE.value, value=token)
        return "no"


class NumericTransformer(ValueTransformer):
    type_keys = frozenset({"numeric", "number", "integer", "decimal", "double", "float"})

    def encode(self, value: Any) -> Any:
        if is_blank(value):
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value

        text = str(value).strip()
        if "." in text:
            return float(text)
        return int(text)

    def decode(self, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        return str(value)


class MultiValueTransformer(ValueTransformer):
    """Delimited multi-select strings to lists and back."""

    type_keys = frozenset({"multicheckbox", "multiselect", "array", "list"})

    SEPARATOR: ClassVar[str] = ";"

    def encode(self, value: Any) -> list[str]:
        if is_blank(value):
            return []
        if isinstance(value, (list, tuple)):
            items = [str(item) for item in value if item is not None]
        else:
            text = str(value).strip()
            delimiter = self.SEPARATOR if self.SEPARATOR in text else ","
            items = text.split(delimiter)
        return [item.strip() for item in items if item.strip()]

    def decode(self, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return self.SEPARATOR.join(str(item) for item in value if item is not None)

        text = str(value)
        if text.startswith("[") and text.endswith("]"):
            inner = text[1:-1].replace('"', "")
            return self.SEPARATOR.join(part.strip() for part in inner.split(","))
        return text


def default_transformers(logger: structlog.stdlib.BoundLogger | None = None) -> list[ValueTransformer]:
    return [
        DateTransformer(logger=logger),
        BooleanTransformer(logger=logger),
        NumericTransformer(logger=logger),
        MultiValueTransformer(logger=logger),
    ]


class TransformationRegistry:
    """Ordered, first-match registry of value transformers.

    Lookup is case-insensitive. When no transformer supports a type key the
    value passes through unchanged and a gap is reported. When a transformer
    raises ValueError or TypeError the original value is returned and a fault
    is reported.
    """

    def __init__(
        self,
        transformers: list[ValueTransformer] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
        on_gap: GapCallback | None = None,
        on_fault: FaultCallback | None = None,
    ) -> None:
        self._logger = logger or structlog.get_logger(__name__)
        self._transformers: list[ValueTransformer] = (
            list(transformers) if transformers is not None else default_transformers(self._logger)
        )
        self._on_gap = on_gap
        self._on_fault = on_fault

    @property
    def transformers(self) -> tuple[ValueTransformer, ...]:
        return tuple(self._transformers)

    def register(self, transformer: ValueTransformer) -> None:
        """Append a transformer; earlier registrations win on shared type keys."""
        self._transformers.append(transformer)
        self._logger.debug(
            "transformer_registered",
            transformer=type(transformer).__name__,
            type_keys=sorted(transformer.type_keys),
        )

    def find(self, type_key: str) -> ValueTransformer | None:
        for transformer in self._transformers:
            if transformer.supports(type_key):
                return transformer
        return None

    def supports(self, type_key: str | None) -> bool:
        if is_blank(type_key):
            return False
        return self.find(type_key) is not None

    def encode(self, value: Any, type_key: str | None) -> Any:
        return self._apply(value, type_key, Direction.ENCODE)

    def decode(self, value: Any, type_key: str | None) -> Any:
        return self._apply(value, type_key, Direction.DECODE)

    def apply_value_map(self, value: Any, value_map: Mapping[str, Any] | None, direction: Direction) -> Any:
        """Translate through an explicit value dictionary.

        Encoding looks the value up by key; decoding returns the first key whose
        value compares equal as a string. Unmatched values pass through.
        """
        if value is None or not value_map:
            return value

        if direction == Direction.ENCODE:
            text = str(value)
            if text in value_map:
                return value_map[text]
            return value

        text = _stringify(value)
        for key, mapped in value_map.items():
            if text == _stringify(mapped):
                return key
        return value

    def _apply(self, value: Any, type_key: str | None, direction: Direction) -> Any:
        if is_blank(type_key):
            return value

        transformer = self.find(type_key)
        if transformer is None:
            self._logger.warning("transformer_not_found", type_key=type_key, direction=direction.value)
            if self._on_gap is not None:
                self._on_gap(
                    ResolutionGap(
                        kind=GapKind.MISSING_TRANSFORMER,
                        detail=f"no transformer supports '{type_key}'",
                    )
                )
            return value

        try:
            if direction == Direction.ENCODE:
                return transformer.encode(value)
            return transformer.decode(value)
        except (ValueError, TypeError) as e:
            self._logger.warning(
                "transform_failed",
                type_key=type_key,
                direction=direction.value,
                value=value,
                error=str(e),
            )
            if self._on_fault is not None:
                self._on_fault(TransformFault(type_key=type_key, value=value, error=str(e)))
            return value


def _format_utc(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(ISO_TIMESTAMP_FORMAT)


def _stringify(value: Any) -> str:
    # JSON booleans read back as Python bools; compare in their JSON spelling
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
