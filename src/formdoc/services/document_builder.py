"""Path-addressed builder for nested JSON-like documents.

Paths are dot-separated segments; a segment may carry a trailing bracketed
index (``address[0].city``) addressing an element of the array held at that
segment. Writes auto-vivify intermediate containers, replacing values of the
wrong type.
"""

import json
import re
from collections.abc import Mapping
from typing import Any, NamedTuple

import structlog
from pydantic_core import to_jsonable_python

DocumentValue = str | bool | int | float | None | list["DocumentValue"] | dict[str, "DocumentValue"]

_SEGMENT = re.compile(r"^(?P<name>[^\[\]]+)(?:\[(?P<index>\d+)\])?$")

_MISSING = object()


class PathSegment(NamedTuple):
    name: str
    index: int | None = None


def parse_path(path: str) -> list[PathSegment]:
    """Split a path into segments.

    Args:
        path: Dotted path, e.g. ``a.b[1].c``.

    Returns:
        One PathSegment per dot-separated part.

    Raises:
        ValueError: If the path is empty or a segment is malformed.
    """
    if not path or not path.strip():
        raise ValueError("path cannot be empty")

    segments: list[PathSegment] = []
    for raw in path.split("."):
        match = _SEGMENT.match(raw.strip())
        if match is None:
            raise ValueError(f"malformed path segment {raw!r} in {path!r}")
        index = match.group("index")
        segments.append(PathSegment(match.group("name"), int(index) if index is not None else None))
    return segments


def coerce_value(value: Any) -> DocumentValue:
    """Convert a value into the closed set of types a document may hold."""
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (list, tuple)):
        return [coerce_value(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): coerce_value(item) for key, item in value.items()}
    return to_jsonable_python(value)


def read_path(tree: Any, path: str, default: Any = None) -> Any:
    """Navigate ``tree`` by ``path`` without modifying it."""
    try:
        segments = parse_path(path)
    except ValueError:
        return default

    current = tree
    for segment in segments:
        if not isinstance(current, dict) or segment.name not in current:
            return default
        current = current[segment.name]
        if segment.index is not None:
            if not isinstance(current, list) or segment.index >= len(current):
                return default
            current = current[segment.index]
    return current


class DocumentBuilder:
    """Mutable document tree for one encode call."""

    def __init__(
        self,
        root: dict[str, Any] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._root: dict[str, Any] = root if root is not None else {}
        self._logger = logger or structlog.get_logger(__name__)

    def set_value(self, path: str, value: Any) -> None:
        """Write ``value`` at ``path``, creating intermediate containers.

        None values are ignored. Writing twice to the same path overwrites.
        """
        if value is None:
            return

        try:
            segments = parse_path(path)
        except ValueError as e:
            self._logger.warning("document_path_invalid", path=path, error=str(e))
            return

        current = self._root
        for segment in segments[:-1]:
            current = self._descend(current, segment)

        last = segments[-1]
        coerced = coerce_value(value)
        if last.index is None:
            current[last.name] = coerced
            return

        array = current.get(last.name)
        if not isinstance(array, list):
            array = []
            current[last.name] = array
        while len(array) < last.index + 1:
            array.append(None)
        array.pop(last.index)
        array.insert(last.index, coerced)

    def get_value(self, path: str, default: Any = None) -> Any:
        return read_path(self._root, path, default)

    def has_value(self, path: str) -> bool:
        return read_path(self._root, path, _MISSING) is not _MISSING

    def to_dict(self) -> dict[str, Any]:
        return self._root

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self._root, indent=indent, ensure_ascii=False)

    @staticmethod
    def _descend(node: dict[str, Any], segment: PathSegment) -> dict[str, Any]:
        if segment.index is None:
            child = node.get(segment.name)
            if not isinstance(child, dict):
                child = {}
                node[segment.name] = child
            return child

        array = node.get(segment.name)
        if not isinstance(array, list):
            array = []
            node[segment.name] = array
        while len(array) < segment.index + 1:
            array.append({})
        element = array[segment.index]
        if not isinstance(element, dict):
            element = {}
            array[segment.index] = element
        return element
