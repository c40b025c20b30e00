"""Null-safe, multi-alias field reader over semi-structured records.

Upstream responses name the same field differently across endpoints
(``videoId`` / ``id`` / ``vid``). Callers list the aliases in priority order
and take the first one that exists with the expected type.

Example:
    ex = FieldExtractor(raw)
    title = ex.get_string("title", "snippet.title")
    views = ex.get_number("views", "stats.viewCount")
    first_thumb = ex.get_string("thumbnails.0.url")
"""

import math
from typing import Any, Mapping, Optional, Union

# Decoded-JSON value: null, bool, number, string, list or mapping of the same
SemiStructured = Union[
    None, bool, int, float, str, list["SemiStructured"], dict[str, "SemiStructured"]
]

_MISSING = object()


class FieldExtractor:
    """Typed lookups over a nested mapping. Never raises for data reasons."""

    def __init__(self, data: Any = None):
        self._data = data if isinstance(data, Mapping) else {}

    @property
    def data(self) -> Mapping[str, Any]:
        return self._data

    def get_value(self, path: str) -> Any:
        """Walk a dot-separated path; ``None`` when any segment is missing.

        Integer segments index into lists (``"thumbnails.0.url"``).
        """
        value = self._walk(path)
        return None if value is _MISSING else value

    def get_string(self, *paths: str) -> str:
        """First non-blank string among ``paths``, stripped; else ``""``."""
        for path in paths:
            value = self._walk(path)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return ""

    def get_number(self, *paths: str) -> float | int:
        """First finite int/float among ``paths``; else ``0``.

        Booleans are not numbers here.
        """
        for path in paths:
            value = self._walk(path)
            if isinstance(value, bool):
                continue
            if isinstance(value, int):
                return value
            if isinstance(value, float) and math.isfinite(value):
                return value
        return 0

    def get_array(self, *paths: str) -> list[Any]:
        """First list among ``paths``; else an empty list."""
        for path in paths:
            value = self._walk(path)
            if isinstance(value, list):
                return value
        return []

    def get_bool(self, *paths: str) -> bool:
        """First bool among ``paths``; else ``False``."""
        for path in paths:
            value = self._walk(path)
            if isinstance(value, bool):
                return value
        return False

    def get_optional_bool(self, *paths: str) -> Optional[bool]:
        """Like get_bool, but ``None`` when no alias holds a bool."""
        for path in paths:
            value = self._walk(path)
            if isinstance(value, bool):
                return value
        return None

    def get_mapping(self, *paths: str) -> dict[str, Any]:
        """First mapping among ``paths``; else an empty dict."""
        for path in paths:
            value = self._walk(path)
            if isinstance(value, Mapping):
                return dict(value)
        return {}

    def child(self, *paths: str) -> "FieldExtractor":
        """Extractor over the first nested mapping among ``paths``."""
        return FieldExtractor(self.get_mapping(*paths))

    def _walk(self, path: str) -> Any:
        current: Any = self._data
        for segment in path.split("."):
            if isinstance(current, Mapping):
                if segment not in current:
                    return _MISSING
                current = current[segment]
            elif isinstance(current, list) and segment.lstrip("-").isdigit():
                index = int(segment)
                if not -len(current) <= index < len(current):
                    return _MISSING
                current = current[index]
            else:
                return _MISSING
        return current
