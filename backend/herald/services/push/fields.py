"""
Field path access for key/value documents.

A path is either a plain key present in the document, or a sequence of
segments written with dots and brackets:

    profile.devices[0].token
    settings["push.tokens"]
    groups['admins'][2]
"""

import re
from typing import Any, List, Mapping, Optional, Sequence, Union

PathSegment = Union[str, int]

_SEGMENT_PATTERN = re.compile(
    r"""
    \[\s*(?P<index>-?\d+)\s*\]             # [0]
    | \[\s*"(?P<dq>[^"]*)"\s*\]            # ["key"]
    | \[\s*'(?P<sq>[^']*)'\s*\]            # ['key']
    | (?P<name>[^.\[\]]+)                  # key
    | (?P<dot>\.)
    """,
    re.VERBOSE,
)


class FieldPathError(ValueError):
    """Raised when a field path cannot be parsed."""
    pass


def parse_field_path(path: str) -> List[PathSegment]:
    """
    Split a dotted/bracketed field path into segments.

    Args:
        path: Field path such as ``a.b[0]["c"]``

    Returns:
        List of string keys and integer indexes

    Raises:
        FieldPathError: On empty paths, empty segments or stray brackets
    """
    if not path:
        raise FieldPathError("Field path must not be empty")

    segments: List[PathSegment] = []
    position = 0
    expect_name = True  # a dot must be followed by a name
    while position < len(path):
        match = _SEGMENT_PATTERN.match(path, position)
        if match is None:
            raise FieldPathError(f"Invalid field path: {path!r}")
        if match.group("dot"):
            if expect_name:
                raise FieldPathError(f"Empty segment in field path: {path!r}")
            expect_name = True
        elif match.group("index") is not None:
            if position == 0:
                raise FieldPathError(f"Field path cannot start with an index: {path!r}")
            segments.append(int(match.group("index")))
            expect_name = False
        elif match.group("dq") is not None:
            segments.append(match.group("dq"))
            expect_name = False
        elif match.group("sq") is not None:
            segments.append(match.group("sq"))
            expect_name = False
        else:
            segments.append(match.group("name").strip())
            expect_name = False
        position = match.end()

    if expect_name:
        raise FieldPathError(f"Field path ends with a separator: {path!r}")
    return segments


def get_segment(value: Any, segment: PathSegment, default: Any = None) -> Any:
    """Read one segment from a mapping or a sequence."""
    if isinstance(segment, int):
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            try:
                return value[segment]
            except IndexError:
                return default
        if isinstance(value, Mapping):
            return value.get(str(segment), default)
        return default

    if isinstance(value, Mapping):
        return value.get(segment, default)
    return default


class FieldAccessor:
    """
    Resolves field paths within documents.

    Shape-agnostic: returns whatever the path points at. Callers that need
    device tokens normalize the result themselves.

    Usage:
        accessor = FieldAccessor()
        accessor.get({"user": {"tokens": ["t1"]}}, "user.tokens")  # ["t1"]
    """

    _MISSING = object()

    def get(self, document: Optional[Mapping[str, Any]], field_path: str, default: Any = None) -> Any:
        """
        Read the value at ``field_path``.

        A key that exists literally in the document takes precedence over
        path parsing, so keys containing dots stay addressable.

        Args:
            document: Document data
            field_path: Plain key or dotted/bracketed path
            default: Returned when any segment is absent

        Returns:
            The value found, or ``default``
        """
        if document is None:
            return default
        if field_path in document:
            return document[field_path]

        try:
            segments = parse_field_path(field_path)
        except FieldPathError:
            return default

        current: Any = document
        for segment in segments:
            current = get_segment(current, segment, self._MISSING)
            if current is self._MISSING:
                return default
        return current

    def has(self, document: Optional[Mapping[str, Any]], field_path: str) -> bool:
        """True when every segment of the path is present (even if None)."""
        return self.get(document, field_path, self._MISSING) is not self._MISSING


# Shared accessor; FieldAccessor holds no state
field_accessor = FieldAccessor()
