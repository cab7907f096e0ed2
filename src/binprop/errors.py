"""
Error taxonomy for binprop.

Every codec failure is raised as a subclass of BinPropError. Errors are
recoverable per file: a batch front end catches BinPropError, records it
and moves on to the next file.

Each error can carry a ``location`` describing where in the source it
happened:
    - binary codec: absolute byte offset (int)
    - text codec: (line, column)
    - JSON codec: JSON path string such as "$.entries[0].fields[2]"
"""

from typing import Any, Optional


class BinPropError(Exception):
    """Base class for all binprop errors."""

    def __init__(self, message: str, location: Any = None):
        self.message = message
        self.location = location
        super().__init__(self._format())

    def _format(self) -> str:
        if self.location is None:
            return self.message
        if isinstance(self.location, int):
            return f"{self.message} (at offset 0x{self.location:x})"
        return f"{self.message} (at {self.location})"

    def at(self, location: Any) -> "BinPropError":
        """Attach a location if none is set yet and return self."""
        if self.location is None:
            self.location = location
            self.args = (self._format(),)
        return self


class TruncatedInput(BinPropError):
    """Fewer bytes remain than a field demands."""

    def __init__(self, needed: int, available: int, location: Optional[int] = None):
        self.needed = needed
        self.available = available
        super().__init__(
            f"truncated input: need {needed} byte(s), {available} available",
            location,
        )


class UnknownMagic(BinPropError):
    def __init__(self, magic: bytes, location: Optional[int] = 0):
        self.magic = magic
        super().__init__(f"unknown magic {magic!r}", location)


class UnsupportedVersion(BinPropError):
    def __init__(self, version: int, location: Optional[int] = None):
        self.version = version
        super().__init__(f"unsupported version {version}", location)


class UnknownTypeTag(BinPropError):
    def __init__(self, tag: Any, location: Any = None):
        self.tag = tag
        shown = f"0x{tag:02x}" if isinstance(tag, int) else repr(tag)
        super().__init__(f"unknown type tag {shown}", location)


class TypeMismatch(BinPropError):
    """A value does not match the tag or range it is declared with."""
    pass


class DuplicateFieldName(BinPropError):
    def __init__(self, name_hash: int, location: Any = None):
        self.name_hash = name_hash
        super().__init__(f"duplicate field name 0x{name_hash:08x}", location)


class DuplicateMapKey(BinPropError):
    def __init__(self, key: Any, location: Any = None):
        self.key = key
        super().__init__(f"duplicate map key {key!r}", location)


class TextSyntaxError(BinPropError):
    """
    Malformed text input.

    Carries the 1-based line and column of the offending token and a short
    description of what the parser expected there.
    """

    def __init__(self, line: int, column: int, expected: str, found: str = ""):
        self.line = line
        self.column = column
        self.expected = expected
        self.found = found
        message = f"expected {expected}"
        if found:
            message += f", found {found}"
        super().__init__(message, f"line {line}, column {column}")


class SchemaViolation(BinPropError):
    """JSON input whose shape disagrees with the tagged-value convention."""
    pass


class EncodingError(BinPropError):
    """A string payload is not valid UTF-8 or cannot be encoded."""
    pass


__all__ = [
    "BinPropError",
    "TruncatedInput",
    "UnknownMagic",
    "UnsupportedVersion",
    "UnknownTypeTag",
    "TypeMismatch",
    "DuplicateFieldName",
    "DuplicateMapKey",
    "TextSyntaxError",
    "SchemaViolation",
    "EncodingError",
]
