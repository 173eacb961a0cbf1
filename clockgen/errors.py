"""Exception hierarchy shared by the parser, validator, catalog and resolver."""

from typing import Optional


class ClockgenError(Exception):
    """Base class for every error raised by clockgen."""


class ParseError(ClockgenError):
    """Malformed schematic or operation source text.

    `line` and `column` are 1-based when the YAML reader could locate the
    problem; `location` holds the schema path for shape errors.
    """

    def __init__(self, message: str, line: Optional[int] = None,
                 column: Optional[int] = None, location: Optional[str] = None):
        super().__init__(message)
        self.line = line
        self.column = column
        self.location = location


class NamingError(ClockgenError):
    """Invalid characters in a name, or a name declared twice."""


class UnresolvedReferenceError(ClockgenError):
    """A name or default that does not refer to anything declared."""


class CatalogLookupError(UnresolvedReferenceError):
    """A field or register path that the register catalog does not contain."""

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class SizeError(ClockgenError):
    """A fixed value that does not fit in the width of its field."""

    def __init__(self, message: str, value: int, width: int, path: str,
                 component: Optional[str] = None):
        super().__init__(message)
        self.value = value
        self.width = width
        self.path = path
        self.component = component


class GraphError(ClockgenError):
    """The input relation of a schematic contains a loop."""


class UsageError(ClockgenError):
    """A field operation applied to a field it cannot act on."""
