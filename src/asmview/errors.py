"""Exception types raised by asmview.

Parsing errors never escape the loader: they are caught there and turned
into "no container produced".  They are public so that callers driving a
single backend directly can tell a malformed buffer from a bug.
"""


class AsmviewError(Exception):
    """Base class for all asmview errors."""


class ObjectFormatError(AsmviewError):
    """A buffer could not be parsed as an object file of the requested format."""


class ArchiveError(ObjectFormatError, ValueError):
    """A buffer is not a valid ``ar`` archive."""
