"""Error taxonomy for analyses.

Every per-unit failure derives from ``JscoError`` so batch callers can return
errors as values next to successful reports.
"""


class JscoError(Exception):
    """Base class for errors tied to one source unit."""

    kind = "error"

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message

    def __reduce__(self):
        # Rebuild from (source, message) when crossing a process boundary.
        return (type(self), (self.source, self.message), self.__dict__)


class LoadError(JscoError):
    """The source could not be read or fetched (missing file, network failure, timeout)."""

    kind = "load"


class ParseError(JscoError):
    """The source is not well-formed for its language."""

    kind = "parse"

    def __init__(self, source: str, message: str, line: int | None = None, column: int | None = None) -> None:
        super().__init__(source, message)
        self.line = line
        self.column = column


class ParseTimeoutError(ParseError):
    """The parse+detect stage exceeded its timeout."""


class CacheError(Exception):
    """A cache store failed to read, write or (de)serialize a record. Never fatal."""
