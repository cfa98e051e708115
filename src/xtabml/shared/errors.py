"""Exception hierarchy for XtabML parsing.

Every failure aborts the whole parse, so callers either receive a complete
document or exactly one of these exceptions.
"""

from typing import Optional


class XtabMLError(Exception):
    """Base exception for all XtabML parsing failures."""


class TokenError(XtabMLError):
    """The underlying token stream reported malformed markup."""

    def __init__(
        self,
        message: str,
        line: Optional[int] = None,
        column: Optional[int] = None
    ) -> None:
        if line is not None:
            message = f"{message} (line {line}, column {column})"
        super().__init__(message)
        self.line = line
        self.column = column


class StructuralError(XtabMLError):
    """A document invariant was violated.

    Attributes:
        table: Identifier of the offending table, when one was open
    """

    def __init__(self, message: str, table: Optional[str] = None) -> None:
        if table is not None:
            message = f"{message} [table: {table}]"
        super().__init__(message)
        self.table = table


class MissingElementError(XtabMLError):
    """A mandatory element is absent from the document."""

    def __init__(self, element: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Missing required element: <{element}>")
        self.element = element


class SourceIOError(XtabMLError):
    """The input location could not be read."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path
