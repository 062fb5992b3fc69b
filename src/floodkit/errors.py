"""Error taxonomy for floodkit.

Fatal conditions raise:
- FormatError: malformed grid header or missing required keys
- TranslationError: invalid topology reference or degenerate rain series

Recoverable conditions never raise. They are logged and recorded as
PartialDataWarning instances on the returned object's ``diagnostics`` list.
"""

from __future__ import annotations


class FloodkitError(Exception):
    """Base class for all floodkit errors."""


class FormatError(FloodkitError, ValueError):
    """Raised when input text does not follow the expected format.

    Attributes:
        key: Offending header key or token, if known.
    """

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class TranslationError(FloodkitError, ValueError):
    """Raised when inputs cannot be rendered into a solver format.

    Attributes:
        ident: Offending node, edge, or series identifier, if known.
    """

    def __init__(self, message: str, ident: str | None = None) -> None:
        super().__init__(message)
        self.ident = ident


class PartialDataWarning(UserWarning):
    """Diagnostic for partially recovered data.

    Attributes:
        row: Line number or row identifier the diagnostic refers to, if any.
    """

    def __init__(self, message: str, row: int | str | None = None) -> None:
        super().__init__(message)
        self.row = row

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""
