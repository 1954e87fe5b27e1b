"""
Exception types.

Only structural problems raise. "Field not found", unknown employers,
duplicate files and control mismatches are ordinary results, not errors.
"""

from typing import Optional


class ReciboDocsError(Exception):
    pass


class StructuralParseError(ReciboDocsError):
    """The PDF (or one of its pages) could not be read."""

    def __init__(self, message: str, page_index: Optional[int] = None):
        self.page_index = page_index
        where = f" (page {page_index})" if page_index is not None else ""
        super().__init__(f"{message}{where}")


class OfficialImportError(ReciboDocsError):
    """The control spreadsheet is missing the columns we key on."""


class DuplicateFieldError(ReciboDocsError):
    """A marked field repeats (fieldName, conceptCode, columnIndex) within one rule."""


class UnknownFieldError(ReciboDocsError):
    pass
