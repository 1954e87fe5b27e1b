"""
PDF bytes -> positioned tokens (parser adapter).

- Uses pdfplumber to walk pages and words.
- Emits PositionedTokens in PDF space (origin bottom-left, y = baseline),
  plus the page size each token came from.
- Groups tokens into rows with the shared row tolerance; everything else
  (labels, amounts, employers) belongs to the extraction layer.

Any failure while reading a page is raised as StructuralParseError carrying
the page index, so one corrupt receipt can be reported and skipped.
"""

from __future__ import annotations

import io
from typing import List, Union

import pdfplumber

from app.models.schemas import PageText, ParsedDocument, PositionedToken
from app.services.errors import StructuralParseError
from app.util.layout import group_rows
from app.util.logger import get_logger
from app.util.settings import get_settings

PdfSource = Union[str, bytes]


def _page_tokens(page, page_number: int) -> List[PositionedToken]:
    words = page.extract_words(
        keep_blank_chars=False,
        x_tolerance=2,    # horizontal merge tolerance
        y_tolerance=3,    # vertical grouping tolerance
        extra_attrs=["size"],
    ) or []
    height = float(page.height)
    tokens: List[PositionedToken] = []
    for w in words:
        text = (w.get("text") or "").strip()
        if not text:
            continue
        tokens.append(PositionedToken(
            text=text,
            x=float(w["x0"]),
            y=height - float(w["bottom"]),
            width=float(w["x1"]) - float(w["x0"]),
            height=float(w["bottom"]) - float(w["top"]),
            font_size=float(w.get("size") or 0) or None,
            page=page_number,
        ))
    return tokens


def parse_with_pdfplumber(source: PdfSource, filename: str = "") -> ParsedDocument:
    """
    Read a PDF (path or raw bytes) into a ParsedDocument.

    Notes/assumptions:
    - Page numbers are 1-based.
    - Rows are grouped per page, top to bottom.

    Raises:
        StructuralParseError: the file can't be opened or a page can't be read.
    """
    logger = get_logger()
    name = filename or (source if isinstance(source, str) else "<bytes>")
    logger.info(f"Starting PDF parsing for: {name}")

    handle = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    try:
        pdf = pdfplumber.open(handle)
    except Exception as e:
        logger.error(f"Error opening PDF {name}: {str(e)}")
        raise StructuralParseError(f"Cannot open PDF {name}: {e}") from e

    pages: List[PageText] = []
    with pdf:
        try:
            page_list = pdf.pages
        except Exception as e:
            logger.error(f"Error listing pages of {name}: {str(e)}")
            raise StructuralParseError(f"Cannot read pages of {name}: {e}") from e
        logger.info(f"Opened PDF with {len(page_list)} pages")
        for p_idx, page in enumerate(page_list, start=1):
            try:
                tokens = _page_tokens(page, p_idx)
            except Exception as e:
                logger.error(f"Error reading page {p_idx} of {name}: {str(e)}")
                raise StructuralParseError(f"Cannot read text of {name}: {e}", page_index=p_idx) from e
            logger.debug(f"Page {p_idx}: extracted {len(tokens)} tokens")
            pages.append(PageText(
                page_number=p_idx,
                width=float(page.width),
                height=float(page.height),
                tokens=tokens,
            ))

    tol = get_settings().row_tolerance
    rows = []
    for p in pages:
        rows.extend(group_rows(p.tokens, y_tol=tol))

    logger.info(f"Successfully parsed PDF: {sum(len(p.tokens) for p in pages)} tokens, {len(rows)} rows")
    return ParsedDocument(filename=filename, pages=pages, rows=rows)
