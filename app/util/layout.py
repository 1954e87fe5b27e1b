"""
Layout helpers (pure geometry/position math).

- group_rows(tokens, y_tol): cluster tokens into visual rows.
- debug_lines(rows): compact row dump kept alongside every parse result.
- token_box(token): approximate glyph box (font size x char count when the
  extractor gave us no real width).
- Coordinate transforms between the three spaces a marked region lives in:
    relative  (0..1, origin top-left, what gets persisted)
    canvas    (pixels of the page rendered at `render_scale`, origin top-left)
    pdf       (page units, origin bottom-left, y grows upward)

All region math goes through the transform functions here; nothing else in
the codebase flips y or divides by a render scale.
"""

from __future__ import annotations

from typing import Iterable, List, NamedTuple, Tuple

from app.models.schemas import DebugLine, PositionedToken, TextRow

ROW_TOLERANCE = 2.5
DEBUG_LINE_LIMIT = 150

# Glyph-box estimate when the extractor has no widths
CHAR_WIDTH_FACTOR = 0.6
LINE_HEIGHT_FACTOR = 1.2
DEFAULT_FONT_SIZE = 10.0


class PdfRegion(NamedTuple):
    x_min: float
    y_min: float
    x_max: float
    y_max: float

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.x_min + self.x_max) / 2.0, (self.y_min + self.y_max) / 2.0)

    def contains(self, x: float, y: float, tol: float = 0.0) -> bool:
        return (self.x_min - tol <= x <= self.x_max + tol
                and self.y_min - tol <= y <= self.y_max + tol)


class RelativeRect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


# ---------- rows ----------

def group_rows(tokens: Iterable[PositionedToken], y_tol: float = ROW_TOLERANCE) -> List[TextRow]:
    """
    Top-to-bottom rows; a token joins the first row whose mean y is within
    y_tol. Input order does not matter (tokens are sorted first), so the same
    page always yields the same rows.
    """
    ordered = sorted(tokens, key=lambda t: (t.page, -t.y, t.x))
    rows: List[List[PositionedToken]] = []
    for tok in ordered:
        placed = False
        for row in rows:
            if row[0].page != tok.page:
                continue
            avg_y = sum(t.y for t in row) / len(row)
            if abs(avg_y - tok.y) <= y_tol:
                row.append(tok)
                placed = True
                break
        if not placed:
            rows.append([tok])

    out: List[TextRow] = []
    for row in rows:
        row.sort(key=lambda t: t.x)
        out.append(TextRow(
            y=sum(t.y for t in row) / len(row),
            page=row[0].page,
            tokens=row,
        ))
    return out


def debug_lines(rows: List[TextRow], limit: int = DEBUG_LINE_LIMIT) -> List[DebugLine]:
    return [
        DebugLine(
            y=round(r.y),
            text=r.text,
            tokens=[{"str": t.text, "x": round(t.x), "y": round(t.y)} for t in r.tokens],
        )
        for r in rows[:limit]
    ]


# ---------- token geometry ----------

def token_box(tok: PositionedToken) -> Tuple[float, float, float, float]:
    """(x1, y1, x2, y2) in PDF space, y1 = baseline."""
    size = tok.font_size or tok.height or DEFAULT_FONT_SIZE
    width = tok.width if tok.width is not None else size * len(tok.text) * CHAR_WIDTH_FACTOR
    height = tok.height if tok.height is not None else size * LINE_HEIGHT_FACTOR
    return (tok.x, tok.y, tok.x + width, tok.y + height)


def token_center(tok: PositionedToken) -> Tuple[float, float]:
    x1, y1, x2, y2 = token_box(tok)
    return ((x1 + x2) / 2.0, (y1 + y2) / 2.0)


# ---------- coordinate transforms ----------

def canvas_rect_to_relative(cx: float, cy: float, cw: float, ch: float,
                            page_width: float, page_height: float,
                            render_scale: float) -> RelativeRect:
    """A rectangle drawn on the rendered canvas -> relative rect."""
    vw = page_width * render_scale
    vh = page_height * render_scale
    return RelativeRect(cx / vw, cy / vh, cw / vw, ch / vh)


def relative_to_canvas(rect: RelativeRect, page_width: float, page_height: float,
                       render_scale: float) -> RelativeRect:
    vw = page_width * render_scale
    vh = page_height * render_scale
    return RelativeRect(rect.x * vw, rect.y * vh, rect.width * vw, rect.height * vh)


def canvas_to_pdf(cx: float, cy: float, page_height: float, render_scale: float) -> Tuple[float, float]:
    return (cx / render_scale, page_height - cy / render_scale)


def pad_relative(rect: RelativeRect, padding: float) -> RelativeRect:
    """Grow a relative rect by `padding` on every side, clamped to the page."""
    x = max(0.0, rect.x - padding)
    y = max(0.0, rect.y - padding)
    width = min(1.0 - x, rect.width + padding * 2)
    height = min(1.0 - y, rect.height + padding * 2)
    return RelativeRect(x, y, width, height)


def relative_to_pdf_region(rect: RelativeRect, page_width: float, page_height: float,
                           render_scale: float = 1.5, padding: float = 0.0) -> PdfRegion:
    """
    Relative rect -> PDF-space region.

    Goes through the canvas at `render_scale` and back, which is what the
    marking UI does; the scale cancels out, so the region depends only on the
    relative geometry and the page size.
    """
    if padding:
        rect = pad_relative(rect, padding)
    canvas = relative_to_canvas(rect, page_width, page_height, render_scale)
    x1, y1 = canvas_to_pdf(canvas.x, canvas.y, page_height, render_scale)
    x2, y2 = canvas_to_pdf(canvas.x + canvas.width, canvas.y + canvas.height, page_height, render_scale)
    return PdfRegion(min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2))


def pdf_point_to_relative(px: float, py: float, page_width: float, page_height: float) -> Tuple[float, float]:
    """PDF point -> relative (top-left origin)."""
    return (px / page_width, (page_height - py) / page_height)
