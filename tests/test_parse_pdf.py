"""
Tests for the pdfplumber adapter, on small receipts drawn with reportlab.
"""

import io

import pytest
from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas

from app.services.errors import StructuralParseError
from app.services.extract import parse_receipt
from app.services.parse_pdf import parse_with_pdfplumber


def receipt_pdf(lines, pages=1):
    """One-column receipt; `lines` are (x, y, text) in PDF points."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=LETTER)
    for _ in range(pages):
        c.setFont("Helvetica", 10)
        for x, y, text in lines:
            c.drawString(x, y, text)
        c.showPage()
    c.save()
    return buf.getvalue()


LIMPAR_LINES = [
    (40, 740, "LIMPAR S.A."),
    (40, 720, "PERIODO 07/2025"),
    (40, 700, "LEGAJO 1234"),
    (40, 680, "GOMEZ, MARIA 27-23456789-4"),
    (40, 640, "20595 CUOTA MUTUAL 1,00 12.345,67"),
]


class TestParseWithPdfplumber:
    """Test PDF -> tokens/rows."""

    def test_tokens_in_pdf_space(self):
        doc = parse_with_pdfplumber(receipt_pdf(LIMPAR_LINES), filename="r.pdf")
        assert doc.filename == "r.pdf"
        assert len(doc.pages) == 1
        page = doc.pages[0]
        assert page.width == pytest.approx(612)
        assert page.height == pytest.approx(792)

        by_text = {t.text: t for t in page.tokens}
        assert by_text["LEGAJO"].x == pytest.approx(40, abs=0.5)
        # y grows upward: the title sits above the legajo line
        assert by_text["LIMPAR"].y > by_text["LEGAJO"].y
        assert by_text["LEGAJO"].width > 0
        assert by_text["LEGAJO"].font_size == pytest.approx(10)

    def test_rows(self):
        doc = parse_with_pdfplumber(receipt_pdf(LIMPAR_LINES))
        texts = [r.text for r in doc.rows]
        assert texts[0] == "LIMPAR S.A."
        assert "20595 CUOTA MUTUAL 1,00 12.345,67" in texts
        assert "LIMPAR" in doc.raw_text

    def test_pages_are_numbered(self):
        doc = parse_with_pdfplumber(receipt_pdf(LIMPAR_LINES, pages=2))
        assert [p.page_number for p in doc.pages] == [1, 2]
        assert {r.page for r in doc.rows} == {1, 2}
        assert doc.page(2) is not None
        assert doc.page(3) is None

    def test_path_source(self, tmp_path):
        path = tmp_path / "r.pdf"
        path.write_bytes(receipt_pdf(LIMPAR_LINES))
        assert parse_with_pdfplumber(str(path)).pages

    def test_corrupt_bytes(self):
        with pytest.raises(StructuralParseError):
            parse_with_pdfplumber(b"this is not a pdf", filename="bad.pdf")


class TestParseReceipt:
    """Test the never-raising dispatcher end to end."""

    def test_limpar_receipt(self):
        result = parse_receipt(receipt_pdf(LIMPAR_LINES), "recibo.pdf")
        assert result.data["EMPRESA"] == "LIMPAR"
        assert result.data["LEGAJO"] == "1234"
        assert result.data["PERIODO"] == "07/2025"
        assert result.data["NOMBRE"] == "GOMEZ, MARIA"
        assert result.data["20595"] == "12345.67"
        assert result.should_save
        assert result.document is not None

    def test_structural_error_is_a_result(self):
        result = parse_receipt(b"garbage", "bad.pdf")
        assert result.document is None
        assert result.data["GUARDAR"] == "false"
        assert "bad.pdf" in result.data["ERROR"]
