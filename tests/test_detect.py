"""
Unit tests for employer detection.
"""

from app.services.detect import detect_empresa, detect_from_filename, normalize_filename
from extraction.patterns import ESTRATEGIA_AMBIENTAL, LIME, LIMPAR, SUMAR, TYSA, UNKNOWN


class TestDetectEmpresa:
    """Test detect_empresa rule ordering and fallbacks."""

    def test_strong_names(self):
        assert detect_empresa("LIMPAR S.A. Recibo de haberes") == LIMPAR
        assert detect_empresa("ESTRATEGIA AMBIENTAL S.A. Liquidacion") == ESTRATEGIA_AMBIENTAL
        assert detect_empresa("Empleador: SUMAR Cooperativa") == SUMAR

    def test_weak_pair_must_co_occur(self):
        text = "Contrib. Solidaria 2,00 % 1.234,56 Gastos de sepelio 850,00"
        assert detect_empresa(text) == LIME
        assert detect_empresa("Contrib. Solidaria 2,00 % 1.234,56") == UNKNOWN

    def test_sumar_label_pair(self):
        assert detect_empresa("CUOTA APORT. SOLID. MUT. 1.200,00 SEG. SEPELIO 300,00") == SUMAR

    def test_lime_layout_with_tysa_hint(self):
        """LIME-looking receipts from the TYSA workshop belong to TYSA."""
        assert detect_empresa("J10 Contrib.Solidaria", "tysa julio 2025.pdf") == TYSA
        assert detect_empresa("J10 Contrib.Solidaria T.Y.S.A") == TYSA
        assert detect_empresa("J10 Contrib.Solidaria", "recibos.pdf") == LIME

    def test_filename_when_text_is_empty(self):
        assert detect_empresa("", "recibos limpar 07-2025.pdf") == LIMPAR

    def test_unknown(self):
        assert detect_empresa("RECIBO DE HABERES", "scan.pdf") == UNKNOWN
        assert detect_empresa(None) == UNKNOWN


class TestDetectFromFilename:
    """Test file-name token matching."""

    def test_whole_word(self):
        assert detect_from_filename("LIME 072025.pdf") == (LIME, 0.95)

    def test_substring(self):
        assert detect_from_filename("recibosLimpar.pdf") == (LIMPAR, 0.8)

    def test_longest_token_first(self):
        assert detect_from_filename("limpar_julio.pdf")[0] == LIMPAR

    def test_no_match(self):
        assert detect_from_filename("recibo.pdf") == (UNKNOWN, 0.0)

    def test_normalize(self):
        assert normalize_filename("T.Y.S.A - Julio.pdf") == "tysa julio pdf"
        assert normalize_filename("Recibos_SETIEMBRE.pdf") == "recibos setiembre pdf"
