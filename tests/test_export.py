"""
Unit tests for CSV output.
"""

from app.models.schemas import ConsolidatedRecord, DiffEntry, ResultadoControl, SavedControl
from app.services.export import (
    build_aggregated_csv,
    build_control_csv,
    build_diff_csv,
    control_to_csv,
    esc,
    parse_csv,
    records_to_dataframe,
    stringify_csv,
)


def record(**data):
    return ConsolidatedRecord(key="38||07/2025", legajo="38", periodo="07/2025", nombre="PEREZ, JUAN",
                              cuil="20-12345678-9", archivos=["a.pdf", "b.pdf"], data=data)


def dif_result():
    return ResultadoControl(key="38||07/2025", estado="DIF",
                            diferencias=[DiffEntry(campo="CUOTA MUTUAL", hoja2="500.00", recibos="510.00")])


class TestEsc:
    """Test cell quoting."""

    def test_plain(self):
        assert esc("38") == "38"
        assert esc(None) == ""
        assert esc(12.5) == "12.5"

    def test_quoted(self):
        assert esc("PEREZ, JUAN") == '"PEREZ, JUAN"'
        assert esc('dijo "hola"') == '"dijo ""hola"""'
        assert esc("a;b") == '"a;b"'
        assert esc("a\nb") == '"a\nb"'


class TestAggregatedCsv:
    """Test the consolidated export."""

    def test_code_headers_become_labels(self):
        csv_text = build_aggregated_csv([record(**{"20595": "123.40"})], columns=["LEGAJO", "20595"])
        assert csv_text == "sep=,\nLEGAJO,CUOTA MUTUAL\n38,123.40"

    def test_with_period_column(self):
        csv_text = build_aggregated_csv([record(**{"20595": "123.4"})], columns=["LEGAJO", "PERIODO", "20595"])
        assert csv_text.splitlines() == ["sep=,", "LEGAJO,PERIODO,CUOTA MUTUAL", "38,07/2025,123.40"]

    def test_default_columns(self):
        lines = build_aggregated_csv([record(**{"20595": "123.40", "20540": "-"})]).splitlines()
        assert lines[1].startswith("LEGAJO,PERIODO,NOMBRE,CUIL,EMPRESA,CONTRIBUCION SOLIDARIA")
        assert lines[1].endswith(",ARCHIVO")
        assert lines[2].startswith('38,07/2025,"PEREZ, JUAN",20-12345678-9,,-,')
        assert lines[2].endswith(",a.pdf + b.pdf")

    def test_dataframe(self):
        frame = records_to_dataframe([record(**{"20595": "123.4"})], columns=["LEGAJO", "20595"])
        assert list(frame.columns) == ["LEGAJO", "CUOTA MUTUAL"]
        assert frame.iloc[0]["CUOTA MUTUAL"] == "123.40"


class TestControlCsv:
    """Test the control summary and diff exports."""

    def test_summary(self):
        text = build_control_csv([dif_result()], {"38||07/2025": "PEREZ, JUAN"})
        assert text.splitlines() == [
            "sep=,",
            "LEGAJO,NOMBRE,PERIODO,ESTADO,#DIFERENCIAS",
            '38,"PEREZ, JUAN",07/2025,DIF,1',
        ]

    def test_diffs(self):
        assert build_diff_csv([dif_result()]).splitlines()[2] == "38,07/2025,CUOTA MUTUAL,500.00,510.00"

    def test_saved_control_puts_difs_first(self):
        ok = ResultadoControl(key="12||07/2025", estado="OK")
        saved = SavedControl(filter_key="07/2025||LIMPAR", periodo="07/2025", empresa="LIMPAR",
                             difs=[dif_result()], oks=[ok])
        lines = control_to_csv(saved).splitlines()
        assert lines[2].startswith("38,")
        assert lines[3] == "12,,07/2025,OK,0"


class TestPlainRows:
    def test_stringify_and_parse(self):
        rows = [{"LEGAJO": "38", "NOMBRE": "PEREZ, JUAN"}, {"LEGAJO": "12", "EXTRA": 'x "y"'}]
        text = stringify_csv(rows)
        assert text.splitlines()[1] == "LEGAJO,NOMBRE,EXTRA"
        assert parse_csv("\ufeff" + text) == [
            {"LEGAJO": "38", "NOMBRE": "PEREZ, JUAN", "EXTRA": ""},
            {"LEGAJO": "12", "NOMBRE": "", "EXTRA": 'x "y"'},
        ]

    def test_parse_without_sep_line(self):
        assert parse_csv("A,B\n1,2") == [{"A": "1", "B": "2"}]
        assert parse_csv("") == []
