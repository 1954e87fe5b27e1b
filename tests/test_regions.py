"""
Unit tests for region OCR: selection, cleanup, auto-detection, the marking
session and rule replay.

Pages are 600x800 PDF units; regions are written in PDF coordinates and
converted with rect_around() so each test says which tokens it covers.
"""

import pytest

from app.models.schemas import (
    ConsolidatedRecord,
    MarkedField,
    OCRRule,
    PageText,
    ParsedDocument,
    PositionedToken,
    ReplacementRule,
)
from app.services.consolidate import ConsolidationService
from app.services.errors import DuplicateFieldError, UnknownFieldError
from app.services.regions import (
    FieldMarkerSession,
    MarkerState,
    add_replacement,
    apply_ocr_rules_to_receipt,
    apply_replacements,
    auto_detect_concepts,
    clean_extracted_text,
    detect_column_x,
    extract_text_from_region,
    inside_share,
    load_replacements,
    load_rule,
    markers_key,
    remove_replacement,
    save_rule,
)
from app.services.stores import InMemoryConfigStore
from app.util.layout import PdfRegion, RelativeRect

W, H = 600.0, 800.0
EMPRESA = "ESTRATEGIA AMBIENTAL"


def tok(text, x, y, width=None, height=8.0):
    return PositionedToken(text=text, x=x, y=y, width=width if width is not None else 6.0 * len(text),
                           height=height)


def page(*tokens, number=1):
    return PageText(page_number=number, width=W, height=H, tokens=list(tokens))


def document(*pages):
    return ParsedDocument(filename="recibo.pdf", pages=list(pages))


def rect_around(x1, y1, x2, y2):
    """PDF-space box -> relative rect (top-left origin)."""
    return RelativeRect(x1 / W, (H - y2) / H, (x2 - x1) / W, (y2 - y1) / H)


def field(name, rect, page_number=1, **kw):
    return MarkedField(id=f"{name}-{page_number}", field_name=name, page_number=page_number,
                       **rect._asdict(), **kw)


LEGAJO_RECT = rect_around(290, 645, 330, 665)
CATEGORIA_RECT = rect_around(295, 595, 380, 612)
JORNAL_RECT = rect_around(290, 645, 360, 665)


def sample_page():
    return page(
        tok("LEGAJO", 40, 650),
        tok("38", 300, 650),
        tok("CHOFE", 300, 600, width=30),
        tok("CHOFER", 335, 600, width=36),
    )


def table_page():
    return page(
        tok("CONCEPTO", 40, 700), tok("UNIDADES", 200, 700), tok("JORNAL", 300, 700),
        tok("DEDUCCIONES", 440, 700),
        tok("0003", 40, 650), tok("JORNAL", 80, 650), tok("BASICO", 130, 650), tok("30,00", 200, 650),
        tok("761.375,05", 300, 650),
        tok("0310", 40, 620), tok("OBRA", 80, 620), tok("SOCIAL", 110, 620), tok("3,00", 200, 620),
        tok("22.912,54", 440, 620),
        tok("FRANCOS", 40, 590), tok("TRABAJADOS", 90, 590), tok("2", 200, 590),
    )


class TestExtractTextFromRegion:
    """Test reading the text under a marked rectangle."""

    def test_value_inside(self):
        p = page(tok("761.375,05", 300, 650))
        assert extract_text_from_region(field("JORNAL", JORNAL_RECT), p) == "761.375,05"

    def test_same_region_at_any_render_scale(self):
        p = page(tok("761.375,05", 300, 650))
        f = field("JORNAL", JORNAL_RECT)
        assert extract_text_from_region(f, p, 1.0) == extract_text_from_region(f, p, 3.0) == "761.375,05"

    def test_header_words_dropped_when_they_dominate(self):
        p = page(tok("CONCEPTO", 292, 660, width=20), tok("HABERES", 315, 660, width=20),
                 tok("761.375,05", 300, 648, width=50))
        assert extract_text_from_region(field("JORNAL", JORNAL_RECT), p) == "761.375,05"

    def test_neighbouring_row_grazing_the_edge_left_out(self):
        p = page(tok("761.375,05", 300, 650), tok("HABERES", 300, 662))
        assert extract_text_from_region(field("JORNAL", JORNAL_RECT), p) == "761.375,05"

    def test_mostly_inside_token_kept(self):
        p = page(tok("761.375,05", 310, 650))
        assert extract_text_from_region(field("JORNAL", JORNAL_RECT), p) == "761.375,05"

    def test_inside_share(self):
        region = PdfRegion(290, 645, 360, 665)
        assert inside_share(tok("761.375,05", 300, 650), region) == pytest.approx(1.0)
        assert inside_share(tok("HABERES", 300, 662), region) == pytest.approx(3 / 8)
        assert inside_share(tok("38", 40, 650), region) == 0.0

    def test_padded_retry(self):
        """Nothing inside the mark: one retry with the region grown by 2%."""
        p = page(tok("38", 368, 652, width=6))
        assert extract_text_from_region(field("LEGAJO", rect_around(290, 645, 360, 665)), p) == "38"

    def test_empty_region(self):
        p = page(tok("38", 40, 100))
        assert extract_text_from_region(field("LEGAJO", LEGAJO_RECT), p) == ""

    def test_repeated_partial_words_merged(self):
        assert extract_text_from_region(field("CATEGORIA", CATEGORIA_RECT), sample_page()) == "CHOFER"

    def test_replacements_applied(self):
        rules = [ReplacementRule(field_name="CATEGORIA", from_="CHOFER", to="CONDUCTOR")]
        text = extract_text_from_region(field("CATEGORIA", CATEGORIA_RECT), sample_page(), replacements=rules)
        assert text == "CONDUCTOR"


class TestCleanup:
    """Test text cleanup and replacement rules."""

    def test_category_label_stripped(self):
        assert clean_extracted_text("CATEGORIA: PEON", "CATEGORIA") == "PEON"
        assert clean_extracted_text("RECOLECTOR CATEGORIA", "CATEGORIA") == "RECOLECTOR"

    def test_cuil_unit_stripped(self):
        assert clean_extracted_text("20-12345678-9 CUIL", "CUIL") == "20-12345678-9"
        assert clean_extracted_text("20123456789 dni", "DNI") == "20123456789"

    def test_whitespace(self):
        assert clean_extracted_text("  PEREZ   JUAN ", "NOMBRE") == "PEREZ JUAN"
        assert clean_extracted_text("", "NOMBRE") == ""

    def test_replacements_are_per_field_and_case_insensitive(self):
        rules = [
            ReplacementRule(field_name="NOMBRE", from_="sr.", to=""),
            ReplacementRule(field_name="NOMBRE", from_="0", to="O"),
            ReplacementRule(field_name="LEGAJO", from_="PEREZ", to="X"),
            ReplacementRule(field_name="NOMBRE", from_="", to="ignored"),
        ]
        assert apply_replacements("SR. PEREZ J0RGE", "NOMBRE", rules) == "PEREZ JORGE"


class TestReplacementStore:
    def test_add_and_remove(self):
        config = InMemoryConfigStore()
        add_replacement(config, EMPRESA, "NOMBRE", "0", "O")
        add_replacement(config, EMPRESA, "NOMBRE", "1", "I")
        assert [r.from_ for r in load_replacements(config, EMPRESA)] == ["0", "1"]
        assert config.get("ocr_replacements_ESTRATEGIA AMBIENTAL")["rules"][0]["from"] == "0"

        remaining = remove_replacement(config, EMPRESA, 0)
        assert [r.from_ for r in remaining] == ["1"]
        assert remove_replacement(config, EMPRESA, 5) == remaining
        assert load_replacements(config, "LIME") == []


class TestAutoDetect:
    """Test concept-table auto-detection."""

    def test_column_positions(self):
        cols = detect_column_x(table_page().tokens, W)
        assert cols[0] == 300
        assert cols[2] == 440
        assert cols[1] == pytest.approx(W * 0.65)

    def test_detects_amounts_and_counts(self):
        found = {f.field_name: f for f in auto_detect_concepts(table_page())}
        assert found["JORNAL"].detected_value == "761.375,05"
        assert found["JORNAL"].concept_code == "0003"
        assert found["JORNAL"].column_index == 0
        assert found["OBRA_SOCIAL"].detected_value == "22.912,54"
        assert found["OBRA_SOCIAL"].column_index == 2
        assert found["FRANCOS_TRABAJADOS"].detected_value == "2"
        assert found["JORNAL"].original_detected_value == "761.375,05"

    def test_existing_fields_not_proposed_again(self):
        first = auto_detect_concepts(table_page())
        assert auto_detect_concepts(table_page(), existing=first) == []

    def test_small_values_are_not_amounts(self):
        p = page(tok("0310", 40, 620), tok("OBRA", 80, 620), tok("SOCIAL", 110, 620), tok("3,00", 440, 620))
        assert auto_detect_concepts(p) == []


class TestFieldMarkerSession:
    """Test the marking workflow."""

    def session(self, config=None, scale=None):
        return FieldMarkerSession(EMPRESA, document(sample_page()), config or InMemoryConfigStore(),
                                  render_scale=scale)

    def test_mark_and_save(self):
        config = InMemoryConfigStore()
        s = self.session(config)
        assert s.state == MarkerState.IDLE
        s.begin_marking("LEGAJO")
        assert s.state == MarkerState.MARKING
        f = s.add_field(LEGAJO_RECT)
        assert f.field_name == "LEGAJO"
        assert f.detected_value == "38"
        assert f.original_detected_value == "38"
        assert s.state == MarkerState.MARKED

        rule = s.save_rule()
        assert s.state == MarkerState.SAVED
        assert rule.empresa == EMPRESA
        stored = config.get(markers_key(EMPRESA))
        assert stored["fields"][0]["fieldName"] == "LEGAJO"
        assert stored["fields"][0]["detectedValue"] == "38"

    def test_cancel(self):
        s = self.session()
        s.begin_marking("LEGAJO")
        s.cancel_marking()
        assert s.state == MarkerState.IDLE
        assert s.pending_name is None

    def test_name_required(self):
        with pytest.raises(UnknownFieldError):
            self.session().add_field(LEGAJO_RECT)

    def test_duplicate_rejected(self):
        s = self.session()
        s.add_field(LEGAJO_RECT, "LEGAJO")
        with pytest.raises(DuplicateFieldError):
            s.add_field(CATEGORIA_RECT, "LEGAJO")

    def test_multi_instance_allowed(self):
        s = self.session()
        s.add_field(LEGAJO_RECT, "HORAS_EXTRAS")
        s.add_field(CATEGORIA_RECT, "HORAS_EXTRAS")
        assert len(s.fields) == 2

    def test_edit_keeps_original(self):
        s = self.session()
        f = s.add_field(LEGAJO_RECT, "LEGAJO")
        s.save_rule()
        edited = s.edit_value(f.id, "39")
        assert edited.detected_value == "39"
        assert edited.original_detected_value == "38"
        assert s.state == MarkerState.MARKED

    def test_move_and_resize_reread(self):
        s = self.session()
        f = s.add_field(LEGAJO_RECT, "LEGAJO")
        moved = s.move_field(f.id, 0.9, 0.9)
        assert moved.detected_value == ""
        back = s.move_field(f.id, LEGAJO_RECT.x, LEGAJO_RECT.y)
        assert back.detected_value == "38"
        resized = s.resize_field(f.id, 0.2, 0.05)
        assert resized.width == pytest.approx(0.2)
        assert resized.detected_value == "38"

    def test_remove(self):
        s = self.session()
        f = s.add_field(LEGAJO_RECT, "LEGAJO")
        s.remove_field(f.id)
        assert s.fields == []
        assert s.state == MarkerState.IDLE
        with pytest.raises(UnknownFieldError):
            s.remove_field(f.id)

    def test_canvas_marks_are_scale_independent(self):
        """The same visual rectangle drawn at two zoom levels reads the same text."""
        values = []
        for scale in (1.0, 2.0):
            s = self.session(scale=scale)
            f = s.add_canvas_field(290 * scale, (H - 665) * scale, 40 * scale, 20 * scale, "LEGAJO")
            values.append((f.detected_value, round(f.x, 6), round(f.y, 6)))
        assert values[0] == values[1]
        assert values[0][0] == "38"

    def test_load_rule(self):
        config = InMemoryConfigStore()
        first = self.session(config)
        first.add_field(LEGAJO_RECT, "LEGAJO")
        first.add_field(CATEGORIA_RECT, "CATEGORIA")
        first.save_rule()

        second = self.session(config)
        rule = second.load_rule()
        assert rule is not None
        assert second.state == MarkerState.SAVED
        assert {f.field_name: f.detected_value for f in second.fields} == {"LEGAJO": "38", "CATEGORIA": "CHOFER"}

    def test_replacement_added_mid_session(self):
        config = InMemoryConfigStore()
        s = self.session(config)
        add_replacement(config, EMPRESA, "CATEGORIA", "CHOFER", "CONDUCTOR")
        assert s.add_field(CATEGORIA_RECT, "CATEGORIA").detected_value == "CONDUCTOR"

    def test_load_without_rule(self):
        s = self.session()
        assert s.load_rule() is None
        assert s.state == MarkerState.IDLE

    def test_auto_detect(self):
        s = FieldMarkerSession(EMPRESA, document(table_page()), InMemoryConfigStore())
        added = s.auto_detect()
        assert {f.field_name for f in added} >= {"JORNAL", "OBRA_SOCIAL"}
        assert s.state == MarkerState.MARKED
        assert s.auto_detect() == []


class TestReplay:
    """Test replaying a saved rule on another receipt."""

    KEY = "38||07/2025"

    def build(self, stored):
        config = InMemoryConfigStore()
        save_rule(config, OCRRule(empresa=EMPRESA, fields=[
            field("JORNAL", JORNAL_RECT),
            field("NOMBRE", rect_around(35, 695, 80, 712)),
            field("SECTOR", rect_around(435, 735, 510, 752)),
            field("LEGAJO", LEGAJO_RECT, page_number=2),
        ]))
        service = ConsolidationService()
        service.consolidated.upsert(ConsolidatedRecord(key=self.KEY, legajo="38", periodo="07/2025",
                                                       data=dict(stored)))
        doc = document(page(
            tok("761.375,05", 300, 650, width=50),
            tok("PEREZ", 40, 700, width=30),
            tok("DEDUCCIONES", 440, 740, width=60),
        ))
        return config, service, doc

    def test_variable_field_kept_without_trust(self):
        config, service, doc = self.build({"JORNAL": "30.00", "NOMBRE": "-",
                                           "CATEGORIA": "FUNCIÓN SECTOR DEDUCCIONES SERV"})
        result = apply_ocr_rules_to_receipt(EMPRESA, doc, config, service, self.KEY)
        assert result.rule_found
        assert result.extracted["JORNAL"] == "761375.05"
        assert "JORNAL" not in result.applied
        assert result.rejected["JORNAL"].startswith("kept stored value")
        assert result.applied == {"NOMBRE": "PEREZ"}
        assert "SECTOR" in result.rejected
        assert "LEGAJO" in result.rejected

        data = service.consolidated.get_by_key(self.KEY).data
        assert data["JORNAL"] == "30.00"
        assert data["NOMBRE"] == "PEREZ"
        assert "CATEGORIA" not in data

    def test_trusted_rule_overrides_suspect_value(self):
        config, service, doc = self.build({"JORNAL": "30.00"})
        result = apply_ocr_rules_to_receipt(EMPRESA, doc, config, service, self.KEY, trust_ocr=True)
        assert result.applied["JORNAL"] == "761375.05"
        assert service.consolidated.get_by_key(self.KEY).data["JORNAL"] == "761375.05"

    def replay_one(self, name, stored, text, trust_ocr=False):
        """One-field rule whose region reads `text`; returns the result and the value left stored."""
        config = InMemoryConfigStore()
        save_rule(config, OCRRule(empresa=EMPRESA, fields=[field(name, JORNAL_RECT)]))
        service = ConsolidationService()
        service.consolidated.upsert(ConsolidatedRecord(key=self.KEY, legajo="38", periodo="07/2025",
                                                       data={name: stored}))
        doc = document(page(tok(text, 300, 650)))
        result = apply_ocr_rules_to_receipt(EMPRESA, doc, config, service, self.KEY, trust_ocr=trust_ocr)
        return result, service.consolidated.get_by_key(self.KEY).data[name]

    @pytest.mark.parametrize("name", [
        "OBRA_SOCIAL", "SEG_SEPELIO", "CUOTA_GREMIAL", "ADICIONAL", "JUBILACION",
        "LEY_19032", "ANTIGUEDAD", "HORAS_EXTRAS_50", "SEG. SEPELIO", "Obra Social",
    ])
    def test_concept_table_fields_kept_without_trust(self, name):
        result, stored = self.replay_one(name, "22912.54", "3,00")
        assert result.extracted[name] == "3.00"
        assert name not in result.applied
        assert stored == "22912.54"

    def test_trusted_rule_keeps_plausible_value(self):
        result, stored = self.replay_one("JORNAL", "761375.05", "30,00", trust_ocr=True)
        assert "JORNAL" not in result.applied
        assert stored == "761375.05"

    def test_non_variable_field_always_overwritten(self):
        result, stored = self.replay_one("CONCEPTO_0999", "1500.00", "1.750,00")
        assert result.applied == {"CONCEPTO_0999": "1750.00"}
        assert stored == "1750.00"

    def test_empty_stored_value_is_filled(self):
        config, service, doc = self.build({"JORNAL": "0.00"})
        result = apply_ocr_rules_to_receipt(EMPRESA, doc, config, service, self.KEY)
        assert result.applied["JORNAL"] == "761375.05"

    def test_no_rule(self):
        result = apply_ocr_rules_to_receipt("LIME", document(page()), InMemoryConfigStore(),
                                            ConsolidationService(), self.KEY)
        assert not result.rule_found
        assert result.applied == {}

    def test_missing_record(self):
        config, service, doc = self.build({})
        result = apply_ocr_rules_to_receipt(EMPRESA, doc, config, service, "99||07/2025")
        assert result.extracted["NOMBRE"] == "PEREZ"
        assert result.applied == {}

    def test_stored_rule_round_trip(self):
        config, _, _ = self.build({})
        rule = load_rule(config, EMPRESA)
        assert [f.field_name for f in rule.fields] == ["JORNAL", "NOMBRE", "SECTOR", "LEGAJO"]
        assert rule.fields[3].page_number == 2
