"""
Unit tests for receipt sanity checks.
"""

from app.services.validate import validate_record


def good(**overrides):
    data = {
        "LEGAJO": "38",
        "PERIODO": "07/2025",
        "NOMBRE": "PEREZ, JUAN",
        "CUIL": "20-12345678-9",
        "EMPRESA": "LIMPAR",
        "20595": "123.40",
    }
    data.update(overrides)
    return data


class TestValidateRecord:
    """Test validate_record errors vs warnings."""

    def test_clean_record(self):
        assert validate_record(good()) == {"is_valid": True, "errors": [], "warnings": []}

    def test_legajo(self):
        assert not validate_record(good(LEGAJO="-"))["is_valid"]
        assert "LEGAJO must be numeric" in validate_record(good(LEGAJO="A38"))["errors"][0]
        assert "out of range" in validate_record(good(LEGAJO="0"))["errors"][0]

    def test_periodo(self):
        assert "mm/yyyy" in validate_record(good(PERIODO="julio"))["errors"][0]
        assert "month" in validate_record(good(PERIODO="13/2025"))["errors"][0]
        assert "year" in validate_record(good(PERIODO="07/2019"))["errors"][0]

    def test_nombre(self):
        res = validate_record(good(NOMBRE="-"))
        assert res["is_valid"]
        assert res["warnings"] == ["NOMBRE is missing"]
        assert not validate_record(good(NOMBRE="AB"))["is_valid"]

    def test_cuil(self):
        assert validate_record(good(CUIL=""))["warnings"] == ["CUIL is missing"]
        assert "11 digits" in validate_record(good(CUIL="20-1234-9"))["errors"][0]
        assert "prefix" in validate_record(good(CUIL="99-12345678-9"))["errors"][0]

    def test_empresa(self):
        assert "Unknown EMPRESA" in validate_record(good(EMPRESA="UNKNOWN"))["errors"][0]

    def test_non_numeric_amount_is_a_warning(self):
        res = validate_record(good(**{"20540": "abc", "20590": "-"}))
        assert res["is_valid"]
        assert res["warnings"] == ["20540 is not a number: 'abc'"]
