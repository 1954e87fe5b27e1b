"""
Centralized patterns and lookups.

- CODE_LABELS / label_for(): 5-digit concept codes -> human labels.
- NUM_TOKEN / MONEY_REGEX: numeric tokens in Argentine/European/US formats.
- Meta regexes: legajo, periodo, CUIL, names.
- EMPRESA_RULES / FILENAME_TOKENS: employer detection signals, in priority order.
- EMPLOYER_PROFILES: one dict per payroll format; the parser engine in
  app/services/extract.py is driven entirely by these.
- TABLE_CONCEPTS: 4-digit concept rows of the ESTRATEGIA-style receipts.
- Region-OCR word lists (header words, valid categories, invalid patterns).

These live here so extraction rules stay readable and we change patterns in one place.
"""

import re

# ---------- concept codes ----------

CODE_LABELS = {
    "20540": "CONTRIBUCION SOLIDARIA",
    "20590": "SEGURO DE SEPELIO",
    "20595": "CUOTA MUTUAL",
    "20610": "RESGUARDO MUTUAL",
    "20620": "DESC. MUTUAL",
    "5310": "ITEM 5.3.10",
}

# The five codes every employer maps into; default control fields
BASE_CODES = ["20540", "20590", "20595", "20610", "20620"]


def label_for(code: str) -> str:
    return CODE_LABELS.get(code, code)


# ---------- numbers ----------

# Any numeric token: 1,234.56 | 1.234,56 | 12,5 | 1234
NUM_TOKEN = r"-?(?:\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d{1,3}(?:\.\d{3})+(?:,\d+)?|\d+[.,]\d+|\d+)"
NUM_TOKEN_PAT = re.compile(rf"(?<![\d.,]){NUM_TOKEN}(?![\d])")

# Money-looking values after a concept label (European grouping first)
MONEY_REGEX = r"\d{1,3}(?:\.\d{3})+(?:,\d+)?|\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+[.,]\d+|\d+"

# Thousands grouping present: "46.699" / "46.699,65" / "27,640.12"
THOUSANDS_PAT = re.compile(r"^-?\d{1,3}(?:[.,]\d{3})+(?:[.,]\d+)?$")

# Pure European thousands with no decimals: "46.699" / "1.234.567"
EURO_THOUSANDS_ONLY = re.compile(r"^-?\d{1,3}(?:\.\d{3})+$")

# ---------- meta fields ----------

LEGAJO_LABEL = re.compile(r"\bLEG(?:AJO|\.)", re.IGNORECASE)
LEGAJO_VALUE = re.compile(r"^\d{3,10}$")
PERIODO_LABEL = re.compile(r"PER[IÍ]ODO|\bPER\.|ABONADO", re.IGNORECASE)
PERIODO_VALUE = re.compile(r"(?<!\d)([01]?\d)/(\d{4})(?!\d)")

CUIL_FLEX = re.compile(r"\b\d{2}\D{0,3}\d{8}\D{0,3}\d\b")
CUIL_LABEL = re.compile(r"(CUIL|CUIT|C\.U\.I\.L\.?|NRO\.?\s*DE\s*CUIL|N°\s*CUIL|CUIT/CUIL)", re.IGNORECASE)
CUIL_PERSONAL_PREFIX = re.compile(r"^(20|23|24|27)")
CUIL_KNOWN_PREFIXES = ["20", "23", "24", "25", "26", "27", "30", "33", "34"]

_NAME_CHARS = r"A-ZÁÉÍÓÚÑÜ"
NAME_COMMA = re.compile(rf"\b([{_NAME_CHARS}][{_NAME_CHARS}'\-]+(?:\s+[{_NAME_CHARS}][{_NAME_CHARS}'\-]+)*)\s*,\s*([{_NAME_CHARS}][{_NAME_CHARS}'\-]+(?:\s+[{_NAME_CHARS}][{_NAME_CHARS}'\-]+)*)")
UPPER_NAME_BLOCK = re.compile(rf"\b([{_NAME_CHARS}]{{2,}}(?:\s+[{_NAME_CHARS}]{{2,}}){{1,6}})\b")

# Words that look like names but are receipt furniture
NAME_STOPWORDS = {
    "LEGAJO", "CUIL", "CUIT", "PERIODO", "PERÍODO", "CATEGORIA", "CATEGORÍA",
    "APELLIDO", "APELLIDOS", "NOMBRE", "NOMBRES", "FECHA", "INGRESO", "RECIBO",
    "HABERES", "DEDUCCIONES", "TOTAL", "NETO", "SUELDO", "BASICO", "BÁSICO",
    "MUNICIPAL", "ROSARIO", "MENSUAL", "CONCEPTO", "UNIDADES", "DESCUENTOS",
    "LIMPAR", "LIME", "SUMAR", "TYSA", "SA", "SRL", "S.A.", "ESTRATEGIA",
    "AMBIENTAL", "URBANA", "PAGO", "DE", "Y",
}

# ---------- employers ----------

LIMPAR = "LIMPAR"
LIME = "LIME"
SUMAR = "SUMAR"
TYSA = "TYSA"
ESTRATEGIA_AMBIENTAL = "ESTRATEGIA AMBIENTAL"
ESTRATEGIA_URBANA = "ESTRATEGIA URBANA"
UNKNOWN = "UNKNOWN"

KNOWN_EMPLOYERS = [LIMPAR, LIME, SUMAR, TYSA, ESTRATEGIA_AMBIENTAL, ESTRATEGIA_URBANA]

# Ordered: first match wins. "strong" = company name; "weak" = all patterns
# of one group must co-occur.
EMPRESA_RULES = [
    {"empresa": LIMPAR, "strong": [r"LIMPAR", r"LIMP\s*AR"], "weak": []},
    {"empresa": SUMAR,
     "strong": [r"\bSUMAR\b"],
     "weak": [[r"CUOTA\s+APORT\.", r"SEG\.\s*SEPELIO"], [r"\b0323\b", r"\b0324\b"], [r"\b0373\b", r"\b0374\b"]]},
    {"empresa": TYSA, "strong": [r"\bTYSA\b", r"TALLER\s+TYSA"], "weak": []},
    {"empresa": ESTRATEGIA_AMBIENTAL, "strong": [r"ESTRATEGIA\s+AMBIENTAL"], "weak": []},
    {"empresa": ESTRATEGIA_URBANA, "strong": [r"ESTRATEGIA\s+URBANA"], "weak": []},
    {"empresa": LIME,
     "strong": [r"\bJ(?:09|10|11|12)\b", r"\bLIME\b"],
     "weak": [[r"Contrib\.\s*Solidaria", r"Gastos\s+de\s+sepelio"]]},
]

TYSA_HINT = re.compile(r"\bTYSA\b|TALLER\s+TYSA|T\.Y\.S\.A", re.IGNORECASE)

# Compact filename token -> employer (longest first so "limpar" beats "lime")
FILENAME_TOKENS = [
    ("limpar", LIMPAR),
    ("sumar", SUMAR),
    ("tysa", TYSA),
    ("lime", LIME),
]

# ---------- per-employer parser profiles ----------
#
# concepts: key -> {"labels": [...], "pick": first|second|rightmost|column, "class": money|quantity_adjacent|count}
#   money              any value after the label
#   quantity_adjacent  row also carries days/hours: small unformatted values rejected
#   count              the small number itself is the value (days worked)
# code_pattern: 5-digit code tokens read straight off the row (LIMPAR)
# table_concepts: 4-digit concept rows with column inference (ESTRATEGIA)

_LIME_TYSA_CONCEPTS = {
    "20540": {"labels": ["Contrib.Solidaria", "Contrib. Solidaria"], "pick": "first", "class": "money"},
    "20590": {"labels": ["Gastos de sepelio"], "pick": "first", "class": "money"},
    "20595": {"labels": ["Cuota Mutual Ap.Solidar.", "Cuota Mutual Ap. Solidar."], "pick": "first", "class": "money"},
    "20610": {"labels": ["Resguardo Mutuo"], "pick": "first", "class": "money"},
    "20620": {"labels": ["Mutual 16 de Abril"], "pick": "first", "class": "money"},
}

EMPLOYER_PROFILES = {
    LIMPAR: {
        "number_style": "mixed",
        "code_pattern": r"\b20\d{3}\b",
        "label_fallback_only": True,
        "concepts": {
            "20540": {"labels": ["CONTRIBUCION SOLIDARIA", "CONTRIBUCIÓN SOLIDARIA", "CONTRIB. SOLIDARIA", "CONTRIB SOLIDARIA"],
                      "pick": "rightmost", "class": "money"},
            "20590": {"labels": ["SEGURO DE SEPELIO", "SEGURO SEPELIO", "SEG. SEPELIO"], "pick": "rightmost", "class": "money"},
            "20595": {"labels": ["CUOTA MUTUAL AP.SOLIDAR", "CUOTA APORT. SOLID. MUT.", "CUOTA MUTUAL"], "pick": "rightmost", "class": "money"},
            "20610": {"labels": ["RESGUARDO MUTUAL FAMILIAR", "RESG. MUTUAL FAM.", "RESGUARDO MUTUAL", "RESG. MUTUAL", "RESGUARDO MUTUO"],
                      "pick": "rightmost", "class": "money"},
            "20620": {"labels": ["DESC. MUTUAL", "DESCUENTO MUTUAL", "MUTUAL 16 DE ABRIL"], "pick": "rightmost", "class": "money"},
        },
        "periodo_patterns": [],
        "legajo_patterns": [],
        "nombre_patterns": [],
    },
    LIME: {
        "number_style": "european",
        "code_pattern": None,
        "concepts": _LIME_TYSA_CONCEPTS,
        "periodo_patterns": [r"Periodo\s+de\s+Pago:?\s*(\d{1,2})/(\d{4})", r"\bLIME\s*(\d{2})(\d{4})\b",
                             r"Mensual\s*(\d{1,2})/(\d{4})"],
        "legajo_patterns": [r"Legajo:\s*(\d+)", r"Legajo\s*(\d+)"],
        "nombre_patterns": [r"(?i:Apellidos?\s+y\s+Nombres?):?\s*([A-ZÁÉÍÓÚÑ][A-ZÁÉÍÓÚÑ ,]+)"],
    },
    TYSA: {
        "number_style": "european",
        "code_pattern": None,
        "concepts": dict(_LIME_TYSA_CONCEPTS, **{
            "5310": {"labels": ["ITEM 5.3.10", "5.3.10"], "pick": "first", "class": "money"},
        }),
        "periodo_patterns": [r"Periodo\s+de\s+Pago:?\s*(\d{1,2})/(\d{4})", r"\bTYSA\s*(\d{2})(\d{4})\b"],
        # legajo is the 1-2 digit number printed right after the CUIL
        "legajo_patterns": [r"\d{2}-\d{8}-\d\s+(\d{1,2})\b", r"Legajo:?\s*(\d{1,2})\b"],
        "nombre_patterns": [r"(?i:Apellidos?\s+y\s+Nombres?):?\s*([A-ZÁÉÍÓÚÑ][A-ZÁÉÍÓÚÑ ,]+)"],
    },
    SUMAR: {
        "number_style": "european",
        "code_pattern": None,
        "concepts": {
            "20540": {"labels": ["CUOTA GREMIAL"], "pick": "second", "class": "money"},
            "20590": {"labels": ["SEG. SEPELIO"], "pick": "second", "class": "money"},
            "20595": {"labels": ["CUOTA APORT. SOLID. MUT."], "pick": "first", "class": "money"},
            "20610": {"labels": ["RESG. MUTUAL FAM."], "pick": "first", "class": "money"},
            "20620": {"labels": ["DESCUENTO MUTUAL"], "pick": "first", "class": "money"},
        },
        "periodo_patterns": [r"Per[ií]odo:\s*Mensual\s*(\d{1,2})/(\d{4})", r"Mensual\s*(\d{1,2})/(\d{4})"],
        "legajo_patterns": [r"Legajo\s*(\d+)"],
        "nombre_patterns": [r"(?i:Legajo)\s*\d+\s*[^A-Z]*([A-ZÁÉÍÓÚÑ][A-ZÁÉÍÓÚÑ ,]+?)\s*C\.U\.I\.L\."],
        "nombre_strip": [r"MUNICIPAL\s+DE\s+ROSARIO"],
    },
    ESTRATEGIA_AMBIENTAL: {
        "number_style": "european",
        "code_pattern": None,
        "table_concepts": True,
        "concepts": {
            "DIAS_TRABAJADOS": {"labels": ["DIAS TRABAJADOS", "DÍAS TRABAJADOS"], "pick": "first", "class": "count"},
            "FRANCOS_TRABAJADOS": {"labels": ["FRANCOS TRABAJADOS"], "pick": "first", "class": "count"},
        },
        "periodo_patterns": [r"Per[ií]odo(?:\s+de\s+Pago)?:?\s*(\d{1,2})/(\d{4})"],
        "legajo_patterns": [r"Legajo:?\s*(\d+)"],
        "nombre_patterns": [],
    },
}
EMPLOYER_PROFILES[ESTRATEGIA_URBANA] = EMPLOYER_PROFILES[ESTRATEGIA_AMBIENTAL]

# Trailing words that leak into captured names
NAME_TRAILING_NOISE = re.compile(r"\s*\b(C\.U\.I\.L\.?|CUIL|LEGAJO|CATEGOR[IÍ]A)\b.*$", re.IGNORECASE)

# ---------- concept tables (4-digit codes) ----------
#
# code -> (field name, column index). Column 0 = haberes, 2 = deducciones.

TABLE_CONCEPTS = {
    "0003": ("JORNAL", 0),
    "0058": ("ADICIONAL", 0),
    "0119": ("CODIGO_5_3_4", 0),
    "0112": ("CODIGO_5_3_10", 0),
    "0158": ("HORAS_EXTRAS_50", 0),
    "0159": ("HORAS_EXTRAS_100", 0),
    "0200": ("ANTIGUEDAD", 0),
    "0300": ("JUBILACION", 2),
    "0302": ("LEY_19032", 2),
    "0310": ("OBRA_SOCIAL", 2),
    "0323": ("CUOTA_GREMIAL", 2),
    "0324": ("SEG_SEPELIO", 2),
}

TABLE_ROW_PAT = re.compile(r"^\s*(\d{4})\s+([A-Za-zÁÉÍÓÚÑáéíóúñ].*)$")
UNMAPPED_CONCEPT_PREFIX = "CONCEPTO_"

# Rows of these fields also show days/hours/years next to the amount
QUANTITY_ADJACENT_FIELDS = {
    "JORNAL", "HORAS_EXTRAS_50", "HORAS_EXTRAS_100", "ANTIGUEDAD",
}

COLUMN_HEADER_PATTERNS = {
    0: re.compile(r"^(HABERES|HAB\.?|JORNAL)$", re.IGNORECASE),
    1: re.compile(r"^(NO\s*REM\.?|EXENTOS|SIN\s*APORTES)$", re.IGNORECASE),
    2: re.compile(r"^(DEDUCCIONES|DEDUCCI[OÓ]N|DESCUENTOS|DESC\.?)$", re.IGNORECASE),
}
# Fallback column x positions as a fraction of page width
COLUMN_FALLBACK_RATIOS = {0: 0.5, 1: 0.65, 2: 0.8}

# Money fields that accumulate across receipts (besides 5-digit codes)
ADDITIVE_FIELDS = {name for name, _ in TABLE_CONCEPTS.values()}

# ---------- region OCR vocab ----------

HEADER_WORDS = [
    "FUNCIÓN", "FUNCION", "SECTOR", "DEDUCCIONES", "DEDUCCIÓN", "DEDUCCION",
    "SERV", "HAB", "DESC", "UNIDADES", "CONCEPTO", "HABER", "CHOFER", "CHOFE",
    "LIQUIDACION", "LIQUIDACIÓN",
]

# Words that are pure column furniture even when alone
HEADER_ONLY_WORDS = {
    "FUNCIÓN", "FUNCION", "SECTOR", "DEDUCCIONES", "DEDUCCIÓN", "DEDUCCION",
    "SERV", "HAB", "DESC", "UNIDADES", "CONCEPTO", "HABER", "LIQUIDACION", "LIQUIDACIÓN",
}

CATEGORY_LABEL_WORDS = ["CATEGORIA", "CATEGORÍA", "CATEGOR", "CATEG"]
CATEGORY_FIELDS = {"CATEGORIA", "CATEGORÍA"}

VALID_CATEGORIES = [
    "CHOFER", "CHOFE", "RECOLECTOR", "REC", "PEON", "PEÓN", "PEONES", "PE",
    "BARRIDO", "MAESTRANZA", "OPERARIO", "AYUDANTE", "ADMINISTRATIVO", "ADMI",
]

INVALID_HEADER_PATTERNS = [
    re.compile(r"FUNCI[OÓ]N.*SECTOR.*DEDUCCI[OÓ]N.*SERV", re.IGNORECASE),
    re.compile(r"FUNCI[OÓ]N.*SECTOR.*DEDUCCIONES", re.IGNORECASE),
    re.compile(r"SECTOR.*DEDUCCI[OÓ]N", re.IGNORECASE),
    re.compile(r"^\s*LIQUIDACI[OÓ]N\b", re.IGNORECASE),
]

SPECIAL_DEDUP_CASES = {
    "CHOFE CHOFER": "CHOFER",
    "CHOFER CHOFE": "CHOFER",
    "RECOLECTOR RECOLECTOR": "RECOLECTOR",
    "PEON PEON": "PEON",
}

CUIL_SUFFIX_PAT = re.compile(r"^(\d{2}-\d{8}-\d)\s*(cuil|cui|dni)$", re.IGNORECASE)
CUIL_TRAILING_UNIT_PAT = re.compile(r"\s*\b(cuil|cui|dni)\b\s*$", re.IGNORECASE)
CUIL_FIELDS = {"CUIL", "CUIL/DNI", "DNI", "NRO. DE CUIL"}

# Fields whose position moves between receipts of the same employer
VARIABLE_COORDINATE_FIELDS = {
    "JORNAL", "HORAS_EXTRAS", "ANTIGUEDAD", "JUBILACION", "OBRA_SOCIAL", "LEY_19032",
    "SEG_SEPELIO", "RESG_MUTUAL", "CUOTA_GREMIAL", "ADICIONAL", "INASISTENCIAS",
}

# Fields that may be marked more than once in a rule (overtime tiers)
MULTI_INSTANCE_FIELDS = {"HORAS_EXTRAS"}

# Auto-detection: concept code -> (field name, column index)
AUTO_DETECT_CONCEPTS = {
    "0003": ("JORNAL", 0),
    "0058": ("ADICIONAL", 0),
    "0119": ("CODIGO_5_3_4", 0),
    "0112": ("CODIGO_5_3_10", 0),
    "0158": ("HORAS_EXTRAS", 0),
    "0159": ("HORAS_EXTRAS", 0),
    "0200": ("ANTIGUEDAD", 0),
    "0300": ("JUBILACION", 2),
    "0310": ("OBRA_SOCIAL", 2),
    "0323": ("CUOTA_GREMIAL", 2),
    "0302": ("LEY_19032", 2),
    "0324": ("SEG_SEPELIO", 2),
}
AUTO_DETECT_LABELS = {
    "FRANCOS_TRABAJADOS": re.compile(r"FRANCOS\s+TRABAJADOS", re.IGNORECASE),
    "DIAS_TRABAJADOS": re.compile(r"D[IÍ]AS\s+TRABAJADOS", re.IGNORECASE),
}
