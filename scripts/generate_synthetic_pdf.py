"""
Write a synthetic ESTRATEGIA AMBIENTAL payslip for trying the app locally.

- Output: data/raw/synthetic_recibo.pdf (relative to the repo root).
- Header block, then a CONCEPTO / UNIDADES / HABERES / DEDUCCIONES table;
  deductions sit under their own column header.
"""

from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas
import os

out_path = os.path.join(os.path.dirname(__file__), "..", "data", "raw", "synthetic_recibo.pdf")
os.makedirs(os.path.dirname(out_path), exist_ok=True)

HABERES_X, DEDUCCIONES_X = 300, 440

# (code, concept, units, amount, column x)
CONCEPTS = [
    ("0003", "JORNAL BASICO", "30,00", "761.375,05", HABERES_X),
    ("0010", "ANTIGUEDAD", "5,00", "38.068,75", HABERES_X),
    ("0999", "PREMIO", "", "1.500,00", HABERES_X),
    ("0310", "OBRA SOCIAL", "3,00", "22.912,54", DEDUCCIONES_X),
]

c = canvas.Canvas(out_path, pagesize=LETTER)

c.setFont("Helvetica-Bold", 12)
c.drawString(40, 760, "ESTRATEGIA AMBIENTAL S.A.")
c.setFont("Helvetica", 10)
c.drawString(40, 730, "Legajo: 38")
c.drawString(200, 730, "Periodo: 07/2025")
c.drawString(40, 710, "PEREZ, JUAN CARLOS")
c.drawString(300, 710, "20-12345678-9")

c.setFont("Helvetica-Bold", 9)
for x, header in [(40, "CONCEPTO"), (200, "UNIDADES"), (HABERES_X, "HABERES"), (DEDUCCIONES_X, "DEDUCCIONES")]:
    c.drawString(x, 680, header)

c.setFont("Helvetica", 9)
y = 650
for code, label, units, amount, x in CONCEPTS:
    c.drawString(40, y, f"{code} {label}")
    if units:
        c.drawString(200, y, units)
    c.drawString(x, y, amount)
    y -= 20
c.drawString(40, y, "DIAS TRABAJADOS")
c.drawString(200, y, "22")

c.showPage()
c.save()
print(f"Created {out_path}")
