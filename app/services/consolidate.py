"""
Per legajo||periodo consolidation.

- merge_data(previous, new):
    * 5-digit concept codes and additive concept-table fields are summed
      (Decimal, 2 places): a receipt page is a partial amount, not a correction
    * every other key: the new value if non-empty, else the previous one
    * ARCHIVO / LEGAJO / PERIODO are identity, not data columns
  Summation makes the result independent of the order receipts arrive in.

- ConsolidationService.ingest(): hash dedup against the receipt history, then
  an atomic read-modify-write on the consolidated store for that key.
"""

from __future__ import annotations

import hashlib
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from app.models.schemas import ConsolidatedRecord, FileOutcome, ParseResult, ReceiptRecord
from app.services.stores import ConsolidatedStore, ReceiptStore
from app.util.logger import get_logger
from app.util.numbers import is_code, round2, to_decimal
from extraction.patterns import ADDITIVE_FIELDS, UNKNOWN, UNMAPPED_CONCEPT_PREFIX

KEY_SEP = "||"
IDENTITY_FIELDS = {"ARCHIVO", "LEGAJO", "PERIODO"}
# Parser bookkeeping, never merged into the aggregate
TRANSIENT_FIELDS = {"GUARDAR", "ERROR"}
EMPTY_VALUES = ("", "-")


def make_key(legajo: str, periodo: str) -> str:
    return f"{(legajo or '').strip()}{KEY_SEP}{(periodo or '').strip()}"


def split_key(key: str) -> tuple:
    legajo, _, periodo = key.partition(KEY_SEP)
    return legajo, periodo


def content_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def is_additive(key: str, additive_fields: Iterable[str] = ADDITIVE_FIELDS) -> bool:
    return is_code(key) or key in additive_fields or key.startswith(UNMAPPED_CONCEPT_PREFIX)


def merge_data(previous: Optional[Dict[str, str]], new: Dict[str, str],
               additive_fields: Iterable[str] = ADDITIVE_FIELDS) -> Dict[str, str]:
    additive_fields = set(additive_fields)
    merged: Dict[str, str] = {
        k: v for k, v in (previous or {}).items() if k not in IDENTITY_FIELDS | TRANSIENT_FIELDS
    }
    for key, value in new.items():
        if key in IDENTITY_FIELDS or key in TRANSIENT_FIELDS:
            continue
        if is_additive(key, additive_fields):
            total = to_decimal(merged.get(key)) + to_decimal(value)
            merged[key] = str(round2(total))
            continue
        v = (value or "").strip()
        if v not in EMPTY_VALUES:
            merged[key] = v
        else:
            merged.setdefault(key, v)
    return merged


def merge_archivos(previous: Iterable[str], new: Iterable[str]) -> List[str]:
    out: List[str] = []
    for name in list(previous or []) + list(new or []):
        if name and name not in out:
            out.append(name)
    return out


def merge_record(previous: Optional[ConsolidatedRecord], receipt: ReceiptRecord) -> ConsolidatedRecord:
    key = make_key(receipt.legajo, receipt.periodo)
    if previous is None:
        previous = ConsolidatedRecord(key=key, legajo=receipt.legajo, periodo=receipt.periodo)
    return ConsolidatedRecord(
        key=key,
        legajo=receipt.legajo,
        periodo=receipt.periodo,
        nombre=receipt.nombre if receipt.nombre not in (None, *EMPTY_VALUES) else previous.nombre,
        cuil=receipt.cuil if receipt.cuil not in (None, *EMPTY_VALUES) else previous.cuil,
        archivos=merge_archivos(previous.archivos, [receipt.filename]),
        data=merge_data(previous.data, receipt.data),
    )


def receipt_from_result(result: ParseResult, filename: str, hashes: List[str]) -> ReceiptRecord:
    data = result.data
    return ReceiptRecord(
        legajo=data.get("LEGAJO", "-"),
        periodo=data.get("PERIODO", "-"),
        nombre=data.get("NOMBRE"),
        cuil=data.get("CUIL"),
        filename=filename,
        data=dict(data),
        hashes=hashes,
    )


class ConsolidationService:
    """Receipt history + consolidated aggregate, updated together."""

    def __init__(self, receipts: Optional[ReceiptStore] = None,
                 consolidated: Optional[ConsolidatedStore] = None):
        self.receipts = receipts or ReceiptStore()
        self.consolidated = consolidated or ConsolidatedStore()

    def ingest(self, result: ParseResult, digest: str, filename: str) -> FileOutcome:
        """
        Store one parsed receipt and fold it into its legajo||periodo record.

        Duplicates and unsaveable results are reported as "skipped"; they are
        outcomes, not errors.
        """
        logger = get_logger()
        data = result.data

        if not result.should_save:
            reason = data.get("ERROR", "Marked as not saveable")
            logger.info(f"Skipping {filename}: {reason}")
            return FileOutcome(filename=filename, status="skipped", reason=reason, content_hash=digest)
        if data.get("EMPRESA", UNKNOWN) == UNKNOWN:
            return FileOutcome(filename=filename, status="skipped",
                               reason="Unrecognized employer", content_hash=digest)
        legajo, periodo = data.get("LEGAJO", "-"), data.get("PERIODO", "-")
        if legajo in EMPTY_VALUES or periodo in EMPTY_VALUES:
            return FileOutcome(filename=filename, status="skipped",
                               reason="Missing LEGAJO or PERIODO", content_hash=digest)

        key = make_key(legajo, periodo)
        receipt = receipt_from_result(result, filename, [digest])
        with self.consolidated.locked(key):
            if not self.receipts.add(receipt):
                logger.info(f"Duplicate file {filename} ({digest[:16]}), already consolidated")
                return FileOutcome(filename=filename, status="skipped", reason="Duplicate file",
                                   key=key, content_hash=digest)
            merged = merge_record(self.consolidated.get_by_key(key), receipt)
            self.consolidated.upsert(merged)

        logger.info(f"Consolidated {filename} into {key} ({len(merged.archivos)} file(s))")
        return FileOutcome(filename=filename, status="success", key=key, content_hash=digest)

    def update_fields(self, key: str, values: Dict[str, str]) -> Optional[ConsolidatedRecord]:
        """Overwrite (not sum) fields of an existing record; used by region OCR replay."""
        with self.consolidated.locked(key):
            record = self.consolidated.get_by_key(key)
            if record is None:
                return None
            record.data.update(values)
            self.consolidated.upsert(record)
            return record

    def remove_fields(self, key: str, names: Iterable[str]) -> None:
        with self.consolidated.locked(key):
            record = self.consolidated.get_by_key(key)
            if record is None:
                return
            for name in names:
                record.data.pop(name, None)
            self.consolidated.upsert(record)

    def records(self) -> List[ConsolidatedRecord]:
        return self.consolidated.all()
