# Overview: Return/Damage Scan Log; append-only, deduplicated by barcode per fronted record.

"""
Return/Damage Scan Log

Scan accumulation happens on the scanning device; the server only ever sees
a finished batch. Each entry is validated here before the Reconciliation
Engine does any arithmetic with it.

IDEMPOTENCY KEY: (fronted_record_id, barcode). A barcode repeated inside a
batch, or one already reconciled for the record, is a DuplicateScan. The
unique constraint on return_scan_entries backs this up against races.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..extensions import db
from ..models import ReturnScanEntry
from ..validation import ValidationError, optional_str
from .errors import DuplicateScan


CONDITION_GOOD = "GOOD"
CONDITION_DAMAGED = "DAMAGED"

VALID_CONDITIONS = [CONDITION_GOOD, CONDITION_DAMAGED]

MAX_BATCH_SIZE = 10_000


@dataclass(frozen=True)
class ScanEntry:
    """One scanned unit of a submitted batch, already validated."""
    barcode: str
    condition: str
    reason: str | None = None

    @property
    def is_damaged(self) -> bool:
        return self.condition == CONDITION_DAMAGED


def parse_entry(raw: Any, index: int) -> ScanEntry:
    """Validate one raw entry ({barcode, condition, reason?}) from a request body."""
    if isinstance(raw, ScanEntry):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError(f"entries[{index}] must be an object")

    barcode = raw.get("barcode")
    if not isinstance(barcode, str) or not barcode.strip():
        raise ValidationError(f"entries[{index}].barcode is required")
    barcode = barcode.strip()
    if len(barcode) > 128:
        raise ValidationError(f"entries[{index}].barcode exceeds max length 128")

    condition = raw.get("condition")
    if not isinstance(condition, str) or condition.strip().upper() not in VALID_CONDITIONS:
        raise ValidationError(f"entries[{index}].condition must be one of {VALID_CONDITIONS}")
    condition = condition.strip().upper()

    reason = optional_str(f"entries[{index}].reason", raw.get("reason"))
    if condition == CONDITION_DAMAGED and not reason:
        raise ValidationError(f"entries[{index}].reason is required for damaged units")

    return ScanEntry(barcode=barcode, condition=condition, reason=reason)


def parse_batch(raw_entries: Any) -> list[ScanEntry]:
    """
    Validate a whole batch.

    Raises:
        ValidationError: empty batch, malformed entry
        DuplicateScan: same barcode twice within the batch
    """
    if not isinstance(raw_entries, (list, tuple)) or not raw_entries:
        raise ValidationError("entries must be a non-empty list")
    if len(raw_entries) > MAX_BATCH_SIZE:
        raise ValidationError(f"A batch cannot contain more than {MAX_BATCH_SIZE} entries")

    entries = [parse_entry(raw, i) for i, raw in enumerate(raw_entries)]

    seen = set()
    repeated = []
    for entry in entries:
        if entry.barcode in seen and entry.barcode not in repeated:
            repeated.append(entry.barcode)
        seen.add(entry.barcode)
    if repeated:
        raise DuplicateScan(f"Barcodes repeated within the batch: {', '.join(repeated)}", repeated)

    return entries


def find_reconciled_barcodes(fronted_record_id: int, barcodes: list[str]) -> list[str]:
    """Barcodes from the list that are already in the log for this record."""
    if not barcodes:
        return []
    rows = db.session.query(ReturnScanEntry.barcode).filter(
        ReturnScanEntry.fronted_record_id == fronted_record_id,
        ReturnScanEntry.barcode.in_(barcodes),
    ).all()
    return sorted(row[0] for row in rows)


def require_not_reconciled(fronted_record_id: int, entries: list[ScanEntry]) -> None:
    already = find_reconciled_barcodes(fronted_record_id, [e.barcode for e in entries])
    if already:
        raise DuplicateScan(
            f"Barcodes already reconciled for fronted record {fronted_record_id}: {', '.join(already)}",
            already,
        )


def append_entries(
    tenant_id: int,
    fronted_record_id: int,
    batch_id: int,
    entries: list[ScanEntry],
) -> list[ReturnScanEntry]:
    """Append the batch to the log. Flushes only; the caller's transaction commits."""
    rows = [
        ReturnScanEntry(
            tenant_id=tenant_id,
            fronted_record_id=fronted_record_id,
            batch_id=batch_id,
            barcode=entry.barcode,
            condition=entry.condition,
            reason=entry.reason,
        )
        for entry in entries
    ]
    db.session.add_all(rows)
    db.session.flush()
    return rows


def list_entries(tenant_id: int, fronted_record_id: int) -> list[ReturnScanEntry]:
    return db.session.query(ReturnScanEntry).filter_by(
        tenant_id=tenant_id, fronted_record_id=fronted_record_id
    ).order_by(ReturnScanEntry.id.asc()).all()
