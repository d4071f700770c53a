# Overview: Error taxonomy for ledger operations; each error maps to a stable code and HTTP status.

"""
Ledger Error Taxonomy

Every orchestrated operation (dispatch, sale, reconcile, payment, cancel)
fails with exactly one of these. Routes translate them to JSON via
`to_dict()` and `http_status`; no error is fatal to the process.

- Caller-correctable: NotFound, InvalidState, OverReturn, InsufficientStock,
  CreditLimitExceeded, DuplicateScan, InvariantViolation
- Retryable: TransactionConflict (raised only after the automatic retry
  budget is spent)
- Surfaced, never retried: DegradedConsistency
"""


class LedgerError(Exception):
    """Base class for ledger operation errors."""
    code = "LEDGER_ERROR"
    http_status = 400
    retryable = False

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code}


class NotFound(LedgerError):
    code = "NOT_FOUND"
    http_status = 404


class InvalidState(LedgerError):
    """Operation not allowed in the record's current lifecycle status."""
    code = "INVALID_STATE"
    http_status = 409


class OverReturn(LedgerError):
    """Batch would account for more units than were fronted."""
    code = "OVER_RETURN"
    http_status = 409


class InsufficientStock(LedgerError):
    code = "INSUFFICIENT_STOCK"
    http_status = 409


class CreditLimitExceeded(LedgerError):
    code = "CREDIT_LIMIT_EXCEEDED"
    http_status = 409


class DuplicateScan(LedgerError):
    """Barcode repeated within a batch or already reconciled for the record."""
    code = "DUPLICATE_SCAN"
    http_status = 409

    def __init__(self, message: str, barcodes: list[str] | None = None):
        super().__init__(message)
        self.barcodes = barcodes or []

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["barcodes"] = self.barcodes
        return payload


class InvariantViolation(LedgerError):
    """A quantity update would break sold + returned + damaged <= fronted or go negative."""
    code = "INVARIANT_VIOLATION"
    http_status = 409


class TransactionConflict(LedgerError):
    """Concurrent writer or lock timeout; safe to resubmit."""
    code = "TRANSACTION_CONFLICT"
    http_status = 409
    retryable = True

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["retryable"] = True
        return payload


class DegradedConsistency(LedgerError):
    """The atomic primitive is unavailable; the fallback refused or could not verify its writes."""
    code = "DEGRADED_CONSISTENCY"
    http_status = 503

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["degraded"] = True
        return payload
