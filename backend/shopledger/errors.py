# Overview: Typed error taxonomy shared by the document store, ledger and posting engine.

from __future__ import annotations


class LedgerError(Exception):
    """
    Base class for every error the posting path reports to callers.

    Each subclass carries a stable error_kind and the HTTP status a thin
    adapter should answer with. details is always JSON-serializable.
    """
    error_kind = "ledger_error"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error_kind": self.error_kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(LedgerError):
    """Malformed or incomplete draft. Raised before anything is written."""
    error_kind = "validation_error"
    status_code = 400


class InsufficientStockError(LedgerError):
    """A stock-reducing line would drive a projection below zero."""
    error_kind = "insufficient_stock"
    status_code = 409

    def __init__(self, *, entity_ref: str, location: str, on_hand: int, requested: int, items: list | None = None):
        self.entity_ref = entity_ref
        self.location = location
        self.on_hand = on_hand
        self.requested = requested
        self.shortfall = requested - on_hand
        details = {
            "entity_ref": entity_ref,
            "location": location,
            "on_hand": on_hand,
            "requested": requested,
            "shortfall": self.shortfall,
        }
        if items:
            details["items"] = items
        super().__init__(
            f"Insufficient stock for {entity_ref} at {location}: "
            f"on hand {on_hand}, requested {requested}, short by {self.shortfall}",
            details,
        )


class NotFoundError(LedgerError):
    error_kind = "not_found"
    status_code = 404


class ConflictError(LedgerError):
    """Duplicate idempotency key, number collision or invalid state transition."""
    error_kind = "conflict"
    status_code = 409


class StorageError(LedgerError):
    """Failure at the persistence boundary."""
    error_kind = "storage_error"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None, *, transient: bool = False):
        super().__init__(message, details)
        self.transient = transient


class PostingTimeoutError(StorageError):
    """A post() attempt ran past its deadline; its transaction was aborted."""
    error_kind = "timeout"
    status_code = 504
