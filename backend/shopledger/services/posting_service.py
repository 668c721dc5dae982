# Overview: Posting engine; turns drafts into posted documents with their ledger effects, atomically.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Document,
    DocumentLine,
    ENTITY_STOCK_ITEM,
    ENTITY_CUSTOMER,
    ENTITY_SUPPLIER,
    STATUS_DRAFT,
    STATUS_POSTED,
    STATUS_VOIDED,
)
from ..errors import ValidationError, InsufficientStockError, NotFoundError, ConflictError, PostingTimeoutError
from ..validation import DocumentDraft, validate_draft
from shopledger.time_utils import utcnow
from . import document_kinds as kinds
from .concurrency import Deadline, begin_write_transaction, lock_for_update, run_with_retry
from .document_service import allocate_number, build_document, draft_from_document, get_by_idempotency_key
from .entity_service import require_active_entity
from .ledger_service import MovementEntry, apply_movements, get_movements_for_document, lock_balances
from .posting_rules import derive_movements
"""
Posting Invariants (authoritative)

- One posting == one database transaction: number allocation, header, lines,
  movements and projection updates commit together or not at all.
- The stock check reads projections under lock inside that transaction; the
  guarded UPDATE in apply_movements() is the final word.
- A posted document is never edited. Reversal posts a compensating document
  whose movements negate the original's and marks the original voided.
- An idempotency key maps to at most one document. Replaying it returns the
  original result instead of posting again.
"""


COUNTERPARTY_TYPES = {
    kinds.SALE_RETAIL: ENTITY_CUSTOMER,
    kinds.SALE_WHOLESALE: ENTITY_CUSTOMER,
    kinds.SALES_RETURN: ENTITY_CUSTOMER,
    kinds.CUSTOMER_PAYMENT: ENTITY_CUSTOMER,
    kinds.PURCHASE_ORDER: ENTITY_SUPPLIER,
    kinds.GOODS_RECEIPT: ENTITY_SUPPLIER,
    kinds.PURCHASE_RETURN: ENTITY_SUPPLIER,
    kinds.SUPPLIER_PAYMENT: ENTITY_SUPPLIER,
}


@dataclass
class PostingResult:
    document: Document
    replayed: bool = False

    def to_dict(self) -> dict:
        return {
            "document_number": self.document.document_number,
            "id": self.document.id,
            "total_amount": self.document.total_amount_cents,
            "status": self.document.status,
        }


def _settings() -> tuple[float, int, str]:
    config = current_app.config
    return (
        config["POSTING_TIMEOUT_SECONDS"],
        config["POSTING_RETRY_ATTEMPTS"],
        config["DEFAULT_LOCATION"],
    )


def _counterparty_type(kind: str, header: dict) -> str | None:
    if kind == kinds.OPENING_BALANCE:
        return header["account_type"]
    return COUNTERPARTY_TYPES.get(kind)


def _resolve_entries(doc: Document, header: dict, lines) -> list[MovementEntry]:
    """
    Check every referenced entity exists and is active, then build ledger entries.

    Raises:
        NotFoundError: an item, counterparty or account is not registered
        ValidationError: a referenced entity is inactive
    """
    resolved = {}

    def _entity(entity_type, ref):
        key = (entity_type, ref)
        if key not in resolved:
            resolved[key] = require_active_entity(entity_type, ref)
        return resolved[key]

    if kinds.KIND_RULES[doc.kind].line_mode == kinds.LINES_GOODS:
        for line in lines:
            _entity(ENTITY_STOCK_ITEM, line.tracked_entity_ref)

    counterparty_type = _counterparty_type(doc.kind, header)
    if doc.counterparty_ref and counterparty_type:
        _entity(counterparty_type, doc.counterparty_ref)

    planned = derive_movements(
        doc.kind,
        header,
        lines,
        counterparty_ref=doc.counterparty_ref,
        total_cents=doc.total_amount_cents,
    )
    return [
        MovementEntry(
            entity=_entity(move.entity_type, move.ref),
            location=move.location,
            delta=move.delta,
            guard=move.guarded,
            note=move.note,
        )
        for move in planned
    ]


def _check_stock(entries: list[MovementEntry]) -> None:
    """
    Reject the posting if any guarded balance would end below zero.

    Reads the affected projections under row locks, inside the posting
    transaction, and reports every short line at once.
    """
    required = defaultdict(int)
    refs = {}
    for entry in entries:
        if entry.guard:
            required[entry.key] += entry.delta
            refs[entry.key] = entry.entity.ref
    if not required:
        return

    balances = lock_balances(required)
    short = []
    for key, delta in required.items():
        on_hand = balances.get(key, 0)
        if on_hand + delta < 0:
            short.append({
                "entity_ref": refs[key],
                "location": key[1],
                "on_hand": on_hand,
                "requested": -delta,
                "shortfall": -delta - on_hand,
            })

    if short:
        first = short[0]
        raise InsufficientStockError(
            entity_ref=first["entity_ref"],
            location=first["location"],
            on_hand=first["on_hand"],
            requested=first["requested"],
            items=short if len(short) > 1 else None,
        )


def _post(doc: Document, header: dict, lines, *, posted_by: str, deadline: Deadline) -> None:
    """Allocate, write and apply one document inside the open transaction."""
    entries = _resolve_entries(doc, header, lines)
    deadline.check("validate")

    _check_stock(entries)
    deadline.check("stock_check")

    doc.document_number = allocate_number(doc.kind)
    doc.status = STATUS_POSTED
    doc.posted_by = posted_by
    doc.posted_at = utcnow()
    db.session.flush()

    apply_movements(entries, document=doc)
    deadline.check("apply")


def _replay(key: str, kind: str | None, *, reversal_of_id: str | None = None) -> PostingResult | None:
    """Result of an earlier posting under `key`, or None if the key is unused."""
    existing = get_by_idempotency_key(key)
    if existing is None:
        return None
    if (kind and existing.kind != kind) or (reversal_of_id and existing.reversal_of_id != reversal_of_id):
        raise ConflictError(
            "Idempotency key already used for a different document",
            details={"idempotency_key": key, "document_id": existing.id},
        )
    if existing.status == STATUS_DRAFT:
        raise ConflictError(
            "Idempotency key belongs to an unposted draft",
            details={"idempotency_key": key, "document_id": existing.id},
        )
    return PostingResult(existing, replayed=True)


def _release(result: PostingResult) -> PostingResult:
    """End a write transaction that turned out to have nothing to write."""
    db.session.rollback()
    return result


def _unique(work):
    """
    Report a unique-constraint violation anywhere in `work` as a ConflictError.

    On Postgres a concurrent post holding the same idempotency key surfaces at
    the first flush after it commits, not only at our commit.
    """
    def _wrapped():
        try:
            return work()
        except IntegrityError as exc:
            raise ConflictError("Duplicate idempotency key or document number") from exc
    return _wrapped


def _run(
    work,
    *,
    attempts: int,
    deadline: Deadline,
    key: str | None,
    kind: str | None,
    reversal_of_id: str | None = None,
) -> PostingResult:
    try:
        return run_with_retry(_unique(work), attempts=attempts, deadline=deadline)
    except ConflictError:
        # A concurrent post with the same key committed first
        if key:
            replay = _replay(key, kind, reversal_of_id=reversal_of_id)
            if replay is not None:
                return replay
        raise
    except PostingTimeoutError as exc:
        current_app.logger.warning("Posting aborted (%s): %s", kind or "document", exc.message)
        raise


def _log_result(result: PostingResult, action: str) -> PostingResult:
    doc = result.document
    if result.replayed:
        current_app.logger.info("Replayed %s %s (idempotency key %s)", doc.kind, doc.document_number, doc.idempotency_key)
    else:
        current_app.logger.info("%s %s %s total=%d by %s", action, doc.kind, doc.document_number, doc.total_amount_cents, doc.posted_by)
    return result


def post_document(draft: DocumentDraft, *, posted_by: str) -> PostingResult:
    """
    Create and post a document in one transaction.

    Raises:
        ValidationError: malformed draft or inactive entity
        NotFoundError: unregistered item, counterparty or account
        InsufficientStockError: a stock-reducing line exceeds on-hand
        ConflictError: idempotency key bound to another document
        StorageError / PostingTimeoutError: nothing was written
    """
    timeout, attempts, default_location = _settings()
    deadline = Deadline(timeout)

    header, total = validate_draft(draft, default_location=default_location)
    key = draft.idempotency_key

    if key:
        replay = _replay(key, draft.kind)
        if replay is not None:
            return _log_result(replay, "Posted")

    def _work():
        begin_write_transaction(timeout_seconds=deadline.remaining())
        if key:
            replay = _replay(key, draft.kind)
            if replay is not None:
                return _release(replay)

        doc = build_document(draft, header, total, created_by=posted_by)
        _post(doc, header, doc.lines, posted_by=posted_by, deadline=deadline)
        db.session.commit()
        return PostingResult(doc)

    return _log_result(_run(_work, attempts=attempts, deadline=deadline, key=key, kind=draft.kind), "Posted")


def post_draft(document_id: str, *, posted_by: str) -> PostingResult:
    """
    Post a stored draft. Posting an already posted document replays its result.

    Raises:
        NotFoundError: no such document
        ConflictError: the document was voided
        (plus everything post_document() raises)
    """
    timeout, attempts, default_location = _settings()
    deadline = Deadline(timeout)

    def _work():
        begin_write_transaction(timeout_seconds=deadline.remaining())
        doc = lock_for_update(db.session.query(Document).filter_by(id=document_id)).first()
        if not doc:
            raise NotFoundError(f"Document {document_id} not found", details={"document_id": document_id})
        if doc.status == STATUS_POSTED:
            return _release(PostingResult(doc, replayed=True))
        if doc.status != STATUS_DRAFT:
            raise ConflictError(
                f"Document {document_id} is {doc.status} and cannot be posted",
                details={"document_id": document_id, "status": doc.status},
            )

        header, _total = validate_draft(draft_from_document(doc), default_location=default_location)
        _post(doc, header, doc.lines, posted_by=posted_by, deadline=deadline)
        db.session.commit()
        return PostingResult(doc)

    return _log_result(_run(_work, attempts=attempts, deadline=deadline, key=None, kind=None), "Posted")


def reverse_document(
    document_id: str,
    *,
    reversed_by: str,
    reason: str,
    idempotency_key: str | None = None,
) -> PostingResult:
    """
    Post a compensating document that negates a posted one.

    The reversal has the original's kind, its own number, and movements that
    are the exact negation of the original's movements. The original is marked
    voided; its movements stay in the ledger untouched.

    Raises:
        ValidationError: reason missing
        NotFoundError: no such document
        ConflictError: original is not posted, or is itself a reversal
        InsufficientStockError: goods already sold/moved on cannot be taken back
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")

    timeout, attempts, _default_location = _settings()
    deadline = Deadline(timeout)
    key = idempotency_key or f"reversal:{document_id}"

    def _work():
        begin_write_transaction(timeout_seconds=deadline.remaining())
        original = lock_for_update(db.session.query(Document).filter_by(id=document_id)).first()
        if not original:
            raise NotFoundError(f"Document {document_id} not found", details={"document_id": document_id})

        replay = _replay(key, original.kind, reversal_of_id=original.id)
        if replay is not None:
            return _release(replay)

        if original.status != STATUS_POSTED:
            raise ConflictError(
                f"Only posted documents can be reversed (document is {original.status})",
                details={"document_id": document_id, "status": original.status},
            )
        if original.reversal_of_id:
            raise ConflictError(
                "A reversal cannot itself be reversed",
                details={"document_id": document_id},
            )

        note = f"reversal of {original.document_number}"
        entries = []
        for movement in get_movements_for_document(original.id):
            entity = movement.tracked_entity
            delta = -movement.delta
            entries.append(
                MovementEntry(
                    entity=entity,
                    location=movement.location,
                    delta=delta,
                    guard=entity.is_stock and delta < 0,
                    note=note,
                )
            )
        deadline.check("validate")

        _check_stock(entries)
        deadline.check("stock_check")

        now = utcnow()
        reversal = Document(
            kind=original.kind,
            status=STATUS_POSTED,
            document_number=allocate_number(original.kind),
            counterparty_ref=original.counterparty_ref,
            location=original.location,
            occurred_at=now,
            total_amount_cents=original.total_amount_cents,
            attributes={
                **(original.attributes or {}),
                "reason": reason,
                "reversal_of": original.document_number,
            },
            idempotency_key=key,
            reversal_of_id=original.id,
            created_by=reversed_by,
            posted_by=reversed_by,
            posted_at=now,
        )
        for line in original.lines:
            reversal.lines.append(
                DocumentLine(
                    line_no=line.line_no,
                    tracked_entity_ref=line.tracked_entity_ref,
                    quantity=line.quantity,
                    amount_cents=line.amount_cents,
                    unit_price_cents=line.unit_price_cents,
                    discount_cents=line.discount_cents,
                    net_amount_cents=line.net_amount_cents,
                    description=line.description,
                )
            )
        db.session.add(reversal)
        db.session.flush()

        apply_movements(entries, document=reversal)

        original.status = STATUS_VOIDED
        original.voided_by = reversed_by
        original.voided_at = now
        deadline.check("apply")
        db.session.commit()
        return PostingResult(reversal)

    result = _run(_work, attempts=attempts, deadline=deadline, key=key, kind=None, reversal_of_id=document_id)
    return _log_result(result, "Reversed")
