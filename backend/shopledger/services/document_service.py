# Overview: Document store; header + line persistence and document-number allocation.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Document, DocumentLine, SequenceCounter, STATUS_DRAFT
from ..errors import ValidationError, NotFoundError, ConflictError, StorageError
from ..validation import DocumentDraft, DraftLine, validate_draft, _parse_line
from ..time_utils import normalize_occurred_at
from .document_kinds import KIND_RULES, get_kind_rule
"""
Document Store Invariants (authoritative)

- A draft has no document_number. Numbers are allocated only while posting,
  inside the posting transaction, so a failed post never consumes one.
- Numbers are <PREFIX>-<zero-padded n>, n strictly increasing per kind.
- Lines belong to exactly one document and are written with its header.
- occurred_at is business time; created_at is system time (DB default).
"""


def ensure_sequence_counters() -> int:
    """
    Seed one counter row per document kind.

    Safe to call repeatedly (idempotent). Returns the number of rows created.
    """
    existing = {kind for (kind,) in db.session.query(SequenceCounter.kind).all()}
    created = 0
    for kind, rule in KIND_RULES.items():
        if kind in existing:
            continue
        db.session.add(SequenceCounter(kind=kind, prefix=rule.prefix, next_number=1))
        created += 1
    db.session.commit()
    return created


def format_document_number(prefix: str, number: int, pad: int | None = None) -> str:
    if pad is None:
        pad = current_app.config.get("DOCUMENT_NUMBER_PAD", 4)
    return f"{prefix}-{number:0{pad}d}"


def allocate_number(kind: str) -> str:
    """
    Take the next document number for a kind.

    Must run inside the caller's (posting) transaction: the increment is a
    single UPDATE on the counter row, which holds that row until commit, so
    concurrent posts of the same kind are serialized and a rollback returns
    the number. Never commits.

    Raises:
        ValidationError: unknown kind
        StorageError (transient): two first-use inserts raced
    """
    rule = get_kind_rule(kind)
    if rule is None:
        raise ValidationError(f"Invalid kind: {kind}")

    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.kind == kind)
        .values(next_number=SequenceCounter.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(SequenceCounter.next_number)
            .filter_by(kind=kind)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(SequenceCounter(kind=kind, prefix=rule.prefix, next_number=2))
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise StorageError(
                f"Sequence counter for {kind} was created concurrently",
                transient=True,
            ) from exc
        number = 1

    return format_document_number(rule.prefix, number)


def coerce_draft_lines(lines) -> list[DraftLine]:
    """Accept DraftLine objects or raw JSON-style dicts."""
    result = []
    for index, line in enumerate(lines or []):
        if isinstance(line, DraftLine):
            result.append(line)
        else:
            result.append(_parse_line(index, line))
    return result


def build_document(
    draft: DocumentDraft,
    header: dict,
    total_amount_cents: int,
    *,
    created_by: str,
    status: str = STATUS_DRAFT,
) -> Document:
    """Stage a header and its lines in the session (no flush, no commit)."""
    doc = Document(
        kind=draft.kind,
        status=status,
        counterparty_ref=draft.counterparty_ref,
        location=header.get("location"),
        occurred_at=normalize_occurred_at(draft.occurred_at),
        total_amount_cents=total_amount_cents,
        attributes=header,
        idempotency_key=draft.idempotency_key,
        created_by=created_by,
    )
    for line_no, line in enumerate(draft.lines, start=1):
        doc.lines.append(
            DocumentLine(
                line_no=line_no,
                tracked_entity_ref=line.tracked_entity_ref,
                quantity=line.quantity,
                amount_cents=line.amount_cents,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                net_amount_cents=line.net_amount_cents,
                description=line.description,
            )
        )
    db.session.add(doc)
    return doc


def draft_from_document(doc: Document) -> DocumentDraft:
    """Rebuild the draft a stored document was created from."""
    return DocumentDraft(
        kind=doc.kind,
        header=dict(doc.attributes or {}),
        lines=[
            DraftLine(
                tracked_entity_ref=line.tracked_entity_ref,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                amount_cents=line.amount_cents,
                description=line.description,
            )
            for line in doc.lines
        ],
        counterparty_ref=doc.counterparty_ref,
        occurred_at=doc.occurred_at,
        idempotency_key=doc.idempotency_key,
    )


def create_draft(
    kind: str,
    header: dict | None,
    lines,
    *,
    created_by: str,
    counterparty_ref: str | None = None,
    occurred_at: datetime | str | None = None,
    idempotency_key: str | None = None,
) -> Document:
    """
    Persist a draft document (status draft, no number, no ledger effect).

    Raises:
        ValidationError: malformed header/lines, or no lines for a kind that needs them
        ConflictError: idempotency_key already used by a different kind
    """
    if occurred_at is not None:
        try:
            occurred_at = normalize_occurred_at(occurred_at)
        except ValueError:
            raise ValidationError("occurred_at must be an ISO-8601 date or datetime")

    draft = DocumentDraft(
        kind=kind,
        header=dict(header or {}),
        lines=coerce_draft_lines(lines),
        counterparty_ref=counterparty_ref,
        occurred_at=occurred_at,
        idempotency_key=idempotency_key,
    )
    normalized, total = validate_draft(draft, default_location=current_app.config["DEFAULT_LOCATION"])

    if idempotency_key:
        existing = get_by_idempotency_key(idempotency_key)
        if existing is not None:
            if existing.kind != kind:
                raise ConflictError(
                    "Idempotency key already used for a different document",
                    details={"idempotency_key": idempotency_key, "document_id": existing.id},
                )
            return existing

    doc = build_document(draft, normalized, total, created_by=created_by)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Idempotency key already used", details={"idempotency_key": idempotency_key})
    return doc


def get_document(document_id: str) -> Document:
    """
    Get a document (lines load with it).

    Raises:
        NotFoundError: If not found
    """
    doc = db.session.query(Document).filter_by(id=document_id).first()
    if not doc:
        raise NotFoundError(f"Document {document_id} not found", details={"document_id": document_id})
    return doc


def get_by_idempotency_key(key: str) -> Document | None:
    return db.session.query(Document).filter_by(idempotency_key=key).first()


def get_by_number(document_number: str) -> Document | None:
    return db.session.query(Document).filter_by(document_number=document_number).first()


def list_documents(
    *,
    kind: str | None = None,
    status: str | None = None,
    counterparty_ref: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Document], int]:
    """
    List documents, newest business date first.

    Returns:
        Tuple of (list of documents, total count)
    """
    query = db.session.query(Document)

    if kind:
        query = query.filter(Document.kind == kind)
    if status:
        query = query.filter(Document.status == status)
    if counterparty_ref:
        query = query.filter(Document.counterparty_ref == counterparty_ref)
    if from_date:
        query = query.filter(Document.occurred_at >= from_date)
    if to_date:
        query = query.filter(Document.occurred_at <= to_date)

    total = query.count()

    query = query.order_by(Document.occurred_at.desc(), Document.created_at.desc())
    query = query.offset(offset).limit(limit)

    return query.all(), total
