from __future__ import annotations

import uuid

from ..extensions import db
from shopledger.time_utils import to_utc_z


STATUS_DRAFT = "draft"
STATUS_POSTED = "posted"
STATUS_VOIDED = "voided"


def _new_document_id() -> str:
    return str(uuid.uuid4())


class Document(db.Model):
    """
    Business document header (sale, receipt, transfer, payment, ...).

    LIFECYCLE:
    1. draft: stored without a document number, editable by re-creation only
    2. posted: numbered, lines and ledger movements written in one transaction
    3. voided: a compensating document has been posted against it

    IMMUTABLE: once posted, only the void metadata may change. Corrections
    are new documents (returns, reversals), never edits.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_documents_number"),
        db.UniqueConstraint("idempotency_key", name="uq_documents_idempotency_key"),
        db.Index("ix_documents_kind_status_occurred", "kind", "status", "occurred_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_document_id)

    # Human-readable number (e.g. "GRN-0001"); allocated at posting time
    document_number = db.Column(db.String(64), nullable=True)

    kind = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=STATUS_DRAFT, index=True)

    counterparty_ref = db.Column(db.String(64), nullable=True, index=True)
    location = db.Column(db.String(64), nullable=True)

    # Business time, distinct from created_at
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    total_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)

    # Kind-specific header fields (payment_status, adjustment_type, ...)
    attributes = db.Column(db.JSON, nullable=False, default=dict)

    idempotency_key = db.Column(db.String(128), nullable=True)

    reversal_of_id = db.Column(db.String(36), db.ForeignKey("documents.id"), nullable=True, index=True)

    created_by = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    posted_by = db.Column(db.String(128), nullable=True)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by = db.Column(db.String(128), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        "DocumentLine",
        back_populates="document",
        order_by="DocumentLine.line_no",
        cascade="all, delete-orphan",
        lazy=True,
    )
    reversal_of = db.relationship("Document", remote_side=[id], foreign_keys=[reversal_of_id])

    def __repr__(self) -> str:
        return f"<Document {self.kind} {self.document_number or self.id} {self.status}>"

    def to_dict(self, include_lines: bool = False) -> dict:
        result = {
            "id": self.id,
            "document_number": self.document_number,
            "kind": self.kind,
            "status": self.status,
            "counterparty_ref": self.counterparty_ref,
            "location": self.location,
            "occurred_at": to_utc_z(self.occurred_at),
            "total_amount": self.total_amount_cents,
            "header": dict(self.attributes or {}),
            "idempotency_key": self.idempotency_key,
            "reversal_of_id": self.reversal_of_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "posted_by": self.posted_by,
            "posted_at": to_utc_z(self.posted_at),
            "voided_by": self.voided_by,
            "voided_at": to_utc_z(self.voided_at),
        }
        if include_lines:
            result["lines"] = [line.to_dict() for line in self.lines]
        return result


class DocumentLine(db.Model):
    """
    Line item owned by exactly one Document.

    Goods lines use quantity / unit price / discount; money lines
    (payments, bank entries) use amount_cents.
    """
    __tablename__ = "document_lines"
    __table_args__ = (
        db.UniqueConstraint("document_id", "line_no", name="uq_document_lines_doc_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.String(36), db.ForeignKey("documents.id"), nullable=False, index=True)
    line_no = db.Column(db.Integer, nullable=False)

    tracked_entity_ref = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=True)
    amount_cents = db.Column(db.BigInteger, nullable=True)
    unit_price_cents = db.Column(db.BigInteger, nullable=False, default=0)
    discount_cents = db.Column(db.BigInteger, nullable=False, default=0)
    net_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)

    description = db.Column(db.String(255), nullable=True)

    document = db.relationship("Document", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_no": self.line_no,
            "tracked_entity_ref": self.tracked_entity_ref,
            "quantity": self.quantity,
            "amount": self.amount_cents,
            "unit_price": self.unit_price_cents,
            "discount": self.discount_cents,
            "net_amount": self.net_amount_cents,
            "description": self.description,
        }


class SequenceCounter(db.Model):
    """
    Monotonic per-kind document number source.

    WHY: Numbers are taken with one atomic UPDATE inside the posting
    transaction, so concurrent posts of the same kind serialize on this row
    and a rolled-back post gives its number back.
    """
    __tablename__ = "sequence_counters"

    kind = db.Column(db.String(32), primary_key=True)
    prefix = db.Column(db.String(16), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "prefix": self.prefix,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
