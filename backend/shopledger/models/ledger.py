from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from shopledger.time_utils import to_utc_z


class LedgerImmutabilityError(Exception):
    """Raised when something tries to rewrite a posted ledger movement."""


class LedgerMovement(db.Model):
    """
    Append-only signed delta against one tracked entity (at one location).

    Invariant: for every (tracked_entity_id, location),
    SUM(delta) == BalanceProjection.current_balance.
    """
    __tablename__ = "ledger_movements"
    __table_args__ = (
        db.Index("ix_ledger_movements_entity_location", "tracked_entity_id", "location"),
        db.Index("ix_ledger_movements_posted", "posted_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tracked_entity_id = db.Column(db.Integer, db.ForeignKey("tracked_entities.id"), nullable=False)
    location = db.Column(db.String(64), nullable=False, default="")

    delta = db.Column(db.BigInteger, nullable=False)

    # Audit reference back to the document that caused the movement
    document_id = db.Column(db.String(36), db.ForeignKey("documents.id"), nullable=False, index=True)
    document_kind = db.Column(db.String(32), nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    note = db.Column(db.String(255), nullable=True)

    tracked_entity = db.relationship("TrackedEntity")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.tracked_entity.entity_type if self.tracked_entity else None,
            "entity_ref": self.tracked_entity.ref if self.tracked_entity else None,
            "location": self.location,
            "delta": self.delta,
            "document_id": self.document_id,
            "document_kind": self.document_kind,
            "occurred_at": to_utc_z(self.occurred_at),
            "posted_at": to_utc_z(self.posted_at),
            "note": self.note,
        }


@event.listens_for(LedgerMovement, "before_update")
def _refuse_movement_update(mapper, connection, target):
    raise LedgerImmutabilityError(f"ledger movement {target.id} is append-only")


@event.listens_for(LedgerMovement, "before_delete")
def _refuse_movement_delete(mapper, connection, target):
    raise LedgerImmutabilityError(f"ledger movement {target.id} is append-only")


class BalanceProjection(db.Model):
    """
    Materialized current balance per (tracked entity, location).

    Mutated only through ledger_service.apply_movements, with a single
    UPDATE ... SET current_balance = current_balance + delta per movement.
    """
    __tablename__ = "balance_projections"
    __table_args__ = (
        db.UniqueConstraint("tracked_entity_id", "location", name="uq_balance_projections_entity_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tracked_entity_id = db.Column(db.Integer, db.ForeignKey("tracked_entities.id"), nullable=False, index=True)
    location = db.Column(db.String(64), nullable=False, default="")
    current_balance = db.Column(db.BigInteger, nullable=False, default=0)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tracked_entity = db.relationship("TrackedEntity")

    def to_dict(self) -> dict:
        return {
            "entity_type": self.tracked_entity.entity_type if self.tracked_entity else None,
            "entity_ref": self.tracked_entity.ref if self.tracked_entity else None,
            "location": self.location,
            "current_balance": self.current_balance,
            "last_updated": to_utc_z(self.last_updated),
        }
