# Overview: Balance ledger; append-only movements plus their materialized projections.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import and_, func, or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Document, LedgerMovement, BalanceProjection, TrackedEntity
from ..errors import InsufficientStockError, StorageError, ValidationError
from shopledger.time_utils import utcnow, parse_iso_datetime
from .concurrency import lock_for_update
from .entity_service import get_entity
"""
Balance Ledger Invariants (authoritative)

- Movements are append-only; nothing here (or anywhere) updates or deletes one.
- For every (tracked entity, location): SUM(movement.delta) == projection.current_balance.
- Movements and projection updates are written inside the caller's transaction.
  This module never commits, so a posting either writes all of its movements
  and projection changes or none of them.
- A guarded entry may not drive its projection below zero. The guard lives in
  the UPDATE's WHERE clause, so it holds under concurrent writers.
"""


@dataclass
class MovementEntry:
    entity: TrackedEntity
    location: str
    delta: int
    guard: bool = False
    note: str | None = None

    @property
    def key(self) -> tuple[int, str]:
        return (self.entity.id, self.location)


@dataclass
class ReconciliationResult:
    entity_type: str
    ref: str
    location: str
    projected: int
    ledger_sum: int

    @property
    def drift(self) -> int:
        return self.projected - self.ledger_sum

    @property
    def ok(self) -> bool:
        return self.drift == 0

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type,
            "ref": self.ref,
            "location": self.location,
            "projected": self.projected,
            "ledger_sum": self.ledger_sum,
            "drift": self.drift,
            "ok": self.ok,
        }


def default_location_for(entity: TrackedEntity) -> str:
    if entity.is_stock:
        return current_app.config["DEFAULT_LOCATION"]
    return ""


def _ensure_projection(entity: TrackedEntity, location: str) -> BalanceProjection:
    projection = (
        db.session.query(BalanceProjection)
        .filter_by(tracked_entity_id=entity.id, location=location)
        .first()
    )
    if projection:
        return projection

    projection = BalanceProjection(tracked_entity_id=entity.id, location=location, current_balance=0)
    db.session.add(projection)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise StorageError(
            f"Balance projection for {entity.ref} at {location or '-'} was created concurrently",
            transient=True,
        ) from exc
    return projection


def _current_balance(projection_id: int) -> int:
    return (
        db.session.query(BalanceProjection.current_balance)
        .filter(BalanceProjection.id == projection_id)
        .scalar()
    ) or 0


def lock_balances(keys) -> dict[tuple[int, str], int]:
    """
    Read projection balances for (tracked_entity_id, location) keys under row locks.

    Missing projections read as 0. Must be called inside the posting transaction.
    """
    keys = list(dict.fromkeys(keys))
    if not keys:
        return {}

    query = db.session.query(BalanceProjection).filter(
        or_(*[
            and_(BalanceProjection.tracked_entity_id == entity_id, BalanceProjection.location == location)
            for entity_id, location in keys
        ])
    )
    rows = lock_for_update(query).all()

    balances = {key: 0 for key in keys}
    for row in rows:
        balances[(row.tracked_entity_id, row.location)] = row.current_balance
    return balances


def apply_movements(entries: list[MovementEntry], *, document: Document) -> list[LedgerMovement]:
    """
    Append one movement per entry and fold its delta into the projection.

    Raises:
        InsufficientStockError: a guarded entry would take its balance below zero
        StorageError (transient): a projection row was created concurrently

    Never commits. Any exception leaves the caller to roll back the transaction.
    """
    now = utcnow()
    movements = []

    for entry in entries:
        projection = _ensure_projection(entry.entity, entry.location)

        stmt = (
            update(BalanceProjection)
            .where(BalanceProjection.id == projection.id)
            .values(
                current_balance=BalanceProjection.current_balance + entry.delta,
                last_updated=now,
            )
        )
        if entry.guard:
            stmt = stmt.where(BalanceProjection.current_balance + entry.delta >= 0)

        result = db.session.execute(stmt, execution_options={"synchronize_session": False})
        if result.rowcount != 1:
            on_hand = _current_balance(projection.id)
            raise InsufficientStockError(
                entity_ref=entry.entity.ref,
                location=entry.location,
                on_hand=on_hand,
                requested=-entry.delta,
            )
        db.session.expire(projection)

        movement = LedgerMovement(
            tracked_entity_id=entry.entity.id,
            location=entry.location,
            delta=entry.delta,
            document_id=document.id,
            document_kind=document.kind,
            occurred_at=document.occurred_at,
            posted_at=now,
            note=entry.note,
        )
        db.session.add(movement)
        movements.append(movement)

    db.session.flush()
    return movements


def get_balance(entity_type: str, ref: str, location: str | None = None) -> int:
    """
    Current balance from the projection (no ledger scan).

    Returns 0 for a known entity that has never moved at `location`.
    Raises NotFoundError for an unknown entity.
    """
    entity = get_entity(entity_type, ref)
    if location is None:
        location = default_location_for(entity)
    balance = (
        db.session.query(BalanceProjection.current_balance)
        .filter_by(tracked_entity_id=entity.id, location=location)
        .scalar()
    )
    return balance or 0


def get_balances(entity_type: str, ref: str) -> list[BalanceProjection]:
    """Every location an entity has a projection at."""
    entity = get_entity(entity_type, ref)
    return (
        db.session.query(BalanceProjection)
        .filter_by(tracked_entity_id=entity.id)
        .order_by(BalanceProjection.location)
        .all()
    )


def get_movements_for_document(document_id: str) -> list[LedgerMovement]:
    return (
        db.session.query(LedgerMovement)
        .filter(LedgerMovement.document_id == document_id)
        .order_by(LedgerMovement.id)
        .all()
    )


def _reconcile(entity_id: int | None = None, location: str | None = None) -> list[ReconciliationResult]:
    sums_q = db.session.query(
        LedgerMovement.tracked_entity_id,
        LedgerMovement.location,
        func.coalesce(func.sum(LedgerMovement.delta), 0),
    ).group_by(LedgerMovement.tracked_entity_id, LedgerMovement.location)
    proj_q = db.session.query(BalanceProjection)

    if entity_id is not None:
        sums_q = sums_q.filter(LedgerMovement.tracked_entity_id == entity_id)
        proj_q = proj_q.filter(BalanceProjection.tracked_entity_id == entity_id)
    if location is not None:
        sums_q = sums_q.filter(LedgerMovement.location == location)
        proj_q = proj_q.filter(BalanceProjection.location == location)

    sums = {(eid, loc): int(total) for eid, loc, total in sums_q.all()}
    projected = {(p.tracked_entity_id, p.location): p.current_balance for p in proj_q.all()}

    keys = sorted(set(sums) | set(projected))
    entities = {
        e.id: e
        for e in db.session.query(TrackedEntity).filter(TrackedEntity.id.in_({k[0] for k in keys})).all()
    } if keys else {}

    results = []
    for key in keys:
        entity = entities[key[0]]
        result = ReconciliationResult(
            entity_type=entity.entity_type,
            ref=entity.ref,
            location=key[1],
            projected=projected.get(key, 0),
            ledger_sum=sums.get(key, 0),
        )
        if not result.ok:
            current_app.logger.error(
                "Balance drift for %s %s at %s: projection %d, ledger %d (drift %d)",
                result.entity_type, result.ref, result.location or "-",
                result.projected, result.ledger_sum, result.drift,
            )
        results.append(result)
    return results


def reconcile(entity_type: str, ref: str, location: str | None = None) -> list[ReconciliationResult]:
    """
    Compare projections with the sum of movements for one entity.

    Drift is reported (and logged), never corrected.
    """
    entity = get_entity(entity_type, ref)
    return _reconcile(entity.id, location)


def reconcile_all() -> list[ReconciliationResult]:
    return _reconcile()


def encode_cursor(movement: LedgerMovement) -> str:
    return f"{movement.posted_at.isoformat()}|{movement.id}"


def decode_cursor(raw: str) -> tuple[datetime, int]:
    try:
        posted_raw, id_raw = raw.split("|")
        posted_at = parse_iso_datetime(posted_raw)
        movement_id = int(id_raw)
    except ValueError:
        raise ValidationError("cursor must be in format <ISO-8601>|<id>")
    if posted_at is None:
        raise ValidationError("cursor must be in format <ISO-8601>|<id>")
    return posted_at, movement_id


def list_movements(
    *,
    entity_type: str | None = None,
    ref: str | None = None,
    location: str | None = None,
    document_id: str | None = None,
    cursor: str | None = None,
    limit: int = 100,
) -> tuple[list[LedgerMovement], str | None]:
    """
    Movement history, newest first.

    Returns (rows, next_cursor); next_cursor is None on the last page.
    """
    query = db.session.query(LedgerMovement)

    if entity_type and ref:
        entity = get_entity(entity_type, ref)
        query = query.filter(LedgerMovement.tracked_entity_id == entity.id)
    elif entity_type:
        query = query.join(TrackedEntity).filter(TrackedEntity.entity_type == entity_type)
    if location is not None:
        query = query.filter(LedgerMovement.location == location)
    if document_id:
        query = query.filter(LedgerMovement.document_id == document_id)

    if cursor:
        cursor_dt, cursor_id = decode_cursor(cursor)
        query = query.filter(
            or_(
                LedgerMovement.posted_at < cursor_dt,
                and_(LedgerMovement.posted_at == cursor_dt, LedgerMovement.id < cursor_id),
            )
        )

    rows = (
        query.order_by(LedgerMovement.posted_at.desc(), LedgerMovement.id.desc())
        .limit(limit + 1)
        .all()
    )

    next_cursor = None
    if len(rows) > limit:
        rows = rows[:limit]
        next_cursor = encode_cursor(rows[-1])
    return rows, next_cursor
