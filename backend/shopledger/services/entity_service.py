# Overview: Registry of tracked entities (stock items, customers, suppliers, bank accounts).

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import TrackedEntity, ENTITY_TYPES
from ..errors import ValidationError, NotFoundError, ConflictError


def _validate_type(entity_type: str) -> None:
    if entity_type not in ENTITY_TYPES:
        raise ValidationError(
            f"Invalid entity_type. Must be one of: {', '.join(ENTITY_TYPES)}",
            details={"entity_type": entity_type},
        )


def register_entity(entity_type: str, ref: str, name: str | None = None) -> TrackedEntity:
    """
    Register a new tracked entity.

    Raises:
        ValidationError: unknown type or blank ref
        ConflictError: (entity_type, ref) already registered
    """
    _validate_type(entity_type)
    ref = (ref or "").strip()
    if not ref:
        raise ValidationError("ref is required")
    if len(ref) > 64:
        raise ValidationError("ref exceeds max length 64")

    existing = db.session.query(TrackedEntity).filter_by(entity_type=entity_type, ref=ref).first()
    if existing:
        raise ConflictError(f"{entity_type} {ref} already exists")

    entity = TrackedEntity(entity_type=entity_type, ref=ref, name=name, is_active=True)
    db.session.add(entity)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"{entity_type} {ref} already exists")
    return entity


def find_entity(entity_type: str, ref: str) -> TrackedEntity | None:
    return db.session.query(TrackedEntity).filter_by(entity_type=entity_type, ref=ref).first()


def get_entity(entity_type: str, ref: str) -> TrackedEntity:
    _validate_type(entity_type)
    entity = find_entity(entity_type, ref)
    if entity is None:
        raise NotFoundError(
            f"{entity_type} {ref} not found",
            details={"entity_type": entity_type, "ref": ref},
        )
    return entity


def require_active_entity(entity_type: str, ref: str) -> TrackedEntity:
    """Resolve an entity a new posting may move. Inactive ones are refused."""
    entity = get_entity(entity_type, ref)
    if not entity.is_active:
        raise ValidationError(
            f"{entity_type} {ref} is inactive",
            details={"entity_type": entity_type, "ref": ref},
        )
    return entity


def list_entities(entity_type: str | None = None, *, include_inactive: bool = False) -> list[TrackedEntity]:
    query = db.session.query(TrackedEntity)
    if entity_type:
        _validate_type(entity_type)
        query = query.filter(TrackedEntity.entity_type == entity_type)
    if not include_inactive:
        query = query.filter(TrackedEntity.is_active.is_(True))
    return query.order_by(TrackedEntity.entity_type, TrackedEntity.ref).all()


def deactivate_entity(entity_type: str, ref: str) -> TrackedEntity:
    """Stop new postings against an entity. Its balance and history stay."""
    entity = get_entity(entity_type, ref)
    entity.is_active = False
    db.session.commit()
    return entity
