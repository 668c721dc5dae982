# Overview: Flask API routes for the balance ledger; movement history and reconciliation.

from flask import Blueprint, request, jsonify, current_app

from ..services import ledger_service
from ..errors import LedgerError
from ..decorators import require_auth

"""
Time semantics:
- Movements are listed newest first by posted_at (system time), then id.
- cursor is "<posted_at ISO-8601>|<id>" as returned in next_cursor.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@ledger_bp.get("/movements")
@require_auth
def list_movements_route():
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, current_app.config["MAX_PAGE_SIZE"]))

    try:
        rows, next_cursor = ledger_service.list_movements(
            entity_type=request.args.get("entity_type"),
            ref=request.args.get("ref"),
            location=request.args.get("location"),
            document_id=request.args.get("document_id"),
            cursor=request.args.get("cursor"),
            limit=limit,
        )
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({
        "items": [r.to_dict() for r in rows],
        "next_cursor": next_cursor,
        "limit": limit,
    }), 200


@ledger_bp.get("/reconcile")
@require_auth
def reconcile_route():
    """
    Compare projections with summed movements.

    ?entity_type=&ref=[&location=] checks one entity, otherwise all of them.
    Drift is reported, never corrected.
    """
    entity_type = request.args.get("entity_type")
    ref = request.args.get("ref")

    try:
        if entity_type and ref:
            results = ledger_service.reconcile(entity_type, ref, request.args.get("location"))
        else:
            results = ledger_service.reconcile_all()
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code

    drift = [r.to_dict() for r in results if not r.ok]
    return jsonify({
        "ok": not drift,
        "checked": len(results),
        "drift": drift,
        "items": [r.to_dict() for r in results],
    }), 200
