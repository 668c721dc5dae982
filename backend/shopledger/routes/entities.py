# Overview: Flask API routes for tracked entities; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import entity_service, ledger_service
from ..errors import LedgerError
from ..decorators import require_auth


entities_bp = Blueprint("entities", __name__, url_prefix="/api/entities")


@entities_bp.post("")
@require_auth
def create_entity_route():
    """Register a stock item, customer, supplier or bank account."""
    try:
        data = request.get_json(silent=True) or {}
        entity = entity_service.register_entity(
            data.get("entity_type"),
            data.get("ref"),
            name=data.get("name"),
        )
        return jsonify({"entity": entity.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register entity")
        return jsonify({"error_kind": "internal_error", "message": "Internal server error"}), 500


@entities_bp.get("")
@require_auth
def list_entities_route():
    try:
        include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
        entities = entity_service.list_entities(
            request.args.get("entity_type"),
            include_inactive=include_inactive,
        )
        return jsonify({"items": [e.to_dict() for e in entities], "count": len(entities)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@entities_bp.get("/<entity_type>/<ref>")
@require_auth
def get_entity_route(entity_type: str, ref: str):
    try:
        entity = entity_service.get_entity(entity_type, ref)
        return jsonify({"entity": entity.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@entities_bp.get("/<entity_type>/<ref>/balance")
@require_auth
def get_balance_route(entity_type: str, ref: str):
    """
    Current balance from the projection.

    ?location=<loc> narrows a stock item to one location; without it the
    response also lists every location the item has a balance at.
    """
    try:
        location = request.args.get("location")
        balance = ledger_service.get_balance(entity_type, ref, location)
        result = {
            "entity_type": entity_type,
            "ref": ref,
            "location": location,
            "current_balance": balance,
        }
        if location is None:
            result["locations"] = [p.to_dict() for p in ledger_service.get_balances(entity_type, ref)]
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@entities_bp.post("/<entity_type>/<ref>/deactivate")
@require_auth
def deactivate_entity_route(entity_type: str, ref: str):
    try:
        entity = entity_service.deactivate_entity(entity_type, ref)
        current_app.logger.info("Deactivated %s %s", entity_type, ref)
        return jsonify({"entity": entity.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
