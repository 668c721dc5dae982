# Overview: Flask API routes for documents; drafting, posting and reversal.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import document_service, posting_service
from ..errors import LedgerError, StorageError
from ..validation import parse_draft_payload
from ..time_utils import parse_iso_datetime
from ..decorators import require_auth


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


def _storage_failure(e: StorageError, action: str):
    # Cause stays in the server log; the client gets the typed, generic error
    current_app.logger.exception("Storage failure while %s", action)
    return jsonify(e.to_dict()), e.status_code


def _internal_error(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error_kind": "internal_error", "message": "Internal server error"}), 500


@documents_bp.post("/post")
@require_auth
def post_document_route():
    """
    Create and post a document in one step.

    Body: {kind, header, lines, counterparty_ref?, occurred_at?, request_id?}
    Idempotency: Idempotency-Key header (or request_id in the body).

    Returns:
    - 201: {document_number, id, total_amount, status}
    - 200: same body, replay of an earlier post with the same key
    """
    try:
        draft = parse_draft_payload(
            request.get_json(silent=True),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
        result = posting_service.post_document(draft, posted_by=g.principal)
        return jsonify(result.to_dict()), (200 if result.replayed else 201)

    except StorageError as e:
        return _storage_failure(e, "posting document")
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _internal_error("post document")


@documents_bp.post("")
@require_auth
def create_draft_route():
    """Store a draft (no number, no ledger effect)."""
    try:
        draft = parse_draft_payload(
            request.get_json(silent=True),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
        doc = document_service.create_draft(
            draft.kind,
            draft.header,
            draft.lines,
            created_by=g.principal,
            counterparty_ref=draft.counterparty_ref,
            occurred_at=draft.occurred_at,
            idempotency_key=draft.idempotency_key,
        )
        return jsonify({"document": doc.to_dict(include_lines=True)}), 201

    except StorageError as e:
        return _storage_failure(e, "creating draft")
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _internal_error("create draft")


@documents_bp.post("/<document_id>/post")
@require_auth
def post_draft_route(document_id: str):
    try:
        result = posting_service.post_draft(document_id, posted_by=g.principal)
        return jsonify(result.to_dict()), (200 if result.replayed else 201)

    except StorageError as e:
        return _storage_failure(e, "posting draft")
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _internal_error("post draft")


@documents_bp.post("/<document_id>/reverse")
@require_auth
def reverse_document_route(document_id: str):
    """
    Reverse a posted document.

    Body: {reason}
    Returns the compensating document's posting result.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = posting_service.reverse_document(
            document_id,
            reversed_by=g.principal,
            reason=data.get("reason"),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
        body = result.to_dict()
        body["reversal_of_id"] = document_id
        return jsonify(body), (200 if result.replayed else 201)

    except StorageError as e:
        return _storage_failure(e, "reversing document")
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _internal_error("reverse document")


@documents_bp.get("/<document_id>")
@require_auth
def get_document_route(document_id: str):
    try:
        doc = document_service.get_document(document_id)
        return jsonify({"document": doc.to_dict(include_lines=True)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@documents_bp.get("")
@require_auth
def list_documents_route():
    """
    List documents.

    Query params: kind, status, counterparty_ref, from_date, to_date, limit, offset
    """
    max_limit = current_app.config["MAX_PAGE_SIZE"]
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, max_limit))
    offset = max(0, request.args.get("offset", default=0, type=int))

    try:
        from_date = parse_iso_datetime(request.args.get("from_date"))
        to_date = parse_iso_datetime(request.args.get("to_date"))
    except ValueError:
        return jsonify({
            "error_kind": "validation_error",
            "message": "from_date and to_date must be ISO-8601 datetimes",
            "details": {},
        }), 400

    rows, total = document_service.list_documents(
        kind=request.args.get("kind"),
        status=request.args.get("status"),
        counterparty_ref=request.args.get("counterparty_ref"),
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [doc.to_dict() for doc in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200
