# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app


def require_auth(f):
    """
    Require an authenticated principal.

    Authentication itself happens upstream; the gateway forwards the
    principal in the configured header (AUTH_PRINCIPAL_HEADER).

    Sets g.principal for the route. Returns 401 if the header is absent.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        header = current_app.config["AUTH_PRINCIPAL_HEADER"]
        principal = (request.headers.get(header) or "").strip()

        if not principal:
            return jsonify({
                "error_kind": "unauthorized",
                "message": "Authentication required",
                "details": {"header": header},
            }), 401

        g.principal = principal[:128]
        return f(*args, **kwargs)

    return decorated_function
