# backend/shopledger/routes/system.py
"""
System health and version endpoints.

Health reports database reachability plus the two stores the posting path
depends on (sequence counters and balance projections).
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import SequenceCounter, BalanceProjection, Document
from ..services.document_kinds import DOCUMENT_KINDS
from shopledger.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        document_count = db.session.query(Document).count()
        projection_count = db.session.query(BalanceProjection).count()
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "documents": document_count,
                "balance_projections": projection_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_sequence_health() -> dict:
    """Every document kind should have its counter row seeded."""
    start_time = time.time()
    try:
        seeded = {kind for (kind,) in db.session.query(SequenceCounter.kind).all()}
        missing = [kind for kind in DOCUMENT_KINDS if kind not in seeded]
        elapsed_ms = (time.time() - start_time) * 1000

        if missing:
            # Counters are created on first use, so this is not fatal
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": f"Unseeded sequence counters: {', '.join(missing)}",
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"counters": len(seeded)},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Sequence counter health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Sequence counter error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "sequences": check_sequence_health(),
    }

    statuses = [check["status"] for check in checks.values()]
    if "unhealthy" in statuses:
        overall = "unhealthy"
        status_code = 503
    elif "degraded" in statuses:
        overall = "degraded"
        status_code = 200
    else:
        overall = "healthy"
        status_code = 200

    return {
        "status": overall,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, status_code


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
