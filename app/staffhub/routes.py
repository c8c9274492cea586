from flask import Blueprint, g, jsonify

from app.staffhub.auth import require_auth
from app.staffhub.db import db_session
from app.staffhub.rbac import capabilities_for

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast liveness check for the container. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/api/me/capabilities")
@require_auth
def my_capabilities():
    """Effective level, feature flags and navigation visibility for the caller."""
    caps = capabilities_for(db_session(), g.current_user)
    return jsonify(caps.to_dict())
