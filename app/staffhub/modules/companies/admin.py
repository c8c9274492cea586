from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from app.staffhub.auth import require_auth
from app.staffhub.constants import ROLE_ADMIN
from app.staffhub.db import db_session
from app.staffhub.errors import Unexpected, ValidationError
from app.staffhub.modules.companies.service import effective_features, reset_features, set_feature
from app.staffhub.rbac import require_level

bp = Blueprint("companies_admin", __name__)


@bp.get("/api/admin/companies/<company_id>/features")
@require_auth
@require_level(ROLE_ADMIN)
def features_get(company_id: str):
    return jsonify({"companyId": company_id, "features": effective_features(db_session(), company_id)})


@bp.put("/api/admin/companies/<company_id>/features/<feature>")
@require_auth
@require_level(ROLE_ADMIN)
def features_set(company_id: str, feature: str):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or not isinstance(payload.get("enabled"), bool):
        raise ValidationError("enabled must be true or false")

    s = db_session()
    try:
        set_feature(s, company_id=company_id, feature=feature, enabled=payload["enabled"], user=g.current_user)
        s.commit()
    except SQLAlchemyError:
        s.rollback()
        current_app.logger.exception("feature update failed (company=%s request_id=%s)", company_id, g.request_id)
        raise Unexpected("Could not save feature setting.") from None
    return jsonify({"companyId": company_id, "features": effective_features(s, company_id)})


@bp.delete("/api/admin/companies/<company_id>/features")
@require_auth
@require_level(ROLE_ADMIN)
def features_reset(company_id: str):
    s = db_session()
    try:
        reset_features(s, company_id=company_id, user=g.current_user)
        s.commit()
    except SQLAlchemyError:
        s.rollback()
        current_app.logger.exception("feature reset failed (company=%s request_id=%s)", company_id, g.request_id)
        raise Unexpected("Could not reset feature settings.") from None
    return jsonify({"companyId": company_id, "features": effective_features(s, company_id)})
