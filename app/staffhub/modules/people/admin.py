from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from app.staffhub.auth import require_auth
from app.staffhub.constants import ROLE_ADMIN, ROLE_COMPANY, ROLE_MANAGER, VALID_ROLES
from app.staffhub.db import db_session
from app.staffhub.errors import Unexpected, ValidationError
from app.staffhub.models import User
from app.staffhub.modules.people.service import HOME_ROLES, PersonUpdate, update_person
from app.staffhub.rbac import effective_level, require_level

bp = Blueprint("people_admin", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _object(payload: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValidationError(f"{key} must be an object")
    return value


def _str(obj: dict[str, Any], key: str, *, required: bool = True) -> str | None:
    value = obj.get(key)
    if value is None and not required:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required")
    return value.strip()


def parse_person_update(payload: dict[str, Any]) -> PersonUpdate:
    changes = PersonUpdate()

    full_name = payload.get("fullName")
    if full_name is not None:
        if not isinstance(full_name, str):
            raise ValidationError("fullName must be a string")
        changes.full_name = full_name.strip() or None

    o = _object(payload, "setCompany")
    if o is not None:
        changes.set_company = _str(o, "companyId")
    o = _object(payload, "setBank")
    if o is not None:
        changes.set_bank = _str(o, "companyId")
    o = _object(payload, "clearHome")
    if o is not None:
        changes.clear_home = _str(o, "homeId")
    o = _object(payload, "setHome")
    if o is not None:
        changes.set_home = _str(o, "homeId")
        changes.clear_bank_for_company = _str(o, "clearBankForCompany", required=False)
    o = _object(payload, "setHomeRole")
    if o is not None:
        role = _str(o, "role")
        if role not in HOME_ROLES:
            raise ValidationError("role must be STAFF or MANAGER")
        changes.set_home_role = (_str(o, "homeId"), role)
    o = _object(payload, "setManagerHomes")
    if o is not None:
        home_ids = o.get("homeIds")
        if not isinstance(home_ids, list) or not all(isinstance(h, str) for h in home_ids):
            raise ValidationError("homeIds must be a list of ids")
        changes.set_manager_homes = home_ids
    o = _object(payload, "setLevel")
    if o is not None:
        level = _str(o, "level")
        if level not in VALID_ROLES:
            raise ValidationError("level must be one of ADMIN, COMPANY, MANAGER, STAFF")
        changes.set_level = (level, _str(o, "companyId", required=False))

    return changes


def _person_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "fullName": user.full_name,
        "level": effective_level([m.role for m in user.role_memberships]),
        "memberships": [
            {"role": m.role, "companyId": m.company_id, "homeId": m.home_id} for m in user.role_memberships
        ],
        "bankCompanyIds": [b.company_id for b in user.bank_memberships],
    }


@bp.patch("/api/admin/people/update")
@require_auth
@require_level(ROLE_ADMIN, ROLE_COMPANY, ROLE_MANAGER)
def people_update():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON body")
    user_id = payload.get("userId")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise ValidationError("Missing userId")
    changes = parse_person_update(payload)

    s = db_session()
    try:
        person = update_person(s, viewer=_current_user(), user_id=user_id, changes=changes)
        s.commit()
    except SQLAlchemyError:
        s.rollback()
        current_app.logger.exception("/api/admin/people/update failed (request_id=%s)", g.request_id)
        raise Unexpected("Could not update this person.") from None
    return jsonify({"ok": True, "person": _person_dict(person)})
