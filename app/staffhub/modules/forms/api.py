from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.staffhub.auth import require_auth
from app.staffhub.constants import ENTRY_DRAFT, ROLE_ADMIN, ROLE_COMPANY, ROLE_MANAGER
from app.staffhub.db import db_session
from app.staffhub.errors import Unexpected, ValidationError
from app.staffhub.models import User
from app.staffhub.modules.forms.models import FormBlueprint, FormEntry
from app.staffhub.modules.forms.service import (
    cancel_entry,
    get_entry_detail,
    list_my_drafts,
    list_pending_approval,
    list_startable_blueprints,
    save_entry,
    start_entry,
    submit_entry,
)
from app.staffhub.rbac import require_level

bp = Blueprint("forms_api", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON body")
    return payload


def _required_id(payload: dict[str, Any], key: str, message: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message)
    return value.strip()


def _answers(payload: dict[str, Any]) -> dict[str, Any]:
    answers = payload.get("answers")
    if not isinstance(answers, dict):
        raise ValidationError("answers must be an object")
    return answers


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _backend_failure(s: Session, what: str, message: str) -> Unexpected:
    s.rollback()
    current_app.logger.exception("%s failed (request_id=%s)", what, getattr(g, "request_id", None))
    return Unexpected(message)


def _entry_summary(entry: FormEntry) -> dict[str, Any]:
    return {
        "entryId": entry.id,
        "head": entry.head,
        "status": entry.status,
        "createdAt": _iso(entry.created_at),
        "submittedAt": _iso(entry.submitted_at),
        "youngPersonId": entry.subject_young_person_id,
        "youngPersonName": entry.young_person.full_name if entry.young_person else None,
        "formName": entry.blueprint.name if entry.blueprint else None,
    }


def _blueprint_dict(blueprint: FormBlueprint, *, with_definition: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": blueprint.id,
        "companyId": blueprint.company_id,
        "head": blueprint.head,
        "name": blueprint.name,
        "status": blueprint.status,
        "formType": blueprint.form_type,
        "updatedAt": _iso(blueprint.updated_at),
    }
    if with_definition:
        out["definition"] = blueprint.definition
    return out


# ─────────────────────────────────────────────────────────────────────────────
# Lifecycle
# ─────────────────────────────────────────────────────────────────────────────


@bp.post("/api/forms/start")
@require_auth
def start():
    payload = _json_body()
    young_person_id = _required_id(payload, "youngPersonId", "youngPersonId and blueprintId are required")
    blueprint_id = _required_id(payload, "blueprintId", "youngPersonId and blueprintId are required")

    s = db_session()
    try:
        entry = start_entry(s, young_person_id=young_person_id, blueprint_id=blueprint_id, user=_current_user())
        s.commit()
    except SQLAlchemyError:
        raise _backend_failure(s, "/api/forms/start", "Failed to start form") from None
    return jsonify({"entryId": entry.id}), 201


@bp.post("/api/forms/save")
@require_auth
def save():
    payload = _json_body()
    entry_id = _required_id(payload, "entryId", "entryId is required")
    answers = _answers(payload)

    s = db_session()
    try:
        entry = save_entry(s, entry_id=entry_id, answers=answers, user=_current_user())
        s.commit()
    except SQLAlchemyError:
        raise _backend_failure(s, "/api/forms/save", "Could not save form entry") from None
    return jsonify({"id": entry.id, "status": entry.status, "updatedAt": _iso(entry.updated_at)})


@bp.post("/api/forms/submit")
@require_auth
def submit():
    payload = _json_body()
    entry_id = _required_id(payload, "entryId", "entryId is required")
    answers = _answers(payload)

    s = db_session()
    try:
        entry = submit_entry(s, entry_id=entry_id, answers=answers, user=_current_user())
        s.commit()
    except SQLAlchemyError:
        raise _backend_failure(s, "/api/forms/submit", "Could not submit form entry") from None
    return jsonify({"id": entry.id, "status": entry.status, "submittedAt": _iso(entry.submitted_at)})


@bp.post("/api/forms/delete")
@require_auth
def delete():
    payload = _json_body()
    entry_id = _required_id(payload, "entryId", "entryId is required")

    s = db_session()
    try:
        cancel_entry(s, entry_id=entry_id, user=_current_user())
        s.commit()
    except SQLAlchemyError:
        raise _backend_failure(s, "/api/forms/delete", "Could not delete draft form") from None
    return jsonify({"ok": True})


# ─────────────────────────────────────────────────────────────────────────────
# Read side
# ─────────────────────────────────────────────────────────────────────────────


@bp.get("/api/forms/drafts")
@require_auth
def drafts():
    s = db_session()
    try:
        rows = list_my_drafts(s, _current_user())
    except SQLAlchemyError:
        raise _backend_failure(s, "/api/forms/drafts", "Could not load your drafts.") from None
    return jsonify({"drafts": [_entry_summary(e) for e in rows]})


@bp.get("/api/forms/pending")
@require_auth
@require_level(ROLE_ADMIN, ROLE_COMPANY, ROLE_MANAGER)
def pending():
    s = db_session()
    try:
        rows = list_pending_approval(s, _current_user())
    except SQLAlchemyError:
        raise _backend_failure(s, "/api/forms/pending", "Could not load forms awaiting approval.") from None
    items = []
    for e in rows:
        item = _entry_summary(e)
        item["homeId"] = e.home_id
        item["homeName"] = e.home.name if e.home else None
        items.append(item)
    return jsonify({"level": g.capabilities.level, "pending": items})


@bp.get("/api/forms/<uuid:entry_id>")
@require_auth
def entry_detail(entry_id: UUID):
    s = db_session()
    entry = get_entry_detail(s, entry_id=str(entry_id), user=_current_user())
    yp = entry.young_person
    return jsonify(
        {
            "entry": {
                "id": entry.id,
                "companyId": entry.company_id,
                "homeId": entry.home_id,
                "head": entry.head,
                "status": entry.status,
                "answers": entry.answers if isinstance(entry.answers, dict) else {},
                "createdAt": _iso(entry.created_at),
                "updatedAt": _iso(entry.updated_at),
                "submittedAt": _iso(entry.submitted_at),
                "editable": entry.status == ENTRY_DRAFT and entry.created_by == _current_user().id,
            },
            "youngPerson": {
                "id": yp.id,
                "fullName": yp.full_name,
                "companyId": yp.company_id,
                "homeId": yp.home_id,
                "dateOfBirth": yp.date_of_birth.isoformat() if yp.date_of_birth else None,
            },
            "blueprint": _blueprint_dict(entry.blueprint, with_definition=True),
        }
    )


@bp.get("/api/young-people/<young_person_id>/blueprints")
@require_auth
def startable_blueprints(young_person_id: str):
    s = db_session()
    rows = list_startable_blueprints(s, young_person_id=young_person_id, user=_current_user())
    return jsonify({"blueprints": [_blueprint_dict(b) for b in rows]})
