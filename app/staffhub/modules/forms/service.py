"""
Form entry lifecycle.

    DRAFT --save--> DRAFT
    DRAFT --submit--> SUBMITTED   (staff)
    DRAFT --submit--> LOCKED      (admin / company / manager)
    DRAFT --delete--> CANCELLED   (soft delete, answers kept)

Every transition is a single UPDATE guarded on `status = 'DRAFT'` and on the
caller's write scope. That guard is the only mutual exclusion: a second
save/submit/delete racing an already transitioned entry matches zero rows and
fails, with nothing to lock or retry.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.staffhub import access
from app.staffhub.audit import record_event
from app.staffhub.constants import (
    BLUEPRINT_PUBLISHED,
    ENTRY_CANCELLED,
    ENTRY_DRAFT,
    ENTRY_LOCKED,
    ENTRY_SUBMITTED,
    HEAD_YOUNG_PEOPLE,
)
from app.staffhub.errors import NotEditable, NotFound, ValidationError
from app.staffhub.models import RoleMembership
from app.staffhub.rbac import is_manager_level

from .models import FormBlueprint, FormEntry

if TYPE_CHECKING:
    from app.staffhub.models import User

logger = logging.getLogger(__name__)


def start_entry(s: Session, *, young_person_id: str, blueprint_id: str, user: User) -> FormEntry:
    """Create a DRAFT entry for a young person from a published blueprint."""
    scope = access.scope_for(s, user)

    yp = access.get_young_person(s, scope, young_person_id)
    if yp is None:
        raise NotFound("Young person not found or you do not have access to their file.")

    blueprint = access.get_blueprint(s, scope, blueprint_id)
    if blueprint is None:
        raise NotFound("Form blueprint not found")

    if blueprint.company_id != yp.company_id:
        raise ValidationError("Form blueprint does not belong to this company")
    if blueprint.head != HEAD_YOUNG_PEOPLE:
        raise ValidationError("This blueprint is not a young people form")
    if blueprint.status != BLUEPRINT_PUBLISHED:
        raise ValidationError("You can only start published forms")

    now = datetime.utcnow()
    entry = FormEntry(
        blueprint_id=blueprint.id,
        company_id=yp.company_id,
        home_id=yp.home_id,
        head=blueprint.head,
        subject_young_person_id=yp.id,
        answers={},
        status=ENTRY_DRAFT,
        created_by=user.id,
        created_at=now,
        updated_at=now,
    )
    s.add(entry)
    s.flush()

    record_event(
        s,
        actor=user,
        action="form.start",
        entity_type="FormEntry",
        entity_id=entry.id,
        metadata={"blueprint_id": blueprint.id, "young_person_id": yp.id},
    )
    logger.info("form entry started id=%s blueprint=%s user=%s", entry.id, blueprint.id, user.id)
    return entry


def _guarded_update(s: Session, *, entry_id: str, user: User, values: dict[str, Any]) -> FormEntry | None:
    """
    UPDATE form_entries SET ... WHERE id = :id AND status = 'DRAFT' AND <write scope>.
    Returns the refreshed row, or None when nothing matched.
    """
    scope = access.scope_for(s, user)
    stmt = (
        update(FormEntry)
        .where(
            FormEntry.id == entry_id,
            FormEntry.status == ENTRY_DRAFT,
            access.entry_writable(scope),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = s.execute(stmt)
    if result.rowcount != 1:
        return None
    return s.get(FormEntry, entry_id, populate_existing=True)


def save_entry(s: Session, *, entry_id: str, answers: dict[str, Any], user: User) -> FormEntry:
    """Replace the answers of a DRAFT entry."""
    entry = _guarded_update(
        s,
        entry_id=entry_id,
        user=user,
        values={"answers": answers, "updated_at": datetime.utcnow()},
    )
    if entry is None:
        raise NotEditable()

    record_event(
        s,
        actor=user,
        action="form.save",
        entity_type="FormEntry",
        entity_id=entry.id,
        metadata={"answer_keys": sorted(answers.keys())},
    )
    return entry


def caller_is_manager_level(s: Session, user: User) -> bool:
    """
    Whether submitting locks the entry straight away. A failed membership read
    is logged and treated as staff level, so the entry goes to review.
    """
    try:
        roles = [r for (r,) in s.query(RoleMembership.role).filter(RoleMembership.user_id == user.id).all()]
    except SQLAlchemyError as e:
        logger.warning("membership lookup failed for user=%s; submitting as staff: %s", user.id, e)
        s.rollback()
        return False
    return is_manager_level(roles)


def submit_entry(s: Session, *, entry_id: str, answers: dict[str, Any], user: User) -> FormEntry:
    """Submit a DRAFT entry: LOCKED for manager-level callers, SUBMITTED otherwise."""
    next_status = ENTRY_LOCKED if caller_is_manager_level(s, user) else ENTRY_SUBMITTED
    submitted_at = datetime.utcnow()

    entry = _guarded_update(
        s,
        entry_id=entry_id,
        user=user,
        values={
            "answers": answers,
            "status": next_status,
            "submitted_at": submitted_at,
            "updated_at": submitted_at,
        },
    )
    if entry is None:
        raise NotEditable("Form not found, not editable, or already submitted.")

    record_event(
        s,
        actor=user,
        action="form.submit",
        entity_type="FormEntry",
        entity_id=entry.id,
        metadata={"status": next_status},
    )
    logger.info("form entry submitted id=%s status=%s user=%s", entry.id, next_status, user.id)
    return entry


def cancel_entry(s: Session, *, entry_id: str, user: User) -> FormEntry:
    """Soft-delete a DRAFT entry (status CANCELLED). The row and its answers stay."""
    scope = access.scope_for(s, user)
    entry = access.get_entry(s, scope, entry_id)
    if entry is None:
        raise NotFound("Form entry not found")
    if entry.status != ENTRY_DRAFT:
        raise ValidationError("Only draft forms can be deleted")

    cancelled = _guarded_update(
        s,
        entry_id=entry_id,
        user=user,
        values={"status": ENTRY_CANCELLED, "updated_at": datetime.utcnow()},
    )
    if cancelled is None:
        # Raced with another transition, or visible but owned by someone else.
        raise NotEditable()

    record_event(
        s,
        actor=user,
        action="form.cancel",
        entity_type="FormEntry",
        entity_id=cancelled.id,
    )
    logger.info("form entry cancelled id=%s user=%s", cancelled.id, user.id)
    return cancelled


# ---------------------------------------------------------------------------
# Read side (drafts list, pending approval list, entry detail, start picker)
# ---------------------------------------------------------------------------


def list_my_drafts(s: Session, user: User) -> list[FormEntry]:
    scope = access.scope_for(s, user)
    return (
        s.query(FormEntry)
        .filter(
            FormEntry.status == ENTRY_DRAFT,
            FormEntry.created_by == user.id,
            FormEntry.head == HEAD_YOUNG_PEOPLE,
            access.entry_visible(scope),
        )
        .order_by(FormEntry.created_at.desc())
        .all()
    )


def list_pending_approval(s: Session, user: User) -> list[FormEntry]:
    scope = access.scope_for(s, user)
    return (
        s.query(FormEntry)
        .filter(
            FormEntry.status == ENTRY_SUBMITTED,
            FormEntry.head == HEAD_YOUNG_PEOPLE,
            access.entry_visible(scope),
        )
        .order_by(FormEntry.submitted_at.desc())
        .all()
    )


def get_entry_detail(s: Session, *, entry_id: str, user: User) -> FormEntry:
    """
    Load an entry for the form page. Anything inconsistent (wrong head,
    subject or blueprint not visible, company mismatch) reads as not found.
    """
    scope = access.scope_for(s, user)
    entry = access.get_entry(s, scope, entry_id)
    if entry is None or entry.head != HEAD_YOUNG_PEOPLE or not entry.subject_young_person_id:
        raise NotFound("Form entry not found")

    yp = access.get_young_person(s, scope, entry.subject_young_person_id)
    blueprint = access.get_blueprint(s, scope, entry.blueprint_id)
    if yp is None or blueprint is None:
        raise NotFound("Form entry not found")
    if (
        blueprint.head != HEAD_YOUNG_PEOPLE
        or blueprint.company_id != entry.company_id
        or yp.company_id != entry.company_id
    ):
        raise NotFound("Form entry not found")
    return entry


def list_startable_blueprints(s: Session, *, young_person_id: str, user: User) -> list[FormBlueprint]:
    scope = access.scope_for(s, user)
    yp = access.get_young_person(s, scope, young_person_id)
    if yp is None:
        raise NotFound("Young person not found or you do not have access to their file.")
    return (
        s.query(FormBlueprint)
        .filter(
            FormBlueprint.company_id == yp.company_id,
            FormBlueprint.head == HEAD_YOUNG_PEOPLE,
            FormBlueprint.status == BLUEPRINT_PUBLISHED,
            access.blueprint_visible(scope),
        )
        .order_by(FormBlueprint.name.asc())
        .all()
    )
