"""
Row access scope.

Every read and every guarded write goes through the caller's scope, so a row
the caller may not see behaves exactly like a row that does not exist:

- ADMIN membership: everything.
- COMPANY membership or bank membership: every row of that company.
- MANAGER/STAFF membership: rows belonging to that home.
- Blueprints: any blueprint of a company the caller belongs to.
- Entry writes: visible entries the caller created.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import and_, false, or_, true
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from app.staffhub.constants import ROLE_ADMIN, ROLE_COMPANY, ROLE_MANAGER, ROLE_STAFF
from app.staffhub.models import Home, User
from app.staffhub.modules.forms.models import FormBlueprint, FormEntry
from app.staffhub.modules.young_people.models import YoungPerson


@dataclass(frozen=True)
class AccessScope:
    user_id: int
    is_admin: bool
    company_ids: frozenset[str]  # company-wide visibility
    home_ids: frozenset[str]  # home-level visibility
    member_company_ids: frozenset[str]  # every company the user belongs to


def user_company_ids(s: Session, user: User) -> list[str]:
    """
    Companies the user belongs to, in membership order (the first one drives
    company-level settings such as feature flags).
    """
    out: list[str] = []
    missing_homes: list[str] = []
    for m in user.role_memberships:
        if m.company_id:
            out.append(m.company_id)
        elif m.home_id:
            missing_homes.append(m.home_id)
    out.extend(b.company_id for b in user.bank_memberships)
    if missing_homes:
        rows = s.query(Home.company_id).filter(Home.id.in_(missing_homes)).all()
        out.extend(r.company_id for r in rows)
    return list(dict.fromkeys(out))


def scope_for(s: Session, user: User) -> AccessScope:
    is_admin = False
    company_ids: set[str] = set()
    home_ids: set[str] = set()

    for m in user.role_memberships:
        if m.role == ROLE_ADMIN:
            is_admin = True
        elif m.role == ROLE_COMPANY and m.company_id:
            company_ids.add(m.company_id)
        elif m.role in (ROLE_MANAGER, ROLE_STAFF) and m.home_id:
            home_ids.add(m.home_id)
    company_ids.update(b.company_id for b in user.bank_memberships)

    return AccessScope(
        user_id=user.id,
        is_admin=is_admin,
        company_ids=frozenset(company_ids),
        home_ids=frozenset(home_ids),
        member_company_ids=frozenset(user_company_ids(s, user)),
    )


def _company_or_home(scope: AccessScope, company_col, home_col) -> ColumnElement[bool]:
    if scope.is_admin:
        return true()
    clauses = []
    if scope.company_ids:
        clauses.append(company_col.in_(sorted(scope.company_ids)))
    if scope.home_ids:
        clauses.append(home_col.in_(sorted(scope.home_ids)))
    if not clauses:
        return false()
    return or_(*clauses)


def young_person_visible(scope: AccessScope) -> ColumnElement[bool]:
    return _company_or_home(scope, YoungPerson.company_id, YoungPerson.home_id)


def blueprint_visible(scope: AccessScope) -> ColumnElement[bool]:
    if scope.is_admin:
        return true()
    if not scope.member_company_ids:
        return false()
    return FormBlueprint.company_id.in_(sorted(scope.member_company_ids))


def entry_visible(scope: AccessScope) -> ColumnElement[bool]:
    return _company_or_home(scope, FormEntry.company_id, FormEntry.home_id)


def entry_writable(scope: AccessScope) -> ColumnElement[bool]:
    return and_(entry_visible(scope), FormEntry.created_by == scope.user_id)


def get_young_person(s: Session, scope: AccessScope, young_person_id: str) -> YoungPerson | None:
    return (
        s.query(YoungPerson)
        .filter(YoungPerson.id == young_person_id, young_person_visible(scope))
        .one_or_none()
    )


def get_blueprint(s: Session, scope: AccessScope, blueprint_id: str) -> FormBlueprint | None:
    return (
        s.query(FormBlueprint)
        .filter(FormBlueprint.id == blueprint_id, blueprint_visible(scope))
        .one_or_none()
    )


def get_entry(s: Session, scope: AccessScope, entry_id: str) -> FormEntry | None:
    return (
        s.query(FormEntry)
        .filter(FormEntry.id == entry_id, entry_visible(scope))
        .one_or_none()
    )
