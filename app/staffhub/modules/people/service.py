"""
People administration: company placement, home roles, bank membership, level.

Who may change what:

- The caller must manage the company the change is made in. Admins manage
  every company, a COMPANY membership manages that company, and a MANAGER
  membership manages the company of that home.
- Outside admin, the user being changed must already belong to that company.
- A user ranked above the caller in that company cannot be changed.
- Levels and home roles can only be granted at or below the caller's level.
- Only admins move a user to another company or grant ADMIN.

Every change in one update is applied in the caller's transaction: the first
rejected step aborts all of them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.staffhub.access import user_company_ids
from app.staffhub.audit import record_event
from app.staffhub.constants import (
    LEVEL_ORDER,
    ROLE_ADMIN,
    ROLE_COMPANY,
    ROLE_MANAGER,
    ROLE_STAFF,
)
from app.staffhub.errors import Forbidden, NotFound, ValidationError
from app.staffhub.models import BankMembership, Company, Home, RoleMembership, User

logger = logging.getLogger(__name__)

HOME_ROLES = frozenset({ROLE_MANAGER, ROLE_STAFF})


@dataclass(frozen=True)
class ViewerReach:
    """Companies a caller administers, and how."""

    is_admin: bool
    company_ids: frozenset[str]  # COMPANY memberships
    manager_company_ids: frozenset[str]  # companies of homes the caller manages

    def can_manage(self, company_id: str | None) -> bool:
        if company_id is None:
            return self.is_admin
        return self.is_admin or company_id in self.company_ids or company_id in self.manager_company_ids

    def level_in(self, company_id: str | None) -> str:
        if self.is_admin:
            return ROLE_ADMIN
        if company_id in self.company_ids:
            return ROLE_COMPANY
        return ROLE_MANAGER


@dataclass
class PersonUpdate:
    full_name: str | None = None
    set_company: str | None = None
    set_bank: str | None = None
    clear_home: str | None = None
    set_home: str | None = None
    clear_bank_for_company: str | None = None
    set_home_role: tuple[str, str] | None = None  # (home_id, role)
    set_manager_homes: list[str] | None = None
    set_level: tuple[str, str | None] | None = None  # (level, company_id)


def within_cap(viewer_level: str, level: str) -> bool:
    """True when `level` ranks at or below `viewer_level`."""
    return LEVEL_ORDER.index(level) >= LEVEL_ORDER.index(viewer_level)


def viewer_reach(s: Session, viewer: User) -> ViewerReach:
    is_admin = False
    company_ids: set[str] = set()
    managed_homes: list[str] = []
    for m in viewer.role_memberships:
        if m.role == ROLE_ADMIN:
            is_admin = True
        elif m.role == ROLE_COMPANY and m.company_id:
            company_ids.add(m.company_id)
        elif m.role == ROLE_MANAGER and m.home_id:
            managed_homes.append(m.home_id)

    manager_company_ids: set[str] = set()
    if managed_homes:
        rows = s.query(Home.company_id).filter(Home.id.in_(managed_homes)).all()
        manager_company_ids = {r.company_id for r in rows}

    return ViewerReach(
        is_admin=is_admin,
        company_ids=frozenset(company_ids),
        manager_company_ids=frozenset(manager_company_ids),
    )


def _company_home_ids(s: Session, company_id: str) -> set[str]:
    return {r.id for r in s.query(Home.id).filter(Home.company_id == company_id).all()}


def level_in_company(s: Session, user: User, company_id: str | None) -> str:
    """The user's highest level that applies inside `company_id`."""
    roles = {m.role for m in user.role_memberships}
    if ROLE_ADMIN in roles:
        return ROLE_ADMIN
    if company_id is None:
        return ROLE_STAFF
    if any(m.role == ROLE_COMPANY and m.company_id == company_id for m in user.role_memberships):
        return ROLE_COMPANY
    home_ids = _company_home_ids(s, company_id)
    if any(m.role == ROLE_MANAGER and m.home_id in home_ids for m in user.role_memberships):
        return ROLE_MANAGER
    return ROLE_STAFF


def _primary_company_id(s: Session, user: User) -> str | None:
    ids = user_company_ids(s, user)
    return ids[0] if ids else None


def _home_in_company(s: Session, home_id: str, company_id: str | None) -> Home:
    home = s.get(Home, home_id)
    if home is None:
        raise NotFound("Home not found")
    if company_id is None or home.company_id != company_id:
        raise ValidationError("Home does not belong to this company.")
    return home


def _home_membership(user: User, home_id: str) -> RoleMembership | None:
    for m in user.role_memberships:
        if m.home_id == home_id and m.role in HOME_ROLES:
            return m
    return None


def _place_in_home(user: User, home: Home, role: str) -> None:
    m = _home_membership(user, home.id)
    if m is None:
        user.role_memberships.append(RoleMembership(role=role, company_id=home.company_id, home_id=home.id))
    else:
        m.role = role


def _remove_memberships(user: User, predicate) -> None:
    for m in [m for m in user.role_memberships if predicate(m)]:
        user.role_memberships.remove(m)


def _move_to_company(s: Session, user: User, company_id: str) -> None:
    if s.get(Company, company_id) is None:
        raise NotFound("Company not found")

    old = _primary_company_id(s, user)
    if old == company_id:
        return

    if old:
        old_homes = _company_home_ids(s, old)
        _remove_memberships(user, lambda m: m.company_id == old or m.home_id in old_homes)
        for b in [b for b in user.bank_memberships if b.company_id == old]:
            user.bank_memberships.remove(b)

    # Plain member of the new company until placed in a home.
    user.role_memberships.append(RoleMembership(role=ROLE_STAFF, company_id=company_id, home_id=None))


def _drop_company_level(user: User, company_id: str) -> None:
    """Remove COMPANY access but keep the user a member of the company."""
    company_rows = [m for m in user.role_memberships if m.role == ROLE_COMPANY and m.company_id == company_id]
    if not company_rows:
        return
    still_member = any(
        m.company_id == company_id and m.role != ROLE_COMPANY for m in user.role_memberships
    ) or any(b.company_id == company_id for b in user.bank_memberships)
    for i, m in enumerate(company_rows):
        if i == 0 and not still_member:
            m.role = ROLE_STAFF
        else:
            user.role_memberships.remove(m)


def update_person(s: Session, *, viewer: User, user_id: int, changes: PersonUpdate) -> User:
    target = s.get(User, user_id)
    if target is None:
        raise NotFound("User not found")

    reach = viewer_reach(s, viewer)
    current_company = _primary_company_id(s, target)
    company_id = changes.set_company or (changes.set_level[1] if changes.set_level else None) or current_company

    if not reach.can_manage(company_id):
        raise Forbidden("You do not have permission to manage this user in that company.")
    if not reach.is_admin and company_id not in user_company_ids(s, target):
        raise Forbidden("You do not have permission to manage this user in that company.")

    viewer_level = reach.level_in(company_id)
    if not within_cap(viewer_level, level_in_company(s, target, company_id)):
        raise Forbidden("You cannot manage a user above your own level.")

    changed: list[str] = []

    if changes.full_name is not None:
        target.full_name = changes.full_name
        changed.append("full_name")

    if changes.set_company:
        if viewer_level != ROLE_ADMIN:
            raise Forbidden("Only admins can change a user's company.")
        _move_to_company(s, target, changes.set_company)
        changed.append("company")

    if changes.set_bank:
        if _primary_company_id(s, target) != changes.set_bank:
            raise ValidationError("Bank membership must match the user's company.")
        if not any(b.company_id == changes.set_bank for b in target.bank_memberships):
            target.bank_memberships.append(BankMembership(company_id=changes.set_bank))
        changed.append("bank")

    if changes.clear_home:
        _home_in_company(s, changes.clear_home, company_id)
        _remove_memberships(target, lambda m: m.home_id == changes.clear_home)
        changed.append("clear_home")

    if changes.set_home:
        home = _home_in_company(s, changes.set_home, company_id)
        clear_for = changes.clear_bank_for_company
        if clear_for:
            if not reach.can_manage(clear_for):
                raise Forbidden("You do not have permission to manage this user in that company.")
            for b in [b for b in target.bank_memberships if b.company_id == clear_for]:
                target.bank_memberships.remove(b)
        _place_in_home(target, home, ROLE_STAFF)
        changed.append("home")

    if changes.set_home_role:
        home_id, role = changes.set_home_role
        if not within_cap(viewer_level, role):
            raise Forbidden("You are not allowed to assign that role.")
        _place_in_home(target, _home_in_company(s, home_id, company_id), role)
        changed.append("home_role")

    if changes.set_manager_homes is not None:
        if not within_cap(viewer_level, ROLE_MANAGER):
            raise Forbidden("You are not allowed to assign that role.")
        if company_id is None:
            raise ValidationError("Company context missing for manager homes update.")
        allowed = _company_home_ids(s, company_id)
        desired = [h for h in dict.fromkeys(changes.set_manager_homes) if h in allowed]
        _remove_memberships(
            target,
            lambda m: m.role == ROLE_MANAGER and m.home_id in allowed and m.home_id not in desired,
        )
        for home_id in desired:
            _place_in_home(target, s.get(Home, home_id), ROLE_MANAGER)
        changed.append("manager_homes")

    if changes.set_level:
        level, level_company = changes.set_level
        if not within_cap(viewer_level, level):
            raise Forbidden("You are not allowed to assign that role.")

        if level == ROLE_ADMIN:
            if not any(m.role == ROLE_ADMIN for m in target.role_memberships):
                target.role_memberships.append(RoleMembership(role=ROLE_ADMIN))
        else:
            _remove_memberships(target, lambda m: m.role == ROLE_ADMIN)

        if level == ROLE_COMPANY:
            if not level_company:
                raise ValidationError("companyId is required when setting company level.")
            if not any(m.role == ROLE_COMPANY and m.company_id == level_company for m in target.role_memberships):
                target.role_memberships.append(RoleMembership(role=ROLE_COMPANY, company_id=level_company))
        elif company_id:
            _drop_company_level(target, company_id)
        changed.append("level")

    s.flush()
    record_event(
        s,
        actor=viewer,
        action="people.update",
        entity_type="User",
        entity_id=str(target.id),
        metadata={"company_id": company_id, "changed": changed},
    )
    logger.info("person updated id=%s by=%s changed=%s", target.id, viewer.id, ",".join(changed))
    return target
