"""
Role & feature visibility.

`resolve_capabilities` is pure: it takes a snapshot of the caller's
memberships and company feature overrides and returns an immutable capability
set. `load_snapshot` gathers that snapshot from the database; it is
recomputed per request.

Capabilities drive what the UI shows. They do not guard writes; row access is
decided by `app.staffhub.access`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from functools import wraps
from types import MappingProxyType
from typing import Any

from flask import g
from sqlalchemy.orm import Session

from app.staffhub.access import user_company_ids
from app.staffhub.constants import (
    DEFAULT_LEVEL,
    FEATURES,
    LEVEL_ORDER,
    MANAGER_LEVEL_ROLES,
    ROLE_ADMIN,
    ROLE_STAFF,
    VALID_FEATURES,
)
from app.staffhub.db import db_session
from app.staffhub.errors import Forbidden, Unauthenticated
from app.staffhub.models import CompanyFeature, User


@dataclass(frozen=True)
class MembershipSnapshot:
    roles: tuple[str, ...] = ()
    company_ids: tuple[str, ...] = ()  # first company wins
    feature_overrides: Mapping[str, bool] = field(default_factory=dict)  # for company_ids[0]
    has_bank: bool = False
    has_home: bool = False


@dataclass(frozen=True)
class Capabilities:
    level: str
    features: Mapping[str, bool]
    bank_only: bool = False

    @property
    def is_admin(self) -> bool:
        return self.level == ROLE_ADMIN

    @property
    def is_manager_level(self) -> bool:
        return self.level in MANAGER_LEVEL_ROLES

    def feature_on(self, feature: str) -> bool:
        if self.is_admin:
            return True
        return self.features.get(feature, True)

    @property
    def nav(self) -> dict[str, bool]:
        return {
            "management": self.is_manager_level and self.feature_on("MANAGEMENT"),
            "budgets": not self.bank_only and self.feature_on("BUDGETS"),
            "appointments": not self.bank_only and self.feature_on("APPOINTMENTS"),
            "licenses": self.is_admin and self.feature_on("LICENSES"),
            "pendingApproval": self.level != ROLE_STAFF,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "features": dict(self.features),
            "bankOnly": self.bank_only,
            "nav": self.nav,
        }


def effective_level(roles: tuple[str, ...] | list[str]) -> str:
    held = set(roles)
    for level in LEVEL_ORDER:
        if level in held:
            return level
    return DEFAULT_LEVEL


def is_manager_level(roles: tuple[str, ...] | list[str]) -> bool:
    return any(r in MANAGER_LEVEL_ROLES for r in roles)


def resolve_capabilities(snapshot: MembershipSnapshot) -> Capabilities:
    level = effective_level(snapshot.roles)
    features = {f: True for f in FEATURES}
    if level != ROLE_ADMIN:
        for feature, enabled in snapshot.feature_overrides.items():
            if feature in VALID_FEATURES:
                features[feature] = bool(enabled)
    return Capabilities(
        level=level,
        features=MappingProxyType(features),
        bank_only=snapshot.has_bank and not snapshot.has_home,
    )


def load_snapshot(s: Session, user: User) -> MembershipSnapshot:
    roles = tuple(m.role for m in user.role_memberships)
    company_ids = tuple(user_company_ids(s, user))

    overrides: dict[str, bool] = {}
    if ROLE_ADMIN not in roles and company_ids:
        rows = s.query(CompanyFeature).filter(CompanyFeature.company_id == company_ids[0]).all()
        overrides = {r.feature: r.is_enabled for r in rows}

    return MembershipSnapshot(
        roles=roles,
        company_ids=company_ids,
        feature_overrides=overrides,
        has_bank=bool(user.bank_memberships),
        has_home=any(m.home_id for m in user.role_memberships),
    )


def capabilities_for(s: Session, user: User) -> Capabilities:
    return resolve_capabilities(load_snapshot(s, user))


def require_level(*levels: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Read-side gate for pages limited to some levels (e.g. pending approvals).
    Must sit under `require_auth`.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user:
                raise Unauthenticated()
            caps = capabilities_for(db_session(), user)
            if caps.level not in levels:
                raise Forbidden()
            g.capabilities = caps
            return fn(*args, **kwargs)

        return wrapped

    return decorator
