from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from app.staffhub.audit import record_event
from app.staffhub.constants import FEATURES, VALID_FEATURES
from app.staffhub.errors import NotFound, ValidationError
from app.staffhub.models import Company, CompanyFeature, User


def _company(s: Session, company_id: str) -> Company:
    company = s.get(Company, company_id)
    if company is None:
        raise NotFound("Company not found")
    return company


def effective_features(s: Session, company_id: str) -> dict[str, bool]:
    """Every feature for the company; no override row means enabled."""
    _company(s, company_id)
    overrides = {
        r.feature: r.is_enabled
        for r in s.query(CompanyFeature).filter(CompanyFeature.company_id == company_id).all()
    }
    return {f: bool(overrides.get(f, True)) for f in FEATURES}


def set_feature(s: Session, *, company_id: str, feature: str, enabled: bool, user: User) -> None:
    _company(s, company_id)
    if feature not in VALID_FEATURES:
        raise ValidationError("Unknown feature")

    row = s.get(CompanyFeature, (company_id, feature))
    if row is None:
        row = CompanyFeature(company_id=company_id, feature=feature)
        s.add(row)
    row.is_enabled = enabled
    row.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="company.feature_set",
        entity_type="Company",
        entity_id=company_id,
        metadata={"feature": feature, "enabled": enabled},
    )


def reset_features(s: Session, *, company_id: str, user: User) -> int:
    """Drop every override so all features fall back to enabled."""
    _company(s, company_id)
    removed = (
        s.query(CompanyFeature)
        .filter(CompanyFeature.company_id == company_id)
        .delete(synchronize_session=False)
    )
    record_event(
        s,
        actor=user,
        action="company.features_reset",
        entity_type="Company",
        entity_id=company_id,
        metadata={"removed": removed},
    )
    return removed
