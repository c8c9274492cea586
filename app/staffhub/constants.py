"""
Central constants for the staff hub.
"""
from __future__ import annotations

# Membership roles, highest first. The effective level is the highest one held.
ROLE_ADMIN = "ADMIN"
ROLE_COMPANY = "COMPANY"
ROLE_MANAGER = "MANAGER"
ROLE_STAFF = "STAFF"

LEVEL_ORDER = (ROLE_ADMIN, ROLE_COMPANY, ROLE_MANAGER, ROLE_STAFF)
VALID_ROLES = frozenset(LEVEL_ORDER)
DEFAULT_LEVEL = ROLE_STAFF

# Submitting as one of these locks the entry instead of sending it for review.
MANAGER_LEVEL_ROLES = frozenset({ROLE_ADMIN, ROLE_COMPANY, ROLE_MANAGER})

# Company feature flags (default enabled unless a company override disables them)
FEATURES = (
    "TRAINING",
    "BOOKINGS",
    "ROTAS",
    "TIMESHEETS",
    "ANNUAL_LEAVE",
    "BUDGETS",
    "SUPERVISIONS",
    "PAYSLIPS",
    "APPOINTMENTS",
    "POLICIES",
    "MANAGEMENT",
    "LICENSES",
)
VALID_FEATURES = frozenset(FEATURES)

# Form heads (top-level category a form applies to)
HEAD_YOUNG_PEOPLE = "YOUNG_PEOPLE"
HEAD_CARS = "CARS"
HEAD_HOME = "HOME"
VALID_HEADS = frozenset({HEAD_YOUNG_PEOPLE, HEAD_CARS, HEAD_HOME})

# Blueprint statuses
BLUEPRINT_DRAFT = "DRAFT"
BLUEPRINT_PUBLISHED = "PUBLISHED"
VALID_BLUEPRINT_STATUSES = frozenset({BLUEPRINT_DRAFT, BLUEPRINT_PUBLISHED})

# Form entry statuses: DRAFT -> SUBMITTED | LOCKED, DRAFT -> CANCELLED
ENTRY_DRAFT = "DRAFT"
ENTRY_SUBMITTED = "SUBMITTED"
ENTRY_LOCKED = "LOCKED"
ENTRY_CANCELLED = "CANCELLED"
VALID_ENTRY_STATUSES = frozenset({ENTRY_DRAFT, ENTRY_SUBMITTED, ENTRY_LOCKED, ENTRY_CANCELLED})
