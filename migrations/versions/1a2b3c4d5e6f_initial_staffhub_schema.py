"""initial staffhub schema

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "1a2b3c4d5e6f"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_DOC = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=False),
        nullable=False,
        server_default=sa.func.current_timestamp(),
    )


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)
    existing_tables = set(insp.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("full_name", sa.String(255), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
            sa.UniqueConstraint("email", name="uq_users_email"),
        )

    if "companies" not in existing_tables:
        op.create_table(
            "companies",
            sa.Column("id", sa.String(36), primary_key=True, nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            _created_at(),
        )

    if "homes" not in existing_tables:
        op.create_table(
            "homes",
            sa.Column("id", sa.String(36), primary_key=True, nullable=False),
            sa.Column("company_id", sa.String(36), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            _created_at(),
            sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_homes_company_id", "homes", ["company_id"])

    if "role_memberships" not in existing_tables:
        op.create_table(
            "role_memberships",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("role", sa.String(16), nullable=False),
            sa.Column("company_id", sa.String(36), nullable=True),
            sa.Column("home_id", sa.String(36), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["home_id"], ["homes.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_role_memberships_user_id", "role_memberships", ["user_id"])

    if "bank_memberships" not in existing_tables:
        op.create_table(
            "bank_memberships",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("company_id", sa.String(36), nullable=False),
            _created_at(),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
            sa.UniqueConstraint("user_id", "company_id", name="uq_bank_membership_user_company"),
        )
        op.create_index("ix_bank_memberships_user_id", "bank_memberships", ["user_id"])

    if "company_features" not in existing_tables:
        op.create_table(
            "company_features",
            sa.Column("company_id", sa.String(36), primary_key=True, nullable=False),
            sa.Column("feature", sa.String(32), primary_key=True, nullable=False),
            sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=False),
                nullable=False,
                server_default=sa.func.current_timestamp(),
            ),
            sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        )

    if "young_people" not in existing_tables:
        op.create_table(
            "young_people",
            sa.Column("id", sa.String(36), primary_key=True, nullable=False),
            sa.Column("company_id", sa.String(36), nullable=False),
            sa.Column("home_id", sa.String(36), nullable=True),
            sa.Column("full_name", sa.String(255), nullable=False),
            sa.Column("date_of_birth", sa.Date(), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["home_id"], ["homes.id"], ondelete="SET NULL"),
        )
        op.create_index("ix_young_people_company_id", "young_people", ["company_id"])
        op.create_index("ix_young_people_home_id", "young_people", ["home_id"])

    if "form_blueprints" not in existing_tables:
        op.create_table(
            "form_blueprints",
            sa.Column("id", sa.String(36), primary_key=True, nullable=False),
            sa.Column("company_id", sa.String(36), nullable=False),
            sa.Column("head", sa.String(16), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
            sa.Column("form_type", sa.String(64), nullable=True),
            sa.Column("definition", JSON_DOC, nullable=True),
            _created_at(),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=False),
                nullable=False,
                server_default=sa.func.current_timestamp(),
            ),
            sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        )
        op.create_index("ix_form_blueprints_company_id", "form_blueprints", ["company_id"])

    if "form_entries" not in existing_tables:
        op.create_table(
            "form_entries",
            sa.Column("id", sa.String(36), primary_key=True, nullable=False),
            sa.Column("blueprint_id", sa.String(36), nullable=False),
            sa.Column("company_id", sa.String(36), nullable=False),
            sa.Column("home_id", sa.String(36), nullable=True),
            sa.Column("head", sa.String(16), nullable=False),
            sa.Column("subject_young_person_id", sa.String(36), nullable=True),
            sa.Column("answers", JSON_DOC, nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
            sa.Column("created_by", sa.Integer(), nullable=False),
            _created_at(),
            sa.Column("submitted_at", sa.DateTime(timezone=False), nullable=True),
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=False),
                nullable=False,
                server_default=sa.func.current_timestamp(),
            ),
            sa.ForeignKeyConstraint(["blueprint_id"], ["form_blueprints.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["home_id"], ["homes.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["subject_young_person_id"], ["young_people.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="RESTRICT"),
            sa.CheckConstraint(
                "head <> 'YOUNG_PEOPLE' OR subject_young_person_id IS NOT NULL",
                name="ck_form_entries_young_person_subject",
            ),
        )
        for idx_name, cols in (
            ("ix_form_entries_company_id", ["company_id"]),
            ("ix_form_entries_home_id", ["home_id"]),
            ("ix_form_entries_subject_young_person_id", ["subject_young_person_id"]),
            ("ix_form_entries_status", ["status"]),
            ("ix_form_entries_created_by", ["created_by"]),
        ):
            op.create_index(idx_name, "form_entries", cols)

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            _created_at(),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        )


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("form_entries")
    op.drop_table("form_blueprints")
    op.drop_table("young_people")
    op.drop_table("company_features")
    op.drop_table("bank_memberships")
    op.drop_table("role_memberships")
    op.drop_table("homes")
    op.drop_table("companies")
    op.drop_table("users")
