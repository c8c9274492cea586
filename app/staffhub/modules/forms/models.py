from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.staffhub.models import Base, Home, new_uuid
from app.staffhub.modules.young_people.models import YoungPerson

# JSONB on Postgres, plain JSON elsewhere (SQLite in dev/tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class FormBlueprint(Base):
    __tablename__ = "form_blueprints"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)

    head: Mapped[str] = mapped_column(String(16), nullable=False)  # YOUNG_PEOPLE | CARS | HOME
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # DRAFT -> PUBLISHED
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="DRAFT")
    form_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    definition: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class FormEntry(Base):
    """
    One filled instance of a blueprint.

    Status is the single authoritative state column: every write that changes
    answers or status is an UPDATE guarded on the current status.
    """

    __tablename__ = "form_entries"
    __table_args__ = (
        CheckConstraint(
            "head <> 'YOUNG_PEOPLE' OR subject_young_person_id IS NOT NULL",
            name="ck_form_entries_young_person_subject",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    blueprint_id: Mapped[str] = mapped_column(ForeignKey("form_blueprints.id", ondelete="RESTRICT"), nullable=False)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id", ondelete="RESTRICT"), nullable=False, index=True)
    home_id: Mapped[str | None] = mapped_column(ForeignKey("homes.id", ondelete="SET NULL"), nullable=True, index=True)

    head: Mapped[str] = mapped_column(String(16), nullable=False)
    subject_young_person_id: Mapped[str | None] = mapped_column(
        ForeignKey("young_people.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    answers: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False, default=dict)
    # DRAFT -> SUBMITTED | LOCKED, DRAFT -> CANCELLED
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="DRAFT", index=True)

    created_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    blueprint: Mapped[FormBlueprint] = relationship(lazy="selectin")
    young_person: Mapped[YoungPerson | None] = relationship(lazy="selectin")
    home: Mapped[Home | None] = relationship(lazy="selectin")
