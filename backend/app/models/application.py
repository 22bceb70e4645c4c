"""Ethics application model and its classification enums."""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import (
    String, Integer, Enum, DateTime, ForeignKey, JSON, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.database import Base


class ApplicationStatus(str, enum.Enum):
    NOT_SUBMITTED = "NOT_SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    SECOND_REVIEW = "SECOND_REVIEW"
    NOT_COMPLETED = "NOT_COMPLETED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    DELETED = "DELETED"


TERMINAL_STATUSES = frozenset({
    ApplicationStatus.ACCEPTED,
    ApplicationStatus.REJECTED,
    ApplicationStatus.DELETED,
})


class InvestigationType(str, enum.Enum):
    INTERVENTION = "EI"
    OBSERVATIONAL = "EO"


class CategoryType(str, enum.Enum):
    GENERAL = "GE"
    HUMAN_SUBJECTS = "SH"
    ANIMALS_AND_LIVING_THINGS = "AN"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


# Assigned once at creation; any later change is a programming error.
_IMMUTABLE_FIELDS = (
    "owner_id",
    "investigation_type",
    "category_type",
    "sequential_number",
    "codification",
    "date_created",
)


class Application(Base):
    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("sequential_number", name="uq_applications_sequential_number"),
        UniqueConstraint("codification", name="uq_applications_codification"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    project_title: Mapped[str] = mapped_column(String(500), nullable=False)

    # Classification
    investigation_type: Mapped[InvestigationType] = mapped_column(
        Enum(InvestigationType, values_callable=_enum_values, name="investigation_type"),
        nullable=False,
    )
    category_type: Mapped[CategoryType] = mapped_column(
        Enum(CategoryType, values_callable=_enum_values, name="category_type"),
        nullable=False,
    )

    # Identifiers
    sequential_number: Mapped[int] = mapped_column(Integer, nullable=False)
    codification: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Status (written only by app.services.workflow)
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"),
        default=ApplicationStatus.NOT_SUBMITTED,
        nullable=False,
        index=True,
    )

    # Timestamps
    date_created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    date_submitted: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Applicant-supplied and denormalized user attributes, opaque to the workflow
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    # Relationships
    owner = relationship(
        "User", back_populates="applications", foreign_keys=[owner_id],
        lazy="joined", innerjoin=True,
    )
    history = relationship(
        "StatusHistoryEntry",
        back_populates="application",
        order_by="[StatusHistoryEntry.change_date, StatusHistoryEntry.id]",
    )
    reviews = relationship(
        "ReviewRecord",
        back_populates="application",
        order_by="[ReviewRecord.date_reviewed, ReviewRecord.id]",
    )

    @validates(*_IMMUTABLE_FIELDS)
    def _freeze_identity(self, key: str, value: Any) -> Any:
        current = self.__dict__.get(key)
        if current is not None and current != value:
            raise ValueError(f"Application.{key} is immutable once assigned")
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    # Owner is eager-loaded with every query; a freshly inserted row has none yet
    @property
    def applicant_name(self) -> str | None:
        owner = self.__dict__.get("owner")
        return owner.full_name if owner is not None else None

    @property
    def applicant_email(self) -> str | None:
        owner = self.__dict__.get("owner")
        return owner.email if owner is not None else None
