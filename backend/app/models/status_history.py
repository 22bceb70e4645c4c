"""Status history, the append-only audit trail of every status change."""

from datetime import datetime

from sqlalchemy import Enum, DateTime, ForeignKey, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.application import ApplicationStatus


class StatusHistoryEntry(Base):
    """One row per status change, including the creation event
    (previous_status == new_status == NOT_SUBMITTED)."""
    __tablename__ = "status_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        ForeignKey("applications.id"), nullable=False, index=True
    )
    previous_status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"), nullable=False
    )
    new_status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"), nullable=False
    )
    changed_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    change_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    application = relationship("Application", back_populates="history")


class AppendOnlyViolation(RuntimeError):
    """An insert-only audit row was about to be modified or removed."""


@event.listens_for(StatusHistoryEntry, "before_update")
@event.listens_for(StatusHistoryEntry, "before_delete")
def _reject_history_mutation(mapper, connection, target):
    raise AppendOnlyViolation(
        f"status_history row {target.id} is append-only and cannot be changed"
    )
