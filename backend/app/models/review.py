"""Review records written when a reviewer moves an application."""

from datetime import datetime

from sqlalchemy import Enum, DateTime, ForeignKey, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.application import ApplicationStatus
from app.models.status_history import AppendOnlyViolation


class ReviewRecord(Base):
    __tablename__ = "reviews"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        ForeignKey("applications.id"), nullable=False, index=True
    )
    reviewer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status"), nullable=False
    )
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    date_assigned: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    date_reviewed: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    application = relationship("Application", back_populates="reviews")
    reviewer = relationship("User", foreign_keys=[reviewer_id], lazy="joined")


@event.listens_for(ReviewRecord, "before_update")
@event.listens_for(ReviewRecord, "before_delete")
def _reject_review_mutation(mapper, connection, target):
    raise AppendOnlyViolation(f"reviews row {target.id} is append-only and cannot be changed")
