"""Application record store.

Thin query layer over the three workflow tables.  ``set_status`` is the
only place in the code base that writes ``Application.status``; history
and review rows are only ever inserted.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import func as sa_func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.application import (
    Application,
    ApplicationStatus,
    CategoryType,
    InvestigationType,
)
from app.models.review import ReviewRecord
from app.models.status_history import StatusHistoryEntry


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------

async def load_application(
    db: AsyncSession, application_id: int, *, for_update: bool = False
) -> Application | None:
    """Load one application; ``for_update`` takes the row lock."""
    stmt = select(Application).where(Application.id == application_id)
    if for_update:
        stmt = stmt.with_for_update(of=Application)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def max_sequential_number(db: AsyncSession) -> int:
    """Highest sequential number ever assigned, deleted applications included."""
    result = await db.execute(
        select(sa_func.coalesce(sa_func.max(Application.sequential_number), 0))
    )
    return int(result.scalar_one())


async def identifier_taken(
    db: AsyncSession, *, codification: str, sequential_number: int
) -> bool:
    result = await db.execute(
        select(Application.id)
        .where(
            (Application.codification == codification)
            | (Application.sequential_number == sequential_number)
        )
        .limit(1)
    )
    return result.first() is not None


async def insert_application(
    db: AsyncSession,
    *,
    owner_id: int,
    project_title: str,
    investigation_type: InvestigationType,
    category_type: CategoryType,
    sequential_number: int,
    codification: str,
    created_at: datetime,
    metadata: dict[str, Any] | None,
) -> Application:
    application = Application(
        owner_id=owner_id,
        project_title=project_title,
        investigation_type=investigation_type,
        category_type=category_type,
        sequential_number=sequential_number,
        codification=codification,
        status=ApplicationStatus.NOT_SUBMITTED,
        date_created=created_at,
        metadata_=metadata,
    )
    db.add(application)
    await db.flush()
    return application


async def set_status(
    db: AsyncSession,
    application: Application,
    status: ApplicationStatus,
    *,
    submitted_at: datetime | None = None,
) -> None:
    application.status = status
    if submitted_at is not None:
        application.date_submitted = submitted_at
    await db.flush()


async def list_owned(db: AsyncSession, owner_id: int) -> list[Application]:
    """The owner's applications, soft-deleted ones hidden, newest first."""
    result = await db.execute(
        select(Application)
        .where(
            Application.owner_id == owner_id,
            Application.status != ApplicationStatus.DELETED,
        )
        .order_by(Application.date_created.desc(), Application.id.desc())
    )
    return list(result.scalars().all())


async def list_by_status(db: AsyncSession, status: ApplicationStatus) -> list[Application]:
    """Applications waiting in *status*, most recently submitted first."""
    result = await db.execute(
        select(Application)
        .where(Application.status == status)
        .order_by(Application.date_submitted.desc(), Application.id.desc())
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# History and reviews (insert-only)
# ---------------------------------------------------------------------------

async def append_history(
    db: AsyncSession,
    *,
    application_id: int,
    previous_status: ApplicationStatus,
    new_status: ApplicationStatus,
    changed_by: int,
    changed_at: datetime,
    comments: str | None = None,
) -> StatusHistoryEntry:
    entry = StatusHistoryEntry(
        application_id=application_id,
        previous_status=previous_status,
        new_status=new_status,
        changed_by=changed_by,
        change_date=changed_at,
        comments=comments,
    )
    db.add(entry)
    await db.flush()
    return entry


async def append_review(
    db: AsyncSession,
    *,
    application_id: int,
    reviewer_id: int,
    status: ApplicationStatus,
    reviewed_at: datetime,
    comments: str | None = None,
) -> ReviewRecord:
    review = ReviewRecord(
        application_id=application_id,
        reviewer_id=reviewer_id,
        status=status,
        comments=comments,
        date_assigned=reviewed_at,
        date_reviewed=reviewed_at,
    )
    db.add(review)
    await db.flush()
    return review


async def list_history(db: AsyncSession, application_id: int) -> list[StatusHistoryEntry]:
    result = await db.execute(
        select(StatusHistoryEntry)
        .where(StatusHistoryEntry.application_id == application_id)
        .order_by(StatusHistoryEntry.change_date, StatusHistoryEntry.id)
    )
    return list(result.scalars().all())


async def list_reviews(db: AsyncSession, application_id: int) -> list[ReviewRecord]:
    result = await db.execute(
        select(ReviewRecord)
        .where(ReviewRecord.application_id == application_id)
        .order_by(ReviewRecord.date_reviewed, ReviewRecord.id)
    )
    return list(result.scalars().unique().all())


async def latest_reviews(
    db: AsyncSession, application_ids: list[int]
) -> dict[int, ReviewRecord]:
    """Most recent review per application, keyed by application id."""
    if not application_ids:
        return {}
    result = await db.execute(
        select(ReviewRecord)
        .where(ReviewRecord.application_id.in_(application_ids))
        .order_by(ReviewRecord.date_reviewed, ReviewRecord.id)
    )
    latest: dict[int, ReviewRecord] = {}
    for review in result.scalars().unique().all():
        latest[review.application_id] = review
    return latest
