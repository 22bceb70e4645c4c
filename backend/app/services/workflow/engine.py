"""Application status workflow engine.

Every status change goes through :func:`apply_transition`, which runs as
one atomic unit under the application's exclusive scope:

1. read the current status (row locked)
2. validate the edge, the caller's role and, for owner events, ownership
3. write the new status
4. append a status history entry
5. append a review record when the caller acted as reviewer

Either all writes commit or none do, so an application is never observed
in a status its history does not explain.  Creation is the only other
writer: it reserves the identifiers and inserts the application together
with its first history entry in one globally serialized transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.application import (
    Application,
    ApplicationStatus,
    CategoryType,
    InvestigationType,
)
from app.models.review import ReviewRecord
from app.models.status_history import StatusHistoryEntry
from app.services.workflow import locks, store
from app.services.workflow.codification import generate_codification
from app.services.workflow.errors import InvalidTransitionError, NotFoundError
from app.services.workflow.policy import (
    SUBMISSION_EVENTS,
    ActorRole,
    Transition,
    TransitionEvent,
    can_transition,
    find_transition,
    is_owner_gated,
)

logger = logging.getLogger(__name__)

CREATION_COMMENT = "Application created"


@dataclass
class ApplicationDetail:
    application: Application
    history: list[StatusHistoryEntry]
    reviews: list[ReviewRecord]


@dataclass
class QueuedApplication:
    application: Application
    latest_review: ReviewRecord | None = None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def parse_event(event: TransitionEvent | str) -> TransitionEvent:
    try:
        return TransitionEvent(event)
    except ValueError:
        raise InvalidTransitionError(f"Unknown event: {event!r}") from None


def parse_actor_role(role: ActorRole | str) -> ActorRole:
    try:
        return ActorRole(role)
    except ValueError:
        raise InvalidTransitionError(f"Unknown actor role: {role!r}") from None


def authorize_transition(
    application: Application,
    event: TransitionEvent,
    actor_id: int,
    actor_role: ActorRole,
) -> Transition:
    """Return the edge to follow, or raise InvalidTransitionError.

    Pure: reads the application, never mutates it.
    """
    status = application.status
    transition = find_transition(status, event)
    if transition is None:
        if application.is_terminal:
            detail = f"application is {status.value} and can no longer change"
        else:
            detail = f"not allowed while the application is {status.value}"
        raise InvalidTransitionError(
            f"Cannot {event.value}: {detail}", application_id=application.id
        )
    if not can_transition(actor_role, event):
        raise InvalidTransitionError(
            f"Role {actor_role.value} may not {event.value} an application",
            application_id=application.id,
        )
    if is_owner_gated(event) and actor_id != application.owner_id:
        raise InvalidTransitionError(
            f"Only the owner may {event.value} this application",
            application_id=application.id,
        )
    return transition


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_application(
    sessions: async_sessionmaker[AsyncSession],
    *,
    owner_id: int,
    project_title: str,
    investigation_type: InvestigationType | str,
    category_type: CategoryType | str,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
    timeout: float | None = None,
) -> Application:
    """Create an application in NOT_SUBMITTED with its creation history entry."""
    now = now or datetime.now(timezone.utc)
    async with locks.creation_transaction(sessions, timeout=timeout) as db:
        codification, sequential_number = await generate_codification(
            db, investigation_type, category_type, now
        )
        application = await store.insert_application(
            db,
            owner_id=owner_id,
            project_title=project_title,
            investigation_type=InvestigationType(investigation_type),
            category_type=CategoryType(category_type),
            sequential_number=sequential_number,
            codification=codification,
            created_at=now,
            metadata=metadata,
        )
        await store.append_history(
            db,
            application_id=application.id,
            previous_status=ApplicationStatus.NOT_SUBMITTED,
            new_status=ApplicationStatus.NOT_SUBMITTED,
            changed_by=owner_id,
            changed_at=now,
            comments=CREATION_COMMENT,
        )

    logger.info(
        "Created application %d (%s, #%d) for user %d",
        application.id, codification, sequential_number, owner_id,
    )
    return application


async def apply_transition(
    sessions: async_sessionmaker[AsyncSession],
    application_id: int,
    event: TransitionEvent | str,
    actor_id: int,
    actor_role: ActorRole | str,
    comment: str | None = None,
    *,
    now: datetime | None = None,
    timeout: float | None = None,
) -> ApplicationStatus:
    """Move an application along one edge of the workflow and return its new status."""
    event = parse_event(event)
    actor_role = parse_actor_role(actor_role)

    async with locks.application_transaction(sessions, application_id, timeout=timeout) as db:
        application = await store.load_application(db, application_id, for_update=True)
        if application is None:
            raise NotFoundError(
                f"Application {application_id} not found", application_id=application_id
            )

        previous = application.status
        try:
            transition = authorize_transition(application, event, actor_id, actor_role)
        except InvalidTransitionError as exc:
            logger.warning(
                "Rejected %s on application %d by user %d (%s): %s",
                event.value, application_id, actor_id, actor_role.value, exc.message,
            )
            raise

        changed_at = now or datetime.now(timezone.utc)
        await store.set_status(
            db,
            application,
            transition.target,
            submitted_at=changed_at if event in SUBMISSION_EVENTS else None,
        )
        await store.append_history(
            db,
            application_id=application_id,
            previous_status=previous,
            new_status=transition.target,
            changed_by=actor_id,
            changed_at=changed_at,
            comments=comment,
        )
        if actor_role is ActorRole.REVIEWER:
            await store.append_review(
                db,
                application_id=application_id,
                reviewer_id=actor_id,
                status=transition.target,
                reviewed_at=changed_at,
                comments=comment,
            )

    logger.info(
        "Application %d: %s → %s (%s by user %d)",
        application_id, previous.value, transition.target.value,
        event.value, actor_id,
    )
    return transition.target


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_application(db: AsyncSession, application_id: int) -> ApplicationDetail:
    """Current state of an application with its full history and reviews."""
    application = await store.load_application(db, application_id)
    if application is None:
        raise NotFoundError(
            f"Application {application_id} not found", application_id=application_id
        )
    return ApplicationDetail(
        application=application,
        history=await store.list_history(db, application_id),
        reviews=await store.list_reviews(db, application_id),
    )


async def list_owned_applications(db: AsyncSession, owner_id: int) -> list[Application]:
    return await store.list_owned(db, owner_id)


async def review_queue(db: AsyncSession) -> list[Application]:
    """Applications waiting for a first review."""
    return await store.list_by_status(db, ApplicationStatus.UNDER_REVIEW)


async def management_queue(db: AsyncSession) -> list[QueuedApplication]:
    """Applications waiting for a manager, each with the reviewer's latest decision."""
    applications = await store.list_by_status(db, ApplicationStatus.SECOND_REVIEW)
    latest = await store.latest_reviews(db, [a.id for a in applications])
    return [QueuedApplication(a, latest.get(a.id)) for a in applications]
