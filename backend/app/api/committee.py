"""Committee endpoints: reviewer and manager queues and status decisions."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth_utils import require_roles
from app.database import get_db, get_session_factory
from app.models.user import STAFF_ROLES, User, UserRole
from app.schemas import (
    ApplicationResponse,
    ManagementQueueItem,
    StatusUpdateRequest,
    TransitionResponse,
)
from app.services.error_logger import log_error_standalone
from app.services.workflow import engine, store
from app.services.workflow.errors import InvalidTransitionError, NotFoundError, WorkflowError
from app.services.workflow.policy import actor_role_for, event_for_target

router = APIRouter()


@router.get("/review-queue", response_model=list[ApplicationResponse])
async def review_queue(
    current_user: User = Depends(require_roles(UserRole.REVIEWER)),
    db: AsyncSession = Depends(get_db),
):
    """Applications submitted and waiting for a first review."""
    return await engine.review_queue(db)


@router.get("/management-queue", response_model=list[ManagementQueueItem])
async def management_queue(
    current_user: User = Depends(require_roles(UserRole.MANAGER)),
    db: AsyncSession = Depends(get_db),
):
    """Applications the reviewers passed on, with the latest reviewer decision."""
    items = []
    for queued in await engine.management_queue(db):
        item = ApplicationResponse.model_validate(queued.application).model_dump()
        review = queued.latest_review
        if review is not None:
            item.update(
                reviewer_id=review.reviewer_id,
                reviewer_name=review.reviewer.full_name if review.reviewer else None,
                reviewer_comments=review.comments,
                date_reviewed=review.date_reviewed,
            )
        items.append(ManagementQueueItem(**item))
    return items


@router.put("/applications/{application_id}/status", response_model=TransitionResponse)
async def update_status(
    application_id: int,
    data: StatusUpdateRequest,
    current_user: User = Depends(require_roles(*STAFF_ROLES)),
    db: AsyncSession = Depends(get_db),
    sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """Record a reviewer or manager decision expressed as the resulting status.

    The status read here only selects the event; the engine re-validates
    it against the locked row.
    """
    application = await store.load_application(db, application_id)
    if application is None:
        raise NotFoundError(f"Application {application_id} not found", application_id=application_id)

    role = actor_role_for(current_user.role)
    event = event_for_target(role, application.status, data.status)
    if event is None:
        raise InvalidTransitionError(
            f"Role {role.value} cannot move an application from "
            f"{application.status.value} to {data.status.value}",
            application_id=application_id,
        )

    try:
        new_status = await engine.apply_transition(
            sessions, application_id, event, current_user.id, role, data.comment,
        )
    except WorkflowError:
        raise
    except Exception as exc:
        await log_error_standalone(
            exc, module="api.committee", function_name="update_status",
            user_id=current_user.id, application_id=application_id,
        )
        raise
    return TransitionResponse(
        application_id=application_id,
        status=new_status,
        message=f"Application moved to {new_status.value}",
    )
