"""Application endpoints for the applicant portal."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.auth_utils import get_current_user
from app.database import get_db, get_session_factory
from app.models.user import User
from app.schemas import (
    ApplicationCreate,
    ApplicationCreatedResponse,
    ApplicationDetailResponse,
    ApplicationResponse,
    ReviewResponse,
    StatusHistoryResponse,
    TransitionRequest,
    TransitionResponse,
)
from app.services.error_logger import log_error_standalone
from app.services.workflow import engine
from app.services.workflow.errors import WorkflowError
from app.services.workflow.policy import (
    ActorRole,
    TransitionEvent,
    actor_role_for,
    actor_role_for_event,
    allowed_events,
    can_view,
)

router = APIRouter()

SUBMIT_COMMENT = "Application submitted for review"
DELETE_COMMENT = "Application deleted by user"

_APPLICANT_FIELDS = (
    "title",
    "identification_type",
    "identification_number",
    "vinculation_type",
    "external_institution",
    "level",
    "risk",
    "document_count",
)


def _creation_metadata(data: ApplicationCreate, user: User) -> dict[str, Any]:
    """Snapshot of applicant-supplied fields and the creator's identity."""
    metadata = {
        field: getattr(data, field)
        for field in _APPLICANT_FIELDS
        if getattr(data, field) is not None
    }
    metadata.update(
        first_name=user.first_name,
        middle_name=user.middle_name,
        first_surname=user.first_surname,
        second_surname=user.second_surname,
        created_by=user.email,
    )
    return metadata


async def _fire(
    sessions: async_sessionmaker[AsyncSession],
    application_id: int,
    event: TransitionEvent,
    user: User,
    comment: str | None,
    message: str,
) -> TransitionResponse:
    try:
        new_status = await engine.apply_transition(
            sessions,
            application_id,
            event,
            user.id,
            actor_role_for_event(user.role, event),
            comment,
        )
    except (HTTPException, WorkflowError):
        raise
    except Exception as exc:
        await log_error_standalone(
            exc, module="api.applications", function_name=event.value,
            user_id=user.id, application_id=application_id,
        )
        raise
    return TransitionResponse(application_id=application_id, status=new_status, message=message)


# ── Create / list ────────────────────────────────────

@router.post("/", response_model=ApplicationCreatedResponse, status_code=201)
async def create_application(
    data: ApplicationCreate,
    current_user: User = Depends(get_current_user),
    sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    try:
        application = await engine.create_application(
            sessions,
            owner_id=current_user.id,
            project_title=data.project_title,
            investigation_type=data.investigation_type.strip().upper(),
            category_type=data.category_type.strip().upper(),
            metadata=_creation_metadata(data, current_user),
        )
    except (HTTPException, WorkflowError):
        raise
    except Exception as exc:
        await log_error_standalone(
            exc, module="api.applications", function_name="create_application",
            user_id=current_user.id,
        )
        raise
    return application


@router.get("/", response_model=list[ApplicationResponse])
async def list_my_applications(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await engine.list_owned_applications(db, current_user.id)


@router.get("/{application_id}", response_model=ApplicationDetailResponse)
async def get_application(
    application_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    detail = await engine.get_application(db, application_id)
    role = actor_role_for(current_user.role)
    if not can_view(role, current_user.id, detail.application):
        # Same answer as a missing application so ids are not disclosed
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")

    events = set(allowed_events(detail.application.status, role))
    if detail.application.owner_id == current_user.id:
        events.update(allowed_events(detail.application.status, ActorRole.OWNER))
    return ApplicationDetailResponse(
        application=ApplicationResponse.model_validate(detail.application),
        history=[StatusHistoryResponse.model_validate(h) for h in detail.history],
        reviews=[ReviewResponse.model_validate(r) for r in detail.reviews],
        allowed_events=sorted(e.value for e in events),
    )


# ── Owner transitions ────────────────────────────────

@router.put("/{application_id}/submit", response_model=TransitionResponse)
async def submit_application(
    application_id: int,
    current_user: User = Depends(get_current_user),
    sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    return await _fire(
        sessions, application_id, TransitionEvent.SUBMIT, current_user,
        SUBMIT_COMMENT, "Application submitted for review",
    )


@router.delete("/{application_id}", response_model=TransitionResponse)
async def delete_application(
    application_id: int,
    current_user: User = Depends(get_current_user),
    sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    return await _fire(
        sessions, application_id, TransitionEvent.DELETE, current_user,
        DELETE_COMMENT, "Application deleted",
    )


@router.post("/{application_id}/transitions", response_model=TransitionResponse)
async def transition_application(
    application_id: int,
    data: TransitionRequest,
    current_user: User = Depends(get_current_user),
    sessions: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    event = engine.parse_event(data.event)
    return await _fire(
        sessions, application_id, event, current_user, data.comment,
        f"Application {event.value} recorded",
    )
