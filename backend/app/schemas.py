"""Pydantic schemas for request/response validation."""

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field

from app.models.application import ApplicationStatus, CategoryType, InvestigationType


# ── Applications ──────────────────────────────────────

class ApplicationCreate(BaseModel):
    """Creation request from the applicant portal.

    Classification codes are validated by the workflow, which reports bad
    codes as invalid_category / invalid_investigation_type.
    """
    project_title: str = Field(min_length=1, max_length=500)
    investigation_type: str = Field(min_length=1, max_length=10)
    category_type: str = Field(min_length=1, max_length=10)

    # Applicant-supplied attributes, stored as metadata
    title: Optional[str] = Field(None, max_length=100)
    identification_type: Optional[str] = Field(None, max_length=50)
    identification_number: Optional[str] = Field(None, max_length=50)
    vinculation_type: Optional[str] = Field(None, max_length=100)
    external_institution: Optional[str] = Field(None, max_length=255)
    level: Optional[str] = Field(None, max_length=100)
    risk: Optional[str] = Field(None, max_length=50)
    document_count: Optional[int] = Field(None, ge=0)


class ApplicationCreatedResponse(BaseModel):
    id: int
    codification: str
    sequential_number: int
    status: ApplicationStatus

    model_config = {"from_attributes": True}


class ApplicationResponse(BaseModel):
    id: int
    owner_id: int
    project_title: str
    investigation_type: InvestigationType
    category_type: CategoryType
    sequential_number: int
    codification: str
    status: ApplicationStatus
    date_created: datetime
    date_submitted: Optional[datetime] = None
    metadata: Optional[dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("metadata_", "metadata")
    )
    applicant_name: Optional[str] = None
    applicant_email: Optional[str] = None

    model_config = {"from_attributes": True}


class StatusHistoryResponse(BaseModel):
    id: int
    application_id: int
    previous_status: ApplicationStatus
    new_status: ApplicationStatus
    changed_by: int
    change_date: datetime
    comments: Optional[str] = None

    model_config = {"from_attributes": True}


class ReviewResponse(BaseModel):
    id: int
    application_id: int
    reviewer_id: int
    status: ApplicationStatus
    comments: Optional[str] = None
    date_assigned: datetime
    date_reviewed: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ApplicationDetailResponse(BaseModel):
    application: ApplicationResponse
    history: list[StatusHistoryResponse]
    reviews: list[ReviewResponse]
    allowed_events: list[str] = []


# ── Transitions ───────────────────────────────────────

class TransitionRequest(BaseModel):
    event: str = Field(min_length=1, max_length=50)
    comment: Optional[str] = Field(None, max_length=5000)


class StatusUpdateRequest(BaseModel):
    """Committee form: the reviewer/manager picks the resulting status."""
    status: ApplicationStatus
    comment: Optional[str] = Field(None, max_length=5000)


class TransitionResponse(BaseModel):
    application_id: int
    status: ApplicationStatus
    message: str


# ── Committee queues ──────────────────────────────────

class ManagementQueueItem(ApplicationResponse):
    reviewer_id: Optional[int] = None
    reviewer_name: Optional[str] = None
    reviewer_comments: Optional[str] = None
    date_reviewed: Optional[datetime] = None


class WorkflowErrorResponse(BaseModel):
    detail: str
    error: str
    retryable: bool = False
