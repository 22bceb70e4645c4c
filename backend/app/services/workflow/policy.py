"""Access policy: the single table of who may move an application where.

Pure functions, no I/O.  The workflow engine consults this module before
any mutation, and the HTTP layer uses it for read permissions.
"""

import enum
from dataclasses import dataclass
from typing import Protocol

from app.models.application import ApplicationStatus
from app.models.user import UserRole


class TransitionEvent(str, enum.Enum):
    SUBMIT = "submit"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"
    MARK_INCOMPLETE = "mark_incomplete"
    FINAL_APPROVE = "final_approve"
    FINAL_REJECT = "final_reject"


class ActorRole(str, enum.Enum):
    OWNER = "owner"
    REVIEWER = "reviewer"
    MANAGER = "manager"


@dataclass(frozen=True)
class Transition:
    source: ApplicationStatus
    event: TransitionEvent
    target: ApplicationStatus
    role: ActorRole


S = ApplicationStatus
E = TransitionEvent

TRANSITIONS: tuple[Transition, ...] = (
    Transition(S.NOT_SUBMITTED, E.SUBMIT, S.UNDER_REVIEW, ActorRole.OWNER),
    Transition(S.NOT_COMPLETED, E.SUBMIT, S.UNDER_REVIEW, ActorRole.OWNER),
    Transition(S.NOT_SUBMITTED, E.DELETE, S.DELETED, ActorRole.OWNER),
    Transition(S.NOT_COMPLETED, E.DELETE, S.DELETED, ActorRole.OWNER),
    Transition(S.UNDER_REVIEW, E.APPROVE, S.SECOND_REVIEW, ActorRole.REVIEWER),
    Transition(S.UNDER_REVIEW, E.REJECT, S.REJECTED, ActorRole.REVIEWER),
    Transition(S.UNDER_REVIEW, E.MARK_INCOMPLETE, S.NOT_COMPLETED, ActorRole.REVIEWER),
    Transition(S.SECOND_REVIEW, E.FINAL_APPROVE, S.ACCEPTED, ActorRole.MANAGER),
    Transition(S.SECOND_REVIEW, E.FINAL_REJECT, S.REJECTED, ActorRole.MANAGER),
)

_BY_EDGE: dict[tuple[ApplicationStatus, TransitionEvent], Transition] = {
    (t.source, t.event): t for t in TRANSITIONS
}

# Every event is gated by exactly one role, whatever the source status.
EVENT_ROLES: dict[TransitionEvent, ActorRole] = {t.event: t.role for t in TRANSITIONS}

OWNER_EVENTS = frozenset(e for e, role in EVENT_ROLES.items() if role is ActorRole.OWNER)

# Events that mark the submission date when fired.
SUBMISSION_EVENTS = frozenset({E.SUBMIT})

VIEWER_ROLES = frozenset({ActorRole.REVIEWER, ActorRole.MANAGER})

_ACTOR_ROLE_BY_USER_ROLE = {
    UserRole.APPLICANT: ActorRole.OWNER,
    UserRole.REVIEWER: ActorRole.REVIEWER,
    UserRole.MANAGER: ActorRole.MANAGER,
}


class OwnedApplication(Protocol):
    owner_id: int


def find_transition(
    status: ApplicationStatus, event: TransitionEvent
) -> Transition | None:
    """Return the edge leaving *status* on *event*, or None if there is none."""
    return _BY_EDGE.get((status, event))


def can_transition(role: ActorRole, event: TransitionEvent) -> bool:
    """True when *role* is the role that may fire *event*.

    Owner-gated events additionally require the actor to own the application;
    see :func:`is_owner_gated`.
    """
    return EVENT_ROLES.get(event) == role


def is_owner_gated(event: TransitionEvent) -> bool:
    return event in OWNER_EVENTS


def can_view(role: ActorRole, actor_id: int, application: OwnedApplication) -> bool:
    """Owners see their own applications; reviewers and managers see all."""
    if role in VIEWER_ROLES:
        return True
    return actor_id == application.owner_id


def allowed_events(status: ApplicationStatus, role: ActorRole) -> list[TransitionEvent]:
    """Events *role* could fire on an application currently in *status*."""
    return [t.event for t in TRANSITIONS if t.source == status and t.role == role]


def actor_role_for(user_role: UserRole) -> ActorRole:
    """Default workflow role of a user, used for read access."""
    return _ACTOR_ROLE_BY_USER_ROLE[user_role]


def actor_role_for_event(user_role: UserRole, event: TransitionEvent) -> ActorRole:
    """Role a user acts in when firing *event*.

    Submitting and deleting are always attempted as the owner, so staff
    members can still manage applications they filed themselves; ownership
    is then checked by id.
    """
    if is_owner_gated(event):
        return ActorRole.OWNER
    return actor_role_for(user_role)


def event_for_target(
    role: ActorRole, status: ApplicationStatus, target: ApplicationStatus
) -> TransitionEvent | None:
    """Map a requested target status to the event *role* would fire from *status*."""
    for t in TRANSITIONS:
        if t.source == status and t.target == target and t.role == role:
            return t.event
    return None
