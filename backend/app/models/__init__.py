"""SQLAlchemy models for the ethics committee application tracker."""

from app.models.user import User, UserRole, STAFF_ROLES
from app.models.application import (
    Application,
    ApplicationStatus,
    InvestigationType,
    CategoryType,
    TERMINAL_STATUSES,
)
from app.models.status_history import StatusHistoryEntry, AppendOnlyViolation
from app.models.review import ReviewRecord
from app.models.error_log import ErrorLog, ErrorSeverity

__all__ = [
    "User",
    "UserRole",
    "STAFF_ROLES",
    # Applications
    "Application",
    "ApplicationStatus",
    "InvestigationType",
    "CategoryType",
    "TERMINAL_STATUSES",
    # Audit trail
    "StatusHistoryEntry",
    "AppendOnlyViolation",
    "ReviewRecord",
    # Error Monitoring
    "ErrorLog",
    "ErrorSeverity",
]
