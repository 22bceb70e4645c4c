"""Centralised error logging — captures exceptions to DB and Python logger.

Usage:
    # 1. As a function call in any try/except:
    from app.services.error_logger import log_error
    try:
        ...
    except Exception as e:
        await log_error(e, db=db, module="api.applications", function_name="create")

    # 2. Middleware captures unhandled request errors automatically.
"""

from __future__ import annotations

import logging
import traceback as tb_module
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.error_log import ErrorLog, ErrorSeverity

logger = logging.getLogger("ceish.errors")


def _sanitize_text(value: object, *, max_len: Optional[int] = None) -> str:
    """Normalize control characters before persisting text."""
    text = str(value)
    text = "".join(ch if (ch >= " " or ch in "\n\r\t") else " " for ch in text)
    if max_len is not None:
        return text[:max_len]
    return text


def _build_entry(
    exc: Exception,
    *,
    severity: ErrorSeverity,
    module: Optional[str],
    function_name: Optional[str],
    request_method: Optional[str],
    request_path: Optional[str],
    status_code: Optional[int],
    response_time_ms: Optional[float],
    user_id: Optional[int],
    application_id: Optional[int],
) -> ErrorLog:
    # Fall back to the innermost traceback frame for the location
    if exc.__traceback__ and not module:
        frame = exc.__traceback__
        while frame.tb_next:
            frame = frame.tb_next
        module = frame.tb_frame.f_code.co_filename
        function_name = function_name or frame.tb_frame.f_code.co_name

    return ErrorLog(
        severity=severity,
        error_type=type(exc).__name__,
        message=_sanitize_text(exc, max_len=2000),
        traceback=_sanitize_text(
            "".join(tb_module.format_exception(type(exc), exc, exc.__traceback__)),
            max_len=10000,
        ),
        module=_sanitize_text(module, max_len=300) if module else None,
        function_name=_sanitize_text(function_name, max_len=200) if function_name else None,
        request_method=request_method,
        request_path=_sanitize_text(request_path, max_len=500) if request_path else None,
        status_code=status_code,
        response_time_ms=response_time_ms,
        user_id=user_id,
        application_id=application_id or getattr(exc, "application_id", None),
    )


async def log_error(
    exc: Exception,
    *,
    db: Optional[AsyncSession] = None,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    module: Optional[str] = None,
    function_name: Optional[str] = None,
    request_method: Optional[str] = None,
    request_path: Optional[str] = None,
    status_code: Optional[int] = None,
    response_time_ms: Optional[float] = None,
    user_id: Optional[int] = None,
    application_id: Optional[int] = None,
) -> Optional[ErrorLog]:
    """Log an exception to the Python logger and, when a session is given, the DB.

    Returns the created ErrorLog row, or None if the DB write failed/was skipped.
    """
    log_msg = f"[{severity.value.upper()}] {type(exc).__name__}: {_sanitize_text(exc, max_len=2000)}"
    if request_path:
        log_msg = f"{request_method or '?'} {request_path} -> {log_msg}"
    logger.error(log_msg, exc_info=exc)

    if db is None:
        return None

    try:
        entry = _build_entry(
            exc,
            severity=severity,
            module=module,
            function_name=function_name,
            request_method=request_method,
            request_path=request_path,
            status_code=status_code,
            response_time_ms=response_time_ms,
            user_id=user_id,
            application_id=application_id,
        )
        db.add(entry)
        await db.flush()
        return entry
    except Exception as db_err:
        # Never let error-logging itself crash the request
        logger.warning("Failed to persist error log to DB: %s", db_err)
        return None


async def log_error_standalone(exc: Exception, **context) -> Optional[ErrorLog]:
    """Log an error using its own DB session (for middleware use)."""
    from app.database import async_session

    try:
        async with async_session() as db:
            entry = await log_error(exc, db=db, **context)
            await db.commit()
            return entry
    except Exception as db_err:
        logger.warning("Failed standalone error log: %s", db_err)
        return None
